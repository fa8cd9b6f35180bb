"""Octree level-of-detail generator that stores point cloud cells as PNG rasters."""

from .bounds import BoundingBox, GlobalShift, compute_bounds, resolve_global_shift
from .decoder import decode_color_raster, decode_position_raster, load_cell, load_level
from .encoder import CellRasters, encode_cell, raster_shape, write_cell_rasters
from .errors import (
    CellWriteError,
    EmptyInputError,
    ExternalToolError,
    LodError,
    MetaWriteError,
    OutputDirError,
    RasterOverflowError,
    UnsupportedFormatError,
)
from .lod_generator import (
    CellFailure,
    LodConfig,
    LodReport,
    generate_lod,
    generate_lod_from_config,
    generate_lod_from_file,
)
from .meta import LodMeta, read_meta, write_meta
from .octree import OctreeAddress, OctreeCell, build_octree, iter_cells, iter_leaves
from .points import Point, PointCloud, read_point_cloud

__all__ = [
    "BoundingBox",
    "CellFailure",
    "CellRasters",
    "CellWriteError",
    "EmptyInputError",
    "ExternalToolError",
    "GlobalShift",
    "LodConfig",
    "LodError",
    "LodMeta",
    "LodReport",
    "MetaWriteError",
    "OutputDirError",
    "OctreeAddress",
    "OctreeCell",
    "Point",
    "PointCloud",
    "RasterOverflowError",
    "UnsupportedFormatError",
    "build_octree",
    "compute_bounds",
    "decode_color_raster",
    "decode_position_raster",
    "encode_cell",
    "generate_lod",
    "generate_lod_from_config",
    "generate_lod_from_file",
    "iter_cells",
    "iter_leaves",
    "load_cell",
    "load_level",
    "raster_shape",
    "read_meta",
    "read_point_cloud",
    "resolve_global_shift",
    "write_cell_rasters",
    "write_meta",
]
