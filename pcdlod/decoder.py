"""
Read cell rasters back into points, the way a viewer would.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Tuple

import imageio
import numpy as np

from .bounds import BoundingBox
from .encoder import QUANT_MAX, cell_paths
from .meta import LodMeta, read_meta
from .octree import OctreeAddress


def _valid_pixels(image: np.ndarray) -> np.ndarray:
    image = np.asarray(image)
    if image.ndim != 3 or image.shape[2] != 4:
        raise ValueError(f"Expected an RGBA raster, got shape {image.shape}.")
    pixels = image.reshape(-1, 4)
    return pixels[pixels[:, 3] > 0]


def decode_position_raster(image: np.ndarray, bbox: BoundingBox) -> np.ndarray:
    """Positions of the occupied pixels, in the coordinates ``bbox`` is given in."""
    pixels = _valid_pixels(image)
    norm = pixels[:, :3].astype(np.float64) / QUANT_MAX
    return norm * bbox.size() + np.asarray(bbox.min)


def decode_color_raster(image: np.ndarray) -> np.ndarray:
    return _valid_pixels(image)[:, :3].astype(np.uint8)


def load_cell(
    out_dir: Path,
    address: OctreeAddress,
    meta: Optional[LodMeta] = None,
    unshift: bool = True,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Decode one cell into ``(positions, colors)``. With ``unshift`` the recorded
    global shift is added back so positions are in input coordinates.
    """
    meta = meta or read_meta(out_dir)
    bbox = meta.cells[address]
    position_path, color_path = cell_paths(out_dir, address)
    positions = decode_position_raster(imageio.v2.imread(position_path), bbox)
    colors = decode_color_raster(imageio.v2.imread(color_path))
    if unshift and meta.global_shift.enabled:
        positions = positions + np.asarray(meta.global_shift.offset)
    return positions, colors


def load_level(
    out_dir: Path,
    level: int,
    meta: Optional[LodMeta] = None,
    unshift: bool = True,
) -> Tuple[np.ndarray, np.ndarray]:
    meta = meta or read_meta(out_dir)
    positions = [np.empty((0, 3), dtype=np.float64)]
    colors = [np.empty((0, 3), dtype=np.uint8)]
    for address, _ in meta.iter_level(level):
        cell_positions, cell_colors = load_cell(out_dir, address, meta, unshift=unshift)
        positions.append(cell_positions)
        colors.append(cell_colors)
    return np.concatenate(positions), np.concatenate(colors)


__all__ = ["decode_color_raster", "decode_position_raster", "load_cell", "load_level"]
