"""
Raster codec for octree cells.

A cell with ``n`` points becomes two RGBA images of ``w x h`` pixels where
``w = ceil(sqrt(n))`` and ``h = ceil(n / w)``. Point ``i`` lives at row
``i // w``, column ``i % w`` in both images.

* position image: RGB holds ``round(norm * 255)`` of the point normalized into
  the cell's bounding box; alpha is 255.
* color image: RGB holds the point color (white when the point has none);
  alpha is 255.

Trailing pixels past ``n`` are zero in every channel. Alpha 0 is what tells
them apart from a point quantized to ``(0, 0, 0)``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

import imageio
import numpy as np

from .bounds import BoundingBox
from .errors import CellWriteError, RasterOverflowError
from .octree import OctreeAddress

QUANT_MAX = 255
OPAQUE = 255
DEFAULT_COLOR = (255, 255, 255)
DEFAULT_MAX_RASTER_SIDE = 4096
COLOR_SUFFIX = "-color"


@dataclass
class CellRasters:
    position: np.ndarray
    color: np.ndarray

    @property
    def shape(self) -> Tuple[int, int]:
        """(width, height) of both images."""
        return int(self.position.shape[1]), int(self.position.shape[0])


def normalize_positions(positions: np.ndarray, bbox: BoundingBox) -> np.ndarray:
    """Map positions into [0, 1]^3; zero-extent axes divide by 1.0."""
    positions = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
    norm = (positions - np.asarray(bbox.min)) / bbox.safe_size()
    return np.clip(norm, 0.0, 1.0)


def quantize(norm: np.ndarray) -> np.ndarray:
    return np.clip(np.rint(norm * QUANT_MAX), 0, QUANT_MAX).astype(np.uint8)


def raster_shape(count: int) -> Tuple[int, int]:
    """Smallest near-square (width, height) with at least ``count`` pixels."""
    if count <= 0:
        raise ValueError("A raster needs at least one point.")
    width = math.isqrt(count - 1) + 1
    height = -(-count // width)
    return width, height


def encode_cell(
    positions: np.ndarray,
    colors: np.ndarray,
    has_color: np.ndarray,
    bbox: BoundingBox,
    max_raster_side: int = DEFAULT_MAX_RASTER_SIDE,
) -> CellRasters:
    """
    Encode the points of one cell. ``positions``/``colors``/``has_color`` are
    already gathered in pixel order.
    """
    count = int(np.asarray(positions).reshape(-1, 3).shape[0])
    width, height = raster_shape(count)
    if width > max_raster_side or height > max_raster_side:
        raise RasterOverflowError(
            f"{count:,} points need a {width}x{height} raster, above the {max_raster_side} pixel limit."
        )

    pixels = width * height
    position_px = np.zeros((pixels, 4), dtype=np.uint8)
    position_px[:count, :3] = quantize(normalize_positions(positions, bbox))
    position_px[:count, 3] = OPAQUE

    color_px = np.zeros((pixels, 4), dtype=np.uint8)
    rgb = np.where(
        np.asarray(has_color, dtype=bool).reshape(-1, 1),
        np.asarray(colors, dtype=np.uint8).reshape(-1, 3),
        np.asarray(DEFAULT_COLOR, dtype=np.uint8),
    )
    color_px[:count, :3] = rgb
    color_px[:count, 3] = OPAQUE

    return CellRasters(
        position=position_px.reshape(height, width, 4),
        color=color_px.reshape(height, width, 4),
    )


def cell_paths(out_dir: Path, address: OctreeAddress) -> Tuple[Path, Path]:
    level_dir = Path(out_dir) / str(address.level)
    return (
        level_dir / f"{address.key}.png",
        level_dir / f"{address.key}{COLOR_SUFFIX}.png",
    )


def write_cell_rasters(out_dir: Path, address: OctreeAddress, rasters: CellRasters) -> Tuple[Path, Path]:
    """
    Write both images of a cell. On failure neither file is left behind so the
    directory never holds half a pair.
    """
    position_path, color_path = cell_paths(out_dir, address)
    try:
        position_path.parent.mkdir(parents=True, exist_ok=True)
        imageio.v2.imwrite(position_path, rasters.position)
        imageio.v2.imwrite(color_path, rasters.color)
    except (OSError, ValueError) as exc:
        for path in (position_path, color_path):
            if path.exists():
                path.unlink()
        raise CellWriteError(f"Failed to write rasters for {address.level}/{address.key}: {exc}") from exc
    return position_path, color_path


def quantization_error_bound(bbox: BoundingBox) -> np.ndarray:
    """Worst-case per-axis reconstruction error of a point encoded in ``bbox``."""
    return bbox.safe_size() / QUANT_MAX / 2.0


def encode_and_write(
    out_dir: Path,
    address: OctreeAddress,
    bbox: BoundingBox,
    positions: np.ndarray,
    colors: np.ndarray,
    has_color: np.ndarray,
    max_raster_side: Optional[int] = None,
) -> Tuple[Path, Path]:
    rasters = encode_cell(
        positions,
        colors,
        has_color,
        bbox,
        max_raster_side=max_raster_side or DEFAULT_MAX_RASTER_SIDE,
    )
    return write_cell_rasters(out_dir, address, rasters)


__all__ = [
    "COLOR_SUFFIX",
    "DEFAULT_COLOR",
    "DEFAULT_MAX_RASTER_SIDE",
    "CellRasters",
    "cell_paths",
    "encode_and_write",
    "encode_cell",
    "normalize_positions",
    "quantization_error_bound",
    "quantize",
    "raster_shape",
    "write_cell_rasters",
]
