"""
Quick-look plots of a written LOD.

Decodes every cell of one level and draws a top-down scatter of the points
with the cell footprints outlined, which is usually enough to spot a bad
shift or a broken cell without opening a viewer.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import numpy as np
from matplotlib.figure import Figure
from matplotlib.patches import Rectangle

from .decoder import load_level
from .meta import LodMeta, read_meta


def plot_level(
    out_dir: Path,
    level: int,
    image_path: Path,
    meta: Optional[LodMeta] = None,
    point_size: float = 1.0,
    show_cells: bool = True,
) -> Path:
    """
    Render ``level`` of the LOD in ``out_dir`` to ``image_path`` (XY plane,
    points colored from the color rasters). Coordinates are the shifted ones
    stored in the index, matching the cell boxes.
    """
    meta = meta or read_meta(out_dir)
    positions, colors = load_level(out_dir, level, meta, unshift=False)

    # A bare Figure renders through the Agg canvas without touching pyplot state.
    fig = Figure(figsize=(8, 8))
    ax = fig.subplots()
    if positions.size:
        ax.scatter(
            positions[:, 0],
            positions[:, 1],
            c=colors.astype(np.float64) / 255.0,
            s=point_size,
            linewidths=0,
        )
    if show_cells:
        for _, bbox in meta.iter_level(level):
            width, height = bbox.size()[:2]
            ax.add_patch(
                Rectangle(bbox.min[:2], width, height, fill=False, linewidth=0.5, edgecolor="0.3")
            )
    ax.set_xlim(meta.bounds.min[0], meta.bounds.max[0] if meta.bounds.size()[0] else meta.bounds.min[0] + 1.0)
    ax.set_ylim(meta.bounds.min[1], meta.bounds.max[1] if meta.bounds.size()[1] else meta.bounds.min[1] + 1.0)
    ax.set_aspect("equal")
    ax.set_title(f"Level {level}: {positions.shape[0]:,} points")

    image_path = Path(image_path)
    image_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(image_path, dpi=100)
    return image_path


__all__ = ["plot_level"]
