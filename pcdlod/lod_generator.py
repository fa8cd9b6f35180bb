"""
Point cloud LOD generator.

Loads a point cloud, builds a sparse octree under a density limit and writes
every occupied cell as a position/color PNG pair plus a ``meta.json`` index of
cell bounding boxes. Cells are encoded in parallel once the octree is complete;
a cell that fails is reported without stopping its siblings.
"""

from __future__ import annotations

import json
import multiprocessing as mp
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
from tqdm import tqdm

from .bounds import BoundingBox, compute_bounds, resolve_global_shift
from .encoder import DEFAULT_MAX_RASTER_SIDE, encode_and_write
from .errors import CellWriteError, OutputDirError, RasterOverflowError
from .meta import META_FILENAME, LodMeta, write_meta
from .octree import OctreeAddress, build_octree, iter_cells
from .points import PointCloud, read_point_cloud


@dataclass
class LodConfig:
    density_limit: int = 1 << 14
    max_level: int = 8
    apply_global_shift: bool = False
    shift_origin: Optional[Tuple[float, float, float]] = None
    max_raster_side: int = DEFAULT_MAX_RASTER_SIDE

    def __post_init__(self) -> None:
        if self.density_limit < 1:
            raise ValueError("density_limit must be at least 1.")
        if self.max_level < 0:
            raise ValueError("max_level must be non-negative.")
        if self.max_raster_side < 1:
            raise ValueError("max_raster_side must be at least 1.")
        if self.shift_origin is not None:
            if isinstance(self.shift_origin, (str, bytes)) or not isinstance(self.shift_origin, Sequence):
                raise ValueError("shift_origin must be a list of three coordinates.")
            if len(self.shift_origin) != 3:
                raise ValueError("shift_origin needs exactly three coordinates.")
            try:
                self.shift_origin = tuple(float(v) for v in self.shift_origin)  # type: ignore[assignment]
            except (TypeError, ValueError) as exc:
                raise ValueError(f"shift_origin must hold numbers: {exc}") from exc

    @classmethod
    def from_json(cls, path: Path) -> "LodConfig":
        payload = json.loads(Path(path).read_text())
        origin = payload.get("shift_origin")
        return cls(
            density_limit=int(payload.get("density_limit", 1 << 14)),
            max_level=int(payload.get("max_level", 8)),
            apply_global_shift=bool(payload.get("apply_global_shift", False)),
            shift_origin=tuple(origin) if isinstance(origin, list) else origin,
            max_raster_side=int(payload.get("max_raster_side", DEFAULT_MAX_RASTER_SIDE)),
        )


@dataclass
class CellFailure:
    address: OctreeAddress
    kind: str
    message: str

    def __str__(self) -> str:
        return f"{self.address.level}/{self.address.key}: {self.kind}: {self.message}"


@dataclass
class LodReport:
    meta: LodMeta
    meta_path: Path
    cells_written: int = 0
    failures: List[CellFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


CellTask = Tuple[OctreeAddress, BoundingBox, np.ndarray]

GLOBAL_STATE: dict = {}


def _set_global_state(cloud: PointCloud, cfg: LodConfig, output_dir: Path) -> None:
    """
    Workers are forked after this is set, so they share the arena read-only
    instead of receiving a pickled copy per task.
    """
    GLOBAL_STATE.clear()
    GLOBAL_STATE.update(
        {
            "cloud": cloud,
            "cfg": cfg,
            "output_dir": output_dir,
        }
    )


def _process_cell(task: CellTask) -> Union[Tuple[OctreeAddress, BoundingBox], CellFailure]:
    if not GLOBAL_STATE:
        raise RuntimeError("Global state not initialized.")

    address, bbox, indices = task
    cloud: PointCloud = GLOBAL_STATE["cloud"]
    cfg: LodConfig = GLOBAL_STATE["cfg"]

    try:
        encode_and_write(
            GLOBAL_STATE["output_dir"],
            address,
            bbox,
            cloud.positions[indices],
            cloud.colors[indices],
            cloud.has_color[indices],
            max_raster_side=cfg.max_raster_side,
        )
    except (RasterOverflowError, CellWriteError) as exc:
        return CellFailure(address=address, kind=type(exc).__name__, message=str(exc))
    except Exception as exc:
        # Unexpected errors are reported per cell too.
        return CellFailure(address=address, kind=type(exc).__name__, message=str(exc) or repr(exc))
    return address, bbox


def _run_cell_tasks(tasks: Sequence[CellTask], jobs: int, desc: str, quiet: bool = False):
    results = []
    if jobs and jobs > 1:
        ctx = mp.get_context("fork") if hasattr(mp, "get_context") else mp
        with ctx.Pool(processes=jobs) as pool:
            for result in tqdm(
                pool.imap_unordered(_process_cell, tasks), total=len(tasks), desc=desc, disable=quiet
            ):
                results.append(result)
    else:
        for task in tqdm(tasks, desc=desc, disable=quiet):
            results.append(_process_cell(task))
    return results


_LEVEL_DIR = re.compile(r"^\d+$")
_CELL_FILE = re.compile(r"^\d+-\d+-\d+(-color)?\.png$")


def _clear_previous_output(output_dir: Path) -> None:
    """Drop rasters and index of an earlier run so the index matches the files."""
    if not output_dir.is_dir():
        return
    (output_dir / META_FILENAME).unlink(missing_ok=True)
    for level_dir in output_dir.iterdir():
        if not (level_dir.is_dir() and _LEVEL_DIR.match(level_dir.name)):
            continue
        for path in level_dir.iterdir():
            if path.is_file() and _CELL_FILE.match(path.name):
                path.unlink()


def generate_lod(
    *,
    cloud: PointCloud,
    cfg: LodConfig,
    output_dir: Path,
    jobs: int = 1,
    quiet: bool = False,
) -> LodReport:
    """
    Build the octree for ``cloud`` and write its LOD rasters and index.

    ``cloud`` is not modified; a global shift is applied to a copy. Per-cell
    failures end up in the returned report; ``meta.json`` only lists the cells
    whose rasters were written.
    """
    output_dir = Path(output_dir)
    bounds = compute_bounds(cloud)
    shift, root_box, cloud = resolve_global_shift(
        cloud, bounds, cfg.apply_global_shift, origin=cfg.shift_origin
    )

    if not quiet:
        print(f"Total points: {len(cloud):,}")
        print(f"Bounds min {root_box.min} max {root_box.max}")
        if shift.enabled:
            print(f"Applied global shift {shift.offset}")
        print(f"Building octree (density limit {cfg.density_limit:,}, max level {cfg.max_level})...")

    root = build_octree(cloud.positions, root_box, cfg.density_limit, cfg.max_level)
    tasks: List[CellTask] = [
        (cell.address, cell.bounding_box, cell.lod_indices(cfg.density_limit))
        for cell in iter_cells(root)
        if cell.point_count > 0
    ]
    del root

    if not quiet:
        print(f"Octree built: {len(tasks)} cell(s).")

    try:
        _clear_previous_output(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise OutputDirError(f"Cannot prepare output directory {output_dir}: {exc}") from exc

    _set_global_state(cloud, cfg, output_dir)
    try:
        results = _run_cell_tasks(tasks, jobs, desc="Encoding cells", quiet=quiet)
    finally:
        GLOBAL_STATE.clear()

    meta = LodMeta(bounds=root_box, global_shift=shift, density_limit=cfg.density_limit)
    failures: List[CellFailure] = []
    for result in results:
        if isinstance(result, CellFailure):
            failures.append(result)
        else:
            meta.add_cell(*result)
    failures.sort(key=lambda failure: failure.address)

    meta_path = write_meta(meta, output_dir)
    report = LodReport(meta=meta, meta_path=meta_path, cells_written=len(meta.cells), failures=failures)

    if not quiet:
        print(f"Finished writing {report.cells_written} cell(s) up to level {meta.max_level} in {output_dir}.")
    return report


def generate_lod_from_file(
    *,
    input_path: Path,
    output_dir: Path,
    cfg: LodConfig,
    jobs: int = 1,
    external_tool: Optional[str] = None,
    quiet: bool = False,
) -> LodReport:
    cloud = read_point_cloud(Path(input_path), external_tool=external_tool, quiet=quiet)
    return generate_lod(cloud=cloud, cfg=cfg, output_dir=output_dir, jobs=jobs, quiet=quiet)


def generate_lod_from_config(
    *,
    config: Path,
    input_path: Path,
    output_dir: Path,
    jobs: int = 1,
    external_tool: Optional[str] = None,
    overrides: Optional[Dict[str, object]] = None,
    quiet: bool = False,
) -> LodReport:
    """Convenience wrapper that loads a config file before generating the LOD."""
    cfg = LodConfig.from_json(config)
    if overrides:
        cfg = LodConfig(**{**cfg.__dict__, **overrides})
    return generate_lod_from_file(
        input_path=input_path,
        output_dir=output_dir,
        cfg=cfg,
        jobs=jobs,
        external_tool=external_tool,
        quiet=quiet,
    )


__all__ = [
    "CellFailure",
    "LodConfig",
    "LodReport",
    "generate_lod",
    "generate_lod_from_config",
    "generate_lod_from_file",
]
