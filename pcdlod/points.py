"""
Point sources.

Readers turn a point cloud file into a single ``PointCloud`` arena: one
``(N, 3)`` float64 position array plus index-aligned 8-bit colors. Every later
stage refers to points by their row in that arena and never copies them.

Text clouds (``.txt``, ``.xyz``, ``.csv``, ``.pts``, ``.asc``) and LAS/LAZ files
are read natively. Anything else can be routed through CloudCompare, which
exports an ASCII cloud the text reader understands.
"""

from __future__ import annotations

import subprocess
import sys
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import laspy
import numpy as np
from tqdm import tqdm

from .errors import EmptyInputError, ExternalToolError, UnsupportedFormatError

TEXT_SUFFIXES = (".txt", ".xyz", ".csv", ".pts", ".asc")
LAS_SUFFIXES = (".las", ".laz")

MACOS_CLOUDCOMPARE = "/Applications/CloudCompare.app/Contents/MacOS/CloudCompare"


@dataclass(frozen=True)
class Point:
    position: Tuple[float, float, float]
    color: Optional[Tuple[int, int, int]] = None


@dataclass
class PointCloud:
    """Arena holding every point of a run."""

    positions: np.ndarray
    colors: np.ndarray
    has_color: np.ndarray

    def __post_init__(self) -> None:
        self.positions = np.asarray(self.positions, dtype=np.float64).reshape(-1, 3)
        count = self.positions.shape[0]
        self.colors = np.asarray(self.colors, dtype=np.uint8).reshape(-1, 3)
        self.has_color = np.asarray(self.has_color, dtype=bool).reshape(-1)
        if self.colors.shape[0] != count or self.has_color.shape[0] != count:
            raise ValueError("Color arrays do not match the number of positions.")

    def __len__(self) -> int:
        return int(self.positions.shape[0])

    @classmethod
    def from_arrays(
        cls,
        positions: Union[np.ndarray, Sequence[Sequence[float]]],
        colors: Optional[Union[np.ndarray, Sequence[Sequence[int]]]] = None,
    ) -> "PointCloud":
        positions = np.array(positions, dtype=np.float64).reshape(-1, 3)
        count = positions.shape[0]
        if colors is None:
            return cls(
                positions=positions,
                colors=np.zeros((count, 3), dtype=np.uint8),
                has_color=np.zeros(count, dtype=bool),
            )
        return cls(
            positions=positions,
            colors=np.array(colors, dtype=np.uint8).reshape(-1, 3),
            has_color=np.ones(count, dtype=bool),
        )

    @classmethod
    def from_points(cls, points: Iterable[Point]) -> "PointCloud":
        positions: List[Tuple[float, float, float]] = []
        colors: List[Tuple[int, int, int]] = []
        has_color: List[bool] = []
        for point in points:
            positions.append(tuple(float(v) for v in point.position))
            if point.color is None:
                colors.append((0, 0, 0))
                has_color.append(False)
            else:
                colors.append(tuple(int(c) for c in point.color))
                has_color.append(True)
        return cls(
            positions=np.asarray(positions, dtype=np.float64).reshape(-1, 3),
            colors=np.asarray(colors, dtype=np.uint8).reshape(-1, 3),
            has_color=np.asarray(has_color, dtype=bool),
        )

    def shifted(self, offset: Sequence[float]) -> "PointCloud":
        """New cloud with ``offset`` subtracted from every position."""
        return PointCloud(
            positions=self.positions - np.asarray(offset, dtype=np.float64).reshape(1, 3),
            colors=self.colors.copy(),
            has_color=self.has_color.copy(),
        )

    def point(self, index: int) -> Point:
        position = tuple(float(v) for v in self.positions[index])
        color = tuple(int(c) for c in self.colors[index]) if self.has_color[index] else None
        return Point(position=position, color=color)  # type: ignore[arg-type]


def parse_point_line(line: str) -> Optional[Point]:
    """
    Parse one ``x y z [r g b [intensity]]`` record.

    Fields may be separated by whitespace or commas. Four or five fields carry an
    intensity rather than a color, which is ignored. Returns ``None`` for headers,
    comments and anything else that does not start with three numbers.
    """
    fields = line.replace(",", " ").split()
    if len(fields) < 3:
        return None
    try:
        x, y, z = (float(v) for v in fields[:3])
    except ValueError:
        return None

    color = None
    if len(fields) >= 6:
        try:
            rgb = [float(v) for v in fields[3:6]]
        except ValueError:
            return None
        color = tuple(int(min(max(round(c), 0), 255)) for c in rgb)
    return Point(position=(x, y, z), color=color)  # type: ignore[arg-type]


def read_text_points(path: Path, quiet: bool = False) -> PointCloud:
    positions: List[Tuple[float, float, float]] = []
    colors: List[Tuple[int, int, int]] = []
    has_color: List[bool] = []
    skipped = 0

    with path.open("r", encoding="utf-8", errors="replace") as fh:
        for line in tqdm(fh, desc="Reading points", unit=" lines", disable=quiet):
            point = parse_point_line(line)
            if point is None:
                if line.strip():
                    skipped += 1
                continue
            positions.append(point.position)
            if point.color is None:
                colors.append((0, 0, 0))
                has_color.append(False)
            else:
                colors.append(point.color)
                has_color.append(True)

    if skipped and not quiet:
        print(f"Skipped {skipped} unparsable line(s) in {path.name}.")

    cloud = PointCloud(
        positions=np.asarray(positions, dtype=np.float64).reshape(-1, 3),
        colors=np.asarray(colors, dtype=np.uint8).reshape(-1, 3),
        has_color=np.asarray(has_color, dtype=bool),
    )
    return filter_invalid_points(cloud, quiet=quiet)


def read_las_points(path: Path, quiet: bool = False) -> PointCloud:
    with laspy.open(path) as reader:
        las = reader.read()

    count = len(las)
    positions = np.empty((count, 3), dtype=np.float64)
    positions[:, 0] = las.x
    positions[:, 1] = las.y
    positions[:, 2] = las.z

    dimensions = set(las.point_format.dimension_names)
    if {"red", "green", "blue"} <= dimensions and count:
        rgb = np.column_stack(
            [np.asarray(las.red), np.asarray(las.green), np.asarray(las.blue)]
        ).astype(np.uint16)
        # LAS stores 16-bit color; some writers still put 8-bit values in it.
        if int(rgb.max()) > 255:
            rgb = rgb >> 8
        cloud = PointCloud(positions=positions, colors=rgb.astype(np.uint8), has_color=np.ones(count, bool))
    else:
        cloud = PointCloud.from_arrays(positions)

    if not quiet:
        print(f"Read {count:,} points from {path.name}.")
    return filter_invalid_points(cloud, quiet=quiet)


def filter_invalid_points(cloud: PointCloud, quiet: bool = False) -> PointCloud:
    """Removes NaN/Inf records, which would poison the bounding box."""
    if len(cloud) == 0:
        return cloud

    mask = np.isfinite(cloud.positions).all(axis=1)
    removed = int(mask.size - np.count_nonzero(mask))
    if removed == 0:
        return cloud
    if removed == mask.size:
        raise EmptyInputError("All point records were invalid (NaN/Inf).")

    if not quiet:
        print(f"Discarding {removed} invalid (NaN/Inf) point(s).")
    return PointCloud(
        positions=cloud.positions[mask],
        colors=cloud.colors[mask],
        has_color=cloud.has_color[mask],
    )


def default_external_tool() -> str:
    if sys.platform == "darwin":
        return MACOS_CLOUDCOMPARE
    return "CloudCompare"


def convert_with_cloudcompare(
    input_path: Path,
    out_txt_path: Path,
    executable: Optional[str] = None,
    drop_global_shift: bool = False,
) -> Path:
    """
    Export ``input_path`` as a space separated ASCII cloud using CloudCompare's
    command line mode. Returns the path of the file actually written, which
    carries a ``_0`` suffix when CloudCompare merged several clouds.
    """
    cmd = [
        executable or default_external_tool(),
        "-SILENT",
        "-AUTO_SAVE",
        "OFF",
        "-O",
        # Large georeferenced coordinates lose precision inside CloudCompare
        # unless a shift is applied while loading.
        "-GLOBAL_SHIFT",
        "AUTO",
        str(input_path),
        "-C_EXPORT_FMT",
        "ASC",
        "-SEP",
        "SPACE",
    ]
    if drop_global_shift:
        cmd.append("-DROP_GLOBAL_SHIFT")
    cmd += ["-MERGE_CLOUDS", "-SAVE_CLOUDS", "FILE", str(out_txt_path)]

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, check=False)
    except OSError as exc:
        raise ExternalToolError(f"Could not run {cmd[0]}: {exc}") from exc

    if result.returncode != 0:
        raise ExternalToolError(
            f"{cmd[0]} exited with status {result.returncode}: {result.stderr.strip()}"
        )

    for candidate in (out_txt_path, out_txt_path.with_name(out_txt_path.name + "_0")):
        if candidate.exists():
            return candidate
    raise ExternalToolError(f"{cmd[0]} did not produce {out_txt_path}.")


def read_point_cloud(
    path: Path,
    external_tool: Optional[str] = None,
    quiet: bool = False,
) -> PointCloud:
    """Read any supported point cloud file into a ``PointCloud``."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input file {path} does not exist.")

    suffix = path.suffix.lower()
    if suffix in TEXT_SUFFIXES:
        cloud = read_text_points(path, quiet=quiet)
    elif suffix in LAS_SUFFIXES:
        cloud = read_las_points(path, quiet=quiet)
    elif external_tool:
        if not quiet:
            print(f"Converting {path.name} to text with {external_tool}...")
        with tempfile.TemporaryDirectory(prefix="pcdlod-") as tmp:
            seed = convert_with_cloudcompare(path, Path(tmp) / "seed.txt", executable=external_tool)
            cloud = read_text_points(seed, quiet=quiet)
    else:
        raise UnsupportedFormatError(
            f"Unsupported point cloud format {suffix!r}; configure an external tool to convert it."
        )

    if len(cloud) == 0:
        raise EmptyInputError(f"{path} contains no points.")
    return cloud


__all__ = [
    "LAS_SUFFIXES",
    "TEXT_SUFFIXES",
    "Point",
    "PointCloud",
    "convert_with_cloudcompare",
    "default_external_tool",
    "filter_invalid_points",
    "parse_point_line",
    "read_las_points",
    "read_point_cloud",
    "read_text_points",
]
