"""
Axis-aligned bounding boxes and the optional global coordinate shift.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .errors import EmptyInputError
from .points import PointCloud

Vec3 = Tuple[float, float, float]


def _vec3(values: Sequence[float]) -> Vec3:
    x, y, z = (float(v) for v in values)
    return x, y, z


@dataclass(frozen=True)
class BoundingBox:
    min: Vec3
    max: Vec3

    def __post_init__(self) -> None:
        lo = _vec3(self.min)
        hi = _vec3(self.max)
        if any(a > b for a, b in zip(lo, hi)):
            raise ValueError(f"Bounding box min {lo} exceeds max {hi}.")
        object.__setattr__(self, "min", lo)
        object.__setattr__(self, "max", hi)

    @classmethod
    def from_points(cls, positions: np.ndarray) -> "BoundingBox":
        positions = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
        if positions.shape[0] == 0:
            raise EmptyInputError("Cannot compute a bounding box without points.")
        return cls(min=_vec3(positions.min(axis=0)), max=_vec3(positions.max(axis=0)))

    def size(self) -> np.ndarray:
        return np.subtract(self.max, self.min)

    def safe_size(self) -> np.ndarray:
        """Extent per axis with zero-extent axes reported as 1.0."""
        size = self.size()
        return np.where(size > 0.0, size, 1.0)

    def max_size(self) -> float:
        return float(self.size().max())

    def center(self) -> Vec3:
        return _vec3((np.asarray(self.min) + np.asarray(self.max)) * 0.5)

    def is_degenerate(self) -> bool:
        return bool((self.size() == 0.0).any())

    def contains(self, positions: np.ndarray) -> np.ndarray:
        positions = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
        return ((positions >= self.min) & (positions <= self.max)).all(axis=1)

    def contains_box(self, other: "BoundingBox") -> bool:
        return all(a <= b for a, b in zip(self.min, other.min)) and all(
            a >= b for a, b in zip(self.max, other.max)
        )

    def shifted(self, offset: Sequence[float]) -> "BoundingBox":
        off = np.asarray(offset, dtype=np.float64)
        return BoundingBox(min=_vec3(np.asarray(self.min) - off), max=_vec3(np.asarray(self.max) - off))

    def edge(self, axis: int, index: int, divisions: int) -> float:
        """
        Coordinate of grid line ``index`` when the box is cut into ``divisions``
        slabs along ``axis``. Octree cells and split planes both come from here
        so that neighbouring cells share bit-identical faces.
        """
        if index >= divisions:
            return self.max[axis]
        return self.min[axis] + (self.max[axis] - self.min[axis]) * index / divisions

    def octant(self, level: int, x: int, y: int, z: int) -> "BoundingBox":
        """Box of the octree cell at ``(level, x, y, z)`` inside this root box."""
        divisions = 1 << level
        lo = []
        hi = []
        for axis, index in enumerate((x, y, z)):
            if not 0 <= index < divisions:
                raise ValueError(f"Index {index} is outside level {level}.")
            lo.append(self.edge(axis, index, divisions))
            hi.append(self.edge(axis, index + 1, divisions))
        return BoundingBox(min=_vec3(lo), max=_vec3(hi))

    def to_dict(self) -> Dict[str, List[float]]:
        return {"min": list(self.min), "max": list(self.max)}

    @classmethod
    def from_dict(cls, payload: Dict[str, Sequence[float]]) -> "BoundingBox":
        return cls(min=_vec3(payload["min"]), max=_vec3(payload["max"]))


@dataclass(frozen=True)
class GlobalShift:
    enabled: bool = False
    offset: Vec3 = field(default=(0.0, 0.0, 0.0))

    def to_dict(self) -> Dict[str, object]:
        return {"enabled": bool(self.enabled), "offset": [float(v) for v in self.offset]}

    @classmethod
    def from_dict(cls, payload: Dict[str, object]) -> "GlobalShift":
        return cls(enabled=bool(payload.get("enabled", False)), offset=_vec3(payload.get("offset", (0, 0, 0))))  # type: ignore[arg-type]


def compute_bounds(cloud: PointCloud) -> BoundingBox:
    """Single pass min/max over the arena."""
    if len(cloud) == 0:
        raise EmptyInputError("Point cloud contains no points.")
    return BoundingBox.from_points(cloud.positions)


def resolve_global_shift(
    cloud: PointCloud,
    bounds: BoundingBox,
    enabled: bool,
    origin: Optional[Sequence[float]] = None,
) -> Tuple[GlobalShift, BoundingBox, PointCloud]:
    """
    Optionally move the cloud towards the origin.

    The offset is ``origin`` when given, otherwise the minimum corner of
    ``bounds``. Returns the shift, the shifted box and a shifted copy of the
    cloud; ``cloud`` itself is never modified. The ``GlobalShift`` lets
    consumers add the offset back.
    """
    if not enabled:
        return GlobalShift(), bounds, cloud

    offset = _vec3(origin) if origin is not None else bounds.min
    return GlobalShift(enabled=True, offset=offset), bounds.shifted(offset), cloud.shifted(offset)


__all__ = ["BoundingBox", "GlobalShift", "compute_bounds", "resolve_global_shift"]
