"""
Sparse octree over the point arena.

Cells keep only index arrays into the shared positions, never point copies.
The tree is built breadth-first from an explicit queue so deep trees do not
grow the call stack.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Iterator, List, Optional

import numpy as np

from .bounds import BoundingBox


@dataclass(frozen=True, order=True)
class OctreeAddress:
    level: int
    x: int
    y: int
    z: int

    def __post_init__(self) -> None:
        if self.level < 0:
            raise ValueError("Octree level must be non-negative.")
        side = 1 << self.level
        for index in (self.x, self.y, self.z):
            if not 0 <= index < side:
                raise ValueError(f"Address {self} is not reachable at level {self.level}.")

    @property
    def key(self) -> str:
        return f"{self.x}-{self.y}-{self.z}"

    @classmethod
    def from_key(cls, level: int, key: str) -> "OctreeAddress":
        x, y, z = (int(v) for v in key.split("-"))
        return cls(int(level), x, y, z)

    def child(self, octant: int) -> "OctreeAddress":
        """Octant bits: 1 = upper x half, 2 = upper y half, 4 = upper z half."""
        return OctreeAddress(
            self.level + 1,
            self.x * 2 + (octant & 1),
            self.y * 2 + ((octant >> 1) & 1),
            self.z * 2 + ((octant >> 2) & 1),
        )

    def parent(self) -> Optional["OctreeAddress"]:
        if self.level == 0:
            return None
        return OctreeAddress(self.level - 1, self.x >> 1, self.y >> 1, self.z >> 1)


ROOT_ADDRESS = OctreeAddress(0, 0, 0, 0)


@dataclass
class OctreeCell:
    address: OctreeAddress
    bounding_box: BoundingBox
    point_indices: np.ndarray
    children: List["OctreeCell"] = field(default_factory=list)

    @property
    def is_leaf(self) -> bool:
        return not self.children

    @property
    def point_count(self) -> int:
        return int(self.point_indices.size)

    def lod_indices(self, limit: int) -> np.ndarray:
        """
        Indices drawn into this cell's raster. Leaves draw everything; internal
        cells draw an even stride through their subtree capped at ``limit``.
        """
        if self.is_leaf or self.point_count <= limit:
            return self.point_indices
        step = -(-self.point_count // limit)
        return self.point_indices[::step]


def split_planes(root_box: BoundingBox, address: OctreeAddress) -> np.ndarray:
    """Midpoints of ``address`` on each axis, taken from the child grid."""
    divisions = 1 << (address.level + 1)
    return np.array(
        [
            root_box.edge(axis, index * 2 + 1, divisions)
            for axis, index in enumerate((address.x, address.y, address.z))
        ],
        dtype=np.float64,
    )


def partition(
    positions: np.ndarray, indices: np.ndarray, planes: np.ndarray
) -> List[np.ndarray]:
    """
    Split ``indices`` into 8 octant lists. Coordinates equal to a plane go to
    the lower half. Relative order is preserved inside every octant.
    """
    upper = positions[indices] > planes
    octants = (
        upper[:, 0].astype(np.uint8)
        | (upper[:, 1].astype(np.uint8) << 1)
        | (upper[:, 2].astype(np.uint8) << 2)
    )
    return [indices[octants == octant] for octant in range(8)]


def build_octree(
    positions: np.ndarray,
    root_box: BoundingBox,
    density_limit: int,
    max_level: int,
) -> OctreeCell:
    """
    Subdivide the cloud until every cell holds at most ``density_limit`` points
    or sits at ``max_level``. Cells at ``max_level`` keep all of their points
    even above the limit. Empty octants are never created.
    """
    if density_limit < 1:
        raise ValueError("density_limit must be at least 1.")
    if max_level < 0:
        raise ValueError("max_level must be non-negative.")

    positions = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
    root = OctreeCell(
        address=ROOT_ADDRESS,
        bounding_box=root_box,
        point_indices=np.arange(positions.shape[0], dtype=np.intp),
    )

    queue: Deque[OctreeCell] = deque([root])
    while queue:
        cell = queue.popleft()
        if cell.point_count <= density_limit or cell.address.level >= max_level:
            continue

        planes = split_planes(root_box, cell.address)
        for octant, child_indices in enumerate(partition(positions, cell.point_indices, planes)):
            if child_indices.size == 0:
                continue
            address = cell.address.child(octant)
            child = OctreeCell(
                address=address,
                bounding_box=root_box.octant(address.level, address.x, address.y, address.z),
                point_indices=child_indices,
            )
            cell.children.append(child)
            queue.append(child)

    return root


def iter_cells(root: OctreeCell) -> Iterator[OctreeCell]:
    """Breadth-first walk; within a level cells come in octant order."""
    queue: Deque[OctreeCell] = deque([root])
    while queue:
        cell = queue.popleft()
        yield cell
        queue.extend(cell.children)


def iter_leaves(root: OctreeCell) -> Iterator[OctreeCell]:
    return (cell for cell in iter_cells(root) if cell.is_leaf)


def tree_depth(root: OctreeCell) -> int:
    return max(cell.address.level for cell in iter_cells(root))


__all__ = [
    "ROOT_ADDRESS",
    "OctreeAddress",
    "OctreeCell",
    "build_octree",
    "iter_cells",
    "iter_leaves",
    "partition",
    "split_planes",
    "tree_depth",
]
