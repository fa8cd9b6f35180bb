"""
The ``meta.json`` index written next to the cell rasters.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, Optional, Tuple

from .bounds import BoundingBox, GlobalShift
from .errors import MetaWriteError
from .octree import OctreeAddress

META_FILENAME = "meta.json"
FORMAT_VERSION = 1


@dataclass
class LodMeta:
    bounds: BoundingBox
    global_shift: GlobalShift = field(default_factory=GlobalShift)
    density_limit: Optional[int] = None
    cells: Dict[OctreeAddress, BoundingBox] = field(default_factory=dict)

    @property
    def max_level(self) -> int:
        return max((address.level for address in self.cells), default=0)

    def add_cell(self, address: OctreeAddress, bbox: BoundingBox) -> None:
        if address in self.cells:
            raise ValueError(f"Cell {address.level}/{address.key} was already recorded.")
        self.cells[address] = bbox

    def levels(self) -> Dict[int, Dict[str, BoundingBox]]:
        grouped: Dict[int, Dict[str, BoundingBox]] = {}
        for address in sorted(self.cells):
            grouped.setdefault(address.level, {})[address.key] = self.cells[address]
        return grouped

    def iter_level(self, level: int) -> Iterator[Tuple[OctreeAddress, BoundingBox]]:
        for address in sorted(self.cells):
            if address.level == level:
                yield address, self.cells[address]

    def to_dict(self) -> Dict[str, object]:
        return {
            "version": FORMAT_VERSION,
            "max_level": self.max_level,
            "density_limit": self.density_limit,
            "bounds": self.bounds.to_dict(),
            "global_shift": self.global_shift.to_dict(),
            "cells": {
                str(level): {key: bbox.to_dict() for key, bbox in cells.items()}
                for level, cells in self.levels().items()
            },
        }

    @classmethod
    def from_dict(cls, payload: Dict) -> "LodMeta":
        version = payload.get("version", FORMAT_VERSION)
        if version != FORMAT_VERSION:
            raise ValueError(f"Unsupported meta.json version {version}.")
        meta = cls(
            bounds=BoundingBox.from_dict(payload["bounds"]),
            global_shift=GlobalShift.from_dict(payload.get("global_shift", {})),
            density_limit=payload.get("density_limit"),
        )
        for level, cells in payload.get("cells", {}).items():
            for key, bbox in cells.items():
                meta.add_cell(OctreeAddress.from_key(int(level), key), BoundingBox.from_dict(bbox))
        return meta


def write_meta(meta: LodMeta, out_dir: Path) -> Path:
    """Serialize ``meta`` to ``<out_dir>/meta.json``. Failures are fatal for a run."""
    path = Path(out_dir) / META_FILENAME
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(meta.to_dict(), indent=2) + "\n", encoding="utf-8")
    except OSError as exc:
        raise MetaWriteError(f"Failed to write {path}: {exc}") from exc
    return path


def read_meta(out_dir: Path) -> LodMeta:
    path = Path(out_dir) / META_FILENAME
    return LodMeta.from_dict(json.loads(path.read_text(encoding="utf-8")))


__all__ = ["FORMAT_VERSION", "META_FILENAME", "LodMeta", "read_meta", "write_meta"]
