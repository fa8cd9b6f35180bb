"""
Exceptions raised while building a point cloud LOD.

Input level problems (no points, unknown formats) subclass ``ValueError`` and
abort a run before anything is written. Per-cell problems are collected into
the run report by the generator instead of propagating.
"""

from __future__ import annotations


class LodError(Exception):
    """Base class for every error raised by pcdlod."""


class EmptyInputError(LodError, ValueError):
    """The point source yielded no usable points."""


class UnsupportedFormatError(LodError, ValueError):
    """The input extension has no reader and no external converter was configured."""


class ExternalToolError(LodError, RuntimeError):
    """The external point cloud converter failed or produced no output."""


class RasterOverflowError(LodError, ValueError):
    """A cell holds more points than the largest supported raster can store."""


class CellWriteError(LodError, OSError):
    """Writing one of a cell's raster images failed."""


class MetaWriteError(LodError, OSError):
    """Writing ``meta.json`` failed."""


class OutputDirError(LodError, OSError):
    """The output directory could not be cleared or created."""


__all__ = [
    "CellWriteError",
    "EmptyInputError",
    "ExternalToolError",
    "LodError",
    "MetaWriteError",
    "OutputDirError",
    "RasterOverflowError",
    "UnsupportedFormatError",
]
