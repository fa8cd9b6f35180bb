#!/usr/bin/env python3
"""
Command line entry point: read a point cloud and write its octree LOD.
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Dict, Iterable, Optional

from .errors import LodError
from .lod_generator import LodConfig, LodReport, generate_lod_from_file
from .preview import plot_level


def parse_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Convert a point cloud into octree LOD rasters (PNG) with a meta.json index."
    )
    parser.add_argument(
        "--input",
        required=True,
        type=Path,
        help="Point cloud file (.txt, .xyz, .csv, .pts, .asc, .las, .laz; others need --external-tool).",
    )
    parser.add_argument("--output", required=True, type=Path, help="Directory to write the LOD into.")
    parser.add_argument("--config", type=Path, help="Optional JSON config file.")
    parser.add_argument(
        "--density-limit",
        type=int,
        help="Maximum points per cell before it is subdivided (default: 16384).",
    )
    parser.add_argument("--max-level", type=int, help="Deepest octree level (default: 8).")
    parser.add_argument(
        "--global-shift",
        action="store_true",
        default=None,
        help="Shift coordinates towards the origin before building; the shift is recorded in meta.json.",
    )
    parser.add_argument(
        "--shift-origin",
        type=float,
        nargs=3,
        metavar=("X", "Y", "Z"),
        help="Explicit shift reference point (implies --global-shift).",
    )
    parser.add_argument(
        "--max-raster-side",
        type=int,
        help="Largest raster width/height; denser cells are reported as failed (default: 4096).",
    )
    parser.add_argument(
        "--jobs",
        type=int,
        default=1,
        help="Number of worker processes used to encode cells (default: 1).",
    )
    parser.add_argument(
        "--external-tool",
        help="CloudCompare executable used to convert formats that cannot be read directly.",
    )
    parser.add_argument(
        "--preview-level",
        type=int,
        help="Also render a top-down preview of this level to <output>/preview-<level>.png.",
    )
    parser.add_argument("--quiet", action="store_true", help="Only print errors.")
    return parser.parse_args(argv)


def _config_from_args(args: argparse.Namespace) -> LodConfig:
    cfg = LodConfig.from_json(args.config) if args.config else LodConfig()
    overrides: Dict[str, object] = {}
    if args.density_limit is not None:
        overrides["density_limit"] = args.density_limit
    if args.max_level is not None:
        overrides["max_level"] = args.max_level
    if args.global_shift:
        overrides["apply_global_shift"] = True
    if args.shift_origin is not None:
        overrides["apply_global_shift"] = True
        overrides["shift_origin"] = tuple(args.shift_origin)
    if args.max_raster_side is not None:
        overrides["max_raster_side"] = args.max_raster_side
    if overrides:
        cfg = LodConfig(**{**cfg.__dict__, **overrides})
    return cfg


def _print_report(report: LodReport) -> None:
    print(f"{len(report.failures)} cell(s) failed:", file=sys.stderr)
    for failure in report.failures:
        print(f"  {failure}", file=sys.stderr)


def main(argv: Optional[Iterable[str]] = None) -> int:
    args = parse_args(argv)

    try:
        cfg = _config_from_args(args)
    except (OSError, ValueError) as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 1

    try:
        report = generate_lod_from_file(
            input_path=args.input,
            output_dir=args.output,
            cfg=cfg,
            jobs=args.jobs,
            external_tool=args.external_tool,
            quiet=args.quiet,
        )
    except (LodError, FileNotFoundError) as exc:
        print(f"LOD generation failed: {exc}", file=sys.stderr)
        return 1

    if args.preview_level is not None:
        preview = plot_level(args.output, args.preview_level, args.output / f"preview-{args.preview_level}.png")
        if not args.quiet:
            print(f"Preview written to {preview}.")

    if not report.ok:
        _print_report(report)
        return 1

    if not args.quiet:
        print("success")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
