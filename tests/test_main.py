"""Tests for the command line entry point."""

import json

from pcdlod.main import main, parse_args
from pcdlod.meta import read_meta


def _write_cloud(path, rows):
    path.write_text("\n".join(" ".join(str(v) for v in row) for row in rows) + "\n")
    return path


def test_parse_args_defaults(tmp_path):
    args = parse_args(["--input", "in.txt", "--output", str(tmp_path)])
    assert args.jobs == 1
    assert args.global_shift is None
    assert args.density_limit is None


def test_successful_run(tmp_path, capsys):
    cloud = _write_cloud(tmp_path / "in.txt", [(x, y, 0, 255, 0, 0) for x in range(5) for y in range(5)])
    out = tmp_path / "out"
    code = main(["--input", str(cloud), "--output", str(out), "--density-limit", "4", "--max-level", "3", "--global-shift"])
    assert code == 0
    assert "success" in capsys.readouterr().out
    meta = read_meta(out)
    assert meta.global_shift.enabled
    assert meta.density_limit == 4


def test_config_file_with_cli_override(tmp_path):
    cloud = _write_cloud(tmp_path / "in.xyz", [(x, x, x) for x in range(20)])
    config = tmp_path / "cfg.json"
    config.write_text(json.dumps({"density_limit": 100, "max_level": 2}))
    out = tmp_path / "out"
    code = main(["--input", str(cloud), "--output", str(out), "--config", str(config), "--density-limit", "5", "--quiet"])
    assert code == 0
    assert read_meta(out).density_limit == 5


def test_cell_failure_sets_exit_status(tmp_path, capsys):
    cloud = _write_cloud(tmp_path / "in.txt", [(1, 1, 1)] * 50 + [(0, 0, 0)])
    out = tmp_path / "out"
    code = main(
        ["--input", str(cloud), "--output", str(out), "--density-limit", "10", "--max-level", "1", "--max-raster-side", "4", "--quiet"]
    )
    assert code == 1
    assert "RasterOverflowError" in capsys.readouterr().err
    assert (out / "meta.json").exists()


def test_empty_input_exit_status(tmp_path, capsys):
    cloud = tmp_path / "empty.txt"
    cloud.write_text("X Y Z\n")
    code = main(["--input", str(cloud), "--output", str(tmp_path / "out"), "--quiet"])
    assert code == 1
    assert "no points" in capsys.readouterr().err
    assert not (tmp_path / "out").exists()


def test_missing_input_exit_status(tmp_path):
    assert main(["--input", str(tmp_path / "nope.las"), "--output", str(tmp_path / "out"), "--quiet"]) == 1


def test_invalid_config_exit_status(tmp_path, capsys):
    cloud = _write_cloud(tmp_path / "in.txt", [(0, 0, 0)])
    code = main(["--input", str(cloud), "--output", str(tmp_path / "out"), "--density-limit", "0"])
    assert code == 1
    assert "Invalid configuration" in capsys.readouterr().err


def test_preview_option(tmp_path):
    cloud = _write_cloud(tmp_path / "in.txt", [(x, y, 1, 10, 200, 30) for x in range(6) for y in range(6)])
    out = tmp_path / "out"
    code = main(["--input", str(cloud), "--output", str(out), "--density-limit", "8", "--preview-level", "1", "--quiet"])
    assert code == 0
    assert (out / "preview-1.png").stat().st_size > 0


def test_output_path_is_a_file_exit_status(tmp_path, capsys):
    cloud = _write_cloud(tmp_path / "in.txt", [(0, 0, 0), (1, 1, 1)])
    out = tmp_path / "out"
    out.write_text("occupied")
    code = main(["--input", str(cloud), "--output", str(out), "--quiet"])
    assert code == 1
    assert "output directory" in capsys.readouterr().err
    assert out.read_text() == "occupied"


def test_malformed_shift_origin_in_config(tmp_path, capsys):
    cloud = _write_cloud(tmp_path / "in.txt", [(0, 0, 0)])
    config = tmp_path / "cfg.json"
    config.write_text(json.dumps({"shift_origin": 5}))
    code = main(["--input", str(cloud), "--output", str(tmp_path / "out"), "--config", str(config)])
    assert code == 1
    assert "Invalid configuration" in capsys.readouterr().err
