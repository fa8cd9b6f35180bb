"""Tests for the point sources."""

import subprocess

import laspy
import numpy as np
import pytest

from pcdlod.errors import EmptyInputError, ExternalToolError, UnsupportedFormatError
from pcdlod.points import (
    Point,
    PointCloud,
    convert_with_cloudcompare,
    filter_invalid_points,
    parse_point_line,
    read_point_cloud,
)


class TestParsePointLine:
    def test_xyz_only(self):
        assert parse_point_line("1.5 2 -3\n") == Point((1.5, 2.0, -3.0), None)

    def test_xyz_rgb(self):
        assert parse_point_line("1 2 3 255 128 0") == Point((1.0, 2.0, 3.0), (255, 128, 0))

    def test_xyz_rgb_intensity_comma_separated(self):
        assert parse_point_line("1,2,3,10,20,30,0.5") == Point((1.0, 2.0, 3.0), (10, 20, 30))

    def test_intensity_is_not_a_color(self):
        assert parse_point_line("1 2 3 0.75") == Point((1.0, 2.0, 3.0), None)

    @pytest.mark.parametrize("line", ["", "X Y Z R G B", "// comment", "1 2"])
    def test_unparsable_lines(self, line):
        assert parse_point_line(line) is None


def test_point_cloud_from_points_keeps_optional_colors():
    cloud = PointCloud.from_points([Point((0.0, 1.0, 2.0)), Point((3.0, 4.0, 5.0), (9, 8, 7))])
    assert len(cloud) == 2
    assert cloud.has_color.tolist() == [False, True]
    assert cloud.point(0) == Point((0.0, 1.0, 2.0), None)
    assert cloud.point(1) == Point((3.0, 4.0, 5.0), (9, 8, 7))


def test_point_cloud_rejects_mismatched_colors():
    with pytest.raises(ValueError):
        PointCloud(positions=np.zeros((2, 3)), colors=np.zeros((1, 3)), has_color=np.zeros(2, bool))


def test_read_text_cloud(tmp_path):
    path = tmp_path / "cloud.txt"
    path.write_text("//X Y Z R G B\n0 0 0 10 20 30\n1 2 3\n\n4 5 6 1 2 3 0.9\n")
    cloud = read_point_cloud(path, quiet=True)
    assert cloud.positions.tolist() == [[0, 0, 0], [1, 2, 3], [4, 5, 6]]
    assert cloud.has_color.tolist() == [True, False, True]
    assert cloud.colors[2].tolist() == [1, 2, 3]


def test_read_csv_cloud(tmp_path):
    path = tmp_path / "cloud.csv"
    path.write_text("x,y,z\n1.0,2.0,3.0\n4.0,5.0,6.0\n")
    cloud = read_point_cloud(path, quiet=True)
    assert cloud.positions.tolist() == [[1, 2, 3], [4, 5, 6]]


def test_invalid_records_are_dropped(tmp_path):
    path = tmp_path / "cloud.xyz"
    path.write_text("1 2 3\nnan 0 0\n4 inf 6\n7 8 9\n")
    cloud = read_point_cloud(path, quiet=True)
    assert cloud.positions.tolist() == [[1, 2, 3], [7, 8, 9]]


def test_all_invalid_records_raise():
    cloud = PointCloud.from_arrays([[np.nan, 0.0, 0.0]])
    with pytest.raises(EmptyInputError):
        filter_invalid_points(cloud, quiet=True)


def test_empty_text_file_raises(tmp_path):
    path = tmp_path / "empty.txt"
    path.write_text("header only\n")
    with pytest.raises(EmptyInputError):
        read_point_cloud(path, quiet=True)


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_point_cloud(tmp_path / "missing.las", quiet=True)


def test_unsupported_format_without_tool(tmp_path):
    path = tmp_path / "scan.e57"
    path.write_bytes(b"\x00")
    with pytest.raises(UnsupportedFormatError):
        read_point_cloud(path, quiet=True)


def test_read_las_with_colors(tmp_path):
    las = laspy.create(point_format=2, file_version="1.2")
    las.header.scales = np.array([0.001, 0.001, 0.001])
    las.header.offsets = np.array([0.0, 0.0, 0.0])
    las.x = np.array([1.0, 2.5, 4.25])
    las.y = np.array([10.0, 11.0, 12.0])
    las.z = np.array([0.5, 0.25, 0.125])
    las.red = np.array([65535, 0, 32768], dtype=np.uint16)
    las.green = np.array([0, 65535, 256], dtype=np.uint16)
    las.blue = np.array([512, 0, 0], dtype=np.uint16)
    path = tmp_path / "cloud.las"
    las.write(path)

    cloud = read_point_cloud(path, quiet=True)
    assert np.allclose(cloud.positions[:, 0], [1.0, 2.5, 4.25], atol=1e-3)
    assert np.allclose(cloud.positions[:, 2], [0.5, 0.25, 0.125], atol=1e-3)
    assert cloud.has_color.all()
    assert cloud.colors.tolist() == [[255, 0, 2], [0, 255, 0], [128, 1, 0]]


def test_read_las_without_colors(tmp_path):
    las = laspy.create(point_format=0, file_version="1.2")
    las.header.scales = np.array([0.01, 0.01, 0.01])
    las.header.offsets = np.array([0.0, 0.0, 0.0])
    las.x = np.array([1.0, 2.0])
    las.y = np.array([3.0, 4.0])
    las.z = np.array([5.0, 6.0])
    path = tmp_path / "plain.las"
    las.write(path)

    cloud = read_point_cloud(path, quiet=True)
    assert len(cloud) == 2
    assert not cloud.has_color.any()


def test_external_tool_conversion(tmp_path, monkeypatch):
    calls = []

    def fake_run(cmd, capture_output, text, check):
        calls.append(cmd)
        out = cmd[cmd.index("FILE") + 1]
        # CloudCompare appends _0 when it merges clouds
        with open(out + "_0", "w") as fh:
            fh.write("1 2 3 4 5 6\n")
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    monkeypatch.setattr(subprocess, "run", fake_run)
    path = tmp_path / "scan.e57"
    path.write_bytes(b"\x00")

    cloud = read_point_cloud(path, external_tool="cc", quiet=True)
    assert cloud.positions.tolist() == [[1, 2, 3]]
    assert calls[0][0] == "cc"
    assert "-MERGE_CLOUDS" in calls[0]
    assert "-DROP_GLOBAL_SHIFT" not in calls[0]


def test_external_tool_failure(tmp_path, monkeypatch):
    def fake_run(cmd, capture_output, text, check):
        return subprocess.CompletedProcess(cmd, 2, stdout="", stderr="boom")

    monkeypatch.setattr(subprocess, "run", fake_run)
    with pytest.raises(ExternalToolError):
        convert_with_cloudcompare(tmp_path / "in.e57", tmp_path / "out.txt", executable="cc")


def test_external_tool_missing_executable(tmp_path):
    with pytest.raises(ExternalToolError):
        convert_with_cloudcompare(
            tmp_path / "in.e57", tmp_path / "out.txt", executable=str(tmp_path / "no-such-binary")
        )
