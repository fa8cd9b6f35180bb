"""Pytest configuration and shared fixtures."""

import itertools

import numpy as np
import pytest

from pcdlod.points import PointCloud


@pytest.fixture
def cube_corners_cloud():
    """The 8 corners of the unit cube plus its center."""
    corners = [list(c) for c in itertools.product((0.0, 1.0), repeat=3)]
    positions = np.array(corners + [[0.5, 0.5, 0.5]], dtype=np.float64)
    return PointCloud.from_arrays(positions)


@pytest.fixture
def random_cloud():
    """A reproducible colored cloud with a few thousand points."""
    rng = np.random.default_rng(42)
    positions = rng.uniform(-5.0, 20.0, size=(3000, 3))
    colors = rng.integers(0, 256, size=(3000, 3), dtype=np.uint8)
    return PointCloud.from_arrays(positions, colors)


@pytest.fixture
def output_dir(tmp_path):
    """Provide a temporary directory for LOD outputs."""
    return tmp_path / "lod"
