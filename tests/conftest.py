"""Pytest configuration and fixtures for terrainpick tests."""
import sys
from pathlib import Path

# Add project root to Python path for imports
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

import pytest

from terrainpick.mesh import build_mesh
from terrainpick.models import GeoSample
from terrainpick.normalize import normalize_mesh
from terrainpick.scene import RenderSettings, TerrainScene

SOUTH = 43.45135
WEST = -80.49600
STEP = 0.0001


def make_lattice(cols, rows, elevation=lambda row, col: 100.0,
                 south=SOUTH, west=WEST, step=STEP):
    """Row-major samples, row 0 south, column 0 west."""
    return [GeoSample(south + row * step, west + col * step, elevation(row, col))
            for row in range(rows) for col in range(cols)]


@pytest.fixture
def flat_samples():
    """3x3 flat lattice at 100 m."""
    return make_lattice(3, 3)


@pytest.fixture
def hilly_samples():
    """5x4 lattice rising to the north-east."""
    return make_lattice(5, 4, elevation=lambda row, col: 100.0 + 2.0 * row + 1.5 * col)


@pytest.fixture
def flat_mesh(flat_samples):
    return build_mesh(flat_samples, 3, 3)


@pytest.fixture
def normalized_mesh(flat_mesh):
    return normalize_mesh(flat_mesh)


@pytest.fixture
def small_settings():
    return RenderSettings(width=64, height=48)


@pytest.fixture
def top_down_scene(normalized_mesh, small_settings):
    """3x3 flat lattice seen from straight above, north up."""
    return TerrainScene(normalized_mesh, settings=small_settings)
