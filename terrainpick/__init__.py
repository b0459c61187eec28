"""TerrainPick package: pixel-accurate geodetic picking on sampled terrain.

Samples an elevation lattice, triangulates and normalizes it, renders it
through a pinhole camera, and resolves screen pixels back to latitude,
longitude and elevation.
"""

from terrainpick.errors import (
    DuplicateSample, ElevationSourceError, InsufficientGrid,
    ModelNotFoundError, NormalizationError, TerrainPickError,
)
from terrainpick.models import (
    CameraPose, GeoSample, LatticeSpec, Mesh, NoPrimitiveAtPixel, PickResult,
)
from terrainpick.mesh import MeshBuilder, build_mesh
from terrainpick.normalize import Normalization, normalize_mesh
from terrainpick.camera import Camera, FrustumPolicy
from terrainpick.picking import PickResolver, format_pick_message
from terrainpick.scene import RenderSettings, TerrainScene
