"""TerrainScene: one normalized mesh, one camera pose, the latest frame.

The scene is the single owner of the state that picking reads. Rendering and
picking are serialized by a lock, so a pick never observes a half-built frame
and a camera change never races a pick.
"""

import dataclasses
import logging
import math
import threading
from dataclasses import dataclass
from typing import Iterable, Optional

import numpy as np
from PIL import Image

from .camera import Camera, FrustumPolicy, camera_pose_from_geo, project_mesh
from .constants import (
    FILL_COLOR, FOV_Y, SUPERSAMPLE, WINDOW_HEIGHT, WINDOW_WIDTH,
)
from .errors import NormalizationError
from .mesh import build_mesh
from .models import CameraPose, GeoSample, Mesh, NoPrimitiveAtPixel, PickResult
from .normalize import normalize_mesh
from .picking import PickOutcome, PickResolver
from .raster import Frame, broad_pass, render_image

logger = logging.getLogger(__name__)


@dataclass
class RenderSettings:
    width: int = WINDOW_WIDTH
    height: int = WINDOW_HEIGHT
    supersample: int = SUPERSAMPLE
    frustum_policy: FrustumPolicy = FrustumPolicy.SYMMETRIC
    fill_color: str = FILL_COLOR

    @property
    def aspect(self) -> float:
        return self.width / self.height

    @property
    def render_width(self) -> int:
        return self.width * self.supersample

    @property
    def render_height(self) -> int:
        return self.height * self.supersample


def overhead_pose(mesh: Mesh, settings: RenderSettings, fov_y: float = FOV_Y,
                  margin: float = 1.1) -> CameraPose:
    """Camera above the lattice centre looking straight down, north up.

    The height is chosen so the whole lattice fits in the view.
    """
    if not mesh.is_normalized:
        raise NormalizationError("Only a normalized mesh can be framed")

    lo = mesh.positions.min(axis=0)
    hi = mesh.positions.max(axis=0)
    centre = (lo + hi) / 2.0
    half_tan = math.tan(math.radians(fov_y) / 2.0)

    # Looking down with yaw 90: north (X) runs up the screen, east (Z) right
    distance = max((hi[0] - lo[0]) / 2.0 / half_tan,
                   (hi[2] - lo[2]) / 2.0 / (half_tan * settings.aspect)) * margin
    position = (float(centre[0]), float(hi[1] + distance), float(centre[2]))
    far = max(10.0, (hi[1] - lo[1] + distance) * 2.0)
    return CameraPose(position=position, yaw=90.0, pitch=-90.0, fov_y=fov_y,
                      aspect=settings.aspect, far=far)


class TerrainScene:
    """Render and pick against a single mesh and camera."""

    def __init__(self, mesh: Mesh, pose: Optional[CameraPose] = None,
                 settings: Optional[RenderSettings] = None):
        if not mesh.is_normalized:
            raise NormalizationError("TerrainScene needs a normalized mesh")
        self.mesh = mesh
        self.settings = settings or RenderSettings()
        self._pose = pose or overhead_pose(mesh, self.settings)
        self._lock = threading.RLock()
        self._frame: Optional[Frame] = None
        self._resolver: Optional[PickResolver] = None
        self.render()

    @classmethod
    def from_samples(cls, samples: Iterable[GeoSample], width: int, height: int,
                     pose: Optional[CameraPose] = None,
                     settings: Optional[RenderSettings] = None) -> "TerrainScene":
        mesh = normalize_mesh(build_mesh(samples, width, height))
        return cls(mesh, pose, settings)

    @property
    def pose(self) -> CameraPose:
        return self._pose

    @property
    def frame(self) -> Frame:
        return self._frame

    def camera_at(self, latitude: float, longitude: float, height: float = 0.0,
                  elevation: Optional[float] = None, **pose_kwargs) -> CameraPose:
        """Pose for a geodetic camera position, with this scene's aspect ratio."""
        pose_kwargs.setdefault("aspect", self.settings.aspect)
        return camera_pose_from_geo(self.mesh.normalization, latitude, longitude,
                                    elevation=elevation, height=height, **pose_kwargs)

    def render(self) -> Frame:
        """Project the mesh with the current pose and run the broad pass."""
        with self._lock:
            camera = Camera(self._pose)
            projected = project_mesh(self.mesh, camera,
                                     self.settings.render_width,
                                     self.settings.render_height,
                                     self.settings.frustum_policy)
            self._frame = broad_pass(projected)
            self._resolver = PickResolver(self._frame)
            return self._frame

    def set_camera(self, pose: CameraPose) -> Frame:
        with self._lock:
            self._pose = pose
            logger.info(f"Camera moved to {pose.position} "
                        f"(yaw={pose.yaw}, pitch={pose.pitch})")
            return self.render()

    def pick(self, x: int, y: int) -> PickOutcome:
        """Pick in display pixels (before supersampling)."""
        if not (0 <= x < self.settings.width and 0 <= y < self.settings.height):
            return NoPrimitiveAtPixel((x, y), "pixel outside the image")

        scale = self.settings.supersample
        with self._lock:
            outcome = self._resolver.pick(x * scale, y * scale)

        if isinstance(outcome, PickResult):
            return dataclasses.replace(outcome, pixel=(x, y))
        return NoPrimitiveAtPixel((x, y), outcome.reason)

    def image(self) -> Image.Image:
        with self._lock:
            frame = self._frame
        return render_image(frame, color=self.settings.fill_color,
                            supersample=self.settings.supersample)

    def coverage(self) -> np.ndarray:
        """Covered-pixel mask of the latest frame (render resolution)."""
        with self._lock:
            return self._frame.buffer.coverage().copy()
