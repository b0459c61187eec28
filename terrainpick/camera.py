"""Pinhole camera model and vertex projection.

Model frame: X north, Y up, Z east (right-handed). The canonical forward
vector is +Z (east). Yaw turns the view counter-clockwise seen from above
(yaw 90 looks north); positive pitch tilts it up, pitch -90 looks straight
down. Matrices follow OpenGL conventions: the camera looks down its -Z axis
and NDC Z runs from -1 at the near plane to +1 at the far plane.
"""

import enum
import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from scipy.spatial.transform import Rotation

from .errors import NormalizationError
from .models import CameraPose, Mesh
from .normalize import Normalization

logger = logging.getLogger(__name__)

WORLD_UP = np.array([0.0, 1.0, 0.0])
FORWARD = np.array([0.0, 0.0, 1.0])


class FrustumPolicy(str, enum.Enum):
    """Which NDC bounds reject a vertex (and with it, its triangles)."""
    # X, Y and Z each against [-1, 1]
    SYMMETRIC = "symmetric"
    # X against [-aspect, aspect], Z against [-1, 1], Y unchecked
    REFERENCE = "reference"


# ── Matrices ────────────────────────────────────────────────────────────

def perspective(fov_y: float, aspect: float, near: float, far: float) -> np.ndarray:
    """Perspective projection; *fov_y* in degrees."""
    f = 1.0 / math.tan(math.radians(fov_y) / 2.0)
    return np.array([
        [f / aspect, 0.0, 0.0, 0.0],
        [0.0, f, 0.0, 0.0],
        [0.0, 0.0, (far + near) / (near - far), (2.0 * far * near) / (near - far)],
        [0.0, 0.0, -1.0, 0.0],
    ], dtype=np.float64)


def look_at(eye, target, up) -> np.ndarray:
    eye = np.asarray(eye, dtype=np.float64)
    forward = np.asarray(target, dtype=np.float64) - eye
    forward = forward / np.linalg.norm(forward)
    right = np.cross(forward, up)
    right = right / np.linalg.norm(right)
    true_up = np.cross(right, forward)

    view = np.identity(4, dtype=np.float64)
    view[0, :3] = right
    view[1, :3] = true_up
    view[2, :3] = -forward
    view[0, 3] = -np.dot(right, eye)
    view[1, 3] = -np.dot(true_up, eye)
    view[2, 3] = np.dot(forward, eye)
    return view


def camera_orientation(yaw: float, pitch: float) -> Rotation:
    """Yaw about world up, then pitch about the yawed right axis."""
    q_yaw = Rotation.from_rotvec(math.radians(yaw) * WORLD_UP)
    right = q_yaw.apply(np.cross(FORWARD, WORLD_UP))
    q_pitch = Rotation.from_rotvec(math.radians(pitch) * right)
    return q_pitch * q_yaw


def camera_vectors(yaw: float, pitch: float) -> Tuple[np.ndarray, np.ndarray]:
    """(forward, up) unit vectors for the given angles in degrees."""
    q = camera_orientation(yaw, pitch)
    return q.apply(FORWARD), q.apply(WORLD_UP)


class Camera:
    """View-projection matrix derived from a :class:`CameraPose`."""

    def __init__(self, pose: CameraPose):
        self.pose = pose
        self.forward, self.up = camera_vectors(pose.yaw, pose.pitch)
        self.view_matrix = look_at(self.eye, self.target, self.up)
        self.projection_matrix = perspective(pose.fov_y, pose.aspect,
                                             pose.near, pose.far)
        self.view_projection = self.projection_matrix @ self.view_matrix

    @property
    def eye(self) -> np.ndarray:
        return np.asarray(self.pose.position, dtype=np.float64)

    @property
    def target(self) -> np.ndarray:
        return self.eye + self.forward

    def project_point(self, point) -> np.ndarray:
        """NDC of a single model-space point."""
        clip = self.view_projection @ np.append(np.asarray(point, dtype=np.float64), 1.0)
        return clip[:3] / clip[3]


def camera_pose_from_geo(normalization: Normalization, latitude: float,
                         longitude: float, elevation: Optional[float] = None,
                         height: float = 0.0, **pose_kwargs) -> CameraPose:
    """Place a camera at a geodetic position.

    *elevation* is absolute (metres); when omitted the camera stands on the
    lowest sample's level. *height* is added on top. The position goes through
    the same geodesic and scale pipeline as the mesh vertices.
    """
    if elevation is None:
        elevation = normalization.min_elevation
    position = normalization.to_model(latitude, longitude, elevation + height)
    return CameraPose(position=tuple(float(v) for v in position), **pose_kwargs)


# ── Projection ──────────────────────────────────────────────────────────

def _round_half_away(values: np.ndarray) -> np.ndarray:
    return np.sign(values) * np.floor(np.abs(values) + 0.5)


def to_subpixel(ndc_x, ndc_y, width: int, height: int):
    """Continuous screen coordinates; pixel (i, j) is centred on (i, j)."""
    x = (np.asarray(ndc_x) + 1.0) * 0.5 * width
    y = (1.0 - (np.asarray(ndc_y) + 1.0) * 0.5) * height
    return x, y


def to_screen(ndc_x, ndc_y, width: int, height: int):
    """Integer pixel coordinates; row 0 is the top of the image."""
    x, y = to_subpixel(ndc_x, ndc_y, width, height)
    x = np.clip(_round_half_away(x), 0, width - 1).astype(np.int64)
    y = np.clip(_round_half_away(y), 0, height - 1).astype(np.int64)
    return x, y


def rejected_vertices(clip: np.ndarray, aspect: float,
                      policy: FrustumPolicy = FrustumPolicy.SYMMETRIC) -> np.ndarray:
    """Boolean mask of vertices outside the frustum (or behind the camera)."""
    w = clip[:, 3]
    behind = w <= 0.0
    safe_w = np.where(behind, 1.0, w)
    ndc = clip[:, :3] / safe_w[:, None]

    if FrustumPolicy(policy) is FrustumPolicy.REFERENCE:
        outside = (np.abs(ndc[:, 0]) > aspect) | (np.abs(ndc[:, 2]) > 1.0)
    else:
        outside = np.any(np.abs(ndc) > 1.0, axis=1)
    return behind | outside


@dataclass(eq=False)
class ProjectedMesh:
    """Per-vertex projection of a mesh for one camera and viewport."""
    mesh: Mesh
    width: int
    height: int
    clip: np.ndarray        # (N, 4) clip-space coordinates
    ndc: np.ndarray         # (N, 3) after perspective divide
    screen: np.ndarray      # (N, 2) sub-pixel x, y
    rejected: np.ndarray    # (N,) vertex outside the frustum
    visible: np.ndarray     # (T,) triangle survives the frustum test

    @property
    def faces(self) -> np.ndarray:
        return self.mesh.faces

    def visible_ids(self) -> np.ndarray:
        return np.flatnonzero(self.visible)

    def screen_pixels(self) -> np.ndarray:
        """Rounded, clamped pixel position of every vertex."""
        x, y = to_screen(self.ndc[:, 0], self.ndc[:, 1], self.width, self.height)
        return np.column_stack([x, y])


def project_mesh(mesh: Mesh, camera: Camera, width: int, height: int,
                 policy: FrustumPolicy = FrustumPolicy.SYMMETRIC) -> ProjectedMesh:
    """Transform every vertex and mark triangles that leave the frustum."""
    if not mesh.is_normalized:
        raise NormalizationError("Only a normalized mesh can be projected")

    homogeneous = np.column_stack([mesh.positions, np.ones(mesh.num_vertices)])
    clip = homogeneous @ camera.view_projection.T

    w = clip[:, 3]
    safe_w = np.where(np.abs(w) > 1e-12, w, 1e-12)
    ndc = clip[:, :3] / safe_w[:, None]

    rejected = rejected_vertices(clip, camera.pose.aspect, policy)
    visible = ~rejected[mesh.faces].any(axis=1)

    sx, sy = to_subpixel(ndc[:, 0], ndc[:, 1], width, height)
    logger.debug(f"Projected {mesh.num_vertices} vertices; "
                 f"{int(visible.sum())}/{mesh.num_triangles} triangles in frustum")

    return ProjectedMesh(mesh=mesh, width=width, height=height, clip=clip,
                         ndc=ndc, screen=np.column_stack([sx, sy]),
                         rejected=rejected, visible=visible)
