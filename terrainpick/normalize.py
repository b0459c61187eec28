"""Geodetic -> local planar frame (metres) -> unit-scale model coordinates.

Raw geodesic metres and camera offsets differ by orders of magnitude, so
every coordinate is divided by the largest absolute component before any
matrix work. Camera positions given in world terms must go through the same
:class:`Normalization` as the mesh vertices.
"""

import logging
from dataclasses import asdict, dataclass

import numpy as np
from pyproj import Geod

from .errors import NormalizationError
from .models import Mesh

logger = logging.getLogger(__name__)

_GEOD = Geod(ellps="WGS84")


def geodesic_offsets(ref_lat, ref_lng, lats, lngs):
    """Signed WGS84 distances (north, east) in metres from the reference.

    North is measured along the reference meridian, east along the reference
    parallel.
    """
    lats = np.atleast_1d(np.asarray(lats, dtype=np.float64))
    lngs = np.atleast_1d(np.asarray(lngs, dtype=np.float64))
    ref_lats = np.full_like(lats, ref_lat)
    ref_lngs = np.full_like(lngs, ref_lng)

    _, _, north = _GEOD.inv(ref_lngs, ref_lats, ref_lngs, lats)
    _, _, east = _GEOD.inv(ref_lngs, ref_lats, lngs, ref_lats)

    north = np.sign(lats - ref_lat) * np.asarray(north, dtype=np.float64)
    east = np.sign(lngs - ref_lng) * np.asarray(east, dtype=np.float64)
    return north, east


@dataclass(frozen=True)
class Normalization:
    """Constants that map geodetic coordinates into the model cube."""
    ref_latitude: float
    ref_longitude: float
    min_elevation: float
    max_extent: float

    def to_local(self, lat, lng, elevation) -> np.ndarray:
        """Local frame in metres: X north, Y up (above the lowest sample), Z east."""
        scalar = np.ndim(lat) == 0
        x, z = geodesic_offsets(self.ref_latitude, self.ref_longitude, lat, lng)
        y = np.atleast_1d(np.asarray(elevation, dtype=np.float64)) - self.min_elevation
        local = np.column_stack([x, y, z])
        return local[0] if scalar else local

    def normalize(self, points) -> np.ndarray:
        return np.asarray(points, dtype=np.float64) / self.max_extent

    def denormalize(self, points) -> np.ndarray:
        return np.asarray(points, dtype=np.float64) * self.max_extent

    def to_model(self, lat, lng, elevation) -> np.ndarray:
        return self.normalize(self.to_local(lat, lng, elevation))

    def as_dict(self) -> dict:
        return asdict(self)


def face_normals(positions: np.ndarray, faces: np.ndarray) -> np.ndarray:
    """Unit normals (v2 - v1) x (v3 - v1) per face."""
    v1 = positions[faces[:, 0]]
    v2 = positions[faces[:, 1]]
    v3 = positions[faces[:, 2]]
    normals = np.cross(v2 - v1, v3 - v1)
    lengths = np.linalg.norm(normals, axis=1, keepdims=True)
    return np.divide(normals, lengths, out=np.zeros_like(normals),
                     where=lengths > 0)


def normalize_mesh(mesh: Mesh) -> Mesh:
    """Return a copy of *mesh* with normalized positions and normals.

    The south-west sample (vertex 0) is the reference corner. Normalizing a
    mesh twice is an error: rebuild it from its samples instead.
    """
    if mesh.is_normalized:
        raise NormalizationError(
            "Mesh is already normalized; rebuild it from its samples")

    geo = mesh.geo_array()
    ref = mesh.samples[0]
    min_elevation = float(geo[:, 2].min())

    local = Normalization(ref.latitude, ref.longitude, min_elevation, 1.0).to_local(
        geo[:, 0], geo[:, 1], geo[:, 2])
    max_extent = float(np.abs(local).max())
    if not np.isfinite(max_extent) or max_extent <= 0.0:
        raise NormalizationError(f"Cannot normalize a mesh with extent {max_extent}")

    normalization = Normalization(ref.latitude, ref.longitude,
                                  min_elevation, max_extent)
    positions = normalization.normalize(local)

    faces = np.array(mesh.faces)
    normals = face_normals(positions, faces)
    # A lattice delivered north-to-south (or east-to-west) is mirrored
    if normals[:, 1].mean() < 0:
        logger.info("Lattice is mirrored; flipping triangle winding")
        faces = faces[:, [0, 2, 1]]
        normals = -normals

    logger.info(f"Normalized {mesh.num_vertices} vertices: "
                f"ref=({ref.latitude:.7f}, {ref.longitude:.7f}), "
                f"min elevation={min_elevation:.2f}m, "
                f"max extent={max_extent:.3f}m")

    return Mesh(width=mesh.width, height=mesh.height,
                samples=list(mesh.samples), faces=faces,
                positions=positions, normals=normals,
                normalization=normalization)
