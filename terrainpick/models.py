"""Data classes and path management."""

import dataclasses
import pathlib
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from .constants import (
    DATA_DIR, OUTPUT_DIR, FOV_Y, NEAR_PLANE, FAR_PLANE,
    WINDOW_WIDTH, WINDOW_HEIGHT,
)

if TYPE_CHECKING:
    from .normalize import Normalization

Vec3 = Tuple[float, float, float]


class PathManager:
    """Manage paths relative to the project directory."""

    @staticmethod
    def get_output_path(filename: str) -> pathlib.Path:
        """Get the output file path."""
        OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
        return OUTPUT_DIR / filename

    @staticmethod
    def get_data_path(filename: str) -> pathlib.Path:
        """Get the data file path."""
        DATA_DIR.mkdir(parents=True, exist_ok=True)
        return DATA_DIR / filename


@dataclass(frozen=True)
class GeoSample:
    latitude: float
    longitude: float
    elevation: float

    @classmethod
    def interpolate(cls, samples: Sequence["GeoSample"],
                    weights: Sequence[float]) -> "GeoSample":
        """Weighted sum of samples (weights are expected to sum to 1)."""
        lat = sum(w * s.latitude for s, w in zip(samples, weights))
        lng = sum(w * s.longitude for s, w in zip(samples, weights))
        elev = sum(w * s.elevation for s, w in zip(samples, weights))
        return cls(float(lat), float(lng), float(elev))


@dataclass
class LatticeSpec:
    """A rectangular lattice of sample positions.

    Row 0 lies on the southern edge and column 0 on the western edge; rows
    advance north and columns advance east.
    """
    south: float
    west: float
    north: float
    east: float
    rows: int
    cols: int

    @property
    def lat_step(self) -> float:
        return (self.north - self.south) / (self.rows - 1) if self.rows > 1 else 0.0

    @property
    def lng_step(self) -> float:
        return (self.east - self.west) / (self.cols - 1) if self.cols > 1 else 0.0

    def position(self, row: int, col: int) -> Tuple[float, float]:
        """(lat, lng) of the lattice point at *row*, *col*."""
        return (self.south + row * self.lat_step,
                self.west + col * self.lng_step)

    def get_area_name(self) -> str:
        """Return a human-readable name based on the lattice bounds."""
        return (f"{self.south:.5f}, {self.west:.5f} to "
                f"{self.north:.5f}, {self.east:.5f} ({self.rows}x{self.cols})")


@dataclass(frozen=True)
class Vertex:
    index: int
    position: Optional[Vec3]
    geo: GeoSample


@dataclass(frozen=True)
class Triangle:
    id: int
    v1: Vertex
    v2: Vertex
    v3: Vertex
    normal: Optional[Vec3]

    @property
    def vertices(self) -> Tuple[Vertex, Vertex, Vertex]:
        return self.v1, self.v2, self.v3


@dataclass(eq=False)
class Mesh:
    """Triangulated lattice.

    ``faces`` holds vertex indices per triangle; row ``i`` is triangle id ``i``.
    ``positions`` and ``normals`` are filled in by normalization.
    """
    width: int
    height: int
    samples: List[GeoSample]
    faces: np.ndarray
    positions: Optional[np.ndarray] = None
    normals: Optional[np.ndarray] = None
    normalization: Optional["Normalization"] = None

    def __post_init__(self):
        self.faces = np.asarray(self.faces, dtype=np.int64).reshape(-1, 3)
        self.faces.setflags(write=False)
        for arr in (self.positions, self.normals):
            if arr is not None:
                arr.setflags(write=False)

    @property
    def num_vertices(self) -> int:
        return len(self.samples)

    @property
    def num_triangles(self) -> int:
        return len(self.faces)

    def __len__(self) -> int:
        return self.num_triangles

    @property
    def is_normalized(self) -> bool:
        return self.normalization is not None

    def geo_array(self) -> np.ndarray:
        """(N, 3) array of latitude, longitude, elevation per vertex."""
        return np.array([(s.latitude, s.longitude, s.elevation)
                         for s in self.samples], dtype=np.float64).reshape(-1, 3)

    def vertex(self, index: int) -> Vertex:
        position = None
        if self.positions is not None:
            position = tuple(float(v) for v in self.positions[index])
        return Vertex(index=int(index), position=position,
                      geo=self.samples[index])

    def triangle(self, triangle_id: int) -> Triangle:
        a, b, c = self.faces[triangle_id]
        normal = None
        if self.normals is not None:
            normal = tuple(float(v) for v in self.normals[triangle_id])
        return Triangle(id=int(triangle_id), v1=self.vertex(a),
                        v2=self.vertex(b), v3=self.vertex(c), normal=normal)

    def __iter__(self) -> Iterator[Triangle]:
        for i in range(self.num_triangles):
            yield self.triangle(i)

    def provenance(self, triangle_id: int) -> Tuple[GeoSample, GeoSample, GeoSample]:
        """The three source samples a triangle was built from."""
        a, b, c = self.faces[triangle_id]
        return self.samples[a], self.samples[b], self.samples[c]


@dataclass(frozen=True)
class CameraPose:
    """Camera position (normalized model units) and orientation (degrees)."""
    position: Vec3
    yaw: float = 0.0
    pitch: float = 0.0
    fov_y: float = FOV_Y
    aspect: float = WINDOW_WIDTH / WINDOW_HEIGHT
    near: float = NEAR_PLANE
    far: float = FAR_PLANE

    def replace(self, **changes) -> "CameraPose":
        return dataclasses.replace(self, **changes)


@dataclass(frozen=True)
class PickResult:
    triangle_id: int
    barycentric_weights: Vec3
    interpolated_geo: GeoSample
    pixel: Tuple[int, int]


@dataclass(frozen=True)
class NoPrimitiveAtPixel:
    """Expected outcome when nothing is drawn under the queried pixel."""
    pixel: Tuple[int, int]
    reason: str = "no primitive at pixel"
