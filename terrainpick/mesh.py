"""Grid triangulation of a geo-sample lattice.

Samples arrive in row-major order (row 0 south, column 0 west). Both
triangles of a cell are emitted as soon as the cell's last corner arrives,
which happens one row and one column behind the sample stream. Sampling a
rate-limited elevation source and building the mesh can therefore interleave
without holding the lattice back until the end.
"""

import logging
from collections import Counter
from typing import Dict, Iterable, List, Tuple

import numpy as np

from .errors import DuplicateSample, InsufficientGrid
from .models import GeoSample, Mesh

logger = logging.getLogger(__name__)

# (triangle id, vertex a, vertex b, vertex c)
TriangleIndex = Tuple[int, int, int, int]


def _check_dimensions(width: int, height: int) -> None:
    if width < 2 or height < 2:
        raise InsufficientGrid(
            f"Lattice must be at least 2x2 samples, got {width}x{height}")


def cell_triangles(row: int, col: int, width: int):
    """Vertex indices of the two triangles covering cell (*row*, *col*).

    The TR-BL diagonal is used for every cell. Wound so the normal
    (v2 - v1) x (v3 - v1) points up for a south-to-north, west-to-east lattice.
    """
    tl = row * width + col
    tr = tl + 1
    bl = tl + width
    br = bl + 1
    return (tl, tr, bl), (tr, br, bl)


def grid_faces(width: int, height: int) -> np.ndarray:
    """Vectorized face list for a complete lattice.

    Same triangles in the same order as :class:`MeshBuilder` emits them:
    cells row-major, two triangles per cell.
    """
    _check_dimensions(width, height)

    n_cx, n_cy = width - 1, height - 1
    iy_g, ix_g = np.meshgrid(
        np.arange(n_cy), np.arange(n_cx), indexing='ij')
    iy_f = iy_g.ravel()
    ix_f = ix_g.ravel()

    tl = iy_f * width + ix_f                # (row,   col)
    tr = tl + 1                             # (row,   col+1)
    bl = (iy_f + 1) * width + ix_f          # (row+1, col)
    br = bl + 1                             # (row+1, col+1)

    tri1 = np.column_stack([tl, tr, bl])
    tri2 = np.column_stack([tr, br, bl])

    # Interleave so each cell's pair gets consecutive ids
    return np.stack([tri1, tri2], axis=1).reshape(-1, 3).astype(np.int64)


def edge_use_counts(faces) -> Dict[Tuple[int, int], int]:
    """Number of triangles using each undirected edge."""
    counts: Counter = Counter()
    for a, b, c in np.asarray(faces).tolist():
        for u, v in ((a, b), (b, c), (c, a)):
            counts[(min(u, v), max(u, v))] += 1
    return dict(counts)


class MeshBuilder:
    """Accepts geo-samples one at a time and triangulates as they arrive."""

    def __init__(self, width: int, height: int):
        _check_dimensions(width, height)
        self.width = width
        self.height = height
        self._samples: List[GeoSample] = []
        self._seen: Dict[Tuple[float, float], int] = {}
        self._faces: List[Tuple[int, int, int]] = []

    @property
    def expected(self) -> int:
        return self.width * self.height

    @property
    def received(self) -> int:
        return len(self._samples)

    @property
    def is_complete(self) -> bool:
        return self.received == self.expected

    @property
    def triangles(self) -> List[TriangleIndex]:
        return [(i, *face) for i, face in enumerate(self._faces)]

    def add_sample(self, sample: GeoSample) -> List[TriangleIndex]:
        """Append the next sample and return the triangles it completed."""
        if self.is_complete:
            raise ValueError(
                f"Lattice of {self.width}x{self.height} is already complete")

        key = (sample.latitude, sample.longitude)
        if key in self._seen:
            raise DuplicateSample(
                f"Sample at lat={sample.latitude}, lng={sample.longitude} "
                f"already received as vertex {self._seen[key]}")

        index = len(self._samples)
        self._samples.append(sample)
        self._seen[key] = index

        row, col = divmod(index, self.width)
        emitted: List[TriangleIndex] = []
        if row >= 1 and col >= 1:
            for face in cell_triangles(row - 1, col - 1, self.width):
                triangle_id = len(self._faces)
                self._faces.append(face)
                emitted.append((triangle_id, *face))
        if emitted:
            logger.debug(f"Sample {index} completed cell ({row - 1}, {col - 1})")
        return emitted

    def extend(self, samples: Iterable[GeoSample]) -> int:
        """Add many samples; returns the number of triangles emitted."""
        emitted = 0
        for sample in samples:
            emitted += len(self.add_sample(sample))
        return emitted

    def provenance(self, triangle_id: int) -> Tuple[GeoSample, GeoSample, GeoSample]:
        a, b, c = self._faces[triangle_id]
        return self._samples[a], self._samples[b], self._samples[c]

    def build(self) -> Mesh:
        if not self.is_complete:
            raise InsufficientGrid(
                f"Received {self.received} of {self.expected} samples for a "
                f"{self.width}x{self.height} lattice")

        mesh = Mesh(width=self.width, height=self.height,
                    samples=list(self._samples),
                    faces=np.array(self._faces, dtype=np.int64))
        logger.info(f"Terrain grid mesh: {mesh.num_vertices} verts, "
                    f"{mesh.num_triangles} faces")
        return mesh


def build_mesh(samples: Iterable[GeoSample], width: int, height: int) -> Mesh:
    """Triangulate a fully materialized row-major lattice."""
    builder = MeshBuilder(width, height)
    builder.extend(samples)
    return builder.build()
