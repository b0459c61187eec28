"""CPU triangle rasterizer with a primitive-identity buffer.

One fill routine serves two modes:

* the broad pass draws every triangle that survived the frustum test into a
  full-screen :class:`RasterBuffer` and records, per covered pixel, every
  triangle that touched it (not only the depth winner);
* the narrow pass re-draws a handful of candidate triangles into a 1x1 scratch
  buffer at the queried pixel and reports the winner with its barycentric
  weights.

Pixels are sampled at integer screen coordinates. Edges are inclusive, so a
pixel on a shared edge is a candidate of both triangles; the depth test keeps
the first triangle drawn on ties.
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np
from PIL import Image, ImageColor

from .camera import ProjectedMesh
from .constants import BACKGROUND_COLOR, FILL_COLOR
from .models import GeoSample, PickResult

logger = logging.getLogger(__name__)

NO_PRIMITIVE = -1
_EDGE_EPSILON = 1e-9


@dataclass(eq=False)
class RasterBuffer:
    """Depth and primitive-id planes for a window of the screen.

    The window starts at screen pixel (*x0*, *y0*); a full-screen buffer has
    both at zero.
    """
    width: int
    height: int
    depth: np.ndarray
    primitive_id: np.ndarray
    weights: Optional[np.ndarray] = None
    x0: int = 0
    y0: int = 0

    @classmethod
    def cleared(cls, width: int, height: int, x0: int = 0, y0: int = 0,
                track_weights: bool = False) -> "RasterBuffer":
        weights = np.zeros((height, width, 3), dtype=np.float64) if track_weights else None
        return cls(width=width, height=height,
                   depth=np.full((height, width), np.inf, dtype=np.float64),
                   primitive_id=np.full((height, width), NO_PRIMITIVE, dtype=np.int64),
                   weights=weights, x0=x0, y0=y0)

    def clear(self) -> None:
        self.depth.fill(np.inf)
        self.primitive_id.fill(NO_PRIMITIVE)
        if self.weights is not None:
            self.weights.fill(0.0)

    def contains(self, x: int, y: int) -> bool:
        return (self.x0 <= x < self.x0 + self.width and
                self.y0 <= y < self.y0 + self.height)

    def primitive_at(self, x: int, y: int) -> Optional[int]:
        if not self.contains(x, y):
            return None
        pid = int(self.primitive_id[y - self.y0, x - self.x0])
        return None if pid == NO_PRIMITIVE else pid

    def depth_at(self, x: int, y: int) -> float:
        return float(self.depth[y - self.y0, x - self.x0])

    def coverage(self) -> np.ndarray:
        """Boolean mask of pixels owned by some triangle."""
        return self.primitive_id != NO_PRIMITIVE


class CandidateIndex:
    """Pixel -> triangle ids that covered it during the broad pass.

    Stored as two parallel arrays stable-sorted by flat pixel index, so the
    ids at a pixel keep the order the triangles were drawn in.
    """

    def __init__(self, width: int, height: int,
                 pixels: np.ndarray, ids: np.ndarray):
        self.width = width
        self.height = height
        order = np.argsort(pixels, kind="stable")
        self._pixels = np.asarray(pixels, dtype=np.int64)[order]
        self._ids = np.asarray(ids, dtype=np.int64)[order]

    @classmethod
    def from_chunks(cls, width: int, height: int,
                    chunks: Sequence[Tuple[int, np.ndarray]]) -> "CandidateIndex":
        if not chunks:
            return cls(width, height, np.empty(0, np.int64), np.empty(0, np.int64))
        pixels = np.concatenate([pix for _, pix in chunks])
        ids = np.concatenate([np.full(len(pix), tid, dtype=np.int64)
                              for tid, pix in chunks])
        return cls(width, height, pixels, ids)

    def __len__(self) -> int:
        return len(self._ids)

    def at(self, x: int, y: int) -> List[int]:
        if not (0 <= x < self.width and 0 <= y < self.height):
            return []
        key = y * self.width + x
        lo = np.searchsorted(self._pixels, key, side="left")
        hi = np.searchsorted(self._pixels, key, side="right")
        return self._ids[lo:hi].tolist()


def _edge(ax, ay, bx, by, px, py):
    return (bx - ax) * (py - ay) - (by - ay) * (px - ax)


def _fill_triangle(projected: ProjectedMesh, buffer: RasterBuffer,
                   triangle_id: int) -> Optional[np.ndarray]:
    """Depth-tested fill of one triangle.

    Returns the flat screen indices of every pixel inside the triangle (won or
    not), or None when the triangle misses the buffer or is degenerate.
    """
    a, b, c = projected.faces[triangle_id]
    (xa, ya), (xb, yb), (xc, yc) = projected.screen[[a, b, c]]

    area = _edge(xa, ya, xb, yb, xc, yc)
    if abs(area) < 1e-12:
        return None

    x_min = max(int(math.ceil(min(xa, xb, xc) - _EDGE_EPSILON)), buffer.x0)
    x_max = min(int(math.floor(max(xa, xb, xc) + _EDGE_EPSILON)), buffer.x0 + buffer.width - 1)
    y_min = max(int(math.ceil(min(ya, yb, yc) - _EDGE_EPSILON)), buffer.y0)
    y_max = min(int(math.floor(max(ya, yb, yc) + _EDGE_EPSILON)), buffer.y0 + buffer.height - 1)
    if x_min > x_max or y_min > y_max:
        return None

    px, py = np.meshgrid(np.arange(x_min, x_max + 1, dtype=np.float64),
                         np.arange(y_min, y_max + 1, dtype=np.float64))
    w0 = _edge(xb, yb, xc, yc, px, py) / area
    w1 = _edge(xc, yc, xa, ya, px, py) / area
    w2 = _edge(xa, ya, xb, yb, px, py) / area
    inside = (w0 >= -_EDGE_EPSILON) & (w1 >= -_EDGE_EPSILON) & (w2 >= -_EDGE_EPSILON)
    if not inside.any():
        return None

    za, zb, zc = projected.ndc[[a, b, c], 2]
    z = w0 * za + w1 * zb + w2 * zc

    rows = py.astype(np.int64) - buffer.y0
    cols = px.astype(np.int64) - buffer.x0
    rows_in, cols_in, z_in = rows[inside], cols[inside], z[inside]

    win = z_in < buffer.depth[rows_in, cols_in]
    r_win, c_win = rows_in[win], cols_in[win]
    buffer.depth[r_win, c_win] = z_in[win]
    buffer.primitive_id[r_win, c_win] = triangle_id
    if buffer.weights is not None:
        stacked = np.stack([w0[inside], w1[inside], w2[inside]], axis=1)
        buffer.weights[r_win, c_win] = stacked[win]

    flat = py[inside].astype(np.int64) * projected.width + px[inside].astype(np.int64)
    return flat


def rasterize(projected: ProjectedMesh, buffer: RasterBuffer,
              triangle_ids: Optional[Iterable[int]] = None,
              record_candidates: bool = False) -> List[Tuple[int, np.ndarray]]:
    """Fill *triangle_ids* (default: every visible triangle) in order.

    With *record_candidates* the covered pixels of each triangle are returned
    as ``(triangle_id, flat_pixel_indices)`` chunks.
    """
    if triangle_ids is None:
        triangle_ids = projected.visible_ids()

    chunks: List[Tuple[int, np.ndarray]] = []
    for triangle_id in triangle_ids:
        triangle_id = int(triangle_id)
        if not projected.visible[triangle_id]:
            continue
        covered = _fill_triangle(projected, buffer, triangle_id)
        if record_candidates and covered is not None:
            chunks.append((triangle_id, covered))
    return chunks


@dataclass(eq=False)
class Frame:
    """Result of a broad pass: the picture and what lies under each pixel."""
    projected: ProjectedMesh
    buffer: RasterBuffer
    candidates: CandidateIndex
    render_seconds: float = 0.0

    @property
    def width(self) -> int:
        return self.buffer.width

    @property
    def height(self) -> int:
        return self.buffer.height

    @property
    def mesh(self):
        return self.projected.mesh


def broad_pass(projected: ProjectedMesh) -> Frame:
    """Render every visible triangle and collect per-pixel candidates."""
    buffer = RasterBuffer.cleared(projected.width, projected.height)
    start = time.perf_counter()
    chunks = rasterize(projected, buffer, record_candidates=True)
    candidates = CandidateIndex.from_chunks(projected.width, projected.height, chunks)
    elapsed = time.perf_counter() - start

    logger.info(f"Broad pass: {int(projected.visible.sum())} triangles drawn, "
                f"{int(buffer.coverage().sum())} pixels covered "
                f"in {elapsed:.3f}s")
    return Frame(projected=projected, buffer=buffer,
                 candidates=candidates, render_seconds=elapsed)


def narrow_pass(projected: ProjectedMesh, x: int, y: int,
                triangle_ids: Sequence[int]) -> Optional[PickResult]:
    """Re-draw *triangle_ids* at pixel (*x*, *y*) only and resolve the winner.

    Writes nothing but its own scratch buffer. Returns None when none of the
    triangles covers the pixel.
    """
    scratch = RasterBuffer.cleared(1, 1, x0=x, y0=y, track_weights=True)
    rasterize(projected, scratch, triangle_ids)

    triangle_id = scratch.primitive_at(x, y)
    if triangle_id is None:
        return None

    face = projected.faces[triangle_id]
    screen_weights = scratch.weights[0, 0]
    # Screen-space weights -> perspective-correct weights for attributes
    corrected = screen_weights / projected.clip[face, 3]
    corrected = corrected / corrected.sum()
    weights = tuple(float(v) for v in corrected)

    geo = GeoSample.interpolate(projected.mesh.provenance(triangle_id), weights)
    return PickResult(triangle_id=triangle_id, barycentric_weights=weights,
                      interpolated_geo=geo, pixel=(x, y))


def render_image(frame: Frame, color: str = FILL_COLOR,
                 background=BACKGROUND_COLOR, supersample: int = 1) -> Image.Image:
    """RGBA image of the broad pass: fill colour where a triangle won."""
    rgba = np.empty((frame.height, frame.width, 4), dtype=np.uint8)
    rgba[:] = background
    rgba[frame.buffer.coverage()] = ImageColor.getcolor(color, "RGBA")

    image = Image.fromarray(rgba)
    if supersample > 1:
        image = image.resize((frame.width // supersample, frame.height // supersample),
                             Image.Resampling.BILINEAR)
    return image
