"""Elevation sources and lattice sampling.

Provides:
1. A minimal ``elevation_at(lat, lng)`` source protocol with a callable
   adapter, a Google Maps Elevation API client, and a Copernicus DEM reader
2. Row-major lattice positions (row 0 south, column 0 west)
3. Sampling a lattice straight into an incremental :class:`MeshBuilder`
"""

import logging
import math
import pathlib
from typing import Callable, Dict, Iterator, Optional, Protocol, Tuple, Union

import rasterio
import requests
from tqdm import tqdm

from .constants import (
    DEM_CACHE_DIR, ELEVATION_REQUEST_TIMEOUT, GOOGLE_ELEVATION_URL,
    GOOGLE_MAPS_API_KEY,
)
from .errors import ElevationSourceError, InsufficientGrid, TerrainPickError
from .mesh import MeshBuilder
from .models import GeoSample, LatticeSpec, Mesh

logger = logging.getLogger(__name__)


class ElevationSource(Protocol):
    def elevation_at(self, latitude: float, longitude: float) -> GeoSample:
        ...


class FunctionElevationSource:
    """Adapt a plain ``fn(lat, lng)`` returning metres (or a GeoSample)."""

    def __init__(self, fn: Callable[[float, float], Union[float, GeoSample]]):
        self.fn = fn

    def elevation_at(self, latitude: float, longitude: float) -> GeoSample:
        value = self.fn(latitude, longitude)
        if isinstance(value, GeoSample):
            return value
        return GeoSample(latitude, longitude, float(value))


class GoogleElevationSource:
    """One request per point against the Google Maps Elevation API."""

    def __init__(self, api_key: Optional[str] = None,
                 session: Optional[requests.Session] = None,
                 timeout: float = ELEVATION_REQUEST_TIMEOUT):
        if api_key is None:
            api_key = GOOGLE_MAPS_API_KEY
        if not api_key:
            raise ElevationSourceError(
                "GOOGLE_MAPS_API_KEY is not set; add it to the environment or .env")
        self.api_key = api_key
        self.session = session or requests.Session()
        self.timeout = timeout

    def elevation_at(self, latitude: float, longitude: float) -> GeoSample:
        params = {"locations": f"{latitude},{longitude}", "key": self.api_key}
        response = self.session.get(GOOGLE_ELEVATION_URL, params=params,
                                    timeout=self.timeout)
        response.raise_for_status()
        payload = response.json()

        status = payload.get("status")
        if status != "OK" or not payload.get("results"):
            message = payload.get("error_message", "")
            raise ElevationSourceError(
                f"Elevation API returned {status} for ({latitude}, {longitude}) {message}".rstrip())

        elevation = float(payload["results"][0]["elevation"])
        logger.debug(f"Elevation at ({latitude:.7f}, {longitude:.7f}): {elevation:.2f}m")
        return GeoSample(latitude, longitude, elevation)


# ── Copernicus DEM ───────────────────────────────────────────────────

# GLO-30 (30m) is res_code 10 in Copernicus naming, GLO-90 (90m) is 30
_DEM_TILE_SOURCES = [
    ("https://copernicus-dem-30m.s3.eu-central-1.amazonaws.com", 10, "GLO-30"),
    ("https://copernicus-dem-90m.s3.eu-central-1.amazonaws.com", 30, "GLO-90"),
]


def _tile_name(lat_floor: int, lon_floor: int, res_code: int) -> str:
    """Copernicus DEM tile name from the lower-left integer lat/lon."""
    ns = "N" if lat_floor >= 0 else "S"
    ew = "E" if lon_floor >= 0 else "W"
    return (f"Copernicus_DSM_COG_{res_code}_{ns}{abs(lat_floor):02d}_00_"
            f"{ew}{abs(lon_floor):03d}_00_DEM")


def _download_tile(lat_floor: int, lon_floor: int,
                   cache_dir: pathlib.Path = DEM_CACHE_DIR,
                   session: Optional[requests.Session] = None) -> Optional[pathlib.Path]:
    """Fetch (or reuse) the tile covering a 1x1 degree cell.

    Tries GLO-30 first and falls back to GLO-90. Returns None when neither
    dataset has the tile (open ocean, excluded countries).
    """
    cache_dir.mkdir(parents=True, exist_ok=True)
    session = session or requests.Session()

    for base_url, res_code, label in _DEM_TILE_SOURCES:
        name = _tile_name(lat_floor, lon_floor, res_code)
        local_path = cache_dir / f"{name}.tif"
        if local_path.exists():
            return local_path

        url = f"{base_url}/{name}/{name}.tif"
        logger.info(f"Downloading {label} tile: {name}")
        # Stream into a .part file so an interrupted download never lands in the cache
        part_path = local_path.with_suffix(".tif.part")
        try:
            response = session.get(url, timeout=ELEVATION_REQUEST_TIMEOUT, stream=True)
            if response.status_code == 404:
                logger.debug(f"{label} tile not found (404): {name}")
                continue
            response.raise_for_status()
            with open(part_path, "wb") as f:
                for chunk in response.iter_content(chunk_size=1 << 20):
                    f.write(chunk)
            part_path.replace(local_path)
        except requests.RequestException as exc:
            raise ElevationSourceError(f"{label} download failed: {name}") from exc
        finally:
            part_path.unlink(missing_ok=True)

        size_mb = local_path.stat().st_size / 1024 / 1024
        logger.info(f"Cached {label} tile: {local_path.name} ({size_mb:.1f} MB)")
        return local_path

    logger.warning(f"No DEM tile available for ({lat_floor}, {lon_floor})")
    return None


class CopernicusElevationSource:
    """Point samples from cached Copernicus DEM tiles (EPSG:4326 rasters)."""

    def __init__(self, cache_dir: pathlib.Path = DEM_CACHE_DIR,
                 session: Optional[requests.Session] = None):
        self.cache_dir = pathlib.Path(cache_dir)
        self.session = session
        self._datasets: Dict[Tuple[int, int], rasterio.io.DatasetReader] = {}

    def _dataset(self, latitude: float, longitude: float):
        key = (math.floor(latitude), math.floor(longitude))
        if key not in self._datasets:
            path = _download_tile(*key, cache_dir=self.cache_dir, session=self.session)
            if path is None:
                raise ElevationSourceError(
                    f"No Copernicus DEM coverage at ({latitude}, {longitude})")
            self._datasets[key] = rasterio.open(str(path))
        return self._datasets[key]

    def elevation_at(self, latitude: float, longitude: float) -> GeoSample:
        dataset = self._dataset(latitude, longitude)
        value = next(dataset.sample([(longitude, latitude)], indexes=1))[0]
        if dataset.nodata is not None and value == dataset.nodata:
            raise ElevationSourceError(
                f"DEM void at ({latitude}, {longitude})")
        return GeoSample(latitude, longitude, float(value))

    def close(self) -> None:
        for dataset in self._datasets.values():
            dataset.close()
        self._datasets.clear()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


# ── Lattice sampling ─────────────────────────────────────────────────

def lattice_positions(lattice: LatticeSpec) -> Iterator[Tuple[int, int, float, float]]:
    """(row, col, lat, lng) in row-major scan order, south-west first."""
    for row in range(lattice.rows):
        for col in range(lattice.cols):
            lat, lng = lattice.position(row, col)
            yield row, col, lat, lng


def sample_lattice(source: ElevationSource, lattice: LatticeSpec,
                   builder: Optional[MeshBuilder] = None,
                   progress: bool = True) -> Mesh:
    """Query *source* once per lattice point and triangulate as samples arrive.

    Any failure of the source aborts the whole build; no partial mesh is
    returned.
    """
    if lattice.rows < 2 or lattice.cols < 2:
        raise InsufficientGrid(
            f"Lattice must be at least 2x2 samples, got {lattice.cols}x{lattice.rows}")
    builder = builder or MeshBuilder(lattice.cols, lattice.rows)
    logger.info(f"Sampling {lattice.rows * lattice.cols} points: {lattice.get_area_name()}")

    for row, col, lat, lng in tqdm(lattice_positions(lattice),
                                   total=lattice.rows * lattice.cols,
                                   desc="Elevation", disable=not progress):
        try:
            sample = source.elevation_at(lat, lng)
        except TerrainPickError:
            raise
        except Exception as exc:
            raise ElevationSourceError(
                f"Elevation source failed at row {row}, col {col} "
                f"({lat:.7f}, {lng:.7f})") from exc
        builder.add_sample(sample)

    return builder.build()
