"""Tests for elevation sources and lattice sampling."""
from unittest.mock import Mock

import numpy as np
import pytest
import rasterio
import requests
from rasterio.transform import from_bounds

from terrainpick.elevation import (
    CopernicusElevationSource, FunctionElevationSource, GoogleElevationSource,
    _download_tile, _tile_name, lattice_positions, sample_lattice,
)
from terrainpick.errors import DuplicateSample, ElevationSourceError, InsufficientGrid
from terrainpick.mesh import MeshBuilder
from terrainpick.models import GeoSample, LatticeSpec

LATTICE = LatticeSpec(south=43.0, west=-80.5, north=43.002, east=-80.497, rows=3, cols=4)


class TestLatticePositions:
    def test_row_major_south_west_first(self):
        positions = list(lattice_positions(LATTICE))
        assert len(positions) == 12
        assert positions[0] == (0, 0, 43.0, -80.5)
        row, col, lat, lng = positions[1]
        assert (row, col) == (0, 1)
        assert lat == 43.0 and lng == pytest.approx(-80.499)
        row, col, lat, lng = positions[-1]
        assert (row, col) == (2, 3)
        assert lat == pytest.approx(43.002) and lng == pytest.approx(-80.497)

    def test_area_name(self):
        assert LATTICE.get_area_name() == "43.00000, -80.50000 to 43.00200, -80.49700 (3x4)"


class TestSampleLattice:
    def test_queries_each_point_once_in_order(self):
        calls = []

        def elevation(lat, lng):
            calls.append((lat, lng))
            return 100.0 + len(calls)

        mesh = sample_lattice(FunctionElevationSource(elevation), LATTICE, progress=False)
        assert calls == [(lat, lng) for _, _, lat, lng in lattice_positions(LATTICE)]
        assert mesh.num_vertices == 12
        assert mesh.num_triangles == 12
        assert mesh.samples[0].elevation == 101.0

    def test_feeds_given_builder(self):
        builder = MeshBuilder(LATTICE.cols, LATTICE.rows)
        sample_lattice(FunctionElevationSource(lambda lat, lng: 0.0), LATTICE,
                       builder=builder, progress=False)
        assert builder.is_complete

    def test_source_failure_aborts(self):
        def flaky(lat, lng):
            if lat > 43.0015:
                raise ConnectionError("timed out")
            return 1.0

        with pytest.raises(ElevationSourceError) as excinfo:
            sample_lattice(FunctionElevationSource(flaky), LATTICE, progress=False)
        assert isinstance(excinfo.value.__cause__, ConnectionError)
        assert "row 2, col 0" in str(excinfo.value)

    def test_duplicate_from_source(self):
        source = FunctionElevationSource(lambda lat, lng: GeoSample(0.0, 0.0, 1.0))
        with pytest.raises(DuplicateSample):
            sample_lattice(source, LATTICE, progress=False)

    def test_too_small(self):
        lattice = LatticeSpec(south=0, west=0, north=1, east=1, rows=1, cols=5)
        with pytest.raises(InsufficientGrid):
            sample_lattice(FunctionElevationSource(lambda lat, lng: 0.0), lattice, progress=False)


class TestGoogleElevationSource:
    def _session(self, payload):
        session = Mock()
        session.get.return_value.json.return_value = payload
        return session

    def test_ok(self):
        session = self._session({"status": "OK", "results": [{"elevation": 329.5}]})
        source = GoogleElevationSource(api_key="key", session=session)
        assert source.elevation_at(43.1, -80.2) == GeoSample(43.1, -80.2, 329.5)
        _, kwargs = session.get.call_args
        assert kwargs["params"] == {"locations": "43.1,-80.2", "key": "key"}

    def test_error_status(self):
        session = self._session({"status": "OVER_QUERY_LIMIT", "results": [],
                                 "error_message": "slow down"})
        source = GoogleElevationSource(api_key="key", session=session)
        with pytest.raises(ElevationSourceError, match="OVER_QUERY_LIMIT"):
            source.elevation_at(43.1, -80.2)

    def test_missing_key(self):
        with pytest.raises(ElevationSourceError):
            GoogleElevationSource(api_key="")


class TestCopernicusElevationSource:
    def test_tile_name(self):
        assert _tile_name(43, -81, 10) == "Copernicus_DSM_COG_10_N43_00_W081_00_DEM"
        assert _tile_name(-34, 151, 30) == "Copernicus_DSM_COG_30_S34_00_E151_00_DEM"

    @pytest.fixture
    def dem_cache(self, tmp_path):
        """One synthetic 1x1 degree tile: elevation rises 1 m per column."""
        data = np.tile(np.arange(100, dtype=np.float32), (100, 1))
        data[0, 0] = -9999.0
        path = tmp_path / f"{_tile_name(43, -81, 10)}.tif"
        with rasterio.open(path, "w", driver="GTiff", height=100, width=100, count=1,
                           dtype="float32", crs="EPSG:4326", nodata=-9999.0,
                           transform=from_bounds(-81, 43, -80, 44, 100, 100)) as dst:
            dst.write(data, 1)
        return tmp_path

    def test_samples_cached_tile(self, dem_cache):
        with CopernicusElevationSource(cache_dir=dem_cache) as source:
            sample = source.elevation_at(43.5, -80.455)
        assert sample.latitude == 43.5
        assert sample.elevation == 54.0

    def test_nodata(self, dem_cache):
        with CopernicusElevationSource(cache_dir=dem_cache) as source:
            with pytest.raises(ElevationSourceError):
                source.elevation_at(43.995, -80.995)

    def test_missing_tile(self, tmp_path):
        session = Mock()
        session.get.return_value.status_code = 404
        source = CopernicusElevationSource(cache_dir=tmp_path, session=session)
        with pytest.raises(ElevationSourceError, match="No Copernicus DEM coverage"):
            source.elevation_at(10.5, 10.5)
        assert session.get.call_count == 2

    def test_interrupted_download_not_cached(self, tmp_path):
        def broken_stream(chunk_size):
            yield b"partial bytes"
            raise requests.ConnectionError("connection reset")

        session = Mock()
        session.get.return_value.status_code = 200
        session.get.return_value.iter_content = broken_stream

        with pytest.raises(ElevationSourceError, match="GLO-30 download failed"):
            _download_tile(43, -81, cache_dir=tmp_path, session=session)
        assert list(tmp_path.iterdir()) == []

        # The next attempt downloads again instead of serving the stub
        session.get.return_value.iter_content = lambda chunk_size: iter([b"whole tile"])
        path = _download_tile(43, -81, cache_dir=tmp_path, session=session)
        assert session.get.call_count == 2
        assert path.name == f"{_tile_name(43, -81, 10)}.tif"
        assert path.read_bytes() == b"whole tile"

    def test_connection_error_wrapped(self, tmp_path):
        session = Mock()
        session.get.side_effect = requests.Timeout("read timed out")
        with pytest.raises(ElevationSourceError) as excinfo:
            _download_tile(43, -81, cache_dir=tmp_path, session=session)
        assert isinstance(excinfo.value.__cause__, requests.Timeout)
        assert list(tmp_path.iterdir()) == []
