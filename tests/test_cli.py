"""Tests for the click CLI."""
import pytest
from click.testing import CliRunner
from PIL import Image

from terrainpick import cli as cli_module
from terrainpick import models
from terrainpick.cli import cli
from terrainpick.constants import NOT_SELECTED_MESSAGE
from terrainpick.models import GeoSample


class FakeDem:
    """Gentle slope, no network."""

    def __init__(self, *args, **kwargs):
        self.calls = 0

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        pass

    def elevation_at(self, lat, lng):
        self.calls += 1
        return GeoSample(lat, lng, 200.0 + (lat - 43.0) * 1000.0)


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def db_args(tmp_path):
    return ["--db", str(tmp_path / "terrain.db")]


@pytest.fixture
def built(runner, db_args, monkeypatch):
    monkeypatch.setattr(cli_module, "CopernicusElevationSource", FakeDem)
    result = runner.invoke(cli, db_args + ["sample", "43.0", "-80.5", "43.0004", "-80.4996",
                                           "--rows", "3", "--cols", "3"])
    assert result.exit_code == 0, result.output
    result = runner.invoke(cli, db_args + ["build"])
    assert result.exit_code == 0, result.output
    return db_args


class TestCommands:
    def test_sample(self, runner, db_args, monkeypatch):
        monkeypatch.setattr(cli_module, "CopernicusElevationSource", FakeDem)
        result = runner.invoke(cli, db_args + ["sample", "43.0", "-80.5", "43.0004", "-80.4996",
                                               "--rows", "3", "--cols", "3"])
        assert result.exit_code == 0, result.output
        assert "Stored 9 samples" in result.output

    def test_google_without_key(self, runner, db_args, monkeypatch):
        monkeypatch.setattr("terrainpick.elevation.GOOGLE_MAPS_API_KEY", "")
        result = runner.invoke(cli, db_args + ["sample", "--rows", "2", "--cols", "2",
                                               "--source", "google"])
        assert result.exit_code != 0
        assert "GOOGLE_MAPS_API_KEY" in result.output

    def test_build_output(self, runner, db_args, monkeypatch):
        monkeypatch.setattr(cli_module, "CopernicusElevationSource", FakeDem)
        runner.invoke(cli, db_args + ["sample", "43.0", "-80.5", "43.0004", "-80.4996",
                                      "--rows", "3", "--cols", "4"])
        result = runner.invoke(cli, db_args + ["build"])
        assert result.exit_code == 0, result.output
        assert "12 vertices, 12 triangles" in result.output

    def test_render(self, built, runner, tmp_path, monkeypatch):
        monkeypatch.setattr(models, "OUTPUT_DIR", tmp_path / "out")
        result = runner.invoke(cli, built + ["render", "-o", "frame.png",
                                             "--width", "64", "--height", "48"])
        assert result.exit_code == 0, result.output
        image = Image.open(tmp_path / "out" / "frame.png")
        assert image.size == (64, 48)

    def test_pick(self, built, runner):
        result = runner.invoke(cli, built + ["pick", "32", "24", "--width", "64", "--height", "48"])
        assert result.exit_code == 0, result.output
        assert result.output.startswith("Raster: X: 32  Y: 24 <===> GCS: Latitude: 43.0002000")

    def test_pick_miss(self, built, runner):
        result = runner.invoke(cli, built + ["pick", "0", "0", "--width", "64", "--height", "48"])
        assert result.output.strip() == NOT_SELECTED_MESSAGE

    def test_build_without_samples(self, runner, db_args):
        result = runner.invoke(cli, db_args + ["build"])
        assert result.exit_code != 0
        assert "No samples stored" in result.output

    def test_render_without_mesh(self, runner, db_args):
        result = runner.invoke(cli, db_args + ["render"])
        assert result.exit_code != 0
        assert "No mesh stored" in result.output
