"""Tests for the SQLite model store."""
import numpy as np
import pytest

from terrainpick.database import ModelDatabase
from terrainpick.errors import ModelNotFoundError
from terrainpick.mesh import build_mesh
from terrainpick.normalize import normalize_mesh


@pytest.fixture
def db(tmp_path):
    return ModelDatabase(tmp_path / "terrain.db")


class TestSamples:
    def test_round_trip(self, db, hilly_samples):
        db.save_samples(hilly_samples, 5, 4)
        samples, width, height = db.load_samples()
        assert (width, height) == (5, 4)
        assert samples == hilly_samples

    def test_replaces_previous(self, db, hilly_samples, flat_samples):
        db.save_samples(hilly_samples, 5, 4)
        db.save_samples(flat_samples, 3, 3)
        samples, width, height = db.load_samples()
        assert (width, height) == (3, 3)
        assert samples == flat_samples

    def test_new_samples_drop_stale_mesh(self, db, flat_samples, normalized_mesh, hilly_samples):
        db.save_samples(flat_samples, 3, 3)
        db.save_mesh(normalized_mesh)
        assert db.has_mesh()

        db.save_samples(hilly_samples, 5, 4)
        assert not db.has_mesh()
        with pytest.raises(ModelNotFoundError):
            db.load_mesh()
        with pytest.raises(ModelNotFoundError):
            db.get_property("ref_latitude")
        _, width, height = db.load_samples()
        assert (width, height) == (5, 4)

    def test_wrong_count(self, db, flat_samples):
        with pytest.raises(ValueError):
            db.save_samples(flat_samples, 2, 2)

    def test_empty(self, db):
        with pytest.raises(ModelNotFoundError):
            db.load_samples()


class TestMesh:
    def test_round_trip(self, db, hilly_samples):
        mesh = normalize_mesh(build_mesh(hilly_samples, 5, 4))
        db.save_mesh(mesh)
        loaded = db.load_mesh()

        assert (loaded.width, loaded.height) == (5, 4)
        assert loaded.samples == mesh.samples
        assert loaded.normalization == mesh.normalization
        np.testing.assert_array_equal(loaded.faces, mesh.faces)
        np.testing.assert_array_equal(loaded.positions, mesh.positions)
        np.testing.assert_array_equal(loaded.normals, mesh.normals)

    def test_unnormalized_rejected(self, db, flat_mesh):
        with pytest.raises(ValueError):
            db.save_mesh(flat_mesh)

    def test_empty(self, db):
        assert not db.has_mesh()
        with pytest.raises(ModelNotFoundError):
            db.load_mesh()

    def test_clear(self, db, normalized_mesh, flat_samples):
        db.save_samples(flat_samples, 3, 3)
        db.save_mesh(normalized_mesh)
        assert db.has_mesh()
        db.clear()
        assert not db.has_mesh()
        with pytest.raises(ModelNotFoundError):
            db.load_samples()
