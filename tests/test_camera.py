"""Tests for the camera model and vertex projection."""
import numpy as np
import pytest

from terrainpick.camera import (
    Camera, FrustumPolicy, camera_vectors, look_at, perspective, project_mesh,
    rejected_vertices, to_screen,
)
from terrainpick.errors import NormalizationError
from terrainpick.models import CameraPose


class TestCameraVectors:
    """Yaw turns from east toward north, pitch tilts up or down."""

    def test_default_looks_east(self):
        forward, up = camera_vectors(0.0, 0.0)
        np.testing.assert_allclose(forward, [0, 0, 1], atol=1e-12)
        np.testing.assert_allclose(up, [0, 1, 0], atol=1e-12)

    def test_yaw_90_looks_north(self):
        forward, _ = camera_vectors(90.0, 0.0)
        np.testing.assert_allclose(forward, [1, 0, 0], atol=1e-12)

    def test_pitch_down(self):
        forward, up = camera_vectors(90.0, -90.0)
        np.testing.assert_allclose(forward, [0, -1, 0], atol=1e-12)
        # Looking straight down, the top of the image points north
        np.testing.assert_allclose(up, [1, 0, 0], atol=1e-12)

    def test_positive_pitch_looks_up(self):
        forward, _ = camera_vectors(0.0, 30.0)
        assert forward[1] == pytest.approx(np.sin(np.radians(30.0)))


class TestMatrices:
    def test_look_at_moves_eye_to_origin(self):
        view = look_at([1.0, 2.0, 3.0], [1.0, 2.0, 4.0], [0.0, 1.0, 0.0])
        eye = view @ np.array([1.0, 2.0, 3.0, 1.0])
        np.testing.assert_allclose(eye[:3], 0.0, atol=1e-12)
        # Target lies on the camera's -Z axis
        target = view @ np.array([1.0, 2.0, 4.0, 1.0])
        np.testing.assert_allclose(target[:3], [0.0, 0.0, -1.0], atol=1e-12)

    def test_perspective_depth_range(self):
        proj = perspective(90.0, 1.0, 0.1, 10.0)
        near = proj @ np.array([0.0, 0.0, -0.1, 1.0])
        far = proj @ np.array([0.0, 0.0, -10.0, 1.0])
        assert near[2] / near[3] == pytest.approx(-1.0)
        assert far[2] / far[3] == pytest.approx(1.0)

    @pytest.mark.parametrize("yaw,pitch", [(0, 0), (90, -90), (37, -20), (200, 10)])
    def test_target_projects_to_centre(self, yaw, pitch):
        camera = Camera(CameraPose(position=(0.3, 0.5, 0.2), yaw=yaw, pitch=pitch))
        ndc = camera.project_point(camera.eye + 0.5 * camera.forward)
        np.testing.assert_allclose(ndc[:2], [0.0, 0.0], atol=1e-9)
        assert -1.0 < ndc[2] < 1.0


class TestScreenMapping:
    def test_corners(self):
        x, y = to_screen(np.array([-1.0, 1.0, 0.0]), np.array([1.0, -1.0, 0.0]), 64, 48)
        assert x.tolist() == [0, 63, 32]
        assert y.tolist() == [0, 47, 24]

    def test_rounds_half_away_from_zero(self):
        # NDC x giving sub-pixel 10.5 rounds to 11
        ndc_x = 10.5 / 32.0 - 1.0
        x, _ = to_screen(np.array([ndc_x]), np.array([0.0]), 64, 48)
        assert x.tolist() == [11]


class TestFrustum:
    def _clip(self, ndc, w=1.0):
        ndc = np.asarray(ndc, dtype=np.float64)
        return np.column_stack([ndc * w, np.full(len(ndc), w)])

    def test_symmetric_policy(self):
        clip = self._clip([[0.5, 0.5, 0.5], [1.2, 0.0, 0.0], [0.0, -1.5, 0.0], [0.0, 0.0, 1.1]])
        assert rejected_vertices(clip, 16 / 9).tolist() == [False, True, True, True]

    def test_reference_policy(self):
        clip = self._clip([[1.2, 0.0, 0.0], [1.9, 0.0, 0.0], [0.0, -1.5, 0.0], [0.0, 0.0, 1.1]])
        rejected = rejected_vertices(clip, 16 / 9, FrustumPolicy.REFERENCE)
        assert rejected.tolist() == [False, True, False, True]

    def test_behind_camera_rejected(self):
        clip = np.array([[0.0, 0.0, 0.0, -0.5]])
        assert rejected_vertices(clip, 1.0).tolist() == [True]
        assert rejected_vertices(clip, 1.0, FrustumPolicy.REFERENCE).tolist() == [True]


class TestProjectMesh:
    def test_requires_normalized_mesh(self, flat_mesh):
        camera = Camera(CameraPose(position=(0.0, 1.0, 0.0)))
        with pytest.raises(NormalizationError):
            project_mesh(flat_mesh, camera, 64, 48)

    def test_all_visible_from_above(self, top_down_scene):
        projected = top_down_scene.frame.projected
        assert projected.visible.all()
        assert not projected.rejected.any()

    def test_partly_outside_discards_whole_triangle(self, normalized_mesh):
        # Camera at the south-west corner looking north-east: half the lattice
        # falls off the sides
        pose = CameraPose(position=(0.0, 0.3, 0.0), yaw=90.0, pitch=-90.0,
                          fov_y=40.0, aspect=4 / 3)
        projected = project_mesh(normalized_mesh, Camera(pose), 64, 48)
        assert projected.rejected.any()
        faces = normalized_mesh.faces
        expected = ~projected.rejected[faces].any(axis=1)
        np.testing.assert_array_equal(projected.visible, expected)
        assert not projected.visible.all()
