"""Tests for the viewer camera."""

import math

import pytest

from coverengine.camera import ORTHOGONAL, PERSPECTIVE, Camera
from coverengine.errors import ConfigurationError, SingularMatrix
from coverengine.point3d import AABB3d, Point3d


def _make_box() -> AABB3d:
    return AABB3d(Point3d(-10, -10, -10), Point3d(10, 10, 10))


def _make_camera(perspective_type: str = PERSPECTIVE) -> Camera:
    return Camera(
        camera_position=Point3d(0, -100, 0),
        target_position=Point3d(0, 0, 0),
        perspective_type=perspective_type,
    )


class TestDirtyFlags:
    def test_new_camera_is_dirty(self):
        cam = Camera()
        assert cam.dirty_look_at and cam.dirty_perspective
        assert cam.dirty_model and cam.dirty_inverse

    def test_matrices_clean_flags(self):
        cam = _make_camera()
        cam.model_matrix
        assert not cam.dirty_look_at
        assert not cam.dirty_perspective
        assert not cam.dirty_model

    def test_same_position_stays_clean(self):
        cam = _make_camera()
        cam.model_matrix
        cam.camera_position = Point3d(0, -100, 0)
        assert not cam.dirty_look_at
        assert not cam.dirty_model

    def test_move_dirties_look_at_only(self):
        cam = _make_camera()
        cam.model_matrix
        cam.camera_position = Point3d(0, -50, 0)
        assert cam.dirty_look_at
        assert cam.dirty_model
        assert cam.dirty_inverse
        assert not cam.dirty_perspective

    def test_parameters_dirty_projection(self):
        cam = _make_camera()
        cam.model_matrix
        cam.set_perspective_parameters(fov=math.radians(60))
        assert cam.dirty_perspective
        assert cam.dirty_model
        assert not cam.dirty_look_at

    def test_matrix_cached_until_dirty(self):
        cam = _make_camera()
        first = cam.model_matrix
        assert cam.model_matrix is first
        cam.target_position = Point3d(5, 0, 0)
        assert cam.model_matrix is not first


class TestConfiguration:
    def test_unknown_perspective_type(self):
        with pytest.raises(ConfigurationError):
            Camera(perspective_type="fisheye")

    def test_unknown_gl_type(self):
        with pytest.raises(ConfigurationError):
            Camera(gl_type="vulkan")

    def test_unknown_parameter(self):
        with pytest.raises(ConfigurationError):
            Camera().set_orthogonal_parameters(depth=3)

    def test_default_positions(self):
        cam = Camera()
        assert cam.camera_position == Point3d(0, 0, 0)
        assert cam.target_position == Point3d(0, 1, 0)
        assert cam.zero_to_one


class TestFraming:
    def test_perspective_fit_contains_box(self):
        cam = _make_camera()
        box = _make_box()
        params = cam.set_frustum_for_aabb3d(box)
        assert cam.target_position == Point3d(0, 0, 0)
        radius = math.sqrt(300)
        assert abs(params["fov"] - 2 * math.asin(radius / 100)) < 1e-9
        assert abs(params["z_far"] - (100 + radius)) < 1e-9
        for corner in box.corners():
            x, y, z, w = cam.to_clip(corner)
            assert -w <= x <= w
            assert -w <= y <= w
            assert 0 <= z <= w

    def test_camera_inside_box_uses_wide_fov(self):
        cam = Camera(camera_position=Point3d(0, -1, 0))
        params = cam.set_frustum_for_aabb3d(_make_box())
        assert params["fov"] == math.pi

    def test_orthogonal_fit(self):
        cam = _make_camera(ORTHOGONAL)
        params = cam.set_frustum_for_aabb3d(_make_box())
        assert abs(params["left"] + 10) < 1e-9
        assert abs(params["right"] - 10) < 1e-9
        assert abs(params["bottom"] + 10) < 1e-9
        assert abs(params["top"] - 10) < 1e-9
        assert abs(params["far"] - 110) < 1e-9
        assert params["near"] == 1.0

    def test_orthogonal_frustum_corners(self):
        cam = _make_camera(ORTHOGONAL)
        cam.set_frustum_for_aabb3d(_make_box())
        corners = cam.frustum_corners()
        assert len(corners) == 8
        near, far = corners[:4], corners[4:]
        assert all(abs(p.y + 99) < 1e-6 for p in near)
        assert all(abs(p.y - 10) < 1e-6 for p in far)
        assert {round(p.x) for p in corners} == {-10, 10}
        assert {round(p.z) for p in corners} == {-10, 10}

    def test_box_center_on_axis(self):
        cam = _make_camera()
        cam.set_frustum_for_aabb3d(_make_box())
        x, y, _, w = cam.to_clip(Point3d(0, 0, 0))
        assert abs(x) < 1e-9
        assert abs(y) < 1e-9
        assert abs(w - 100) < 1e-9


class TestSingular:
    def test_singular_inverse_raises_every_time(self):
        cam = Camera(
            camera_position=Point3d(0, -100, 0),
            target_position=Point3d(0, 0, 0),
            mirror=Point3d(0, 1, 1),
        )
        with pytest.raises(SingularMatrix):
            cam.inverse_model_matrix
        with pytest.raises(SingularMatrix):
            cam.inverse_model_matrix
        assert cam._singular_logged
        assert cam.dirty_inverse
