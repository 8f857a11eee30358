"""Tests for planes."""

import pytest

from coverengine.errors import DegenerateGeometry
from coverengine.plane import Plane
from coverengine.point3d import Point3d


def _tilted() -> Plane:
    return Plane.from_points(
        Point3d(10, 0, 0), Point3d(10, 5, 5), Point3d(12, 0, 3)
    )


class TestConstruction:
    def test_from_points_normal(self):
        p = Plane.from_points(
            Point3d(0, 0, 0), Point3d(1, 0, 0), Point3d(0, 1, 0)
        )
        assert p.normal.almost_equal(Point3d(0, 0, 1))

    def test_normal_is_normalized(self):
        p = Plane(Point3d(0, 0, 0), Point3d(0, 0, 5))
        assert p.normal == Point3d(0, 0, 1)

    def test_collinear_raises(self):
        with pytest.raises(DegenerateGeometry):
            Plane.from_points(
                Point3d(0, 0, 0), Point3d(1, 1, 1), Point3d(2, 2, 2)
            )


class TestBasis:
    def test_vectors_are_orthonormal(self):
        plane = _tilted()
        u, v = plane.vectors_on_plane()
        assert abs(u.magnitude() - 1) < 1e-9
        assert abs(v.magnitude() - 1) < 1e-9
        assert abs(u.dot(v)) < 1e-9
        assert u.cross(v).almost_equal(plane.normal)

    def test_2d_round_trip(self):
        plane = _tilted()
        p = plane.from_2d((3.0, -4.0))
        assert plane.is_point_on_plane(p)
        x, y = plane.to_2d(p)
        assert abs(x - 3.0) < 1e-9
        assert abs(y + 4.0) < 1e-9

    def test_rotation_matrix_inverse_gives_distance(self):
        plane = _tilted()
        to_world = plane.rotation_to_2d_matrix()
        above = plane.from_2d((1.0, 2.0)) + plane.normal * 5
        local = to_world.invert().multiply_point3d(above)
        assert local.almost_equal(Point3d(1.0, 2.0, 5.0), 1e-6)


class TestSides:
    def test_which_side(self):
        plane = Plane(Point3d(0, 0, 10), Point3d(0, 0, 1))
        assert plane.which_side(Point3d(0, 0, 11)) == 1
        assert plane.which_side(Point3d(0, 0, 9)) == -1
        assert plane.which_side(Point3d(5, 5, 10)) == 0
        assert plane.signed_distance(Point3d(0, 0, 4)) == -6


class TestIntersections:
    def test_segment_crosses(self):
        plane = Plane(Point3d(0, 0, 0), Point3d(0, 0, 1))
        hit = plane.segment_intersection(Point3d(0, 0, -1), Point3d(0, 0, 3))
        assert hit is not None
        assert hit.almost_equal(Point3d(0, 0, 0))

    def test_segment_same_side(self):
        plane = Plane(Point3d(0, 0, 0), Point3d(0, 0, 1))
        assert plane.segment_intersection(
            Point3d(0, 0, 1), Point3d(5, 0, 3)
        ) is None

    def test_line_parallel(self):
        plane = Plane(Point3d(0, 0, 0), Point3d(0, 0, 1))
        assert plane.line_intersection(
            Point3d(0, 0, 1), Point3d(1, 0, 0)
        ) is None

    def test_line_intersection(self):
        plane = Plane(Point3d(0, 0, 5), Point3d(0, 0, 1))
        hit = plane.line_intersection(Point3d(1, 2, 0), Point3d(0, 0, -2))
        assert hit is not None
        assert hit.almost_equal(Point3d(1, 2, 5))
