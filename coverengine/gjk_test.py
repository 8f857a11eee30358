"""Tests for GJK overlap and EPA penetration."""

import math

from coverengine.gjk import (
    CLOCKWISE,
    COUNTER_CLOCKWISE,
    ConvexPolygon,
    penetration_vector,
    shapes_overlap,
    triple_product,
    winding,
)


def _make_square(x0, y0, size=2.0):
    return [(x0, y0), (x0 + size, y0), (x0 + size, y0 + size), (x0, y0 + size)]


class TestHelpers:
    def test_triple_product(self):
        assert triple_product((1, 0), (0, 1), (1, 0)) == (0, 1)

    def test_winding(self):
        assert winding([(0, 0), (1, 0), (1, 1)]) == COUNTER_CLOCKWISE
        assert winding([(0, 0), (1, 1), (1, 0)]) == CLOCKWISE

    def test_centroid(self):
        assert ConvexPolygon(_make_square(0, 0)).centroid() == (1.0, 1.0)

    def test_support(self):
        poly = ConvexPolygon(_make_square(0, 0))
        assert poly.support((1, 1)) == (2, 2)


class TestOverlap:
    def test_apart(self):
        assert not shapes_overlap(_make_square(0, 0), _make_square(10, 0))
        assert penetration_vector(_make_square(0, 0), _make_square(10, 0)) is None

    def test_contained(self):
        assert shapes_overlap(_make_square(0, 0, 4), _make_square(1, 1))

    def test_touching_counts(self):
        """Shapes sharing an edge overlap."""
        assert shapes_overlap(_make_square(0, 0, 1), _make_square(1, 0, 1))

    def test_triangle_and_square(self):
        tri = [(0, 0), (4, 0), (0, 4)]
        assert shapes_overlap(tri, _make_square(1, 1))
        assert not shapes_overlap(tri, _make_square(3, 3))


class TestPenetration:
    def test_shallowest_axis(self):
        v = penetration_vector(_make_square(0, 0), _make_square(1, 0))
        assert v is not None
        assert abs(math.hypot(*v) - 1.0) < 1e-6
        assert abs(v[1]) < 1e-6
