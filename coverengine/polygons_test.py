"""Tests for 2D polygon reduction and top-down helpers."""

from shapely.geometry import Point

from coverengine.point3d import Point3d
from coverengine.polygons import (
    blocked_fraction,
    clip_segments,
    combine_terrain,
    shadow_polygon,
    to_shapely,
    union_all,
    visibility_polygon,
)


def _make_square(x0, y0, size=10.0):
    return [(x0, y0), (x0 + size, y0), (x0 + size, y0 + size), (x0, y0 + size)]


class TestShapes:
    def test_bowtie_is_repaired(self):
        poly = to_shapely([(0, 0), (10, 10), (10, 0), (0, 10)])
        assert poly.is_valid

    def test_short_ring_is_empty(self):
        assert to_shapely([(0, 0), (1, 1)]).is_empty

    def test_union_skips_empties(self):
        u = union_all([_make_square(0, 0), [], _make_square(5, 0)])
        assert abs(u.area - 150) < 1e-9


class TestTerrain:
    def test_single_terrain_blocks_nothing(self):
        assert combine_terrain([_make_square(0, 0)]).is_empty

    def test_pair_blocks_overlap(self):
        t = combine_terrain([_make_square(0, 0), _make_square(5, 0)])
        assert abs(t.area - 50) < 1e-9

    def test_three_way_union_of_pairs(self):
        t = combine_terrain(
            [_make_square(0, 0), _make_square(5, 0), _make_square(20, 0)]
        )
        # The far square overlaps nothing
        assert abs(t.area - 50) < 1e-9


class TestBlockedFraction:
    def test_half_blocked(self):
        r = blocked_fraction([_make_square(0, 0)], [_make_square(-5, 0)])
        assert abs(r.percent_cover - 0.5) < 1e-9
        assert r.target_area == 100

    def test_nothing_blocking(self):
        r = blocked_fraction([_make_square(0, 0)], [])
        assert r.percent_cover == 0.0

    def test_sliver_counts_as_full(self):
        blocker = [(0, 0), (10, 0), (10, 9.97), (0, 9.97)]
        r = blocked_fraction([_make_square(0, 0)], [blocker])
        assert r.percent_cover == 1.0

    def test_lone_terrain_does_not_block(self):
        r = blocked_fraction(
            [_make_square(0, 0)], [], terrain_polys=[_make_square(-1, -1, 20)]
        )
        assert r.percent_cover == 0.0

    def test_stacked_terrain_blocks(self):
        big = _make_square(-1, -1, 20)
        r = blocked_fraction([_make_square(0, 0)], [], terrain_polys=[big, big])
        assert r.percent_cover == 1.0

    def test_degenerate_target(self):
        r = blocked_fraction([[(0, 0), (5, 0), (10, 0)]], [_make_square(0, 0)])
        assert r.percent_cover == 0.0
        assert r.warnings

    def test_clamped(self):
        r = blocked_fraction([_make_square(0, 0)], [_make_square(-50, -50, 200)])
        assert r.percent_cover == 1.0


class TestVisibilityPolygon:
    def test_open_room(self):
        pts = visibility_polygon(5, 5, [], (0, 0, 10, 10))
        assert abs(to_shapely(pts).area - 100) < 0.1

    def test_wall_splits_room(self):
        pts = visibility_polygon(5, 5, [(7, 0, 7, 10)], (0, 0, 10, 10))
        poly = to_shapely(pts)
        assert abs(poly.area - 70) < 0.1
        assert not poly.contains(Point(9, 5))

    def test_wall_crossing_bounds(self):
        """Walls running past the bounds still block inside them."""
        pts = visibility_polygon(0, 0, [(5, -100, 5, 100)], (-10, -10, 10, 10))
        poly = to_shapely(pts)
        assert abs(poly.area - 300) < 0.1
        assert not poly.contains(Point(8, 0))

    def test_several_walls(self):
        walls = [(3, -10, 3, 10), (-10, -4, 10, -4)]
        pts = visibility_polygon(0, 0, walls, (-10, -10, 10, 10))
        assert abs(to_shapely(pts).area - 13 * 14) < 0.1


class TestClipSegments:
    def test_crossing_segment_is_cut(self):
        (seg,) = clip_segments([(5, -100, 5, 100)], (-10, -10, 10, 10))
        assert sorted([seg[:2], seg[2:]]) == [(5, -10), (5, 10)]

    def test_outside_and_touching_segments_dropped(self):
        segs = [(20, 0, 30, 0), (10, 10, 20, 20)]
        assert clip_segments(segs, (-10, -10, 10, 10)) == []

    def test_inside_segment_kept(self):
        segs = clip_segments([(1, 2, 3, 4)], (-10, -10, 10, 10))
        assert segs == [(1.0, 2.0, 3.0, 4.0)]


class TestShadowPolygon:
    def _make_wall_face(self, top):
        return [
            Point3d(10, -5, top),
            Point3d(10, 5, top),
            Point3d(10, 5, 0),
            Point3d(10, -5, 0),
        ]

    def test_shadow_on_floor(self):
        shadow = shadow_polygon(self._make_wall_face(5), Point3d(0, 0, 10), 0)
        poly = to_shapely(shadow)
        assert abs(poly.area - 150) < 1e-6
        assert poly.contains(Point(15, 0))

    def test_face_above_viewer_casts_nothing_below(self):
        face = [
            Point3d(10, -5, 30),
            Point3d(10, 5, 30),
            Point3d(10, 5, 20),
            Point3d(10, -5, 20),
        ]
        assert shadow_polygon(face, Point3d(0, 0, 10), 0) == []

    def test_eye_level_shadow(self):
        face = [
            Point3d(10, -5, 5),
            Point3d(10, 5, 5),
            Point3d(10, 5, -5),
            Point3d(10, -5, -5),
        ]
        shadow = shadow_polygon(face, Point3d(0, 0, 0), 0, max_radius=1000)
        poly = to_shapely(shadow)
        assert poly.contains(Point(50, 0))
        assert not poly.contains(Point(5, 0))
