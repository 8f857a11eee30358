"""Tests for scene records and the Scene registry."""

import math

from coverengine.types import (
    DIRECTION_LEFT,
    DOOR_OPEN,
    SHAPE_CIRCLE,
    SHAPE_POLYGON,
    SIGHT_LIMITED,
    SIGHT_NONE,
    Scene,
    Token,
    Wall,
)


def _make_token(**kw) -> Token:
    defaults = dict(id="t1", x=50.0, y=50.0, width=40.0, length=40.0,
                    bottom_z=0.0, top_z=60.0)
    defaults.update(kw)
    return Token(**defaults)


class TestWall:
    def test_from_dict_coordinate_list(self):
        w = Wall.from_dict({"id": "w", "c": [0, 0, 100, 0], "top": 50})
        assert w.a == (0, 0)
        assert w.b == (100, 0)
        assert w.top_z == 50
        assert w.bottom_z == -math.inf

    def test_unbounded_elevation(self):
        w = Wall("w", 0, 0, 1, 0)
        assert w.top_z == math.inf
        assert w.bottom_z == -math.inf

    def test_blocks_sight(self):
        assert Wall("w", 0, 0, 1, 0).blocks_sight
        assert not Wall("w", 0, 0, 1, 0, sight=SIGHT_NONE).blocks_sight
        assert not Wall("w", 0, 0, 1, 0, door=DOOR_OPEN).blocks_sight
        assert Wall("w", 0, 0, 1, 0, sight=SIGHT_LIMITED).is_limited

    def test_orient_point(self):
        w = Wall("w", 0, 0, 10, 0)
        assert w.orient_point((5, 5)) == 1
        assert w.orient_point((5, -5)) == -1
        assert w.orient_point((20, 0)) == 0

    def test_dict_round_trip(self):
        w = Wall("w", 1, 2, 3, 4, top=10, direction=DIRECTION_LEFT)
        assert Wall.from_dict(w.to_dict()) == w


class TestToken:
    def test_height_and_avg(self):
        t = _make_token()
        assert t.height == 60
        assert t.avg_z == 30
        assert t.eye_point() == (t.center_3d().with_z(60))

    def test_prone_halves_height(self):
        t = _make_token(prone=True)
        assert t.effective_top_z == 30
        assert t.aabb().max.z == 30

    def test_zero_height_avg(self):
        t = _make_token(bottom_z=10.0, top_z=10.0)
        assert t.avg_z == 10.5

    def test_eye_z_override(self):
        t = _make_token(eye_z=45.0)
        assert t.eye_point().z == 45.0

    def test_missing_elevation(self):
        t = _make_token(top_z=None)
        assert not t.has_elevation()
        assert t.height == 0.0

    def test_rectangle_footprint(self):
        t = _make_token(width=20.0, length=10.0)
        assert t.footprint() == [(40, 45), (60, 45), (60, 55), (40, 55)]

    def test_circle_footprint(self):
        t = _make_token(shape=SHAPE_CIRCLE)
        pts = t.footprint()
        assert len(pts) == 16
        for x, y in pts:
            assert abs(math.hypot(x - 50, y - 50) - 20) < 1e-9

    def test_polygon_footprint(self):
        t = _make_token(shape=SHAPE_POLYGON, border=[(-5, -5), (5, -5), (0, 5)])
        assert t.footprint() == [(45, 45), (55, 45), (50, 55)]

    def test_dict_defaults(self):
        t = Token.from_dict({"id": "a", "x": 1, "y": 2, "width": 3})
        assert t.length == 3
        assert t.bottom_z == 0.0
        assert t.top_z is None


class TestScene:
    def test_from_dict(self):
        scene = Scene.from_dict(
            {
                "width": 100,
                "height": 100,
                "walls": [{"id": "w", "c": [0, 0, 10, 0]}],
                "tokens": [{"id": "a", "x": 1, "y": 2, "width": 3}],
            }
        )
        assert set(scene.walls) == {"w"}
        assert set(scene.tokens) == {"a"}
        assert scene.bounds == (0.0, 0.0, 100, 100)

    def test_geometry_cache_dropped_on_update(self):
        scene = Scene(width=100, height=100)
        scene.add_wall(Wall("w", 0, 0, 10, 0))
        calls = []

        def build():
            calls.append(1)
            return object()

        first = scene.cached_geometry("wall", "w", build)
        assert scene.cached_geometry("wall", "w", build) is first
        assert len(calls) == 1
        scene.update_wall(Wall("w", 0, 0, 20, 0))
        assert scene.cached_geometry("wall", "w", build) is not first
        assert len(calls) == 2

    def test_wall_change_drops_borders_and_index(self):
        scene = Scene(width=100, height=100)
        scene.add_token(_make_token())
        scene.cached_geometry("border", "t1", lambda: "border")
        scene.cached_geometry("index", "walls", lambda: "small", 500)
        scene.cached_geometry("index", "walls", lambda: "large", 1e6)
        scene.add_wall(Wall("w", 0, 0, 10, 0))
        assert scene._geometry == {}

    def test_variants_cached_apart(self):
        scene = Scene(width=100, height=100)
        small = scene.cached_geometry("index", "walls", lambda: "small", 500)
        large = scene.cached_geometry("index", "walls", lambda: "large", 1e6)
        assert (small, large) == ("small", "large")
        again = scene.cached_geometry("index", "walls", lambda: "x", 500)
        assert again == "small"

    def test_token_change_keeps_other_borders(self):
        scene = Scene(width=100, height=100)
        scene.add_token(_make_token(id="a"))
        scene.add_token(_make_token(id="b"))
        scene.cached_geometry("border", "a", lambda: "a")
        scene.cached_geometry("border", "b", lambda: "b")
        scene.update_token(_make_token(id="a", x=10.0))
        assert ("border", "a", None) not in scene._geometry
        assert ("border", "b", None) in scene._geometry
