"""Ray and segment intersection against obstacle faces.

The basic test is Moller-Trumbore against the two triangles of a quad,
(0, 1, 2) and (0, 2, 3). Triangles are single-sided, so a miss is retried
with the vertex order reversed to catch hits from the back side. Faces with
more than four points fall back to a plane intersection plus a
point-in-polygon test in the plane's own 2D basis.

Limited-sight (terrain) walls only block when a ray crosses two of them.
The collision modes reflect that:

  any      True if the segment hits a normal obstacle or two limited walls.
  all      every hit, sorted by distance along the segment.
  sorted   the sorted hits with a single leading limited hit removed.
  closest  the first of "sorted", or None.

Wall-only queries prefilter candidates in 2D: an STRtree over the wall
segments narrows the set, and the segment must cross the wall's footprint.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from shapely.geometry import LineString
from shapely.strtree import STRtree

from .errors import ConfigurationError, DegenerateGeometry
from .placeables import PlanePoints, WallPoints
from .plane import Plane
from .point3d import Point2D, Point3d

EPSILON = 1e-8
# Segment hits count for t in [SEGMENT_EPSILON, 1 + SEGMENT_EPSILON]
SEGMENT_EPSILON = 1e-6

MODE_ANY = "any"
MODE_ALL = "all"
MODE_CLOSEST = "closest"
MODE_SORTED = "sorted"
MODES = (MODE_ANY, MODE_ALL, MODE_CLOSEST, MODE_SORTED)


@dataclass
class Hit:
    point: Point3d
    t: float
    obstacle_id: str | None
    blocks_fully: bool = True


def segments_intersect_inclusive(
    x1: float,
    y1: float,
    x2: float,
    y2: float,
    x3: float,
    y3: float,
    x4: float,
    y4: float,
) -> bool:
    """Test if two 2D segments intersect, endpoints included."""
    denominator = (y4 - y3) * (x2 - x1) - (x4 - x3) * (y2 - y1)

    if denominator == 0:
        return False

    ua = ((x4 - x3) * (y1 - y3) - (y4 - y3) * (x1 - x3)) / denominator
    if ua < 0 or ua > 1:
        return False

    ub = ((x2 - x1) * (y1 - y3) - (y2 - y1) * (x1 - x3)) / denominator
    return 0 <= ub <= 1


def point_in_polygon(px: float, py: float, vertices: Sequence[Point2D]) -> bool:
    """Ray-casting point-in-polygon test."""
    n = len(vertices)
    inside = False
    j = n - 1
    for i in range(n):
        xi, yi = vertices[i]
        xj, yj = vertices[j]
        if (yi > py) != (yj > py):
            intersect_x = (xj - xi) * (py - yi) / (yj - yi) + xi
            if px < intersect_x:
                inside = not inside
        j = i
    return inside


def ray_triangle_intersection(
    origin: Point3d,
    direction: Point3d,
    v0: Point3d,
    v1: Point3d,
    v2: Point3d,
) -> float | None:
    """Moller-Trumbore; returns t along the ray for front-side hits only."""
    edge1 = v1 - v0
    edge2 = v2 - v0
    h = direction.cross(edge2)
    det = edge1.dot(h)
    if det < EPSILON:
        return None
    inv_det = 1.0 / det
    s = origin - v0
    u = s.dot(h) * inv_det
    if u < -EPSILON or u > 1.0 + EPSILON:
        return None
    q = s.cross(edge1)
    v = direction.dot(q) * inv_det
    if v < -EPSILON or u + v > 1.0 + EPSILON:
        return None
    t = edge2.dot(q) * inv_det
    return t if t >= 0 else None


def _fan_hit(
    origin: Point3d, direction: Point3d, quad: Sequence[Point3d]
) -> float | None:
    t = ray_triangle_intersection(origin, direction, quad[0], quad[1], quad[2])
    if t is None and len(quad) > 3:
        t = ray_triangle_intersection(
            origin, direction, quad[0], quad[2], quad[3]
        )
    return t


def ray_quad_intersection(
    origin: Point3d, direction: Point3d, quad: Sequence[Point3d]
) -> float | None:
    """t of the ray's hit on a triangle or quad, from either side."""
    t = _fan_hit(origin, direction, quad)
    if t is None:
        t = _fan_hit(origin, direction, list(reversed(quad)))
    return t


def ray_polygon_intersection(
    origin: Point3d,
    direction: Point3d,
    points: Sequence[Point3d],
    plane: Plane | None = None,
) -> float | None:
    """t of the ray's hit on a planar polygon of any size."""
    if len(points) < 3:
        return None
    if len(points) <= 4:
        return ray_quad_intersection(origin, direction, points)
    if plane is None:
        try:
            plane = Plane.from_points(points[0], points[1], points[2])
        except DegenerateGeometry:
            return None
    denom = plane.normal.dot(direction)
    if abs(denom) < EPSILON:
        return None
    t = -plane.normal.dot(origin - plane.point) / denom
    if t < 0:
        return None
    hit = origin + direction * t
    px, py = plane.to_2d(hit)
    if not point_in_polygon(px, py, [plane.to_2d(p) for p in points]):
        return None
    return t


def _face_plane(face: PlanePoints) -> Plane | None:
    try:
        return face.plane
    except DegenerateGeometry:
        return None


def segment_face_intersection(
    a: Point3d, b: Point3d, face: PlanePoints
) -> Hit | None:
    """Hit of segment a -> b on `face`, or None."""
    direction = b - a
    if len(face.points) > 4:
        t = ray_polygon_intersection(a, direction, face.points, _face_plane(face))
        if t is not None and not _within_segment(t):
            t = None
    else:
        t = segment_quad_intersection(a, b, face.points)
    if t is None:
        return None
    return Hit(
        point=a + direction * t,
        t=t,
        obstacle_id=face.object_id,
        blocks_fully=not getattr(face, "is_limited", False),
    )


def _within_segment(t: float) -> bool:
    return SEGMENT_EPSILON <= t <= 1.0 + SEGMENT_EPSILON


def segment_quad_intersection(
    a: Point3d, b: Point3d, quad: Sequence[Point3d]
) -> float | None:
    """Fraction t along a -> b where it crosses `quad`, or None."""
    t = ray_quad_intersection(a, b - a, quad)
    if t is None or not _within_segment(t):
        return None
    return t


def _crosses_wall_2d(a: Point3d, b: Point3d, wall: WallPoints) -> bool:
    w = wall.wall
    if abs(a.x - b.x) < EPSILON and abs(a.y - b.y) < EPSILON:
        return False
    return segments_intersect_inclusive(
        a.x, a.y, b.x, b.y, w.ax, w.ay, w.bx, w.by
    )


def resolve_hits(hits: list[Hit], mode: str):
    """Reduce raw hits according to `mode`; see the module docstring."""
    if mode not in MODES:
        raise ConfigurationError(f"unknown collision mode {mode!r}")
    if mode == MODE_ANY:
        limited = 0
        for h in hits:
            if h.blocks_fully:
                return True
            limited += 1
            if limited >= 2:
                return True
        return False
    hits = sorted(hits, key=lambda h: h.t)
    if mode == MODE_ALL:
        return hits
    if hits and not hits[0].blocks_fully:
        hits = hits[1:]
    if mode == MODE_SORTED:
        return hits
    return hits[0] if hits else None


def test_collision_3d(
    origin: Point3d,
    destination: Point3d,
    faces: Iterable[PlanePoints],
    mode: str = MODE_ANY,
):
    """Collide the segment with walls, tiles, drawings and token faces."""
    if mode not in MODES:
        raise ConfigurationError(f"unknown collision mode {mode!r}")
    hits: list[Hit] = []
    for face in faces:
        if isinstance(face, WallPoints) and not _crosses_wall_2d(
            origin, destination, face
        ):
            continue
        hit = segment_face_intersection(origin, destination, face)
        if hit is None:
            continue
        if mode == MODE_ANY and hit.blocks_fully:
            return True
        hits.append(hit)
    return resolve_hits(hits, mode)


class WallIndex:
    """STRtree over wall footprints for 2D candidate lookup."""

    def __init__(self, walls: Sequence[WallPoints]) -> None:
        self.walls = list(walls)
        self._tree = STRtree(
            [LineString([w.wall.a, w.wall.b]) for w in self.walls]
        )

    def __len__(self) -> int:
        return len(self.walls)

    def query(self, geom) -> list[WallPoints]:
        if not self.walls:
            return []
        idx = self._tree.query(geom, predicate="intersects")
        return [self.walls[i] for i in sorted(int(i) for i in idx)]

    def along_segment(self, a: Point3d, b: Point3d) -> list[WallPoints]:
        if abs(a.x - b.x) < EPSILON and abs(a.y - b.y) < EPSILON:
            return []
        return self.query(LineString([a.to_2d(), b.to_2d()]))
