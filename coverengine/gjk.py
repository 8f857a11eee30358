"""2D GJK intersection test and EPA penetration vector for convex polygons.

GJK evolves a simplex in the Minkowski difference A - B, built from
support points sup_A(d) - sup_B(-d), until it either encloses the origin
(the shapes overlap) or a support point fails to pass the origin (they do
not). EPA then expands that simplex toward the boundary of A - B to find
the shallowest way out.

Winding names follow the y-up shoelace sign: a positive signed area is
counter-clockwise.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

from .errors import DegenerateGeometry
from .point3d import Point2D

EPA_TOLERANCE = 1e-6
EPA_MAX_ITERATIONS = 32
GJK_MAX_ITERATIONS = 64

CLOCKWISE = "clockwise"
COUNTER_CLOCKWISE = "counter_clockwise"


def _sub(a: Point2D, b: Point2D) -> Point2D:
    return (a[0] - b[0], a[1] - b[1])


def _neg(a: Point2D) -> Point2D:
    return (-a[0], -a[1])


def _dot(a: Point2D, b: Point2D) -> float:
    return a[0] * b[0] + a[1] * b[1]


def triple_product(a: Point2D, b: Point2D, c: Point2D) -> Point2D:
    """(a x b) x c with the vectors lifted to z = 0."""
    z = a[0] * b[1] - a[1] * b[0]
    return (-z * c[1], z * c[0])


class ConvexPolygon:
    def __init__(self, points: Sequence[Point2D]) -> None:
        if len(points) < 1:
            raise DegenerateGeometry("convex polygon needs at least one point")
        self.points: list[Point2D] = [(float(x), float(y)) for x, y in points]

    def __repr__(self) -> str:
        return f"ConvexPolygon({self.points!r})"

    def support(self, direction: Point2D) -> Point2D:
        """Vertex furthest along `direction`."""
        return max(self.points, key=lambda p: _dot(p, direction))

    def centroid(self) -> Point2D:
        pts = self.points
        n = len(pts)
        area = 0.0
        cx = 0.0
        cy = 0.0
        for i in range(n):
            x0, y0 = pts[i]
            x1, y1 = pts[(i + 1) % n]
            a = x0 * y1 - x1 * y0
            area += a
            cx += (x0 + x1) * a
            cy += (y0 + y1) * a
        if abs(area) < 1e-12:
            return (sum(p[0] for p in pts) / n, sum(p[1] for p in pts) / n)
        area *= 0.5
        return (cx / (6.0 * area), cy / (6.0 * area))


@dataclass
class Penetration:
    normal: Point2D
    depth: float

    @property
    def vector(self) -> Point2D:
        return (self.normal[0] * self.depth, self.normal[1] * self.depth)


def _support(a: ConvexPolygon, b: ConvexPolygon, d: Point2D) -> Point2D:
    return _sub(a.support(d), b.support(_neg(d)))


def gjk(a: ConvexPolygon, b: ConvexPolygon) -> list[Point2D] | None:
    """Triangle simplex enclosing the origin, or None if A and B are apart.

    Touching shapes count as overlapping.
    """
    ca = a.centroid()
    cb = b.centroid()
    direction = _sub(cb, ca)
    if direction == (0.0, 0.0):
        direction = (1.0, 0.0)
    simplex: list[Point2D] = [_support(a, b, direction)]
    direction = _neg(simplex[0])

    for _ in range(GJK_MAX_ITERATIONS):
        if _dot(direction, direction) < 1e-18:
            # Origin lies on the current simplex edge or vertex
            return _fill_simplex(a, b, simplex)
        p = _support(a, b, direction)
        if _dot(p, direction) < 0:
            return None
        simplex.append(p)

        if len(simplex) == 2:
            b_pt, c_pt = simplex[1], simplex[0]
            cb_ = _sub(b_pt, c_pt)
            direction = triple_product(cb_, _neg(c_pt), cb_)
            continue

        a_pt, b_pt, c_pt = simplex[2], simplex[1], simplex[0]
        a0 = _neg(a_pt)
        ab = _sub(b_pt, a_pt)
        ac = _sub(c_pt, a_pt)
        ab_perp = triple_product(ac, ab, ab)
        ac_perp = triple_product(ab, ac, ac)
        if _dot(ab_perp, a0) > 0:
            del simplex[0]
            direction = ab_perp
        elif _dot(ac_perp, a0) > 0:
            del simplex[1]
            direction = ac_perp
        else:
            return simplex
    return None


def _fill_simplex(
    a: ConvexPolygon, b: ConvexPolygon, simplex: list[Point2D]
) -> list[Point2D]:
    """Grow a degenerate simplex to a triangle for EPA."""
    out = list(simplex)
    for d in ((1.0, 0.0), (0.0, 1.0), (-1.0, 0.0), (0.0, -1.0)):
        if len(out) >= 3:
            break
        p = _support(a, b, d)
        if p not in out:
            out.append(p)
    return out


def winding(points: Sequence[Point2D]) -> str:
    n = len(points)
    total = 0.0
    for i in range(n):
        x0, y0 = points[i]
        x1, y1 = points[(i + 1) % n]
        total += (x1 - x0) * (y1 + y0)
    return CLOCKWISE if total >= 0 else COUNTER_CLOCKWISE


def _closest_edge(
    simplex: list[Point2D], wind: str
) -> tuple[float, Point2D, int]:
    best = (math.inf, (0.0, 0.0), 0)
    n = len(simplex)
    for i in range(n):
        j = (i + 1) % n
        ex, ey = _sub(simplex[j], simplex[i])
        if wind == CLOCKWISE:
            nx, ny = -ey, ex
        else:
            nx, ny = ey, -ex
        length = math.hypot(nx, ny)
        if length < 1e-12:
            continue
        normal = (nx / length, ny / length)
        dist = _dot(normal, simplex[i])
        if dist < best[0]:
            best = (dist, normal, j)
    return best


def epa(
    simplex: list[Point2D], a: ConvexPolygon, b: ConvexPolygon
) -> Penetration:
    """Penetration of A into B, starting from a GJK simplex."""
    polytope = list(simplex)
    wind = winding(polytope)
    dist, normal, index = _closest_edge(polytope, wind)
    for _ in range(EPA_MAX_ITERATIONS):
        support = _support(a, b, normal)
        d = _dot(support, normal)
        if abs(d - dist) <= EPA_TOLERANCE:
            return Penetration(normal, d)
        polytope.insert(index, support)
        dist, normal, index = _closest_edge(polytope, wind)
    return Penetration(normal, dist)


def shapes_overlap(a: Sequence[Point2D], b: Sequence[Point2D]) -> bool:
    return gjk(ConvexPolygon(a), ConvexPolygon(b)) is not None


def penetration_vector(
    a: Sequence[Point2D], b: Sequence[Point2D]
) -> Point2D | None:
    """Vector that A must move by, negated, to stop overlapping B; None if
    they are apart."""
    pa = ConvexPolygon(a)
    pb = ConvexPolygon(b)
    simplex = gjk(pa, pb)
    if simplex is None:
        return None
    return epa(simplex, pa, pb).vector
