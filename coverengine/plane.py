"""Infinite planes in 3D.

A Plane is stored as a point on the plane plus a unit normal. The in-plane
basis (u, v) gives a 2D parameterization used to flatten planar faces
before running 2D polygon operations on them.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .errors import DegenerateGeometry
from .matrix import Matrix
from .point3d import EPSILON, Point2D, Point3d


@dataclass(frozen=True)
class Plane:
    point: Point3d = field(default_factory=Point3d)
    normal: Point3d = field(default_factory=lambda: Point3d(0.0, 0.0, 1.0))

    def __post_init__(self) -> None:
        # Store a unit normal; raises DegenerateGeometry for a zero normal.
        object.__setattr__(self, "normal", self.normal.normalize())

    @staticmethod
    def from_points(a: Point3d, b: Point3d, c: Point3d) -> Plane:
        """Plane through three points; normal follows (b - a) x (c - a)."""
        n = (b - a).cross(c - a)
        if n.magnitude() < EPSILON:
            raise DegenerateGeometry(f"collinear points {a}, {b}, {c}")
        return Plane(point=a, normal=n)

    def vectors_on_plane(self) -> tuple[Point3d, Point3d]:
        """Orthonormal u, v with u x v == normal.

        Seeds from the axis least aligned with the normal so the cross
        product never degenerates.
        """
        n = self.normal
        ax, ay, az = abs(n.x), abs(n.y), abs(n.z)
        if ax <= ay and ax <= az:
            w = Point3d(1.0, 0.0, 0.0)
        elif ay <= az:
            w = Point3d(0.0, 1.0, 0.0)
        else:
            w = Point3d(0.0, 0.0, 1.0)
        u = w.cross(n).normalize()
        v = n.cross(u).normalize()
        return u, v

    def rotation_to_2d_matrix(self) -> Matrix:
        """Matrix taking plane coordinates (u, v, n, 1) to world space.

        Its inverse maps world points onto the plane basis, where z is the
        signed distance from the plane.
        """
        u, v = self.vectors_on_plane()
        n = self.normal
        p = self.point
        return Matrix(
            [
                [u.x, u.y, u.z, 0.0],
                [v.x, v.y, v.z, 0.0],
                [n.x, n.y, n.z, 0.0],
                [p.x, p.y, p.z, 1.0],
            ]
        )

    def to_2d(self, p: Point3d) -> Point2D:
        u, v = self.vectors_on_plane()
        d = p - self.point
        return (d.dot(u), d.dot(v))

    def from_2d(self, p: Point2D) -> Point3d:
        u, v = self.vectors_on_plane()
        return self.point + u * p[0] + v * p[1]

    def signed_distance(self, p: Point3d) -> float:
        return (p - self.point).dot(self.normal)

    def which_side(self, p: Point3d) -> int:
        """1 if p is on the normal side, -1 if opposite, 0 if on the plane."""
        d = self.signed_distance(p)
        if abs(d) < EPSILON:
            return 0
        return 1 if d > 0 else -1

    def is_point_on_plane(self, p: Point3d, epsilon: float = 1e-6) -> bool:
        return abs(self.signed_distance(p)) <= epsilon

    def line_intersection(
        self, origin: Point3d, direction: Point3d
    ) -> Point3d | None:
        """Intersection with the infinite line origin + t * direction."""
        denom = self.normal.dot(direction)
        if abs(denom) < EPSILON:
            return None
        t = -self.normal.dot(origin - self.point) / denom
        return origin + direction * t

    def segment_intersection(self, a: Point3d, b: Point3d) -> Point3d | None:
        """Intersection with segment a-b, or None if it does not cross."""
        da = self.signed_distance(a)
        db = self.signed_distance(b)
        if (da > EPSILON and db > EPSILON) or (da < -EPSILON and db < -EPSILON):
            return None
        if abs(da - db) < EPSILON:
            # Parallel; only touches if it lies in the plane
            return a if abs(da) <= EPSILON else None
        t = da / (da - db)
        return a + (b - a) * t
