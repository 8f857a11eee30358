"""3D points and axis-aligned boxes in scene units.

Scene coordinates follow the map: x to the right, y down the map, z up
(elevation). Points are immutable; every operation returns a new Point3d.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable

import numpy as np

from .errors import DegenerateGeometry

EPSILON = 1e-8

Point2D = tuple[float, float]


def almost_equal(a: float, b: float, epsilon: float = EPSILON) -> bool:
    return abs(a - b) <= epsilon


@dataclass(frozen=True, slots=True)
class Point3d:
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    @staticmethod
    def from_2d(p: Point2D, z: float = 0.0) -> Point3d:
        return Point3d(float(p[0]), float(p[1]), float(z))

    @staticmethod
    def midpoint(a: Point3d, b: Point3d) -> Point3d:
        return Point3d(
            (a.x + b.x) * 0.5, (a.y + b.y) * 0.5, (a.z + b.z) * 0.5
        )

    def __add__(self, other: Point3d) -> Point3d:
        return Point3d(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other: Point3d) -> Point3d:
        return Point3d(self.x - other.x, self.y - other.y, self.z - other.z)

    def __mul__(self, scalar: float) -> Point3d:
        return Point3d(self.x * scalar, self.y * scalar, self.z * scalar)

    __rmul__ = __mul__

    def __truediv__(self, scalar: float) -> Point3d:
        return Point3d(self.x / scalar, self.y / scalar, self.z / scalar)

    def __neg__(self) -> Point3d:
        return Point3d(-self.x, -self.y, -self.z)

    def __getitem__(self, axis: str) -> float:
        # Coordinate lookup by name, used by the axis-value clipping helpers.
        if axis == "x":
            return self.x
        if axis == "y":
            return self.y
        if axis == "z":
            return self.z
        raise KeyError(axis)

    def dot(self, other: Point3d) -> float:
        return self.x * other.x + self.y * other.y + self.z * other.z

    def cross(self, other: Point3d) -> Point3d:
        return Point3d(
            self.y * other.z - self.z * other.y,
            self.z * other.x - self.x * other.z,
            self.x * other.y - self.y * other.x,
        )

    def magnitude_squared(self) -> float:
        return self.dot(self)

    def magnitude(self) -> float:
        return math.sqrt(self.magnitude_squared())

    def normalize(self) -> Point3d:
        mag = self.magnitude()
        if mag < EPSILON:
            raise DegenerateGeometry("cannot normalize a zero-length vector")
        return self / mag

    def distance_to(self, other: Point3d) -> float:
        return (self - other).magnitude()

    def almost_equal(self, other: Point3d, epsilon: float = EPSILON) -> bool:
        return (
            almost_equal(self.x, other.x, epsilon)
            and almost_equal(self.y, other.y, epsilon)
            and almost_equal(self.z, other.z, epsilon)
        )

    def with_z(self, z: float) -> Point3d:
        return Point3d(self.x, self.y, z)

    def to_2d(self) -> Point2D:
        return (self.x, self.y)

    def to_array(self, homogeneous: bool = False) -> np.ndarray:
        if homogeneous:
            return np.array([self.x, self.y, self.z, 1.0], dtype=np.float64)
        return np.array([self.x, self.y, self.z], dtype=np.float64)

    def project_to_axis_value(
        self, other: Point3d, value: float, axis: str = "z"
    ) -> Point3d | None:
        """Point on the line self -> other whose `axis` coordinate is `value`.

        Returns None when the line is parallel to the cutoff plane.
        """
        a = self[axis]
        b = other[axis]
        if almost_equal(a, b, 1e-12):
            return None
        t = (value - a) / (b - a)
        p = self + (other - self) * t
        # Pin the clipped coordinate so downstream cutoff tests are exact.
        if axis == "x":
            return Point3d(value, p.y, p.z)
        if axis == "y":
            return Point3d(p.x, value, p.z)
        return Point3d(p.x, p.y, value)

    def toward_z(self, other: Point3d, z: float) -> Point3d | None:
        return self.project_to_axis_value(other, z, "z")


@dataclass(frozen=True)
class AABB3d:
    min: Point3d
    max: Point3d

    @staticmethod
    def from_points(points: Iterable[Point3d]) -> AABB3d:
        pts = list(points)
        if not pts:
            raise DegenerateGeometry("bounding box of no points")
        return AABB3d(
            min=Point3d(
                min(p.x for p in pts), min(p.y for p in pts), min(p.z for p in pts)
            ),
            max=Point3d(
                max(p.x for p in pts), max(p.y for p in pts), max(p.z for p in pts)
            ),
        )

    @property
    def center(self) -> Point3d:
        return Point3d.midpoint(self.min, self.max)

    def corners(self) -> list[Point3d]:
        lo, hi = self.min, self.max
        return [
            Point3d(x, y, z)
            for x in (lo.x, hi.x)
            for y in (lo.y, hi.y)
            for z in (lo.z, hi.z)
        ]

    def to_finite(self, max_radius: float = 1e6) -> AABB3d:
        """Clamp infinite coordinates to +/- max_radius."""

        def clamp(v: float) -> float:
            return max(-max_radius, min(max_radius, v))

        return AABB3d(
            min=Point3d(clamp(self.min.x), clamp(self.min.y), clamp(self.min.z)),
            max=Point3d(clamp(self.max.x), clamp(self.max.y), clamp(self.max.z)),
        )

    def contains(self, p: Point3d) -> bool:
        return (
            self.min.x <= p.x <= self.max.x
            and self.min.y <= p.y <= self.max.y
            and self.min.z <= p.z <= self.max.z
        )
