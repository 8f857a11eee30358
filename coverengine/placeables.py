"""3D face builders for scene obstacles.

Each obstacle becomes one or more PlanePoints faces: a closed ring of
world-space points. Setting a view matrix transforms the ring into camera
space and truncates it at the near cutoff; the transformed ring can then be
perspective-projected to a 2D polygon.

  WallPoints     one vertical quad, top edge first (A top, B top, B bottom,
                 A bottom). Unbounded elevations become +/- max_radius.
  TilePoints     one horizontal quad at the tile elevation.
  DrawingPoints  one horizontal polygon at the drawing elevation.
  TokenPoints    a prism over the token footprint. Which faces are used
                 depends on the viewer: side faces whose outward normal
                 points toward the viewer, plus the top face when the
                 viewer is above the prism or the bottom face when below.

Builders raise MissingObstacleData when a record lacks coordinates or
elevation and DegenerateGeometry for zero-size shapes; the obstacle
gatherer catches both and drops the obstacle from the query.
"""

from __future__ import annotations

import math
from typing import Sequence

import numpy as np

from .errors import DegenerateGeometry, MissingObstacleData
from .frustum import (
    NEAR_CUTOFF,
    PROJECTION_MULTIPLIER,
    perspective_transform,
    truncate_to_cutoff,
)
from .matrix import Matrix
from .plane import Plane
from .point3d import EPSILON, AABB3d, Point2D, Point3d
from .types import Drawing, Tile, Token, Wall

MAX_RADIUS = 1e6

# Zero-height tokens are given this much height so their prism has sides.
MIN_TOKEN_HEIGHT = 2.0


def _is_missing(v) -> bool:
    return v is None or (isinstance(v, float) and math.isnan(v))


class PlanePoints:
    """A planar face as a closed ring of 3D points."""

    def __init__(
        self, points: Sequence[Point3d], object_id: str | None = None
    ) -> None:
        self.points: list[Point3d] = list(points)
        self.object_id = object_id
        self.view_is_set = False
        self._view: Matrix | None = None
        self._tpoints: list[Point3d] = []
        self._plane: Plane | None = None

    def __len__(self) -> int:
        return len(self.points)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.object_id!r}, {len(self.points)} points)"

    @property
    def plane(self) -> Plane:
        if self._plane is None:
            self._plane = self._derive_plane()
        return self._plane

    def _derive_plane(self) -> Plane:
        pts = self.points
        n = len(pts)
        for i in range(n):
            for j in range(i + 1, n):
                for k in range(j + 1, n):
                    try:
                        return Plane.from_points(pts[i], pts[j], pts[k])
                    except DegenerateGeometry:
                        continue
        raise DegenerateGeometry(f"face {self.object_id!r} has no plane")

    @property
    def tpoints(self) -> list[Point3d]:
        """Camera-space points; may have more or fewer points after truncation."""
        if not self.view_is_set:
            if self._view is None:
                raise ValueError(f"view matrix is not set for {self!r}")
            self.set_view_matrix(self._view)
        return self._tpoints

    def centroid(self) -> Point3d:
        n = len(self.points)
        return Point3d(
            sum(p.x for p in self.points) / n,
            sum(p.y for p in self.points) / n,
            sum(p.z for p in self.points) / n,
        )

    def aabb(self) -> AABB3d:
        return AABB3d.from_points(self.points)

    def set_view_matrix(self, m: Matrix, cutoff: float = NEAR_CUTOFF) -> None:
        self._view = m
        rows = np.array(
            [(p.x, p.y, p.z, 1.0) for p in self.points], dtype=np.float64
        ) @ m.arr
        cam = [Point3d(r[0], r[1], r[2]) for r in rows]
        self._tpoints = truncate_to_cutoff(cam, cutoff)
        self.view_is_set = True

    def clear_view(self) -> None:
        self._view = None
        self._tpoints = []
        self.view_is_set = False

    def perspective_transform(
        self, multiplier: float = PROJECTION_MULTIPLIER
    ) -> list[Point2D]:
        tpts = self.tpoints
        if len(tpts) < 3:
            return []
        return perspective_transform(tpts, multiplier)

    def is_facing(self, viewer: Point3d) -> bool:
        """True if the viewer is on the normal side of this face."""
        return self.plane.which_side(viewer) > 0


class WallPoints(PlanePoints):
    def __init__(self, wall: Wall, max_radius: float = MAX_RADIUS) -> None:
        for name in ("ax", "ay", "bx", "by"):
            if _is_missing(getattr(wall, name)):
                raise MissingObstacleData(wall.id, name)
        if abs(wall.ax - wall.bx) < EPSILON and abs(wall.ay - wall.by) < EPSILON:
            raise DegenerateGeometry(f"wall {wall.id!r} has zero length")
        top = min(wall.top_z, max_radius)
        bottom = max(wall.bottom_z, -max_radius)
        if top <= bottom:
            raise DegenerateGeometry(
                f"wall {wall.id!r} has no height ({bottom} to {top})"
            )
        super().__init__(
            [
                Point3d(wall.ax, wall.ay, top),
                Point3d(wall.bx, wall.by, top),
                Point3d(wall.bx, wall.by, bottom),
                Point3d(wall.ax, wall.ay, bottom),
            ],
            object_id=wall.id,
        )
        self.wall = wall
        self.top_z = top
        self.bottom_z = bottom

    @property
    def is_limited(self) -> bool:
        return self.wall.is_limited

    @property
    def direction(self) -> str:
        return self.wall.direction


class TilePoints(PlanePoints):
    def __init__(self, tile: Tile) -> None:
        if _is_missing(tile.elevation):
            raise MissingObstacleData(tile.id, "elevation")
        for name in ("x", "y", "width", "height"):
            if _is_missing(getattr(tile, name)):
                raise MissingObstacleData(tile.id, name)
        if tile.width <= 0 or tile.height <= 0:
            raise DegenerateGeometry(f"tile {tile.id!r} has zero area")
        z = float(tile.elevation)  # type: ignore[arg-type]
        super().__init__(
            [Point3d(x, y, z) for x, y in tile.polygon()], object_id=tile.id
        )
        self.tile = tile
        self.elevation = z


class DrawingPoints(PlanePoints):
    def __init__(self, drawing: Drawing) -> None:
        if _is_missing(drawing.elevation):
            raise MissingObstacleData(drawing.id, "elevation")
        if len(drawing.points) < 3:
            raise DegenerateGeometry(
                f"drawing {drawing.id!r} has {len(drawing.points)} points"
            )
        z = float(drawing.elevation)  # type: ignore[arg-type]
        super().__init__(
            [Point3d(x, y, z) for x, y in drawing.points], object_id=drawing.id
        )
        self.drawing = drawing
        self.elevation = z


# Side face with precomputed outward normal: (face, mid_x, mid_y, nx, ny)
_SideFace = tuple[PlanePoints, float, float, float, float]


class TokenPoints:
    """Prism over a token footprint, from bottom_z to the (prone-aware) top."""

    def __init__(
        self, token: Token, footprint: Sequence[Point2D] | None = None
    ) -> None:
        if _is_missing(token.x) or _is_missing(token.y):
            raise MissingObstacleData(token.id, "position")
        if not token.has_elevation():
            raise MissingObstacleData(token.id, "elevation")
        pts = list(footprint) if footprint is not None else token.footprint()
        if len(pts) < 3:
            raise DegenerateGeometry(f"token {token.id!r} has no footprint")

        self.token = token
        self.bottom_z = float(token.bottom_z)  # type: ignore[arg-type]
        top = float(token.effective_top_z)
        if abs(top - self.bottom_z) < EPSILON:
            top = self.bottom_z + MIN_TOKEN_HEIGHT
        self.top_z = top
        self.footprint: list[Point2D] = pts

        self.top = PlanePoints(
            [Point3d(x, y, top) for x, y in pts], object_id=token.id
        )
        self.bottom = PlanePoints(
            [Point3d(x, y, self.bottom_z) for x, y in reversed(pts)],
            object_id=token.id,
        )
        self.sides = self._build_sides(pts)

    def _build_sides(self, pts: list[Point2D]) -> list[_SideFace]:
        n = len(pts)
        cx = sum(p[0] for p in pts) / n
        cy = sum(p[1] for p in pts) / n
        top, bottom = self.top_z, self.bottom_z
        sides: list[_SideFace] = []
        for i in range(n):
            x0, y0 = pts[i]
            x1, y1 = pts[(i + 1) % n]
            ex = x1 - x0
            ey = y1 - y0
            if abs(ex) < EPSILON and abs(ey) < EPSILON:
                continue
            mx = (x0 + x1) / 2.0
            my = (y0 + y1) / 2.0
            nx, ny = ey, -ex
            if (cx - mx) * nx + (cy - my) * ny > 0:
                nx, ny = -nx, -ny
            face = PlanePoints(
                [
                    Point3d(x0, y0, top),
                    Point3d(x0, y0, bottom),
                    Point3d(x1, y1, bottom),
                    Point3d(x1, y1, top),
                ],
                object_id=self.token.id,
            )
            sides.append((face, mx, my, nx, ny))
        return sides

    @property
    def token_id(self) -> str:
        return self.token.id

    def all_faces(self) -> list[PlanePoints]:
        return [self.top, self.bottom] + [s[0] for s in self.sides]

    def viewable_sides(self, viewer: Point3d) -> list[PlanePoints]:
        return [
            face
            for face, mx, my, nx, ny in self.sides
            if (viewer.x - mx) * nx + (viewer.y - my) * ny > EPSILON
        ]

    def faces(self, viewer: Point3d) -> list[PlanePoints]:
        """Faces visible from the viewer: facing sides, plus top or bottom."""
        faces = self.viewable_sides(viewer)
        if viewer.z > self.top_z:
            faces.append(self.top)
        elif viewer.z < self.bottom_z:
            faces.append(self.bottom)
        return faces

    def aabb(self) -> AABB3d:
        xs = [p[0] for p in self.footprint]
        ys = [p[1] for p in self.footprint]
        return AABB3d(
            min=Point3d(min(xs), min(ys), self.bottom_z),
            max=Point3d(max(xs), max(ys), self.top_z),
        )
