"""2D polygon reduction: unions, intersections and blocked-area fractions.

Projected obstacle faces and the target silhouette meet here as 2D
polygons. Solid obstacles are unioned directly. Terrain (limited-sight)
obstacles only block where at least two of them overlap, so their
contribution is the union of all pairwise intersections.

Also hosts the two top-down helpers used by the 2D algorithm and by
wall-constrained token borders:

  visibility_polygon  angular sweep from a point over blocking segments
                      inside a rectangle, numpy-vectorized over all rays.
  shadow_polygon      central projection of a 3D face onto a horizontal
                      plane, as seen from a viewer point.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Iterable, Sequence

import numpy as np
from shapely.geometry import LineString, MultiPoint, box
from shapely.geometry import Polygon as ShapelyPolygon
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

from .frustum import truncate_plane_points
from .log import get_logger
from .point3d import Point2D, Point3d

log = get_logger(__name__)

Segment = tuple[float, float, float, float]  # (x1, y1, x2, y2)

# Silhouettes smaller than this (in projected units squared) are degenerate
MIN_TARGET_AREA = 1e-6

# Angular offset of the side rays cast around each endpoint
SWEEP_NUDGE = 1e-5


def to_shapely(points: Sequence[Point2D]) -> BaseGeometry:
    """Polygon from a ring of 2D points; invalid rings are repaired."""
    if len(points) < 3:
        return ShapelyPolygon()
    poly = ShapelyPolygon(points)
    if not poly.is_valid:
        poly = poly.buffer(0)
    return poly


def union_all(polys: Iterable[BaseGeometry | Sequence[Point2D]]) -> BaseGeometry:
    geoms = []
    for p in polys:
        g = p if isinstance(p, BaseGeometry) else to_shapely(p)
        if not g.is_empty:
            geoms.append(g)
    if not geoms:
        return ShapelyPolygon()
    return unary_union(geoms)


def intersect(a: BaseGeometry, b: BaseGeometry) -> BaseGeometry:
    if a.is_empty or b.is_empty:
        return ShapelyPolygon()
    return a.intersection(b)


def combine_terrain(
    polys: Sequence[BaseGeometry | Sequence[Point2D]],
) -> BaseGeometry:
    """Union of pairwise intersections; a lone terrain polygon blocks nothing."""
    geoms = [p if isinstance(p, BaseGeometry) else to_shapely(p) for p in polys]
    geoms = [g for g in geoms if not g.is_empty]
    if len(geoms) < 2:
        return ShapelyPolygon()
    overlaps = []
    for a, b in itertools.combinations(geoms, 2):
        if not a.intersects(b):
            continue
        piece = a.intersection(b)
        if not piece.is_empty and piece.area > 0:
            overlaps.append(piece)
    return union_all(overlaps)


@dataclass
class BlockedArea:
    percent_cover: float
    target_area: float
    blocked_area: float
    warnings: list[str] = field(default_factory=list)


def blocked_fraction(
    target_polys: Sequence[BaseGeometry | Sequence[Point2D]],
    blocking_polys: Sequence[BaseGeometry | Sequence[Point2D]],
    terrain_polys: Sequence[BaseGeometry | Sequence[Point2D]] = (),
    visible_epsilon: float = 0.005,
) -> BlockedArea:
    """Fraction of the target silhouette covered by the obstruction.

    The result is clamped to [0, 1]. A visible remainder below
    `visible_epsilon` counts as fully blocked. A degenerate silhouette gives
    0 and a warning.
    """
    silhouette = union_all(target_polys)
    target_area = float(silhouette.area)
    if target_area < MIN_TARGET_AREA:
        msg = f"degenerate target silhouette (area {target_area:.3g})"
        log.warning("blocked_fraction.degenerate_target", area=target_area)
        return BlockedArea(0.0, target_area, 0.0, [msg])

    obstruction = union_all(
        list(blocking_polys) + [combine_terrain(terrain_polys)]
    )
    blocked = intersect(silhouette, obstruction)
    blocked_area = float(blocked.area)
    percent = min(1.0, max(0.0, blocked_area / target_area))
    if 1.0 - percent < visible_epsilon:
        percent = 1.0
    return BlockedArea(percent, target_area, blocked_area)


def convex_hull(points: Iterable[Point2D]) -> BaseGeometry:
    return MultiPoint(list(points)).convex_hull


def clip_segments(
    segments: Iterable[Segment], bounds: tuple[float, float, float, float]
) -> list[Segment]:
    """Segments cut to the bounds rectangle; pieces outside are dropped.

    Where a wall crosses the rectangle the crossing becomes an endpoint, so
    the sweep casts a ray at it.
    """
    frame = box(*bounds)
    out: list[Segment] = []
    for x1, y1, x2, y2 in segments:
        piece = LineString([(x1, y1), (x2, y2)]).intersection(frame)
        if piece.is_empty or piece.geom_type != "LineString":
            continue
        if piece.length < 1e-9:
            continue
        (ax, ay), (bx, by) = piece.coords[0], piece.coords[-1]
        out.append((ax, ay, bx, by))
    return out


def _sweep_angles(
    ox: float, oy: float, endpoints: np.ndarray
) -> tuple[np.ndarray, np.ndarray]:
    """Unit ray directions at each endpoint and a hair to either side of it,
    ordered by angle."""
    dx = endpoints[:, 0] - ox
    dy = endpoints[:, 1] - oy
    angles = np.arctan2(dy, dx)
    angles = np.concatenate(
        [angles - SWEEP_NUDGE, angles, angles + SWEEP_NUDGE]
    )
    angles.sort()
    return np.cos(angles), np.sin(angles)


def _nearest_hits(
    ox: float,
    oy: float,
    ray_dx: np.ndarray,
    ray_dy: np.ndarray,
    segs: np.ndarray,
) -> np.ndarray:
    """Distance along each ray to the closest segment (inf for a miss)."""
    seg_dx = segs[:, 2] - segs[:, 0]
    seg_dy = segs[:, 3] - segs[:, 1]
    rel_x = segs[:, 0] - ox
    rel_y = segs[:, 1] - oy

    # (rays x segments) cross products
    denom = (
        ray_dx[:, None] * seg_dy[None, :] - ray_dy[:, None] * seg_dx[None, :]
    )
    hit = np.abs(denom) >= 1e-12
    denom = np.where(hit, denom, 1.0)
    t = (rel_x * seg_dy - rel_y * seg_dx)[None, :] / denom
    u = (
        rel_x[None, :] * ray_dy[:, None] - rel_y[None, :] * ray_dx[:, None]
    ) / denom
    hit &= (t >= 0) & (u >= 0) & (u <= 1)
    return np.min(np.where(hit, t, np.inf), axis=1)


def visibility_polygon(
    ox: float,
    oy: float,
    segments: Sequence[Segment],
    bounds: tuple[float, float, float, float],
) -> list[Point2D]:
    """Region visible from (ox, oy) inside `bounds` past blocking segments.

    `bounds` is (min_x, min_y, max_x, max_y) and must contain the origin.
    Segments are clipped to it first. Rays go out at every remaining
    endpoint and at the four corners, each stopping at the nearest
    segment or at the rectangle's edge. The hit points, in angular order,
    form the polygon.
    """
    x0, y0, x1, y1 = bounds
    frame: list[Segment] = [
        (x0, y0, x1, y0),
        (x1, y0, x1, y1),
        (x1, y1, x0, y1),
        (x0, y1, x0, y0),
    ]
    segs = np.array(clip_segments(segments, bounds) + frame, dtype=np.float64)
    endpoints = np.unique(
        np.concatenate([segs[:, 0:2], segs[:, 2:4]]), axis=0
    )
    ray_dx, ray_dy = _sweep_angles(ox, oy, endpoints)
    dist = _nearest_hits(ox, oy, ray_dx, ray_dy, segs)
    found = np.isfinite(dist)
    px = ox + dist[found] * ray_dx[found]
    py = oy + dist[found] * ray_dy[found]
    return list(zip(px.tolist(), py.tolist()))


def shadow_polygon(
    face: Sequence[Point3d],
    viewer: Point3d,
    plane_z: float,
    max_radius: float = 1e6,
) -> list[Point2D]:
    """Region of the plane z = plane_z hidden by `face` from `viewer`.

    Only the slice of the face between the viewer's height and the plane can
    cast a shadow on the plane, so the face is clipped to that band before
    being projected from the viewer. Returns [] when nothing of the face is
    in the band.
    """
    dz = plane_z - viewer.z
    if abs(dz) < 1e-9:
        return _level_shadow(face, viewer, max_radius)

    # Points too close to eye height would project to infinity
    near = viewer.z + dz * 1e-3
    if dz < 0:
        pts = truncate_plane_points(face, near, "z", lambda a, b: a <= b)
        pts = truncate_plane_points(pts, plane_z, "z", lambda a, b: a >= b)
    else:
        pts = truncate_plane_points(face, near, "z", lambda a, b: a >= b)
        pts = truncate_plane_points(pts, plane_z, "z", lambda a, b: a <= b)
    if len(pts) < 2:
        return []

    projected: list[Point2D] = []
    for p in pts:
        t = dz / (p.z - viewer.z)
        projected.append(
            (viewer.x + (p.x - viewer.x) * t, viewer.y + (p.y - viewer.y) * t)
        )
    hull = convex_hull(projected)
    if hull.geom_type != "Polygon" or hull.is_empty:
        return []
    return list(hull.exterior.coords)[:-1]


def _level_shadow(
    face: Sequence[Point3d], viewer: Point3d, max_radius: float
) -> list[Point2D]:
    """Shadow on the viewer's own eye-level plane: a 2D extrusion away from
    the viewer of the face's footprint, if the face spans eye height."""
    zs = [p.z for p in face]
    if not (min(zs) <= viewer.z <= max(zs)) or max(zs) - min(zs) < 1e-9:
        return []
    pts: list[Point2D] = []
    for p in face:
        dx = p.x - viewer.x
        dy = p.y - viewer.y
        d = (dx * dx + dy * dy) ** 0.5
        if d < 1e-9:
            # Viewer stands on the face; it hides everything
            return []
        k = max_radius / d
        pts.append((p.x, p.y))
        pts.append((p.x + dx * k, p.y + dy * k))
    hull = convex_hull(pts)
    if hull.geom_type != "Polygon" or hull.is_empty:
        return []
    return list(hull.exterior.coords)[:-1]
