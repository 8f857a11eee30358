"""Sample points on token footprints.

Point counts:

  1   center
  4   corners
  5   center + corners
  9   center + corners + midpoints between consecutive corners
  17  center, plus the eight non-center points of the 9-set at both the
      top and the bottom of the token

Corners are taken from the footprint's bounding box and pulled toward the
center by the inset fraction; an inset of 0 still pulls them 1 unit in so
points never sit exactly on a wall that touches the token's edge.
"""

from __future__ import annotations

import math
from typing import Sequence

from shapely.geometry import Polygon as ShapelyPolygon
from shapely.geometry import box

from .errors import ConfigurationError
from .point3d import Point2D, Point3d
from .types import Token

TARGET_POINT_COUNTS = (1, 4, 5, 9, 17)
VIEWER_POINT_COUNTS = (1, 4, 5, 9)


def bbox_corners(points: Sequence[Point2D]) -> list[Point2D]:
    xs = [p[0] for p in points]
    ys = [p[1] for p in points]
    x0, x1, y0, y1 = min(xs), max(xs), min(ys), max(ys)
    return [(x0, y0), (x1, y0), (x1, y1), (x0, y1)]


def inset_points(
    points: Sequence[Point2D], center: Point2D, inset: float
) -> list[Point2D]:
    """Move each point toward `center` by `inset` of the way, or 1 unit if
    inset is 0."""
    cx, cy = center
    out: list[Point2D] = []
    for x, y in points:
        dx = cx - x
        dy = cy - y
        if inset > 0:
            out.append((x + dx * inset, y + dy * inset))
            continue
        dist = math.hypot(dx, dy)
        if dist <= 1.0:
            out.append((cx, cy))
        else:
            out.append((x + dx / dist, y + dy / dist))
    return out


def _midpoints(corners: Sequence[Point2D]) -> list[Point2D]:
    n = len(corners)
    return [
        (
            (corners[i][0] + corners[(i + 1) % n][0]) / 2.0,
            (corners[i][1] + corners[(i + 1) % n][1]) / 2.0,
        )
        for i in range(n)
    ]


def shape_points_2d(
    kind: int,
    footprint: Sequence[Point2D],
    center: Point2D,
    inset: float = 0.75,
) -> list[Point2D]:
    """2D sample points for kind 1/4/5/9; center first when included."""
    if kind == 1:
        return [center]
    corners = inset_points(bbox_corners(footprint), center, inset)
    if kind == 4:
        return corners
    if kind == 5:
        return [center] + corners
    if kind == 9:
        return [center] + corners + _midpoints(corners)
    raise ConfigurationError(f"unsupported 2D point count {kind}")


def token_points(
    kind: int,
    footprint: Sequence[Point2D],
    center: Point2D,
    z: float,
    inset: float = 0.75,
    top: float | None = None,
    bottom: float | None = None,
) -> list[Point3d]:
    """3D sample points for a footprint.

    Kinds 1/4/5/9 sit at height `z`. Kind 17 puts the center at `z` and the
    other eight points at `top` and at `bottom`.
    """
    if kind not in TARGET_POINT_COUNTS:
        raise ConfigurationError(
            f"point count must be one of {TARGET_POINT_COUNTS}, got {kind}"
        )
    if kind != 17:
        return [
            Point3d(x, y, z)
            for x, y in shape_points_2d(kind, footprint, center, inset)
        ]
    if top is None or bottom is None:
        raise ConfigurationError("17 points need the token top and bottom")
    ring = shape_points_2d(9, footprint, center, inset)[1:]
    pts = [Point3d(center[0], center[1], z)]
    pts.extend(Point3d(x, y, top) for x, y in ring)
    pts.extend(Point3d(x, y, bottom) for x, y in ring)
    return pts


def target_points(
    token: Token,
    kind: int,
    inset: float = 0.75,
    footprint: Sequence[Point2D] | None = None,
) -> list[Point3d]:
    """Sample points on a target; `footprint` overrides the token's own
    (used for constrained borders and large-target cells)."""
    fp = list(footprint) if footprint is not None else token.footprint()
    if footprint is not None:
        c = ShapelyPolygon(fp).centroid
        center = (c.x, c.y)
    else:
        center = token.center_2d
    return token_points(
        kind,
        fp,
        center,
        token.avg_z,
        inset,
        top=token.effective_top_z,
        bottom=token.bottom_z,
    )


def viewer_points(
    token: Token,
    kind: int = 1,
    inset: float = 0.75,
    offset: Point3d | None = None,
) -> list[Point3d]:
    """Eye points on the viewer's footprint at eye height."""
    if kind not in VIEWER_POINT_COUNTS:
        raise ConfigurationError(
            f"viewer point count must be one of {VIEWER_POINT_COUNTS}, "
            f"got {kind}"
        )
    eye = token.eye_point(offset)
    center = (eye.x, eye.y)
    fp = [(x - token.x + eye.x, y - token.y + eye.y) for x, y in token.footprint()]
    return [
        Point3d(x, y, eye.z)
        for x, y in shape_points_2d(kind, fp, center, inset)
    ]


def grid_cells(
    footprint: Sequence[Point2D], grid_size: float
) -> list[list[Point2D]]:
    """Split a footprint into grid_size squares clipped to the footprint.

    A footprint no larger than one cell comes back unchanged.
    """
    poly = ShapelyPolygon(footprint)
    x0, y0, x1, y1 = poly.bounds
    if grid_size <= 0 or (x1 - x0 <= grid_size and y1 - y0 <= grid_size):
        return [list(footprint)]
    cells: list[list[Point2D]] = []
    y = y0
    while y < y1 - 1e-9:
        x = x0
        while x < x1 - 1e-9:
            cell = poly.intersection(
                box(x, y, min(x + grid_size, x1), min(y + grid_size, y1))
            )
            if cell.geom_type == "Polygon" and cell.area > 1e-9:
                cells.append(list(cell.exterior.coords)[:-1])
            x += grid_size
        y += grid_size
    return cells or [list(footprint)]
