"""Near-plane truncation and perspective projection of planar faces.

Faces are transformed into camera space (camera at the origin looking down
-z), truncated so that only the part in front of the near cutoff survives,
then divided by depth to land on a 2D image plane.
"""

from __future__ import annotations

from typing import Callable, Sequence

import numpy as np

from .point3d import Point2D, Point3d

NEAR_CUTOFF = -1.0
PROJECTION_MULTIPLIER = 1000.0
MAX_TRUNCATION_PASSES = 3


def _greater(a: float, b: float) -> bool:
    return a >= b


def _less(a: float, b: float) -> bool:
    return a <= b


def truncate_plane_points(
    points: Sequence[Point3d],
    cutoff: float,
    axis: str = "x",
    keep: Callable[[float, float], bool] = _greater,
) -> list[Point3d]:
    """Cut a closed ring at `axis == cutoff`, keeping the side `keep` accepts.

    Walks each edge A -> B starting from the last point. Points removed by
    the cut are replaced with the edge's crossing point, so a quad cut
    across a corner comes back as a pentagon and a quad cut across two
    sides stays a quad.
    """
    n = len(points)
    if n == 0:
        return []
    out: list[Point3d] = []
    a = points[-1]
    keep_a = keep(a[axis], cutoff)
    for b in points:
        keep_b = keep(b[axis], cutoff)
        if keep_a and keep_b:
            out.append(a)
        elif keep_a:
            crossing = a.project_to_axis_value(b, cutoff, axis)
            out.append(a)
            if crossing is not None:
                out.append(crossing)
        elif keep_b:
            crossing = b.project_to_axis_value(a, cutoff, axis)
            if crossing is not None:
                out.append(crossing)
        a = b
        keep_a = keep_b
    return out


def truncate_to_cutoff(
    points: Sequence[Point3d],
    cutoff: float = NEAR_CUTOFF,
    passes: int = MAX_TRUNCATION_PASSES,
) -> list[Point3d]:
    """Keep the part of a camera-space ring with z <= cutoff.

    Repeats the single-edge walk until every point is in front of the
    cutoff or the pass budget runs out. Returns [] when the ring is entirely
    behind the cutoff.
    """
    pts = list(points)
    for _ in range(passes):
        if all(p.z <= cutoff for p in pts):
            break
        pts = truncate_plane_points(pts, cutoff, "z", _less)
        if not pts:
            return []
    if len(pts) < 3 or any(p.z > cutoff + 1e-9 for p in pts):
        return []
    return pts


def signed_area_2d(points: Sequence[Point2D]) -> float:
    """Shoelace signed area; positive for counter-clockwise in x-right/y-up."""
    n = len(points)
    if n < 3:
        return 0.0
    area = 0.0
    for i in range(n):
        j = (i + 1) % n
        area += points[i][0] * points[j][1]
        area -= points[j][0] * points[i][1]
    return area / 2.0


def perspective_transform(
    points: Sequence[Point3d],
    multiplier: float = PROJECTION_MULTIPLIER,
    counter_clockwise: bool = True,
) -> list[Point2D]:
    """Divide camera-space points by depth: (x * m / -z, y * m / -z).

    The result is reordered to a consistent winding.
    """
    out: list[Point2D] = []
    for p in points:
        mult = multiplier / -p.z
        out.append((p.x * mult, p.y * mult))
    area = signed_area_2d(out)
    if (area < 0 and counter_clockwise) or (area > 0 and not counter_clockwise):
        out.reverse()
    return out


def outside_frustum(clip: np.ndarray, zero_to_one: bool = False) -> bool:
    """Outcode test on (N, 4) clip-space rows.

    True when every point lies outside the same clip plane, which means the
    face cannot intersect the view volume.
    """
    if clip.size == 0:
        return True
    x, y, z, w = clip[:, 0], clip[:, 1], clip[:, 2], clip[:, 3]
    z_min = 0.0 if zero_to_one else -w
    tests = (
        x < -w,
        x > w,
        y < -w,
        y > w,
        z < z_min,
        z > w,
    )
    return any(bool(np.all(t)) for t in tests)

