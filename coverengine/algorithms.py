"""Cover algorithms: how much of a target is hidden from an attacker.

All variants answer the same question through CoverAlgorithm.compute and
return a CoverSample with percent_cover in [0, 1]:

  PointsAlgorithm          rays from eye point(s) to sample points on the
                           target; cover is the share of blocked rays, taking
                           the best viewer point (and the least-covered cell
                           for large targets).
  CenterToCenterAlgorithm  one ray from the eye to the target center.
  Area2dAlgorithm          top-down: the target footprint minus what the
                           walls hide, at the target's top and bottom planes.
  Area3dAlgorithm          projects the target and the obstacles through a
                           camera at the eye and compares silhouette areas.

Problems with the pair itself (no elevation, zero-size footprint) give a
sample of 0 with a warning rather than an exception.
"""

from __future__ import annotations

import abc
import dataclasses
from dataclasses import dataclass, field

from shapely.geometry import Polygon as ShapelyPolygon

from . import collision
from .camera import Camera
from .config import (
    ALGORITHM_AREA2D,
    ALGORITHM_AREA3D,
    ALGORITHM_CENTER_TO_CENTER,
    ALGORITHM_POINTS,
    CoverConfig,
)
from .errors import ConfigurationError, DegenerateGeometry, SingularMatrix
from .frustum import outside_frustum
from .log import get_logger
from .obstacles import (
    ObstacleSet,
    constrained_border,
    gather_obstacles,
    token_prism,
)
from .placeables import PlanePoints
from .point3d import EPSILON, Point2D, Point3d, almost_equal
from .polygons import (
    blocked_fraction,
    combine_terrain,
    shadow_polygon,
    to_shapely,
    union_all,
    visibility_polygon,
)
from .sampling import grid_cells, target_points, viewer_points
from .types import Scene, Token

log = get_logger(__name__)


@dataclass
class CoverSample:
    percent_cover: float
    warnings: list[str] = field(default_factory=list)
    # Whether any token was among the blockers; cache entries built from
    # such samples go stale when any token moves.
    considered_tokens: bool = False

    @property
    def visible_fraction(self) -> float:
        return 1.0 - self.percent_cover


class CoverAlgorithm(abc.ABC):
    name = ""

    def __init__(self, config: CoverConfig) -> None:
        self.config = config

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"

    @abc.abstractmethod
    def _compute(
        self,
        scene: Scene,
        attacker: Token,
        target: Token,
        eye: Point3d,
        footprint: list[Point2D],
        include_walls: bool,
        include_tokens: bool,
    ) -> CoverSample: ...

    def compute(
        self,
        scene: Scene,
        attacker: Token,
        target: Token,
        include_walls: bool = True,
        include_tokens: bool = True,
    ) -> CoverSample:
        problem = self._check_pair(attacker, target)
        if problem is not None:
            log.warning(
                "cover.degenerate_pair",
                attacker=attacker.id,
                target=target.id,
                reason=problem,
            )
            return CoverSample(0.0, [problem])
        footprint = constrained_border(scene, target, self.config.max_radius)
        if ShapelyPolygon(footprint).area < EPSILON:
            msg = f"target {target.id!r} has a zero-area footprint"
            log.warning("cover.degenerate_target", target=target.id)
            return CoverSample(0.0, [msg])
        sample = self._compute(
            scene,
            attacker,
            target,
            self.eye(attacker),
            footprint,
            include_walls,
            include_tokens,
        )
        return sample

    def _check_pair(self, attacker: Token, target: Token) -> str | None:
        if attacker.id == target.id:
            return "attacker and target are the same token"
        if not target.has_elevation():
            return f"target {target.id!r} has no elevation"
        if attacker.eye_z is None and not attacker.has_elevation():
            return f"attacker {attacker.id!r} has no elevation"
        return None

    def eye(self, attacker: Token) -> Point3d:
        return attacker.eye_point(Point3d(*self.config.vision_offset))

    def obstacles(
        self,
        scene: Scene,
        viewer: Point3d,
        attacker: Token,
        target: Token,
        footprint: list[Point2D],
        include_walls: bool,
        include_tokens: bool,
    ) -> ObstacleSet:
        return gather_obstacles(
            scene,
            viewer,
            target,
            self.config,
            viewer_token=attacker,
            include_walls=include_walls,
            include_tokens=include_tokens,
            target_footprint=footprint,
        )

    def has_los(
        self,
        scene: Scene,
        attacker: Token,
        target: Token,
        threshold: float = 0.0,
    ) -> bool:
        """True if more than `threshold` of the target is visible."""
        visible = self.compute(scene, attacker, target).visible_fraction
        if almost_equal(visible, 0.0, 1e-6):
            return False
        return visible > threshold or almost_equal(visible, threshold, 1e-6)


def _segment_blocked(
    a: Point3d, b: Point3d, faces: list[PlanePoints]
) -> bool:
    return bool(collision.test_collision_3d(a, b, faces, collision.MODE_ANY))


class PointsAlgorithm(CoverAlgorithm):
    name = ALGORITHM_POINTS

    def __init__(
        self, config: CoverConfig, target_points: int | None = None
    ) -> None:
        super().__init__(config)
        self.target_points = target_points or config.target_points

    def __repr__(self) -> str:
        return f"PointsAlgorithm({self.target_points})"

    def _compute(
        self,
        scene,
        attacker,
        target,
        eye,
        footprint,
        include_walls,
        include_tokens,
    ) -> CoverSample:
        cfg = self.config
        offset = Point3d(*cfg.vision_offset)
        viewers = viewer_points(attacker, cfg.viewer_points, cfg.inset, offset)
        if cfg.large_target:
            cells = grid_cells(footprint, cfg.grid_size)
        else:
            cells = [footprint]

        considered_tokens = False
        best = 1.0
        for viewer in viewers:
            obs = self.obstacles(
                scene,
                viewer,
                attacker,
                target,
                footprint,
                include_walls,
                include_tokens,
            )
            considered_tokens = considered_tokens or obs.considers_tokens
            faces = obs.all_faces(viewer)
            for cell in cells:
                pts = target_points(target, self.target_points, cfg.inset, cell)
                blocked = sum(1 for p in pts if _segment_blocked(viewer, p, faces))
                best = min(best, blocked / len(pts))
        return CoverSample(best, considered_tokens=considered_tokens)


class CenterToCenterAlgorithm(CoverAlgorithm):
    name = ALGORITHM_CENTER_TO_CENTER

    def _compute(
        self,
        scene,
        attacker,
        target,
        eye,
        footprint,
        include_walls,
        include_tokens,
    ) -> CoverSample:
        obs = self.obstacles(
            scene, eye, attacker, target, footprint, include_walls, include_tokens
        )
        blocked = _segment_blocked(eye, target.center_3d(), obs.all_faces(eye))
        return CoverSample(
            1.0 if blocked else 0.0, considered_tokens=obs.considers_tokens
        )


class Area2dAlgorithm(CoverAlgorithm):
    """Top-down visible area of the target footprint.

    Walls that span the whole height band between the eye and a target
    plane are handled by an angular sweep from the eye; everything else
    (shorter walls, tiles, drawings, tokens) casts a shadow onto the plane.
    Which planes count depends on where the eye is: looking up sees the
    target's bottom, looking down its top, and an eye within the target's
    height gets the better of both.
    """

    name = ALGORITHM_AREA2D

    def has_los(self, scene, attacker, target, threshold=0.0) -> bool:
        """Like the area test, but settled by the center ray alone when it
        decides the answer: a visible center is enough below 50%, and a
        hidden one rules out anything at or above it."""
        footprint = None
        if self._check_pair(attacker, target) is None:
            footprint = constrained_border(
                scene, target, self.config.max_radius
            )
        if footprint and ShapelyPolygon(footprint).area >= EPSILON:
            eye = self.eye(attacker)
            obs = self.obstacles(
                scene, eye, attacker, target, footprint, True, True
            )
            center = ShapelyPolygon(footprint).centroid
            center_pt = Point3d(center.x, center.y, target.avg_z)
            blocked = _segment_blocked(eye, center_pt, obs.all_faces(eye))
            if not blocked and threshold < 0.5:
                return True
            if blocked and threshold >= 0.5:
                return False
        return super().has_los(scene, attacker, target, threshold)

    @staticmethod
    def target_planes(eye_z: float, target: Token) -> list[float]:
        top = target.effective_top_z
        bottom = target.bottom_z
        if almost_equal(top, bottom):
            return [top]
        planes = []
        if eye_z <= top:
            planes.append(bottom)
        if eye_z >= bottom:
            planes.append(top)
        return planes

    def _compute(
        self,
        scene,
        attacker,
        target,
        eye,
        footprint,
        include_walls,
        include_tokens,
    ) -> CoverSample:
        cfg = self.config
        obs = self.obstacles(
            scene, eye, attacker, target, footprint, include_walls, include_tokens
        )
        fp = to_shapely(footprint)
        area = fp.area
        best_visible = 0.0
        for plane_z in self.target_planes(eye.z, target):
            visible = self._visible_on_plane(eye, plane_z, fp, obs)
            best_visible = max(best_visible, visible.area / area)
        if best_visible < cfg.visible_epsilon:
            best_visible = 0.0
        return CoverSample(
            min(1.0, max(0.0, 1.0 - best_visible)),
            considered_tokens=obs.considers_tokens,
        )

    def _visible_on_plane(self, eye, plane_z, fp, obs: ObstacleSet):
        lo = min(eye.z, plane_z)
        hi = max(eye.z, plane_z)
        radius = self.config.max_radius
        segments = []
        shadows = []
        for w in obs.walls:
            if w.bottom_z <= lo and w.top_z >= hi:
                segments.append((w.wall.ax, w.wall.ay, w.wall.bx, w.wall.by))
            else:
                shadows.append(shadow_polygon(w.points, eye, plane_z, radius))
        for face in list(obs.tiles) + list(obs.drawings):
            shadows.append(shadow_polygon(face.points, eye, plane_z, radius))
        for tok in obs.tokens:
            for face in tok.faces(eye):
                shadows.append(
                    shadow_polygon(face.points, eye, plane_z, radius)
                )
        terrain = [
            shadow_polygon(w.points, eye, plane_z, radius)
            for w in obs.terrain_walls
        ]

        visible = fp
        if segments:
            x0, y0, x1, y1 = fp.bounds
            bounds = (
                min(x0, eye.x) - 1.0,
                min(y0, eye.y) - 1.0,
                max(x1, eye.x) + 1.0,
                max(y1, eye.y) + 1.0,
            )
            sweep = visibility_polygon(eye.x, eye.y, segments, bounds)
            visible = visible.intersection(to_shapely(sweep))
        hidden = union_all([s for s in shadows if s])
        hidden = hidden.union(combine_terrain([t for t in terrain if t]))
        if not hidden.is_empty:
            visible = visible.difference(hidden)
        return visible


class Area3dAlgorithm(CoverAlgorithm):
    """Silhouette comparison through a camera placed at the eye."""

    name = ALGORITHM_AREA3D

    def _compute(
        self,
        scene,
        attacker,
        target,
        eye,
        footprint,
        include_walls,
        include_tokens,
    ) -> CoverSample:
        cfg = self.config
        prism = token_prism(scene, target, footprint)
        if prism is None:
            msg = f"target {target.id!r} has no usable geometry"
            return CoverSample(0.0, [msg])

        camera = Camera(eye, perspective_type=cfg.camera_type)
        try:
            camera.set_frustum_for_aabb3d(prism.aabb(), cfg.max_radius)
            view = camera.look_at_matrix
            clip = camera.model_matrix
        except (DegenerateGeometry, SingularMatrix) as e:
            log.warning("cover.camera_failed", target=target.id, reason=str(e))
            return CoverSample(0.0, [str(e)])

        def project(faces, cull=True) -> list[list[Point2D]]:
            out = []
            for face in faces:
                if cull and outside_frustum(
                    clip.multiply_points(face.points), camera.zero_to_one
                ):
                    continue
                face.set_view_matrix(view, cfg.near_cutoff)
                poly = face.perspective_transform(cfg.projection_multiplier)
                # Faces are shared through the scene cache
                face.clear_view()
                if len(poly) >= 3:
                    out.append(poly)
            return out

        obs = self.obstacles(
            scene, eye, attacker, target, footprint, include_walls, include_tokens
        )
        result = blocked_fraction(
            project(prism.faces(eye), cull=False),
            project(obs.blocking_faces(eye)),
            project(obs.terrain_walls),
            cfg.visible_epsilon,
        )
        return CoverSample(
            result.percent_cover,
            result.warnings,
            considered_tokens=obs.considers_tokens,
        )


def build_algorithm(config: CoverConfig) -> CoverAlgorithm:
    if config.algorithm == ALGORITHM_POINTS:
        return PointsAlgorithm(config)
    if config.algorithm == ALGORITHM_CENTER_TO_CENTER:
        return CenterToCenterAlgorithm(config)
    if config.algorithm == ALGORITHM_AREA2D:
        return Area2dAlgorithm(config)
    if config.algorithm == ALGORITHM_AREA3D:
        return Area3dAlgorithm(config)
    raise ConfigurationError(f"unknown cover algorithm {config.algorithm!r}")


def with_points(config: CoverConfig, target_points: int) -> CoverConfig:
    """Copy of `config` switched to point sampling with `target_points`."""
    cfg = dataclasses.replace(
        config, algorithm=ALGORITHM_POINTS, target_points=target_points
    )
    cfg.validate()
    return cfg
