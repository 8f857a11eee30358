"""Viewer camera: look-at plus perspective or orthographic projection.

Matrices are rebuilt lazily. Changing the projection parameters marks the
projection dirty, moving the camera or its target marks the look-at dirty,
and either one dirties the combined model matrix and its inverse.
"""

from __future__ import annotations

import math

from .errors import ConfigurationError, SingularMatrix
from .log import get_logger
from .matrix import Matrix
from .point3d import AABB3d, Point3d

log = get_logger(__name__)

PERSPECTIVE = "perspective"
ORTHOGONAL = "orthogonal"
WEBGL = "webgl"  # clip z in [-1, 1]
WEBGPU = "webgpu"  # clip z in [0, 1]

UP = Point3d(0.0, 0.0, 1.0)
# Scene y grows downward, so flip x to keep a right-handed image
MIRROR_DIAG = Point3d(-1.0, 1.0, 1.0)

DEFAULT_PERSPECTIVE = {
    "fov": math.radians(90),
    "aspect": 1.0,
    "z_near": 1.0,
    "z_far": math.inf,
}
DEFAULT_ORTHOGONAL = {
    "left": -100.0,
    "right": 100.0,
    "bottom": -100.0,
    "top": 100.0,
    "near": 1.0,
    "far": 1000.0,
}


class Camera:
    def __init__(
        self,
        camera_position: Point3d | None = None,
        target_position: Point3d | None = None,
        up: Point3d = UP,
        perspective_type: str = PERSPECTIVE,
        gl_type: str = WEBGPU,
        mirror: Point3d = MIRROR_DIAG,
    ) -> None:
        if perspective_type not in (PERSPECTIVE, ORTHOGONAL):
            raise ConfigurationError(
                f"unknown perspective type {perspective_type!r}"
            )
        if gl_type not in (WEBGL, WEBGPU):
            raise ConfigurationError(f"unknown gl type {gl_type!r}")
        self._camera_position = camera_position or Point3d(0.0, 0.0, 0.0)
        self._target_position = target_position or Point3d(0.0, 1.0, 0.0)
        self._up = up
        self._mirror = mirror
        self.perspective_type = perspective_type
        self.gl_type = gl_type
        self._perspective_params = dict(DEFAULT_PERSPECTIVE)
        self._orthogonal_params = dict(DEFAULT_ORTHOGONAL)

        self.dirty_look_at = True
        self.dirty_perspective = True
        self.dirty_model = True
        self.dirty_inverse = True
        self._look_at: Matrix | None = None
        self._perspective: Matrix | None = None
        self._model: Matrix | None = None
        self._inverse: Matrix | None = None
        self._singular_logged = False

    def __repr__(self) -> str:
        return (
            f"Camera({self._camera_position} -> {self._target_position}, "
            f"{self.perspective_type}, {self.gl_type})"
        )

    # -- dirty propagation --

    def _mark_look_at(self) -> None:
        self.dirty_look_at = True
        self.dirty_model = True
        self.dirty_inverse = True

    def _mark_perspective(self) -> None:
        self.dirty_perspective = True
        self.dirty_model = True
        self.dirty_inverse = True

    # -- positions --

    @property
    def camera_position(self) -> Point3d:
        return self._camera_position

    @camera_position.setter
    def camera_position(self, value: Point3d) -> None:
        if value == self._camera_position:
            return
        self._camera_position = value
        self._mark_look_at()

    @property
    def target_position(self) -> Point3d:
        return self._target_position

    @target_position.setter
    def target_position(self, value: Point3d) -> None:
        if value == self._target_position:
            return
        self._target_position = value
        self._mark_look_at()

    @property
    def up(self) -> Point3d:
        return self._up

    @up.setter
    def up(self, value: Point3d) -> None:
        if value == self._up:
            return
        self._up = value
        self._mark_look_at()

    @property
    def zero_to_one(self) -> bool:
        return self.gl_type == WEBGPU

    # -- projection parameters --

    @property
    def perspective_parameters(self) -> dict:
        return dict(self._perspective_params)

    def set_perspective_parameters(self, **params: float) -> None:
        self._update_params(self._perspective_params, params)

    @property
    def orthogonal_parameters(self) -> dict:
        return dict(self._orthogonal_params)

    def set_orthogonal_parameters(self, **params: float) -> None:
        self._update_params(self._orthogonal_params, params)

    def _update_params(self, current: dict, params: dict) -> None:
        changed = False
        for key, value in params.items():
            if key not in current:
                raise ConfigurationError(f"unknown camera parameter {key!r}")
            if current[key] != value:
                current[key] = value
                changed = True
        if changed:
            self._mark_perspective()

    # -- matrices --

    @property
    def look_at_matrix(self) -> Matrix:
        if self.dirty_look_at or self._look_at is None:
            self._look_at = Matrix.look_at(
                self._camera_position, self._target_position, self._up
            )
            self.dirty_look_at = False
        return self._look_at

    @property
    def perspective_matrix(self) -> Matrix:
        if self.dirty_perspective or self._perspective is None:
            if self.perspective_type == PERSPECTIVE:
                proj = Matrix.perspective(
                    zero_to_one=self.zero_to_one, **self._perspective_params
                )
            else:
                proj = Matrix.orthographic(
                    zero_to_one=self.zero_to_one, **self._orthogonal_params
                )
            m = self._mirror
            self._perspective = proj @ Matrix.scale(m.x, m.y, m.z)
            self.dirty_perspective = False
        return self._perspective

    @property
    def model_matrix(self) -> Matrix:
        """World to clip space: look-at followed by projection."""
        if self.dirty_model or self._model is None:
            self._model = self.look_at_matrix @ self.perspective_matrix
            self.dirty_model = False
        return self._model

    @property
    def inverse_model_matrix(self) -> Matrix:
        if self.dirty_inverse or self._inverse is None:
            try:
                self._inverse = self.model_matrix.invert()
            except SingularMatrix:
                if not self._singular_logged:
                    log.warning("camera.singular_model_matrix", camera=repr(self))
                    self._singular_logged = True
                raise
            self.dirty_inverse = False
        return self._inverse

    # -- framing --

    def set_frustum_for_aabb3d(
        self, box: AABB3d, max_radius: float = 1e6
    ) -> dict:
        """Aim at the box center and fit the projection around the box.

        Perspective: the field of view just contains the box's bounding
        sphere and the far plane sits behind it. Orthogonal: the volume is
        the extent of the box corners in camera space. Returns the new
        parameters.
        """
        box = box.to_finite(max_radius)
        center = box.center
        self.target_position = center
        if self.perspective_type == PERSPECTIVE:
            return self._fit_perspective(box, center)
        return self._fit_orthogonal(box)

    def _fit_perspective(self, box: AABB3d, center: Point3d) -> dict:
        radius = box.max.distance_to(center)
        dist = self._camera_position.distance_to(center)
        if dist <= radius:
            fov = math.pi
        else:
            fov = 2.0 * math.asin(radius / dist)
        self.set_perspective_parameters(fov=fov, z_far=dist + radius)
        return self.perspective_parameters

    def _fit_orthogonal(self, box: AABB3d) -> dict:
        rows = self.look_at_matrix.multiply_points(box.corners())
        xs, ys, zs = rows[:, 0], rows[:, 1], rows[:, 2]
        # Near stays put so obstacles between camera and box remain in view
        self.set_orthogonal_parameters(
            left=float(xs.min()),
            right=float(xs.max()),
            bottom=float(ys.min()),
            top=float(ys.max()),
            far=float(-zs.min()),
        )
        return self.orthogonal_parameters

    def frustum_corners(self) -> list[Point3d]:
        """World-space corners of the view volume, near face first.

        Raises SingularMatrix if the model matrix cannot be inverted. With an
        infinite far plane the far corners are at infinity and come back
        undivided.
        """
        inv = self.inverse_model_matrix
        z_near = 0.0 if self.zero_to_one else -1.0
        corners = []
        for z in (z_near, 1.0):
            for x, y in ((-1.0, -1.0), (1.0, -1.0), (1.0, 1.0), (-1.0, 1.0)):
                corners.append(inv.multiply_point3d(Point3d(x, y, z)))
        return corners

    def to_clip(self, p: Point3d) -> tuple[float, float, float, float]:
        row = self.model_matrix.multiply_points([p])[0]
        return (float(row[0]), float(row[1]), float(row[2]), float(row[3]))
