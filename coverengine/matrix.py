"""Row-major homogeneous matrices.

Points are treated as row vectors and multiplied on the left:
``[x, y, z, 1] @ M``. Translation therefore lives in the bottom row, and a
chain of transforms reads left to right in the order it is applied
(``look_at @ perspective`` first moves the world into camera space, then
projects).

Inversion uses cofactor expansion with closed forms for 2x2, 3x3 and 4x4
matrices and a Laplace-expansion fallback for anything larger. A matrix
whose determinant is within ``SINGULAR_EPSILON`` of zero raises
SingularMatrix instead of producing inf/NaN entries.
"""

from __future__ import annotations

import math
from typing import Iterable, Sequence

import numpy as np

from .errors import DegenerateGeometry, SingularMatrix
from .point3d import Point3d

SINGULAR_EPSILON = 1e-8

# cos/sin values this close to zero are snapped to exactly zero so that
# quarter-turn rotations stay axis-aligned.
_TRIG_SNAP = 1e-10


def _snap(v: float) -> float:
    return 0.0 if abs(v) < _TRIG_SNAP else v


class Matrix:
    __slots__ = ("arr",)

    def __init__(self, rows: Sequence[Sequence[float]] | np.ndarray) -> None:
        arr = np.array(rows, dtype=np.float64)
        if arr.ndim != 2:
            raise ValueError(f"matrix must be 2-dimensional, got {arr.ndim}")
        self.arr = arr

    # -- constructors --

    @staticmethod
    def identity(n: int = 4) -> Matrix:
        return Matrix(np.eye(n))

    @staticmethod
    def zeroes(rows: int, cols: int) -> Matrix:
        return Matrix(np.zeros((rows, cols)))

    @staticmethod
    def translation(x: float = 0.0, y: float = 0.0, z: float = 0.0) -> Matrix:
        m = np.eye(4)
        m[3, 0:3] = (x, y, z)
        return Matrix(m)

    @staticmethod
    def scale(x: float = 1.0, y: float = 1.0, z: float = 1.0) -> Matrix:
        return Matrix(np.diag([x, y, z, 1.0]))

    @staticmethod
    def rotation_x(angle: float) -> Matrix:
        c = _snap(math.cos(angle))
        s = _snap(math.sin(angle))
        return Matrix(
            [
                [1, 0, 0, 0],
                [0, c, s, 0],
                [0, -s, c, 0],
                [0, 0, 0, 1],
            ]
        )

    @staticmethod
    def rotation_y(angle: float) -> Matrix:
        c = _snap(math.cos(angle))
        s = _snap(math.sin(angle))
        return Matrix(
            [
                [c, 0, -s, 0],
                [0, 1, 0, 0],
                [s, 0, c, 0],
                [0, 0, 0, 1],
            ]
        )

    @staticmethod
    def rotation_z(angle: float) -> Matrix:
        c = _snap(math.cos(angle))
        s = _snap(math.sin(angle))
        return Matrix(
            [
                [c, s, 0, 0],
                [-s, c, 0, 0],
                [0, 0, 1, 0],
                [0, 0, 0, 1],
            ]
        )

    @staticmethod
    def rotation_xyz(
        angle_x: float = 0.0, angle_y: float = 0.0, angle_z: float = 0.0
    ) -> Matrix:
        """Rotate about x, then y, then z."""
        m = Matrix.identity(4)
        if angle_x:
            m = m.multiply(Matrix.rotation_x(angle_x))
        if angle_y:
            m = m.multiply(Matrix.rotation_y(angle_y))
        if angle_z:
            m = m.multiply(Matrix.rotation_z(angle_z))
        return m

    @staticmethod
    def look_at(eye: Point3d, target: Point3d, up: Point3d) -> Matrix:
        """World-to-camera matrix; the camera looks down its -z axis.

        When `up` is parallel to the view direction (camera directly above
        or below the target) the y axis, then the x axis, is used as the up
        vector instead.
        """
        forward = eye - target
        if forward.magnitude() < SINGULAR_EPSILON:
            raise DegenerateGeometry("camera and target positions coincide")
        z_axis = forward.normalize()

        x_raw = up.cross(z_axis)
        if x_raw.magnitude() < 1e-9:
            for alt in (Point3d(0.0, 1.0, 0.0), Point3d(1.0, 0.0, 0.0)):
                x_raw = alt.cross(z_axis)
                if x_raw.magnitude() >= 1e-9:
                    break
        x_axis = x_raw.normalize()
        y_axis = z_axis.cross(x_axis)

        return Matrix(
            [
                [x_axis.x, y_axis.x, z_axis.x, 0.0],
                [x_axis.y, y_axis.y, z_axis.y, 0.0],
                [x_axis.z, y_axis.z, z_axis.z, 0.0],
                [-x_axis.dot(eye), -y_axis.dot(eye), -z_axis.dot(eye), 1.0],
            ]
        )

    @staticmethod
    def perspective(
        fov: float,
        aspect: float = 1.0,
        z_near: float = 1.0,
        z_far: float = math.inf,
        zero_to_one: bool = False,
    ) -> Matrix:
        """Perspective projection with clip depth in [-1, 1] or [0, 1].

        `fov` is the vertical field of view in radians. An infinite `z_far`
        gives the limit form of the projection.
        """
        f = 1.0 / math.tan(fov / 2.0)
        m = np.zeros((4, 4))
        m[0, 0] = f / aspect
        m[1, 1] = f
        m[2, 3] = -1.0
        if math.isinf(z_far):
            m[2, 2] = -1.0
            m[3, 2] = -z_near if zero_to_one else -2.0 * z_near
        else:
            nf = 1.0 / (z_near - z_far)
            if zero_to_one:
                m[2, 2] = z_far * nf
                m[3, 2] = z_far * z_near * nf
            else:
                m[2, 2] = (z_far + z_near) * nf
                m[3, 2] = 2.0 * z_far * z_near * nf
        return Matrix(m)

    @staticmethod
    def orthographic(
        left: float,
        right: float,
        bottom: float,
        top: float,
        near: float,
        far: float,
        zero_to_one: bool = False,
    ) -> Matrix:
        if left == right or bottom == top or near == far:
            raise DegenerateGeometry(
                f"empty orthographic volume: {left=} {right=} {bottom=} "
                f"{top=} {near=} {far=}"
            )
        lr = 1.0 / (left - right)
        bt = 1.0 / (bottom - top)
        nf = 1.0 / (near - far)
        m = np.zeros((4, 4))
        m[0, 0] = -2.0 * lr
        m[1, 1] = -2.0 * bt
        m[3, 0] = (left + right) * lr
        m[3, 1] = (top + bottom) * bt
        m[3, 3] = 1.0
        if zero_to_one:
            m[2, 2] = nf
            m[3, 2] = near * nf
        else:
            m[2, 2] = 2.0 * nf
            m[3, 2] = (far + near) * nf
        return Matrix(m)

    # -- shape and comparison --

    @property
    def shape(self) -> tuple[int, int]:
        return self.arr.shape  # type: ignore[return-value]

    def __getitem__(self, idx):
        return self.arr[idx]

    def __matmul__(self, other: Matrix) -> Matrix:
        return self.multiply(other)

    def __repr__(self) -> str:
        return f"Matrix({self.arr.tolist()!r})"

    def equal(self, other: Matrix) -> bool:
        return self.shape == other.shape and bool(np.all(self.arr == other.arr))

    def almost_equal(self, other: Matrix, epsilon: float = 1e-8) -> bool:
        return self.shape == other.shape and bool(
            np.all(np.abs(self.arr - other.arr) <= epsilon)
        )

    # -- arithmetic --

    def multiply(self, other: Matrix) -> Matrix:
        if self.shape[1] != other.shape[0]:
            raise ValueError(
                f"cannot multiply {self.shape} by {other.shape} matrices"
            )
        return Matrix(self.arr @ other.arr)

    def transpose(self) -> Matrix:
        return Matrix(self.arr.T.copy())

    def multiply_point3d(self, p: Point3d) -> Point3d:
        """Transform a point, dividing by w when w is not 0 or 1."""
        v = p.to_array(homogeneous=True) @ self.arr
        w = v[3]
        if w != 1.0 and abs(w) > SINGULAR_EPSILON:
            return Point3d(v[0] / w, v[1] / w, v[2] / w)
        return Point3d(v[0], v[1], v[2])

    def multiply_points(self, points: Iterable[Point3d]) -> np.ndarray:
        """Transform many points at once; returns the raw (N, 4) rows."""
        pts = np.array(
            [(p.x, p.y, p.z, 1.0) for p in points], dtype=np.float64
        ).reshape(-1, 4)
        return pts @ self.arr

    # -- determinant and inverse --

    def determinant(self) -> float:
        n, m = self.shape
        if n != m:
            raise ValueError(f"determinant of non-square {self.shape} matrix")
        return _determinant(self.arr)

    def invert(self) -> Matrix:
        n, m = self.shape
        if n != m:
            raise ValueError(f"cannot invert non-square {self.shape} matrix")
        if n == 2:
            return Matrix(_invert2(self.arr))
        if n == 3:
            return Matrix(_invert3(self.arr))
        if n == 4:
            return Matrix(_invert4(self.arr))
        return Matrix(_invert_general(self.arr))


def _check_det(det: float) -> None:
    if abs(det) < SINGULAR_EPSILON or not math.isfinite(det):
        raise SingularMatrix(f"determinant {det!r} is not invertible")


def _det2(a: np.ndarray) -> float:
    return float(a[0, 0] * a[1, 1] - a[0, 1] * a[1, 0])


def _det3(a: np.ndarray) -> float:
    return float(
        a[0, 0] * (a[1, 1] * a[2, 2] - a[1, 2] * a[2, 1])
        - a[0, 1] * (a[1, 0] * a[2, 2] - a[1, 2] * a[2, 0])
        + a[0, 2] * (a[1, 0] * a[2, 1] - a[1, 1] * a[2, 0])
    )


def _minor(a: np.ndarray, row: int, col: int) -> np.ndarray:
    return np.delete(np.delete(a, row, axis=0), col, axis=1)


def _determinant(a: np.ndarray) -> float:
    n = a.shape[0]
    if n == 1:
        return float(a[0, 0])
    if n == 2:
        return _det2(a)
    if n == 3:
        return _det3(a)
    if n == 4:
        return _inverse4_terms(a)[0]
    # Laplace expansion along the first row
    total = 0.0
    for col in range(n):
        if a[0, col] == 0:
            continue
        sign = -1.0 if col % 2 else 1.0
        total += sign * a[0, col] * _determinant(_minor(a, 0, col))
    return total


def _invert2(a: np.ndarray) -> np.ndarray:
    det = _det2(a)
    _check_det(det)
    return np.array([[a[1, 1], -a[0, 1]], [-a[1, 0], a[0, 0]]]) / det


def _invert3(a: np.ndarray) -> np.ndarray:
    det = _det3(a)
    _check_det(det)
    adj = np.empty((3, 3))
    adj[0, 0] = a[1, 1] * a[2, 2] - a[1, 2] * a[2, 1]
    adj[0, 1] = a[0, 2] * a[2, 1] - a[0, 1] * a[2, 2]
    adj[0, 2] = a[0, 1] * a[1, 2] - a[0, 2] * a[1, 1]
    adj[1, 0] = a[1, 2] * a[2, 0] - a[1, 0] * a[2, 2]
    adj[1, 1] = a[0, 0] * a[2, 2] - a[0, 2] * a[2, 0]
    adj[1, 2] = a[0, 2] * a[1, 0] - a[0, 0] * a[1, 2]
    adj[2, 0] = a[1, 0] * a[2, 1] - a[1, 1] * a[2, 0]
    adj[2, 1] = a[0, 1] * a[2, 0] - a[0, 0] * a[2, 1]
    adj[2, 2] = a[0, 0] * a[1, 1] - a[0, 1] * a[1, 0]
    return adj / det


def _inverse4_terms(a: np.ndarray) -> tuple[float, list[float]]:
    """Determinant and the 2x2 sub-determinants shared by the 4x4 adjugate."""
    a00, a01, a02, a03 = a[0]
    a10, a11, a12, a13 = a[1]
    a20, a21, a22, a23 = a[2]
    a30, a31, a32, a33 = a[3]
    b = [
        a00 * a11 - a01 * a10,
        a00 * a12 - a02 * a10,
        a00 * a13 - a03 * a10,
        a01 * a12 - a02 * a11,
        a01 * a13 - a03 * a11,
        a02 * a13 - a03 * a12,
        a20 * a31 - a21 * a30,
        a20 * a32 - a22 * a30,
        a20 * a33 - a23 * a30,
        a21 * a32 - a22 * a31,
        a21 * a33 - a23 * a31,
        a22 * a33 - a23 * a32,
    ]
    det = (
        b[0] * b[11]
        - b[1] * b[10]
        + b[2] * b[9]
        + b[3] * b[8]
        - b[4] * b[7]
        + b[5] * b[6]
    )
    return float(det), b


def _invert4(a: np.ndarray) -> np.ndarray:
    det, b = _inverse4_terms(a)
    _check_det(det)
    a00, a01, a02, a03 = a[0]
    a10, a11, a12, a13 = a[1]
    a20, a21, a22, a23 = a[2]
    a30, a31, a32, a33 = a[3]
    out = np.array(
        [
            [
                a11 * b[11] - a12 * b[10] + a13 * b[9],
                a02 * b[10] - a01 * b[11] - a03 * b[9],
                a31 * b[5] - a32 * b[4] + a33 * b[3],
                a22 * b[4] - a21 * b[5] - a23 * b[3],
            ],
            [
                a12 * b[8] - a10 * b[11] - a13 * b[7],
                a00 * b[11] - a02 * b[8] + a03 * b[7],
                a32 * b[2] - a30 * b[5] - a33 * b[1],
                a20 * b[5] - a22 * b[2] + a23 * b[1],
            ],
            [
                a10 * b[10] - a11 * b[8] + a13 * b[6],
                a01 * b[8] - a00 * b[10] - a03 * b[6],
                a30 * b[4] - a31 * b[2] + a33 * b[0],
                a21 * b[2] - a20 * b[4] - a23 * b[0],
            ],
            [
                a11 * b[7] - a10 * b[9] - a12 * b[6],
                a00 * b[9] - a01 * b[7] + a02 * b[6],
                a31 * b[1] - a30 * b[3] - a32 * b[0],
                a20 * b[3] - a21 * b[1] + a22 * b[0],
            ],
        ]
    )
    return out / det


def _invert_general(a: np.ndarray) -> np.ndarray:
    n = a.shape[0]
    det = _determinant(a)
    _check_det(det)
    adj = np.empty((n, n))
    for row in range(n):
        for col in range(n):
            sign = -1.0 if (row + col) % 2 else 1.0
            # Adjugate is the transposed cofactor matrix
            adj[col, row] = sign * _determinant(_minor(a, row, col))
    return adj / det
