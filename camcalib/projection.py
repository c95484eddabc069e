"""Projection-matrix composition and decomposition into orientation angles.

Angle convention
----------------
``R = Rz(yaw) @ Ry(pitch) @ Rx(roll)`` with angles in degrees, matching the
Euler angles OpenCV's ``RQDecomp3x3`` and ``decomposeProjectionMatrix``
report as ``[roll, pitch, yaw]``. Pitch is kept in ``[-90, 90]``.

At gimbal lock (``cos(pitch) == 0`` up to ``GIMBAL_LOCK_EPS``) only
``roll - yaw`` (pitch = +90) or ``roll + yaw`` (pitch = -90) is observable.
Yaw is then forced to 0 and the whole rotation about the locked axis is
reported as roll.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from .errors import DegenerateGeometry, InputError
from .model import IntrinsicModel, Pose

GIMBAL_LOCK_EPS = 1e-9

_EXCHANGE = np.fliplr(np.eye(3))


@dataclass(frozen=True)
class EulerAngles:
    roll: float
    pitch: float
    yaw: float

    def as_array(self) -> np.ndarray:
        return np.array([self.roll, self.pitch, self.yaw], dtype=np.float64)


@dataclass(frozen=True)
class ProjectionDecomposition:
    intrinsic: np.ndarray
    rotation: np.ndarray
    camera_center: np.ndarray
    angles: EulerAngles


def compose_projection_matrix(intrinsic: IntrinsicModel, pose: Pose) -> np.ndarray:
    """Return the 3x4 matrix ``K @ [R | t]``."""
    Rt = np.hstack([pose.rotation_matrix, pose.tvec.reshape(3, 1)])
    return intrinsic.matrix @ Rt


def rq_decompose(M: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Factor a 3x3 matrix as ``K @ R`` with K upper triangular and R orthogonal.

    K has a positive diagonal. R is a proper rotation whenever ``det(M) > 0``.
    """

    M = np.asarray(M, dtype=np.float64)
    if M.shape != (3, 3):
        raise InputError(f"RQ decomposition expects a 3x3 matrix, got {M.shape}")
    Q, U = np.linalg.qr((_EXCHANGE @ M).T)
    K = _EXCHANGE @ U.T @ _EXCHANGE
    R = _EXCHANGE @ Q.T
    signs = np.diag(np.where(np.diag(K) < 0, -1.0, 1.0))
    return K @ signs, signs @ R


def rotation_from_euler(angles: EulerAngles) -> np.ndarray:
    a, b, c = (math.radians(v) for v in (angles.roll, angles.pitch, angles.yaw))
    Rx = np.array([[1, 0, 0], [0, math.cos(a), -math.sin(a)], [0, math.sin(a), math.cos(a)]])
    Ry = np.array([[math.cos(b), 0, math.sin(b)], [0, 1, 0], [-math.sin(b), 0, math.cos(b)]])
    Rz = np.array([[math.cos(c), -math.sin(c), 0], [math.sin(c), math.cos(c), 0], [0, 0, 1]])
    return Rz @ Ry @ Rx


def euler_from_rotation(R: np.ndarray) -> EulerAngles:
    R = np.asarray(R, dtype=np.float64)
    sin_pitch = float(np.clip(-R[2, 0], -1.0, 1.0))
    cos_pitch = math.hypot(R[0, 0], R[1, 0])

    if cos_pitch > GIMBAL_LOCK_EPS:
        roll = math.atan2(R[2, 1], R[2, 2])
        pitch = math.atan2(sin_pitch, cos_pitch)
        yaw = math.atan2(R[1, 0], R[0, 0])
    elif sin_pitch > 0:
        # R[:2, 1] = (sin(roll - yaw), cos(roll - yaw))
        roll = math.atan2(R[0, 1], R[1, 1])
        pitch = math.pi / 2
        yaw = 0.0
    else:
        # R[:2, 1] = (-sin(roll + yaw), cos(roll + yaw))
        roll = math.atan2(-R[0, 1], R[1, 1])
        pitch = -math.pi / 2
        yaw = 0.0

    return EulerAngles(math.degrees(roll), math.degrees(pitch), math.degrees(yaw))


def decompose_projection_matrix(P: np.ndarray) -> ProjectionDecomposition:
    """Recover K, R, the camera centre and roll/pitch/yaw from a 3x4 projection matrix.

    ``P`` may carry any non-zero scale, including a negative one.
    """

    P = np.asarray(P, dtype=np.float64)
    if P.shape != (3, 4):
        raise InputError(f"Projection matrix must be 3x4, got {P.shape}")
    M = P[:, :3]
    det = float(np.linalg.det(M))
    if abs(det) <= 1e-12 * max(float(np.abs(M).max()), 1e-300) ** 3:
        raise DegenerateGeometry("Leading 3x3 block of the projection matrix is singular")
    if det < 0:
        P, M = -P, -M

    K, R = rq_decompose(M)
    K = K / K[2, 2]
    center = -np.linalg.solve(M, P[:, 3])
    return ProjectionDecomposition(
        intrinsic=K,
        rotation=R,
        camera_center=center,
        angles=euler_from_rotation(R),
    )
