"""Camera model types shared by the calibration and pose-estimation stages."""

from __future__ import annotations

from dataclasses import dataclass, field

import cv2
import numpy as np

from .errors import InputError

_ZERO_SKEW_TOL = 1e-9


def _readonly(array: np.ndarray) -> np.ndarray:
    array.setflags(write=False)
    return array


@dataclass(frozen=True)
class IntrinsicModel:
    """Pinhole intrinsics with zero skew and a radial/tangential distortion vector.

    ``distortion`` follows the OpenCV ordering ``(k1, k2, p1, p2[, k3])``.
    """

    fx: float
    fy: float
    cx: float
    cy: float
    distortion: np.ndarray = field(default_factory=lambda: np.zeros(5))

    def __post_init__(self) -> None:
        dist = np.asarray(self.distortion, dtype=np.float64).reshape(-1).copy()
        if dist.size not in (4, 5):
            raise InputError(f"Distortion vector must have 4 or 5 coefficients, got {dist.size}")
        object.__setattr__(self, "distortion", _readonly(dist))

    @classmethod
    def from_matrix(cls, camera_matrix: np.ndarray, distortion: np.ndarray | None = None) -> "IntrinsicModel":
        """Build from ``[[fx, 0, cx], [0, fy, cy], [0, 0, w]]``, dividing through by ``w``.

        Matrices with skew or any other non-zero off-pinhole entry are rejected.
        """
        K = np.asarray(camera_matrix, dtype=np.float64)
        if K.shape != (3, 3):
            raise InputError(f"Intrinsic matrix must be 3x3, got {K.shape}")
        if not np.all(np.isfinite(K)) or K[2, 2] == 0.0:
            raise InputError("Intrinsic matrix must be finite with a non-zero K[2, 2]")
        K = K / K[2, 2]
        tol = _ZERO_SKEW_TOL * float(np.abs(K).max())
        if max(abs(K[0, 1]), abs(K[1, 0]), abs(K[2, 0]), abs(K[2, 1])) > tol:
            raise InputError(f"Intrinsic matrix must have zero skew and a [0, 0, 1] last row, got\n{K}")
        if distortion is None:
            distortion = np.zeros(5)
        return cls(float(K[0, 0]), float(K[1, 1]), float(K[0, 2]), float(K[1, 2]), distortion)

    @property
    def matrix(self) -> np.ndarray:
        return np.array(
            [[self.fx, 0.0, self.cx], [0.0, self.fy, self.cy], [0.0, 0.0, 1.0]],
            dtype=np.float64,
        )


@dataclass(frozen=True)
class Pose:
    """Object-to-camera rigid transform as an axis-angle rotation plus translation."""

    rvec: np.ndarray
    tvec: np.ndarray
    refined: bool = True

    def __post_init__(self) -> None:
        rvec = np.asarray(self.rvec, dtype=np.float64).reshape(-1).copy()
        tvec = np.asarray(self.tvec, dtype=np.float64).reshape(-1).copy()
        if rvec.size != 3 or tvec.size != 3:
            raise InputError("Rotation and translation must both be 3-vectors")
        object.__setattr__(self, "rvec", _readonly(rvec))
        object.__setattr__(self, "tvec", _readonly(tvec))

    @classmethod
    def from_matrix(cls, rotation: np.ndarray, translation: np.ndarray, refined: bool = True) -> "Pose":
        rvec, _ = cv2.Rodrigues(np.asarray(rotation, dtype=np.float64))
        return cls(rvec, translation, refined)

    @property
    def rotation_matrix(self) -> np.ndarray:
        R, _ = cv2.Rodrigues(self.rvec.reshape(3, 1))
        return R

    @property
    def angle(self) -> float:
        return float(np.linalg.norm(self.rvec))

    def transform(self, object_points: np.ndarray) -> np.ndarray:
        """Map ``(N, 3)`` object points into the camera frame."""
        pts = np.asarray(object_points, dtype=np.float64).reshape(-1, 3)
        return pts @ self.rotation_matrix.T + self.tvec


@dataclass(frozen=True)
class CorrespondenceSet:
    """Index-aligned object points ``(N, 3)`` and image points ``(N, 2)``."""

    object_points: np.ndarray
    image_points: np.ndarray

    def __post_init__(self) -> None:
        obj = np.asarray(self.object_points, dtype=np.float64).reshape(-1, 3).copy()
        img = np.asarray(self.image_points, dtype=np.float64).reshape(-1, 2).copy()
        if len(obj) != len(img):
            raise InputError(
                f"Correspondence lengths differ: {len(obj)} object points vs {len(img)} image points"
            )
        object.__setattr__(self, "object_points", _readonly(obj))
        object.__setattr__(self, "image_points", _readonly(img))

    def __len__(self) -> int:
        return len(self.object_points)
