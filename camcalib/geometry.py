"""Linear geometry used to seed the nonlinear solvers."""

from __future__ import annotations

from dataclasses import dataclass

import cv2
import numpy as np

from .errors import DegenerateGeometry
from .model import IntrinsicModel, Pose

# Relative singular-value thresholds.
_RANK_TOL = 1e-9
_PLANAR_TOL = 1e-6


def project_points(
    object_points: np.ndarray,
    pose: Pose,
    intrinsic: IntrinsicModel,
) -> tuple[np.ndarray, np.ndarray]:
    """Project object points through pose, pinhole and distortion.

    Returns ``(N, 2)`` pixel coordinates and OpenCV's ``(2N, 10 + D)``
    Jacobian with columns ``rvec, tvec, (fx, fy), (cx, cy), distortion``.
    Rows alternate u and v for each point.
    """

    pts = np.asarray(object_points, dtype=np.float64).reshape(-1, 1, 3)
    projected, jacobian = cv2.projectPoints(
        pts,
        pose.rvec.reshape(3, 1),
        pose.tvec.reshape(3, 1),
        intrinsic.matrix,
        intrinsic.distortion,
    )
    return projected.reshape(-1, 2), jacobian


def normalize_image_points(image_points: np.ndarray, intrinsic: IntrinsicModel) -> np.ndarray:
    """Remove distortion and the pinhole matrix, giving ``(N, 2)`` normalised coordinates."""
    pts = np.asarray(image_points, dtype=np.float64).reshape(-1, 1, 2)
    return cv2.undistortPoints(pts, intrinsic.matrix, intrinsic.distortion).reshape(-1, 2)


@dataclass(frozen=True)
class PlaneFrame:
    """Orthonormal frame with the target plane spanned by its first two axes."""

    basis: np.ndarray
    origin: np.ndarray

    def to_plane(self, object_points: np.ndarray) -> np.ndarray:
        local = (np.asarray(object_points, dtype=np.float64) - self.origin) @ self.basis.T
        return local[:, :2]

    def compose(self, plane_pose: Pose, refined: bool = False) -> Pose:
        """Turn a plane-to-camera pose into an object-to-camera pose."""
        R = plane_pose.rotation_matrix @ self.basis
        t = plane_pose.tvec - R @ self.origin
        return Pose.from_matrix(R, t, refined=refined)


def _spread(object_points: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    pts = np.asarray(object_points, dtype=np.float64).reshape(-1, 3)
    origin = pts.mean(axis=0)
    _, s, vt = np.linalg.svd(pts - origin)
    if s[0] <= 0.0:
        raise DegenerateGeometry("All object points coincide")
    if s.size < 2 or s[1] <= _RANK_TOL * s[0]:
        raise DegenerateGeometry("Object points are collinear")
    return origin, s, vt


def plane_frame(object_points: np.ndarray) -> PlaneFrame | None:
    """Return the frame of the plane holding the points, or None if they are not coplanar."""

    origin, s, vt = _spread(object_points)
    if s.size == 3 and s[2] > _PLANAR_TOL * s[0]:
        return None
    basis = vt.copy()
    if np.linalg.det(basis) < 0:
        basis[2] *= -1.0
    return PlaneFrame(basis=basis, origin=origin)


def check_not_collinear(object_points: np.ndarray) -> None:
    _spread(object_points)


def _similarity(points: np.ndarray) -> np.ndarray:
    """Hartley normalisation: centroid to origin, mean distance sqrt(dim)."""
    dim = points.shape[1]
    centroid = points.mean(axis=0)
    mean_dist = float(np.mean(np.linalg.norm(points - centroid, axis=1)))
    if mean_dist <= 0.0:
        raise DegenerateGeometry("Points coincide")
    scale = np.sqrt(dim) / mean_dist
    T = np.eye(dim + 1)
    T[:dim, :dim] *= scale
    T[:dim, dim] = -scale * centroid
    return T


def _homogeneous(points: np.ndarray) -> np.ndarray:
    return np.hstack([points, np.ones((len(points), 1))])


def _null_vector(A: np.ndarray, unknowns: int, what: str) -> np.ndarray:
    _, s, vt = np.linalg.svd(A)
    # The system must have rank unknowns - 1 for a unique solution up to scale.
    if s.size < unknowns - 1 or s[unknowns - 2] <= _RANK_TOL * s[0]:
        raise DegenerateGeometry(f"Rank-deficient system while estimating {what}")
    return vt[-1]


def find_homography(src: np.ndarray, dst: np.ndarray) -> np.ndarray:
    """Normalised DLT homography mapping ``src`` (N, 2) onto ``dst`` (N, 2)."""

    src = np.asarray(src, dtype=np.float64).reshape(-1, 2)
    dst = np.asarray(dst, dtype=np.float64).reshape(-1, 2)
    if len(src) < 4:
        raise DegenerateGeometry("A homography needs at least four points")

    Ts, Td = _similarity(src), _similarity(dst)
    s = _homogeneous(src) @ Ts.T
    d = _homogeneous(dst) @ Td.T

    A = np.zeros((2 * len(s), 9))
    A[0::2, 0:3] = -s
    A[0::2, 6:9] = s * d[:, 0:1]
    A[1::2, 3:6] = -s
    A[1::2, 6:9] = s * d[:, 1:2]

    H = _null_vector(A, 9, "homography").reshape(3, 3)
    H = np.linalg.inv(Td) @ H @ Ts
    return H / np.linalg.norm(H)


def pose_from_homography(H: np.ndarray) -> Pose:
    """Decompose a plane-to-normalised-image homography into a plane pose."""

    h1, h2, h3 = H[:, 0], H[:, 1], H[:, 2]
    scale = 2.0 / (np.linalg.norm(h1) + np.linalg.norm(h2))
    if h3[2] * scale < 0:
        scale = -scale
    r1, r2 = h1 * scale, h2 * scale
    approx = np.column_stack([r1, r2, np.cross(r1, r2)])
    u, _, vt = np.linalg.svd(approx)
    R = u @ vt
    if np.linalg.det(R) < 0:
        R = u @ np.diag([1.0, 1.0, -1.0]) @ vt
    return Pose.from_matrix(R, h3 * scale, refined=False)


def pose_from_dlt(object_points: np.ndarray, normalized_points: np.ndarray) -> Pose:
    """Direct linear estimate of ``[R|t]`` from non-coplanar points (N >= 6)."""

    obj = np.asarray(object_points, dtype=np.float64).reshape(-1, 3)
    img = np.asarray(normalized_points, dtype=np.float64).reshape(-1, 2)
    if len(obj) < 6:
        raise DegenerateGeometry("The DLT needs at least six non-coplanar points")

    T3, T2 = _similarity(obj), _similarity(img)
    X = _homogeneous(obj) @ T3.T
    x = _homogeneous(img) @ T2.T

    A = np.zeros((2 * len(X), 12))
    A[0::2, 0:4] = X
    A[0::2, 8:12] = -X * x[:, 0:1]
    A[1::2, 4:8] = X
    A[1::2, 8:12] = -X * x[:, 1:2]

    P = _null_vector(A, 12, "projection").reshape(3, 4)
    P = np.linalg.inv(T2) @ P @ T3
    M = P[:, :3]
    if np.linalg.det(M) < 0:
        P, M = -P, -M
    u, s, vt = np.linalg.svd(M)
    R = u @ vt
    t = P[:, 3] / float(np.mean(s))
    return Pose.from_matrix(R, t, refined=False)
