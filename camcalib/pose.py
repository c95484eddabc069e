"""Single-view pose estimation (PnP) against a known intrinsic model."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import cv2
import numpy as np

from .errors import DegenerateGeometry, InsufficientPoints, NonConvergent
from .geometry import (
    check_not_collinear,
    find_homography,
    normalize_image_points,
    plane_frame,
    pose_from_dlt,
    pose_from_homography,
    project_points,
)
from .model import CorrespondenceSet, IntrinsicModel, Pose
from .optimize import SolverConfig, levenberg_marquardt

logger = logging.getLogger(__name__)

MIN_POSE_POINTS = 4


@dataclass
class PoseEstimationResult:
    pose: Pose
    reprojection_error: float
    iterations: int


def initial_pose(correspondences: CorrespondenceSet, intrinsic: IntrinsicModel) -> Pose:
    """Linear pose estimate, tagged ``refined=False``."""

    obj = correspondences.object_points
    normalized = normalize_image_points(correspondences.image_points, intrinsic)

    frame = plane_frame(obj)
    if frame is not None:
        H = find_homography(frame.to_plane(obj), normalized)
        return frame.compose(pose_from_homography(H))

    if len(obj) >= 6:
        return pose_from_dlt(obj, normalized)

    ok, rvec, tvec = cv2.solvePnP(
        obj.reshape(-1, 1, 3),
        correspondences.image_points.reshape(-1, 1, 2),
        intrinsic.matrix,
        intrinsic.distortion,
        flags=cv2.SOLVEPNP_EPNP,
    )
    if not ok:
        raise DegenerateGeometry("EPnP could not find an initial pose")
    return Pose(rvec, tvec, refined=False)


def _pose_residuals(correspondences: CorrespondenceSet, intrinsic: IntrinsicModel):
    measured = correspondences.image_points.reshape(-1)

    def fun(x: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        projected, jacobian = project_points(
            correspondences.object_points, Pose(x[:3], x[3:]), intrinsic
        )
        return projected.reshape(-1) - measured, jacobian[:, :6]

    return fun


def estimate_pose(
    correspondences: CorrespondenceSet,
    intrinsic: IntrinsicModel,
    solver: SolverConfig = SolverConfig(),
    *,
    allow_unrefined: bool = False,
) -> PoseEstimationResult:
    """Estimate the object-to-camera pose of one view.

    A linear solve seeds Levenberg-Marquardt over the full distorted
    projection model. If refinement does not converge, :class:`NonConvergent`
    is raised carrying the unrefined pose, unless ``allow_unrefined`` is set,
    in which case that pose is returned instead.
    """

    if len(correspondences) < MIN_POSE_POINTS:
        raise InsufficientPoints(
            f"Pose estimation needs at least {MIN_POSE_POINTS} points, got {len(correspondences)}"
        )
    check_not_collinear(correspondences.object_points)

    seed = initial_pose(correspondences, intrinsic)
    x0 = np.concatenate([seed.rvec, seed.tvec])
    result = levenberg_marquardt(_pose_residuals(correspondences, intrinsic), x0, solver)
    n = len(correspondences)

    if not result.converged:
        message = f"Pose refinement did not converge after {result.iterations} iterations ({result.reason})"
        if not allow_unrefined:
            raise NonConvergent(message, pose=seed)
        logger.warning("%s; returning the unrefined linear estimate", message)
        residuals, _ = _pose_residuals(correspondences, intrinsic)(x0)
        return PoseEstimationResult(seed, float(np.sqrt(residuals @ residuals / n)), result.iterations)

    pose = Pose(result.x[:3], result.x[3:], refined=True)
    rms = float(np.sqrt(result.cost / n))
    logger.info("Pose converged in %d iterations, RMS %.4f px", result.iterations, rms)
    return PoseEstimationResult(pose, rms, result.iterations)
