"""Multi-view intrinsic calibration from planar targets."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

import numpy as np

from .chessboard import ChessboardPattern, CornerDetectionConfig, collect_corners
from .errors import DegenerateGeometry, InputError, InsufficientData, InsufficientPoints
from .geometry import PlaneFrame, find_homography, plane_frame, pose_from_homography, project_points
from .model import CorrespondenceSet, IntrinsicModel, Pose
from .optimize import SolverConfig, levenberg_marquardt

logger = logging.getLogger(__name__)

MIN_VIEWS = 2
MIN_VIEW_POINTS = 6


@dataclass(frozen=True)
class CalibrationConfig:
    estimate_k3: bool = True
    solver: SolverConfig = field(default_factory=lambda: SolverConfig(max_iterations=200))

    @property
    def num_distortion(self) -> int:
        return 5 if self.estimate_k3 else 4


@dataclass
class CalibrationSession:
    views: list[CorrespondenceSet]
    image_size: tuple[int, int]
    intrinsic: IntrinsicModel
    poses: list[Pose]
    rms_error: float
    per_view_errors: list[float]
    converged: bool = True
    image_paths: list[Path] = field(default_factory=list)


def _pixel_normalization(image_size: tuple[int, int]) -> np.ndarray:
    """Shift the image centre to the origin and scale by the larger dimension."""
    width, height = image_size
    scale = float(max(width, height))
    return np.array(
        [
            [1.0 / scale, 0.0, -0.5 * width / scale],
            [0.0, 1.0 / scale, -0.5 * height / scale],
            [0.0, 0.0, 1.0],
        ]
    )


def _conic_row(H: np.ndarray, i: int, j: int) -> np.ndarray:
    hi, hj = H[:, i], H[:, j]
    return np.array(
        [
            hi[0] * hj[0],
            hi[0] * hj[1] + hi[1] * hj[0],
            hi[1] * hj[1],
            hi[2] * hj[0] + hi[0] * hj[2],
            hi[2] * hj[1] + hi[1] * hj[2],
            hi[2] * hj[2],
        ]
    )


def _closed_form_intrinsics(homographies: Sequence[np.ndarray]) -> np.ndarray | None:
    """Zhang's closed-form solve of the image of the absolute conic, zero skew."""

    rows = []
    for H in homographies:
        rows.append(_conic_row(H, 0, 1))
        rows.append(_conic_row(H, 0, 0) - _conic_row(H, 1, 1))
    rows.append(np.array([0.0, 1.0, 0.0, 0.0, 0.0, 0.0]))
    _, _, vt = np.linalg.svd(np.asarray(rows))
    B11, B12, B22, B13, B23, B33 = vt[-1]

    denom = B11 * B22 - B12 * B12
    if abs(B11) < 1e-15 or abs(denom) < 1e-15:
        return None
    v0 = (B12 * B13 - B11 * B23) / denom
    lam = B33 - (B13 * B13 + v0 * (B12 * B13 - B11 * B23)) / B11
    alpha2 = lam / B11
    beta2 = lam * B11 / denom
    if alpha2 <= 0 or beta2 <= 0:
        return None
    u0 = -B13 * alpha2 / lam
    return np.array([[np.sqrt(alpha2), 0.0, u0], [0.0, np.sqrt(beta2), v0], [0.0, 0.0, 1.0]])


def _centered_focal_intrinsics(homographies: Sequence[np.ndarray]) -> np.ndarray | None:
    """Focal lengths only, with the principal point at the image centre."""

    A, b = [], []
    for H in homographies:
        h1, h2 = H[:, 0], H[:, 1]
        A.append([h1[0] * h2[0], h1[1] * h2[1]])
        b.append(-h1[2] * h2[2])
        A.append([h1[0] ** 2 - h2[0] ** 2, h1[1] ** 2 - h2[1] ** 2])
        b.append(-(h1[2] ** 2 - h2[2] ** 2))
    inv_f2, *_ = np.linalg.lstsq(np.asarray(A), np.asarray(b), rcond=None)
    if np.any(inv_f2 <= 0):
        return None
    fx, fy = 1.0 / np.sqrt(inv_f2)
    return np.array([[fx, 0.0, 0.0], [0.0, fy, 0.0], [0.0, 0.0, 1.0]])


def initial_intrinsics(homographies: Sequence[np.ndarray], image_size: tuple[int, int]) -> np.ndarray:
    """Linear intrinsic matrix from plane-to-pixel homographies."""

    N = _pixel_normalization(image_size)
    normalized = [N @ H for H in homographies]
    normalized = [H / np.linalg.norm(H) for H in normalized]

    K = _closed_form_intrinsics(normalized)
    if K is None:
        logger.warning("Closed-form intrinsics failed; assuming the principal point at the image centre")
        K = _centered_focal_intrinsics(normalized)
    if K is None:
        raise DegenerateGeometry("Homographies do not constrain the intrinsic matrix")

    K = np.linalg.inv(N) @ K
    return K / K[2, 2]


def _plane_frame_or_raise(view: CorrespondenceSet, index: int) -> PlaneFrame:
    try:
        frame = plane_frame(view.object_points)
    except DegenerateGeometry as exc:
        raise DegenerateGeometry(f"View {index}: {exc}") from exc
    if frame is None:
        raise DegenerateGeometry(f"View {index}: object points are not coplanar")
    return frame


def _calibration_residuals(views: Sequence[CorrespondenceSet], num_distortion: int):
    counts = [len(v) for v in views]
    offsets = np.concatenate([[0], np.cumsum(counts) * 2])
    num_params = 4 + num_distortion + 6 * len(views)
    measured = np.concatenate([v.image_points.reshape(-1) for v in views])

    def fun(x: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        intrinsic = IntrinsicModel(x[0], x[1], x[2], x[3], x[4 : 4 + num_distortion])
        projected = np.empty_like(measured)
        J = np.zeros((len(measured), num_params))
        for index, view in enumerate(views):
            col = 4 + num_distortion + 6 * index
            pose = Pose(x[col : col + 3], x[col + 3 : col + 6])
            pts, jac = project_points(view.object_points, pose, intrinsic)
            rows = slice(offsets[index], offsets[index + 1])
            projected[rows] = pts.reshape(-1)
            J[rows, 0:4] = jac[:, 6:10]
            J[rows, 4 : 4 + num_distortion] = jac[:, 10 : 10 + num_distortion]
            J[rows, col : col + 6] = jac[:, 0:6]
        return projected - measured, J

    return fun


def calibrate_intrinsics(
    views: Sequence[CorrespondenceSet],
    image_size: tuple[int, int],
    config: CalibrationConfig = CalibrationConfig(),
) -> CalibrationSession:
    """Fit a shared intrinsic model and one pose per view.

    Homographies give a linear intrinsic estimate and per-view poses, which
    are then refined jointly with the distortion coefficients by minimising
    the total squared reprojection error.
    """

    views = list(views)
    if len(views) < MIN_VIEWS:
        raise InsufficientData(f"Calibration needs at least {MIN_VIEWS} usable views, got {len(views)}")
    for index, view in enumerate(views):
        if len(view) < MIN_VIEW_POINTS:
            raise InsufficientPoints(
                f"View {index} has {len(view)} points, calibration needs at least {MIN_VIEW_POINTS}"
            )
    width, height = image_size
    if width <= 0 or height <= 0:
        raise InputError(f"Invalid image size: {image_size}")

    frames = [_plane_frame_or_raise(view, index) for index, view in enumerate(views)]
    homographies = []
    for index, (view, frame) in enumerate(zip(views, frames)):
        try:
            homographies.append(find_homography(frame.to_plane(view.object_points), view.image_points))
        except DegenerateGeometry as exc:
            raise DegenerateGeometry(f"View {index}: {exc}") from exc

    K = initial_intrinsics(homographies, image_size)
    K_inv = np.linalg.inv(K)
    seeds = [frame.compose(pose_from_homography(K_inv @ H)) for frame, H in zip(frames, homographies)]
    logger.info(
        "Initial intrinsics from %d views: fx=%.2f fy=%.2f cx=%.2f cy=%.2f",
        len(views), K[0, 0], K[1, 1], K[0, 2], K[1, 2],
    )

    num_distortion = config.num_distortion
    x0 = np.concatenate(
        [[K[0, 0], K[1, 1], K[0, 2], K[1, 2]], np.zeros(num_distortion)]
        + [np.concatenate([p.rvec, p.tvec]) for p in seeds]
    )
    fun = _calibration_residuals(views, num_distortion)
    result = levenberg_marquardt(fun, x0, config.solver)
    if not result.converged:
        logger.warning(
            "Calibration refinement stopped after %d iterations without converging (%s)",
            result.iterations, result.reason,
        )

    x = result.x
    intrinsic = IntrinsicModel(x[0], x[1], x[2], x[3], x[4 : 4 + num_distortion])
    poses = []
    for index in range(len(views)):
        col = 4 + num_distortion + 6 * index
        poses.append(Pose(x[col : col + 3], x[col + 3 : col + 6], refined=result.converged))

    residuals, _ = fun(x)
    per_point = residuals.reshape(-1, 2)
    total_points = len(per_point)
    rms = float(np.sqrt(result.cost / total_points))
    per_view = []
    start = 0
    for view in views:
        chunk = per_point[start : start + len(view)]
        per_view.append(float(np.sqrt(np.mean(np.sum(chunk**2, axis=1)))))
        start += len(view)

    logger.info("Calibration RMS reprojection error: %.4f px", rms)
    return CalibrationSession(
        views=views,
        image_size=(int(width), int(height)),
        intrinsic=intrinsic,
        poses=poses,
        rms_error=rms,
        per_view_errors=per_view,
        converged=result.converged,
    )


def calibrate_from_images(
    image_paths: Sequence[str | Path],
    pattern: ChessboardPattern,
    detection: CornerDetectionConfig = CornerDetectionConfig(),
    config: CalibrationConfig = CalibrationConfig(),
    *,
    vis_dir: str | Path | None = None,
) -> CalibrationSession:
    """Detect the chessboard in each image and calibrate from the usable views."""

    records = collect_corners(image_paths, pattern, detection, vis_dir=vis_dir)
    if len(records) < MIN_VIEWS:
        raise InsufficientData(
            f"Only {len(records)} of {len(image_paths)} images contained the pattern; "
            f"at least {MIN_VIEWS} are required"
        )
    sizes = {r.image_size for r in records}
    if len(sizes) != 1:
        raise InputError("All images must share the same resolution for calibration")

    object_points = pattern.object_points()
    views = [CorrespondenceSet(object_points, r.points) for r in records]
    session = calibrate_intrinsics(views, next(iter(sizes)), config)
    session.image_paths = [r.image_path for r in records]
    return session
