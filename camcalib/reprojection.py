"""Reprojection diagnostics for a pose and intrinsic model."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .errors import InputError
from .geometry import project_points
from .model import IntrinsicModel, Pose


@dataclass
class ReprojectionReport:
    predicted: np.ndarray
    residuals: np.ndarray
    rms: float

    @property
    def max_error(self) -> float:
        return float(self.residuals.max()) if self.residuals.size else 0.0


def evaluate_reprojection(
    object_points: np.ndarray,
    pose: Pose,
    intrinsic: IntrinsicModel,
    image_points: np.ndarray,
) -> ReprojectionReport:
    """Project ``object_points`` and compare them with the measured ``image_points``.

    The per-point residual is the Euclidean pixel distance; ``rms`` is the
    root mean square over all points.
    """

    obj = np.asarray(object_points, dtype=np.float64).reshape(-1, 3)
    measured = np.asarray(image_points, dtype=np.float64).reshape(-1, 2)
    if len(obj) != len(measured):
        raise InputError(f"Got {len(obj)} object points but {len(measured)} image points")
    if len(obj) == 0:
        raise InputError("No points to evaluate")

    predicted, _ = project_points(obj, pose, intrinsic)
    residuals = np.linalg.norm(predicted - measured, axis=1)
    rms = float(np.sqrt(np.mean(residuals**2)))
    return ReprojectionReport(predicted=predicted, residuals=residuals, rms=rms)
