"""Image-point acquisition strategies: automatic chessboard detection or manual picking."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Union

import numpy as np

from .chessboard import ChessboardPattern, CornerDetectionConfig, detect_corners, draw_corners
from .errors import InputError
from .labeling import ManualPointPicker, show_image
from .model import CorrespondenceSet

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Chessboard:
    pattern: ChessboardPattern = field(default_factory=ChessboardPattern)
    config: CornerDetectionConfig = field(default_factory=CornerDetectionConfig)


@dataclass(frozen=True)
class Manual:
    count: int
    display_scale: float = 1.0


AcquisitionStrategy = Union[Chessboard, Manual]


def acquire_image_points(image: np.ndarray, strategy: AcquisitionStrategy, *, show: bool = False) -> np.ndarray:
    """Return ``(N, 2)`` image points for ``image`` using ``strategy``.

    With ``show`` the detected chessboard is displayed before returning.
    Manual picking always opens a window and blocks until it finishes.
    """

    if isinstance(strategy, Chessboard):
        points = detect_corners(image, strategy.pattern, strategy.config)
        logger.info("Detected %d chessboard corners", len(points))
        if show:
            show_image(draw_corners(image, points, strategy.pattern), "Chessboard Corners")
        return points
    if isinstance(strategy, Manual):
        return ManualPointPicker(strategy.display_scale).pick(image, strategy.count)
    raise TypeError(f"Unknown acquisition strategy: {type(strategy).__name__}")


def acquire_correspondences(
    image: np.ndarray,
    object_points: np.ndarray,
    strategy: AcquisitionStrategy,
    *,
    show: bool = False,
) -> CorrespondenceSet:
    """Pair ``object_points`` with image points acquired from ``image``."""

    object_points = np.asarray(object_points, dtype=np.float64).reshape(-1, 3)
    expected = strategy.pattern.num_corners if isinstance(strategy, Chessboard) else strategy.count
    if expected != len(object_points):
        raise InputError(
            f"Strategy yields {expected} image points but {len(object_points)} object points were given"
        )
    return CorrespondenceSet(object_points, acquire_image_points(image, strategy, show=show))
