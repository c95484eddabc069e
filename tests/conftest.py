"""
pytest configuration and synthetic camera fixtures.
"""
import os

os.environ.setdefault("MPLBACKEND", "Agg")

import cv2
import numpy as np
import pytest

from camcalib import ChessboardPattern, CorrespondenceSet, IntrinsicModel, Pose

IMAGE_SIZE = (1280, 960)


def board_facing_pose(pattern, rvec, distance):
    """Pose that puts the board centre on the optical axis at ``distance``."""
    R, _ = cv2.Rodrigues(np.asarray(rvec, dtype=np.float64).reshape(3, 1))
    center = pattern.object_points().mean(axis=0)
    tvec = np.array([0.0, 0.0, distance]) - R @ center
    return Pose(rvec, tvec)


def project(object_points, pose, intrinsic):
    pts, _ = cv2.projectPoints(
        np.asarray(object_points, dtype=np.float64).reshape(-1, 1, 3),
        pose.rvec.reshape(3, 1),
        pose.tvec.reshape(3, 1),
        intrinsic.matrix,
        intrinsic.distortion,
    )
    return pts.reshape(-1, 2)


def render_chessboard(pattern, pose, intrinsic, image_size=IMAGE_SIZE, px_per_unit=2.0):
    """Warp a flat chessboard texture into a distortion-free camera view."""
    square = pattern.square_size
    square_px = int(round(square * px_per_unit))
    n_cols, n_rows = pattern.columns + 1, pattern.rows + 1
    margin = square_px
    texture = np.full((n_rows * square_px + 2 * margin, n_cols * square_px + 2 * margin), 255, np.uint8)
    for r in range(n_rows):
        for c in range(n_cols):
            if (r + c) % 2 == 0:
                y0, x0 = margin + r * square_px, margin + c * square_px
                texture[y0 : y0 + square_px, x0 : x0 + square_px] = 0

    # texture pixel centre -> object coordinates; inner corner (0, 0) sits one square in from the margin
    offset = (margin + square_px) / px_per_unit
    to_object = np.array(
        [
            [1.0 / px_per_unit, 0.0, 0.5 / px_per_unit - offset],
            [0.0, 1.0 / px_per_unit, 0.5 / px_per_unit - offset],
            [0.0, 0.0, 1.0],
        ]
    )
    R = pose.rotation_matrix
    H = intrinsic.matrix @ np.column_stack([R[:, 0], R[:, 1], pose.tvec]) @ to_object
    return cv2.warpPerspective(
        texture, H, image_size, flags=cv2.INTER_LINEAR, borderMode=cv2.BORDER_CONSTANT, borderValue=160
    )


@pytest.fixture
def pattern():
    """The 10x7 inner-corner board with 24 mm squares."""
    return ChessboardPattern(columns=10, rows=7, square_size=24.0)


@pytest.fixture
def intrinsic():
    return IntrinsicModel(fx=1000.0, fy=990.0, cx=645.0, cy=475.0, distortion=np.zeros(5))


@pytest.fixture
def distorted_intrinsic():
    return IntrinsicModel(
        fx=1000.0, fy=990.0, cx=645.0, cy=475.0,
        distortion=np.array([-0.12, 0.05, 0.001, -0.0005, 0.0]),
    )


@pytest.fixture
def true_poses(pattern):
    rvecs = [
        (0.30, -0.20, 0.05),
        (-0.25, 0.35, -0.10),
        (0.10, 0.40, 0.20),
        (-0.35, -0.15, -0.05),
    ]
    distances = [600.0, 650.0, 700.0, 620.0]
    return [board_facing_pose(pattern, r, d) for r, d in zip(rvecs, distances)]


@pytest.fixture
def synthetic_views(pattern, intrinsic, true_poses):
    """Noiseless correspondences of the board under each ground-truth pose."""
    obj = pattern.object_points()
    return [CorrespondenceSet(obj, project(obj, pose, intrinsic)) for pose in true_poses]


@pytest.fixture
def rendered_images(tmp_path, pattern, intrinsic, true_poses):
    """Write one rendered PNG per ground-truth pose and return their paths."""
    paths = []
    for index, pose in enumerate(true_poses):
        path = tmp_path / f"{index}.png"
        cv2.imwrite(str(path), render_chessboard(pattern, pose, intrinsic))
        paths.append(path)
    return paths
