"""
Tests for multi-view intrinsic calibration.
"""
import numpy as np
import pytest

from camcalib import (
    CalibrationConfig,
    CorrespondenceSet,
    DegenerateGeometry,
    InputError,
    InsufficientData,
    InsufficientPoints,
    calibrate_from_images,
    calibrate_intrinsics,
)
from camcalib.calibration import initial_intrinsics
from camcalib.geometry import find_homography

from conftest import IMAGE_SIZE, project


def rotation_angle_error(a, b):
    Ra, Rb = a.rotation_matrix, b.rotation_matrix
    cos = np.clip((np.trace(Ra.T @ Rb) - 1.0) / 2.0, -1.0, 1.0)
    return float(np.arccos(cos))


class TestCalibrateIntrinsics:
    """Calibration on noiseless synthetic correspondences."""

    def test_recovers_ground_truth(self, synthetic_views, intrinsic, true_poses):
        session = calibrate_intrinsics(synthetic_views[:3], IMAGE_SIZE)

        np.testing.assert_allclose(session.intrinsic.matrix, intrinsic.matrix, rtol=0.01)
        assert session.rms_error < 1e-3
        assert len(session.poses) == 3
        for estimated, truth in zip(session.poses, true_poses):
            assert rotation_angle_error(estimated, truth) < 0.01 * truth.angle
            np.testing.assert_allclose(estimated.tvec, truth.tvec, rtol=0.01, atol=0.5)

    def test_two_views_are_enough(self, synthetic_views, intrinsic):
        session = calibrate_intrinsics(synthetic_views[:2], IMAGE_SIZE)

        np.testing.assert_allclose(session.intrinsic.matrix, intrinsic.matrix, rtol=0.01)
        assert len(session.poses) == 2
        assert session.rms_error < 1e-3

    def test_linear_estimate_is_exact_without_noise(self, synthetic_views, intrinsic):
        homographies = [find_homography(v.object_points[:, :2], v.image_points) for v in synthetic_views]
        K = initial_intrinsics(homographies, IMAGE_SIZE)
        np.testing.assert_allclose(K, intrinsic.matrix, rtol=1e-6, atol=1e-6)

    def test_recovers_distortion(self, pattern, distorted_intrinsic, true_poses):
        obj = pattern.object_points()
        views = [CorrespondenceSet(obj, project(obj, pose, distorted_intrinsic)) for pose in true_poses]

        session = calibrate_intrinsics(views, IMAGE_SIZE)

        np.testing.assert_allclose(session.intrinsic.matrix, distorted_intrinsic.matrix, rtol=0.01)
        np.testing.assert_allclose(session.intrinsic.distortion[:2], distorted_intrinsic.distortion[:2], atol=0.01)
        assert session.rms_error < 1e-3
        assert session.converged

    def test_four_coefficient_model(self, synthetic_views):
        session = calibrate_intrinsics(synthetic_views, IMAGE_SIZE, CalibrationConfig(estimate_k3=False))
        assert session.intrinsic.distortion.shape == (4,)

    def test_noisy_views(self, synthetic_views, intrinsic):
        rng = np.random.default_rng(7)
        noisy = [
            CorrespondenceSet(v.object_points, v.image_points + rng.normal(scale=0.2, size=v.image_points.shape))
            for v in synthetic_views
        ]
        session = calibrate_intrinsics(noisy, IMAGE_SIZE)

        np.testing.assert_allclose(session.intrinsic.matrix, intrinsic.matrix, rtol=0.02)
        assert 0.1 < session.rms_error < 0.4
        assert len(session.per_view_errors) == 4


class TestCalibrationFailures:

    def test_single_view(self, synthetic_views):
        with pytest.raises(InsufficientData):
            calibrate_intrinsics(synthetic_views[:1], IMAGE_SIZE)

    def test_no_views(self):
        with pytest.raises(InsufficientData):
            calibrate_intrinsics([], IMAGE_SIZE)

    def test_collinear_points(self):
        obj = np.column_stack([np.arange(10) * 24.0, np.zeros(10), np.zeros(10)])
        img = np.column_stack([np.arange(10) * 30.0 + 100, np.full(10, 200.0)])
        views = [CorrespondenceSet(obj, img), CorrespondenceSet(obj, img + 5.0)]
        with pytest.raises(DegenerateGeometry):
            calibrate_intrinsics(views, IMAGE_SIZE)

    def test_non_planar_target(self, synthetic_views):
        rng = np.random.default_rng(1)
        obj = rng.uniform(0, 100, size=(20, 3))
        img = rng.uniform(0, 500, size=(20, 2))
        with pytest.raises(DegenerateGeometry):
            calibrate_intrinsics([synthetic_views[0], CorrespondenceSet(obj, img)], IMAGE_SIZE)

    def test_too_few_points_per_view(self, synthetic_views):
        small = CorrespondenceSet(synthetic_views[0].object_points[:5], synthetic_views[0].image_points[:5])
        with pytest.raises(InsufficientPoints):
            calibrate_intrinsics([synthetic_views[1], small], IMAGE_SIZE)

    def test_invalid_image_size(self, synthetic_views):
        with pytest.raises(InputError):
            calibrate_intrinsics(synthetic_views, (0, 480))


@pytest.mark.slow
class TestCalibrateFromImages:
    """End to end: rendered images through detection and calibration."""

    def test_calibrates_rendered_views(self, pattern, intrinsic, rendered_images):
        session = calibrate_from_images(rendered_images, pattern)

        assert session.image_paths == rendered_images
        assert session.image_size == IMAGE_SIZE
        np.testing.assert_allclose(session.intrinsic.matrix, intrinsic.matrix, rtol=0.02)
        assert session.rms_error < 0.5

    def test_too_few_detections(self, tmp_path, pattern, rendered_images):
        missing = tmp_path / "missing.png"
        with pytest.raises(InsufficientData):
            calibrate_from_images([rendered_images[0], missing], pattern)
