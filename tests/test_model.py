"""
Tests for the camera model value types.
"""
import numpy as np
import pytest

from camcalib import CorrespondenceSet, InputError, IntrinsicModel, Pose


class TestIntrinsicFromMatrix:

    def test_round_trip(self, distorted_intrinsic):
        model = IntrinsicModel.from_matrix(distorted_intrinsic.matrix, distorted_intrinsic.distortion)
        np.testing.assert_array_equal(model.matrix, distorted_intrinsic.matrix)
        np.testing.assert_array_equal(model.distortion, distorted_intrinsic.distortion)

    @pytest.mark.parametrize("w", [2.0, -0.5])
    def test_divides_by_last_entry(self, intrinsic, w):
        model = IntrinsicModel.from_matrix(w * intrinsic.matrix)
        np.testing.assert_allclose(model.matrix, intrinsic.matrix)

    @pytest.mark.parametrize("row,col", [(0, 1), (1, 0), (2, 0), (2, 1)])
    def test_rejects_off_pinhole_entries(self, intrinsic, row, col):
        K = intrinsic.matrix
        K[row, col] = 0.5
        with pytest.raises(InputError):
            IntrinsicModel.from_matrix(K)

    @pytest.mark.parametrize("K", [np.eye(2), np.diag([1.0, 1.0, 0.0]), np.full((3, 3), np.nan)])
    def test_rejects_malformed(self, K):
        with pytest.raises(InputError):
            IntrinsicModel.from_matrix(K)

    def test_distortion_length(self):
        with pytest.raises(InputError):
            IntrinsicModel(1.0, 1.0, 0.0, 0.0, distortion=np.zeros(3))


class TestPose:

    def test_arrays_are_read_only(self):
        pose = Pose(np.zeros(3), np.array([0.0, 0.0, 1.0]))
        with pytest.raises(ValueError):
            pose.tvec[0] = 5.0

    def test_transform(self):
        pose = Pose(np.array([0.0, 0.0, np.pi / 2]), np.array([1.0, 2.0, 3.0]))
        np.testing.assert_allclose(pose.transform([[1.0, 0.0, 0.0]]), [[1.0, 3.0, 3.0]], atol=1e-12)


class TestCorrespondenceSet:

    def test_length_mismatch(self):
        with pytest.raises(InputError):
            CorrespondenceSet(np.zeros((4, 3)), np.zeros((5, 2)))
