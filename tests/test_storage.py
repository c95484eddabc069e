"""
Tests for saving and loading parameter documents.
"""
import json

import numpy as np
import pytest

from camcalib import (
    InputError,
    IntrinsicModel,
    ParseError,
    Pose,
    StorageError,
    load_parameters,
    save_parameters,
)


@pytest.fixture
def pose():
    return Pose(np.array([0.1234567891, -0.5, 2.25]), np.array([-12.5, 300.0, 1234.56789]))


class TestRoundTrip:

    @pytest.mark.parametrize("name", ["camera.json", "camera.xml", "camera.yml", "params"])
    def test_full_document(self, tmp_path, name, distorted_intrinsic, pose):
        path = save_parameters(tmp_path / name, intrinsic=distorted_intrinsic, pose=pose)

        intrinsic, loaded_pose = load_parameters(path)

        np.testing.assert_allclose(intrinsic.matrix, distorted_intrinsic.matrix, atol=1e-9)
        np.testing.assert_allclose(intrinsic.distortion, distorted_intrinsic.distortion, atol=1e-9)
        np.testing.assert_allclose(loaded_pose.rvec, pose.rvec, atol=1e-9)
        np.testing.assert_allclose(loaded_pose.tvec, pose.tvec, atol=1e-9)

    @pytest.mark.parametrize("suffix", [".json", ".xml"])
    def test_intrinsic_only(self, tmp_path, suffix, intrinsic):
        loaded, pose = load_parameters(save_parameters(tmp_path / f"camera{suffix}", intrinsic=intrinsic))
        assert pose is None
        np.testing.assert_allclose(loaded.matrix, intrinsic.matrix)

    @pytest.mark.parametrize("suffix", [".json", ".xml"])
    def test_pose_only(self, tmp_path, suffix, pose):
        intrinsic, loaded = load_parameters(save_parameters(tmp_path / f"campos{suffix}", pose=pose))
        assert intrinsic is None
        np.testing.assert_allclose(loaded.tvec, pose.tvec)

    def test_four_coefficient_distortion(self, tmp_path):
        model = IntrinsicModel(800.0, 810.0, 320.0, 240.0, distortion=np.array([0.1, -0.2, 0.001, 0.002]))
        loaded, _ = load_parameters(save_parameters(tmp_path / "camera.json", intrinsic=model))
        np.testing.assert_allclose(loaded.distortion, model.distortion)

    def test_json_layout(self, tmp_path, intrinsic, pose):
        path = save_parameters(tmp_path / "camera.json", intrinsic=intrinsic, pose=pose)
        document = json.loads(path.read_text())
        assert set(document) == {"intrinsic", "distortion", "rotation", "translation"}
        assert np.asarray(document["intrinsic"]).shape == (3, 3)
        assert len(document["rotation"]) == 3


class TestFailures:

    def test_nothing_to_save(self, tmp_path):
        with pytest.raises(InputError):
            save_parameters(tmp_path / "empty.json")

    def test_missing_file(self, tmp_path):
        with pytest.raises(StorageError):
            load_parameters(tmp_path / "missing.json")

    def test_malformed_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json")
        with pytest.raises(ParseError):
            load_parameters(path)

    def test_no_known_fields(self, tmp_path):
        path = tmp_path / "other.json"
        path.write_text(json.dumps({"focal": 12}))
        with pytest.raises(ParseError):
            load_parameters(path)

    @pytest.mark.parametrize(
        "document",
        [
            {"intrinsic": np.eye(3).tolist()},
            {"rotation": [0.0, 0.0, 0.0]},
            {"rotation": [0.0, 0.0], "translation": [0.0, 0.0, 1.0]},
            {"intrinsic": [[1.0, 0.0], [0.0, 1.0]], "distortion": [0, 0, 0, 0, 0]},
            {"intrinsic": np.eye(3).tolist(), "distortion": [0, 0, 0]},
        ],
    )
    def test_incomplete_or_misshapen(self, tmp_path, document):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps(document))
        with pytest.raises(ParseError):
            load_parameters(path)

    def test_unwritable_target(self, tmp_path, intrinsic):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        with pytest.raises(StorageError):
            save_parameters(blocker / "camera.json", intrinsic=intrinsic)

    def test_invalid_utf8(self, tmp_path):
        path = tmp_path / "camera.json"
        path.write_bytes(b'{"intrinsic": "\xff\xfe"}')
        with pytest.raises(ParseError):
            load_parameters(path)

    def test_skewed_intrinsic(self, tmp_path):
        K = [[800.0, 2.5, 320.0], [0.0, 810.0, 240.0], [0.0, 0.0, 1.0]]
        path = tmp_path / "camera.json"
        path.write_text(json.dumps({"intrinsic": K, "distortion": [0, 0, 0, 0, 0]}))
        with pytest.raises(ParseError):
            load_parameters(path)


class TestMatrixNormalisation:

    def test_scaled_intrinsic_is_normalised(self, tmp_path):
        K = 2.0 * np.array([[800.0, 0.0, 320.0], [0.0, 810.0, 240.0], [0.0, 0.0, 1.0]])
        path = tmp_path / "camera.json"
        path.write_text(json.dumps({"intrinsic": K.tolist(), "distortion": [0, 0, 0, 0]}))

        intrinsic, _ = load_parameters(path)
        assert (intrinsic.fx, intrinsic.fy, intrinsic.cx, intrinsic.cy) == (800.0, 810.0, 320.0, 240.0)
