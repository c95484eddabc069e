"""Persisted intrinsic and pose parameters.

Documents hold any subset of the fields ``intrinsic`` (3x3), ``distortion``
(4 or 5 values), ``rotation`` (3) and ``translation`` (3). The format is
picked from the suffix: ``.xml``/``.yml``/``.yaml`` use OpenCV FileStorage,
anything else is JSON.
"""

from __future__ import annotations

import json
from pathlib import Path

import cv2
import numpy as np

from .errors import InputError, ParseError, StorageError
from .model import IntrinsicModel, Pose

FILE_STORAGE_SUFFIXES = {".xml", ".yml", ".yaml"}
FIELDS = ("intrinsic", "distortion", "rotation", "translation")


def _fields(intrinsic: IntrinsicModel | None, pose: Pose | None) -> dict[str, np.ndarray]:
    fields: dict[str, np.ndarray] = {}
    if intrinsic is not None:
        fields["intrinsic"] = intrinsic.matrix
        fields["distortion"] = intrinsic.distortion.reshape(-1, 1)
    if pose is not None:
        fields["rotation"] = pose.rvec.reshape(3, 1)
        fields["translation"] = pose.tvec.reshape(3, 1)
    return fields


def _write_file_storage(path: Path, fields: dict[str, np.ndarray]) -> None:
    try:
        fs = cv2.FileStorage(str(path), cv2.FILE_STORAGE_WRITE)
    except cv2.error as exc:
        raise StorageError(f"Failed to open the file: {path}: {exc}") from exc
    if not fs.isOpened():
        raise StorageError(f"Failed to open the file: {path}")
    try:
        for name, value in fields.items():
            fs.write(name, np.asarray(value, dtype=np.float64))
    finally:
        fs.release()


def _read_file_storage(path: Path) -> dict[str, np.ndarray]:
    try:
        fs = cv2.FileStorage(str(path), cv2.FILE_STORAGE_READ)
    except cv2.error as exc:
        raise ParseError(f"Malformed parameter file: {path}: {exc}") from exc
    if not fs.isOpened():
        raise StorageError(f"Failed to open the file: {path}")
    try:
        data = {}
        for name in FIELDS:
            node = fs.getNode(name)
            if node.empty():
                continue
            value = node.mat()
            if value is None:
                raise ParseError(f"{path}: field '{name}' is not a matrix")
            data[name] = value
        return data
    finally:
        fs.release()


def _read_json(path: Path) -> dict[str, np.ndarray]:
    try:
        with path.open("r", encoding="utf-8") as f:
            raw = json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ParseError(f"Malformed parameter file: {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ParseError(f"{path}: expected a JSON object")

    data = {}
    for name in FIELDS:
        if name not in raw:
            continue
        try:
            data[name] = np.asarray(raw[name], dtype=np.float64)
        except (TypeError, ValueError) as exc:
            raise ParseError(f"{path}: field '{name}' is not numeric: {exc}") from exc
    return data


def save_parameters(path: str | Path, intrinsic: IntrinsicModel | None = None, pose: Pose | None = None) -> Path:
    """Write the given intrinsic model and/or pose to ``path``."""

    if intrinsic is None and pose is None:
        raise InputError("Nothing to save: neither an intrinsic model nor a pose was given")
    path = Path(path)
    fields = _fields(intrinsic, pose)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.suffix.lower() in FILE_STORAGE_SUFFIXES:
            _write_file_storage(path, fields)
        else:
            document = {
                name: value.tolist() if name == "intrinsic" else value.reshape(-1).tolist()
                for name, value in fields.items()
            }
            with path.open("w", encoding="utf-8") as f:
                json.dump(document, f, indent=2)
    except StorageError:
        raise
    except OSError as exc:
        raise StorageError(f"Failed to write {path}: {exc}") from exc
    return path


def _vector(data: dict[str, np.ndarray], name: str, sizes: tuple[int, ...]) -> np.ndarray:
    value = np.asarray(data[name], dtype=np.float64).reshape(-1)
    if value.size not in sizes or not np.all(np.isfinite(value)):
        raise ParseError(f"Field '{name}' must hold {' or '.join(map(str, sizes))} finite values, got {value.size}")
    return value


def load_parameters(path: str | Path) -> tuple[IntrinsicModel | None, Pose | None]:
    """Read ``(intrinsic, pose)`` from ``path``; either may be None when absent."""

    path = Path(path)
    if not path.is_file():
        raise StorageError(f"Parameter file not found: {path}")
    try:
        if path.suffix.lower() in FILE_STORAGE_SUFFIXES:
            data = _read_file_storage(path)
        else:
            data = _read_json(path)
    except (StorageError, ParseError):
        raise
    except OSError as exc:
        raise StorageError(f"Failed to read {path}: {exc}") from exc

    if not data:
        raise ParseError(f"{path}: none of the fields {', '.join(FIELDS)} present")

    intrinsic = None
    if "intrinsic" in data or "distortion" in data:
        if "intrinsic" not in data or "distortion" not in data:
            raise ParseError(f"{path}: 'intrinsic' and 'distortion' must be stored together")
        K = np.asarray(data["intrinsic"], dtype=np.float64)
        if K.shape != (3, 3) or not np.all(np.isfinite(K)):
            raise ParseError(f"{path}: field 'intrinsic' must be a finite 3x3 matrix, got shape {K.shape}")
        try:
            intrinsic = IntrinsicModel.from_matrix(K, _vector(data, "distortion", (4, 5)))
        except InputError as exc:
            raise ParseError(f"{path}: {exc}") from exc

    pose = None
    if "rotation" in data or "translation" in data:
        if "rotation" not in data or "translation" not in data:
            raise ParseError(f"{path}: 'rotation' and 'translation' must be stored together")
        pose = Pose(_vector(data, "rotation", (3,)), _vector(data, "translation", (3,)))

    return intrinsic, pose
