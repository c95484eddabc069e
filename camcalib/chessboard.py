"""Chessboard target geometry, corner detection and object-point files."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

import cv2
import numpy as np

from .errors import DetectionFailure, InputError, ParseError

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".bmp", ".tif", ".tiff")


@dataclass(frozen=True)
class ChessboardPattern:
    """Definition of a planar chessboard calibration target.

    ``columns`` and ``rows`` count inner corners; ``square_size`` is in the
    unit the poses should be expressed in (millimetres by default).
    """

    columns: int = 10
    rows: int = 7
    square_size: float = 24.0

    def __post_init__(self) -> None:
        if self.columns < 2 or self.rows < 2:
            raise InputError(f"Chessboard needs at least 2x2 inner corners, got {self.columns}x{self.rows}")
        if self.square_size <= 0:
            raise InputError(f"Square size must be positive, got {self.square_size}")

    @property
    def size(self) -> tuple[int, int]:
        return self.columns, self.rows

    @property
    def num_corners(self) -> int:
        return self.columns * self.rows

    def object_points(self) -> np.ndarray:
        """Row-major grid on z = 0: point ``i * columns + j`` is ``(j * S, i * S, 0)``."""
        jj, ii = np.meshgrid(np.arange(self.columns), np.arange(self.rows))
        obj = np.zeros((self.num_corners, 3), dtype=np.float64)
        obj[:, 0] = jj.reshape(-1) * float(self.square_size)
        obj[:, 1] = ii.reshape(-1) * float(self.square_size)
        return obj


@dataclass(frozen=True)
class CornerDetectionConfig:
    """Parameters controlling chessboard corner detection."""

    equalize_hist: bool = True
    blur_kernel: int = 0
    invert: bool = False
    scale: float = 1.0
    roi: tuple[int, int, int, int] | None = None
    use_fast_check: bool = False
    prefer_sb: bool = True
    refine_subpixel: bool = True
    subpixel_window: int = 3
    subpixel_iterations: int = 20
    subpixel_epsilon: float = 0.03


@dataclass
class ChessboardCorners:
    """Detected chessboard corners in image coordinates."""

    image_path: Path | None
    points: np.ndarray
    image_size: tuple[int, int]


# ---------------------------------------------------------------------------
# Image helpers
# ---------------------------------------------------------------------------

def load_image(path: str | Path) -> np.ndarray:
    path = Path(path)
    image = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
    if image is None:
        raise InputError(f"Failed to read image: {path}")
    return image


def to_gray(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return image
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)


def list_images(paths: Sequence[str | Path]) -> list[Path]:
    """Expand directories into their image files (sorted); keep plain files as given."""
    images: list[Path] = []
    for entry in paths:
        entry = Path(entry)
        if entry.is_dir():
            images.extend(sorted(p for p in entry.iterdir() if p.suffix.lower() in IMAGE_EXTENSIONS))
        else:
            images.append(entry)
    return images


# ---------------------------------------------------------------------------
# Corner detection helpers
# ---------------------------------------------------------------------------

def _to_uint8(gray: np.ndarray) -> np.ndarray:
    if gray.dtype == np.uint8:
        return gray
    lo, hi = np.percentile(gray.astype(np.float32), (1.0, 99.0))
    if hi <= lo:
        lo, hi = float(np.min(gray)), float(np.max(gray))
        if hi <= lo:
            return np.zeros_like(gray, dtype=np.uint8)
    scaled = (gray.astype(np.float32) - lo) * (255.0 / max(hi - lo, 1e-6))
    return np.clip(scaled, 0, 255).astype(np.uint8)


def _preprocess(gray: np.ndarray, config: CornerDetectionConfig) -> np.ndarray:
    image = _to_uint8(gray)
    if config.invert:
        image = cv2.bitwise_not(image)
    if config.equalize_hist:
        clahe = cv2.createCLAHE(clipLimit=2.0, tileGridSize=(8, 8))
        image = clahe.apply(image)
    if config.blur_kernel > 0:
        k = max(1, int(config.blur_kernel) | 1)
        image = cv2.GaussianBlur(image, (k, k), 0)
    return image


def _apply_roi(gray: np.ndarray, roi: tuple[int, int, int, int] | None) -> tuple[np.ndarray, tuple[int, int]]:
    if roi is None:
        return gray, (0, 0)
    x, y, w, h = roi
    H, W = gray.shape[:2]
    x1, y1 = max(0, x), max(0, y)
    x2, y2 = min(W, x1 + max(0, w)), min(H, y1 + max(0, h))
    if x2 <= x1 or y2 <= y1:
        raise InputError("ROI is empty or out of bounds")
    return gray[y1:y2, x1:x2], (x1, y1)


def _resize_if_needed(image: np.ndarray, scale: float) -> tuple[np.ndarray, float]:
    if abs(scale - 1.0) < 1e-3:
        return image, 1.0
    scale = float(scale)
    new_w = max(1, int(round(image.shape[1] * scale)))
    new_h = max(1, int(round(image.shape[0] * scale)))
    resized = cv2.resize(image, (new_w, new_h), interpolation=cv2.INTER_CUBIC)
    return resized, scale


def _find_corners(image: np.ndarray, pattern: ChessboardPattern, config: CornerDetectionConfig) -> np.ndarray | None:
    if config.prefer_sb and hasattr(cv2, "findChessboardCornersSB"):
        try:
            found, corners = cv2.findChessboardCornersSB(image, pattern.size)
        except cv2.error as exc:
            logger.debug("findChessboardCornersSB failed: %s", exc)
            found, corners = False, None
        if found and corners is not None:
            return corners

    flags = cv2.CALIB_CB_ADAPTIVE_THRESH | cv2.CALIB_CB_NORMALIZE_IMAGE
    if config.use_fast_check:
        flags |= cv2.CALIB_CB_FAST_CHECK
    found, corners = cv2.findChessboardCorners(image, pattern.size, flags)
    return corners if found else None


def order_corners(corners: np.ndarray, pattern: ChessboardPattern) -> np.ndarray:
    """Put corner 0 at the top-left of the board as seen in the image.

    The detector returns the grid row by row but may start from any of the
    four outer corners. Of the four row-preserving flips, the one whose
    first corner has the smallest ``x + y`` is kept, so rows stay rows and
    the result matches :meth:`ChessboardPattern.object_points`.
    """

    grid = np.asarray(corners, dtype=np.float64).reshape(pattern.rows, pattern.columns, 2)
    candidates = [grid, grid[:, ::-1], grid[::-1, :], grid[::-1, ::-1]]
    best = min(candidates, key=lambda g: float(g[0, 0].sum()))
    return best.reshape(-1, 2).copy()


def detect_corners(
    image: np.ndarray,
    pattern: ChessboardPattern,
    config: CornerDetectionConfig = CornerDetectionConfig(),
) -> np.ndarray:
    """Detect and refine the inner chessboard corners of ``image``.

    Returns an ``(rows * columns, 2)`` array in row-major pattern order.
    Raises :class:`DetectionFailure` if the pattern is not found.
    """

    gray = to_gray(image)
    roi_view, roi_offset = _apply_roi(gray, config.roi)
    preprocessed = _preprocess(roi_view, config)
    resized, scale_used = _resize_if_needed(preprocessed, config.scale)

    corners = _find_corners(resized, pattern, config)
    if corners is None or len(corners) != pattern.num_corners:
        raise DetectionFailure(f"Failed to detect {pattern.columns}x{pattern.rows} chessboard corners")

    corners = np.ascontiguousarray(np.asarray(corners, dtype=np.float32).reshape(-1, 1, 2))
    if config.refine_subpixel:
        win = max(1, int(config.subpixel_window))
        criteria = (
            cv2.TERM_CRITERIA_EPS + cv2.TERM_CRITERIA_MAX_ITER,
            int(config.subpixel_iterations),
            float(config.subpixel_epsilon),
        )
        corners = cv2.cornerSubPix(resized, corners, (win, win), (-1, -1), criteria)

    if scale_used != 1.0:
        corners /= scale_used
    corners += np.array(roi_offset, dtype=np.float32)
    return order_corners(corners, pattern)


def draw_corners(image: np.ndarray, corners: np.ndarray, pattern: ChessboardPattern) -> np.ndarray:
    vis = image.copy()
    if image.ndim == 2:
        vis = cv2.cvtColor(vis, cv2.COLOR_GRAY2BGR)
    pts = np.asarray(corners, dtype=np.float32).reshape(-1, 1, 2)
    cv2.drawChessboardCorners(vis, pattern.size, pts, True)
    return vis


def collect_corners(
    image_paths: Sequence[str | Path],
    pattern: ChessboardPattern,
    config: CornerDetectionConfig = CornerDetectionConfig(),
    *,
    vis_dir: str | Path | None = None,
) -> list[ChessboardCorners]:
    """Detect corners in every image, logging and skipping the ones that fail."""

    results: list[ChessboardCorners] = []
    vis_dir = Path(vis_dir) if vis_dir else None

    for path in image_paths:
        path = Path(path)
        try:
            image = load_image(path)
            points = detect_corners(image, pattern, config)
        except (InputError, DetectionFailure) as exc:
            logger.warning("Skipping %s: %s", path, exc)
            continue

        logger.info("%s... ok", path)
        h, w = image.shape[:2]
        results.append(ChessboardCorners(path, points, (w, h)))

        if vis_dir:
            vis_dir.mkdir(parents=True, exist_ok=True)
            cv2.imwrite(str(vis_dir / f"{path.stem}.png"), draw_corners(image, points, pattern))

    return results


# ---------------------------------------------------------------------------
# Object-point files
# ---------------------------------------------------------------------------

def load_object_points(path: str | Path) -> np.ndarray:
    """Read ``x,y,z`` lines in file order into an ``(N, 3)`` array."""

    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise InputError(f"Failed to read object points: {path}: {exc}") from exc

    points = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        fields = line.split(",")
        if len(fields) != 3:
            raise ParseError(f"{path}:{lineno}: expected 'x,y,z', got {line!r}")
        try:
            points.append([float(f) for f in fields])
        except ValueError as exc:
            raise ParseError(f"{path}:{lineno}: {exc}") from exc

    if not points:
        raise ParseError(f"{path}: no object points")
    return np.asarray(points, dtype=np.float64)


def save_object_points(path: str | Path, points: np.ndarray) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    with path.open("w", encoding="utf-8") as f:
        for x, y, z in pts:
            f.write(",".join(repr(float(v)) for v in (x, y, z)) + "\n")
