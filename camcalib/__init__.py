"""Camera intrinsic calibration and pose estimation from point correspondences."""

from .acquisition import (
    AcquisitionStrategy,
    Chessboard,
    Manual,
    acquire_correspondences,
    acquire_image_points,
)
from .calibration import (
    CalibrationConfig,
    CalibrationSession,
    calibrate_from_images,
    calibrate_intrinsics,
)
from .chessboard import (
    ChessboardPattern,
    CornerDetectionConfig,
    ChessboardCorners,
    collect_corners,
    detect_corners,
    draw_corners,
    list_images,
    load_image,
    load_object_points,
    save_object_points,
)
from .errors import (
    AcquisitionCancelled,
    CalibrationError,
    DegenerateGeometry,
    DetectionFailure,
    InputError,
    InsufficientData,
    InsufficientPoints,
    NonConvergent,
    ParseError,
    StorageError,
)
from .model import CorrespondenceSet, IntrinsicModel, Pose
from .optimize import SolverConfig
from .pose import PoseEstimationResult, estimate_pose
from .projection import (
    EulerAngles,
    ProjectionDecomposition,
    compose_projection_matrix,
    decompose_projection_matrix,
    rotation_from_euler,
)
from .reprojection import ReprojectionReport, evaluate_reprojection
from .storage import load_parameters, save_parameters

__all__ = [
    "AcquisitionCancelled",
    "AcquisitionStrategy",
    "CalibrationConfig",
    "CalibrationError",
    "CalibrationSession",
    "Chessboard",
    "ChessboardCorners",
    "ChessboardPattern",
    "CornerDetectionConfig",
    "CorrespondenceSet",
    "DegenerateGeometry",
    "DetectionFailure",
    "EulerAngles",
    "InputError",
    "InsufficientData",
    "InsufficientPoints",
    "IntrinsicModel",
    "Manual",
    "NonConvergent",
    "ParseError",
    "Pose",
    "PoseEstimationResult",
    "ProjectionDecomposition",
    "ReprojectionReport",
    "SolverConfig",
    "StorageError",
    "acquire_correspondences",
    "acquire_image_points",
    "calibrate_from_images",
    "calibrate_intrinsics",
    "collect_corners",
    "compose_projection_matrix",
    "decompose_projection_matrix",
    "detect_corners",
    "draw_corners",
    "estimate_pose",
    "evaluate_reprojection",
    "list_images",
    "load_image",
    "load_object_points",
    "load_parameters",
    "rotation_from_euler",
    "save_object_points",
    "save_parameters",
]
