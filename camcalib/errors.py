"""Exceptions raised by the calibration and pose-estimation pipeline."""

from __future__ import annotations


class CalibrationError(Exception):
    """Base class for every failure raised by :mod:`camcalib`."""


class InputError(CalibrationError, ValueError):
    """A required file or argument is missing or malformed."""


class DetectionFailure(CalibrationError):
    """The calibration pattern could not be located in an image."""


class AcquisitionCancelled(CalibrationError):
    """Manual point picking was aborted before all points were collected."""


class InsufficientData(CalibrationError):
    """Too few usable views remain for intrinsic calibration."""


class InsufficientPoints(CalibrationError, ValueError):
    """A correspondence set holds too few points for the requested solve."""


class DegenerateGeometry(CalibrationError):
    """Points are collinear or otherwise rank-deficient for the linear solve."""


class NonConvergent(CalibrationError):
    """Nonlinear refinement did not converge within its iteration budget.

    ``pose`` holds the best-effort unrefined estimate when one is available.
    """

    def __init__(self, message: str, pose=None):
        super().__init__(message)
        self.pose = pose


class StorageError(CalibrationError, OSError):
    """A parameter document could not be read or written."""


class ParseError(CalibrationError, ValueError):
    """A document or point file has missing or malformed fields."""
