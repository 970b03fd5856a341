"""Vision subpackage for PlaneTrack: homography, calibration and kinematics."""

from .calibration import (
    CalibrationRecord,
    CalibrationRepository,
    CalibrationSession,
    CalibrationState,
    CalibrationStateError,
    CalibrationStorageError,
)
from .homography import DegenerateInputError, Homography, HomographyEngine, SolveResult
from .kinematics import KinematicFilter, KinematicState
from .linalg import solve_linear_system

__all__ = [
    "CalibrationRecord",
    "CalibrationRepository",
    "CalibrationSession",
    "CalibrationState",
    "CalibrationStateError",
    "CalibrationStorageError",
    "DegenerateInputError",
    "Homography",
    "HomographyEngine",
    "SolveResult",
    "KinematicFilter",
    "KinematicState",
    "solve_linear_system",
]
