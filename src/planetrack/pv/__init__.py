"""Runtime plumbing: calibration file storage and detector hand-off."""

from .calib import JsonCalibrationRepository
from .observation import Detections, LatestObservation, PlaneFrame, normalized_to_pixel

__all__ = ["JsonCalibrationRepository", "Detections", "LatestObservation", "PlaneFrame", "normalized_to_pixel"]
