"""Database models and utilities for PlaneTrack."""

from .models import CalibrationRow
from .repository import SqlCalibrationRepository

__all__ = ["CalibrationRow", "SqlCalibrationRepository"]
