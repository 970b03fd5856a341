"""PlaneTrack: camera point -> table plane mapping with kinematic smoothing."""

from .config import AppConfig, FilterConfig, load_config
from .vision import CalibrationSession, HomographyEngine, KinematicFilter

__version__ = "0.1.0"

__all__ = ["AppConfig", "FilterConfig", "load_config", "CalibrationSession", "HomographyEngine", "KinematicFilter"]
