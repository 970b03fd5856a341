"""Tracking engine for PlaneTrack."""

from .engine import TrackingEngine, TrackSnapshot

__all__ = ["TrackingEngine", "TrackSnapshot"]
