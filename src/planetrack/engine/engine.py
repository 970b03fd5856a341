"""
Core orchestration engine for PlaneTrack.

This module glues together the calibration session (image -> plane
homography), the detector hand-off slot, and one kinematic filter per
tracked point.  The owner of the loop calls :meth:`TrackingEngine.tick`
once per frame with the elapsed time:

* the newest detections (if any arrived since the last tick) are taken
  from the slot,
* each point is converted to calibration pixels and mapped onto the plane,
* the track's filter is updated with the time elapsed since *its* last
  update, so a track that was missing for a while resets instead of
  producing a velocity spike.

Nothing here blocks or performs I/O except calibration load/save, which
go through the injected repository.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from ..config import AppConfig
from ..pv.observation import Detections, LatestObservation, PlaneFrame, normalized_to_pixel
from ..vision.calibration import CalibrationRepository, CalibrationSession
from ..vision.homography import Point, SolveResult
from ..vision.kinematics import KinematicFilter

logger = logging.getLogger(__name__)

Vec = Tuple[float, ...]


def build_repository(config: AppConfig) -> CalibrationRepository:
    """Calibration store selected by ``config.storage.backend``."""
    if config.storage.backend == "sql":
        from ..db.repository import SqlCalibrationRepository
        return SqlCalibrationRepository(config.storage.url)
    from ..pv.calib import JsonCalibrationRepository
    return JsonCalibrationRepository(config.storage.path)


@dataclass(frozen=True)
class TrackSnapshot:
    """Smoothed output for one tracked point after a tick."""
    track_id: str
    image_point: Point
    plane_point: Point
    position: Vec
    velocity: Vec
    acceleration: Vec
    world_position: Vec


class TrackingEngine:
    """PlaneTrack engine orchestrating calibration, hand-off and filtering."""

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        repository: Optional[CalibrationRepository] = None,
        observations: Optional[LatestObservation[Detections]] = None,
        frame: Optional[PlaneFrame] = None,
        track_timeout: float = 1.0,
    ) -> None:
        self.config = config if config is not None else AppConfig()
        self.calibration = CalibrationSession(
            self.config.table.width, self.config.table.height, repository=repository
        )
        self.observations = observations if observations is not None else LatestObservation()
        self.frame = frame if frame is not None else PlaneFrame()
        self.track_timeout = float(track_timeout)

        self.filters: Dict[str, KinematicFilter] = {}
        self._since_update: Dict[str, float] = {}
        self._last: Dict[str, TrackSnapshot] = {}

    # ---------- calibration ----------

    def load_calibration(self) -> Optional[SolveResult]:
        return self.calibration.load()

    def submit_corner(self, point: Point) -> Optional[SolveResult]:
        return self.calibration.submit_point(point)

    def is_ready(self) -> bool:
        return self.calibration.is_ready()

    # ---------- tracking ----------

    def publish(self, detections: Detections) -> None:
        """Producer side; safe to call from the detector thread."""
        self.observations.publish(detections)

    def to_pixel(self, point: Point, normalized: bool) -> Point:
        if not normalized:
            return (float(point[0]), float(point[1]))
        cam = self.config.camera
        return normalized_to_pixel(point, cam.width, cam.height, flip_y=cam.flip_y, mirror_x=cam.mirror_x)

    def tick(self, dt: float) -> Dict[str, TrackSnapshot]:
        """
        Advance one frame.  Returns snapshots of the tracks updated on this
        tick (empty when nothing new arrived or calibration is not ready).
        """
        if dt > 0:
            for tid in self._since_update:
                self._since_update[tid] += dt
        self._drop_stale_tracks()

        detections = self.observations.take()
        if detections is None:
            return {}
        if not self.is_ready():
            logger.debug("Calibration not ready, skipping %d detections", len(detections.points))
            return {}

        updated: Dict[str, TrackSnapshot] = {}
        for tid, point in detections.points.items():
            image_point = self.to_pixel(point, detections.normalized)
            plane_point = self.calibration.engine.try_map(image_point)
            if plane_point is None:
                logger.debug("Track %s at %s maps to infinity, skipped", tid, image_point)
                continue

            f = self.filters.get(tid)
            if f is None:
                f = KinematicFilter(self.config.filter)
                f.reset(plane_point)
                self.filters[tid] = f
                logger.info("New track %s", tid)
            else:
                f.update(plane_point, self._since_update[tid])
            self._since_update[tid] = 0.0

            snap = self._snapshot(tid, image_point, plane_point, f)
            self._last[tid] = snap
            updated[tid] = snap
        return updated

    def tracks(self) -> Dict[str, TrackSnapshot]:
        """Latest snapshot of every live track."""
        return dict(self._last)

    def forget(self, track_id: str) -> None:
        self.filters.pop(track_id, None)
        self._since_update.pop(track_id, None)
        self._last.pop(track_id, None)

    def _drop_stale_tracks(self) -> None:
        if self.track_timeout <= 0:
            return
        stale = [tid for tid, t in self._since_update.items() if t > self.track_timeout]
        for tid in stale:
            logger.info("Dropping track %s (no detection for %.2fs)", tid, self._since_update[tid])
            self.forget(tid)

    def _snapshot(self, tid: str, image_point: Point, plane_point: Point, f: KinematicFilter) -> TrackSnapshot:
        pos = f.smoothed_position
        return TrackSnapshot(
            track_id=tid,
            image_point=image_point,
            plane_point=plane_point,
            position=tuple(float(v) for v in pos),
            velocity=tuple(float(v) for v in f.smoothed_velocity),
            acceleration=tuple(float(v) for v in f.smoothed_acceleration),
            world_position=tuple(float(v) for v in self.frame.to_world(pos)),
        )
