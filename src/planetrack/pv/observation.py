# pv/observation.py
from __future__ import annotations
import threading
from dataclasses import dataclass, field
from typing import Dict, Generic, Optional, Sequence, Tuple, TypeVar

import numpy as np

T = TypeVar("T")

Point = Tuple[float, float]


@dataclass(frozen=True)
class Detections:
    """
    One detector result: tracked points keyed by track id.
    Points are normalized (0..1, top-left origin) unless ``normalized`` is False,
    in which case they are already calibration pixels.
    """
    points: Dict[str, Point] = field(default_factory=dict)
    normalized: bool = True
    timestamp: Optional[float] = None


class LatestObservation(Generic[T]):
    """
    Single-slot hand-off between a detector thread and the tick loop.
    The producer overwrites the slot (older values are dropped); each
    ``take`` returns the newest value published since the previous take,
    or None if nothing new arrived.
    """
    def __init__(self):
        self._lock = threading.Lock()
        self._latest: Optional[T] = None
        self._fresh = False
        self.dropped = 0

    def publish(self, item: T) -> None:
        with self._lock:
            if self._fresh:
                self.dropped += 1
            self._latest = item
            self._fresh = True

    def take(self) -> Optional[T]:
        with self._lock:
            if not self._fresh:
                return None
            self._fresh = False
            return self._latest

    def peek(self) -> Optional[T]:
        with self._lock:
            return self._latest

    def clear(self) -> None:
        with self._lock:
            self._latest = None
            self._fresh = False


def normalized_to_pixel(
    point: Sequence[float],
    width: int,
    height: int,
    flip_y: bool = True,
    mirror_x: bool = False,
) -> Point:
    """
    Detector coordinates (0..1, y down) -> image pixels.
    With flip_y the result has a bottom-left origin, matching how the
    calibration corners are captured.
    """
    nx, ny = float(point[0]), float(point[1])
    if mirror_x:
        nx = 1.0 - nx
    px = nx * width
    py = (1.0 - ny) * height if flip_y else ny * height
    return (px, py)


@dataclass(frozen=True)
class PlaneFrame:
    """
    Places plane coordinates in a 3D world frame:
      world = origin + x_axis * X + y_axis * Y
    Defaults put the plane on the ground (x right, y forward, z up).
    """
    origin: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    x_axis: Tuple[float, float, float] = (1.0, 0.0, 0.0)
    y_axis: Tuple[float, float, float] = (0.0, 1.0, 0.0)

    def to_world(self, plane_point: Sequence[float]) -> np.ndarray:
        X, Y = float(plane_point[0]), float(plane_point[1])
        return (np.asarray(self.origin, dtype=np.float64)
                + np.asarray(self.x_axis, dtype=np.float64) * X
                + np.asarray(self.y_axis, dtype=np.float64) * Y)
