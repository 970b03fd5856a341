"""
Smoothed position / velocity / acceleration from a noisy point stream.

Each stage is a first-order low-pass filter whose blend factor is
``1 - exp(-dt / tau)``, so the settling time does not depend on the frame
rate.  Velocity is differentiated from the *smoothed* position and
acceleration from the *smoothed* velocity; differentiating the raw signal
would amplify detector quantization noise.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from ..config import FilterConfig

logger = logging.getLogger(__name__)

DT_EPS = 1e-9
TIME_CONSTANT_EPS = 1e-9


def alpha_from_time_constant(dt: float, tau: float) -> float:
    """Lerp factor for one step of ``dt`` seconds; ``tau <= 0`` disables smoothing."""
    if tau <= TIME_CONSTANT_EPS:
        return 1.0
    return 1.0 - math.exp(-dt / tau)


def apply_axis_deadzone(v: np.ndarray, threshold: float) -> np.ndarray:
    """Zero every component whose magnitude is at or below ``threshold``."""
    if threshold <= 0.0:
        return v
    out = v.copy()
    out[np.abs(out) <= threshold] = 0.0
    return out


def _as_vector(position: Sequence[float]) -> np.ndarray:
    v = np.asarray(position, dtype=np.float64).ravel()
    if v.shape[0] not in (2, 3):
        raise ValueError(f"Position must have 2 or 3 components, got {v.shape[0]}")
    return v


@dataclass(frozen=True)
class KinematicState:
    """Read-only snapshot of a filter."""

    initialized: bool
    raw_position: np.ndarray
    smoothed_position: np.ndarray
    smoothed_velocity: np.ndarray
    smoothed_acceleration: np.ndarray


class KinematicFilter:
    """
    One filter per tracked point.  Instances share no state.

    Units follow the input: with plane coordinates in metres, velocity is in
    m/s and acceleration in m/s^2, and so are the deadzone thresholds.
    """

    def __init__(self, config: Optional[FilterConfig] = None) -> None:
        self.config = config if config is not None else FilterConfig()
        self.initialized = False
        self.raw_position: Optional[np.ndarray] = None
        self.smoothed_position: Optional[np.ndarray] = None
        self.smoothed_velocity: Optional[np.ndarray] = None
        self.smoothed_acceleration: Optional[np.ndarray] = None
        self._prev_smoothed_position: Optional[np.ndarray] = None
        self._prev_smoothed_velocity: Optional[np.ndarray] = None

    def reset(self, position: Sequence[float]) -> None:
        """Snap to ``position`` with zero velocity and acceleration."""
        p = _as_vector(position)
        zero = np.zeros_like(p)

        self.initialized = True
        self.raw_position = p.copy()
        self.smoothed_position = p.copy()
        self.smoothed_velocity = zero.copy()
        self.smoothed_acceleration = zero.copy()

        self._prev_smoothed_position = p.copy()
        self._prev_smoothed_velocity = zero.copy()

    def update(self, raw_position: Sequence[float], dt: float) -> None:
        """Feed one observation taken ``dt`` seconds after the previous one."""
        if dt <= DT_EPS:
            return

        p = _as_vector(raw_position)
        if self.initialized and p.shape != self.smoothed_position.shape:
            raise ValueError(
                f"Position has {p.shape[0]} components, filter tracks {self.smoothed_position.shape[0]}"
            )

        cfg = self.config
        # long gap (paused stream, dropped frames): start over instead of spiking
        if cfg.max_dt > 0.0 and dt > cfg.max_dt:
            logger.debug("dt=%.4f exceeds max_dt=%.4f, resetting filter", dt, cfg.max_dt)
            self.reset(p)
            return

        self.raw_position = p

        if not self.initialized:
            self.reset(p)
            return

        # 1) position
        a_pos = alpha_from_time_constant(dt, cfg.position_time_constant)
        self.smoothed_position = self.smoothed_position + (p - self.smoothed_position) * a_pos

        # 2) velocity from smoothed position
        new_velocity = (self.smoothed_position - self._prev_smoothed_position) / dt
        a_vel = alpha_from_time_constant(dt, cfg.velocity_time_constant)
        self.smoothed_velocity = self.smoothed_velocity + (new_velocity - self.smoothed_velocity) * a_vel
        self.smoothed_velocity = apply_axis_deadzone(self.smoothed_velocity, cfg.velocity_deadzone)

        # 3) acceleration from smoothed velocity
        new_acceleration = (self.smoothed_velocity - self._prev_smoothed_velocity) / dt
        a_acc = alpha_from_time_constant(dt, cfg.acceleration_time_constant)
        self.smoothed_acceleration = (
            self.smoothed_acceleration + (new_acceleration - self.smoothed_acceleration) * a_acc
        )
        self.smoothed_acceleration = apply_axis_deadzone(self.smoothed_acceleration, cfg.acceleration_deadzone)

        self._prev_smoothed_position = self.smoothed_position.copy()
        self._prev_smoothed_velocity = self.smoothed_velocity.copy()

    @property
    def state(self) -> KinematicState:
        if not self.initialized:
            empty = np.zeros(0, dtype=np.float64)
            return KinematicState(False, empty, empty, empty, empty)
        return KinematicState(
            initialized=True,
            raw_position=self.raw_position.copy(),
            smoothed_position=self.smoothed_position.copy(),
            smoothed_velocity=self.smoothed_velocity.copy(),
            smoothed_acceleration=self.smoothed_acceleration.copy(),
        )
