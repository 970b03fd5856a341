"""
Four-corner calibration of the image -> table homography.

A :class:`CalibrationSession` collects the table corners as seen in the
camera image, in the fixed order

    bottom-left -> bottom-right -> top-right -> top-left

and pairs them with the corners of a ``width`` x ``height`` rectangle on the
table.  The fourth point triggers the solve.  Persistence is delegated to a
:class:`CalibrationRepository`; only the corners and the rectangle size are
stored, the coefficients are recomputed on load.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Protocol, Tuple, runtime_checkable

from .homography import HomographyEngine, Point, SolveResult

logger = logging.getLogger(__name__)

CORNER_COUNT = 4


class CalibrationStateError(RuntimeError):
    """Operation not allowed in the current session state."""


class CalibrationStorageError(RuntimeError):
    """Stored calibration data exists but cannot be read."""


class CalibrationState(str, Enum):
    IDLE = "idle"
    COLLECTING = "collecting"
    SOLVED = "solved"


@dataclass(frozen=True)
class CalibrationRecord:
    """Persisted calibration: four image corners plus the rectangle size."""

    image_corners: Tuple[Point, Point, Point, Point]
    width: float
    height: float

    def __post_init__(self) -> None:
        if len(self.image_corners) != CORNER_COUNT:
            raise ValueError(f"Expected {CORNER_COUNT} image corners, got {len(self.image_corners)}")
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Rectangle size must be positive, got {self.width}x{self.height}")


@runtime_checkable
class CalibrationRepository(Protocol):
    """Key-value style store for a single calibration."""

    def load(self) -> Optional[CalibrationRecord]:
        ...

    def save(self, record: CalibrationRecord) -> None:
        ...


def rectangle_corners(width: float, height: float) -> List[Point]:
    """Plane corners in click order: origin, width axis, opposite, height axis."""
    return [(0.0, 0.0), (width, 0.0), (width, height), (0.0, height)]


class CalibrationSession:
    """
    State machine collecting exactly four image corners.

    States: IDLE (0 points) -> COLLECTING (1-3) -> SOLVED (4, solve attempted).
    ``reset`` returns to IDLE from anywhere but leaves the engine's last
    valid homography in place.
    """

    def __init__(
        self,
        width: float,
        height: float,
        engine: Optional[HomographyEngine] = None,
        repository: Optional[CalibrationRepository] = None,
    ) -> None:
        self.engine = engine if engine is not None else HomographyEngine()
        self.repository = repository
        self._points: List[Point] = []
        self._solved = False
        self.width = 0.0
        self.height = 0.0
        self.set_target_size(width, height)

    # ---------- state ----------

    @property
    def state(self) -> CalibrationState:
        if self._solved:
            return CalibrationState.SOLVED
        if self._points:
            return CalibrationState.COLLECTING
        return CalibrationState.IDLE

    @property
    def points(self) -> List[Point]:
        return list(self._points)

    def is_ready(self) -> bool:
        """True iff the engine holds a valid homography, whatever the session state."""
        return self.engine.is_valid

    def set_target_size(self, width: float, height: float) -> None:
        if width <= 0 or height <= 0:
            raise ValueError(f"Rectangle size must be positive, got {width}x{height}")
        self.width = float(width)
        self.height = float(height)

    # ---------- transitions ----------

    def submit_point(self, point: Point) -> Optional[SolveResult]:
        """
        Append an image corner.  Returns the solve result on the fourth point,
        otherwise ``None``.
        """
        if self._solved:
            raise CalibrationStateError("Calibration already has 4 points; reset before collecting again")

        self._points.append((float(point[0]), float(point[1])))
        logger.debug("Corner[%d] = %s", len(self._points) - 1, self._points[-1])

        if len(self._points) == CORNER_COUNT:
            self._solved = True
            return self.solve()
        return None

    def reset(self) -> None:
        self._points.clear()
        self._solved = False
        logger.info("Calibration points reset")

    def solve(self) -> SolveResult:
        result = self.engine.solve_from_4_points(self._points, rectangle_corners(self.width, self.height))
        logger.info("Homography solved: %s, valid=%s", result.ok, self.engine.is_valid)
        return result

    # ---------- persistence ----------

    def to_record(self) -> CalibrationRecord:
        if len(self._points) != CORNER_COUNT:
            raise CalibrationStateError(f"Need {CORNER_COUNT} corners to save, have {len(self._points)}")
        return CalibrationRecord(image_corners=tuple(self._points), width=self.width, height=self.height)

    def save(self) -> CalibrationRecord:
        if self.repository is None:
            raise CalibrationStateError("No calibration repository configured")
        record = self.to_record()
        self.repository.save(record)
        logger.info("Saved calibration (%gx%g)", record.width, record.height)
        return record

    def load(self) -> Optional[SolveResult]:
        """
        Restore corners and size from the repository and re-solve.
        Returns ``None`` when nothing is stored.
        """
        if self.repository is None:
            return None
        record = self.repository.load()
        if record is None:
            logger.info("No stored calibration")
            return None
        return self.apply_record(record)

    def apply_record(self, record: CalibrationRecord) -> SolveResult:
        self.set_target_size(record.width, record.height)
        self._points = [(float(x), float(y)) for x, y in record.image_corners]
        self._solved = True
        result = self.solve()
        logger.info("Loaded calibration from repository (ok=%s)", result.ok)
        return result
