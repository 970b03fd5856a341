"""
Planar homography from four point correspondences.

The transform maps image coordinates (pixels) onto a physical plane
(e.g. metres on a table top):

    H = [ h11 h12 h13
          h21 h22 h23
          h31 h32  1  ]

With ``h33`` fixed to 1 there are 8 unknowns, which four correspondences
determine exactly.  The 8x8 system is solved with the Gauss-Jordan solver in
:mod:`planetrack.vision.linalg`; no OpenCV call is needed at runtime.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from .linalg import solve_linear_system

logger = logging.getLogger(__name__)

Point = Tuple[float, float]

MAP_EPS = 1e-9
MAP_SENTINEL: Point = (0.0, 0.0)


class DegenerateInputError(Exception):
    """Correspondences that do not determine a unique homography."""


@dataclass(frozen=True)
class Homography:
    """Eight solved coefficients (``h33`` is 1) and a validity flag."""

    h11: float = 0.0
    h12: float = 0.0
    h13: float = 0.0
    h21: float = 0.0
    h22: float = 0.0
    h23: float = 0.0
    h31: float = 0.0
    h32: float = 0.0
    valid: bool = False

    @classmethod
    def identity(cls) -> "Homography":
        return cls(h11=1.0, h22=1.0, valid=True)

    @classmethod
    def from_vector(cls, h: Sequence[float]) -> "Homography":
        if len(h) != 8:
            raise ValueError(f"Expected 8 coefficients, got {len(h)}")
        return cls(*(float(v) for v in h), valid=True)

    def as_matrix(self) -> np.ndarray:
        """Return the full 3x3 matrix (float64)."""
        return np.array(
            [
                [self.h11, self.h12, self.h13],
                [self.h21, self.h22, self.h23],
                [self.h31, self.h32, 1.0],
            ],
            dtype=np.float64,
        )


@dataclass(frozen=True)
class SolveResult:
    """Outcome of a four-point solve; ``error`` is set when ``ok`` is False."""

    ok: bool
    homography: Optional[Homography] = None
    error: Optional[DegenerateInputError] = None

    def __bool__(self) -> bool:
        return self.ok


def _as_points(points: Optional[Sequence[Point]]) -> np.ndarray:
    if points is None or len(points) == 0:
        return np.empty((0, 2), dtype=np.float64)
    return np.asarray(points, dtype=np.float64).reshape(-1, 2)


def build_dlt_system(image_points: np.ndarray, plane_points: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Build the 8x8 system ``A h = b`` for four correspondences.

    Each pair (x, y) -> (X, Y) contributes
        x*h11 + y*h12 + h13 - X*x*h31 - X*y*h32 = X
        x*h21 + y*h22 + h23 - Y*x*h31 - Y*y*h32 = Y
    """
    a = np.zeros((8, 8), dtype=np.float64)
    b = np.zeros(8, dtype=np.float64)
    for i in range(4):
        x, y = image_points[i]
        X, Y = plane_points[i]
        r0, r1 = 2 * i, 2 * i + 1
        a[r0] = [x, y, 1.0, 0.0, 0.0, 0.0, -X * x, -X * y]
        b[r0] = X
        a[r1] = [0.0, 0.0, 0.0, x, y, 1.0, -Y * x, -Y * y]
        b[r1] = Y
    return a, b


class HomographyEngine:
    """
    Holds the current image->plane homography and maps points through it.

    A failed solve never touches the current transform, so consumers keep
    using the last good calibration until a new one succeeds.
    """

    def __init__(self, homography: Optional[Homography] = None) -> None:
        self._homography = homography if homography is not None else Homography()

    @property
    def homography(self) -> Homography:
        return self._homography

    @property
    def is_valid(self) -> bool:
        return self._homography.valid

    def set_identity(self) -> None:
        """Use the identity mapping (a safe default before calibration)."""
        self._homography = Homography.identity()

    def solve_from_4_points(self, image_points: Sequence[Point], plane_points: Sequence[Point]) -> SolveResult:
        """
        Estimate the homography taking ``image_points[i]`` to ``plane_points[i]``.

        Returns a :class:`SolveResult`.  Wrong point counts and degenerate
        (collinear or duplicate) configurations are reported through the
        result, never raised.
        """
        src = _as_points(image_points)
        dst = _as_points(plane_points)
        if src.shape[0] != 4 or dst.shape[0] != 4:
            err = DegenerateInputError(
                f"Exactly 4 correspondences required, got {src.shape[0]} image and {dst.shape[0]} plane points"
            )
            logger.warning("Homography solve rejected: %s", err)
            return SolveResult(ok=False, error=err)

        a, b = build_dlt_system(src, dst)
        h = solve_linear_system(a, b)
        if h is None:
            err = DegenerateInputError("Singular system: image or plane points are collinear or duplicated")
            logger.warning("Homography solve failed: %s", err)
            return SolveResult(ok=False, error=err)

        self._homography = Homography.from_vector(h)
        logger.info("Homography solved: %s", np.array2string(h, precision=6))
        return SolveResult(ok=True, homography=self._homography)

    def try_map(self, image_point: Sequence[float]) -> Optional[Point]:
        """
        Map one image point onto the plane, or return ``None`` when the
        transform is not valid or the point lies on (or next to) the line
        sent to infinity.
        """
        H = self._homography
        if not H.valid:
            return None

        x, y = float(image_point[0]), float(image_point[1])
        w = H.h31 * x + H.h32 * y + 1.0
        if abs(w) < MAP_EPS:
            return None

        X = (H.h11 * x + H.h12 * y + H.h13) / w
        Y = (H.h21 * x + H.h22 * y + H.h23) / w
        return (X, Y)

    def map(self, image_point: Sequence[float]) -> Point:
        """:meth:`try_map` with ``MAP_SENTINEL`` in place of ``None``."""
        mapped = self.try_map(image_point)
        return MAP_SENTINEL if mapped is None else mapped

    def map_many(self, image_points: np.ndarray) -> np.ndarray:
        """Vectorized :meth:`map` over an (N, 2) array; degenerate rows are zero."""
        pts = np.asarray(image_points, dtype=np.float64).reshape(-1, 2)
        out = np.zeros_like(pts)
        if not self.is_valid or pts.shape[0] == 0:
            return out

        ones = np.ones((pts.shape[0], 1), dtype=np.float64)
        ph = np.hstack([pts, ones]) @ self._homography.as_matrix().T
        w = ph[:, 2]
        ok = np.abs(w) >= MAP_EPS
        out[ok] = ph[ok, :2] / w[ok, None]
        return out
