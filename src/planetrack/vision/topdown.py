"""
Top-down rendering of the calibrated plane.

Composes the calibration homography with a scale (and y flip, since the
plane's y axis points up while image rows grow down) and hands the result
to ``cv2.warpPerspective``.
"""

from __future__ import annotations

from typing import Tuple

import cv2
import numpy as np

from .homography import Homography


def plane_to_canvas_matrix(plane_size: Tuple[float, float], pixels_per_unit: float) -> np.ndarray:
    """3x3 matrix taking plane coordinates to canvas pixels (origin bottom-left)."""
    _, ph = plane_size
    s = float(pixels_per_unit)
    return np.array([[s, 0, 0],
                     [0, -s, ph * s],
                     [0, 0, 1]], dtype=np.float64)


def canvas_size(plane_size: Tuple[float, float], pixels_per_unit: float) -> Tuple[int, int]:
    pw, ph = plane_size
    return max(1, int(round(pw * pixels_per_unit))), max(1, int(round(ph * pixels_per_unit)))


def warp_to_plane(
    image: np.ndarray,
    homography: Homography,
    plane_size: Tuple[float, float],
    pixels_per_unit: float = 1000.0,
    flip_y: bool = True,
) -> np.ndarray:
    """
    Warp a camera frame onto a top-down canvas of the plane.

    Args:
        image: camera frame (rows top-down, as read by OpenCV).
        homography: valid image->plane transform.
        plane_size: (width, height) of the plane in plane units.
        pixels_per_unit: canvas resolution.
        flip_y: True when the calibration corners were given with a
            bottom-left image origin.
    """
    if not homography.valid:
        raise ValueError("Homography is not valid; calibrate first")

    img_h = image.shape[0]
    F = np.eye(3, dtype=np.float64)
    if flip_y:
        F = np.array([[1, 0, 0],
                      [0, -1, img_h],
                      [0, 0, 1]], dtype=np.float64)

    M = plane_to_canvas_matrix(plane_size, pixels_per_unit) @ homography.as_matrix() @ F
    out_w, out_h = canvas_size(plane_size, pixels_per_unit)
    return cv2.warpPerspective(image, M, (out_w, out_h))


def plane_points_to_canvas(points: np.ndarray, plane_size: Tuple[float, float], pixels_per_unit: float) -> np.ndarray:
    """Plane points -> integer canvas pixels, e.g. for drawing tracks on the warp."""
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    ones = np.ones((pts.shape[0], 1), dtype=np.float64)
    cp = np.hstack([pts, ones]) @ plane_to_canvas_matrix(plane_size, pixels_per_unit).T
    return np.round(cp[:, :2]).astype(int)
