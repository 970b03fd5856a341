"""
Tests for the tracking engine, the detector hand-off slot, coordinate
helpers and the top-down warp.
"""

import threading

import numpy as np  # type: ignore
import pytest

from planetrack.config import AppConfig, CameraConfig, FilterConfig
from planetrack.engine.engine import TrackingEngine, build_repository
from planetrack.pv.calib import JsonCalibrationRepository
from planetrack.pv.observation import Detections, LatestObservation, PlaneFrame, normalized_to_pixel
from planetrack.vision.homography import Homography, HomographyEngine
from planetrack.vision.topdown import plane_points_to_canvas, warp_to_plane

CORNERS = [(0.0, 480.0), (640.0, 480.0), (640.0, 0.0), (0.0, 0.0)]
DT = 1.0 / 60.0


def _engine(**kwargs) -> TrackingEngine:
    cfg = AppConfig(camera=CameraConfig(width=640, height=480))
    engine = TrackingEngine(cfg, **kwargs)
    for p in CORNERS:
        engine.submit_corner(p)
    assert engine.is_ready()
    return engine


def test_latest_observation_keeps_newest() -> None:
    slot = LatestObservation()
    assert slot.take() is None
    slot.publish("a")
    slot.publish("b")
    assert slot.dropped == 1
    assert slot.take() == "b"
    assert slot.take() is None
    assert slot.peek() == "b"
    slot.clear()
    assert slot.peek() is None


def test_latest_observation_across_threads() -> None:
    slot = LatestObservation()

    def produce() -> None:
        for i in range(1000):
            slot.publish(i)

    t = threading.Thread(target=produce)
    t.start()
    t.join()
    assert slot.take() == 999
    assert slot.take() is None


def test_normalized_to_pixel() -> None:
    assert normalized_to_pixel((0.5, 0.25), 640, 480) == pytest.approx((320.0, 360.0))
    assert normalized_to_pixel((0.5, 0.25), 640, 480, flip_y=False) == pytest.approx((320.0, 120.0))
    assert normalized_to_pixel((0.25, 0.0), 640, 480, mirror_x=True) == pytest.approx((480.0, 480.0))


def test_plane_frame_to_world() -> None:
    frame = PlaneFrame(origin=(1.0, 0.5, 0.0), x_axis=(1.0, 0.0, 0.0), y_axis=(0.0, 0.0, 1.0))
    np.testing.assert_allclose(frame.to_world((0.3, 0.2)), [1.3, 0.5, 0.2])


def test_tick_without_calibration_consumes_nothing_useful() -> None:
    engine = TrackingEngine(AppConfig())
    engine.publish(Detections(points={"tip": (0.5, 0.5)}))
    assert engine.tick(DT) == {}
    assert engine.observations.take() is None
    assert engine.tracks() == {}


def test_tick_without_detections_is_skipped() -> None:
    engine = _engine()
    assert engine.tick(DT) == {}


def test_tick_maps_and_smooths() -> None:
    engine = _engine()
    engine.publish(Detections(points={"tip": (0.5, 0.5)}))
    snaps = engine.tick(DT)
    snap = snaps["tip"]
    assert snap.image_point == pytest.approx((320.0, 240.0))
    assert snap.plane_point == pytest.approx((0.3, 0.2))
    assert snap.position == pytest.approx((0.3, 0.2))
    assert snap.velocity == (0.0, 0.0)
    assert snap.world_position == pytest.approx((0.3, 0.2, 0.0))
    assert engine.tracks()["tip"] == snap


def test_pixel_detections_skip_normalization() -> None:
    engine = _engine()
    engine.publish(Detections(points={"ball": (320.0, 240.0)}, normalized=False))
    assert engine.tick(DT)["ball"].plane_point == pytest.approx((0.3, 0.2))


def test_one_filter_per_track() -> None:
    engine = _engine()
    engine.publish(Detections(points={"a": (0.1, 0.1), "b": (0.9, 0.9)}))
    engine.tick(DT)
    for _ in range(5):
        engine.publish(Detections(points={"a": (0.2, 0.1), "b": (0.9, 0.9)}))
        engine.tick(DT)
    assert engine.filters["a"] is not engine.filters["b"]
    tracks = engine.tracks()
    assert tracks["a"].velocity[0] != 0.0
    assert tracks["b"].velocity == (0.0, 0.0)


def test_missing_frames_accumulate_dt_and_reset() -> None:
    engine = _engine()
    for i in range(10):
        engine.publish(Detections(points={"tip": (0.1 + 0.02 * i, 0.5)}))
        engine.tick(DT)
    assert engine.tracks()["tip"].velocity[0] != 0.0

    # 0.15 s without detections exceeds max_dt (0.1 s)
    for _ in range(9):
        assert engine.tick(DT) == {}
    engine.publish(Detections(points={"tip": (0.5, 0.5)}, normalized=True))
    snap = engine.tick(DT)["tip"]
    assert snap.position == pytest.approx(snap.plane_point)
    assert snap.velocity == (0.0, 0.0)
    assert snap.acceleration == (0.0, 0.0)


def test_stale_tracks_are_dropped() -> None:
    engine = _engine(track_timeout=0.5)
    engine.publish(Detections(points={"tip": (0.5, 0.5)}))
    engine.tick(DT)
    for _ in range(40):
        engine.tick(DT)
    assert "tip" not in engine.tracks()
    assert "tip" not in engine.filters


def test_detections_mapping_to_infinity_are_skipped() -> None:
    engine = _engine()
    # w = 0.01 * x + 1 vanishes at x = -100
    engine.calibration.engine = HomographyEngine(Homography.from_vector([1, 0, 0, 0, 1, 0, 0.01, 0]))

    engine.publish(Detections(points={"tip": (0.0, 5.0)}, normalized=False))
    assert engine.tick(DT)["tip"].position == pytest.approx((0.0, 5.0))

    engine.publish(Detections(points={"tip": (-100.0, 5.0), "new": (-100.0, 1.0)}, normalized=False))
    assert engine.tick(DT) == {}
    assert "new" not in engine.filters
    assert engine.tracks()["tip"].position == pytest.approx((0.0, 5.0))


def test_engine_uses_filter_config() -> None:
    cfg = AppConfig(camera=CameraConfig(width=640, height=480), filter=FilterConfig(position_time_constant=0.0))
    engine = TrackingEngine(cfg)
    for p in CORNERS:
        engine.submit_corner(p)
    engine.publish(Detections(points={"tip": (0.5, 0.5)}))
    engine.tick(DT)
    engine.publish(Detections(points={"tip": (0.75, 0.5)}))
    snap = engine.tick(DT)["tip"]
    assert snap.position == pytest.approx(snap.plane_point)


def test_load_calibration_from_repository(tmp_path) -> None:
    repo = JsonCalibrationRepository(tmp_path / "calibration.json")
    first = _engine(repository=repo)
    first.calibration.save()

    second = TrackingEngine(AppConfig(), repository=repo)
    assert not second.is_ready()
    assert second.load_calibration().ok
    assert second.is_ready()


def test_build_repository_from_config(tmp_path) -> None:
    cfg = AppConfig.model_validate({"storage": {"backend": "json", "path": str(tmp_path / "c.json")}})
    assert isinstance(build_repository(cfg), JsonCalibrationRepository)

    cfg = AppConfig.model_validate({"storage": {"backend": "sql", "url": f"sqlite:///{tmp_path / 'c.db'}"}})
    assert build_repository(cfg).load() is None


def test_warp_to_plane_orientation() -> None:
    engine = HomographyEngine()
    engine.solve_from_4_points(CORNERS, [(0.0, 0.0), (0.6, 0.0), (0.6, 0.4), (0.0, 0.4)])

    img = np.zeros((480, 640, 3), dtype=np.uint8)
    img[:240] = 255  # top half of the frame
    out = warp_to_plane(img, engine.homography, (0.6, 0.4), pixels_per_unit=1000)
    assert out.shape == (400, 600, 3)
    # frame rows grow downward, calibration y grows upward, canvas y flips back
    assert out[350, 300, 0] == 255
    assert out[50, 300, 0] == 0


def test_warp_requires_valid_homography() -> None:
    with pytest.raises(ValueError):
        warp_to_plane(np.zeros((10, 10, 3), dtype=np.uint8), HomographyEngine().homography, (1.0, 1.0))


def test_plane_points_to_canvas() -> None:
    pts = plane_points_to_canvas(np.array([[0.3, 0.2], [0.0, 0.0]]), (0.6, 0.4), 1000)
    np.testing.assert_array_equal(pts, [[300, 200], [0, 400]])
