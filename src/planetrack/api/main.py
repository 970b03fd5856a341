"""
FastAPI application entry point for PlaneTrack.

This module exposes HTTP endpoints for calibrating the image -> table
homography, publishing detector output, advancing the tracking loop and
reading the smoothed track state.

To run the server:

    uvicorn planetrack.api.main:app --reload

You can then access the automatic documentation at http://localhost:8000/docs
"""

import logging
import os
import threading
from typing import Any, Dict, List, Optional, Tuple

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from ..config import load_config
from ..engine.engine import TrackingEngine, TrackSnapshot, build_repository
from ..pv.observation import Detections
from ..vision.calibration import CalibrationStateError, CalibrationStorageError

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"), format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


class CornerInput(BaseModel):
    """Calibration corner in image pixels (bottom-left origin)."""
    x: float
    y: float


class ObservationInput(BaseModel):
    """Detector output for one frame: track id -> (x, y)."""
    points: Dict[str, Tuple[float, float]]
    normalized: bool = True
    timestamp: Optional[float] = None


class TickInput(BaseModel):
    dt: float = Field(..., ge=0, description="Seconds since the previous tick")


class TrackOutput(BaseModel):
    track_id: str
    image_point: Tuple[float, float]
    plane_point: Tuple[float, float]
    position: List[float]
    velocity: List[float]
    acceleration: List[float]
    world_position: List[float]


class CalibrationStatus(BaseModel):
    state: str
    ready: bool
    points: List[Tuple[float, float]]
    width: float
    height: float
    homography: Optional[List[List[float]]] = None
    solved: Optional[bool] = None
    error: Optional[str] = None


def _track_out(snap: TrackSnapshot) -> TrackOutput:
    return TrackOutput(
        track_id=snap.track_id,
        image_point=snap.image_point,
        plane_point=snap.plane_point,
        position=list(snap.position),
        velocity=list(snap.velocity),
        acceleration=list(snap.acceleration),
        world_position=list(snap.world_position),
    )


def create_app(engine: Optional[TrackingEngine] = None) -> FastAPI:
    if engine is None:
        config = load_config()
        engine = TrackingEngine(config, repository=build_repository(config))
        try:
            engine.load_calibration()
        except CalibrationStorageError as e:
            logger.warning("Ignoring stored calibration: %s", e)

    app = FastAPI(title="PlaneTrack API", version="0.1.0")
    app.state.engine = engine
    # sync endpoints run in a threadpool; the engine is single-threaded
    lock = threading.Lock()
    app.state.lock = lock

    def status(solved: Optional[bool] = None, error: Optional[str] = None) -> CalibrationStatus:
        session = engine.calibration
        H = session.engine.homography
        return CalibrationStatus(
            state=session.state.value,
            ready=session.is_ready(),
            points=session.points,
            width=session.width,
            height=session.height,
            homography=H.as_matrix().tolist() if H.valid else None,
            solved=solved,
            error=error,
        )

    @app.get("/health", tags=["System"])
    def health_check() -> Dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.get("/calibration", tags=["Calibration"], response_model=CalibrationStatus)
    def get_calibration() -> CalibrationStatus:
        with lock:
            return status()

    @app.post("/calibration/points", tags=["Calibration"], response_model=CalibrationStatus)
    def submit_corner(corner: CornerInput) -> CalibrationStatus:
        """
        Add the next image corner (bottom-left, bottom-right, top-right,
        top-left).  The fourth corner triggers the solve.
        """
        with lock:
            try:
                result = engine.submit_corner((corner.x, corner.y))
            except CalibrationStateError as e:
                raise HTTPException(status_code=409, detail=str(e))
            if result is None:
                return status()
            return status(solved=result.ok, error=str(result.error) if result.error else None)

    @app.post("/calibration/reset", tags=["Calibration"], response_model=CalibrationStatus)
    def reset_calibration() -> CalibrationStatus:
        with lock:
            engine.calibration.reset()
            return status()

    @app.post("/calibration/save", tags=["Calibration"], response_model=CalibrationStatus)
    def save_calibration() -> CalibrationStatus:
        with lock:
            try:
                engine.calibration.save()
            except CalibrationStateError as e:
                raise HTTPException(status_code=409, detail=str(e))
            except CalibrationStorageError as e:
                logger.error("Saving calibration failed: %s", e)
                raise HTTPException(status_code=500, detail=str(e))
            return status()

    @app.post("/observations", tags=["Tracking"])
    def publish_observation(obs: ObservationInput) -> Dict[str, int]:
        engine.publish(Detections(points=dict(obs.points), normalized=obs.normalized, timestamp=obs.timestamp))
        return {"accepted": len(obs.points)}

    @app.post("/tick", tags=["Tracking"])
    def tick(body: TickInput) -> Dict[str, Dict[str, TrackOutput]]:
        with lock:
            updated = engine.tick(body.dt)
        return {"tracks": {tid: _track_out(s) for tid, s in updated.items()}}

    @app.get("/tracks", tags=["Tracking"])
    def get_tracks() -> Dict[str, Any]:
        with lock:
            ready = engine.is_ready()
            tracks = engine.tracks()
        return {"ready": ready, "tracks": {tid: _track_out(s) for tid, s in tracks.items()}}

    return app


app = create_app()
