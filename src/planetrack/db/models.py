"""
SQLModel models for PlaneTrack.

Only the calibration is persisted: the four image corners and the table
size.  Each save appends a row; the newest row is the active calibration,
older rows are kept as history.
"""

from typing import Optional
from datetime import datetime, timezone
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CalibrationRow(SQLModel, table=True):
    __tablename__ = "calibration"

    id: Optional[int] = Field(default=None, primary_key=True)
    # image corners, bottom-left -> bottom-right -> top-right -> top-left
    x0: float
    y0: float
    x1: float
    y1: float
    x2: float
    y2: float
    x3: float
    y3: float
    width: float
    height: float
    created_at: datetime = Field(default_factory=_utcnow)
