"""SQL-backed calibration repository."""

from __future__ import annotations

import logging
from typing import Optional, Union

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, create_engine, select

from ..vision.calibration import CalibrationRecord, CalibrationStorageError
from .models import CalibrationRow

logger = logging.getLogger(__name__)


class SqlCalibrationRepository:
    """Stores calibrations in a SQL database; the newest row wins."""

    def __init__(self, engine: Union[str, Engine] = "sqlite:///planetrack.db") -> None:
        self.engine = create_engine(engine) if isinstance(engine, str) else engine
        SQLModel.metadata.create_all(self.engine, tables=[CalibrationRow.__table__])

    def load(self) -> Optional[CalibrationRecord]:
        try:
            with Session(self.engine) as session:
                row = session.exec(select(CalibrationRow).order_by(CalibrationRow.id.desc())).first()
        except SQLAlchemyError as e:
            raise CalibrationStorageError(f"Failed to read calibration: {e}") from e
        if row is None:
            return None
        try:
            return CalibrationRecord(
                image_corners=((row.x0, row.y0), (row.x1, row.y1), (row.x2, row.y2), (row.x3, row.y3)),
                width=row.width,
                height=row.height,
            )
        except ValueError as e:
            raise CalibrationStorageError(f"Invalid calibration row {row.id}: {e}") from e

    def save(self, record: CalibrationRecord) -> None:
        (x0, y0), (x1, y1), (x2, y2), (x3, y3) = record.image_corners
        row = CalibrationRow(
            x0=x0, y0=y0, x1=x1, y1=y1, x2=x2, y2=y2, x3=x3, y3=y3,
            width=record.width, height=record.height,
        )
        try:
            with Session(self.engine) as session:
                session.add(row)
                session.commit()
                session.refresh(row)
        except SQLAlchemyError as e:
            raise CalibrationStorageError(f"Failed to write calibration: {e}") from e
        logger.info("Saved calibration row %s", row.id)
