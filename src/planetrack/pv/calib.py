from __future__ import annotations
import json
import logging
from pathlib import Path
from typing import Optional, Union

from ..vision.calibration import CalibrationRecord, CalibrationStorageError

logger = logging.getLogger(__name__)

class JsonCalibrationRepository:
    """
    Stores the calibration corners and table size as a small JSON file:

      {"image_corners": [[x, y], ...4], "width": 0.6, "height": 0.4}

    Relative paths are taken as given; ``load_config`` anchors the configured
    path at the project root before it gets here.
    """
    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> Optional[CalibrationRecord]:
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            corners = tuple((float(x), float(y)) for x, y in data["image_corners"])
            return CalibrationRecord(
                image_corners=corners,
                width=float(data["width"]),
                height=float(data["height"]),
            )
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise CalibrationStorageError(f"Unreadable calibration at {self.path}: {e}") from e

    def save(self, record: CalibrationRecord) -> None:
        data = {
            "image_corners": [list(p) for p in record.image_corners],
            "width": record.width,
            "height": record.height,
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            raise CalibrationStorageError(f"Failed to write calibration to {self.path}: {e}") from e
        logger.info("Saved calibration -> %s", self.path)
