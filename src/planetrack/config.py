"""
Configuration for PlaneTrack.

Settings live in ``config/config.json`` (looked up from the working
directory and its parents, then from the project root) and are parsed into
immutable pydantic models.  Each component receives its section through its
constructor; nothing reads the file at runtime.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.engine import make_url

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.json"
CONFIG_DIRNAME = "config"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class CameraConfig(_Frozen):
    """Image size of the detector input, used to turn normalized points into pixels."""

    width: int = Field(1280, gt=0)
    height: int = Field(720, gt=0)
    flip_y: bool = Field(True, description="Detector y grows downward; calibration y grows upward")
    mirror_x: bool = False


class TableConfig(_Frozen):
    """Calibration rectangle in physical units (metres)."""

    width: float = Field(0.60, gt=0)
    height: float = Field(0.40, gt=0)


class FilterConfig(_Frozen):
    """
    Kinematic filter settings.  Time constants in seconds; a zero time
    constant disables that smoothing stage, a zero ``max_dt`` disables the
    gap reset and a zero deadzone disables the deadzone.

    Deadzones are in plane units per second (velocity) and per second
    squared (acceleration), i.e. m/s and m/s^2 for a table in metres.
    """

    position_time_constant: float = Field(0.05, ge=0)
    velocity_time_constant: float = Field(0.08, ge=0)
    acceleration_time_constant: float = Field(0.12, ge=0)
    max_dt: float = Field(0.1, ge=0)
    velocity_deadzone: float = Field(0.005, ge=0)
    acceleration_deadzone: float = Field(0.05, ge=0)


class StorageConfig(_Frozen):
    backend: Literal["json", "sql"] = "json"
    path: str = f"{CONFIG_DIRNAME}/calibration.json"
    url: str = "sqlite:///planetrack.db"

    def anchored_at(self, root: Path) -> "StorageConfig":
        """Copy with a relative JSON path and sqlite database placed under ``root``."""
        path = Path(self.path)
        if not path.is_absolute():
            path = root / path
        url = make_url(self.url)
        db = url.database
        if url.get_backend_name() == "sqlite" and db and db != ":memory:" and not Path(db).is_absolute():
            url = url.set(database=str(root / db))
        return self.model_copy(update={"path": str(path), "url": url.render_as_string(hide_password=False)})


class AppConfig(_Frozen):
    camera: CameraConfig = CameraConfig()
    table: TableConfig = TableConfig()
    filter: FilterConfig = FilterConfig()
    storage: StorageConfig = StorageConfig()


def find_config_path(start: Optional[Path] = None) -> Path:
    start = (start or Path.cwd()).resolve()
    for base in [start, *list(start.parents)[:4]]:
        p = base / CONFIG_DIRNAME / CONFIG_FILENAME
        if p.exists():
            return p
    # fallback: project root (../.. from src/planetrack/)
    return Path(__file__).resolve().parents[2] / CONFIG_DIRNAME / CONFIG_FILENAME


def project_root(cfg_path: Path) -> Path:
    """Directory that holds ``config/``, or the file's own directory otherwise."""
    parent = cfg_path.resolve().parent
    return parent.parent if parent.name == CONFIG_DIRNAME else parent


def load_config(path: Optional[Union[str, Path]] = None) -> AppConfig:
    """
    Read the JSON config; a missing file yields the defaults.  Relative
    storage locations are anchored at the config's project root.
    """
    cfg_path = Path(path) if path is not None else find_config_path()
    if not cfg_path.exists():
        logger.info("No config at %s, using defaults", cfg_path)
        return AppConfig()
    with open(cfg_path, "r", encoding="utf-8") as f:
        data = json.load(f)
    logger.info("Loaded config from %s", cfg_path)
    cfg = AppConfig.model_validate(data)
    return cfg.model_copy(update={"storage": cfg.storage.anchored_at(project_root(cfg_path))})
