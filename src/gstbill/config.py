from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import logging
import os
import sys

from gstbill.domain.errors import ValidationError

ENV_HOME = "GSTBILL_HOME"
ENV_DB = "GSTBILL_DB"
ENV_BUSY_TIMEOUT = "GSTBILL_BUSY_TIMEOUT"
ENV_LOG_LEVEL = "GSTBILL_LOG_LEVEL"


@dataclass(frozen=True)
class AppPaths:
    base_dir: Path
    db_path: Path
    logs_dir: Path


@dataclass(frozen=True)
class Settings:
    paths: AppPaths
    busy_timeout: float = 30.0
    log_level: int = logging.INFO


def _data_root(app_name: str) -> Path:
    if sys.platform.startswith("win"):
        return Path(os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming"))) / app_name
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / app_name
    return Path.home() / f".{app_name.lower()}"


def get_app_paths(app_name: str = "GstBilling", db_override: str | os.PathLike | None = None) -> AppPaths:
    """Per-user data directory holding billing.db and logs/.

    GSTBILL_HOME moves the whole directory; GSTBILL_DB (or ``db_override``)
    points at a database file elsewhere while logs stay under the base dir.
    """
    home = os.environ.get(ENV_HOME, "").strip()
    base = Path(home).expanduser() if home else _data_root(app_name)
    logs = base / "logs"

    db_env = db_override or os.environ.get(ENV_DB, "").strip()
    db = Path(db_env).expanduser() if db_env else base / "billing.db"

    base.mkdir(parents=True, exist_ok=True)
    logs.mkdir(parents=True, exist_ok=True)
    db.parent.mkdir(parents=True, exist_ok=True)

    return AppPaths(base_dir=base, db_path=db, logs_dir=logs)


def _busy_timeout() -> float:
    raw = os.environ.get(ENV_BUSY_TIMEOUT, "").strip()
    if not raw:
        return 30.0
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValidationError(f"{ENV_BUSY_TIMEOUT} must be a number of seconds.") from exc
    if value <= 0:
        raise ValidationError(f"{ENV_BUSY_TIMEOUT} must be > 0.")
    return value


def _log_level() -> int:
    raw = os.environ.get(ENV_LOG_LEVEL, "").strip().upper()
    if not raw:
        return logging.INFO
    level = logging.getLevelName(raw)
    if not isinstance(level, int):
        raise ValidationError(f"{ENV_LOG_LEVEL} must be one of DEBUG, INFO, WARNING, ERROR.")
    return level


def load_settings(db_override: str | os.PathLike | None = None) -> Settings:
    return Settings(paths=get_app_paths(db_override=db_override), busy_timeout=_busy_timeout(), log_level=_log_level())
