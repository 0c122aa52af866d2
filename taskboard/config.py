from dataclasses import dataclass
import logging
import os
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from taskboard.constants import DEFAULT_ROLE

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class Settings:
    db_path: Path
    user_id: Optional[str]
    timezone: str
    log_level: str
    default_role: str

    @property
    def log_level_value(self) -> int:
        return getattr(logging, self.log_level)


def load_settings(env_file: Optional[str] = None) -> Settings:
    # values already in the environment win over .env
    load_dotenv(env_file)

    db_raw = os.getenv("TASKBOARD_DB_PATH", "data/taskboard.db").strip()
    user_id = os.getenv("TASKBOARD_USER_ID", "").strip() or None
    tz = os.getenv("TZ", "UTC").strip() or "UTC"
    log_level = os.getenv("TASKBOARD_LOG_LEVEL", "INFO").strip().upper()
    role = os.getenv("TASKBOARD_DEFAULT_ROLE", DEFAULT_ROLE).strip()

    if not db_raw:
        raise RuntimeError("TASKBOARD_DB_PATH is empty")
    try:
        ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError):
        raise RuntimeError(f"TZ is not a known timezone: {tz!r}")
    if log_level not in _LOG_LEVELS:
        raise RuntimeError(f"TASKBOARD_LOG_LEVEL must be one of {', '.join(_LOG_LEVELS)}, got {log_level!r}")
    if not role:
        raise RuntimeError("TASKBOARD_DEFAULT_ROLE is empty")

    # relative db paths are resolved by the caller
    return Settings(
        db_path=Path(db_raw),
        user_id=user_id,
        timezone=tz,
        log_level=log_level,
        default_role=role,
    )
