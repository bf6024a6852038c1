"""
Runtime configuration loaded from environment variables.

Algorithm constants (streak cap, trailing window, verdict thresholds) live
next to the code that uses them; only deployment knobs belong here.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from focusledger.errors import ValidationError

DEFAULT_DB_PATH = Path(__file__).resolve().parent.parent / "focusledger.db"
DEFAULT_LOG_FILE = "focusledger.log"
DEFAULT_REPAIR_DAYS = 30
DEFAULT_REPAIR_DELAY_SEC = 1.0

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class Settings:
    """Deployment settings for the host application."""
    db_path: Path = DEFAULT_DB_PATH
    log_level: str = "INFO"
    log_file: Optional[str] = DEFAULT_LOG_FILE
    repair_days: int = DEFAULT_REPAIR_DAYS
    repair_on_start: bool = True
    repair_delay_sec: float = DEFAULT_REPAIR_DELAY_SEC

    @property
    def log_level_value(self) -> int:
        return getattr(logging, self.log_level)


def load_settings(env: Optional[dict] = None) -> Settings:
    """Build Settings from ``env`` (defaults to ``os.environ``)."""
    env = os.environ if env is None else env

    level = env.get("FOCUSLEDGER_LOG_LEVEL", "INFO").upper()
    if level not in _LOG_LEVELS:
        raise ValidationError(f"FOCUSLEDGER_LOG_LEVEL must be one of {_LOG_LEVELS}, got {level!r}")

    log_file = env.get("FOCUSLEDGER_LOG_FILE", DEFAULT_LOG_FILE)

    repair_days = _get_int(env, "FOCUSLEDGER_REPAIR_DAYS", DEFAULT_REPAIR_DAYS)
    if repair_days < 0:
        raise ValidationError("FOCUSLEDGER_REPAIR_DAYS must be >= 0")

    db_path = env.get("FOCUSLEDGER_DB_PATH")

    return Settings(
        db_path=Path(db_path) if db_path else DEFAULT_DB_PATH,
        log_level=level,
        log_file=log_file or None,
        repair_days=repair_days,
        repair_on_start=env.get("FOCUSLEDGER_REPAIR_ON_START", "true").lower() == "true",
        repair_delay_sec=_get_float(env, "FOCUSLEDGER_REPAIR_DELAY", DEFAULT_REPAIR_DELAY_SEC),
    )


def _get_int(env, key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{key} must be an integer, got {raw!r}") from None


def _get_float(env, key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValidationError(f"{key} must be a number, got {raw!r}") from None
