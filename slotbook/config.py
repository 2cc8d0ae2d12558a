"""
Service configuration with environment variable overrides.

Values are read when ``load_config`` is called during application startup,
never at import time.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

from slotbook.domain.errors import InvalidTimeFormat
from slotbook.services.timemodel import to_minutes

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(f"Invalid integer for {env_var}: {raw!r}") from None


def _flag(env_var: str, default: str = "false") -> bool:
    return os.getenv(env_var, default).strip().lower() in _TRUTHY


@dataclass(frozen=True)
class AppConfig:
    """Root configuration for the booking service."""

    day_start: str = "09:00"
    day_end: str = "21:00"
    max_range_days: int = 366
    check_reserved: bool = False
    seed_demo: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> AppConfig:
        return cls(
            day_start=os.getenv("SLOTBOOK_DAY_START", cls.day_start),
            day_end=os.getenv("SLOTBOOK_DAY_END", cls.day_end),
            max_range_days=_safe_int("SLOTBOOK_MAX_RANGE_DAYS", str(cls.max_range_days)),
            check_reserved=_flag("SLOTBOOK_CHECK_RESERVED"),
            seed_demo=_flag("SLOTBOOK_SEED_DEMO"),
            log_level=os.getenv("SLOTBOOK_LOG_LEVEL", cls.log_level),
        )


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    for name, value in (("SLOTBOOK_DAY_START", config.day_start), ("SLOTBOOK_DAY_END", config.day_end)):
        try:
            to_minutes(value)
        except InvalidTimeFormat:
            raise ValueError(f"{name} must be HH:MM, got {value!r}") from None
    if config.max_range_days < 1:
        raise ValueError(
            f"SLOTBOOK_MAX_RANGE_DAYS must be >= 1, got {config.max_range_days}"
        )
    if config.log_level.upper() not in logging.getLevelNamesMapping():
        raise ValueError(f"SLOTBOOK_LOG_LEVEL is not a logging level: {config.log_level!r}")


def load_config() -> AppConfig:
    """Load ``.env`` if present, then read and validate configuration."""
    load_dotenv()
    config = AppConfig.from_env()
    _validate_config(config)
    if config.check_reserved:
        logger.info("Reserved bookings are conflict-checked like Confirmed ones")
    return config
