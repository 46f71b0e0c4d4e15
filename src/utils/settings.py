# runtime configuration, resolved from environment variables
from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from typing import Optional


def _env_str(name: str, default: Optional[str]) -> Optional[str]:
    val = os.getenv(name)
    if val is None or not val.strip():
        return default
    return val.strip()


def _env_decimal(name: str, default: str) -> Decimal:
    raw = _env_str(name, default)
    try:
        return Decimal(raw)
    except InvalidOperation:
        raise ValueError(f"{name} must be a decimal number, got {raw!r}") from None


def _env_float(name: str, default: float) -> float:
    raw = _env_str(name, None)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def _env_flag(name: str, default: bool) -> bool:
    raw = _env_str(name, None)
    if raw is None:
        return default
    return raw.lower() not in ("0", "false", "no", "off")


@dataclass(frozen=True)
class Settings:
    """
    Process-wide settings.

    Fields:
      - db_path: sqlite database file
      - seed_data: load seed.sql when the database is created
      - debug: DEBUG log level
      - log_file: optional rotating log file
      - currency_prefix: printed before every amount on receipts
      - minor_unit: smallest currency unit, totals are rounded half-up to it
      - points_unit: spend needed for one loyalty point
      - commit_timeout: seconds allowed for the atomic sale commit
      - busy_timeout: seconds sqlite waits for a competing writer
    """

    db_path: str = "data/pos.sqlite"
    seed_data: bool = True
    debug: bool = False
    log_file: Optional[str] = None
    currency_prefix: str = "Rp"
    minor_unit: Decimal = Decimal("0.01")
    points_unit: Decimal = Decimal("100")
    commit_timeout: float = 10.0
    busy_timeout: float = 5.0

    @classmethod
    def from_env(cls) -> "Settings":
        settings = cls(
            db_path=_env_str("POS_DB_PATH", cls.db_path),
            seed_data=_env_flag("POS_SEED_DATA", cls.seed_data),
            debug=_env_flag("POS_DEBUG", cls.debug),
            log_file=_env_str("POS_LOG_FILE", None),
            currency_prefix=_env_str("POS_CURRENCY_PREFIX", cls.currency_prefix),
            minor_unit=_env_decimal("POS_MINOR_UNIT", "0.01"),
            points_unit=_env_decimal("POS_POINTS_UNIT", "100"),
            commit_timeout=_env_float("POS_COMMIT_TIMEOUT", cls.commit_timeout),
            busy_timeout=_env_float("POS_BUSY_TIMEOUT", cls.busy_timeout),
        )
        if settings.minor_unit <= 0:
            raise ValueError("POS_MINOR_UNIT must be positive.")
        if settings.points_unit <= 0:
            raise ValueError("POS_POINTS_UNIT must be positive.")
        return settings


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()


def reload_settings() -> Settings:
    """Drop the cached settings and re-read the environment."""
    get_settings.cache_clear()
    return get_settings()
