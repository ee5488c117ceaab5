"""Environment-driven application settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_optional_float(name: str, default: float | None) -> float | None:
    value = os.getenv(name)
    if value is None:
        return default
    if not value.strip() or value.strip().lower() == "none":
        return None
    return float(value)


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    log_level: str
    database_path: Path
    seed_demo_data: bool
    quote_capacity_safety_factor: float | None
    quote_max_room_quantity: int
    quote_number_prefix: str
    export_filename: str
    quote_session_ttl_seconds: float | None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings once per process; tests override with dataclasses.replace."""
    return Settings(
        app_name=os.getenv("APP_NAME", "Stay Quote Engine"),
        app_version=os.getenv("APP_VERSION", "0.1.0"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        database_path=Path(
            os.getenv("QUOTE_DB_PATH", str(PROJECT_ROOT / "data" / "quotes.db"))
        ),
        seed_demo_data=_env_bool("SEED_DEMO_DATA", True),
        quote_capacity_safety_factor=_env_optional_float("QUOTE_CAPACITY_SAFETY_FACTOR", 2.0),
        quote_max_room_quantity=int(os.getenv("QUOTE_MAX_ROOM_QUANTITY", "10")),
        quote_number_prefix=os.getenv("QUOTE_NUMBER_PREFIX", "DEV"),
        export_filename=os.getenv("QUOTE_EXPORT_FILENAME", "quotes_export.csv"),
        quote_session_ttl_seconds=_env_optional_float("QUOTE_SESSION_TTL_SECONDS", 3600.0),
    )
