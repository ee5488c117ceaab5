"""Process-wide logging setup for the quote engine."""

from __future__ import annotations

import logging
import sys
from typing import Optional

from backend.utils.config import get_settings


# Per-request access lines drown session lifecycle messages at INFO.
_REQUEST_LOGGERS = ("uvicorn.access", "httpx")

_LOGGER_INITIALIZED = False


def configure_logging(level: Optional[str] = None) -> None:
    """Configure the root handler once.

    Service and controller messages share one pipe-separated layout with
    ``key=value`` fields (``session_id``, ``stay_id``, ``quote_id``) so a quote
    can be followed from session start to submission. Request access logs
    are kept to warnings unless the engine itself runs at DEBUG.
    """

    global _LOGGER_INITIALIZED
    if _LOGGER_INITIALIZED:
        return

    resolved_level = (level or get_settings().log_level).upper()
    logging.basicConfig(
        level=resolved_level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )
    if resolved_level != "DEBUG":
        for name in _REQUEST_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
    _LOGGER_INITIALIZED = True


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)
