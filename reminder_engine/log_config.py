"""Process-wide logging setup."""

import logging
import sys

from reminder_engine.config import get_settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s - %(message)s"


def _get_numeric_level(level_name: str) -> int:
    try:
        return int(level_name)
    except ValueError:
        return getattr(logging, str(level_name).upper(), logging.INFO)


def configure_logging() -> None:
    """Configure the root logger once, from settings."""
    settings = get_settings()
    logging.basicConfig(
        level=_get_numeric_level(settings.log_level),
        format=LOG_FORMAT,
        stream=sys.stdout,
    )
    # Per-request SQL is too noisy at INFO
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
