"""Loguru sink setup for the server process."""
from __future__ import annotations

import sys

from loguru import logger

from quakebridge.config import Settings

LOG_FORMAT = "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | {name}:{line} - {message}"


def configure_logging(settings: Settings) -> None:
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level, format=LOG_FORMAT, backtrace=False, diagnose=False)
