"""Loguru logging setup: stdout plus a rotating log file."""

import logging
import os
import sys
import time
from typing import Callable

from loguru import logger

from .config import LogSettings

DEV_FORMAT = (
    "<green>{time:YYYY/MM/DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{function}()</cyan> {file}:{line} - <level>{message}</level>"
)

# Levels bell.yml may select; anything else falls back to WARNING
LEVELS = {"INFO", "DEBUG", "TRACE"}

# Used when log.max-size is 0
DEFAULT_MAX_SIZE_MB = 100


class InterceptHandler(logging.Handler):
    """Forward stdlib logging records (APScheduler, werkzeug) to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find the caller outside of the logging module
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def resolve_level(name: str) -> str:
    """Map a configured level name to a loguru level."""
    name = (name or "").upper()
    return name if name in LEVELS else "WARNING"


def make_retention(max_backups: int, max_age_days: int) -> Callable[[list], None]:
    """
    Build a loguru retention callable.

    Keeps at most `max_backups` rotated files and removes files older than
    `max_age_days`. A zero value disables that limit.
    """
    def cleanup(files: list) -> None:
        cutoff = time.time() - max_age_days * 86400
        newest_first = sorted(files, key=os.path.getmtime, reverse=True)
        for index, path in enumerate(newest_first):
            too_many = max_backups > 0 and index >= max_backups
            too_old = max_age_days > 0 and os.path.getmtime(path) < cutoff
            if too_many or too_old:
                try:
                    os.remove(path)
                except OSError as e:
                    logger.warning("Could not remove old log file {}: {}", path, e)

    return cleanup


def setup_logging(settings: LogSettings, dev: bool = False) -> None:
    """Configure loguru sinks for the service."""
    level = resolve_level(settings.level)
    max_size = settings.max_size or DEFAULT_MAX_SIZE_MB

    logger.remove()

    if dev:
        logger.add(sys.stdout, format=DEV_FORMAT, level=level, colorize=True)
    else:
        logger.add(sys.stdout, level=level, serialize=True)

    if settings.file:
        logger.add(
            settings.file,
            level=level,
            format=DEV_FORMAT,
            serialize=not dev,
            colorize=False,
            rotation=f"{max_size} MB",
            retention=make_retention(settings.max_backups, settings.max_age),
            enqueue=True,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
