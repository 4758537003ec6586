"""Logging configuration helpers for optimist."""

from __future__ import annotations

import sys

from loguru import logger

from optimist.config import OptimistSettings

DEFAULT_LOG_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
    "{name}:{function}:{line} - {message}"
)


def configure_logging(level: str, *, colorize: bool = False) -> int:
    """Replace loguru's sinks with a single stderr sink. Returns the handler id."""
    logger.remove()
    return logger.add(
        sys.stderr,
        level=level.upper(),
        format=DEFAULT_LOG_FORMAT,
        colorize=colorize,
    )


def configure_from_settings(settings: OptimistSettings, *, colorize: bool = False) -> int:
    return configure_logging(settings.log_level, colorize=colorize)


__all__ = ("DEFAULT_LOG_FORMAT", "configure_logging", "configure_from_settings")
