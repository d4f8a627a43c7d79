"""Logging configuration using loguru."""
from __future__ import annotations

import sys
from typing import Optional, Tuple

from loguru import logger

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level} | {name}:{function}:{line} - {message} | {extra}"

_configured: Optional[Tuple[str, bool]] = None


def configure_logging(level: str = "INFO", serialize: bool = False) -> None:
    """Install a single stderr sink; ``serialize`` switches to JSON lines.

    Calling again with the same arguments is a no-op, so the app module and
    command-line scripts can both call it.
    """

    global _configured
    if _configured == (level, serialize):
        return
    logger.remove()
    logger.add(sys.stderr, format=LOG_FORMAT, serialize=serialize, level=level)
    _configured = (level, serialize)


def get_logger(name: str):
    return logger.bind(component=name)
