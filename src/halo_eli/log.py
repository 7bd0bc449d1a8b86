"""
Logging setup for halo_eli.

Library modules only create named loggers (``halo_eli.<module>``); handlers
are attached here, by the CLI, never at import time.
"""
from __future__ import annotations

import json
import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER = "halo_eli"


class JsonFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def setup_logging(
    level: str = "WARNING",
    format_style: str = "text",
    console: Optional[Console] = None,
) -> logging.Logger:
    """
    Configure the ``halo_eli`` logger.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR).
        format_style: "json" for JSON lines on stderr, "text" for rich output.
        console: Rich console to render to (text style only).

    Returns:
        The configured logger.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, level.upper(), logging.WARNING))
    logger.handlers.clear()

    handler: logging.Handler
    if format_style == "json":
        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter())
    else:
        handler = RichHandler(
            console=console or Console(stderr=True),
            show_path=False,
            rich_tracebacks=False,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))

    logger.addHandler(handler)
    logger.propagate = False
    return logger


__all__ = ["JsonFormatter", "setup_logging", "ROOT_LOGGER"]
