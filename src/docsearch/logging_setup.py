"""
Structured logging helpers.

Every module grabs its logger with ``get_logger(__name__)``; entry points
(CLI, server) call ``configure_logging`` once.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

ENV_LOG_LEVEL = "DOCSEARCH_LOG_LEVEL"
_ROOT_LOGGER = "docsearch"


class StructuredFormatter(logging.Formatter):
    """Render records as ``key=value`` pairs."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        extra_data = getattr(record, "extra_data", None)
        if isinstance(extra_data, dict):
            log_data.update(extra_data)

        line = " ".join(f"{key}={value}" for key, value in log_data.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(
    level: str | None = None,
    *,
    default: str = "INFO",
    stream: IO[str] | None = None,
) -> logging.Logger:
    """Attach a handler to the package logger and set its level.

    Precedence for the level: explicit argument, ``DOCSEARCH_LOG_LEVEL``,
    then *default*. The handler writes to *stream* (stdout when omitted).
    Calling it again only updates the level.
    """
    raw_level = (level or os.getenv(ENV_LOG_LEVEL) or default).upper()
    numeric_level = getattr(logging, raw_level, logging.INFO)

    logger = logging.getLogger(_ROOT_LOGGER)
    if not any(getattr(h, "_docsearch_handler", False) for h in logger.handlers):
        handler = logging.StreamHandler(stream or sys.stdout)
        handler.setFormatter(StructuredFormatter())
        handler._docsearch_handler = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    logger.setLevel(numeric_level)
    return logger


def get_logger(name: str) -> logging.Logger:
    """Return a logger for *name* (typically ``__name__``)."""
    return logging.getLogger(name)
