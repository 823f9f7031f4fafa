"""Logging setup for the quarterhour logger tree."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler

from .paths import ensure_app_structure, log_path

LOGGER_NAME = "quarterhour"
DEFAULT_LOG_LEVEL = logging.INFO
FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(event)s] %(message)s"
CONSOLE_FORMAT = "%(levelname)s %(event)s: %(message)s"
NO_EVENT = "-"

_configured = False


class EventFieldFilter(logging.Filter):
    """Give every record an ``event`` attribute so the formats can rely on it."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "event", None):
            record.event = NO_EVENT
        return True


def _file_handler() -> logging.Handler:
    handler = RotatingFileHandler(log_path(), maxBytes=2_000_000, backupCount=3, encoding="utf-8", delay=True)
    handler.setFormatter(logging.Formatter(FILE_FORMAT))
    handler.addFilter(EventFieldFilter())
    return handler


def _console_handler(level: int | str) -> logging.Handler:
    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    handler.addFilter(EventFieldFilter())
    return handler


def configure_logging(level: int | str = DEFAULT_LOG_LEVEL, *, console_level: int | str | None = None) -> logging.Logger:
    """Attach the rotating log file (and optionally stderr) to the ``quarterhour`` logger.

    Repeated calls only adjust the level; call :func:`reset_logging` first to
    point the handlers at a different data directory.
    """
    global _configured
    logger = logging.getLogger(LOGGER_NAME)
    if _configured:
        logger.setLevel(level)
        return logger

    ensure_app_structure()
    logger.setLevel(level)
    logger.propagate = False
    logger.addHandler(_file_handler())
    if console_level is not None:
        logger.addHandler(_console_handler(console_level))
    logging.captureWarnings(True)

    _configured = True
    logger.info("Logging to %s", log_path(), extra={"event": "logging_configured"})
    return logger


def reset_logging() -> None:
    """Close and detach every handler so the next configure starts fresh."""
    global _configured
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    _configured = False
