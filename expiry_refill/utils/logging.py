"""
Structured logging utilities for Expiry Refill.

One dictConfig-based setup shared by the CLI and the long-running worker.
Records go to stderr, either as console lines or as JSON objects whose
top-level fields include everything passed through `extra=`.

Usage:
    from expiry_refill.utils.logging import configure_logging, get_logger

    configure_logging(level="INFO", json_logs=False)
    log = get_logger(__name__)
    log.info("[REFILL FOUND] sku-1", extra={"key": "sku-1", "value": "19.99"})
"""

from __future__ import annotations

import json
import logging
import logging.config
from typing import Any, Dict, Optional

# Attributes every LogRecord carries; anything else was passed through `extra=`.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime", "extra", "taskName"}


def _json_formatter(record: logging.LogRecord) -> str:
    """Render a log record as JSON string."""
    payload: Dict[str, Any] = {
        "level": record.levelname,
        "logger": record.name,
        "message": record.getMessage(),
    }
    for attr, value in vars(record).items():
        if attr not in _RESERVED_ATTRS and not attr.startswith("_"):
            payload[attr] = value
    if record.exc_info:
        payload["exc_info"] = logging.Formatter().formatException(record.exc_info)
    if record.stack_info:
        payload["stack_info"] = record.stack_info
    if hasattr(record, "extra") and isinstance(record.extra, dict):
        payload.update(record.extra)
    return json.dumps(payload, default=str)


class JsonFormatter(logging.Formatter):
    """Minimal JSON formatter for structured logs."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        return _json_formatter(record)


# Pool and client libraries log every connection at INFO; keep them quiet
# unless the worker itself runs at DEBUG.
_CHATTY_LOGGERS = ("psycopg.pool", "redis")


def _logging_config(level: str, json_logs: bool) -> Dict[str, Any]:
    level = level.upper()
    library_level = "DEBUG" if level == "DEBUG" else "WARNING"
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "console": {
                "format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "json": {"()": JsonFormatter},
        },
        "handlers": {
            "stderr": {
                "class": "logging.StreamHandler",
                "formatter": "json" if json_logs else "console",
                "level": level,
            }
        },
        "loggers": {name: {"level": library_level} for name in _CHATTY_LOGGERS},
        "root": {"handlers": ["stderr"], "level": level},
    }


def configure_logging(
    level: str = "INFO",
    json_logs: bool = False,
    force: bool = True,
) -> None:
    """
    Configure root logging for the worker process.

    Parameters
    ----------
    level : str
        Logging level name (e.g., "DEBUG", "INFO", "WARNING").
    json_logs : bool
        Emit one JSON object per record instead of the console format.
    force : bool
        Replace handlers that are already installed on the root logger. With
        False, an embedding application's handlers are kept and only the root
        level is changed.
    """
    root = logging.getLogger()
    if root.handlers and not force:
        root.setLevel(level.upper())
        return
    logging.config.dictConfig(_logging_config(level, json_logs))


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return the named logger, or the root logger when `name` is None."""
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger", "JsonFormatter"]
