"""
Instance Control Structured Logging
===================================

JSON lines for production, plain text for development.

Action logs carry a small fixed context (see EXTRA_FIELDS). Build it with
``log_context`` and pass it as ``extra``; both formatters render it, JSON as
top-level keys and text as a trailing ``[key=value ...]`` block.
"""

import logging
import json
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

EXTRA_FIELDS = ("resource_id", "provider", "category", "action", "error_kind")

QUIET_LOGGERS = ("httpx", "httpcore")


def log_context(**fields: Any) -> Dict[str, Any]:
    """Logging ``extra`` limited to EXTRA_FIELDS; None values are left out."""
    return {
        key: value.value if isinstance(value, Enum) else value
        for key, value in fields.items()
        if key in EXTRA_FIELDS and value is not None
    }


def _record_context(record: logging.LogRecord) -> Dict[str, Any]:
    context = {}
    for key in EXTRA_FIELDS:
        value = getattr(record, key, None)
        if value is not None:
            context[key] = value.value if isinstance(value, Enum) else value
    return context


class JSONFormatter(logging.Formatter):
    """Output log records as JSON lines."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)

        log_entry.update(_record_context(record))
        return json.dumps(log_entry, default=str)


class ContextFormatter(logging.Formatter):
    """Plain text with the action context appended."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = _record_context(record)
        if context:
            pairs = " ".join(f"{key}={value}" for key, value in context.items())
            line = f"{line} [{pairs}]"
        return line


def configure_logging(level: str = "INFO", fmt: str = "json", stream=None):
    """
    Configure application logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        fmt: "json" for structured lines, anything else for plain text
        stream: Output stream (defaults to stdout; the CLI passes stderr)
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stdout)
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(ContextFormatter(
            "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
    root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
