"""Logging setup for the ``context_envelope`` logger tree.

Records pick up the correlation id, target model and elapsed time of the
active request (see ``context_envelope.core.context``), so a degraded
envelope or a failed capability lookup can be traced to the command that
produced it. Output is one JSON object per line or a readable single line.
"""

from __future__ import annotations

import json
import logging
import sys
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO, Union

from context_envelope.core.context import get_correlation_id, get_model, get_start_time

ROOT_LOGGER_NAME = "context_envelope"

_CONTEXT_ATTRS = ("correlation_id", "model", "elapsed_ms")

# Attributes every LogRecord carries; anything else was passed via ``extra``
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message",
    "asctime",
    "taskName",
    *_CONTEXT_ATTRS,
}


class ContextFilter(logging.Filter):
    """Adds ``correlation_id``, ``model`` and ``elapsed_ms`` to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or "-"
        record.model = get_model() or "-"
        start_time = get_start_time()
        record.elapsed_ms = round((time.time() - start_time) * 1000, 2) if start_time else 0.0
        return True


class StructuredFormatter(logging.Formatter):
    """One JSON object per record.

    Keys: timestamp (ISO 8601, UTC), level, logger, message, the context
    fields, ``exception`` when present and ``extra`` for caller-supplied
    attributes.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", "-"),
            "model": getattr(record, "model", "-"),
            "elapsed_ms": getattr(record, "elapsed_ms", 0.0),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        extra = {k: v for k, v in vars(record).items() if k not in _RECORD_ATTRS}
        if extra:
            entry["extra"] = extra
        return json.dumps(entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """``2024-01-15 10:30:45 [LEVEL] [correlation_id model] logger: message``.

    The context bracket is omitted outside a request; the logger name is
    shown relative to the package root.
    """

    def __init__(self, *, include_timestamp: bool = True):
        super().__init__()
        self.include_timestamp = include_timestamp

    def format(self, record: logging.LogRecord) -> str:
        parts = []
        if self.include_timestamp:
            parts.append(datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S"))
        parts.append(f"[{record.levelname}]")

        context = [
            value
            for value in (getattr(record, "correlation_id", "-"), getattr(record, "model", "-"))
            if value and value != "-"
        ]
        if context:
            parts.append(f"[{' '.join(context)}]")

        name = record.name.removeprefix(f"{ROOT_LOGGER_NAME}.")
        parts.append(f"{name}: {record.getMessage()}")

        text = " ".join(parts)
        if record.exc_info:
            text += "\n" + self.formatException(record.exc_info)
        return text


def configure_logging(
    *,
    level: Union[int, str] = logging.INFO,
    format: str = "structured",
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """Install a single context-aware handler on the package logger.

    Args:
        level: Log level (default: INFO)
        format: "structured" for JSON lines, anything else for readable lines
        stream: Output stream (default: stderr)

    Returns:
        The ``context_envelope`` logger
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(
        StructuredFormatter() if format == "structured" else HumanReadableFormatter()
    )
    handler.addFilter(ContextFilter())

    logger.addHandler(handler)
    return logger
