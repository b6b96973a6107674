"""Structured logging configuration.

Uses standard library logging with a JSON formatter. Records that carry a
``workflow_id`` or ``step_id`` extra expose them as top-level keys so log lines
from the session, the hub and the server can be joined per workflow.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any, TextIO

# Attributes every LogRecord has, plus the ones Formatter.format() adds.
_RECORD_ATTRS: frozenset[str] = frozenset(logging.makeLogRecord({}).__dict__) | {
    "message",
    "asctime",
}

CORRELATION_KEYS: tuple[str, ...] = ("workflow_id", "step_id")


class JsonFormatter(logging.Formatter):
    """One JSON object per record; non-standard attributes go under ``extra``."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003 (record)
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        extra: dict[str, Any] = {}
        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or key.startswith("_"):
                continue
            if key in CORRELATION_KEYS:
                payload[key] = value
            else:
                extra[key] = value
        if extra:
            payload["extra"] = extra

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(level: str, *, stream: TextIO | None = None) -> None:
    """Send every record to ``stream`` (stdout by default) as JSON."""

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(stream=stream or sys.stdout)
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)
    root.setLevel(level.upper())

    # Per-request access lines drown out save/conflict events at DEBUG.
    logging.getLogger("uvicorn.access").setLevel(max(root.level, logging.INFO))
