"""Structured JSON logging with correlation and job context.

One JSON object per line on stdout. Worker log lines carry the job and
event ids bound by ``job_context``/``bind_event_id``, so a single event can be
followed from ingress through forwarding.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Callable

from .correlation import get_correlation_id, get_event_id, get_job_id

# Output key -> context getter; empty values are left out
CONTEXT_FIELDS: tuple[tuple[str, Callable[[], str]], ...] = (
    ("correlationId", get_correlation_id),
    ("jobId", get_job_id),
    ("eventId", get_event_id),
)


class JsonFormatter(logging.Formatter):
    """Render a record, its context ids and its extra_fields as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, getter in CONTEXT_FIELDS:
            value = getter()
            if value:
                entry[key] = value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        extra_fields = getattr(record, "extra_fields", None)
        if isinstance(extra_fields, dict):
            entry.update(extra_fields)

        return json.dumps(entry, default=str)


def log_level() -> int:
    """LOG_LEVEL as a logging level; unknown names fall back to INFO."""
    level = logging.getLevelName(os.environ.get("LOG_LEVEL", "INFO").strip().upper())
    return level if isinstance(level, int) else logging.INFO


def get_logger(name: str) -> logging.Logger:
    """Logger writing JSON lines to stdout. Configured once per name."""
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    logger.setLevel(log_level())
    logger.propagate = False
    return logger
