"""Structured logging configuration with request correlation."""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

_request_id: ContextVar[str | None] = ContextVar("rotation_request_id", default=None)

# Extra attributes copied from ``log.info(..., extra={...})`` into the JSON payload
EXTRA_KEYS = (
    "user_id",
    "family_id",
    "token_id",
    "error_code",
    "security_risk",
    "elapsed_ms",
    "dependency",
)


class JSONFormatter(logging.Formatter):
    """Render log records as JSON objects."""

    def format(self, record: logging.LogRecord) -> str:  # pragma: no cover - formatting logic
        payload: dict[str, Any] = {
            "time": datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", None),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        for key in EXTRA_KEYS:
            if hasattr(record, key):
                payload[key] = getattr(record, key)
        return json.dumps(payload, default=str)


class RequestIdFilter(logging.Filter):
    """Ensure a ``request_id`` attribute is always present on log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id.get()
        return True


def ensure_request_id() -> str:
    """Return the current correlation identifier, generating one when necessary."""
    current = _request_id.get()
    if current:
        return current
    request_id = str(uuid4())
    _request_id.set(request_id)
    return request_id


@contextmanager
def bind_request_id(request_id: str | None = None) -> Iterator[str]:
    """Bind a correlation id for the duration of one rotation request.

    The transport layer passes its own header value; otherwise a UUID4 is used.
    """
    token = _request_id.set(request_id or str(uuid4()))
    try:
        yield _request_id.get() or ""
    finally:
        _request_id.reset(token)


def configure_logging(level: str | int = "INFO") -> None:
    """
    Install a JSON stdout handler on the root logger.

    Safe to call repeatedly (each service build calls it): a handler installed
    by an earlier call is replaced, handlers added by the host are kept.
    """
    root = logging.getLogger()
    for existing in list(root.handlers):
        if isinstance(existing.formatter, JSONFormatter):
            root.removeHandler(existing)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    handler.addFilter(RequestIdFilter())
    root.addHandler(handler)
    root.setLevel(level.upper() if isinstance(level, str) else level)

    # APScheduler logs every job execution at INFO
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


__all__ = ["configure_logging", "bind_request_id", "ensure_request_id", "JSONFormatter"]
