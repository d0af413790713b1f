"""JSON logging for the try-on studio.

Every record is one JSON object carrying the event name, the correlation id
of the request or generation job that produced it, and any structured fields
passed to :func:`log_event`. Fields that may hold personal data (emails,
photo references, credentials) are masked before they reach a handler.
"""

from __future__ import annotations

import contextlib
import contextvars
import json
import logging
import os
import re
import uuid
from typing import Any, Dict, Iterator

SERVICE_NAME = "tryon-studio"

CORRELATION_ID: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "tryon_correlation_id", default=None
)

# attributes every LogRecord carries; anything else came in through ``extra``
_RECORD_ATTRIBUTES = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "taskName"}

_SENSITIVE_FIELDS = frozenset(
    {
        "email",
        "display_name",
        "photo_url",
        "image_url",
        "model_image_url",
        "authorization",
        "token",
        "id_token",
        "external_subject",
    }
)
_EMAIL = re.compile(r"[\w.+\-]+@[\w\-]+(\.[\w\-]+)+")
_MASKED_PREFIXES = (
    ("data:", "[redacted-data-url]"),
    ("http://", "[redacted-url]"),
    ("https://", "[redacted-url]"),
    ("bearer ", "[redacted-credential]"),
)


def _mask_text(value: str) -> str:
    lowered = value.lower()
    for prefix, replacement in _MASKED_PREFIXES:
        if lowered.startswith(prefix):
            return replacement
    return _EMAIL.sub("[redacted-email]", value)


def redact_for_log(payload: Any) -> Any:
    """Return a JSON-safe copy of ``payload`` with personal data masked."""

    if payload is None or isinstance(payload, (bool, int, float)):
        return payload
    if isinstance(payload, str):
        return _mask_text(payload)
    if isinstance(payload, dict):
        return {
            key: "[redacted]" if key in _SENSITIVE_FIELDS else redact_for_log(value)
            for key, value in payload.items()
        }
    if isinstance(payload, (list, tuple, set, frozenset)):
        return [redact_for_log(item) for item in payload]
    return _mask_text(str(payload))


class JsonFormatter(logging.Formatter):
    """Render a record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        entry: Dict[str, Any] = {
            "timestamp": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S%z"),
            "service": SERVICE_NAME,
            "level": record.levelname,
            "logger": record.name,
            "event": getattr(record, "event", message),
            "message": message,
            "correlation_id": getattr(record, "correlation_id", None) or CORRELATION_ID.get(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRIBUTES and key not in entry:
                entry[key] = redact_for_log(value)
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(level: int | str | None = None) -> None:
    """Send root logging to stderr as JSON; ``LOG_LEVEL`` picks the default level."""

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level or os.getenv("LOG_LEVEL", "INFO").upper())


def get_logger(name: str) -> logging.Logger:
    if not logging.getLogger().handlers:
        configure_logging()
    return logging.getLogger(name)


def ensure_correlation_id(correlation_id: str | None = None) -> str:
    """Adopt ``correlation_id`` if given, else keep the current one or mint one."""

    if correlation_id:
        CORRELATION_ID.set(correlation_id)
        return correlation_id
    current = CORRELATION_ID.get()
    if current:
        return current
    minted = uuid.uuid4().hex
    CORRELATION_ID.set(minted)
    return minted


@contextlib.contextmanager
def correlation_context(correlation_id: str | None = None) -> Iterator[str]:
    """Scope a correlation id to a request or a generation job."""

    token = CORRELATION_ID.set(correlation_id or uuid.uuid4().hex)
    try:
        yield CORRELATION_ID.get()
    finally:
        CORRELATION_ID.reset(token)


def _field_key(key: str) -> str:
    # LogRecord refuses ``extra`` keys that shadow its own attributes
    return f"field_{key}" if key in _RECORD_ATTRIBUTES else key


def log_event(logger: logging.Logger, level: int, event: str, **fields: Any) -> None:
    """Log ``event`` with redacted structured ``fields``.

    ``correlation_id`` and ``exc_info`` are taken out of ``fields`` and handled
    by the logging machinery rather than emitted as plain fields. A field named
    like a built-in record attribute (``created``, ``name``, ``module``...) is
    emitted with a ``field_`` prefix.
    """

    correlation_id = ensure_correlation_id(fields.pop("correlation_id", None))
    exc_info = fields.pop("exc_info", None)
    extra = {"event": event, "correlation_id": correlation_id}
    for key, value in redact_for_log(fields).items():
        extra[_field_key(key)] = value
    logger.log(level, event, exc_info=exc_info, extra=extra)


__all__ = [
    "CORRELATION_ID",
    "JsonFormatter",
    "configure_logging",
    "correlation_context",
    "ensure_correlation_id",
    "get_logger",
    "log_event",
    "redact_for_log",
]
