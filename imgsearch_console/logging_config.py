"""Logging setup for the console.

Readable lines on stderr by default, so log output never interleaves with
the frames the CLI prints on stdout. ``IMGSEARCH_LOG_FORMAT=json`` switches
to one JSON object per line (python-json-logger) for log shipping.

Every record carries ``request_id``: the ``X-Request-ID`` of the remote
call in progress, or ``-`` outside one.
"""

from __future__ import annotations

import contextvars
import logging
import uuid
from typing import TextIO

from pythonjsonlogger.json import JsonFormatter

from imgsearch_console.config import IMGSEARCH_LOG_FORMAT

current_request_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "imgsearch_request_id", default=None
)

# Per-request chatter from the transport; only useful when debugging.
_TRANSPORT_LOGGERS = ("httpx", "httpcore")


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = current_request_id.get() or "-"
        return True


class SeverityJsonFormatter(JsonFormatter):
    """JSON formatter that reports the level as ``severity``."""

    def add_fields(
        self,
        log_record: dict[str, object],
        record: logging.LogRecord,
        message_dict: dict[str, object],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record.pop("levelname", None)
        log_record["severity"] = record.levelname


def setup_logging(
    *,
    level: str = "INFO",
    log_format: str | None = None,
    stream: TextIO | None = None,
) -> logging.Handler:
    """Install a single root handler and return it."""
    fmt = (log_format or IMGSEARCH_LOG_FORMAT).lower()
    root_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(stream)
    handler.addFilter(RequestIdFilter())
    if fmt == "json":
        handler.setFormatter(SeverityJsonFormatter(
            fmt="%(message)s %(name)s %(request_id)s",
            rename_fields={"name": "logger"},
        ))
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        ))

    root = logging.getLogger()
    root.setLevel(root_level)
    root.handlers[:] = [handler]

    for name in _TRANSPORT_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if root_level <= logging.DEBUG else logging.WARNING)
    return handler


def generate_request_id() -> str:
    return uuid.uuid4().hex[:16]
