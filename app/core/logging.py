"""Logging configuration for the enrollment service.

Two output shapes, chosen by LOG_JSON:

  _ContainerFormatter: one human-readable line per record, for a
    terminal or `docker logs`.  Records at WARNING and above carry a
    [file:line] suffix so a rejected enrollment can be traced back to
    the guard that rejected it.

  _JsonFormatter: one JSON object per line (JSON Lines) for log
    aggregation.  Request context and enrollment context passed via
    `extra=` become top-level keys, so a query such as
        course_id == "c-101" AND level == "WARNING"
    finds every refused admission for one course without regex.

Services never configure logging themselves; they only call
logging.getLogger(__name__).  setup_logging() runs once, in app.main
and app.worker.
"""

from __future__ import annotations

import json
import logging
import sys


class _ContainerFormatter(logging.Formatter):
    """Single-line formatter for container stdout."""

    _BASE_FMT = "%(asctime)s %(levelname)-8s %(name)s  %(message)s"
    _LOC_SUFFIX = "  [%(filename)s:%(lineno)d]"

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        base = super().formatTime(record, datefmt)
        ms = int(record.msecs)
        # ".NNN" goes before the +HHMM offset
        return f"{base[:-5]}.{ms:03d}{base[-5:]}"

    def format(self, record: logging.LogRecord) -> str:
        if record.levelno >= logging.WARNING:
            self._style._fmt = self._BASE_FMT + self._LOC_SUFFIX
        else:
            self._style._fmt = self._BASE_FMT
        return super().format(record)


class _JsonFormatter(logging.Formatter):
    """JSON Lines formatter.

    Context fields are attached to records either by the request
    context filter (request_id) or by callers through `extra=`.
    Missing fields are omitted rather than emitted as null.
    """

    _CONTEXT_FIELDS = (
        "request_id",
        "method",
        "path",
        "status_code",
        "duration_ms",
        "course_id",
        "student_id",
        "task_id",
    )

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, object] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in self._CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_entry[key] = value

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(level_name: str, *, json_format: bool = False) -> None:
    """Configure the root logger to write to stdout.

    Unknown level names fall back to INFO.  Chatty third-party loggers
    (uvicorn access lines, SQLAlchemy statement echo, redis) are held
    at WARNING or above regardless of the service level.
    """
    level = getattr(logging, level_name.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_JsonFormatter() if json_format else _ContainerFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    for name in (
        "uvicorn",
        "uvicorn.access",
        "uvicorn.error",
        "sqlalchemy.engine",
        "redis",
        "httpx",
    ):
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
