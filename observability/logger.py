"""JSON-lines logging for the job engine, tagged with the request trace id."""
from __future__ import annotations

import contextvars
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional, Tuple

from config import LOG_LEVEL

_TRACE_ID = contextvars.ContextVar("trace_id", default=None)
_CONFIGURED = False

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))) | {
    "asctime",
    "message",
}

# Identifiers promoted ahead of the other extras so job/batch lines line up.
_ENTITY_KEYS = ("job_id", "batch_id", "job_status")


def _iso(created: float) -> str:
    stamp = datetime.fromtimestamp(created, tz=timezone.utc)
    return stamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _extras(record: logging.LogRecord) -> Iterator[Tuple[str, Any]]:
    for key, value in vars(record).items():
        if key.startswith("_") or key in _STANDARD_ATTRS or key == "trace_id":
            continue
        yield key, value


class JsonFormatter(logging.Formatter):
    """One JSON object per record: event, level, origin, trace and extras."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "ts": _iso(record.created),
            "level": record.levelname.lower(),
            "event": record.getMessage(),
            "logger": record.name,
            "thread": record.threadName,
        }
        trace_id = getattr(record, "trace_id", None) or _TRACE_ID.get()
        if trace_id:
            payload["trace_id"] = trace_id

        extras = dict(_extras(record))
        for key in _ENTITY_KEYS:
            if key in extras:
                payload[key] = extras.pop(key)
        payload.update(extras)

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        elif record.stack_info:
            payload["stack"] = self.formatStack(record.stack_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(level: Optional[str] = None) -> None:
    """Route the root logger to stderr; stdout is left to the tool transport."""

    global _CONFIGURED
    if _CONFIGURED:
        return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level or LOG_LEVEL)
    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)


def bind_trace_id(trace_id: str) -> None:
    _TRACE_ID.set(trace_id)


def clear_trace_id() -> None:
    _TRACE_ID.set(None)


def log_transition(logger: logging.Logger, *, job_id: str, status: str, **details: Any) -> None:
    level = logging.WARNING if status == "failed" else logging.INFO
    logger.log(
        level,
        "job_transition",
        extra={"job_id": job_id, "job_status": status, "details": details or None},
    )
