"""Log configuration for discovery sessions.

A discovery session fans out into several concurrent calls (preference
load, geocoding, two tier fetches). Each session starts a correlation ID in
a ContextVar; asyncio copies the context into every task it spawns, so all
of those calls log under the same ID without passing it around.

Two output modes share one handler setup:
  json  one object per line, for log shipping
  text  human-readable, for a terminal

Both carry the correlation ID, stamped onto each record by
CorrelationFilter.
"""

import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import IO, Any

correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")

TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s [%(correlation_id)s] %(message)s"

# Transport and tracing chatter drowns out discovery logs below WARNING
_QUIET_LOGGERS = ("httpx", "httpcore", "mlflow", "urllib3")


def get_correlation_id() -> str:
    return correlation_id.get()


def new_correlation_id() -> str:
    """Start a fresh 12-character correlation ID in the current context."""
    cid = uuid.uuid4().hex[:12]
    correlation_id.set(cid)
    return cid


class CorrelationFilter(logging.Filter):
    """Copy the context's correlation ID onto the record (``-`` when unset)."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "correlation_id", None):
            record.correlation_id = correlation_id.get() or "-"
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record.

    Only the fields named in ``context_fields`` are lifted out of
    ``extra={...}``; anything else a caller attaches stays out of the output.
    """

    context_fields: tuple[str, ...] = ("user_id", "tier", "page", "attempt", "source", "duration_ms")

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        cid = getattr(record, "correlation_id", None) or correlation_id.get()
        if cid and cid != "-":
            entry["correlation_id"] = cid

        entry.update(
            (name, getattr(record, name))
            for name in self.context_fields
            if getattr(record, name, None) is not None
        )

        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


def _level(value: str | int) -> int:
    if isinstance(value, int):
        return value
    resolved = logging.getLevelName(value.strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(json_format: bool = True, level: str | int = "INFO", stream: IO[str] | None = None) -> None:
    """Route all logging through a single stream handler on the root logger.

    Replaces any handlers already installed, so calling it twice does not
    duplicate output. Unknown level names fall back to INFO.
    """
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.addFilter(CorrelationFilter())
    handler.setFormatter(JSONFormatter() if json_format else logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(_level(level))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
