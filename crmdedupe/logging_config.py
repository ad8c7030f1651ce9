"""Structured logging for scans, merges and dismissals.

Fields bound with ``log_context`` (for example the primary id of the merge
in flight) are attached to every record emitted on the same thread, in both
the JSON and the text format. Contact PII in record fields is masked with
the same rules as the audit trail.
"""

import logging
import json
import sys
import time
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .security.audit import sanitize_value

_local = threading.local()

# Attributes every LogRecord carries; anything else came in through ``extra``
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


def current_context() -> Dict[str, Any]:
    """Fields bound on this thread by enclosing ``log_context`` blocks."""
    return dict(getattr(_local, "fields", {}))


@contextmanager
def log_context(**fields):
    """Bind ``fields`` to every log record emitted inside the block.

    Blocks nest; inner values shadow outer ones until the inner block exits.

    Example:
        with log_context(primary_id="c-1"):
            executor.merge_contacts("c-1", ["c-2"])
    """
    previous = getattr(_local, "fields", {})
    _local.fields = {**previous, **fields}
    try:
        yield
    finally:
        _local.fields = previous


def _record_fields(record: logging.LogRecord) -> Dict[str, Any]:
    fields = current_context()
    for key, value in record.__dict__.items():
        if key not in _RECORD_ATTRS:
            fields[key] = value
    return {key: sanitize_value(key, value) for key, value in fields.items()}


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, with context and ``extra`` fields merged in."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_data.update(_record_fields(record))

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ContextTextFormatter(logging.Formatter):
    """Plain text lines suffixed with the bound merge context."""

    def __init__(self):
        super().__init__("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = {k: v for k, v in _record_fields(record).items() if k in current_context()}
        if context:
            line += " [" + " ".join(f"{k}={v}" for k, v in sorted(context.items())) + "]"
        return line


def setup_logging(
    format: str = "json",
    level: str = "INFO",
    log_file: Optional[str] = None
) -> None:
    """Install console (and optional file) handlers on the root logger.

    Args:
        format: "json" or "text"
        level: Logging level name, case-insensitive
        log_file: Also append records to this file
    """
    formatter = StructuredFormatter() if format == "json" else ContextTextFormatter()

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)


def log_event(logger_name: str, event: str, **fields) -> None:
    """Emit ``event`` at info level with ``fields`` as structured data."""
    logging.getLogger(logger_name).info(event, extra=fields)


def log_error(logger_name: str, event: str, error: Exception, **fields) -> None:
    """Emit ``event`` at error level with the exception attached."""
    fields["error_type"] = type(error).__name__
    logging.getLogger(logger_name).error(f"{event}: {error}", exc_info=error, extra=fields)


def log_performance(logger_name: str, operation: str, duration_ms: float, **fields) -> None:
    fields.update(operation=operation, duration_ms=round(duration_ms, 3))
    logging.getLogger(logger_name).info(f"{operation} took {duration_ms:.2f}ms", extra=fields)


class Timer:
    """Wall-clock timer for a block; ``duration_ms`` is set on exit."""

    def __init__(self):
        self.duration_ms: Optional[float] = None
        self._start: Optional[float] = None

    def __enter__(self):
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = (time.perf_counter() - self._start) * 1000
