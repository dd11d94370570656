"""
Module: fulfillment_kernel.logging_config
Responsibility:
    One JSON object per log line for stock movements and orchestrator units
    of work, shaped so a single warehouse/batch position or a single order
    can be followed through the stream with a key filter.

Record layout (keys in this order, absent keys omitted):
    ts, level, logger, message
    bound context      correlation_id, actor_id, order_id, shipment_id
    stock position     warehouse_id, batch_id, product_id
    error              error_type, error_message, error_code, retryable,
                       error_<attribute> for each public attribute of a
                       FulfillmentError
    remaining ``extra`` fields
    traceback

The stock position comes from ``extra`` first and falls back to the
attributes of the logged exception, so ``logger.error(..., exc_info=True)``
on an InsufficientCapacityError is filterable by batch without the caller
repeating the ids.
"""

__all__ = [
    "CONTEXT_FIELDS",
    "STOCK_POSITION_FIELDS",
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any, Iterator
from uuid import UUID

from fulfillment_kernel.exceptions import ConflictRetryableError, FulfillmentError

CONTEXT_FIELDS = ("correlation_id", "actor_id", "order_id", "shipment_id")
STOCK_POSITION_FIELDS = ("warehouse_id", "batch_id", "product_id")

_context: ContextVar[dict[str, str] | None] = ContextVar("fulfillment_log_context", default=None)


def _merged(fields: dict[str, Any]) -> dict[str, str]:
    unknown = sorted(set(fields) - set(CONTEXT_FIELDS))
    if unknown:
        raise TypeError(f"Unknown log context field(s): {unknown}")
    merged = dict(_context.get() or {})
    merged.update({k: str(v) for k, v in fields.items() if v is not None})
    return merged


class LogContext:
    """Fields stamped onto every record logged inside a unit of work.

    Backed by one ContextVar, so values are local to the thread or task
    that bound them.
    """

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_context.get() or {})

    @staticmethod
    def clear() -> None:
        _context.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[None]:
        """Add fields for the duration of the block; None values are skipped."""
        token = _context.set(_merged(fields))
        try:
            yield
        finally:
            _context.reset(token)


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


class _JSONEncoder(json.JSONEncoder):
    """Quantities stay exact: Decimal is written as its string form."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, (UUID, Decimal)):
            return str(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        return super().default(obj)


def _error_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "error_type": type(exc).__name__,
        "error_message": str(exc),
    }
    if isinstance(exc, FulfillmentError):
        fields["error_code"] = exc.code
        fields["retryable"] = isinstance(exc, ConflictRetryableError)
        for key, value in vars(exc).items():
            if not key.startswith("_") and key not in STOCK_POSITION_FIELDS:
                fields[f"error_{key}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())

        extra = {k: v for k, v in vars(record).items() if k not in _STDLIB_KEYS}
        exc = record.exc_info[1] if record.exc_info else None

        for field in STOCK_POSITION_FIELDS:
            value = extra.pop(field, None)
            if value is None and exc is not None:
                value = getattr(exc, field, None)
            if value is not None:
                payload[field] = value

        if exc is not None:
            payload.update(_error_fields(exc))

        for key, value in extra.items():
            payload.setdefault(key, value)

        if exc is not None:
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, cls=_JSONEncoder, default=str)


# ---------------------------------------------------------------------------
# Logger factory
# ---------------------------------------------------------------------------

_LOGGER_PREFIX = "fulfillment_kernel"


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the fulfillment_kernel namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach one JSON handler to the fulfillment_kernel hierarchy (idempotent)."""
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    root_logger = logging.getLogger(_LOGGER_PREFIX)
    root_logger.setLevel(level)
    root_logger.propagate = False

    h = handler or logging.StreamHandler(stream or sys.stderr)
    h.setFormatter(StructuredFormatter())
    root_logger.addHandler(h)


def reset_logging() -> None:
    """Reset logging configuration. FOR TESTING ONLY."""
    global _configured
    with _lock:
        _configured = False
    logger = logging.getLogger(_LOGGER_PREFIX)
    logger.handlers.clear()
    logger.setLevel(logging.WARNING)
