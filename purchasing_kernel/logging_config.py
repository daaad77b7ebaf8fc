"""
Structured JSON logging for the purchasing engine.

Every record under the ``purchasing`` logger is rendered as one JSON line:
the envelope (``ts``, ``level``, ``logger``, ``message``), the bound
context of the current operation (order, actor, operation name), the
record's ``extra`` fields, and for exceptions the exception type, message,
``code`` and structured attributes of ``PurchasingError`` subclasses.

Event names are snake_case (``goods_received``, ``payment_recorded``);
values that JSON cannot carry natively (``Decimal``, ``UUID``, dates,
enums) are rendered as strings.
"""

__all__ = [
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
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

_LOGGER_PREFIX = "purchasing"

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

_context: ContextVar[dict[str, str] | None] = ContextVar("purchasing_log_context", default=None)


class LogContext:
    """
    Fields attached to every record logged inside an operation.

    Backed by a ``ContextVar`` so threads and tasks each see their own
    values.  Only the names in ``FIELDS`` are accepted.
    """

    FIELDS = ("correlation_id", "operation", "order_id", "order_number", "actor_id")

    @classmethod
    def _merged(cls, fields: dict[str, Any]) -> dict[str, str]:
        unknown = sorted(set(fields) - set(cls.FIELDS))
        if unknown:
            raise ValueError(f"Unknown log context fields: {', '.join(unknown)}")
        merged = dict(_context.get() or {})
        merged.update({k: str(v) for k, v in fields.items() if v is not None})
        return merged

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Add fields to the current context.  ``None`` values are ignored."""
        _context.set(cls._merged(fields))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get() or {})

    @classmethod
    def clear(cls) -> None:
        _context.set(None)

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[None]:
        """Add fields for the duration of a block, then restore the previous context."""
        token = _context.set(cls._merged(fields))
        try:
            yield
        finally:
            _context.reset(token)


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_RESERVED: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, (set, frozenset)):
        return sorted(str(v) for v in value)
    return str(value)


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
        payload.update(
            (key, value) for key, value in vars(record).items()
            if key not in _RESERVED and key not in payload
        )
        if record.exc_info and record.exc_info[1] is not None:
            payload.update(self._exception_fields(record))
        return json.dumps(payload, default=_json_default)

    def _exception_fields(self, record: logging.LogRecord) -> dict[str, Any]:
        exc = record.exc_info[1]
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        # Attributes set by PurchasingError subclasses (line_id, pending, ...)
        fields.update(
            (f"exc_{name}", value) for name, value in vars(exc).items()
            if not name.startswith("_")
        )
        fields["traceback"] = self.formatException(record.exc_info)
        return fields


# ---------------------------------------------------------------------------
# Logger factory and initialization
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``purchasing`` namespace, e.g. ``purchasing.modules.purchase_order.service``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ``purchasing`` logger.

    ``level`` may be a number or a name such as ``"DEBUG"``.  Only the first
    call has an effect until ``reset_logging`` runs.
    """
    global _configured
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level {level!r}")
        level = resolved

    with _lock:
        if _configured:
            return
        _configured = True

    target = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    target.setFormatter(StructuredFormatter())
    root = logging.getLogger(_LOGGER_PREFIX)
    root.setLevel(level)
    root.propagate = False
    root.addHandler(target)


def reset_logging() -> None:
    """Remove handlers and forget configuration.  FOR TESTING ONLY."""
    global _configured
    with _lock:
        _configured = False
    root = logging.getLogger(_LOGGER_PREFIX)
    root.handlers.clear()
    root.setLevel(logging.WARNING)
    root.propagate = True
