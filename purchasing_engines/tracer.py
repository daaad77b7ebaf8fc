"""
purchasing_engines.tracer -- Structured trace records for engine calls.

Responsibility:
    ``@traced_engine`` wraps a pure engine function and logs one
    ``engine_invoked`` record per call with the engine name and version,
    a fingerprint of the selected keyword inputs and the elapsed time.
    Identical inputs always produce the identical fingerprint, so two trace
    records can be compared to tell whether a recomputation saw the same
    lines, shipping and payments.

Architecture position:
    Engines -- support for the pure calculation layer.  Emits log records
    only; never touches the inputs or the result.

Failure modes:
    - Exceptions raised by the engine are logged as ``engine_failed`` at
      DEBUG and re-raised unchanged.

Usage:
    @traced_engine("order_totals", "1.0", fingerprint_fields=("lines", "shipping_cost"))
    def order_totals(self, *, lines, shipping_cost, paid_amount):
        ...
"""

from __future__ import annotations

import dataclasses
import functools
import hashlib
import json
import time
from collections.abc import Callable, Mapping
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from purchasing_kernel.logging_config import get_logger

_logger = get_logger("engines.tracer")


def _canonical(value: Any) -> Any:
    """Reduce a value to JSON-safe primitives with a stable form."""
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, Decimal):
        # 10, 10.0 and 10.00 are the same quantity
        return "0" if value.is_zero() else format(value.normalize(), "f")
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            f.name: _canonical(getattr(value, f.name))
            for f in dataclasses.fields(value) if f.init
        }
    if isinstance(value, Mapping):
        return {str(k): _canonical(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_canonical(v) for v in value]
    return str(value)


def compute_input_fingerprint(fields: tuple[str, ...], kwargs: Mapping[str, Any]) -> str:
    """SHA-256 of the named keyword inputs, first 16 hex chars.  Absent inputs count as null."""
    document = json.dumps(
        {name: _canonical(kwargs.get(name)) for name in fields},
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(document.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Decorate a pure engine entry point with an ``engine_invoked`` trace record."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fingerprint = compute_input_fingerprint(fingerprint_fields, kwargs) if fingerprint_fields else ""
            started = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                _logger.debug(
                    "engine_failed",
                    extra={
                        "engine_name": engine_name,
                        "input_fingerprint": fingerprint,
                        "error": type(e).__name__,
                    },
                )
                raise
            _logger.debug(
                "engine_invoked",
                extra={
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fingerprint,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 3),
                },
            )
            return result

        return wrapper

    return decorator
