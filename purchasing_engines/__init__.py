"""
Module: purchasing_engines
Responsibility:
    Package entrypoint that re-exports the pure calculation engines used by
    the purchase order module.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import purchasing_kernel (domain, logging).
    MUST NOT import purchasing_modules.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()``; timestamps are passed in.
    - Decimal-only arithmetic.
    - Determinism: identical inputs always produce identical outputs.
"""

from purchasing_engines.order_status import (
    ReceivingProgress,
    derive_order_status,
    receiving_progress,
)
from purchasing_engines.payment_status import derive_payment_status
from purchasing_engines.totals import (
    LineAmounts,
    OrderTotals,
    OrderTotalsCalculator,
    PricedLine,
    quantize_money,
)
from purchasing_engines.tracer import traced_engine

__all__ = [
    "LineAmounts",
    "OrderTotals",
    "OrderTotalsCalculator",
    "PricedLine",
    "ReceivingProgress",
    "derive_order_status",
    "derive_payment_status",
    "quantize_money",
    "receiving_progress",
    "traced_engine",
]
