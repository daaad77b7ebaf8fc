"""
purchasing_engines.totals -- Line-item and order-level monetary totals.

Responsibility:
    Compute per-line subtotal, discount, tax and line total, and the
    order-level subtotal, discount, tax, shipping, grand total and balance
    from a set of priced lines.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import purchasing_kernel (domain values, logging).

Invariants enforced:
    - Determinism and idempotence: recomputing from the same inputs always
      yields the same outputs, so totals can be recalculated safely after
      any line mutation.
    - Discount is applied before tax.  Shipping is added after tax and is
      neither discounted nor taxed.
    - No rounding mid-calculation.  ``quantize_money`` exists for display.
    - total_amount == subtotal - discount_amount + tax_amount + shipping_cost
      exactly.

Failure modes:
    - ValueError on negative quantity, unit price or shipping cost, or on
      percentages outside 0..100.  Callers validate first and raise
      ValidationError; the engine refuses rather than clamping.

Usage:
    calculator = OrderTotalsCalculator()
    totals = calculator.order_totals(
        lines=order.lines, shipping_cost=Decimal("25"), paid_amount=Decimal("0"),
    )
    totals.total_amount
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Protocol

from purchasing_engines.tracer import traced_engine
from purchasing_kernel.domain.values import HUNDRED, ZERO


class PricedLine(Protocol):
    """The pricing fields the calculator reads from a line item."""

    @property
    def ordered_quantity(self) -> Decimal: ...

    @property
    def unit_price(self) -> Decimal: ...

    @property
    def discount_percent(self) -> Decimal: ...

    @property
    def tax_percent(self) -> Decimal: ...


@dataclass(frozen=True)
class LineAmounts:
    """Monetary breakdown of a single line."""

    subtotal: Decimal
    discount: Decimal
    taxable: Decimal
    tax: Decimal
    total: Decimal


@dataclass(frozen=True)
class OrderTotals:
    """
    Order-level totals.

    ``lines`` holds the per-line breakdowns in input order.
    """

    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    shipping_cost: Decimal
    total_amount: Decimal
    paid_amount: Decimal
    balance_amount: Decimal
    lines: tuple[LineAmounts, ...] = ()


def quantize_money(value: Decimal, places: int = 2) -> Decimal:
    """Round an amount for display (ROUND_HALF_UP).  Never used in calculation."""
    exponent = Decimal(1).scaleb(-places)
    return value.quantize(exponent, rounding=ROUND_HALF_UP)


def _check_percent(name: str, value: Decimal) -> None:
    if value < ZERO or value > HUNDRED:
        raise ValueError(f"{name} must be between 0 and 100, got {value}")


class OrderTotalsCalculator:
    """
    Pure function calculator for purchase order totals.

    Contract:
        No I/O, no clock access, fully deterministic.
    Guarantees:
        - ``line_amounts``: subtotal = qty * price; discount = subtotal * d%;
          taxable = subtotal - discount; tax = taxable * t%;
          total = taxable + tax.
        - ``order_totals``: sums of the line components plus shipping;
          balance = total - paid.
    Non-goals:
        - Does not round.  Does not validate payment amounts.
    """

    def line_amounts(
        self,
        quantity: Decimal,
        unit_price: Decimal,
        discount_percent: Decimal = ZERO,
        tax_percent: Decimal = ZERO,
    ) -> LineAmounts:
        if quantity < ZERO:
            raise ValueError(f"quantity cannot be negative, got {quantity}")
        if unit_price < ZERO:
            raise ValueError(f"unit_price cannot be negative, got {unit_price}")
        _check_percent("discount_percent", discount_percent)
        _check_percent("tax_percent", tax_percent)

        subtotal = quantity * unit_price
        discount = subtotal * discount_percent / HUNDRED
        taxable = subtotal - discount
        tax = taxable * tax_percent / HUNDRED
        return LineAmounts(
            subtotal=subtotal,
            discount=discount,
            taxable=taxable,
            tax=tax,
            total=taxable + tax,
        )

    @traced_engine("order_totals", "1.0", fingerprint_fields=("lines", "shipping_cost", "paid_amount"))
    def order_totals(
        self,
        *,
        lines: Sequence[PricedLine],
        shipping_cost: Decimal = ZERO,
        paid_amount: Decimal = ZERO,
    ) -> OrderTotals:
        if shipping_cost < ZERO:
            raise ValueError(f"shipping_cost cannot be negative, got {shipping_cost}")

        breakdown = tuple(
            self.line_amounts(
                line.ordered_quantity,
                line.unit_price,
                line.discount_percent,
                line.tax_percent,
            )
            for line in lines
        )
        subtotal = sum((a.subtotal for a in breakdown), ZERO)
        discount_amount = sum((a.discount for a in breakdown), ZERO)
        tax_amount = sum((a.tax for a in breakdown), ZERO)
        total_amount = subtotal - discount_amount + tax_amount + shipping_cost

        return OrderTotals(
            subtotal=subtotal,
            discount_amount=discount_amount,
            tax_amount=tax_amount,
            shipping_cost=shipping_cost,
            total_amount=total_amount,
            paid_amount=paid_amount,
            balance_amount=total_amount - paid_amount,
            lines=breakdown,
        )
