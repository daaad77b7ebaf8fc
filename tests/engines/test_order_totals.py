"""
Tests for the Order Totals Calculator.

Covers:
- Per-line subtotal, discount, tax and total
- Order-level aggregation, shipping and balance
- Display rounding
- Rejection of negative and out-of-range inputs
"""

from dataclasses import dataclass
from decimal import Decimal

import pytest

from purchasing_engines.totals import (
    LineAmounts,
    OrderTotalsCalculator,
    quantize_money,
)
from purchasing_engines.tracer import compute_input_fingerprint


@dataclass(frozen=True)
class _Line:
    ordered_quantity: Decimal
    unit_price: Decimal
    discount_percent: Decimal = Decimal("0")
    tax_percent: Decimal = Decimal("0")


class TestLineAmounts:
    """Tests for a single line's monetary breakdown."""

    def setup_method(self):
        self.calculator = OrderTotalsCalculator()

    def test_discount_applied_to_subtotal(self):
        """100 x 10 with 5% discount -> 1000 subtotal, 50 discount, 950 total."""
        amounts = self.calculator.line_amounts(
            Decimal("100"), Decimal("10"), discount_percent=Decimal("5"),
        )

        assert amounts.subtotal == Decimal("1000")
        assert amounts.discount == Decimal("50")
        assert amounts.taxable == Decimal("950")
        assert amounts.tax == Decimal("0")
        assert amounts.total == Decimal("950")

    def test_tax_applied_after_discount(self):
        amounts = self.calculator.line_amounts(
            Decimal("10"), Decimal("20"),
            discount_percent=Decimal("10"), tax_percent=Decimal("8"),
        )

        # 200 - 20 = 180 taxable, 14.4 tax
        assert amounts.taxable == Decimal("180")
        assert amounts.tax == Decimal("14.4")
        assert amounts.total == Decimal("194.4")

    def test_fractional_quantity(self):
        amounts = self.calculator.line_amounts(Decimal("2.5"), Decimal("3.10"))
        assert amounts.total == Decimal("7.75")

    def test_no_rounding_mid_calculation(self):
        amounts = self.calculator.line_amounts(
            Decimal("1"), Decimal("0.10"), tax_percent=Decimal("7.5"),
        )
        assert amounts.tax == Decimal("0.0075")

    def test_full_discount_zeroes_line(self):
        amounts = self.calculator.line_amounts(
            Decimal("3"), Decimal("9.99"), discount_percent=Decimal("100"),
        )
        assert amounts.total == Decimal("0")

    def test_negative_quantity_rejected(self):
        with pytest.raises(ValueError, match="quantity cannot be negative"):
            self.calculator.line_amounts(Decimal("-1"), Decimal("10"))

    def test_negative_price_rejected(self):
        with pytest.raises(ValueError, match="unit_price cannot be negative"):
            self.calculator.line_amounts(Decimal("1"), Decimal("-10"))

    @pytest.mark.parametrize("name", ["discount_percent", "tax_percent"])
    @pytest.mark.parametrize("value", ["-0.01", "100.01"])
    def test_percent_out_of_range_rejected(self, name, value):
        with pytest.raises(ValueError, match=f"{name} must be between 0 and 100"):
            self.calculator.line_amounts(
                Decimal("1"), Decimal("10"), **{name: Decimal(value)},
            )


class TestOrderTotals:
    """Tests for order-level aggregation."""

    def setup_method(self):
        self.calculator = OrderTotalsCalculator()

    def test_sums_lines_and_adds_shipping(self):
        totals = self.calculator.order_totals(
            lines=(
                _Line(Decimal("100"), Decimal("10"), discount_percent=Decimal("5")),
                _Line(Decimal("2"), Decimal("50"), tax_percent=Decimal("10")),
            ),
            shipping_cost=Decimal("25"),
        )

        assert totals.subtotal == Decimal("1100")
        assert totals.discount_amount == Decimal("50")
        assert totals.tax_amount == Decimal("10")
        assert totals.shipping_cost == Decimal("25")
        assert totals.total_amount == Decimal("1085")
        assert totals.balance_amount == Decimal("1085")
        assert len(totals.lines) == 2
        assert isinstance(totals.lines[0], LineAmounts)

    def test_shipping_neither_discounted_nor_taxed(self):
        totals = self.calculator.order_totals(
            lines=(_Line(Decimal("1"), Decimal("100"), Decimal("50"), Decimal("20")),),
            shipping_cost=Decimal("10"),
        )
        # 100 - 50 = 50, + 10 tax = 60, + 10 shipping
        assert totals.total_amount == Decimal("70")

    def test_balance_subtracts_paid(self):
        totals = self.calculator.order_totals(
            lines=(_Line(Decimal("100"), Decimal("10")),),
            paid_amount=Decimal("600"),
        )
        assert totals.balance_amount == Decimal("400")

    def test_zero_lines_yield_zero_totals(self):
        totals = self.calculator.order_totals(lines=())
        assert totals.subtotal == Decimal("0")
        assert totals.total_amount == Decimal("0")
        assert totals.balance_amount == Decimal("0")

    def test_total_identity_holds(self):
        totals = self.calculator.order_totals(
            lines=(
                _Line(Decimal("3"), Decimal("19.99"), Decimal("12.5"), Decimal("7.25")),
                _Line(Decimal("7"), Decimal("0.33"), Decimal("0"), Decimal("19")),
            ),
            shipping_cost=Decimal("4.95"),
        )
        assert totals.total_amount == (
            totals.subtotal - totals.discount_amount + totals.tax_amount + totals.shipping_cost
        )

    def test_recalculation_is_idempotent(self):
        lines = (_Line(Decimal("3"), Decimal("19.99"), Decimal("12.5"), Decimal("7.25")),)
        first = self.calculator.order_totals(lines=lines, shipping_cost=Decimal("5"))
        second = self.calculator.order_totals(lines=lines, shipping_cost=Decimal("5"))
        assert first == second

    def test_negative_shipping_rejected(self):
        with pytest.raises(ValueError, match="shipping_cost cannot be negative"):
            self.calculator.order_totals(lines=(), shipping_cost=Decimal("-1"))

    def test_emits_engine_trace(self, captured_logs):
        self.calculator.order_totals(
            lines=(_Line(Decimal("1"), Decimal("1")),), shipping_cost=Decimal("0"),
        )
        traces = [
            r for r in captured_logs()
            if r["message"] == "engine_invoked" and r["engine_name"] == "order_totals"
        ]
        assert len(traces) == 1
        assert len(traces[0]["input_fingerprint"]) == 16


class TestQuantizeMoney:
    """Tests for display rounding."""

    def test_half_up(self):
        assert quantize_money(Decimal("0.125")) == Decimal("0.13")
        assert quantize_money(Decimal("0.124")) == Decimal("0.12")

    def test_custom_places(self):
        assert quantize_money(Decimal("1.23456"), places=3) == Decimal("1.235")

    def test_zero_places(self):
        assert quantize_money(Decimal("2.5"), places=0) == Decimal("3")


class TestInputFingerprint:
    """Tests for the trace fingerprint of engine inputs."""

    def test_equal_quantities_fingerprint_equal(self):
        a = compute_input_fingerprint(
            ("lines", "shipping_cost"),
            {"lines": (_Line(Decimal("10"), Decimal("2.5")),), "shipping_cost": Decimal("0")},
        )
        b = compute_input_fingerprint(
            ("lines", "shipping_cost"),
            {"lines": (_Line(Decimal("10.00"), Decimal("2.50")),), "shipping_cost": Decimal("0.00")},
        )
        assert a == b

    def test_different_inputs_differ(self):
        fields = ("shipping_cost",)
        assert compute_input_fingerprint(fields, {"shipping_cost": Decimal("1")}) != (
            compute_input_fingerprint(fields, {"shipping_cost": Decimal("2")})
        )

    def test_missing_field_counts_as_null(self):
        assert compute_input_fingerprint(("paid_amount",), {}) == (
            compute_input_fingerprint(("paid_amount",), {"paid_amount": None})
        )

    def test_failure_traced_and_reraised(self, captured_logs):
        with pytest.raises(ValueError):
            OrderTotalsCalculator().order_totals(lines=(), shipping_cost=Decimal("-1"))
        failures = [r for r in captured_logs() if r["message"] == "engine_failed"]
        assert failures[-1]["engine_name"] == "order_totals"
        assert failures[-1]["error"] == "ValueError"
