"""
Model Invariant Tests - Purchase Order Aggregate.

Tests that the frozen domain models reject impossible states at
construction and derive their monetary summaries from their inputs.
"""

from dataclasses import FrozenInstanceError, replace
from datetime import UTC, date, datetime
from decimal import Decimal
from uuid import uuid4

import pytest

from purchasing_kernel.domain.statuses import PaymentMethod, PaymentStatus, ReturnStatus
from purchasing_kernel.exceptions import (
    LineItemNotFoundError,
    PurchaseReturnNotFoundError,
    QuantityMismatchError,
    ValidationError,
)
from purchasing_modules.purchase_order.models import (
    GoodsReceipt,
    GoodsReceiptLine,
    Payment,
    PurchaseOrder,
    PurchaseOrderLine,
    PurchaseReturn,
    PurchaseReturnLine,
)

NOW = datetime(2024, 3, 15, 9, 30, tzinfo=UTC)


def _line(**overrides) -> PurchaseOrderLine:
    values = dict(
        id=uuid4(),
        product_id="P-100",
        product_name="Widget",
        ordered_quantity=Decimal("100"),
        unit_price=Decimal("10"),
    )
    values.update(overrides)
    return PurchaseOrderLine(**values)


def _order(**overrides) -> PurchaseOrder:
    values = dict(
        id=uuid4(),
        order_number="PO-2024-0001",
        supplier_id="SUP-001",
        order_date=date(2024, 3, 15),
        lines=(_line(),),
        created_at=NOW,
        updated_at=NOW,
    )
    values.update(overrides)
    return PurchaseOrder(**values)


def _payment(amount: str) -> Payment:
    return Payment(id=uuid4(), amount=Decimal(amount), method=PaymentMethod.CASH, paid_at=NOW)


# =============================================================================
# Line items
# =============================================================================


class TestPurchaseOrderLineInvariants:

    def test_line_total_is_derived(self):
        line = _line(discount_percent=Decimal("5"))
        assert line.line_total == Decimal("950")

    def test_line_total_recomputed_on_replace(self):
        line = replace(_line(), ordered_quantity=Decimal("50"))
        assert line.line_total == Decimal("500")

    def test_inputs_coerced_to_decimal(self):
        line = _line(ordered_quantity="2.5", unit_price=4)
        assert line.ordered_quantity == Decimal("2.5")
        assert line.unit_price == Decimal("4")
        assert line.line_total == Decimal("10.0")

    @pytest.mark.parametrize("qty", ["0", "-1"])
    def test_ordered_quantity_must_be_positive(self, qty):
        with pytest.raises(ValidationError, match="ordered_quantity must be greater than 0"):
            _line(ordered_quantity=Decimal(qty))

    def test_negative_price_rejected(self):
        with pytest.raises(ValidationError, match="unit_price cannot be negative"):
            _line(unit_price=Decimal("-0.01"))

    @pytest.mark.parametrize("field", ["discount_percent", "tax_percent"])
    def test_percent_bounds(self, field):
        with pytest.raises(ValidationError, match=f"{field} must be between 0 and 100"):
            _line(**{field: Decimal("101")})

    def test_received_cannot_exceed_ordered(self):
        with pytest.raises(ValidationError, match="cannot exceed ordered_quantity"):
            _line(received_quantity=Decimal("101"))

    def test_product_required(self):
        with pytest.raises(ValidationError, match="product_id is required"):
            _line(product_id="  ")

    def test_error_names_line(self):
        line_id = uuid4()
        with pytest.raises(ValidationError) as exc_info:
            _line(id=line_id, ordered_quantity=Decimal("0"))
        assert exc_info.value.line_id == str(line_id)
        assert exc_info.value.field == "ordered_quantity"

    def test_pending_and_fully_received(self):
        line = _line(received_quantity=Decimal("60"))
        assert line.pending_quantity == Decimal("40")
        assert not line.is_fully_received
        assert replace(line, received_quantity=Decimal("100")).is_fully_received

    def test_frozen(self):
        with pytest.raises(FrozenInstanceError):
            _line().unit_price = Decimal("1")


# =============================================================================
# Receipts, returns, payments
# =============================================================================


class TestGoodsReceiptLineInvariants:

    def test_accepted_plus_rejected_must_equal_received(self):
        with pytest.raises(QuantityMismatchError):
            GoodsReceiptLine(
                line_id=uuid4(),
                quantity_received=Decimal("10"),
                quantity_accepted=Decimal("8"),
                quantity_rejected=Decimal("1"),
            )

    def test_negative_quantities_rejected(self):
        with pytest.raises(ValidationError, match="quantity_rejected cannot be negative"):
            GoodsReceiptLine(
                line_id=uuid4(),
                quantity_received=Decimal("10"),
                quantity_accepted=Decimal("11"),
                quantity_rejected=Decimal("-1"),
            )

    def test_receipt_totals(self):
        receipt = GoodsReceipt(
            id=uuid4(),
            receipt_number="GR-2024-0001",
            received_date=NOW,
            received_by="clerk",
            lines=(
                GoodsReceiptLine(uuid4(), Decimal("10"), Decimal("8"), Decimal("2")),
                GoodsReceiptLine(uuid4(), Decimal("5"), Decimal("5")),
            ),
        )
        assert receipt.total_received == Decimal("15")
        assert receipt.total_accepted == Decimal("13")
        assert receipt.total_rejected == Decimal("2")

    def test_empty_receipt_rejected(self):
        with pytest.raises(ValidationError, match="at least one line"):
            GoodsReceipt(
                id=uuid4(), receipt_number="GR-1", received_date=NOW,
                received_by="clerk", lines=(),
            )


class TestPurchaseReturnInvariants:

    def test_return_amount_is_sum_of_lines(self):
        ret = PurchaseReturn(
            id=uuid4(),
            return_number="PR-2024-0001",
            return_date=NOW,
            reason="Damaged",
            lines=(
                PurchaseReturnLine(uuid4(), Decimal("2"), Decimal("10")),
                PurchaseReturnLine(uuid4(), Decimal("1"), Decimal("4.5")),
            ),
        )
        assert ret.return_amount == Decimal("24.5")
        assert ret.status == ReturnStatus.PENDING

    def test_reason_required(self):
        with pytest.raises(ValidationError, match="reason is required"):
            PurchaseReturn(
                id=uuid4(), return_number="PR-1", return_date=NOW, reason="",
                lines=(PurchaseReturnLine(uuid4(), Decimal("1"), Decimal("1")),),
            )

    def test_quantity_must_be_positive(self):
        with pytest.raises(ValidationError, match="quantity must be greater than 0"):
            PurchaseReturnLine(uuid4(), Decimal("0"), Decimal("1"))


class TestPaymentInvariants:

    @pytest.mark.parametrize("amount", ["0", "-5"])
    def test_amount_must_be_positive(self, amount):
        with pytest.raises(ValidationError, match="Payment amount must be greater than 0"):
            _payment(amount)

    def test_method_coerced_from_string(self):
        payment = Payment(id=uuid4(), amount=Decimal("1"), method="bank_transfer", paid_at=NOW)
        assert payment.method is PaymentMethod.BANK_TRANSFER

    def test_unknown_method_rejected(self):
        with pytest.raises(ValidationError, match="Unknown payment method"):
            Payment(id=uuid4(), amount=Decimal("1"), method="barter", paid_at=NOW)


# =============================================================================
# Order aggregate
# =============================================================================


class TestPurchaseOrderInvariants:

    def test_totals_derived_from_lines_and_shipping(self):
        order = _order(
            lines=(_line(discount_percent=Decimal("5")), _line(
                ordered_quantity=Decimal("2"), unit_price=Decimal("50"), tax_percent=Decimal("10"),
            )),
            shipping_cost=Decimal("25"),
        )
        assert order.subtotal == Decimal("1100")
        assert order.discount_amount == Decimal("50")
        assert order.tax_amount == Decimal("10")
        assert order.total_amount == Decimal("1085")
        assert order.balance_amount == Decimal("1085")
        assert order.payment_status == PaymentStatus.UNPAID

    def test_payments_drive_balance_and_status(self):
        order = _order(payments=(_payment("600"),))
        assert order.paid_amount == Decimal("600")
        assert order.balance_amount == Decimal("400")
        assert order.payment_status == PaymentStatus.PARTIAL

        order = replace(order, payments=order.payments + (_payment("400"),))
        assert order.balance_amount == Decimal("0")
        assert order.payment_status == PaymentStatus.PAID

    def test_overpaid_after_total_drops(self):
        order = _order(payments=(_payment("1000"),))
        order = replace(order, lines=(_line(ordered_quantity=Decimal("50")),))
        assert order.balance_amount == Decimal("-500")
        assert order.is_overpaid
        assert order.payment_status == PaymentStatus.PAID

    def test_at_least_one_line(self):
        with pytest.raises(ValidationError, match="At least one item is required"):
            _order(lines=())

    def test_supplier_required(self):
        with pytest.raises(ValidationError, match="supplier_id is required"):
            _order(supplier_id="")

    def test_duplicate_line_ids_rejected(self):
        line = _line()
        with pytest.raises(ValidationError, match="Duplicate line id"):
            _order(lines=(line, line))

    def test_negative_shipping_rejected(self):
        with pytest.raises(ValidationError, match="Shipping cost cannot be negative"):
            _order(shipping_cost=Decimal("-1"))

    def test_delivery_before_order_date_rejected(self):
        with pytest.raises(ValidationError, match="Delivery date cannot be before order date"):
            _order(expected_delivery_date=date(2024, 3, 14))

    def test_get_line_and_return_lookups(self):
        order = _order()
        assert order.get_line(order.lines[0].id) is order.lines[0]
        with pytest.raises(LineItemNotFoundError):
            order.get_line(uuid4())
        with pytest.raises(PurchaseReturnNotFoundError):
            order.get_return(uuid4())

    def test_returned_quantity_ignores_rejected_returns(self):
        line = _line(received_quantity=Decimal("10"))

        def _ret(qty: str, status: ReturnStatus) -> PurchaseReturn:
            return PurchaseReturn(
                id=uuid4(), return_number=f"PR-{qty}", return_date=NOW, reason="Damaged",
                lines=(PurchaseReturnLine(line.id, Decimal(qty), Decimal("10")),),
                status=status,
            )

        order = _order(
            lines=(line,),
            returns=(_ret("2", ReturnStatus.APPROVED), _ret("5", ReturnStatus.REJECTED)),
        )
        assert order.returned_quantity(line.id) == Decimal("2")

    def test_quantity_rollups(self):
        order = _order(lines=(
            _line(received_quantity=Decimal("100")),
            _line(ordered_quantity=Decimal("5"), received_quantity=Decimal("2")),
        ))
        assert order.total_ordered_quantity == Decimal("105")
        assert order.total_received_quantity == Decimal("102")
        assert not order.is_fully_received
