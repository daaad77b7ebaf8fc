"""
Tests for the Receiving Reconciler.

Covers:
- Partial and complete receipts
- All-or-nothing validation (order untouched on any failure)
- Rejected units recorded but never counted as received
- Receipt status classification
- Receivable order states
"""

from datetime import UTC, date, datetime
from decimal import Decimal
from uuid import uuid4

import pytest

from purchasing_kernel.domain.statuses import PurchaseOrderStatus, ReceiptStatus
from purchasing_kernel.exceptions import (
    InvalidTransitionError,
    LineItemNotFoundError,
    OverReceiptError,
    ValidationError,
)
from purchasing_modules.purchase_order.models import (
    GoodsReceiptLine,
    PurchaseOrder,
    PurchaseOrderLine,
)
from purchasing_modules.purchase_order.receiving import (
    GoodsReceiptSubmission,
    ReceivingReconciler,
)

NOW = datetime(2024, 3, 20, 14, 0, tzinfo=UTC)
S = PurchaseOrderStatus


def _order(status: PurchaseOrderStatus = S.ORDERED, *quantities: str) -> PurchaseOrder:
    lines = tuple(
        PurchaseOrderLine(
            id=uuid4(),
            product_id=f"P-{i}",
            product_name=f"Product {i}",
            ordered_quantity=Decimal(qty),
            unit_price=Decimal("10"),
        )
        for i, qty in enumerate(quantities or ("100",))
    )
    return PurchaseOrder(
        id=uuid4(),
        order_number="PO-2024-0001",
        supplier_id="SUP-001",
        order_date=date(2024, 3, 1),
        lines=lines,
        status=status,
        created_at=NOW,
        updated_at=NOW,
        version=3,
    )


def _submit(*lines: GoodsReceiptLine, quality_approved: bool = True) -> GoodsReceiptSubmission:
    return GoodsReceiptSubmission(
        lines=lines, received_by="clerk-7", quality_approved=quality_approved,
    )


def _rl(line_id, received: str, rejected: str = "0") -> GoodsReceiptLine:
    return GoodsReceiptLine(
        line_id=line_id,
        quantity_received=Decimal(received),
        quantity_accepted=Decimal(received) - Decimal(rejected),
        quantity_rejected=Decimal(rejected),
    )


class TestReceivingReconciler:
    """Reconciling receipts against order lines."""

    def setup_method(self):
        self.reconciler = ReceivingReconciler()

    def _apply(self, order, submission):
        return self.reconciler.apply(
            order, submission,
            receipt_id=uuid4(), receipt_number="GR-2024-0001", now=NOW,
        )

    def test_partial_then_complete(self):
        order = _order()
        line_id = order.lines[0].id

        first = self._apply(order, _submit(_rl(line_id, "60")))
        assert first.order.status == S.PARTIAL
        assert first.order.lines[0].received_quantity == Decimal("60")
        assert first.order.actual_delivery_date is None
        assert first.receipt.status == ReceiptStatus.PARTIAL

        second = self._apply(first.order, _submit(_rl(line_id, "40")))
        assert second.order.status == S.RECEIVED
        assert second.order.lines[0].received_quantity == Decimal("100")
        assert second.order.actual_delivery_date == NOW
        assert second.receipt.status == ReceiptStatus.COMPLETE
        assert len(second.order.receipts) == 2

    def test_input_order_not_modified(self):
        order = _order()
        self._apply(order, _submit(_rl(order.lines[0].id, "60")))
        assert order.lines[0].received_quantity == Decimal("0")
        assert order.receipts == ()
        assert order.status == S.ORDERED

    def test_over_receipt_rejected(self):
        order = _order()
        line_id = order.lines[0].id
        partial = self._apply(order, _submit(_rl(line_id, "60"))).order

        with pytest.raises(OverReceiptError) as exc_info:
            self._apply(partial, _submit(_rl(line_id, "50")))
        assert exc_info.value.line_id == str(line_id)
        assert exc_info.value.pending == "40"

    def test_failure_on_second_line_leaves_first_untouched(self):
        order = _order(S.ORDERED, "10", "5")
        first, second = order.lines

        with pytest.raises(OverReceiptError):
            self._apply(order, _submit(_rl(first.id, "10"), _rl(second.id, "6")))
        assert order.lines[0].received_quantity == Decimal("0")

    def test_rejected_units_not_counted(self):
        order = _order()
        result = self._apply(order, _submit(_rl(order.lines[0].id, "10", rejected="3")))

        assert result.order.lines[0].received_quantity == Decimal("7")
        assert result.receipt.total_rejected == Decimal("3")
        assert result.receipt.status == ReceiptStatus.QUALITY_ISSUE

    def test_quality_not_approved_flags_receipt(self):
        order = _order()
        result = self._apply(
            order, _submit(_rl(order.lines[0].id, "100"), quality_approved=False),
        )
        assert result.order.status == S.RECEIVED
        assert result.receipt.status == ReceiptStatus.QUALITY_ISSUE

    def test_all_units_rejected_keeps_status(self):
        order = _order()
        result = self._apply(order, _submit(_rl(order.lines[0].id, "5", rejected="5")))
        assert result.order.status == S.ORDERED
        assert result.order.lines[0].received_quantity == Decimal("0")
        assert len(result.order.receipts) == 1

    def test_unknown_line_rejected(self):
        with pytest.raises(LineItemNotFoundError):
            self._apply(_order(), _submit(_rl(uuid4(), "1")))

    def test_duplicate_line_in_one_receipt_rejected(self):
        order = _order()
        line_id = order.lines[0].id
        with pytest.raises(ValidationError, match="more than once"):
            self._apply(order, _submit(_rl(line_id, "1"), _rl(line_id, "1")))

    def test_empty_submission_rejected(self):
        with pytest.raises(ValidationError, match="At least one receipt line"):
            self._apply(_order(), _submit())

    def test_receiver_required(self):
        order = _order()
        submission = GoodsReceiptSubmission(
            lines=(_rl(order.lines[0].id, "1"),), received_by=" ",
        )
        with pytest.raises(ValidationError, match="received_by is required"):
            self._apply(order, submission)

    @pytest.mark.parametrize("status", [S.DRAFT, S.PENDING, S.RECEIVED, S.CANCELLED])
    def test_non_receivable_states_rejected(self, status):
        order = _order(status)
        with pytest.raises(InvalidTransitionError, match="goods can only be received"):
            self._apply(order, _submit(_rl(order.lines[0].id, "1")))

    def test_approved_order_can_receive(self):
        order = _order(S.APPROVED)
        result = self._apply(order, _submit(_rl(order.lines[0].id, "1")))
        assert result.order.status == S.PARTIAL

    def test_explicit_received_date_used(self):
        order = _order()
        when = datetime(2024, 3, 18, 8, 0, tzinfo=UTC)
        submission = GoodsReceiptSubmission(
            lines=(_rl(order.lines[0].id, "100"),), received_by="clerk", received_date=when,
        )
        result = self._apply(order, submission)
        assert result.receipt.received_date == when
        assert result.order.actual_delivery_date == when
        assert result.order.updated_at == NOW
