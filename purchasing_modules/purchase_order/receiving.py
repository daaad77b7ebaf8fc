"""
purchasing_modules.purchase_order.receiving -- Goods receiving reconciliation.

Responsibility:
    Apply one goods receipt submission to a purchase order: validate every
    receipt line against the order, increment received quantities by the
    accepted units, append an immutable GoodsReceipt and re-derive the
    order status.

Architecture position:
    Modules -- pure transformation of the aggregate.  No I/O, no clock
    access; the caller supplies ids, document numbers and timestamps.

Invariants enforced:
    - All-or-nothing: every precondition is checked before the new order is
      built, so a rejected submission leaves the order untouched.
    - Conservation: per line, received_quantity never exceeds
      ordered_quantity, and the quantity received on a receipt line never
      exceeds the pending quantity held before the receipt.
    - Rejected units are recorded on the receipt but never counted as
      received.
    - Receipt history is append-only.

Failure modes:
    - ValidationError: empty submission or a line referenced twice.
    - OverReceiptError: received quantity above the pending quantity.
    - QuantityMismatchError: raised when a GoodsReceiptLine is built.
    - LineItemNotFoundError: receipt references a line not on the order.
    - InvalidTransitionError: the order is not in a receivable state.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from uuid import UUID

from purchasing_engines.order_status import derive_order_status
from purchasing_kernel.domain.statuses import PurchaseOrderStatus, ReceiptStatus
from purchasing_kernel.domain.values import ZERO
from purchasing_kernel.exceptions import (
    InvalidTransitionError,
    OverReceiptError,
    ValidationError,
)
from purchasing_kernel.logging_config import get_logger
from purchasing_modules.purchase_order.models import (
    GoodsReceipt,
    GoodsReceiptLine,
    PurchaseOrder,
)
from purchasing_modules.purchase_order.workflows import RECEIVABLE_STATES

logger = get_logger("modules.purchase_order.receiving")


@dataclass(frozen=True)
class GoodsReceiptSubmission:
    """What the receiver reports for one delivery."""
    lines: tuple[GoodsReceiptLine, ...]
    received_by: str
    quality_approved: bool = True
    notes: str = ""
    received_date: datetime | None = None


@dataclass(frozen=True)
class ReceivingResult:
    """The updated order and the receipt that was appended to it."""
    order: PurchaseOrder
    receipt: GoodsReceipt


class ReceivingReconciler:
    """
    Reconciles goods receipts against purchase order lines.

    Contract:
        ``validate`` raises on the first violated precondition.
        ``apply`` validates, then returns a new order; the input order is
        never modified.
    """

    def validate(self, order: PurchaseOrder, submission: GoodsReceiptSubmission) -> None:
        if order.status not in RECEIVABLE_STATES:
            raise InvalidTransitionError(
                "purchase_order", order.id, order.status.value, PurchaseOrderStatus.RECEIVED.value,
                reason=(
                    "goods can only be received against approved, ordered "
                    "or partially received orders"
                ),
            )
        if not submission.lines:
            raise ValidationError("At least one receipt line is required", field="lines")
        if all(rl.quantity_received == ZERO for rl in submission.lines):
            raise ValidationError(
                "At least one receipt line must receive a positive quantity", field="lines",
            )
        if not submission.received_by or not submission.received_by.strip():
            raise ValidationError("received_by is required", field="received_by")

        seen: set[UUID] = set()
        for receipt_line in submission.lines:
            if receipt_line.line_id in seen:
                raise ValidationError(
                    "Line referenced more than once in the same receipt",
                    field="lines", line_id=receipt_line.line_id,
                )
            seen.add(receipt_line.line_id)

            line = order.get_line(receipt_line.line_id)
            if receipt_line.quantity_received > line.pending_quantity:
                raise OverReceiptError(
                    line.id,
                    str(receipt_line.quantity_received),
                    str(line.pending_quantity),
                )

    def apply(
        self,
        order: PurchaseOrder,
        submission: GoodsReceiptSubmission,
        *,
        receipt_id: UUID,
        receipt_number: str,
        now: datetime,
    ) -> ReceivingResult:
        self.validate(order, submission)

        accepted = {rl.line_id: rl.quantity_accepted for rl in submission.lines}
        new_lines = tuple(
            replace(line, received_quantity=line.received_quantity + accepted[line.id])
            if accepted.get(line.id, ZERO) > ZERO
            else line
            for line in order.lines
        )

        new_status = derive_order_status(
            quantities=tuple((ln.ordered_quantity, ln.received_quantity) for ln in new_lines),
            current_status=order.status,
        )

        received_date = submission.received_date or now
        rejected_any = any(rl.quantity_rejected > ZERO for rl in submission.lines)
        if not submission.quality_approved or rejected_any:
            receipt_status = ReceiptStatus.QUALITY_ISSUE
        elif new_status == PurchaseOrderStatus.RECEIVED:
            receipt_status = ReceiptStatus.COMPLETE
        else:
            receipt_status = ReceiptStatus.PARTIAL

        receipt = GoodsReceipt(
            id=receipt_id,
            receipt_number=receipt_number,
            received_date=received_date,
            received_by=submission.received_by,
            lines=submission.lines,
            quality_approved=submission.quality_approved,
            notes=submission.notes,
            status=receipt_status,
        )

        actual_delivery_date = order.actual_delivery_date
        if new_status == PurchaseOrderStatus.RECEIVED:
            actual_delivery_date = received_date

        updated = replace(
            order,
            lines=new_lines,
            receipts=order.receipts + (receipt,),
            status=new_status,
            actual_delivery_date=actual_delivery_date,
            updated_at=now,
        )

        logger.info(
            "goods_receipt_reconciled",
            extra={
                "order_id": str(order.id),
                "receipt_number": receipt_number,
                "from_status": order.status.value,
                "to_status": new_status.value,
                "receipt_status": receipt_status.value,
                "line_count": len(submission.lines),
            },
        )
        return ReceivingResult(order=updated, receipt=receipt)
