"""
Purchase Order Domain Models.

The nouns of the purchase order aggregate: the order itself, its line items,
goods receipts, purchase returns and supplier payments.

Every record is a frozen dataclass that validates its own invariants on
construction, so an invalid line, receipt or payment can never exist in
memory.  Order-level totals, ``paid_amount``, ``balance_amount`` and
``payment_status`` are derived from the lines, shipping cost and payments
in ``PurchaseOrder.__post_init__``; they cannot drift from their inputs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from purchasing_engines.payment_status import derive_payment_status
from purchasing_engines.totals import OrderTotalsCalculator
from purchasing_kernel.domain.statuses import (
    PaymentMethod,
    PaymentStatus,
    PurchaseOrderStatus,
    ReceiptStatus,
    ReturnStatus,
)
from purchasing_kernel.domain.values import HUNDRED, ZERO, to_decimal
from purchasing_kernel.exceptions import (
    LineItemNotFoundError,
    PurchaseReturnNotFoundError,
    QuantityMismatchError,
    ValidationError,
)
from purchasing_kernel.logging_config import get_logger

logger = get_logger("modules.purchase_order.models")

_calculator = OrderTotalsCalculator()


def _coerce(obj: object, name: str, *, line_id: object = None) -> Decimal:
    value = to_decimal(getattr(obj, name), name, line_id=line_id)
    object.__setattr__(obj, name, value)
    return value


def _require_text(value: str | None, name: str, *, line_id: object = None) -> None:
    if value is None or not str(value).strip():
        raise ValidationError(f"{name} is required", field=name, line_id=line_id)


@dataclass(frozen=True)
class PurchaseOrderLine:
    """
    A line item on a purchase order.

    ``line_total`` is always computed from ordered quantity, unit price,
    discount and tax; it is never supplied by the caller.
    """
    id: UUID
    product_id: str
    product_name: str
    ordered_quantity: Decimal
    unit_price: Decimal
    sku: str = ""
    unit: str = "EA"
    received_quantity: Decimal = ZERO
    discount_percent: Decimal = ZERO
    tax_percent: Decimal = ZERO
    notes: str = ""
    line_total: Decimal = field(init=False, default=ZERO)

    def __post_init__(self):
        _require_text(self.product_id, "product_id", line_id=self.id)
        ordered = _coerce(self, "ordered_quantity", line_id=self.id)
        received = _coerce(self, "received_quantity", line_id=self.id)
        price = _coerce(self, "unit_price", line_id=self.id)
        discount = _coerce(self, "discount_percent", line_id=self.id)
        tax = _coerce(self, "tax_percent", line_id=self.id)

        if ordered <= ZERO:
            raise ValidationError(
                f"ordered_quantity must be greater than 0, got {ordered}",
                field="ordered_quantity", line_id=self.id,
            )
        if price < ZERO:
            raise ValidationError(
                f"unit_price cannot be negative, got {price}",
                field="unit_price", line_id=self.id,
            )
        for name, pct in (("discount_percent", discount), ("tax_percent", tax)):
            if pct < ZERO or pct > HUNDRED:
                raise ValidationError(
                    f"{name} must be between 0 and 100, got {pct}",
                    field=name, line_id=self.id,
                )
        if received < ZERO:
            raise ValidationError(
                f"received_quantity cannot be negative, got {received}",
                field="received_quantity", line_id=self.id,
            )
        if received > ordered:
            logger.warning(
                "po_line_over_receipt",
                extra={
                    "line_id": str(self.id),
                    "ordered_quantity": str(ordered),
                    "received_quantity": str(received),
                },
            )
            raise ValidationError(
                f"received_quantity ({received}) cannot exceed ordered_quantity ({ordered})",
                field="received_quantity", line_id=self.id,
            )

        amounts = _calculator.line_amounts(ordered, price, discount, tax)
        object.__setattr__(self, "line_total", amounts.total)

    @property
    def pending_quantity(self) -> Decimal:
        return self.ordered_quantity - self.received_quantity

    @property
    def is_fully_received(self) -> bool:
        return self.received_quantity >= self.ordered_quantity


@dataclass(frozen=True)
class GoodsReceiptLine:
    """One line of a goods receipt: what arrived for a single order line."""
    line_id: UUID
    quantity_received: Decimal
    quantity_accepted: Decimal
    quantity_rejected: Decimal = ZERO
    rejection_reason: str | None = None
    batch_number: str | None = None
    expiry_date: date | None = None

    def __post_init__(self):
        received = _coerce(self, "quantity_received", line_id=self.line_id)
        accepted = _coerce(self, "quantity_accepted", line_id=self.line_id)
        rejected = _coerce(self, "quantity_rejected", line_id=self.line_id)
        for name, qty in (
            ("quantity_received", received),
            ("quantity_accepted", accepted),
            ("quantity_rejected", rejected),
        ):
            if qty < ZERO:
                raise ValidationError(
                    f"{name} cannot be negative, got {qty}", field=name, line_id=self.line_id,
                )
        if accepted + rejected != received:
            raise QuantityMismatchError(
                self.line_id, str(received), str(accepted), str(rejected),
            )


@dataclass(frozen=True)
class GoodsReceipt:
    """
    A goods receipt note.

    Created exactly once per receiving submission and never modified;
    the order's receipt history is append-only.
    """
    id: UUID
    receipt_number: str
    received_date: datetime
    received_by: str
    lines: tuple[GoodsReceiptLine, ...]
    quality_approved: bool = True
    notes: str = ""
    status: ReceiptStatus = ReceiptStatus.PARTIAL

    def __post_init__(self):
        if not self.lines:
            raise ValidationError("A goods receipt must contain at least one line", field="lines")
        object.__setattr__(self, "lines", tuple(self.lines))

    @property
    def total_received(self) -> Decimal:
        return sum((ln.quantity_received for ln in self.lines), ZERO)

    @property
    def total_accepted(self) -> Decimal:
        return sum((ln.quantity_accepted for ln in self.lines), ZERO)

    @property
    def total_rejected(self) -> Decimal:
        return sum((ln.quantity_rejected for ln in self.lines), ZERO)


@dataclass(frozen=True)
class PurchaseReturnLine:
    """Goods sent back to the supplier against one order line."""
    line_id: UUID
    quantity: Decimal
    unit_cost: Decimal
    reason: str | None = None
    condition: str | None = None

    def __post_init__(self):
        qty = _coerce(self, "quantity", line_id=self.line_id)
        cost = _coerce(self, "unit_cost", line_id=self.line_id)
        if qty <= ZERO:
            raise ValidationError(
                f"quantity must be greater than 0, got {qty}", field="quantity", line_id=self.line_id,
            )
        if cost < ZERO:
            raise ValidationError(
                f"unit_cost cannot be negative, got {cost}", field="unit_cost", line_id=self.line_id,
            )

    @property
    def amount(self) -> Decimal:
        return self.quantity * self.unit_cost


@dataclass(frozen=True)
class PurchaseReturn:
    """A purchase return raised when received goods are disputed."""
    id: UUID
    return_number: str
    return_date: datetime
    reason: str
    lines: tuple[PurchaseReturnLine, ...]
    status: ReturnStatus = ReturnStatus.PENDING
    notes: str = ""
    processed_by: str | None = None
    return_amount: Decimal = field(init=False, default=ZERO)

    def __post_init__(self):
        if not self.lines:
            raise ValidationError("At least one item is required for return", field="lines")
        _require_text(self.reason, "reason")
        object.__setattr__(self, "lines", tuple(self.lines))
        object.__setattr__(
            self, "return_amount", sum((ln.amount for ln in self.lines), ZERO)
        )


@dataclass(frozen=True)
class Payment:
    """A payment made to the supplier against the order."""
    id: UUID
    amount: Decimal
    method: PaymentMethod
    paid_at: datetime
    reference: str | None = None
    notes: str = ""

    def __post_init__(self):
        amount = _coerce(self, "amount")
        if amount <= ZERO:
            raise ValidationError(
                f"Payment amount must be greater than 0, got {amount}", field="amount",
            )
        if not isinstance(self.method, PaymentMethod):
            try:
                object.__setattr__(self, "method", PaymentMethod(self.method))
            except ValueError as e:
                raise ValidationError(
                    f"Unknown payment method {self.method!r}", field="method",
                ) from e


@dataclass(frozen=True)
class PurchaseOrder:
    """
    A purchase order: the aggregate root.

    Owns its lines, receipts, returns and payments.  The monetary summary
    fields after ``version`` are derived, not supplied.
    """
    id: UUID
    order_number: str
    supplier_id: str
    order_date: date
    lines: tuple[PurchaseOrderLine, ...]
    created_at: datetime
    updated_at: datetime
    supplier_name: str = ""
    status: PurchaseOrderStatus = PurchaseOrderStatus.DRAFT
    expected_delivery_date: date | None = None
    actual_delivery_date: datetime | None = None
    shipping_cost: Decimal = ZERO
    receipts: tuple[GoodsReceipt, ...] = ()
    returns: tuple[PurchaseReturn, ...] = ()
    payments: tuple[Payment, ...] = ()
    payment_terms: str = ""
    notes: str = ""
    internal_notes: str = ""
    currency: str = "USD"
    created_by: str | None = None
    approved_by: str | None = None
    version: int = 0

    subtotal: Decimal = field(init=False, default=ZERO)
    discount_amount: Decimal = field(init=False, default=ZERO)
    tax_amount: Decimal = field(init=False, default=ZERO)
    total_amount: Decimal = field(init=False, default=ZERO)
    paid_amount: Decimal = field(init=False, default=ZERO)
    balance_amount: Decimal = field(init=False, default=ZERO)
    payment_status: PaymentStatus = field(init=False, default=PaymentStatus.UNPAID)

    def __post_init__(self):
        _require_text(self.supplier_id, "supplier_id")
        if not self.lines:
            raise ValidationError("At least one item is required", field="lines")
        for name in ("lines", "receipts", "returns", "payments"):
            object.__setattr__(self, name, tuple(getattr(self, name)))

        seen: set[UUID] = set()
        for line in self.lines:
            if line.id in seen:
                raise ValidationError("Duplicate line id", field="lines", line_id=line.id)
            seen.add(line.id)

        shipping = _coerce(self, "shipping_cost")
        if shipping < ZERO:
            raise ValidationError(
                f"Shipping cost cannot be negative, got {shipping}", field="shipping_cost",
            )
        if self.expected_delivery_date is not None and self.expected_delivery_date < self.order_date:
            raise ValidationError(
                "Delivery date cannot be before order date", field="expected_delivery_date",
            )

        paid = sum((p.amount for p in self.payments), ZERO)
        totals = _calculator.order_totals(
            lines=self.lines, shipping_cost=shipping, paid_amount=paid,
        )
        object.__setattr__(self, "subtotal", totals.subtotal)
        object.__setattr__(self, "discount_amount", totals.discount_amount)
        object.__setattr__(self, "tax_amount", totals.tax_amount)
        object.__setattr__(self, "total_amount", totals.total_amount)
        object.__setattr__(self, "paid_amount", paid)
        object.__setattr__(self, "balance_amount", totals.balance_amount)
        object.__setattr__(
            self, "payment_status", derive_payment_status(totals.total_amount, paid)
        )

    @property
    def is_overpaid(self) -> bool:
        """True only when an edit lowered the total below what was already paid."""
        return self.balance_amount < ZERO

    @property
    def is_fully_received(self) -> bool:
        return all(line.is_fully_received for line in self.lines)

    @property
    def total_ordered_quantity(self) -> Decimal:
        return sum((line.ordered_quantity for line in self.lines), ZERO)

    @property
    def total_received_quantity(self) -> Decimal:
        return sum((line.received_quantity for line in self.lines), ZERO)

    def get_line(self, line_id: UUID) -> PurchaseOrderLine:
        for line in self.lines:
            if line.id == line_id:
                return line
        raise LineItemNotFoundError(self.id, line_id)

    def get_return(self, return_id: UUID) -> PurchaseReturn:
        for ret in self.returns:
            if ret.id == return_id:
                return ret
        raise PurchaseReturnNotFoundError(self.id, return_id)

    def returned_quantity(self, line_id: UUID) -> Decimal:
        """Units of a line on returns that have not been rejected."""
        return sum(
            (
                ln.quantity
                for ret in self.returns
                if ret.status != ReturnStatus.REJECTED
                for ln in ret.lines
                if ln.line_id == line_id
            ),
            ZERO,
        )
