"""
SQLAlchemy ORM persistence models for the Purchase Order module.

Responsibility
--------------
Provide database-backed persistence for the purchase order aggregate: the
order header, its line items, goods receipts (with their lines), purchase
returns (with their lines) and supplier payments.

Architecture position
---------------------
**Modules layer** -- ORM models consumed by
``SqlAlchemyPurchaseOrderRepository``.  The header inherits from
``TrackedBase``; child rows inherit from ``Base`` (kernel db layer).

Invariants enforced
-------------------
* All monetary fields and quantities use ``Decimal`` (Numeric(38,9)) --
  NEVER float.
* Enum fields stored as String(50) for readability and portability.
* Child collections are ordered by ``line_number`` so the aggregate loads
  back in the order it was saved.
* ``PurchaseOrderModel.version`` is the SQLAlchemy ``version_id_col``.  The
  application assigns every version value (``version_id_generator=False``);
  an UPDATE whose WHERE clause no longer matches the stored version raises
  ``StaleDataError``.
* The header's stored totals are a denormalized copy for querying; the
  domain object recomputes them on load.

Audit relevance
---------------
* ``GoodsReceiptModel`` rows are written once and never updated.
* ``PurchasePaymentModel`` rows are append-only.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from purchasing_kernel.db.base import Base, TrackedBase


def _sync_children(
    collection: list[Any],
    dtos: Iterable[Any],
    build: Callable[[Any], Any],
    update: Callable[[Any, Any], None] | None = None,
) -> None:
    """Make ``collection`` match ``dtos`` by id, preserving row identity."""
    existing = {model.id: model for model in collection}
    wanted = []
    for position, dto in enumerate(dtos, start=1):
        model = existing.pop(dto.id, None)
        if model is None:
            model = build(dto)
        elif update is not None:
            update(model, dto)
        model.line_number = position
        wanted.append(model)
    for orphan in existing.values():
        collection.remove(orphan)
    for model in wanted:
        if model not in collection:
            collection.append(model)


# ---------------------------------------------------------------------------
# PurchaseOrderModel
# ---------------------------------------------------------------------------


class PurchaseOrderModel(TrackedBase):
    """
    A purchase order header.

    Maps to the ``PurchaseOrder`` DTO in
    ``purchasing_modules.purchase_order.models``.

    Guarantees:
        - ``order_number`` is unique.
        - ``status`` follows the lifecycle:
          draft -> pending -> approved -> ordered -> partial -> received,
          with cancellation from any pre-receiving state.
    """

    __tablename__ = "purchase_orders"

    __table_args__ = (
        UniqueConstraint("order_number", name="uq_purchase_order_number"),
        Index("idx_purchase_order_supplier", "supplier_id"),
        Index("idx_purchase_order_status", "status"),
        Index("idx_purchase_order_date", "order_date"),
    )

    order_number: Mapped[str] = mapped_column(String(50), nullable=False)
    supplier_id: Mapped[str] = mapped_column(String(100), nullable=False)
    supplier_name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="draft")
    order_date: Mapped[date] = mapped_column(Date, nullable=False)
    expected_delivery_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    actual_delivery_date: Mapped[datetime | None]
    shipping_cost: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    subtotal: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    discount_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    paid_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    balance_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    payment_status: Mapped[str] = mapped_column(String(50), nullable=False, default="unpaid")
    payment_terms: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    notes: Mapped[str] = mapped_column(String(2000), nullable=False, default="")
    internal_notes: Mapped[str] = mapped_column(String(2000), nullable=False, default="")
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    approved_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    version: Mapped[int] = mapped_column(nullable=False)

    __mapper_args__ = {
        "version_id_col": version,
        "version_id_generator": False,
    }

    # Relationships
    lines: Mapped[list[PurchaseOrderLineModel]] = relationship(
        "PurchaseOrderLineModel",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="PurchaseOrderLineModel.line_number",
    )
    receipts: Mapped[list[GoodsReceiptModel]] = relationship(
        "GoodsReceiptModel",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="GoodsReceiptModel.line_number",
    )
    returns: Mapped[list[PurchaseReturnModel]] = relationship(
        "PurchaseReturnModel",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="PurchaseReturnModel.line_number",
    )
    payments: Mapped[list[PurchasePaymentModel]] = relationship(
        "PurchasePaymentModel",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="PurchasePaymentModel.line_number",
    )

    def to_dto(self):
        from purchasing_modules.purchase_order.models import PurchaseOrder
        from purchasing_kernel.domain.statuses import PurchaseOrderStatus

        return PurchaseOrder(
            id=self.id,
            order_number=self.order_number,
            supplier_id=self.supplier_id,
            supplier_name=self.supplier_name,
            status=PurchaseOrderStatus(self.status),
            order_date=self.order_date,
            expected_delivery_date=self.expected_delivery_date,
            actual_delivery_date=self.actual_delivery_date,
            shipping_cost=self.shipping_cost,
            lines=tuple(line.to_dto() for line in self.lines),
            receipts=tuple(r.to_dto() for r in self.receipts),
            returns=tuple(r.to_dto() for r in self.returns),
            payments=tuple(p.to_dto() for p in self.payments),
            payment_terms=self.payment_terms,
            notes=self.notes,
            internal_notes=self.internal_notes,
            currency=self.currency,
            created_by=self.created_by,
            approved_by=self.approved_by,
            created_at=self.created_at,
            updated_at=self.updated_at,
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto) -> PurchaseOrderModel:
        model = cls(id=dto.id, created_at=dto.created_at)
        model.update_from_dto(dto)
        return model

    def update_from_dto(self, dto) -> None:
        """Copy header fields from the DTO and sync every child collection."""
        self.order_number = dto.order_number
        self.supplier_id = dto.supplier_id
        self.supplier_name = dto.supplier_name
        self.status = dto.status.value
        self.order_date = dto.order_date
        self.expected_delivery_date = dto.expected_delivery_date
        self.actual_delivery_date = dto.actual_delivery_date
        self.shipping_cost = dto.shipping_cost
        self.subtotal = dto.subtotal
        self.discount_amount = dto.discount_amount
        self.tax_amount = dto.tax_amount
        self.total_amount = dto.total_amount
        self.paid_amount = dto.paid_amount
        self.balance_amount = dto.balance_amount
        self.payment_status = dto.payment_status.value
        self.payment_terms = dto.payment_terms
        self.notes = dto.notes
        self.internal_notes = dto.internal_notes
        self.currency = dto.currency
        self.created_by = dto.created_by
        self.approved_by = dto.approved_by
        self.updated_at = dto.updated_at
        self.version = dto.version

        _sync_children(
            self.lines, dto.lines,
            build=PurchaseOrderLineModel.from_dto,
            update=PurchaseOrderLineModel.update_from_dto,
        )
        _sync_children(self.receipts, dto.receipts, build=GoodsReceiptModel.from_dto)
        _sync_children(
            self.returns, dto.returns,
            build=PurchaseReturnModel.from_dto,
            update=PurchaseReturnModel.update_from_dto,
        )
        _sync_children(self.payments, dto.payments, build=PurchasePaymentModel.from_dto)

    def __repr__(self) -> str:
        return f"<PurchaseOrderModel {self.order_number} [{self.status}] v{self.version}>"


# ---------------------------------------------------------------------------
# PurchaseOrderLineModel
# ---------------------------------------------------------------------------


class PurchaseOrderLineModel(Base):
    """
    A line item on a purchase order.

    Guarantees:
        - Belongs to exactly one ``PurchaseOrderModel``.
        - ``line_number`` is renumbered on every save, so it is not unique
          while a flush is in progress.
    """

    __tablename__ = "purchase_order_lines"

    __table_args__ = (
        Index("idx_po_line_order", "purchase_order_id", "line_number"),
        Index("idx_po_line_product", "product_id"),
    )

    purchase_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False,
    )
    line_number: Mapped[int]
    product_id: Mapped[str] = mapped_column(String(100), nullable=False)
    product_name: Mapped[str] = mapped_column(String(300), nullable=False, default="")
    sku: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="EA")
    ordered_quantity: Mapped[Decimal]
    received_quantity: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    unit_price: Mapped[Decimal]
    discount_percent: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    tax_percent: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    line_total: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    notes: Mapped[str] = mapped_column(String(1000), nullable=False, default="")

    order: Mapped[PurchaseOrderModel] = relationship(
        "PurchaseOrderModel",
        back_populates="lines",
    )

    def to_dto(self):
        from purchasing_modules.purchase_order.models import PurchaseOrderLine

        return PurchaseOrderLine(
            id=self.id,
            product_id=self.product_id,
            product_name=self.product_name,
            sku=self.sku,
            unit=self.unit,
            ordered_quantity=self.ordered_quantity,
            received_quantity=self.received_quantity,
            unit_price=self.unit_price,
            discount_percent=self.discount_percent,
            tax_percent=self.tax_percent,
            notes=self.notes,
        )

    @classmethod
    def from_dto(cls, dto) -> PurchaseOrderLineModel:
        model = cls(id=dto.id)
        model.update_from_dto(dto)
        return model

    def update_from_dto(self, dto) -> None:
        self.product_id = dto.product_id
        self.product_name = dto.product_name
        self.sku = dto.sku
        self.unit = dto.unit
        self.ordered_quantity = dto.ordered_quantity
        self.received_quantity = dto.received_quantity
        self.unit_price = dto.unit_price
        self.discount_percent = dto.discount_percent
        self.tax_percent = dto.tax_percent
        self.line_total = dto.line_total
        self.notes = dto.notes


# ---------------------------------------------------------------------------
# GoodsReceiptModel
# ---------------------------------------------------------------------------


class GoodsReceiptModel(Base):
    """
    A goods receipt note.  Written once, never updated.

    Guarantees:
        - ``receipt_number`` is unique.
        - Belongs to exactly one ``PurchaseOrderModel``.
    """

    __tablename__ = "goods_receipts"

    __table_args__ = (
        UniqueConstraint("receipt_number", name="uq_goods_receipt_number"),
        Index("idx_goods_receipt_order", "purchase_order_id"),
    )

    purchase_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False,
    )
    line_number: Mapped[int]
    receipt_number: Mapped[str] = mapped_column(String(50), nullable=False)
    received_date: Mapped[datetime]
    received_by: Mapped[str] = mapped_column(String(100), nullable=False)
    quality_approved: Mapped[bool] = mapped_column(default=True)
    notes: Mapped[str] = mapped_column(String(2000), nullable=False, default="")
    status: Mapped[str] = mapped_column(String(50), nullable=False)

    order: Mapped[PurchaseOrderModel] = relationship(
        "PurchaseOrderModel",
        back_populates="receipts",
    )
    lines: Mapped[list[GoodsReceiptLineModel]] = relationship(
        "GoodsReceiptLineModel",
        back_populates="receipt",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="GoodsReceiptLineModel.line_number",
    )

    def to_dto(self):
        from purchasing_modules.purchase_order.models import GoodsReceipt
        from purchasing_kernel.domain.statuses import ReceiptStatus

        return GoodsReceipt(
            id=self.id,
            receipt_number=self.receipt_number,
            received_date=self.received_date,
            received_by=self.received_by,
            lines=tuple(line.to_dto() for line in self.lines),
            quality_approved=self.quality_approved,
            notes=self.notes,
            status=ReceiptStatus(self.status),
        )

    @classmethod
    def from_dto(cls, dto) -> GoodsReceiptModel:
        return cls(
            id=dto.id,
            receipt_number=dto.receipt_number,
            received_date=dto.received_date,
            received_by=dto.received_by,
            quality_approved=dto.quality_approved,
            notes=dto.notes,
            status=dto.status.value,
            lines=[
                GoodsReceiptLineModel.from_dto(line, position)
                for position, line in enumerate(dto.lines, start=1)
            ],
        )


class GoodsReceiptLineModel(Base):
    """One line of a goods receipt."""

    __tablename__ = "goods_receipt_lines"

    __table_args__ = (
        Index("idx_goods_receipt_line_receipt", "receipt_id"),
    )

    receipt_id: Mapped[UUID] = mapped_column(
        ForeignKey("goods_receipts.id", ondelete="CASCADE"), nullable=False,
    )
    line_number: Mapped[int]
    # Order line reference; no FK so receipt history survives line edits.
    order_line_id: Mapped[UUID]
    quantity_received: Mapped[Decimal]
    quantity_accepted: Mapped[Decimal]
    quantity_rejected: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    rejection_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    batch_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    receipt: Mapped[GoodsReceiptModel] = relationship(
        "GoodsReceiptModel",
        back_populates="lines",
    )

    def to_dto(self):
        from purchasing_modules.purchase_order.models import GoodsReceiptLine

        return GoodsReceiptLine(
            line_id=self.order_line_id,
            quantity_received=self.quantity_received,
            quantity_accepted=self.quantity_accepted,
            quantity_rejected=self.quantity_rejected,
            rejection_reason=self.rejection_reason,
            batch_number=self.batch_number,
            expiry_date=self.expiry_date,
        )

    @classmethod
    def from_dto(cls, dto, line_number: int) -> GoodsReceiptLineModel:
        return cls(
            line_number=line_number,
            order_line_id=dto.line_id,
            quantity_received=dto.quantity_received,
            quantity_accepted=dto.quantity_accepted,
            quantity_rejected=dto.quantity_rejected,
            rejection_reason=dto.rejection_reason,
            batch_number=dto.batch_number,
            expiry_date=dto.expiry_date,
        )


# ---------------------------------------------------------------------------
# PurchaseReturnModel
# ---------------------------------------------------------------------------


class PurchaseReturnModel(Base):
    """
    A purchase return.  Only ``status``, ``notes`` and ``processed_by``
    change after creation.
    """

    __tablename__ = "purchase_returns"

    __table_args__ = (
        UniqueConstraint("return_number", name="uq_purchase_return_number"),
        Index("idx_purchase_return_order", "purchase_order_id"),
        Index("idx_purchase_return_status", "status"),
    )

    purchase_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False,
    )
    line_number: Mapped[int]
    return_number: Mapped[str] = mapped_column(String(50), nullable=False)
    return_date: Mapped[datetime]
    reason: Mapped[str] = mapped_column(String(500), nullable=False)
    return_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
    notes: Mapped[str] = mapped_column(String(2000), nullable=False, default="")
    processed_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    order: Mapped[PurchaseOrderModel] = relationship(
        "PurchaseOrderModel",
        back_populates="returns",
    )
    lines: Mapped[list[PurchaseReturnLineModel]] = relationship(
        "PurchaseReturnLineModel",
        back_populates="purchase_return",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="PurchaseReturnLineModel.line_number",
    )

    def to_dto(self):
        from purchasing_modules.purchase_order.models import PurchaseReturn
        from purchasing_kernel.domain.statuses import ReturnStatus

        return PurchaseReturn(
            id=self.id,
            return_number=self.return_number,
            return_date=self.return_date,
            reason=self.reason,
            lines=tuple(line.to_dto() for line in self.lines),
            status=ReturnStatus(self.status),
            notes=self.notes,
            processed_by=self.processed_by,
        )

    @classmethod
    def from_dto(cls, dto) -> PurchaseReturnModel:
        return cls(
            id=dto.id,
            return_number=dto.return_number,
            return_date=dto.return_date,
            reason=dto.reason,
            return_amount=dto.return_amount,
            status=dto.status.value,
            notes=dto.notes,
            processed_by=dto.processed_by,
            lines=[
                PurchaseReturnLineModel.from_dto(line, position)
                for position, line in enumerate(dto.lines, start=1)
            ],
        )

    def update_from_dto(self, dto) -> None:
        self.status = dto.status.value
        self.notes = dto.notes
        self.processed_by = dto.processed_by


class PurchaseReturnLineModel(Base):
    """One line of a purchase return."""

    __tablename__ = "purchase_return_lines"

    __table_args__ = (
        Index("idx_purchase_return_line_return", "return_id"),
    )

    return_id: Mapped[UUID] = mapped_column(
        ForeignKey("purchase_returns.id", ondelete="CASCADE"), nullable=False,
    )
    line_number: Mapped[int]
    order_line_id: Mapped[UUID]
    quantity: Mapped[Decimal]
    unit_cost: Mapped[Decimal]
    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    condition: Mapped[str | None] = mapped_column(String(100), nullable=True)

    purchase_return: Mapped[PurchaseReturnModel] = relationship(
        "PurchaseReturnModel",
        back_populates="lines",
    )

    def to_dto(self):
        from purchasing_modules.purchase_order.models import PurchaseReturnLine

        return PurchaseReturnLine(
            line_id=self.order_line_id,
            quantity=self.quantity,
            unit_cost=self.unit_cost,
            reason=self.reason,
            condition=self.condition,
        )

    @classmethod
    def from_dto(cls, dto, line_number: int) -> PurchaseReturnLineModel:
        return cls(
            line_number=line_number,
            order_line_id=dto.line_id,
            quantity=dto.quantity,
            unit_cost=dto.unit_cost,
            reason=dto.reason,
            condition=dto.condition,
        )


# ---------------------------------------------------------------------------
# PurchasePaymentModel
# ---------------------------------------------------------------------------


class PurchasePaymentModel(Base):
    """A supplier payment against a purchase order.  Append-only."""

    __tablename__ = "purchase_payments"

    __table_args__ = (
        Index("idx_purchase_payment_order", "purchase_order_id"),
    )

    purchase_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False,
    )
    line_number: Mapped[int]
    amount: Mapped[Decimal]
    method: Mapped[str] = mapped_column(String(50), nullable=False)
    paid_at: Mapped[datetime]
    reference: Mapped[str | None] = mapped_column(String(200), nullable=True)
    notes: Mapped[str] = mapped_column(String(1000), nullable=False, default="")

    order: Mapped[PurchaseOrderModel] = relationship(
        "PurchaseOrderModel",
        back_populates="payments",
    )

    def to_dto(self):
        from purchasing_modules.purchase_order.models import Payment
        from purchasing_kernel.domain.statuses import PaymentMethod

        return Payment(
            id=self.id,
            amount=self.amount,
            method=PaymentMethod(self.method),
            paid_at=self.paid_at,
            reference=self.reference,
            notes=self.notes,
        )

    @classmethod
    def from_dto(cls, dto) -> PurchasePaymentModel:
        return cls(
            id=dto.id,
            amount=dto.amount,
            method=dto.method.value,
            paid_at=dto.paid_at,
            reference=dto.reference,
            notes=dto.notes,
        )
