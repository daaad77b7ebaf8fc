"""
Purchase Order Service (``purchasing_modules.purchase_order.service``).

Responsibility
--------------
Orchestrates every purchase order operation -- creation, edits, status
changes, goods receiving, payments, returns and deletion -- by delegating
pure computation to ``purchasing_engines`` (totals, status derivation) and
to the ``ReceivingReconciler``, and persistence to a
``PurchaseOrderRepository``.

Architecture position
---------------------
**Modules layer** -- ``PurchaseOrderService`` is the sole public entry
point for mutating purchase orders.  It composes the stateless
calculators, the workflow definitions in ``workflows.py``, a sequence
allocator for document numbers and an injectable clock.

Invariants enforced
-------------------
* Single writer per order: every mutating call holds a per-order lock for
  its whole load -> compute -> save cycle.
* Validate before mutate: each operation raises before anything is saved
  and before a document number is allocated.
* Every save bumps ``version`` by one; repositories reject stale versions.
* Totals, balance and payment status are derived by the domain model from
  lines, shipping and payments, never patched directly.
* Terminal orders (``received``, ``cancelled``) cannot be edited or change
  status.

Failure modes
-------------
* ``ValidationError`` (and subclasses) for malformed input or violated
  business rules.
* ``NotFoundError`` subclasses for unknown orders, lines or returns.
* ``InvalidTransitionError`` for disallowed status changes or mutations of
  terminal orders.
* ``OptimisticLockError`` when another writer saved first.
Every rejection is logged with ``exc_info`` and re-raised unchanged.

Usage::

    service = PurchaseOrderService(
        InMemoryPurchaseOrderRepository(), InMemorySequenceService(),
    )
    order = service.create_order(
        supplier_id="SUP-001",
        lines=[{"product_id": "P-1", "quantity": "100", "unit_price": "10"}],
    )
"""

from __future__ import annotations

import threading
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import replace
from datetime import date, datetime
from typing import Any, Protocol
from uuid import UUID, uuid4

from purchasing_kernel.domain.clock import Clock, SystemClock
from purchasing_kernel.domain.statuses import (
    PaymentMethod,
    PurchaseOrderStatus,
    ReturnStatus,
)
from purchasing_kernel.domain.values import ZERO, to_decimal
from purchasing_kernel.exceptions import (
    InvalidTransitionError,
    OverpaymentError,
    PurchasingError,
    ValidationError,
)
from purchasing_kernel.logging_config import LogContext, get_logger
from purchasing_kernel.services.sequence_service import SequenceAllocator
from purchasing_modules.purchase_order.config import PurchaseOrderConfig
from purchasing_modules.purchase_order.models import (
    GoodsReceipt,
    GoodsReceiptLine,
    Payment,
    PurchaseOrder,
    PurchaseOrderLine,
    PurchaseReturn,
    PurchaseReturnLine,
)
from purchasing_modules.purchase_order.receiving import (
    GoodsReceiptSubmission,
    ReceivingReconciler,
    ReceivingResult,
)
from purchasing_modules.purchase_order.reporting import (
    PurchaseAnalytics,
    PurchaseStatistics,
    compute_analytics,
    compute_statistics,
    find_overdue,
)
from purchasing_modules.purchase_order.repository import (
    PurchaseOrderFilter,
    PurchaseOrderRepository,
)
from purchasing_modules.purchase_order.workflows import (
    PURCHASE_ORDER_WORKFLOW,
    PURCHASE_RETURN_WORKFLOW,
    require_guard,
    require_manual_transition,
)

logger = get_logger("modules.purchase_order.service")

_LINE_KEYS = frozenset({
    "id", "product_id", "product_name", "sku", "unit", "quantity",
    "unit_price", "discount_percent", "tax_percent", "notes",
})

_PATCHABLE_KEYS = frozenset({
    "supplier_id", "supplier_name", "expected_delivery_date", "shipping_cost",
    "payment_terms", "notes", "internal_notes", "lines",
})

_DELETABLE_STATUSES = frozenset({PurchaseOrderStatus.DRAFT, PurchaseOrderStatus.CANCELLED})


class InventoryNotifier(Protocol):
    """Receives accepted goods after a receipt has been persisted."""

    def goods_received(self, order: PurchaseOrder, receipt: GoodsReceipt) -> None: ...


def _as_uuid(value: Any, field: str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError as e:
        raise ValidationError(f"{field} must be a UUID, got {value!r}", field=field) from e


def _as_enum(enum_cls: type, value: Any, field: str) -> Any:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError as e:
        raise ValidationError(f"Unknown {field} {value!r}", field=field) from e


class _OrderLocks:
    """Registry of one lock per order id."""

    def __init__(self):
        self._locks: dict[UUID, threading.Lock] = {}
        self._guard = threading.Lock()

    @contextmanager
    def hold(self, order_id: UUID) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(order_id, threading.Lock())
        with lock:
            yield

    def discard(self, order_id: UUID) -> None:
        """Forget the lock of an order that no longer exists."""
        with self._guard:
            self._locks.pop(order_id, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class PurchaseOrderService:
    """
    Orchestrates purchase order operations.

    Contract
    --------
    * Mutating methods return the saved aggregate (or the record they
      appended) and leave the repository untouched when they raise.
    * Read methods (``get_order``, ``list_orders`` and the reports) never
      take the per-order lock.

    Guarantees
    ----------
    * Document numbers (``PO-2024-0001`` and friends) come from the
      sequence allocator, one counter per document type and year.
    * Clock is injectable for deterministic testing.

    Non-goals
    ---------
    * Does NOT update stock; accepted goods are handed to the optional
      ``InventoryNotifier``.
    * Does NOT coordinate writers across processes beyond the repository's
      version check.
    """

    def __init__(
        self,
        repository: PurchaseOrderRepository,
        sequences: SequenceAllocator,
        clock: Clock | None = None,
        config: PurchaseOrderConfig | None = None,
        inventory: InventoryNotifier | None = None,
    ):
        self._repository = repository
        self._sequences = sequences
        self._clock = clock or SystemClock()
        self._config = config or PurchaseOrderConfig.with_defaults()
        self._inventory = inventory
        self._reconciler = ReceivingReconciler()
        self._locks = _OrderLocks()

    @property
    def config(self) -> PurchaseOrderConfig:
        return self._config

    # =========================================================================
    # Internals
    # =========================================================================

    @contextmanager
    def _operation(
        self, operation: str, order_id: UUID | None = None, actor: str | None = None,
    ) -> Iterator[None]:
        with LogContext.bind(operation=operation, order_id=order_id, actor_id=actor):
            try:
                yield
            except PurchasingError:
                logger.warning(f"{operation}_rejected", exc_info=True)
                raise

    def _next_number(self, prefix: str, document: str) -> str:
        year = self._clock.now().year
        value = self._sequences.next_value(f"{document}:{year}")
        return self._config.document_number(prefix, year, value)

    def _save(self, order: PurchaseOrder) -> PurchaseOrder:
        saved = replace(order, version=order.version + 1)
        self._repository.save(saved)
        if saved.is_overpaid:
            logger.warning(
                "purchase_order_overpaid",
                extra={
                    "order_id": str(saved.id),
                    "total_amount": str(saved.total_amount),
                    "paid_amount": str(saved.paid_amount),
                    "balance_amount": str(saved.balance_amount),
                },
            )
        return saved

    def _build_line(
        self, data: Mapping[str, Any], existing: PurchaseOrderLine | None = None,
    ) -> PurchaseOrderLine:
        unknown = sorted(set(data) - _LINE_KEYS)
        if unknown:
            raise ValidationError(f"Unknown line fields: {', '.join(unknown)}", field="lines")
        if existing is not None:
            values: dict[str, Any] = {
                "product_id": existing.product_id,
                "product_name": existing.product_name,
                "sku": existing.sku,
                "unit": existing.unit,
                "quantity": existing.ordered_quantity,
                "unit_price": existing.unit_price,
                "discount_percent": existing.discount_percent,
                "tax_percent": existing.tax_percent,
                "notes": existing.notes,
            }
            values.update(data)
        else:
            values = dict(data)
        return PurchaseOrderLine(
            id=existing.id if existing is not None else uuid4(),
            product_id=values.get("product_id"),
            product_name=values.get("product_name") or "",
            sku=values.get("sku") or "",
            unit=values.get("unit") or "EA",
            ordered_quantity=values.get("quantity"),
            received_quantity=existing.received_quantity if existing is not None else ZERO,
            unit_price=values.get("unit_price"),
            discount_percent=values.get("discount_percent", ZERO),
            tax_percent=values.get("tax_percent", ZERO),
            notes=values.get("notes") or "",
        )

    def _merge_lines(
        self, order: PurchaseOrder, patch_lines: Sequence[Mapping[str, Any]],
    ) -> tuple[PurchaseOrderLine, ...]:
        merged: list[PurchaseOrderLine] = []
        kept: set[UUID] = set()
        for data in patch_lines:
            if data.get("id") is not None:
                line_id = _as_uuid(data["id"], "id")
                if line_id in kept:
                    raise ValidationError("Duplicate line id", field="lines", line_id=line_id)
                existing = order.get_line(line_id)
                kept.add(line_id)
                merged.append(self._build_line(data, existing))
            else:
                merged.append(self._build_line(data))

        for line in order.lines:
            if line.id not in kept and line.received_quantity > ZERO:
                raise ValidationError(
                    f"cannot remove a line with {line.received_quantity} units already received",
                    field="lines", line_id=line.id,
                )
        return tuple(merged)

    # =========================================================================
    # Creation and edits
    # =========================================================================

    def create_order(
        self,
        *,
        supplier_id: str,
        lines: Sequence[Mapping[str, Any]],
        supplier_name: str = "",
        order_date: date | None = None,
        expected_delivery_date: date | None = None,
        shipping_cost: Any = ZERO,
        payment_terms: str = "",
        notes: str = "",
        internal_notes: str = "",
        currency: str | None = None,
        created_by: str | None = None,
    ) -> PurchaseOrder:
        """
        Create a draft purchase order.

        Each line is a mapping with ``product_id``, ``quantity`` and
        ``unit_price`` plus optional ``product_name``, ``sku``, ``unit``,
        ``discount_percent``, ``tax_percent`` and ``notes``.
        """
        with self._operation("purchase_order_create", actor=created_by):
            now = self._clock.now()
            draft = PurchaseOrder(
                id=uuid4(),
                order_number="",
                supplier_id=supplier_id,
                supplier_name=supplier_name,
                order_date=order_date or now.date(),
                expected_delivery_date=expected_delivery_date,
                shipping_cost=shipping_cost,
                lines=tuple(self._build_line(data) for data in lines),
                payment_terms=payment_terms,
                notes=notes,
                internal_notes=internal_notes,
                currency=currency or self._config.default_currency,
                created_by=created_by,
                created_at=now,
                updated_at=now,
            )
            order = replace(
                draft, order_number=self._next_number(self._config.order_prefix, "purchase_order"),
            )
            saved = self._save(order)

        logger.info(
            "purchase_order_created",
            extra={
                "order_id": str(saved.id),
                "order_number": saved.order_number,
                "supplier_id": saved.supplier_id,
                "line_count": len(saved.lines),
                "total_amount": str(saved.total_amount),
            },
        )
        return saved

    def update_order(
        self,
        order_id: UUID,
        patch: Mapping[str, Any],
        *,
        actor: str | None = None,
    ) -> PurchaseOrder:
        """
        Apply a partial update to an order that is not received or cancelled.

        ``patch["lines"]``, when present, replaces the line set: entries with
        an ``id`` update that line (unspecified fields keep their values),
        entries without one add a new line, and omitted lines are removed.
        """
        order_id = _as_uuid(order_id, "order_id")
        with self._locks.hold(order_id), self._operation("purchase_order_update", order_id, actor):
            unknown = sorted(set(patch) - _PATCHABLE_KEYS)
            if unknown:
                raise ValidationError(
                    f"Fields cannot be updated: {', '.join(unknown)}", field=unknown[0],
                )
            order = self._repository.load(order_id)
            if order.status.is_terminal:
                raise InvalidTransitionError(
                    "purchase_order", order.id, order.status.value, order.status.value,
                    reason=f"{order.status.value} orders cannot be edited",
                )

            changes: dict[str, Any] = {
                key: value for key, value in patch.items() if key != "lines"
            }
            if "lines" in patch:
                changes["lines"] = self._merge_lines(order, patch["lines"])
                if order.status == PurchaseOrderStatus.PARTIAL and all(
                    line.is_fully_received for line in changes["lines"]
                ):
                    raise ValidationError(
                        "a partially received order must keep at least one line "
                        "with a pending quantity",
                        field="lines",
                    )
            updated = replace(order, **changes, updated_at=self._clock.now())
            saved = self._save(updated)

        logger.info(
            "purchase_order_updated",
            extra={
                "order_id": str(saved.id),
                "fields": sorted(patch.keys()),
                "total_amount": str(saved.total_amount),
                "payment_status": saved.payment_status.value,
            },
        )
        return saved

    def change_status(
        self,
        order_id: UUID,
        new_status: PurchaseOrderStatus | str,
        *,
        actor: str | None = None,
    ) -> PurchaseOrder:
        """
        Request a manual status change (submit, approve, mark ordered, cancel).

        ``partial`` and ``received`` are only ever set by ``receive_goods``.
        """
        order_id = _as_uuid(order_id, "order_id")
        with self._locks.hold(order_id), self._operation("purchase_order_status_change", order_id, actor):
            target = _as_enum(PurchaseOrderStatus, new_status, "status")
            order = self._repository.load(order_id)
            transition = require_manual_transition(
                PURCHASE_ORDER_WORKFLOW, order.id, order.status.value, target.value,
            )
            require_guard(transition, order, actor)
            changes: dict[str, Any] = {"status": target, "updated_at": self._clock.now()}
            if transition.action == "approve":
                changes["approved_by"] = actor
            saved = self._save(replace(order, **changes))

        logger.info(
            "purchase_order_status_changed",
            extra={
                "order_id": str(saved.id),
                "action": transition.action,
                "from_status": order.status.value,
                "to_status": saved.status.value,
            },
        )
        return saved

    def delete_order(self, order_id: UUID, *, actor: str | None = None) -> None:
        """Delete a draft or cancelled order."""
        order_id = _as_uuid(order_id, "order_id")
        with self._locks.hold(order_id), self._operation("purchase_order_delete", order_id, actor):
            order = self._repository.load(order_id)
            if order.status not in _DELETABLE_STATUSES:
                raise InvalidTransitionError(
                    "purchase_order", order.id, order.status.value, "deleted",
                    reason="only draft or cancelled orders can be deleted",
                )
            self._repository.delete(order_id)
        self._locks.discard(order_id)

        logger.info(
            "purchase_order_deleted",
            extra={"order_id": str(order_id), "order_number": order.order_number},
        )

    # =========================================================================
    # Receiving
    # =========================================================================

    def receive_goods(
        self,
        order_id: UUID,
        *,
        lines: Sequence[Mapping[str, Any]],
        received_by: str,
        quality_approved: bool = True,
        notes: str = "",
        received_date: datetime | None = None,
    ) -> ReceivingResult:
        """
        Record a delivery against the order.

        Each line is a mapping with ``line_id`` and ``quantity_received`` plus
        optional ``quantity_accepted`` (defaults to received minus rejected),
        ``quantity_rejected`` (defaults to 0), ``rejection_reason``,
        ``batch_number`` and ``expiry_date``.  Only accepted units count as
        received on the order.
        """
        order_id = _as_uuid(order_id, "order_id")
        with self._locks.hold(order_id), self._operation("goods_receipt", order_id, received_by):
            receipt_lines = []
            for data in lines:
                line_id = _as_uuid(data.get("line_id"), "line_id")
                qty_received = to_decimal(
                    data.get("quantity_received"), "quantity_received", line_id=line_id,
                )
                qty_rejected = to_decimal(
                    data.get("quantity_rejected", ZERO), "quantity_rejected", line_id=line_id,
                )
                qty_accepted = data.get("quantity_accepted")
                if qty_accepted is None:
                    qty_accepted = qty_received - qty_rejected
                receipt_lines.append(GoodsReceiptLine(
                    line_id=line_id,
                    quantity_received=qty_received,
                    quantity_accepted=qty_accepted,
                    quantity_rejected=qty_rejected,
                    rejection_reason=data.get("rejection_reason"),
                    batch_number=data.get("batch_number"),
                    expiry_date=data.get("expiry_date"),
                ))
            submission = GoodsReceiptSubmission(
                lines=tuple(receipt_lines),
                received_by=received_by,
                quality_approved=quality_approved,
                notes=notes,
                received_date=received_date,
            )

            order = self._repository.load(order_id)
            self._reconciler.validate(order, submission)
            result = self._reconciler.apply(
                order,
                submission,
                receipt_id=uuid4(),
                receipt_number=self._next_number(self._config.receipt_prefix, "goods_receipt"),
                now=self._clock.now(),
            )
            saved = self._save(result.order)

            logger.info(
                "goods_received",
                extra={
                    "order_id": str(saved.id),
                    "receipt_number": result.receipt.receipt_number,
                    "receipt_status": result.receipt.status.value,
                    "order_status": saved.status.value,
                    "total_accepted": str(result.receipt.total_accepted),
                    "total_rejected": str(result.receipt.total_rejected),
                },
            )

            if self._inventory is not None:
                try:
                    self._inventory.goods_received(saved, result.receipt)
                except Exception:
                    logger.error(
                        "inventory_notification_failed",
                        extra={
                            "order_id": str(saved.id),
                            "receipt_number": result.receipt.receipt_number,
                        },
                        exc_info=True,
                    )
                    raise

        return ReceivingResult(order=saved, receipt=result.receipt)

    # =========================================================================
    # Payments
    # =========================================================================

    def add_payment(
        self,
        order_id: UUID,
        *,
        amount: Any,
        method: PaymentMethod | str = PaymentMethod.CASH,
        reference: str | None = None,
        notes: str = "",
        paid_at: datetime | None = None,
        actor: str | None = None,
    ) -> Payment:
        """Record a supplier payment of at most the outstanding balance."""
        order_id = _as_uuid(order_id, "order_id")
        with self._locks.hold(order_id), self._operation("payment", order_id, actor):
            value = to_decimal(amount, "amount")
            if value <= ZERO:
                raise ValidationError(
                    f"Payment amount must be greater than 0, got {value}", field="amount",
                )
            order = self._repository.load(order_id)
            if order.status == PurchaseOrderStatus.CANCELLED:
                raise InvalidTransitionError(
                    "purchase_order", order.id, order.status.value, order.status.value,
                    reason="payments cannot be recorded against a cancelled order",
                )
            if not self._config.allow_prepayment and order.status in (
                PurchaseOrderStatus.DRAFT, PurchaseOrderStatus.PENDING,
            ):
                raise InvalidTransitionError(
                    "purchase_order", order.id, order.status.value, order.status.value,
                    reason="payments before approval are disabled",
                )
            if value > order.balance_amount:
                raise OverpaymentError(order.id, str(value), str(order.balance_amount))

            now = self._clock.now()
            payment = Payment(
                id=uuid4(),
                amount=value,
                method=_as_enum(PaymentMethod, method, "method"),
                paid_at=paid_at or now,
                reference=reference,
                notes=notes,
            )
            saved = self._save(replace(
                order, payments=order.payments + (payment,), updated_at=now,
            ))

        logger.info(
            "payment_recorded",
            extra={
                "order_id": str(saved.id),
                "amount": str(payment.amount),
                "method": payment.method.value,
                "paid_amount": str(saved.paid_amount),
                "balance_amount": str(saved.balance_amount),
                "payment_status": saved.payment_status.value,
            },
        )
        return payment

    # =========================================================================
    # Returns
    # =========================================================================

    def create_return(
        self,
        order_id: UUID,
        *,
        lines: Sequence[Mapping[str, Any]],
        reason: str,
        notes: str = "",
        return_date: datetime | None = None,
        actor: str | None = None,
    ) -> PurchaseReturn:
        """
        Raise a return of accepted goods.

        Each line is a mapping with ``line_id`` and ``quantity`` plus optional
        ``unit_cost`` (defaults to the line's unit price), ``reason`` and
        ``condition``.  A line can return at most its accepted units minus
        units already on returns that were not rejected.
        """
        order_id = _as_uuid(order_id, "order_id")
        with self._locks.hold(order_id), self._operation("purchase_return_create", order_id, actor):
            order = self._repository.load(order_id)
            return_lines = []
            seen: set[UUID] = set()
            for data in lines:
                line_id = _as_uuid(data.get("line_id"), "line_id")
                if line_id in seen:
                    raise ValidationError(
                        "Line referenced more than once in the same return",
                        field="lines", line_id=line_id,
                    )
                seen.add(line_id)
                line = order.get_line(line_id)
                return_line = PurchaseReturnLine(
                    line_id=line_id,
                    quantity=data.get("quantity"),
                    unit_cost=data.get("unit_cost", line.unit_price),
                    reason=data.get("reason"),
                    condition=data.get("condition"),
                )
                returnable = line.received_quantity - order.returned_quantity(line_id)
                if return_line.quantity > returnable:
                    raise ValidationError(
                        f"return quantity {return_line.quantity} exceeds returnable "
                        f"quantity {returnable}",
                        field="quantity", line_id=line_id,
                    )
                return_lines.append(return_line)

            now = self._clock.now()
            draft = PurchaseReturn(
                id=uuid4(),
                return_number="",
                return_date=return_date or now,
                reason=reason,
                lines=tuple(return_lines),
                notes=notes,
            )
            purchase_return = replace(
                draft, return_number=self._next_number(self._config.return_prefix, "purchase_return"),
            )
            saved = self._save(replace(
                order, returns=order.returns + (purchase_return,), updated_at=now,
            ))

        logger.info(
            "purchase_return_created",
            extra={
                "order_id": str(saved.id),
                "return_number": purchase_return.return_number,
                "return_amount": str(purchase_return.return_amount),
                "line_count": len(purchase_return.lines),
            },
        )
        return purchase_return

    def update_return_status(
        self,
        order_id: UUID,
        return_id: UUID,
        new_status: ReturnStatus | str,
        *,
        actor: str | None = None,
        notes: str | None = None,
    ) -> PurchaseReturn:
        """Move a return along pending -> approved | rejected, approved -> completed."""
        order_id = _as_uuid(order_id, "order_id")
        return_id = _as_uuid(return_id, "return_id")
        with self._locks.hold(order_id), self._operation("purchase_return_status_change", order_id, actor):
            target = _as_enum(ReturnStatus, new_status, "status")
            order = self._repository.load(order_id)
            current = order.get_return(return_id)
            require_manual_transition(
                PURCHASE_RETURN_WORKFLOW, return_id, current.status.value, target.value,
            )
            updated = replace(
                current,
                status=target,
                processed_by=actor or current.processed_by,
                notes=current.notes if notes is None else notes,
            )
            self._save(replace(
                order,
                returns=tuple(updated if r.id == return_id else r for r in order.returns),
                updated_at=self._clock.now(),
            ))

        logger.info(
            "purchase_return_status_changed",
            extra={
                "order_id": str(order_id),
                "return_number": updated.return_number,
                "from_status": current.status.value,
                "to_status": updated.status.value,
            },
        )
        return updated

    # =========================================================================
    # Queries and reports
    # =========================================================================

    def get_order(self, order_id: UUID) -> PurchaseOrder:
        return self._repository.load(_as_uuid(order_id, "order_id"))

    def list_orders(self, filters: PurchaseOrderFilter | None = None) -> list[PurchaseOrder]:
        return self._repository.list(filters)

    def statistics(self, filters: PurchaseOrderFilter | None = None) -> PurchaseStatistics:
        return compute_statistics(self._repository.list(filters))

    def analytics(
        self, filters: PurchaseOrderFilter | None = None, top_n: int = 10,
    ) -> PurchaseAnalytics:
        return compute_analytics(self._repository.list(filters), top_n=top_n)

    def overdue_orders(self, as_of: date | None = None) -> list[PurchaseOrder]:
        """Open orders whose expected delivery date has passed."""
        return find_overdue(self._repository.list(), as_of or self._clock.today())
