"""
Purchase order persistence (``purchasing_modules.purchase_order.repository``).

Responsibility
--------------
Load, save, list and delete purchase order aggregates.  Two
implementations share one contract: ``InMemoryPurchaseOrderRepository``
(process-local, used by tests and embedded callers) and
``SqlAlchemyPurchaseOrderRepository`` (relational storage via the ORM
models in ``orm.py``).

Invariants enforced
-------------------
* Optimistic concurrency: a saved order must carry ``version`` one above
  the stored version (or ``1`` for a new order).  Anything else raises
  ``OptimisticLockError``; the stored aggregate is left untouched.
* Repositories store and return immutable domain objects; no caller can
  mutate stored state except through ``save``.

Failure modes
-------------
* ``PurchaseOrderNotFoundError`` from ``load`` and ``delete``.
* ``OptimisticLockError`` on version conflicts.  The SQL implementation
  also maps SQLAlchemy's ``StaleDataError`` to it.
* Any other database error rolls the session back and is re-raised.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from purchasing_kernel.domain.statuses import PaymentStatus, PurchaseOrderStatus
from purchasing_kernel.exceptions import (
    OptimisticLockError,
    PurchaseOrderNotFoundError,
    ValidationError,
)
from purchasing_kernel.logging_config import get_logger
from purchasing_modules.purchase_order.models import PurchaseOrder
from purchasing_modules.purchase_order.orm import PurchaseOrderModel

logger = get_logger("modules.purchase_order.repository")

SORTABLE_FIELDS = frozenset({
    "order_number",
    "order_date",
    "expected_delivery_date",
    "supplier_name",
    "total_amount",
    "balance_amount",
    "status",
    "created_at",
    "updated_at",
})


@dataclass(frozen=True)
class PurchaseOrderFilter:
    """
    Criteria for listing purchase orders.  Unset criteria match everything.

    ``search`` is a case-insensitive substring match on order number and
    supplier name.  ``start_date`` / ``end_date`` bound ``order_date``
    inclusively.  Orders without a value for ``sort_by`` sort last.
    """
    status: PurchaseOrderStatus | None = None
    supplier_id: str | None = None
    payment_status: PaymentStatus | None = None
    start_date: date | None = None
    end_date: date | None = None
    search: str | None = None
    sort_by: str = "created_at"
    descending: bool = True

    def __post_init__(self):
        if self.sort_by not in SORTABLE_FIELDS:
            raise ValidationError(
                f"Cannot sort by {self.sort_by!r}; expected one of {sorted(SORTABLE_FIELDS)}",
                field="sort_by",
            )
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValidationError("start_date is after end_date", field="start_date")

    def matches(self, order: PurchaseOrder) -> bool:
        if self.status is not None and order.status != self.status:
            return False
        if self.supplier_id is not None and order.supplier_id != self.supplier_id:
            return False
        if self.payment_status is not None and order.payment_status != self.payment_status:
            return False
        if self.start_date is not None and order.order_date < self.start_date:
            return False
        if self.end_date is not None and order.order_date > self.end_date:
            return False
        if self.search:
            needle = self.search.casefold()
            haystacks = (order.order_number.casefold(), order.supplier_name.casefold())
            if not any(needle in h for h in haystacks):
                return False
        return True

    def sort(self, orders: Iterable[PurchaseOrder]) -> list[PurchaseOrder]:
        def key(order: PurchaseOrder) -> Any:
            value = getattr(order, self.sort_by)
            if isinstance(value, PurchaseOrderStatus):
                value = value.value
            return value

        orders = list(orders)
        present = [o for o in orders if key(o) is not None]
        missing = [o for o in orders if key(o) is None]
        present.sort(key=key, reverse=self.descending)
        return present + missing


class PurchaseOrderRepository(Protocol):
    """Storage contract for purchase order aggregates."""

    def load(self, order_id: UUID) -> PurchaseOrder: ...

    def save(self, order: PurchaseOrder) -> None: ...

    def list(self, filters: PurchaseOrderFilter | None = None) -> list[PurchaseOrder]: ...

    def delete(self, order_id: UUID) -> None: ...


class InMemoryPurchaseOrderRepository:
    """Thread-safe, process-local repository."""

    def __init__(self):
        self._orders: dict[UUID, PurchaseOrder] = {}
        self._lock = threading.Lock()

    def load(self, order_id: UUID) -> PurchaseOrder:
        with self._lock:
            order = self._orders.get(order_id)
        if order is None:
            raise PurchaseOrderNotFoundError(order_id)
        return order

    def save(self, order: PurchaseOrder) -> None:
        with self._lock:
            stored = self._orders.get(order.id)
            expected = 1 if stored is None else stored.version + 1
            if order.version != expected:
                logger.warning(
                    "purchase_order_version_conflict",
                    extra={
                        "order_id": str(order.id),
                        "expected_version": expected,
                        "actual_version": order.version,
                    },
                )
                raise OptimisticLockError(
                    "purchase_order", order.id,
                    expected_version=expected, actual_version=order.version,
                )
            self._orders[order.id] = order
        logger.debug(
            "purchase_order_stored",
            extra={"order_id": str(order.id), "version": order.version},
        )

    def list(self, filters: PurchaseOrderFilter | None = None) -> list[PurchaseOrder]:
        filters = filters or PurchaseOrderFilter()
        with self._lock:
            orders = list(self._orders.values())
        return filters.sort(o for o in orders if filters.matches(o))

    def delete(self, order_id: UUID) -> None:
        with self._lock:
            if self._orders.pop(order_id, None) is None:
                raise PurchaseOrderNotFoundError(order_id)
        logger.debug("purchase_order_removed", extra={"order_id": str(order_id)})

    def __len__(self) -> int:
        with self._lock:
            return len(self._orders)


class SqlAlchemyPurchaseOrderRepository:
    """
    Relational repository over a SQLAlchemy session.

    Contract:
        Each ``save`` and ``delete`` is its own transaction: commit on
        success, rollback and re-raise on failure.  Sequence numbers
        allocated through ``SequenceService`` on the same session are
        committed with the order that uses them.
    Non-goals:
        One session per thread; the repository is not shared across threads.
    """

    def __init__(self, session: Session):
        self._session = session

    @property
    def session(self) -> Session:
        return self._session

    def _get_model(self, order_id: UUID) -> PurchaseOrderModel | None:
        return self._session.get(PurchaseOrderModel, order_id, populate_existing=True)

    def load(self, order_id: UUID) -> PurchaseOrder:
        model = self._get_model(order_id)
        if model is None:
            raise PurchaseOrderNotFoundError(order_id)
        return model.to_dto()

    def save(self, order: PurchaseOrder) -> None:
        try:
            model = self._get_model(order.id)
            expected = 1 if model is None else model.version + 1
            if order.version != expected:
                raise OptimisticLockError(
                    "purchase_order", order.id,
                    expected_version=expected, actual_version=order.version,
                )
            if model is None:
                self._session.add(PurchaseOrderModel.from_dto(order))
            else:
                model.update_from_dto(order)
            self._session.commit()
        except StaleDataError as e:
            self._session.rollback()
            logger.warning(
                "purchase_order_stale_write",
                extra={"order_id": str(order.id), "version": order.version},
            )
            raise OptimisticLockError(
                "purchase_order", order.id, actual_version=order.version,
            ) from e
        except Exception:
            self._session.rollback()
            logger.warning(
                "purchase_order_save_rolled_back",
                extra={"order_id": str(order.id)},
                exc_info=True,
            )
            raise
        logger.debug(
            "purchase_order_stored",
            extra={"order_id": str(order.id), "version": order.version},
        )

    def list(self, filters: PurchaseOrderFilter | None = None) -> list[PurchaseOrder]:
        filters = filters or PurchaseOrderFilter()
        stmt = select(PurchaseOrderModel)
        if filters.status is not None:
            stmt = stmt.where(PurchaseOrderModel.status == filters.status.value)
        if filters.supplier_id is not None:
            stmt = stmt.where(PurchaseOrderModel.supplier_id == filters.supplier_id)
        if filters.payment_status is not None:
            stmt = stmt.where(PurchaseOrderModel.payment_status == filters.payment_status.value)
        if filters.start_date is not None:
            stmt = stmt.where(PurchaseOrderModel.order_date >= filters.start_date)
        if filters.end_date is not None:
            stmt = stmt.where(PurchaseOrderModel.order_date <= filters.end_date)
        if filters.search:
            stmt = stmt.where(or_(
                PurchaseOrderModel.order_number.icontains(filters.search, autoescape=True),
                PurchaseOrderModel.supplier_name.icontains(filters.search, autoescape=True),
            ))
        models = self._session.execute(stmt).scalars().all()
        return filters.sort(model.to_dto() for model in models)

    def delete(self, order_id: UUID) -> None:
        try:
            model = self._get_model(order_id)
            if model is None:
                raise PurchaseOrderNotFoundError(order_id)
            self._session.delete(model)
            self._session.commit()
        except PurchaseOrderNotFoundError:
            raise
        except Exception:
            self._session.rollback()
            logger.warning(
                "purchase_order_delete_rolled_back",
                extra={"order_id": str(order_id)},
                exc_info=True,
            )
            raise
        logger.debug("purchase_order_removed", extra={"order_id": str(order_id)})
