"""
Purchase order reporting.

Read-only summaries over a set of orders: headline statistics, spend
analytics by supplier, month and product, and the overdue delivery list.
All functions are pure; callers choose which orders to feed in.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from purchasing_kernel.domain.statuses import PurchaseOrderStatus
from purchasing_kernel.domain.values import ZERO
from purchasing_kernel.logging_config import get_logger
from purchasing_modules.purchase_order.models import PurchaseOrder

logger = get_logger("modules.purchase_order.reporting")

_S = PurchaseOrderStatus


@dataclass(frozen=True)
class PurchaseStatistics:
    """Headline numbers across a set of orders."""
    total_orders: int
    draft_orders: int
    pending_orders: int
    approved_orders: int  # approved or ordered
    received_orders: int  # partial or received
    cancelled_orders: int
    total_value: Decimal
    paid_value: Decimal
    outstanding_value: Decimal
    average_order_value: Decimal
    total_returns: int
    return_value: Decimal


@dataclass(frozen=True)
class SupplierSpend:
    supplier_id: str
    supplier_name: str
    order_count: int
    total_amount: Decimal


@dataclass(frozen=True)
class MonthlySpend:
    month: str  # YYYY-MM
    order_count: int
    total_amount: Decimal


@dataclass(frozen=True)
class ProductSpend:
    product_id: str
    product_name: str
    sku: str
    total_quantity: Decimal
    total_amount: Decimal


@dataclass(frozen=True)
class PurchaseAnalytics:
    by_supplier: tuple[SupplierSpend, ...]
    by_month: tuple[MonthlySpend, ...]
    top_products: tuple[ProductSpend, ...]


def compute_statistics(orders: Iterable[PurchaseOrder]) -> PurchaseStatistics:
    """
    Count orders by status group and sum their values.

    Cancelled orders are counted but excluded from the value sums.
    """
    orders = list(orders)
    counts = {status: 0 for status in PurchaseOrderStatus}
    for order in orders:
        counts[order.status] += 1

    live = [o for o in orders if o.status != _S.CANCELLED]
    total_value = sum((o.total_amount for o in live), ZERO)
    returns = [r for o in orders for r in o.returns]

    stats = PurchaseStatistics(
        total_orders=len(orders),
        draft_orders=counts[_S.DRAFT],
        pending_orders=counts[_S.PENDING],
        approved_orders=counts[_S.APPROVED] + counts[_S.ORDERED],
        received_orders=counts[_S.PARTIAL] + counts[_S.RECEIVED],
        cancelled_orders=counts[_S.CANCELLED],
        total_value=total_value,
        paid_value=sum((o.paid_amount for o in live), ZERO),
        outstanding_value=sum((o.balance_amount for o in live), ZERO),
        average_order_value=total_value / len(live) if live else ZERO,
        total_returns=len(returns),
        return_value=sum((r.return_amount for r in returns), ZERO),
    )
    logger.debug(
        "purchase_statistics_computed",
        extra={"total_orders": stats.total_orders, "total_value": str(stats.total_value)},
    )
    return stats


def compute_analytics(orders: Iterable[PurchaseOrder], top_n: int = 10) -> PurchaseAnalytics:
    """
    Spend by supplier (largest first), by order month (chronological) and
    the ``top_n`` products by line total.  Cancelled orders are excluded.
    """
    if top_n < 0:
        raise ValueError(f"top_n cannot be negative, got {top_n}")

    suppliers: dict[str, list] = {}
    months: dict[str, list] = {}
    products: dict[str, list] = {}

    for order in orders:
        if order.status == _S.CANCELLED:
            continue
        entry = suppliers.setdefault(order.supplier_id, [order.supplier_name, 0, ZERO])
        entry[1] += 1
        entry[2] += order.total_amount

        month = f"{order.order_date.year:04d}-{order.order_date.month:02d}"
        entry_month = months.setdefault(month, [0, ZERO])
        entry_month[0] += 1
        entry_month[1] += order.total_amount

        for line in order.lines:
            product = products.setdefault(
                line.product_id, [line.product_name, line.sku, ZERO, ZERO],
            )
            product[2] += line.ordered_quantity
            product[3] += line.line_total

    by_supplier = sorted(
        (SupplierSpend(sid, name, count, total) for sid, (name, count, total) in suppliers.items()),
        key=lambda s: (-s.total_amount, s.supplier_id),
    )
    by_month = sorted(
        (MonthlySpend(month, count, total) for month, (count, total) in months.items()),
        key=lambda m: m.month,
    )
    top_products = sorted(
        (
            ProductSpend(pid, name, sku, qty, total)
            for pid, (name, sku, qty, total) in products.items()
        ),
        key=lambda p: (-p.total_amount, p.product_id),
    )[:top_n]

    return PurchaseAnalytics(
        by_supplier=tuple(by_supplier),
        by_month=tuple(by_month),
        top_products=tuple(top_products),
    )


def find_overdue(orders: Iterable[PurchaseOrder], as_of: date) -> list[PurchaseOrder]:
    """Orders not yet received or cancelled whose expected date is before ``as_of``."""
    overdue = [
        o for o in orders
        if o.expected_delivery_date is not None
        and o.expected_delivery_date < as_of
        and not o.status.is_terminal
    ]
    overdue.sort(key=lambda o: (o.expected_delivery_date, o.order_number))
    if overdue:
        logger.info(
            "purchase_orders_overdue",
            extra={
                "as_of": as_of.isoformat(),
                "overdue_count": len(overdue),
                "order_ids": [str(o.id) for o in overdue],
            },
        )
    return overdue
