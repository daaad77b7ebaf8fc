"""
Purchase Order Module (``purchasing_modules.purchase_order``).

Responsibility
--------------
The purchase order lifecycle from draft through partial and complete
receipt of goods: line-level reconciliation of ordered, received,
accepted and rejected quantities, order status derived from receipt
state, payment status derived from cumulative payments, purchase returns
and spend reporting.

Architecture position
---------------------
**Modules layer** -- frozen domain models, workflow definitions, a config
schema, the receiving reconciler, repositories (in-memory and SQLAlchemy)
and the ``PurchaseOrderService`` facade.  All arithmetic is delegated to
``purchasing_engines``.

Invariants enforced
-------------------
* Per line, 0 <= received_quantity <= ordered_quantity.
* Totals, balance and payment status always agree with lines, shipping
  and payments.
* Receipt and payment histories are append-only.
* ``received`` and ``cancelled`` are terminal.

Failure modes
-------------
* Typed ``PurchasingError`` subclasses, raised before any state change.
"""

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
    InMemoryPurchaseOrderRepository,
    PurchaseOrderFilter,
    PurchaseOrderRepository,
    SqlAlchemyPurchaseOrderRepository,
)
from purchasing_modules.purchase_order.service import (
    InventoryNotifier,
    PurchaseOrderService,
)
from purchasing_modules.purchase_order.workflows import (
    PURCHASE_ORDER_WORKFLOW,
    PURCHASE_RETURN_WORKFLOW,
)

__all__ = [
    "PurchaseOrder",
    "PurchaseOrderLine",
    "GoodsReceipt",
    "GoodsReceiptLine",
    "PurchaseReturn",
    "PurchaseReturnLine",
    "Payment",
    "GoodsReceiptSubmission",
    "ReceivingReconciler",
    "ReceivingResult",
    "PurchaseAnalytics",
    "PurchaseStatistics",
    "compute_analytics",
    "compute_statistics",
    "find_overdue",
    "InMemoryPurchaseOrderRepository",
    "PurchaseOrderFilter",
    "PurchaseOrderRepository",
    "SqlAlchemyPurchaseOrderRepository",
    "InventoryNotifier",
    "PurchaseOrderService",
    "PURCHASE_ORDER_WORKFLOW",
    "PURCHASE_RETURN_WORKFLOW",
    "PurchaseOrderConfig",
]
