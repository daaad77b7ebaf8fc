"""
Lifecycle status enums shared by engines and modules.

Kept in the kernel domain so the pure engines can derive statuses without
importing the module layer.
"""

from enum import Enum


class PurchaseOrderStatus(str, Enum):
    """Purchase order lifecycle states."""
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    ORDERED = "ordered"
    PARTIAL = "partial"  # set by receiving only
    RECEIVED = "received"  # set by receiving only
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (PurchaseOrderStatus.RECEIVED, PurchaseOrderStatus.CANCELLED)


class PaymentStatus(str, Enum):
    """Settlement state of a purchase order."""
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"


class ReturnStatus(str, Enum):
    """Purchase return processing states."""
    PENDING = "pending"
    APPROVED = "approved"
    COMPLETED = "completed"
    REJECTED = "rejected"


class ReceiptStatus(str, Enum):
    """Outcome of a single goods receipt."""
    COMPLETE = "complete"
    PARTIAL = "partial"
    QUALITY_ISSUE = "quality_issue"


class PaymentMethod(str, Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    CHEQUE = "cheque"
    CARD = "card"
    OTHER = "other"
