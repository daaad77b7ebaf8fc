"""
Pure domain layer.

Value objects and enums with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O (except SystemClock)
"""

from purchasing_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from purchasing_kernel.domain.statuses import (
    PaymentMethod,
    PaymentStatus,
    PurchaseOrderStatus,
    ReceiptStatus,
    ReturnStatus,
)
from purchasing_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "Guard",
    "Transition",
    "Workflow",
    "PaymentMethod",
    "PaymentStatus",
    "PurchaseOrderStatus",
    "ReceiptStatus",
    "ReturnStatus",
]
