"""
Typed Exception Hierarchy for the Purchasing Kernel.

===============================================================================
HANDLING PURCHASING ERRORS
===============================================================================

Callers of the purchase order engine (UI handlers, import jobs, tests) react
to failures differently: an over-receipt is shown next to the offending line,
a missing order becomes a 404, an optimistic lock conflict is retried.  Each
failure therefore has its own class, a stable ``code`` string for API
responses, and attributes holding the values involved (line id, pending
quantity, balance due) so nobody has to parse the message.

    try:
        service.receive_goods(order_id, lines=lines, received_by="dock-3")
    except OverReceiptError as e:
        highlight_line(e.line_id, e.pending)
        api_response(code=e.code)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from PurchasingError:

    PurchasingError (base)
    |
    +-- ValidationError
    |   +-- OverReceiptError
    |   +-- QuantityMismatchError
    |   +-- OverpaymentError
    |
    +-- NotFoundError
    |   +-- PurchaseOrderNotFoundError
    |   +-- LineItemNotFoundError
    |   +-- PurchaseReturnNotFoundError
    |
    +-- InvalidTransitionError
    |
    +-- ConcurrencyError
        +-- OptimisticLockError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_ERROR            | Malformed or constraint-violating input
                | OVER_RECEIPT                | Received quantity exceeds pending
                | QUANTITY_MISMATCH           | accepted + rejected != received
                | OVERPAYMENT                 | Payment exceeds balance due
----------------|-----------------------------|-----------------------------------------
Not found       | PURCHASE_ORDER_NOT_FOUND    | Order ID doesn't exist
                | LINE_ITEM_NOT_FOUND         | Line ID not on the order
                | PURCHASE_RETURN_NOT_FOUND   | Return ID not on the order
----------------|-----------------------------|-----------------------------------------
Transition      | INVALID_TRANSITION          | Status change not permitted
----------------|-----------------------------|-----------------------------------------
Concurrency     | OPTIMISTIC_LOCK_CONFLICT    | Save carried a stale version

===============================================================================
NOTES
===============================================================================

- PurchasingError subclasses Exception directly, so ``except PurchasingError``
  never swallows a TypeError or KeyError from a programming mistake.
- ``code`` lives on the class: ``OverReceiptError.code`` can be compared
  without an instance.
- Every check runs against the loaded order before a replacement aggregate
  is built.  A raised error means nothing was saved and no document number
  was consumed, so the call can be retried with corrected input.
"""

from __future__ import annotations

from typing import Any


class PurchasingError(Exception):
    """
    Base exception for all purchasing engine errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "PURCHASING_ERROR"


# Validation exceptions


class ValidationError(PurchasingError):
    """Input is malformed or violates a business constraint."""

    code: str = "VALIDATION_ERROR"

    def __init__(
        self,
        reason: str,
        *,
        field: str | None = None,
        line_id: Any = None,
    ):
        self.reason = reason
        self.field = field
        self.line_id = str(line_id) if line_id is not None else None
        prefix = ""
        if self.line_id is not None:
            prefix = f"Line {self.line_id}: "
        elif field is not None:
            prefix = f"{field}: "
        super().__init__(f"{prefix}{reason}")


class OverReceiptError(ValidationError):
    """Received quantity exceeds the quantity still pending on a line."""

    code: str = "OVER_RECEIPT"

    def __init__(self, line_id: Any, quantity_received: str, pending: str):
        self.quantity_received = quantity_received
        self.pending = pending
        super().__init__(
            f"quantity_received {quantity_received} exceeds pending quantity {pending}",
            field="quantity_received",
            line_id=line_id,
        )


class QuantityMismatchError(ValidationError):
    """Accepted plus rejected units do not add up to the received units."""

    code: str = "QUANTITY_MISMATCH"

    def __init__(
        self,
        line_id: Any,
        quantity_received: str,
        quantity_accepted: str,
        quantity_rejected: str,
    ):
        self.quantity_received = quantity_received
        self.quantity_accepted = quantity_accepted
        self.quantity_rejected = quantity_rejected
        super().__init__(
            f"quantity_accepted ({quantity_accepted}) + quantity_rejected "
            f"({quantity_rejected}) must equal quantity_received ({quantity_received})",
            field="quantity_received",
            line_id=line_id,
        )


class OverpaymentError(ValidationError):
    """Payment amount exceeds the balance due on the order."""

    code: str = "OVERPAYMENT"

    def __init__(self, order_id: Any, amount: str, balance: str):
        self.order_id = str(order_id)
        self.amount = amount
        self.balance = balance
        super().__init__(
            f"Payment amount {amount} exceeds balance due {balance}",
            field="amount",
        )


# Lookup exceptions


class NotFoundError(PurchasingError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"


class PurchaseOrderNotFoundError(NotFoundError):
    """Purchase order with given ID was not found."""

    code: str = "PURCHASE_ORDER_NOT_FOUND"

    def __init__(self, order_id: Any):
        self.order_id = str(order_id)
        super().__init__(f"Purchase order not found: {order_id}")


class LineItemNotFoundError(NotFoundError):
    """Line item is not part of the purchase order."""

    code: str = "LINE_ITEM_NOT_FOUND"

    def __init__(self, order_id: Any, line_id: Any):
        self.order_id = str(order_id)
        self.line_id = str(line_id)
        super().__init__(f"Line item {line_id} not found on purchase order {order_id}")


class PurchaseReturnNotFoundError(NotFoundError):
    """Purchase return is not recorded on the purchase order."""

    code: str = "PURCHASE_RETURN_NOT_FOUND"

    def __init__(self, order_id: Any, return_id: Any):
        self.order_id = str(order_id)
        self.return_id = str(return_id)
        super().__init__(f"Return {return_id} not found on purchase order {order_id}")


# Lifecycle exceptions


class InvalidTransitionError(PurchasingError):
    """Requested status change or mutation is not allowed from the current state."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id: Any,
        from_state: str,
        to_state: str,
        reason: str | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.from_state = from_state
        self.to_state = to_state
        self.reason = reason
        message = f"Cannot move {entity_type} {entity_id} from '{from_state}' to '{to_state}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


# Concurrency exceptions


class ConcurrencyError(PurchasingError):
    """Two writers touched the same order."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """A save carried a version older than the stored one."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(
        self,
        entity_type: str,
        entity_id: Any,
        expected_version: int | None = None,
        actual_version: int | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another writer"
        )
