"""
purchasing_engines.order_status -- Order status from line-level receipt state.

Responsibility:
    Map the (ordered, received) quantities of every line on an order, plus
    the order's current status, to the status the order should hold after a
    receiving operation.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Invoked only by the
    receiving reconciler; status never changes spontaneously.

Invariants enforced:
    - Totality: every input yields exactly one of {current status
      unchanged, PARTIAL, RECEIVED} (or CANCELLED when already cancelled).
    - CANCELLED is terminal and never re-derived.
    - Nothing received on any line leaves a pre-receiving status
      (draft/pending/approved/ordered) untouched.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal
from enum import Enum

from purchasing_engines.tracer import traced_engine
from purchasing_kernel.domain.statuses import PurchaseOrderStatus
from purchasing_kernel.domain.values import ZERO


class ReceivingProgress(str, Enum):
    """How far receiving has progressed across all lines."""

    NONE = "none"
    SOME = "some"
    ALL = "all"


def receiving_progress(quantities: Iterable[tuple[Decimal, Decimal]]) -> ReceivingProgress:
    """
    Classify (ordered_quantity, received_quantity) pairs.

    NONE when every line has received nothing, ALL when every line has
    received at least its ordered quantity, SOME otherwise.  An empty input
    counts as NONE.
    """
    pairs = list(quantities)
    if all(received == ZERO for _, received in pairs):
        return ReceivingProgress.NONE
    if all(received >= ordered for ordered, received in pairs):
        return ReceivingProgress.ALL
    return ReceivingProgress.SOME


@traced_engine("order_status", "1.0", fingerprint_fields=("quantities", "current_status"))
def derive_order_status(
    *,
    quantities: Iterable[tuple[Decimal, Decimal]],
    current_status: PurchaseOrderStatus,
) -> PurchaseOrderStatus:
    """
    Derive the next order status from line receipt quantities.

    Args:
        quantities: (ordered_quantity, received_quantity) per line.
        current_status: Status held before the receiving operation.

    Returns:
        CANCELLED if already cancelled; otherwise the current status when
        nothing has been received, RECEIVED when every line is satisfied,
        PARTIAL in every remaining case.
    """
    if current_status == PurchaseOrderStatus.CANCELLED:
        return PurchaseOrderStatus.CANCELLED

    progress = receiving_progress(quantities)
    if progress is ReceivingProgress.NONE:
        return current_status
    if progress is ReceivingProgress.ALL:
        return PurchaseOrderStatus.RECEIVED
    return PurchaseOrderStatus.PARTIAL
