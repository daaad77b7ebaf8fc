"""
purchasing_engines.payment_status -- Payment status from cumulative payments.

Pure and deterministic.  Re-run after every payment append and after every
total recalculation triggered by line edits.
"""

from __future__ import annotations

from decimal import Decimal

from purchasing_kernel.domain.statuses import PaymentStatus
from purchasing_kernel.domain.values import ZERO


def derive_payment_status(total_amount: Decimal, paid_amount: Decimal) -> PaymentStatus:
    """
    paid <= 0          -> UNPAID
    0 < paid < total   -> PARTIAL
    paid >= total      -> PAID
    """
    if paid_amount <= ZERO:
        return PaymentStatus.UNPAID
    if paid_amount < total_amount:
        return PaymentStatus.PARTIAL
    return PaymentStatus.PAID
