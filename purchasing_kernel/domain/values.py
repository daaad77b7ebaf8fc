"""
Numeric value helpers.

Every amount and quantity in the engine is a ``Decimal``.  Callers may hand
in ``int``, ``str`` or ``float`` values; they are converted through
``str()`` so that ``0.1`` becomes ``Decimal("0.1")`` rather than the binary
float expansion.
"""

from decimal import Decimal, InvalidOperation
from typing import Any

from purchasing_kernel.exceptions import ValidationError

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value: Any, field: str, *, line_id: Any = None) -> Decimal:
    """
    Convert a user-supplied number to Decimal.

    Raises:
        ValidationError: value is None, a bool, not numeric, NaN or infinite.
    """
    if isinstance(value, Decimal):
        result = value
    elif value is None or isinstance(value, bool):
        raise ValidationError(f"{field} is required", field=field, line_id=line_id)
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError) as e:
            raise ValidationError(
                f"{field} must be a number, got {value!r}", field=field, line_id=line_id
            ) from e
    if not result.is_finite():
        raise ValidationError(f"{field} must be finite", field=field, line_id=line_id)
    return result
