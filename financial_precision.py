"""
Decimal helpers for checkout money math
All prices flow through Decimal so totals never pick up float drift
"""

import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

logger = logging.getLogger(__name__)

ZERO = Decimal('0')
ONE = Decimal('1')
HUNDRED = Decimal('100')
WHOLE_UNIT = Decimal('1')
CENT = Decimal('0.01')


def to_decimal(value: Any, field_name: str = "value") -> Decimal:
    """
    Convert an arbitrary numeric value to Decimal

    Args:
        value: int, float, str or Decimal
        field_name: Name used in the error message

    Returns:
        Decimal representation of value

    Raises:
        ValueError: If the value is not a number
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or value is None:
        raise ValueError(f"{field_name} must be numeric, got {value!r}")
    try:
        # str() first so 0.1 becomes Decimal('0.1'), not the binary expansion
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError) as e:
        raise ValueError(f"{field_name} must be numeric, got {value!r}") from e


def safe_decimal(value: Any, field_name: str = "value") -> Optional[Decimal]:
    """Like to_decimal, but returns None for missing, invalid or non-finite input"""
    if value is None:
        return None
    try:
        result = to_decimal(value, field_name)
    except ValueError:
        logger.debug(f"Ignoring non-numeric {field_name}: {value!r}")
        return None
    if not result.is_finite():
        return None
    return result


def is_positive_finite(value: Any) -> bool:
    """True when value parses to a finite number greater than zero"""
    result = safe_decimal(value)
    return result is not None and result > ZERO


def to_currency_decimal(value: Any, field_name: str = "amount") -> Decimal:
    """Quantize to cents (half-up)"""
    return to_decimal(value, field_name).quantize(CENT, rounding=ROUND_HALF_UP)


def round_whole(value: Any, field_name: str = "amount") -> Decimal:
    """Round to whole currency units (half-up), the display rule for IDR"""
    return to_decimal(value, field_name).quantize(WHOLE_UNIT, rounding=ROUND_HALF_UP)
