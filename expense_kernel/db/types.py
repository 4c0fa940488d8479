"""
Module: expense_kernel.db.types
Responsibility: Rounding and coercion helpers for money values.
    Centralizes precision so every model and service uses the same definition.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/ and selectors/.

Invariants enforced:
    - Currency scale: MONEY_DECIMAL_PLACES is 2.  round_money() is the ONLY
      sanctioned rounding function for monetary values.
    - No floats anywhere in the kernel.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any


MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP
ZERO = Decimal("0.00")


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the specified decimal places.

    This is the ONLY sanctioned rounding function for money in the kernel.
    """
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def to_money(value: Any) -> Decimal:
    """
    Coerce an int, str or Decimal into a rounded Decimal.

    Floats are rejected: their binary representation is not exact.

    Raises:
        ValueError: If value is a float or not numeric.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise ValueError(f"Monetary amounts must not be floats: {value!r}")
    if isinstance(value, Decimal):
        return round_money(value)
    try:
        return round_money(Decimal(str(value)))
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"Not a monetary amount: {value!r}") from exc


def sum_money(values) -> Decimal:
    """Sum an iterable of monetary values at currency scale."""
    total = ZERO
    for value in values:
        total += Decimal(value)
    return round_money(total)
