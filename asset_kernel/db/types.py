"""
Module: asset_kernel.db.types
Responsibility: Decimal coercion and the single sanctioned rounding helper
    for monetary values.

Invariants enforced:
    - Money columns are Numeric(38, 9) (see db/base.py).  Calculated amounts
      are rounded to MONEY_DECIMAL_PLACES with ROUND_HALF_UP through
      round_money() only.
    - No floats: to_decimal() rejects float input outright.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


def round_money(amount: Decimal, places: int = MONEY_DECIMAL_PLACES) -> Decimal:
    """
    Round a monetary amount.

    Postconditions: Returns a Decimal quantized to ``places`` using
        ROUND_HALF_UP.
    """
    quantizer = Decimal(10) ** -places
    return amount.quantize(quantizer, rounding=DEFAULT_ROUNDING)


def to_decimal(value: object, field: str = "amount") -> Decimal | None:
    """
    Coerce user-supplied numbers to Decimal.

    Accepts Decimal, int and numeric strings.  Floats are rejected so that
    binary rounding never leaks into stored amounts.

    Raises:
        ValueError: On floats or non-numeric strings.
    """
    if value is None or value == "":
        return None
    if isinstance(value, (bool, float)):
        raise ValueError(f"{field} must be a Decimal, int, or numeric string")
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError(f"{field} is not a valid number: {value!r}") from exc
