"""
money.py - conversions between display decimals and integer minor units

All ledger arithmetic happens on ints (cents for a two-digit currency).
Decimals only appear where amounts enter from a form or leave for display.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, localcontext
from typing import Any


def _quantum(digits: int) -> Decimal:
    return Decimal(1).scaleb(-digits)


def to_decimal_input(value: Any) -> Decimal:
    """
    Coerce user input (Decimal, int, str, float) to a finite Decimal.
    Floats go through str() so 0.1 stays 0.1 rather than its binary expansion.
    Raises ValueError for anything unparseable or non-finite.
    """
    if isinstance(value, bool):
        raise ValueError(f"not an amount: {value!r}")
    if isinstance(value, float):
        value = repr(value)
    try:
        dec = Decimal(str(value).strip()) if not isinstance(value, Decimal) else value
    except (InvalidOperation, TypeError):
        raise ValueError(f"not an amount: {value!r}")
    if not dec.is_finite():
        raise ValueError(f"not a finite amount: {value!r}")
    return dec


def to_minor(value: Any, digits: int) -> int:
    """
    Convert a decimal-like amount to integer minor units (half-up).
    Amounts with more digits than the decimal context holds raise ValueError.
    """
    dec = to_decimal_input(value)
    try:
        return int(dec.scaleb(digits).quantize(Decimal(1), rounding=ROUND_HALF_UP))
    except InvalidOperation:
        raise ValueError(f"amount too large: {value!r}")


def to_decimal(minor: int, digits: int) -> Decimal:
    """Convert integer minor units back to a display Decimal, however many digits it has."""
    minor = int(minor)
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, len(str(abs(minor))) + digits + 1)
        return Decimal(minor).scaleb(-digits).quantize(_quantum(digits))


def half_unit(digits: int) -> Decimal:
    """Half of one minor unit, e.g. 0.005 for cents."""
    return _quantum(digits) / 2


def format_amount(value: Decimal, currency: str = "", digits: int = 2) -> str:
    text = f"{Decimal(value):.{digits}f}"
    return f"{text} {currency}".strip()
