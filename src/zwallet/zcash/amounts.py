"""ZEC amount helpers — conversions between ZEC and zatoshis.

Amounts cross the user boundary as :class:`~decimal.Decimal` ZEC values and
are carried internally as integer zatoshis.
"""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal, InvalidOperation

ZATOSHIS_PER_ZEC = 100_000_000
MAX_SUPPLY_ZEC = Decimal(21_000_000)
MAX_MONEY = 21_000_000 * ZATOSHIS_PER_ZEC
U64_MAX = 2**64 - 1

ZATOSHI = Decimal(1).scaleb(-8)


def to_decimal(amount: Decimal | int | float | str) -> Decimal:
    """Coerce a user-supplied amount to a Decimal without float noise.

    Floats are routed through ``repr`` so ``0.1`` becomes ``Decimal("0.1")``.

    Raises:
        ValueError: If the value is not numeric.
    """
    if isinstance(amount, Decimal):
        return amount
    if isinstance(amount, bool):
        msg = f"Not an amount: {amount!r}"
        raise ValueError(msg)
    if isinstance(amount, float):
        amount = repr(amount)
    try:
        return Decimal(amount)
    except (InvalidOperation, TypeError) as exc:
        msg = f"Not an amount: {amount!r}"
        raise ValueError(msg) from exc


def zec_to_zatoshis(zec: Decimal | int | float | str) -> int:
    """Convert a ZEC amount to zatoshis, rounding toward zero.

    Raises:
        ValueError: If the value is not a finite non-negative number.
    """
    value = to_decimal(zec)
    if not value.is_finite():
        msg = f"Amount must be finite: {value}"
        raise ValueError(msg)
    if value < 0:
        msg = f"Amount cannot be negative: {value}"
        raise ValueError(msg)
    return int((value * ZATOSHIS_PER_ZEC).to_integral_value(rounding=ROUND_DOWN))


def is_whole_zatoshis(zec: Decimal) -> bool:
    """True when a finite ZEC value has no digits below one zatoshi."""
    return zec == zec.quantize(ZATOSHI, rounding=ROUND_DOWN)


def zatoshis_to_zec(zatoshis: int) -> Decimal:
    """Convert zatoshis to an exact 8-decimal ZEC value."""
    return (Decimal(zatoshis) / ZATOSHIS_PER_ZEC).quantize(ZATOSHI)


def format_zec(zec: Decimal | int | float | str) -> str:
    """Format a ZEC amount as ``"1.23456789 ZEC"``."""
    return f"{to_decimal(zec).quantize(ZATOSHI, rounding=ROUND_DOWN):f} ZEC"


def format_zatoshis(zatoshis: int) -> str:
    return f"{zatoshis} zatoshis"
