"""Fixed-point money helpers.

All ledger arithmetic happens on integer minor units (cents). Decimal values
only appear at the edges: parsing user input and rendering output.
"""

import logging
from decimal import Decimal, InvalidOperation

from ..exceptions import InvalidAmountError

logger = logging.getLogger(__name__)

MINOR_UNIT_DIGITS = 2
MINOR_UNITS_PER_MAJOR = 10**MINOR_UNIT_DIGITS
_QUANTUM = Decimal(1).scaleb(-MINOR_UNIT_DIGITS)
# Largest value an SQLite INTEGER column can hold
MAX_MINOR_UNITS = 2**63 - 1


def parse_amount(value: Decimal | str | int) -> Decimal:
    """
    Parse user input into a Decimal amount.

    Floats are rejected outright: they cannot represent most cent values.

    Raises:
        InvalidAmountError: If the value is not a finite decimal number
    """
    if isinstance(value, float):
        raise InvalidAmountError(
            f"Refusing float amount {value!r}; pass a string or Decimal"
        )
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation as e:
        raise InvalidAmountError(f"Not a valid amount: {value!r}") from e
    if not amount.is_finite():
        raise InvalidAmountError(f"Not a valid amount: {value!r}")
    return amount


def to_minor_units(amount: Decimal | str | int) -> int:
    """
    Convert a major-unit amount to integer minor units.

    Unlike a rounding conversion, this refuses amounts finer than one minor
    unit so that a recorded expense is always exactly what the user typed.

    Args:
        amount: Amount in major units (e.g. dollars)

    Returns:
        Amount in minor units (e.g. cents)

    Raises:
        InvalidAmountError: If the amount has sub-minor-unit precision or is
            too large to store
    """
    value = parse_amount(amount)
    minor = value * MINOR_UNITS_PER_MAJOR
    if minor != minor.to_integral_value():
        raise InvalidAmountError(
            f"Amount {value} has more than {MINOR_UNIT_DIGITS} decimal places"
        )
    if abs(minor) > MAX_MINOR_UNITS:
        raise InvalidAmountError(f"Amount {value} is too large to record")
    return int(minor)


def from_minor_units(minor: int) -> Decimal:
    """Convert integer minor units back to a Decimal with fixed precision."""
    return (Decimal(minor) / MINOR_UNITS_PER_MAJOR).quantize(_QUANTUM)


def format_amount(minor: int, currency: str | None = None) -> str:
    """Format minor units for display, e.g. ``1234`` -> ``"12.34 USD"``."""
    text = f"{from_minor_units(minor):,}"
    return f"{text} {currency}" if currency else text
