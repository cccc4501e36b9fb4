"""
pricing.py — Order totals and currency unit conversion

The payment provider expects amounts in minor units (cents/paise), while the
order record stores the total in major units. Both conversions live here.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

CENT = Decimal("0.01")
MINOR_UNITS_PER_MAJOR = 100


def order_total(lines: Iterable) -> Decimal:
    """
    Sums price × quantity over all cart lines.

    Args:
        lines (Iterable[CartLine]): Cart lines with `price` and `quantity`.

    Returns:
        Decimal: Total in major currency units.
    """
    return sum((line.price * line.quantity for line in lines), Decimal("0"))


def to_cents(amount: Decimal) -> Decimal:
    """Rounds a major-unit amount half-up to whole cents."""
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal) -> int:
    """
    Converts a major-unit amount (e.g. 149.99) into minor units (14999).

    The amount is rounded half-up to whole cents first.
    """
    return int(to_cents(amount) * MINOR_UNITS_PER_MAJOR)


def to_major_units(amount: Decimal) -> float:
    # JSON number for the order record
    return float(to_cents(amount))
