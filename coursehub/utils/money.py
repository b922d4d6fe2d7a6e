"""
Money helpers.

Amounts are Decimal major units (e.g. 100.00) everywhere in the ledger.
Stripe works in integer minor units (cents).
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

CENT = Decimal("0.01")

Number = Union[Decimal, int, float, str]


def to_money(value: Number) -> Decimal:
    """Convert to a Decimal rounded to cents."""
    if not isinstance(value, Decimal):
        # str() avoids binary float artifacts (0.1 -> 0.1000000000000000055...)
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(value: Number) -> int:
    """Major units -> integer cents for the payment provider."""
    return int(to_money(value) * 100)


def from_cents(cents: int) -> Decimal:
    """Integer cents from the payment provider -> major units."""
    return to_money(Decimal(cents) / 100)
