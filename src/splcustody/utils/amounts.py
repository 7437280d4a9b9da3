"""Conversion between human-readable token amounts and base units."""

from decimal import ROUND_DOWN, Decimal
from typing import Union

Amount = Union[Decimal, int, float, str]


def _as_decimal(value: Amount) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # str() keeps the shortest repr, avoiding binary float noise
        return Decimal(str(value))
    return Decimal(value)


def to_base_units(ui_amount: Amount, decimals: int) -> int:
    """Scale a UI amount to integer base units, rounding down.

    Example:
        to_base_units("1.5", 6) == 1_500_000
    """
    if decimals < 0:
        raise ValueError(f"decimals must be non-negative, got {decimals}")
    amount = _as_decimal(ui_amount)
    if amount < 0:
        raise ValueError(f"amount must be non-negative, got {amount}")
    scaled = (amount * (Decimal(10) ** decimals)).quantize(Decimal(1), rounding=ROUND_DOWN)
    return int(scaled)


def from_base_units(amount: int, decimals: int) -> Decimal:
    """Scale integer base units back to a UI amount."""
    if decimals < 0:
        raise ValueError(f"decimals must be non-negative, got {decimals}")
    return Decimal(amount) / (Decimal(10) ** decimals)
