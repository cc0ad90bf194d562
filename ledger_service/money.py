"""Currency helpers. Balances are stored as integer minor units (paise)."""
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

CENT = Decimal("0.01")

def to_minor(amount: Union[Decimal, int, float, str]) -> int:
    value = Decimal(str(amount)).quantize(CENT, rounding=ROUND_HALF_UP)
    return int(value * 100)

def from_minor(minor: int) -> float:
    return float(Decimal(minor) / 100)

def format_amount(minor: int) -> str:
    return f"{to_major(minor):.2f}"

def to_major(minor: int) -> Decimal:
    return Decimal(minor) / 100
