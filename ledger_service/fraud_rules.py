"""
Rule-based fraud screening.

Rules are evaluated in a fixed order and the first match wins, so the same
inputs always produce the same reason:

1. amount above 80% of a positive balance
2. location moved more than 100 km since the last transaction
3. transaction made from a foreign device
4. more than 10 transactions in the last 24 hours

Telemetry that is missing or cannot be read as a number never fires its rule.
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional

LARGE_TXN = "Large txn relative to balance"
LOCATION_JUMP = "Location jump"
FOREIGN_DEVICE = "Foreign device"
TOO_MANY_TXNS = "Too many txns in 24h"

LARGE_TXN_RATIO = Decimal("0.8")
MAX_LOCATION_DELTA_KM = Decimal(100)
MAX_TXNS_24H = Decimal(10)

@dataclass(frozen=True)
class FraudVerdict:
    is_fraud: bool
    reason: Optional[str] = None

CLEAN = FraudVerdict(is_fraud=False)

def _number(value) -> Optional[Decimal]:
    if value is None:
        return None
    if isinstance(value, bool):
        return Decimal(int(value))
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return number if number.is_finite() else None

def evaluate(amount, balance_before, location_delta_km=None, is_foreign_device=None,
             txns_last_24h=None) -> FraudVerdict:
    """Screen one transfer. Pure: no I/O, no clock, no randomness."""
    amount = _number(amount) or Decimal(0)
    balance = _number(balance_before) or Decimal(0)

    if balance > 0 and amount > balance * LARGE_TXN_RATIO:
        return FraudVerdict(True, LARGE_TXN)

    delta = _number(location_delta_km)
    if delta is not None and delta > MAX_LOCATION_DELTA_KM:
        return FraudVerdict(True, LOCATION_JUMP)

    device = _number(is_foreign_device)
    if device is not None and device == 1:
        return FraudVerdict(True, FOREIGN_DEVICE)

    txns = _number(txns_last_24h)
    if txns is not None and txns > MAX_TXNS_24H:
        return FraudVerdict(True, TOO_MANY_TXNS)

    return CLEAN
