"""Synthetic fraud alerts for demos. Never moves money."""
import random
from typing import List

from ledger_service.fraud_rules import LARGE_TXN, LOCATION_JUMP, FOREIGN_DEVICE
from ledger_service.money import to_minor
from ledger_service.records import CHANNEL_SEED, TransactionEntry, TransactionRecordBuilder
from ledger_service.models import DEBIT

SEED_COUNT = 10
DEFAULT_SEED_BALANCE = 5000

def build_seed_entries(account, builder: TransactionRecordBuilder = None,
                       rng: random.Random = None, count: int = SEED_COUNT) -> List[TransactionEntry]:
    """Flagged entries cycling large-amount, location-jump and foreign-device."""
    builder = builder or TransactionRecordBuilder()
    rng = rng or random.Random()
    base_id = builder.new_base_id(CHANNEL_SEED)
    balance = account.balance
    base = balance // 100 or DEFAULT_SEED_BALANCE

    entries = []
    for i in range(count):
        kind = i % 3
        if kind == 0:
            amount = int(base * (0.85 + rng.random() * 0.1))
            location_delta_km, is_foreign_device, reason = rng.randrange(5), 0, LARGE_TXN
        elif kind == 1:
            amount = 500 + rng.randrange(1500)
            location_delta_km, is_foreign_device, reason = 150 + rng.randrange(500), 0, LOCATION_JUMP
        else:
            amount = 300 + rng.randrange(2000)
            location_delta_km, is_foreign_device, reason = rng.randrange(30), 1, FOREIGN_DEVICE
        if amount > base:
            amount = int(base * 0.9)

        entries.append(TransactionEntry(
            txn_id=f"{base_id}-{i}",
            account_id=account.id,
            direction=DEBIT,
            channel=CHANNEL_SEED,
            counterparty=f"BEN{rng.randrange(10000)}",
            amount=to_minor(max(amount, 1)),
            balance_before=balance,
            balance_after=balance,
            is_fraud=True,
            fraud_reason=reason,
            bank_code="SEED0000",
            beneficiary_name="Seed Beneficiary",
            location_delta_km=float(location_delta_km),
            is_foreign_device=is_foreign_device,
            txns_last_24h=20,
            avg_amount_7d=2000.0,
        ))
    return entries
