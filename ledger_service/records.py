"""
Builds the immutable audit entries for a transfer outcome.

A settled transfer yields a debit leg on the sender and, when the receiver
is one of our accounts, a credit leg on the receiver whose id is the debit
id plus ``-CREDIT``. Blocked and flagged transfers yield a single sender leg
with ``balance_after == balance_before``.
"""
import secrets
import time
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Optional

from ledger_service.fraud_rules import FraudVerdict
from ledger_service.ledger import BalanceChange
from ledger_service.models import DEBIT, CREDIT, utcnow

CHANNEL_ACCOUNT = "ACCOUNT"
CHANNEL_UPI = "UPI"
CHANNEL_SEED = "SEED"

ID_PREFIXES = {CHANNEL_ACCOUNT: "TXN", CHANNEL_UPI: "UPI", CHANNEL_SEED: "SEED"}
CREDIT_SUFFIX = "-CREDIT"
BLACKLIST_REASON = "Account reported by users"

@dataclass(frozen=True)
class TransferDetails:
    """What the sender asked for, independent of how it turned out."""
    sender_id: str
    channel: str
    counterparty: str
    amount: int
    bank_code: Optional[str] = None
    beneficiary_name: Optional[str] = None
    location_delta_km: Optional[float] = None
    is_foreign_device: Optional[int] = None
    txns_last_24h: Optional[int] = None
    avg_amount_7d: Optional[float] = None

    def telemetry(self) -> dict:
        return {
            "location_delta_km": self.location_delta_km,
            "is_foreign_device": self.is_foreign_device,
            "txns_last_24h": self.txns_last_24h,
            "avg_amount_7d": self.avg_amount_7d,
        }

@dataclass(frozen=True)
class TransactionEntry:
    txn_id: str
    account_id: str
    direction: str
    channel: str
    counterparty: str
    amount: int
    balance_before: int
    balance_after: int
    is_fraud: bool
    fraud_reason: Optional[str]
    bank_code: Optional[str] = None
    beneficiary_name: Optional[str] = None
    location_delta_km: Optional[float] = None
    is_foreign_device: Optional[int] = None
    txns_last_24h: Optional[int] = None
    avg_amount_7d: Optional[float] = None
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        if not (self.txn_id and self.account_id and self.counterparty):
            raise ValueError("transaction entry is missing an identifier")
        if self.direction not in (DEBIT, CREDIT):
            raise ValueError(f"unknown direction {self.direction!r}")
        if self.amount <= 0:
            raise ValueError("transaction amount must be positive")
        if self.balance_before < 0 or self.balance_after < 0:
            raise ValueError("balances cannot be negative")
        if self.is_fraud and not self.fraud_reason:
            raise ValueError("fraud entries need a reason")

    def as_row(self) -> dict:
        return asdict(self)

class TransactionRecordBuilder:
    def new_base_id(self, channel: str) -> str:
        # microsecond clock plus 24 random bits
        return f"{ID_PREFIXES[channel]}-{time.time_ns() // 1000}-{secrets.token_hex(3).upper()}"

    def debit_leg(self, base_id: str, details: TransferDetails, change: BalanceChange) -> TransactionEntry:
        return TransactionEntry(
            txn_id=base_id,
            account_id=details.sender_id,
            direction=DEBIT,
            channel=details.channel,
            counterparty=details.counterparty,
            amount=details.amount,
            balance_before=change.before,
            balance_after=change.after,
            is_fraud=False,
            fraud_reason=None,
            bank_code=details.bank_code,
            beneficiary_name=details.beneficiary_name,
            **details.telemetry(),
        )

    def credit_leg(self, base_id: str, details: TransferDetails, receiver_id: str,
                   change: BalanceChange) -> TransactionEntry:
        return TransactionEntry(
            txn_id=base_id + CREDIT_SUFFIX,
            account_id=receiver_id,
            direction=CREDIT,
            channel=details.channel,
            counterparty=details.sender_id,
            amount=details.amount,
            balance_before=change.before,
            balance_after=change.after,
            is_fraud=False,
            fraud_reason=None,
        )

    def flagged_leg(self, base_id: str, details: TransferDetails, balance: int,
                    verdict: FraudVerdict) -> TransactionEntry:
        return self._held_leg(base_id, details, balance, verdict.reason)

    def blocked_leg(self, base_id: str, details: TransferDetails, balance: int) -> TransactionEntry:
        return self._held_leg(base_id, details, balance, BLACKLIST_REASON)

    def _held_leg(self, base_id, details, balance, reason) -> TransactionEntry:
        # no money moved: the snapshot is the same on both sides
        return TransactionEntry(
            txn_id=base_id,
            account_id=details.sender_id,
            direction=DEBIT,
            channel=details.channel,
            counterparty=details.counterparty,
            amount=details.amount,
            balance_before=balance,
            balance_after=balance,
            is_fraud=True,
            fraud_reason=reason,
            bank_code=details.bank_code,
            beneficiary_name=details.beneficiary_name,
            **details.telemetry(),
        )
