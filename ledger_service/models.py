from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, BigInteger, Boolean, Float, DateTime, ForeignKey
from sqlalchemy.orm import declarative_base

from ledger_service.money import from_minor

Base = declarative_base()

ACTIVE = "ACTIVE"
FROZEN = "FROZEN"

DEBIT = "DEBIT"
CREDIT = "CREDIT"

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

class Account(Base):
    __tablename__ = "accounts"
    id = Column(String(64), primary_key=True)  # account number
    upi_id = Column(String(128), unique=True, index=True)
    name = Column(String(128), nullable=False, default="")
    phone_number = Column(String(20))
    balance = Column(BigInteger, nullable=False, default=0)  # minor units
    transactions_count = Column(Integer, nullable=False, default=0)
    status = Column(String(8), nullable=False, default=ACTIVE)

    def to_dict(self) -> dict:
        return {
            "account_number": self.id,
            "upi_id": self.upi_id,
            "name": self.name,
            "balance": from_minor(self.balance),
            "transactions_count": self.transactions_count,
            "status": self.status,
        }

class TransactionRecord(Base):
    """One leg of a transfer outcome. Written once, never updated."""
    __tablename__ = "transactions"
    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    txn_id = Column(String(80), unique=True, nullable=False)
    account_id = Column(String(64), ForeignKey("accounts.id"), index=True, nullable=False)
    direction = Column(String(8), nullable=False)  # DEBIT | CREDIT
    channel = Column(String(8), nullable=False)  # ACCOUNT | UPI | SEED
    counterparty = Column(String(128), nullable=False)
    bank_code = Column(String(32))
    beneficiary_name = Column(String(128))
    amount = Column(BigInteger, nullable=False)
    balance_before = Column(BigInteger, nullable=False)
    balance_after = Column(BigInteger, nullable=False)
    is_fraud = Column(Boolean, nullable=False, default=False, index=True)
    fraud_reason = Column(String(128))
    location_delta_km = Column(Float)
    is_foreign_device = Column(Integer)
    txns_last_24h = Column(Integer)
    avg_amount_7d = Column(Float)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "txn_id": self.txn_id,
            "type": self.direction,
            "channel": self.channel,
            "counterparty": self.counterparty,
            "bank_code": self.bank_code,
            "beneficiary_name": self.beneficiary_name,
            "amount": from_minor(self.amount),
            "balance_before": from_minor(self.balance_before),
            "balance_after": from_minor(self.balance_after),
            "is_fraud": self.is_fraud,
            "fraud_reason": self.fraud_reason,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

class FraudAccount(Base):
    __tablename__ = "fraud_accounts"
    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    account_number = Column(String(64), unique=True, nullable=False)
    bank_code = Column(String(32))
    reason = Column(String(255), nullable=False, default="User reported fraudulent activity")
    reported_by = Column(String(64))
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "account_number": self.account_number,
            "bank_code": self.bank_code,
            "reason": self.reason,
            "reported_by": self.reported_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
