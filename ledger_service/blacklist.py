"""
Registry of account numbers reported as fraudulent, and the point lookup the
transfer path runs against it.
"""
import logging
from typing import Iterable, List, Optional, Tuple
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from common.circuit_breaker import CircuitBreaker, lookup_breaker
from ledger_service.errors import DependencyUnavailable
from ledger_service.models import FraudAccount

logger = logging.getLogger(__name__)

KNOWN_FRAUD_ACCOUNTS = [
    ("1234567890", "Account reported for phishing scams"),
    ("9876543210", "Linked to unauthorized UPI requests"),
    ("4561237890", "Suspicious international activity"),
    ("9988776655", "Confirmed mule account"),
    ("1122334455", "High volume of fake transactions"),
    ("2211334455", "Reported by multiple users"),
    ("4411223344", "Stolen credentials linked"),
    ("6677889900", "Impersonation of bank personnel"),
    ("3322110099", "Fraudulent investment scheme"),
    ("1234432112", "Used in smishing attempts"),
]

class BlacklistRegistry:
    """SQL-backed fraud account list"""

    def __init__(self, session_factory: sessionmaker):
        self.SessionLocal = session_factory

    def find(self, account_number: str) -> Optional[FraudAccount]:
        with self.SessionLocal() as db:
            return db.execute(
                select(FraudAccount).where(FraudAccount.account_number == account_number)
            ).scalar_one_or_none()

    def report(self, account_number: str, bank_code: str = None, reason: str = None,
               reported_by: str = None) -> Tuple[FraudAccount, bool]:
        """Add an account; returns (entry, created)."""
        existing = self.find(account_number)
        if existing:
            return existing, False
        entry = FraudAccount(account_number=account_number, bank_code=bank_code, reported_by=reported_by)
        if reason:
            entry.reason = reason
        with self.SessionLocal() as db:
            db.add(entry)
            try:
                db.commit()
            except IntegrityError:
                # reported concurrently
                db.rollback()
                return self.find(account_number), False
        logger.info(f"🚩 Account {account_number} reported by {reported_by or 'system'}")
        return entry, True

    def list_entries(self) -> List[FraudAccount]:
        with self.SessionLocal() as db:
            return list(db.execute(
                select(FraudAccount).order_by(FraudAccount.created_at.desc(), FraudAccount.id.desc())
            ).scalars().all())

    def seed(self, entries: Iterable[Tuple[str, str]] = KNOWN_FRAUD_ACCOUNTS) -> int:
        added = 0
        for account_number, reason in entries:
            _, created = self.report(account_number, reason=reason)
            added += int(created)
        return added

class BlacklistCheck:
    """Bounded lookup that fails closed"""

    def __init__(self, registry: BlacklistRegistry, breaker: CircuitBreaker = None, timeout: float = 2.0):
        self.registry = registry
        self.breaker = breaker or lookup_breaker("blacklist", timeout)

    async def is_blacklisted(self, identifier: str) -> Optional[FraudAccount]:
        try:
            return await self.breaker.call(self.registry.find, identifier)
        except Exception as e:
            logger.error(f"❌ Blacklist lookup for {identifier} failed: {e!r}")
            raise DependencyUnavailable("blacklist", original_error=e)
