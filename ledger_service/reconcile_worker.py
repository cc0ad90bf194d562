"""
Finds transfers that were debited but never credited.

A settled transfer to one of our own accounts writes a debit leg and then a
``-CREDIT`` leg. If the process dies in between, only the debit leg exists;
this worker reports those so an operator can complete or reverse them.
"""
import logging
import time
from typing import List

from sqlalchemy.exc import SQLAlchemyError

from ledger_service.money import from_minor

logger = logging.getLogger(__name__)

POLL_INTERVAL = 60.0

def find_incomplete_transfers(repository, limit: int = 500) -> List[dict]:
    return [
        {
            "txn_id": rec.txn_id,
            "sender": rec.account_id,
            "receiver": rec.counterparty,
            "amount": from_minor(rec.amount),
            "created_at": rec.created_at.isoformat() if rec.created_at else None,
        }
        for rec in repository.unpaired_debits(limit)
    ]

def run_once(repository) -> int:
    incomplete = find_incomplete_transfers(repository)
    for item in incomplete:
        logger.warning(f"🧾 Unpaired debit {item['txn_id']}: {item['sender']} -> {item['receiver']} "
                       f"₹{item['amount']:.2f} at {item['created_at']}")
    if not incomplete:
        logger.info("🧾 Reconciliation clean, every internal debit has its credit leg")
    return len(incomplete)

def run(repository, interval: float = POLL_INTERVAL):
    while True:
        try:
            run_once(repository)
        except SQLAlchemyError as e:
            logger.error(f"❌ Reconciliation pass failed: {e}")
        time.sleep(interval)

if __name__ == "__main__":
    from common.settings import settings
    from ledger_service.db import make_engine, make_session_factory
    from ledger_service.repository import LedgerRepository

    logging.basicConfig(level=settings.log_level)
    run(LedgerRepository(make_session_factory(make_engine(settings.sqlalchemy_url))))
