"""
SQL persistence for accounts and transaction records.

Every method runs in its own short session: one account row per balance
update, committed together with that leg's record, never a transaction
spanning both legs of a transfer.
"""
from typing import Iterable, List, Optional
from sqlalchemy import select, update, exists, or_
from sqlalchemy.orm import aliased, sessionmaker

from ledger_service.models import Account, TransactionRecord, ACTIVE, DEBIT
from ledger_service.records import TransactionEntry

class LedgerRepository:
    def __init__(self, session_factory: sessionmaker):
        self.SessionLocal = session_factory

    # Accounts
    def get_account(self, account_id: str) -> Optional[Account]:
        with self.SessionLocal() as db:
            return db.get(Account, account_id)

    def find_by_upi(self, upi_id: str) -> Optional[Account]:
        with self.SessionLocal() as db:
            return db.execute(select(Account).where(Account.upi_id == upi_id)).scalar_one_or_none()

    def save_account(self, account_id: str, balance: int, name: str = "", upi_id: str = None,
                     phone_number: str = None) -> Account:
        """Create the account, or reset its balance if it already exists"""
        with self.SessionLocal() as db:
            acc = db.get(Account, account_id)
            if not acc:
                acc = Account(id=account_id, name=name, upi_id=upi_id, phone_number=phone_number,
                              balance=balance, transactions_count=0, status=ACTIVE)
                db.add(acc)
            else:
                acc.balance = balance
                if name:
                    acc.name = name
                if upi_id:
                    acc.upi_id = upi_id
                if phone_number:
                    acc.phone_number = phone_number
            db.commit()
            return acc

    def set_status(self, account_id: str, status: str) -> Optional[Account]:
        with self.SessionLocal() as db:
            acc = db.get(Account, account_id)
            if not acc:
                return None
            acc.status = status
            db.commit()
            return acc

    def compare_and_set_balance(self, account_id: str, expected: int, new: int,
                                require_active: bool = False, entry: TransactionEntry = None) -> bool:
        """Write ``new`` only if the stored balance still equals ``expected``.

        Also bumps the account's transaction counter. When ``entry`` is given
        it is inserted in the same commit, so the balance never moves without
        its record; if the insert fails the balance update is rolled back.
        """
        stmt = (
            update(Account)
            .where(Account.id == account_id, Account.balance == expected)
            .values(balance=new, transactions_count=Account.transactions_count + 1)
        )
        if require_active:
            stmt = stmt.where(Account.status == ACTIVE)
        with self.SessionLocal() as db:
            result = db.execute(stmt)
            if result.rowcount != 1:
                db.rollback()
                return False
            if entry is not None:
                db.add(TransactionRecord(**entry.as_row()))
            db.commit()
            return True

    # Transaction records
    def add_entries(self, entries: Iterable[TransactionEntry]) -> None:
        with self.SessionLocal() as db:
            db.add_all([TransactionRecord(**entry.as_row()) for entry in entries])
            db.commit()

    def get_record(self, txn_id: str) -> Optional[TransactionRecord]:
        with self.SessionLocal() as db:
            return db.execute(
                select(TransactionRecord).where(TransactionRecord.txn_id == txn_id)
            ).scalar_one_or_none()

    def history(self, account_id: str, limit: int, fraud_only: bool = False) -> List[TransactionRecord]:
        """Newest first"""
        stmt = select(TransactionRecord).where(TransactionRecord.account_id == account_id)
        if fraud_only:
            stmt = stmt.where(TransactionRecord.is_fraud.is_(True))
        stmt = stmt.order_by(TransactionRecord.created_at.desc(), TransactionRecord.id.desc()).limit(limit)
        with self.SessionLocal() as db:
            return list(db.execute(stmt).scalars().all())

    def unpaired_debits(self, limit: int = 500) -> List[TransactionRecord]:
        """Settled debit legs whose receiver is one of ours but has no credit leg."""
        debit = TransactionRecord
        credit = aliased(TransactionRecord)
        stmt = (
            select(debit)
            .where(debit.direction == DEBIT, debit.is_fraud.is_(False), debit.channel != "SEED")
            .where(or_(
                debit.counterparty.in_(select(Account.id)),
                debit.counterparty.in_(select(Account.upi_id)),
            ))
            .where(~exists().where(credit.txn_id == debit.txn_id + "-CREDIT"))
            .order_by(debit.created_at)
            .limit(limit)
        )
        with self.SessionLocal() as db:
            return list(db.execute(stmt).scalars().all())
