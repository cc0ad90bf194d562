"""
Balance ledger: the only code that changes account balances.

Each mutation is a read-modify-write on a single account row guarded by a
compare-and-set on the balance that was read. The leg's transaction record
is built from that same read and committed with the balance update. A lost
race re-reads and tries again with backoff; when the retries run out the
caller gets PersistenceConflict. Debit and credit of one transfer are two
independent mutations, and the audit trail is what ties them together.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from common.circuit_breaker import run_blocking
from common.retry import RetryConfig, retry_async
from ledger_service.errors import AccountNotFound, AccountFrozen, InsufficientFunds, PersistenceConflict
from ledger_service.models import FROZEN

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class BalanceChange:
    account_id: str
    before: int
    after: int

class StaleBalance(Exception):
    """The balance changed between read and write."""

class BalanceMoved(Exception):
    """The balance no longer matches the one the transfer was screened against."""

    def __init__(self, account_id: str, expected: int, actual: int):
        self.account_id = account_id
        self.expected = expected
        self.actual = actual
        super().__init__(f"{account_id}: screened at {expected}, now {actual}")

def cas_retry_config(max_attempts: int = 5, base_delay: float = 0.01) -> RetryConfig:
    return RetryConfig(
        max_attempts=max_attempts,
        base_delay=base_delay,
        max_delay=0.5,
        retry_on=(StaleBalance,),
    )

class BalanceLedger:
    def __init__(self, repository, retry_config: RetryConfig = None, enforce_frozen: bool = False):
        self.repository = repository
        self.retry_config = retry_config or cas_retry_config()
        self.enforce_frozen = enforce_frozen

    async def check_sufficient_funds(self, account, amount: int) -> bool:
        if account.balance < amount:
            logger.info(f"❌ Insufficient funds: account={account.id} balance={account.balance} required={amount}")
            raise InsufficientFunds()
        return True

    async def debit(self, account_id: str, amount: int, record: Callable = None,
                    expected_balance: int = None) -> BalanceChange:
        """Subtract ``amount``.

        ``record(change)`` builds the debit leg, committed with the update.
        With ``expected_balance`` the debit refuses to run against any other
        balance and raises BalanceMoved instead.
        """
        return await self._apply(account_id, -amount, record, expected_balance)

    async def credit(self, account_id: str, amount: int, record: Callable = None) -> Optional[BalanceChange]:
        """Credit the account, or return None when it does not exist here."""
        try:
            return await self._apply(account_id, amount, record)
        except AccountNotFound:
            logger.warning(f"⚠️ Credit skipped, receiver {account_id} not found")
            return None

    async def _apply(self, account_id: str, delta: int, record: Callable = None,
                     expected_balance: int = None) -> BalanceChange:
        try:
            change = await retry_async(self._attempt, self.retry_config, account_id, delta,
                                       record, expected_balance)
        except StaleBalance as e:
            logger.error(f"❌ Balance update on {account_id} kept conflicting after "
                         f"{self.retry_config.max_attempts} attempts")
            raise PersistenceConflict(original_error=e)
        logger.info(f"💾 Balance {account_id}: {change.before} -> {change.after}")
        return change

    async def _attempt(self, account_id: str, delta: int, record: Callable = None,
                       expected_balance: int = None) -> BalanceChange:
        account = await run_blocking(self.repository.get_account, account_id)
        if account is None:
            raise AccountNotFound(account_id)
        if expected_balance is not None and account.balance != expected_balance:
            raise BalanceMoved(account_id, expected_balance, account.balance)

        if delta < 0:
            if account.status == FROZEN:
                if self.enforce_frozen:
                    raise AccountFrozen(account_id)
                logger.warning(f"⚠️ Debiting frozen account {account_id} (freeze enforcement disabled)")
            if account.balance < -delta:
                raise InsufficientFunds()

        change = BalanceChange(account_id=account_id, before=account.balance, after=account.balance + delta)
        written = await run_blocking(
            self.repository.compare_and_set_balance,
            account_id, change.before, change.after,
            require_active=self.enforce_frozen and delta < 0,
            entry=record(change) if record else None,
        )
        if not written:
            raise StaleBalance(account_id)
        return change
