"""Shared fixtures: a throwaway SQLite ledger with in-memory collaborators."""
import asyncio
import shutil
import tempfile
import threading
import os

from common.settings import Settings
from ledger_service.money import to_minor
from ledger_service.services import build_services

OTP = "4321"

class FakeAuthorizer:
    """Accepts one fixed code; can be told to fail or stall."""

    def __init__(self, code: str = OTP):
        self.code = code
        self.issued = []
        self.error = None
        self.delay = 0.0

    async def issue(self, account):
        self.issued.append(account.id)
        return self.code

    async def authorize(self, account, proof):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return proof == self.code

class RecordingSender:
    """Notification sender that remembers what it was asked to send."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.events = []
        self._lock = threading.Lock()

    def __call__(self, event):
        if self.fail:
            raise ConnectionError("sms gateway down")
        with self._lock:
            self.events.append(event)

    def kinds(self):
        return sorted(e.kind for e in self.events)

def make_settings(directory: str, **overrides) -> Settings:
    values = dict(
        database_url=f"sqlite:///{os.path.join(directory, 'ledger.db')}",
        cas_retry_delay=0.0,
        cas_max_attempts=5,
        lookup_timeout_seconds=0.5,
        enable_demo_endpoints=True,
        enforce_frozen_accounts=False,
        enforce_upi_blacklist=False,
    )
    values.update(overrides)
    return Settings(**values)

class LedgerFixture:
    def __init__(self, **overrides):
        self.directory = tempfile.mkdtemp(prefix="ledger-test-")
        self.settings = make_settings(self.directory, **overrides)
        self.authorizer = FakeAuthorizer()
        self.sender = RecordingSender()
        self.services = build_services(self.settings, authorizer=self.authorizer, sender=self.sender)

    @property
    def repository(self):
        return self.services.repository

    @property
    def orchestrator(self):
        return self.services.orchestrator

    def open_account(self, account_id, balance, upi_id=None, phone="9876500000", name="Test User"):
        return self.repository.save_account(account_id, to_minor(balance), name,
                                            upi_id or f"{account_id.lower()}@grambank", phone)

    def balance(self, account_id) -> int:
        return self.repository.get_account(account_id).balance

    def records(self, account_id):
        return self.repository.history(account_id, 200)

    def cleanup(self):
        if self.services.engine is not None:
            self.services.engine.dispose()
        shutil.rmtree(self.directory, ignore_errors=True)
