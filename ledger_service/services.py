"""Wires the ledger's collaborators once at startup."""
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from sqlalchemy.engine import Engine

from common.kafka import create_producer
from common.redis_client import RedisClient
from common.settings import Settings
from ledger_service.authorization import OtpAuthorizer
from ledger_service.blacklist import BlacklistCheck, BlacklistRegistry
from ledger_service.db import make_engine, make_session_factory
from ledger_service.ledger import BalanceLedger, cas_retry_config
from ledger_service.models import Base
from ledger_service.notifications import KafkaNotificationSender, Notifier, SmsTemplates
from ledger_service.orchestrator import TransferOrchestrator
from ledger_service.repository import LedgerRepository

logger = logging.getLogger(__name__)

@dataclass
class LedgerServices:
    settings: Settings
    repository: LedgerRepository
    registry: BlacklistRegistry
    authorizer: object
    notifier: Notifier
    ledger: BalanceLedger
    orchestrator: TransferOrchestrator
    engine: Optional[Engine] = None
    redis: Optional[RedisClient] = None
    closers: List[Callable] = field(default_factory=list)

    async def close(self):
        await self.notifier.drain()
        for close in self.closers:
            try:
                close()
            except Exception as e:
                logger.warning(f"Error during shutdown: {e!r}")
        if self.engine is not None:
            self.engine.dispose()

def build_services(cfg: Settings, authorizer=None, sender: Callable = None,
                   seed_blacklist: bool = True) -> LedgerServices:
    """Build every collaborator from settings. ``authorizer`` and ``sender``
    replace the Redis OTP store and the Kafka notification sender."""
    engine = make_engine(cfg.sqlalchemy_url)
    Base.metadata.create_all(bind=engine)
    session_factory = make_session_factory(engine)
    closers = []

    repository = LedgerRepository(session_factory)
    registry = BlacklistRegistry(session_factory)
    if seed_blacklist:
        added = registry.seed()
        if added:
            logger.info(f"🚩 Loaded {added} known fraud accounts")

    redis_client = None
    if authorizer is None:
        redis_client = RedisClient(cfg.redis_url)
        authorizer = OtpAuthorizer(redis_client, ttl_seconds=cfg.otp_ttl_seconds,
                                   timeout=cfg.lookup_timeout_seconds)
        closers.append(redis_client.close)

    if sender is None:
        sender = KafkaNotificationSender(create_producer(cfg.kafka_bootstrap))
        closers.append(sender.close)
    notifier = Notifier(sender, SmsTemplates(cfg.bank_name), timeout=cfg.notification_timeout_seconds)

    ledger = BalanceLedger(
        repository,
        retry_config=cas_retry_config(cfg.cas_max_attempts, cfg.cas_retry_delay),
        enforce_frozen=cfg.enforce_frozen_accounts,
    )
    orchestrator = TransferOrchestrator(
        repository, ledger,
        BlacklistCheck(registry, timeout=cfg.lookup_timeout_seconds),
        authorizer, notifier,
        lookup_timeout=cfg.lookup_timeout_seconds,
        enforce_frozen=cfg.enforce_frozen_accounts,
        enforce_upi_blacklist=cfg.enforce_upi_blacklist,
    )
    return LedgerServices(
        settings=cfg, repository=repository, registry=registry, authorizer=authorizer,
        notifier=notifier, ledger=ledger, orchestrator=orchestrator, engine=engine, redis=redis_client,
        closers=closers,
    )
