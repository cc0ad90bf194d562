"""
Transfer orchestrator.

Runs one transfer request through

    START -> AUTHORIZED -> BLACKLIST_CHECKED -> FUNDS_CHECKED -> FRAUD_EVALUATED

and ends in BLOCKED_FRAUD, FLAGGED_FRAUD or SETTLED. Client errors
(Unauthorized, InsufficientFunds, ReceiverNotFound) stop the flow before
any record is written. Anything unexpected is logged here and surfaced as a
generic server error.
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from common.circuit_breaker import run_blocking
from common.error_handling import BusinessLogicError, ServiceError
from common.tracing import get_current_trace_id
from ledger_service import fraud_rules
from ledger_service.errors import AccountFrozen, PersistenceConflict, ReceiverNotFound, Unauthorized
from ledger_service.ledger import BalanceMoved
from ledger_service.models import FROZEN
from ledger_service.money import from_minor, to_major, to_minor
from ledger_service.records import (
    CHANNEL_ACCOUNT, CHANNEL_UPI, BLACKLIST_REASON, TransactionRecordBuilder, TransferDetails,
)

logger = logging.getLogger(__name__)

class TransferState(str, Enum):
    START = "START"
    AUTHORIZED = "AUTHORIZED"
    BLACKLIST_CHECKED = "BLACKLIST_CHECKED"
    FUNDS_CHECKED = "FUNDS_CHECKED"
    FRAUD_EVALUATED = "FRAUD_EVALUATED"
    BLOCKED_FRAUD = "BLOCKED_FRAUD"
    FLAGGED_FRAUD = "FLAGGED_FRAUD"
    SETTLED = "SETTLED"

@dataclass(frozen=True)
class TransferOutcome:
    state: TransferState
    txn_id: str
    balance_before: int
    balance_after: int
    fraud_reason: Optional[str] = None
    receiver: Optional[str] = None
    credited: bool = False

    @property
    def is_fraud(self) -> bool:
        return self.state in (TransferState.BLOCKED_FRAUD, TransferState.FLAGGED_FRAUD)

    def to_response(self) -> dict:
        if self.state == TransferState.SETTLED:
            body = {
                "message": "Transaction successful",
                "txn_id": self.txn_id,
                "balance_before": from_minor(self.balance_before),
                "balance_after": from_minor(self.balance_after),
                "is_fraud": False,
            }
            if self.receiver:
                body["receiver"] = self.receiver
            return body

        message = ("🚨 Fraudulent account detected" if self.state == TransferState.BLOCKED_FRAUD
                   else "Transaction flagged as suspicious")
        return {
            "message": message,
            "txn_id": self.txn_id,
            "is_fraud": True,
            "txn_blocked": True,
            "fraud_reason": self.fraud_reason,
            "balance_before": from_minor(self.balance_before),
            "balance_after": from_minor(self.balance_after),
        }

class TransferOrchestrator:
    def __init__(self, repository, ledger, blacklist, authorizer, notifier,
                 records: TransactionRecordBuilder = None, lookup_timeout: float = 2.0,
                 enforce_frozen: bool = False, enforce_upi_blacklist: bool = False):
        self.repository = repository
        self.ledger = ledger
        self.blacklist = blacklist
        self.authorizer = authorizer
        self.notifier = notifier
        self.records = records or TransactionRecordBuilder()
        self.lookup_timeout = lookup_timeout
        self.enforce_frozen = enforce_frozen
        self.enforce_upi_blacklist = enforce_upi_blacklist

    async def transfer_to_account(self, account_id: str, request) -> TransferOutcome:
        return await self._guarded(self._account_transfer, account_id, request)

    async def transfer_to_upi(self, account_id: str, request) -> TransferOutcome:
        return await self._guarded(self._upi_transfer, account_id, request)

    async def _guarded(self, flow, account_id, request) -> TransferOutcome:
        try:
            return await flow(account_id, request)
        except (BusinessLogicError, ServiceError):
            raise
        except Exception as e:
            logger.exception(f"❌ Transfer from {account_id} failed unexpectedly (trace {get_current_trace_id()})")
            raise ServiceError(original_error=e)

    async def _account_transfer(self, account_id, request) -> TransferOutcome:
        sender = await self._authorize(account_id, request.authorization_proof)
        details = self._details(sender, CHANNEL_ACCOUNT, request.destination_account, request,
                                bank_code=request.destination_bank_code,
                                beneficiary_name=request.beneficiary_name)

        if await self.blacklist.is_blacklisted(request.destination_account):
            return await self._block(sender, details)
        self._enter(details, TransferState.BLACKLIST_CHECKED)

        receiver = await run_blocking(self.repository.get_account, request.destination_account)
        return await self._screen_and_settle(sender, details, receiver)

    async def _upi_transfer(self, account_id, request) -> TransferOutcome:
        sender = await self._authorize(account_id, request.authorization_proof)

        receiver = await run_blocking(self.repository.find_by_upi, request.upi_id)
        if receiver is None:
            logger.info(f"❌ UPI receiver {request.upi_id} not found")
            raise ReceiverNotFound()
        details = self._details(sender, CHANNEL_UPI, request.upi_id, request)

        if self.enforce_upi_blacklist:
            for identifier in (request.upi_id, receiver.id):
                if await self.blacklist.is_blacklisted(identifier):
                    return await self._block(sender, details)
        self._enter(details, TransferState.BLACKLIST_CHECKED)

        return await self._screen_and_settle(sender, details, receiver)

    async def _authorize(self, account_id, proof):
        sender = await run_blocking(self.repository.get_account, account_id)
        if sender is None:
            raise Unauthorized("Account not found for this session")

        try:
            authorized = await asyncio.wait_for(self.authorizer.authorize(sender, proof),
                                                timeout=self.lookup_timeout)
        except Exception as e:
            logger.error(f"❌ Authorization check for {account_id} failed closed: {e!r}")
            authorized = False
        if not authorized:
            raise Unauthorized("Invalid or expired OTP" if proof else "OTP required")

        if self.enforce_frozen and sender.status == FROZEN:
            raise AccountFrozen(sender.id)
        logger.info(f"🔐 {sender.id} authorized for transfer")
        return sender

    def _details(self, sender, channel, counterparty, request, **extra) -> TransferDetails:
        return TransferDetails(
            sender_id=sender.id,
            channel=channel,
            counterparty=counterparty,
            amount=to_minor(request.amount),
            location_delta_km=request.location_delta_km,
            is_foreign_device=request.is_foreign_device,
            txns_last_24h=request.txns_last_24h,
            avg_amount_7d=request.avg_amount_7d,
            **extra,
        )

    def _enter(self, details: TransferDetails, state: TransferState):
        logger.debug(f"{details.channel} {details.sender_id} -> {details.counterparty}: {state.value}")

    async def _screen_and_settle(self, sender, details, receiver) -> TransferOutcome:
        # the debit only runs against the balance that was screened
        attempts = self.ledger.retry_config.max_attempts
        for attempt in range(1, attempts + 1):
            await self.ledger.check_sufficient_funds(sender, details.amount)
            self._enter(details, TransferState.FUNDS_CHECKED)

            verdict = fraud_rules.evaluate(
                amount=to_major(details.amount),
                balance_before=to_major(sender.balance),
                location_delta_km=details.location_delta_km,
                is_foreign_device=details.is_foreign_device,
                txns_last_24h=details.txns_last_24h,
            )
            self._enter(details, TransferState.FRAUD_EVALUATED)
            if verdict.is_fraud:
                return await self._flag(sender, details, verdict)
            try:
                return await self._settle(sender, details, receiver)
            except BalanceMoved as e:
                logger.info(f"🔁 {sender.id} balance moved ({e.expected} -> {e.actual}), "
                            f"re-screening (attempt {attempt}/{attempts})")
                sender = await run_blocking(self.repository.get_account, sender.id)
        raise PersistenceConflict()

    async def _block(self, sender, details) -> TransferOutcome:
        base_id = self.records.new_base_id(details.channel)
        entry = self.records.blocked_leg(base_id, details, sender.balance)
        await run_blocking(self.repository.add_entries, [entry])
        logger.warning(f"🚨 Blocked {base_id}: {details.counterparty} is blacklisted")

        self.notifier.notify("FRAUD_BLOCKED", sender.phone_number,
                             self.notifier.templates.blocked(details.counterparty), base_id)
        return TransferOutcome(TransferState.BLOCKED_FRAUD, base_id, sender.balance, sender.balance,
                               fraud_reason=BLACKLIST_REASON)

    async def _flag(self, sender, details, verdict) -> TransferOutcome:
        base_id = self.records.new_base_id(details.channel)
        entry = self.records.flagged_leg(base_id, details, sender.balance, verdict)
        await run_blocking(self.repository.add_entries, [entry])
        logger.warning(f"⚠️ Flagged {base_id}: {verdict.reason}")

        self.notifier.notify("FRAUD_FLAGGED", sender.phone_number,
                             self.notifier.templates.flagged(verdict.reason, details.amount,
                                                             details.counterparty, sender.balance),
                             base_id)
        return TransferOutcome(TransferState.FLAGGED_FRAUD, base_id, sender.balance, sender.balance,
                               fraud_reason=verdict.reason)

    async def _settle(self, sender, details, receiver) -> TransferOutcome:
        base_id = self.records.new_base_id(details.channel)

        debit = await self.ledger.debit(
            sender.id, details.amount,
            record=lambda change: self.records.debit_leg(base_id, details, change),
            expected_balance=sender.balance,
        )

        credit = None
        if receiver is not None:
            # a failure here leaves a debit leg without its credit leg for reconciliation
            credit = await self.ledger.credit(
                receiver.id, details.amount,
                record=lambda change: self.records.credit_leg(base_id, details, receiver.id, change),
            )
        if credit is None:
            # money has left the sender with no receiving leg inside this ledger
            logger.warning(f"⚠️ {base_id}: receiver {details.counterparty} not found, credit leg skipped")

        logger.info(f"✅ Settled {base_id}: {details.sender_id} -> {details.counterparty} amount={details.amount}")
        self._notify_settled(sender, receiver, details, base_id, debit, credit)

        return TransferOutcome(
            TransferState.SETTLED, base_id, debit.before, debit.after,
            receiver=details.counterparty if details.channel == CHANNEL_UPI else None,
            credited=credit is not None,
        )

    def _notify_settled(self, sender, receiver, details, base_id, debit, credit):
        templates = self.notifier.templates
        via_upi = details.channel == CHANNEL_UPI
        if via_upi:
            body = templates.upi_debit(details.amount, details.counterparty, debit.after)
        else:
            body = templates.debit(sender.id, details.amount, details.counterparty, debit.after,
                                   beneficiary_name=details.beneficiary_name)
        self.notifier.notify("DEBIT", sender.phone_number, body, base_id)

        if credit is not None:
            self.notifier.notify("CREDIT", receiver.phone_number,
                                 templates.credit(receiver.id, details.amount, sender.id, credit.after,
                                                  via_upi=via_upi),
                                 base_id)
