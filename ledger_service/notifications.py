"""
Best-effort SMS notifications.

Sends run as detached tasks: the transfer never waits on them, a failed send
is only logged, and cancelling the request that scheduled a send does not
cancel the send.
"""
import asyncio
import inspect
import logging
import re
from typing import Callable, Optional, Set

from common.circuit_breaker import run_blocking
from common.kafka import TOPIC_NOTIFICATIONS
from common.schemas import NotificationEvent
from ledger_service.money import format_amount

logger = logging.getLogger(__name__)

def mask_account(acc) -> str:
    if not acc:
        return "****"
    return "****" + str(acc)[-4:]

def format_phone(phone: Optional[str]) -> Optional[str]:
    """E.164, assuming India for bare 10-digit numbers"""
    if not phone:
        return phone
    if phone.startswith("+"):
        return phone
    if re.fullmatch(r"\d{10}", phone):
        return "+91" + phone
    return phone

class SmsTemplates:
    def __init__(self, bank_name: str = "GramBank"):
        self.bank = bank_name

    def debit(self, account_id, amount, counterparty, balance_after, beneficiary_name=None) -> str:
        return (f"{self.bank}: Your A/c {mask_account(account_id)} debited ₹{format_amount(amount)} "
                f"to {beneficiary_name or mask_account(counterparty)} A/c {mask_account(counterparty)}. "
                f"Avl bal ₹{format_amount(balance_after)}. - {self.bank}")

    def upi_debit(self, amount, upi_id, balance_after) -> str:
        return f"{self.bank}: ₹{format_amount(amount)} debited via UPI to {upi_id}. Avl bal ₹{format_amount(balance_after)}."

    def credit(self, account_id, amount, sender_id, balance_after, via_upi=False) -> str:
        channel = " via UPI" if via_upi else ""
        return (f"{self.bank}: Your A/c {mask_account(account_id)} credited ₹{format_amount(amount)}{channel} "
                f"from {mask_account(sender_id)}. Avl bal ₹{format_amount(balance_after)}.")

    def flagged(self, reason, amount, counterparty, balance) -> str:
        return (f"⚠️ {self.bank} Alert: A {reason} transaction of ₹{format_amount(amount)} to "
                f"{mask_account(counterparty)} was flagged and blocked. Available balance: ₹{format_amount(balance)}.")

    def blocked(self, counterparty) -> str:
        return (f"Alert: A transfer to account {mask_account(counterparty)} has been blocked for safety. "
                f"If this was not you, contact {self.bank} immediately.")

    def otp(self, code, ttl_seconds) -> str:
        return f"Your {self.bank} transaction OTP is {code}. It will expire in {ttl_seconds // 60} minutes."

class KafkaNotificationSender:
    """Hands notifications to the SMS gateway through Kafka"""

    def __init__(self, producer, topic: str = TOPIC_NOTIFICATIONS, flush_timeout: float = 5.0):
        self.producer = producer
        self.topic = topic
        self.flush_timeout = flush_timeout

    def __call__(self, event: NotificationEvent):
        self.producer.produce(self.topic, key=event.to.encode("utf-8"),
                              value=event.model_dump_json().encode("utf-8"))
        remaining = self.producer.flush(self.flush_timeout)
        if remaining:
            raise RuntimeError(f"{remaining} notification(s) still queued after flush")

    def close(self):
        self.producer.flush(self.flush_timeout)

class Notifier:
    def __init__(self, sender: Callable, templates: SmsTemplates = None, timeout: float = 5.0):
        self.sender = sender
        self.templates = templates or SmsTemplates()
        self.timeout = timeout
        self._pending: Set[asyncio.Task] = set()

    def notify(self, kind: str, to: Optional[str], body: str, txn_id: str = None) -> Optional[asyncio.Task]:
        phone = format_phone(to)
        if not phone:
            logger.warning(f"📵 No phone number for {kind} notification {txn_id or ''}".rstrip())
            return None
        event = NotificationEvent(kind=kind, to=phone, body=body, txn_id=txn_id)
        task = asyncio.get_running_loop().create_task(self._deliver(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _deliver(self, event: NotificationEvent):
        try:
            if inspect.iscoroutinefunction(self.sender) or inspect.iscoroutinefunction(
                    getattr(self.sender, "__call__", None)):
                await asyncio.wait_for(self.sender(event), timeout=self.timeout)
            else:
                await asyncio.wait_for(run_blocking(self.sender, event), timeout=self.timeout)
            logger.info(f"📤 Sent {event.kind} notification to {mask_account(event.to)}")
        except Exception as e:
            logger.error(f"📵 {event.kind} notification to {mask_account(event.to)} failed: {e!r}")

    @property
    def pending(self) -> int:
        return sum(1 for task in self._pending if not task.done())

    async def drain(self):
        """Wait for in-flight sends"""
        while True:
            in_flight = [task for task in self._pending if not task.done()]
            if not in_flight:
                return
            await asyncio.gather(*in_flight, return_exceptions=True)
