from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, List, Tuple

from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client

from .emailer import send_order_email
from .ordering.errors import UpstreamFailure
from .ordering.menu import currency_symbol
from .ordering.orders import Order, order_summary

if TYPE_CHECKING:
    from .ordering.menu_store import Tenant

logger = logging.getLogger(__name__)


class Notifier:
    """Outbound messages to a customer or merchant identity (phone number, web chat token)."""

    async def send(self, recipient: str, text: str) -> None:
        raise NotImplementedError


class LogNotifier(Notifier):
    """Used when no messaging gateway is configured."""

    async def send(self, recipient: str, text: str) -> None:
        logger.info("Message to %s: %s", recipient, text)


class RecordingNotifier(Notifier):
    """Keeps every message in memory; handy for tests and local runs."""

    def __init__(self) -> None:
        self.sent: List[Tuple[str, str]] = []

    async def send(self, recipient: str, text: str) -> None:
        self.sent.append((recipient, text))

    def to(self, recipient: str) -> List[str]:
        return [text for r, text in self.sent if r == recipient]


class TwilioNotifier(Notifier):
    """SMS through Twilio. Web chat identities (`web:...`) have no phone and are only logged."""

    def __init__(self, account_sid: str, auth_token: str, from_number: str):
        self._client = Client(account_sid, auth_token)
        self._from = from_number

    async def send(self, recipient: str, text: str) -> None:
        if not recipient.startswith("+"):
            logger.info("No SMS route for %s; message dropped: %s", recipient, text)
            return
        try:
            await asyncio.to_thread(self._client.messages.create, body=text, from_=self._from, to=recipient)
        except TwilioRestException as exc:
            raise UpstreamFailure(f"Twilio rejected message to {recipient}: {exc.msg}") from exc
        logger.info("SMS sent to %s", recipient)


class MerchantForwarder:
    """Hands a paid order to the business: SMS to its phone and an email when it has one."""

    def __init__(self, notifier: Notifier):
        self._notifier = notifier

    @staticmethod
    def describe(order: Order, tenant: "Tenant") -> str:
        who: List[str] = []
        if order.customer_name:
            who.append(f"Name: {order.customer_name}")
        if order.table_number:
            who.append(f"Table: {order.table_number}")
        customer = (" | ".join(who) + "\n" if who else "") + f"Phone: {order.customer_identity}"
        return (
            f"🔔 NEW PAID ORDER #{order.id}\n\n"
            f"{order_summary(order, tenant.currency)}\n\n"
            f"{customer}\n"
            "Status: PAID ✅"
        )

    async def forward(self, order: Order, tenant: "Tenant") -> None:
        body = self.describe(order, tenant)
        if tenant.phone_number:
            await self._notifier.send(tenant.phone_number, body)
        if tenant.email:
            sym = currency_symbol(tenant.currency)
            subject = f"New paid order #{order.id} ({sym}{order.total:.2f})"
            await asyncio.to_thread(send_order_email, tenant.email, subject, body)


def build_notifier(account_sid: str, auth_token: str, from_number: str) -> Notifier:
    if account_sid and auth_token and from_number:
        return TwilioNotifier(account_sid, auth_token, from_number)
    logger.warning("Twilio not configured; outbound messages will only be logged")
    return LogNotifier()

