from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Dict, Optional

from .errors import OrderingError
from .locks import KeyedLocks, customer_key, order_key
from .orders import CHECK_IN_WINDOW, Order, OrderStatus, OrderStore

if TYPE_CHECKING:
    from ..notifier import Notifier
    from .menu_store import Tenant, TenantDirectory
    from .orders import OrderLifecycleManager

logger = logging.getLogger(__name__)

DEFAULT_CHECK_IN_MINUTES = 15

# substring match, case-insensitive
AFFIRMATIVE_REPLIES = (
    "yes", "yeah", "yep", "yup", "sure", "good", "great", "perfect",
    "ok", "okay", "received", "got it", "thanks", "thank you",
)


def is_affirmative(text: str) -> bool:
    normalized = (text or "").strip().lower()
    return any(word in normalized for word in AFFIRMATIVE_REPLIES)


class CheckInScheduler:
    """Asks the customer whether a paid order arrived, some minutes after payment.

    One timer per order id, alive only while the order is paid or preparing.
    When it fires the order is re-read, so a timer that races a manual
    completion sends nothing. A customer who was asked is marked as awaiting a
    reply; their next message is consumed here instead of being parsed as an
    order.
    """

    def __init__(
        self,
        store: OrderStore,
        notifier: "Notifier",
        tenants: "TenantDirectory",
        locks: Optional[KeyedLocks] = None,
        default_minutes: int = DEFAULT_CHECK_IN_MINUTES,
    ):
        self._store = store
        self._notifier = notifier
        self._tenants = tenants
        self._locks = locks or KeyedLocks()
        self.default_minutes = default_minutes
        self._timers: Dict[str, asyncio.Task] = {}
        self._delays: Dict[str, float] = {}
        self._awaiting: Dict[str, str] = {}  # customer identity -> order id

    # --- timers ---
    def delay_for(self, tenant: "Tenant") -> Optional[float]:
        """Seconds until the check-in, or None when the business has check-ins off."""
        if not tenant.check_in_enabled:
            return None
        minutes = tenant.check_in_minutes if tenant.check_in_minutes is not None else self.default_minutes
        if minutes <= 0:
            return None
        return minutes * 60.0

    def arm(self, order: Order, tenant: "Tenant") -> bool:
        delay = self.delay_for(tenant)
        if delay is None:
            logger.info("Check-in disabled for %s", tenant.id)
            return False

        self._cancel_timer(order.id)
        task = asyncio.get_running_loop().create_task(self._wait_and_fire(order.id, delay))
        self._timers[order.id] = task
        self._delays[order.id] = delay
        logger.info("Check-in for order %s scheduled in %.0f minutes", order.id, delay / 60)
        return True

    async def _wait_and_fire(self, order_id: str, delay: float) -> None:
        await asyncio.sleep(delay)
        if self._timers.get(order_id) is asyncio.current_task():
            self._timers.pop(order_id, None)
            self._delays.pop(order_id, None)
        try:
            await self.fire(order_id)
        except Exception:
            logger.exception("Check-in for order %s failed", order_id)

    def _cancel_timer(self, order_id: str) -> bool:
        task = self._timers.pop(order_id, None)
        self._delays.pop(order_id, None)
        if task is None:
            return False
        if task is not asyncio.current_task():
            task.cancel()
        return True

    def cancel(self, order_id: str) -> None:
        """Drop the timer and any unanswered check-in for this order."""
        if self._cancel_timer(order_id):
            logger.info("Check-in timer cancelled for order %s", order_id)
        for customer, pending in list(self._awaiting.items()):
            if pending == order_id:
                del self._awaiting[customer]

    def scheduled_delay(self, order_id: str) -> Optional[float]:
        return self._delays.get(order_id)

    def has_timer(self, order_id: str) -> bool:
        return order_id in self._timers

    def shutdown(self) -> None:
        """Cancel every pending timer. Safe to call with or without a running loop."""
        for task in self._timers.values():
            if not task.done() and not task.get_loop().is_closed():
                task.cancel()
        self._timers.clear()
        self._delays.clear()

    # --- firing ---
    async def fire(self, order_id: str) -> bool:
        """Send the check-in prompt now. Returns False when it was skipped."""
        customer = self._customer_of(order_id)
        async with self._locks.hold(customer_key(customer) if customer else order_key(order_id)):
            order = self._store.get(order_id)
            if order is None or order.status not in CHECK_IN_WINDOW:
                logger.info("Check-in skipped for order %s (status %s)", order_id, order.status.value if order else "missing")
                return False
            self._awaiting[order.customer_identity] = order.id

        tenant = self._tenants.get(order.business_id)
        business = tenant.name if tenant else "us"
        text = (
            f"Hi {order.customer_name or 'there'}! Did you receive your order from {business}? "
            "Reply YES if everything is good, or let us know if there's an issue."
        )
        try:
            await self._notifier.send(order.customer_identity, text)
        except Exception:
            logger.exception("Failed to send check-in for order %s", order_id)
        else:
            logger.info("Check-in sent for order %s", order_id)
        return True

    def _customer_of(self, order_id: str) -> Optional[str]:
        order = self._store.get(order_id)
        return order.customer_identity if order else None

    # --- replies ---
    def is_awaiting(self, customer_identity: str) -> bool:
        return customer_identity in self._awaiting

    async def handle_response(
        self,
        customer_identity: str,
        text: str,
        lifecycle: "OrderLifecycleManager",
    ) -> Optional[str]:
        """Interpret a reply to a check-in. None means the customer wasn't being asked.

        The caller must already hold the customer's lock.
        """
        asked_about = self._awaiting.pop(customer_identity, None)
        if asked_about is None:
            return None

        if not is_affirmative(text):
            logger.info("Inconclusive check-in reply from %s: %r", customer_identity, text)
            return "Thanks for letting us know. We've passed your message on and the business will follow up."

        # the customer's newest paid/preparing order, not necessarily the one that was asked about
        order = lifecycle.latest_open_order(customer_identity)
        if order is None:
            return "Thanks for confirming!"
        if order.id != asked_about:
            logger.info("Check-in for order %s answered; completing newer order %s", asked_about, order.id)
        try:
            await lifecycle.update_status(order.id, OrderStatus.COMPLETE, notify=False)
        except OrderingError:
            logger.warning("Could not complete order %s from check-in", order.id, exc_info=True)
        else:
            logger.info("Order %s completed via check-in confirmation", order.id)
        return "Great, thanks for confirming! Enjoy your order."
