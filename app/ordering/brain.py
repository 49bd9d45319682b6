from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from .checkin import CheckInScheduler
from .conversation import ConversationTracker
from .errors import InventoryConflict, ParseFailure
from .inventory import InventoryReport, InventoryValidator
from .locks import KeyedLocks, customer_key
from .menu import format_menu
from .menu_store import Tenant, TenantDirectory
from .orders import OrderLifecycleManager, order_summary
from .parser import HELP_MESSAGE, parse_order
from .types import Menu, ParsedOrder

logger = logging.getLogger(__name__)

LLMParse = Callable[[str, Menu], Awaitable[ParsedOrder]]

ASK_NAME = "What's your name?"
UNKNOWN_BUSINESS = "Sorry, this business isn't taking text orders right now."
SOMETHING_WENT_WRONG = "Sorry, something went wrong with your order. Please try again."


@dataclass
class InboundResult:
    response_text: str
    payload: Optional[Dict[str, Any]] = None


class OrderDesk:
    """Single entry point for inbound customer text, whatever the channel.

    SMS webhooks and the web chat both call `handle_inbound_message` with a
    channel-neutral (business, customer, text) triple. Messages from one
    customer are handled one at a time; different customers run in parallel.
    """

    def __init__(
        self,
        tenants: TenantDirectory,
        tracker: ConversationTracker,
        validator: InventoryValidator,
        lifecycle: OrderLifecycleManager,
        scheduler: CheckInScheduler,
        locks: KeyedLocks,
        llm_parse: Optional[LLMParse] = None,
        public_base_url: str = "http://localhost:8000",
    ):
        self.tenants = tenants
        self.tracker = tracker
        self.validator = validator
        self.lifecycle = lifecycle
        self.scheduler = scheduler
        self.locks = locks
        self.llm_parse = llm_parse
        self.public_base_url = public_base_url.rstrip("/")

    def payment_link(self, order_id: str) -> str:
        return f"{self.public_base_url}/pay/{order_id}"

    async def handle_inbound_message(self, business_id: str, customer_identity: str, text: str) -> InboundResult:
        async with self.locks.hold(customer_key(customer_identity)):
            try:
                tenant = self.tenants.get(business_id)
                if tenant is None:
                    logger.warning("Inbound message for unknown business %s", business_id)
                    return InboundResult(UNKNOWN_BUSINESS)
                return await self._handle(tenant, customer_identity, text or "")
            except ParseFailure as exc:
                return InboundResult(str(exc) or HELP_MESSAGE)
            except InventoryConflict as exc:
                return InboundResult(exc.report.rejection_text())
            except Exception:
                logger.exception("Inbound message from %s failed", customer_identity)
                return InboundResult(SOMETHING_WENT_WRONG)

    async def _handle(self, tenant: Tenant, customer: str, text: str) -> InboundResult:
        # 1) a reply to a check-in is never a new order
        reply = await self.scheduler.handle_response(customer, text, self.lifecycle)
        if reply is not None:
            return InboundResult(reply)

        # 2) literal "menu"
        if text.strip().lower() == "menu":
            return InboundResult(format_menu(tenant.menu, tenant.currency))

        # 3) an open conversation for this business
        session = self.tracker.get_session(customer)
        if session and session.business_id != tenant.id:
            self.tracker.close_session(customer)
            session = None
        if session:
            completed = self.tracker.continue_session(customer, text)
            if completed is None:
                return InboundResult(ASK_NAME, {"stage": session.stage.value})
            return self._finalize(tenant, customer, completed)

        # 4) fresh order attempt
        parsed = await self._parse(text, tenant.menu)
        if not parsed.is_valid:
            raise ParseFailure(parsed.error_message or HELP_MESSAGE)

        self._check_stock(tenant, parsed)
        if not parsed.customer_name:
            parsed.customer_name = self.tracker.remembered_customer_name(customer, tenant.id)
        if not parsed.customer_name:
            session = self.tracker.open_session(customer, tenant.id, parsed)
            return InboundResult(ASK_NAME, {"stage": session.stage.value})
        return self._finalize(tenant, customer, parsed)

    async def _parse(self, text: str, menu: Menu) -> ParsedOrder:
        parsed = parse_order(text, menu)
        if self.llm_parse is None or not text.strip():
            return parsed
        if parsed.is_valid and not parsed.has_fuzzy_match:
            return parsed

        try:
            fallback = await self.llm_parse(text, menu)
        except Exception:
            # best effort: keep the deterministic result
            logger.warning("LLM fallback failed; using deterministic parse", exc_info=True)
            return parsed
        if not fallback.is_valid:
            return parsed

        fallback.customer_name = fallback.customer_name or parsed.customer_name
        fallback.table_number = fallback.table_number or parsed.table_number
        logger.info("LLM fallback resolved %d items", len(fallback.items))
        return fallback

    def _check_stock(self, tenant: Tenant, parsed: ParsedOrder) -> InventoryReport:
        return self.validator.ensure_available(tenant.id, [(i.name, i.quantity) for i in parsed.items])

    def _finalize(self, tenant: Tenant, customer: str, parsed: ParsedOrder) -> InboundResult:
        # stock may have moved while we were waiting for the name
        report = self._check_stock(tenant, parsed)
        order = self.lifecycle.create_order(tenant.id, customer, parsed)
        self.tracker.close_session(customer)
        if order.customer_name:
            self.tracker.remember_name(customer, tenant.id, order.customer_name)

        link = self.payment_link(order.id)
        details = []
        if order.customer_name:
            details.append(f"Name: {order.customer_name}")
        if order.table_number:
            details.append(f"Table: {order.table_number}")
        header = (" | ".join(details) + "\n\n") if details else ""
        summary = header + order_summary(order, tenant.currency)
        warnings = report.warnings()
        if warnings:
            summary += "\n\n" + "\n".join(warnings)

        if parsed.has_fuzzy_match:
            text = f"✓ I understood your order as:\n\n{summary}\n\nIf this looks correct, pay now:\n{link}"
        else:
            text = f"Order ready for payment:\n\n{summary}\n\nPay now:\n{link}"
        text += f"\n\n⚠️ Order will only be sent to {tenant.name} after payment is confirmed."

        payload = order.to_record()
        payload["paymentLink"] = link
        return InboundResult(text, payload)
