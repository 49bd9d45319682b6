from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from sqlalchemy.engine import Engine

from .ai_intent import LLMOrderParser
from .db import Base, make_session_factory
from .notifier import MerchantForwarder, Notifier, build_notifier
from .ordering.brain import LLMParse, OrderDesk
from .ordering.checkin import CheckInScheduler
from .ordering.conversation import ConversationTracker
from .ordering.inventory import InventoryValidator
from .ordering.locks import KeyedLocks
from .ordering.menu_store import TenantDirectory
from .ordering.orders import OrderLifecycleManager, OrderStore
from .settings import Settings

logger = logging.getLogger(__name__)


@dataclass
class Services:
    tenants: TenantDirectory
    orders: OrderStore
    tracker: ConversationTracker
    validator: InventoryValidator
    scheduler: CheckInScheduler
    lifecycle: OrderLifecycleManager
    desk: OrderDesk
    notifier: Notifier


def _llm_from_settings(cfg: Settings) -> Optional[LLMParse]:
    if not (cfg.llm_enabled and cfg.openai_api_key):
        return None
    return LLMOrderParser(api_key=cfg.openai_api_key, model=cfg.openai_model).parse


def build_services(
    engine: Engine,
    cfg: Settings,
    notifier: Optional[Notifier] = None,
    llm_parse: Optional[LLMParse] = None,
    tracker: Optional[ConversationTracker] = None,
) -> Services:
    """Wire one isolated set of stores and components around a database."""
    Base.metadata.create_all(bind=engine)
    session_factory = make_session_factory(engine)

    notifier = notifier or build_notifier(cfg.twilio_account_sid, cfg.twilio_auth_token, cfg.twilio_phone_number)
    locks = KeyedLocks()
    tenants = TenantDirectory(session_factory)
    orders = OrderStore(session_factory)
    tracker = tracker or ConversationTracker(timeout=timedelta(minutes=cfg.conversation_timeout_min))
    validator = InventoryValidator(tenants.get_stock)
    scheduler = CheckInScheduler(orders, notifier, tenants, locks=locks, default_minutes=cfg.check_in_minutes)
    lifecycle = OrderLifecycleManager(
        orders,
        notifier,
        tenants,
        scheduler=scheduler,
        forwarder=MerchantForwarder(notifier),
        locks=locks,
    )
    llm_parse = llm_parse or _llm_from_settings(cfg)
    logger.info("Order services ready (llm fallback: %s)", "on" if llm_parse else "off")
    desk = OrderDesk(
        tenants,
        tracker,
        validator,
        lifecycle,
        scheduler,
        locks,
        llm_parse=llm_parse,
        public_base_url=cfg.public_base_url,
    )
    return Services(
        tenants=tenants,
        orders=orders,
        tracker=tracker,
        validator=validator,
        scheduler=scheduler,
        lifecycle=lifecycle,
        desk=desk,
        notifier=notifier,
    )
