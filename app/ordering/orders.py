from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy.orm import sessionmaker

from ..models import OrderRecord
from .cart import build_summary
from .errors import InvalidTransition, OrderNotFound, PaymentMismatch
from .locks import KeyedLocks, order_key
from .menu import currency_symbol
from .types import ParsedItem, ParsedOrder

if TYPE_CHECKING:
    from ..notifier import MerchantForwarder, Notifier
    from .checkin import CheckInScheduler
    from .menu_store import TenantDirectory

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatus(str, Enum):
    AWAITING_PAYMENT = "awaiting_payment"
    PAID = "paid"
    PREPARING = "preparing"
    COMPLETE = "complete"

    @property
    def rank(self) -> int:
        return _RANK[self]


_RANK = {
    OrderStatus.AWAITING_PAYMENT: 0,
    OrderStatus.PAID: 1,
    OrderStatus.PREPARING: 2,
    OrderStatus.COMPLETE: 3,
}

# statuses during which a check-in timer may exist
CHECK_IN_WINDOW = frozenset({OrderStatus.PAID, OrderStatus.PREPARING})


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    """Strictly forward. An unpaid order can only move to paid."""
    if target.rank <= current.rank:
        return False
    if current is OrderStatus.AWAITING_PAYMENT:
        return target is OrderStatus.PAID
    return True


# -------------------
# Order ids
# -------------------
_id_lock = threading.Lock()
_last_id = 0


def new_order_id() -> str:
    """Millisecond timestamp, bumped when two orders land in the same millisecond."""
    global _last_id
    with _id_lock:
        candidate = time.time_ns() // 1_000_000
        _last_id = max(candidate, _last_id + 1)
        return str(_last_id)


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


def _parse_dt(raw: Any) -> Optional[datetime]:
    if raw is None:
        return None
    dt = raw if isinstance(raw, datetime) else datetime.fromisoformat(str(raw))
    # SQLite hands back naive datetimes
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


@dataclass
class Order:
    id: str
    business_id: str
    customer_identity: str
    items: List[ParsedItem]
    total: Decimal
    status: OrderStatus = OrderStatus.AWAITING_PAYMENT
    created_at: datetime = field(default_factory=_utcnow)
    customer_name: Optional[str] = None
    table_number: Optional[str] = None
    completed_at: Optional[datetime] = None

    def to_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "id": self.id,
            "businessId": self.business_id,
            "customerPhone": self.customer_identity,
            "items": [i.to_dict() for i in self.items],
            "total": float(self.total),
            "status": self.status.value,
            "createdAt": _iso(self.created_at),
        }
        if self.customer_name:
            record["customerName"] = self.customer_name
        if self.table_number:
            record["tableNumber"] = self.table_number
        if self.completed_at:
            record["completedAt"] = _iso(self.completed_at)
        return record

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Order":
        return cls(
            id=str(record["id"]),
            business_id=str(record["businessId"]),
            customer_identity=str(record["customerPhone"]),
            items=[ParsedItem.from_dict(i) for i in record.get("items") or []],
            total=Decimal(str(record["total"])),
            status=OrderStatus(record["status"]),
            created_at=_parse_dt(record.get("createdAt")) or _utcnow(),
            customer_name=record.get("customerName"),
            table_number=record.get("tableNumber"),
            completed_at=_parse_dt(record.get("completedAt")),
        )


@dataclass
class TransitionResult:
    order: Order
    changed: bool


# -------------------
# Storage
# -------------------
class OrderStore:
    """SQLAlchemy-backed order storage. Each call uses its own short session."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @staticmethod
    def _to_domain(row: OrderRecord) -> Order:
        items = [ParsedItem.from_dict(i) for i in json.loads(row.items_json or "[]")]
        return Order(
            id=row.id,
            business_id=row.business_id,
            customer_identity=row.customer_phone,
            items=items,
            total=Decimal(str(row.total)),
            status=OrderStatus(row.status),
            created_at=_parse_dt(row.created_at) or _utcnow(),
            customer_name=row.customer_name,
            table_number=row.table_number,
            completed_at=_parse_dt(row.completed_at),
        )

    def add(self, order: Order) -> Order:
        with self._session_factory() as db:
            db.add(
                OrderRecord(
                    id=order.id,
                    business_id=order.business_id,
                    customer_phone=order.customer_identity,
                    customer_name=order.customer_name,
                    table_number=order.table_number,
                    items_json=json.dumps([i.to_dict() for i in order.items], ensure_ascii=False),
                    total=order.total,
                    status=order.status.value,
                    created_at=order.created_at,
                    completed_at=order.completed_at,
                )
            )
            db.commit()
        return order

    def get(self, order_id: str) -> Optional[Order]:
        with self._session_factory() as db:
            row = db.get(OrderRecord, order_id)
            return self._to_domain(row) if row else None

    def set_status(self, order_id: str, status: OrderStatus, completed_at: Optional[datetime] = None) -> Optional[Order]:
        with self._session_factory() as db:
            row = db.get(OrderRecord, order_id)
            if not row:
                return None
            row.status = status.value
            if completed_at:
                row.completed_at = completed_at
            db.commit()
            return self._to_domain(row)

    def list_for_business(self, business_id: str) -> List[Order]:
        with self._session_factory() as db:
            rows = (
                db.query(OrderRecord)
                .filter(OrderRecord.business_id == business_id)
                .order_by(OrderRecord.created_at.desc(), OrderRecord.id.desc())
                .all()
            )
            return [self._to_domain(r) for r in rows]

    def latest_open_for_customer(self, customer_identity: str) -> Optional[Order]:
        statuses = [s.value for s in CHECK_IN_WINDOW]
        with self._session_factory() as db:
            row = (
                db.query(OrderRecord)
                .filter(OrderRecord.customer_phone == customer_identity, OrderRecord.status.in_(statuses))
                .order_by(OrderRecord.created_at.desc(), OrderRecord.id.desc())
                .first()
            )
            return self._to_domain(row) if row else None


# -------------------
# Lifecycle
# -------------------
class OrderLifecycleManager:
    """Owns order status. awaiting_payment -> paid -> preparing -> complete, never backwards.

    Side effects (customer messages, merchant forwarding, check-in timers) run
    only when a transition actually changes the status; replaying the same
    transition is a silent no-op. Message delivery failures are logged and do
    not undo the committed status.
    """

    def __init__(
        self,
        store: OrderStore,
        notifier: "Notifier",
        tenants: "TenantDirectory",
        scheduler: Optional["CheckInScheduler"] = None,
        forwarder: Optional["MerchantForwarder"] = None,
        locks: Optional[KeyedLocks] = None,
    ):
        self.store = store
        self.notifier = notifier
        self.tenants = tenants
        self.scheduler = scheduler
        self.forwarder = forwarder
        self.locks = locks or KeyedLocks()

    # --- reads ---
    def get_order(self, order_id: str) -> Order:
        order = self.store.get(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    def list_orders(self, business_id: str) -> List[Order]:
        return self.store.list_for_business(business_id)

    def latest_open_order(self, customer_identity: str) -> Optional[Order]:
        return self.store.latest_open_for_customer(customer_identity)

    # --- creation ---
    def create_order(self, business_id: str, customer_identity: str, parsed: ParsedOrder) -> Order:
        order = Order(
            id=new_order_id(),
            business_id=business_id,
            customer_identity=customer_identity,
            items=list(parsed.items),
            total=parsed.total,
            customer_name=parsed.customer_name,
            table_number=parsed.table_number,
        )
        self.store.add(order)
        logger.info("Order %s created for %s (%s items, total %s)", order.id, business_id, len(order.items), order.total)
        return order

    # --- transitions ---
    async def confirm_payment(self, order_id: str, amount_paid: Optional[Decimal] = None) -> TransitionResult:
        return await self._transition(order_id, OrderStatus.PAID, amount_paid=amount_paid)

    async def update_status(self, order_id: str, status: OrderStatus, notify: bool = True) -> TransitionResult:
        """Merchant or check-in driven transition. `notify=False` skips the customer message."""
        return await self._transition(order_id, OrderStatus(status), notify=notify)

    async def _transition(
        self,
        order_id: str,
        target: OrderStatus,
        amount_paid: Optional[Decimal] = None,
        notify: bool = True,
    ) -> TransitionResult:
        async with self.locks.hold(order_key(order_id)):
            order = self.store.get(order_id)
            if order is None:
                raise OrderNotFound(order_id)
            if order.status is target:
                logger.debug("Order %s already %s", order_id, target.value)
                return TransitionResult(order, changed=False)
            if not can_transition(order.status, target):
                raise InvalidTransition(order_id, order.status.value, target.value)
            if target is OrderStatus.PAID and amount_paid is not None and Decimal(str(amount_paid)) < order.total:
                raise PaymentMismatch(f"Order {order_id} total is {order.total}, received {amount_paid}")

            completed_at = _utcnow() if target is OrderStatus.COMPLETE else None
            previous = order.status
            order = self.store.set_status(order_id, target, completed_at) or order
            logger.info("Order %s: %s -> %s", order_id, previous.value, target.value)

            # timers are armed/cancelled under the order lock so they follow commit order
            tenant = self.tenants.get(order.business_id)
            if self.scheduler:
                if target is OrderStatus.PAID and tenant:
                    self.scheduler.arm(order, tenant)
                elif target not in CHECK_IN_WINDOW:
                    self.scheduler.cancel(order_id)

        if notify:
            await self._announce(order, tenant)
        return TransitionResult(order, changed=True)

    async def _announce(self, order: Order, tenant: Any) -> None:
        if order.status is OrderStatus.PAID:
            await self._notify(
                order.customer_identity,
                f"✅ Payment confirmed!\n\nOrder #{order.id} is being prepared.\n"
                "You'll receive a message when it's ready for pickup.\n\nThank you for your order!",
            )
            if self.forwarder and tenant:
                try:
                    await self.forwarder.forward(order, tenant)
                except Exception:
                    logger.exception("Failed to forward order %s to %s", order.id, order.business_id)
        elif order.status is OrderStatus.COMPLETE:
            await self._notify(order.customer_identity, f"🎉 Order #{order.id} is ready for pickup!")

    async def _notify(self, recipient: str, text: str) -> None:
        try:
            await self.notifier.send(recipient, text)
        except Exception:
            logger.exception("Failed to notify %s", recipient)


def order_summary(order: Order, currency: Optional[str] = None) -> str:
    summary, _total = build_summary(order.items, currency_symbol=currency_symbol(currency))
    return summary
