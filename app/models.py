from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, String, Text

from .db import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Business(Base):
    __tablename__ = "businesses"
    id = Column(String, primary_key=True)  # slug
    name = Column(String, nullable=False)
    phone_number = Column(String, unique=True, index=True, nullable=True)
    email = Column(String, unique=True, index=True, nullable=True)
    password_hash = Column(String, nullable=True)
    currency = Column(String, default="USD")
    menu_json = Column(Text, default="{}")  # {item: price}
    inventory_json = Column(Text, default="{}")  # {item: quantity}
    check_in_enabled = Column(Boolean, default=True)
    check_in_minutes = Column(Integer, nullable=True)


class OrderRecord(Base):
    __tablename__ = "orders"
    id = Column(String, primary_key=True)
    business_id = Column(String, index=True, nullable=False)
    customer_phone = Column(String, index=True, nullable=False)
    customer_name = Column(String, nullable=True)
    table_number = Column(String, nullable=True)
    items_json = Column(Text, default="[]")
    total = Column(Numeric(10, 2), nullable=False)
    status = Column(String, default="awaiting_payment")  # awaiting_payment | paid | preparing | complete
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    completed_at = Column(DateTime(timezone=True), nullable=True)
