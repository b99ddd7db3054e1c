from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from .db import Base, DB_SCHEMA


ORDER_STATUSES = ("open", "in_progress", "ready", "closed", "cancelled")
ITEM_STATUSES = ("new", "sent", "in_progress", "ready", "served", "cancelled")
STATIONS = ("barista", "shisha")
LEDGER_KINDS = ("charge", "payment")


class Product(Base):
    __tablename__ = "products"
    __table_args__ = ({"schema": DB_SCHEMA} if DB_SCHEMA else {})
    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(200))
    category: Mapped[str] = mapped_column(String(16), default="other")  # hot/cold/fresh/shisha/food/other
    price_cents: Mapped[int] = mapped_column(BigInteger, default=0)
    station: Mapped[str] = mapped_column(String(16), default="barista")
    is_archived: Mapped[int] = mapped_column(Integer, default=0)


class Customer(Base):
    __tablename__ = "customers"
    __table_args__ = ({"schema": DB_SCHEMA} if DB_SCHEMA else {})
    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(120))
    phone: Mapped[Optional[str]] = mapped_column(String(32), default=None)
    created_at: Mapped[Optional[datetime]] = mapped_column(DateTime(), server_default=func.now())


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = ({"schema": DB_SCHEMA} if DB_SCHEMA else {})
    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    table_label: Mapped[Optional[str]] = mapped_column(String(50), default=None)
    created_by: Mapped[str] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(DateTime())
    status: Mapped[str] = mapped_column(String(16), default="open")  # open/in_progress/ready/closed/cancelled
    customer_id: Mapped[Optional[str]] = mapped_column(String(36), default=None)


class OrderItem(Base):
    __tablename__ = "order_items"
    __table_args__ = ({"schema": DB_SCHEMA} if DB_SCHEMA else {})
    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    order_id: Mapped[str] = mapped_column(String(36), index=True)
    product_id: Mapped[str] = mapped_column(String(36))
    qty: Mapped[int] = mapped_column(Integer, default=1)
    unit_price_cents: Mapped[int] = mapped_column(BigInteger, default=0)  # snapshot at add-time
    notes: Mapped[Optional[str]] = mapped_column(String(200), default=None)
    station: Mapped[str] = mapped_column(String(16), default="barista")
    status: Mapped[str] = mapped_column(String(16), default="new")
    created_at: Mapped[datetime] = mapped_column(DateTime())


class Invoice(Base):
    __tablename__ = "invoices"
    __table_args__ = ({"schema": DB_SCHEMA} if DB_SCHEMA else {})
    order_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    subtotal_cents: Mapped[int] = mapped_column(BigInteger, default=0)
    discount_cents: Mapped[int] = mapped_column(BigInteger, default=0)
    total_cents: Mapped[int] = mapped_column(BigInteger, default=0)
    paid_cents: Mapped[int] = mapped_column(BigInteger, default=0)
    # amount moved to the customer ledger when the invoice went to credit
    credit_cents: Mapped[int] = mapped_column(BigInteger, default=0)
    status: Mapped[str] = mapped_column(String(16), default="open")  # open/paid/credit
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(), default=None)


class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = ({"schema": DB_SCHEMA} if DB_SCHEMA else {})
    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    order_id: Mapped[str] = mapped_column(String(36), index=True)
    amount_cents: Mapped[int] = mapped_column(BigInteger)
    received_by: Mapped[str] = mapped_column(String(64))
    received_at: Mapped[datetime] = mapped_column(DateTime())


class LedgerEntry(Base):
    __tablename__ = "ledger_entries"
    __table_args__ = ({"schema": DB_SCHEMA} if DB_SCHEMA else {})
    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    customer_id: Mapped[str] = mapped_column(String(36), index=True)
    kind: Mapped[str] = mapped_column(String(16))  # charge/payment
    amount_cents: Mapped[int] = mapped_column(BigInteger)
    order_id: Mapped[Optional[str]] = mapped_column(String(36), default=None)
    actor_user_id: Mapped[Optional[str]] = mapped_column(String(64), default=None)
    note: Mapped[Optional[str]] = mapped_column(String(240), default=None)
    at: Mapped[datetime] = mapped_column(DateTime())


class ActivityEvent(Base):
    __tablename__ = "activity_events"
    __table_args__ = ({"schema": DB_SCHEMA} if DB_SCHEMA else {})
    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    at: Mapped[datetime] = mapped_column(DateTime())
    actor_user_id: Mapped[Optional[str]] = mapped_column(String(64), default=None)
    type: Mapped[str] = mapped_column(String(64))
    payload_json: Mapped[str] = mapped_column(Text, default="{}")
