import random
import string
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from ordering.db import Base
from ordering.db.types import Money

PENDING_PAYMENT = "pending_payment"
CONFIRMED = "confirmed"
PREPARING = "preparing"
READY = "ready"
PICKED_UP = "picked_up"
COMPLETED = "completed"
CANCELLED = "cancelled"

ORDER_STATUSES = (
    PENDING_PAYMENT,
    CONFIRMED,
    PREPARING,
    READY,
    PICKED_UP,
    COMPLETED,
    CANCELLED,
)

# source status -> statuses it may move to
STATUS_TRANSITIONS = {
    PENDING_PAYMENT: (CONFIRMED, CANCELLED),
    CONFIRMED: (PREPARING, CANCELLED),
    PREPARING: (READY, CANCELLED),
    READY: (PICKED_UP, CANCELLED),
    PICKED_UP: (COMPLETED,),
    COMPLETED: (),
    CANCELLED: (),
}

PAYMENT_PENDING = "pending"
PAYMENT_COMPLETED = "completed"
REFUND_PENDING = "pending"


def _now():
    return datetime.now(timezone.utc)


def _base36(n: int) -> str:
    digits = string.digits + string.ascii_uppercase
    out = ""
    while n:
        n, r = divmod(n, 36)
        out = digits[r] + out
    return out or "0"


def generate_order_number() -> str:
    stamp = _base36(int(_now().timestamp() * 1000))
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=4))
    return f"ORD-{stamp}-{suffix}"


class Order(Base):
    __tablename__ = "orders"
    id = Column(Integer, primary_key=True, autoincrement=True)
    order_number = Column(
        String(32), unique=True, nullable=False, index=True, default=generate_order_number
    )
    user_id = Column(Integer, nullable=False, index=True)
    store_id = Column(Integer, ForeignKey("stores.id"), nullable=False, index=True)
    status = Column(String(32), nullable=False, default=PENDING_PAYMENT, index=True)
    payment_status = Column(String(32), nullable=False, default=PAYMENT_PENDING)
    payment_method = Column(String(64), nullable=False)

    subtotal = Column(Money(), nullable=False)
    discount = Column(Money(), nullable=False, default=0)
    tax = Column(Money(), nullable=False, default=0)
    delivery_fee = Column(Money(), nullable=False, default=0)
    total = Column(Money(), nullable=False)
    currency = Column(String(8), nullable=False, default="USD")

    promo_code_id = Column(Integer, ForeignKey("promo_codes.id"), nullable=True)
    delivery_address = Column(String(512), nullable=True)
    notes = Column(Text, nullable=True)
    internal_notes = Column(Text, nullable=True)  # admin only
    assigned_driver_id = Column(Integer, nullable=True)

    cancellation_reason = Column(String(500), nullable=True)
    cancelled_by = Column(String(16), nullable=True)  # customer, store, system, admin
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    refund_amount = Column(Money(), nullable=True)
    refund_status = Column(String(16), nullable=True)

    actual_ready_time = Column(DateTime(timezone=True), nullable=True)
    picked_up_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    history = relationship(
        "OrderStatusHistory",
        back_populates="order",
        order_by="OrderStatusHistory.id",
    )


class OrderItem(Base):
    __tablename__ = "order_items"
    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, nullable=False, index=True)
    product_name = Column(String(256), nullable=False)
    product_image = Column(String(512), nullable=False, default="")
    quantity = Column(Integer, nullable=False)
    customization = Column(JSON, nullable=True)
    add_ons = Column(JSON, nullable=False, default=list)
    notes = Column(String(500), nullable=True)
    unit_price = Column(Money(), nullable=False)
    total_price = Column(Money(), nullable=False)

    order = relationship("Order", back_populates="items")


class OrderStatusHistory(Base):
    __tablename__ = "order_status_history"
    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    status = Column(String(32), nullable=False)
    notes = Column(Text, nullable=True)
    changed_by = Column(String(16), nullable=False)  # system, customer, store, admin
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)

    order = relationship("Order", back_populates="history")
