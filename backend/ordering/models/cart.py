from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import relationship

from ordering.db import Base
from ordering.db.types import Money

CART_ACTIVE = "active"
CART_CHECKED_OUT = "checked_out"


class Cart(Base):
    __tablename__ = "carts"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    store_id = Column(Integer, ForeignKey("stores.id"), nullable=False, index=True)

    subtotal = Column(Money(), nullable=False, default=0)
    discount = Column(Money(), nullable=False, default=0)
    tax = Column(Money(), nullable=False, default=0)
    delivery_fee = Column(Money(), nullable=False, default=0)
    total = Column(Money(), nullable=False, default=0)

    promo_code = Column(String(64), nullable=True)
    delivery_address = Column(String(512), nullable=True)
    notes = Column(Text, nullable=True)
    status = Column(String(32), nullable=False, default=CART_ACTIVE)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    items = relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.id",
    )

    __table_args__ = (
        # one active cart per user
        Index(
            "uq_carts_active_user",
            "user_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )
