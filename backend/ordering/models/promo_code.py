from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
)

from ordering.db import Base
from ordering.db.types import Money

DISCOUNT_PERCENTAGE = "percentage"
DISCOUNT_FIXED = "fixed"


class PromoCode(Base):
    __tablename__ = "promo_codes"
    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(64), unique=True, nullable=False, index=True)
    description = Column(String(255), nullable=True)
    discount_type = Column(String(16), nullable=False)  # percentage, fixed
    discount_value = Column(Money(), nullable=False)
    min_order_amount = Column(Money(), nullable=True)
    max_discount_amount = Column(Money(), nullable=True)
    usage_limit = Column(Integer, nullable=True)
    usage_count = Column(Integer, nullable=False, default=0)
    user_usage_limit = Column(Integer, nullable=True)
    valid_from = Column(DateTime(timezone=True), nullable=False)
    valid_until = Column(DateTime(timezone=True), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, index=True)


class PromoCodeUsage(Base):
    __tablename__ = "promo_code_usages"
    id = Column(Integer, primary_key=True, autoincrement=True)
    promo_code_id = Column(
        Integer, ForeignKey("promo_codes.id"), nullable=False, index=True
    )
    user_id = Column(Integer, nullable=False, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    discount_amount = Column(Money(), nullable=False)
    used_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
