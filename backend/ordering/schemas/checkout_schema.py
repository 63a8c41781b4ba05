from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class CheckoutItem(BaseModel):
    """A cart line frozen at session creation; product details are copied by value."""

    item_id: int
    product_id: int
    product_name: str
    product_image: str = ""
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    customization: Optional[Dict[str, Any]] = None
    add_ons: List[Any] = Field(default_factory=list)
    notes: Optional[str] = None


class AppliedPromo(BaseModel):
    code: str
    discount_amount: Decimal


class CheckoutSession(BaseModel):
    id: str
    user_id: int
    cart_id: int
    items: List[CheckoutItem]
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    delivery_fee: Decimal
    total: Decimal
    delivery_address: Optional[str] = None
    promo_code: Optional[AppliedPromo] = None
    created_at: datetime
    expires_at: datetime


class ApplyCouponIn(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)


class ConfirmCheckoutIn(BaseModel):
    payment_method: str = Field(..., min_length=1, max_length=64)
