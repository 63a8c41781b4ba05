from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ordering.models.cart import Cart


class AddItemIn(BaseModel):
    product_id: int = Field(..., gt=0)
    quantity: int = Field(..., ge=1)
    customization: Optional[Dict[str, str]] = None
    add_ons: Optional[List[int]] = None
    notes: Optional[str] = Field(None, max_length=500)


class UpdateQuantityIn(BaseModel):
    quantity: int = Field(..., ge=1)


class SetAddressIn(BaseModel):
    address: str = Field(..., min_length=1, max_length=512)


class SetNotesIn(BaseModel):
    notes: str = Field(..., max_length=1000)


class CartItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    product_id: int
    quantity: int
    customization: Optional[Dict[str, Any]] = None
    add_ons: List[Any] = []
    notes: Optional[str] = None
    unit_price: Decimal
    total_price: Decimal


class CartOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    user_id: int
    store_id: int
    status: str
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    delivery_fee: Decimal
    total: Decimal
    promo_code: Optional[str] = None
    delivery_address: Optional[str] = None
    notes: Optional[str] = None
    expires_at: Optional[datetime] = None


def cart_payload(cart: Optional[Cart]) -> Dict:
    """Cart response; an absent cart gets the empty shape instead of a 404."""
    if cart is None:
        return {
            "cart": None,
            "items": [],
            "item_count": 0,
            "subtotal": 0,
            "discount": 0,
            "tax": 0,
            "delivery_fee": 0,
            "total": 0,
        }
    items = [CartItemOut.model_validate(it).model_dump() for it in cart.items]
    body = CartOut.model_validate(cart).model_dump()
    return {
        "cart": body,
        "items": items,
        "item_count": len(items),
        "subtotal": body["subtotal"],
        "discount": body["discount"],
        "tax": body["tax"],
        "delivery_fee": body["delivery_fee"],
        "total": body["total"],
    }
