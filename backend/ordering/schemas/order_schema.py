from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ordering.models.order import Order


class CancelOrderIn(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class UpdateStatusIn(BaseModel):
    status: str
    note: Optional[str] = Field(None, max_length=500)


class AssignDriverIn(BaseModel):
    driver_id: int = Field(..., gt=0)


class RateOrderIn(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    review: Optional[str] = Field(None, max_length=1000)


class InternalNotesIn(BaseModel):
    notes: str = Field(..., min_length=1, max_length=2000)


class OrderItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    product_id: int
    product_name: str
    product_image: str
    quantity: int
    customization: Optional[Dict[str, Any]] = None
    add_ons: List[Any] = []
    notes: Optional[str] = None
    unit_price: Decimal
    total_price: Decimal


class OrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    order_number: str
    user_id: int
    store_id: int
    status: str
    payment_status: str
    payment_method: str
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    delivery_fee: Decimal
    total: Decimal
    currency: str
    promo_code_id: Optional[int] = None
    delivery_address: Optional[str] = None
    notes: Optional[str] = None
    internal_notes: Optional[str] = None
    assigned_driver_id: Optional[int] = None
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    refund_amount: Optional[Decimal] = None
    refund_status: Optional[str] = None
    actual_ready_time: Optional[datetime] = None
    picked_up_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime


def order_payload(order: Order, include_items: bool = True, is_admin: bool = False) -> Dict:
    body = OrderOut.model_validate(order).model_dump()
    if not is_admin:
        body.pop("internal_notes", None)
    if include_items:
        body["items"] = [OrderItemOut.model_validate(it).model_dump() for it in order.items]
    return body
