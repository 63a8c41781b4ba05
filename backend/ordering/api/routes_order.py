from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ordering.api.deps import get_current_role, get_current_user_id, require_admin
from ordering.db import get_db
from ordering.schemas.cart_schema import cart_payload
from ordering.schemas.order_schema import (
    AssignDriverIn,
    CancelOrderIn,
    InternalNotesIn,
    RateOrderIn,
    UpdateStatusIn,
    order_payload,
)
from ordering.services.order_service import ROLE_ADMIN, OrderService
from ordering.services.session_store import CheckoutSessionStore, get_session_store

router = APIRouter(prefix="/api/orders", tags=["orders"])


def _service(
    db: Session = Depends(get_db),
    store: CheckoutSessionStore = Depends(get_session_store),
) -> OrderService:
    return OrderService(db, session_store=store)


@router.get("", summary="List orders")
def list_orders(
    status: Optional[str] = Query(None),
    store_id: Optional[int] = Query(None),
    customer_id: Optional[int] = Query(None, description="admin only"),
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    user_id: int = Depends(get_current_user_id),
    role: str = Depends(get_current_role),
    svc: OrderService = Depends(_service),
):
    orders, total = svc.list_orders(
        user_id,
        role,
        status=status,
        store_id=store_id,
        customer_id=customer_id,
        page=page,
        size=size,
    )
    is_admin = role == ROLE_ADMIN
    return {
        "items": [order_payload(o, include_items=False, is_admin=is_admin) for o in orders],
        "total": total,
        "page": page,
        "size": size,
    }


@router.get("/{order_id}", summary="Order detail")
def get_order(
    order_id: int,
    user_id: int = Depends(get_current_user_id),
    role: str = Depends(get_current_role),
    svc: OrderService = Depends(_service),
):
    order = svc.get_order(order_id, user_id, role)
    return order_payload(order, is_admin=role == ROLE_ADMIN)


@router.get("/{order_id}/tracking", summary="Order status history")
def get_tracking(
    order_id: int,
    user_id: int = Depends(get_current_user_id),
    role: str = Depends(get_current_role),
    svc: OrderService = Depends(_service),
):
    return svc.get_tracking(order_id, user_id, role)


@router.post("/{order_id}/cancel", summary="Cancel order (customer)")
def cancel_order(
    order_id: int,
    payload: CancelOrderIn,
    user_id: int = Depends(get_current_user_id),
    svc: OrderService = Depends(_service),
):
    return order_payload(svc.cancel_order(order_id, user_id, payload.reason))


@router.post("/{order_id}/rate", summary="Rate a completed order")
def rate_order(
    order_id: int,
    payload: RateOrderIn,
    user_id: int = Depends(get_current_user_id),
    svc: OrderService = Depends(_service),
):
    svc.rate_order(order_id, user_id, payload.rating, payload.review)
    return {"message": "Thank you for your feedback"}


@router.post("/{order_id}/reorder", summary="Copy order items into the cart")
def reorder(
    order_id: int,
    user_id: int = Depends(get_current_user_id),
    svc: OrderService = Depends(_service),
):
    return cart_payload(svc.reorder(order_id, user_id))


@router.post("/{order_id}/notes", summary="Append internal notes (admin)")
def add_internal_notes(
    order_id: int,
    payload: InternalNotesIn,
    _: str = Depends(require_admin),
    svc: OrderService = Depends(_service),
):
    return order_payload(svc.add_internal_notes(order_id, payload.notes), is_admin=True)


@router.patch("/{order_id}/status", summary="Change order status (admin)")
def update_status(
    order_id: int,
    payload: UpdateStatusIn,
    _: str = Depends(require_admin),
    svc: OrderService = Depends(_service),
):
    order = svc.update_status(order_id, payload.status, changed_by=ROLE_ADMIN, note=payload.note)
    return order_payload(order, is_admin=True)


@router.post("/{order_id}/driver", summary="Assign driver (admin)")
def assign_driver(
    order_id: int,
    payload: AssignDriverIn,
    _: str = Depends(require_admin),
    svc: OrderService = Depends(_service),
):
    return order_payload(svc.assign_driver(order_id, payload.driver_id), is_admin=True)
