from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ordering.api.deps import get_current_user_id
from ordering.db import get_db
from ordering.schemas.checkout_schema import ApplyCouponIn, ConfirmCheckoutIn
from ordering.schemas.order_schema import order_payload
from ordering.services.checkout_service import CheckoutService
from ordering.services.order_service import OrderService
from ordering.services.session_store import CheckoutSessionStore, get_session_store

router = APIRouter(prefix="/api/checkout", tags=["checkout"])


@router.post("/validate", summary="Check whether the cart can be checked out")
def validate_checkout(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    store: CheckoutSessionStore = Depends(get_session_store),
):
    return CheckoutService(db, store).validate_checkout(user_id)


@router.get("/payment-methods", summary="Available payment methods")
def payment_methods(
    db: Session = Depends(get_db),
    store: CheckoutSessionStore = Depends(get_session_store),
):
    return CheckoutService(db, store).get_payment_methods()


@router.get("/delivery-charges", summary="Delivery fee quote")
def delivery_charges(
    address: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
    store: CheckoutSessionStore = Depends(get_session_store),
):
    fee = CheckoutService(db, store).calculate_delivery_charges(address)
    return {"address": address, "delivery_fee": fee}


@router.post("/session", summary="Create checkout session from the active cart")
def create_session(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    store: CheckoutSessionStore = Depends(get_session_store),
):
    return CheckoutService(db, store).create_session(user_id).model_dump()


@router.get("/session/{session_id}", summary="Get checkout session")
def get_session(
    session_id: str,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    store: CheckoutSessionStore = Depends(get_session_store),
):
    return CheckoutService(db, store).get_session(user_id, session_id).model_dump()


@router.post("/session/{session_id}/coupon", summary="Apply promo code")
def apply_coupon(
    session_id: str,
    payload: ApplyCouponIn,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    store: CheckoutSessionStore = Depends(get_session_store),
):
    svc = CheckoutService(db, store)
    return svc.apply_coupon(user_id, session_id, payload.code).model_dump()


@router.delete("/session/{session_id}/coupon", summary="Remove promo code")
def remove_coupon(
    session_id: str,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    store: CheckoutSessionStore = Depends(get_session_store),
):
    return CheckoutService(db, store).remove_coupon(user_id, session_id).model_dump()


@router.post("/session/{session_id}/confirm", summary="Place the order", status_code=201)
def confirm(
    session_id: str,
    payload: ConfirmCheckoutIn,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    store: CheckoutSessionStore = Depends(get_session_store),
):
    svc = OrderService(db, session_store=store)
    order = svc.confirm_checkout(user_id, session_id, payload.payment_method)
    return order_payload(order)
