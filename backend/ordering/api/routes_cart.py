from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ordering.api.deps import get_current_user_id
from ordering.db import get_db
from ordering.schemas.cart_schema import (
    AddItemIn,
    SetAddressIn,
    SetNotesIn,
    UpdateQuantityIn,
    cart_payload,
)
from ordering.services.cart_service import CartService

router = APIRouter(prefix="/api/cart", tags=["cart"])


@router.get("", summary="Get cart")
def get_cart(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    svc = CartService(db)
    return cart_payload(svc.get_cart(user_id))


@router.get("/summary", summary="Cart totals")
def get_summary(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    return CartService(db).get_summary(user_id)


@router.get("/validate", summary="Check cart items against the catalogue")
def validate_cart(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    return CartService(db).validate_cart(user_id)


@router.post("/items", summary="Add item to cart")
def add_item(
    payload: AddItemIn,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    svc = CartService(db)
    cart = svc.add_item(
        user_id,
        payload.product_id,
        payload.quantity,
        customization=payload.customization,
        add_ons=payload.add_ons,
        notes=payload.notes,
    )
    return cart_payload(cart)


@router.patch("/items/{item_id}", summary="Change item quantity")
def update_item(
    item_id: int,
    payload: UpdateQuantityIn,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    cart = CartService(db).update_item_quantity(user_id, item_id, payload.quantity)
    return cart_payload(cart)


@router.delete("/items/{item_id}", summary="Remove item")
def remove_item(
    item_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    cart = CartService(db).remove_item(user_id, item_id)
    return cart_payload(cart)


@router.delete("", summary="Clear cart")
def clear_cart(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    CartService(db).clear_cart(user_id)
    return {"message": "Cart cleared successfully"}


@router.patch("/address", summary="Set delivery address")
def set_address(
    payload: SetAddressIn,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return cart_payload(CartService(db).set_delivery_address(user_id, payload.address))


@router.patch("/notes", summary="Set order notes")
def set_notes(
    payload: SetNotesIn,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return cart_payload(CartService(db).set_notes(user_id, payload.notes))
