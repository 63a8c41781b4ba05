from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from ordering.models.cart import CART_ACTIVE, Cart
from ordering.models.cart_item import CartItem


class CartRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, cart_id: int) -> Optional[Cart]:
        return self.db.get(Cart, cart_id)

    def get_active_by_user(self, user_id: int) -> Optional[Cart]:
        return (
            self.db.query(Cart)
            .filter(Cart.user_id == user_id, Cart.status == CART_ACTIVE)
            .first()
        )

    def create(self, user_id: int, store_id: int, expires_at: datetime) -> Cart:
        c = Cart(
            user_id=user_id,
            store_id=store_id,
            status=CART_ACTIVE,
            expires_at=expires_at,
            subtotal=0,
            discount=0,
            tax=0,
            delivery_fee=0,
            total=0,
        )
        self.db.add(c)
        self.db.flush()
        return c

    def get_item(self, item_id: int) -> Optional[CartItem]:
        return self.db.get(CartItem, item_id)

    def add_item(self, cart: Cart, **fields) -> CartItem:
        item = CartItem(**fields)
        cart.items.append(item)
        self.db.flush()
        return item

    def remove_item(self, cart: Cart, item: CartItem):
        cart.items.remove(item)
        self.db.flush()

    def delete(self, cart: Cart):
        self.db.delete(cart)
        self.db.flush()

    def list_expired_active(self, now: datetime) -> List[Cart]:
        return (
            self.db.query(Cart)
            .filter(Cart.status == CART_ACTIVE, Cart.expires_at <= now)
            .all()
        )
