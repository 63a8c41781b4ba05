from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ordering.config import settings
from ordering.models.cart import CART_ACTIVE, Cart
from ordering.models.cart_item import CartItem
from ordering.models.product import Product
from ordering.repositories.cart_repo import CartRepository
from ordering.repositories.product_repo import ProductRepository
from ordering.services.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from ordering.services.pricing import (
    ZERO,
    clamp_discount,
    compute_totals,
    quantize_money,
    subtotal_of,
    to_decimal,
)
from ordering.utils.logging import get_logger
from ordering.utils.timeutils import as_utc, utcnow

logger = get_logger(__name__)

ISSUE_PRODUCT_MISSING = "product_missing"
ISSUE_PRODUCT_UNAVAILABLE = "product_unavailable"
ISSUE_PRICE_CHANGED = "price_changed"


class CartService:
    def __init__(self, db: Session):
        self.db = db
        self.cart_repo = CartRepository(db)
        self.product_repo = ProductRepository(db)

    def _now(self) -> datetime:
        return utcnow()

    # --- lookups ---

    def _drop_if_expired(self, cart: Cart) -> bool:
        """Delete an active cart whose TTL has passed; True when it was dropped."""
        if not cart.expires_at or as_utc(cart.expires_at) > self._now():
            return False
        logger.info("Cart %s for user %s expired, removing it", cart.id, cart.user_id)
        self.cart_repo.delete(cart)
        self.db.commit()
        return True

    def _active_cart(self, user_id: int) -> Optional[Cart]:
        cart = self.cart_repo.get_active_by_user(user_id)
        if cart and self._drop_if_expired(cart):
            return None
        return cart

    def _require_active_cart(self, user_id: int) -> Cart:
        cart = self._active_cart(user_id)
        if not cart:
            raise NotFoundError("No active cart found")
        return cart

    def _owned_item(self, user_id: int, item_id: int) -> CartItem:
        item = self.cart_repo.get_item(item_id)
        if not item:
            raise NotFoundError("Cart item not found")
        cart = item.cart
        if cart.user_id != user_id:
            raise ForbiddenError("Cart item does not belong to user")
        if cart.status != CART_ACTIVE or self._drop_if_expired(cart):
            raise NotFoundError("Cart not found")
        return item

    def get_cart(self, user_id: int) -> Optional[Cart]:
        """Active cart or None; never creates one."""
        return self._active_cart(user_id)

    def get_or_create_cart(self, user_id: int, store_id: int) -> Cart:
        cart = self._active_cart(user_id)
        if cart:
            return cart
        expires = self._now() + timedelta(seconds=settings.CART_TTL_SECONDS)
        try:
            cart = self.cart_repo.create(user_id, store_id, expires)
        except IntegrityError:
            # lost the race against a concurrent request that created the active cart
            self.db.rollback()
            cart = self.cart_repo.get_active_by_user(user_id)
            if cart is None:
                raise
            logger.warning("Concurrent cart creation for user %s, reusing cart %s", user_id, cart.id)
            return cart
        logger.info("Created cart %s for user %s (store %s)", cart.id, user_id, store_id)
        return cart

    # --- totals ---

    def recalculate(self, cart: Cart) -> Cart:
        """Refresh the cached totals from the current items; caller commits."""
        discount = clamp_discount(cart.discount, subtotal_of(cart.items))
        totals = compute_totals(cart.items, discount)
        cart.subtotal = totals.subtotal
        cart.discount = totals.discount
        cart.tax = totals.tax
        cart.delivery_fee = totals.delivery_fee
        cart.total = totals.total
        self.db.flush()
        return cart

    # --- commands ---

    def add_line(
        self,
        cart: Cart,
        product: Product,
        quantity: int,
        customization: Optional[Dict] = None,
        add_ons: Optional[List] = None,
        notes: Optional[str] = None,
    ) -> CartItem:
        unit_price = to_decimal(product.base_price)
        return self.cart_repo.add_item(
            cart,
            product_id=product.id,
            quantity=quantity,
            customization=customization,
            add_ons=list(add_ons or []),
            notes=notes,
            unit_price=unit_price,
            total_price=unit_price * quantity,
        )

    def add_item(
        self,
        user_id: int,
        product_id: int,
        quantity: int,
        customization: Optional[Dict] = None,
        add_ons: Optional[List] = None,
        notes: Optional[str] = None,
    ) -> Cart:
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")

        product = self.product_repo.get(product_id)
        if not product:
            raise NotFoundError("Product not found")
        if not product.is_available:
            raise ValidationError("Product is not available")

        store = self.product_repo.get_store(product.store_id)
        if not store:
            raise NotFoundError("Store not found")
        if not store.is_active:
            raise ValidationError("Store is not active")

        existing = self._active_cart(user_id)
        if existing and existing.store_id != product.store_id:
            raise ConflictError(
                "Cannot add items from different stores. Please clear your cart first."
            )

        cart = existing or self.get_or_create_cart(user_id, product.store_id)
        if cart.store_id != product.store_id:
            # another request created a cart for a different store meanwhile
            raise ConflictError(
                "Cannot add items from different stores. Please clear your cart first."
            )

        self.add_line(cart, product, quantity, customization, add_ons, notes)
        self.recalculate(cart)
        self.db.commit()
        logger.info("Added product %s x%s to cart %s", product_id, quantity, cart.id)
        return cart

    def update_item_quantity(self, user_id: int, item_id: int, quantity: int) -> Cart:
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")

        item = self._owned_item(user_id, item_id)
        product = self.product_repo.get(item.product_id)
        if not product or not product.is_available:
            raise ValidationError("Product is no longer available")

        item.quantity = quantity
        item.total_price = to_decimal(item.unit_price) * quantity
        cart = item.cart
        self.recalculate(cart)
        self.db.commit()
        return cart

    def remove_item(self, user_id: int, item_id: int) -> Optional[Cart]:
        """Returns the updated cart, or None when the last item took the cart with it."""
        item = self._owned_item(user_id, item_id)
        cart = item.cart
        self.cart_repo.remove_item(cart, item)

        if not cart.items:
            logger.info("Cart %s is empty, deleting it", cart.id)
            self.cart_repo.delete(cart)
            self.db.commit()
            return None

        self.recalculate(cart)
        self.db.commit()
        return cart

    def clear_cart(self, user_id: int):
        cart = self._require_active_cart(user_id)
        cart_id = cart.id
        self.cart_repo.delete(cart)
        self.db.commit()
        logger.info("Cleared cart %s for user %s", cart_id, user_id)

    def reset_for_store(self, user_id: int, store_id: int) -> Cart:
        """Active cart bound to store_id; a cart from another store is emptied and rebound."""
        cart = self._active_cart(user_id)
        if cart and cart.store_id != store_id:
            cart.items.clear()
            cart.store_id = store_id
            cart.discount = ZERO
            cart.promo_code = None
            self.db.flush()
        return cart or self.get_or_create_cart(user_id, store_id)

    def set_delivery_address(self, user_id: int, address: str) -> Cart:
        cart = self._require_active_cart(user_id)
        cart.delivery_address = address
        # delivery fee may one day depend on the address
        self.recalculate(cart)
        self.db.commit()
        return cart

    def set_notes(self, user_id: int, notes: str) -> Cart:
        cart = self._require_active_cart(user_id)
        cart.notes = notes
        self.db.commit()
        return cart

    # --- queries ---

    def get_summary(self, user_id: int) -> Dict:
        cart = self._active_cart(user_id)
        if not cart:
            return {
                "item_count": 0,
                "subtotal": ZERO,
                "discount": ZERO,
                "tax": ZERO,
                "delivery_fee": ZERO,
                "total": ZERO,
            }
        return {
            "item_count": len(cart.items),
            "subtotal": to_decimal(cart.subtotal),
            "discount": to_decimal(cart.discount),
            "tax": to_decimal(cart.tax),
            "delivery_fee": to_decimal(cart.delivery_fee),
            "total": to_decimal(cart.total),
        }

    def validate_cart(self, user_id: int) -> Dict:
        """
        Non-destructive check of the active cart against the catalogue.

        Missing/unavailable products and price drift are reported as issues;
        nothing is raised so the caller decides whether to block.
        """
        cart = self._active_cart(user_id)
        if not cart:
            return {"is_valid": True, "issues": []}

        products = self.product_repo.get_many(it.product_id for it in cart.items)
        issues = []
        for item in cart.items:
            product = products.get(item.product_id)
            if not product:
                issues.append(
                    {
                        "item_id": item.id,
                        "product_id": item.product_id,
                        "code": ISSUE_PRODUCT_MISSING,
                        "issue": "Product no longer exists",
                    }
                )
                continue
            if not product.is_available:
                issues.append(
                    {
                        "item_id": item.id,
                        "product_id": product.id,
                        "code": ISSUE_PRODUCT_UNAVAILABLE,
                        "issue": "Product is no longer available",
                    }
                )
            captured = to_decimal(item.unit_price)
            current = to_decimal(product.base_price)
            if captured != current:
                issues.append(
                    {
                        "item_id": item.id,
                        "product_id": product.id,
                        "code": ISSUE_PRICE_CHANGED,
                        "issue": f"Price has changed from {quantize_money(captured)} to {quantize_money(current)}",
                    }
                )
        return {"is_valid": not issues, "issues": issues}

    # --- maintenance ---

    def expire_stale_carts(self) -> List[int]:
        """Delete active carts past their expiry; returns their ids."""
        expired = self.cart_repo.list_expired_active(self._now())
        ids = []
        for cart in expired:
            ids.append(cart.id)
            self.db.delete(cart)
        self.db.commit()
        if ids:
            logger.info("Expired %d stale carts", len(ids))
        return ids
