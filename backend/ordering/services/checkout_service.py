from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, List
from uuid import uuid4

from sqlalchemy.orm import Session

from ordering.config import settings
from ordering.models.cart import CART_ACTIVE
from ordering.models.promo_code import DISCOUNT_PERCENTAGE, PromoCode
from ordering.repositories.cart_repo import CartRepository
from ordering.repositories.product_repo import ProductRepository
from ordering.repositories.promo_repo import PromoCodeRepository
from ordering.schemas.checkout_schema import AppliedPromo, CheckoutItem, CheckoutSession
from ordering.services.cart_service import CartService
from ordering.services.exceptions import (
    ForbiddenError,
    NotFoundError,
    SessionExpiredError,
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
from ordering.services.session_store import CheckoutSessionStore
from ordering.utils.logging import get_logger
from ordering.utils.timeutils import as_utc, utcnow

logger = get_logger(__name__)

PAYMENT_METHODS = [
    {"id": "aba", "name": "ABA Bank", "type": "bank_transfer", "is_active": True},
    {"id": "acleda", "name": "ACLEDA Bank", "type": "bank_transfer", "is_active": True},
    {"id": "wing", "name": "Wing Money", "type": "mobile_wallet", "is_active": True},
    {"id": "cash", "name": "Cash on Delivery", "type": "cash", "is_active": True},
]


def promo_discount(promo: PromoCode, subtotal: Decimal) -> Decimal:
    """Discount a promo code grants on subtotal, after its cap and never above subtotal."""
    value = to_decimal(promo.discount_value)
    if promo.discount_type == DISCOUNT_PERCENTAGE:
        amount = subtotal * value / Decimal(100)
    else:
        amount = value
    cap = promo.max_discount_amount
    if cap and amount > to_decimal(cap):
        amount = to_decimal(cap)
    return clamp_discount(amount, subtotal)


class CheckoutService:
    """
    Checkout sessions: a time-boxed snapshot of the cart that coupons are
    priced against and that an order is eventually created from.

    Sessions expire at an absolute time (creation + TTL); activity does not
    extend them. Expiry is checked on every read, and expired sessions are
    also swept whenever a new session is created.
    """

    def __init__(self, db: Session, store: CheckoutSessionStore):
        self.db = db
        self.store = store
        self.carts = CartService(db)
        self.cart_repo = CartRepository(db)
        self.product_repo = ProductRepository(db)
        self.promo_repo = PromoCodeRepository(db)

    def _now(self) -> datetime:
        return utcnow()

    def validate_checkout(self, user_id: int) -> Dict:
        errors: List[str] = []
        warnings: List[str] = []

        cart = self.carts.get_cart(user_id)
        if not cart:
            errors.append("No active cart found")
            return {"is_valid": False, "errors": errors, "warnings": warnings}
        if not cart.items:
            errors.append("Cart is empty")
            return {"is_valid": False, "errors": errors, "warnings": warnings}

        if not cart.delivery_address:
            errors.append("Delivery address is required")

        products = self.product_repo.get_many(it.product_id for it in cart.items)
        for item in cart.items:
            product = products.get(item.product_id)
            if not product:
                errors.append(f"Product not found for item {item.id}")
                continue
            if not product.is_available:
                errors.append(f'Product "{product.name}" is no longer available')
            if to_decimal(product.base_price) != to_decimal(item.unit_price):
                warnings.append(
                    f'Price for "{product.name}" has changed from '
                    f"${quantize_money(item.unit_price)} to ${quantize_money(product.base_price)}"
                )

        return {"is_valid": not errors, "errors": errors, "warnings": warnings}

    def create_session(self, user_id: int) -> CheckoutSession:
        validation = self.validate_checkout(user_id)
        if not validation["is_valid"]:
            raise ValidationError(
                f"Checkout validation failed: {', '.join(validation['errors'])}"
            )

        cart = self.carts.get_cart(user_id)
        products = self.product_repo.get_many(it.product_id for it in cart.items)
        items = []
        for it in cart.items:
            product = products[it.product_id]
            items.append(
                CheckoutItem(
                    item_id=it.id,
                    product_id=product.id,
                    product_name=product.name,
                    product_image=product.image or "",
                    quantity=it.quantity,
                    unit_price=to_decimal(it.unit_price),
                    total_price=to_decimal(it.total_price),
                    customization=it.customization,
                    add_ons=list(it.add_ons or []),
                    notes=it.notes,
                )
            )

        discount = clamp_discount(cart.discount, subtotal_of(items))
        totals = compute_totals(items, discount)
        promo = None
        if cart.promo_code and discount > ZERO:
            promo = AppliedPromo(code=cart.promo_code, discount_amount=discount)

        now = self._now()
        session = CheckoutSession(
            id=uuid4().hex,
            user_id=user_id,
            cart_id=cart.id,
            items=items,
            subtotal=totals.subtotal,
            discount=totals.discount,
            tax=totals.tax,
            delivery_fee=totals.delivery_fee,
            total=totals.total,
            delivery_address=cart.delivery_address,
            promo_code=promo,
            created_at=now,
            expires_at=now + timedelta(seconds=settings.CHECKOUT_SESSION_TTL_SECONDS),
        )
        self.store.create(session)
        logger.info("Checkout session %s created for user %s (cart %s)", session.id, user_id, cart.id)

        swept = self.store.sweep(now)
        if swept:
            logger.info("Swept %d expired checkout sessions", swept)
        return session

    def get_session(self, user_id: int, session_id: str) -> CheckoutSession:
        session = self.store.get(session_id)
        if not session:
            raise NotFoundError("Checkout session not found")
        if session.user_id != user_id:
            raise ForbiddenError("Unauthorized access to checkout session")
        if self._now() > as_utc(session.expires_at):
            self.store.delete(session_id)
            logger.info("Checkout session %s expired", session_id)
            raise SessionExpiredError("Checkout session has expired")
        return session

    def discard_session(self, session_id: str):
        self.store.delete(session_id)

    def apply_coupon(self, user_id: int, session_id: str, code: str) -> CheckoutSession:
        session = self.get_session(user_id, session_id)

        normalized = (code or "").strip().upper()
        if not normalized:
            raise ValidationError("Promo code is required")
        promo = self.promo_repo.get_active_by_code(normalized)
        if not promo:
            raise NotFoundError("Invalid promo code")

        now = self._now()
        if now < as_utc(promo.valid_from) or now > as_utc(promo.valid_until):
            raise ValidationError("Promo code is not valid at this time")
        if promo.usage_limit and (promo.usage_count or 0) >= promo.usage_limit:
            raise ValidationError("Promo code usage limit reached")
        if promo.user_usage_limit:
            used = self.promo_repo.count_user_usages(promo.id, user_id)
            if used >= promo.user_usage_limit:
                raise ValidationError(
                    "You have reached the usage limit for this promo code"
                )
        if promo.min_order_amount and session.subtotal < to_decimal(promo.min_order_amount):
            raise ValidationError(
                f"Minimum order amount of ${quantize_money(promo.min_order_amount)} required"
            )

        discount = promo_discount(promo, session.subtotal)
        self._reprice(session, discount)
        # replaces whatever coupon was there before
        session.promo_code = AppliedPromo(code=promo.code, discount_amount=discount)
        self.store.save(session)
        self._mirror_onto_cart(session)
        logger.info("Promo %s applied to session %s (discount %s)", promo.code, session_id, discount)
        return session

    def remove_coupon(self, user_id: int, session_id: str) -> CheckoutSession:
        session = self.get_session(user_id, session_id)
        self._reprice(session, ZERO)
        session.promo_code = None
        self.store.save(session)
        self._mirror_onto_cart(session)
        return session

    def _reprice(self, session: CheckoutSession, discount: Decimal):
        totals = compute_totals(session.items, discount)
        session.subtotal = totals.subtotal
        session.discount = totals.discount
        session.tax = totals.tax
        session.delivery_fee = totals.delivery_fee
        session.total = totals.total

    def _mirror_onto_cart(self, session: CheckoutSession):
        """Keep the cart's coupon in step with the session so a reload shows it."""
        cart = self.cart_repo.get(session.cart_id)
        if not cart or cart.status != CART_ACTIVE:
            return
        cart.discount = session.discount
        cart.promo_code = session.promo_code.code if session.promo_code else None
        self.carts.recalculate(cart)
        self.db.commit()

    def get_payment_methods(self) -> List[Dict]:
        return [dict(m) for m in PAYMENT_METHODS]

    def calculate_delivery_charges(self, address: str) -> Decimal:
        return quantize_money(settings.BASE_DELIVERY_FEE)
