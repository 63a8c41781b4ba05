from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ordering.adapters.notifier import LoggingNotifier, default_notifier
from ordering.config import settings
from ordering.models.cart import CART_ACTIVE, CART_CHECKED_OUT, Cart
from ordering.models.order import (
    CANCELLED,
    COMPLETED,
    CONFIRMED,
    ORDER_STATUSES,
    PAYMENT_COMPLETED,
    PAYMENT_PENDING,
    PENDING_PAYMENT,
    PICKED_UP,
    PREPARING,
    READY,
    REFUND_PENDING,
    STATUS_TRANSITIONS,
    Order,
    OrderItem,
    OrderStatusHistory,
)
from ordering.repositories.cart_repo import CartRepository
from ordering.repositories.order_repo import OrderRepository
from ordering.repositories.product_repo import ProductRepository
from ordering.repositories.promo_repo import PromoCodeRepository
from ordering.services.cart_service import CartService
from ordering.services.checkout_service import CheckoutService
from ordering.services.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    OrderCreationError,
    ValidationError,
)
from ordering.services.pricing import to_decimal
from ordering.services.session_store import CheckoutSessionStore, get_session_store
from ordering.utils.logging import get_logger
from ordering.utils.timeutils import as_utc, utcnow
from ordering.utils.transactions import unit_of_work

logger = get_logger(__name__)

ROLE_ADMIN = "admin"
DRIVER_ASSIGNABLE = (CONFIRMED, PREPARING, READY)


def can_transition(current: str, new: str) -> bool:
    return new in STATUS_TRANSITIONS.get(current, ())


class OrderService:
    """
    Turns checkout sessions into orders and moves orders through their
    status machine. Every accepted status change appends exactly one
    OrderStatusHistory row; history is never edited.
    """

    def __init__(
        self,
        db: Session,
        session_store: Optional[CheckoutSessionStore] = None,
        notifier: Optional[LoggingNotifier] = None,
    ):
        self.db = db
        self.orders = OrderRepository(db)
        self.cart_repo = CartRepository(db)
        self.product_repo = ProductRepository(db)
        self.promo_repo = PromoCodeRepository(db)
        self.carts = CartService(db)
        if session_store is None:
            session_store = get_session_store()
        self.checkout = CheckoutService(db, session_store)
        self.notifier = notifier or default_notifier

    def _now(self) -> datetime:
        return utcnow()

    def _notify(self, order: Order, old_status: Optional[str], new_status: str):
        # fire-and-forget: a failed notification never undoes the transition
        try:
            self.notifier.order_status_changed(order.id, order.user_id, old_status, new_status)
        except Exception:
            logger.warning("Notification for order %s failed", order.id, exc_info=True)

    def _load(self, order_id: int) -> Order:
        order = self.orders.get_for_update(order_id)
        if not order:
            raise NotFoundError("Order not found")
        return order

    # --- checkout ---

    def confirm_checkout(self, user_id: int, session_id: str, payment_method: str) -> Order:
        if not payment_method:
            raise ValidationError("Payment method is required")

        session = self.checkout.get_session(user_id, session_id)
        cart: Optional[Cart] = self.cart_repo.get(session.cart_id)
        if not cart or cart.status != CART_ACTIVE:
            raise NotFoundError("Cart not found")

        cart_items = list(cart.items)
        products = self.product_repo.get_many(it.product_id for it in cart_items)
        snapshot = {it.item_id: it for it in session.items}
        promo = (
            self.promo_repo.get_by_code(session.promo_code.code)
            if session.promo_code
            else None
        )

        def creation_failed(exc: Exception) -> OrderCreationError:
            logger.error(
                "Order creation failed for checkout session %s", session_id, exc_info=exc
            )
            return OrderCreationError("Order could not be created")

        with unit_of_work(self.db, on_error=creation_failed):
            order = Order(
                user_id=user_id,
                store_id=cart.store_id,
                status=PENDING_PAYMENT,
                payment_status=PAYMENT_PENDING,
                payment_method=payment_method,
                subtotal=session.subtotal,
                discount=session.discount,
                tax=session.tax,
                delivery_fee=session.delivery_fee,
                total=session.total,
                currency=settings.CURRENCY,
                delivery_address=session.delivery_address,
                notes=cart.notes,
                promo_code_id=promo.id if promo else None,
                created_at=self._now(),
            )
            self.orders.add(order)

            lines = []
            for it in cart_items:
                product = products.get(it.product_id)
                frozen = snapshot.get(it.id)
                if product:
                    name, image = product.name, product.image or ""
                elif frozen:
                    name, image = frozen.product_name, frozen.product_image
                else:
                    raise ValueError(f"Product {it.product_id} vanished during checkout")
                lines.append(
                    OrderItem(
                        product_id=it.product_id,
                        product_name=name,
                        product_image=image,
                        quantity=it.quantity,
                        customization=it.customization,
                        add_ons=list(it.add_ons or []),
                        notes=it.notes,
                        unit_price=to_decimal(it.unit_price),
                        total_price=to_decimal(it.total_price),
                    )
                )
            self.orders.add_items(order, lines)

            if promo:
                self.promo_repo.record_usage(promo, user_id, order.id, session.discount)

            self.orders.add_history(order, PENDING_PAYMENT, "system", "Order placed")
            cart.status = CART_CHECKED_OUT
            self.db.flush()

        self.checkout.discard_session(session_id)
        logger.info(
            "Order %s (%s) created for user %s from cart %s",
            order.id,
            order.order_number,
            user_id,
            session.cart_id,
        )
        return order

    # --- status machine ---

    def update_status(
        self,
        order_id: int,
        new_status: str,
        changed_by: str = ROLE_ADMIN,
        note: Optional[str] = None,
    ) -> Order:
        if new_status not in ORDER_STATUSES:
            raise ValidationError(f"Unknown order status: {new_status}")

        order = self._load(order_id)
        old_status = order.status
        if not can_transition(old_status, new_status):
            logger.warning("Rejected transition %s -> %s for order %s", old_status, new_status, order_id)
            raise ConflictError(
                f"Invalid status transition from {old_status} to {new_status}"
            )

        now = self._now()
        order.status = new_status
        if new_status == READY:
            order.actual_ready_time = now
        elif new_status == PICKED_UP:
            order.picked_up_at = now
        elif new_status == COMPLETED:
            order.completed_at = now
        elif new_status == CANCELLED:
            order.cancelled_at = now
            order.cancelled_by = changed_by

        self.orders.add_history(
            order,
            new_status,
            changed_by,
            note or f"Status changed from {old_status} to {new_status} by {changed_by}",
        )
        self.db.commit()
        logger.info("Order %s: %s -> %s", order_id, old_status, new_status)
        self._notify(order, old_status, new_status)
        return order

    def cancel_order(self, order_id: int, user_id: int, reason: str) -> Order:
        order = self._load(order_id)
        if order.user_id != user_id:
            raise ForbiddenError("You do not have permission to cancel this order")
        if order.status == CANCELLED:
            raise ConflictError("Order is already cancelled")
        if order.status == COMPLETED:
            raise ConflictError("Cannot cancel a completed order")
        if not can_transition(order.status, CANCELLED):
            raise ConflictError(f"Cannot cancel an order that is {order.status}")

        now = self._now()
        window = timedelta(seconds=settings.CANCELLATION_WINDOW_SECONDS)
        if now - as_utc(order.created_at) > window:
            raise ConflictError(
                f"Order can only be cancelled within {window.seconds // 60} minutes of placement"
            )

        old_status = order.status
        order.status = CANCELLED
        order.cancellation_reason = reason
        order.cancelled_by = "customer"
        order.cancelled_at = now
        if order.payment_status == PAYMENT_COMPLETED:
            # refund itself is executed by the payment service
            order.refund_amount = order.total
            order.refund_status = REFUND_PENDING

        self.orders.add_history(order, CANCELLED, "customer", f"Cancelled by customer: {reason}")
        self.db.commit()
        logger.info("Order %s cancelled by customer %s", order_id, user_id)
        self._notify(order, old_status, CANCELLED)
        return order

    def assign_driver(self, order_id: int, driver_id: int) -> Order:
        order = self._load(order_id)
        if order.status not in DRIVER_ASSIGNABLE:
            raise ConflictError(f"Cannot assign driver to order with status {order.status}")
        order.assigned_driver_id = driver_id
        self.orders.add_history(
            order, order.status, ROLE_ADMIN, f"Driver {driver_id} assigned to order"
        )
        self.db.commit()
        logger.info("Driver %s assigned to order %s", driver_id, order_id)
        return order

    # --- reads ---

    def get_order(self, order_id: int, user_id: int, role: Optional[str] = None) -> Order:
        order = self.orders.get(order_id)
        if not order:
            raise NotFoundError("Order not found")
        if role != ROLE_ADMIN and order.user_id != user_id:
            raise ForbiddenError("You do not have permission to view this order")
        return order

    def list_orders(
        self,
        user_id: int,
        role: Optional[str] = None,
        status: Optional[str] = None,
        store_id: Optional[int] = None,
        customer_id: Optional[int] = None,
        page: int = 1,
        size: int = 20,
    ) -> Tuple[List[Order], int]:
        if role == ROLE_ADMIN:
            owner = customer_id
        else:
            owner = user_id
        return self.orders.list(
            user_id=owner, status=status, store_id=store_id, page=page, size=size
        )

    def get_tracking(self, order_id: int, user_id: int, role: Optional[str] = None) -> Dict:
        order = self.get_order(order_id, user_id, role)
        history: List[OrderStatusHistory] = self.orders.list_history(order.id)
        return {
            "order_number": order.order_number,
            "status": order.status,
            "status_history": [
                {"status": h.status, "timestamp": h.created_at, "notes": h.notes}
                for h in history
            ],
            "actual_ready_time": order.actual_ready_time,
            "picked_up_at": order.picked_up_at,
        }

    # --- customer extras ---

    def rate_order(self, order_id: int, user_id: int, rating: int, review: Optional[str] = None) -> Order:
        if rating < 1 or rating > 5:
            raise ValidationError("Rating must be between 1 and 5")
        order = self._load(order_id)
        if order.user_id != user_id:
            raise ForbiddenError("You do not have permission to rate this order")
        if order.status != COMPLETED:
            raise ConflictError("Only completed orders can be rated")

        line = f"Rating: {rating}/5"
        if review:
            line += f" - Review: {review}"
        order.notes = f"{order.notes}\n{line}" if order.notes else line
        self.db.commit()
        return order

    def reorder(self, order_id: int, user_id: int) -> Cart:
        """Copy a past order into the active cart at today's prices, skipping what is gone."""
        order = self._load(order_id)
        if order.user_id != user_id:
            raise ForbiddenError("You do not have permission to reorder this order")
        if not order.items:
            raise ValidationError("No items found in this order")

        store = self.product_repo.get_store(order.store_id)
        if not store or not store.is_active:
            raise ValidationError("Store is not active")

        products = self.product_repo.get_many(it.product_id for it in order.items)
        available = [
            (it, products[it.product_id])
            for it in order.items
            if it.product_id in products and products[it.product_id].is_available
        ]
        if not available:
            raise ValidationError("None of the products in this order are available")

        cart = self.carts.reset_for_store(user_id, order.store_id)
        for it, product in available:
            self.carts.add_line(
                cart,
                product,
                it.quantity,
                customization=it.customization,
                add_ons=it.add_ons,
                notes=it.notes,
            )
        self.carts.recalculate(cart)
        self.db.commit()
        logger.info("Order %s reordered into cart %s (%d lines)", order_id, cart.id, len(available))
        return cart

    def add_internal_notes(self, order_id: int, notes: str) -> Order:
        order = self._load(order_id)
        entry = f"[{self._now().isoformat()}] {notes}"
        order.internal_notes = f"{order.internal_notes}\n{entry}" if order.internal_notes else entry
        self.db.commit()
        return order
