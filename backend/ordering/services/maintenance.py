from typing import Dict

from sqlalchemy.orm import Session

from ordering.services.cart_service import CartService
from ordering.services.session_store import CheckoutSessionStore
from ordering.utils.logging import get_logger
from ordering.utils.timeutils import utcnow

logger = get_logger(__name__)


def sweep_expired(db: Session, store: CheckoutSessionStore) -> Dict[str, int]:
    """Drop expired checkout sessions and stale active carts."""
    sessions = store.sweep(utcnow())
    carts = CartService(db).expire_stale_carts()
    if sessions or carts:
        logger.info("Sweep removed %d sessions and %d carts", sessions, len(carts))
    return {"sessions": sessions, "carts": len(carts)}
