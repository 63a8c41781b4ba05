from datetime import timedelta

from conftest import CUSTOMER, OTHER_CUSTOMER
from ordering.models.cart import Cart
from ordering.services.cart_service import CartService
from ordering.services.checkout_service import CheckoutService
from ordering.services.maintenance import sweep_expired
from ordering.utils.timeutils import utcnow


def test_sweep_drops_expired_sessions_and_carts(db, catalog, session_store, filled_cart):
    filled_cart()
    checkout = CheckoutService(db, session_store)
    checkout._now = lambda: utcnow() - timedelta(hours=1)
    stale = checkout.create_session(CUSTOMER)

    cart = CartService(db).add_item(OTHER_CUSTOMER, catalog.bun, 1)
    cart.expires_at = utcnow() - timedelta(seconds=1)
    db.commit()

    assert sweep_expired(db, session_store) == {"sessions": 1, "carts": 1}
    assert session_store.get(stale.id) is None
    assert db.query(Cart).filter(Cart.user_id == OTHER_CUSTOMER).count() == 0
    assert CartService(db).get_cart(CUSTOMER) is not None

    assert sweep_expired(db, session_store) == {"sessions": 0, "carts": 0}
