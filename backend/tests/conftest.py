import os
import tempfile

os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(
    tempfile.gettempdir(), "ordering_test.db"
)
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["CHECKOUT_SESSION_BACKEND"] = "memory"

from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest

from ordering.db import SessionLocal, init_db
from ordering.main import app
from ordering.models.product import Product
from ordering.models.promo_code import DISCOUNT_FIXED, DISCOUNT_PERCENTAGE, PromoCode
from ordering.models.store import Store
from ordering.services.cart_service import CartService
from ordering.services.checkout_service import CheckoutService
from ordering.services.order_service import OrderService
from ordering.services.session_store import InMemoryCheckoutSessionStore, get_session_store
from ordering.utils.timeutils import utcnow

CUSTOMER = 7
OTHER_CUSTOMER = 8
ADDRESS = "12 Riverside, Phnom Penh"


@pytest.fixture(autouse=True)
def reset_db():
    init_db(reset=True)
    yield


@pytest.fixture
def session_store():
    return InMemoryCheckoutSessionStore()


@pytest.fixture(autouse=True)
def override_session_store(session_store):
    app.dependency_overrides[get_session_store] = lambda: session_store
    yield
    app.dependency_overrides.pop(get_session_store, None)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def _promo(code, discount_type, value, **kwargs):
    now = utcnow()
    fields = dict(
        code=code,
        description=f"{code} test code",
        discount_type=discount_type,
        discount_value=Decimal(value),
        valid_from=now - timedelta(days=1),
        valid_until=now + timedelta(days=1),
        is_active=True,
        usage_count=0,
    )
    fields.update(kwargs)
    return PromoCode(**fields)


@pytest.fixture
def catalog(db):
    """Two open stores, one closed store, their products and a set of promo codes."""
    shop = Store(name="Noodle Bar", is_active=True)
    other = Store(name="Taco Stand", is_active=True)
    closed = Store(name="Closed Cafe", is_active=False)
    db.add_all([shop, other, closed])
    db.flush()

    bun = Product(store_id=shop.id, name="Pork Bun", base_price=Decimal("4.50"), image="bun.png")
    roll = Product(store_id=shop.id, name="Spring Roll", base_price=Decimal("3.00"))
    sold_out = Product(
        store_id=shop.id, name="Dumplings", base_price=Decimal("5.00"), is_available=False
    )
    tea = Product(store_id=shop.id, name="Jasmine Tea", base_price=Decimal("3.33"))
    taco = Product(store_id=other.id, name="Taco", base_price=Decimal("2.50"))
    latte = Product(store_id=closed.id, name="Latte", base_price=Decimal("3.50"))
    db.add_all([bun, roll, sold_out, tea, taco, latte])

    db.add_all(
        [
            _promo("SAVE10", DISCOUNT_PERCENTAGE, "10"),
            _promo("FIFTEEN", DISCOUNT_PERCENTAGE, "15"),
            _promo("BIG20", DISCOUNT_FIXED, "5", min_order_amount=Decimal("20")),
            _promo("ONCE", DISCOUNT_PERCENTAGE, "10", user_usage_limit=1),
            _promo("MAXED", DISCOUNT_FIXED, "1", usage_limit=1, usage_count=1),
            _promo("CAPPED", DISCOUNT_PERCENTAGE, "50", max_discount_amount=Decimal("2")),
            _promo(
                "OLD",
                DISCOUNT_PERCENTAGE,
                "10",
                valid_from=utcnow() - timedelta(days=10),
                valid_until=utcnow() - timedelta(days=5),
            ),
            _promo("OFF", DISCOUNT_PERCENTAGE, "10", is_active=False),
        ]
    )
    db.flush()
    ids = SimpleNamespace(
        shop=shop.id,
        other=other.id,
        closed=closed.id,
        bun=bun.id,
        roll=roll.id,
        sold_out=sold_out.id,
        tea=tea.id,
        taco=taco.id,
        latte=latte.id,
    )
    db.commit()
    return ids


@pytest.fixture
def filled_cart(db, catalog):
    """Puts 2 x Pork Bun (4.50) and 1 x Spring Roll (3.00) in a user's cart with an address."""

    def _fill(user_id=CUSTOMER):
        carts = CartService(db)
        carts.add_item(user_id, catalog.bun, 2)
        carts.add_item(user_id, catalog.roll, 1)
        return carts.set_delivery_address(user_id, ADDRESS)

    return _fill


@pytest.fixture
def open_session(db, session_store, filled_cart):
    def _open(user_id=CUSTOMER, code=None):
        filled_cart(user_id)
        checkout = CheckoutService(db, session_store)
        session = checkout.create_session(user_id)
        if code:
            session = checkout.apply_coupon(user_id, session.id, code)
        return session

    return _open


@pytest.fixture
def place_order(db, session_store, open_session):
    def _place(user_id=CUSTOMER, code=None, payment_method="cash"):
        session = open_session(user_id, code)
        svc = OrderService(db, session_store=session_store)
        return svc.confirm_checkout(user_id, session.id, payment_method)

    return _place
