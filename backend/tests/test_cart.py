from datetime import timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from conftest import ADDRESS, CUSTOMER, OTHER_CUSTOMER
from ordering.db import SessionLocal
from ordering.main import app
from ordering.models.cart import CART_ACTIVE, Cart
from ordering.models.product import Product
from ordering.services.cart_service import CartService
from ordering.services.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from ordering.services.pricing import TAX_RATE
from ordering.utils.timeutils import utcnow

client = TestClient(app)


def _assert_totals_consistent(cart):
    subtotal = sum((Decimal(it.total_price) for it in cart.items), Decimal(0))
    assert Decimal(cart.subtotal) == subtotal
    assert Decimal(cart.tax) == (subtotal - Decimal(cart.discount)) * TAX_RATE


def test_add_item_creates_cart_and_prices_it(db, catalog):
    svc = CartService(db)
    assert svc.get_cart(CUSTOMER) is None

    cart = svc.add_item(CUSTOMER, catalog.bun, 2, customization={"spice": "hot"})
    assert cart.store_id == catalog.shop
    assert cart.status == CART_ACTIVE
    assert len(cart.items) == 1
    assert cart.items[0].unit_price == Decimal("4.50")
    assert cart.items[0].total_price == Decimal("9.00")
    assert cart.delivery_fee == Decimal("2.00")
    _assert_totals_consistent(cart)

    cart = svc.add_item(CUSTOMER, catalog.roll, 1)
    assert cart.subtotal == Decimal("12.00")
    _assert_totals_consistent(cart)


def test_cross_store_add_is_rejected_and_cart_unchanged(db, catalog):
    svc = CartService(db)
    svc.add_item(CUSTOMER, catalog.bun, 1)

    with pytest.raises(ConflictError):
        svc.add_item(CUSTOMER, catalog.taco, 1)

    cart = svc.get_cart(CUSTOMER)
    assert cart.store_id == catalog.shop
    assert [it.product_id for it in cart.items] == [catalog.bun]
    assert cart.subtotal == Decimal("4.50")


def test_add_item_rejections(db, catalog):
    svc = CartService(db)
    with pytest.raises(NotFoundError):
        svc.add_item(CUSTOMER, 9999, 1)
    with pytest.raises(ValidationError):
        svc.add_item(CUSTOMER, catalog.sold_out, 1)
    with pytest.raises(ValidationError):
        svc.add_item(CUSTOMER, catalog.latte, 1)
    with pytest.raises(ValidationError):
        svc.add_item(CUSTOMER, catalog.bun, 0)
    assert svc.get_cart(CUSTOMER) is None


def test_update_quantity_recomputes_totals(db, catalog):
    svc = CartService(db)
    cart = svc.add_item(CUSTOMER, catalog.bun, 1)
    item_id = cart.items[0].id

    cart = svc.update_item_quantity(CUSTOMER, item_id, 3)
    assert cart.items[0].quantity == 3
    assert cart.subtotal == Decimal("13.50")
    _assert_totals_consistent(cart)

    with pytest.raises(ValidationError):
        svc.update_item_quantity(CUSTOMER, item_id, 0)
    with pytest.raises(NotFoundError):
        svc.update_item_quantity(CUSTOMER, 424242, 1)


def test_update_quantity_fails_when_product_went_unavailable(db, catalog):
    svc = CartService(db)
    cart = svc.add_item(CUSTOMER, catalog.bun, 1)
    item_id = cart.items[0].id
    db.get(Product, catalog.bun).is_available = False
    db.commit()

    with pytest.raises(ValidationError):
        svc.update_item_quantity(CUSTOMER, item_id, 2)


def test_items_of_another_user_are_off_limits(db, catalog):
    svc = CartService(db)
    cart = svc.add_item(CUSTOMER, catalog.bun, 1)
    item_id = cart.items[0].id

    with pytest.raises(ForbiddenError):
        svc.update_item_quantity(OTHER_CUSTOMER, item_id, 2)
    with pytest.raises(ForbiddenError):
        svc.remove_item(OTHER_CUSTOMER, item_id)


def test_removing_last_item_deletes_cart(db, catalog):
    svc = CartService(db)
    cart = svc.add_item(CUSTOMER, catalog.bun, 1)
    cart = svc.add_item(CUSTOMER, catalog.roll, 2)
    bun_item, roll_item = cart.items

    cart = svc.remove_item(CUSTOMER, bun_item.id)
    assert cart is not None
    assert cart.subtotal == Decimal("6.00")
    _assert_totals_consistent(cart)

    assert svc.remove_item(CUSTOMER, roll_item.id) is None
    assert svc.get_cart(CUSTOMER) is None
    assert db.query(Cart).count() == 0


def test_clear_cart(db, catalog):
    svc = CartService(db)
    with pytest.raises(NotFoundError):
        svc.clear_cart(CUSTOMER)

    svc.add_item(CUSTOMER, catalog.bun, 1)
    svc.clear_cart(CUSTOMER)
    assert svc.get_cart(CUSTOMER) is None
    # a fresh cart may now come from any store
    cart = svc.add_item(CUSTOMER, catalog.taco, 1)
    assert cart.store_id == catalog.other


def test_address_notes_and_summary(db, catalog):
    svc = CartService(db)
    with pytest.raises(NotFoundError):
        svc.set_delivery_address(CUSTOMER, ADDRESS)
    assert svc.get_summary(CUSTOMER)["item_count"] == 0

    svc.add_item(CUSTOMER, catalog.bun, 2)
    cart = svc.set_delivery_address(CUSTOMER, ADDRESS)
    assert cart.delivery_address == ADDRESS
    cart = svc.set_notes(CUSTOMER, "no onions")
    assert cart.notes == "no onions"

    summary = svc.get_summary(CUSTOMER)
    assert summary["item_count"] == 1
    assert summary["subtotal"] == Decimal("9.00")
    assert summary["total"] == Decimal("9.00") + Decimal("0.90") + Decimal("2.00")


def test_validate_cart_reports_price_drift_and_availability(db, catalog):
    svc = CartService(db)
    assert svc.validate_cart(CUSTOMER) == {"is_valid": True, "issues": []}

    svc.add_item(CUSTOMER, catalog.bun, 1)
    svc.add_item(CUSTOMER, catalog.roll, 1)
    db.get(Product, catalog.bun).base_price = Decimal("5.00")
    db.get(Product, catalog.roll).is_available = False
    db.commit()

    report = svc.validate_cart(CUSTOMER)
    assert report["is_valid"] is False
    codes = {(i["product_id"], i["code"]) for i in report["issues"]}
    assert codes == {
        (catalog.bun, "price_changed"),
        (catalog.roll, "product_unavailable"),
    }
    drift = next(i for i in report["issues"] if i["code"] == "price_changed")
    assert "4.50" in drift["issue"] and "5.00" in drift["issue"]

    # validation never touches captured prices
    cart = svc.get_cart(CUSTOMER)
    assert cart.items[0].unit_price == Decimal("4.50")


def test_expired_cart_is_dropped_on_access(db, catalog):
    svc = CartService(db)
    svc.add_item(CUSTOMER, catalog.bun, 1)

    later = CartService(db)
    later._now = lambda: utcnow() + timedelta(days=1, minutes=1)
    assert later.get_cart(CUSTOMER) is None
    assert db.query(Cart).count() == 0


def test_item_changes_on_an_expired_cart_are_refused(db, catalog):
    cart = CartService(db).add_item(CUSTOMER, catalog.bun, 1)
    item_id = cart.items[0].id

    later = CartService(db)
    later._now = lambda: utcnow() + timedelta(days=1, minutes=1)
    with pytest.raises(NotFoundError):
        later.update_item_quantity(CUSTOMER, item_id, 2)
    assert db.query(Cart).count() == 0

    cart = CartService(db).add_item(CUSTOMER, catalog.bun, 1)
    with pytest.raises(NotFoundError):
        later.remove_item(CUSTOMER, cart.items[0].id)
    assert db.query(Cart).count() == 0


def test_expire_stale_carts(db, catalog):
    svc = CartService(db)
    cart = svc.add_item(CUSTOMER, catalog.bun, 1)
    keep = svc.add_item(OTHER_CUSTOMER, catalog.roll, 1)
    stale_id = cart.id
    cart.expires_at = utcnow() - timedelta(minutes=1)
    db.commit()

    assert svc.expire_stale_carts() == [stale_id]
    assert db.query(Cart).count() == 1
    assert svc.get_cart(OTHER_CUSTOMER).id == keep.id


def test_concurrent_cart_creation_reuses_the_winner(db, catalog):
    other = SessionLocal()
    try:
        winner = Cart(
            user_id=CUSTOMER,
            store_id=catalog.shop,
            status=CART_ACTIVE,
            expires_at=utcnow() + timedelta(hours=1),
            subtotal=0,
            discount=0,
            tax=0,
            delivery_fee=0,
            total=0,
        )
        other.add(winner)
        other.commit()
        winner_id = winner.id
    finally:
        other.close()

    svc = CartService(db)
    # simulate having looked before the other request committed
    svc._active_cart = lambda user_id: None
    cart = svc.get_or_create_cart(CUSTOMER, catalog.shop)
    assert cart.id == winner_id
    assert db.query(Cart).filter(Cart.user_id == CUSTOMER).count() == 1


def test_cart_api_requires_identity(catalog):
    res = client.get("/api/cart")
    assert res.status_code == 401


def test_cart_api_flow(catalog):
    headers = {"X-User-Id": str(CUSTOMER)}

    res = client.get("/api/cart", headers=headers)
    assert res.status_code == 200
    assert res.json()["cart"] is None
    assert res.json()["items"] == []

    res = client.post(
        "/api/cart/items",
        json={"product_id": catalog.bun, "quantity": 2, "notes": "extra sauce"},
        headers=headers,
    )
    assert res.status_code == 200
    body = res.json()
    assert body["item_count"] == 1
    assert body["subtotal"] == pytest.approx(9.0)
    item_id = body["items"][0]["id"]

    res = client.post(
        "/api/cart/items", json={"product_id": catalog.taco, "quantity": 1}, headers=headers
    )
    assert res.status_code == 409
    assert "different stores" in res.json()["detail"]

    res = client.patch(f"/api/cart/items/{item_id}", json={"quantity": 3}, headers=headers)
    assert res.status_code == 200
    assert res.json()["subtotal"] == pytest.approx(13.5)

    res = client.patch("/api/cart/address", json={"address": ADDRESS}, headers=headers)
    assert res.json()["cart"]["delivery_address"] == ADDRESS

    res = client.get("/api/cart/validate", headers=headers)
    assert res.json() == {"is_valid": True, "issues": []}

    res = client.delete(f"/api/cart/items/{item_id}", headers=headers)
    assert res.status_code == 200
    assert res.json()["cart"] is None

    res = client.delete("/api/cart", headers=headers)
    assert res.status_code == 404
