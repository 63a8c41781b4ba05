#!/usr/bin/env python3
"""
Seed stores, products and promo codes for local development.

The catalogue normally belongs to the store service; this fills the local
database with something to order from. Input is a JSON object with
"stores" (each carrying its "products") and optional "promo_codes".

Usage:
    python scripts/seed_catalogue.py --file catalogue.json [--reset]
"""
import argparse
import json
import os
import sys
from datetime import timedelta
from decimal import Decimal

# allow running from repo/scripts
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from ordering.db import SessionLocal, init_db
from ordering.models.product import Product
from ordering.models.promo_code import DISCOUNT_PERCENTAGE, PromoCode
from ordering.models.store import Store
from ordering.utils.logging import configure_logging, get_logger
from ordering.utils.timeutils import utcnow

logger = get_logger("seed_catalogue")

DEFAULT_DATA = {
    "stores": [
        {
            "name": "Noodle Bar",
            "products": [
                {"name": "Pork Bun", "price": "4.50", "image": "bun.png"},
                {"name": "Spring Roll", "price": "3.00"},
                {"name": "Beef Noodle Soup", "price": "6.25"},
            ],
        },
        {
            "name": "Taco Stand",
            "products": [
                {"name": "Taco", "price": "2.50"},
                {"name": "Horchata", "price": "1.75"},
            ],
        },
    ],
    "promo_codes": [
        {"code": "SAVE10", "type": "percentage", "value": "10"},
        {"code": "FIVEOFF", "type": "fixed", "value": "5", "min_order_amount": "20"},
    ],
}


def _price(entry) -> Decimal:
    raw = entry.get("price", entry.get("base_price", 0))
    return Decimal(str(raw))


def seed(data, valid_days: int = 30):
    db = SessionLocal()
    stores = products = promos = 0
    try:
        for store_entry in data.get("stores", []):
            store = db.query(Store).filter(Store.name == store_entry["name"]).first()
            if not store:
                store = Store(name=store_entry["name"], is_active=store_entry.get("is_active", True))
                db.add(store)
                db.flush()
                stores += 1
            for entry in store_entry.get("products", []):
                exists = (
                    db.query(Product)
                    .filter(Product.store_id == store.id, Product.name == entry["name"])
                    .first()
                )
                if exists:
                    exists.base_price = _price(entry)
                    continue
                db.add(
                    Product(
                        store_id=store.id,
                        name=entry["name"],
                        description=entry.get("description"),
                        base_price=_price(entry),
                        image=entry.get("image"),
                        is_available=entry.get("is_available", True),
                    )
                )
                products += 1

        now = utcnow()
        for entry in data.get("promo_codes", []):
            code = entry["code"].strip().upper()
            if db.query(PromoCode).filter(PromoCode.code == code).first():
                continue
            db.add(
                PromoCode(
                    code=code,
                    description=entry.get("description"),
                    discount_type=entry.get("type", DISCOUNT_PERCENTAGE),
                    discount_value=Decimal(str(entry["value"])),
                    min_order_amount=Decimal(str(entry["min_order_amount"]))
                    if entry.get("min_order_amount")
                    else None,
                    max_discount_amount=Decimal(str(entry["max_discount_amount"]))
                    if entry.get("max_discount_amount")
                    else None,
                    usage_limit=entry.get("usage_limit"),
                    user_usage_limit=entry.get("user_usage_limit"),
                    valid_from=now,
                    valid_until=now + timedelta(days=valid_days),
                    is_active=True,
                    usage_count=0,
                )
            )
            promos += 1

        db.commit()
        logger.info("Seeded %d stores, %d products, %d promo codes", stores, products, promos)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--file", "-f", help="JSON catalogue; built-in sample data when omitted")
    parser.add_argument("--reset", action="store_true", help="drop and recreate the schema first")
    parser.add_argument("--valid-days", type=int, default=30, help="promo code validity window")
    args = parser.parse_args()

    configure_logging()
    if args.file:
        if not os.path.exists(args.file):
            print("File not found:", args.file)
            sys.exit(1)
        with open(args.file, "r", encoding="utf-8") as f:
            payload = json.load(f)
    else:
        payload = DEFAULT_DATA

    init_db(reset=args.reset)
    seed(payload, valid_days=args.valid_days)
