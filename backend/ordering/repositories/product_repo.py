from typing import Dict, Iterable, Optional

from sqlalchemy.orm import Session

from ordering.models.product import Product
from ordering.models.store import Store


class ProductRepository:
    """Read access to the catalogue; products and stores are owned elsewhere."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, product_id: int) -> Optional[Product]:
        return self.db.get(Product, product_id)

    def get_many(self, product_ids: Iterable[int]) -> Dict[int, Product]:
        ids = list(set(product_ids))
        if not ids:
            return {}
        rows = self.db.query(Product).filter(Product.id.in_(ids)).all()
        return {p.id: p for p in rows}

    def get_store(self, store_id: int) -> Optional[Store]:
        return self.db.get(Store, store_id)
