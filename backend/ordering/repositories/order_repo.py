from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from ordering.models.order import Order, OrderItem, OrderStatusHistory


class OrderRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, order_id: int) -> Optional[Order]:
        return self.db.get(Order, order_id)

    def get_for_update(self, order_id: int) -> Optional[Order]:
        """Load the order straight from the database, skipping any cached copy."""
        qry = (
            self.db.query(Order)
            .filter(Order.id == order_id)
            .populate_existing()
        )
        try:
            return qry.with_for_update().first()
        except Exception:
            # some DB backends don't support with_for_update
            return qry.first()

    def add(self, order: Order) -> Order:
        self.db.add(order)
        self.db.flush()
        return order

    def add_items(self, order: Order, items: List[OrderItem]):
        for it in items:
            order.items.append(it)
        self.db.flush()

    def add_history(
        self, order: Order, status: str, changed_by: str, notes: Optional[str] = None
    ) -> OrderStatusHistory:
        row = OrderStatusHistory(
            order_id=order.id, status=status, changed_by=changed_by, notes=notes
        )
        self.db.add(row)
        self.db.flush()
        return row

    def list_history(self, order_id: int) -> List[OrderStatusHistory]:
        return (
            self.db.query(OrderStatusHistory)
            .filter(OrderStatusHistory.order_id == order_id)
            .order_by(OrderStatusHistory.created_at, OrderStatusHistory.id)
            .all()
        )

    def list(
        self,
        user_id: Optional[int] = None,
        status: Optional[str] = None,
        store_id: Optional[int] = None,
        page: int = 1,
        size: int = 20,
    ) -> Tuple[List[Order], int]:
        query = self.db.query(Order)
        if user_id is not None:
            query = query.filter(Order.user_id == user_id)
        if status:
            query = query.filter(Order.status == status)
        if store_id is not None:
            query = query.filter(Order.store_id == store_id)
        total = query.with_entities(func.count(Order.id)).scalar() or 0
        items = (
            query.order_by(Order.created_at.desc(), Order.id.desc())
            .offset((page - 1) * size)
            .limit(size)
            .all()
        )
        return items, total
