from sqlalchemy import JSON, Column, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from ordering.db import Base
from ordering.db.types import Money


class CartItem(Base):
    __tablename__ = "cart_items"
    id = Column(Integer, primary_key=True, index=True)
    cart_id = Column(
        Integer, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id = Column(Integer, nullable=False, index=True)
    quantity = Column(Integer, nullable=False, default=1)
    customization = Column(JSON, nullable=True)  # e.g. {"size": "large"}
    add_ons = Column(JSON, nullable=False, default=list)  # add-on ids
    notes = Column(String(500), nullable=True)
    unit_price = Column(
        Money(), nullable=False, default=0
    )  # captured when the item was added
    total_price = Column(Money(), nullable=False, default=0)

    cart = relationship("Cart", back_populates="items")
