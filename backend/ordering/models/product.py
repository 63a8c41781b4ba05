from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, Text

from ordering.db import Base
from ordering.db.types import Money


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    store_id = Column(Integer, ForeignKey("stores.id"), nullable=False, index=True)
    name = Column(String(256), nullable=False)
    description = Column(Text, nullable=True)
    base_price = Column(Money(), nullable=False, default=0)
    image = Column(String(512), nullable=True)
    is_available = Column(Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<Product id={self.id} name={self.name}>"
