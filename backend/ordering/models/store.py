from sqlalchemy import Boolean, Column, Integer, String

from ordering.db import Base


class Store(Base):
    __tablename__ = "stores"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(256), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<Store id={self.id} name={self.name}>"
