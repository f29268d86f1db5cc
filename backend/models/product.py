# backend/models/product.py
from sqlalchemy import Column, Integer, String, Numeric, Boolean, DateTime, CheckConstraint
from database import Base
from utils.time_utils import utcnow

# Model Product
# A catalog entry offered to customers. The stock counter is the contended
# resource: it only moves through conditional UPDATE statements so that it
# can never drop below zero, and the CHECK constraint backs that up.
class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    description = Column(String, nullable=False, default="")
    category = Column(String, nullable=False, default="General")

    price = Column(Numeric(10, 2), nullable=False)
    stock = Column(Integer, nullable=False, default=0)
    unit = Column(String, nullable=False, default="unit")

    is_active = Column(Boolean, nullable=False, default=True)
    # Optional; NULLs do not collide under the unique index
    sku = Column(String, unique=True, nullable=True, index=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
