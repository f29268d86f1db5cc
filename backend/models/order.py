import enum

from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, DateTime, Enum
from sqlalchemy.orm import relationship
from database import Base
from utils.time_utils import utcnow


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    ON_HOLD = "on-hold"
    CANCELLED = "cancelled"
    FULFILLED = "Fulfilled"


def _enum_values(enum_cls):
    return [m.value for m in enum_cls]


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    notes = Column(String, nullable=False, default="")

    # Priced once at creation, never recomputed
    total_price = Column(Numeric(12, 2), nullable=False)

    status = Column(
        Enum(OrderStatus, values_callable=_enum_values, native_enum=False, length=20),
        nullable=False,
        default=OrderStatus.PENDING,
    )
    fulfilled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    items = relationship(
        "OrderItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.id"
    )
    customer = relationship("User")


class OrderItem(Base):
    __tablename__ = "order_items"
    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    # Plain column: a line must keep pointing at a product that was deleted later
    product_id = Column(Integer, nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    # Price seen at creation; NULL when the product was already missing
    unit_price = Column(Numeric(10, 2), nullable=True)

    order = relationship("Order", back_populates="items")
