# backend/models/inventory_item.py
import enum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum, Index
from sqlalchemy.orm import relationship
from database import Base
from utils.time_utils import utcnow


class ItemStatus(str, enum.Enum):
    AVAILABLE = "available"
    SOLD = "sold"
    DAMAGED = "damaged"
    RETURNED = "returned"
    IN_TRANSIT = "in-transit"


class ScanAction(str, enum.Enum):
    CREATED = "created"
    SCANNED = "scanned"
    RESTOCKED = "restocked"
    SOLD = "sold"
    DAMAGED = "damaged"
    RETURNED = "returned"
    MOVED = "moved"


def _enum_values(enum_cls):
    return [m.value for m in enum_cls]


# A single physical unit of a product, addressed by its printed code
class InventoryItem(Base):
    __tablename__ = "inventory_items"
    __table_args__ = (
        Index("ix_inventory_items_product_status", "product_id", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)

    # Both unique at the storage level; the pre-insert lookup only improves the error message
    item_code = Column(String, unique=True, nullable=False)
    qr_code = Column(String, unique=True, nullable=False)

    status = Column(
        Enum(ItemStatus, values_callable=_enum_values, native_enum=False, length=20),
        nullable=False,
        default=ItemStatus.AVAILABLE,
    )
    location = Column(String, nullable=False, default="warehouse")
    assigned_order_id = Column(Integer, ForeignKey("orders.id", ondelete="SET NULL"), nullable=True)

    batch_number = Column(String, nullable=True, index=True)
    manufacturing_date = Column(DateTime, nullable=True)
    expiry_date = Column(DateTime, nullable=True)
    notes = Column(String, nullable=False, default="")

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    product = relationship("Product")
    assigned_order = relationship("Order")
    scan_history = relationship(
        "ScanRecord",
        back_populates="item",
        cascade="all, delete-orphan",
        order_by="ScanRecord.id",
    )


# Append-only: one row per scan or status change, never rewritten
class ScanRecord(Base):
    __tablename__ = "inventory_scans"

    id = Column(Integer, primary_key=True, index=True)
    item_id = Column(Integer, ForeignKey("inventory_items.id", ondelete="CASCADE"), nullable=False, index=True)
    scanned_at = Column(DateTime, default=utcnow, nullable=False)
    scanned_by = Column(String, nullable=False, default="system")
    action = Column(
        Enum(ScanAction, values_callable=_enum_values, native_enum=False, length=20),
        nullable=False,
        default=ScanAction.SCANNED,
    )
    notes = Column(String, nullable=True)

    item = relationship("InventoryItem", back_populates="scan_history")
