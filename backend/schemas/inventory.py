# backend/schemas/inventory.py
from pydantic import AliasChoices, Field
from typing import List, Optional
from datetime import datetime

from schemas.product import ORMBase
from models.inventory_item import ItemStatus, ScanAction
from models.order import OrderStatus


# Input schema for registering one item
class InventoryItemCreate(ORMBase):
    product_id: Optional[int] = None
    item_code: Optional[str] = None
    batch_number: Optional[str] = None
    manufacturing_date: Optional[datetime] = None
    expiry_date: Optional[datetime] = None
    notes: Optional[str] = None


# Input schema for registering several items of one product
class InventoryBatchCreate(ORMBase):
    product_id: Optional[int] = None
    item_codes: List[str] = []
    batch_number: Optional[str] = None
    manufacturing_date: Optional[datetime] = None
    expiry_date: Optional[datetime] = None
    notes: Optional[str] = None


class ItemStatusUpdate(ORMBase):
    status: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None
    assigned_to_order: Optional[int] = None


class ScanNote(ORMBase):
    notes: Optional[str] = None


class ScanRecordOut(ORMBase):
    scanned_at: datetime
    scanned_by: str
    action: ScanAction
    notes: Optional[str] = None


class ProductSummary(ORMBase):
    id: int
    name: str
    price: float
    description: str
    stock: int


class OrderSummary(ORMBase):
    id: int
    status: OrderStatus


# Item as stored, without resolved references
class InventoryItemOut(ORMBase):
    id: int
    product_id: int
    item_code: str
    qr_code: str
    status: ItemStatus
    location: str
    assigned_to_order: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("assigned_order_id", "assignedToOrder", "assigned_to_order"),
    )
    batch_number: Optional[str] = None
    manufacturing_date: Optional[datetime] = None
    expiry_date: Optional[datetime] = None
    notes: str
    created_at: datetime
    updated_at: datetime


# Item with product, order and scan history resolved
class InventoryItemDetail(InventoryItemOut):
    product: ProductSummary
    order: Optional[OrderSummary] = None
    scan_history: List[ScanRecordOut]


class InventoryItemCreated(InventoryItemOut):
    qr_code_data_url: str = Field(
        validation_alias=AliasChoices("qrCodeDataURL", "qr_code_data_url"), serialization_alias="qrCodeDataURL",
    )


class QRCodeOut(ORMBase):
    qr_code: str
