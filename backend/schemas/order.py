from pydantic import Field
from typing import List, Optional
from datetime import datetime

from schemas.product import ORMBase
from schemas.invoice import InvoiceOut
from models.order import OrderStatus


# Input line: product id and quantity
class OrderLineIn(ORMBase):
    product: int
    quantity: int = Field(gt=0)


# Input schema for creating a new order
class OrderCreate(ORMBase):
    items: List[OrderLineIn] = []
    notes: Optional[str] = None


# Output schema for an individual order line item
class OrderItemOut(ORMBase):
    product: int
    product_name: Optional[str] = None
    product_exists: bool
    quantity: int
    unit_price: Optional[float] = None


# Output schema representing the full order details
class OrderResponse(ORMBase):
    id: int
    customer: int
    status: OrderStatus
    total_price: float
    notes: str
    created_at: datetime
    fulfilled_at: Optional[datetime] = None
    items: List[OrderItemOut]


# Schema for updating order status
class OrderStatusPatch(ORMBase):
    status: str


# Result of completing an order
class FulfillmentResponse(ORMBase):
    message: str
    order: OrderResponse
    invoice: InvoiceOut
