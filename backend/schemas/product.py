# backend/schemas/product.py
from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Optional
from datetime import datetime


# Base configuration for ORM compatibility; camelCase on the wire, either form accepted
class ORMBase(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True, alias_generator=to_camel)


# Schema for creating a new product
class ProductCreate(ORMBase):
    name: str
    price: float = Field(ge=0)
    stock: int = Field(default=0, ge=0)
    description: str = ""
    category: str = "General"
    unit: str = "unit"
    sku: Optional[str] = None
    is_active: bool = True


# Schema for partial product updates - all fields optional
class ProductUpdate(ORMBase):
    name: Optional[str] = None
    price: Optional[float] = None
    stock: Optional[int] = None
    description: Optional[str] = None
    category: Optional[str] = None
    unit: Optional[str] = None
    sku: Optional[str] = None
    is_active: Optional[bool] = None


# Signed stock correction
class StockAdjustment(ORMBase):
    delta: int
    reason: Optional[str] = None


# Full product representation including ID
class ProductOut(ORMBase):
    id: int
    name: str
    description: str
    category: str
    price: float
    stock: int
    unit: str
    is_active: bool
    sku: Optional[str] = None
    created_at: datetime
