# schemas/invoice.py
from typing import List, Optional
from datetime import datetime

from schemas.product import ORMBase


# Output schema for an invoice line item
class InvoiceItemOut(ORMBase):
    product_id: int
    product_name: str
    quantity: int
    unit_price: float
    line_total: float


# Output schema for a single invoice
class InvoiceOut(ORMBase):
    id: int
    full_number: str
    order_id: Optional[int] = None
    customer_id: int
    total_amount: float
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    notes: str
    is_sent: bool
    sent_at: Optional[datetime] = None
    sent_by: Optional[int] = None
    created_at: datetime
    items: List[InvoiceItemOut]


# Input schema for issuing an invoice by hand
class InvoiceCreate(ORMBase):
    order_id: int


class InvoiceCustomer(ORMBase):
    id: int
    name: Optional[str] = None
    email: str


# Admin view of one customer's invoices
class CustomerInvoicesOut(ORMBase):
    customer: InvoiceCustomer
    invoices: List[InvoiceOut]
