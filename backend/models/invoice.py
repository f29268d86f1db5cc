from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, DateTime, Enum
from sqlalchemy.orm import relationship
from database import Base
from utils.time_utils import utcnow
import enum

# Enum for invoice delivery states
class InvoiceSendStatus(str, enum.Enum):
    NOT_SENT = "not_sent"
    SENT = "sent"

# Represents an invoice, generated on fulfillment or uploaded by an admin
class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="SET NULL"), index=True, nullable=True)
    customer_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    total_amount = Column(Numeric(12, 2), nullable=False)

    # Attachment metadata for manually uploaded invoices
    file_url = Column(String, nullable=True)
    file_name = Column(String, nullable=True)
    notes = Column(String, nullable=False, default="")

    send_status = Column(
        Enum(InvoiceSendStatus, values_callable=lambda e: [m.value for m in e], native_enum=False, length=20),
        nullable=False,
        default=InvoiceSendStatus.NOT_SENT,
    )
    sent_at = Column(DateTime, nullable=True)
    sent_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    items = relationship("InvoiceItem", back_populates="invoice", cascade="all, delete-orphan", order_by="InvoiceItem.id")

    @property
    def is_sent(self) -> bool:
        return self.send_status == InvoiceSendStatus.SENT

    @property
    def full_number(self):
        return f"INV-{self.id}"

# Price-and-quantity snapshot taken when the invoice was issued
class InvoiceItem(Base):
    __tablename__ = "invoice_items"
    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, nullable=False)
    product_name = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    line_total = Column(Numeric(12, 2), nullable=False)
    invoice = relationship("Invoice", back_populates="items")
