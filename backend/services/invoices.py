# backend/services/invoices.py
import logging
from decimal import Decimal
from typing import List, Tuple

from sqlalchemy.orm import Session, selectinload

from errors import NotFoundError
from models.audit_log import AuditAction, ResourceType
from models.invoice import Invoice, InvoiceItem, InvoiceSendStatus
from models.order import Order
from models.product import Product
from models.users import User
from utils.audit import AuditContext, AuditEntry, AuditRecorder
from utils.time_utils import utcnow

logger = logging.getLogger(__name__)


def get_invoice(db: Session, invoice_id: int) -> Invoice:
    invoice = (
        db.query(Invoice)
        .options(selectinload(Invoice.items))
        .filter(Invoice.id == invoice_id)
        .first()
    )
    if invoice is None:
        raise NotFoundError("Invoice not found", invoice_id=invoice_id)
    return invoice


def list_all(db: Session) -> List[Invoice]:
    return (
        db.query(Invoice)
        .options(selectinload(Invoice.items))
        .order_by(Invoice.created_at.desc(), Invoice.id.desc())
        .all()
    )


def list_for_customer(db: Session, customer_id: int) -> List[Invoice]:
    return (
        db.query(Invoice)
        .options(selectinload(Invoice.items))
        .filter(Invoice.customer_id == customer_id)
        .order_by(Invoice.created_at.desc(), Invoice.id.desc())
        .all()
    )


def customer_invoices(db: Session, customer_id: int) -> Tuple[User, List[Invoice]]:
    customer = db.get(User, customer_id)
    if customer is None:
        raise NotFoundError("Customer not found", customer_id=customer_id)
    return customer, list_for_customer(db, customer_id)


def create_manual(db: Session, order_id: int, *, context: AuditContext, audit: AuditRecorder) -> Invoice:
    """Issue an invoice for an order by hand.

    Lines are priced from the order as placed and stock is left alone.
    Products deleted since then keep their id under a placeholder name.
    """
    order = (
        db.query(Order)
        .options(selectinload(Order.items))
        .filter(Order.id == order_id)
        .first()
    )
    if order is None:
        raise NotFoundError("Order not found", order_id=order_id)

    ids = {line.product_id for line in order.items}
    names = dict(db.query(Product.id, Product.name).filter(Product.id.in_(ids)).all()) if ids else {}
    items = []
    for line in order.items:
        price = line.unit_price if line.unit_price is not None else Decimal("0.00")
        items.append(InvoiceItem(
            product_id=line.product_id,
            product_name=names.get(line.product_id, f"Product #{line.product_id}"),
            quantity=line.quantity,
            unit_price=price,
            line_total=(price * line.quantity).quantize(Decimal("0.01")),
        ))

    invoice = Invoice(
        order_id=order.id,
        customer_id=order.customer_id,
        total_amount=order.total_price,
        notes=order.notes or "",
        send_status=InvoiceSendStatus.NOT_SENT,
        created_at=utcnow(),
        items=items,
    )
    db.add(invoice)
    db.commit()
    db.refresh(invoice)

    audit.record(AuditEntry(
        context=context, action=AuditAction.INVOICE_CREATE, resource_type=ResourceType.INVOICE,
        resource_id=invoice.id, resource_name=invoice.full_number, status_code=201,
        changes={"before": None, "after": {"order_id": order.id, "total_amount": invoice.total_amount}},
    ))
    logger.info("Invoice %s created by hand for order %s", invoice.full_number, order.id)
    return invoice


# Mark an invoice as delivered to the customer; sending again refreshes the timestamp
def mark_sent(db: Session, invoice_id: int, *, context: AuditContext, audit: AuditRecorder) -> Invoice:
    invoice = get_invoice(db, invoice_id)
    previous = invoice.send_status

    invoice.send_status = InvoiceSendStatus.SENT
    invoice.sent_at = utcnow()
    invoice.sent_by = context.user_id
    db.commit()
    db.refresh(invoice)

    audit.record(AuditEntry(
        context=context, action=AuditAction.INVOICE_SEND, resource_type=ResourceType.INVOICE,
        resource_id=invoice.id, resource_name=invoice.full_number, status_code=200,
        changes={"before": {"send_status": previous.value}, "after": {"send_status": invoice.send_status.value}},
    ))
    logger.info("Invoice %s marked as sent by %s", invoice.full_number, context.actor_label)
    return invoice


def delete_invoice(db: Session, invoice_id: int, *, context: AuditContext, audit: AuditRecorder) -> None:
    invoice = get_invoice(db, invoice_id)
    number, order_id = invoice.full_number, invoice.order_id
    db.delete(invoice)
    db.commit()

    audit.record(AuditEntry(
        context=context, action=AuditAction.INVOICE_DELETE, resource_type=ResourceType.INVOICE,
        resource_id=invoice_id, resource_name=number, status_code=200,
        changes={"before": {"order_id": order_id}, "after": None},
    ))
