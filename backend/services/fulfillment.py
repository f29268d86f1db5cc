# backend/services/fulfillment.py
"""Order fulfillment: stock deduction and invoice generation.

``fulfill_order`` moves a pending order to ``Fulfilled``. All checks run
before anything is written; the stock decrements, the status flip and the
invoice insert then share one transaction and are rolled back together if
any of them fails. The engine never retries: decrementing stock twice is
worse than surfacing an error to the caller.
"""
import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from errors import (
    AlreadyFulfilledError, AppError, InsufficientStockError, NotFoundError, ProductGoneError,
    StorageFailureError,
)
from models.audit_log import AuditAction, AuditOutcome, ResourceType
from models.invoice import Invoice, InvoiceItem, InvoiceSendStatus
from models.order import Order, OrderStatus
from models.product import Product
from services import catalog
from utils.audit import AuditContext, AuditEntry, AuditRecorder
from utils.time_utils import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FulfillmentResult:
    order: Order
    invoice: Invoice


@dataclass(frozen=True)
class _PricedProduct:
    name: str
    price: Decimal


def _requested_quantities(order: Order) -> "OrderedDict[int, int]":
    # A product may appear on several lines; stock is checked against the sum
    totals: "OrderedDict[int, int]" = OrderedDict()
    for item in order.items:
        totals[item.product_id] = totals.get(item.product_id, 0) + item.quantity
    return totals


def _check_preconditions(db: Session, order: Order):
    if order.status == OrderStatus.FULFILLED:
        raise AlreadyFulfilledError("Order already completed", order_id=order.id)

    requested = _requested_quantities(order)
    products = {p.id: p for p in db.query(Product).filter(Product.id.in_(list(requested))).all()}

    for product_id in requested:
        if product_id not in products:
            raise ProductGoneError(
                f"Cannot fulfill order. Product with ID {product_id} no longer exists in the database.",
                product_id=product_id,
            )
    for product_id, quantity in requested.items():
        product = products[product_id]
        if product.stock < quantity:
            raise InsufficientStockError(
                f"Insufficient stock for {product.name}", product_id=product_id, product_name=product.name
            )
    return requested, {pid: products[pid].stock for pid in requested}


def _deduct_stock(db: Session, requested: "OrderedDict[int, int]") -> Dict[int, _PricedProduct]:
    priced: Dict[int, _PricedProduct] = {}
    # Row locks are always taken in ascending product id so overlapping orders cannot deadlock
    for product_id, quantity in sorted(requested.items()):
        try:
            product = catalog.apply_decrement(db, product_id, quantity)
        except NotFoundError:
            # Deleted between the checks and the write
            raise ProductGoneError(
                f"Cannot fulfill order. Product with ID {product_id} no longer exists in the database.",
                product_id=product_id,
            )
        # Price read inside the transaction, right after the decrement
        priced[product_id] = _PricedProduct(name=product.name, price=product.price)
    return priced


def _mark_fulfilled(db: Session, order: Order, now: datetime) -> None:
    # Conditional flip: a concurrent fulfillment that got here first leaves no row to match
    result = db.execute(
        update(Order)
        .where(Order.id == order.id, Order.status != OrderStatus.FULFILLED)
        .values(status=OrderStatus.FULFILLED, fulfilled_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise AlreadyFulfilledError("Order already completed", order_id=order.id)


def _build_invoice(order: Order, priced: Dict[int, _PricedProduct], now: datetime) -> Invoice:
    items = []
    for line in order.items:
        snap = priced[line.product_id]
        items.append(InvoiceItem(
            product_id=line.product_id,
            product_name=snap.name,
            quantity=line.quantity,
            unit_price=snap.price,
            line_total=(snap.price * line.quantity).quantize(Decimal("0.01")),
        ))
    return Invoice(
        order_id=order.id,
        customer_id=order.customer_id,
        total_amount=order.total_price,
        send_status=InvoiceSendStatus.NOT_SENT,
        created_at=now,
        items=items,
    )


def _record_failure(audit: AuditRecorder, context: AuditContext, order_id: int, exc: AppError) -> None:
    audit.record(AuditEntry(
        context=context, action=AuditAction.ORDER_FULFILL, resource_type=ResourceType.ORDER,
        resource_id=order_id, status=AuditOutcome.FAILURE, status_code=exc.status_code,
        error_message=exc.message,
    ))


def fulfill_order(
    db: Session,
    order_id: int,
    *,
    context: AuditContext,
    audit: AuditRecorder,
    now: Optional[datetime] = None,
) -> FulfillmentResult:
    order = (
        db.query(Order)
        .options(selectinload(Order.items))
        .filter(Order.id == order_id)
        .first()
    )
    if order is None:
        raise NotFoundError("Order not found", order_id=order_id)

    previous_status = order.status.value
    try:
        requested, before_stock = _check_preconditions(db, order)
    except AppError as exc:
        db.rollback()
        logger.warning("Fulfillment of order %s rejected: %s", order_id, exc.message)
        _record_failure(audit, context, order_id, exc)
        raise

    now = now or utcnow()
    try:
        priced = _deduct_stock(db, requested)
        _mark_fulfilled(db, order, now)
        invoice = _build_invoice(order, priced, now)
        db.add(invoice)
        db.commit()
    except AppError as exc:
        db.rollback()
        logger.warning("Fulfillment of order %s rolled back: %s", order_id, exc.message)
        _record_failure(audit, context, order_id, exc)
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Fulfillment of order %s failed in storage", order_id)
        failure = StorageFailureError("Could not complete order; no changes were applied", order_id=order_id)
        _record_failure(audit, context, order_id, failure)
        raise failure from exc

    db.refresh(order)
    db.refresh(invoice)
    logger.info("Order %s fulfilled, invoice %s issued", order.id, invoice.id)

    audit.record(AuditEntry(
        context=context, action=AuditAction.ORDER_FULFILL, resource_type=ResourceType.ORDER,
        resource_id=order.id, status_code=200,
        changes={
            "before": {"status": previous_status, "stock": before_stock},
            "after": {
                "status": order.status.value,
                "invoice_id": invoice.id,
                "stock": {pid: before_stock[pid] - qty for pid, qty in requested.items()},
            },
        },
    ))
    return FulfillmentResult(order=order, invoice=invoice)
