# backend/services/orders.py
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session, selectinload

from errors import AlreadyFulfilledError, NotFoundError, ValidationError
from models.audit_log import AuditAction, ResourceType
from models.invoice import Invoice
from models.order import Order, OrderItem, OrderStatus
from models.product import Product
from utils.audit import AuditContext, AuditEntry, AuditRecorder

logger = logging.getLogger(__name__)

# Workflow labels an admin may set by hand; only fulfillment may set FULFILLED
ADMIN_SETTABLE_STATUSES = frozenset({
    OrderStatus.PENDING,
    OrderStatus.PROCESSING,
    OrderStatus.ON_HOLD,
    OrderStatus.CANCELLED,
})


@dataclass(frozen=True)
class LineItemRequest:
    product_id: int
    quantity: int


@dataclass(frozen=True)
class OrderLineView:
    product_id: int
    product_name: Optional[str]
    product_exists: bool
    quantity: int
    unit_price: Optional[Decimal]


@dataclass(frozen=True)
class OrderView:
    order: Order
    lines: List[OrderLineView]


def parse_status(value: Any) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in OrderStatus)
        raise ValidationError(f"Invalid order status '{value}'. Allowed: {allowed}")


def _load(db: Session, order_id: int) -> Order:
    order = (
        db.query(Order)
        .options(selectinload(Order.items))
        .filter(Order.id == order_id)
        .first()
    )
    if order is None:
        raise NotFoundError("Order not found", order_id=order_id)
    return order


def get_order(db: Session, order_id: int) -> Order:
    return _load(db, order_id)


def create_order(
    db: Session,
    customer_id: int,
    line_items: Iterable[LineItemRequest],
    notes: Optional[str] = None,
    *,
    context: AuditContext,
    audit: AuditRecorder,
) -> Order:
    lines = list(line_items or [])
    if not lines:
        raise ValidationError("Order must include items.")
    for line in lines:
        if isinstance(line.quantity, bool) or not isinstance(line.quantity, int) or line.quantity <= 0:
            raise ValidationError("Each item quantity must be a positive whole number", product_id=line.product_id)

    # One read for every referenced product
    ids = {line.product_id for line in lines}
    products = {p.id: p for p in db.query(Product).filter(Product.id.in_(ids)).all()}

    total = Decimal("0.00")
    order = Order(customer_id=customer_id, notes=(notes or "").strip(), status=OrderStatus.PENDING)
    for line in lines:
        product = products.get(line.product_id)
        # Lines whose product is already gone add nothing to the total
        price = product.price if product is not None else None
        if price is not None:
            total += price * line.quantity
        order.items.append(OrderItem(product_id=line.product_id, quantity=line.quantity, unit_price=price))

    missing = sorted(ids - set(products))
    if missing:
        logger.warning("Order for customer %s references missing products %s", customer_id, missing)

    order.total_price = total.quantize(Decimal("0.01"))
    db.add(order)
    db.commit()
    db.refresh(order)

    audit.record(AuditEntry(
        context=context, action=AuditAction.ORDER_CREATE, resource_type=ResourceType.ORDER,
        resource_id=order.id, status_code=201,
        changes={"before": None, "after": {"total_price": order.total_price, "items": len(lines)}},
    ))
    return order


def list_for_customer(db: Session, customer_id: int) -> List[Order]:
    return (
        db.query(Order)
        .options(selectinload(Order.items))
        .filter(Order.customer_id == customer_id)
        .all()
    )


def list_all(db: Session) -> List[Order]:
    return (
        db.query(Order)
        .options(selectinload(Order.items))
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )


def set_status(
    db: Session,
    order_id: int,
    new_status: Any,
    *,
    context: AuditContext,
    audit: AuditRecorder,
) -> Order:
    status = parse_status(new_status)
    if status not in ADMIN_SETTABLE_STATUSES:
        raise ValidationError("Orders are marked Fulfilled only by completing them")

    order = _load(db, order_id)
    if order.status == OrderStatus.FULFILLED:
        raise AlreadyFulfilledError("Order already completed; its status can no longer change", order_id=order_id)

    old_status = order.status
    order.status = status
    db.commit()
    db.refresh(order)

    audit.record(AuditEntry(
        context=context, action=AuditAction.ORDER_UPDATE, resource_type=ResourceType.ORDER,
        resource_id=order.id, status_code=200,
        changes={"before": {"status": old_status.value}, "after": {"status": status.value}},
    ))
    return order


def delete_order(db: Session, order_id: int, *, context: AuditContext, audit: AuditRecorder) -> None:
    order = _load(db, order_id)
    before: Dict[str, Any] = {"status": order.status.value, "total_price": order.total_price}

    # Invoices outlive their order
    db.query(Invoice).filter(Invoice.order_id == order_id).update(
        {Invoice.order_id: None}, synchronize_session=False
    )
    db.delete(order)
    db.commit()

    audit.record(AuditEntry(
        context=context, action=AuditAction.ORDER_DELETE, resource_type=ResourceType.ORDER,
        resource_id=order_id, status_code=200, changes={"before": before, "after": None},
    ))


def build_view(db: Session, order: Order) -> OrderView:
    """Resolve every line's product in one read."""
    ids = {item.product_id for item in order.items}
    names = dict(db.query(Product.id, Product.name).filter(Product.id.in_(ids)).all()) if ids else {}
    lines = [
        OrderLineView(
            product_id=item.product_id,
            product_name=names.get(item.product_id),
            product_exists=item.product_id in names,
            quantity=item.quantity,
            unit_price=item.unit_price,
        )
        for item in order.items
    ]
    return OrderView(order=order, lines=lines)
