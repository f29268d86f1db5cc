# backend/routes/orders.py
from typing import List
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from database import get_db
from models.users import User, UserRole
from models.order import Order
from services import orders as ledger
from services.fulfillment import fulfill_order
from utils.audit import AuditContext, AuditRecorder, get_audit_recorder
from utils.tokenJWT import get_current_user, role_required, is_admin
from schemas.order import (
    OrderCreate, OrderResponse, OrderItemOut, OrderStatusPatch, FulfillmentResponse,
)
from schemas.invoice import InvoiceOut

router = APIRouter(prefix="/orders", tags=["Orders"])

admin_only = role_required(UserRole.ADMIN)


# Map Order model to OrderResponse schema
def _order_to_out(db: Session, order: Order) -> OrderResponse:
    view = ledger.build_view(db, order)
    items = [
        OrderItemOut(
            product=line.product_id,
            product_name=line.product_name,
            product_exists=line.product_exists,
            quantity=line.quantity,
            unit_price=line.unit_price,
        )
        for line in view.lines
    ]
    return OrderResponse(
        id=order.id,
        customer=order.customer_id,
        status=order.status,
        total_price=order.total_price,
        notes=order.notes,
        created_at=order.created_at,
        fulfilled_at=order.fulfilled_at,
        items=items,
    )


# Create a new order from the customer's selected products
@router.post("", response_model=OrderResponse, status_code=201)
def create_order(
    payload: OrderCreate,
    request: Request,
    db: Session = Depends(get_db),
    audit: AuditRecorder = Depends(get_audit_recorder),
    current_user: User = Depends(get_current_user),
):
    lines = [ledger.LineItemRequest(product_id=i.product, quantity=i.quantity) for i in payload.items]
    order = ledger.create_order(
        db, current_user.id, lines, payload.notes,
        context=AuditContext.from_request(request, current_user), audit=audit,
    )
    return _order_to_out(db, order)


# List every order, newest first (Admin only)
@router.get("", response_model=List[OrderResponse])
def list_orders(db: Session = Depends(get_db), current_user: User = Depends(admin_only)):
    return [_order_to_out(db, o) for o in ledger.list_all(db)]


# List the caller's own orders, newest first
@router.get("/my", response_model=List[OrderResponse])
def list_my_orders(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    orders = ledger.list_for_customer(db, current_user.id)
    orders.sort(key=lambda o: (o.created_at, o.id), reverse=True)
    return [_order_to_out(db, o) for o in orders]


# Get details of a specific order
@router.get("/{order_id}", response_model=OrderResponse)
def get_order_detail(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    order = ledger.get_order(db, order_id)
    if order.customer_id != current_user.id and not is_admin(current_user):
        raise HTTPException(status_code=404, detail="Order not found or forbidden")
    return _order_to_out(db, order)


# Manually update order workflow label (Admin only)
@router.put("/{order_id}/status", response_model=OrderResponse)
def update_order_status(
    order_id: int,
    payload: OrderStatusPatch,
    request: Request,
    db: Session = Depends(get_db),
    audit: AuditRecorder = Depends(get_audit_recorder),
    current_user: User = Depends(admin_only),
):
    order = ledger.set_status(
        db, order_id, payload.status,
        context=AuditContext.from_request(request, current_user), audit=audit,
    )
    return _order_to_out(db, order)


@router.delete("/{order_id}")
def delete_order(
    order_id: int,
    request: Request,
    db: Session = Depends(get_db),
    audit: AuditRecorder = Depends(get_audit_recorder),
    current_user: User = Depends(admin_only),
):
    ledger.delete_order(db, order_id, context=AuditContext.from_request(request, current_user), audit=audit)
    return {"message": "Order deleted"}


# Complete an order: deduct stock and issue its invoice (Admin only)
@router.put("/{order_id}/complete", response_model=FulfillmentResponse)
def complete_order(
    order_id: int,
    request: Request,
    db: Session = Depends(get_db),
    audit: AuditRecorder = Depends(get_audit_recorder),
    current_user: User = Depends(admin_only),
):
    result = fulfill_order(
        db, order_id, context=AuditContext.from_request(request, current_user), audit=audit,
    )
    return FulfillmentResponse(
        message="Order completed and invoice generated.",
        order=_order_to_out(db, result.order),
        invoice=InvoiceOut.model_validate(result.invoice),
    )
