# backend/routes/products.py
from typing import List
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from database import get_db
from models.users import User, UserRole
from services import catalog
from utils.audit import AuditContext, AuditRecorder, get_audit_recorder
from utils.tokenJWT import role_required
import schemas.product as product_schemas

router = APIRouter(prefix="/products", tags=["Products"])

admin_only = role_required(UserRole.ADMIN)


# =========================
# CATALOG (public)
# =========================
# Products with stock on hand, ordered by name
@router.get("", response_model=List[product_schemas.ProductOut])
def list_products(db: Session = Depends(get_db)):
    return catalog.list_available(db)


@router.get("/{product_id}", response_model=product_schemas.ProductOut)
def get_product(product_id: int, db: Session = Depends(get_db)):
    return catalog.get_product(db, product_id)


# =========================
# ADMIN
# =========================
@router.post("", response_model=product_schemas.ProductOut, status_code=201)
def create_product(
    payload: product_schemas.ProductCreate,
    request: Request,
    db: Session = Depends(get_db),
    audit: AuditRecorder = Depends(get_audit_recorder),
    current_user: User = Depends(admin_only),
):
    return catalog.create_product(
        db,
        **payload.model_dump(),
        context=AuditContext.from_request(request, current_user),
        audit=audit,
    )


# Partial update; only the fields present in the body are touched
@router.put("/{product_id}", response_model=product_schemas.ProductOut)
def update_product(
    product_id: int,
    payload: product_schemas.ProductUpdate,
    request: Request,
    db: Session = Depends(get_db),
    audit: AuditRecorder = Depends(get_audit_recorder),
    current_user: User = Depends(admin_only),
):
    return catalog.update_product(
        db, product_id, payload.model_dump(exclude_unset=True),
        context=AuditContext.from_request(request, current_user), audit=audit,
    )


@router.post("/{product_id}/stock", response_model=product_schemas.ProductOut)
def adjust_stock(
    product_id: int,
    payload: product_schemas.StockAdjustment,
    request: Request,
    db: Session = Depends(get_db),
    audit: AuditRecorder = Depends(get_audit_recorder),
    current_user: User = Depends(admin_only),
):
    return catalog.adjust_stock(
        db, product_id, payload.delta, reason=payload.reason,
        context=AuditContext.from_request(request, current_user), audit=audit,
    )


@router.delete("/{product_id}")
def delete_product(
    product_id: int,
    request: Request,
    db: Session = Depends(get_db),
    audit: AuditRecorder = Depends(get_audit_recorder),
    current_user: User = Depends(admin_only),
):
    catalog.delete_product(db, product_id, context=AuditContext.from_request(request, current_user), audit=audit)
    return {"message": "Product deleted"}
