# backend/routes/inventory.py
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from config import Settings
from database import get_db
from models.inventory_item import InventoryItem
from models.users import User, UserRole
from services import inventory as registry
from utils.audit import AuditContext, AuditRecorder, get_audit_recorder
from utils.qr import render_qr_data_url
from utils.tokenJWT import get_current_user, get_settings, role_required
from schemas.inventory import (
    InventoryItemCreate, InventoryBatchCreate, ItemStatusUpdate, ScanNote,
    InventoryItemOut, InventoryItemDetail, InventoryItemCreated, ProductSummary,
    OrderSummary, ScanRecordOut, QRCodeOut,
)

router = APIRouter(prefix="/inventory", tags=["Inventory"])

admin_only = role_required(UserRole.ADMIN)


# Item with product, order and capped scan history resolved
def _detail(db: Session, item: InventoryItem, settings: Settings) -> InventoryItemDetail:
    view = registry.build_view(db, item, history_limit=settings.SCAN_HISTORY_DISPLAY_LIMIT)
    base = InventoryItemOut.model_validate(item).model_dump()
    return InventoryItemDetail(
        **base,
        product=ProductSummary.model_validate(view.product),
        order=OrderSummary.model_validate(view.order) if view.order else None,
        scan_history=[ScanRecordOut.model_validate(r) for r in view.history],
    )


def _created(item: InventoryItem) -> InventoryItemCreated:
    base = InventoryItemOut.model_validate(item).model_dump()
    return InventoryItemCreated(**base, qr_code_data_url=render_qr_data_url(item.qr_code))


# ==========================================
#  SCAN & LOOKUP (any authenticated user)
# ==========================================
@router.get("/scan/{item_code}", response_model=InventoryItemDetail)
def scan_item(
    item_code: str,
    request: Request,
    notes: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    audit: AuditRecorder = Depends(get_audit_recorder),
    current_user: User = Depends(get_current_user),
):
    item = registry.scan(
        db, item_code, notes=notes,
        context=AuditContext.from_request(request, current_user), audit=audit,
    )
    return _detail(db, item, settings)


# Scan with a note in the body, for handheld scanners that POST
@router.post("/scan/{item_code}", response_model=InventoryItemDetail)
def scan_item_with_note(
    item_code: str,
    request: Request,
    payload: Optional[ScanNote] = None,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    audit: AuditRecorder = Depends(get_audit_recorder),
    current_user: User = Depends(get_current_user),
):
    item = registry.scan(
        db, item_code, notes=payload.notes if payload else None,
        context=AuditContext.from_request(request, current_user), audit=audit,
    )
    return _detail(db, item, settings)


@router.get("/item/{item_code}", response_model=InventoryItemDetail)
def get_item(
    item_code: str,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    current_user: User = Depends(get_current_user),
):
    return _detail(db, registry.get_item(db, item_code), settings)


# QR code as the encoded URL or as a PNG data URL
@router.get("/qr/{item_code}", response_model=QRCodeOut)
def get_qr_code(
    item_code: str,
    format: str = Query("image", pattern="^(url|image)$"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    item = registry.get_item(db, item_code)
    if format == "url":
        return QRCodeOut(qr_code=item.qr_code)
    return QRCodeOut(qr_code=render_qr_data_url(item.qr_code))


@router.get("/product/{product_id}", response_model=List[InventoryItemOut])
def list_product_items(
    product_id: int,
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return registry.list_for_product(db, product_id, status)


@router.get("/stats/{product_id}")
def get_stats(
    product_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return registry.stats_for_product(db, product_id)


# ==========================================
#  ADMIN
# ==========================================
@router.post("/item", response_model=InventoryItemCreated, status_code=201)
def create_item(
    payload: InventoryItemCreate,
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    audit: AuditRecorder = Depends(get_audit_recorder),
    current_user: User = Depends(admin_only),
):
    item = registry.create_item(
        db,
        product_id=payload.product_id,
        item_code=payload.item_code,
        base_url=settings.API_URL,
        batch_number=payload.batch_number,
        manufacturing_date=payload.manufacturing_date,
        expiry_date=payload.expiry_date,
        notes=payload.notes,
        context=AuditContext.from_request(request, current_user),
        audit=audit,
    )
    return _created(item)


@router.post("/batch", status_code=201)
def create_batch(
    payload: InventoryBatchCreate,
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    audit: AuditRecorder = Depends(get_audit_recorder),
    current_user: User = Depends(admin_only),
):
    result = registry.create_batch(
        db,
        product_id=payload.product_id,
        item_codes=payload.item_codes,
        base_url=settings.API_URL,
        batch_number=payload.batch_number,
        manufacturing_date=payload.manufacturing_date,
        expiry_date=payload.expiry_date,
        notes=payload.notes,
        context=AuditContext.from_request(request, current_user),
        audit=audit,
    )
    body = {
        "created": len(result.created),
        "items": [InventoryItemOut.model_validate(i).model_dump(mode="json", by_alias=True) for i in result.created],
    }
    if result.errors:
        body["errors"] = result.errors
    return body


@router.put("/item/{item_code}/status", response_model=InventoryItemOut)
def update_item_status(
    item_code: str,
    payload: ItemStatusUpdate,
    request: Request,
    db: Session = Depends(get_db),
    audit: AuditRecorder = Depends(get_audit_recorder),
    current_user: User = Depends(admin_only),
):
    return registry.set_status(
        db, item_code, payload.status,
        location=payload.location,
        notes=payload.notes,
        order_id=payload.assigned_to_order,
        context=AuditContext.from_request(request, current_user),
        audit=audit,
    )


@router.delete("/item/{item_code}")
def delete_item(
    item_code: str,
    request: Request,
    db: Session = Depends(get_db),
    audit: AuditRecorder = Depends(get_audit_recorder),
    current_user: User = Depends(admin_only),
):
    registry.delete_item(db, item_code, context=AuditContext.from_request(request, current_user), audit=audit)
    return {"message": "Inventory item deleted successfully"}
