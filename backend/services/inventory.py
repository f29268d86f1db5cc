# backend/services/inventory.py
"""Inventory item registry.

Every physical unit carries a unique item code and a QR link derived from
it. Scans and status changes only ever insert rows into the item's scan
history, so concurrent scans of the same code keep all of their entries.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from errors import DuplicateCodeError, NotFoundError, ValidationError
from models.audit_log import AuditAction, ResourceType
from models.inventory_item import InventoryItem, ItemStatus, ScanAction, ScanRecord
from models.order import Order
from models.product import Product
from utils.audit import AuditContext, AuditEntry, AuditRecorder
from utils.qr import build_scan_url
from utils.time_utils import utcnow

logger = logging.getLogger(__name__)

# History action written for each target status
STATUS_ACTIONS: Dict[ItemStatus, ScanAction] = {
    ItemStatus.AVAILABLE: ScanAction.RESTOCKED,
    ItemStatus.SOLD: ScanAction.SOLD,
    ItemStatus.DAMAGED: ScanAction.DAMAGED,
    ItemStatus.RETURNED: ScanAction.RETURNED,
    ItemStatus.IN_TRANSIT: ScanAction.MOVED,
}


@dataclass
class BatchResult:
    created: List[InventoryItem] = field(default_factory=list)
    errors: List[Dict[str, str]] = field(default_factory=list)


@dataclass(frozen=True)
class ItemView:
    item: InventoryItem
    product: Product
    order: Optional[Order]
    history: Sequence[ScanRecord]


def parse_status(value: Any) -> ItemStatus:
    try:
        return ItemStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in ItemStatus)
        raise ValidationError(f"Valid status is required ({allowed})")


def _clean_code(item_code: Optional[str]) -> str:
    if not isinstance(item_code, str) or not item_code.strip():
        raise ValidationError("Item code is required and must be a non-empty string")
    return item_code.strip()


def _require_product(db: Session, product_id: Optional[int]) -> Product:
    if product_id is None:
        raise ValidationError("Product ID is required")
    product = db.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found", product_id=product_id)
    return product


def _find(db: Session, item_code: str) -> InventoryItem:
    item = db.query(InventoryItem).filter(InventoryItem.item_code == _clean_code(item_code)).first()
    if item is None:
        raise NotFoundError("Item not found", item_code=item_code)
    return item


def _append_history(db: Session, item: InventoryItem, action: ScanAction, actor: str, notes: Optional[str]) -> None:
    db.add(ScanRecord(item_id=item.id, scanned_at=utcnow(), scanned_by=actor, action=action, notes=notes))


def _insert_item(
    db: Session,
    product: Product,
    code: str,
    *,
    base_url: str,
    batch_number: Optional[str],
    manufacturing_date: Optional[datetime],
    expiry_date: Optional[datetime],
    notes: Optional[str],
    actor: str,
) -> InventoryItem:
    # Friendly message for the common case; the unique index settles races
    if db.query(InventoryItem.id).filter(InventoryItem.item_code == code).first() is not None:
        raise DuplicateCodeError("Item code already exists", item_code=code)

    item = InventoryItem(
        product_id=product.id,
        item_code=code,
        qr_code=build_scan_url(base_url, code),
        status=ItemStatus.AVAILABLE,
        batch_number=batch_number or None,
        manufacturing_date=manufacturing_date,
        expiry_date=expiry_date,
        notes=notes or "",
    )
    db.add(item)
    try:
        db.flush()
        _append_history(db, item, ScanAction.CREATED, actor, None)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DuplicateCodeError("Item code already exists", item_code=code)
    db.refresh(item)
    return item


def create_item(
    db: Session,
    *,
    product_id: int,
    item_code: str,
    base_url: str,
    batch_number: Optional[str] = None,
    manufacturing_date: Optional[datetime] = None,
    expiry_date: Optional[datetime] = None,
    notes: Optional[str] = None,
    context: AuditContext,
    audit: AuditRecorder,
) -> InventoryItem:
    if product_id is None:
        raise ValidationError("Product ID is required")
    code = _clean_code(item_code)
    product = _require_product(db, product_id)

    item = _insert_item(
        db, product, code, base_url=base_url, batch_number=batch_number,
        manufacturing_date=manufacturing_date, expiry_date=expiry_date, notes=notes,
        actor=context.actor_label,
    )
    audit.record(AuditEntry(
        context=context, action=AuditAction.INVENTORY_ITEM_CREATE, resource_type=ResourceType.INVENTORY_ITEM,
        resource_id=item.id, resource_name=f"InventoryItem: {item.item_code}", status_code=201,
        changes={"before": None, "after": {"item_code": item.item_code, "product_id": product.id}},
    ))
    return item


def create_batch(
    db: Session,
    *,
    product_id: int,
    item_codes: Sequence[str],
    base_url: str,
    batch_number: Optional[str] = None,
    manufacturing_date: Optional[datetime] = None,
    expiry_date: Optional[datetime] = None,
    notes: Optional[str] = None,
    context: AuditContext,
    audit: AuditRecorder,
) -> BatchResult:
    """Register several items of one product.

    Codes are processed in input order, each in its own transaction. A
    failing code is reported in ``errors`` and does not stop the rest.
    """
    if not item_codes:
        raise ValidationError("Item codes array is required and must not be empty")
    product = _require_product(db, product_id)

    result = BatchResult()
    for raw_code in item_codes:
        try:
            code = _clean_code(raw_code)
            item = _insert_item(
                db, product, code, base_url=base_url, batch_number=batch_number,
                manufacturing_date=manufacturing_date, expiry_date=expiry_date, notes=notes,
                actor=context.actor_label,
            )
        except (ValidationError, DuplicateCodeError) as exc:
            result.errors.append({"itemCode": raw_code if isinstance(raw_code, str) else str(raw_code), "error": exc.message})
            continue
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Storing batch item %r for product %s failed", raw_code, product.id)
            result.errors.append({"itemCode": str(raw_code), "error": "Could not store item"})
            continue

        result.created.append(item)
        audit.record(AuditEntry(
            context=context, action=AuditAction.INVENTORY_ITEM_CREATE, resource_type=ResourceType.INVENTORY_ITEM,
            resource_id=item.id, resource_name=f"InventoryItem: {item.item_code}", status_code=201,
            changes={"before": None, "after": {"item_code": item.item_code, "batch_number": batch_number}},
        ))

    if result.errors:
        logger.warning("Batch for product %s: %s created, %s rejected", product.id, len(result.created), len(result.errors))
    return result


def scan(
    db: Session,
    item_code: str,
    *,
    notes: Optional[str] = None,
    context: AuditContext,
    audit: AuditRecorder,
) -> InventoryItem:
    item = _find(db, item_code)
    _append_history(db, item, ScanAction.SCANNED, context.actor_label, notes)
    db.commit()
    db.refresh(item)

    audit.record(AuditEntry(
        context=context, action=AuditAction.INVENTORY_ITEM_SCAN, resource_type=ResourceType.INVENTORY_ITEM,
        resource_id=item.id, resource_name=f"InventoryItem: {item.item_code}", status_code=200,
    ))
    return item


def set_status(
    db: Session,
    item_code: str,
    new_status: Any,
    *,
    location: Optional[str] = None,
    notes: Optional[str] = None,
    order_id: Optional[int] = None,
    context: AuditContext,
    audit: AuditRecorder,
) -> InventoryItem:
    status = parse_status(new_status)
    item = _find(db, item_code)

    if order_id is not None and db.get(Order, order_id) is None:
        raise NotFoundError("Order not found", order_id=order_id)

    old_status = item.status
    item.status = status
    if location:
        item.location = location.strip()
    if order_id is not None:
        item.assigned_order_id = order_id

    _append_history(
        db, item, STATUS_ACTIONS[status], context.actor_label,
        notes or f"Status changed from {old_status.value} to {status.value}",
    )
    db.commit()
    db.refresh(item)

    audit.record(AuditEntry(
        context=context, action=AuditAction.INVENTORY_ITEM_STATUS_UPDATE, resource_type=ResourceType.INVENTORY_ITEM,
        resource_id=item.id, resource_name=f"InventoryItem: {item.item_code}", status_code=200,
        changes={"before": {"status": old_status.value}, "after": {"status": status.value}},
    ))
    return item


def get_item(db: Session, item_code: str) -> InventoryItem:
    return _find(db, item_code)


def build_view(db: Session, item: InventoryItem, history_limit: Optional[int] = None) -> ItemView:
    """Resolve product and order references; cap history for display only."""
    product = db.get(Product, item.product_id)
    if product is None:
        raise NotFoundError("Product not found", product_id=item.product_id)
    order = db.get(Order, item.assigned_order_id) if item.assigned_order_id is not None else None

    query = db.query(ScanRecord).filter(ScanRecord.item_id == item.id)
    if history_limit:
        # Most recent entries, still returned oldest first
        rows = query.order_by(ScanRecord.id.desc()).limit(history_limit).all()
        history = list(reversed(rows))
    else:
        history = query.order_by(ScanRecord.id.asc()).all()
    return ItemView(item=item, product=product, order=order, history=history)


def list_for_product(db: Session, product_id: int, status: Optional[Any] = None) -> List[InventoryItem]:
    _require_product(db, product_id)
    query = db.query(InventoryItem).filter(InventoryItem.product_id == product_id)
    if status:
        query = query.filter(InventoryItem.status == parse_status(status))
    return query.order_by(InventoryItem.created_at.desc(), InventoryItem.id.desc()).all()


def stats_for_product(db: Session, product_id: int) -> Dict[str, int]:
    _require_product(db, product_id)
    rows = (
        db.query(InventoryItem.status, func.count(InventoryItem.id))
        .filter(InventoryItem.product_id == product_id)
        .group_by(InventoryItem.status)
        .all()
    )
    stats = {s.value: 0 for s in ItemStatus}
    stats["total"] = 0
    for status, count in rows:
        stats[ItemStatus(status).value] = count
        stats["total"] += count
    return stats


def delete_item(db: Session, item_code: str, *, context: AuditContext, audit: AuditRecorder) -> None:
    item = _find(db, item_code)
    item_id, code = item.id, item.item_code
    db.delete(item)
    db.commit()

    audit.record(AuditEntry(
        context=context, action=AuditAction.INVENTORY_ITEM_DELETE, resource_type=ResourceType.INVENTORY_ITEM,
        resource_id=item_id, resource_name=f"InventoryItem: {code}", status_code=200,
        changes={"before": {"item_code": code}, "after": None},
    ))
