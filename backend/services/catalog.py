# backend/services/catalog.py
"""Catalog store: product lifecycle and the stock counter.

Stock only moves through conditional UPDATE statements evaluated by the
database, so two concurrent writers can never both take the last units.
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from errors import (
    DuplicateCodeError, InsufficientStockError, NotFoundError, StockConflictError, StockInvariantError,
    ValidationError,
)
from models.audit_log import AuditAction, ResourceType
from models.inventory_item import InventoryItem
from models.product import Product
from utils.audit import AuditContext, AuditEntry, AuditRecorder, extract_changes

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("name", "description", "category", "price", "stock", "unit", "is_active", "sku")


def snapshot(product: Product) -> Dict[str, Any]:
    return {f: getattr(product, f) for f in EDITABLE_FIELDS}


def _clean_name(name: Optional[str]) -> str:
    value = (name or "").strip()
    if not value:
        raise ValidationError("Product name is required")
    return value


def _clean_price(price: Any) -> Decimal:
    try:
        value = Decimal(str(price))
    except (InvalidOperation, ValueError):
        raise ValidationError("Price must be a number")
    if not value.is_finite() or value < 0:
        raise ValidationError("Price must be a non-negative number")
    return value.quantize(Decimal("0.01"))


def _clean_stock(stock: Any) -> int:
    if isinstance(stock, bool) or not isinstance(stock, int):
        raise ValidationError("Stock must be a whole number")
    if stock < 0:
        raise ValidationError("Stock cannot be negative")
    return stock


def _clean_sku(sku: Optional[str]) -> Optional[str]:
    if sku is None:
        return None
    value = sku.strip().upper()
    return value or None


def _clean_field(field: str, value: Any) -> Any:
    if field == "name":
        return _clean_name(value)
    if field == "price":
        return _clean_price(value)
    if field == "stock":
        return _clean_stock(value)
    if field == "sku":
        return _clean_sku(value)
    if field == "is_active":
        return bool(value)
    return "" if value is None else str(value).strip()


def get_product(db: Session, product_id: int) -> Product:
    product = db.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found", product_id=product_id)
    return product


def list_available(db: Session) -> List[Product]:
    return db.query(Product).filter(Product.stock > 0).order_by(Product.name.asc(), Product.id.asc()).all()


def create_product(
    db: Session,
    *,
    name: str,
    price: Any,
    stock: int = 0,
    description: str = "",
    category: str = "General",
    unit: str = "unit",
    sku: Optional[str] = None,
    is_active: bool = True,
    context: AuditContext,
    audit: AuditRecorder,
) -> Product:
    product = Product(
        name=_clean_name(name),
        price=_clean_price(price),
        stock=_clean_stock(stock),
        description=(description or "").strip(),
        category=(category or "General").strip(),
        unit=(unit or "unit").strip(),
        sku=_clean_sku(sku),
        is_active=bool(is_active),
    )
    db.add(product)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DuplicateCodeError("SKU already exists", sku=product.sku)
    db.refresh(product)

    audit.record(AuditEntry(
        context=context, action=AuditAction.PRODUCT_CREATE, resource_type=ResourceType.PRODUCT,
        resource_id=product.id, resource_name=f"Product: {product.name}", status_code=201,
        changes={"before": None, "after": snapshot(product)},
    ))
    return product


def update_product(
    db: Session,
    product_id: int,
    fields: Dict[str, Any],
    *,
    context: AuditContext,
    audit: AuditRecorder,
) -> Product:
    product = get_product(db, product_id)

    # Unknown keys are ignored; at least one recognised key must be present
    cleaned = {k: _clean_field(k, v) for k, v in fields.items() if k in EDITABLE_FIELDS}
    if not cleaned:
        raise ValidationError("No valid fields to update")

    before = snapshot(product)
    new_stock = cleaned.pop("stock", None)
    if new_stock is not None:
        # Set only if nobody moved the counter since it was read
        result = db.execute(
            update(Product)
            .where(Product.id == product_id, Product.stock == before["stock"])
            .values(stock=new_stock)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.rollback()
            raise StockConflictError(
                f"Stock for {product.name} changed while it was being edited", product_id=product_id
            )
    for key, value in cleaned.items():
        setattr(product, key, value)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DuplicateCodeError("SKU already exists", sku=cleaned.get("sku"))
    db.refresh(product)

    audit.record(AuditEntry(
        context=context, action=AuditAction.PRODUCT_UPDATE, resource_type=ResourceType.PRODUCT,
        resource_id=product.id, resource_name=f"Product: {product.name}", status_code=200,
        changes=extract_changes(before, snapshot(product)),
    ))
    return product


def apply_decrement(db: Session, product_id: int, quantity: int) -> Product:
    """Take ``quantity`` units inside the caller's transaction.

    The UPDATE only matches while ``stock >= quantity``, so the check and the
    write are a single statement. Nothing is committed here.
    """
    result = db.execute(
        update(Product)
        .where(Product.id == product_id, Product.stock >= quantity)
        .values(stock=Product.stock - quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        row = db.execute(select(Product.name).where(Product.id == product_id)).first()
        if row is None:
            raise NotFoundError("Product not found", product_id=product_id)
        raise InsufficientStockError(
            f"Insufficient stock for {row.name}", product_id=product_id, product_name=row.name
        )

    product = db.get(Product, product_id)
    db.refresh(product)
    if product.stock < 0:
        raise StockInvariantError(
            f"Stock allocation failed for {product.name}. Insufficient inventory.",
            product_id=product_id,
        )
    return product


def apply_increment(db: Session, product_id: int, quantity: int) -> Product:
    result = db.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(stock=Product.stock + quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise NotFoundError("Product not found", product_id=product_id)
    product = db.get(Product, product_id)
    db.refresh(product)
    return product


def decrement_stock(db: Session, product_id: int, quantity: int) -> Product:
    if quantity <= 0:
        raise ValidationError("Quantity must be positive")
    try:
        product = apply_decrement(db, product_id, quantity)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(product)
    return product


def adjust_stock(
    db: Session,
    product_id: int,
    delta: int,
    *,
    reason: Optional[str] = None,
    context: AuditContext,
    audit: AuditRecorder,
) -> Product:
    """Admin stock correction by a signed delta."""
    if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
        raise ValidationError("Adjustment must be a non-zero whole number")

    before = get_product(db, product_id).stock
    if delta < 0:
        product = decrement_stock(db, product_id, -delta)
    else:
        try:
            product = apply_increment(db, product_id, delta)
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(product)

    audit.record(AuditEntry(
        context=context, action=AuditAction.PRODUCT_STOCK_ADJUST, resource_type=ResourceType.PRODUCT,
        resource_id=product.id, resource_name=f"Product: {product.name}", status_code=200,
        changes={"before": {"stock": before}, "after": {"stock": product.stock}},
        description=reason,
    ))
    return product


def delete_product(db: Session, product_id: int, *, context: AuditContext, audit: AuditRecorder) -> None:
    product = get_product(db, product_id)
    # Registered items and their scan history are only removed by deleting each item
    item_count = db.query(InventoryItem.id).filter(InventoryItem.product_id == product_id).count()
    if item_count:
        raise ValidationError(
            f"Cannot delete {product.name}: {item_count} inventory item(s) still registered",
            product_id=product_id,
        )
    before = snapshot(product)
    name = product.name
    db.delete(product)
    try:
        db.commit()
    except IntegrityError:
        # An item was registered after the count above
        db.rollback()
        raise ValidationError(f"Cannot delete {name}: inventory items still registered", product_id=product_id)

    audit.record(AuditEntry(
        context=context, action=AuditAction.PRODUCT_DELETE, resource_type=ResourceType.PRODUCT,
        resource_id=product_id, resource_name=f"Product: {name}", status_code=200,
        changes={"before": before, "after": None},
    ))
