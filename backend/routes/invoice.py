# backend/routes/invoice.py
from typing import List
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from database import get_db
from models.users import User, UserRole
from services import invoices as invoicing
from utils.audit import AuditContext, AuditRecorder, get_audit_recorder
from utils.tokenJWT import get_current_user, role_required, is_admin
from schemas import invoice as invoice_schemas

router = APIRouter(prefix="/invoices", tags=["Invoices"])

admin_only = role_required(UserRole.ADMIN)


# =========================
# LIST
# =========================
@router.get("", response_model=List[invoice_schemas.InvoiceOut])
def list_invoices(db: Session = Depends(get_db), current_user: User = Depends(admin_only)):
    return invoicing.list_all(db)


@router.get("/my", response_model=List[invoice_schemas.InvoiceOut])
def list_my_invoices(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return invoicing.list_for_customer(db, current_user.id)


@router.get("/customer/{customer_id}", response_model=invoice_schemas.CustomerInvoicesOut)
def list_customer_invoices(customer_id: int, db: Session = Depends(get_db), current_user: User = Depends(admin_only)):
    customer, invoices = invoicing.customer_invoices(db, customer_id)
    return {"customer": customer, "invoices": invoices}


# =========================
# DETAIL (owner or admin)
# =========================
@router.get("/{invoice_id}", response_model=invoice_schemas.InvoiceOut)
def get_invoice(
    invoice_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    invoice = invoicing.get_invoice(db, invoice_id)
    if invoice.customer_id != current_user.id and not is_admin(current_user):
        raise HTTPException(status_code=403, detail="Not authorized to access this invoice")
    return invoice


# =========================
# ADMIN
# =========================
@router.post("", response_model=invoice_schemas.InvoiceOut, status_code=201)
def create_invoice(
    payload: invoice_schemas.InvoiceCreate,
    request: Request,
    db: Session = Depends(get_db),
    audit: AuditRecorder = Depends(get_audit_recorder),
    current_user: User = Depends(admin_only),
):
    return invoicing.create_manual(
        db, payload.order_id, context=AuditContext.from_request(request, current_user), audit=audit,
    )


@router.put("/{invoice_id}/send", response_model=invoice_schemas.InvoiceOut)
def send_invoice(
    invoice_id: int,
    request: Request,
    db: Session = Depends(get_db),
    audit: AuditRecorder = Depends(get_audit_recorder),
    current_user: User = Depends(admin_only),
):
    return invoicing.mark_sent(
        db, invoice_id, context=AuditContext.from_request(request, current_user), audit=audit,
    )


@router.delete("/{invoice_id}")
def delete_invoice(
    invoice_id: int,
    request: Request,
    db: Session = Depends(get_db),
    audit: AuditRecorder = Depends(get_audit_recorder),
    current_user: User = Depends(admin_only),
):
    invoicing.delete_invoice(db, invoice_id, context=AuditContext.from_request(request, current_user), audit=audit)
    return {"message": "Invoice deleted"}
