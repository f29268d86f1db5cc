# backend/routes/logs.py
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session
from typing import List, Optional, Any
from datetime import datetime
from pydantic import BaseModel, ConfigDict

from config import Settings
from database import get_db
from errors import ValidationError
from models.audit_log import AuditAction, AuditOutcome, ResourceType
from models.users import User, UserRole
from utils.audit import (
    AuditContext, AuditEntry, AuditRecorder, delete_old_logs, get_audit_recorder, query_logs,
)
from utils.tokenJWT import get_settings, role_required

router = APIRouter(prefix="/logs", tags=["Logs"])

admin_only = role_required(UserRole.ADMIN)


# --- SCHEMAS ---
class LogResponse(BaseModel):
    id: int
    ts: datetime
    user_id: Optional[int] = None
    user_email: Optional[str] = None
    user_role: Optional[str] = None
    action: AuditAction
    resource_type: Optional[ResourceType] = None
    resource_id: Optional[str] = None
    resource_name: Optional[str] = None
    method: Optional[str] = None
    endpoint: Optional[str] = None
    ip: Optional[str] = None
    status: AuditOutcome
    status_code: Optional[int] = None
    changes: Optional[Any] = None
    error_message: Optional[str] = None
    description: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class LogPage(BaseModel):
    items: List[LogResponse]
    total: int
    page: int
    page_size: int


def _parse_date(value: Optional[str], end_of_day: bool = False) -> Optional[datetime]:
    if not value:
        return None
    # A bare YYYY-MM-DD upper bound covers the whole day
    if end_of_day and len(value) == 10:
        value += " 23:59:59"
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"Invalid date '{value}'")


def _parse_enum(enum_cls, value: Optional[str], label: str):
    if not value:
        return None
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(f"Unknown {label} '{value}'")


# --- ENDPOINTS ---
@router.get("", response_model=LogPage)
def get_logs(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    action: Optional[str] = Query(None, description="Filter by action"),
    user_id: Optional[int] = Query(None, description="Filter by user ID"),
    resource_type: Optional[str] = Query(None, description="Filter by resource type"),
    resource_id: Optional[str] = Query(None, description="Filter by resource ID"),
    date_from: Optional[str] = Query(None, description="From date (YYYY-MM-DD)"),
    date_to: Optional[str] = Query(None, description="To date (YYYY-MM-DD)"),
    db: Session = Depends(get_db),
    current_user: User = Depends(admin_only),
):
    rows, total = query_logs(
        db,
        user_id=user_id,
        action=_parse_enum(AuditAction, action, "action"),
        resource_type=_parse_enum(ResourceType, resource_type, "resource type"),
        resource_id=resource_id,
        start=_parse_date(date_from),
        end=_parse_date(date_to, end_of_day=True),
        limit=page_size,
        offset=(page - 1) * page_size,
    )
    return {"items": rows, "total": total, "page": page, "page_size": page_size}


# Full trail of one resource, newest first
@router.get("/resource/{resource_type}/{resource_id}", response_model=List[LogResponse])
def get_resource_logs(
    resource_type: str,
    resource_id: str,
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
    current_user: User = Depends(admin_only),
):
    rows, _ = query_logs(
        db,
        resource_type=_parse_enum(ResourceType, resource_type, "resource type"),
        resource_id=resource_id,
        limit=limit,
    )
    return rows


@router.delete("/retention")
def sweep_old_logs(
    request: Request,
    days: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    audit: AuditRecorder = Depends(get_audit_recorder),
    current_user: User = Depends(admin_only),
):
    days_to_keep = days or settings.AUDIT_RETENTION_DAYS
    deleted = delete_old_logs(db, days_to_keep)
    audit.record(AuditEntry(
        context=AuditContext.from_request(request, current_user),
        action=AuditAction.AUDIT_RETENTION_SWEEP,
        resource_type=ResourceType.AUDIT_LOG,
        status_code=200,
        description=f"Deleted {deleted} entries older than {days_to_keep} days",
    ))
    return {"deleted": deleted, "days_to_keep": days_to_keep}
