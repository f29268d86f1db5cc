import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Protocol, Tuple

from fastapi import Request
from sqlalchemy.orm import Session

from models.audit_log import AuditLog, AuditAction, AuditOutcome, ResourceType
from utils.time_utils import utcnow

logger = logging.getLogger(__name__)

SENSITIVE_FIELDS = {"password", "password_hash", "verification_token", "token", "secret"}


# Who performed an action and from where
@dataclass(frozen=True)
class AuditContext:
    user_id: Optional[int] = None
    email: Optional[str] = None
    role: Optional[str] = None
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    method: Optional[str] = None
    endpoint: Optional[str] = None

    @classmethod
    def from_request(cls, request, user=None) -> "AuditContext":
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            ip = forwarded.split(",")[0].strip()
        else:
            ip = request.client.host if request.client else None
        role = getattr(user, "role", None)
        return cls(
            user_id=getattr(user, "id", None),
            email=getattr(user, "email", None),
            role=role.value if hasattr(role, "value") else role,
            ip=ip,
            user_agent=request.headers.get("user-agent"),
            method=request.method,
            endpoint=request.url.path,
        )

    @property
    def actor_label(self) -> str:
        """Name written into scan history rows."""
        if self.email:
            return self.email
        if self.user_id is not None:
            return str(self.user_id)
        return "anonymous"


@dataclass
class AuditEntry:
    context: AuditContext
    action: AuditAction
    resource_type: Optional[ResourceType] = None
    resource_id: Optional[Any] = None
    resource_name: Optional[str] = None
    status: AuditOutcome = AuditOutcome.SUCCESS
    status_code: Optional[int] = None
    changes: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    description: Optional[str] = None
    ts: datetime = field(default_factory=utcnow)


class AuditRecorder(Protocol):
    def record(self, entry: AuditEntry) -> None: ...


# Writes entries through its own session so a failed write never touches the caller's transaction
class SessionAuditRecorder:
    def __init__(self, session_factory):
        self.session_factory = session_factory

    def record(self, entry: AuditEntry) -> None:
        try:
            db = self.session_factory()
        except Exception:
            logger.exception("Could not open session for audit entry %s", entry.action.value)
            return
        try:
            write_log(db, entry)
        except Exception:
            db.rollback()
            logger.exception("Error creating audit log for %s", entry.action.value)
        finally:
            db.close()


def write_log(db: Session, entry: AuditEntry) -> AuditLog:
    ctx = entry.context
    log = AuditLog(
        ts=entry.ts,
        user_id=ctx.user_id,
        user_email=ctx.email,
        user_role=ctx.role,
        action=entry.action,
        resource_type=entry.resource_type,
        resource_id=str(entry.resource_id) if entry.resource_id is not None else None,
        resource_name=entry.resource_name,
        method=ctx.method,
        endpoint=ctx.endpoint,
        ip=ctx.ip,
        user_agent=ctx.user_agent,
        status=entry.status,
        status_code=entry.status_code,
        changes=_json_safe(entry.changes),
        error_message=entry.error_message,
        description=entry.description,
    )
    db.add(log)
    db.commit()
    return log


def _json_safe(value):
    if value is None:
        return None
    # Decimals and datetimes end up as strings in the JSON column
    return json.loads(json.dumps(value, default=str))


def extract_changes(before: Optional[Dict[str, Any]], after: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Return only the fields that differ between two snapshots, secrets removed.

    Returns None when nothing changed.
    """
    before, after = before or {}, after or {}
    changes = {"before": {}, "after": {}}
    for key in sorted(set(before) | set(after)):
        if key in SENSITIVE_FIELDS:
            continue
        old, new = before.get(key), after.get(key)
        if old != new:
            changes["before"][key] = old
            changes["after"][key] = new
    return changes if changes["before"] or changes["after"] else None


def query_logs(
    db: Session,
    *,
    user_id: Optional[int] = None,
    action: Optional[AuditAction] = None,
    resource_type: Optional[ResourceType] = None,
    resource_id: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = 100,
    offset: int = 0,
) -> Tuple[List[AuditLog], int]:
    query = db.query(AuditLog)
    if user_id is not None:
        query = query.filter(AuditLog.user_id == user_id)
    if action:
        query = query.filter(AuditLog.action == action)
    if resource_type:
        query = query.filter(AuditLog.resource_type == resource_type)
    if resource_id is not None:
        query = query.filter(AuditLog.resource_id == str(resource_id))
    if start:
        query = query.filter(AuditLog.ts >= start)
    if end:
        query = query.filter(AuditLog.ts <= end)

    total = query.count()
    rows = query.order_by(AuditLog.ts.desc(), AuditLog.id.desc()).offset(offset).limit(limit).all()
    return rows, total


def delete_old_logs(db: Session, days_to_keep: int, *, now: Optional[datetime] = None) -> int:
    # Bulk delete is the only removal path the model listeners let through
    cutoff = (now or utcnow()) - timedelta(days=days_to_keep)
    deleted = (
        db.query(AuditLog)
        .filter(AuditLog.ts < cutoff)
        .delete(synchronize_session=False)
    )
    db.commit()
    logger.info("Deleted %s audit logs older than %s", deleted, cutoff.isoformat())
    return deleted


# FastAPI dependency: the recorder installed on the app at startup
def get_audit_recorder(request: Request) -> AuditRecorder:
    return request.app.state.audit_recorder
