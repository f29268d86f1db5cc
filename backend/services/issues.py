# backend/services/issues.py
import logging
from typing import Any, List, Optional

from sqlalchemy.orm import Session

from errors import NotFoundError, ValidationError
from models.audit_log import AuditAction, ResourceType
from models.issue_report import IssueReport, IssueStatus
from models.users import User
from utils.audit import AuditContext, AuditEntry, AuditRecorder

logger = logging.getLogger(__name__)


def parse_status(value: Any) -> IssueStatus:
    try:
        return IssueStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in IssueStatus)
        raise ValidationError(f"Invalid issue status '{value}'. Allowed: {allowed}")


def get_issue(db: Session, issue_id: int) -> IssueReport:
    issue = db.get(IssueReport, issue_id)
    if issue is None:
        raise NotFoundError("Issue not found", issue_id=issue_id)
    return issue


def create_issue(
    db: Session,
    customer: User,
    subject: Optional[str],
    description: Optional[str],
    *,
    context: AuditContext,
    audit: AuditRecorder,
) -> IssueReport:
    subject = (subject or "").strip()
    description = (description or "").strip()
    if not subject or not description:
        raise ValidationError("Subject and description are required")

    issue = IssueReport(
        customer_id=customer.id,
        customer_name=customer.name or customer.email,
        customer_email=customer.email,
        subject=subject,
        description=description,
        status=IssueStatus.OPEN,
    )
    db.add(issue)
    db.commit()
    db.refresh(issue)

    audit.record(AuditEntry(
        context=context, action=AuditAction.ISSUE_CREATE, resource_type=ResourceType.ISSUE_REPORT,
        resource_id=issue.id, resource_name=subject, status_code=201,
    ))
    logger.info("Issue %s reported by %s", issue.id, customer.email)
    return issue


def list_all(db: Session) -> List[IssueReport]:
    return db.query(IssueReport).order_by(IssueReport.created_at.desc(), IssueReport.id.desc()).all()


def list_for_customer(db: Session, customer_id: int) -> List[IssueReport]:
    return (
        db.query(IssueReport)
        .filter(IssueReport.customer_id == customer_id)
        .order_by(IssueReport.created_at.desc(), IssueReport.id.desc())
        .all()
    )


def set_status(db: Session, issue_id: int, new_status: Any, *, context: AuditContext, audit: AuditRecorder) -> IssueReport:
    status = parse_status(new_status)
    issue = get_issue(db, issue_id)
    old_status = issue.status
    issue.status = status
    db.commit()
    db.refresh(issue)

    audit.record(AuditEntry(
        context=context, action=AuditAction.ISSUE_STATUS_UPDATE, resource_type=ResourceType.ISSUE_REPORT,
        resource_id=issue.id, resource_name=issue.subject, status_code=200,
        changes={"before": {"status": old_status.value}, "after": {"status": status.value}},
    ))
    return issue


def delete_issue(db: Session, issue_id: int, *, context: AuditContext, audit: AuditRecorder) -> None:
    issue = get_issue(db, issue_id)
    subject = issue.subject
    db.delete(issue)
    db.commit()

    audit.record(AuditEntry(
        context=context, action=AuditAction.ISSUE_DELETE, resource_type=ResourceType.ISSUE_REPORT,
        resource_id=issue_id, resource_name=subject, status_code=200,
    ))
