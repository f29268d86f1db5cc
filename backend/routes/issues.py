# backend/routes/issues.py
from typing import List
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from database import get_db
from models.users import User, UserRole
from services import issues as issue_desk
from utils.audit import AuditContext, AuditRecorder, get_audit_recorder
from utils.tokenJWT import get_current_user, role_required
from schemas.issue import IssueCreate, IssueOut, IssueStatusPatch

router = APIRouter(prefix="/issues", tags=["Issues"])

admin_only = role_required(UserRole.ADMIN)


# Report a problem (any signed-in user)
@router.post("", response_model=IssueOut, status_code=201)
def report_issue(
    payload: IssueCreate,
    request: Request,
    db: Session = Depends(get_db),
    audit: AuditRecorder = Depends(get_audit_recorder),
    current_user: User = Depends(get_current_user),
):
    return issue_desk.create_issue(
        db, current_user, payload.subject, payload.description,
        context=AuditContext.from_request(request, current_user), audit=audit,
    )


@router.get("", response_model=List[IssueOut])
def list_issues(db: Session = Depends(get_db), current_user: User = Depends(admin_only)):
    return issue_desk.list_all(db)


@router.get("/my", response_model=List[IssueOut])
def list_my_issues(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return issue_desk.list_for_customer(db, current_user.id)


@router.put("/{issue_id}/status", response_model=IssueOut)
def update_issue_status(
    issue_id: int,
    payload: IssueStatusPatch,
    request: Request,
    db: Session = Depends(get_db),
    audit: AuditRecorder = Depends(get_audit_recorder),
    current_user: User = Depends(admin_only),
):
    return issue_desk.set_status(
        db, issue_id, payload.status, context=AuditContext.from_request(request, current_user), audit=audit,
    )


@router.delete("/{issue_id}")
def delete_issue(
    issue_id: int,
    request: Request,
    db: Session = Depends(get_db),
    audit: AuditRecorder = Depends(get_audit_recorder),
    current_user: User = Depends(admin_only),
):
    issue_desk.delete_issue(db, issue_id, context=AuditContext.from_request(request, current_user), audit=audit)
    return {"message": "Issue deleted"}
