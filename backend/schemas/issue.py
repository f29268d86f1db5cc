# backend/schemas/issue.py
from pydantic import AliasChoices, Field
from typing import Optional
from datetime import datetime

from schemas.product import ORMBase
from models.issue_report import IssueStatus


# Input schema for reporting an issue; "title" is accepted for "subject"
class IssueCreate(ORMBase):
    subject: Optional[str] = Field(default=None, validation_alias=AliasChoices("subject", "title"))
    description: Optional[str] = None


class IssueStatusPatch(ORMBase):
    status: str


class IssueOut(ORMBase):
    id: int
    customer_id: int
    customer_name: str
    customer_email: str
    subject: str
    description: str
    status: IssueStatus
    created_at: datetime
    updated_at: datetime
