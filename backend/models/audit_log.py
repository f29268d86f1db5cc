import enum

from sqlalchemy import Column, Integer, String, DateTime, JSON, Enum, Index, event
from sqlalchemy.orm import Session
from database import Base
from errors import AuditLogImmutableError
from utils.time_utils import utcnow


class AuditAction(str, enum.Enum):
    PRODUCT_CREATE = "PRODUCT_CREATE"
    PRODUCT_UPDATE = "PRODUCT_UPDATE"
    PRODUCT_DELETE = "PRODUCT_DELETE"
    PRODUCT_STOCK_ADJUST = "PRODUCT_STOCK_ADJUST"
    ORDER_CREATE = "ORDER_CREATE"
    ORDER_UPDATE = "ORDER_UPDATE"
    ORDER_DELETE = "ORDER_DELETE"
    ORDER_FULFILL = "ORDER_FULFILL"
    INVOICE_CREATE = "INVOICE_CREATE"
    INVOICE_SEND = "INVOICE_SEND"
    INVOICE_DELETE = "INVOICE_DELETE"
    INVENTORY_ITEM_CREATE = "INVENTORY_ITEM_CREATE"
    INVENTORY_ITEM_SCAN = "INVENTORY_ITEM_SCAN"
    INVENTORY_ITEM_STATUS_UPDATE = "INVENTORY_ITEM_STATUS_UPDATE"
    INVENTORY_ITEM_DELETE = "INVENTORY_ITEM_DELETE"
    ISSUE_CREATE = "ISSUE_CREATE"
    ISSUE_STATUS_UPDATE = "ISSUE_STATUS_UPDATE"
    ISSUE_DELETE = "ISSUE_DELETE"
    AUDIT_RETENTION_SWEEP = "AUDIT_RETENTION_SWEEP"


class ResourceType(str, enum.Enum):
    PRODUCT = "Product"
    ORDER = "Order"
    INVOICE = "Invoice"
    INVENTORY_ITEM = "InventoryItem"
    ISSUE_REPORT = "IssueReport"
    AUDIT_LOG = "AuditLog"


class AuditOutcome(str, enum.Enum):
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    PARTIAL = "PARTIAL"


def _enum_values(enum_cls):
    return [m.value for m in enum_cls]


# Represents an immutable who-did-what-when record
class AuditLog(Base):
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_user_ts", "user_id", "ts"),
        Index("ix_audit_logs_action_ts", "action", "ts"),
        Index("ix_audit_logs_resource_ts", "resource_type", "resource_id", "ts"),
    )

    id = Column(Integer, primary_key=True, index=True)
    ts = Column(DateTime, default=utcnow, nullable=False, index=True)

    # Actor; email and role are copied for historical reference
    user_id = Column(Integer, nullable=True)
    user_email = Column(String, nullable=True)
    user_role = Column(String(20), nullable=True)

    action = Column(Enum(AuditAction, values_callable=_enum_values, native_enum=False, length=50), nullable=False)
    resource_type = Column(Enum(ResourceType, values_callable=_enum_values, native_enum=False, length=30), nullable=True)
    resource_id = Column(String(64), nullable=True)
    resource_name = Column(String, nullable=True)

    method = Column(String(10), nullable=True)
    endpoint = Column(String, nullable=True)
    ip = Column(String(64), nullable=True)
    user_agent = Column(String, nullable=True)

    status = Column(Enum(AuditOutcome, values_callable=_enum_values, native_enum=False, length=10),
                    nullable=False, default=AuditOutcome.SUCCESS)
    status_code = Column(Integer, nullable=True)

    # {"before": {...}, "after": {...}} with secrets already redacted
    changes = Column(JSON, nullable=True)
    error_message = Column(String, nullable=True)
    description = Column(String, nullable=True)


@event.listens_for(AuditLog, "before_update")
def _reject_update(mapper, connection, target):
    raise AuditLogImmutableError("Audit logs cannot be modified")


@event.listens_for(AuditLog, "before_delete")
def _reject_delete(mapper, connection, target):
    raise AuditLogImmutableError("Audit logs can only be removed by the retention sweep")


# Bulk UPDATE statements bypass the mapper events above
@event.listens_for(Session, "do_orm_execute")
def _reject_bulk_update(orm_execute_state):
    if not orm_execute_state.is_update:
        return
    mapper = orm_execute_state.bind_mapper
    if mapper is not None and mapper.class_ is AuditLog:
        raise AuditLogImmutableError("Audit logs cannot be modified")
