"""
Module: expense_kernel.models.audit_log
Responsibility: ORM persistence for the workflow audit log.

Invariants enforced:
    - Audit rows are append-only; no UPDATE or DELETE (ORM listeners).

Audit relevance:
    Every successful workflow transition (submission, each decision,
    reimbursement, budget reallocation) produces one AuditLogModel row.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, Index, String, event
from sqlalchemy.orm import Mapped, mapped_column

from expense_kernel.db.base import Base
from expense_kernel.exceptions import ImmutabilityViolationError


class AuditAction(str, Enum):
    """Types of auditable workflow actions."""

    REPORT_SUBMITTED = "report_submitted"
    REPORT_RESUBMITTED = "report_resubmitted"
    MANAGER_APPROVED = "manager_approved"
    MANAGER_REJECTED = "manager_rejected"
    FORWARDED_TO_CEO = "forwarded_to_ceo"
    CEO_APPROVED = "ceo_approved"
    CEO_REJECTED = "ceo_rejected"
    BUDGET_REALLOCATED = "budget_reallocated"
    CHECKOUT_INITIATED = "checkout_initiated"
    PAYMENT_STATUS_UPDATED = "payment_status_updated"
    REPORT_REIMBURSED = "report_reimbursed"


class AuditLogModel(Base):
    """One audited workflow action."""

    __tablename__ = "audit_logs"

    __table_args__ = (
        Index("idx_audit_log_report", "report_id"),
        Index("idx_audit_log_action", "action"),
        Index("idx_audit_log_occurred", "occurred_at"),
    )

    action: Mapped[str] = mapped_column(String(200), nullable=False)
    module: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[str | None] = mapped_column(String(50), nullable=True)
    performed_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    report_id: Mapped[UUID | None] = mapped_column(nullable=True)
    details: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<AuditLog {self.action} report={self.report_id}>"


@event.listens_for(AuditLogModel, "before_update")
def prevent_audit_update(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="AuditLog",
        entity_id=str(target.id),
        reason="Audit log rows are append-only -- cannot modify",
    )


@event.listens_for(AuditLogModel, "before_delete")
def prevent_audit_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="AuditLog",
        entity_id=str(target.id),
        reason="Audit log rows are append-only -- cannot delete",
    )
