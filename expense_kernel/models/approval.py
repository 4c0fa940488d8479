"""
Module: expense_kernel.models.approval
Responsibility: ORM persistence for the per-report approval trail.

Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Append-only: decision fields are never updated; rows are never deleted.
    - The only permitted mutation is stamping ``voided_at`` once, which is how
      a resubmission supersedes the previous trail without losing history.
    - ``sequence`` numbers a report's decisions 1, 2, 3 ... in the order
      they were recorded, voided ones included.
    - The report does not own its approvals: there is no cascading
      relationship from the report side.

Failure modes:
    - ImmutabilityViolationError on any other UPDATE, a second void, or DELETE.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, Text, UniqueConstraint, event, inspect
from sqlalchemy.orm import Mapped, mapped_column

from expense_kernel.db.base import Base
from expense_kernel.exceptions import ImmutabilityViolationError

_DECISION_FIELDS = (
    "report_id",
    "approver_id",
    "decision",
    "stage",
    "remarks",
    "decided_at",
    "sequence",
)


class ApprovalModel(Base):
    """Persistent approval decision record."""

    __tablename__ = "approvals"

    __table_args__ = (
        Index("ix_approvals_report_decided", "report_id", "decided_at"),
        UniqueConstraint("report_id", "sequence", name="uq_approvals_report_sequence"),
    )

    report_id: Mapped[UUID] = mapped_column(
        ForeignKey("expense_reports.id"), nullable=False,
    )
    approver_id: Mapped[UUID] = mapped_column(nullable=False)
    decision: Mapped[str] = mapped_column(String(50), nullable=False)
    stage: Mapped[str] = mapped_column(String(50), nullable=False)
    remarks: Mapped[str] = mapped_column(Text, default="", nullable=False)
    decided_at: Mapped[datetime] = mapped_column(nullable=False)
    # 1-based position in the report's trail; orders same-instant decisions
    sequence: Mapped[int] = mapped_column(nullable=False)
    voided_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return (
            f"<Approval {self.id} report={self.report_id} "
            f"{self.stage}:{self.decision}>"
        )

    def to_dto(self):
        from expense_kernel.domain.values import (
            ApprovalDecision,
            ApprovalRecord,
            ApprovalStage,
        )

        return ApprovalRecord(
            id=self.id,
            report_id=self.report_id,
            approver_id=self.approver_id,
            decision=ApprovalDecision(self.decision),
            stage=ApprovalStage(self.stage),
            remarks=self.remarks,
            decided_at=self.decided_at,
            voided_at=self.voided_at,
            sequence=self.sequence,
        )


# =============================================================================
# ORM-Level Immutability (append-only, void once)
# =============================================================================


@event.listens_for(ApprovalModel, "before_update")
def prevent_approval_update(mapper, connection, target):
    """Allow only the one-time void stamp."""
    state = inspect(target)
    for name in _DECISION_FIELDS:
        if state.attrs[name].history.has_changes():
            raise ImmutabilityViolationError(
                entity_type="Approval",
                entity_id=str(target.id),
                reason=f"Approval decisions are immutable -- cannot modify {name}",
            )
    voided = state.attrs["voided_at"].history
    if voided.has_changes() and any(v is not None for v in voided.deleted):
        raise ImmutabilityViolationError(
            entity_type="Approval",
            entity_id=str(target.id),
            reason="Approval already voided",
        )


@event.listens_for(ApprovalModel, "before_delete")
def prevent_approval_delete(mapper, connection, target):
    """Prevent deletion of approval records."""
    raise ImmutabilityViolationError(
        entity_type="Approval",
        entity_id=str(target.id),
        reason="Approval decisions are immutable -- cannot delete",
    )
