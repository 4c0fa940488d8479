"""
AuditorService -- append-only audit log for workflow transitions.

Responsibility:
    Emits one ``AuditLogModel`` row per successful state transition, inside
    the same transaction as the transition itself, so an aborted transition
    leaves no audit trace.

Architecture position:
    Kernel > Services.  Called by ReportService, WorkflowEngine and the
    ReimbursementReconciler after their mutation has been flushed.
"""

from typing import Any
from uuid import UUID

from sqlalchemy import select

from expense_kernel.logging_config import get_logger
from expense_kernel.models.audit_log import AuditAction, AuditLogModel
from expense_kernel.services.base import BaseService

logger = get_logger("services.auditor")

_MAX_DETAILS = 500


class AuditorService(BaseService):
    """Writes and reads workflow audit rows."""

    def record(
        self,
        action: AuditAction,
        *,
        module: str,
        report_id: UUID | None,
        actor_id: UUID | None,
        role: str | None = None,
        details: str = "",
        payload: dict[str, Any] | None = None,
    ) -> AuditLogModel:
        entry = AuditLogModel(
            action=action.value,
            module=module,
            role=role,
            performed_by_id=actor_id,
            report_id=report_id,
            details=details[:_MAX_DETAILS],
            payload=payload or {},
            occurred_at=self.clock.now(),
        )
        self.session.add(entry)
        self.session.flush()

        logger.info(
            "audit_recorded",
            extra={
                "action": action.value,
                "audit_module": module,
                "audit_report_id": str(report_id) if report_id else None,
                "role": role,
            },
        )
        return entry

    def trail_for_report(self, report_id: UUID) -> list[AuditLogModel]:
        """All audit rows for a report, oldest first."""
        return list(
            self.session.execute(
                select(AuditLogModel)
                .where(AuditLogModel.report_id == report_id)
                .order_by(AuditLogModel.occurred_at)
            ).scalars()
        )
