"""
WorkflowEngine -- applies the expense report transition table.

Responsibility:
    Resolves ``(current status, action)`` against
    ``EXPENSE_REPORT_WORKFLOW``, evaluates guards, mutates the report, posts
    ledger spend when the transition says so, and appends the Approval and
    audit rows -- all inside the caller's transaction.

Architecture position:
    Kernel > Services.  Called by ``ExpenseWorkflowService`` and by
    ``ReimbursementReconciler`` (finance confirmation).

Invariants enforced:
    - The report row is locked (SELECT ... FOR UPDATE, populate_existing)
      before any guard is evaluated, so guards see committed state.
    - A transition that is not in the table raises InvalidStateError before
      anything is mutated.
    - Every applied transition appends exactly one Approval row and one
      audit row.

Failure modes:
    - ReportNotFoundError for an unknown report id.
    - InvalidStateError for a transition the current status does not permit.
    - ValidationError for blank rejection remarks or a bad reallocation,
      raised before any mutation.
"""

from collections.abc import Mapping
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import func, select

from expense_kernel.domain.clock import Clock
from expense_kernel.domain.values import (
    ApprovalDecision,
    BudgetCheck,
    BudgetEvaluation,
    ReportStatus,
)
from expense_kernel.domain.workflow import (
    CEO_APPROVE,
    CEO_REJECT,
    CONFIRM_PAYMENT,
    EXPENSE_REPORT_WORKFLOW,
    FINANCE_ELIGIBLE,
    FORWARD_TO_CEO,
    MANAGER_APPROVE,
    MANAGER_REJECT,
    NOT_APPROVED,
    OVER_BUDGET,
    WITHIN_BUDGET,
    Guard,
    Transition,
    Workflow,
)
from expense_kernel.exceptions import InvalidStateError, ReportNotFoundError, ValidationError
from expense_kernel.logging_config import LogContext, get_logger
from expense_kernel.models.approval import ApprovalModel
from expense_kernel.models.audit_log import AuditAction
from expense_kernel.models.expense_report import ExpenseReportModel
from expense_kernel.services.auditor_service import AuditorService
from expense_kernel.services.base import BaseService
from expense_kernel.services.budget_ledger import BudgetLedger

logger = get_logger("services.workflow")

_MODULE = "approvals"

_AUDIT_ACTIONS = {
    MANAGER_APPROVE: AuditAction.MANAGER_APPROVED,
    MANAGER_REJECT: AuditAction.MANAGER_REJECTED,
    FORWARD_TO_CEO: AuditAction.FORWARDED_TO_CEO,
    CEO_APPROVE: AuditAction.CEO_APPROVED,
    CEO_REJECT: AuditAction.CEO_REJECTED,
    CONFIRM_PAYMENT: AuditAction.REPORT_REIMBURSED,
}


def is_finance_eligible(report: ExpenseReportModel) -> bool:
    """Approved, not reimbursed, and within budget or explicitly CEO approved."""
    return (
        report.status == ReportStatus.APPROVED.value
        and not report.reimbursed
        and (report.budget_check == BudgetCheck.WITHIN_BUDGET.value or report.ceo_approved)
    )


def evaluate_guard(guard: Guard, report: ExpenseReportModel) -> bool:
    if guard == WITHIN_BUDGET:
        return report.budget_check == BudgetCheck.WITHIN_BUDGET.value
    if guard == OVER_BUDGET:
        return report.budget_check == BudgetCheck.OVER_BUDGET.value
    if guard == FINANCE_ELIGIBLE:
        return is_finance_eligible(report)
    if guard == NOT_APPROVED:
        return report.status != ReportStatus.APPROVED.value
    raise ValueError(f"Unknown guard: {guard.name}")


def _require_remarks(remarks: str | None) -> str:
    if remarks is None or not remarks.strip():
        raise ValidationError("remarks", "rejection remarks are required")
    return remarks.strip()


class WorkflowEngine(BaseService):
    """Applies manager, CEO and finance decisions to expense reports."""

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        workflow: Workflow = EXPENSE_REPORT_WORKFLOW,
    ):
        super().__init__(session, clock)
        self.workflow = workflow
        self.ledger = BudgetLedger(session, self.clock)
        self.auditor = AuditorService(session, self.clock)

    # =========================================================================
    # Loading
    # =========================================================================

    def lock_report(self, report_id: UUID) -> ExpenseReportModel:
        """Load a report FOR UPDATE, refreshing any stale identity-map copy."""
        report = self.session.execute(
            select(ExpenseReportModel)
            .where(ExpenseReportModel.id == report_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if report is None:
            raise ReportNotFoundError(str(report_id))
        return report

    def resolve(self, report: ExpenseReportModel, action: str) -> Transition:
        """Pick the first transition for ``action`` whose guard holds."""
        candidates = self.workflow.candidates(report.status, action)
        for transition in candidates:
            if transition.guard is None or evaluate_guard(transition.guard, report):
                return transition

        if candidates:
            reason = " / ".join(
                t.guard.description for t in candidates if t.guard is not None
            ) + " does not hold"
        else:
            allowed = sorted(self.workflow.allowed_actions(report.status))
            reason = f"allowed actions: {', '.join(allowed) or 'none'}"
        raise InvalidStateError(str(report.id), report.status, action, reason=reason)

    # =========================================================================
    # Manager stage
    # =========================================================================

    def approve_as_manager(
        self, report_id: UUID, actor_id: UUID, remarks: str | None = None,
    ) -> ExpenseReportModel:
        report = self.lock_report(report_id)
        transition = self.resolve(report, MANAGER_APPROVE)

        if transition.to_state == ReportStatus.PENDING_CEO_APPROVAL.value:
            report.forwarded_to_ceo = True
        return self._apply(report, transition, actor_id, remarks or "")

    def reject_as_manager(
        self, report_id: UUID, actor_id: UUID, remarks: str,
    ) -> ExpenseReportModel:
        remarks = _require_remarks(remarks)
        report = self.lock_report(report_id)
        transition = self.resolve(report, MANAGER_REJECT)
        return self._apply(report, transition, actor_id, remarks)

    def forward_to_ceo(
        self, report_id: UUID, actor_id: UUID, remarks: str | None = None,
    ) -> ExpenseReportModel:
        report = self.lock_report(report_id)
        transition = self.resolve(report, FORWARD_TO_CEO)
        report.forwarded_to_ceo = True
        return self._apply(report, transition, actor_id, remarks or "")

    # =========================================================================
    # CEO stage
    # =========================================================================

    def approve_as_ceo(
        self,
        report_id: UUID,
        actor_id: UUID,
        remarks: str | None = None,
        reallocations: Mapping[str, Decimal] | None = None,
    ) -> ExpenseReportModel:
        """Approve an escalated report, optionally raising category allocations."""
        cleaned = self.ledger.validate_allocations(reallocations) if reallocations else {}
        report = self.lock_report(report_id)
        transition = self.resolve(report, CEO_APPROVE)

        if cleaned:
            self.ledger.reallocate(cleaned)
            self.auditor.record(
                AuditAction.BUDGET_REALLOCATED,
                module="budgets",
                report_id=report.id,
                actor_id=actor_id,
                role=transition.stage.value,
                details=", ".join(f"{k}={v}" for k, v in cleaned.items()),
                payload={k: str(v) for k, v in cleaned.items()},
            )

        report.ceo_approved = True
        report.forwarded_to_ceo = False
        return self._apply(
            report, transition, actor_id, remarks or "",
            payload={"reallocations": {k: str(v) for k, v in cleaned.items()}},
        )

    def reject_as_ceo(
        self, report_id: UUID, actor_id: UUID, remarks: str,
    ) -> ExpenseReportModel:
        remarks = _require_remarks(remarks)
        report = self.lock_report(report_id)
        transition = self.resolve(report, CEO_REJECT)
        report.ceo_approved = False
        report.forwarded_to_ceo = False
        return self._apply(report, transition, actor_id, remarks)

    # =========================================================================
    # Finance stage
    # =========================================================================

    def apply_finance_confirmation(
        self,
        report: ExpenseReportModel,
        actor_id: UUID,
        remarks: str = "",
        payload: dict[str, Any] | None = None,
    ) -> ExpenseReportModel:
        """
        Mark a locked, finance-eligible report reimbursed.

        The caller (the reconciler) has already locked the report and decided
        that the confirmation is not a replay.
        """
        transition = self.resolve(report, CONFIRM_PAYMENT)
        report.reimbursed = True
        return self._apply(report, transition, actor_id, remarks, payload=payload)

    # =========================================================================
    # Queries
    # =========================================================================

    def compute_budget_exceedance(self, report_id: UUID) -> BudgetEvaluation:
        report = self.session.get(ExpenseReportModel, report_id)
        if report is None:
            raise ReportNotFoundError(str(report_id))
        return self.ledger.evaluate_report(report)

    # =========================================================================
    # Internals
    # =========================================================================

    def _apply(
        self,
        report: ExpenseReportModel,
        transition: Transition,
        actor_id: UUID,
        remarks: str,
        payload: dict[str, Any] | None = None,
    ) -> ExpenseReportModel:
        from_state = report.status
        report.status = transition.to_state

        posted: dict[str, Decimal] = {}
        if transition.posts_spend:
            posted = self.ledger.post_report_spend(report)

        approval = ApprovalModel(
            report_id=report.id,
            approver_id=actor_id,
            decision=(transition.decision or ApprovalDecision.APPROVED).value,
            stage=transition.stage.value,
            remarks=remarks,
            decided_at=self.clock.now(),
            sequence=self._next_approval_sequence(report.id),
        )
        self.session.add(approval)
        self.session.flush()

        audit_payload = {
            "from": from_state,
            "to": transition.to_state,
            "posted": {k: str(v) for k, v in posted.items()},
        }
        audit_payload.update(payload or {})
        self.auditor.record(
            _AUDIT_ACTIONS[transition.action],
            module=_MODULE,
            report_id=report.id,
            actor_id=actor_id,
            role=transition.stage.value,
            details=remarks,
            payload=audit_payload,
        )

        with LogContext.bind(report_id=report.id, actor_id=actor_id, stage=transition.stage.value):
            logger.info(
                "transition_applied",
                extra={
                    "action": transition.action,
                    "from_state": from_state,
                    "to_state": transition.to_state,
                    "decision": approval.decision,
                    "spend_posted": bool(posted) and any(v > 0 for v in posted.values()),
                },
            )
        return report

    def _next_approval_sequence(self, report_id: UUID) -> int:
        # Caller holds the report row lock
        current = self.session.execute(
            select(func.max(ApprovalModel.sequence)).where(ApprovalModel.report_id == report_id)
        ).scalar_one()
        return (current or 0) + 1
