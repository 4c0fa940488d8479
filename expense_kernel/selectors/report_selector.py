"""
Module: expense_kernel.selectors.report_selector
Responsibility: Read-only report queries: single report, role queues,
    approval trail and payment session.
Architecture position: Kernel > Selectors.

Role queues:
    Manager -> Submitted
    CEO     -> PendingCEOApproval
    Finance -> Approved, not reimbursed, and WithinBudget or CEO approved
    All queues are ordered by submission time, oldest first.
"""

from uuid import UUID

from sqlalchemy import or_, select

from expense_kernel.domain.values import (
    ApprovalRecord,
    ApprovalStage,
    BudgetCheck,
    PaymentSnapshot,
    ReportSnapshot,
    ReportStatus,
)
from expense_kernel.exceptions import ValidationError
from expense_kernel.models.approval import ApprovalModel
from expense_kernel.models.expense_report import ExpenseReportModel
from expense_kernel.models.payment import ReimbursementPaymentModel
from expense_kernel.selectors.base import BaseSelector


def _coerce_role(role: ApprovalStage | str) -> ApprovalStage:
    if isinstance(role, ApprovalStage):
        return role
    try:
        return ApprovalStage(role)
    except ValueError:
        raise ValidationError(
            "role", f"unknown role {role!r}; expected one of {[s.value for s in ApprovalStage]}"
        ) from None


class ReportSelector(BaseSelector):
    """Queries over expense reports and their trails."""

    def get_report(self, report_id: UUID) -> ReportSnapshot | None:
        report = self.session.get(ExpenseReportModel, report_id)
        return report.to_dto() if report is not None else None

    def reports_for_owner(self, owner_id: UUID) -> list[ReportSnapshot]:
        reports = self.session.execute(
            select(ExpenseReportModel)
            .where(ExpenseReportModel.owner_id == owner_id)
            .order_by(ExpenseReportModel.submitted_at.desc())
        ).scalars()
        return [r.to_dto() for r in reports]

    def pending_for_role(self, role: ApprovalStage | str) -> list[ReportSnapshot]:
        stage = _coerce_role(role)
        stmt = select(ExpenseReportModel)

        if stage is ApprovalStage.MANAGER:
            stmt = stmt.where(ExpenseReportModel.status == ReportStatus.SUBMITTED.value)
        elif stage is ApprovalStage.CEO:
            stmt = stmt.where(
                ExpenseReportModel.status == ReportStatus.PENDING_CEO_APPROVAL.value
            )
        else:
            stmt = stmt.where(
                ExpenseReportModel.status == ReportStatus.APPROVED.value,
                ExpenseReportModel.reimbursed.is_(False),
                or_(
                    ExpenseReportModel.budget_check == BudgetCheck.WITHIN_BUDGET.value,
                    ExpenseReportModel.ceo_approved.is_(True),
                ),
            )

        reports = self.session.execute(
            stmt.order_by(ExpenseReportModel.submitted_at)
        ).scalars()
        return [r.to_dto() for r in reports]

    def approval_trail(
        self, report_id: UUID, include_voided: bool = False,
    ) -> list[ApprovalRecord]:
        """Approvals oldest first; voided records only when asked for."""
        stmt = select(ApprovalModel).where(ApprovalModel.report_id == report_id)
        if not include_voided:
            stmt = stmt.where(ApprovalModel.voided_at.is_(None))
        approvals = self.session.execute(
            stmt.order_by(ApprovalModel.decided_at, ApprovalModel.sequence)
        ).scalars()
        return [a.to_dto() for a in approvals]

    def payment_for_report(self, report_id: UUID) -> PaymentSnapshot | None:
        payment = self.session.execute(
            select(ReimbursementPaymentModel).where(
                ReimbursementPaymentModel.report_id == report_id
            )
        ).scalar_one_or_none()
        return payment.to_dto() if payment is not None else None
