"""
ReportService -- the expense report aggregate: submission and resubmission.

Responsibility:
    Validates line items, keeps ``total_amount`` equal to the sum of the
    items, stamps the monthly budget check, and supersedes the approval
    trail when a report is resubmitted.

Architecture position:
    Kernel > Services.  Called by ``ExpenseWorkflowService``; uses
    BudgetLedger for the budget check and AuditorService for the trail.

Invariants enforced:
    - total_amount == sum(item.amount), recomputed on every (re)submission.
    - An Approved report cannot be resubmitted (InvalidStateError).
    - Resubmission voids the previous approvals instead of deleting them.

Failure modes:
    - ValidationError for an empty item list, blank category, non-positive
      amount, missing date, or an inconsistent trip range.  Raised before
      any row is touched.
"""

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select

from expense_kernel.db.types import ZERO, sum_money, to_money
from expense_kernel.domain.clock import Clock
from expense_kernel.domain.values import ExpenseItemInput, ReportStatus
from expense_kernel.domain.workflow import EXPENSE_REPORT_WORKFLOW, RESUBMIT
from expense_kernel.exceptions import InvalidStateError, ValidationError
from expense_kernel.logging_config import LogContext, get_logger
from expense_kernel.models.approval import ApprovalModel
from expense_kernel.models.audit_log import AuditAction
from expense_kernel.models.expense_report import ExpenseItemModel, ExpenseReportModel
from expense_kernel.services.auditor_service import AuditorService
from expense_kernel.services.base import BaseService
from expense_kernel.services.budget_ledger import BudgetLedger, normalize_category

logger = get_logger("services.report")

_MODULE = "expense_reports"


def validate_items(items: Sequence[ExpenseItemInput]) -> list[ExpenseItemInput]:
    """
    Return cleaned copies of ``items`` (trimmed category, money-rounded amount).

    Raises:
        ValidationError: On the first invalid item.
    """
    if not items:
        raise ValidationError("items", "a report needs at least one item")

    cleaned = []
    for index, item in enumerate(items, start=1):
        try:
            category = normalize_category(item.category)
        except ValidationError:
            raise ValidationError(f"items[{index}].category", "must not be empty") from None

        try:
            amount = to_money(item.amount)
        except ValueError as exc:
            raise ValidationError(f"items[{index}].amount", str(exc)) from exc
        if amount <= ZERO:
            raise ValidationError(f"items[{index}].amount", f"must be positive (got {amount})")

        if not isinstance(item.expense_date, date):
            raise ValidationError(f"items[{index}].expense_date", "a date is required")

        cleaned.append(
            ExpenseItemInput(
                category=category,
                amount=amount,
                expense_date=item.expense_date,
                description=(item.description or "").strip(),
                receipt_reference=item.receipt_reference,
            )
        )
    return cleaned


def validate_trip(trip_start: date | None, trip_end: date | None) -> int:
    """Return the inclusive trip day count (1 when no trip is given)."""
    if trip_start is None and trip_end is None:
        return 1
    if trip_start is None or trip_end is None:
        missing = "trip_start" if trip_start is None else "trip_end"
        raise ValidationError(missing, "trip_start and trip_end must be given together")
    if trip_end < trip_start:
        raise ValidationError("trip_end", "must not be before trip_start")
    return (trip_end - trip_start).days + 1


def _category_totals(items: Sequence[ExpenseItemInput]) -> dict[str, Decimal]:
    totals: dict[str, Decimal] = {}
    for item in items:
        totals[item.category] = totals.get(item.category, ZERO) + item.amount
    return totals


class ReportService(BaseService):
    """Creates and rewrites expense reports."""

    def __init__(self, session, clock: Clock | None = None):
        super().__init__(session, clock)
        self.ledger = BudgetLedger(session, self.clock)
        self.auditor = AuditorService(session, self.clock)

    def submit(
        self,
        owner_id: UUID,
        items: Sequence[ExpenseItemInput],
        trip_start: date | None = None,
        trip_end: date | None = None,
    ) -> ExpenseReportModel:
        cleaned = validate_items(items)
        trip_days = validate_trip(trip_start, trip_end)

        evaluation = self.ledger.evaluate(_category_totals(cleaned), self.clock.today())

        report = ExpenseReportModel(
            id=uuid4(),
            owner_id=owner_id,
            submitted_at=self.clock.now(),
            status=ReportStatus.SUBMITTED.value,
            budget_check=evaluation.budget_check.value,
            total_amount=sum_money(item.amount for item in cleaned),
            forwarded_to_ceo=False,
            ceo_approved=False,
            reimbursed=False,
            trip_start=trip_start,
            trip_end=trip_end,
            trip_days=trip_days,
        )
        report.items = self._build_items(cleaned)
        self.session.add(report)
        self.session.flush()

        self.auditor.record(
            AuditAction.REPORT_SUBMITTED,
            module=_MODULE,
            report_id=report.id,
            actor_id=owner_id,
            details=f"Submitted {len(cleaned)} item(s) totalling {report.total_amount}",
            payload={
                "total_amount": str(report.total_amount),
                "budget_check": report.budget_check,
                "exceeded": list(evaluation.exceeded_categories),
            },
        )

        with LogContext.bind(report_id=report.id, actor_id=owner_id):
            logger.info(
                "report_submitted",
                extra={
                    "total_amount": str(report.total_amount),
                    "item_count": len(cleaned),
                    "budget_check": report.budget_check,
                },
            )
        return report

    def resubmit(
        self,
        report: ExpenseReportModel,
        items: Sequence[ExpenseItemInput],
        actor_id: UUID | None = None,
        trip_start: date | None = None,
        trip_end: date | None = None,
    ) -> ExpenseReportModel:
        """
        Replace a report's items and send it back to the manager queue.

        ``report`` must already be locked by the caller.
        """
        if not EXPENSE_REPORT_WORKFLOW.candidates(report.status, RESUBMIT):
            raise InvalidStateError(
                str(report.id), report.status, RESUBMIT,
                reason="approved reports are immutable",
            )

        cleaned = validate_items(items)
        trip_days = validate_trip(trip_start, trip_end)
        evaluation = self.ledger.evaluate(
            _category_totals(cleaned), self.clock.today(), exclude_report_id=report.id,
        )

        previous_status = report.status
        # Old lines must be gone before new ones reuse their line numbers
        report.items.clear()
        self.session.flush()

        report.items.extend(self._build_items(cleaned))
        report.total_amount = sum_money(item.amount for item in cleaned)
        report.budget_check = evaluation.budget_check.value
        report.status = ReportStatus.SUBMITTED.value
        report.submitted_at = self.clock.now()
        report.forwarded_to_ceo = False
        report.ceo_approved = False
        report.reimbursed = False
        report.trip_start = trip_start
        report.trip_end = trip_end
        report.trip_days = trip_days

        voided = self._void_trail(report.id)
        self.session.flush()

        actor = actor_id or report.owner_id
        self.auditor.record(
            AuditAction.REPORT_RESUBMITTED,
            module=_MODULE,
            report_id=report.id,
            actor_id=actor,
            details=f"Resubmitted from {previous_status}; voided {voided} approval(s)",
            payload={
                "previous_status": previous_status,
                "total_amount": str(report.total_amount),
                "budget_check": report.budget_check,
                "voided_approvals": voided,
            },
        )

        with LogContext.bind(report_id=report.id, actor_id=actor):
            logger.info(
                "report_resubmitted",
                extra={
                    "previous_status": previous_status,
                    "total_amount": str(report.total_amount),
                    "budget_check": report.budget_check,
                    "voided_approvals": voided,
                },
            )
        return report

    def _build_items(self, cleaned: Sequence[ExpenseItemInput]) -> list[ExpenseItemModel]:
        return [
            ExpenseItemModel(
                line_number=line_number,
                category=item.category,
                amount=item.amount,
                expense_date=item.expense_date,
                description=item.description,
                receipt_reference=item.receipt_reference,
            )
            for line_number, item in enumerate(cleaned, start=1)
        ]

    def _void_trail(self, report_id: UUID) -> int:
        live = list(
            self.session.execute(
                select(ApprovalModel).where(
                    ApprovalModel.report_id == report_id,
                    ApprovalModel.voided_at.is_(None),
                )
            ).scalars()
        )
        now = self.clock.now()
        for approval in live:
            approval.voided_at = now
        return len(live)
