"""
ExpenseWorkflowService -- public entry point of the expense workflow kernel.

Responsibility:
    Exposes one method per caller operation (submit, decide, reimburse,
    query), runs each mutating operation as a single transaction and turns
    kernel errors into ``WorkflowResult`` failures.

Architecture position:
    Kernel > Services.  The only service that commits.  Composes
    ReportService, WorkflowEngine, ReimbursementReconciler and the
    selectors; an HTTP or UI layer calls this and nothing below it.

Invariants enforced:
    - Commit on success, rollback on any failure (when ``auto_commit``).
    - The returned report snapshot is taken after the final flush, so it
      reflects exactly what was committed.
    - ``StaleDataError`` (version mismatch) and ``IntegrityError`` (a racing
      spend marker or payment row) surface as ConcurrencyConflictError.
    - Unexpected exceptions roll back and propagate.

Failure modes:
    Mutating operations never raise ExpenseKernelError; they return a
    FAILED result carrying ``error_code``/``error_message``/``error_type``.
    Read-only queries raise typed errors directly.
"""

import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from expense_kernel.domain.clock import Clock, SystemClock
from expense_kernel.domain.values import (
    ApprovalRecord,
    ApprovalStage,
    BudgetEvaluation,
    ExpenseItemInput,
    PaymentSnapshot,
    ReportSnapshot,
)
from expense_kernel.exceptions import (
    ConcurrencyConflictError,
    ExpenseKernelError,
    ReportNotFoundError,
    ValidationError,
)
from expense_kernel.gateway.base import PaymentGateway
from expense_kernel.gateway.disabled import DisabledGateway
from expense_kernel.logging_config import LogContext, get_logger
from expense_kernel.selectors.report_selector import ReportSelector
from expense_kernel.services.reconciler import ConfirmationOutcome, ReimbursementReconciler
from expense_kernel.services.report_service import ReportService
from expense_kernel.services.workflow_engine import WorkflowEngine

logger = get_logger("services.expense_workflow")


class WorkflowStatus(str, Enum):
    """Outcome of a workflow operation."""

    SUCCESS = "success"
    ALREADY_APPLIED = "already_applied"
    IGNORED = "ignored"
    FAILED = "failed"


@dataclass(frozen=True)
class WorkflowResult:
    """Result of a workflow operation."""

    status: WorkflowStatus
    report: ReportSnapshot | None = None
    payment: PaymentSnapshot | None = None
    error_code: str | None = None
    error_message: str | None = None
    error_type: str | None = None

    @property
    def is_success(self) -> bool:
        return self.status in (
            WorkflowStatus.SUCCESS,
            WorkflowStatus.ALREADY_APPLIED,
            WorkflowStatus.IGNORED,
        )

    @classmethod
    def success(
        cls,
        report: ReportSnapshot | None = None,
        payment: PaymentSnapshot | None = None,
    ) -> "WorkflowResult":
        return cls(status=WorkflowStatus.SUCCESS, report=report, payment=payment)

    @classmethod
    def failure(cls, error: ExpenseKernelError) -> "WorkflowResult":
        return cls(
            status=WorkflowStatus.FAILED,
            error_code=error.code,
            error_message=str(error),
            error_type=type(error).__name__,
        )


class ExpenseWorkflowService:
    """
    Orchestrates the expense report workflow.

    Contract:
        Every mutating method runs in its own transaction on ``session`` and
        returns a ``WorkflowResult``.  ``auto_commit=False`` leaves the
        transaction open for a caller that owns it (tests, batch jobs).
    """

    def __init__(
        self,
        session: Session,
        gateway: PaymentGateway | None = None,
        clock: Clock | None = None,
        webhook_secret: str | None = None,
        auto_commit: bool = True,
        checkout_success_url: str | None = None,
        checkout_cancel_url: str | None = None,
    ):
        self._session = session
        self._checkout_urls = (checkout_success_url, checkout_cancel_url)
        self._clock = clock or SystemClock()
        self._auto_commit = auto_commit
        self._reports = ReportService(session, self._clock)
        self._engine = WorkflowEngine(session, self._clock)
        self._reconciler = ReimbursementReconciler(
            session,
            gateway or DisabledGateway(),
            self._clock,
            webhook_secret=webhook_secret,
        )
        self._selector = ReportSelector(session)

    # =========================================================================
    # Submission
    # =========================================================================

    def submit_report(
        self,
        owner_id: UUID,
        items: Sequence[ExpenseItemInput],
        trip_start: date | None = None,
        trip_end: date | None = None,
    ) -> WorkflowResult:
        def work() -> WorkflowResult:
            report = self._reports.submit(owner_id, items, trip_start, trip_end)
            return WorkflowResult.success(report.to_dto())

        return self._run("submit_report", work, actor_id=owner_id)

    def resubmit_report(
        self,
        report_id: UUID,
        items: Sequence[ExpenseItemInput],
        actor_id: UUID | None = None,
        trip_start: date | None = None,
        trip_end: date | None = None,
    ) -> WorkflowResult:
        def work() -> WorkflowResult:
            report = self._engine.lock_report(report_id)
            report = self._reports.resubmit(report, items, actor_id, trip_start, trip_end)
            return WorkflowResult.success(report.to_dto())

        return self._run("resubmit_report", work, report_id=report_id, actor_id=actor_id)

    # =========================================================================
    # Decisions
    # =========================================================================

    def approve_as_manager(
        self, report_id: UUID, actor_id: UUID, remarks: str | None = None,
    ) -> WorkflowResult:
        return self._decide(
            "approve_as_manager", report_id, actor_id,
            lambda: self._engine.approve_as_manager(report_id, actor_id, remarks),
        )

    def reject_as_manager(self, report_id: UUID, actor_id: UUID, remarks: str) -> WorkflowResult:
        return self._decide(
            "reject_as_manager", report_id, actor_id,
            lambda: self._engine.reject_as_manager(report_id, actor_id, remarks),
        )

    def forward_to_ceo(
        self, report_id: UUID, actor_id: UUID, remarks: str | None = None,
    ) -> WorkflowResult:
        return self._decide(
            "forward_to_ceo", report_id, actor_id,
            lambda: self._engine.forward_to_ceo(report_id, actor_id, remarks),
        )

    def approve_as_ceo(
        self,
        report_id: UUID,
        actor_id: UUID,
        remarks: str | None = None,
        reallocations: Mapping[str, Decimal] | None = None,
    ) -> WorkflowResult:
        return self._decide(
            "approve_as_ceo", report_id, actor_id,
            lambda: self._engine.approve_as_ceo(report_id, actor_id, remarks, reallocations),
        )

    def reject_as_ceo(self, report_id: UUID, actor_id: UUID, remarks: str) -> WorkflowResult:
        return self._decide(
            "reject_as_ceo", report_id, actor_id,
            lambda: self._engine.reject_as_ceo(report_id, actor_id, remarks),
        )

    # =========================================================================
    # Reimbursement
    # =========================================================================

    def initiate_reimbursement(
        self,
        report_id: UUID,
        actor_id: UUID,
        success_url: str | None = None,
        cancel_url: str | None = None,
        customer_email: str | None = None,
        customer_name: str | None = None,
    ) -> WorkflowResult:
        """Start a checkout; omitted redirect URLs fall back to the configured ones."""

        def work() -> WorkflowResult:
            success, cancel = self._redirect_urls(success_url, cancel_url)
            payment = self._reconciler.initiate_checkout(
                report_id, actor_id, success, cancel, customer_email, customer_name,
            )
            report = self._engine.lock_report(report_id)
            return WorkflowResult.success(report.to_dto(), payment.to_dto())

        return self._run("initiate_reimbursement", work, report_id=report_id, actor_id=actor_id)

    def confirm_payment(
        self, report_id: UUID, external_status: str, actor_id: UUID | None = None,
    ) -> WorkflowResult:
        return self._confirm(
            "confirm_payment", report_id, actor_id,
            lambda: self._reconciler.confirm_payment(report_id, external_status, actor_id),
        )

    def refresh_payment_status(self, report_id: UUID, actor_id: UUID) -> WorkflowResult:
        return self._confirm(
            "refresh_payment_status", report_id, actor_id,
            lambda: self._reconciler.refresh_status(report_id, actor_id),
        )

    def mark_reimbursed_manually(
        self, report_id: UUID, actor_id: UUID, remarks: str = "",
    ) -> WorkflowResult:
        return self._confirm(
            "mark_reimbursed_manually", report_id, actor_id,
            lambda: self._reconciler.mark_reimbursed_manual(report_id, actor_id, remarks),
        )

    def handle_webhook(self, body: bytes | str, signature_header: str | None) -> WorkflowResult:
        def work() -> WorkflowResult:
            outcome = self._reconciler.handle_webhook(body, signature_header)
            if outcome is None:
                return WorkflowResult(status=WorkflowStatus.IGNORED)
            return self._confirmation_result(outcome)

        return self._run("handle_webhook", work)

    # =========================================================================
    # Queries
    # =========================================================================

    def query_pending_for_role(self, role: ApprovalStage | str) -> list[ReportSnapshot]:
        return self._selector.pending_for_role(role)

    def compute_budget_exceedance(self, report_id: UUID) -> BudgetEvaluation:
        return self._engine.compute_budget_exceedance(report_id)

    def get_report(self, report_id: UUID) -> ReportSnapshot:
        snapshot = self._selector.get_report(report_id)
        if snapshot is None:
            raise ReportNotFoundError(str(report_id))
        return snapshot

    def get_approval_trail(
        self, report_id: UUID, include_voided: bool = False,
    ) -> list[ApprovalRecord]:
        return self._selector.approval_trail(report_id, include_voided=include_voided)

    # =========================================================================
    # Internals
    # =========================================================================

    def _decide(self, operation: str, report_id: UUID, actor_id: UUID, apply) -> WorkflowResult:
        def work() -> WorkflowResult:
            return WorkflowResult.success(apply().to_dto())

        return self._run(operation, work, report_id=report_id, actor_id=actor_id)

    def _redirect_urls(self, success_url: str | None, cancel_url: str | None) -> tuple[str, str]:
        default_success, default_cancel = self._checkout_urls
        success = success_url or default_success
        cancel = cancel_url or default_cancel
        if not success:
            raise ValidationError("success_url", "no redirect URL given or configured")
        if not cancel:
            raise ValidationError("cancel_url", "no redirect URL given or configured")
        return success, cancel

    def _confirm(
        self,
        operation: str,
        report_id: UUID,
        actor_id: UUID | None,
        apply: Callable[[], ConfirmationOutcome],
    ) -> WorkflowResult:
        return self._run(
            operation,
            lambda: self._confirmation_result(apply()),
            report_id=report_id,
            actor_id=actor_id,
        )

    def _confirmation_result(self, outcome: ConfirmationOutcome) -> WorkflowResult:
        report = outcome.report.to_dto() if outcome.report is not None else None
        payment = outcome.payment.to_dto() if outcome.payment is not None else None
        if outcome.status == "paid" and not outcome.reimbursed_now:
            return WorkflowResult(
                status=WorkflowStatus.ALREADY_APPLIED, report=report, payment=payment,
            )
        return WorkflowResult.success(report, payment)

    def _run(
        self,
        operation: str,
        work: Callable[[], WorkflowResult],
        report_id: UUID | None = None,
        actor_id: UUID | None = None,
    ) -> WorkflowResult:
        with LogContext.bind(
            correlation_id=str(uuid4()),
            report_id=report_id,
            actor_id=actor_id,
        ):
            logger.info("operation_started", extra={"operation": operation})
            t0 = time.monotonic()

            try:
                result = work()
                self._session.flush()
                if self._auto_commit:
                    self._session.commit()
            except ExpenseKernelError as exc:
                self._rollback(operation)
                return self._failed(operation, exc, t0)
            except (StaleDataError, IntegrityError) as exc:
                self._rollback(operation)
                conflict = ConcurrencyConflictError(
                    "ExpenseReport",
                    str(report_id) if report_id else "unknown",
                    reason=type(exc).__name__,
                )
                return self._failed(operation, conflict, t0)
            except Exception:
                self._rollback(operation)
                logger.error(
                    "operation_crashed",
                    extra={"operation": operation, "duration_ms": _elapsed_ms(t0)},
                    exc_info=True,
                )
                raise

            logger.info(
                "operation_completed",
                extra={
                    "operation": operation,
                    "status": result.status.value,
                    "duration_ms": _elapsed_ms(t0),
                },
            )
            return result

    def _rollback(self, operation: str) -> None:
        if self._auto_commit:
            self._session.rollback()
            logger.info("transaction_rolled_back", extra={"operation": operation})

    def _failed(self, operation: str, exc: ExpenseKernelError, t0: float) -> WorkflowResult:
        logger.warning(
            "operation_failed",
            extra={
                "operation": operation,
                "error_code": exc.code,
                "error_type": type(exc).__name__,
                "duration_ms": _elapsed_ms(t0),
            },
        )
        return WorkflowResult.failure(exc)


def _elapsed_ms(t0: float) -> float:
    return round((time.monotonic() - t0) * 1000, 2)
