"""
ReimbursementReconciler -- turns external payment confirmations into
exactly-once reimbursement.

Responsibility:
    Bridges webhook pushes, polling refreshes and manual overrides into the
    workflow without double-crediting the budget.  Owns the single
    ReimbursementPayment row per report.

Architecture position:
    Kernel > Services.  Uses WorkflowEngine for the finance transition and
    a ``PaymentGateway`` for the external calls.

Invariants enforced:
    - The ``reimbursed`` flag is re-read under the report row lock in the
      same transaction as the mutation, so two racing confirmations cannot
      both observe ``reimbursed=False``.
    - A "paid" confirmation on an already reimbursed report is a no-op.
    - A non-paid status never downgrades a paid session.
    - Gateway calls run before any local mutation; a failed call leaves
      local state unchanged.

Failure modes:
    - ReportNotFoundError / PaymentNotFoundError for unknown references.
    - InvalidStateError when the report is not finance-eligible.
    - AlreadyPaidError when a checkout is requested for a paid session.
    - ExternalServiceError from the gateway (retryable).
    - WebhookSignatureError / WebhookPayloadError for bad webhook requests.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select

from expense_kernel.domain.clock import Clock
from expense_kernel.domain.values import SYSTEM_ACTOR_ID, PaymentStatus
from expense_kernel.exceptions import (
    AlreadyPaidError,
    InvalidStateError,
    PaymentNotFoundError,
    ReportNotFoundError,
    ValidationError,
)
from expense_kernel.gateway.base import PaymentGateway
from expense_kernel.gateway.webhook import WebhookEvent, parse_event, verify_signature
from expense_kernel.logging_config import LogContext, get_logger
from expense_kernel.models.audit_log import AuditAction
from expense_kernel.models.expense_report import ExpenseReportModel
from expense_kernel.models.payment import ReimbursementPaymentModel
from expense_kernel.services.auditor_service import AuditorService
from expense_kernel.services.base import BaseService
from expense_kernel.services.workflow_engine import WorkflowEngine, is_finance_eligible

logger = get_logger("services.reconciler")

_MODULE = "reimbursements"
_PAID = PaymentStatus.PAID.value


@dataclass
class ConfirmationOutcome:
    """What a confirmation did to a report."""

    report: ExpenseReportModel | None
    payment: ReimbursementPaymentModel | None
    reimbursed_now: bool
    status: str


class ReimbursementReconciler(BaseService):
    """Checkout sessions, payment confirmations and manual reimbursement."""

    def __init__(
        self,
        session,
        gateway: PaymentGateway,
        clock: Clock | None = None,
        webhook_secret: str | None = None,
    ):
        super().__init__(session, clock)
        self.gateway = gateway
        self.webhook_secret = webhook_secret
        self.engine = WorkflowEngine(session, self.clock)
        self.auditor = AuditorService(session, self.clock)

    # =========================================================================
    # Confirmation
    # =========================================================================

    def confirm_payment(
        self,
        report_id: UUID,
        external_status: str,
        actor_id: UUID | None = None,
        remarks: str = "",
        source: str = "api",
    ) -> ConfirmationOutcome:
        """
        Apply an external payment status to a report.

        Non-paid statuses only update the payment row.  ``"paid"`` reimburses
        the report once; replays return ``reimbursed_now=False``.
        """
        status = (external_status or "").strip().lower()
        if not status:
            raise ValidationError("external_status", "must not be empty")
        actor = actor_id or SYSTEM_ACTOR_ID

        report = self.engine.lock_report(report_id)
        payment = self._lock_payment(report.id)

        with LogContext.bind(report_id=report.id, actor_id=actor, stage="Finance"):
            if status != _PAID:
                return self._record_status(report, payment, status, actor, source)

            if report.reimbursed:
                logger.info(
                    "payment_already_applied",
                    extra={"source": source, "payment_status": status},
                )
                return ConfirmationOutcome(report, payment, False, status)

            if not is_finance_eligible(report):
                raise InvalidStateError(
                    str(report.id), report.status, "confirm_payment",
                    reason="report is not eligible for reimbursement",
                )

            now = self.clock.now()
            if payment is not None:
                payment.status = _PAID
                payment.paid_at = now
                payment.processed_by_id = actor

            self.engine.apply_finance_confirmation(
                report,
                actor,
                remarks=remarks or f"Reimbursed via {source}",
                payload={
                    "source": source,
                    "session_id": payment.session_id if payment is not None else None,
                },
            )
            logger.info(
                "report_reimbursed",
                extra={
                    "source": source,
                    "session_id": payment.session_id if payment is not None else None,
                    "total_amount": str(report.total_amount),
                },
            )
            return ConfirmationOutcome(report, payment, True, status)

    def _record_status(
        self,
        report: ExpenseReportModel,
        payment: ReimbursementPaymentModel | None,
        status: str,
        actor: UUID,
        source: str,
    ) -> ConfirmationOutcome:
        if payment is None:
            raise PaymentNotFoundError(str(report.id))

        if payment.status == _PAID or report.reimbursed:
            logger.info(
                "payment_status_ignored",
                extra={"current_status": payment.status, "payment_status": status, "source": source},
            )
            return ConfirmationOutcome(report, payment, False, status)

        previous = payment.status
        if previous != status:
            payment.status = status
            self.session.flush()
            self.auditor.record(
                AuditAction.PAYMENT_STATUS_UPDATED,
                module=_MODULE,
                report_id=report.id,
                actor_id=actor,
                role="Finance",
                details=f"{previous} -> {status}",
                payload={"session_id": payment.session_id, "source": source},
            )
        logger.info(
            "payment_status_updated",
            extra={"previous_status": previous, "payment_status": status, "source": source},
        )
        return ConfirmationOutcome(report, payment, False, status)

    def mark_reimbursed_manual(
        self, report_id: UUID, actor_id: UUID, remarks: str = "",
    ) -> ConfirmationOutcome:
        """Administrative override: the same idempotent path, no gateway."""
        return self.confirm_payment(
            report_id,
            _PAID,
            actor_id=actor_id,
            remarks=remarks or "Marked reimbursed manually",
            source="manual",
        )

    # =========================================================================
    # Gateway-backed operations
    # =========================================================================

    def initiate_checkout(
        self,
        report_id: UUID,
        actor_id: UUID,
        success_url: str,
        cancel_url: str,
        customer_email: str | None = None,
        customer_name: str | None = None,
    ) -> ReimbursementPaymentModel:
        """
        Create (or replace) the report's checkout session.

        The gateway is called before the report is locked; eligibility and
        the paid check are repeated under the lock before the row is written.
        A live session is only replaced after the gateway confirms it is not
        paid, so a payment whose webhook is still in flight keeps its
        session id.
        """
        report = self.session.get(ExpenseReportModel, report_id)
        if report is None:
            raise ReportNotFoundError(str(report_id))
        existing = self._payment_for(report.id)
        self._require_checkout_allowed(report, existing)
        self._require_session_unpaid(report, existing)

        checkout = self.gateway.create_checkout_session(
            amount=report.total_amount,
            description=f"Expense reimbursement for report {report.id}",
            report_id=report.id,
            success_url=success_url,
            cancel_url=cancel_url,
            customer_email=customer_email,
            customer_name=customer_name,
        )

        report = self.engine.lock_report(report_id)
        payment = self._lock_payment(report.id)
        self._require_checkout_allowed(report, payment)

        now = self.clock.now()
        replaced = payment.session_id if payment is not None else None
        if payment is None:
            payment = ReimbursementPaymentModel(report_id=report.id)
            self.session.add(payment)
        payment.session_id = checkout.session_id
        payment.checkout_url = checkout.checkout_url
        payment.status = PaymentStatus.UNPAID.value
        payment.amount = report.total_amount
        payment.created_at = now
        payment.paid_at = None
        payment.processed_by_id = actor_id
        self.session.flush()

        self.auditor.record(
            AuditAction.CHECKOUT_INITIATED,
            module=_MODULE,
            report_id=report.id,
            actor_id=actor_id,
            role="Finance",
            details=f"Checkout session {checkout.session_id}",
            payload={"session_id": checkout.session_id, "replaced_session_id": replaced},
        )
        with LogContext.bind(report_id=report.id, actor_id=actor_id, stage="Finance"):
            logger.info(
                "checkout_initiated",
                extra={"session_id": checkout.session_id, "replaced_session_id": replaced},
            )
        return payment

    def refresh_status(self, report_id: UUID, actor_id: UUID) -> ConfirmationOutcome:
        """Poll the gateway for the stored session and apply the answer."""
        report = self.session.get(ExpenseReportModel, report_id)
        if report is None:
            raise ReportNotFoundError(str(report_id))
        payment = self._payment_for(report.id)
        if payment is None:
            raise PaymentNotFoundError(str(report_id))

        status = self.gateway.get_checkout_status(payment.session_id)
        return self.confirm_payment(report_id, status, actor_id=actor_id, source="refresh")

    # =========================================================================
    # Webhook
    # =========================================================================

    def handle_webhook(
        self, body: bytes | str, signature_header: str | None,
    ) -> ConfirmationOutcome | None:
        """
        Verify and apply a PayMongo webhook.

        Returns None for events that are acknowledged but ignored (unknown
        type, missing or unmatched session id).
        """
        if self.webhook_secret:
            verify_signature(self.webhook_secret, body, signature_header)

        event = parse_event(body)
        if not event.is_payment_paid or not event.session_id:
            self._log_ignored(event, "not a paid event")
            return None

        payment = self.session.execute(
            select(ReimbursementPaymentModel).where(
                ReimbursementPaymentModel.session_id == event.session_id
            )
        ).scalar_one_or_none()
        if payment is None:
            self._log_ignored(event, "no matching session")
            return None

        return self.confirm_payment(payment.report_id, _PAID, source="webhook")

    def _log_ignored(self, event: WebhookEvent, reason: str) -> None:
        logger.info(
            "webhook_ignored",
            extra={"event_type": event.event_type, "session_id": event.session_id, "reason": reason},
        )

    # =========================================================================
    # Internals
    # =========================================================================

    def _payment_for(self, report_id: UUID) -> ReimbursementPaymentModel | None:
        return self.session.execute(
            select(ReimbursementPaymentModel).where(
                ReimbursementPaymentModel.report_id == report_id
            )
        ).scalar_one_or_none()

    def _lock_payment(self, report_id: UUID) -> ReimbursementPaymentModel | None:
        return self.session.execute(
            select(ReimbursementPaymentModel)
            .where(ReimbursementPaymentModel.report_id == report_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _require_checkout_allowed(
        self,
        report: ExpenseReportModel,
        payment: ReimbursementPaymentModel | None,
    ) -> None:
        if payment is not None and payment.status == _PAID:
            raise AlreadyPaidError(str(report.id), payment.session_id)
        if not is_finance_eligible(report):
            raise InvalidStateError(
                str(report.id), report.status, "initiate_checkout",
                reason="report is not eligible for reimbursement",
            )

    def _require_session_unpaid(
        self,
        report: ExpenseReportModel,
        payment: ReimbursementPaymentModel | None,
    ) -> None:
        if payment is None or payment.status == PaymentStatus.EXPIRED.value:
            return
        remote = (self.gateway.get_checkout_status(payment.session_id) or "").strip().lower()
        if remote == _PAID:
            logger.warning(
                "checkout_replacement_refused",
                extra={
                    "checkout_report_id": str(report.id),
                    "session_id": payment.session_id,
                    "payment_status": remote,
                },
            )
            raise AlreadyPaidError(str(report.id), payment.session_id)
