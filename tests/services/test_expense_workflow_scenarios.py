"""
End-to-end workflow scenarios through ExpenseWorkflowService.

Each test drives the public facade only and reads budgets back from the
committed database.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from expense_kernel.domain.values import ApprovalStage, BudgetCheck, ReportStatus
from expense_kernel.exceptions import ExternalServiceError, ReportNotFoundError
from expense_kernel.services.expense_workflow_service import (
    ExpenseWorkflowService,
    WorkflowResult,
    WorkflowStatus,
)
from tests.support import CANCEL_URL, CEO_ID, FINANCE_ID, MANAGER_ID, OWNER_ID, SUCCESS_URL, item


class TestOverBudgetPath:
    """Fuel 1000 allocated; a 1200 report escalates, is approved and paid."""

    @pytest.fixture(autouse=True)
    def _fuel(self, make_budget):
        make_budget("Fuel", "1000")

    def test_submit_over_budget(self, submit):
        report = submit(item("Fuel", "1200"))
        assert report.budget_check is BudgetCheck.OVER_BUDGET
        assert report.status is ReportStatus.SUBMITTED

    def test_manager_approval_escalates(self, submit, workflow_service, budget_spent):
        report = submit(item("Fuel", "1200"))
        result = workflow_service.approve_as_manager(report.id, MANAGER_ID)

        assert result.is_success
        assert result.report.status is ReportStatus.PENDING_CEO_APPROVAL
        assert result.report.forwarded_to_ceo is True
        assert budget_spent("Fuel") == Decimal("1200.00")

    def test_ceo_approval(self, submit, workflow_service, deterministic_clock):
        report = submit(item("Fuel", "1200"))
        workflow_service.approve_as_manager(report.id, MANAGER_ID)
        deterministic_clock.advance(60)
        result = workflow_service.approve_as_ceo(report.id, CEO_ID, "approved once")

        assert result.report.status is ReportStatus.APPROVED
        assert result.report.ceo_approved is True
        assert result.report.forwarded_to_ceo is False

    def test_finance_confirmation_is_idempotent(self, submit, workflow_service, budget_spent, deterministic_clock):
        report = submit(item("Fuel", "1200"))
        workflow_service.approve_as_manager(report.id, MANAGER_ID)
        deterministic_clock.advance(60)
        workflow_service.approve_as_ceo(report.id, CEO_ID)
        deterministic_clock.advance(60)

        first = workflow_service.confirm_payment(report.id, "paid", FINANCE_ID)
        second = workflow_service.confirm_payment(report.id, "paid", FINANCE_ID)

        assert first.status is WorkflowStatus.SUCCESS
        assert first.report.reimbursed is True
        assert second.status is WorkflowStatus.ALREADY_APPLIED
        assert second.is_success
        assert budget_spent("Fuel") == Decimal("1200.00")

        trail = workflow_service.get_approval_trail(report.id)
        assert [a.stage for a in trail] == [ApprovalStage.MANAGER, ApprovalStage.CEO, ApprovalStage.FINANCE]


class TestWithinBudgetPath:

    def test_manager_approval_goes_straight_to_approved(self, make_budget, submit, workflow_service, budget_spent):
        make_budget("Travel", "2000", spent="300")
        report = submit(item("Travel", "500"))
        assert report.budget_check is BudgetCheck.WITHIN_BUDGET

        result = workflow_service.approve_as_manager(report.id, MANAGER_ID)

        assert result.report.status is ReportStatus.APPROVED
        assert result.report.forwarded_to_ceo is False
        assert budget_spent("Travel") == Decimal("800.00")

    def test_checkout_then_webhook_style_confirmation(self, make_budget, submit, workflow_service, fake_gateway):
        make_budget("Meals", "500")
        report = submit(item("Meals", "120"))
        workflow_service.approve_as_manager(report.id, MANAGER_ID)

        started = workflow_service.initiate_reimbursement(report.id, FINANCE_ID, SUCCESS_URL, CANCEL_URL)
        assert started.is_success
        assert started.payment.status == "unpaid"
        assert started.payment.amount == Decimal("120.00")

        fake_gateway.statuses[started.payment.session_id] = "paid"
        refreshed = workflow_service.refresh_payment_status(report.id, FINANCE_ID)
        assert refreshed.status is WorkflowStatus.SUCCESS
        assert refreshed.report.reimbursed is True
        assert refreshed.payment.status == "paid"

        again = workflow_service.initiate_reimbursement(report.id, FINANCE_ID, SUCCESS_URL, CANCEL_URL)
        assert again.status is WorkflowStatus.FAILED
        assert again.error_code == "ALREADY_PAID"


class TestRejectionAndResubmission:

    def test_reject_then_resubmit(self, make_budget, submit, workflow_service, deterministic_clock):
        make_budget("Fuel", "1000")
        report = submit(item("Fuel", "300"))
        rejected = workflow_service.reject_as_manager(report.id, MANAGER_ID, "attach receipt")
        assert rejected.report.status is ReportStatus.REJECTED

        deterministic_clock.advance(60)
        resubmitted = workflow_service.resubmit_report(
            report.id, [item("Fuel", "250", description="with receipt")],
        )

        assert resubmitted.report.status is ReportStatus.SUBMITTED
        assert resubmitted.report.total_amount == Decimal("250.00")
        assert workflow_service.get_approval_trail(report.id) == []
        (voided,) = workflow_service.get_approval_trail(report.id, include_voided=True)
        assert voided.is_voided
        assert voided.remarks == "attach receipt"

    def test_reject_without_remarks_fails(self, submit, workflow_service):
        report = submit(item("Fuel", "300"))
        result = workflow_service.reject_as_manager(report.id, MANAGER_ID, "")

        assert result.status is WorkflowStatus.FAILED
        assert result.error_code == "VALIDATION_ERROR"
        assert workflow_service.get_report(report.id).status is ReportStatus.SUBMITTED


class TestFailures:

    def test_validation_failure_result(self, workflow_service):
        result = workflow_service.submit_report(OWNER_ID, [])
        assert not result.is_success
        assert result.error_code == "VALIDATION_ERROR"
        assert result.error_type == "ValidationError"
        assert result.report is None

    def test_invalid_state_rolls_back(self, submit, workflow_service, budget_spent, make_budget):
        make_budget("Fuel", "1000")
        report = submit(item("Fuel", "300"))
        workflow_service.approve_as_manager(report.id, MANAGER_ID)

        result = workflow_service.approve_as_manager(report.id, MANAGER_ID)

        assert result.error_code == "INVALID_STATE"
        assert budget_spent("Fuel") == Decimal("300.00")

    def test_unknown_report(self, workflow_service):
        result = workflow_service.approve_as_manager(uuid4(), MANAGER_ID)
        assert result.error_code == "NOT_FOUND"

    def test_disabled_gateway(self, session, deterministic_clock):
        service = ExpenseWorkflowService(session, clock=deterministic_clock)
        report = service.submit_report(OWNER_ID, [item("Fuel", "10")]).report
        service.approve_as_manager(report.id, MANAGER_ID)

        result = service.initiate_reimbursement(report.id, FINANCE_ID, SUCCESS_URL, CANCEL_URL)

        assert result.error_code == "EXTERNAL_SERVICE_ERROR"
        assert service.get_report(report.id).reimbursed is False

    def test_gateway_failure_leaves_report_unchanged(self, submit, workflow_service, fake_gateway):
        report = submit(item("Fuel", "10"))
        workflow_service.approve_as_manager(report.id, MANAGER_ID)
        fake_gateway.error = ExternalServiceError("fake", "503", status_code=503)

        result = workflow_service.initiate_reimbursement(report.id, FINANCE_ID, SUCCESS_URL, CANCEL_URL)

        assert result.status is WorkflowStatus.FAILED
        snapshot = workflow_service.get_report(report.id)
        assert snapshot.status is ReportStatus.APPROVED
        assert snapshot.reimbursed is False

    def test_checkout_without_redirect_urls(self, submit, workflow_service, fake_gateway):
        report = submit(item("Fuel", "10"))
        workflow_service.approve_as_manager(report.id, MANAGER_ID)

        result = workflow_service.initiate_reimbursement(report.id, FINANCE_ID)

        assert result.error_code == "VALIDATION_ERROR"
        assert fake_gateway.created == []

    def test_unexpected_error_propagates(self, submit, workflow_service, monkeypatch, captured_logs):
        report = submit(item("Fuel", "10"))

        def boom(*args, **kwargs):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(workflow_service._engine, "approve_as_manager", boom)
        with pytest.raises(RuntimeError):
            workflow_service.approve_as_manager(report.id, MANAGER_ID)
        assert any(r["message"] == "operation_crashed" for r in captured_logs())

    def test_operation_logs_carry_correlation_id(self, workflow_service, captured_logs):
        workflow_service.submit_report(OWNER_ID, [item("Fuel", "10")])
        records = [r for r in captured_logs() if r["message"] in ("operation_started", "report_submitted")]
        assert len({r["correlation_id"] for r in records}) == 1


class TestQueries:

    def test_pending_queues(self, make_budget, submit, workflow_service):
        make_budget("Fuel", "1000")
        within = submit(item("Fuel", "100"))
        over = submit(item("Fuel", "1500"))
        workflow_service.approve_as_manager(over.id, MANAGER_ID)

        assert [r.id for r in workflow_service.query_pending_for_role("Manager")] == [within.id]
        assert [r.id for r in workflow_service.query_pending_for_role(ApprovalStage.CEO)] == [over.id]

    def test_finance_queue(self, make_budget, submit, workflow_service):
        make_budget("Fuel", "1000")
        report = submit(item("Fuel", "100"))
        workflow_service.approve_as_manager(report.id, MANAGER_ID)
        assert [r.id for r in workflow_service.query_pending_for_role("Finance")] == [report.id]

        workflow_service.mark_reimbursed_manually(report.id, FINANCE_ID)
        assert workflow_service.query_pending_for_role("Finance") == []

    def test_budget_exceedance(self, make_budget, submit, workflow_service):
        make_budget("Fuel", "1000")
        report = submit(item("Fuel", "1200"))
        evaluation = workflow_service.compute_budget_exceedance(report.id)
        assert evaluation.exceeded_categories == ("Fuel",)

    def test_get_unknown_report(self, workflow_service):
        with pytest.raises(ReportNotFoundError):
            workflow_service.get_report(uuid4())


class TestWorkflowResult:

    def test_failure_from_error(self):
        result = WorkflowResult.failure(ReportNotFoundError("r-1"))
        assert result.status is WorkflowStatus.FAILED
        assert result.error_message == "ExpenseReport not found: r-1"
        assert not result.is_success

    def test_ignored_counts_as_success(self):
        assert WorkflowResult(status=WorkflowStatus.IGNORED).is_success
