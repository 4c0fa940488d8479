"""
Concurrency tests: two sessions racing on the same report.

SQLite serializes writers, so the interleavings are driven step by step
from one thread on a file-backed database.  Against PostgreSQL the same
steps additionally exercise the FOR UPDATE row locks.
"""

from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm.exc import StaleDataError

from expense_kernel.models.approval import ApprovalModel
from expense_kernel.models.expense_report import ExpenseReportModel
from expense_kernel.services.budget_ledger import BudgetLedger
from expense_kernel.services.expense_workflow_service import ExpenseWorkflowService, WorkflowStatus
from tests.support import FINANCE_ID, MANAGER_ID, OWNER_ID, FakeGateway, item

pytestmark = pytest.mark.concurrency


@pytest.fixture
def services(session_pair, deterministic_clock):
    first, second = session_pair
    gateway = FakeGateway()
    return (
        ExpenseWorkflowService(first, gateway=gateway, clock=deterministic_clock),
        ExpenseWorkflowService(second, gateway=gateway, clock=deterministic_clock),
    )


@pytest.fixture
def approved_report(session_pair, services):
    first, _ = session_pair
    BudgetLedger(first).create_budget("Fuel", Decimal("1000"))
    first.commit()

    service, _ = services
    report = service.submit_report(OWNER_ID, [item("Fuel", "400")]).report
    assert service.approve_as_manager(report.id, MANAGER_ID).is_success
    return report


def _finance_approvals(sess, report_id) -> int:
    return sess.execute(
        select(func.count())
        .select_from(ApprovalModel)
        .where(ApprovalModel.report_id == report_id, ApprovalModel.stage == "Finance")
    ).scalar_one()


def test_second_confirmation_sees_first(session_pair, services, approved_report):
    first, second = session_pair
    service_a, service_b = services

    # B holds a stale copy that still says "not reimbursed"
    stale = second.get(ExpenseReportModel, approved_report.id)
    assert stale.reimbursed is False

    result_a = service_a.confirm_payment(approved_report.id, "paid", FINANCE_ID)
    result_b = service_b.confirm_payment(approved_report.id, "paid", FINANCE_ID)

    assert result_a.status is WorkflowStatus.SUCCESS
    assert result_b.status is WorkflowStatus.ALREADY_APPLIED
    assert result_b.report.reimbursed is True

    first.expire_all()
    assert _finance_approvals(first, approved_report.id) == 1
    assert BudgetLedger(first).require_budget("Fuel").spent == Decimal("400.00")


def test_manual_and_webhook_style_race(session_pair, services, approved_report):
    first, _ = session_pair
    service_a, service_b = services

    manual = service_a.mark_reimbursed_manually(approved_report.id, FINANCE_ID)
    confirm = service_b.confirm_payment(approved_report.id, "paid")

    assert manual.status is WorkflowStatus.SUCCESS
    assert confirm.status is WorkflowStatus.ALREADY_APPLIED
    first.expire_all()
    assert _finance_approvals(first, approved_report.id) == 1


def test_stale_version_is_rejected(session_pair, services, approved_report):
    _, second = session_pair
    service_a, _ = services

    stale = second.get(ExpenseReportModel, approved_report.id)
    service_a.confirm_payment(approved_report.id, "paid", FINANCE_ID)

    stale.forwarded_to_ceo = True
    with pytest.raises(StaleDataError):
        second.flush()


def test_competing_decisions_only_one_wins(session_pair, services):
    first, _ = session_pair
    service_a, service_b = services
    report = service_a.submit_report(OWNER_ID, [item("Meals", "80")]).report

    approve = service_a.approve_as_manager(report.id, MANAGER_ID)
    reject = service_b.reject_as_manager(report.id, MANAGER_ID, "duplicate")

    assert approve.is_success
    assert reject.error_code == "INVALID_STATE"
    first.expire_all()
    assert first.get(ExpenseReportModel, report.id).status == "Approved"


def test_stale_data_maps_to_conflict(workflow_service, submit, monkeypatch):
    report = submit(item("Fuel", "10"))

    def stale(*args, **kwargs):
        raise StaleDataError("UPDATE statement on table 'expense_reports' expected to update 1 row(s); 0 were matched.")

    monkeypatch.setattr(workflow_service._engine, "approve_as_manager", stale)
    result = workflow_service.approve_as_manager(report.id, MANAGER_ID)

    assert result.status is WorkflowStatus.FAILED
    assert result.error_code == "CONCURRENCY_CONFLICT"
    assert result.error_type == "ConcurrencyConflictError"
