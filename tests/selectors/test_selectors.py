"""Tests for ReportSelector and BudgetSelector."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from expense_kernel.exceptions import ValidationError
from expense_kernel.selectors.budget_selector import BudgetSelector
from expense_kernel.selectors.report_selector import ReportSelector
from tests.support import (
    CANCEL_URL,
    CEO_ID,
    FINANCE_ID,
    LAST_MONTH,
    MANAGER_ID,
    OWNER_ID,
    SUCCESS_URL,
    item,
)


@pytest.fixture
def selector(session):
    return ReportSelector(session)


class TestReportSelector:

    def test_get_missing(self, selector):
        assert selector.get_report(uuid4()) is None

    def test_reports_for_owner_newest_first(self, selector, report_service, deterministic_clock):
        first = report_service.submit(OWNER_ID, [item("Fuel", "10")])
        deterministic_clock.advance(60)
        second = report_service.submit(OWNER_ID, [item("Fuel", "20")])
        report_service.submit(MANAGER_ID, [item("Fuel", "30")])

        assert [r.id for r in selector.reports_for_owner(OWNER_ID)] == [second.id, first.id]

    def test_unknown_role(self, selector):
        with pytest.raises(ValidationError):
            selector.pending_for_role("Janitor")

    def test_finance_queue_requires_ceo_for_over_budget(
        self, selector, report_service, workflow_engine, make_budget, deterministic_clock,
    ):
        make_budget("Fuel", "100")
        report = report_service.submit(OWNER_ID, [item("Fuel", "150")])
        workflow_engine.approve_as_manager(report.id, MANAGER_ID)
        assert selector.pending_for_role("Finance") == []

        deterministic_clock.advance(60)
        workflow_engine.approve_as_ceo(report.id, CEO_ID)
        assert [r.id for r in selector.pending_for_role("Finance")] == [report.id]

    def test_trail_excludes_voided_by_default(
        self, selector, report_service, workflow_engine, deterministic_clock,
    ):
        report = report_service.submit(OWNER_ID, [item("Fuel", "10")])
        workflow_engine.reject_as_manager(report.id, MANAGER_ID, "first try")
        deterministic_clock.advance(60)
        report_service.resubmit(report, [item("Fuel", "10")])
        deterministic_clock.advance(60)
        workflow_engine.approve_as_manager(report.id, MANAGER_ID, "second try")

        live = selector.approval_trail(report.id)
        full = selector.approval_trail(report.id, include_voided=True)

        assert [a.remarks for a in live] == ["second try"]
        assert [a.remarks for a in full] == ["first try", "second try"]
        assert full[0].is_voided and not full[1].is_voided

    def test_trail_orders_same_instant_decisions_by_sequence(
        self, selector, report_service, workflow_engine, make_budget,
    ):
        make_budget("Fuel", "100")
        report = report_service.submit(OWNER_ID, [item("Fuel", "150")])
        workflow_engine.approve_as_manager(report.id, MANAGER_ID, "manager ok")
        workflow_engine.approve_as_ceo(report.id, CEO_ID, "ceo ok")

        trail = selector.approval_trail(report.id)

        assert trail[0].decided_at == trail[1].decided_at
        assert [a.remarks for a in trail] == ["manager ok", "ceo ok"]
        assert [a.sequence for a in trail] == [1, 2]

    def test_payment_for_report(self, selector, reconciler, report_service, workflow_engine):
        report = report_service.submit(OWNER_ID, [item("Fuel", "10")])
        assert selector.payment_for_report(report.id) is None

        workflow_engine.approve_as_manager(report.id, MANAGER_ID)
        reconciler.initiate_checkout(report.id, FINANCE_ID, SUCCESS_URL, CANCEL_URL)
        assert selector.payment_for_report(report.id).status == "unpaid"


class TestBudgetSelector:

    def test_list_and_get(self, session, make_budget):
        make_budget("Travel", "2000", spent="300")
        make_budget("Fuel", "1000")
        selector = BudgetSelector(session)

        assert [b.category for b in selector.list_budgets()] == ["Fuel", "Travel"]
        travel = selector.get(" Travel ")
        assert travel.remaining == Decimal("1700.00")
        assert selector.get("Ghost") is None

    def test_monthly_summary_is_derived(self, session, make_budget, report_service):
        make_budget("Fuel", "1000", spent="100")
        make_budget("Meals", "500")
        report_service.submit(OWNER_ID, [item("Fuel", "40"), item("Meals", "60"), item("Fuel", "999", LAST_MONTH)])

        summary = BudgetSelector(session).monthly_summary(date(2024, 1, 20))

        assert summary.month_start == date(2024, 1, 1)
        assert summary.total_allocated == Decimal("1500.00")
        assert summary.total_spent == Decimal("100.00")
        assert summary.month_submitted == Decimal("100.00")
        assert summary.remaining == Decimal("1400.00")
