"""
Tests for the expense report transition table (expense_kernel.domain.workflow).

Covers:
- Table shape: every action leaves only the states the lifecycle allows
- Guarded manager approval: WithinBudget before OverBudget
- Resubmission legal from every state except Approved
- Workflow validation of unknown states
"""

import pytest

from expense_kernel.domain.values import ApprovalDecision, ApprovalStage, ReportStatus
from expense_kernel.domain.workflow import (
    CEO_APPROVE,
    CEO_REJECT,
    CONFIRM_PAYMENT,
    EXPENSE_REPORT_WORKFLOW,
    FORWARD_TO_CEO,
    MANAGER_APPROVE,
    MANAGER_REJECT,
    OVER_BUDGET,
    RESUBMIT,
    WITHIN_BUDGET,
    Transition,
    Workflow,
)

SUBMITTED = ReportStatus.SUBMITTED.value
PENDING_CEO = ReportStatus.PENDING_CEO_APPROVAL.value
APPROVED = ReportStatus.APPROVED.value
REJECTED = ReportStatus.REJECTED.value


class TestTransitionTable:

    def test_initial_state_is_submitted(self):
        assert EXPENSE_REPORT_WORKFLOW.initial_state == SUBMITTED

    def test_manager_approve_tries_within_budget_first(self):
        candidates = EXPENSE_REPORT_WORKFLOW.candidates(SUBMITTED, MANAGER_APPROVE)
        assert [t.guard for t in candidates] == [WITHIN_BUDGET, OVER_BUDGET]
        assert [t.to_state for t in candidates] == [APPROVED, PENDING_CEO]
        assert all(t.posts_spend for t in candidates)
        assert all(t.stage is ApprovalStage.MANAGER for t in candidates)

    def test_forward_records_pending_manager_decision(self):
        (forward,) = EXPENSE_REPORT_WORKFLOW.candidates(SUBMITTED, FORWARD_TO_CEO)
        assert forward.to_state == PENDING_CEO
        assert forward.decision is ApprovalDecision.PENDING
        assert not forward.posts_spend

    @pytest.mark.parametrize("action", [CEO_APPROVE, CEO_REJECT])
    def test_ceo_actions_only_from_pending(self, action):
        for state in (SUBMITTED, APPROVED, REJECTED):
            assert EXPENSE_REPORT_WORKFLOW.candidates(state, action) == ()
        (transition,) = EXPENSE_REPORT_WORKFLOW.candidates(PENDING_CEO, action)
        assert transition.stage is ApprovalStage.CEO

    def test_finance_confirmation_stays_approved(self):
        (confirm,) = EXPENSE_REPORT_WORKFLOW.candidates(APPROVED, CONFIRM_PAYMENT)
        assert confirm.to_state == APPROVED
        assert confirm.stage is ApprovalStage.FINANCE
        assert confirm.posts_spend

    @pytest.mark.parametrize("state", [SUBMITTED, PENDING_CEO, REJECTED])
    def test_resubmit_allowed_before_approval(self, state):
        (resubmit,) = EXPENSE_REPORT_WORKFLOW.candidates(state, RESUBMIT)
        assert resubmit.to_state == SUBMITTED

    def test_resubmit_not_allowed_from_approved(self):
        assert EXPENSE_REPORT_WORKFLOW.candidates(APPROVED, RESUBMIT) == ()

    def test_rejected_allows_only_resubmit(self):
        assert EXPENSE_REPORT_WORKFLOW.allowed_actions(REJECTED) == frozenset({RESUBMIT})

    def test_manager_actions_only_from_submitted(self):
        for action in (MANAGER_APPROVE, MANAGER_REJECT, FORWARD_TO_CEO):
            for state in (PENDING_CEO, APPROVED, REJECTED):
                assert EXPENSE_REPORT_WORKFLOW.candidates(state, action) == ()


class TestWorkflowValidation:

    def test_unknown_initial_state_rejected(self):
        with pytest.raises(ValueError, match="initial_state"):
            Workflow(
                name="broken",
                description="",
                initial_state="Nowhere",
                states=("A",),
                transitions=(),
            )

    def test_transition_to_unknown_state_rejected(self):
        with pytest.raises(ValueError, match="unknown state"):
            Workflow(
                name="broken",
                description="",
                initial_state="A",
                states=("A",),
                transitions=(Transition("A", "B", action="go"),),
            )
