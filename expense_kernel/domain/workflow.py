"""
Expense report workflow (``expense_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for the report state machine, and the transition table
itself.  Each decision stage is a case in the table (tagged by
``ApprovalStage``), not a subclass.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* For a given ``(from_state, action)`` the guarded candidates are tried in
  declaration order; the first whose guard holds wins.
"""

from __future__ import annotations

from dataclasses import dataclass

from expense_kernel.domain.values import ApprovalDecision, ApprovalStage, ReportStatus


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Descriptive only: the workflow engine evaluates guards by name.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    ``posts_spend=True`` marks transitions that realize budget spend.
    ``stage``/``decision`` describe the Approval record the transition appends.
    """
    from_state: str
    to_state: str
    action: str
    stage: ApprovalStage | None = None
    decision: ApprovalDecision | None = None
    guard: Guard | None = None
    posts_spend: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self):
        if self.initial_state not in self.states:
            raise ValueError(f"initial_state {self.initial_state!r} not in states")
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Transition {t.action!r} references unknown state "
                    f"{t.from_state!r} -> {t.to_state!r}"
                )

    def candidates(self, from_state: str, action: str) -> tuple[Transition, ...]:
        """All transitions for ``action`` leaving ``from_state``, in order."""
        return tuple(
            t for t in self.transitions
            if t.from_state == from_state and t.action == action
        )

    def allowed_actions(self, from_state: str) -> frozenset[str]:
        return frozenset(
            t.action for t in self.transitions if t.from_state == from_state
        )


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

WITHIN_BUDGET = Guard(
    name="within_budget",
    description="Report budget check is WithinBudget",
)

OVER_BUDGET = Guard(
    name="over_budget",
    description="Report budget check is OverBudget",
)

FINANCE_ELIGIBLE = Guard(
    name="finance_eligible",
    description="Report is not yet reimbursed and is within budget or CEO approved",
)

NOT_APPROVED = Guard(
    name="not_approved",
    description="Report has not passed into Approved",
)


# -----------------------------------------------------------------------------
# Actions
# -----------------------------------------------------------------------------

MANAGER_APPROVE = "manager_approve"
MANAGER_REJECT = "manager_reject"
FORWARD_TO_CEO = "forward_to_ceo"
CEO_APPROVE = "ceo_approve"
CEO_REJECT = "ceo_reject"
CONFIRM_PAYMENT = "confirm_payment"
RESUBMIT = "resubmit"


_SUBMITTED = ReportStatus.SUBMITTED.value
_PENDING_CEO = ReportStatus.PENDING_CEO_APPROVAL.value
_APPROVED = ReportStatus.APPROVED.value
_REJECTED = ReportStatus.REJECTED.value


EXPENSE_REPORT_WORKFLOW = Workflow(
    name="expense_report",
    description="Expense report approval and reimbursement lifecycle",
    initial_state=_SUBMITTED,
    states=(_SUBMITTED, _PENDING_CEO, _APPROVED, _REJECTED),
    transitions=(
        Transition(
            _SUBMITTED, _APPROVED,
            action=MANAGER_APPROVE,
            stage=ApprovalStage.MANAGER,
            decision=ApprovalDecision.APPROVED,
            guard=WITHIN_BUDGET,
            posts_spend=True,
        ),
        Transition(
            _SUBMITTED, _PENDING_CEO,
            action=MANAGER_APPROVE,
            stage=ApprovalStage.MANAGER,
            decision=ApprovalDecision.APPROVED,
            guard=OVER_BUDGET,
            posts_spend=True,
        ),
        Transition(
            _SUBMITTED, _REJECTED,
            action=MANAGER_REJECT,
            stage=ApprovalStage.MANAGER,
            decision=ApprovalDecision.REJECTED,
        ),
        Transition(
            _SUBMITTED, _PENDING_CEO,
            action=FORWARD_TO_CEO,
            stage=ApprovalStage.MANAGER,
            decision=ApprovalDecision.PENDING,
        ),
        Transition(
            _PENDING_CEO, _APPROVED,
            action=CEO_APPROVE,
            stage=ApprovalStage.CEO,
            decision=ApprovalDecision.APPROVED,
        ),
        Transition(
            _PENDING_CEO, _REJECTED,
            action=CEO_REJECT,
            stage=ApprovalStage.CEO,
            decision=ApprovalDecision.REJECTED,
        ),
        Transition(
            _APPROVED, _APPROVED,
            action=CONFIRM_PAYMENT,
            stage=ApprovalStage.FINANCE,
            decision=ApprovalDecision.APPROVED,
            guard=FINANCE_ELIGIBLE,
            posts_spend=True,
        ),
        Transition(_SUBMITTED, _SUBMITTED, action=RESUBMIT, guard=NOT_APPROVED),
        Transition(_PENDING_CEO, _SUBMITTED, action=RESUBMIT, guard=NOT_APPROVED),
        Transition(_REJECTED, _SUBMITTED, action=RESUBMIT, guard=NOT_APPROVED),
    ),
)
