"""
Expense workflow value objects.

The nouns of the workflow engine: statuses, stages, item inputs and the
frozen snapshots handed back to callers.  Pure values, zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

# Actor recorded for confirmations that arrive without a human (webhooks).
SYSTEM_ACTOR_ID = UUID("00000000-0000-0000-0000-000000000000")


class ReportStatus(str, Enum):
    """Expense report lifecycle states.

    Reimbursed is not a state: a reimbursed report stays APPROVED with
    the ``reimbursed`` flag set.
    """
    SUBMITTED = "Submitted"
    PENDING_CEO_APPROVAL = "PendingCEOApproval"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class BudgetCheck(str, Enum):
    """Outcome of the monthly budget check computed at (re)submission."""
    WITHIN_BUDGET = "WithinBudget"
    OVER_BUDGET = "OverBudget"


class ApprovalStage(str, Enum):
    """Decision stage; also the role tag used for pending-queue queries."""
    MANAGER = "Manager"
    CEO = "CEO"
    FINANCE = "Finance"


class ApprovalDecision(str, Enum):
    """Decision recorded on an approval trail entry."""
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class PaymentStatus(str, Enum):
    """Known checkout session statuses.  Gateways may report others."""
    UNPAID = "unpaid"
    PAID = "paid"
    EXPIRED = "expired"


@dataclass(frozen=True)
class ExpenseItemInput:
    """A line item as supplied by the submitter, before validation."""
    category: str
    amount: Decimal
    expense_date: date
    description: str = ""
    receipt_reference: str | None = None


@dataclass(frozen=True)
class ExpenseItemSnapshot:
    """A persisted line item."""
    id: UUID
    line_number: int
    category: str
    amount: Decimal
    expense_date: date
    description: str
    receipt_reference: str | None


@dataclass(frozen=True)
class ReportSnapshot:
    """Immutable view of an expense report after an operation."""
    id: UUID
    owner_id: UUID
    submitted_at: datetime
    status: ReportStatus
    budget_check: BudgetCheck
    total_amount: Decimal
    forwarded_to_ceo: bool
    ceo_approved: bool
    reimbursed: bool
    items: tuple[ExpenseItemSnapshot, ...]
    trip_start: date | None = None
    trip_end: date | None = None
    trip_days: int = 1
    version: int = 1

    @property
    def categories(self) -> tuple[str, ...]:
        """Distinct item categories in first-seen order."""
        seen: dict[str, None] = {}
        for item in self.items:
            seen.setdefault(item.category, None)
        return tuple(seen)


@dataclass(frozen=True)
class ApprovalRecord:
    """One entry of a report's approval trail."""
    id: UUID
    report_id: UUID
    approver_id: UUID
    decision: ApprovalDecision
    stage: ApprovalStage
    remarks: str
    decided_at: datetime
    voided_at: datetime | None = None
    sequence: int = 0

    @property
    def is_voided(self) -> bool:
        return self.voided_at is not None


@dataclass(frozen=True)
class PaymentSnapshot:
    """The single checkout session of a report."""
    id: UUID
    report_id: UUID
    session_id: str
    checkout_url: str
    status: str
    amount: Decimal
    created_at: datetime
    paid_at: datetime | None
    processed_by_id: UUID | None


@dataclass(frozen=True)
class CategoryBudgetLine:
    """Monthly projection for one category of a report."""
    category: str
    allocated: Decimal | None
    month_spent: Decimal
    report_amount: Decimal

    @property
    def projected(self) -> Decimal:
        return self.month_spent + self.report_amount

    @property
    def has_limit(self) -> bool:
        return self.allocated is not None

    @property
    def exceeds(self) -> bool:
        # Missing budget row means no limit
        return self.allocated is not None and self.projected > self.allocated

    @property
    def over_by(self) -> Decimal:
        if not self.exceeds:
            return Decimal("0.00")
        return self.projected - self.allocated


@dataclass(frozen=True)
class BudgetEvaluation:
    """Per-category budget projection for a whole report."""
    month_start: date
    lines: tuple[CategoryBudgetLine, ...] = field(default_factory=tuple)

    @property
    def budget_check(self) -> BudgetCheck:
        if any(line.exceeds for line in self.lines):
            return BudgetCheck.OVER_BUDGET
        return BudgetCheck.WITHIN_BUDGET

    @property
    def exceeded_categories(self) -> tuple[str, ...]:
        return tuple(line.category for line in self.lines if line.exceeds)


@dataclass(frozen=True)
class BudgetSummary:
    """Ledger totals derived on read."""
    month_start: date
    total_allocated: Decimal
    total_spent: Decimal
    month_submitted: Decimal

    @property
    def remaining(self) -> Decimal:
        return self.total_allocated - self.total_spent
