"""
Module: expense_kernel.models.budget
Responsibility: ORM persistence for per-category budgets and the spend
    posting markers that make ledger spend exactly-once per report/category.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - category is unique across budgets.
    - allocated and spent are non-negative (DB check constraints).
    - (report_id, category) is unique across spend postings, so a racing
      second posting fails with IntegrityError instead of double-counting.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from expense_kernel.db.base import TrackedBase
from expense_kernel.db.types import ZERO


class BudgetModel(TrackedBase):
    """
    Allocated vs. spent amount for one expense category.

    Guarantees:
        - ``spent`` only grows through BudgetLedger.apply_spend().
        - ``allocated`` changes only through an explicit reallocation.
    """

    __tablename__ = "budgets"

    __table_args__ = (
        UniqueConstraint("category", name="uq_budget_category"),
        CheckConstraint("allocated >= 0", name="ck_budget_allocated_non_negative"),
        CheckConstraint("spent >= 0", name="ck_budget_spent_non_negative"),
    )

    category: Mapped[str] = mapped_column(String(100), nullable=False)
    allocated: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    spent: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)

    @property
    def remaining(self) -> Decimal:
        return self.allocated - self.spent

    def __repr__(self) -> str:
        return f"<BudgetModel {self.category} spent={self.spent}/{self.allocated}>"


class SpendPostingModel(TrackedBase):
    """
    How much of a report's category total has been posted to ``Budget.spent``.

    One row per (report, category).  The ledger posts only the positive
    difference between the report's current category total and ``amount``,
    so replays of the same confirmation never move ``spent`` twice.
    """

    __tablename__ = "budget_spend_postings"

    __table_args__ = (
        UniqueConstraint("report_id", "category", name="uq_spend_posting_report_category"),
        Index("idx_spend_posting_report", "report_id"),
    )

    report_id: Mapped[UUID] = mapped_column(ForeignKey("expense_reports.id"), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)

    def __repr__(self) -> str:
        return f"<SpendPostingModel report={self.report_id} {self.category}={self.amount}>"
