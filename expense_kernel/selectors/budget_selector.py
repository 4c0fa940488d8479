"""
Module: expense_kernel.selectors.budget_selector
Responsibility: Read-only budget views.  Monthly totals are derived from
    Budget and ExpenseItem rows at query time; nothing is cached.
Architecture position: Kernel > Selectors.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import select

from expense_kernel.db.types import sum_money
from expense_kernel.domain.clock import month_bounds
from expense_kernel.domain.values import BudgetSummary
from expense_kernel.models.budget import BudgetModel
from expense_kernel.models.expense_report import ExpenseItemModel
from expense_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class BudgetRow:
    """One category budget."""

    category: str
    allocated: Decimal
    spent: Decimal

    @property
    def remaining(self) -> Decimal:
        return self.allocated - self.spent


class BudgetSelector(BaseSelector):
    """Budget listings and monthly summaries."""

    def list_budgets(self) -> list[BudgetRow]:
        rows = self.session.execute(
            select(BudgetModel).order_by(BudgetModel.category)
        ).scalars()
        return [BudgetRow(b.category, b.allocated, b.spent) for b in rows]

    def get(self, category: str) -> BudgetRow | None:
        budget = self.session.execute(
            select(BudgetModel).where(BudgetModel.category == category.strip())
        ).scalar_one_or_none()
        if budget is None:
            return None
        return BudgetRow(budget.category, budget.allocated, budget.spent)

    def monthly_summary(self, as_of: date) -> BudgetSummary:
        """Totals across all categories, plus item spend dated in ``as_of``'s month."""
        budgets = self.session.execute(select(BudgetModel)).scalars().all()
        start, end = month_bounds(as_of)
        submitted = self.session.execute(
            select(ExpenseItemModel.amount).where(
                ExpenseItemModel.expense_date >= start,
                ExpenseItemModel.expense_date < end,
            )
        ).scalars()
        return BudgetSummary(
            month_start=start,
            total_allocated=sum_money(b.allocated for b in budgets),
            total_spent=sum_money(b.spent for b in budgets),
            month_submitted=sum_money(submitted),
        )
