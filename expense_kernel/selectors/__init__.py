"""Selectors for the expense kernel (read side)."""

from expense_kernel.selectors.budget_selector import BudgetRow, BudgetSelector
from expense_kernel.selectors.report_selector import ReportSelector

__all__ = [
    "BudgetRow",
    "BudgetSelector",
    "ReportSelector",
]
