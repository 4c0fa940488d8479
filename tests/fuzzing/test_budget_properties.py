"""
Property-based tests (Hypothesis) for the money and budget-check rules.

Properties:
- validate_items() keeps every amount at currency scale and the report
  total equals the sum of the cleaned item amounts.
- A BudgetEvaluation is OverBudget iff at least one category's projection
  (month spent + report amount) is strictly greater than its allocation.
- A category without a budget row never makes a report OverBudget.
"""

from datetime import date
from decimal import Decimal

from hypothesis import given, settings
from hypothesis import strategies as st

from expense_kernel.db.types import sum_money
from expense_kernel.domain.values import BudgetCheck, BudgetEvaluation, CategoryBudgetLine, ExpenseItemInput
from expense_kernel.services.report_service import validate_items

amounts = st.decimals(
    min_value=Decimal("0.01"), max_value=Decimal("999999.99"), places=2,
    allow_nan=False, allow_infinity=False,
)
categories = st.sampled_from(["Fuel", "Travel", "Meals", "Accommodation", " Fuel "])

items = st.builds(
    ExpenseItemInput,
    category=categories,
    amount=amounts,
    expense_date=st.dates(min_value=date(2024, 1, 1), max_value=date(2024, 1, 31)),
)

lines = st.builds(
    CategoryBudgetLine,
    category=categories,
    allocated=st.one_of(st.none(), amounts),
    month_spent=st.decimals(min_value=Decimal("0"), max_value=Decimal("999999.99"), places=2),
    report_amount=amounts,
)


@given(st.lists(items, min_size=1, max_size=30))
@settings(max_examples=200)
def test_total_equals_sum_of_items(raw_items):
    cleaned = validate_items(raw_items)

    assert len(cleaned) == len(raw_items)
    assert all(i.amount == i.amount.quantize(Decimal("0.01")) for i in cleaned)
    assert all(i.category == i.category.strip() for i in cleaned)
    assert sum_money(i.amount for i in cleaned) == sum(
        (i.amount for i in raw_items), Decimal("0")
    )


@given(st.lists(lines, max_size=10))
def test_over_budget_iff_some_category_exceeds(budget_lines):
    evaluation = BudgetEvaluation(month_start=date(2024, 1, 1), lines=tuple(budget_lines))

    expected = any(
        line.allocated is not None and line.month_spent + line.report_amount > line.allocated
        for line in budget_lines
    )
    assert (evaluation.budget_check is BudgetCheck.OVER_BUDGET) == expected
    assert len(evaluation.exceeded_categories) == sum(1 for line in budget_lines if line.exceeds)


@given(month_spent=amounts, report_amount=amounts)
def test_missing_budget_is_unlimited(month_spent, report_amount):
    line = CategoryBudgetLine("Misc", None, month_spent, report_amount)
    assert not line.exceeds
    assert line.over_by == Decimal("0.00")
