"""Tests for money helpers, the clock and budget value objects."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from expense_kernel.db.types import round_money, sum_money, to_money
from expense_kernel.domain.clock import DeterministicClock, month_bounds
from expense_kernel.domain.values import (
    BudgetCheck,
    BudgetEvaluation,
    BudgetSummary,
    CategoryBudgetLine,
)


class TestMoney:

    def test_round_half_up(self):
        assert round_money(Decimal("10.005")) == Decimal("10.01")
        assert round_money(Decimal("10.004")) == Decimal("10.00")

    def test_to_money_accepts_str_int_decimal(self):
        assert to_money("12.345") == Decimal("12.35")
        assert to_money(7) == Decimal("7.00")
        assert to_money(Decimal("1")) == Decimal("1.00")

    @pytest.mark.parametrize("bad", [1.5, True, "abc", None])
    def test_to_money_rejects(self, bad):
        with pytest.raises(ValueError):
            to_money(bad)

    def test_sum_money(self):
        assert sum_money([Decimal("0.10"), Decimal("0.20")]) == Decimal("0.30")
        assert sum_money([]) == Decimal("0.00")


class TestClock:

    def test_deterministic_clock_default(self):
        clock = DeterministicClock()
        assert clock.now() == datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
        assert clock.today() == date(2024, 1, 15)

    def test_advance_and_set(self):
        clock = DeterministicClock()
        clock.advance(90)
        assert clock.now().minute == 1
        clock.set_time(datetime(2024, 3, 1, tzinfo=timezone.utc))
        assert clock.today() == date(2024, 3, 1)

    @pytest.mark.parametrize(
        "as_of, expected",
        [
            (date(2024, 1, 15), (date(2024, 1, 1), date(2024, 2, 1))),
            (date(2024, 12, 31), (date(2024, 12, 1), date(2025, 1, 1))),
            (date(2024, 2, 29), (date(2024, 2, 1), date(2024, 3, 1))),
        ],
    )
    def test_month_bounds(self, as_of, expected):
        assert month_bounds(as_of) == expected


class TestBudgetValues:

    def test_line_without_budget_never_exceeds(self):
        line = CategoryBudgetLine("Misc", None, Decimal("10000"), Decimal("1"))
        assert not line.has_limit
        assert not line.exceeds
        assert line.over_by == Decimal("0.00")

    def test_line_exceeds_strictly_greater(self):
        at_limit = CategoryBudgetLine("Fuel", Decimal("1000"), Decimal("400"), Decimal("600"))
        over = CategoryBudgetLine("Fuel", Decimal("1000"), Decimal("400"), Decimal("600.01"))
        assert not at_limit.exceeds
        assert over.exceeds
        assert over.over_by == Decimal("0.01")

    def test_evaluation_over_if_any_line_exceeds(self):
        evaluation = BudgetEvaluation(
            month_start=date(2024, 1, 1),
            lines=(
                CategoryBudgetLine("Travel", Decimal("2000"), Decimal("0"), Decimal("500")),
                CategoryBudgetLine("Fuel", Decimal("1000"), Decimal("0"), Decimal("1200")),
            ),
        )
        assert evaluation.budget_check is BudgetCheck.OVER_BUDGET
        assert evaluation.exceeded_categories == ("Fuel",)

    def test_empty_evaluation_is_within_budget(self):
        assert BudgetEvaluation(month_start=date(2024, 1, 1)).budget_check is BudgetCheck.WITHIN_BUDGET

    def test_summary_remaining(self):
        summary = BudgetSummary(date(2024, 1, 1), Decimal("3000"), Decimal("1200"), Decimal("1700"))
        assert summary.remaining == Decimal("1800")
