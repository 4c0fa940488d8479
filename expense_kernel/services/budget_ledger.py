"""
BudgetLedger -- per-category monthly budget checks and spend posting.

Responsibility:
    Answers "would adding X to category C this month exceed its
    allocation?", projects a whole report against every category it
    touches, and realizes spend against ``Budget.spent`` exactly once per
    (report, category).

Architecture position:
    Kernel > Services.  Used by ReportService (budget check at submission),
    WorkflowEngine (spend on manager approval, reallocation on CEO approval)
    and ReimbursementReconciler (spend on payment confirmation).

Invariants enforced:
    - Monthly projection = items dated in the calendar month of ``as_of``
      for the category, excluding the report being evaluated, plus the
      report's own category total.  Over budget iff strictly greater than
      ``allocated``.
    - A category with no budget row has no limit.
    - ``spent`` never decreases.  ``post_report_spend`` posts only the
      positive difference between the report's category total and what the
      SpendPostingModel marker says has already been posted.
    - Budget and marker rows are locked FOR UPDATE before mutation.

Failure modes:
    - ValidationError on blank category or negative allocation.
    - BudgetNotFoundError when reallocating an unknown category.
    - IntegrityError (surfaced by the facade as ConcurrencyConflictError)
      if two transactions insert the same marker concurrently.
"""

from collections.abc import Mapping
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from expense_kernel.db.types import ZERO, sum_money, to_money
from expense_kernel.domain.clock import month_bounds
from expense_kernel.domain.values import BudgetEvaluation, CategoryBudgetLine
from expense_kernel.exceptions import BudgetNotFoundError, ValidationError
from expense_kernel.logging_config import get_logger
from expense_kernel.models.budget import BudgetModel, SpendPostingModel
from expense_kernel.models.expense_report import ExpenseItemModel, ExpenseReportModel
from expense_kernel.services.base import BaseService

logger = get_logger("services.budget_ledger")


def normalize_category(category: str) -> str:
    """Trim a category name; blank is invalid."""
    if not isinstance(category, str) or not category.strip():
        raise ValidationError("category", "must not be empty")
    return category.strip()


def _non_negative_amount(field: str, value) -> Decimal:
    try:
        amount = to_money(value)
    except ValueError as exc:
        raise ValidationError(field, str(exc)) from exc
    if amount < 0:
        raise ValidationError(field, f"must not be negative (got {amount})")
    return amount


class BudgetLedger(BaseService):
    """Budget reads, projections and spend postings."""

    # =========================================================================
    # Budget rows
    # =========================================================================

    def get_budget(self, category: str) -> BudgetModel | None:
        return self.session.execute(
            select(BudgetModel).where(BudgetModel.category == category.strip())
        ).scalar_one_or_none()

    def require_budget(self, category: str) -> BudgetModel:
        budget = self.get_budget(category)
        if budget is None:
            raise BudgetNotFoundError(category)
        return budget

    def create_budget(
        self,
        category: str,
        allocated: Decimal,
        spent: Decimal = ZERO,
    ) -> BudgetModel:
        """Create the budget row for a category."""
        name = normalize_category(category)
        allocated = _non_negative_amount("allocated", allocated)
        spent = _non_negative_amount("spent", spent)
        if self.get_budget(name) is not None:
            raise ValidationError("category", f"budget for {name!r} already exists")

        budget = BudgetModel(category=name, allocated=allocated, spent=spent)
        self.session.add(budget)
        self.session.flush()

        logger.info(
            "budget_created",
            extra={"category": name, "allocated": str(allocated), "spent": str(spent)},
        )
        return budget

    def _lock_budget(self, category: str) -> BudgetModel | None:
        return self.session.execute(
            select(BudgetModel)
            .where(BudgetModel.category == category)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    # =========================================================================
    # Projections
    # =========================================================================

    def month_spent(
        self,
        category: str,
        as_of: date,
        exclude_report_id: UUID | None = None,
    ) -> Decimal:
        """Sum of item amounts for ``category`` dated in the month of ``as_of``."""
        start, end = month_bounds(as_of)
        stmt = select(ExpenseItemModel.amount).where(
            ExpenseItemModel.category == category,
            ExpenseItemModel.expense_date >= start,
            ExpenseItemModel.expense_date < end,
        )
        if exclude_report_id is not None:
            stmt = stmt.where(ExpenseItemModel.report_id != exclude_report_id)
        return sum_money(self.session.execute(stmt).scalars())

    def check_would_exceed(
        self,
        category: str,
        candidate_amount: Decimal,
        as_of: date,
        exclude_report_id: UUID | None = None,
    ) -> bool:
        """True if this month's spend plus ``candidate_amount`` exceeds the allocation."""
        name = normalize_category(category)
        budget = self.get_budget(name)
        if budget is None:
            return False
        projected = self.month_spent(name, as_of, exclude_report_id) + to_money(candidate_amount)
        return projected > budget.allocated

    def evaluate(
        self,
        category_totals: Mapping[str, Decimal],
        as_of: date,
        exclude_report_id: UUID | None = None,
    ) -> BudgetEvaluation:
        """Project every category of a report against its monthly allocation."""
        names = list(category_totals)
        budgets = {
            b.category: b
            for b in self.session.execute(
                select(BudgetModel).where(BudgetModel.category.in_(names))
            ).scalars()
        } if names else {}

        lines = []
        for name in names:
            budget = budgets.get(name)
            lines.append(
                CategoryBudgetLine(
                    category=name,
                    allocated=budget.allocated if budget is not None else None,
                    month_spent=self.month_spent(name, as_of, exclude_report_id),
                    report_amount=to_money(category_totals[name]),
                )
            )

        evaluation = BudgetEvaluation(month_start=month_bounds(as_of)[0], lines=tuple(lines))
        logger.debug(
            "budget_evaluated",
            extra={
                "as_of": as_of.isoformat(),
                "categories": names,
                "budget_check": evaluation.budget_check.value,
                "exceeded": list(evaluation.exceeded_categories),
            },
        )
        return evaluation

    def evaluate_report(self, report: ExpenseReportModel, as_of: date | None = None) -> BudgetEvaluation:
        return self.evaluate(
            report.category_totals(),
            as_of or self.clock.today(),
            exclude_report_id=report.id,
        )

    # =========================================================================
    # Spend
    # =========================================================================

    def apply_spend(self, category: str, amount: Decimal) -> BudgetModel | None:
        """Increase ``spent`` for ``category``.  Missing category is a no-op."""
        amount = _non_negative_amount("amount", amount)
        budget = self._lock_budget(category)
        if budget is None:
            logger.info(
                "spend_skipped_no_budget",
                extra={"category": category, "amount": str(amount)},
            )
            return None

        budget.spent = budget.spent + amount
        self.session.flush()
        logger.info(
            "spend_applied",
            extra={"category": category, "amount": str(amount), "spent": str(budget.spent)},
        )
        return budget

    def post_report_spend(self, report: ExpenseReportModel) -> dict[str, Decimal]:
        """
        Realize the report's spend, at most once per category.

        Returns the amount actually added to ``spent`` per category; a replay
        of an already-posted report returns all zeros.
        """
        posted: dict[str, Decimal] = {}
        for category, total in report.category_totals().items():
            marker = self.session.execute(
                select(SpendPostingModel)
                .where(
                    SpendPostingModel.report_id == report.id,
                    SpendPostingModel.category == category,
                )
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()

            already = marker.amount if marker is not None else ZERO
            delta = total - already
            if delta <= 0:
                posted[category] = ZERO
                continue

            self.apply_spend(category, delta)
            if marker is None:
                self.session.add(
                    SpendPostingModel(report_id=report.id, category=category, amount=total)
                )
            else:
                marker.amount = total
            posted[category] = delta

        self.session.flush()
        logger.info(
            "report_spend_posted",
            extra={
                "spend_report_id": str(report.id),
                "posted": {k: str(v) for k, v in posted.items()},
            },
        )
        return posted

    # =========================================================================
    # Allocation
    # =========================================================================

    def validate_allocations(self, allocations: Mapping[str, Decimal]) -> dict[str, Decimal]:
        """Normalize and validate a reallocation request without touching rows."""
        cleaned: dict[str, Decimal] = {}
        for category, value in allocations.items():
            name = normalize_category(category)
            cleaned[name] = _non_negative_amount(f"allocated[{name}]", value)
        for name in cleaned:
            if self.get_budget(name) is None:
                raise BudgetNotFoundError(name)
        return cleaned

    def reallocate(self, allocations: Mapping[str, Decimal]) -> list[BudgetModel]:
        """Set ``allocated`` for each named category (all validated first)."""
        cleaned = self.validate_allocations(allocations)
        changed = []
        for name, allocated in cleaned.items():
            budget = self._lock_budget(name)
            previous = budget.allocated
            budget.allocated = allocated
            changed.append(budget)
            logger.info(
                "budget_reallocated",
                extra={"category": name, "previous": str(previous), "allocated": str(allocated)},
            )
        self.session.flush()
        return changed
