"""
SQLAlchemy ORM persistence for expense reports and their line items.

Responsibility
--------------
Persist the Report aggregate: the report header with its lifecycle flags,
and the ordered line items it exclusively owns.

Invariants enforced
-------------------
* All monetary fields use ``Decimal`` (Numeric(14,2)) -- NEVER float.
* Enum fields stored as String(50) for readability and portability.
* ``ExpenseItemModel`` belongs to exactly one ``ExpenseReportModel`` and is
  cascade-deleted with it.
* Items of an Approved report cannot be updated or deleted.
* ``version`` is the optimistic-lock counter; a stale UPDATE raises
  ``StaleDataError``.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, String, UniqueConstraint, event
from sqlalchemy.orm import Mapped, mapped_column, relationship

from expense_kernel.db.base import TrackedBase
from expense_kernel.db.types import ZERO
from expense_kernel.exceptions import ImmutabilityViolationError


class ExpenseReportModel(TrackedBase):
    """
    An expense report submitted by an employee.

    Guarantees:
        - ``total_amount`` equals the sum of item amounts (maintained by
          ReportService on submit and resubmit).
        - ``status`` follows the lifecycle in
          ``expense_kernel.domain.workflow.EXPENSE_REPORT_WORKFLOW``.
    """

    __tablename__ = "expense_reports"

    __table_args__ = (
        Index("idx_expense_report_owner", "owner_id"),
        Index("idx_expense_report_status", "status"),
        Index("idx_expense_report_submitted", "submitted_at"),
    )

    owner_id: Mapped[UUID] = mapped_column(nullable=False)
    submitted_at: Mapped[datetime] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="Submitted")
    budget_check: Mapped[str] = mapped_column(String(50), nullable=False, default="WithinBudget")
    total_amount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    forwarded_to_ceo: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    ceo_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reimbursed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    trip_start: Mapped[date | None] = mapped_column(Date, nullable=True)
    trip_end: Mapped[date | None] = mapped_column(Date, nullable=True)
    trip_days: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    items: Mapped[list["ExpenseItemModel"]] = relationship(
        "ExpenseItemModel",
        back_populates="report",
        cascade="all, delete-orphan",
        order_by="ExpenseItemModel.line_number",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def category_totals(self) -> dict[str, Decimal]:
        """Sum of item amounts per category, in first-seen order."""
        totals: dict[str, Decimal] = {}
        for item in self.items:
            totals[item.category] = totals.get(item.category, ZERO) + item.amount
        return totals

    def to_dto(self):
        from expense_kernel.domain.values import BudgetCheck, ReportSnapshot, ReportStatus

        return ReportSnapshot(
            id=self.id,
            owner_id=self.owner_id,
            submitted_at=self.submitted_at,
            status=ReportStatus(self.status),
            budget_check=BudgetCheck(self.budget_check),
            total_amount=self.total_amount,
            forwarded_to_ceo=self.forwarded_to_ceo,
            ceo_approved=self.ceo_approved,
            reimbursed=self.reimbursed,
            items=tuple(item.to_dto() for item in self.items),
            trip_start=self.trip_start,
            trip_end=self.trip_end,
            trip_days=self.trip_days,
            version=self.version,
        )

    def __repr__(self) -> str:
        return f"<ExpenseReportModel {self.id} [{self.status}] {self.total_amount}>"


class ExpenseItemModel(TrackedBase):
    """
    A single expense line on a report.

    Guarantees:
        - Belongs to exactly one ``ExpenseReportModel``.
        - (report_id, line_number) is unique.
    """

    __tablename__ = "expense_items"

    __table_args__ = (
        UniqueConstraint("report_id", "line_number", name="uq_expense_item_line_number"),
        Index("idx_expense_item_report", "report_id"),
        Index("idx_expense_item_category_date", "category", "expense_date"),
    )

    report_id: Mapped[UUID] = mapped_column(ForeignKey("expense_reports.id"), nullable=False)
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    expense_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    receipt_reference: Mapped[str | None] = mapped_column(String(500), nullable=True)

    report: Mapped["ExpenseReportModel"] = relationship(
        "ExpenseReportModel",
        back_populates="items",
    )

    def to_dto(self):
        from expense_kernel.domain.values import ExpenseItemSnapshot

        return ExpenseItemSnapshot(
            id=self.id,
            line_number=self.line_number,
            category=self.category,
            amount=self.amount,
            expense_date=self.expense_date,
            description=self.description,
            receipt_reference=self.receipt_reference,
        )

    def __repr__(self) -> str:
        return f"<ExpenseItemModel #{self.line_number} {self.category} {self.amount}>"


# =============================================================================
# Approved reports freeze their items
# =============================================================================


def _guard_approved_item(target: ExpenseItemModel, operation: str) -> None:
    report = target.report
    if report is not None and report.status == "Approved":
        raise ImmutabilityViolationError(
            entity_type="ExpenseItem",
            entity_id=str(target.id),
            reason=f"Items of an approved report cannot be {operation}",
        )


@event.listens_for(ExpenseItemModel, "before_update")
def prevent_approved_item_update(mapper, connection, target):
    _guard_approved_item(target, "modified")


@event.listens_for(ExpenseItemModel, "before_delete")
def prevent_approved_item_delete(mapper, connection, target):
    _guard_approved_item(target, "deleted")
