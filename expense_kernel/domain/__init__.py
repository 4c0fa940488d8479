"""Pure domain layer: value objects, the report workflow and the clock."""

from expense_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from expense_kernel.domain.values import (
    ApprovalDecision,
    ApprovalRecord,
    ApprovalStage,
    BudgetCheck,
    BudgetEvaluation,
    BudgetSummary,
    CategoryBudgetLine,
    ExpenseItemInput,
    ExpenseItemSnapshot,
    PaymentSnapshot,
    PaymentStatus,
    ReportSnapshot,
    ReportStatus,
    SYSTEM_ACTOR_ID,
)
from expense_kernel.domain.workflow import EXPENSE_REPORT_WORKFLOW, Guard, Transition, Workflow

__all__ = [
    "ApprovalDecision",
    "ApprovalRecord",
    "ApprovalStage",
    "BudgetCheck",
    "BudgetEvaluation",
    "BudgetSummary",
    "CategoryBudgetLine",
    "Clock",
    "DeterministicClock",
    "EXPENSE_REPORT_WORKFLOW",
    "ExpenseItemInput",
    "ExpenseItemSnapshot",
    "Guard",
    "PaymentSnapshot",
    "PaymentStatus",
    "ReportSnapshot",
    "ReportStatus",
    "SYSTEM_ACTOR_ID",
    "SystemClock",
    "Transition",
    "Workflow",
]
