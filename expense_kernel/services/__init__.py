"""Write-side services of the expense kernel."""

from expense_kernel.services.auditor_service import AuditorService
from expense_kernel.services.budget_ledger import BudgetLedger
from expense_kernel.services.expense_workflow_service import (
    ExpenseWorkflowService,
    WorkflowResult,
    WorkflowStatus,
)
from expense_kernel.services.reconciler import ConfirmationOutcome, ReimbursementReconciler
from expense_kernel.services.report_service import ReportService
from expense_kernel.services.workflow_engine import WorkflowEngine

__all__ = [
    "AuditorService",
    "BudgetLedger",
    "ConfirmationOutcome",
    "ExpenseWorkflowService",
    "ReimbursementReconciler",
    "ReportService",
    "WorkflowEngine",
    "WorkflowResult",
    "WorkflowStatus",
]
