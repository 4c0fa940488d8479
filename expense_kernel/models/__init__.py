"""ORM models for the expense kernel."""

from expense_kernel.models.approval import ApprovalModel
from expense_kernel.models.audit_log import AuditAction, AuditLogModel
from expense_kernel.models.budget import BudgetModel, SpendPostingModel
from expense_kernel.models.expense_report import ExpenseItemModel, ExpenseReportModel
from expense_kernel.models.payment import ReimbursementPaymentModel

__all__ = [
    "ApprovalModel",
    "AuditAction",
    "AuditLogModel",
    "BudgetModel",
    "ExpenseItemModel",
    "ExpenseReportModel",
    "ReimbursementPaymentModel",
    "SpendPostingModel",
]
