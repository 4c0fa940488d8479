"""
Expense configuration schema.

Frozen dataclasses produced by ``expense_config.loader`` from a YAML file
plus environment overrides.  Secrets are never read from YAML in
production; ``PAYMONGO_SECRET_KEY`` and ``PAYMONGO_WEBHOOK_SECRET`` win.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseConfig:
    """Where the kernel persists reports, budgets and the audit log."""

    url: str = "sqlite:///expense.db"
    echo: bool = False
    pool_size: int = 10
    max_overflow: int = 10


@dataclass(frozen=True)
class GatewayConfig:
    """PayMongo credentials and HTTP behaviour."""

    secret_key: str = ""
    webhook_secret: str = ""
    base_url: str = "https://api.paymongo.com/v1/"
    timeout_seconds: float = 10.0
    max_attempts: int = 3

    @property
    def enabled(self) -> bool:
        return bool(self.secret_key)

    def __repr__(self) -> str:
        # Keep secrets out of logs and tracebacks
        return (
            f"GatewayConfig(enabled={self.enabled}, base_url={self.base_url!r}, "
            f"webhook_secret={'set' if self.webhook_secret else 'unset'})"
        )


@dataclass(frozen=True)
class WorkflowConfig:
    """Redirect targets for hosted checkout pages."""

    checkout_success_url: str = "http://localhost:8000/finance/reimbursements/success"
    checkout_cancel_url: str = "http://localhost:8000/finance/reimbursements/cancel"


@dataclass(frozen=True)
class BudgetSeed:
    """Initial allocation for one category."""

    category: str
    allocated: Decimal
    spent: Decimal = Decimal("0.00")


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExpenseConfig:
    """Complete runtime configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    gateway: GatewayConfig = field(default_factory=GatewayConfig)
    workflow: WorkflowConfig = field(default_factory=WorkflowConfig)
    budgets: tuple[BudgetSeed, ...] = ()
    log_level: str = "INFO"
