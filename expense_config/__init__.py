"""
expense_config -- single public entrypoint for expense workflow configuration.

Responsibility:
    ``get_active_config()`` is the only way runtime code obtains
    configuration.  It reads the YAML file named by ``EXPENSE_CONFIG_PATH``
    (or the bundled ``expense.yaml``) and layers environment overrides for
    the database URL and PayMongo secrets on top.

Architecture position:
    Configuration sits above ``expense_kernel``.  The kernel never imports
    from this package; ``expense_config.bridges`` turns a config into kernel
    objects.

Failure modes:
    - ``FileNotFoundError`` when the configured file does not exist.
    - ``yaml.YAMLError`` for malformed YAML.
    - ``ValueError`` / ``KeyError`` for invalid budget seeds.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

from expense_config.bridges import (
    build_gateway,
    build_workflow_service,
    init_database,
    seed_budgets,
)
from expense_config.loader import load_config
from expense_config.schema import (
    BudgetSeed,
    DatabaseConfig,
    ExpenseConfig,
    GatewayConfig,
    WorkflowConfig,
)
from expense_kernel.logging_config import get_logger

_logger = get_logger("config")


def get_active_config(
    path: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> ExpenseConfig:
    """Load and return the active configuration."""
    config = load_config(path, env)
    _logger.info(
        "EXPENSE_CONFIG_TRACE",
        extra={
            "database_dialect": config.database.url.split(":", 1)[0],
            "gateway_enabled": config.gateway.enabled,
            "webhook_verification": bool(config.gateway.webhook_secret),
            "budget_seed_count": len(config.budgets),
        },
    )
    return config


__all__ = [
    "BudgetSeed",
    "DatabaseConfig",
    "ExpenseConfig",
    "GatewayConfig",
    "WorkflowConfig",
    "build_gateway",
    "build_workflow_service",
    "get_active_config",
    "init_database",
    "load_config",
    "seed_budgets",
]
