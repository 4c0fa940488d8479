"""
Bridges from configuration to kernel objects.

The kernel never imports ``expense_config``; these helpers translate a
loaded ``ExpenseConfig`` into a gateway, an initialized engine, seeded
budgets and a ready ``ExpenseWorkflowService``.
"""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from expense_config.schema import ExpenseConfig
from expense_kernel.db.engine import init_engine_from_url
from expense_kernel.domain.clock import Clock
from expense_kernel.gateway.base import PaymentGateway
from expense_kernel.gateway.disabled import DisabledGateway
from expense_kernel.gateway.paymongo import PayMongoGateway
from expense_kernel.logging_config import get_logger
from expense_kernel.services.budget_ledger import BudgetLedger
from expense_kernel.services.expense_workflow_service import ExpenseWorkflowService

logger = get_logger("config.bridges")


def build_gateway(config: ExpenseConfig) -> PaymentGateway:
    """PayMongo when a secret key is configured, otherwise the disabled gateway."""
    gateway = config.gateway
    if not gateway.enabled:
        logger.warning(
            "payment_gateway_disabled",
            extra={"hint": "set PAYMONGO_SECRET_KEY to enable checkout sessions"},
        )
        return DisabledGateway()
    return PayMongoGateway(
        secret_key=gateway.secret_key,
        base_url=gateway.base_url,
        timeout=gateway.timeout_seconds,
        max_attempts=gateway.max_attempts,
    )


def init_database(config: ExpenseConfig):
    return init_engine_from_url(
        config.database.url,
        echo=config.database.echo,
        pool_size=config.database.pool_size,
        max_overflow=config.database.max_overflow,
    )


def seed_budgets(session: Session, config: ExpenseConfig, clock: Clock | None = None) -> int:
    """Create missing budget rows from the config.  Existing rows are left alone."""
    ledger = BudgetLedger(session, clock)
    created = 0
    for seed in config.budgets:
        if ledger.get_budget(seed.category) is None:
            ledger.create_budget(seed.category, seed.allocated, seed.spent)
            created += 1
    logger.info(
        "budgets_seeded",
        extra={"created_count": created, "configured_count": len(config.budgets)},
    )
    return created


def build_workflow_service(
    session: Session,
    config: ExpenseConfig,
    gateway: PaymentGateway | None = None,
    clock: Clock | None = None,
) -> ExpenseWorkflowService:
    return ExpenseWorkflowService(
        session,
        gateway=gateway or build_gateway(config),
        clock=clock,
        webhook_secret=config.gateway.webhook_secret or None,
        checkout_success_url=config.workflow.checkout_success_url,
        checkout_cancel_url=config.workflow.checkout_cancel_url,
    )


def log_level(config: ExpenseConfig) -> int:
    level = logging.getLevelName(config.log_level)
    return level if isinstance(level, int) else logging.INFO
