"""
Configuration Loader (``expense_config.loader``).

Responsibility
--------------
Reads one YAML file and parses it into ``expense_config.schema``
dataclasses, then applies environment overrides.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* A budget seed without ``category``/``allocated``  -> ``KeyError``.
* A non-numeric or negative amount  -> ``ValueError``.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from expense_config.schema import (
    BudgetSeed,
    DatabaseConfig,
    ExpenseConfig,
    GatewayConfig,
    WorkflowConfig,
)

ENV_CONFIG_PATH = "EXPENSE_CONFIG_PATH"
ENV_DATABASE_URL = "EXPENSE_DATABASE_URL"
ENV_SECRET_KEY = "PAYMONGO_SECRET_KEY"
ENV_WEBHOOK_SECRET = "PAYMONGO_WEBHOOK_SECRET"

DEFAULT_CONFIG_PATH = Path(__file__).parent / "expense.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file; an empty file yields ``{}``."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_amount(value: Any, field_name: str) -> Decimal:
    if isinstance(value, float):
        # YAML reads 1000.50 as float; go through str to keep the written digits
        value = str(value)
    try:
        amount = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{field_name}: not a number: {value!r}") from exc
    if amount < 0:
        raise ValueError(f"{field_name}: must not be negative: {amount}")
    return amount.quantize(Decimal("0.01"))


def parse_database(data: Mapping[str, Any]) -> DatabaseConfig:
    defaults = DatabaseConfig()
    return DatabaseConfig(
        url=data.get("url", defaults.url),
        echo=bool(data.get("echo", defaults.echo)),
        pool_size=int(data.get("pool_size", defaults.pool_size)),
        max_overflow=int(data.get("max_overflow", defaults.max_overflow)),
    )


def parse_gateway(data: Mapping[str, Any]) -> GatewayConfig:
    defaults = GatewayConfig()
    return GatewayConfig(
        secret_key=data.get("secret_key") or "",
        webhook_secret=data.get("webhook_secret") or "",
        base_url=data.get("base_url", defaults.base_url),
        timeout_seconds=float(data.get("timeout_seconds", defaults.timeout_seconds)),
        max_attempts=int(data.get("max_attempts", defaults.max_attempts)),
    )


def parse_workflow(data: Mapping[str, Any]) -> WorkflowConfig:
    defaults = WorkflowConfig()
    return WorkflowConfig(
        checkout_success_url=data.get("checkout_success_url", defaults.checkout_success_url),
        checkout_cancel_url=data.get("checkout_cancel_url", defaults.checkout_cancel_url),
    )


def parse_budget(data: Mapping[str, Any]) -> BudgetSeed:
    category = str(data["category"]).strip()
    if not category:
        raise ValueError("budget seed category must not be empty")
    return BudgetSeed(
        category=category,
        allocated=parse_amount(data["allocated"], f"budgets[{category}].allocated"),
        spent=parse_amount(data.get("spent", 0), f"budgets[{category}].spent"),
    )


def parse_config(data: Mapping[str, Any]) -> ExpenseConfig:
    """Build an ``ExpenseConfig`` from a parsed YAML document."""
    return ExpenseConfig(
        database=parse_database(data.get("database") or {}),
        gateway=parse_gateway(data.get("gateway") or {}),
        workflow=parse_workflow(data.get("workflow") or {}),
        budgets=tuple(parse_budget(b) for b in data.get("budgets") or ()),
        log_level=str((data.get("logging") or {}).get("level", "INFO")).upper(),
    )


def apply_env_overrides(data: dict[str, Any], env: Mapping[str, str]) -> dict[str, Any]:
    """Return a copy of ``data`` with environment values layered on top."""
    merged = {key: dict(value) if isinstance(value, Mapping) else value for key, value in data.items()}
    database = merged.setdefault("database", {})
    gateway = merged.setdefault("gateway", {})

    if env.get(ENV_DATABASE_URL):
        database["url"] = env[ENV_DATABASE_URL]
    if env.get(ENV_SECRET_KEY):
        gateway["secret_key"] = env[ENV_SECRET_KEY]
    if env.get(ENV_WEBHOOK_SECRET):
        gateway["webhook_secret"] = env[ENV_WEBHOOK_SECRET]
    return merged


def load_config(path: Path | None = None, env: Mapping[str, str] | None = None) -> ExpenseConfig:
    """
    Load configuration from ``path`` (or ``$EXPENSE_CONFIG_PATH``, or the
    bundled default) and apply environment overrides.
    """
    env = os.environ if env is None else env
    if path is None:
        path = Path(env[ENV_CONFIG_PATH]) if env.get(ENV_CONFIG_PATH) else DEFAULT_CONFIG_PATH
    data = load_yaml_file(Path(path))
    return parse_config(apply_env_overrides(data, env))

