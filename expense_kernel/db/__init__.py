"""Database layer - engine, base classes and column types."""

from expense_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from expense_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)
from expense_kernel.db.types import ZERO, round_money, sum_money, to_money

__all__ = [
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "ZERO",
    "sum_money",
    "round_money",
    "to_money",
]
