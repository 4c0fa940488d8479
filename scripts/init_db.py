#!/usr/bin/env python3
"""
Create the expense workflow schema and seed budgets from configuration.

Usage:
  python3 scripts/init_db.py [--config PATH] [--db-url URL] [--reset]

Environment:
  EXPENSE_CONFIG_PATH, EXPENSE_DATABASE_URL override the YAML defaults.
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Create tables and seed budgets")
    p.add_argument("--config", type=Path, default=None, help="YAML config file")
    p.add_argument("--db-url", default=None, help="Database URL (overrides config)")
    p.add_argument("--reset", action="store_true", help="Drop all tables first")
    return p.parse_args()


def main() -> int:
    args = _parse_args()

    from expense_config import get_active_config, seed_budgets
    from expense_config.bridges import log_level
    from expense_kernel.db.engine import (
        create_tables,
        drop_tables,
        init_engine_from_url,
        session_scope,
    )
    from expense_kernel.logging_config import configure_logging

    config = get_active_config(args.config)
    configure_logging(level=log_level(config))

    db_url = args.db_url or config.database.url
    print(f"  [1/3] Connecting to {db_url.split('@')[-1]}...")
    try:
        init_engine_from_url(db_url, echo=config.database.echo)
    except Exception as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1

    print("  [2/3] Creating schema...")
    if args.reset:
        drop_tables()
    create_tables()

    print("  [3/3] Seeding budgets...")
    with session_scope() as session:
        created = seed_budgets(session, config)
    print(f"  Done: {created} budget(s) created.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
