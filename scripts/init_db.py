#!/usr/bin/env python3
"""
Create the stock schema and seed the configured tenants.

Reads the active configuration (``STOCK_CONFIG`` / ``DATABASE_URL`` are
honoured), creates every table, registers the immutability listeners and
inserts tenants that do not exist yet.  Safe to run repeatedly.

Usage:
    python3 scripts/init_db.py
    python3 scripts/init_db.py --config path/to/config.yaml
    python3 scripts/init_db.py --drop        # drop all tables first
"""

import argparse
import logging
import sys
from pathlib import Path

# ---------------------------------------------------------------------------
# Project root on sys.path
# ---------------------------------------------------------------------------
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Create tables and seed tenants from configuration")
    p.add_argument("--config", type=Path, help="Configuration YAML (default: STOCK_CONFIG or packaged default)")
    p.add_argument("--drop", action="store_true", help="Drop all tables before creating them")
    return p.parse_args()


def main() -> int:
    args = _parse_args()

    from stock_config import get_active_config, seed_tenants
    from stock_kernel.db.engine import (
        create_tables,
        drop_tables,
        init_engine_from_url,
        session_scope,
    )
    from stock_kernel.db.immutability import register_immutability_listeners
    from stock_kernel.logging_config import configure_logging

    config = get_active_config(args.config)
    configure_logging(level=getattr(logging, config.logging.level, logging.INFO))

    init_engine_from_url(
        config.database.url,
        echo=config.database.echo,
        pool_size=config.database.pool_size,
        max_overflow=config.database.max_overflow,
    )
    if args.drop:
        drop_tables()
    create_tables()
    register_immutability_listeners()

    with session_scope() as session:
        created = seed_tenants(session, config)

    print(f"Schema ready at {config.database.url}")
    for tenant in config.tenants:
        marker = "created" if tenant.code in {t.code for t in created} else "exists"
        print(f"  {tenant.code:<6} {tenant.name:<30} {marker}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
