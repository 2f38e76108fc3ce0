#!/usr/bin/env python3
"""
Create (or recreate) the loyalty ledger schema.

Uses the active configuration (defaults.yaml, $LOYALTY_CONFIG,
$LOYALTY_DATABASE_URL) unless --db-url is given.

Usage:
  python3 scripts/init_db.py [--db-url URL] [--drop]
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Create the loyalty ledger tables")
    p.add_argument("--db-url", default=None, help="Database URL (default: from config)")
    p.add_argument(
        "--drop",
        action="store_true",
        help="Drop existing tables first (destroys all data)",
    )
    return p.parse_args()


def main() -> int:
    args = _parse_args()

    from loyalty_config import get_active_config
    from loyalty_kernel.db.engine import create_tables, drop_tables, init_engine_from_url
    from loyalty_kernel.logging_config import configure_logging

    config = get_active_config()
    url = args.db_url or config.database.url
    configure_logging(level=config.logging.level)
    engine = init_engine_from_url(url, echo=config.database.echo)

    if args.drop:
        print("  Dropping tables...")
        drop_tables(engine)
    print("  Creating tables...")
    create_tables(engine)
    print(f"  Schema ready ({engine.dialect.name}).")
    return 0


if __name__ == "__main__":
    sys.exit(main())
