#!/usr/bin/env python3
"""
Create a verified superuser account.

Usage:
  python3 scripts/create_superuser.py UTORID EMAIL [--name NAME] [--db-url URL]
"""

import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Create a superuser account")
    p.add_argument("utorid", help="7-8 alphanumeric characters")
    p.add_argument("email", help="@mail.utoronto.ca address")
    p.add_argument("--name", default=None, help="Display name (default: utorid)")
    p.add_argument("--db-url", default=None, help="Database URL (default: from config)")
    return p.parse_args()


def main() -> int:
    args = _parse_args()

    from loyalty_config import DATABASE_URL_ENV, get_active_config
    from loyalty_config.bridges import initialize_kernel
    from loyalty_kernel.db.engine import session_scope
    from loyalty_kernel.exceptions import LoyaltyKernelError
    from loyalty_kernel.models.account import Role
    from loyalty_kernel.services.account_service import AccountService

    if args.db_url:
        os.environ[DATABASE_URL_ENV] = args.db_url
    config = get_active_config()
    initialize_kernel(config, create_schema=True)

    try:
        with session_scope() as session:
            account = AccountService(session).register(
                args.utorid,
                args.name or args.utorid,
                args.email,
                role=Role.SUPERUSER,
                verified=True,
            )
    except LoyaltyKernelError as exc:
        print(f"  ERROR [{exc.code}]: {exc}", file=sys.stderr)
        return 1

    print(f"  Superuser {account.utorid} created (id={account.id}).")
    return 0


if __name__ == "__main__":
    sys.exit(main())
