#!/usr/bin/env python3
"""
Seed the database with a small, realistic loyalty ledger.

Drops all tables, recreates them, registers staff and customers, and runs
purchases, a transfer, a redemption lifecycle, an adjustment and an event
award through LedgerEngine.  Finishes with a reconciliation check.

Usage:
  python3 scripts/seed_data.py [--db-url URL]
"""

import argparse
import sys
from datetime import timedelta
from decimal import Decimal
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

STAFF = [
    ("super001", "Sam Super", "superuser"),
    ("manag001", "Morgan Manager", "manager"),
    ("cashr001", "Casey Cashier", "cashier"),
]
CUSTOMERS = [
    ("alice001", "Alice"),
    ("bobby001", "Bobby"),
    ("carol001", "Carol"),
]


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Seed the loyalty ledger with demo data")
    p.add_argument("--db-url", default=None, help="Database URL (default: from config)")
    return p.parse_args()


def _email(utorid: str) -> str:
    return f"{utorid}@mail.utoronto.ca"


def main() -> int:
    args = _parse_args()

    from loyalty_config import get_active_config
    from loyalty_config.bridges import build_ledger_engine
    from loyalty_kernel.db.engine import (
        create_tables,
        drop_tables,
        get_session,
        init_engine_from_url,
    )
    from loyalty_kernel.db.immutability import register_immutability_listeners
    from loyalty_kernel.domain.clock import DeterministicClock, SystemClock
    from loyalty_kernel.logging_config import configure_logging
    from loyalty_kernel.selectors.ledger_selector import LedgerSelector
    from loyalty_kernel.services.account_service import AccountService
    from loyalty_kernel.services.event_service import EventService
    from loyalty_kernel.services.promotion_catalog import PromotionCatalog

    config = get_active_config()
    configure_logging(level="WARNING")
    engine = init_engine_from_url(args.db_url or config.database.url)
    register_immutability_listeners()

    print("  Recreating tables...")
    drop_tables(engine)
    create_tables(engine)

    # Pinned so promotion windows that start "now" are valid and active.
    clock = DeterministicClock(SystemClock().now())
    session = get_session()
    try:
        accounts = AccountService(session, clock)
        ids = {}
        for utorid, name, role in STAFF:
            ids[utorid] = accounts.register(utorid, name, _email(utorid), role=role, verified=True).id
        for utorid, name in CUSTOMERS:
            ids[utorid] = accounts.register(utorid, name, _email(utorid), verified=True).id

        promotions = PromotionCatalog(session, clock)
        now = clock.now()
        promotions.create(
            "Double Tuesday", "Extra points on every dollar", "automatic",
            now, now + timedelta(days=30), rate=Decimal("1"),
        )
        welcome = promotions.create(
            "Welcome Bonus", "One-time bonus on a $10+ purchase", "onetime",
            now, now + timedelta(days=30), min_spending=Decimal("10"), points=50,
        )

        events = EventService(session, clock)
        event = events.create_event(
            "Study Night", "Snacks and quiet rooms", "Robarts Library",
            now + timedelta(days=1), now + timedelta(days=1, hours=4), points=300, capacity=50,
        )
        events.publish(event.id)
        events.add_organizer(event.id, "manag001")
        for utorid, _ in CUSTOMERS:
            events.add_guest(event.id, utorid)
        session.commit()

        ledger = build_ledger_engine(session, config, clock=clock)
        cashier, manager = ids["cashr001"], ids["manag001"]

        first = ledger.purchase(cashier, "alice001", Decimal("25.00"), [welcome.id])
        ledger.purchase(cashier, "bobby001", Decimal("12.50"))
        ledger.purchase(cashier, "carol001", Decimal("40.00"))
        ledger.transfer(ids["alice001"], "bobby001", 30, remark="Lunch")
        pending = ledger.request_redemption(ids["bobby001"], 20)
        ledger.process_redemption(cashier, pending.id)
        ledger.adjust(manager, "alice001", -5, first.record.id, remark="Price correction")
        ledger.award_event(manager, event.id, 25, remark="Thanks for coming")

        selector = LedgerSelector(session)
        problems = selector.reconcile() + selector.event_pool_discrepancies()
        for utorid in ids:
            info = accounts.get_by_utorid(utorid)
            print(f"  {utorid:<10} {info.role.value:<10} {info.points:>6} pts")
        if problems:
            print(f"  RECONCILIATION FAILED: {problems}", file=sys.stderr)
            return 1
        print("  Seed complete; ledger reconciles.")
        return 0
    finally:
        session.close()


if __name__ == "__main__":
    sys.exit(main())
