"""
Config -> Kernel bridges.

Functions that hand LoyaltyConfig values to kernel entry points.  They
live in loyalty_config (the producer) because the kernel must NEVER
import loyalty_config.

Usage:
    from loyalty_config import get_active_config
    from loyalty_config.bridges import build_ledger_engine, initialize_kernel

    config = get_active_config()
    initialize_kernel(config, create_schema=True)
    with session_scope() as session:
        engine = build_ledger_engine(session, config)
"""

from __future__ import annotations

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from loyalty_config.schema import LoyaltyConfig
from loyalty_kernel.db.engine import create_tables, init_engine_from_url
from loyalty_kernel.db.immutability import register_immutability_listeners
from loyalty_kernel.domain.clock import Clock
from loyalty_kernel.logging_config import configure_logging
from loyalty_kernel.services.ledger_engine import LedgerEngine


def initialize_kernel(config: LoyaltyConfig, create_schema: bool = False) -> Engine:
    """
    Configure logging, the module-level engine and the append-only listeners.

    Args:
        config: Active configuration.
        create_schema: Also run create_tables() (development / scripts).
    """
    configure_logging(level=config.logging.level)
    db = config.database
    engine = init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        pool_recycle=db.pool_recycle,
    )
    register_immutability_listeners()
    if create_schema:
        create_tables(engine)
    return engine


def build_ledger_engine(
    session: Session,
    config: LoyaltyConfig,
    clock: Clock | None = None,
    auto_commit: bool = True,
) -> LedgerEngine:
    """LedgerEngine bound to ``session`` with the configured ledger policy."""
    return LedgerEngine(session, clock=clock, policy=config.ledger, auto_commit=auto_commit)
