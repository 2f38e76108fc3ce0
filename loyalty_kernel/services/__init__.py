"""Services for the loyalty kernel (write side)."""

from loyalty_kernel.services.account_service import AccountService
from loyalty_kernel.services.balance_keeper import BalanceKeeper
from loyalty_kernel.services.event_pool import EventPointPool
from loyalty_kernel.services.event_service import EventService
from loyalty_kernel.services.ledger_engine import LedgerEngine
from loyalty_kernel.services.promotion_catalog import PromotionCatalog

__all__ = [
    "AccountService",
    "BalanceKeeper",
    "EventPointPool",
    "EventService",
    "LedgerEngine",
    "PromotionCatalog",
]
