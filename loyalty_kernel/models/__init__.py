"""ORM models for the loyalty kernel."""

from loyalty_kernel.models.account import Account, Role
from loyalty_kernel.models.event import Event, EventGuest, EventOrganizer
from loyalty_kernel.models.promotion import Promotion, PromotionType, PromotionUse
from loyalty_kernel.models.transaction import (
    LedgerTransaction,
    TransactionKind,
    TransactionPromotion,
)

__all__ = [
    "Account",
    "Role",
    "Event",
    "EventGuest",
    "EventOrganizer",
    "LedgerTransaction",
    "Promotion",
    "PromotionType",
    "PromotionUse",
    "TransactionKind",
    "TransactionPromotion",
]
