"""Pure domain layer: clock, points arithmetic and DTOs."""

from loyalty_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from loyalty_kernel.domain.points import (
    PromotionTerms,
    PurchaseAward,
    base_award,
    compute_purchase_award,
    effect_of,
    floor_points,
    is_active,
    meets_minimum,
    promotion_bonus,
)
from loyalty_kernel.domain.policy import LedgerPolicy, PolicyMode

__all__ = [
    "LedgerPolicy",
    "PolicyMode",
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "PromotionTerms",
    "PurchaseAward",
    "base_award",
    "compute_purchase_award",
    "effect_of",
    "floor_points",
    "is_active",
    "meets_minimum",
    "promotion_bonus",
]
