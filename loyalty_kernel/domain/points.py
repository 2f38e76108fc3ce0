"""
Points arithmetic -- pure functions for purchase awards and promotion bonuses.

Responsibility:
    Everything the ledger computes from amounts and promotion terms, with
    no database access.  PromotionCatalog and LedgerEngine call into here.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - All awards are floored to whole points (never rounded up).
    - Currency arithmetic is Decimal end to end; floats are converted
      through ``str`` so 19.99 stays 19.99.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_FLOOR, Decimal, InvalidOperation
from typing import Iterable


@dataclass(frozen=True)
class PromotionTerms:
    """The parts of a promotion that affect a purchase award."""

    promotion_id: int
    start_time: datetime
    end_time: datetime
    min_spending: Decimal | None = None
    rate: Decimal | None = None
    points: int | None = None


@dataclass(frozen=True)
class PurchaseAward:
    """Breakdown of the points a purchase earns."""

    base: int
    bonuses: tuple[tuple[int, int], ...]

    @property
    def total(self) -> int:
        return self.base + sum(bonus for _, bonus in self.bonuses)


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    """Coerce an amount to Decimal. Raises ValueError if it is not a number."""
    if isinstance(value, bool):
        raise ValueError(f"Not an amount: {value!r}")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        value = str(value)
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"Not an amount: {value!r}") from exc


def floor_points(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


def base_award(spent: Decimal, base_rate: Decimal | int) -> int:
    """``floor(spent * base_rate)``."""
    return floor_points(spent * Decimal(base_rate))


def promotion_bonus(
    spent: Decimal,
    rate: Decimal | None,
    points: int | None,
) -> int:
    """``floor(spent * rate * 100)`` if rate is set, plus the flat points."""
    bonus = 0
    if rate is not None:
        bonus += floor_points(spent * Decimal(rate) * 100)
    if points is not None:
        bonus += int(points)
    return bonus


def meets_minimum(spent: Decimal, min_spending: Decimal | None) -> bool:
    return min_spending is None or spent >= Decimal(min_spending)


def is_active(start_time: datetime, end_time: datetime, now: datetime) -> bool:
    """Window check, inclusive at both ends."""
    return start_time <= now <= end_time


def compute_purchase_award(
    spent: Decimal,
    base_rate: Decimal | int,
    promotions: Iterable[PromotionTerms],
) -> PurchaseAward:
    """
    Base award plus one bonus per promotion.

    The caller has already filtered ``promotions`` to those that apply
    (active, minimum met, not yet used); order is preserved in ``bonuses``.
    """
    return PurchaseAward(
        base=base_award(spent, base_rate),
        bonuses=tuple(
            (terms.promotion_id, promotion_bonus(spent, terms.rate, terms.points))
            for terms in promotions
        ),
    )


def effect_of(
    awarded: int | None,
    redeemed: int | None,
    suspicious: bool,
    pending_redemption: bool,
) -> int:
    """Points a ledger row contributes to its account balance."""
    if suspicious or pending_redemption:
        return 0
    return (awarded or 0) - (redeemed or 0)
