"""
LedgerPolicy -- tunable ledger rules.

The kernel never reads configuration itself; loyalty_config builds a
LedgerPolicy and callers inject it into LedgerEngine.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum


class PolicyMode(str, Enum):
    """Whether a debit that cannot be covered is applied or refused."""

    LENIENT = "lenient"
    STRICT = "strict"


@dataclass(frozen=True)
class LedgerPolicy:
    """
    Guarantees:
        - base_rate > 0 and max_purchase_spent > 0 (checked at construction).

    redemption_processing:
        LENIENT applies the debit even when the balance no longer covers it.
        STRICT refuses with InsufficientPointsError.
    suspicious_clawback:
        Same choice for the debit caused by flagging a credited row suspicious.
    """

    base_rate: Decimal = Decimal("4")
    max_purchase_spent: Decimal = Decimal("100000")
    redemption_processing: PolicyMode = PolicyMode.LENIENT
    suspicious_clawback: PolicyMode = PolicyMode.LENIENT

    def __post_init__(self) -> None:
        if Decimal(self.base_rate) <= 0:
            raise ValueError(f"base_rate must be positive, got {self.base_rate}")
        if Decimal(self.max_purchase_spent) <= 0:
            raise ValueError(
                f"max_purchase_spent must be positive, got {self.max_purchase_spent}"
            )

    @property
    def strict_redemption(self) -> bool:
        return self.redemption_processing == PolicyMode.STRICT

    @property
    def strict_clawback(self) -> bool:
        return self.suspicious_clawback == PolicyMode.STRICT
