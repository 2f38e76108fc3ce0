"""
DTOs -- immutable data transfer objects returned by services and selectors.

Responsibility:
    Frozen dataclasses that cross the kernel boundary.  Callers (the HTTP
    layer, scripts, tests) never receive ORM rows.

Architecture position:
    Kernel > Domain -- free of database access.  from_model() class methods
    are boundary converters invoked from the service and selector layers.

Invariants enforced:
    - TransactionRecord.amount is ``awarded - redeemed`` with nulls as zero.
    - PurchaseResult.credited is 0 when the cashier was suspicious, while
      record.awarded keeps the computed amount.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from loyalty_kernel.models.account import Role
from loyalty_kernel.models.promotion import PromotionType
from loyalty_kernel.models.transaction import TransactionKind

if TYPE_CHECKING:
    from loyalty_kernel.models.account import Account as AccountModel
    from loyalty_kernel.models.event import Event as EventModel
    from loyalty_kernel.models.promotion import Promotion as PromotionModel
    from loyalty_kernel.models.transaction import (
        LedgerTransaction as LedgerTransactionModel,
    )


@dataclass(frozen=True)
class TransactionRecord:
    """One ledger row as seen by callers."""

    id: int
    kind: TransactionKind
    account_id: int
    utorid: str
    created_by_id: int
    awarded: int | None
    redeemed: int | None
    spent: Decimal | None
    related_id: int | None
    promotion_ids: tuple[int, ...]
    remark: str
    suspicious: bool
    processed: bool | None
    processed_by_id: int | None
    created_at: datetime

    @property
    def amount(self) -> int:
        return (self.awarded or 0) - (self.redeemed or 0)

    @classmethod
    def from_model(cls, model: LedgerTransactionModel) -> TransactionRecord:
        return cls(
            id=model.id,
            kind=TransactionKind(model.kind),
            account_id=model.account_id,
            utorid=model.account.utorid,
            created_by_id=model.created_by_id,
            awarded=model.awarded,
            redeemed=model.redeemed,
            spent=model.spent,
            related_id=model.related_id,
            promotion_ids=model.promotion_ids,
            remark=model.remark,
            suspicious=model.suspicious,
            processed=model.processed,
            processed_by_id=model.processed_by_id,
            created_at=model.created_at,
        )


@dataclass(frozen=True)
class PurchaseResult:
    record: TransactionRecord
    credited: int


@dataclass(frozen=True)
class TransferResult:
    """Both sides of a transfer; each row's related_id names the other account."""

    sender_record: TransactionRecord
    recipient_record: TransactionRecord

    @property
    def amount(self) -> int:
        return self.recipient_record.awarded or 0


@dataclass(frozen=True)
class EventAwardResult:
    event_id: int
    records: tuple[TransactionRecord, ...]
    points_per_recipient: int

    @property
    def total(self) -> int:
        return self.points_per_recipient * len(self.records)


@dataclass(frozen=True)
class SuspiciousFlagResult:
    """Outcome of a suspicious-flag set; balance_delta is 0 for a no-op."""

    record: TransactionRecord
    balance_delta: int
    changed: bool


@dataclass(frozen=True)
class AccountInfo:
    id: int
    utorid: str
    name: str
    email: str
    role: Role
    points: int
    verified: bool
    suspicious: bool
    created_at: datetime

    @classmethod
    def from_model(cls, model: AccountModel) -> AccountInfo:
        return cls(
            id=model.id,
            utorid=model.utorid,
            name=model.name,
            email=model.email,
            role=Role(model.role),
            points=model.points,
            verified=model.verified,
            suspicious=model.suspicious,
            created_at=model.created_at,
        )


@dataclass(frozen=True)
class PromotionInfo:
    id: int
    name: str
    description: str
    type: PromotionType
    start_time: datetime
    end_time: datetime
    min_spending: Decimal | None
    rate: Decimal | None
    points: int | None

    @classmethod
    def from_model(cls, model: PromotionModel) -> PromotionInfo:
        return cls(
            id=model.id,
            name=model.name,
            description=model.description,
            type=PromotionType(model.type),
            start_time=model.start_time,
            end_time=model.end_time,
            min_spending=model.min_spending,
            rate=model.rate,
            points=model.points,
        )


@dataclass(frozen=True)
class EventInfo:
    id: int
    name: str
    description: str
    location: str
    start_time: datetime
    end_time: datetime
    capacity: int | None
    points: int
    points_remain: int
    points_awarded: int
    published: bool

    @classmethod
    def from_model(cls, model: EventModel) -> EventInfo:
        return cls(
            id=model.id,
            name=model.name,
            description=model.description,
            location=model.location,
            start_time=model.start_time,
            end_time=model.end_time,
            capacity=model.capacity,
            points=model.points,
            points_remain=model.points_remain,
            points_awarded=model.points_awarded,
            published=model.published,
        )


@dataclass(frozen=True)
class BalanceDiscrepancy:
    """Stored balance that disagrees with the sum of effective rows."""

    account_id: int
    utorid: str
    stored_points: int
    effective_points: int

    @property
    def difference(self) -> int:
        return self.stored_points - self.effective_points


@dataclass(frozen=True)
class EventPoolDiscrepancy:
    """Event whose pool counters do not add up, or disagree with its rows."""

    event_id: int
    points: int
    points_remain: int
    points_awarded: int
    awarded_by_rows: int
