"""
Module: loyalty_kernel.models.transaction
Responsibility: ORM persistence for the append-only ledger of point
    movements and the promotions each movement applied.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Rows are never deleted.
    - After insert only three fields may change: ``suspicious`` (either
      direction), ``processed`` (False -> True only) and ``processed_by_id``
      (set together with processed).  Enforced in db/immutability.py for
      ORM writes; the services change them with conditional Core UPDATEs.
    - Effect rule: a row contributes ``awarded - redeemed`` to its account
      iff it is not suspicious and is not a pending redemption.

related_id semantics:
    transfer   -> counterpart account id
    event      -> event id
    adjustment -> referenced transaction id
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from loyalty_kernel.db.base import Base, IdType
from loyalty_kernel.db.types import UTCDateTime, utcnow

if TYPE_CHECKING:
    from loyalty_kernel.models.account import Account


class TransactionKind(str, Enum):
    """Kinds of ledger movements."""

    PURCHASE = "purchase"
    REDEMPTION = "redemption"
    TRANSFER = "transfer"
    ADJUSTMENT = "adjustment"
    EVENT = "event"


class LedgerTransaction(Base):
    """
    One immutable ledger row.

    Contract:
        Net amount is ``awarded - redeemed`` with nulls read as zero.
        Redemptions are created pending (processed=False); every other kind
        has processed=None.
    """

    __tablename__ = "transactions"
    __table_args__ = (
        Index("idx_transaction_account", "account_id"),
        Index("idx_transaction_kind_processed", "kind", "processed"),
        Index("idx_transaction_related", "related_id"),
    )

    kind: Mapped[TransactionKind] = mapped_column(String(20), nullable=False)

    # Owner of the row (whose balance it affects)
    account_id: Mapped[int] = mapped_column(
        IdType,
        ForeignKey("accounts.id"),
        nullable=False,
    )

    # Actor who created the row
    created_by_id: Mapped[int] = mapped_column(
        IdType,
        ForeignKey("accounts.id"),
        nullable=False,
    )

    awarded: Mapped[int | None] = mapped_column(Integer, nullable=True)

    redeemed: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Currency spent (purchases only)
    spent: Mapped[Decimal | None] = mapped_column(nullable=True)

    related_id: Mapped[int | None] = mapped_column(IdType, nullable=True)

    remark: Mapped[str] = mapped_column(String(4000), default="", nullable=False)

    suspicious: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # None for non-redemptions
    processed: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    processed_by_id: Mapped[int | None] = mapped_column(
        IdType,
        ForeignKey("accounts.id"),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utcnow,
        nullable=False,
    )

    account: Mapped["Account"] = relationship(foreign_keys=[account_id])

    promotion_links: Mapped[list["TransactionPromotion"]] = relationship(
        order_by="TransactionPromotion.position",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<LedgerTransaction {self.id}: {self.kind} account={self.account_id}>"

    @property
    def net_amount(self) -> int:
        return (self.awarded or 0) - (self.redeemed or 0)

    @property
    def is_pending_redemption(self) -> bool:
        return self.kind == TransactionKind.REDEMPTION and not self.processed

    @property
    def effect(self) -> int:
        """Points this row currently contributes to its account balance."""
        if self.suspicious or self.is_pending_redemption:
            return 0
        return self.net_amount

    @property
    def promotion_ids(self) -> tuple[int, ...]:
        return tuple(link.promotion_id for link in self.promotion_links)


class TransactionPromotion(Base):
    """Ordered promotion ids applied by a transaction. Immutable."""

    __tablename__ = "transaction_promotions"
    __table_args__ = (
        UniqueConstraint(
            "transaction_id", "promotion_id", name="uq_transaction_promotion"
        ),
    )

    transaction_id: Mapped[int] = mapped_column(
        IdType,
        ForeignKey("transactions.id"),
        nullable=False,
    )

    promotion_id: Mapped[int] = mapped_column(
        IdType,
        ForeignKey("promotions.id"),
        nullable=False,
    )

    position: Mapped[int] = mapped_column(Integer, nullable=False)
