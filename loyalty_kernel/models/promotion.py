"""
Module: loyalty_kernel.models.promotion
Responsibility: ORM persistence for time-boxed promotions and per-account
    consumption of one-time promotions.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - PromotionUse is unique per (account_id, promotion_id); the unique
      constraint is the exactly-once guard for one-time promotions.
    - PromotionUse.used never goes True -> False and rows are never
      deleted (db/immutability.py).
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from loyalty_kernel.db.base import Base, IdType
from loyalty_kernel.db.types import Rate


class PromotionType(str, Enum):
    """How a promotion is applied to purchases."""

    AUTOMATIC = "automatic"
    ONE_TIME = "onetime"


class Promotion(Base):
    """
    A promotion active between start_time and end_time (inclusive).

    Bonus for a qualifying purchase is ``floor(spent * rate * 100)`` when rate
    is set plus ``points`` when points is set.
    """

    __tablename__ = "promotions"
    __table_args__ = (
        Index("idx_promotion_type_window", "type", "start_time", "end_time"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    description: Mapped[str] = mapped_column(String(4000), default="", nullable=False)

    type: Mapped[PromotionType] = mapped_column(String(20), nullable=False)

    start_time: Mapped[datetime] = mapped_column(nullable=False)

    end_time: Mapped[datetime] = mapped_column(nullable=False)

    min_spending: Mapped[Decimal | None] = mapped_column(nullable=True)

    rate: Mapped[Rate | None] = mapped_column(nullable=True)

    points: Mapped[int | None] = mapped_column(Integer, nullable=True)

    def __repr__(self) -> str:
        return f"<Promotion {self.id}: {self.name} ({self.type})>"

    @property
    def is_one_time(self) -> bool:
        return self.type == PromotionType.ONE_TIME


class PromotionUse(Base):
    """Record that an account consumed a one-time promotion."""

    __tablename__ = "promotion_uses"
    __table_args__ = (
        UniqueConstraint("account_id", "promotion_id", name="uq_promotion_use"),
    )

    account_id: Mapped[int] = mapped_column(
        IdType,
        ForeignKey("accounts.id"),
        nullable=False,
    )

    promotion_id: Mapped[int] = mapped_column(
        IdType,
        ForeignKey("promotions.id"),
        nullable=False,
    )

    used: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
