"""
Module: loyalty_kernel.models.event
Responsibility: ORM persistence for campus events, their point pools and
    their organizer / guest rosters.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - points_remain + points_awarded == points at all times
      (ck_event_pool_conservation).
    - points_remain >= 0 and points_awarded >= 0.
    - EventOrganizer / EventGuest are unique per (event_id, account_id).
    - An account is never both organizer and guest of one event (enforced
      by EventService).
"""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from loyalty_kernel.db.base import Base, IdType


class Event(Base):
    """
    An event with a budget of points to disburse to its guests.

    points is the budget, points_remain what is still unallocated,
    points_awarded what has been disbursed.
    """

    __tablename__ = "events"
    __table_args__ = (
        CheckConstraint(
            "points_remain + points_awarded = points",
            name="ck_event_pool_conservation",
        ),
        CheckConstraint("points_remain >= 0", name="ck_event_points_remain"),
        CheckConstraint("points_awarded >= 0", name="ck_event_points_awarded"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    description: Mapped[str] = mapped_column(String(4000), default="", nullable=False)

    location: Mapped[str] = mapped_column(String(255), default="", nullable=False)

    start_time: Mapped[datetime] = mapped_column(nullable=False)

    end_time: Mapped[datetime] = mapped_column(nullable=False)

    # None means unlimited
    capacity: Mapped[int | None] = mapped_column(Integer, nullable=True)

    points: Mapped[int] = mapped_column(Integer, nullable=False)

    points_remain: Mapped[int] = mapped_column(Integer, nullable=False)

    points_awarded: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    published: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def __repr__(self) -> str:
        return f"<Event {self.id}: {self.name}>"


class EventOrganizer(Base):
    __tablename__ = "event_organizers"
    __table_args__ = (
        UniqueConstraint("event_id", "account_id", name="uq_event_organizer"),
    )

    event_id: Mapped[int] = mapped_column(
        IdType,
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
    )

    account_id: Mapped[int] = mapped_column(
        IdType,
        ForeignKey("accounts.id"),
        nullable=False,
    )


class EventGuest(Base):
    __tablename__ = "event_guests"
    __table_args__ = (
        UniqueConstraint("event_id", "account_id", name="uq_event_guest"),
    )

    event_id: Mapped[int] = mapped_column(
        IdType,
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
    )

    account_id: Mapped[int] = mapped_column(
        IdType,
        ForeignKey("accounts.id"),
        nullable=False,
    )
