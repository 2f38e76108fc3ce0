"""
Module: loyalty_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.
    Provides the integer primary key convention, the type annotation map
    for consistent column types, and the TimestampedBase mixin.
Architecture position: Kernel > DB.  This is the lowest-level import target
    within the kernel.  ALL model files import from here.  This module MUST
    NOT import from models/, services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - Integer primary keys: account, transaction, event and promotion ids
      are sequential integers; ascending-id lock ordering relies on it.
    - Decimal precision: Decimal maps to Numeric(12, 2).  NEVER use float
      for currency amounts.
    - Timestamps: datetime maps to UTCDateTime (tz-aware UTC in Python).
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar

from sqlalchemy import BigInteger, Integer, Numeric
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from loyalty_kernel.db.types import Rate, UTCDateTime, utcnow

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
IdType = BigInteger().with_variant(Integer(), "sqlite")


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - id is an autoincrementing integer.
        - Decimal maps to Numeric(12, 2); Rate maps to Numeric(12, 6).
        - datetime maps to UTCDateTime.
        - int maps to BigInteger (Integer on SQLite).
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(12, 2),
        Rate: Numeric(12, 6),
        datetime: UTCDateTime(),
        int: IdType,
    }

    id: Mapped[int] = mapped_column(
        IdType,
        primary_key=True,
        autoincrement=True,
    )


class TimestampedBase(Base):
    """
    Abstract base with creation and modification timestamps.

    created_at is supplied by the writing service (from its Clock) and
    falls back to wall time; updated_at follows every ORM UPDATE.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utcnow,
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )
