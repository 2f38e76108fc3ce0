"""
Module: loyalty_kernel.db.types
Responsibility: Column types shared by every model.
    Centralizes timestamp normalization and currency precision so that
    models and services use identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - Timestamps are stored as naive UTC and always come back as tz-aware
      UTC datetimes, on PostgreSQL and SQLite alike, so window comparisons
      (start_time <= now <= end_time) behave identically on both backends.
    - Currency amounts (purchase spend, minimum spend) use Numeric(12, 2);
      promotion rates use Numeric(12, 6).  No floats in persisted values.

Failure modes:
    - ValueError on a naive datetime passed to a UTCDateTime column.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Annotated

from sqlalchemy import DateTime, Numeric
from sqlalchemy.types import TypeDecorator


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime stored as naive UTC.

    Contract:
        process_bind_param: aware datetime -> naive UTC on INSERT/UPDATE.
        process_result_value: naive UTC -> aware UTC on SELECT.
    """

    impl = DateTime(timezone=False)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime not accepted: {value!r}")
        return value.astimezone(UTC).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


# Promotion rate multiplier
Rate = Annotated[Decimal, Numeric(12, 6)]


def utcnow() -> datetime:
    """Current time as a tz-aware UTC datetime."""
    return datetime.now(UTC)
