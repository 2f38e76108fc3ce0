"""Database layer - engine, base classes, types, unit of work and immutability."""

from loyalty_kernel.db.base import Base, IdType, TimestampedBase
from loyalty_kernel.db.engine import create_tables, get_engine, get_session
from loyalty_kernel.db.types import UTCDateTime, utcnow
from loyalty_kernel.db.unit_of_work import UnitOfWork

__all__ = [
    "get_engine",
    "get_session",
    "create_tables",
    "Base",
    "IdType",
    "TimestampedBase",
    "UTCDateTime",
    "utcnow",
    "UnitOfWork",
]
