"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every write-side service.  Services use ``session.flush()`` -- never
    ``session.commit()``.

Architecture position:
    Kernel > Services.  LedgerEngine (through UnitOfWork) and the
    maintenance entry points own the transaction boundary; everything
    underneath them extends this class.

Invariants enforced:
    - Services flush within the caller's transaction and never commit or
      roll back themselves.  Breaking this would let half of a transfer
      or mass award become visible.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from loyalty_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide display-shaped reads -- those belong in
          ``loyalty_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
