"""
Module: loyalty_kernel.db.unit_of_work
Responsibility: The single transaction boundary for ledger operations.
    Runs a callable so that every balance mutation and every row it writes
    persist together or not at all.
Architecture position: Kernel > DB.  Used by LedgerEngine and the other
    write-side entry points.  Services underneath only flush.

Invariants enforced:
    - auto_commit=True: commit on success, rollback on any failure.
    - auto_commit=False: the callable runs inside a SAVEPOINT that is
      released (flushed) on success and rolled back on failure; the
      caller's outer transaction decides the final commit.
    - LoyaltyKernelError subclasses propagate unchanged.  SQLAlchemyError
      is converted to StorageFailureError.  Nothing is retried.

Failure modes:
    - StorageFailureError when the database rejects the unit (lock timeout,
      serialization failure, lost connection).  Safe to retry the call.
"""

import time
from typing import Any, Callable, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from loyalty_kernel.exceptions import LoyaltyKernelError, StorageFailureError
from loyalty_kernel.logging_config import get_logger

logger = get_logger("db.unit_of_work")

T = TypeVar("T")


class UnitOfWork:
    """
    Commit-or-rollback wrapper around one ledger operation.

    Usage:
        uow = UnitOfWork(session)
        record = uow.run_atomically("transfer", lambda: _do_transfer(...))
    """

    def __init__(self, session: Session, auto_commit: bool = True):
        self._session = session
        self._auto_commit = auto_commit

    @property
    def auto_commit(self) -> bool:
        return self._auto_commit

    def run_atomically(
        self,
        operation: str,
        fn: Callable[[], T],
        **log_fields: Any,
    ) -> T:
        """
        Execute ``fn`` as one atomic unit.

        Logs ``<operation>_started`` and then exactly one of
        ``<operation>_completed`` / ``_rejected`` (kernel error) /
        ``_failed`` (storage or unexpected error), each with duration_ms.
        """
        logger.info(f"{operation}_started", extra=log_fields)
        t0 = time.monotonic()
        try:
            if self._auto_commit:
                result = fn()
                self._session.commit()
            else:
                with self._session.begin_nested():
                    result = fn()
                self._session.flush()
        except LoyaltyKernelError as exc:
            self._rollback()
            logger.warning(
                f"{operation}_rejected",
                extra={
                    "duration_ms": _elapsed_ms(t0),
                    "error_code": exc.code,
                    "reason": str(exc),
                },
                exc_info=exc,
            )
            raise
        except SQLAlchemyError as exc:
            self._rollback()
            logger.error(
                f"{operation}_failed",
                extra={"duration_ms": _elapsed_ms(t0)},
                exc_info=True,
            )
            raise StorageFailureError(operation, type(exc).__name__) from exc
        except Exception:
            self._rollback()
            logger.error(
                f"{operation}_failed",
                extra={"duration_ms": _elapsed_ms(t0)},
                exc_info=True,
            )
            raise

        logger.info(f"{operation}_completed", extra={"duration_ms": _elapsed_ms(t0)})
        return result

    def _rollback(self) -> None:
        # The SAVEPOINT context manager already rolled back in flush mode.
        if self._auto_commit:
            self._session.rollback()


def _elapsed_ms(t0: float) -> float:
    return round((time.monotonic() - t0) * 1000, 2)
