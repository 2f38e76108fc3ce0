"""
BalanceKeeper -- the only code that changes Account.points.

Responsibility:
    Row locking in a fixed order plus conditional atomic UPDATEs for
    credits and debits.  A balance is never read, changed in Python and
    written back.

Architecture position:
    Kernel > Services.  Called by LedgerEngine inside a UnitOfWork.

Invariants enforced:
    - Lock ordering: accounts are locked in ascending id order, so two
      operations touching the same pair of accounts cannot deadlock.
    - No lost update: ``UPDATE accounts SET points = points - :n
      WHERE id = :id AND points >= :n`` either applies in full or
      matches no row.
    - Non-negative balance unless the caller explicitly passes
      ``allow_negative=True`` (lenient redemption / clawback policy).

Failure modes:
    - AccountNotFoundError: id does not exist.
    - InsufficientPointsError: conditional debit matched no row.
"""

from typing import Iterable

from sqlalchemy import select, update

from loyalty_kernel.exceptions import AccountNotFoundError, InsufficientPointsError
from loyalty_kernel.logging_config import get_logger
from loyalty_kernel.models.account import Account
from loyalty_kernel.services.base import BaseService

logger = get_logger("services.balance")


class BalanceKeeper(BaseService[Account]):
    """
    Atomic balance primitives.

    Usage:
        keeper = BalanceKeeper(session)
        keeper.lock([sender_id, recipient_id])
        keeper.debit(sender_id, 50)
        keeper.credit(recipient_id, 50)
    """

    def lock(self, account_ids: Iterable[int]) -> dict[int, Account]:
        """
        Lock accounts (``SELECT ... FOR UPDATE``) in ascending id order.

        Returns freshly loaded rows keyed by id.  On SQLite the lock is the
        database-wide write lock taken by BEGIN IMMEDIATE.
        """
        locked: dict[int, Account] = {}
        for account_id in sorted(set(account_ids)):
            account = self.session.get(
                Account,
                account_id,
                with_for_update=True,
                populate_existing=True,
            )
            if account is None:
                raise AccountNotFoundError(account_id)
            locked[account_id] = account
        return locked

    def current(self, account_id: int) -> int:
        """Read the committed-or-own-transaction balance straight from storage."""
        points = self.session.scalar(
            select(Account.points).where(Account.id == account_id)
        )
        if points is None:
            raise AccountNotFoundError(account_id)
        return points

    def credit(self, account_id: int, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"credit amount must be non-negative, got {amount}")
        if amount == 0:
            return
        result = self.session.execute(
            update(Account)
            .where(Account.id == account_id)
            .values(points=Account.points + amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise AccountNotFoundError(account_id)
        logger.debug(
            "balance_credited",
            extra={"target_account": account_id, "amount": amount},
        )

    def debit(self, account_id: int, amount: int, allow_negative: bool = False) -> None:
        if amount < 0:
            raise ValueError(f"debit amount must be non-negative, got {amount}")
        if amount == 0:
            return
        stmt = update(Account).where(Account.id == account_id)
        if not allow_negative:
            stmt = stmt.where(Account.points >= amount)
        result = self.session.execute(
            stmt.values(points=Account.points - amount).execution_options(
                synchronize_session=False
            )
        )
        if result.rowcount == 0:
            available = self.current(account_id)
            raise InsufficientPointsError(account_id, amount, available)
        logger.debug(
            "balance_debited",
            extra={
                "target_account": account_id,
                "amount": amount,
                "allow_negative": allow_negative,
            },
        )

    def apply(self, account_id: int, delta: int, allow_negative: bool = False) -> None:
        """Credit a positive delta, debit a negative one."""
        if delta >= 0:
            self.credit(account_id, delta)
        else:
            self.debit(account_id, -delta, allow_negative=allow_negative)
