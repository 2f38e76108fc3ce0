"""
Module: loyalty_kernel.selectors.ledger_selector
Responsibility: Read-only ledger queries: transaction lookup, pending
    redemptions, effective balances, and reconciliation of stored
    balances and event pools against the transaction rows.
Architecture position: Kernel > Selectors.

Invariants checked:
    - Balance invariant: Account.points equals the sum of
      ``awarded - redeemed`` over the account's rows that are neither
      suspicious nor pending redemptions.
    - Pool conservation: points_remain + points_awarded == points, and
      points_awarded equals the sum of the event's award rows.

Failure modes:
    - Reconciliation never raises on a mismatch; it returns discrepancy
      DTOs.  An empty list means the ledger is consistent.
"""

from sqlalchemy import case, func, or_, select
from sqlalchemy.orm import Session

from loyalty_kernel.domain.dtos import (
    BalanceDiscrepancy,
    EventPoolDiscrepancy,
    TransactionRecord,
)
from loyalty_kernel.models.account import Account
from loyalty_kernel.models.event import Event
from loyalty_kernel.models.transaction import LedgerTransaction, TransactionKind
from loyalty_kernel.selectors.base import BaseSelector

# A row counts toward its account unless suspicious or a pending redemption
_COUNTS = (LedgerTransaction.suspicious.is_(False)) & or_(
    LedgerTransaction.kind != TransactionKind.REDEMPTION.value,
    LedgerTransaction.processed.is_(True),
)

_EFFECT = case(
    (
        _COUNTS,
        func.coalesce(LedgerTransaction.awarded, 0)
        - func.coalesce(LedgerTransaction.redeemed, 0),
    ),
    else_=0,
)


class LedgerSelector(BaseSelector[LedgerTransaction]):
    """
    Selector for ledger queries.

    Contract:
        Transaction lists are ordered by id ascending (insertion order).
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def get_transaction(self, transaction_id: int) -> TransactionRecord | None:
        row = self.session.get(LedgerTransaction, transaction_id)
        if row is None:
            return None
        return TransactionRecord.from_model(row)

    def transactions_for_account(
        self,
        account_id: int,
        kind: TransactionKind | None = None,
    ) -> list[TransactionRecord]:
        stmt = select(LedgerTransaction).where(LedgerTransaction.account_id == account_id)
        if kind is not None:
            stmt = stmt.where(LedgerTransaction.kind == TransactionKind(kind).value)
        rows = self.session.scalars(stmt.order_by(LedgerTransaction.id))
        return [TransactionRecord.from_model(r) for r in rows]

    def pending_redemptions(self, account_id: int | None = None) -> list[TransactionRecord]:
        stmt = select(LedgerTransaction).where(
            LedgerTransaction.kind == TransactionKind.REDEMPTION.value,
            LedgerTransaction.processed.is_(False),
        )
        if account_id is not None:
            stmt = stmt.where(LedgerTransaction.account_id == account_id)
        rows = self.session.scalars(stmt.order_by(LedgerTransaction.id))
        return [TransactionRecord.from_model(r) for r in rows]

    def effective_balance(self, account_id: int) -> int:
        """Sum of the effects of the account's rows."""
        total = self.session.scalar(
            select(func.coalesce(func.sum(_EFFECT), 0)).where(
                LedgerTransaction.account_id == account_id
            )
        )
        return int(total)

    def reconcile(self) -> list[BalanceDiscrepancy]:
        """Accounts whose stored points differ from their effective balance."""
        effective = (
            select(
                LedgerTransaction.account_id.label("account_id"),
                func.sum(_EFFECT).label("effective"),
            )
            .group_by(LedgerTransaction.account_id)
            .subquery()
        )
        rows = self.session.execute(
            select(
                Account.id,
                Account.utorid,
                Account.points,
                func.coalesce(effective.c.effective, 0),
            )
            .outerjoin(effective, effective.c.account_id == Account.id)
            .order_by(Account.id)
        )
        return [
            BalanceDiscrepancy(
                account_id=account_id,
                utorid=utorid,
                stored_points=stored,
                effective_points=int(computed),
            )
            for account_id, utorid, stored, computed in rows
            if stored != int(computed)
        ]

    def event_pool_discrepancies(self) -> list[EventPoolDiscrepancy]:
        """Events whose counters do not add up or disagree with their award rows."""
        awarded = (
            select(
                LedgerTransaction.related_id.label("event_id"),
                func.sum(func.coalesce(LedgerTransaction.awarded, 0)).label("total"),
            )
            .where(LedgerTransaction.kind == TransactionKind.EVENT.value)
            .group_by(LedgerTransaction.related_id)
            .subquery()
        )
        rows = self.session.execute(
            select(
                Event.id,
                Event.points,
                Event.points_remain,
                Event.points_awarded,
                func.coalesce(awarded.c.total, 0),
            )
            .outerjoin(awarded, awarded.c.event_id == Event.id)
            .order_by(Event.id)
        )
        found = []
        for event_id, points, remain, given, by_rows in rows:
            by_rows = int(by_rows)
            if remain + given != points or given != by_rows or remain < 0:
                found.append(
                    EventPoolDiscrepancy(
                        event_id=event_id,
                        points=points,
                        points_remain=remain,
                        points_awarded=given,
                        awarded_by_rows=by_rows,
                    )
                )
        return found
