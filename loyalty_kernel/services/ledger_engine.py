"""
LedgerEngine -- the single write path for point balances.

Responsibility:
    Validates and executes the five transaction kinds (purchase,
    redemption, transfer, adjustment, event award) plus redemption
    processing and the suspicious-flag toggle.  Every operation pairs its
    balance mutation(s) with append-only transaction rows and runs as one
    atomic unit through UnitOfWork.

Architecture position:
    Kernel > Services -- top of the write side.  Composes AccountService,
    BalanceKeeper, PromotionCatalog, EventPointPool and EventService.
    Owns the transaction boundary (auto_commit=True) or defers it to the
    caller (auto_commit=False, one SAVEPOINT per operation).

Invariants enforced:
    - Balance invariant: an account's points equal the sum of
      ``awarded - redeemed`` over its rows that are neither suspicious nor
      pending redemptions.  Every operation moves the balance by exactly
      the change in that sum.
    - All precondition checks run before the first mutation; the first
      mutation of each operation is itself conditional (debit, pool
      reservation, compare-and-set), so a failed check never leaves a
      partial write behind.
    - Exactly-once transitions: ``processed`` false -> true and the
      ``suspicious`` flip are compare-and-set UPDATEs; a retried call
      finds the state already changed and applies no second delta.
    - Lock ordering: multi-account operations lock accounts in ascending
      id order.

Failure modes:
    - Validation / permission / not-found / business-rule errors from
      loyalty_kernel.exceptions, raised before anything is persisted.
    - StorageFailureError when the database rejects the unit.

Data flow:
    caller -> LedgerEngine.<op> -> UnitOfWork.run_atomically
           -> checks -> conditional mutation(s) -> row append(s) -> DTO
"""

from decimal import Decimal
from typing import Sequence
from uuid import uuid4

from sqlalchemy import update
from sqlalchemy.orm import Session

from loyalty_kernel.db.unit_of_work import UnitOfWork
from loyalty_kernel.domain.clock import Clock, SystemClock
from loyalty_kernel.domain.dtos import (
    EventAwardResult,
    PurchaseResult,
    SuspiciousFlagResult,
    TransactionRecord,
    TransferResult,
)
from loyalty_kernel.domain.points import compute_purchase_award, effect_of, to_decimal
from loyalty_kernel.domain.policy import LedgerPolicy
from loyalty_kernel.exceptions import (
    DuplicatePromotionIdError,
    InsufficientPointsError,
    InvalidAmountError,
    InvalidFieldError,
    NoGuestsError,
    NotAGuestError,
    NotARedemptionError,
    PermissionDeniedError,
    RedemptionAlreadyProcessedError,
    RelatedTransactionMismatchError,
    SelfTransferError,
    TransactionNotFoundError,
    UnverifiedSenderError,
)
from loyalty_kernel.logging_config import LogContext, get_logger
from loyalty_kernel.models.transaction import (
    LedgerTransaction,
    TransactionKind,
    TransactionPromotion,
)
from loyalty_kernel.services.account_service import AccountService
from loyalty_kernel.services.authority import require_clearance, required_role
from loyalty_kernel.services.balance_keeper import BalanceKeeper
from loyalty_kernel.services.event_pool import EventPointPool
from loyalty_kernel.services.event_service import EventService
from loyalty_kernel.services.promotion_catalog import PromotionCatalog

logger = get_logger("services.ledger_engine")

_CENT = Decimal("0.01")


def _positive_int(field: str, value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidAmountError(field, value, "must be a positive integer")
    return value


def _remark(value: object) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise InvalidFieldError("remark", value, "must be a string")
    return value


class LedgerEngine:
    """
    Entry point for every balance-changing operation.

    Contract:
        Each public method is atomic and returns frozen DTOs, never ORM rows.

    Usage:
        engine = LedgerEngine(session, clock=SystemClock(), policy=config.ledger)
        result = engine.purchase(cashier_id, "alice001", Decimal("20.00"))
        result.credited   # 80 with the default base rate
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: LedgerPolicy | None = None,
        auto_commit: bool = True,
    ):
        """
        Args:
            session: SQLAlchemy session.
            clock: Clock for promotion windows and row timestamps.
                Defaults to SystemClock.
            policy: Ledger rules.  Defaults to LedgerPolicy().
            auto_commit: If True (default), commits on success and rolls
                back on failure.  If False, the caller owns the outer
                transaction and each operation runs in a SAVEPOINT.
        """
        self._session = session
        self._clock = clock or SystemClock()
        self._policy = policy or LedgerPolicy()
        self._uow = UnitOfWork(session, auto_commit)

        self._accounts = AccountService(session, self._clock)
        self._balances = BalanceKeeper(session)
        self._promotions = PromotionCatalog(session, self._clock)
        self._pool = EventPointPool(session)
        self._events = EventService(session, self._clock)

    @property
    def policy(self) -> LedgerPolicy:
        return self._policy

    # ------------------------------------------------------------------
    # Purchase
    # ------------------------------------------------------------------

    def purchase(
        self,
        actor_id: int,
        customer: int | str,
        spent: Decimal | int | float | str,
        promotion_ids: Sequence[int] = (),
        remark: str = "",
    ) -> PurchaseResult:
        """
        Ring up a purchase for ``customer`` (id or utorid).

        Earned = floor(spent * base_rate) + bonuses of active automatic
        promotions + bonuses of the supplied one-time promotions.  A
        suspicious cashier's purchase records the earned points but
        credits nothing.
        """
        with LogContext.bind(
            correlation_id=str(uuid4()), operation="purchase", actor_id=actor_id
        ):
            return self._uow.run_atomically(
                "purchase",
                lambda: self._purchase(actor_id, customer, spent, tuple(promotion_ids), remark),
                customer=str(customer),
            )

    def _purchase(
        self,
        actor_id: int,
        customer_ref: int | str,
        spent: Decimal | int | float | str,
        promotion_ids: tuple[int, ...],
        remark: str,
    ) -> PurchaseResult:
        actor = self._accounts.load(actor_id, fresh=True)
        require_clearance(actor, "purchase")
        amount = self._parse_spent(spent)
        note = _remark(remark)
        customer = self._accounts.load(customer_ref)

        one_time = self._promotions.resolve_one_time(customer.id, promotion_ids, amount)
        automatic = self._promotions.active_automatic(amount)
        award = compute_purchase_award(
            amount, self._policy.base_rate, [*automatic, *one_time]
        )
        earned = award.total
        credited = 0 if actor.suspicious else earned

        self._promotions.mark_used(customer.id, promotion_ids)
        self._balances.credit(customer.id, credited)
        row = self._append(
            TransactionKind.PURCHASE,
            account_id=customer.id,
            created_by_id=actor.id,
            awarded=earned,
            spent=amount,
            promotion_ids=promotion_ids,
            remark=note,
            suspicious=actor.suspicious,
        )
        logger.info(
            "purchase_recorded",
            extra={
                "transaction_id": row.id,
                "target_account": customer.id,
                "spent": amount,
                "earned": earned,
                "credited": credited,
                "base": award.base,
                "bonuses": [list(b) for b in award.bonuses],
            },
        )
        return PurchaseResult(record=TransactionRecord.from_model(row), credited=credited)

    def _parse_spent(self, spent: Decimal | int | float | str) -> Decimal:
        try:
            amount = to_decimal(spent)
        except ValueError:
            raise InvalidAmountError("spent", spent, "must be a number") from None
        if not amount.is_finite() or amount <= 0:
            raise InvalidAmountError("spent", spent, "must be a positive number")
        if amount > self._policy.max_purchase_spent:
            raise InvalidAmountError(
                "spent", spent, f"must not exceed {self._policy.max_purchase_spent}"
            )
        if amount != amount.quantize(_CENT):
            raise InvalidAmountError("spent", spent, "at most two decimal places")
        return amount

    # ------------------------------------------------------------------
    # Redemption
    # ------------------------------------------------------------------

    def request_redemption(
        self,
        actor_id: int,
        amount: int,
        remark: str = "",
    ) -> TransactionRecord:
        """Append a pending redemption for the actor's own account.

        The balance is checked but not debited; processing debits.
        """
        with LogContext.bind(
            correlation_id=str(uuid4()), operation="request_redemption", actor_id=actor_id
        ):
            return self._uow.run_atomically(
                "request_redemption",
                lambda: self._request_redemption(actor_id, amount, remark),
                amount=amount,
            )

    def _request_redemption(self, actor_id: int, amount: int, remark: str) -> TransactionRecord:
        actor = self._accounts.load(actor_id, fresh=True)
        require_clearance(actor, "request_redemption")
        points = _positive_int("amount", amount)
        note = _remark(remark)
        available = self._balances.current(actor.id)
        if points > available:
            raise InsufficientPointsError(actor.id, points, available)

        row = self._append(
            TransactionKind.REDEMPTION,
            account_id=actor.id,
            created_by_id=actor.id,
            redeemed=points,
            remark=note,
            processed=False,
        )
        logger.info(
            "redemption_requested",
            extra={"transaction_id": row.id, "amount": points},
        )
        return TransactionRecord.from_model(row)

    def process_redemption(self, actor_id: int, transaction_id: int) -> TransactionRecord:
        """Mark a pending redemption processed and debit its amount, exactly once."""
        with LogContext.bind(
            correlation_id=str(uuid4()),
            operation="process_redemption",
            actor_id=actor_id,
            transaction_id=transaction_id,
        ):
            return self._uow.run_atomically(
                "process_redemption",
                lambda: self._process_redemption(actor_id, transaction_id),
            )

    def _process_redemption(self, actor_id: int, transaction_id: int) -> TransactionRecord:
        actor = self._accounts.load(actor_id, fresh=True)
        require_clearance(actor, "process_redemption")
        row = self._load_transaction(transaction_id)
        if row.kind != TransactionKind.REDEMPTION:
            raise NotARedemptionError(transaction_id, row.kind)
        if row.processed:
            raise RedemptionAlreadyProcessedError(transaction_id)

        claimed = self._session.execute(
            update(LedgerTransaction)
            .where(
                LedgerTransaction.id == transaction_id,
                LedgerTransaction.kind == TransactionKind.REDEMPTION.value,
                LedgerTransaction.processed.is_(False),
            )
            .values(processed=True, processed_by_id=actor.id)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount == 0:
            raise RedemptionAlreadyProcessedError(transaction_id)

        # Re-read under the row lock taken by the UPDATE: a concurrent
        # suspicious flip is either fully before or fully after us.
        row = self._load_transaction(transaction_id)
        debited = 0
        if not row.suspicious:
            debited = row.redeemed or 0
            self._balances.debit(
                row.account_id,
                debited,
                allow_negative=not self._policy.strict_redemption,
            )
        logger.info(
            "redemption_processed",
            extra={
                "target_account": row.account_id,
                "debited": debited,
                "policy": self._policy.redemption_processing,
            },
        )
        return TransactionRecord.from_model(row)

    # ------------------------------------------------------------------
    # Transfer
    # ------------------------------------------------------------------

    def transfer(
        self,
        actor_id: int,
        recipient: int | str,
        amount: int,
        remark: str = "",
    ) -> TransferResult:
        """Move points from the actor to ``recipient`` (id or utorid)."""
        with LogContext.bind(
            correlation_id=str(uuid4()), operation="transfer", actor_id=actor_id
        ):
            return self._uow.run_atomically(
                "transfer",
                lambda: self._transfer(actor_id, recipient, amount, remark),
                recipient=str(recipient),
                amount=amount,
            )

    def _transfer(
        self,
        actor_id: int,
        recipient_ref: int | str,
        amount: int,
        remark: str,
    ) -> TransferResult:
        points = _positive_int("amount", amount)
        note = _remark(remark)
        sender = self._accounts.load(actor_id, fresh=True)
        require_clearance(sender, "transfer")
        recipient = self._accounts.load(recipient_ref)
        if recipient.id == sender.id:
            raise SelfTransferError(sender.id)
        if not sender.verified:
            raise UnverifiedSenderError(sender.id)

        self._balances.lock([sender.id, recipient.id])
        self._balances.debit(sender.id, points)
        self._balances.credit(recipient.id, points)

        sent = self._append(
            TransactionKind.TRANSFER,
            account_id=sender.id,
            created_by_id=sender.id,
            redeemed=points,
            related_id=recipient.id,
            remark=note,
        )
        received = self._append(
            TransactionKind.TRANSFER,
            account_id=recipient.id,
            created_by_id=sender.id,
            awarded=points,
            related_id=sender.id,
            remark=note,
        )
        logger.info(
            "transfer_recorded",
            extra={
                "sender_transaction_id": sent.id,
                "recipient_transaction_id": received.id,
                "recipient_account": recipient.id,
                "amount": points,
            },
        )
        return TransferResult(
            sender_record=TransactionRecord.from_model(sent),
            recipient_record=TransactionRecord.from_model(received),
        )

    # ------------------------------------------------------------------
    # Adjustment
    # ------------------------------------------------------------------

    def adjust(
        self,
        actor_id: int,
        customer: int | str,
        amount: int,
        related_transaction_id: int,
        remark: str = "",
        promotion_ids: Sequence[int] = (),
    ) -> TransactionRecord:
        """Apply a signed correction tied to one of the customer's transactions."""
        with LogContext.bind(
            correlation_id=str(uuid4()), operation="adjust", actor_id=actor_id
        ):
            return self._uow.run_atomically(
                "adjust",
                lambda: self._adjust(
                    actor_id,
                    customer,
                    amount,
                    related_transaction_id,
                    remark,
                    tuple(promotion_ids),
                ),
                customer=str(customer),
                amount=amount,
            )

    def _adjust(
        self,
        actor_id: int,
        customer_ref: int | str,
        amount: int,
        related_transaction_id: int,
        remark: str,
        promotion_ids: tuple[int, ...],
    ) -> TransactionRecord:
        actor = self._accounts.load(actor_id, fresh=True)
        require_clearance(actor, "adjust")
        if isinstance(amount, bool) or not isinstance(amount, int) or amount == 0:
            raise InvalidAmountError("amount", amount, "must be a nonzero integer")
        note = _remark(remark)
        customer = self._accounts.load(customer_ref)
        related = self._load_transaction(related_transaction_id)
        if related.account_id != customer.id:
            raise RelatedTransactionMismatchError(related_transaction_id, customer.id)
        if len(set(promotion_ids)) != len(promotion_ids):
            duplicate = next(p for p in promotion_ids if promotion_ids.count(p) > 1)
            raise DuplicatePromotionIdError(duplicate)
        self._promotions.ensure_exist(promotion_ids)

        self._balances.apply(customer.id, amount)
        row = self._append(
            TransactionKind.ADJUSTMENT,
            account_id=customer.id,
            created_by_id=actor.id,
            awarded=amount if amount > 0 else None,
            redeemed=-amount if amount < 0 else None,
            related_id=related.id,
            promotion_ids=promotion_ids,
            remark=note,
        )
        logger.info(
            "adjustment_recorded",
            extra={
                "transaction_id": row.id,
                "target_account": customer.id,
                "amount": amount,
                "related_transaction": related.id,
            },
        )
        return TransactionRecord.from_model(row)

    # ------------------------------------------------------------------
    # Event award
    # ------------------------------------------------------------------

    def award_event(
        self,
        actor_id: int,
        event_id: int,
        points: int,
        recipient: int | str | None = None,
        remark: str = "",
    ) -> EventAwardResult:
        """
        Credit ``points`` to one guest, or to every guest when ``recipient``
        is None, drawing the total from the event's pool.  All or nothing.
        """
        with LogContext.bind(
            correlation_id=str(uuid4()),
            operation="award_event",
            actor_id=actor_id,
            event_id=event_id,
        ):
            return self._uow.run_atomically(
                "award_event",
                lambda: self._award_event(actor_id, event_id, points, recipient, remark),
                points=points,
                recipient=str(recipient) if recipient is not None else None,
            )

    def _award_event(
        self,
        actor_id: int,
        event_id: int,
        points: int,
        recipient_ref: int | str | None,
        remark: str,
    ) -> EventAwardResult:
        actor = self._accounts.load(actor_id, fresh=True)
        per_head = _positive_int("points", points)
        note = _remark(remark)
        event = self._events.get(event_id)
        manager_or_above = actor.has_clearance(required_role("award_event"))
        if not manager_or_above and not self._events.is_organizer(event.id, actor.id):
            raise PermissionDeniedError(actor.id, "award_event", "manager or event organizer")

        guests = self._events.guest_ids(event.id)
        if recipient_ref is None:
            if not guests:
                raise NoGuestsError(event.id)
            recipients = guests
        else:
            target = self._accounts.load(recipient_ref)
            if target.id not in guests:
                raise NotAGuestError(event.id, target.id)
            recipients = [target.id]

        total = per_head * len(recipients)
        self._pool.reserve(event.id, total)
        self._balances.lock(recipients)

        rows = []
        for account_id in recipients:
            self._balances.credit(account_id, per_head)
            rows.append(
                self._append(
                    TransactionKind.EVENT,
                    account_id=account_id,
                    created_by_id=actor.id,
                    awarded=per_head,
                    related_id=event.id,
                    remark=note,
                )
            )
        logger.info(
            "event_award_recorded",
            extra={"recipients": len(rows), "per_head": per_head, "total": total},
        )
        return EventAwardResult(
            event_id=event.id,
            records=tuple(TransactionRecord.from_model(r) for r in rows),
            points_per_recipient=per_head,
        )

    # ------------------------------------------------------------------
    # Suspicious flag
    # ------------------------------------------------------------------

    def set_suspicious(
        self,
        actor_id: int,
        transaction_id: int,
        suspicious: bool,
    ) -> SuspiciousFlagResult:
        """
        Set a transaction's suspicious flag.

        An actual flip claws back (on) or restores (off) the row's effect
        exactly once; setting the current value changes nothing.
        """
        with LogContext.bind(
            correlation_id=str(uuid4()),
            operation="set_suspicious",
            actor_id=actor_id,
            transaction_id=transaction_id,
        ):
            return self._uow.run_atomically(
                "set_suspicious",
                lambda: self._set_suspicious(actor_id, transaction_id, suspicious),
                suspicious=suspicious,
            )

    def _set_suspicious(
        self,
        actor_id: int,
        transaction_id: int,
        suspicious: bool,
    ) -> SuspiciousFlagResult:
        actor = self._accounts.load(actor_id, fresh=True)
        require_clearance(actor, "set_suspicious")
        if not isinstance(suspicious, bool):
            raise InvalidFieldError("suspicious", suspicious, "must be true or false")
        self._load_transaction(transaction_id)

        flipped = self._session.execute(
            update(LedgerTransaction)
            .where(
                LedgerTransaction.id == transaction_id,
                LedgerTransaction.suspicious.is_(not suspicious),
            )
            .values(suspicious=suspicious)
            .execution_options(synchronize_session=False)
        )
        row = self._load_transaction(transaction_id)
        if flipped.rowcount == 0:
            logger.info("suspicious_flag_unchanged", extra={"suspicious": suspicious})
            return SuspiciousFlagResult(
                record=TransactionRecord.from_model(row),
                balance_delta=0,
                changed=False,
            )

        effect = effect_of(
            row.awarded,
            row.redeemed,
            suspicious=False,
            pending_redemption=row.is_pending_redemption,
        )
        delta = -effect if suspicious else effect
        self._balances.apply(
            row.account_id,
            delta,
            allow_negative=not self._policy.strict_clawback,
        )
        logger.info(
            "suspicious_flag_changed",
            extra={
                "target_account": row.account_id,
                "suspicious": suspicious,
                "balance_delta": delta,
            },
        )
        return SuspiciousFlagResult(
            record=TransactionRecord.from_model(row),
            balance_delta=delta,
            changed=True,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load_transaction(self, transaction_id: int) -> LedgerTransaction:
        row = self._session.get(LedgerTransaction, transaction_id, populate_existing=True)
        if row is None:
            raise TransactionNotFoundError(transaction_id)
        return row

    def _append(
        self,
        kind: TransactionKind,
        *,
        account_id: int,
        created_by_id: int,
        awarded: int | None = None,
        redeemed: int | None = None,
        spent: Decimal | None = None,
        related_id: int | None = None,
        promotion_ids: Sequence[int] = (),
        remark: str = "",
        suspicious: bool = False,
        processed: bool | None = None,
    ) -> LedgerTransaction:
        row = LedgerTransaction(
            kind=kind.value,
            account_id=account_id,
            created_by_id=created_by_id,
            awarded=awarded,
            redeemed=redeemed,
            spent=spent,
            related_id=related_id,
            remark=remark,
            suspicious=suspicious,
            processed=processed,
            created_at=self._clock.now(),
        )
        row.promotion_links = [
            TransactionPromotion(promotion_id=promotion_id, position=position)
            for position, promotion_id in enumerate(promotion_ids)
        ]
        self._session.add(row)
        self._session.flush()
        return row
