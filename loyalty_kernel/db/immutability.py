"""
ORM-level append-only enforcement for the points ledger.

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
We register listeners that intercept these events and check the rules:

    session.flush()
         |
         v
    [before_flush]  --> account deletions -----------> ImmutabilityViolationError
         |                                                   ^
         v                                                   |
    [before_update] --> _check_*_immutability() -------------+
         |                                                   |
         v                                                   |
    [before_delete] --> _check_*_delete() -------------------+
         |
         v
    SQL sent to database (only if checks pass)

Balance and state transitions performed by the services use Core UPDATE
statements with conditional WHERE clauses; these listeners guard the ORM
path only.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity               | Rule
---------------------|------------------------------------------------------
LedgerTransaction    | Only suspicious, processed (false -> true) and
                     | processed_by_id may change.  Never deleted.
TransactionPromotion | Immutable from creation.  Never deleted.
PromotionUse         | used may only go false -> true.  Never deleted.
Account              | points never changes through the ORM.  Never deleted.

===============================================================================
USAGE
===============================================================================

    from loyalty_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

To temporarily disable (TESTS ONLY):

    from loyalty_kernel.db.immutability import unregister_immutability_listeners
    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import get_history

from loyalty_kernel.exceptions import ImmutabilityViolationError
from loyalty_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# Fields a LedgerTransaction may still change after insert
TRANSACTION_MUTABLE_FIELDS = frozenset({"suspicious", "processed", "processed_by_id"})


def _blocked(entity_type: str, entity_id, operation: str, reason: str, **fields):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            **fields,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_account_deletion_before_flush(session, flush_context, instances):
    """
    Accounts are never deleted; their history must stay resolvable.

    Runs in SessionEvents.before_flush because mapper-level delete events
    fire after the flush plan is already fixed.
    """
    from loyalty_kernel.models.account import Account

    for obj in list(session.deleted):
        if isinstance(obj, Account):
            _blocked("Account", obj.id, "DELETE", "Accounts cannot be deleted")


def _check_account_immutability(mapper, connection, target):
    """Block ORM writes to the balance; BalanceKeeper is the only writer."""
    history = get_history(target, "points")
    if history.deleted and history.added and history.deleted[0] != history.added[0]:
        _blocked(
            "Account",
            target.id,
            "UPDATE",
            "Balance changes must go through the ledger",
            field="points",
        )


def _check_transaction_immutability(mapper, connection, target):
    """
    LedgerTransaction rows are append-only apart from their review state.

    ``processed`` may move false -> true once; it can never be cleared or
    set on a row that was not a pending redemption.
    """
    insp = inspect(target)
    for attr in insp.attrs:
        hist = attr.history
        if not hist.has_changes():
            continue
        if attr.key not in TRANSACTION_MUTABLE_FIELDS:
            _blocked(
                "LedgerTransaction",
                target.id,
                "UPDATE",
                f"Cannot modify field '{attr.key}' on a recorded transaction",
                field=attr.key,
            )

    processed = get_history(target, "processed")
    if processed.deleted:
        old = processed.deleted[0]
        new = processed.added[0] if processed.added else None
        if old is not False or new is not True:
            _blocked(
                "LedgerTransaction",
                target.id,
                "UPDATE",
                "processed may only change from false to true",
                field="processed",
            )


def _check_transaction_delete(mapper, connection, target):
    _blocked("LedgerTransaction", target.id, "DELETE", "Transactions cannot be deleted")


def _check_transaction_promotion_immutability(mapper, connection, target):
    _blocked(
        "TransactionPromotion",
        target.id,
        "UPDATE",
        "Promotion links are immutable",
    )


def _check_transaction_promotion_delete(mapper, connection, target):
    _blocked(
        "TransactionPromotion",
        target.id,
        "DELETE",
        "Promotion links cannot be deleted",
    )


def _check_promotion_use_immutability(mapper, connection, target):
    """A consumed one-time promotion stays consumed."""
    insp = inspect(target)
    for attr in insp.attrs:
        if attr.key == "used" or not attr.history.has_changes():
            continue
        _blocked(
            "PromotionUse",
            target.id,
            "UPDATE",
            f"Cannot modify field '{attr.key}' on a promotion use",
            field=attr.key,
        )
    used = get_history(target, "used")
    if used.deleted and used.deleted[0] is True:
        _blocked(
            "PromotionUse",
            target.id,
            "UPDATE",
            "A used promotion cannot be marked unused",
            field="used",
        )


def _check_promotion_use_delete(mapper, connection, target):
    _blocked("PromotionUse", target.id, "DELETE", "Promotion uses cannot be deleted")


def _listeners():
    from loyalty_kernel.models.account import Account
    from loyalty_kernel.models.promotion import PromotionUse
    from loyalty_kernel.models.transaction import LedgerTransaction, TransactionPromotion

    return [
        (Session, "before_flush", _check_account_deletion_before_flush),
        (Account, "before_update", _check_account_immutability),
        (LedgerTransaction, "before_update", _check_transaction_immutability),
        (LedgerTransaction, "before_delete", _check_transaction_delete),
        (TransactionPromotion, "before_update", _check_transaction_promotion_immutability),
        (TransactionPromotion, "before_delete", _check_transaction_promotion_delete),
        (PromotionUse, "before_update", _check_promotion_use_immutability),
        (PromotionUse, "before_delete", _check_promotion_use_delete),
    ]


def register_immutability_listeners():
    """
    Register all append-only enforcement listeners.

    Call after the models are importable and before any writes.  Safe to
    call more than once.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove the append-only listeners.

    WARNING: Only use this in tests that must write forbidden states to
    verify detection (e.g. reconciliation tests).
    """
    for target, event_name, listener_fn in _listeners():
        _safe_remove_listener(target, event_name, listener_fn)
