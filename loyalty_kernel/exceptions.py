"""
Typed Exception Hierarchy for the Loyalty Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the ledger (the HTTP layer, scripts, tests) must distinguish the
cause of a failure without parsing message strings. Every error therefore:
  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE attribute (machine-readable, API-safe)
  3. Has a CATEGORY attribute (maps to a status code at the boundary)
  4. Carries structured DATA (not just a message string)

Example - WRONG:
    try:
        engine.transfer(...)
    except Exception as e:
        if "Insufficient" in str(e):
            ...

Example - RIGHT:
    try:
        engine.transfer(...)
    except InsufficientPointsError as e:
        respond(400, code=e.code, available=e.available)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LoyaltyKernelError (base)
    |
    +-- ValidationError
    |   +-- InvalidAmountError
    |   +-- InvalidFieldError
    |   +-- DuplicatePromotionIdError
    |
    +-- PermissionDeniedError
    |   +-- RoleAssignmentError
    |
    +-- AccountError
    |   +-- AccountNotFoundError
    |   +-- AccountAlreadyExistsError
    |   +-- UnverifiedSenderError
    |   +-- SelfTransferError
    |   +-- InsufficientPointsError
    |   +-- SuspiciousCashierError
    |
    +-- TransactionError
    |   +-- TransactionNotFoundError
    |   +-- NotARedemptionError
    |   +-- RedemptionAlreadyProcessedError
    |   +-- RelatedTransactionMismatchError
    |
    +-- PromotionError
    |   +-- PromotionNotFoundError
    |   +-- PromotionNotOneTimeError
    |   +-- PromotionNotActiveError
    |   +-- PromotionAlreadyUsedError
    |   +-- PromotionMinimumSpendError
    |   +-- PromotionLockedError
    |
    +-- EventError
    |   +-- EventNotFoundError
    |   +-- EventBudgetExceededError
    |   +-- EventBudgetReductionError
    |   +-- NotAGuestError
    |   +-- NoGuestsError
    |   +-- EventCapacityError
    |   +-- EventEndedError
    |   +-- EventPublishedError
    |   +-- OrganizerGuestConflictError
    |   +-- MembershipNotFoundError
    |
    +-- ThrottledError
    |
    +-- ImmutabilityViolationError
    |
    +-- StorageFailureError

===============================================================================
CATEGORIES
===============================================================================

Category       | HTTP | Meaning
---------------|------|----------------------------------------------------
validation     | 400  | Malformed / out-of-range input, nothing touched
business_rule  | 400  | Input well-formed but a ledger rule forbids it
permission     | 403  | Actor's role may not perform the operation
not_found      | 404  | Referenced account/event/transaction/promotion missing
conflict       | 409  | Unique identity already taken
rate_limited   | 429  | Caller exceeded its request window
internal       | 500  | Storage failure or integrity guard tripped

None of these are retried by the kernel. After an ``internal`` failure the
atomic unit has been rolled back, so the caller may retry the whole call.
"""

from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Coarse failure classes the HTTP boundary maps to status codes."""

    VALIDATION = "validation"
    BUSINESS_RULE = "business_rule"
    PERMISSION = "permission"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    RATE_LIMITED = "rate_limited"
    INTERNAL = "internal"


_HTTP_STATUS: dict[ErrorCategory, int] = {
    ErrorCategory.VALIDATION: 400,
    ErrorCategory.BUSINESS_RULE: 400,
    ErrorCategory.PERMISSION: 403,
    ErrorCategory.NOT_FOUND: 404,
    ErrorCategory.CONFLICT: 409,
    ErrorCategory.RATE_LIMITED: 429,
    ErrorCategory.INTERNAL: 500,
}


class LoyaltyKernelError(Exception):
    """
    Base exception for all loyalty kernel errors.

    All subclasses must define ``code`` and ``category`` class attributes.
    """

    code: str = "LOYALTY_KERNEL_ERROR"
    category: ErrorCategory = ErrorCategory.INTERNAL


# Validation


class ValidationError(LoyaltyKernelError):
    """Base exception for malformed or out-of-range input."""

    code: str = "VALIDATION_ERROR"
    category: ErrorCategory = ErrorCategory.VALIDATION


class InvalidAmountError(ValidationError):
    """A points or currency amount is not acceptable."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, value: Any, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field} {value!r}: {reason}")


class InvalidFieldError(ValidationError):
    """A non-amount field (utorid, email, date range, ...) is not acceptable."""

    code: str = "INVALID_FIELD"

    def __init__(self, field: str, value: Any, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field} {value!r}: {reason}")


class DuplicatePromotionIdError(ValidationError):
    """The same promotion id was supplied more than once in one request."""

    code: str = "DUPLICATE_PROMOTION_ID"

    def __init__(self, promotion_id: int):
        self.promotion_id = promotion_id
        super().__init__(f"Promotion {promotion_id} supplied more than once")


# Permission


class PermissionDeniedError(LoyaltyKernelError):
    """Actor's role does not allow the requested operation."""

    code: str = "PERMISSION_DENIED"
    category: ErrorCategory = ErrorCategory.PERMISSION

    def __init__(self, actor_id: int, operation: str, required: str):
        self.actor_id = actor_id
        self.operation = operation
        self.required = required
        super().__init__(
            f"Account {actor_id} may not perform {operation} (requires {required})"
        )


class RoleAssignmentError(PermissionDeniedError):
    """Actor may not assign the requested role."""

    code: str = "ROLE_ASSIGNMENT_DENIED"

    def __init__(self, actor_id: int, actor_role: str, target_role: str):
        self.actor_role = actor_role
        self.target_role = target_role
        LoyaltyKernelError.__init__(
            self,
            f"Account {actor_id} with role {actor_role} cannot assign role {target_role}",
        )
        self.actor_id = actor_id
        self.operation = "set_role"
        self.required = "superuser" if target_role in ("manager", "superuser") else "manager"


# Account-related exceptions


class AccountError(LoyaltyKernelError):
    """Base exception for account-related errors."""

    code: str = "ACCOUNT_ERROR"
    category: ErrorCategory = ErrorCategory.BUSINESS_RULE


class AccountNotFoundError(AccountError):
    """Account with given id or utorid was not found."""

    code: str = "ACCOUNT_NOT_FOUND"
    category: ErrorCategory = ErrorCategory.NOT_FOUND

    def __init__(self, account_ref: int | str):
        self.account_ref = account_ref
        super().__init__(f"Account not found: {account_ref}")


class AccountAlreadyExistsError(AccountError):
    """utorid or email is already registered."""

    code: str = "ACCOUNT_ALREADY_EXISTS"
    category: ErrorCategory = ErrorCategory.CONFLICT

    def __init__(self, field: str, value: str):
        self.field = field
        self.value = value
        super().__init__(f"An account with {field} {value!r} already exists")


class UnverifiedSenderError(AccountError):
    """Only verified accounts may send transfers."""

    code: str = "UNVERIFIED_SENDER"

    def __init__(self, account_id: int):
        self.account_id = account_id
        super().__init__(f"Account {account_id} is not verified")


class SelfTransferError(AccountError):
    """Sender and recipient are the same account."""

    code: str = "SELF_TRANSFER"

    def __init__(self, account_id: int):
        self.account_id = account_id
        super().__init__(f"Account {account_id} cannot transfer points to itself")


class InsufficientPointsError(AccountError):
    """Balance does not cover the requested debit."""

    code: str = "INSUFFICIENT_POINTS"

    def __init__(self, account_id: int, requested: int, available: int):
        self.account_id = account_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient points on account {account_id}: "
            f"requested {requested}, available {available}"
        )


class SuspiciousCashierError(AccountError):
    """A suspicious account cannot hold the cashier role."""

    code: str = "SUSPICIOUS_CASHIER"

    def __init__(self, account_id: int):
        self.account_id = account_id
        super().__init__(f"Suspicious account {account_id} cannot be a cashier")


# Transaction-related exceptions


class TransactionError(LoyaltyKernelError):
    """Base exception for transaction-related errors."""

    code: str = "TRANSACTION_ERROR"
    category: ErrorCategory = ErrorCategory.BUSINESS_RULE


class TransactionNotFoundError(TransactionError):
    """Transaction with given id was not found."""

    code: str = "TRANSACTION_NOT_FOUND"
    category: ErrorCategory = ErrorCategory.NOT_FOUND

    def __init__(self, transaction_id: int):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction not found: {transaction_id}")


class NotARedemptionError(TransactionError):
    """Only redemption transactions can be processed."""

    code: str = "NOT_A_REDEMPTION"

    def __init__(self, transaction_id: int, kind: str):
        self.transaction_id = transaction_id
        self.kind = kind
        super().__init__(
            f"Transaction {transaction_id} is a {kind}, not a redemption"
        )


class RedemptionAlreadyProcessedError(TransactionError):
    """Redemption was processed before; processing is terminal."""

    code: str = "REDEMPTION_ALREADY_PROCESSED"

    def __init__(self, transaction_id: int):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction {transaction_id} already processed")


class RelatedTransactionMismatchError(TransactionError):
    """Adjustment references a transaction owned by another account."""

    code: str = "RELATED_TRANSACTION_MISMATCH"

    def __init__(self, transaction_id: int, account_id: int):
        self.transaction_id = transaction_id
        self.account_id = account_id
        super().__init__(
            f"Transaction {transaction_id} does not belong to account {account_id}"
        )


# Promotion-related exceptions


class PromotionError(LoyaltyKernelError):
    """Base exception for promotion-related errors."""

    code: str = "PROMOTION_ERROR"
    category: ErrorCategory = ErrorCategory.BUSINESS_RULE


class PromotionNotFoundError(PromotionError):
    """Promotion with given id was not found."""

    code: str = "PROMOTION_NOT_FOUND"
    category: ErrorCategory = ErrorCategory.NOT_FOUND

    def __init__(self, promotion_id: int):
        self.promotion_id = promotion_id
        super().__init__(f"Promotion not found: {promotion_id}")


class PromotionNotOneTimeError(PromotionError):
    """Only one-time promotions may be supplied explicitly."""

    code: str = "PROMOTION_NOT_ONE_TIME"

    def __init__(self, promotion_id: int):
        self.promotion_id = promotion_id
        super().__init__(f"Promotion {promotion_id} is not a one-time promotion")


class PromotionNotActiveError(PromotionError):
    """Promotion window does not include the current time."""

    code: str = "PROMOTION_NOT_ACTIVE"

    def __init__(self, promotion_id: int):
        self.promotion_id = promotion_id
        super().__init__(f"Promotion {promotion_id} is not active")


class PromotionAlreadyUsedError(PromotionError):
    """One-time promotion was already consumed by this account."""

    code: str = "PROMOTION_ALREADY_USED"

    def __init__(self, promotion_id: int, account_id: int):
        self.promotion_id = promotion_id
        self.account_id = account_id
        super().__init__(
            f"Promotion {promotion_id} already used by account {account_id}"
        )


class PromotionMinimumSpendError(PromotionError):
    """Purchase does not meet the promotion's minimum spend."""

    code: str = "PROMOTION_MINIMUM_SPEND"

    def __init__(self, promotion_id: int, min_spending: Any, spent: Any):
        self.promotion_id = promotion_id
        self.min_spending = min_spending
        self.spent = spent
        super().__init__(
            f"Promotion {promotion_id} requires minimum spend {min_spending}, got {spent}"
        )


class PromotionLockedError(PromotionError):
    """Promotion can no longer be edited or deleted."""

    code: str = "PROMOTION_LOCKED"

    def __init__(self, promotion_id: int, reason: str):
        self.promotion_id = promotion_id
        self.reason = reason
        super().__init__(f"Promotion {promotion_id} is locked: {reason}")


# Event-related exceptions


class EventError(LoyaltyKernelError):
    """Base exception for event-related errors."""

    code: str = "EVENT_ERROR"
    category: ErrorCategory = ErrorCategory.BUSINESS_RULE


class EventNotFoundError(EventError):
    """Event with given id was not found."""

    code: str = "EVENT_NOT_FOUND"
    category: ErrorCategory = ErrorCategory.NOT_FOUND

    def __init__(self, event_id: int):
        self.event_id = event_id
        super().__init__(f"Event not found: {event_id}")


class EventBudgetExceededError(EventError):
    """Award would disburse more than the event has remaining."""

    code: str = "EVENT_BUDGET_EXCEEDED"

    def __init__(self, event_id: int, requested: int, remaining: int):
        self.event_id = event_id
        self.requested = requested
        self.remaining = remaining
        super().__init__(
            f"Event {event_id} has {remaining} points remaining, {requested} requested"
        )


class EventBudgetReductionError(EventError):
    """Budget edit would drive points_remain below zero."""

    code: str = "EVENT_BUDGET_REDUCTION"

    def __init__(self, event_id: int, delta: int, remaining: int):
        self.event_id = event_id
        self.delta = delta
        self.remaining = remaining
        super().__init__(
            f"Event {event_id} budget cannot change by {delta}: "
            f"only {remaining} points remain unallocated"
        )


class NotAGuestError(EventError):
    """Recipient is not a registered guest of the event."""

    code: str = "NOT_A_GUEST"

    def __init__(self, event_id: int, account_id: int):
        self.event_id = event_id
        self.account_id = account_id
        super().__init__(f"Account {account_id} is not a guest of event {event_id}")


class NoGuestsError(EventError):
    """Award to all guests requested on an event with no guests."""

    code: str = "NO_GUESTS"

    def __init__(self, event_id: int):
        self.event_id = event_id
        super().__init__(f"Event {event_id} has no guests")


class EventCapacityError(EventError):
    """Event is at full capacity."""

    code: str = "EVENT_AT_CAPACITY"

    def __init__(self, event_id: int, capacity: int):
        self.event_id = event_id
        self.capacity = capacity
        super().__init__(f"Event {event_id} is at full capacity ({capacity})")


class EventEndedError(EventError):
    """Roster changes are not allowed once the event has ended."""

    code: str = "EVENT_ENDED"

    def __init__(self, event_id: int):
        self.event_id = event_id
        super().__init__(f"Event {event_id} has ended")


class EventPublishedError(EventError):
    """Published events cannot be deleted."""

    code: str = "EVENT_PUBLISHED"

    def __init__(self, event_id: int):
        self.event_id = event_id
        super().__init__(f"Event {event_id} is published and cannot be deleted")


class OrganizerGuestConflictError(EventError):
    """An account cannot be both organizer and guest of the same event."""

    code: str = "ORGANIZER_GUEST_CONFLICT"

    def __init__(self, event_id: int, account_id: int, existing_role: str):
        self.event_id = event_id
        self.account_id = account_id
        self.existing_role = existing_role
        super().__init__(
            f"Account {account_id} is already an {existing_role} of event {event_id}"
        )


class MembershipNotFoundError(EventError):
    """Organizer or guest membership does not exist."""

    code: str = "MEMBERSHIP_NOT_FOUND"
    category: ErrorCategory = ErrorCategory.NOT_FOUND

    def __init__(self, event_id: int, account_id: int, membership: str):
        self.event_id = event_id
        self.account_id = account_id
        self.membership = membership
        super().__init__(
            f"Account {account_id} is not an {membership} of event {event_id}"
        )


# Throttling


class ThrottledError(LoyaltyKernelError):
    """Caller exceeded its request window."""

    code: str = "THROTTLED"
    category: ErrorCategory = ErrorCategory.RATE_LIMITED

    def __init__(self, key: str, retry_after_seconds: float):
        self.key = key
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            f"Too many requests for {key}; retry after {retry_after_seconds:.0f}s"
        )


# Integrity / storage


class ImmutabilityViolationError(LoyaltyKernelError):
    """Attempt to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"
    category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )


class StorageFailureError(LoyaltyKernelError):
    """The atomic unit could not commit; nothing was persisted."""

    code: str = "STORAGE_FAILURE"
    category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(self, operation: str, cause: str):
        self.operation = operation
        self.cause = cause
        super().__init__(f"Storage failure during {operation}: {cause}")


# ---------------------------------------------------------------------------
# Boundary helpers
# ---------------------------------------------------------------------------


def http_status_for(exc: LoyaltyKernelError) -> int:
    """Status code the HTTP layer should answer with for ``exc``."""
    return _HTTP_STATUS.get(exc.category, 500)


def error_payload(exc: LoyaltyKernelError) -> dict[str, str]:
    """Structured failure (kind + message) for the HTTP layer.

    Internal failures get a generic message; their detail belongs in logs.
    """
    if exc.category is ErrorCategory.INTERNAL:
        return {
            "code": exc.code,
            "category": exc.category.value,
            "message": "Internal error",
        }
    return {
        "code": exc.code,
        "category": exc.category.value,
        "message": str(exc),
    }
