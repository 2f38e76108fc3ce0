"""
loyalty_kernel.services.authority -- role checks at the ledger boundary.

Responsibility:
    Maps each ledger operation to the minimum role that may perform it and
    raises PermissionDeniedError otherwise.  Event awards additionally
    accept organizers of the event; that check lives in LedgerEngine
    because it needs the roster.

Invariants:
    - The caller resolves actor identity; this module only compares roles.
"""

from loyalty_kernel.exceptions import PermissionDeniedError
from loyalty_kernel.models.account import Account, Role

# operation -> minimum role
OPERATION_CLEARANCE: dict[str, Role] = {
    "purchase": Role.CASHIER,
    "request_redemption": Role.REGULAR,
    "process_redemption": Role.CASHIER,
    "transfer": Role.REGULAR,
    "adjust": Role.MANAGER,
    "award_event": Role.MANAGER,
    "set_suspicious": Role.MANAGER,
    "set_role": Role.MANAGER,
}


def required_role(operation: str) -> Role:
    return OPERATION_CLEARANCE[operation]


def require_clearance(actor: Account, operation: str) -> None:
    """Raise PermissionDeniedError unless ``actor`` may perform ``operation``."""
    required = required_role(operation)
    if not actor.has_clearance(required):
        raise PermissionDeniedError(actor.id, operation, required.value)
