"""
AccountService -- registration, lookup and role / flag maintenance.

Responsibility:
    Creates accounts with campus identity rules, resolves account
    references (id or utorid), and applies the role-assignment rules.
    Never touches ``points``; that belongs to BalanceKeeper.

Architecture position:
    Kernel > Services.  LedgerEngine uses ``load`` to resolve customers
    and actors; the HTTP layer calls the maintenance methods directly.

Invariants enforced:
    - utorid is 7-8 alphanumerics; name is 1-50 characters; email is a
      @mail.utoronto.ca address.  utorid and email are unique.
    - A manager may assign regular or cashier; a superuser may assign any
      role.
    - A suspicious account cannot be made a cashier.

Failure modes:
    - InvalidFieldError on malformed utorid / name / email / role.
    - AccountAlreadyExistsError when utorid or email is taken.
    - AccountNotFoundError on unknown id / utorid.
    - PermissionDeniedError / RoleAssignmentError / SuspiciousCashierError
      from set_role.
"""

import re

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from loyalty_kernel.domain.clock import Clock, SystemClock
from loyalty_kernel.domain.dtos import AccountInfo
from loyalty_kernel.exceptions import (
    AccountAlreadyExistsError,
    AccountNotFoundError,
    InvalidFieldError,
    RoleAssignmentError,
    SuspiciousCashierError,
)
from loyalty_kernel.logging_config import get_logger
from loyalty_kernel.models.account import Account, Role
from loyalty_kernel.services.authority import require_clearance
from loyalty_kernel.services.base import BaseService

logger = get_logger("services.account")

UTORID_PATTERN = re.compile(r"^[A-Za-z0-9]{7,8}$")
EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9.-]+@mail\.utoronto\.ca$")
MAX_NAME_LENGTH = 50

# Roles each assigning role may hand out
_ASSIGNABLE: dict[Role, frozenset[Role]] = {
    Role.MANAGER: frozenset({Role.REGULAR, Role.CASHIER}),
    Role.SUPERUSER: frozenset(Role),
}


def parse_role(value: Role | str) -> Role:
    if isinstance(value, Role):
        return value
    try:
        return Role(str(value).lower())
    except ValueError:
        raise InvalidFieldError("role", value, "unknown role") from None


class AccountService(BaseService[Account]):

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def register(
        self,
        utorid: str,
        name: str,
        email: str,
        role: Role | str = Role.REGULAR,
        verified: bool = False,
    ) -> AccountInfo:
        """
        Create an account with a zero balance.

        ``role`` and ``verified`` exist for operator scripts (superuser
        bootstrap, seeding); the registration path leaves them defaulted.
        """
        if not isinstance(utorid, str) or not UTORID_PATTERN.match(utorid):
            raise InvalidFieldError("utorid", utorid, "must be 7-8 alphanumeric characters")
        if not isinstance(name, str) or not 0 < len(name) <= MAX_NAME_LENGTH:
            raise InvalidFieldError("name", name, f"must be 1-{MAX_NAME_LENGTH} characters")
        if not isinstance(email, str) or not EMAIL_PATTERN.match(email):
            raise InvalidFieldError("email", email, "must be a @mail.utoronto.ca address")
        account_role = parse_role(role)

        self._check_unique(utorid, email)

        now = self._clock.now()
        account = Account(
            utorid=utorid,
            name=name,
            email=email,
            role=account_role.value,
            points=0,
            verified=verified,
            suspicious=False,
            created_at=now,
            updated_at=now,
        )
        try:
            with self.session.begin_nested():
                self.session.add(account)
        except IntegrityError:
            # Lost a race with a concurrent registration; name the taken field.
            self._check_unique(utorid, email)
            raise

        logger.info(
            "account_registered",
            extra={"account_id": account.id, "utorid": utorid, "role": account_role.value},
        )
        return AccountInfo.from_model(account)

    def _check_unique(self, utorid: str, email: str) -> None:
        if self.session.scalar(select(Account.id).where(Account.utorid == utorid)):
            raise AccountAlreadyExistsError("utorid", utorid)
        if self.session.scalar(select(Account.id).where(Account.email == email)):
            raise AccountAlreadyExistsError("email", email)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, account_id: int) -> AccountInfo:
        return AccountInfo.from_model(self.load(account_id, fresh=True))

    def get_by_utorid(self, utorid: str) -> AccountInfo:
        return AccountInfo.from_model(self.load(utorid, fresh=True))

    def resolve(self, ref: int | str) -> AccountInfo:
        """Look up by integer id or by utorid; the balance is read fresh."""
        return AccountInfo.from_model(self.load(ref, fresh=True))

    def load(self, ref: int | str, fresh: bool = False) -> Account:
        """ORM row for ``ref``; ``fresh`` re-reads from storage."""
        if isinstance(ref, bool):
            raise AccountNotFoundError(ref)
        if isinstance(ref, int):
            account = self.session.get(Account, ref, populate_existing=fresh)
        else:
            stmt = select(Account).where(Account.utorid == ref)
            if fresh:
                stmt = stmt.execution_options(populate_existing=True)
            account = self.session.scalar(stmt)
        if account is None:
            raise AccountNotFoundError(ref)
        return account

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def set_role(self, actor_id: int, account_id: int, role: Role | str) -> AccountInfo:
        actor = self.load(actor_id)
        require_clearance(actor, "set_role")
        target_role = parse_role(role)
        allowed = _ASSIGNABLE.get(actor.role_enum, frozenset())
        if target_role not in allowed:
            raise RoleAssignmentError(actor_id, actor.role_enum.value, target_role.value)

        account = self.load(account_id, fresh=True)
        if target_role == Role.CASHIER and account.suspicious:
            raise SuspiciousCashierError(account_id)

        account.role = target_role.value
        self.session.flush()
        logger.info(
            "account_role_changed",
            extra={"account_id": account_id, "role": target_role.value, "actor_id": actor_id},
        )
        return AccountInfo.from_model(account)

    def mark_verified(self, account_id: int) -> AccountInfo:
        account = self.load(account_id, fresh=True)
        if not account.verified:
            account.verified = True
            self.session.flush()
            logger.info("account_verified", extra={"account_id": account_id})
        return AccountInfo.from_model(account)

    def set_suspicious(self, account_id: int, flag: bool) -> AccountInfo:
        account = self.load(account_id, fresh=True)
        if account.suspicious != flag:
            account.suspicious = flag
            self.session.flush()
            logger.info(
                "account_suspicious_changed",
                extra={"account_id": account_id, "suspicious": flag},
            )
        return AccountInfo.from_model(account)
