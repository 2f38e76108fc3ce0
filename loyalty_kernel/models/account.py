"""
Module: loyalty_kernel.models.account
Responsibility: ORM persistence for campus accounts -- the holders of point
    balances and the actors of every ledger operation.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - utorid and email are unique (uq_account_utorid, uq_account_email).
    - points has no CHECK constraint: the lenient redemption and clawback
      policies (LedgerPolicy) may leave a deficit.  Every other debit is a
      conditional UPDATE that cannot go below zero.
    - Accounts are never deleted (ORM delete blocked in db/immutability.py).
    - points is changed only by BalanceKeeper's conditional UPDATEs.
"""

from enum import Enum

from sqlalchemy import Boolean, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from loyalty_kernel.db.base import TimestampedBase


class Role(str, Enum):
    """Account roles, ordered by clearance."""

    REGULAR = "regular"
    CASHIER = "cashier"
    MANAGER = "manager"
    SUPERUSER = "superuser"

    @property
    def clearance(self) -> int:
        return _CLEARANCE[self]

    def at_least(self, other: "Role") -> bool:
        return self.clearance >= other.clearance


_CLEARANCE = {
    Role.REGULAR: 1,
    Role.CASHIER: 2,
    Role.MANAGER: 3,
    Role.SUPERUSER: 4,
}


class Account(TimestampedBase):
    """
    A campus user's points account.

    Guarantees:
        - utorid is 7-8 alphanumerics, email ends with @mail.utoronto.ca
          (validated by AccountService.register).
        - role is one of regular, cashier, manager, superuser.
    """

    __tablename__ = "accounts"
    __table_args__ = (
        UniqueConstraint("utorid", name="uq_account_utorid"),
        UniqueConstraint("email", name="uq_account_email"),
        Index("idx_account_role", "role"),
    )

    utorid: Mapped[str] = mapped_column(String(8), nullable=False)

    name: Mapped[str] = mapped_column(String(50), nullable=False)

    email: Mapped[str] = mapped_column(String(255), nullable=False)

    role: Mapped[Role] = mapped_column(
        String(20),
        default=Role.REGULAR.value,
        nullable=False,
    )

    # Current balance; mutated only through BalanceKeeper
    points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    suspicious: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def __repr__(self) -> str:
        return f"<Account {self.id}: {self.utorid} ({self.role})>"

    @property
    def role_enum(self) -> Role:
        return Role(self.role)

    def has_clearance(self, required: Role) -> bool:
        return self.role_enum.at_least(required)
