"""
PromotionCatalog -- promotion lookup, one-time usage tracking, maintenance.

Responsibility:
    Answers the two questions a purchase asks: which automatic promotions
    apply right now, and are the supplied one-time promotions usable by
    this customer.  Records one-time consumption exactly once.  Also owns
    promotion create / update / delete with their temporal restrictions.

Architecture position:
    Kernel > Services.  LedgerEngine reads through it during purchase;
    maintenance methods are called by the HTTP layer directly.

Invariants enforced:
    - A one-time promotion is consumed at most once per account: the
      PromotionUse unique constraint is the guard and a lost insert race
      surfaces as PromotionAlreadyUsedError, never as a second bonus.
    - Promotions cannot be edited once started, nor deleted once started
      or once a transaction or usage record refers to them.

Failure modes:
    - PromotionNotFoundError, PromotionNotOneTimeError,
      PromotionNotActiveError, PromotionAlreadyUsedError,
      PromotionMinimumSpendError, DuplicatePromotionIdError during
      resolution; InvalidFieldError / InvalidAmountError /
      PromotionLockedError during maintenance.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, Sequence

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from loyalty_kernel.domain.clock import Clock, SystemClock
from loyalty_kernel.domain.dtos import PromotionInfo
from loyalty_kernel.domain.points import (
    PromotionTerms,
    is_active,
    meets_minimum,
    to_decimal,
)
from loyalty_kernel.exceptions import (
    DuplicatePromotionIdError,
    InvalidAmountError,
    InvalidFieldError,
    PromotionAlreadyUsedError,
    PromotionLockedError,
    PromotionMinimumSpendError,
    PromotionNotActiveError,
    PromotionNotFoundError,
    PromotionNotOneTimeError,
)
from loyalty_kernel.logging_config import get_logger
from loyalty_kernel.models.promotion import Promotion, PromotionType, PromotionUse
from loyalty_kernel.models.transaction import TransactionPromotion
from loyalty_kernel.services.base import BaseService

logger = get_logger("services.promotion_catalog")

_UPDATABLE_FIELDS = frozenset(
    {
        "name",
        "description",
        "type",
        "start_time",
        "end_time",
        "min_spending",
        "rate",
        "points",
    }
)


def _terms(promotion: Promotion) -> PromotionTerms:
    return PromotionTerms(
        promotion_id=promotion.id,
        start_time=promotion.start_time,
        end_time=promotion.end_time,
        min_spending=promotion.min_spending,
        rate=promotion.rate,
        points=promotion.points,
    )


def parse_promotion_type(value: PromotionType | str) -> PromotionType:
    """Accept the enum, its value, or the hyphenated ``one-time`` spelling."""
    if isinstance(value, PromotionType):
        return value
    if value == "one-time":
        return PromotionType.ONE_TIME
    try:
        return PromotionType(value)
    except ValueError:
        raise InvalidFieldError(
            "type", value, "must be 'automatic' or 'one-time'"
        ) from None


class PromotionCatalog(BaseService[Promotion]):
    """
    Contract:
        Read methods never write.  ``mark_used`` writes PromotionUse rows
        inside the caller's transaction.  Maintenance methods flush only.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Purchase-time reads
    # ------------------------------------------------------------------

    def active_automatic(self, spent: Decimal) -> list[PromotionTerms]:
        """Automatic promotions whose window contains now and whose minimum is met."""
        now = self._clock.now()
        rows = self.session.scalars(
            select(Promotion)
            .where(
                Promotion.type == PromotionType.AUTOMATIC.value,
                Promotion.start_time <= now,
                Promotion.end_time >= now,
                or_(
                    Promotion.min_spending.is_(None),
                    Promotion.min_spending <= spent,
                ),
            )
            .order_by(Promotion.id)
        ).all()
        return [_terms(p) for p in rows]

    def resolve_one_time(
        self,
        account_id: int,
        promotion_ids: Sequence[int],
        spent: Decimal,
    ) -> list[PromotionTerms]:
        """
        Validate every supplied one-time promotion before anything is written.

        Checks, per id and in order: exists, is one-time, is active now,
        is unused by ``account_id``, minimum spend is met.  The first
        failure aborts the whole request.
        """
        seen: set[int] = set()
        for promotion_id in promotion_ids:
            if isinstance(promotion_id, bool) or not isinstance(promotion_id, int) or promotion_id <= 0:
                raise InvalidFieldError(
                    "promotion_id", promotion_id, "must be a positive integer"
                )
            if promotion_id in seen:
                raise DuplicatePromotionIdError(promotion_id)
            seen.add(promotion_id)

        if not promotion_ids:
            return []

        found = {
            p.id: p
            for p in self.session.scalars(
                select(Promotion).where(Promotion.id.in_(list(promotion_ids)))
            )
        }
        now = self._clock.now()
        resolved: list[PromotionTerms] = []
        for promotion_id in promotion_ids:
            promotion = found.get(promotion_id)
            if promotion is None:
                raise PromotionNotFoundError(promotion_id)
            if not promotion.is_one_time:
                raise PromotionNotOneTimeError(promotion_id)
            if not is_active(promotion.start_time, promotion.end_time, now):
                raise PromotionNotActiveError(promotion_id)
            if self.is_used(account_id, promotion_id):
                raise PromotionAlreadyUsedError(promotion_id, account_id)
            if not meets_minimum(spent, promotion.min_spending):
                raise PromotionMinimumSpendError(
                    promotion_id, promotion.min_spending, spent
                )
            resolved.append(_terms(promotion))
        return resolved

    def is_used(self, account_id: int, promotion_id: int) -> bool:
        used = self.session.scalar(
            select(PromotionUse.used).where(
                PromotionUse.account_id == account_id,
                PromotionUse.promotion_id == promotion_id,
            )
        )
        return bool(used)

    def ensure_exist(self, promotion_ids: Iterable[int]) -> None:
        """Raise PromotionNotFoundError for the first id with no promotion row."""
        ids = list(promotion_ids)
        if not ids:
            return
        existing = set(
            self.session.scalars(select(Promotion.id).where(Promotion.id.in_(ids)))
        )
        for promotion_id in ids:
            if promotion_id not in existing:
                raise PromotionNotFoundError(promotion_id)

    # ------------------------------------------------------------------
    # Consumption
    # ------------------------------------------------------------------

    def mark_used(self, account_id: int, promotion_ids: Iterable[int]) -> None:
        """
        Record consumption of each one-time promotion by ``account_id``.

        An existing unused row is flipped with a conditional UPDATE; otherwise
        a row is inserted inside a SAVEPOINT so a concurrent insert of the
        same pair becomes PromotionAlreadyUsedError instead of aborting the
        outer transaction with an opaque IntegrityError.
        """
        for promotion_id in promotion_ids:
            flipped = self.session.execute(
                update(PromotionUse)
                .where(
                    PromotionUse.account_id == account_id,
                    PromotionUse.promotion_id == promotion_id,
                    PromotionUse.used.is_(False),
                )
                .values(used=True)
                .execution_options(synchronize_session=False)
            )
            if flipped.rowcount == 1:
                continue
            try:
                with self.session.begin_nested():
                    self.session.add(
                        PromotionUse(
                            account_id=account_id,
                            promotion_id=promotion_id,
                            used=True,
                        )
                    )
            except IntegrityError:
                logger.warning(
                    "promotion_use_race_lost",
                    extra={"target_account": account_id, "promotion_id": promotion_id},
                )
                raise PromotionAlreadyUsedError(promotion_id, account_id) from None

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def get(self, promotion_id: int) -> PromotionInfo:
        return PromotionInfo.from_model(self._load(promotion_id))

    def create(
        self,
        name: str,
        description: str,
        type: PromotionType | str,
        start_time: datetime,
        end_time: datetime,
        min_spending: Decimal | int | float | str | None = None,
        rate: Decimal | int | float | str | None = None,
        points: int | None = None,
    ) -> PromotionInfo:
        """Create a promotion that starts now or later."""
        now = self._clock.now()
        _check_name(name)
        promotion_type = parse_promotion_type(type)
        if start_time < now:
            raise InvalidFieldError("start_time", start_time, "cannot be in the past")
        if end_time <= start_time:
            raise InvalidFieldError("end_time", end_time, "must be after start_time")

        promotion = Promotion(
            name=name,
            description=description or "",
            type=promotion_type.value,
            start_time=start_time,
            end_time=end_time,
            min_spending=_check_min_spending(min_spending),
            rate=_check_rate(rate),
            points=_check_points(points),
        )
        self.session.add(promotion)
        self.session.flush()
        logger.info(
            "promotion_created",
            extra={"promotion_id": promotion.id, "promotion_type": promotion_type.value},
        )
        return PromotionInfo.from_model(promotion)

    def update(self, promotion_id: int, **fields: Any) -> PromotionInfo:
        """
        Edit a promotion that has not started yet.

        None values are ignored.  Unknown field names are rejected.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise InvalidFieldError(
                "fields", sorted(unknown), "not updatable"
            )
        changes = {k: v for k, v in fields.items() if v is not None}
        if not changes:
            raise InvalidFieldError("fields", list(fields), "no values to update")

        promotion = self._load(promotion_id)
        now = self._clock.now()
        if promotion.end_time <= now:
            raise PromotionLockedError(promotion_id, "promotion has ended")
        if promotion.start_time <= now:
            raise PromotionLockedError(promotion_id, "promotion has started")

        if "name" in changes:
            _check_name(changes["name"])
            promotion.name = changes["name"]
        if "description" in changes:
            promotion.description = str(changes["description"])
        if "type" in changes:
            promotion.type = parse_promotion_type(changes["type"]).value

        start = changes.get("start_time", promotion.start_time)
        end = changes.get("end_time", promotion.end_time)
        if "start_time" in changes and start < now:
            raise InvalidFieldError("start_time", start, "cannot be in the past")
        if "end_time" in changes and end < now:
            raise InvalidFieldError("end_time", end, "cannot be in the past")
        if end <= start:
            raise InvalidFieldError("end_time", end, "must be after start_time")
        promotion.start_time = start
        promotion.end_time = end

        if "min_spending" in changes:
            promotion.min_spending = _check_min_spending(changes["min_spending"])
        if "rate" in changes:
            promotion.rate = _check_rate(changes["rate"])
        if "points" in changes:
            promotion.points = _check_points(changes["points"])

        self.session.flush()
        logger.info(
            "promotion_updated",
            extra={"promotion_id": promotion_id, "fields": sorted(changes)},
        )
        return PromotionInfo.from_model(promotion)

    def delete(self, promotion_id: int) -> None:
        promotion = self._load(promotion_id)
        if promotion.start_time <= self._clock.now():
            raise PromotionLockedError(promotion_id, "promotion has started")
        if self._is_referenced(promotion_id):
            raise PromotionLockedError(promotion_id, "promotion is referenced by transactions")
        self.session.delete(promotion)
        self.session.flush()
        logger.info("promotion_deleted", extra={"promotion_id": promotion_id})

    def _is_referenced(self, promotion_id: int) -> bool:
        linked = select(TransactionPromotion.id).where(
            TransactionPromotion.promotion_id == promotion_id
        )
        used = select(PromotionUse.id).where(PromotionUse.promotion_id == promotion_id)
        return bool(
            self.session.scalar(select(linked.exists()))
            or self.session.scalar(select(used.exists()))
        )

    def _load(self, promotion_id: int) -> Promotion:
        promotion = self.session.get(Promotion, promotion_id)
        if promotion is None:
            raise PromotionNotFoundError(promotion_id)
        return promotion


def _check_name(name: Any) -> None:
    if not isinstance(name, str) or not name.strip():
        raise InvalidFieldError("name", name, "must be a non-empty string")


def _check_min_spending(value: Any) -> Decimal | None:
    if value is None:
        return None
    try:
        amount = to_decimal(value)
    except ValueError:
        raise InvalidAmountError("min_spending", value, "must be a number") from None
    if not amount.is_finite() or amount < 0:
        raise InvalidAmountError("min_spending", value, "must be zero or positive")
    return amount


def _check_rate(value: Any) -> Decimal | None:
    if value is None:
        return None
    try:
        rate = to_decimal(value)
    except ValueError:
        raise InvalidAmountError("rate", value, "must be a number") from None
    if not rate.is_finite() or rate <= 0:
        raise InvalidAmountError("rate", value, "must be positive")
    return rate


def _check_points(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidAmountError("points", value, "must be a non-negative integer")
    return value
