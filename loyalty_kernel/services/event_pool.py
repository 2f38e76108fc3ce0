"""
EventPointPool -- per-event point budgets.

Responsibility:
    Draws down an event's unallocated points when guests are awarded and
    applies budget edits, both as single conditional UPDATEs.

Architecture position:
    Kernel > Services.  ``reserve`` is called by LedgerEngine.award_event
    inside the same UnitOfWork as the credits and event rows; budget edits
    come from the event maintenance path.

Invariants enforced:
    - points_remain + points_awarded == points after every statement.
    - reserve(total) succeeds only if points_remain >= total at the moment
      of the UPDATE; two concurrent awards can never jointly overdraw.
    - A budget decrease never drives points_remain below zero.

Failure modes:
    - EventNotFoundError: no such event.
    - EventBudgetExceededError: reservation larger than points_remain.
    - EventBudgetReductionError: budget decrease larger than points_remain.
"""

from sqlalchemy import select, update

from loyalty_kernel.domain.dtos import EventInfo
from loyalty_kernel.exceptions import (
    EventBudgetExceededError,
    EventBudgetReductionError,
    EventNotFoundError,
    InvalidAmountError,
)
from loyalty_kernel.logging_config import get_logger
from loyalty_kernel.models.event import Event
from loyalty_kernel.services.base import BaseService

logger = get_logger("services.event_pool")


class EventPointPool(BaseService[Event]):

    def reserve(self, event_id: int, total: int) -> None:
        """Move ``total`` points from points_remain to points_awarded."""
        if total <= 0:
            raise InvalidAmountError("total", total, "must be a positive integer")
        result = self.session.execute(
            update(Event)
            .where(Event.id == event_id, Event.points_remain >= total)
            .values(
                points_remain=Event.points_remain - total,
                points_awarded=Event.points_awarded + total,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            remaining = self._remaining(event_id)
            raise EventBudgetExceededError(event_id, total, remaining)
        logger.info(
            "event_points_reserved",
            extra={"event_id": event_id, "total": total},
        )

    def budget_delta(self, event_id: int, delta: int) -> None:
        """Change the budget by ``delta``; points_remain moves by the same delta."""
        if delta == 0:
            return
        stmt = update(Event).where(Event.id == event_id)
        if delta < 0:
            stmt = stmt.where(Event.points_remain >= -delta)
        result = self.session.execute(
            stmt.values(
                points=Event.points + delta,
                points_remain=Event.points_remain + delta,
            ).execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            remaining = self._remaining(event_id)
            raise EventBudgetReductionError(event_id, delta, remaining)
        logger.info(
            "event_budget_changed",
            extra={"event_id": event_id, "delta": delta},
        )

    def set_budget(self, event_id: int, new_points: int) -> EventInfo:
        """Set the total budget; the difference is applied to points_remain."""
        if isinstance(new_points, bool) or not isinstance(new_points, int) or new_points <= 0:
            raise InvalidAmountError("points", new_points, "must be a positive integer")
        event = self._load(event_id, fresh=True)
        self.budget_delta(event_id, new_points - event.points)
        return EventInfo.from_model(self._load(event_id, fresh=True))

    def check_conservation(self, event_id: int) -> bool:
        """True iff points_remain + points_awarded == points for the stored row."""
        event = self._load(event_id, fresh=True)
        return event.points_remain + event.points_awarded == event.points

    def _remaining(self, event_id: int) -> int:
        remaining = self.session.scalar(
            select(Event.points_remain).where(Event.id == event_id)
        )
        if remaining is None:
            raise EventNotFoundError(event_id)
        return remaining

    def _load(self, event_id: int, fresh: bool = False) -> Event:
        event = self.session.get(Event, event_id, populate_existing=fresh)
        if event is None:
            raise EventNotFoundError(event_id)
        return event
