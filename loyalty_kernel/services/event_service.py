"""
EventService -- event lifecycle and roster maintenance.

Responsibility:
    Creates, publishes and deletes events and manages organizer / guest
    membership.  Budget arithmetic is delegated to EventPointPool.

Architecture position:
    Kernel > Services.  LedgerEngine asks it who the guests and organizers
    of an event are; the HTTP layer calls the maintenance methods.

Invariants enforced:
    - An account is never both organizer and guest of the same event.
    - Guests cannot be added beyond capacity.
    - Rosters are frozen once the event has ended.
    - Published events cannot be deleted.
"""

from datetime import datetime

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from loyalty_kernel.domain.clock import Clock, SystemClock
from loyalty_kernel.domain.dtos import EventInfo
from loyalty_kernel.exceptions import (
    EventCapacityError,
    EventEndedError,
    EventNotFoundError,
    EventPublishedError,
    InvalidAmountError,
    InvalidFieldError,
    MembershipNotFoundError,
    OrganizerGuestConflictError,
)
from loyalty_kernel.logging_config import get_logger
from loyalty_kernel.models.event import Event, EventGuest, EventOrganizer
from loyalty_kernel.services.account_service import AccountService
from loyalty_kernel.services.base import BaseService
from loyalty_kernel.services.event_pool import EventPointPool

logger = get_logger("services.event")


class EventService(BaseService[Event]):

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._accounts = AccountService(session, self._clock)
        self._pool = EventPointPool(session)

    def create_event(
        self,
        name: str,
        description: str,
        location: str,
        start_time: datetime,
        end_time: datetime,
        points: int,
        capacity: int | None = None,
    ) -> EventInfo:
        for field_name, value in (
            ("name", name),
            ("description", description),
            ("location", location),
        ):
            if not isinstance(value, str) or not value.strip():
                raise InvalidFieldError(field_name, value, "is required")
        if end_time <= start_time:
            raise InvalidFieldError("end_time", end_time, "must be after start_time")
        if isinstance(points, bool) or not isinstance(points, int) or points <= 0:
            raise InvalidAmountError("points", points, "must be a positive integer")
        if capacity is not None and (
            isinstance(capacity, bool) or not isinstance(capacity, int) or capacity <= 0
        ):
            raise InvalidAmountError("capacity", capacity, "must be a positive integer or None")

        event = Event(
            name=name,
            description=description,
            location=location,
            start_time=start_time,
            end_time=end_time,
            capacity=capacity,
            points=points,
            points_remain=points,
            points_awarded=0,
            published=False,
        )
        self.session.add(event)
        self.session.flush()
        logger.info("event_created", extra={"event_id": event.id, "points": points})
        return EventInfo.from_model(event)

    def get(self, event_id: int) -> EventInfo:
        return EventInfo.from_model(self._load(event_id, fresh=True))

    def publish(self, event_id: int) -> EventInfo:
        event = self._load(event_id)
        if not event.published:
            event.published = True
            self.session.flush()
            logger.info("event_published", extra={"event_id": event_id})
        return EventInfo.from_model(event)

    def set_budget(self, event_id: int, new_points: int) -> EventInfo:
        return self._pool.set_budget(event_id, new_points)

    def delete_event(self, event_id: int) -> None:
        event = self._load(event_id)
        if event.published:
            raise EventPublishedError(event_id)
        self.session.execute(delete(EventGuest).where(EventGuest.event_id == event_id))
        self.session.execute(
            delete(EventOrganizer).where(EventOrganizer.event_id == event_id)
        )
        self.session.delete(event)
        self.session.flush()
        logger.info("event_deleted", extra={"event_id": event_id})

    # ------------------------------------------------------------------
    # Roster
    # ------------------------------------------------------------------

    def add_organizer(self, event_id: int, account_ref: int | str) -> None:
        """Idempotent; rejected for guests and for ended events."""
        event = self._load(event_id)
        self._require_not_ended(event)
        account = self._accounts.load(account_ref)
        if self._is_guest(event_id, account.id):
            raise OrganizerGuestConflictError(event_id, account.id, "guest")
        if self.is_organizer(event_id, account.id):
            return
        self.session.add(EventOrganizer(event_id=event_id, account_id=account.id))
        self.session.flush()
        logger.info(
            "event_organizer_added",
            extra={"event_id": event_id, "account_id": account.id},
        )

    def remove_organizer(self, event_id: int, account_id: int) -> None:
        self._load(event_id)
        self._accounts.load(account_id)
        result = self.session.execute(
            delete(EventOrganizer).where(
                EventOrganizer.event_id == event_id,
                EventOrganizer.account_id == account_id,
            )
        )
        if result.rowcount == 0:
            raise MembershipNotFoundError(event_id, account_id, "organizer")
        logger.info(
            "event_organizer_removed",
            extra={"event_id": event_id, "account_id": account_id},
        )

    def add_guest(self, event_id: int, account_ref: int | str) -> int:
        """
        Register a guest.  Idempotent for an existing guest.

        Returns the guest count after the call.
        """
        # Lock the event row so two concurrent registrations cannot both
        # take the last seat.
        event = self.session.get(
            Event, event_id, with_for_update=True, populate_existing=True
        )
        if event is None:
            raise EventNotFoundError(event_id)
        self._require_not_ended(event)
        account = self._accounts.load(account_ref)
        if self.is_organizer(event_id, account.id):
            raise OrganizerGuestConflictError(event_id, account.id, "organizer")
        if self._is_guest(event_id, account.id):
            return self.guest_count(event_id)
        if event.capacity is not None and self.guest_count(event_id) >= event.capacity:
            raise EventCapacityError(event_id, event.capacity)
        self.session.add(EventGuest(event_id=event_id, account_id=account.id))
        self.session.flush()
        logger.info(
            "event_guest_added",
            extra={"event_id": event_id, "account_id": account.id},
        )
        return self.guest_count(event_id)

    def remove_guest(self, event_id: int, account_id: int) -> None:
        event = self._load(event_id)
        self._require_not_ended(event)
        result = self.session.execute(
            delete(EventGuest).where(
                EventGuest.event_id == event_id,
                EventGuest.account_id == account_id,
            )
        )
        if result.rowcount == 0:
            raise MembershipNotFoundError(event_id, account_id, "guest")
        logger.info(
            "event_guest_removed",
            extra={"event_id": event_id, "account_id": account_id},
        )

    def is_organizer(self, event_id: int, account_id: int) -> bool:
        return (
            self.session.scalar(
                select(EventOrganizer.id).where(
                    EventOrganizer.event_id == event_id,
                    EventOrganizer.account_id == account_id,
                )
            )
            is not None
        )

    def guest_ids(self, event_id: int) -> list[int]:
        """Guest account ids in ascending order."""
        return list(
            self.session.scalars(
                select(EventGuest.account_id)
                .where(EventGuest.event_id == event_id)
                .order_by(EventGuest.account_id)
            )
        )

    def guest_count(self, event_id: int) -> int:
        return self.session.scalar(
            select(func.count()).select_from(EventGuest).where(EventGuest.event_id == event_id)
        )

    def _is_guest(self, event_id: int, account_id: int) -> bool:
        return (
            self.session.scalar(
                select(EventGuest.id).where(
                    EventGuest.event_id == event_id,
                    EventGuest.account_id == account_id,
                )
            )
            is not None
        )

    def _require_not_ended(self, event: Event) -> None:
        if self._clock.now() >= event.end_time:
            raise EventEndedError(event.id)

    def _load(self, event_id: int, fresh: bool = False) -> Event:
        event = self.session.get(Event, event_id, populate_existing=fresh)
        if event is None:
            raise EventNotFoundError(event_id)
        return event
