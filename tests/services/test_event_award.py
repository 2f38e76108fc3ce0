"""Event awards: pool reservation, roster checks, all-or-nothing credit."""

from datetime import timedelta

import pytest

from loyalty_kernel.exceptions import (
    EventBudgetExceededError,
    EventNotFoundError,
    InvalidAmountError,
    NoGuestsError,
    NotAGuestError,
    PermissionDeniedError,
)
from loyalty_kernel.models.transaction import TransactionKind


@pytest.fixture
def make_event(event_service, deterministic_clock, session):
    def _make(points: int = 100, guests=(), organizers=(), capacity=None):
        now = deterministic_clock.now()
        info = event_service.create_event(
            "Career Fair",
            "Meet employers",
            "Bahen Centre",
            now + timedelta(hours=1),
            now + timedelta(hours=4),
            points,
            capacity=capacity,
        )
        for account in organizers:
            event_service.add_organizer(info.id, account.id)
        for account in guests:
            event_service.add_guest(info.id, account.id)
        session.commit()
        return info

    return _make


class TestAwardAllGuests:

    def test_every_guest_receives_points(
        self, ledger, manager, create_account, make_event, balance, event_service
    ):
        guests = [create_account() for _ in range(3)]
        event = make_event(points=100, guests=guests)

        result = ledger.award_event(manager.id, event.id, 20, remark="thanks")

        assert result.total == 60
        assert [r.account_id for r in result.records] == sorted(g.id for g in guests)
        for record in result.records:
            assert record.kind == TransactionKind.EVENT
            assert record.awarded == 20
            assert record.related_id == event.id
            assert record.created_by_id == manager.id
        for guest in guests:
            assert balance(guest.id) == 20

        pool = event_service.get(event.id)
        assert pool.points_remain == 40
        assert pool.points_awarded == 60
        assert pool.points_remain + pool.points_awarded == pool.points

    def test_over_budget_awards_nobody(
        self, ledger, manager, create_account, make_event, balance, event_service,
        ledger_selector,
    ):
        guests = [create_account() for _ in range(3)]
        event = make_event(points=50, guests=guests)

        with pytest.raises(EventBudgetExceededError) as exc_info:
            ledger.award_event(manager.id, event.id, 20)

        assert exc_info.value.remaining == 50
        for guest in guests:
            assert balance(guest.id) == 0
            assert ledger_selector.transactions_for_account(guest.id) == []
        pool = event_service.get(event.id)
        assert pool.points_remain == 50
        assert pool.points_awarded == 0

    def test_no_guests(self, ledger, manager, make_event):
        event = make_event()
        with pytest.raises(NoGuestsError):
            ledger.award_event(manager.id, event.id, 10)

    def test_budget_can_be_spent_exactly(
        self, ledger, manager, create_account, make_event, event_service
    ):
        guests = [create_account() for _ in range(2)]
        event = make_event(points=40, guests=guests)
        ledger.award_event(manager.id, event.id, 20)
        assert event_service.get(event.id).points_remain == 0
        with pytest.raises(EventBudgetExceededError):
            ledger.award_event(manager.id, event.id, 1, recipient=guests[0].id)


class TestAwardSingleGuest:

    def test_single_guest(self, ledger, manager, create_account, make_event, balance):
        guest, other = create_account(), create_account()
        event = make_event(points=100, guests=[guest, other])

        result = ledger.award_event(manager.id, event.id, 15, recipient=guest.utorid)

        assert len(result.records) == 1
        assert balance(guest.id) == 15
        assert balance(other.id) == 0

    def test_not_a_guest(self, ledger, manager, create_account, make_event):
        guest, stranger = create_account(), create_account()
        event = make_event(guests=[guest])
        with pytest.raises(NotAGuestError):
            ledger.award_event(manager.id, event.id, 10, recipient=stranger.id)


class TestAwardPermissions:

    def test_organizer_may_award(self, ledger, create_account, make_event, balance):
        organizer, guest = create_account(), create_account()
        event = make_event(guests=[guest], organizers=[organizer])

        ledger.award_event(organizer.id, event.id, 10)

        assert balance(guest.id) == 10

    def test_regular_non_organizer_denied(self, ledger, create_account, make_event):
        outsider, guest = create_account(), create_account()
        event = make_event(guests=[guest])
        with pytest.raises(PermissionDeniedError):
            ledger.award_event(outsider.id, event.id, 10)

    def test_cashier_non_organizer_denied(self, ledger, cashier, create_account, make_event):
        guest = create_account()
        event = make_event(guests=[guest])
        with pytest.raises(PermissionDeniedError):
            ledger.award_event(cashier.id, event.id, 10)

    def test_unknown_event(self, ledger, manager):
        with pytest.raises(EventNotFoundError):
            ledger.award_event(manager.id, 987654, 10)

    @pytest.mark.parametrize("points", [0, -5, 1.5, True])
    def test_points_must_be_positive_integer(
        self, ledger, manager, create_account, make_event, points
    ):
        event = make_event(guests=[create_account()])
        with pytest.raises(InvalidAmountError):
            ledger.award_event(manager.id, event.id, points)
