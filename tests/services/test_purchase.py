"""
LedgerEngine.purchase: base award, automatic and one-time promotions,
suspicious cashiers, and validation before any write.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from loyalty_kernel.exceptions import (
    AccountNotFoundError,
    DuplicatePromotionIdError,
    InvalidAmountError,
    PermissionDeniedError,
    PromotionAlreadyUsedError,
    PromotionMinimumSpendError,
    PromotionNotActiveError,
    PromotionNotFoundError,
    PromotionNotOneTimeError,
)
from loyalty_kernel.models.transaction import TransactionKind


@pytest.fixture
def automatic_promo(promotion_catalog, deterministic_clock, session):
    """Automatic: +0.01 pt per cent spent on purchases of $10 or more."""
    now = deterministic_clock.now()
    promo = promotion_catalog.create(
        "Double Tuesday", "Extra points", "automatic",
        now, now + timedelta(days=7),
        min_spending=Decimal("10"), rate=Decimal("0.01"),
    )
    session.commit()
    return promo


@pytest.fixture
def one_time_promo(promotion_catalog, deterministic_clock, session):
    """One-time: +50 points on a purchase of $10 or more."""
    now = deterministic_clock.now()
    promo = promotion_catalog.create(
        "Welcome", "One-time bonus", "one-time",
        now, now + timedelta(days=7),
        min_spending=Decimal("10"), points=50,
    )
    session.commit()
    return promo


class TestBasePurchase:

    def test_awards_floor_of_spent_times_base_rate(self, ledger, cashier, customer, balance):
        result = ledger.purchase(cashier.id, customer.id, Decimal("19.99"))

        assert result.credited == 79
        assert result.record.kind == TransactionKind.PURCHASE
        assert result.record.awarded == 79
        assert result.record.spent == Decimal("19.99")
        assert result.record.created_by_id == cashier.id
        assert result.record.account_id == customer.id
        assert result.record.utorid == customer.utorid
        assert result.record.suspicious is False
        assert result.record.processed is None
        assert balance(customer.id) == 79

    def test_customer_by_utorid(self, ledger, cashier, customer, balance):
        ledger.purchase(cashier.id, customer.utorid, Decimal("20.00"))
        assert balance(customer.id) == 80

    def test_float_spent_is_read_exactly(self, ledger, cashier, customer):
        result = ledger.purchase(cashier.id, customer.id, 19.99)
        assert result.record.spent == Decimal("19.99")
        assert result.credited == 79

    def test_remark_is_stored(self, ledger, cashier, customer):
        result = ledger.purchase(cashier.id, customer.id, Decimal("1.00"), remark="coffee")
        assert result.record.remark == "coffee"

    def test_manager_may_ring_purchases(self, ledger, manager, customer, balance):
        ledger.purchase(manager.id, customer.id, Decimal("5.00"))
        assert balance(customer.id) == 20

    def test_regular_account_cannot_ring_purchases(
        self, ledger, create_account, customer, balance, ledger_selector
    ):
        regular = create_account()
        with pytest.raises(PermissionDeniedError):
            ledger.purchase(regular.id, customer.id, Decimal("20.00"))
        assert balance(customer.id) == 0
        assert ledger_selector.transactions_for_account(customer.id) == []

    def test_unknown_customer(self, ledger, cashier):
        with pytest.raises(AccountNotFoundError):
            ledger.purchase(cashier.id, "nobody99", Decimal("20.00"))

    @pytest.mark.parametrize(
        "spent",
        [0, -5, Decimal("-0.01"), "abc", Decimal("100000.01"), Decimal("1.234"), True, "NaN"],
    )
    def test_invalid_spent_rejected(self, ledger, cashier, customer, balance, spent):
        with pytest.raises(InvalidAmountError):
            ledger.purchase(cashier.id, customer.id, spent)
        assert balance(customer.id) == 0

    def test_max_spent_is_allowed(self, ledger, cashier, customer, balance):
        ledger.purchase(cashier.id, customer.id, Decimal("100000"))
        assert balance(customer.id) == 400000


class TestSuspiciousCashier:
    """A flagged cashier's purchases are recorded but credit nothing."""

    def test_twenty_dollars_records_80_credits_0(
        self, ledger, account_service, cashier, customer, balance, session
    ):
        account_service.set_suspicious(cashier.id, True)
        session.commit()

        result = ledger.purchase(cashier.id, customer.id, Decimal("20.00"))

        assert result.record.awarded == 80
        assert result.record.suspicious is True
        assert result.credited == 0
        assert balance(customer.id) == 0

    def test_clearing_the_flag_restores_the_points(
        self, ledger, account_service, cashier, manager, customer, balance, session
    ):
        account_service.set_suspicious(cashier.id, True)
        session.commit()
        result = ledger.purchase(cashier.id, customer.id, Decimal("20.00"))

        cleared = ledger.set_suspicious(manager.id, result.record.id, False)

        assert cleared.changed is True
        assert cleared.balance_delta == 80
        assert balance(customer.id) == 80


class TestAutomaticPromotions:

    def test_applied_when_minimum_met(self, ledger, cashier, customer, automatic_promo, balance):
        result = ledger.purchase(cashier.id, customer.id, Decimal("20.00"))
        # 80 base + 20.00 * 0.01 * 100
        assert result.credited == 100
        assert balance(customer.id) == 100

    def test_not_applied_below_minimum(self, ledger, cashier, customer, automatic_promo):
        result = ledger.purchase(cashier.id, customer.id, Decimal("9.99"))
        assert result.credited == 39

    def test_repeatable(self, ledger, cashier, customer, automatic_promo, balance):
        ledger.purchase(cashier.id, customer.id, Decimal("20.00"))
        ledger.purchase(cashier.id, customer.id, Decimal("20.00"))
        assert balance(customer.id) == 200

    def test_not_applied_after_window(
        self, ledger, cashier, customer, automatic_promo, deterministic_clock
    ):
        deterministic_clock.advance(days=8)
        result = ledger.purchase(cashier.id, customer.id, Decimal("20.00"))
        assert result.credited == 80

    def test_automatic_ids_are_not_recorded(self, ledger, cashier, customer, automatic_promo):
        result = ledger.purchase(cashier.id, customer.id, Decimal("20.00"))
        assert result.record.promotion_ids == ()


class TestOneTimePromotions:

    def test_applied_and_recorded(self, ledger, cashier, customer, one_time_promo, balance):
        result = ledger.purchase(
            cashier.id, customer.id, Decimal("20.00"), [one_time_promo.id]
        )
        assert result.credited == 130
        assert result.record.promotion_ids == (one_time_promo.id,)
        assert balance(customer.id) == 130

    def test_exactly_once_per_account(
        self, ledger, cashier, customer, one_time_promo, balance, ledger_selector
    ):
        ledger.purchase(cashier.id, customer.id, Decimal("20.00"), [one_time_promo.id])

        with pytest.raises(PromotionAlreadyUsedError):
            ledger.purchase(cashier.id, customer.id, Decimal("20.00"), [one_time_promo.id])

        assert balance(customer.id) == 130
        assert len(ledger_selector.transactions_for_account(customer.id)) == 1

    def test_other_accounts_may_still_use_it(
        self, ledger, cashier, customer, create_account, one_time_promo, balance
    ):
        other = create_account()
        ledger.purchase(cashier.id, customer.id, Decimal("20.00"), [one_time_promo.id])
        ledger.purchase(cashier.id, other.id, Decimal("20.00"), [one_time_promo.id])
        assert balance(other.id) == 130

    def test_minimum_not_met(self, ledger, cashier, customer, one_time_promo, promotion_catalog):
        with pytest.raises(PromotionMinimumSpendError):
            ledger.purchase(cashier.id, customer.id, Decimal("5.00"), [one_time_promo.id])
        assert not promotion_catalog.is_used(customer.id, one_time_promo.id)

    def test_automatic_promotion_id_rejected(
        self, ledger, cashier, customer, automatic_promo, balance
    ):
        with pytest.raises(PromotionNotOneTimeError):
            ledger.purchase(cashier.id, customer.id, Decimal("20.00"), [automatic_promo.id])
        assert balance(customer.id) == 0

    def test_unknown_promotion(self, ledger, cashier, customer):
        with pytest.raises(PromotionNotFoundError):
            ledger.purchase(cashier.id, customer.id, Decimal("20.00"), [999999])

    def test_duplicate_ids(self, ledger, cashier, customer, one_time_promo):
        with pytest.raises(DuplicatePromotionIdError):
            ledger.purchase(
                cashier.id, customer.id, Decimal("20.00"),
                [one_time_promo.id, one_time_promo.id],
            )

    def test_expired_promotion(
        self, ledger, cashier, customer, one_time_promo, deterministic_clock
    ):
        deterministic_clock.advance(days=8)
        with pytest.raises(PromotionNotActiveError):
            ledger.purchase(cashier.id, customer.id, Decimal("20.00"), [one_time_promo.id])

    def test_failed_purchase_does_not_consume(
        self, ledger, cashier, customer, one_time_promo, promotion_catalog, balance
    ):
        with pytest.raises(PromotionNotFoundError):
            ledger.purchase(
                cashier.id, customer.id, Decimal("20.00"), [one_time_promo.id, 999999]
            )
        assert not promotion_catalog.is_used(customer.id, one_time_promo.id)
        assert balance(customer.id) == 0


class TestStoredPurchase:

    def test_spent_survives_round_trip(self, ledger, cashier, customer, ledger_selector, session):
        result = ledger.purchase(cashier.id, customer.id, Decimal("12.34"))
        session.expire_all()
        stored = ledger_selector.get_transaction(result.record.id)
        assert stored.spent == Decimal("12.34")
        assert stored.awarded == 49
