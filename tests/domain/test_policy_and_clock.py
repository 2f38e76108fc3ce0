"""LedgerPolicy validation and the deterministic clock."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from loyalty_kernel.domain.clock import DeterministicClock, SystemClock
from loyalty_kernel.domain.policy import LedgerPolicy, PolicyMode


class TestLedgerPolicy:

    def test_defaults(self):
        policy = LedgerPolicy()
        assert policy.base_rate == Decimal("4")
        assert policy.max_purchase_spent == Decimal("100000")
        assert not policy.strict_redemption
        assert not policy.strict_clawback

    def test_strict_modes(self):
        policy = LedgerPolicy(
            redemption_processing=PolicyMode.STRICT,
            suspicious_clawback=PolicyMode.STRICT,
        )
        assert policy.strict_redemption
        assert policy.strict_clawback

    @pytest.mark.parametrize("rate", [Decimal("0"), Decimal("-1")])
    def test_base_rate_must_be_positive(self, rate):
        with pytest.raises(ValueError, match="base_rate"):
            LedgerPolicy(base_rate=rate)

    def test_max_purchase_must_be_positive(self):
        with pytest.raises(ValueError, match="max_purchase_spent"):
            LedgerPolicy(max_purchase_spent=Decimal("0"))


class TestClocks:

    def test_system_clock_is_utc_aware(self):
        now = SystemClock().now()
        assert now.tzinfo is not None
        assert now.utcoffset() == timedelta(0)

    def test_deterministic_clock_is_pinned(self):
        clock = DeterministicClock()
        assert clock.now() == clock.now()
        assert clock.now() == datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)

    def test_advance_returns_new_time(self):
        clock = DeterministicClock()
        start = clock.now()
        moved = clock.advance(minutes=5)
        assert moved == start + timedelta(minutes=5)
        assert clock.now() == moved
        assert clock.advance(30) == moved + timedelta(seconds=30)
