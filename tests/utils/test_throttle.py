"""RequestThrottle: one accepted request per key per window."""

import pytest

from loyalty_kernel.exceptions import ThrottledError
from loyalty_kernel.utils import RequestThrottle


@pytest.fixture
def throttle(deterministic_clock):
    return RequestThrottle(deterministic_clock, window_seconds=60)


class TestRequestThrottle:

    def test_first_request_accepted(self, throttle):
        throttle.check_and_record("10.0.0.1")

    def test_second_request_inside_window(self, throttle, deterministic_clock):
        throttle.check_and_record("10.0.0.1")
        deterministic_clock.advance(20)
        with pytest.raises(ThrottledError) as exc_info:
            throttle.check_and_record("10.0.0.1")
        assert exc_info.value.retry_after_seconds == pytest.approx(40)
        assert exc_info.value.key == "10.0.0.1"

    def test_window_expires(self, throttle, deterministic_clock):
        throttle.check_and_record("10.0.0.1")
        deterministic_clock.advance(60)
        throttle.check_and_record("10.0.0.1")

    def test_rejection_does_not_extend_window(self, throttle, deterministic_clock):
        throttle.check_and_record("10.0.0.1")
        deterministic_clock.advance(50)
        with pytest.raises(ThrottledError):
            throttle.check_and_record("10.0.0.1")
        deterministic_clock.advance(10)
        throttle.check_and_record("10.0.0.1")

    def test_keys_are_independent(self, throttle):
        throttle.check_and_record("10.0.0.1")
        throttle.check_and_record("10.0.0.2")

    def test_reset(self, throttle):
        throttle.check_and_record("10.0.0.1")
        throttle.reset("10.0.0.1")
        throttle.check_and_record("10.0.0.1")
        throttle.reset()
        throttle.check_and_record("10.0.0.1")

    def test_rejection_is_logged(self, throttle, captured_logs):
        throttle.check_and_record("alice001")
        with pytest.raises(ThrottledError):
            throttle.check_and_record("alice001")
        [record] = [r for r in captured_logs() if r["message"] == "request_throttled"]
        assert record["throttle_key"] == "alice001"

    @pytest.mark.parametrize("window", [0, -1])
    def test_window_must_be_positive(self, deterministic_clock, window):
        with pytest.raises(ValueError):
            RequestThrottle(deterministic_clock, window_seconds=window)

    def test_max_keys_must_be_positive(self, deterministic_clock):
        with pytest.raises(ValueError):
            RequestThrottle(deterministic_clock, max_keys=0)


class TestThrottleStore:

    def test_expired_keys_are_dropped(self, throttle, deterministic_clock):
        for i in range(1000):
            throttle.check_and_record(f"10.0.{i // 256}.{i % 256}")
        assert len(throttle) == 1000

        deterministic_clock.advance(3600)
        throttle.check_and_record("192.168.0.1")

        assert len(throttle) == 1

    def test_live_keys_survive_partial_window(self, throttle, deterministic_clock):
        throttle.check_and_record("10.0.0.1")
        deterministic_clock.advance(30)
        throttle.check_and_record("10.0.0.2")
        deterministic_clock.advance(30)

        assert len(throttle) == 1
        with pytest.raises(ThrottledError):
            throttle.check_and_record("10.0.0.2")

    def test_store_is_bounded(self, deterministic_clock):
        throttle = RequestThrottle(deterministic_clock, window_seconds=60, max_keys=3)
        for key in ("a0000001", "a0000002", "a0000003", "a0000004"):
            throttle.check_and_record(key)
        assert len(throttle) == 3
