"""
Per-caller request throttle.

Limits an action (password-reset requests) to one call per window for
each key, usually the caller's IP address or utorid.  State is held per
instance in a ``cachetools.TTLCache`` whose timer reads the injected
Clock, so a key drops out of the store once its window has passed.
"""

import threading

from cachetools import TTLCache

from loyalty_kernel.domain.clock import Clock, SystemClock
from loyalty_kernel.exceptions import ThrottledError
from loyalty_kernel.logging_config import get_logger

logger = get_logger("utils.throttle")

DEFAULT_WINDOW_SECONDS = 60
DEFAULT_MAX_KEYS = 10_000


class RequestThrottle:
    """
    One accepted request per key per window.

    At most ``max_keys`` keys are tracked at once.  When the store is full
    the least recently used key is evicted early.

    Usage:
        throttle = RequestThrottle(clock, window_seconds=60)
        throttle.check_and_record(request_ip)   # raises ThrottledError
    """

    def __init__(
        self,
        clock: Clock | None = None,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        max_keys: int = DEFAULT_MAX_KEYS,
    ):
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        if max_keys <= 0:
            raise ValueError("max_keys must be positive")
        self._clock = clock or SystemClock()
        self._window = window_seconds
        # key -> epoch seconds of the accepted request
        self._accepted: TTLCache = TTLCache(
            maxsize=max_keys,
            ttl=window_seconds,
            timer=self._timestamp,
        )
        self._lock = threading.Lock()

    def _timestamp(self) -> float:
        return self._clock.now().timestamp()

    @property
    def window_seconds(self) -> float:
        return self._window

    def __len__(self) -> int:
        """Number of keys still inside their window."""
        with self._lock:
            self._accepted.expire()
            return len(self._accepted)

    def check_and_record(self, key: str) -> None:
        """Record a request for ``key`` or raise ThrottledError inside the window.

        A rejected request does not extend the window.
        """
        now = self._timestamp()
        with self._lock:
            accepted_at = self._accepted.get(key)
            if accepted_at is not None:
                retry_after = self._window - (now - accepted_at)
                logger.warning(
                    "request_throttled",
                    extra={"throttle_key": key, "retry_after_seconds": retry_after},
                )
                raise ThrottledError(key, retry_after)
            self._accepted[key] = now

    def reset(self, key: str | None = None) -> None:
        """Forget one key, or all keys when ``key`` is None."""
        with self._lock:
            if key is None:
                self._accepted.clear()
            else:
                self._accepted.pop(key, None)
