"""Request pacing for REST venues: a token bucket with a deadline, and 429 retry delays."""

from __future__ import annotations

import time
from collections.abc import Callable
from threading import Lock


class TokenBucket:
    """Refills ``rate`` request tokens per second, bursting up to ``capacity``.

    ``acquire`` sleeps exactly as long as the refill needs instead of polling, and
    gives up once ``timeout`` seconds would be exceeded. ``clock`` and ``sleep`` are
    injectable so tests can drive time by hand.
    """

    def __init__(
        self,
        rate: float = 10.0,
        capacity: int | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if rate <= 0:
            raise ValueError(f"rate must be positive, was {rate}")
        self.rate = rate
        self.capacity = capacity or max(1, int(rate * 2))
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(self.capacity)
        self._refilled_at = clock()
        self._lock = Lock()

    def _take(self, n: int) -> float:
        """Take ``n`` tokens if available; otherwise return the seconds until they are."""
        with self._lock:
            now = self._clock()
            self._tokens = min(self.capacity, self._tokens + (now - self._refilled_at) * self.rate)
            self._refilled_at = now
            if self._tokens >= n:
                self._tokens -= n
                return 0.0
            return (n - self._tokens) / self.rate

    def acquire(self, n: int = 1, timeout: float | None = None) -> bool:
        """Block until ``n`` tokens are taken. False if that would take longer than ``timeout``."""
        if n > self.capacity:
            raise ValueError(f"cannot take {n} tokens from a bucket of {self.capacity}")
        deadline = None if timeout is None else self._clock() + timeout
        while True:
            wait = self._take(n)
            if wait == 0.0:
                return True
            if deadline is not None and self._clock() + wait > deadline:
                return False
            self._sleep(wait)


def backoff_delay(attempt: int, retry_after: str | None = None, base_delay: float = 0.5, max_delay: float = 30.0) -> float:
    """Seconds to wait before retry ``attempt`` (0-based) after a 429.

    A numeric ``Retry-After`` header wins over the exponential schedule (the HTTP-date
    form is ignored); both are capped at ``max_delay``.
    """
    if retry_after and retry_after.strip().replace(".", "", 1).isdigit():
        return min(max_delay, float(retry_after))
    return min(max_delay, base_delay * (2**attempt))
