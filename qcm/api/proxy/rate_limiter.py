"""Fixed-window rate limiting for the edge proxy.

Counts requests per client address in two fixed windows (per minute and
per hour). Counters live in a `CounterStore`; the in-memory store below is
process-local, lost on restart and approximate under concurrent
invocations. A multi-instance deployment plugs in a shared store
implementing the same two methods.
"""

import time
from typing import Callable, Protocol


class CounterStore(Protocol):
    def get(self, key: str) -> int: ...

    def increment(self, key: str, ttl_seconds: float) -> int: ...


class InMemoryCounterStore:
    """
    Dict-backed counters that expire `ttl_seconds` after their first
    increment. Expired counters are purged on access, and every
    `cleanup_interval` seconds all expired counters are swept.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        cleanup_interval: float = 60.0,
    ):
        self._clock = clock
        self.cleanup_interval = cleanup_interval
        self._counters: dict[str, tuple[int, float]] = {}
        self._last_cleanup = clock()

    def get(self, key: str) -> int:
        entry = self._counters.get(key)
        if entry is None:
            return 0
        count, expires_at = entry
        if self._clock() >= expires_at:
            del self._counters[key]
            return 0
        return count

    def increment(self, key: str, ttl_seconds: float) -> int:
        # Old windows are never read again, so sweep them periodically.
        if self._clock() - self._last_cleanup >= self.cleanup_interval:
            self.purge_expired()

        count = self.get(key)
        if count == 0:
            expires_at = self._clock() + ttl_seconds
        else:
            expires_at = self._counters[key][1]
        self._counters[key] = (count + 1, expires_at)
        return count + 1

    def purge_expired(self) -> None:
        now = self._clock()
        self._last_cleanup = now
        expired = [k for k, (_, exp) in self._counters.items() if now >= exp]
        for key in expired:
            del self._counters[key]

    def __len__(self) -> int:
        return len(self._counters)


class FixedWindowRateLimiter:
    """
    Allows at most `requests_per_minute` and `requests_per_hour` requests
    per identifier. Windows are aligned on wall-clock minutes and hours.
    """

    def __init__(
        self,
        store: CounterStore,
        requests_per_minute: int = 20,
        requests_per_hour: int = 100,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.requests_per_minute = requests_per_minute
        self.requests_per_hour = requests_per_hour
        self._clock = clock

    def _keys(self, identifier: str) -> tuple[str, str]:
        now = self._clock()
        minute = int(now // 60)
        hour = int(now // 3600)
        return f"{identifier}:{minute}", f"{identifier}:{hour}:hour"

    def is_allowed(self, identifier: str) -> bool:
        """
        Records the request and returns True, or returns False without
        recording it when either window is already full.
        """
        minute_key, hour_key = self._keys(identifier)

        if (
            self.store.get(minute_key) >= self.requests_per_minute
            or self.store.get(hour_key) >= self.requests_per_hour
        ):
            return False

        self.store.increment(minute_key, 60)
        self.store.increment(hour_key, 3600)
        return True
