"""In-memory counter store emulating Redis INCR/EXPIRE/TTL.

Notes:
- Per-process only: running multiple workers gives each its own counters.
- Thread-safe: every operation runs under one lock, so increments are atomic
  exactly like the Redis command they stand in for.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from civicsync.adapters.counter_store.base import (
    TTL_MISSING,
    TTL_NO_EXPIRY,
    AbstractCounterStore,
)


@dataclass
class _Counter:
    value: int
    expires_at: float | None = None


class InMemoryCounterStore(AbstractCounterStore):
    """Counter store kept in a process-local dict.

    Expired keys are dropped lazily on access, which is observably the same
    as Redis removing them when their TTL elapses.
    """

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        """Initialize the store.

        Args:
            clock: Time source function returning UNIX time in seconds.
        """
        self._clock = clock
        self._lock = threading.RLock()
        self._counters: dict[str, _Counter] = {}

    def _live_counter(self, key: str, now: float) -> _Counter | None:
        counter = self._counters.get(key)
        if counter is None:
            return None
        if counter.expires_at is not None and counter.expires_at <= now:
            del self._counters[key]
            return None
        return counter

    async def incr(self, key: str) -> int:
        with self._lock:
            counter = self._live_counter(key, self._clock())
            if counter is None:
                counter = _Counter(value=0)
                self._counters[key] = counter
            counter.value += 1
            return counter.value

    async def expire(self, key: str, seconds: int) -> bool:
        with self._lock:
            now = self._clock()
            counter = self._live_counter(key, now)
            if counter is None:
                return False
            counter.expires_at = now + seconds
            return True

    async def ttl(self, key: str) -> int:
        with self._lock:
            now = self._clock()
            counter = self._live_counter(key, now)
            if counter is None:
                return TTL_MISSING
            if counter.expires_at is None:
                return TTL_NO_EXPIRY
            return int(math.ceil(counter.expires_at - now))
