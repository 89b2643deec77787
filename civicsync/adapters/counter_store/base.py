"""Counter store interfaces.

The contract mirrors the Redis primitives the rate limiter relies on. Each
method is a single round trip and may fail independently.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

# Values returned by ttl(), matching Redis TTL semantics.
TTL_MISSING = -2
TTL_NO_EXPIRY = -1


class CounterStoreError(Exception):
    """Raised when the counter store cannot complete an operation."""


class AbstractCounterStore(ABC):
    """Interface for shared, expiring integer counters."""

    @abstractmethod
    async def incr(self, key: str) -> int:
        """Atomically increment the counter and return its new value.

        A missing (or expired) key is created with value 1 and no expiry.

        Raises:
            CounterStoreError: If the store is unreachable.
        """
        raise NotImplementedError

    @abstractmethod
    async def expire(self, key: str, seconds: int) -> bool:
        """Set the key's time-to-live.

        Returns:
            True if the key exists and the expiry was applied.

        Raises:
            CounterStoreError: If the store is unreachable.
        """
        raise NotImplementedError

    @abstractmethod
    async def ttl(self, key: str) -> int:
        """Return remaining seconds to live.

        Returns:
            Seconds remaining, TTL_NO_EXPIRY when the key has no expiry, or
            TTL_MISSING when the key does not exist.

        Raises:
            CounterStoreError: If the store is unreachable.
        """
        raise NotImplementedError

    async def ping(self) -> bool:
        """Check connectivity (used by the readiness route)."""
        return True

    async def close(self) -> None:
        """Release connections held by the store."""
        return None
