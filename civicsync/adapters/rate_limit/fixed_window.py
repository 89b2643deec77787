"""Fixed-window rate limiter over a shared counter store.

Accounting per ``{namespace}:{principal}`` key:

1. ``INCR`` the key; the post-increment value comes back in the same atomic
   round trip, so concurrent workers never under-count.
2. The increment that creates the key (value 1) sets the expiry to the
   window length; the key disappears when the window ends.
3. Values above the limit are rejected with the key's remaining TTL as the
   retry hint. Rejected requests still count.

The window is fixed, so a client can burst up to twice the limit around the
reset instant. Switching to a sliding window would change retry-after
semantics, so that burst is accepted.

A worker that dies between INCR and EXPIRE leaves a key without expiry. The
denial path repairs it (see ``_retry_after``) so such a key can never block a
principal forever.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, TypeVar

from civicsync.adapters.counter_store.base import (
    TTL_MISSING,
    TTL_NO_EXPIRY,
    AbstractCounterStore,
    CounterStoreError,
)
from civicsync.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from civicsync.core.errors import RateLimiterUnavailableError
from civicsync.core.logging import hash_for_log

logger = logging.getLogger(__name__)

T = TypeVar("T")


def build_counter_key(namespace: str, principal_id: str) -> str:
    """Build the counter key for a principal within a namespace."""
    return f"{namespace}:{principal_id}"


class FixedWindowRateLimiter(AbstractRateLimiter):
    """Distributed fixed-window limiter.

    Fails closed: when the counter store is unreachable or a round trip
    exceeds its deadline, ``admit`` raises RateLimiterUnavailableError
    instead of letting the request through.
    """

    def __init__(
        self,
        store: AbstractCounterStore,
        *,
        timeout_seconds: float = 2.0,
        fallback_retry_after_seconds: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the limiter.

        Args:
            store: Shared counter store.
            timeout_seconds: Deadline for each counter store round trip.
            fallback_retry_after_seconds: Retry hint used when the key's TTL
                cannot be read; defaults to the window length.
            clock: Time source function returning UNIX time in seconds.

        Raises:
            ValueError: If timeout_seconds or the fallback is not positive.
        """
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        if fallback_retry_after_seconds is not None and fallback_retry_after_seconds < 1:
            raise ValueError("fallback_retry_after_seconds must be >= 1")

        self._store = store
        self._timeout_seconds = timeout_seconds
        self._fallback_retry_after = fallback_retry_after_seconds
        self._clock = clock

    async def _call(self, awaitable: Awaitable[T]) -> T:
        return await asyncio.wait_for(awaitable, timeout=self._timeout_seconds)

    async def admit(
        self,
        principal_id: str,
        *,
        namespace: str,
        limit: int,
        window_seconds: int,
    ) -> RateLimitResult:
        """Count one operation and decide whether it is admitted.

        Raises:
            ValueError: On an empty principal/namespace, negative limit or
                non-positive window. No store access happens in that case.
            RateLimiterUnavailableError: If the counter store fails.
        """
        if not principal_id:
            raise ValueError("principal_id must be a non-empty string")
        if not namespace:
            raise ValueError("namespace must be a non-empty string")
        if limit < 0:
            raise ValueError("limit must be >= 0")
        if window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")

        key = build_counter_key(namespace, principal_id)

        try:
            count = await self._call(self._store.incr(key))
            if count == 1:
                await self._call(self._store.expire(key, window_seconds))
        except (CounterStoreError, asyncio.TimeoutError) as exc:
            logger.error(
                "rate_limit.store_error",
                extra={
                    "namespace": namespace,
                    "principal_hash": hash_for_log(principal_id),
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                },
            )
            raise RateLimiterUnavailableError(
                code="rate_limiter_unavailable",
                message="Rate limiter is unavailable. Try again later.",
                details={"store": "counter"},
            ) from exc

        now = self._clock()

        if count <= limit:
            return RateLimitResult(
                allowed=True,
                limit=limit,
                count=count,
                remaining=limit - count,
                reset_at=int(now) + window_seconds if count == 1 else None,
                retry_after_seconds=None,
            )

        retry_after = await self._retry_after(key, window_seconds)
        return RateLimitResult(
            allowed=False,
            limit=limit,
            count=count,
            remaining=0,
            reset_at=int(now) + retry_after,
            retry_after_seconds=retry_after,
        )

    async def _retry_after(self, key: str, window_seconds: int) -> int:
        """Read the remaining window for a blocked key; never returns 0."""
        fallback = self._fallback_retry_after or window_seconds

        try:
            ttl = await self._call(self._store.ttl(key))
        except (CounterStoreError, asyncio.TimeoutError) as exc:
            logger.warning(
                "rate_limit.ttl_lookup_failed",
                extra={"error_type": type(exc).__name__, "fallback_s": fallback},
            )
            return fallback

        if ttl >= 0:
            return max(1, ttl)

        if ttl == TTL_MISSING:
            # Window ended between INCR and TTL.
            return 1

        if ttl == TTL_NO_EXPIRY:
            logger.warning("rate_limit.ttl_missing_repaired", extra={"window_s": window_seconds})
            try:
                await self._call(self._store.expire(key, window_seconds))
            except (CounterStoreError, asyncio.TimeoutError) as exc:
                logger.warning(
                    "rate_limit.ttl_repair_failed",
                    extra={"error_type": type(exc).__name__},
                )
            return window_seconds

        return fallback
