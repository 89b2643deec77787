"""Rate limiting dependency for FastAPI routes.

This module wires the rate limiting adapter into the HTTP layer.

Design goals:
- Minimal coupling: API routes depend on a dependency function only.
- Per-route policy: each protected route supplies its own namespace, limit
  and window; nothing is hard-coded inside the limiter.
- Fail closed: a counter store outage rejects the request (HTTP 500).

Rate limiting strategy:
- Fixed-window limit per verified principal, counted in the shared store so
  every service instance enforces the same budget.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from fastapi import Depends

from civicsync.adapters.counter_store.base import AbstractCounterStore
from civicsync.adapters.rate_limit.base import AbstractRateLimiter
from civicsync.adapters.rate_limit.fixed_window import FixedWindowRateLimiter
from civicsync.core.auth import get_principal_id
from civicsync.core.config import settings
from civicsync.core.errors import RateLimitExceededError
from civicsync.core.logging import hash_for_log
from civicsync.core.stores import get_counter_store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitPolicy:
    """Limit applied to one protected route."""

    namespace: str
    limit: int
    window_seconds: int


def issue_creation_policy() -> RateLimitPolicy:
    """Policy for issue creation, read from settings at request time."""

    return RateLimitPolicy(
        namespace=settings.rate_limit.issue_namespace,
        limit=settings.rate_limit.issue_limit,
        window_seconds=settings.rate_limit.issue_window_seconds,
    )


def get_rate_limiter(
    store: AbstractCounterStore = Depends(get_counter_store),
) -> AbstractRateLimiter:
    """Build the limiter around the shared counter store.

    Returns:
        AbstractRateLimiter: Configured limiter instance.
    """

    return FixedWindowRateLimiter(
        store,
        timeout_seconds=settings.redis.timeout_seconds,
        fallback_retry_after_seconds=settings.rate_limit.fallback_retry_after_seconds,
    )


def rate_limited(
    policy_factory: Callable[[], RateLimitPolicy],
) -> Callable[..., Awaitable[None]]:
    """Create a dependency enforcing ``policy_factory()`` for the principal.

    Usage:
        @router.post("/issues", dependencies=[Depends(rate_limited(issue_creation_policy))])

    Args:
        policy_factory: Callable returning the route's policy.

    Returns:
        Async FastAPI dependency raising RateLimitExceededError (HTTP 429)
        when the principal is over budget.
    """

    async def enforce_rate_limit(
        principal_id: str = Depends(get_principal_id),
        limiter: AbstractRateLimiter = Depends(get_rate_limiter),
    ) -> None:
        if not settings.rate_limit.enabled:
            return

        policy = policy_factory()
        principal_hash = hash_for_log(principal_id)

        result = await limiter.admit(
            principal_id,
            namespace=policy.namespace,
            limit=policy.limit,
            window_seconds=policy.window_seconds,
        )
        if result.allowed:
            logger.info(
                "rate_limit.allowed",
                extra={
                    "namespace": policy.namespace,
                    "principal_hash": principal_hash,
                    "limit": result.limit,
                    "remaining": result.remaining,
                    "window_s": policy.window_seconds,
                },
            )
            return

        retry_after = result.retry_after_seconds or policy.window_seconds
        logger.warning(
            "rate_limit.exceeded",
            extra={
                "namespace": policy.namespace,
                "principal_hash": principal_hash,
                "limit": result.limit,
                "count": result.count,
                "window_s": policy.window_seconds,
                "retry_after_s": retry_after,
            },
        )

        headers: dict[str, str] = {"Retry-After": str(retry_after)}
        if settings.rate_limit.include_headers:
            headers["X-RateLimit-Limit"] = str(result.limit)
            headers["X-RateLimit-Remaining"] = str(result.remaining)
            if result.reset_at is not None:
                headers["X-RateLimit-Reset"] = str(result.reset_at)

        raise RateLimitExceededError(
            code="rate_limit_exceeded",
            message="Rate limit exceeded. Try again later.",
            details={"retry_after": retry_after, "limit": result.limit},
            headers=headers,
        )

    return enforce_rate_limit
