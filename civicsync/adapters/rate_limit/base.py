"""Rate limiter interfaces.

The API depends on this abstraction (not the concrete implementation) so the
accounting strategy can change without touching the HTTP layer.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitResult:
    """Result of an admission decision.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        limit: Max operations per window.
        count: Counter value after this request was counted.
        remaining: Remaining operations in the current window (0 when blocked).
        reset_at: UNIX epoch seconds when the window resets, when known.
        retry_after_seconds: Suggested wait time in seconds when blocked.
    """

    allowed: bool
    limit: int
    count: int
    remaining: int
    reset_at: int | None
    retry_after_seconds: int | None


class AbstractRateLimiter(ABC):
    """Interface for rate limiters."""

    @abstractmethod
    async def admit(
        self,
        principal_id: str,
        *,
        namespace: str,
        limit: int,
        window_seconds: int,
    ) -> RateLimitResult:
        """Count one operation for ``principal_id`` and decide admission.

        Args:
            principal_id: Verified principal identifier (non-empty).
            namespace: Scope of the limited action (e.g. ``issue_limit``).
            limit: Max operations allowed per window.
            window_seconds: Window length in seconds.

        Returns:
            RateLimitResult describing whether it was allowed.
        """
        raise NotImplementedError
