"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep backward compatibility while encouraging
    consistent shapes across the codebase.
    """

    code: str
    message: str
    hint: str
    http_status: int
    retry_after: float
    limit: int
    issue_id: str
    store: str
    operation: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class InvalidInputError(ValidationAppError):
    """Raised when an identifier is not a well-formed reference."""


class AuthenticationAppError(AppError):
    """Raised when no verified principal accompanies the request."""


class PermissionAppError(AppError):
    """Raised when the principal may not act on the resource."""


class NotFoundError(AppError):
    """Raised when a referenced resource does not exist."""


@dataclass
class RateLimitExceededError(AppError):
    """Raised when a principal exhausted its budget for the current window.

    Attributes:
        headers: Response headers to attach (always includes Retry-After).
    """

    headers: dict[str, str] | None = None


class StoreUnavailableError(AppError):
    """Raised when a backing store is unreachable or timed out.

    Transient: the caller may retry the whole request later.
    """


class VoteStoreUnavailableError(StoreUnavailableError):
    """Raised when the vote toggle cannot reach the document store."""


class RateLimiterUnavailableError(AppError):
    """Raised when the counter store cannot be reached.

    The limiter fails closed: the request is rejected, never silently allowed.
    """
