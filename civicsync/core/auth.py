"""Gateway trust and principal resolution.

User authentication happens upstream: an authenticating gateway verifies the
user's token and forwards the resulting user id in a header. This module:

- checks the request came through a trusted gateway (shared X-Gateway-Key)
- extracts the forwarded principal id, which the core trusts as verified

Keys are validated against a comma-separated list from environment variables.
"""

from __future__ import annotations

import logging
from typing import Annotated

from bson import ObjectId
from fastapi import Header, HTTPException, Request, status

from civicsync.core.config import settings
from civicsync.core.errors import AuthenticationAppError, InvalidInputError, PermissionAppError
from civicsync.core.logging import hash_for_log

logger = logging.getLogger(__name__)


def parse_gateway_keys(keys_string: str | None) -> set[str]:
    """Parse comma-separated gateway keys into a set.

    Args:
        keys_string: Comma-separated string of keys, or None.

    Returns:
        Set of trimmed, non-empty keys.

    Examples:
        >>> parse_gateway_keys("key1, key2 , key3 ")
        {'key1', 'key2', 'key3'}
        >>> parse_gateway_keys(None)
        set()
    """
    if not keys_string:
        return set()

    return {key.strip() for key in keys_string.split(",") if key.strip()}


def validate_gateway_key(provided_key: str) -> None:
    """Validate that the provided gateway key matches configured keys.

    Raises:
        PermissionAppError: If the key is invalid or no keys are configured
            while the check is required.
    """
    if not settings.app.gateway_key_required:
        return

    valid_keys = parse_gateway_keys(settings.app.gateway_keys)

    if not valid_keys:
        logger.error(
            "gateway_key_validation_failed",
            extra={"reason": "gateway_keys_not_configured"},
        )
        raise PermissionAppError(
            code="gateway_keys_not_configured",
            message="Gateway key check is enabled but no keys are configured",
            details={
                "hint": "Set APP_GATEWAY_KEYS or disable the check with APP_GATEWAY_KEY_REQUIRED=false"
            },
        )

    if provided_key not in valid_keys:
        logger.warning(
            "gateway_key_validation_failed",
            extra={
                "reason": "invalid_gateway_key",
                "gateway_key_hash": hash_for_log(provided_key),
            },
        )
        raise PermissionAppError(
            code="invalid_gateway_key",
            message="Invalid or missing gateway key",
        )


async def verify_gateway_key(
    x_gateway_key: Annotated[str | None, Header(alias="X-Gateway-Key")] = None,
) -> None:
    """FastAPI dependency rejecting requests that bypass the gateway.

    Raises:
        HTTPException: 403 Forbidden if the key is missing or invalid.
    """
    if not settings.app.gateway_key_required:
        logger.debug("auth.gateway_check_skipped", extra={"reason": "gateway_key_required_false"})
        return

    if not x_gateway_key:
        logger.warning("auth.missing_gateway_key", extra={"gateway_key_present": False})
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Missing gateway key. Provide X-Gateway-Key header.",
        )

    try:
        validate_gateway_key(x_gateway_key)
    except PermissionAppError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=exc.message,
        ) from exc


async def get_principal_id(request: Request) -> str:
    """FastAPI dependency returning the gateway-verified user id.

    Raises:
        AuthenticationAppError: If no principal was forwarded (HTTP 401).
        InvalidInputError: If the principal is not a valid user id (HTTP 400).
    """
    principal_id = (request.headers.get(settings.app.principal_header) or "").strip()

    if not principal_id:
        raise AuthenticationAppError(
            code="unauthenticated",
            message="User not authenticated",
            details={"hint": f"Missing {settings.app.principal_header} header"},
        )

    if not ObjectId.is_valid(principal_id):
        raise InvalidInputError(code="invalid_user_id", message="Invalid user ID")

    # canonical lowercase hex, so every spelling of an id is one principal
    return str(ObjectId(principal_id))
