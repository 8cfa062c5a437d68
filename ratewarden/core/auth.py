"""API key authentication and caller identification.

Keys are validated against a comma-separated list from environment variables.
Each entry may carry the caller's plan tier as ``key=tier``; that tier is
what the rate limiter budgets against. Callers without a valid key are
identified by network origin and limited with the lowest tier.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Header, HTTPException, Request, status

from ratewarden.core.config import get_settings
from ratewarden.core.errors import AuthenticationAppError
from ratewarden.services.decision_gate import hash_subject
from ratewarden.services.models import Identity

logger = logging.getLogger(__name__)


def parse_api_keys(keys_string: str | None) -> dict[str, str | None]:
    """Parse comma-separated API keys into a key -> tier mapping.

    Examples:
        >>> parse_api_keys("key1=pro, key2")
        {'key1': 'pro', 'key2': None}
        >>> parse_api_keys(None)
        {}
    """
    if not keys_string:
        return {}

    keys: dict[str, str | None] = {}
    for raw in keys_string.split(","):
        key, _, tier = raw.partition("=")
        key = key.strip()
        if key:
            keys[key] = tier.strip() or None
    return keys


def validate_api_key(provided_key: str, configured_keys: str | None) -> str | None:
    """Validate a key against the configured keys.

    Args:
        provided_key: Key sent by the caller.
        configured_keys: Raw ``APP_API_KEYS`` value of the serving app.

    Returns:
        The plan tier configured for the key, or None.

    Raises:
        AuthenticationAppError: If the key is invalid or no keys are configured.
    """
    valid_keys = parse_api_keys(configured_keys)

    if not valid_keys:
        logger.error(
            "api_key_validation_failed",
            extra={"reason": "api_keys_not_configured"},
        )
        raise AuthenticationAppError(
            code="api_keys_not_configured",
            message="API key authentication is enabled but no valid keys are configured",
            details={"hint": "Set APP_API_KEYS or disable auth with APP_API_KEY_REQUIRED=false"},
        )

    if provided_key not in valid_keys:
        logger.warning(
            "api_key_validation_failed",
            extra={"reason": "invalid_api_key", "api_key_hash": hash_subject(provided_key)},
        )
        raise AuthenticationAppError(
            code="invalid_api_key",
            message="Invalid or missing API key",
        )

    return valid_keys[provided_key]


async def verify_api_key(
    request: Request,
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> None:
    """FastAPI dependency guarding the decision API.

    Raises:
        HTTPException: 403 Forbidden if authentication fails.
    """
    app_settings = get_settings(request).app
    if not app_settings.api_key_required:
        logger.debug("auth.skipped", extra={"reason": "auth_required_false"})
        return

    if not x_api_key:
        logger.warning("auth.missing_key", extra={"api_key_present": False})
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Missing API key. Provide X-API-Key header.",
        )

    try:
        validate_api_key(x_api_key, app_settings.api_keys)
    except AuthenticationAppError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=exc.message,
        ) from exc


def client_address(request: Request) -> str:
    """Best-effort network origin of the request."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    return request.client.host if request.client else "unknown"


async def identify_caller(
    request: Request,
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> Identity:
    """FastAPI dependency resolving who a request should be limited as.

    A valid API key identifies the subject by the key's hash and carries its
    configured tier. Anything else falls back to the client address with no
    tier, which the policy resolver maps to the lowest tier.
    """
    if x_api_key:
        try:
            tier = validate_api_key(x_api_key, get_settings(request).app.api_keys)
        except AuthenticationAppError:
            logger.debug("auth.identity_fallback", extra={"reason": "invalid_api_key"})
        else:
            return Identity(subject_id=f"api_key:{hash_subject(x_api_key)}", tier=tier)

    return Identity(subject_id=f"ip:{client_address(request)}", tier=None)
