"""Formatting of gate results into protocol-visible fields.

Header names are part of the public contract and must not change:
``X-RateLimit-Limit``, ``X-RateLimit-Remaining`` and, on rejection,
``Retry-After`` (whole seconds).
"""

from __future__ import annotations

import math

from fastapi import status

from ratewarden.services.models import GateResult

LIMIT_HEADER = "X-RateLimit-Limit"
REMAINING_HEADER = "X-RateLimit-Remaining"
RETRY_AFTER_HEADER = "Retry-After"


def retry_after_seconds(result: GateResult) -> int | None:
    """Seconds a rejected caller should wait; None for admitted requests."""
    if result.allowed:
        return None
    # never advertise 0 on a rejection, the caller would retry immediately
    return max(1, math.ceil((result.decision.reset_ms or 0) / 1000))


def status_code_for(result: GateResult) -> int:
    if result.allowed:
        return status.HTTP_200_OK
    return status.HTTP_429_TOO_MANY_REQUESTS


def build_rate_limit_headers(result: GateResult) -> dict[str, str]:
    """Headers describing ``result``.

    A degraded admission only carries the limit, since the remaining budget
    could not be observed.
    """
    headers = {LIMIT_HEADER: str(result.policy.limit)}

    if result.decision.remaining is not None:
        headers[REMAINING_HEADER] = str(result.decision.remaining)

    retry_after = retry_after_seconds(result)
    if retry_after is not None:
        headers[RETRY_AFTER_HEADER] = str(retry_after)

    return headers
