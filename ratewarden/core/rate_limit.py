"""Rate limiting dependency for FastAPI routes.

This module wires the decision gate into the HTTP layer:
- Routes depend on ``enforce_rate_limit`` only.
- The gate is built once by the app factory and kept on ``app.state``.
- Admitted requests get X-RateLimit-* headers on their response; rejected
  ones short-circuit with HTTP 429 and a Retry-After hint.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, Request, Response, status

from ratewarden.core.auth import identify_caller
from ratewarden.core.config import get_settings
from ratewarden.services.decision_gate import DecisionGate
from ratewarden.services.header_emitter import build_rate_limit_headers
from ratewarden.services.models import GateResult, Identity

logger = logging.getLogger(__name__)


def get_decision_gate(request: Request) -> DecisionGate:
    """Return the gate built at application startup."""
    return request.app.state.decision_gate


def request_target(request: Request) -> str:
    """Route template of the request (e.g. ``/v1/items/{item_id}``).

    Falls back to the raw path for requests that did not match a route.
    """
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return path or request.url.path


async def enforce_rate_limit(
    request: Request,
    response: Response,
    identity: Annotated[Identity, Depends(identify_caller)],
    gate: Annotated[DecisionGate, Depends(get_decision_gate)],
) -> GateResult | None:
    """FastAPI dependency enforcing rate limits.

    Consumes one attempt from the caller's window for the current route.
    The resulting ``GateResult`` is also stored on ``request.state.rate_limit``.

    Raises:
        HTTPException: 429 Too Many Requests when the request is rejected,
            including fail-closed rejections during a store outage.
    """
    cfg = get_settings(request).rate_limit
    if not cfg.enabled:
        return None

    result = await gate.admit(identity, request_target(request))
    request.state.rate_limit = result

    headers = build_rate_limit_headers(result) if cfg.include_headers else {}

    if result.allowed:
        for name, value in headers.items():
            response.headers[name] = value
        return result

    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail="Rate limit exceeded. Try again later.",
        headers=headers or None,
    )
