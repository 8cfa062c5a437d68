"""HTTP middleware for request ID propagation and timing.

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request, Response

from ratewarden.core.config import get_settings
from ratewarden.core.logging import clear_request_id, set_request_id

logger = logging.getLogger(__name__)


def _rate_limit_outcome(request: Request) -> str | None:
    result = getattr(request.state, "rate_limit", None)
    return result.outcome.value if result is not None else None


async def request_id_middleware(request: Request, call_next) -> Response:
    """Attach a correlation id and duration to every request/response pair.

    The incoming ``X-Request-ID`` header (name configurable via
    ``LOG_REQUEST_ID_HEADER``) is reused when present, otherwise a UUID4 is
    generated. The id is stored in contextvars for log correlation and echoed
    back together with ``X-Request-Duration-ms``. A ``request.completed``
    line records status, duration and, for rate limited routes, the gate
    outcome.
    """

    header_name = get_settings(request).log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)

        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "request.completed",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
                "rate_limit_outcome": _rate_limit_outcome(request),
            },
        )
    finally:
        clear_request_id()

    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response
