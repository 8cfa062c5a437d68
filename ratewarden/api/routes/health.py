from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness check.

    Does not touch the counter store, so a store outage never marks the
    service itself as down.
    """

    return {"status": "ok"}


@router.get("/health/ready")
async def readiness_check(request: Request) -> dict:
    """Readiness check that pings the counter store.

    Store failures propagate to the exception handlers, which answer 503.
    """

    store = request.app.state.counter_store
    await store.ping()
    return {"status": "ready", "store": request.app.state.store_backend}
