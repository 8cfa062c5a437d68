"""Application factory for the FastAPI app.

Builds the rate limiting components once per app (store, policy table,
accountant, gate) and exposes them on ``app.state`` together with the
settings the app was built with; dependencies and middleware read
``app.state.settings``. Nothing here is a module-level singleton, so tests
can build isolated apps with their own stores and settings.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from ratewarden.adapters.counter_store.base import AbstractCounterStore
from ratewarden.adapters.counter_store.factory import create_counter_store
from ratewarden.api.routes import decisions_router, health_router, policies_router
from ratewarden.core.config import Settings, settings as default_settings
from ratewarden.core.exception_handlers import setup_exception_handlers
from ratewarden.core.logging import configure_logging
from ratewarden.core.middleware import request_id_middleware
from ratewarden.core.openapi import apply_openapi_customizations
from ratewarden.services.decision_gate import DecisionGate, FailMode
from ratewarden.services.policy_resolver import PolicyResolver, PolicyTable
from ratewarden.services.window_accountant import WindowAccountant

logger = logging.getLogger(__name__)


def build_decision_gate(store: AbstractCounterStore, cfg: Settings) -> DecisionGate:
    """Wire policy resolution and window accounting over ``store``.

    Raises:
        ValidationAppError: If the tier table is invalid.
    """
    table = PolicyTable.from_settings(cfg.rate_limit)
    return DecisionGate(
        PolicyResolver(table),
        WindowAccountant(store),
        fail_mode=FailMode(cfg.rate_limit.fail_mode),
        degraded_retry_after_seconds=cfg.rate_limit.degraded_retry_after_seconds,
        key_prefix=cfg.store.key_prefix,
    )


@asynccontextmanager
async def _lifespan(app: FastAPI):
    yield
    await app.state.counter_store.close()
    logger.info("store.closed", extra={"backend": app.state.store_backend})


def create_app(
    cfg: Settings | None = None,
    *,
    store: AbstractCounterStore | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        cfg: Settings to use; defaults to the global settings.
        store: Counter store to use; defaults to the one selected by
            ``STORE_BACKEND``.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    cfg = cfg or default_settings
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    counter_store = store or create_counter_store(cfg.store)
    gate = build_decision_gate(counter_store, cfg)

    app = FastAPI(
        title="ratewarden",
        description=(
            "Distributed sliding window rate limiter. Resolves a caller's plan "
            "tier or route override to a budget, records every attempt in a "
            "shared sorted-set store and answers with X-RateLimit-* headers."
        ),
        version="0.1.0",
        lifespan=_lifespan,
    )
    app.state.settings = cfg
    app.state.counter_store = counter_store
    app.state.store_backend = type(counter_store).__name__
    app.state.decision_gate = gate

    app.middleware("http")(request_id_middleware)
    setup_exception_handlers(app)

    app.include_router(decisions_router, prefix="/v1")
    app.include_router(policies_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    logger.info(
        "app.configured",
        extra={
            "store_backend": app.state.store_backend,
            "fail_mode": gate.fail_mode.value,
            "rate_limit_enabled": cfg.rate_limit.enabled,
        },
    )
    return app
