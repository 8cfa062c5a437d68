"""Factory for creating counter store instances."""

from ratewarden.adapters.counter_store.base import AbstractCounterStore
from ratewarden.adapters.counter_store.in_memory import InMemoryCounterStore
from ratewarden.adapters.counter_store.redis_store import RedisCounterStore
from ratewarden.core.config import StoreSettings, settings
from ratewarden.core.errors import ValidationAppError


def create_counter_store(store_settings: StoreSettings | None = None) -> AbstractCounterStore:
    """Instantiate the counter store selected by ``STORE_BACKEND``.

    Args:
        store_settings: Optional store settings; defaults to global settings.

    Returns:
        AbstractCounterStore: Configured store instance.

    Raises:
        ValidationAppError: If the backend is unknown or misconfigured.
    """
    cfg = store_settings or settings.store
    backend = cfg.backend.lower()

    if backend == "redis":
        if not cfg.url:
            raise ValidationAppError(
                code="store_missing_url",
                message="Redis backend requires STORE_URL environment variable",
            )
        return RedisCounterStore.from_url(cfg.url, timeout_ms=cfg.timeout_ms)

    if backend == "memory":
        return InMemoryCounterStore()

    raise ValidationAppError(
        code="store_unknown_backend",
        message=f"Unknown counter store backend: '{backend}'. Supported backends: redis, memory",
        details={"backend": backend},
    )
