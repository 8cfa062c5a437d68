"""Sliding window log accounting on top of a counter store.

Every call to ``check`` records an entry before comparing against the limit,
so rejected attempts consume window slots too. A client hammering a limited
key keeps itself limited until it backs off for a full window; retries are
never free.

Under concurrency the store batch is the only serialization point. Several
checks racing against a key at its limit may each observe a count above the
limit; enforcement is exact at decision time, not a hard ceiling on stored
entries.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Callable

from ratewarden.adapters.counter_store.base import AbstractCounterStore, WindowSnapshot
from ratewarden.services.models import Decision

logger = logging.getLogger(__name__)


def _epoch_ms() -> int:
    return time.time_ns() // 1_000_000


def _entry_token(now_ms: int) -> str:
    """Member value unique enough to survive same-millisecond inserts."""
    return f"{now_ms}-{uuid.uuid4().hex}"


def _reset_ms(snapshot: WindowSnapshot, *, now_ms: int, window_ms: int) -> int:
    if snapshot.oldest_ms is None:
        return 0
    return max(0, snapshot.oldest_ms + window_ms - now_ms)


class WindowAccountant:
    """Decides whether one more attempt fits inside a key's sliding window."""

    def __init__(
        self,
        store: AbstractCounterStore,
        *,
        clock_ms: Callable[[], int] = _epoch_ms,
        token_factory: Callable[[int], str] = _entry_token,
    ) -> None:
        """Initialize the accountant.

        Args:
            store: Shared counter store holding the window entries.
            clock_ms: Time source returning UNIX time in milliseconds.
            token_factory: Builds the unique member for an entry at a timestamp.
        """
        self._store = store
        self._clock_ms = clock_ms
        self._token_factory = token_factory

    @staticmethod
    def _validate(key: str, limit: int, window_ms: int) -> None:
        if not key:
            raise ValueError("key must be a non-empty string")
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_ms < 1:
            raise ValueError("window_ms must be >= 1")

    async def record_attempt(self, key: str, window_ms: int) -> tuple[WindowSnapshot, int]:
        """Record one attempt for ``key`` and return the post-insert window.

        This runs whether or not the attempt is later admitted.

        Returns:
            Tuple of (snapshot after the insert, timestamp used in ms).
        """
        now_ms = self._clock_ms()
        snapshot = await self._store.record_and_count(
            key,
            now_ms=now_ms,
            window_ms=window_ms,
            member=self._token_factory(now_ms),
        )
        return snapshot, now_ms

    async def check(self, key: str, limit: int, window_ms: int) -> Decision:
        """Consume one attempt and decide whether it is within ``limit``.

        Args:
            key: Rendered rate limit key.
            limit: Maximum attempts per window.
            window_ms: Window length in milliseconds.

        Returns:
            Decision with ``remaining = max(0, limit - n)`` where ``n`` is the
            count observed by this check, and an exact ``reset_ms`` taken from
            the oldest entry still in the window.

        Raises:
            ValueError: If key, limit or window_ms are invalid.
            StoreUnavailableError: If the store cannot be reached.
            StoreTimeoutError: If the store does not answer in time.
        """
        self._validate(key, limit, window_ms)

        snapshot, now_ms = await self.record_attempt(key, window_ms)
        count = snapshot.count

        decision = Decision(
            allowed=count <= limit,
            remaining=max(0, limit - count),
            reset_ms=_reset_ms(snapshot, now_ms=now_ms, window_ms=window_ms),
        )
        logger.debug(
            "window.checked",
            extra={
                "count": count,
                "limit": limit,
                "window_ms": window_ms,
                "allowed": decision.allowed,
            },
        )
        return decision

    async def peek(self, key: str, limit: int, window_ms: int) -> Decision:
        """Report the window without consuming an attempt.

        ``allowed`` here means the next ``check`` would be admitted.
        """
        self._validate(key, limit, window_ms)

        now_ms = self._clock_ms()
        snapshot = await self._store.peek(key, now_ms=now_ms, window_ms=window_ms)
        return Decision(
            allowed=snapshot.count < limit,
            remaining=max(0, limit - snapshot.count),
            reset_ms=_reset_ms(snapshot, now_ms=now_ms, window_ms=window_ms),
        )

    async def reset(self, key: str) -> bool:
        """Forget every entry recorded for ``key``."""
        if not key:
            raise ValueError("key must be a non-empty string")
        return await self._store.reset(key)
