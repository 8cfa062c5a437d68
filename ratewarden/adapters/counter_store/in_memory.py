"""In-process sorted-set counter store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
  Use it for development and tests; production deployments use Redis.
- Thread-safe: every batch runs under one lock, which gives the same
  all-or-nothing view of a key that a Redis MULTI/EXEC transaction gives.
- Key TTLs are enforced lazily on access, plus a periodic purge during
  writes so keys that are never touched again do not pile up.
"""

from __future__ import annotations

import bisect
import threading
from dataclasses import dataclass, field

from ratewarden.adapters.counter_store.base import AbstractCounterStore, WindowSnapshot


@dataclass
class _KeyState:
    # (score_ms, member) pairs kept sorted by score
    entries: list[tuple[int, str]] = field(default_factory=list)
    expires_at_ms: int = 0


class InMemoryCounterStore(AbstractCounterStore):
    """Counter store holding every key's window in a local dict.

    Time is supplied by the caller (``now_ms``), so key TTLs are evaluated
    against the same clock the window accountant uses.
    """

    def __init__(self, *, purge_interval_ms: int = 60_000) -> None:
        """Initialize the store.

        Args:
            purge_interval_ms: Minimum time between full scans for expired
                keys. 0 scans on every write.

        Raises:
            ValueError: If purge_interval_ms is negative.
        """
        if purge_interval_ms < 0:
            raise ValueError("purge_interval_ms must be >= 0")

        self._lock = threading.RLock()
        self._state_by_key: dict[str, _KeyState] = {}
        self._purge_interval_ms = purge_interval_ms
        self._next_purge_ms: int | None = None

    def _live_state(self, key: str, now_ms: int) -> _KeyState | None:
        """Return the key state, dropping it first if its TTL has lapsed."""
        state = self._state_by_key.get(key)
        if state is not None and state.expires_at_ms < now_ms:
            del self._state_by_key[key]
            return None
        return state

    def _purge_expired(self, now_ms: int) -> None:
        if self._next_purge_ms is not None and now_ms < self._next_purge_ms:
            return
        expired = [
            key
            for key, state in self._state_by_key.items()
            if state.expires_at_ms < now_ms
        ]
        for key in expired:
            del self._state_by_key[key]
        self._next_purge_ms = now_ms + self._purge_interval_ms

    @staticmethod
    def _sweep(state: _KeyState, boundary_ms: int) -> None:
        # first index with score >= boundary; everything before it is stale
        cut = bisect.bisect_left(state.entries, (boundary_ms, ""))
        if cut:
            del state.entries[:cut]

    async def record_and_count(
        self,
        key: str,
        *,
        now_ms: int,
        window_ms: int,
        member: str,
    ) -> WindowSnapshot:
        with self._lock:
            self._purge_expired(now_ms)

            state = self._live_state(key, now_ms)
            if state is None:
                state = _KeyState()
                self._state_by_key[key] = state

            self._sweep(state, now_ms - window_ms)
            bisect.insort(state.entries, (now_ms, member))
            state.expires_at_ms = now_ms + window_ms

            return WindowSnapshot(count=len(state.entries), oldest_ms=state.entries[0][0])

    async def peek(self, key: str, *, now_ms: int, window_ms: int) -> WindowSnapshot:
        with self._lock:
            state = self._live_state(key, now_ms)
            if state is None:
                return WindowSnapshot(count=0, oldest_ms=None)

            boundary = now_ms - window_ms
            live = [score for score, _ in state.entries if score >= boundary]
            return WindowSnapshot(count=len(live), oldest_ms=live[0] if live else None)

    async def reset(self, key: str) -> bool:
        with self._lock:
            return self._state_by_key.pop(key, None) is not None

    async def ping(self) -> bool:
        return True
