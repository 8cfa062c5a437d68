"""Counter store interface.

The window accountant depends on this abstraction only. Every backend must
execute ``record_and_count`` as a single indivisible batch: splitting the
sweep, insert and count into separate round trips lets a concurrent check
read a stale count.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class WindowSnapshot:
    """State of one key's window as observed by a single store batch.

    Attributes:
        count: Number of entries inside the window (including the one just
            recorded, for ``record_and_count``).
        oldest_ms: Score of the oldest entry still inside the window, or None
            when the window is empty.
    """

    count: int
    oldest_ms: int | None


class AbstractCounterStore(ABC):
    """Interface for shared, per-key ordered-set stores."""

    @abstractmethod
    async def record_and_count(
        self,
        key: str,
        *,
        now_ms: int,
        window_ms: int,
        member: str,
    ) -> WindowSnapshot:
        """Atomically sweep, record and count one key's window.

        As one batch: remove entries scored below ``now_ms - window_ms``,
        insert ``member`` scored at ``now_ms``, count the remaining entries,
        read the oldest surviving score and refresh the key TTL to
        ``window_ms``.

        Raises:
            StoreUnavailableError: If the store cannot be reached.
            StoreTimeoutError: If the store does not answer in time.
        """
        raise NotImplementedError

    @abstractmethod
    async def peek(self, key: str, *, now_ms: int, window_ms: int) -> WindowSnapshot:
        """Count the live window without recording or sweeping."""
        raise NotImplementedError

    @abstractmethod
    async def reset(self, key: str) -> bool:
        """Delete all entries for ``key``. Returns True if the key existed."""
        raise NotImplementedError

    @abstractmethod
    async def ping(self) -> bool:
        """Return True when the store is reachable."""
        raise NotImplementedError

    async def close(self) -> None:
        """Release backend resources. No-op by default."""
        return None
