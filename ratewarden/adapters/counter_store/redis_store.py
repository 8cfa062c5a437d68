"""Redis-backed sliding window counter store.

Each rate limit key is a Redis sorted set whose members are entry tokens and
whose scores are entry timestamps in milliseconds. ``record_and_count`` sends
its five commands in one MULTI/EXEC pipeline, so Redis serializes concurrent
checks against the same key.
"""

from __future__ import annotations

import asyncio
import logging

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ratewarden.adapters.counter_store.base import AbstractCounterStore, WindowSnapshot
from ratewarden.core.errors import StoreTimeoutError, StoreUnavailableError

logger = logging.getLogger(__name__)


def _oldest_score(zrange_result: list) -> int | None:
    """Extract the score from a ``ZRANGE key 0 0 WITHSCORES`` reply."""
    if not zrange_result:
        return None
    _, score = zrange_result[0]
    return int(score)


class RedisCounterStore(AbstractCounterStore):
    """Counter store backed by ``redis.asyncio``.

    Every call is bounded by ``timeout_ms``; no call is retried. Connection
    failures surface as ``StoreUnavailableError`` and slow replies as
    ``StoreTimeoutError`` so the decision gate can apply its fail mode.
    """

    def __init__(self, client: redis.Redis, *, timeout_ms: int = 250) -> None:
        if timeout_ms < 1:
            raise ValueError("timeout_ms must be >= 1")
        self._client = client
        self._timeout_ms = timeout_ms

    @classmethod
    def from_url(cls, url: str, *, timeout_ms: int = 250) -> "RedisCounterStore":
        """Build a store with its own connection pool for ``url``."""
        timeout_s = timeout_ms / 1000
        client = redis.from_url(
            url,
            socket_timeout=timeout_s,
            socket_connect_timeout=timeout_s,
        )
        return cls(client, timeout_ms=timeout_ms)

    async def _bounded(self, operation: str, coro):
        """Await ``coro`` under the store timeout, translating backend errors."""
        try:
            return await asyncio.wait_for(coro, timeout=self._timeout_ms / 1000)
        except (asyncio.TimeoutError, RedisTimeoutError) as exc:
            logger.warning(
                "store.timeout",
                extra={"operation": operation, "timeout_ms": self._timeout_ms},
            )
            raise StoreTimeoutError(
                code="store_timeout",
                message="Counter store did not respond in time",
                details={"backend": "redis", "timeout_ms": self._timeout_ms},
            ) from exc
        except (RedisConnectionError, OSError) as exc:
            logger.warning(
                "store.unavailable",
                extra={"operation": operation, "error_type": type(exc).__name__},
            )
            raise StoreUnavailableError(
                code="store_unavailable",
                message="Counter store is unreachable",
                details={"backend": "redis"},
            ) from exc
        except RedisError as exc:
            logger.error(
                "store.error",
                extra={"operation": operation, "error_type": type(exc).__name__},
            )
            raise StoreUnavailableError(
                code="store_error",
                message="Counter store rejected the operation",
                details={"backend": "redis"},
            ) from exc

    async def _record_batch(self, key: str, now_ms: int, window_ms: int, member: str) -> list:
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.zremrangebyscore(key, "-inf", f"({now_ms - window_ms}")
            pipe.zadd(key, {member: now_ms})
            pipe.zcard(key)
            pipe.zrange(key, 0, 0, withscores=True)
            pipe.pexpire(key, window_ms)
            return await pipe.execute()

    async def record_and_count(
        self,
        key: str,
        *,
        now_ms: int,
        window_ms: int,
        member: str,
    ) -> WindowSnapshot:
        results = await self._bounded(
            "record_and_count",
            self._record_batch(key, now_ms, window_ms, member),
        )
        _removed, _added, count, oldest, _ttl_set = results
        return WindowSnapshot(count=int(count), oldest_ms=_oldest_score(oldest))

    async def _peek_batch(self, key: str, now_ms: int, window_ms: int) -> list:
        boundary = now_ms - window_ms
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.zcount(key, boundary, "+inf")
            pipe.zrangebyscore(key, boundary, "+inf", start=0, num=1, withscores=True)
            return await pipe.execute()

    async def peek(self, key: str, *, now_ms: int, window_ms: int) -> WindowSnapshot:
        count, oldest = await self._bounded("peek", self._peek_batch(key, now_ms, window_ms))
        return WindowSnapshot(count=int(count), oldest_ms=_oldest_score(oldest))

    async def reset(self, key: str) -> bool:
        deleted = await self._bounded("reset", self._client.delete(key))
        return bool(deleted)

    async def ping(self) -> bool:
        return bool(await self._bounded("ping", self._client.ping()))

    async def close(self) -> None:
        await self._client.aclose()
