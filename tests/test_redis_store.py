"""Unit tests for the Redis counter store.

The Redis client is mocked: these tests pin down which commands go into the
MULTI/EXEC batch and how backend failures are translated.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, call

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ratewarden.adapters.counter_store.redis_store import RedisCounterStore
from ratewarden.core.errors import StoreTimeoutError, StoreUnavailableError


def _mock_client(execute_result=None):
    client = MagicMock()
    pipeline = MagicMock()
    pipeline.__aenter__ = AsyncMock(return_value=pipeline)
    pipeline.__aexit__ = AsyncMock(return_value=False)
    pipeline.execute = AsyncMock(return_value=execute_result)
    client.pipeline.return_value = pipeline
    return client, pipeline


class TestRecordAndCount:
    @pytest.mark.asyncio
    async def test_submits_single_transaction(self) -> None:
        client, pipeline = _mock_client([0, 1, 3, [(b"900-x", 900.0)], True])
        store = RedisCounterStore(client, timeout_ms=100)

        snapshot = await store.record_and_count("rl:u:global", now_ms=1000, window_ms=500, member="1000-a")

        client.pipeline.assert_called_once_with(transaction=True)
        pipeline.zremrangebyscore.assert_called_once_with("rl:u:global", "-inf", "(500")
        pipeline.zadd.assert_called_once_with("rl:u:global", {"1000-a": 1000})
        pipeline.zcard.assert_called_once_with("rl:u:global")
        pipeline.zrange.assert_called_once_with("rl:u:global", 0, 0, withscores=True)
        pipeline.pexpire.assert_called_once_with("rl:u:global", 500)
        pipeline.execute.assert_awaited_once()

        assert snapshot.count == 3
        assert snapshot.oldest_ms == 900

    @pytest.mark.asyncio
    async def test_commands_queued_in_order(self) -> None:
        client, pipeline = _mock_client([0, 1, 1, [(b"m", 1000.0)], True])
        store = RedisCounterStore(client)

        await store.record_and_count("k", now_ms=1000, window_ms=500, member="m")

        queued = [
            name for name, _, _ in pipeline.method_calls
            if not name.startswith("_") and name != "execute"
        ]
        assert queued == ["zremrangebyscore", "zadd", "zcard", "zrange", "pexpire"]

    @pytest.mark.asyncio
    async def test_empty_range_gives_no_oldest(self) -> None:
        client, _ = _mock_client([0, 1, 0, [], True])
        store = RedisCounterStore(client)

        snapshot = await store.record_and_count("k", now_ms=1000, window_ms=500, member="m")

        assert snapshot.oldest_ms is None

    @pytest.mark.asyncio
    async def test_connection_error_maps_to_unavailable(self) -> None:
        client, pipeline = _mock_client()
        pipeline.execute.side_effect = RedisConnectionError("connection refused")
        store = RedisCounterStore(client)

        with pytest.raises(StoreUnavailableError) as exc_info:
            await store.record_and_count("k", now_ms=1000, window_ms=500, member="m")

        assert exc_info.value.code == "store_unavailable"

    @pytest.mark.asyncio
    async def test_redis_timeout_maps_to_store_timeout(self) -> None:
        client, pipeline = _mock_client()
        pipeline.execute.side_effect = RedisTimeoutError("read timed out")
        store = RedisCounterStore(client)

        with pytest.raises(StoreTimeoutError):
            await store.record_and_count("k", now_ms=1000, window_ms=500, member="m")

    @pytest.mark.asyncio
    async def test_slow_store_is_cut_off_by_timeout(self) -> None:
        async def never_answers():
            await asyncio.sleep(5)

        client, pipeline = _mock_client()
        pipeline.execute.side_effect = never_answers
        store = RedisCounterStore(client, timeout_ms=20)

        with pytest.raises(StoreTimeoutError) as exc_info:
            await store.record_and_count("k", now_ms=1000, window_ms=500, member="m")

        assert exc_info.value.details["timeout_ms"] == 20

    @pytest.mark.asyncio
    async def test_other_redis_errors_map_to_unavailable(self) -> None:
        client, pipeline = _mock_client()
        pipeline.execute.side_effect = ResponseError("WRONGTYPE")
        store = RedisCounterStore(client)

        with pytest.raises(StoreUnavailableError) as exc_info:
            await store.record_and_count("k", now_ms=1000, window_ms=500, member="m")

        assert exc_info.value.code == "store_error"


class TestAuxiliaryOperations:
    @pytest.mark.asyncio
    async def test_peek_counts_live_window_only(self) -> None:
        client, pipeline = _mock_client([2, [(b"m", 800.0)]])
        store = RedisCounterStore(client)

        snapshot = await store.peek("k", now_ms=1000, window_ms=500)

        pipeline.zcount.assert_called_once_with("k", 500, "+inf")
        pipeline.zadd.assert_not_called()
        pipeline.zremrangebyscore.assert_not_called()
        assert snapshot.count == 2
        assert snapshot.oldest_ms == 800

    @pytest.mark.asyncio
    async def test_reset_deletes_key(self) -> None:
        client = MagicMock()
        client.delete = AsyncMock(return_value=1)
        store = RedisCounterStore(client)

        assert await store.reset("k") is True
        client.delete.assert_awaited_once_with("k")

    @pytest.mark.asyncio
    async def test_ping_failure_maps_to_unavailable(self) -> None:
        client = MagicMock()
        client.ping = AsyncMock(side_effect=RedisConnectionError("down"))
        store = RedisCounterStore(client)

        with pytest.raises(StoreUnavailableError):
            await store.ping()

    @pytest.mark.asyncio
    async def test_close_releases_client(self) -> None:
        client = MagicMock()
        client.aclose = AsyncMock()
        store = RedisCounterStore(client)

        await store.close()

        assert client.aclose.await_args_list == [call()]


def test_invalid_timeout_rejected() -> None:
    with pytest.raises(ValueError):
        RedisCounterStore(MagicMock(), timeout_ms=0)


def test_from_url_builds_client_with_socket_timeouts(monkeypatch) -> None:
    from_url = MagicMock()
    monkeypatch.setattr("ratewarden.adapters.counter_store.redis_store.redis.from_url", from_url)

    RedisCounterStore.from_url("redis://cache:6379/1", timeout_ms=250)

    from_url.assert_called_once_with(
        "redis://cache:6379/1",
        socket_timeout=0.25,
        socket_connect_timeout=0.25,
    )
