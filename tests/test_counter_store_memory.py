"""Unit tests for the in-memory counter store."""

import pytest

from ratewarden.adapters.counter_store.in_memory import InMemoryCounterStore

from fakes import InspectableCounterStore


@pytest.mark.asyncio
async def test_record_and_count_returns_count_and_oldest() -> None:
    store = InMemoryCounterStore()

    first = await store.record_and_count("k", now_ms=1000, window_ms=500, member="a")
    second = await store.record_and_count("k", now_ms=1200, window_ms=500, member="b")

    assert first.count == 1
    assert first.oldest_ms == 1000
    assert second.count == 2
    assert second.oldest_ms == 1000


@pytest.mark.asyncio
async def test_sweep_removes_entries_strictly_before_boundary() -> None:
    store = InMemoryCounterStore()

    await store.record_and_count("k", now_ms=1000, window_ms=500, member="a")
    # boundary is 1500 - 500 = 1000; the entry at exactly 1000 stays
    at_boundary = await store.record_and_count("k", now_ms=1500, window_ms=500, member="b")
    assert at_boundary.count == 2

    past_boundary = await store.record_and_count("k", now_ms=1501, window_ms=500, member="c")
    assert past_boundary.count == 2
    assert past_boundary.oldest_ms == 1500


@pytest.mark.asyncio
async def test_same_millisecond_entries_are_kept_apart() -> None:
    store = InMemoryCounterStore()

    await store.record_and_count("k", now_ms=1000, window_ms=500, member="1000-a")
    snapshot = await store.record_and_count("k", now_ms=1000, window_ms=500, member="1000-b")

    assert snapshot.count == 2


@pytest.mark.asyncio
async def test_key_expires_after_ttl() -> None:
    store = InspectableCounterStore()

    await store.record_and_count("k", now_ms=1000, window_ms=500, member="a")
    assert store.stored_entries("k") == 1

    snapshot = await store.peek("k", now_ms=1501, window_ms=500)
    assert snapshot.count == 0
    assert snapshot.oldest_ms is None
    assert store.stored_entries("k") == 0


@pytest.mark.asyncio
async def test_peek_does_not_record() -> None:
    store = InspectableCounterStore()
    await store.record_and_count("k", now_ms=1000, window_ms=10_000, member="a")

    for _ in range(3):
        snapshot = await store.peek("k", now_ms=2000, window_ms=10_000)
        assert snapshot.count == 1
        assert snapshot.oldest_ms == 1000

    assert store.stored_entries("k") == 1


@pytest.mark.asyncio
async def test_keys_are_isolated() -> None:
    store = InMemoryCounterStore()

    await store.record_and_count("k1", now_ms=1000, window_ms=500, member="a")
    snapshot = await store.record_and_count("k2", now_ms=1000, window_ms=500, member="b")

    assert snapshot.count == 1


@pytest.mark.asyncio
async def test_reset_reports_whether_key_existed() -> None:
    store = InspectableCounterStore()
    await store.record_and_count("k", now_ms=1000, window_ms=500, member="a")

    assert await store.reset("k") is True
    assert await store.reset("k") is False
    assert store.stored_entries("k") == 0


@pytest.mark.asyncio
async def test_ping_and_close() -> None:
    store = InMemoryCounterStore()

    assert await store.ping() is True
    await store.close()


@pytest.mark.asyncio
async def test_abandoned_keys_are_purged_on_later_writes() -> None:
    store = InspectableCounterStore(purge_interval_ms=0)

    await store.record_and_count("abandoned", now_ms=1000, window_ms=500, member="a")
    await store.record_and_count("active", now_ms=2000, window_ms=500, member="b")

    assert store.tracked_keys() == {"active"}


@pytest.mark.asyncio
async def test_purge_waits_for_interval() -> None:
    store = InspectableCounterStore(purge_interval_ms=10_000)

    await store.record_and_count("abandoned", now_ms=1000, window_ms=500, member="a")
    await store.record_and_count("active", now_ms=2000, window_ms=500, member="b")
    assert store.tracked_keys() == {"abandoned", "active"}

    await store.record_and_count("active", now_ms=11_000, window_ms=500, member="c")
    assert store.tracked_keys() == {"active"}


def test_negative_purge_interval_is_rejected() -> None:
    with pytest.raises(ValueError):
        InMemoryCounterStore(purge_interval_ms=-1)
