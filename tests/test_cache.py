import json
from datetime import datetime, timedelta

import pytest

from cache import MemoryStore, NewsCache, SQLiteStore

KEY = "hub_live_editorial_v5"
TTL = 15 * 60


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


class ProducerSpy:
    def __init__(self, *values):
        self.values = list(values)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        return self.values.pop(0) if len(self.values) > 1 else self.values[0]


NOW = 1_750_000_000.0


@pytest.mark.asyncio
async def test_fresh_entry_is_served_without_refresh():
    cache = NewsCache(MemoryStore(), FakeClock(NOW))
    await cache.write(KEY, ["cached"], int((NOW - 10 * 60) * 1000))
    producer = ProducerSpy(["fresh"])

    assert await cache.get_or_refresh(KEY, TTL, producer) == ["cached"]
    assert producer.calls == 0


@pytest.mark.asyncio
async def test_stale_entry_triggers_refresh_and_overwrite():
    store = MemoryStore()
    cache = NewsCache(store, FakeClock(NOW))
    await cache.write(KEY, ["cached"], int((NOW - 20 * 60) * 1000))
    producer = ProducerSpy(["fresh"])

    assert await cache.get_or_refresh(KEY, TTL, producer) == ["fresh"]
    assert producer.calls == 1
    stored = json.loads(await store.get(KEY))
    assert stored == {"data": ["fresh"], "timestamp": int(NOW * 1000)}


@pytest.mark.asyncio
async def test_repeated_reads_within_ttl_invoke_producer_once():
    clock = FakeClock(NOW)
    cache = NewsCache(MemoryStore(), clock)
    producer = ProducerSpy(["first"], ["second"])

    first = await cache.get_or_refresh(KEY, TTL, producer)
    clock.now += 14 * 60
    second = await cache.get_or_refresh(KEY, TTL, producer)

    assert first == second == ["first"]
    assert producer.calls == 1


@pytest.mark.asyncio
async def test_empty_results_are_not_cached():
    store = MemoryStore()
    cache = NewsCache(store, FakeClock(NOW))
    producer = ProducerSpy([])

    assert await cache.get_or_refresh(KEY, TTL, producer) == []
    assert await cache.get_or_refresh(KEY, TTL, producer) == []
    assert producer.calls == 2
    assert await store.get(KEY) is None


@pytest.mark.asyncio
@pytest.mark.parametrize("raw", [
    "{not json",
    json.dumps(["no", "envelope"]),
    json.dumps({"data": ["x"]}),
    json.dumps({"data": ["x"], "timestamp": "yesterday"}),
])
async def test_corrupt_entries_are_a_miss(raw):
    store = MemoryStore()
    await store.set(KEY, raw)
    cache = NewsCache(store, FakeClock(NOW))
    producer = ProducerSpy(["fresh"])

    assert await cache.get_or_refresh(KEY, TTL, producer) == ["fresh"]
    assert producer.calls == 1


@pytest.mark.asyncio
async def test_undecodable_data_is_a_miss():
    cache = NewsCache(MemoryStore(), FakeClock(NOW))
    await cache.write(KEY, [{"unexpected": True}], int(NOW * 1000))

    def decode(data):
        return [entry["title"] for entry in data]

    producer = ProducerSpy(["fresh"])

    assert await cache.get_or_refresh(KEY, TTL, producer, decode=decode) == ["fresh"]
    assert producer.calls == 1


@pytest.mark.asyncio
async def test_encode_and_decode_wrap_stored_data():
    cache = NewsCache(MemoryStore(), FakeClock(NOW))
    producer = ProducerSpy(("a", "b"))

    produced = await cache.get_or_refresh(KEY, TTL, producer, encode=list, decode=tuple)
    cached = await cache.get_or_refresh(KEY, TTL, producer, encode=list, decode=tuple)

    assert produced == cached == ("a", "b")
    assert producer.calls == 1


@pytest.mark.asyncio
async def test_force_bypasses_fresh_entry():
    cache = NewsCache(MemoryStore(), FakeClock(NOW))
    await cache.write(KEY, ["cached"], int(NOW * 1000))
    producer = ProducerSpy(["fresh"])

    assert await cache.get_or_refresh(KEY, TTL, producer, force=True) == ["fresh"]


@pytest.mark.asyncio
async def test_daily_entry_valid_until_local_date_changes():
    noon = datetime(2026, 10, 18, 12, 0, 0)
    clock = FakeClock(noon.timestamp())
    cache = NewsCache(MemoryStore(), clock)
    key = "hub_artist_day_v5"

    await cache.write(key, {"name": "Morning pick"}, int((noon - timedelta(hours=3)).timestamp() * 1000))
    producer = ProducerSpy({"name": "New pick"})
    assert await cache.get_or_refresh_daily(key, producer) == {"name": "Morning pick"}
    assert producer.calls == 0

    await cache.write(key, {"name": "Yesterday"}, int((noon - timedelta(days=1)).timestamp() * 1000))
    assert await cache.get_or_refresh_daily(key, producer) == {"name": "New pick"}
    assert producer.calls == 1


@pytest.mark.asyncio
async def test_sqlite_store_persists_across_instances(tmp_path):
    db_path = str(tmp_path / "cache.db")
    store = SQLiteStore(db_path)

    assert await store.get(KEY) is None
    await store.set(KEY, "first")
    await store.set(KEY, "second")

    assert await SQLiteStore(db_path).get(KEY) == "second"


@pytest.mark.asyncio
async def test_news_cache_over_sqlite_store(tmp_path):
    clock = FakeClock(NOW)
    producer = ProducerSpy(["fresh"])

    first = await NewsCache(SQLiteStore(str(tmp_path / "cache.db")), clock).get_or_refresh(KEY, TTL, producer)
    second = await NewsCache(SQLiteStore(str(tmp_path / "cache.db")), clock).get_or_refresh(KEY, TTL, producer)

    assert first == second == ["fresh"]
    assert producer.calls == 1
