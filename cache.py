#!/usr/bin/env python3
"""
Read-through cache for aggregated news and derived views.

Entries are stored as JSON ``{"data": ..., "timestamp": <epoch ms>}`` in an
injected key/value store. Two freshness policies are supported:

- rolling TTL (the news list, 15 minutes by default);
- calendar day (artist of the day): valid while the stored timestamp falls on
  today's local date.

Empty producer results are never persisted so that the next read retries
immediately. Unreadable entries are treated as a miss. Concurrent refreshes
may both write; last write wins.
"""

from asyncio import Lock, get_running_loop
from datetime import datetime
from sqlite3 import connect, Error
from time import time
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple
import json

from config import get_logger
from errors import CacheEntryError
from telemetry import trace_span

logger = get_logger("cache")

Producer = Callable[[], Awaitable[Any]]
Encoder = Callable[[Any], Any]


class MemoryStore:
    """In-process store; contents are lost when the process exits."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value


class SQLiteStore:
    """Key/value table in a local SQLite file.

    sqlite3 calls block, so each one runs in the default executor with a
    fresh connection, serialized by an asyncio lock.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self._lock = Lock()
        self._initialized = False

    def _connect(self):
        conn = connect(self.db_path)
        if not self._initialized:
            conn.execute(
                "CREATE TABLE IF NOT EXISTS cache ("
                "key TEXT PRIMARY KEY, value TEXT NOT NULL, updated INTEGER NOT NULL)"
            )
            conn.commit()
            self._initialized = True
        return conn

    def _get_sync(self, key: str) -> Optional[str]:
        conn = self._connect()
        try:
            row = conn.execute("SELECT value FROM cache WHERE key = ?", (key,)).fetchone()
            return row[0] if row else None
        finally:
            conn.close()

    def _set_sync(self, key: str, value: str) -> None:
        conn = self._connect()
        try:
            conn.execute(
                "INSERT OR REPLACE INTO cache (key, value, updated) VALUES (?, ?, ?)",
                (key, value, int(time())),
            )
            conn.commit()
        finally:
            conn.close()

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            try:
                return await get_running_loop().run_in_executor(None, self._get_sync, key)
            except Error as e:
                logger.error(f"Error reading cache key {key} from {self.db_path}: {e}")
                return None

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            try:
                await get_running_loop().run_in_executor(None, self._set_sync, key, value)
            except Error as e:
                logger.error(f"Error writing cache key {key} to {self.db_path}: {e}")


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    try:
        return len(value) == 0
    except TypeError:
        return False


class NewsCache:
    """Get-or-refresh wrapper over a store.

    ``clock`` returns epoch seconds and is injectable for tests. ``encode``
    turns a produced value into JSON-compatible data and ``decode`` rebuilds
    it; a decode failure counts as a corrupt entry.
    """

    def __init__(self, store=None, clock: Callable[[], float] = time) -> None:
        self.store = store if store is not None else MemoryStore()
        self.clock = clock

    def now_ms(self) -> int:
        return int(self.clock() * 1000)

    @trace_span(
        "cache.get_or_refresh",
        tracer_name="cache",
        attr_from_args=lambda self, key, ttl_seconds, producer, **kwargs: {
            "cache.key": key,
            "cache.ttl_seconds": ttl_seconds,
        },
    )
    async def get_or_refresh(
        self,
        key: str,
        ttl_seconds: float,
        producer: Producer,
        encode: Optional[Encoder] = None,
        decode: Optional[Encoder] = None,
        force: bool = False,
    ) -> Any:
        """Return the cached value when younger than ``ttl_seconds``, else refresh it."""
        ttl_ms = int(ttl_seconds * 1000)

        def is_fresh(stored_ms: int, now_ms: int) -> bool:
            return now_ms - stored_ms < ttl_ms

        return await self._read_through(key, is_fresh, producer, encode, decode, force)

    @trace_span(
        "cache.get_or_refresh_daily",
        tracer_name="cache",
        attr_from_args=lambda self, key, producer, **kwargs: {"cache.key": key},
    )
    async def get_or_refresh_daily(
        self,
        key: str,
        producer: Producer,
        encode: Optional[Encoder] = None,
        decode: Optional[Encoder] = None,
        force: bool = False,
    ) -> Any:
        """Return the cached value while it was stored on today's local date, else refresh it."""

        def is_fresh(stored_ms: int, now_ms: int) -> bool:
            stored_day = datetime.fromtimestamp(stored_ms / 1000).date()
            today = datetime.fromtimestamp(now_ms / 1000).date()
            return stored_day == today

        return await self._read_through(key, is_fresh, producer, encode, decode, force)

    async def _read_through(
        self,
        key: str,
        is_fresh: Callable[[int, int], bool],
        producer: Producer,
        encode: Optional[Encoder],
        decode: Optional[Encoder],
        force: bool,
    ) -> Any:
        now_ms = self.now_ms()
        if not force:
            cached = await self.read(key, decode)
            if cached is not None:
                data, stored_ms = cached
                if is_fresh(stored_ms, now_ms):
                    logger.debug(f"Cache hit for {key} (age {(now_ms - stored_ms) / 1000:.0f}s)")
                    return data
                logger.info(f"Cache entry for {key} is stale; refreshing")
            else:
                logger.info(f"Cache miss for {key}; refreshing")

        data = await producer()
        if _is_empty(data):
            logger.warning(f"Producer returned no data for {key}; not caching")
            return data

        await self.write(key, encode(data) if encode else data, now_ms)
        return data

    async def read(self, key: str, decode: Optional[Encoder] = None) -> Optional[Tuple[Any, int]]:
        """Return ``(data, timestamp_ms)`` or None when missing or corrupt."""
        raw = await self.store.get(key)
        if raw is None:
            return None
        try:
            return self._decode_entry(key, raw, decode)
        except CacheEntryError as e:
            logger.warning(f"Ignoring cache entry: {e}")
            return None

    async def write(self, key: str, data: Any, timestamp_ms: Optional[int] = None) -> None:
        entry = {"data": data, "timestamp": timestamp_ms if timestamp_ms is not None else self.now_ms()}
        await self.store.set(key, json.dumps(entry))

    def _decode_entry(self, key: str, raw: str, decode: Optional[Encoder]) -> Tuple[Any, int]:
        try:
            entry = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise CacheEntryError(key, f"Unparsable JSON ({e})") from e

        if not isinstance(entry, dict) or "data" not in entry:
            raise CacheEntryError(key, "Missing data field")
        timestamp = entry.get("timestamp")
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
            raise CacheEntryError(key, "Missing or invalid timestamp")

        data = entry["data"]
        if decode is not None:
            try:
                data = decode(data)
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                raise CacheEntryError(key, f"Undecodable data ({e})") from e
        return data, int(timestamp)
