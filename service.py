#!/usr/bin/env python3
"""
Service facade consumed by the UI layer.

Wires configuration, the aggregator and the cache together and exposes the
async calls the site makes on view mount: the news list, the artist of the
day, a quote, search and the genre filter. Failures degrade to fewer items or
fallback content; nothing here raises for upstream trouble.
"""

from random import Random
from time import time
from typing import Any, Callable, Dict, List, Optional

from aggregator import NewsAggregator
from cache import MemoryStore, NewsCache, SQLiteStore
from config import config, get_logger
from models import ArtistProfile, Category, NewsItem, Quote
from views import FALLBACK_ARTIST, artist_of_the_day, filter_by_category, quote_of_the_moment, search_news

logger = get_logger("service")


def encode_items(items: List[NewsItem]) -> List[Dict[str, Any]]:
    return [item.to_dict() for item in items]


def decode_items(data: Any) -> List[NewsItem]:
    if not isinstance(data, list):
        raise TypeError(f"expected a list of items, got {type(data).__name__}")
    return [NewsItem.from_dict(entry) for entry in data]


def create_store(settings=None):
    """SQLite-backed store when a database path is configured, else in-memory."""
    settings = settings or config
    if settings.CACHE_DATABASE_PATH:
        logger.debug(f"Using SQLite cache at {settings.CACHE_DATABASE_PATH}")
        return SQLiteStore(settings.CACHE_DATABASE_PATH)
    return MemoryStore()


class NewsService:
    def __init__(
        self,
        settings=None,
        store=None,
        aggregator: Optional[NewsAggregator] = None,
        clock: Callable[[], float] = time,
        rng: Optional[Random] = None,
    ) -> None:
        self.settings = settings or config
        self.cache = NewsCache(store if store is not None else create_store(self.settings), clock)
        self.aggregator = aggregator or NewsAggregator()
        self.rng = rng or Random()

    async def fetch_music_news(self, force: bool = False) -> List[NewsItem]:
        """The ordered news list, served from cache within the TTL window."""
        return await self.cache.get_or_refresh(
            self.settings.NEWS_CACHE_KEY,
            self.settings.CACHE_TTL_MINUTES * 60,
            self._produce_news,
            encode=encode_items,
            decode=decode_items,
            force=force,
        )

    async def _produce_news(self) -> List[NewsItem]:
        return await self.aggregator.aggregate(self.settings.FEED_SOURCES)

    async def fetch_artist_of_the_day(self, force: bool = False) -> ArtistProfile:
        """Artist profile, cached for the current calendar day."""

        async def produce() -> Optional[ArtistProfile]:
            items = await self.fetch_music_news()
            if not items:
                # None is not cached, so the fallback never sticks for the day
                return None
            return artist_of_the_day(items, self.settings.FEATURE_SOURCES)

        profile = await self.cache.get_or_refresh_daily(
            self.settings.ARTIST_CACHE_KEY,
            produce,
            encode=lambda p: p.to_dict(),
            decode=ArtistProfile.from_dict,
            force=force,
        )
        return profile or FALLBACK_ARTIST

    async def fetch_quote(self) -> Quote:
        items = await self.fetch_music_news()
        return quote_of_the_moment(items, self.rng)

    async def search(self, query: str) -> List[NewsItem]:
        items = await self.fetch_music_news()
        return search_news(items, query)

    async def by_category(self, category: Category | str) -> List[NewsItem]:
        items = await self.fetch_music_news()
        return filter_by_category(items, category)
