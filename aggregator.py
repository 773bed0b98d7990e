#!/usr/bin/env python3
"""
News aggregation engine.

For every configured source, concurrently:

    fetch via relays -> parse -> per entry: title gate -> sanitize ->
    banned-topic gate -> image selection -> classification -> NewsItem

Each source yields exactly one SourceResult, so one failing or slow source
never blocks or aborts the others. Once every source has reported (or the
aggregation deadline has passed) the surviving items are ordered:

- breaking items first, newest first;
- regular items interleaved round-robin across sources in configured order,
  newest first within each source, skipping titles already seen;
- the whole list truncated to the overall cap.

The ordering step is a pure function of the buffered results, so the output
never depends on which fetch finished first.
"""

import asyncio
from collections import OrderedDict
from time import time
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from aiohttp import ClientSession

from classifier import classify, is_banned
from config import config, get_logger
from feed_parser import parse_feed
from fetcher import ProxyFetcher
from images import select_image
from models import NewsItem, RawEntry, SourceConfig, SourceResult, SourceStatus
from telemetry import init_telemetry, trace_span
from utils import decode_title, format_display_date, make_item_id, sanitize, title_slug, truncate_string

logger = get_logger("aggregator")
init_telemetry("music-hub-news-aggregator")

REGULAR_CAP = 60
TOTAL_CAP = 48


def partition(items: Iterable[NewsItem]) -> Tuple[List[NewsItem], List[NewsItem]]:
    """Split items into (breaking, regular), preserving input order."""
    breaking: List[NewsItem] = []
    regular: List[NewsItem] = []
    for item in items:
        (breaking if item.is_breaking else regular).append(item)
    return breaking, regular


def group_by_source(items: Iterable[NewsItem], source_order: Sequence[str] = ()) -> List[List[NewsItem]]:
    """Group items per source, newest first within each group.

    Groups follow ``source_order``; sources not listed there come after, in
    first-seen order.
    """
    groups: "OrderedDict[str, List[NewsItem]]" = OrderedDict((name, []) for name in source_order)
    for item in items:
        groups.setdefault(item.source_name, []).append(item)
    return [
        sorted(group, key=lambda item: item.timestamp, reverse=True)
        for group in groups.values()
        if group
    ]


def interleave_round_robin(groups: Sequence[Sequence[NewsItem]], cap: int = REGULAR_CAP) -> List[NewsItem]:
    """Take one unseen item per group per pass until ``cap`` or exhaustion.

    An item whose title slug was already taken is skipped without counting,
    and the same group's next item is tried in its place.
    """
    cursors = [0] * len(groups)
    seen = set()
    result: List[NewsItem] = []

    while len(result) < cap:
        progressed = False
        for index, group in enumerate(groups):
            if len(result) >= cap:
                break
            while cursors[index] < len(group):
                item = group[cursors[index]]
                cursors[index] += 1
                slug = title_slug(item.title)
                if slug in seen:
                    continue
                seen.add(slug)
                result.append(item)
                progressed = True
                break
        if not progressed:
            break
    return result


def order_news(
    items: Iterable[NewsItem],
    source_order: Sequence[str] = (),
    regular_cap: int = REGULAR_CAP,
    total_cap: int = TOTAL_CAP,
) -> List[NewsItem]:
    """Breaking items newest first, then the round-robin regular section, capped."""
    breaking, regular = partition(items)
    breaking.sort(key=lambda item: item.timestamp, reverse=True)
    interleaved = interleave_round_robin(group_by_source(regular, source_order), regular_cap)
    # Breaking items are prepended before the cap, so an oversized breaking
    # section pushes out every regular item and then its own oldest entries
    return (breaking + interleaved)[:total_cap]


class NewsAggregator:
    """Runs every source through the pipeline and orders the combined output."""

    def __init__(
        self,
        fetcher: Optional[ProxyFetcher] = None,
        *,
        regular_cap: Optional[int] = None,
        total_cap: Optional[int] = None,
        min_description_length: Optional[int] = None,
        min_title_length: Optional[int] = None,
        min_image_width: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.fetcher = fetcher or ProxyFetcher()
        self.regular_cap = regular_cap if regular_cap is not None else config.REGULAR_CAP
        self.total_cap = total_cap if total_cap is not None else config.TOTAL_CAP
        self.min_description_length = (
            min_description_length if min_description_length is not None else config.MIN_DESCRIPTION_LENGTH
        )
        self.min_title_length = min_title_length if min_title_length is not None else config.MIN_TITLE_LENGTH
        self.min_image_width = min_image_width if min_image_width is not None else config.MIN_IMAGE_WIDTH
        self.timeout = timeout if timeout is not None else config.AGGREGATION_TIMEOUT
        self.last_results: List[SourceResult] = []

    @trace_span(
        "aggregate",
        tracer_name="aggregator",
        attr_from_args=lambda self, sources=None, session=None: {
            "aggregate.source_count": len(sources) if sources is not None else len(config.FEED_SOURCES),
        },
    )
    async def aggregate(
        self,
        sources: Optional[Sequence[SourceConfig]] = None,
        session: Optional[ClientSession] = None,
    ) -> List[NewsItem]:
        """Fetch every source concurrently and return the ordered item list."""
        sources = list(sources if sources is not None else config.FEED_SOURCES)
        if not sources:
            logger.warning("No feed sources configured; nothing to aggregate")
            self.last_results = []
            return []

        start_time = time()
        if session is None:
            async with ClientSession() as own_session:
                results = await self._collect_all(sources, own_session)
        else:
            results = await self._collect_all(sources, session)
        self.last_results = results

        items: List[NewsItem] = []
        for result in results:
            items.extend(result.items)

        ordered = order_news(
            items,
            source_order=[source.name for source in sources],
            regular_cap=self.regular_cap,
            total_cap=self.total_cap,
        )

        counts: Dict[SourceStatus, int] = {}
        for result in results:
            counts[result.status] = counts.get(result.status, 0) + 1
        breaking_count = sum(1 for item in ordered if item.is_breaking)
        logger.info(
            "Aggregated %d items (%d breaking) from %d sources in %.1fs: %s",
            len(ordered),
            breaking_count,
            len(sources),
            time() - start_time,
            ", ".join(f"{status.value}={count}" for status, count in counts.items()),
        )
        return ordered

    async def _collect_all(self, sources: List[SourceConfig], session: ClientSession) -> List[SourceResult]:
        """Run all sources concurrently, bounded by the aggregation deadline."""
        tasks = [asyncio.create_task(self.collect_source(source, session)) for source in sources]
        done, pending = await asyncio.wait(tasks, timeout=self.timeout)

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        results: List[SourceResult] = []
        for source, task in zip(sources, tasks):
            if task in pending:
                logger.warning(f"Source {source.name} did not finish within {self.timeout}s")
                results.append(SourceResult(
                    source=source,
                    status=SourceStatus.TIMED_OUT,
                    reason=f"aggregation deadline of {self.timeout}s exceeded",
                ))
                continue
            error = task.exception()
            if error is not None:
                logger.error(f"Source {source.name} failed: {error}")
                results.append(SourceResult(source=source, status=SourceStatus.FAILED, reason=str(error)))
                continue
            results.append(task.result())
        return results

    @trace_span(
        "collect_source",
        tracer_name="aggregator",
        attr_from_args=lambda self, source, session: {"feed.slug": source.slug, "feed.url": source.url},
    )
    async def collect_source(self, source: SourceConfig, session: ClientSession) -> SourceResult:
        """Fetch, parse and normalize one source; never raises."""
        try:
            document = await self.fetcher.fetch_via_proxy(source.url, session)
            if not document:
                return SourceResult(source=source, status=SourceStatus.FAILED, reason="no relay returned a document")

            # feedparser and BeautifulSoup are not async, run in executor
            loop = asyncio.get_running_loop()
            entries, items = await loop.run_in_executor(None, self.parse_and_build, document, source)
            if not entries:
                logger.info(f"No entries parsed from {source.name}")
                return SourceResult(source=source, status=SourceStatus.EMPTY, reason="no parsable entries")
        except Exception as e:
            logger.error(f"Error processing source {source.name}: {e}")
            return SourceResult(source=source, status=SourceStatus.FAILED, reason=str(e))

        logger.debug(f"{source.name}: kept {len(items)} of {len(entries)} entries")
        if not items:
            return SourceResult(
                source=source,
                status=SourceStatus.EMPTY,
                reason="no entries passed the quality gates",
                entries_seen=len(entries),
            )
        return SourceResult(source=source, status=SourceStatus.OK, items=items, entries_seen=len(entries))

    def parse_and_build(
        self, document: Union[str, bytes], source: SourceConfig
    ) -> Tuple[List[RawEntry], List[NewsItem]]:
        """Parse a fetched document and gate each entry. Blocking; runs off the loop."""
        entries = parse_feed(document)
        items: List[NewsItem] = []
        for entry in entries:
            item = self.build_news_item(entry, source)
            if item is not None:
                items.append(item)
        return entries, items

    def build_news_item(self, entry: RawEntry, source: SourceConfig) -> Optional[NewsItem]:
        """Apply the per-entry gates; None means the entry is dropped."""
        title = decode_title(entry.title)
        if len(title) < self.min_title_length:
            return None

        description = sanitize(entry.content, self.min_description_length)
        if not description:
            return None

        if is_banned(title, description):
            logger.debug(f"Dropped banned-topic entry from {source.name}: {truncate_string(title, 60)}")
            return None

        image = select_image(entry, self.min_image_width)
        if not image:
            logger.debug(f"Dropped entry without a usable image from {source.name}: {truncate_string(title, 60)}")
            return None

        category, breaking = classify(title, description, source.default_category)
        return NewsItem(
            id=make_item_id(source.name, entry.timestamp, title),
            title=title,
            category=category,
            is_breaking=breaking,
            date=format_display_date(entry.timestamp),
            timestamp=entry.timestamp,
            image=image,
            description=description,
            source_name=source.name,
            source_url=entry.link or source.url,
        )
