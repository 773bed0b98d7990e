import asyncio
import threading
import time
from collections import Counter
from datetime import datetime, timezone
from email.utils import format_datetime

import pytest

import aggregator as aggregator_module
from aggregator import NewsAggregator, interleave_round_robin, order_news
from models import Category, NewsItem, SourceConfig, SourceStatus
from utils import title_slug

BODY = (
    "The group confirmed the new record in a statement on Monday, describing it as "
    "their most ambitious work so far, with guests from across the scene."
)


def make_item(source, timestamp, title=None, breaking=False):
    title = title or f"{source} story at {timestamp}"
    return NewsItem(
        id=f"{source}-{timestamp}",
        title=title,
        category="News" if breaking else "General",
        is_breaking=breaking,
        date="",
        timestamp=timestamp,
        image="https://cdn.example.com/uploads/hero-wide.jpg",
        description=BODY,
        source_name=source,
        source_url=f"https://{source}.example.com/{timestamp}",
    )


def test_round_robin_interleaves_sources_newest_first():
    items = [make_item("A", 100), make_item("A", 300), make_item("B", 50), make_item("A", 200), make_item("B", 250)]

    ordered = order_news(items, source_order=["A", "B"])

    # Strict round-robin, not a recency sort after round one: see DESIGN.md "Scenario 1 vs. the fairness property"
    assert [(i.source_name, i.timestamp) for i in ordered] == [
        ("A", 300), ("B", 250), ("A", 200), ("B", 50), ("A", 100),
    ]


def test_fairness_one_item_per_source_per_round():
    sources = ["A", "B", "C"]
    items = [make_item(s, ts) for s in sources for ts in range(10, 50, 10)]

    ordered = order_news(items, source_order=sources)

    for round_start in range(0, 12, 3):
        assert sorted(i.source_name for i in ordered[round_start:round_start + 3]) == sources
    # A source with many more items cannot crowd out the others
    heavy = [make_item("A", ts) for ts in range(100, 2000, 10)] + [make_item("B", 5)]
    assert [i.source_name for i in order_news(heavy, ["A", "B"])[:2]] == ["A", "B"]


def test_duplicate_titles_are_skipped_and_next_item_tried():
    shared = "Same headline about the band tour dates"
    a = [make_item("A", 200, shared), make_item("A", 100, "Another story from source A")]
    b = [make_item("B", 150, shared + " again"), make_item("B", 120, "Another story from source B")]

    ordered = order_news(a + b, source_order=["A", "B"])

    assert [(i.source_name, i.timestamp) for i in ordered] == [("A", 200), ("B", 120), ("A", 100)]
    slugs = [title_slug(i.title) for i in ordered]
    assert len(slugs) == len(set(slugs))


def test_breaking_items_come_first_newest_first():
    items = [
        make_item("A", 900),
        make_item("B", 10, "A tribute to the late bassist", breaking=True),
        make_item("A", 800),
        make_item("B", 500, "Singer dies at 70", breaking=True),
    ]

    ordered = order_news(items, source_order=["A", "B"])

    assert [i.timestamp for i in ordered[:2]] == [500, 10]
    assert all(i.is_breaking for i in ordered[:2])
    assert not any(i.is_breaking for i in ordered[2:])


def test_caps_apply_to_regular_section_and_total():
    items = [make_item(s, ts) for s in "ABC" for ts in range(1, 31)]

    assert len(order_news(items, source_order=list("ABC"), regular_cap=60, total_cap=48)) == 48
    assert len(order_news(items, source_order=list("ABC"), regular_cap=5, total_cap=48)) == 5


def test_breaking_overflow_drops_oldest_breaking_and_all_regular():
    breaking = [make_item("B", ts, f"Breaking story number {ts}", breaking=True) for ts in range(1, 51)]
    regular = [make_item("A", ts) for ts in range(100, 105)]

    ordered = order_news(breaking + regular, source_order=["A", "B"], total_cap=48)

    assert len(ordered) == 48
    assert all(i.is_breaking for i in ordered)
    assert [i.timestamp for i in ordered] == list(range(50, 2, -1))


def test_unlisted_sources_come_after_configured_ones():
    items = [make_item("Z", 999), make_item("A", 1)]

    assert [i.source_name for i in order_news(items, source_order=["A"])] == ["A", "Z"]


def test_interleave_stops_when_all_groups_exhausted():
    groups = [[make_item("A", 2), make_item("A", 1)], []]

    assert len(interleave_round_robin(groups, cap=60)) == 2


# End-to-end aggregation with a fake relay layer

def rss(entries):
    items = []
    for title, ts, image in entries:
        pub = format_datetime(datetime.fromtimestamp(ts, tz=timezone.utc), usegmt=True)
        media = f'<media:content url="{image}" medium="image" width="1200"/>' if image else ""
        items.append(
            f"<item><title>{title}</title><link>https://news.example.com/{ts}</link>"
            f"<pubDate>{pub}</pubDate><description>{BODY}</description>{media}</item>"
        )
    return (
        '<?xml version="1.0"?><rss version="2.0" xmlns:media="http://search.yahoo.com/mrss/">'
        "<channel><title>Feed</title>" + "".join(items) + "</channel></rss>"
    )


class FakeFetcher:
    def __init__(self, documents, delays=None, errors=None):
        self.documents = documents
        self.delays = delays or {}
        self.errors = errors or {}
        self.calls = []

    async def fetch_via_proxy(self, target_url, session):
        self.calls.append(target_url)
        if target_url in self.delays:
            await asyncio.sleep(self.delays[target_url])
        if target_url in self.errors:
            raise self.errors[target_url]
        return self.documents.get(target_url, "")


def source(slug, category=Category.GENERAL):
    return SourceConfig(slug=slug, url=f"https://{slug}.example.com/feed", name=slug.title(), default_category=category)


def hero(name):
    return f"https://cdn.example.com/uploads/{name}-wide.jpg"


def make_aggregator(fetcher, timeout=5.0):
    return NewsAggregator(
        fetcher,
        regular_cap=60,
        total_cap=48,
        min_description_length=100,
        min_title_length=10,
        min_image_width=600,
        timeout=timeout,
    )


@pytest.mark.asyncio
async def test_aggregate_isolates_broken_sources():
    good, broken, failing = source("alpha"), source("beta"), source("gamma")
    fetcher = FakeFetcher(
        documents={
            good.url: rss([
                ("Alpha headline about a new record", 1_700_000_300, hero("a1")),
                ("Alpha second headline for today", 1_700_000_200, hero("a2")),
            ]),
            broken.url: "<html>this is not a feed {",
        },
        errors={failing.url: RuntimeError("boom")},
    )
    aggregator = make_aggregator(fetcher)

    items = await aggregator.aggregate([good, broken, failing], session=object())

    assert [i.title for i in items] == ["Alpha headline about a new record", "Alpha second headline for today"]
    statuses = {r.source.slug: r.status for r in aggregator.last_results}
    assert statuses == {"alpha": SourceStatus.OK, "beta": SourceStatus.EMPTY, "gamma": SourceStatus.FAILED}
    assert items[0].timestamp == 1_700_000_300_000
    assert items[0].source_name == "Alpha"
    assert items[0].source_url == "https://news.example.com/1700000300"


@pytest.mark.asyncio
async def test_aggregate_applies_entry_gates():
    src = source("alpha", Category.ROCK)
    fetcher = FakeFetcher(documents={src.url: rss([
        ("Kept headline about the tour", 1_700_000_500, hero("kept")),
        ("Thumbnail only headline here", 1_700_000_400, "https://cdn.example.com/uploads/photo-thumbnail-150x150.jpg"),
        ("No image headline at all", 1_700_000_300, None),
        ("Short", 1_700_000_200, hero("short")),
        ("Band reacts to the election", 1_700_000_100, hero("banned")),
    ])})

    items = await make_aggregator(fetcher).aggregate([src], session=object())

    assert [i.title for i in items] == ["Kept headline about the tour"]
    assert items[0].category == "Rock"
    assert items[0].image == hero("kept")
    assert len(items[0].description) >= 100


@pytest.mark.asyncio
async def test_aggregate_marks_breaking_items():
    a, b = source("alpha"), source("beta")
    fetcher = FakeFetcher(documents={
        a.url: rss([("Alpha headline about a new record", 1_700_000_900, hero("a1"))]),
        b.url: rss([("Drummer dies at 81 after long illness", 1_700_000_100, hero("b1"))]),
    })

    items = await make_aggregator(fetcher).aggregate([a, b], session=object())

    assert items[0].is_breaking and items[0].category == "News"
    assert not items[1].is_breaking


@pytest.mark.asyncio
async def test_aggregate_deadline_reports_slow_sources():
    fast, slow = source("alpha"), source("beta")
    fetcher = FakeFetcher(
        documents={
            fast.url: rss([("Alpha headline about a new record", 1_700_000_300, hero("a1"))]),
            slow.url: rss([("Beta headline that arrives too late", 1_700_000_400, hero("b1"))]),
        },
        delays={slow.url: 5},
    )
    aggregator = make_aggregator(fetcher, timeout=0.2)

    items = await aggregator.aggregate([fast, slow], session=object())

    assert [i.source_name for i in items] == ["Alpha"]
    statuses = {r.source.slug: r.status for r in aggregator.last_results}
    assert statuses["beta"] == SourceStatus.TIMED_OUT


@pytest.mark.asyncio
async def test_aggregate_result_order_ignores_completion_order():
    a, b = source("alpha"), source("beta")
    documents = {
        a.url: rss([("Alpha headline number one here", 1_700_000_300, hero("a1"))]),
        b.url: rss([("Beta headline number one here", 1_700_000_900, hero("b1"))]),
    }
    # alpha finishes last but is still first in the round-robin pass
    fetcher = FakeFetcher(documents=documents, delays={a.url: 0.05})

    items = await make_aggregator(fetcher).aggregate([a, b], session=object())

    assert [i.source_name for i in items] == ["Alpha", "Beta"]
    assert Counter(fetcher.calls) == Counter([a.url, b.url])


@pytest.mark.asyncio
async def test_aggregate_without_sources_returns_empty():
    assert await make_aggregator(FakeFetcher({})).aggregate([], session=object()) == []


@pytest.mark.asyncio
async def test_feed_parsing_runs_off_the_event_loop(monkeypatch):
    slow, quick = source("alpha"), source("beta")
    slow_doc = rss([("Alpha headline that parses slowly", 1_700_000_300, hero("a1"))])
    quick_doc = rss([("Beta headline that parses quickly", 1_700_000_400, hero("b1"))])
    parse_threads = []
    real_parse = aggregator_module.parse_feed

    def blocking_parse(document):
        parse_threads.append(threading.get_ident())
        if document == slow_doc:
            time.sleep(0.6)
        return real_parse(document)

    monkeypatch.setattr(aggregator_module, "parse_feed", blocking_parse)
    fetcher = FakeFetcher(documents={slow.url: slow_doc, quick.url: quick_doc})
    aggregator = make_aggregator(fetcher, timeout=0.2)

    items = await aggregator.aggregate([slow, quick], session=object())

    assert threading.get_ident() not in parse_threads
    # A blocking parse cannot hold back the deadline or the other source
    assert [i.source_name for i in items] == ["Beta"]
    statuses = {r.source.slug: r.status for r in aggregator.last_results}
    assert statuses == {"alpha": SourceStatus.TIMED_OUT, "beta": SourceStatus.OK}
