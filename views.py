#!/usr/bin/env python3
"""
Read-only views derived from the cached news list.

None of these touch the network: they reshape items the aggregator already
produced. The artist profile is a heuristic built from a news item, not a
biography lookup.
"""

from random import Random
from typing import Iterable, List, Optional, Sequence, Union

from models import ArtistProfile, Category, NewsItem, Quote
from utils import split_sentences

BIOGRAPHY_SENTENCES = 4

FALLBACK_ARTIST = ArtistProfile(
    name="SONIC ARCHITECT",
    biography=["A master of atmospheric frequencies."],
    portrait_url="https://images.unsplash.com/photo-1598488035139-bdbb2231ce04?auto=format&fit=crop&q=90&w=2000",
    genre="Ambient",
    location="Global",
    achievements=["Circle Certified"],
)

FALLBACK_QUOTE = Quote(
    text="MUSIC IS THE DIVINE WAY TO TELL BEAUTIFUL, POETIC THINGS TO THE HEART.",
    author="Pablo Casals",
)


def artist_of_the_day(items: Sequence[NewsItem], feature_sources: Iterable[str] = ()) -> ArtistProfile:
    """Profile built from the first item of a feature source, else the first item."""
    if not items:
        return FALLBACK_ARTIST

    featured = set(feature_sources)
    pick = next((item for item in items if item.source_name in featured), items[0])

    biography = split_sentences(pick.description, BIOGRAPHY_SENTENCES) or [pick.description]
    achievements = [f"Featured by {pick.source_name}"]
    if pick.date:
        achievements.append(pick.date)
    return ArtistProfile(
        name=pick.title,
        biography=biography,
        portrait_url=pick.image,
        genre=pick.category,
        location="Global",
        achievements=achievements,
        source_name=pick.source_name,
        source_url=pick.source_url,
    )


def quote_of_the_moment(items: Sequence[NewsItem], rng: Optional[Random] = None) -> Quote:
    """A uniformly random headline, attributed to its source."""
    if not items:
        return FALLBACK_QUOTE
    pick = (rng or Random()).choice(list(items))
    return Quote(text=pick.title.upper(), author=pick.source_name)


def search_news(items: Iterable[NewsItem], query: str) -> List[NewsItem]:
    """Case-insensitive substring match on titles; a blank query matches nothing."""
    needle = (query or "").strip().lower()
    if not needle:
        return []
    return [item for item in items if needle in item.title.lower()]


def filter_by_category(items: Iterable[NewsItem], category: Union[Category, str]) -> List[NewsItem]:
    # "All" is the identity filter and "News" selects breaking items
    resolved = Category.from_label(category)
    if resolved is Category.ALL:
        return list(items)
    if resolved is Category.BREAKING:
        return [item for item in items if item.is_breaking]
    wanted = (resolved.value if resolved else str(category or "")).lower()
    return [item for item in items if item.category.lower() == wanted]
