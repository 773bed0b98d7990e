#!/usr/bin/env python3
"""
Data models shared across the news pipeline.

NewsItem is the contract consumed by the UI layer: it is created once per
aggregation run and never mutated afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional


class Category(str, Enum):
    """Genre tags shown by the site's news filter. BREAKING is reserved for obituary/crisis items."""

    ALL = "All"
    BREAKING = "News"
    CLASSICAL = "Classical"
    JAZZ = "Jazz"
    HIP_HOP_RB = "Hip-Hop/R&B"
    FOLK_AMERICANA = "Folk/Americana"
    ROCK = "Rock"
    ELECTRONIC = "Electronic"
    INDIE = "Indie"
    WORLD = "World"
    GENERAL = "General"

    @classmethod
    def from_label(cls, label: Any) -> Optional["Category"]:
        """Resolve a configured label (value or member name, any case)."""
        if isinstance(label, cls):
            return label
        if not isinstance(label, str) or not label.strip():
            return None
        wanted = label.strip().lower()
        for member in cls:
            if member.value.lower() == wanted or member.name.lower() == wanted:
                return member
        return None


class SourceStatus(str, Enum):
    OK = "ok"
    EMPTY = "empty"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class RelayConfig:
    """A CORS relay endpoint. ``template`` holds a ``{url}`` placeholder."""

    template: str
    format: str = "raw"  # "raw" | "json"

    def build_url(self, encoded_target: str) -> str:
        return self.template.replace("{url}", encoded_target)


@dataclass(frozen=True)
class SourceConfig:
    slug: str
    url: str
    name: str
    default_category: Category = Category.GENERAL
    feature: bool = False


@dataclass(frozen=True)
class ImageCandidate:
    url: str
    origin: str  # "media" | "enclosure" | "inline"
    width: Optional[int] = None
    height: Optional[int] = None


@dataclass
class RawEntry:
    """One feed item as parsed, before any quality filtering."""

    title: str
    link: str
    content: str
    published: Optional[str]
    timestamp: int
    guid: str = ""
    media: List[ImageCandidate] = field(default_factory=list)
    enclosures: List[ImageCandidate] = field(default_factory=list)


@dataclass(frozen=True)
class NewsItem:
    """Stable public model for a normalized news item.

    Invariants: ``description`` is at least the configured minimum length and
    ``image`` is a non-empty absolute URL.
    """

    id: str
    title: str
    category: str
    is_breaking: bool
    date: str
    timestamp: int
    image: str
    description: str
    source_name: str
    source_url: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NewsItem":
        """Rebuild an item from its cached form; raises KeyError/TypeError/ValueError on bad input."""
        return cls(
            id=str(data["id"]),
            title=str(data["title"]),
            category=str(data["category"]),
            is_breaking=bool(data["is_breaking"]),
            date=str(data["date"]),
            timestamp=int(data["timestamp"]),
            image=str(data["image"]),
            description=str(data["description"]),
            source_name=str(data["source_name"]),
            source_url=str(data["source_url"]),
        )


@dataclass
class SourceResult:
    """Outcome of one source's fetch/parse/normalize run."""

    source: SourceConfig
    status: SourceStatus
    items: List[NewsItem] = field(default_factory=list)
    reason: str = ""
    entries_seen: int = 0


@dataclass(frozen=True)
class ArtistProfile:
    name: str
    biography: List[str]
    portrait_url: str
    genre: str
    location: str = "Global"
    achievements: List[str] = field(default_factory=list)
    source_name: str = ""
    source_url: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ArtistProfile":
        return cls(
            name=str(data["name"]),
            biography=[str(s) for s in data["biography"]],
            portrait_url=str(data["portrait_url"]),
            genre=str(data["genre"]),
            location=str(data.get("location", "Global")),
            achievements=[str(a) for a in data.get("achievements", [])],
            source_name=str(data.get("source_name", "")),
            source_url=str(data.get("source_url", "")),
        )


@dataclass(frozen=True)
class Quote:
    text: str
    author: str
