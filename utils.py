#!/usr/bin/env python3
"""
Utility functions for the news pipeline.

This module contains the HTML sanitizer used on feed descriptions plus small
helpers shared by the parser, aggregator and derived views (slugs, display
dates, sentence splitting).
"""

from datetime import datetime, timezone
import html
import re
from typing import List, Optional

from bs4 import BeautifulSoup

MIN_DESCRIPTION_LENGTH = 100
DEDUP_PREFIX_LENGTH = 30

# Elements that never carry article prose
_STRIP_TAGS = [
    "script", "style", "iframe", "form", "noscript", "object", "embed",
    "figure", "figcaption", "svg", "button", "aside", "footer", "nav",
]

_BLOCK_TAGS = [
    "p", "br", "div", "li", "ul", "ol", "blockquote", "section", "article",
    "h1", "h2", "h3", "h4", "h5", "h6", "tr", "td", "hr",
]

# class/id fragments used by feed engines for share bars, ads and footers
_BOILERPLATE_MARKERS = re.compile(
    r"(share|social|advert|\bads?\b|ad-container|sponsor|newsletter|related|"
    r"feedflare|footer|subscribe|promo)",
    re.I,
)

_TRUNCATION_MARKER = re.compile(r"\[\s*(?:\.\.\.|…|&hellip;)\s*\]")
_READ_MORE = re.compile(r"\b(?:continue reading|read more)\b[^.]{0,80}$", re.I)
_POST_TRAILER = re.compile(r"The post .{1,300}? appeared first on .{1,200}?(?:\.(?=\s)|\.?$)", re.I | re.S)
_WHITESPACE = re.compile(r"\s+")
_SLUG_CHARS = re.compile(r"[^a-z0-9]+")
_SENTENCE_END = re.compile(r"(?<=[.!?])\s+(?=[A-Z0-9\"'“‘])")


def _strip_markup(html_content: str) -> str:
    soup = BeautifulSoup(html_content, "html.parser")

    for tag in soup(_STRIP_TAGS):
        tag.decompose()

    for tag in soup.find_all(True):
        if tag.decomposed:
            continue
        marker = " ".join(tag.get("class") or []) + " " + str(tag.get("id") or "")
        if marker.strip() and _BOILERPLATE_MARKERS.search(marker):
            tag.decompose()

    # Block boundaries become spaces so words from adjacent paragraphs do not merge
    for tag in soup.find_all(_BLOCK_TAGS):
        if tag.name == "br":
            tag.replace_with(" ")
        else:
            tag.insert_after(" ")
    return soup.get_text()


def clean_html_to_text(html_content: Optional[str]) -> str:
    """Convert an HTML snippet to a single line of plain text.

    Behavior:
    - Removes script/style and other non-prose elements
    - Removes share/ad/footer containers identified by class or id
    - Drops "[...]" truncation markers, "Read more" tails and
      "The post X appeared first on Y." trailers
    - Decodes HTML entities and collapses whitespace
    """
    if not html_content:
        return ""

    text = _strip_markup(html_content)
    # Entities may be double-encoded by some feed engines
    text = html.unescape(text)
    text = _POST_TRAILER.sub(" ", text)
    text = _TRUNCATION_MARKER.sub(" ", text)
    text = _WHITESPACE.sub(" ", text).strip()
    text = _READ_MORE.sub("", text).strip()
    return text


def sanitize(html_content: Optional[str], min_length: int = MIN_DESCRIPTION_LENGTH) -> str:
    """Return the plain-text form of ``html_content``, or "" when it is too short to publish."""
    text = clean_html_to_text(html_content)
    if len(text) < min_length:
        return ""
    return text


def decode_title(title: Optional[str]) -> str:
    """Titles are plain text in most feeds but often carry entities or stray tags."""
    if not title:
        return ""
    if "<" in title:
        title = BeautifulSoup(title, "html.parser").get_text(" ")
    return _WHITESPACE.sub(" ", html.unescape(title)).strip()


def title_slug(title: str, length: int = DEDUP_PREFIX_LENGTH) -> str:
    """Dedup key: the first ``length`` lower-cased characters of the title."""
    return (title or "").lower()[:length]


def make_item_id(source_name: str, timestamp: int, title: str) -> str:
    raw = f"{source_name}-{timestamp}-{(title or '')[:24]}"
    return _SLUG_CHARS.sub("-", raw.lower()).strip("-")


def format_display_date(timestamp_ms: int) -> str:
    """Format an epoch-milliseconds timestamp as e.g. ``18 Oct 2026`` (UTC)."""
    try:
        dt = datetime.fromtimestamp(int(timestamp_ms) / 1000, tz=timezone.utc)
    except (OSError, OverflowError, ValueError, TypeError):
        return ""
    return dt.strftime("%d %b %Y")


def split_sentences(text: str, limit: int = 4) -> List[str]:
    """Split prose into at most ``limit`` sentences."""
    if not text:
        return []
    sentences = [s.strip() for s in _SENTENCE_END.split(text.strip()) if s.strip()]
    return sentences[:limit]


def truncate_string(text: str, max_length: int, suffix: str = "...") -> str:
    """Truncate a string to a maximum length, adding a suffix if truncated."""
    if not text or len(text) <= max_length:
        return text

    if len(suffix) >= max_length:
        return text[:max_length]

    return text[:max_length - len(suffix)] + suffix
