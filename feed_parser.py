#!/usr/bin/env python3
"""
Feed document parsing.

Turns one RSS/Atom document into RawEntry records: title, the richest content
body, publish date (epoch milliseconds), canonical link and the image-bearing
nodes (media extensions and image enclosures). Malformed documents yield an
empty list; nothing here raises to the caller.
"""

from calendar import timegm
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from hashlib import md5
from time import time
from typing import Any, List, Optional, Union
import io
import re

import feedparser

from config import get_logger
from models import ImageCandidate, RawEntry

logger = get_logger("feed_parser")

DATE_FIELDS = [
    'published',
    'updated',
    'created',
    'modified',
    'date',
    'pubDate',
    'pubdate',
    'issued',
]

_GUID_DATE_PATTERNS = [
    re.compile(r'(\d{4})-(\d{2})-(\d{2})'),
    re.compile(r'(\d{4})/(\d{2})/(\d{2})'),
]


def parse_feed(document: Union[str, bytes, None]) -> List[RawEntry]:
    """Parse a feed document into raw entries, in document order."""
    if not document:
        return []
    payload = document.encode('utf-8') if isinstance(document, str) else document

    try:
        # A stream keeps feedparser from treating the payload as a URL or path
        feed = feedparser.parse(io.BytesIO(payload), sanitize_html=True, resolve_relative_uris=True)
    except Exception as e:  # feedparser wraps most errors in bozo, but not all
        logger.warning(f"Feed parser failed: {e}")
        return []

    entries = feed.get('entries') or []
    if feed.get('bozo'):
        exc = feed.get('bozo_exception')
        if not entries:
            logger.warning(f"Unparsable feed document: {exc}")
            return []
        logger.debug(f"Feed parsed with warnings: {exc}")

    raw_entries: List[RawEntry] = []
    for entry in entries:
        try:
            raw_entries.append(to_raw_entry(entry))
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.debug(f"Skipping malformed entry: {e}")
    return raw_entries


def to_raw_entry(entry) -> RawEntry:
    """Map a feedparser entry to a RawEntry."""
    title = (get_entry_value(entry, 'title') or '').strip()
    link = (get_entry_value(entry, 'link') or '').strip()
    return RawEntry(
        title=title,
        link=link,
        content=extract_content(entry),
        published=_first_date_string(entry),
        timestamp=parse_date_enhanced(entry) * 1000,
        guid=get_guid(entry),
        media=extract_media(entry),
        enclosures=extract_enclosures(entry),
    )


def get_entry_value(entry, field: str) -> Any:
    """Safely fetch feedparser entry fields with attribute or dict access."""
    if not field or entry is None:
        return None
    try:
        value = getattr(entry, field)
    except AttributeError:
        value = None

    if value is not None:
        return value

    getter = getattr(entry, 'get', None)
    if callable(getter):
        try:
            return getter(field)
        except KeyError:
            return None
    return None


def extract_content(entry) -> str:
    """Prefer the full content body (content:encoded) over the short summary."""
    contents = get_entry_value(entry, 'content')
    if contents:
        best = ""
        for content_item in contents:
            value = content_item.get('value') if hasattr(content_item, 'get') else None
            if value and len(value) > len(best):
                best = value
        if best:
            return best

    for field in ('summary', 'description'):
        value = get_entry_value(entry, field)
        if value:
            return value
    return ""


def get_guid(entry) -> str:
    """Extract or generate a GUID for an entry."""
    entry_id = get_entry_value(entry, 'id')
    if entry_id:
        return str(entry_id)

    link = get_entry_value(entry, 'link')
    if link:
        return md5(link.encode()).hexdigest()

    title = get_entry_value(entry, 'title')
    published = get_entry_value(entry, 'published')
    if title and published:
        return md5(f"{title}{published}".encode()).hexdigest()
    return ""


def _to_int(value: Any) -> Optional[int]:
    try:
        parsed = int(float(str(value).strip().rstrip('px')))
    except (TypeError, ValueError):
        return None
    return parsed if parsed > 0 else None


def extract_media(entry) -> List[ImageCandidate]:
    """Collect media:content and media:thumbnail nodes that look like images."""
    candidates: List[ImageCandidate] = []
    for field in ('media_content', 'media_thumbnail'):
        for media in get_entry_value(entry, field) or []:
            if not hasattr(media, 'get'):
                continue
            url = (media.get('url') or '').strip()
            if not url:
                continue
            medium = (media.get('medium') or '').lower()
            mime = (media.get('type') or '').lower()
            if medium and medium != 'image':
                continue
            if mime and not mime.startswith('image'):
                continue
            candidates.append(ImageCandidate(
                url=url,
                origin='media',
                width=_to_int(media.get('width')),
                height=_to_int(media.get('height')),
            ))
    return candidates


def extract_enclosures(entry) -> List[ImageCandidate]:
    """Collect enclosures with an image MIME type."""
    candidates: List[ImageCandidate] = []
    for enclosure in get_entry_value(entry, 'enclosures') or []:
        if not hasattr(enclosure, 'get'):
            continue
        mime = (enclosure.get('type') or '').lower()
        url = (enclosure.get('href') or enclosure.get('url') or '').strip()
        if url and mime.startswith('image'):
            candidates.append(ImageCandidate(url=url, origin='enclosure'))
    return candidates


def _first_date_string(entry) -> Optional[str]:
    for field in DATE_FIELDS:
        value = get_entry_value(entry, field)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def parse_date_enhanced(entry) -> int:
    """Parse publication date (epoch seconds), falling back to the current time."""
    current_time = int(time())

    # Try the listed fields plus their *_parsed variants in priority order
    for field in DATE_FIELDS:
        timestamp = date_value_to_timestamp(get_entry_value(entry, field))
        if timestamp:
            return timestamp

        timestamp = date_value_to_timestamp(get_entry_value(entry, f"{field}_parsed"))
        if timestamp:
            return timestamp

    # Try to extract date from the guid if it looks like it contains a timestamp
    entry_id = get_entry_value(entry, 'id')
    if isinstance(entry_id, str):
        for pattern in _GUID_DATE_PATTERNS:
            match = pattern.search(entry_id)
            if match:
                try:
                    year, month, day = map(int, match.groups())
                    if 1900 <= year <= 2100:
                        return int(datetime(year, month, day, tzinfo=timezone.utc).timestamp())
                except (ValueError, TypeError, OSError) as e:
                    logger.debug(f"Failed to parse date components for '{entry_id}': {e}")

    return current_time


def date_value_to_timestamp(value: Any) -> Optional[int]:
    """Convert assorted date representations into a Unix timestamp."""
    if value in (None, ''):
        return None

    if isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        timestamp = int(value)
        return timestamp if timestamp > 0 else None

    if isinstance(value, datetime):
        dt = value
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return int(dt.timestamp())

    if isinstance(value, (list, tuple)):
        # struct_time from feedparser is already UTC
        try:
            return int(timegm(tuple(value)[:6] + (0, 0, 0)))
        except (OverflowError, ValueError, OSError, TypeError):
            return None

    if isinstance(value, str):
        return parse_date_string(value)

    return None


def parse_date_string(date_str: str) -> Optional[int]:
    parsers = (
        _parse_with_email_utils,
        _parse_with_feedparser,
        _parse_with_custom_formats,
    )
    for parser in parsers:
        timestamp = parser(date_str.strip())
        if timestamp is not None:
            return timestamp
    return None


def _parse_with_feedparser(date_str: str) -> Optional[int]:
    try:
        time_struct = feedparser._parse_date(date_str)
        if time_struct:
            # feedparser normalizes to UTC
            return int(datetime(*time_struct[:6], tzinfo=timezone.utc).timestamp())
    except (ValueError, TypeError, AttributeError, OSError, OverflowError):
        return None
    return None


def _parse_with_email_utils(date_str: str) -> Optional[int]:
    try:
        dt = parsedate_to_datetime(date_str)
        if dt:
            if dt.tzinfo is None:
                dt = dt.replace(tzinfo=timezone.utc)
            return int(dt.timestamp())
    except (TypeError, ValueError, OverflowError, IndexError):
        return None
    return None


def _parse_with_custom_formats(date_str: str) -> Optional[int]:
    custom_formats = [
        "%d %b %Y %H:%M:%S %z",
        "%d %b %Y %H:%M:%S %Z",
        "%d %b %Y %H:%M:%S",
        "%Y-%m-%dT%H:%M:%S%z",
        "%Y-%m-%d %H:%M:%S",
        "%Y-%m-%d",
    ]
    for fmt in custom_formats:
        try:
            dt = datetime.strptime(date_str, fmt)
            if dt.tzinfo is None:
                dt = dt.replace(tzinfo=timezone.utc)
            return int(dt.timestamp())
        except (ValueError, TypeError):
            continue
    return None
