#!/usr/bin/env python3
"""
Image selection for feed entries.

Every surfaced NewsItem needs an illustrative image, so each entry's image
candidates are scored by likely fidelity and the best survivor wins:

1. media extension nodes (media:content / media:thumbnail) and image enclosures
   are trusted, fixed score HIGH_FIDELITY_SCORE;
2. inline <img> tags from the content body are only consulted when no
   candidate from (1) survives, fixed score INLINE_SCORE.

Candidates matching a known low-resolution signature are rejected outright.
"""

from typing import Iterable, List, Optional, Tuple
import re

from bs4 import BeautifulSoup

from config import get_logger
from models import ImageCandidate, RawEntry

logger = get_logger("images")

HIGH_FIDELITY_SCORE = 100
INLINE_SCORE = 80
MIN_URL_LENGTH = 25
MIN_IMAGE_WIDTH = 600

# Naming patterns used by CMSes for thumbnails, avatars, icons and spacers.
# Bare words only match as a whole word or path segment, so "silicon" or
# "catalogo" never trip "icon" or "logo".
LOW_RES_SIGNATURES = [
    "thumbnail",
    "thumb",
    "thumbs",
    "avatar",
    "gravatar",
    "icon",
    "icons",
    "favicon",
    "logo",
    "logos",
    "sprite",
    "placeholder",
    "spacer",
    "blank.gif",
    "pixel",
    "/small/",
    "_small.",
    "-small.",
    "_sq.",
    "/tiny/",
    "emoji",
    "feeds.feedburner.com",
    "wp-includes/images",
]


def _signature_pattern(signature: str) -> "re.Pattern[str]":
    if signature.isalpha():
        return re.compile(rf"(?<![a-z0-9]){re.escape(signature)}(?![a-z])")
    return re.compile(re.escape(signature))


_SIGNATURE_PATTERNS = [(signature, _signature_pattern(signature)) for signature in LOW_RES_SIGNATURES]

_DIMENSION_TOKEN = re.compile(r"(?<![a-z0-9])(\d{1,4})x(\d{1,4})(?!\d)")
_SIZE_PARAM = re.compile(r"[?&;](?:w|width|resize|size|sz|maxwidth)=(\d+)", re.I)


def rejection_reason(candidate: ImageCandidate, min_width: int = MIN_IMAGE_WIDTH) -> Optional[str]:
    """Return why a candidate is unusable, or None when it is acceptable."""
    url = candidate.url or ""
    if not url.startswith(("http://", "https://")):
        return "not absolute"
    if len(url) < MIN_URL_LENGTH:
        return "too short"

    lowered = url.lower()
    for signature, pattern in _SIGNATURE_PATTERNS:
        if pattern.search(lowered):
            return f"signature {signature!r}"

    for match in _DIMENSION_TOKEN.finditer(lowered):
        if int(match.group(1)) < min_width:
            return f"dimension token {match.group(0)}"

    for match in _SIZE_PARAM.finditer(lowered):
        if int(match.group(1)) < min_width:
            return f"size parameter {match.group(0).lstrip('?&;')}"

    if candidate.width is not None and candidate.width < min_width:
        return f"declared width {candidate.width}"
    return None


def inline_candidates(content: str) -> List[ImageCandidate]:
    """Extract <img> tags from an HTML body, lazy-load attributes included."""
    if not content or "<img" not in content.lower():
        return []
    soup = BeautifulSoup(content, "html.parser")
    candidates: List[ImageCandidate] = []
    for img in soup.find_all("img"):
        src = img.get("data-src") or img.get("data-lazy-src") or img.get("src") or ""
        src = src.strip()
        if not src:
            continue
        width = img.get("width")
        try:
            declared = int(str(width).strip().rstrip("px")) if width else None
        except ValueError:
            declared = None
        candidates.append(ImageCandidate(url=src, origin="inline", width=declared))
    return candidates


def score_candidates(
    candidates: Iterable[ImageCandidate],
    min_width: int = MIN_IMAGE_WIDTH,
) -> List[Tuple[int, ImageCandidate]]:
    """Score surviving candidates, best first; ties keep first-seen order."""
    scored: List[Tuple[int, ImageCandidate]] = []
    for candidate in candidates:
        reason = rejection_reason(candidate, min_width)
        if reason:
            logger.debug(f"Rejected image {candidate.url[:120]}: {reason}")
            continue
        score = INLINE_SCORE if candidate.origin == "inline" else HIGH_FIDELITY_SCORE
        scored.append((score, candidate))
    # sorted() is stable, so equal scores stay in discovery order
    return sorted(scored, key=lambda pair: pair[0], reverse=True)


def select_image(entry: RawEntry, min_width: int = MIN_IMAGE_WIDTH) -> Optional[str]:
    """Pick the highest-fidelity image URL for an entry, or None if nothing qualifies."""
    ranked = score_candidates(list(entry.media) + list(entry.enclosures), min_width)
    if not ranked:
        ranked = score_candidates(inline_candidates(entry.content), min_width)

    if not ranked:
        return None
    return ranked[0][1].url
