#!/usr/bin/env python3
"""
Keyword classification for news entries.

Everything here is a pure function over the tables below:
- BREAKING_PHRASES flag obituary/crisis headlines, which are forced into the
  breaking category;
- BANNED_KEYWORDS drop non-music or sensitive topics before classification;
- CATEGORY_RULES map keyword groups to a genre tag; the first match wins.

Matching is case-insensitive and bounded on word edges, so "rap" does not
match "trapeze" and "war" does not match "award".
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Pattern, Sequence, Tuple, Union
import re

from models import Category

BREAKING_PHRASES = [
    "dies",
    "died",
    "dead at",
    "has died",
    "passed away",
    "passes away",
    "obituary",
    "tribute to the late",
    "in memoriam",
    "rest in peace",
    "killed",
    "death of",
    "remembering",
]

BANNED_KEYWORDS = [
    "politics",
    "political",
    "election",
    "government",
    "senate",
    "congress",
    "parliament",
    "president",
    "prime minister",
    "democrat",
    "republican",
    "trump",
    "biden",
    "legislation",
    "tariff",
    "healthcare",
    "medicaid",
    "medicare",
    "vaccine",
    "abortion",
    "immigration",
    "war",
]

CATEGORY_RULES: List[Tuple[Category, List[str]]] = [
    (Category.CLASSICAL, [
        "classical", "orchestra", "orchestral", "symphony", "philharmonic",
        "concerto", "opera", "sonata", "composer", "conductor", "chamber music",
        "baroque", "string quartet",
    ]),
    (Category.JAZZ, [
        "jazz", "bebop", "swing", "big band", "saxophonist", "trumpeter",
        "blue note", "coltrane", "improvisation", "fusion",
    ]),
    (Category.HIP_HOP_RB, [
        "hip-hop", "hip hop", "rap", "rapper", "r&b", "rnb", "trap", "drill",
        "mixtape", "soul", "neo-soul", "grime",
    ]),
    (Category.FOLK_AMERICANA, [
        "folk", "americana", "country", "bluegrass", "singer-songwriter",
        "nashville", "banjo", "roots music", "grand ole opry",
    ]),
    (Category.ROCK, [
        "rock", "metal", "punk", "grunge", "hardcore", "guitarist", "riff",
        "heavy metal", "emo", "garage rock",
    ]),
    (Category.ELECTRONIC, [
        "electronic", "techno", "house music", "edm", "dj", "dance music",
        "synth", "synthesizer", "ambient", "rave", "drum and bass", "dubstep",
    ]),
    (Category.INDIE, [
        "indie", "lo-fi", "shoegaze", "dream pop", "bedroom pop", "alternative",
        "underground",
    ]),
]


def compile_keywords(keywords: Iterable[str]) -> Pattern[str]:
    """Build one alternation regex bounded on word edges."""
    escaped = sorted((re.escape(k.lower()) for k in keywords if k), key=len, reverse=True)
    return re.compile(r"(?<![\w])(?:" + "|".join(escaped) + r")(?![\w])", re.I)


_BREAKING = compile_keywords(BREAKING_PHRASES)
_BANNED = compile_keywords(BANNED_KEYWORDS)
_CATEGORY_PATTERNS: List[Tuple[Category, Pattern[str]]] = [
    (category, compile_keywords(keywords)) for category, keywords in CATEGORY_RULES
]


def is_breaking(title: str) -> bool:
    """True when the headline carries mortality/crisis language."""
    return bool(title) and _BREAKING.search(title) is not None


def is_banned(title: str, description: str = "") -> bool:
    """Topical gate: True when the entry is about a non-music/sensitive subject."""
    text = f"{title or ''} {description or ''}"
    return _BANNED.search(text) is not None


def match_category(
    text: str,
    rules: Optional[Sequence[Tuple[Category, Pattern[str]]]] = None,
) -> Optional[Category]:
    """Return the first category whose keyword group matches ``text``."""
    for category, pattern in rules or _CATEGORY_PATTERNS:
        if pattern.search(text):
            return category
    return None


def classify(
    title: str,
    description: str,
    default_category: Union[Category, str] = Category.GENERAL,
) -> Tuple[str, bool]:
    """Return ``(category, is_breaking)`` for an entry.

    Breaking headlines always get the breaking tag. Otherwise the first
    matching keyword group over title + description decides, falling back to
    the source's default category.
    """
    if is_breaking(title):
        return Category.BREAKING.value, True

    matched = match_category(f"{title or ''} {description or ''}".lower())
    if matched is not None:
        return matched.value, False

    if isinstance(default_category, Category):
        return default_category.value, False
    return str(default_category or Category.GENERAL.value), False
