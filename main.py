#!/usr/bin/env python3
"""
Diagnostic entry point for the news pipeline.

Runs the same calls the site makes (news list, artist of the day, quote,
search, genre filter) and prints the result, either as a readable listing or
as JSON. Exits 1 when the news list comes back empty.
"""

import argparse
import asyncio
import json
import sys
from typing import List

from config import config, get_logger
from models import NewsItem
from service import NewsService
from telemetry import init_telemetry, trace_span
from views import filter_by_category, search_news

logger = get_logger("main")
init_telemetry("music-hub-news-cli")


def print_items(items: List[NewsItem]) -> None:
    for item in items:
        marker = "BREAKING " if item.is_breaking else ""
        print(f"{marker}[{item.category}] {item.title}")
        print(f"    {item.source_name} - {item.date} - {item.source_url}")


@trace_span("cli.run", tracer_name="main")
async def run(args: argparse.Namespace) -> int:
    service = NewsService()
    logger.info(f"Configuration: {config.get_config_summary()}")

    if args.artist:
        profile = await service.fetch_artist_of_the_day(force=args.refresh)
        if args.json:
            print(json.dumps(profile.to_dict(), indent=2))
        else:
            print(f"{profile.name} ({profile.genre}, {profile.location})")
            for sentence in profile.biography:
                print(f"    {sentence}")
        return 0

    if args.quote:
        if args.refresh:
            await service.fetch_music_news(force=True)
        quote = await service.fetch_quote()
        if args.json:
            print(json.dumps({"text": quote.text, "author": quote.author}, indent=2))
        else:
            print(f'"{quote.text}" - {quote.author}')
        return 0

    items = await service.fetch_music_news(force=args.refresh)
    if not items:
        logger.error("No news items available")
        return 1

    if args.search:
        items = search_news(items, args.search)
    if args.category:
        items = filter_by_category(items, args.category)

    if args.json:
        print(json.dumps([item.to_dict() for item in items], indent=2))
    else:
        print_items(items)
    logger.info(f"Displayed {len(items)} items")
    return 0


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description='Music hub news pipeline')
    parser.add_argument('--refresh', action='store_true',
                        help='Bypass the cache and re-aggregate all sources')
    parser.add_argument('--search', type=str,
                        help='Only show items whose title contains this text')
    parser.add_argument('--category', type=str,
                        help='Only show items in this genre (All, News, Jazz, ...)')
    parser.add_argument('--artist', action='store_true',
                        help='Show the artist of the day')
    parser.add_argument('--quote', action='store_true',
                        help='Show a quote of the moment')
    parser.add_argument('--json', action='store_true',
                        help='Print JSON instead of a readable listing')

    args = parser.parse_args()

    try:
        sys.exit(asyncio.run(run(args)))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        sys.exit(130)


if __name__ == "__main__":
    main()
