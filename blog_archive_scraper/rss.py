from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import feedparser
from dateutil import parser as dateparser

from blog_archive_scraper.types import DiscoveredUrl


@dataclass(frozen=True)
class FeedEntry:
    title: str
    url: str
    published_at: Optional[datetime]


def parse_datetime(value: str | None) -> Optional[datetime]:
    if not value:
        return None
    try:
        dt = dateparser.parse(value)
        if dt is None:
            return None
        # Ensure tz-aware for consistent comparisons
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)
    except (ValueError, OverflowError, TypeError):
        return None


def looks_like_feed(text: str) -> bool:
    head = (text or "")[:2000].lower()
    return "<rss" in head or "<feed" in head or "<rdf:rdf" in head


def parse_feed_entries(xml_text: str, max_items: int) -> list[FeedEntry]:
    """Parse RSS/Atom/RDF text already fetched by the caller."""

    feed = feedparser.parse(xml_text)
    entries: list[FeedEntry] = []

    for e in (feed.entries or [])[:max_items]:
        title = getattr(e, "title", None) or ""
        url = getattr(e, "link", None) or ""

        published_at = None
        if getattr(e, "published", None):
            published_at = parse_datetime(getattr(e, "published"))
        elif getattr(e, "updated", None):
            published_at = parse_datetime(getattr(e, "updated"))
        elif getattr(e, "dc_date", None):
            published_at = parse_datetime(getattr(e, "dc_date"))

        if url:
            entries.append(FeedEntry(title=title, url=url, published_at=published_at))

    return entries


def feed_entry_to_discovered(e: FeedEntry) -> DiscoveredUrl:
    return DiscoveredUrl(
        url=e.url,
        recency_signal=e.published_at.isoformat() if e.published_at else None,
        title=e.title or None,
        via="feed",
    )
