"""
RSS/Atom feed reader.

Downloads a feed through the fetch router and parses it with feedparser
into FeedItem records in feed order.
"""

import logging
from calendar import timegm
from dataclasses import dataclass
from datetime import datetime, timezone as dt_timezone
from typing import List, Optional

import feedparser
from django.conf import settings

from releases.exceptions import FeedFetchError

from .router import FetchRouter

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITEMS = 50


@dataclass
class FeedItem:
    """One entry of a syndicated feed."""

    title: str
    link: str
    content: str = ""
    summary: str = ""
    published_at: Optional[datetime] = None
    image_url: Optional[str] = None


def _entry_content(entry) -> str:
    """Full embedded content (content:encoded) or the summary."""
    contents = entry.get("content") or []
    for content in contents:
        value = content.get("value")
        if value:
            return value
    return entry.get("summary", "") or ""


def _entry_published(entry) -> Optional[datetime]:
    parsed = entry.get("published_parsed") or entry.get("updated_parsed")
    if not parsed:
        return None
    return datetime.fromtimestamp(timegm(parsed), tz=dt_timezone.utc)


def _entry_image(entry) -> Optional[str]:
    for enclosure in entry.get("enclosures", []) or []:
        if (enclosure.get("type") or "").startswith("image/") and enclosure.get("href"):
            return enclosure["href"]
    for media in entry.get("media_content", []) or []:
        if media.get("url") and (media.get("medium") == "image" or "type" not in media
                                 or (media.get("type") or "").startswith("image/")):
            return media["url"]
    return None


def parse_feed(data, max_items: Optional[int] = None) -> List[FeedItem]:
    """
    Parse feed bytes or text into FeedItems.

    Entries without a link are skipped.

    Args:
        data: Raw feed document
        max_items: Maximum number of items returned

    Returns:
        List of FeedItem in feed order

    Raises:
        FeedFetchError: If the document is not a feed
    """
    if max_items is None:
        max_items = getattr(settings, "INGEST_MAX_FEED_ITEMS", DEFAULT_MAX_ITEMS)

    parsed = feedparser.parse(data)
    if parsed.bozo and not parsed.entries:
        reason = str(parsed.get("bozo_exception", "unparseable feed"))
        raise FeedFetchError("<document>", reason)

    items = []
    for entry in parsed.entries:
        link = entry.get("link")
        if not link:
            continue
        items.append(
            FeedItem(
                title=entry.get("title", "") or "",
                link=link,
                content=_entry_content(entry),
                summary=entry.get("summary", "") or "",
                published_at=_entry_published(entry),
                image_url=_entry_image(entry),
            )
        )
        if len(items) >= max_items:
            break

    return items


def fetch_feed(
    url: str,
    router: Optional[FetchRouter] = None,
    max_items: Optional[int] = None,
) -> List[FeedItem]:
    """
    Download and parse a feed.

    Args:
        url: Feed URL
        router: Fetch router (a default one is created when omitted)
        max_items: Maximum number of items returned

    Returns:
        List of FeedItem in feed order

    Raises:
        FeedFetchError: If the feed cannot be downloaded or parsed
    """
    router = router or FetchRouter()
    response = router.fetch(url)

    if not response.success:
        raise FeedFetchError(url, response.error or f"HTTP {response.status_code}")

    try:
        items = parse_feed(response.body or response.content, max_items=max_items)
    except FeedFetchError as e:
        raise FeedFetchError(url, e.reason) from e

    logger.info(f"Fetched {len(items)} items from {url}")
    return items
