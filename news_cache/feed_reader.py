"""
Feed reader module.
Turns fetched feed documents into plain item dictionaries and normalizes
those into cacheable ArticleRecords. Markup handling is left to feedparser.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import feedparser

from news_cache.exceptions import FetchError
from news_cache.models import DEFAULT_CATEGORY, ArticleRecord, FeedSource
from news_cache.utils.helpers import canonicalize_link, clean_text, parse_published_date

logger = logging.getLogger(__name__)

IMAGE_TYPES = ("image/jpeg", "image/png", "image/gif", "image/webp")


class FeedReader:
    """
    Extracts items from RSS/Atom documents.
    """

    def __init__(self):
        logger.debug("FeedReader initialized")

    def read_items(self, content: str, source_name: str = "") -> List[Dict[str, Any]]:
        """
        Extract items from a feed document.

        Args:
            content: Raw feed document
            source_name: Source name, for log messages

        Returns:
            List of dicts with title, link, description, published_raw,
            category and image_url

        Raises:
            FetchError: If the document is not a readable feed
        """
        feed = feedparser.parse(content)

        # A valid but empty feed still has a version; an error page has none.
        if not feed.entries and (getattr(feed, "bozo", False) or not feed.get('version')):
            reason = feed.get('bozo_exception') or "not an RSS or Atom document"
            logger.warning(f"Unreadable feed document for '{source_name}': {reason}")
            raise FetchError(source_name, f"Unreadable feed document: {reason}")

        items = []
        for entry in feed.entries:
            try:
                items.append(self._extract_item(entry))
            except (AttributeError, KeyError, TypeError) as e:
                logger.exception(f"Error extracting item from '{source_name}': {e}")

        logger.debug(f"Extracted {len(items)} items from '{source_name}'")
        return items

    def _extract_item(self, entry) -> Dict[str, Any]:
        """
        Extract relevant data from a feedparser entry.

        Args:
            entry: Feed entry from feedparser

        Returns:
            Item dictionary
        """
        description = entry.get('summary', '') or entry.get('description', '')
        if not description and entry.get('content'):
            description = entry.content[0].get('value', '')

        published_raw = entry.get('published', '') or entry.get('updated', '')

        category = None
        tags = entry.get('tags') or []
        if tags:
            category = tags[0].get('term') or None

        return {
            "title": entry.get('title', '').strip(),
            "link": entry.get('link', '').strip(),
            "description": description,
            "published_raw": published_raw,
            "category": category,
            "image_url": self._extract_image(entry),
        }

    def _extract_image(self, entry) -> Optional[str]:
        for enclosure in entry.get('enclosures', []) or []:
            if enclosure.get('type', '') in IMAGE_TYPES and enclosure.get('href'):
                return enclosure['href']

        for media in entry.get('media_content', []) or []:
            if media.get('url'):
                return media['url']

        for thumbnail in entry.get('media_thumbnail', []) or []:
            if thumbnail.get('url'):
                return thumbnail['url']

        return None


def normalize_item(item: Dict[str, Any], source: FeedSource, cached_at: Optional[datetime] = None) -> Optional[ArticleRecord]:
    """
    Build an ArticleRecord from a fetched item.

    An unparseable date is kept as None; only items without a link (and so
    without an identity) are dropped.

    Args:
        item: Item dict as produced by FeedReader.read_items
        source: Source the item came from
        cached_at: Optional insertion time; the cache stamps one otherwise

    Returns:
        ArticleRecord, or None if the item has no usable link
    """
    link = canonicalize_link(item.get('link', ''))
    if not link:
        logger.warning(f"Item without link from '{source.name}', skipping: {item.get('title', 'N/A')}")
        return None

    body = clean_text(item.get('description', ''))

    return ArticleRecord.create(
        link,
        clean_text(item.get('title', '')),
        body=body,
        published_at=parse_published_date(item.get('published_raw')),
        image_url=item.get('image_url') or None,
        category=item.get('category') or DEFAULT_CATEGORY,
        source=source.name,
        region=source.region,
        language=source.language,
        cached_at=cached_at,
    )
