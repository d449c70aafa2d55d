"""
Cache store module: the central read/write surface of the news cache.

Holds one RegionCache per region, decides freshness, answers queries and
triggers persistence after every mutation. Stale data stays readable;
expiry only tells callers that a refresh is due.
"""
import logging
import threading
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Callable, Dict, List, Optional, Sequence, Union

import pytz

from news_cache.models import ArticleRecord, CacheStats, MergeResult
from news_cache.region_cache import DEFAULT_CHANGE_THRESHOLD, RegionCache, sort_articles
from news_cache.utils.helpers import format_age

logger = logging.getLogger(__name__)

DEFAULT_EXPIRY_INTERVAL = timedelta(hours=6)
DEFAULT_HEALTH_MAX_AGE = timedelta(hours=24)
DEFAULT_DIGEST_LIMIT = 5
DEFAULT_TOP_LIMIT = 10

UpdateCallback = Callable[[str, List[ArticleRecord]], None]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def resolve_timezone(value: Union[str, tzinfo, None]) -> Optional[tzinfo]:
    """
    Turn a configured timezone into a tzinfo.

    Args:
        value: pytz zone name, tzinfo instance, or None for the system zone

    Returns:
        tzinfo, or None meaning "system local time"
    """
    if value is None or isinstance(value, tzinfo):
        return value

    try:
        return pytz.timezone(value)
    except pytz.exceptions.UnknownTimeZoneError:
        logger.warning(f"Unknown timezone: {value}, using system default")
        return None


class CacheStore:
    """
    Aggregate of all region caches.

    Mutations go through update_cache, update_article, clear and clear_all;
    each one saves a full snapshot through the persistence adapter, when one
    is attached.
    """

    def __init__(self, expiry_interval: timedelta = DEFAULT_EXPIRY_INTERVAL,
                 change_threshold: float = DEFAULT_CHANGE_THRESHOLD,
                 health_max_age: timedelta = DEFAULT_HEALTH_MAX_AGE,
                 digest_timezone: Union[str, tzinfo, None] = None,
                 clock: Optional[Callable[[], datetime]] = None,
                 persistence=None):
        """
        Initialize the cache store.

        Args:
            expiry_interval: Age after which a region is considered stale
            change_threshold: Count change ratio that triggers a feed reset
            health_max_age: Oldest region age still reported as healthy
            digest_timezone: Zone defining "today" for the daily digest
            clock: Callable returning the current aware datetime
            persistence: PersistenceAdapter used to save after mutations
        """
        self.expiry_interval = expiry_interval
        self.change_threshold = change_threshold
        self.health_max_age = health_max_age
        self.digest_timezone = resolve_timezone(digest_timezone)
        self.persistence = persistence

        self._clock = clock or _utc_now
        self._regions: Dict[str, RegionCache] = {}
        self._regions_lock = threading.Lock()
        self._subscribers: List[tuple] = []
        self._dirty = False

        logger.debug(f"CacheStore initialized with expiry {expiry_interval} and change threshold {change_threshold}")

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # Region bookkeeping
    # ------------------------------------------------------------------

    def _region_caches(self) -> List[RegionCache]:
        return list(self._regions.values())

    def _get_or_create(self, region: str) -> RegionCache:
        with self._regions_lock:
            region_cache = self._regions.get(region)
            if region_cache is None:
                region_cache = RegionCache(region, change_threshold=self.change_threshold)
                regions = dict(self._regions)
                regions[region] = region_cache
                self._regions = regions
                logger.debug(f"Created cache for region '{region}'")
            return region_cache

    def restore_region(self, region: str, articles: Sequence[ArticleRecord],
                       last_updated: Optional[datetime]) -> None:
        """
        Install a previously persisted region without merging or saving.

        Used by the persistence adapter when rebuilding a store on startup.
        """
        region_cache = RegionCache(region, articles, last_updated, change_threshold=self.change_threshold)
        with self._regions_lock:
            previous = self._regions.get(region)
            if previous is not None:
                previous.retire()
            regions = dict(self._regions)
            regions[region] = region_cache
            self._regions = regions

    def regions(self) -> List[str]:
        return sorted(self._regions)

    def region_state(self, region: str):
        """(articles, last_updated) for a region, or None if it has no cache."""
        region_cache = self._regions.get(region)
        return region_cache.state() if region_cache else None

    # ------------------------------------------------------------------
    # Freshness
    # ------------------------------------------------------------------

    def is_valid(self, region: str) -> bool:
        """
        Check whether a region's cache is still fresh.

        Args:
            region: Region name

        Returns:
            True if the region was updated less than expiry_interval ago
        """
        region_cache = self._regions.get(region)
        if region_cache is None or region_cache.last_updated is None:
            return False
        return self.now() - region_cache.last_updated < self.expiry_interval

    def stale_regions(self, regions: Sequence[str]) -> List[str]:
        """Regions from the given list that need a refresh."""
        return [region for region in regions if not self.is_valid(region)]

    def cache_age(self, region: str) -> Optional[timedelta]:
        region_cache = self._regions.get(region)
        if region_cache is None or region_cache.last_updated is None:
            return None
        return self.now() - region_cache.last_updated

    def cache_age_string(self, region: str) -> str:
        return format_age(self.cache_age(region))

    def latest_cache_timestamp(self) -> Optional[datetime]:
        stamps = [rc.last_updated for rc in self._region_caches() if rc.last_updated]
        return max(stamps) if stamps else None

    def status_message(self) -> str:
        """
        Human-readable freshness status for the calling layer.

        Returns:
            e.g. "You're viewing saved news from 3 hours ago"
        """
        latest = self.latest_cache_timestamp()
        if latest is None:
            return "No saved news yet"

        elapsed = max((self.now() - latest).total_seconds(), 0)
        hours = int(elapsed // 3600)
        minutes = int((elapsed % 3600) // 60)

        if hours > 0:
            return f"You're viewing saved news from {hours} hour{'' if hours == 1 else 's'} ago"
        if minutes > 0:
            return f"You're viewing saved news from {minutes} minute{'' if minutes == 1 else 's'} ago"
        return "You're viewing the latest news"

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, region: str) -> List[ArticleRecord]:
        """
        Get a region's articles, newest first, whether fresh or stale.

        Args:
            region: Region name

        Returns:
            List of articles (empty if the region was never cached)
        """
        region_cache = self._regions.get(region)
        return region_cache.snapshot() if region_cache else []

    def get_all(self) -> List[ArticleRecord]:
        articles = []
        for region in self.regions():
            articles.extend(self.get(region))
        return articles

    def get_by_category(self, category: str) -> List[ArticleRecord]:
        """Articles whose category contains the given text, ignoring case."""
        needle = (category or "").lower()
        return [article for article in self.get_all() if needle in article.category.lower()]

    def get_by_language(self, language: str) -> List[ArticleRecord]:
        return [article for article in self.get_all() if article.language == language]

    def get_article(self, article_id: str) -> Optional[ArticleRecord]:
        for region_cache in self._region_caches():
            article = region_cache.find(article_id)
            if article is not None:
                return article
        return None

    def search(self, query: str) -> List[ArticleRecord]:
        """
        Search cached articles by title or body text.

        Args:
            query: Case-insensitive text to look for

        Returns:
            Matching articles, newest first
        """
        needle = (query or "").strip().lower()
        if not needle:
            return []
        matches = [article for article in self.get_all()
                   if needle in article.title.lower() or needle in article.body.lower()]
        return sort_articles(matches)

    def get_top(self, limit: int = DEFAULT_TOP_LIMIT) -> List[ArticleRecord]:
        """Newest articles across all regions."""
        return sort_articles(self.get_all())[:max(limit, 0)]

    def get_daily_digest(self, limit: int = DEFAULT_DIGEST_LIMIT) -> List[ArticleRecord]:
        """
        Get today's newest articles.

        Only articles published on the current calendar day (in the digest
        timezone, or system local time when none is set) are considered.
        Fewer than ``limit`` results are returned as they are; earlier days
        are never used to fill the digest.

        Args:
            limit: Maximum number of articles

        Returns:
            Up to ``limit`` articles from today, newest first
        """
        today = self.now().astimezone(self.digest_timezone).date()
        todays = [
            article for article in self.get_all()
            if article.published_at is not None
            and article.published_at.astimezone(self.digest_timezone).date() == today
        ]
        return sort_articles(todays)[:max(limit, 0)]

    def region_distribution(self) -> Dict[str, int]:
        return {region: len(self.get(region)) for region in self.regions()}

    def language_distribution(self) -> Dict[str, int]:
        distribution: Dict[str, int] = {}
        for article in self.get_all():
            distribution[article.language] = distribution.get(article.language, 0) + 1
        return distribution

    def stats(self) -> CacheStats:
        """
        Get cache statistics.

        Returns:
            CacheStats; healthy means the oldest region was refreshed within
            health_max_age and at least one article is cached
        """
        region_caches = self._region_caches()
        total_articles = sum(len(rc) for rc in region_caches)
        stamps = [rc.last_updated for rc in region_caches if rc.last_updated]
        oldest = min(stamps) if stamps else None
        newest = max(stamps) if stamps else None

        is_healthy = (
            oldest is not None
            and self.now() - oldest < self.health_max_age
            and total_articles > 0
        )

        return CacheStats(
            total_articles=total_articles,
            total_regions=len(region_caches),
            oldest_cache_timestamp=oldest,
            newest_cache_timestamp=newest,
            is_healthy=is_healthy
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def update_cache(self, region: str, articles: Sequence[ArticleRecord], allow_reset: bool = True) -> MergeResult:
        """
        Merge freshly fetched articles into a region and persist the store.

        Args:
            region: Region name
            articles: Normalized articles fetched for the region
            allow_reset: Permit replacing the cached set on a large count change

        Returns:
            MergeResult describing the merge
        """
        articles = list(articles)
        result = None
        while result is None:
            # A concurrent clear retires the cache; merge into its replacement.
            region_cache = self._get_or_create(region)
            result = region_cache.merge(articles, self.now(), allow_reset=allow_reset)
        self._persist()
        self._notify(region, region_cache.snapshot())
        return result

    def update_article(self, article_id: str, **fields) -> Optional[ArticleRecord]:
        """
        Attach summary or translation fields to a cached article in place.

        Does not count as a merge: freshness and ordering are unchanged.

        Args:
            article_id: Canonical link of the article
            **fields: summary, translated_title and/or translated_summary

        Returns:
            The updated article, or None if it is not cached
        """
        for region_cache in self._region_caches():
            updated = region_cache.update_article(article_id, **fields)
            if updated is not None:
                self._persist()
                self._notify(region_cache.region, region_cache.snapshot())
                return updated

        logger.debug(f"Article not cached, nothing to update: {article_id}")
        return None

    def clear(self, region: str) -> None:
        with self._regions_lock:
            region_cache = self._regions.get(region)
            if region_cache is None:
                return
            # Retire before unmapping so no merge can commit into a removed cache.
            region_cache.retire()
            regions = dict(self._regions)
            del regions[region]
            self._regions = regions

        logger.info(f"Cleared cache for region '{region}'")
        self._persist()
        self._notify(region, [])

    def clear_all(self) -> None:
        with self._regions_lock:
            cleared = list(self._regions)
            for region_cache in self._regions.values():
                region_cache.retire()
            self._regions = {}

        logger.info(f"Cleared cache for all regions ({len(cleared)})")
        self._persist()
        for region in cleared:
            self._notify(region, [])

    # ------------------------------------------------------------------
    # Persistence and notifications
    # ------------------------------------------------------------------

    @property
    def dirty(self) -> bool:
        """True when the last save failed and the snapshot on disk is behind."""
        return self._dirty

    def _persist(self) -> None:
        if self.persistence is None:
            return
        self._dirty = not self.persistence.save(self)
        if self._dirty:
            logger.warning("Cache snapshot not saved; will retry on next change")

    def flush(self) -> bool:
        """Retry a failed save. Returns True when the snapshot is up to date."""
        if self.persistence is not None and self._dirty:
            self._persist()
        return not self._dirty

    def subscribe(self, callback: UpdateCallback, region: Optional[str] = None) -> None:
        """
        Register a callback run after a region changes.

        Args:
            callback: Called with (region, articles)
            region: Only notify for this region; None for every region
        """
        self._subscribers.append((region, callback))

    def unsubscribe(self, callback: UpdateCallback) -> None:
        self._subscribers = [(r, cb) for r, cb in self._subscribers if cb is not callback]

    def _notify(self, region: str, articles: List[ArticleRecord]) -> None:
        for wanted_region, callback in list(self._subscribers):
            if wanted_region is not None and wanted_region != region:
                continue
            try:
                callback(region, articles)
            except Exception as e:
                logger.error(f"Update callback failed for region '{region}': {e}", exc_info=True)
