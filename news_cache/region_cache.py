"""
Per-region article cache.

Owns the merge and deduplication policy for one region: a fetched batch
either replaces the cached set (feed reset) or is appended to it
(incremental merge), depending on how much the article count moved.
"""
import logging
import threading
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple

from news_cache.models import ANNOTATION_FIELDS, ArticleRecord, MergeResult
from news_cache.utils.logging_utils import log_merge_results

logger = logging.getLogger(__name__)

# A count swing above this share of the larger side is treated as a feed reset.
DEFAULT_CHANGE_THRESHOLD = 0.10

MODE_RESET = "reset"
MODE_INCREMENTAL = "incremental"


def change_ratio(existing_count: int, incoming_count: int) -> float:
    """
    Relative difference between the cached and the incoming article count.

    Args:
        existing_count: Number of cached articles
        incoming_count: Number of fetched articles

    Returns:
        |incoming - existing| / max(existing, incoming, 1)
    """
    return abs(incoming_count - existing_count) / max(existing_count, incoming_count, 1)


def dedupe_articles(articles: Iterable[ArticleRecord]) -> List[ArticleRecord]:
    """Drop repeated ids, keeping the first occurrence of each."""
    seen = set()
    unique = []
    for article in articles:
        if article.id in seen:
            continue
        seen.add(article.id)
        unique.append(article)
    return unique


def sort_articles(articles: Iterable[ArticleRecord]) -> List[ArticleRecord]:
    """Newest publication first; undated articles last, in their original order."""
    return sorted(articles, key=ArticleRecord.sort_key, reverse=True)


def _stamp(article: ArticleRecord, now: datetime, previous: Optional[ArticleRecord] = None) -> ArticleRecord:
    cached_at = article.cached_at or now
    if previous is not None and previous.cached_at and cached_at < previous.cached_at:
        cached_at = previous.cached_at
    if cached_at == article.cached_at:
        return article
    return article.with_cached_at(cached_at)


def merge_articles(existing: Sequence[ArticleRecord], incoming: Sequence[ArticleRecord], now: datetime,
                   threshold: float = DEFAULT_CHANGE_THRESHOLD,
                   allow_reset: bool = True) -> Tuple[List[ArticleRecord], str, int, float]:
    """
    Merge a fetched batch into a region's cached articles.

    Args:
        existing: Currently cached articles (unique by id)
        incoming: Freshly fetched articles, possibly with repeated ids
        now: Merge time, stamped as cached_at on newly inserted articles
        threshold: Change ratio above which the batch replaces the cache
        allow_reset: When False the batch is always appended

    Returns:
        Tuple of (merged articles sorted newest first, mode, number of ids
        that were not cached before, change ratio)
    """
    ratio = change_ratio(len(existing), len(incoming))
    unique_incoming = dedupe_articles(incoming)
    by_id = {article.id: article for article in existing}

    if not unique_incoming:
        return sort_articles(existing), MODE_INCREMENTAL, 0, ratio

    if allow_reset and ratio > threshold:
        merged = [_stamp(article, now, by_id.get(article.id)) for article in unique_incoming]
        added = sum(1 for article in unique_incoming if article.id not in by_id)
        return sort_articles(merged), MODE_RESET, added, ratio

    # First-seen wins: cached records (and anything attached to them) are kept as-is.
    fresh = [_stamp(article, now) for article in unique_incoming if article.id not in by_id]
    return sort_articles(list(existing) + fresh), MODE_INCREMENTAL, len(fresh), ratio


class RegionCache:
    """
    Ordered, id-unique article set for one region plus its freshness stamp.

    Articles and last_updated are published together as one tuple that is
    swapped in a single assignment, so readers always see either the pre- or
    the post-merge state. Writers are serialized by a per-region lock.
    A cache removed from its store is retired and refuses further merges.
    """

    def __init__(self, region: str, articles: Iterable[ArticleRecord] = (),
                 last_updated: Optional[datetime] = None,
                 change_threshold: float = DEFAULT_CHANGE_THRESHOLD):
        self.region = region
        self.change_threshold = change_threshold
        self._state: Tuple[Tuple[ArticleRecord, ...], Optional[datetime]] = (
            tuple(sort_articles(dedupe_articles(articles))),
            last_updated
        )
        self._lock = threading.Lock()
        self._retired = False

    def __len__(self) -> int:
        return len(self._state[0])

    def __contains__(self, article_id: str) -> bool:
        return self.find(article_id) is not None

    def __repr__(self) -> str:
        return f"RegionCache(region={self.region!r}, articles={len(self)}, last_updated={self.last_updated})"

    @property
    def articles(self) -> Tuple[ArticleRecord, ...]:
        return self._state[0]

    @property
    def last_updated(self) -> Optional[datetime]:
        return self._state[1]

    def state(self) -> Tuple[Tuple[ArticleRecord, ...], Optional[datetime]]:
        """Consistent (articles, last_updated) pair."""
        return self._state

    def snapshot(self) -> List[ArticleRecord]:
        """Current articles as a new list, newest first."""
        return list(self._state[0])

    @property
    def retired(self) -> bool:
        return self._retired

    def retire(self) -> None:
        """Stop accepting merges; waits for a merge in progress to finish."""
        with self._lock:
            self._retired = True

    def ids(self) -> set:
        return {article.id for article in self._state[0]}

    def find(self, article_id: str) -> Optional[ArticleRecord]:
        for article in self._state[0]:
            if article.id == article_id:
                return article
        return None

    def merge(self, incoming: Sequence[ArticleRecord], now: datetime, allow_reset: bool = True) -> Optional[MergeResult]:
        """
        Merge a fetched batch and refresh last_updated.

        last_updated moves forward even when nothing was added, so an empty
        or fully duplicate fetch still counts as fresh.

        Args:
            incoming: Freshly fetched articles for this region
            now: Merge time
            allow_reset: Permit the feed-reset branch

        Returns:
            MergeResult describing what happened, or None if the cache was
            retired before the merge could run
        """
        with self._lock:
            if self._retired:
                return None
            merged, mode, added, ratio = merge_articles(
                self._state[0], incoming, now,
                threshold=self.change_threshold,
                allow_reset=allow_reset
            )
            self._state = (tuple(merged), now)

        result = MergeResult(
            region=self.region,
            mode=mode,
            incoming=len(incoming),
            added=added,
            total=len(merged),
            change_ratio=ratio
        )
        log_merge_results(logger, self.region, mode, result.incoming, added, result.total)
        return result

    def update_article(self, article_id: str, **fields) -> Optional[ArticleRecord]:
        """
        Attach collaborator output (summary, translations) to a cached article.

        This is not a merge: ordering, cached_at and last_updated are left
        untouched.

        Returns:
            The updated record, or None if the id is not cached here

        Raises:
            ValueError: If a field other than the annotation fields is given
        """
        unknown = set(fields) - set(ANNOTATION_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update fields in place: {', '.join(sorted(unknown))}")

        with self._lock:
            if self._retired:
                return None
            articles, last_updated = self._state
            for index, article in enumerate(articles):
                if article.id == article_id:
                    updated = article.with_fields(**fields)
                    self._state = (articles[:index] + (updated,) + articles[index + 1:], last_updated)
                    return updated
        return None
