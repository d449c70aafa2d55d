"""
Fetch coordinator.
Fetches every configured source concurrently and feeds the successful
results, grouped by region, into the cache store.
"""
import concurrent.futures
import logging
import time
from typing import Dict, List, Optional, Sequence

from news_cache.cache_store import CacheStore
from news_cache.exceptions import FetchError
from news_cache.feed_fetcher import FeedFetcher
from news_cache.models import ArticleRecord, FeedSource, RefreshReport
from news_cache.utils.logging_utils import log_refresh_summary

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4


class FetchCoordinator:
    """
    Orchestrates one refresh run across sources.

    Sources fail independently: a failed source is reported and skipped, and
    the cached articles of its region are left as they are.
    """

    def __init__(self, cache_store: CacheStore, sources: Sequence[FeedSource],
                 fetcher: Optional[FeedFetcher] = None, max_workers: int = DEFAULT_MAX_WORKERS):
        """
        Initialize the coordinator.

        Args:
            cache_store: Store receiving the fetched articles
            sources: Configured feed sources
            fetcher: Object with fetch_articles(source); defaults to FeedFetcher()
            max_workers: Upper bound on concurrent fetches
        """
        self.cache_store = cache_store
        self.sources = list(sources)
        self.fetcher = fetcher or FeedFetcher()
        self.max_workers = max(1, max_workers)

        logger.debug(f"FetchCoordinator initialized with {len(self.sources)} sources")

    def regions(self) -> List[str]:
        """Configured regions, in source order."""
        seen = []
        for source in self.sources:
            if source.region not in seen:
                seen.append(source.region)
        return seen

    def fetch_all(self) -> RefreshReport:
        """Fetch every source and update every region that had a success."""
        return self._refresh(self.sources)

    def refresh_stale(self) -> RefreshReport:
        """
        Fetch only the sources of regions whose cache has expired.

        Returns:
            RefreshReport (empty when every region is fresh)
        """
        stale = set(self.cache_store.stale_regions(self.regions()))
        if not stale:
            logger.info("All regions are fresh, nothing to refresh")
            return RefreshReport()

        logger.info(f"Refreshing stale regions: {', '.join(sorted(stale))}")
        return self._refresh([source for source in self.sources if source.region in stale])

    def refresh_region(self, region: str) -> RefreshReport:
        sources = [source for source in self.sources if source.region == region]
        if not sources:
            logger.warning(f"No sources configured for region '{region}'")
            return RefreshReport()
        return self._refresh(sources)

    def _fetch_concurrently(self, sources: Sequence[FeedSource]):
        successes: Dict[FeedSource, List[ArticleRecord]] = {}
        failures: List[FeedSource] = []

        workers = min(self.max_workers, len(sources))
        with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
            future_to_source = {
                executor.submit(self.fetcher.fetch_articles, source): source
                for source in sources
            }

            for future in concurrent.futures.as_completed(future_to_source):
                source = future_to_source[future]
                try:
                    successes[source] = future.result()
                except FetchError as e:
                    logger.warning(f"Source unavailable: {e}")
                    failures.append(source)
                except Exception as e:
                    logger.error(f"Unexpected error fetching '{source.name}': {e}", exc_info=True)
                    failures.append(source)

        return successes, failures

    def _refresh(self, sources: Sequence[FeedSource]) -> RefreshReport:
        start_time = time.time()
        report = RefreshReport()

        if not sources:
            logger.warning("No sources to fetch")
            return report

        successes, failures = self._fetch_concurrently(sources)
        failed_regions = {source.region for source in failures}
        report.failed_sources = [source.name for source in sources if source in failures]

        regions = []
        for source in sources:
            if source.region not in regions:
                regions.append(source.region)

        for region in regions:
            # Configured order, so the first-seen copy of a shared story is stable.
            region_sources = [s for s in sources if s.region == region and s in successes]
            if not region_sources:
                logger.warning(f"No source available for '{region}', keeping cached articles")
                continue

            articles = []
            for source in region_sources:
                articles.extend(successes[source])
            report.articles_fetched += len(articles)

            # With a source missing, a count drop means nothing; never reset then.
            allow_reset = region not in failed_regions
            self.cache_store.update_cache(region, articles, allow_reset=allow_reset)
            report.updated_regions.append(region)

        report.duration_seconds = time.time() - start_time
        log_refresh_summary(logger, report.updated_regions, report.failed_sources,
                            report.articles_fetched, report.duration_seconds)
        return report
