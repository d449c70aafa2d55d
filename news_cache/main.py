"""
Main entry point for the regional news cache.
Wires configuration, storage, fetching and scheduling together.
"""
import argparse
import json
import logging
import os
import sys
import threading
from datetime import timedelta
from json.decoder import JSONDecodeError
from typing import Optional

from news_cache import __version__
from news_cache.bookmarks import BookmarkStore
from news_cache.cache_store import CacheStore
from news_cache.config_manager import ConfigManager, write_default_config
from news_cache.feed_fetcher import FeedFetcher
from news_cache.fetch_coordinator import FetchCoordinator
from news_cache.models import RefreshReport
from news_cache.persistence import FileBlobBackend, MemoryBlobBackend, PersistenceAdapter
from news_cache.scheduler import initialize_scheduler
from news_cache.utils.logging_utils import setup_logging
from news_cache.utils.proxy_utils import ProxyConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = "config"


class NewsCacheApp:
    """
    Explicitly constructed set of services making up the news cache.
    """

    def __init__(self, config_manager: ConfigManager, fetcher: Optional[FeedFetcher] = None):
        """
        Build every service from a loaded configuration.

        Args:
            config_manager: Loaded configuration
            fetcher: Fetcher to use instead of one built from the settings
        """
        self.config_manager = config_manager
        get = config_manager.get_config_value

        if get("storage.backend", "file") == "memory":
            backend = MemoryBlobBackend()
        else:
            backend = FileBlobBackend(get("storage.base_dir", "./cache"))
        self.persistence = PersistenceAdapter(backend)

        self.cache_store: CacheStore = self.persistence.load(
            expiry_interval=timedelta(hours=get("cache.expiry_hours", 6)),
            change_threshold=get("cache.change_threshold", 0.10),
            health_max_age=timedelta(hours=get("cache.health_max_age_hours", 24)),
            digest_timezone=get("cache.digest_timezone")
        )
        self.bookmarks = BookmarkStore(self.persistence)

        self.fetcher = fetcher or FeedFetcher(
            timeout=get("networking.timeout_seconds", 30),
            retry_attempts=get("networking.retry_attempts", 3),
            backoff_factor=get("networking.backoff_factor", 2.0),
            proxy_config=ProxyConfig(get("proxy", {})),
            user_agent=get("networking.user_agent")
        )
        self.coordinator = FetchCoordinator(
            self.cache_store,
            config_manager.get_sources(),
            fetcher=self.fetcher,
            max_workers=get("networking.max_workers", 4)
        )

        logger.info("News cache initialized successfully")

    @classmethod
    def from_config_dir(cls, config_dir: str) -> "NewsCacheApp":
        return cls(ConfigManager.from_dir(config_dir))

    def refresh(self, region: Optional[str] = None) -> RefreshReport:
        """Refresh one region, or every stale region when none is given."""
        if region:
            return self.coordinator.refresh_region(region)
        return self.coordinator.refresh_stale()

    def digest(self, limit: Optional[int] = None):
        limit = limit or self.config_manager.get_config_value("cache.digest_limit", 5)
        return self.cache_store.get_daily_digest(limit)

    def stats(self) -> dict:
        """Cache statistics plus per-region freshness, ready for display."""
        stats = self.cache_store.stats().to_dict()
        stats["regions"] = {
            region: {
                "articles": count,
                "age": self.cache_store.cache_age_string(region),
                "valid": self.cache_store.is_valid(region)
            }
            for region, count in self.cache_store.region_distribution().items()
        }
        stats["bookmarks"] = self.bookmarks.count()
        stats["status"] = self.cache_store.status_message()
        return stats

    def clear(self, region: Optional[str] = None) -> None:
        if region:
            self.cache_store.clear(region)
        else:
            self.cache_store.clear_all()

    def close(self) -> None:
        if not self.cache_store.flush():
            logger.warning("Cache snapshot could not be saved before exit")
        self.fetcher.close()


def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Regional News Cache - cached regional RSS news with offline reads",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  news-cache --init                          # Write default configuration
  news-cache --run-now                       # Refresh stale regions immediately
  news-cache --run-now --region Estonia      # Refresh one region
  news-cache --schedule                      # Start periodic refresh
  news-cache --digest                        # Show today's top articles
        """
    )
    parser.add_argument(
        "--config-dir",
        default=os.environ.get("NEWS_CACHE_CONFIG_DIR", DEFAULT_CONFIG_DIR),
        help="Path to configuration directory (default: config)"
    )
    parser.add_argument("--init", action="store_true", help="Write default configuration files and exit")
    parser.add_argument("--run-now", action="store_true", help="Refresh the cache immediately")
    parser.add_argument("--schedule", action="store_true", help="Start scheduler for automatic refresh")
    parser.add_argument("--stats", action="store_true", help="Print cache statistics")
    parser.add_argument("--digest", action="store_true", help="Print today's newest articles")
    parser.add_argument("--region", help="Limit --run-now or --clear to one region")
    parser.add_argument("--clear", action="store_true", help="Clear cached articles")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"Regional News Cache v{__version__}")

    return parser.parse_args(argv)


def _print_digest(app: NewsCacheApp) -> None:
    articles = app.digest()
    if not articles:
        print("No articles published today.")
        return
    for article in articles:
        published = article.published_at.strftime("%H:%M") if article.published_at else "--:--"
        print(f"{published}  [{article.region}] {article.title} ({article.source})")
        print(f"       {article.link}")


def _run_scheduler(app: NewsCacheApp) -> int:
    scheduler = initialize_scheduler(app.config_manager, app.coordinator.refresh_stale)
    if scheduler is None:
        logger.error("Failed to initialize scheduler.")
        return 1

    logger.info("Starting scheduler - Press Ctrl+C to stop")
    scheduler.start()
    try:
        threading.Event().wait()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler stopped by user or system signal")
    finally:
        scheduler.stop()
    return 0


def main(argv=None) -> int:
    """
    Main entry point for the script.
    """
    args = parse_arguments(argv)

    if args.init:
        logging.basicConfig(level=logging.DEBUG if args.debug else logging.INFO,
                            format='%(levelname)s: %(message)s')
        written = write_default_config(args.config_dir)
        print(f"Wrote {len(written)} configuration files to {args.config_dir}")
        return 0

    try:
        config_manager = ConfigManager.from_dir(args.config_dir)
    except FileNotFoundError:
        print(f"Configuration not found in '{args.config_dir}'. Run with --init first.", file=sys.stderr)
        return 1
    except (JSONDecodeError, ValueError, TypeError) as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 1

    log_level = "DEBUG" if args.debug else config_manager.get_config_value("logging.level", "INFO")
    setup_logging(log_level=log_level, log_dir=config_manager.get_config_value("logging.log_dir", "./logs"))
    logger.info("Application started.")

    app = None
    try:
        app = NewsCacheApp(config_manager)

        if args.clear:
            app.clear(args.region)

        if args.run_now:
            report = app.refresh(args.region)
            logger.info(f"Refresh summary: {json.dumps(report.to_dict(), indent=2)}")

        if args.stats:
            print(json.dumps(app.stats(), indent=2))

        if args.digest:
            _print_digest(app)

        if args.schedule:
            return _run_scheduler(app)

        if not (args.clear or args.run_now or args.stats or args.digest):
            logger.warning("No action specified. Use --run-now, --schedule, --stats or --digest")
            print(app.cache_store.status_message())

        return 0

    except (KeyboardInterrupt, SystemExit):
        logger.info("Process interrupted by user or system signal.")
        return 0
    except Exception as e:
        logger.critical(f"An unexpected critical error occurred in main execution: {e}", exc_info=True)
        return 1
    finally:
        if app is not None:
            app.close()


if __name__ == "__main__":
    sys.exit(main())
