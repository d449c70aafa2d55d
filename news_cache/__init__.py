"""
Regional News Cache Package

Caches regional RSS news per region with deduplication, feed-reset
detection, freshness tracking and fail-open persistence, so the latest
fetched news stays readable offline.
"""

__version__ = "1.0.0"
__author__ = "Regional News Cache Team"

# Package-level imports for convenience
from .bookmarks import BookmarkStore
from .cache_store import CacheStore
from .config_manager import ConfigManager
from .exceptions import FetchError, NewsCacheError, PersistenceError
from .fetch_coordinator import FetchCoordinator
from .models import ArticleRecord, CacheStats, FeedSource, RefreshReport
from .persistence import FileBlobBackend, MemoryBlobBackend, PersistenceAdapter
from .region_cache import RegionCache

__all__ = [
    'ArticleRecord',
    'BookmarkStore',
    'CacheStats',
    'CacheStore',
    'ConfigManager',
    'FeedSource',
    'FetchCoordinator',
    'FetchError',
    'FileBlobBackend',
    'MemoryBlobBackend',
    'NewsCacheError',
    'PersistenceAdapter',
    'PersistenceError',
    'RefreshReport',
    'RegionCache',
]
