"""
Persistence adapter for the news cache.

Serializes the whole CacheStore (and, separately, the bookmark set) as
versioned JSON documents stored in named blobs. Saves are atomic and loads
fail open: a missing or unreadable snapshot gives an empty store rather than
an error.
"""
import json
import logging
import os
import tempfile
import threading
from datetime import datetime, timezone
from json.decoder import JSONDecodeError
from typing import Dict, Iterable, Optional, Set

from news_cache.cache_store import CacheStore
from news_cache.exceptions import PersistenceError
from news_cache.models import ArticleRecord

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
CACHE_BLOB = "region_cache"
BOOKMARKS_BLOB = "bookmarks"


class MemoryBlobBackend:
    """Key-value blob store kept in memory."""

    def __init__(self, blobs: Optional[Dict[str, str]] = None):
        self.blobs: Dict[str, str] = dict(blobs or {})

    def read(self, name: str) -> Optional[str]:
        return self.blobs.get(name)

    def write(self, name: str, data: str) -> None:
        self.blobs[name] = data

    def delete(self, name: str) -> None:
        self.blobs.pop(name, None)


class FileBlobBackend:
    """
    Blob store backed by one JSON file per blob in a directory.

    Writes go to a temporary file in the same directory which then replaces
    the target, so a crash mid-write leaves the previous file intact.
    """

    def __init__(self, base_dir: str):
        """
        Initialize the file backend.

        Args:
            base_dir: Directory holding the blob files
        """
        self.base_dir = base_dir

        try:
            os.makedirs(self.base_dir, exist_ok=True)
        except OSError as e:
            logger.error(f"Failed to create cache directory {self.base_dir}: {e}")

        logger.debug(f"FileBlobBackend initialized with directory: {self.base_dir}")

    def path_for(self, name: str) -> str:
        return os.path.join(self.base_dir, f"{name}.json")

    def read(self, name: str) -> Optional[str]:
        """
        Read a blob.

        Returns:
            Blob contents, or None if it does not exist

        Raises:
            PersistenceError: If the file exists but cannot be read
        """
        file_path = self.path_for(name)
        if not os.path.exists(file_path):
            logger.debug(f"No blob file found: {file_path}")
            return None

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise PersistenceError(f"Could not read {file_path}: {e}") from e

    def write(self, name: str, data: str) -> None:
        """
        Atomically replace a blob.

        Raises:
            PersistenceError: If the data could not be written
        """
        file_path = self.path_for(name)
        tmp_path = None

        try:
            os.makedirs(self.base_dir, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=f".{name}.", suffix=".tmp", dir=self.base_dir)
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, file_path)
            tmp_path = None
        except OSError as e:
            raise PersistenceError(f"Could not write {file_path}: {e}") from e
        finally:
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)

    def delete(self, name: str) -> None:
        file_path = self.path_for(name)
        if os.path.exists(file_path):
            os.remove(file_path)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class PersistenceAdapter:
    """
    Saves and restores the cache store and the bookmark set.
    """

    def __init__(self, backend=None):
        """
        Initialize the adapter.

        Args:
            backend: Blob backend (FileBlobBackend or MemoryBlobBackend);
                     defaults to an in-memory store
        """
        self.backend = backend if backend is not None else MemoryBlobBackend()
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Region cache snapshot
    # ------------------------------------------------------------------

    def serialize(self, store: CacheStore) -> str:
        regions = {}
        for region in store.regions():
            state = store.region_state(region)
            if state is None:
                continue
            articles, last_updated = state
            regions[region] = {
                "last_updated": _iso(last_updated),
                "articles": [article.to_dict() for article in articles],
            }

        document = {
            "version": SCHEMA_VERSION,
            "saved_at": datetime.now(timezone.utc).isoformat(),
            "regions": regions,
        }
        return json.dumps(document, ensure_ascii=False)

    def save(self, store: CacheStore) -> bool:
        """
        Save a full snapshot of the store.

        Args:
            store: CacheStore to persist

        Returns:
            True on success; False if the write failed (the error is logged)
        """
        with self._lock:
            try:
                data = self.serialize(store)
                self.backend.write(CACHE_BLOB, data)
            except (PersistenceError, TypeError, ValueError) as e:
                logger.error(f"Error saving cache snapshot: {e}")
                return False

        logger.debug(f"Saved cache snapshot with {len(store.regions())} regions")
        return True

    def load(self, **store_options) -> CacheStore:
        """
        Restore the store from the last snapshot.

        Any problem with the snapshot (unreadable, corrupt JSON, wrong shape,
        unsupported version) results in an empty store.

        Args:
            **store_options: Keyword arguments for the CacheStore constructor

        Returns:
            The restored store, attached to this adapter
        """
        store_options.setdefault("persistence", self)

        try:
            raw = self.backend.read(CACHE_BLOB)
            if raw is None:
                logger.info("No cache snapshot found, starting with an empty cache")
                return CacheStore(**store_options)

            store = CacheStore(**store_options)
            for region, articles, last_updated in self._parse_snapshot(raw):
                store.restore_region(region, articles, last_updated)

        except (PersistenceError, JSONDecodeError, KeyError, TypeError, ValueError, AttributeError,
                RecursionError) as e:
            logger.warning(f"Cache snapshot unreadable, starting with an empty cache: {e}")
            return CacheStore(**store_options)

        logger.info(f"Loaded cache snapshot: {len(store.regions())} regions, {len(store.get_all())} articles")
        return store

    def _parse_snapshot(self, raw: str):
        document = json.loads(raw)
        if not isinstance(document, dict):
            raise ValueError("Snapshot is not a JSON object")

        version = document.get("version")
        if not isinstance(version, int) or version < 1:
            raise ValueError(f"Unsupported snapshot version: {version!r}")
        if version > SCHEMA_VERSION:
            logger.debug(f"Snapshot version {version} is newer than {SCHEMA_VERSION}, reading known fields only")

        regions = document.get("regions", {})
        if not isinstance(regions, dict):
            raise ValueError("Snapshot 'regions' is not an object")

        parsed = []
        for region, entry in regions.items():
            if not isinstance(entry, dict):
                raise ValueError(f"Region entry for '{region}' is not an object")
            articles = [ArticleRecord.from_dict(item) for item in entry.get("articles", [])]
            last_updated = entry.get("last_updated")
            if last_updated:
                last_updated = datetime.fromisoformat(last_updated)
                if last_updated.tzinfo is None:
                    last_updated = last_updated.replace(tzinfo=timezone.utc)
            parsed.append((region, articles, last_updated or None))
        return parsed

    # ------------------------------------------------------------------
    # Bookmark set
    # ------------------------------------------------------------------

    def save_bookmarks(self, ids: Iterable[str]) -> bool:
        """
        Save the bookmarked article ids.

        Returns:
            True on success; False if the write failed (the error is logged)
        """
        document = {"version": SCHEMA_VERSION, "ids": sorted(ids)}

        with self._lock:
            try:
                self.backend.write(BOOKMARKS_BLOB, json.dumps(document, ensure_ascii=False))
            except PersistenceError as e:
                logger.error(f"Error saving bookmarks: {e}")
                return False
        return True

    def load_bookmarks(self) -> Set[str]:
        """Load the bookmarked article ids; an unreadable blob gives an empty set."""
        try:
            raw = self.backend.read(BOOKMARKS_BLOB)
            if raw is None:
                return set()

            document = json.loads(raw)
            if not isinstance(document, dict):
                raise ValueError("Bookmarks document is not a JSON object")
            ids = document.get("ids", [])
            if not isinstance(ids, list) or not all(isinstance(item, str) for item in ids):
                raise ValueError("Bookmarks 'ids' must be a list of strings")

        except (PersistenceError, JSONDecodeError, ValueError, RecursionError) as e:
            logger.warning(f"Bookmarks unreadable, starting with none: {e}")
            return set()

        logger.debug(f"Loaded {len(ids)} bookmarks")
        return set(ids)
