"""
Bookmarked article ids, persisted separately from the region cache.
"""
import json
import logging
import os
from datetime import datetime, timezone
from typing import List, Optional

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0"


class BookmarkStore:
    """
    Set of article ids marked by the user.

    Every change is saved straight away through the persistence adapter.
    """

    def __init__(self, persistence=None):
        self.persistence = persistence
        self._ids = persistence.load_bookmarks() if persistence is not None else set()

    def __contains__(self, article_id: str) -> bool:
        return article_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def add(self, article_id: str) -> None:
        if article_id in self._ids:
            return
        self._ids.add(article_id)
        self._save()

    def remove(self, article_id: str) -> None:
        if article_id not in self._ids:
            return
        self._ids.discard(article_id)
        self._save()

    def toggle(self, article_id: str) -> bool:
        """Flip a bookmark. Returns True if the article is now bookmarked."""
        if article_id in self._ids:
            self.remove(article_id)
            return False
        self.add(article_id)
        return True

    def contains(self, article_id: str) -> bool:
        return article_id in self._ids

    def clear(self) -> None:
        self._ids = set()
        self._save()

    def count(self) -> int:
        return len(self._ids)

    def ids(self) -> List[str]:
        return sorted(self._ids)

    def export(self, file_path: str, exported_at: Optional[datetime] = None) -> Optional[str]:
        """
        Write the bookmarks to a JSON export file.

        Args:
            file_path: Destination path
            exported_at: Export timestamp (defaults to now, UTC)

        Returns:
            The path written, or None if the export failed
        """
        exported_at = exported_at or datetime.now(timezone.utc)
        data = {
            "exported_at": exported_at.isoformat(),
            "bookmarks_count": len(self._ids),
            "version": EXPORT_VERSION,
            "ids": self.ids(),
        }

        try:
            directory = os.path.dirname(file_path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(file_path, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
        except OSError as e:
            logger.error(f"Error exporting bookmarks to {file_path}: {e}")
            return None

        logger.info(f"Exported {len(self._ids)} bookmarks to {file_path}")
        return file_path

    def _save(self) -> None:
        if self.persistence is not None:
            self.persistence.save_bookmarks(self._ids)
