"""
Data models for the news cache.
"""
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from news_cache.utils.helpers import canonicalize_link

DEFAULT_CATEGORY = "General"

# Sort key floor for records without a publication date.
_OLDEST = datetime.min.replace(tzinfo=timezone.utc)

# Fields a collaborator may change on a cached record without a merge.
ANNOTATION_FIELDS = ("summary", "translated_title", "translated_summary")


def _to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _from_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    if not isinstance(value, str):
        raise ValueError(f"Expected an ISO timestamp, got {value!r}")
    return _as_aware(datetime.fromisoformat(value))


def _as_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Naive datetimes are taken as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _optional_text(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise ValueError(f"Article field '{key}' must be a string, got {type(value).__name__}")
    return value


def _text(data: Dict[str, Any], key: str) -> str:
    return _optional_text(data, key) or ""


@dataclass(frozen=True)
class ArticleRecord:
    """
    Canonical, deduplicated representation of one article.

    The id is the article's canonical link, so the same story fetched twice,
    or from two overlapping feeds, collapses into one record.
    """
    id: str
    title: str
    body: str = ""
    summary: str = ""
    published_at: Optional[datetime] = None
    image_url: Optional[str] = None
    category: str = DEFAULT_CATEGORY
    source: str = ""
    region: str = ""
    language: str = ""
    cached_at: Optional[datetime] = None
    translated_title: Optional[str] = None
    translated_summary: Optional[str] = None

    def __post_init__(self):
        # Keep every timestamp aware so records always sort against each other.
        object.__setattr__(self, "published_at", _as_aware(self.published_at))
        object.__setattr__(self, "cached_at", _as_aware(self.cached_at))

    @classmethod
    def create(cls, link: str, title: str, **kwargs) -> "ArticleRecord":
        """Build a record whose id is the canonical form of ``link``."""
        article_id = canonicalize_link(link)
        if not article_id:
            raise ValueError("An article needs a link to be cached")
        if not kwargs.get("category"):
            kwargs["category"] = DEFAULT_CATEGORY
        return cls(id=article_id, title=title, **kwargs)

    @property
    def link(self) -> str:
        return self.id

    def sort_key(self):
        """Key for newest-first ordering; undated records sort as oldest."""
        return self.published_at or _OLDEST

    def with_cached_at(self, cached_at: datetime) -> "ArticleRecord":
        return replace(self, cached_at=cached_at)

    def with_fields(self, **fields) -> "ArticleRecord":
        return replace(self, **fields)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["published_at"] = _to_iso(self.published_at)
        data["cached_at"] = _to_iso(self.cached_at)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ArticleRecord":
        """
        Rebuild a record from its persisted form.

        Unknown keys are ignored so that documents written by newer versions
        still load. Missing or null text fields take their defaults.

        Raises:
            KeyError: If the id is missing
            ValueError: If a field has the wrong type or a timestamp is malformed
        """
        if not isinstance(data, dict):
            raise ValueError(f"Expected an article mapping, got {type(data).__name__}")

        article_id = data["id"]
        if not isinstance(article_id, str) or not article_id:
            raise ValueError(f"Article id must be a non-empty string, got {article_id!r}")

        return cls(
            id=article_id,
            title=_text(data, "title"),
            body=_text(data, "body"),
            summary=_text(data, "summary"),
            published_at=_from_iso(data.get("published_at")),
            image_url=_optional_text(data, "image_url"),
            category=_text(data, "category") or DEFAULT_CATEGORY,
            source=_text(data, "source"),
            region=_text(data, "region"),
            language=_text(data, "language"),
            cached_at=_from_iso(data.get("cached_at")),
            translated_title=_optional_text(data, "translated_title"),
            translated_summary=_optional_text(data, "translated_summary"),
        )


@dataclass(frozen=True)
class FeedSource:
    """One configured RSS source."""
    name: str
    url: str
    region: str
    language: str = "en"


@dataclass(frozen=True)
class CacheStats:
    total_articles: int
    total_regions: int
    oldest_cache_timestamp: Optional[datetime]
    newest_cache_timestamp: Optional[datetime]
    is_healthy: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_articles": self.total_articles,
            "total_regions": self.total_regions,
            "oldest_cache_timestamp": _to_iso(self.oldest_cache_timestamp),
            "newest_cache_timestamp": _to_iso(self.newest_cache_timestamp),
            "is_healthy": self.is_healthy,
        }


@dataclass
class MergeResult:
    """Outcome of one RegionCache merge."""
    region: str
    mode: str
    incoming: int
    added: int
    total: int
    change_ratio: float = 0.0


@dataclass
class RefreshReport:
    """Outcome of one FetchCoordinator run."""
    updated_regions: list = field(default_factory=list)
    failed_sources: list = field(default_factory=list)
    articles_fetched: int = 0
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return bool(self.updated_regions) or not self.failed_sources

    def to_dict(self) -> Dict[str, Any]:
        return {
            "updated_regions": list(self.updated_regions),
            "failed_sources": list(self.failed_sources),
            "articles_fetched": self.articles_fetched,
            "duration_seconds": self.duration_seconds,
        }
