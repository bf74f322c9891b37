"""
MetroFeed Data Models
=====================

Pydantic data models for sources, categories and articles, plus the plain
dataclasses used for transient parser output and per-operation results.
"""

from datetime import datetime, timezone, date
from typing import List, Optional, Dict, Any
from dataclasses import dataclass, field
from pydantic import BaseModel, Field, field_validator
import json


def utc_now() -> datetime:
    """Default clock for every component that needs 'now'."""
    return datetime.now(timezone.utc)


def utc_day(moment: datetime) -> str:
    """UTC calendar day key used by daily_source_stats."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).date().isoformat()


class Source(BaseModel):
    """One external feed and its fetch status."""
    id: str = Field(..., min_length=1, description="Stable source identifier")
    name: str = Field(..., min_length=1, max_length=255, description="Display name")
    url: str = Field(..., min_length=1, description="Feed URL")
    category: str = Field(default="general", description="Editorial category of the outlet")
    enabled: bool = Field(default=True, description="Whether the source is refreshed")
    priority: int = Field(default=1, description="Higher priority sources are processed first")
    batch_size: int = Field(default=20, ge=1, description="Maximum items requested per fetch")
    daily_quota: int = Field(default=100, ge=0, description="Maximum articles stored per UTC day")
    error_count: int = Field(default=0, ge=0, description="Cumulative fetch failures, never reset")
    last_error: Optional[str] = Field(default=None, description="Most recent failure message")
    last_fetched_at: Optional[datetime] = Field(default=None, description="Last successful fetch")
    fetch_count: int = Field(default=0, ge=0, description="Successful fetches to date")

    @field_validator('url')
    @classmethod
    def validate_url(cls, v):
        """Feed URLs must be http(s)."""
        if not v.lower().startswith(('http://', 'https://')):
            raise ValueError("Source url must start with http:// or https://")
        return v.strip()

    @classmethod
    def from_row(cls, row) -> "Source":
        data = dict(row)
        data['enabled'] = bool(data.get('enabled', True))
        data.pop('created_at', None)
        return cls(**data)

    def __str__(self) -> str:
        return f"Source({self.id}:{self.name})"


class Category(BaseModel):
    """Topic bucket with an ordered, lower-cased keyword list."""
    id: str = Field(..., min_length=1, description="Category identifier")
    name: str = Field(..., min_length=1, description="Display name")
    keywords: List[str] = Field(default_factory=list, description="Lower-cased keywords in order")
    sort_order: int = Field(default=0, description="Iteration order for classification")
    is_catch_all: bool = Field(default=False, description="Receives unmatched and tied items")

    @field_validator('keywords', mode='before')
    @classmethod
    def normalize_keywords(cls, v):
        """Accept JSON strings, lower-case and drop blanks while keeping order."""
        if isinstance(v, str):
            v = json.loads(v) if v.strip() else []
        seen = []
        for keyword in v or []:
            keyword = str(keyword).strip().lower()
            if keyword and keyword not in seen:
                seen.append(keyword)
        return seen

    @classmethod
    def from_row(cls, row) -> "Category":
        data = dict(row)
        data['is_catch_all'] = bool(data.get('is_catch_all', False))
        data.pop('enabled', None)
        return cls(**data)


class CategoryTable(BaseModel):
    """Ordered categories plus the designated catch-all id."""
    categories: List[Category] = Field(default_factory=list)
    catch_all_id: str = Field(default="general")

    @classmethod
    def build(cls, categories: List[Category], catch_all_id: Optional[str] = None) -> "CategoryTable":
        """Sort by sort_order (stable, so first-seen order breaks ties)."""
        ordered = sorted(categories, key=lambda c: c.sort_order)
        if catch_all_id is None:
            flagged = [c.id for c in ordered if c.is_catch_all]
            catch_all_id = flagged[0] if flagged else "general"
        return cls(categories=ordered, catch_all_id=catch_all_id)

    @property
    def ids(self) -> List[str]:
        return [c.id for c in self.categories]

    def scoring_categories(self) -> List[Category]:
        return [c for c in self.categories if c.id != self.catch_all_id]


@dataclass
class RawItem:
    """One parsed feed entry. Never persisted."""
    title: str
    link: str
    guid: Optional[str] = None
    description: str = ""
    content: str = ""
    author: Optional[str] = None
    published_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    media_urls: List[str] = field(default_factory=list)

    @property
    def dedup_key(self) -> str:
        return (self.guid or self.link).strip()


class ArticleCandidate(BaseModel):
    """Normalized article ready for classification, image lookup and storage."""
    title: str = Field(..., min_length=1, max_length=1000)
    slug: str = Field(..., min_length=1)
    description: str = Field(default="")
    author: Optional[str] = Field(default=None)
    source_id: str = Field(..., min_length=1)
    source_name: str = Field(..., min_length=1)
    source_url: Optional[str] = Field(default=None)
    category_id: Optional[str] = Field(default=None)
    published_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    image_url: Optional[str] = Field(default=None)
    original_url: str = Field(..., min_length=1)
    dedup_key: str = Field(..., min_length=1)


class Article(ArticleCandidate):
    """Persisted article record."""
    id: Optional[int] = Field(default=None)
    category_id: str = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_row(cls, row) -> "Article":
        return cls(**dict(row))


class DailySourceStat(BaseModel):
    """Per-source counters for one UTC calendar day."""
    source_id: str
    date_tracked: date
    articles_fetched: int = 0
    articles_stored: int = 0
    successful_fetches: int = 0


class RefreshLock(BaseModel):
    """A held (or stale) refresh lock row."""
    name: str
    holder_token: str
    acquired_at: datetime
    ttl_seconds: int
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


@dataclass
class StoreResult:
    """Outcome of one store attempt."""
    inserted: bool
    reason: str = "inserted"
    category_id: Optional[str] = None

    # Reasons
    INSERTED = "inserted"
    DUPLICATE = "duplicate"
    QUOTA_EXHAUSTED = "quota_exhausted"


@dataclass
class SourceResult:
    """Outcome of one source's sub-pipeline within a cycle."""
    source_id: str
    skipped: bool = False
    requested: int = 0
    fetched: int = 0
    stored: int = 0
    duplicates: int = 0
    item_errors: int = 0
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class CycleResult:
    """Outcome of one scheduled refresh trigger."""
    status: str
    cycle_id: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    sources: List[SourceResult] = field(default_factory=list)
    failure_reason: Optional[str] = None

    # Statuses
    COMPLETED = "completed"
    SKIPPED_NOT_DUE = "skipped_not_due"
    SKIPPED_LOCK_HELD = "skipped_lock_held"
    FAILED = "failed"

    @property
    def skipped(self) -> bool:
        return self.status in (self.SKIPPED_NOT_DUE, self.SKIPPED_LOCK_HELD)

    @property
    def total_stored(self) -> int:
        return sum(s.stored for s in self.sources)

    @property
    def total_fetched(self) -> int:
        return sum(s.fetched for s in self.sources)

    @property
    def failed_sources(self) -> List[str]:
        return [s.source_id for s in self.sources if s.error]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status,
            'cycle_id': self.cycle_id,
            'started_at': self.started_at.isoformat(),
            'finished_at': self.finished_at.isoformat() if self.finished_at else None,
            'sources_processed': len(self.sources),
            'sources_skipped': sum(1 for s in self.sources if s.skipped),
            'failed_sources': self.failed_sources,
            'total_fetched': self.total_fetched,
            'total_stored': self.total_stored,
            'failure_reason': self.failure_reason,
        }
