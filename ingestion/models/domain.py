"""Domain DTOs for the ingestion pipeline."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from analysis.models.domain import ArticleMetrics
from analysis.validation import normalize_categories


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Article(BaseModel):
    """An article record as stored in the blob store and served to the dashboard.

    Serialized with camelCase keys (``imageUrl``, ``publishedAt``, ``storedAt``).
    ``stored_at`` is refreshed on every write and drives TTL eviction.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(..., min_length=1)
    title: str
    summary: str = ""
    content: str = ""
    url: str = ""
    image_url: str = ""
    source: str = ""
    published_at: Optional[str] = None
    metrics: ArticleMetrics = Field(default_factory=ArticleMetrics.pending)
    categories: List[str] = Field(default_factory=list)
    analyzed: bool = False
    ai_summary: Optional[str] = None
    stored_at: Optional[datetime] = None

    @field_validator("categories", mode="before")
    @classmethod
    def _closed_categories(cls, v: object) -> List[str]:
        if not v:
            return []
        return normalize_categories(v)  # type: ignore[arg-type]

    @field_validator("summary", "content", "url", "image_url", "source", mode="before")
    @classmethod
    def _none_to_empty(cls, v: object) -> object:
        return "" if v is None else v

    @field_validator("metrics", mode="before")
    @classmethod
    def _null_metrics(cls, v: object) -> object:
        return ArticleMetrics.pending() if v is None else v

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)

    def self_healed(self) -> "Article":
        """Records persisted with metrics but without the flag read back as analyzed."""
        if not self.analyzed and self.metrics.is_populated:
            return self.model_copy(update={"analyzed": True})
        return self


class FeedQuery(BaseModel):
    """Parameters of a dashboard list request."""

    country: str = "us"
    category: Optional[str] = None
    page: int = Field(1, ge=1)
    page_size: int = Field(5, ge=1, le=100)
    refresh: bool = False
    include_unanalyzed: bool = False


class SearchQuery(BaseModel):
    """Parameters of a free-text search request."""

    q: str = Field(..., min_length=1)
    from_date: Optional[str] = None
    to_date: Optional[str] = None
    sort_by: str = Field("publishedAt", pattern="^(relevancy|popularity|publishedAt)$")
    page_size: int = Field(20, ge=1, le=50)

    @field_validator("q")
    @classmethod
    def _strip_query(cls, v: str) -> str:
        s = v.strip()
        if not s:
            raise ValueError("q는 공백일 수 없습니다.")
        return s
