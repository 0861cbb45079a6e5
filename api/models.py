from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from analysis.models.domain import ArticleMetrics
from ingestion.models.domain import Article


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ArticleListResponse(_CamelModel):
    articles: list[Article] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    total_articles: int = 0
    has_more: bool = False


class SearchResponse(_CamelModel):
    articles: list[Article] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class ArticleCreate(_CamelModel):
    title: str | None = None
    content: str | None = None
    url: str = ""
    source: str = ""
    summary: str = ""


class DeleteResponse(_CamelModel):
    deleted_count: int


class ApiStatus(_CamelModel):
    open_ai_key_available: bool
    news_api_key_available: bool


class AnalyzeRequest(_CamelModel):
    title: str | None = None
    content: str | None = None
    url: str = ""


class AnalyzeResponse(_CamelModel):
    metrics: ArticleMetrics
    categories: list[str] = Field(default_factory=list)
    summary: str = ""
    ai_summary: str = ""


class OpenAICheck(_CamelModel):
    success: bool
    available: bool
    message: str
    response: str | None = None
    error: str | None = None
