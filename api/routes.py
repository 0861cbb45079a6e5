from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import ValidationError

from analysis.models.domain import ArticleMetrics, EnrichmentInput
from analysis.validation import normalize_categories
from ingestion.connectors.base import ConfigurationError
from ingestion.models.domain import Article, FeedQuery, SearchQuery
from ingestion.services.feed import ArticleFeed, LookupStatus
from ingestion.settings import get_settings
from ingestion.storage.blob import StorageError
from ingestion.utils.logging import get_logger
from llm.client.openai_client import (
    InvalidCredentialsError,
    LLMError,
    LLMRateLimitError,
    LLMTimeoutError,
    MissingCredentialsError,
    OpenAIClient,
    TransientLLMError,
)
from llm.settings import get_analysis_settings

from .dependencies import client_dependency, feed_dependency
from .models import (
    AnalyzeRequest,
    AnalyzeResponse,
    ApiStatus,
    ArticleCreate,
    ArticleListResponse,
    DeleteResponse,
    OpenAICheck,
    SearchResponse,
)

router = APIRouter(prefix="/api")
logger = get_logger(__name__)

FeedDep = Annotated[ArticleFeed, Depends(feed_dependency)]
ClientDep = Annotated[OpenAIClient, Depends(client_dependency)]


@router.get("/articles", response_model=ArticleListResponse)
async def list_articles_route(
    feed: FeedDep,
    country: str = Query(default="us"),
    category: str | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=5, ge=1, le=100, alias="pageSize"),
    refresh: bool = Query(default=False),
    include_unanalyzed: bool = Query(default=False, alias="includeUnanalyzed"),
) -> ArticleListResponse:
    query = FeedQuery(
        country=country.lower(),
        category=category or None,
        page=page,
        page_size=page_size,
        refresh=refresh,
        include_unanalyzed=include_unanalyzed,
    )
    try:
        result = await feed.list_articles(query)
    except ConfigurationError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return ArticleListResponse(
        articles=result.articles,
        errors=result.errors,
        total_articles=result.total_articles,
        has_more=result.has_more,
    )


@router.get("/articles/search", response_model=SearchResponse)
async def search_articles_route(
    feed: FeedDep,
    q: str | None = Query(default=None),
    date_from: str | None = Query(default=None, alias="from"),
    date_to: str | None = Query(default=None, alias="to"),
    sort_by: str = Query(default="publishedAt", alias="sortBy"),
    page_size: int = Query(default=20, ge=1, le=50, alias="pageSize"),
) -> SearchResponse:
    if not q or not q.strip():
        raise HTTPException(status_code=400, detail="Query parameter 'q' is required")
    try:
        query = SearchQuery(q=q, from_date=date_from, to_date=date_to, sort_by=sort_by, page_size=page_size)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail="Invalid search parameters.") from exc
    try:
        result = await feed.search(query)
    except ConfigurationError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return SearchResponse(articles=result.articles, errors=result.errors)


@router.get("/articles/{article_id}", response_model=Article)
async def get_article_route(article_id: str, feed: FeedDep) -> Article:
    lookup = await feed.get_article(article_id)
    if lookup.status is LookupStatus.NOT_FOUND:
        raise HTTPException(status_code=404, detail="Article not found")
    if lookup.status is LookupStatus.PENDING:
        raise HTTPException(status_code=409, detail="Article analysis not complete")
    return lookup.article  # type: ignore[return-value]


@router.post("/articles", response_model=Article, status_code=201)
async def add_article_route(payload: ArticleCreate, feed: FeedDep) -> Article:
    if not (payload.title or "").strip() or not (payload.content or "").strip():
        raise HTTPException(status_code=400, detail="Missing required fields: title, content")
    try:
        return await feed.add_article(
            payload.title.strip(),  # type: ignore[union-attr]
            payload.content.strip(),  # type: ignore[union-attr]
            url=payload.url.strip(),
            source=payload.source.strip(),
            summary=payload.summary.strip(),
        )
    except MissingCredentialsError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    except LLMError as exc:
        logger.warning("api.add_article.enrich_failed", extra={"error": str(exc)})
        raise HTTPException(status_code=502, detail=f"Failed to analyze article: {exc}") from exc
    except StorageError as exc:
        logger.error("api.add_article.store_failed", extra={"error": str(exc)})
        raise HTTPException(status_code=502, detail="Failed to store article") from exc


@router.delete("/articles", response_model=DeleteResponse)
async def delete_all_articles_route(feed: FeedDep) -> DeleteResponse:
    deleted = await feed.delete_all()
    logger.info("api.delete_all", extra={"deleted": deleted})
    return DeleteResponse(deleted_count=deleted)


@router.post("/cleanup", response_model=DeleteResponse)
@router.get("/cleanup", response_model=DeleteResponse)
async def cleanup_route(feed: FeedDep) -> DeleteResponse:
    deleted = await feed.cleanup()
    return DeleteResponse(deleted_count=deleted)


@router.get("/status", response_model=ApiStatus)
async def api_status_route() -> ApiStatus:
    return ApiStatus(
        open_ai_key_available=get_analysis_settings().openai_api_key is not None,
        news_api_key_available=get_settings().newsdata_api_key is not None,
    )


@router.post("/analyze", response_model=AnalyzeResponse)
async def analyze_route(payload: AnalyzeRequest, client: ClientDep) -> AnalyzeResponse:
    """Analyze a single article without storing it."""
    if not (payload.title or "").strip() or not (payload.content or "").strip():
        raise HTTPException(status_code=400, detail="Missing required fields: title, content")
    try:
        inp = EnrichmentInput(
            title=payload.title,  # type: ignore[arg-type]
            content=payload.content.strip(),  # type: ignore[union-attr]
            max_chars=get_analysis_settings().analysis_max_chars,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail="Invalid article fields.") from exc
    try:
        result = await client.enrich(inp)
    except MissingCredentialsError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    except LLMError as exc:
        logger.warning("api.analyze.failed", extra={"error": str(exc)})
        raise HTTPException(status_code=502, detail=f"Failed to analyze article: {exc}") from exc
    return AnalyzeResponse(
        metrics=ArticleMetrics.pending().merged(result.metrics),
        categories=normalize_categories(result.categories),
        summary=result.summary,
        ai_summary=result.ai_summary,
    )


def _openai_failure_message(exc: LLMError) -> str:
    if isinstance(exc, MissingCredentialsError):
        return str(exc)
    if isinstance(exc, InvalidCredentialsError):
        return "Authentication error: Invalid API key or unauthorized access."
    if isinstance(exc, LLMRateLimitError):
        return "Rate limit exceeded: Too many requests to the OpenAI API."
    if isinstance(exc, LLMTimeoutError):
        return "Request to OpenAI API timed out. Please try again."
    if isinstance(exc, TransientLLMError):
        return "OpenAI API server error. Please try again later."
    return "Unknown error occurred while testing OpenAI API key."


@router.get("/check-openai", response_model=OpenAICheck, response_model_exclude_none=True)
async def check_openai_route(client: ClientDep) -> OpenAICheck:
    try:
        text = await client.ping()
    except LLMError as exc:
        logger.warning("api.check_openai.failed", extra={"error": str(exc), "kind": type(exc).__name__})
        return OpenAICheck(
            success=False,
            available=False,
            message=_openai_failure_message(exc),
            error=None if isinstance(exc, MissingCredentialsError) else str(exc),
        )
    return OpenAICheck(
        success=True,
        available=True,
        message="OpenAI API key is valid and working correctly.",
        response=f"{text}...",
    )
