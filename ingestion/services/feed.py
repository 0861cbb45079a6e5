"""Read API service: merge stored and freshly fetched articles, then paginate."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Iterable, List, Optional

from ingestion.connectors.base import FetchRequest
from ingestion.models.domain import Article, FeedQuery, SearchQuery, utcnow
from ingestion.services.deduplicator import normalize_url, title_source_key
from ingestion.services.fetcher import SourceFetcher
from ingestion.services.orchestrator import EnrichmentOrchestrator
from ingestion.storage.articles import ArticleStorage
from ingestion.utils.logging import get_logger

logger = get_logger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class FeedPage:
    articles: List[Article] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    total_articles: int = 0
    has_more: bool = False


class LookupStatus(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    PENDING = "pending"


@dataclass(frozen=True)
class ArticleLookup:
    status: LookupStatus
    article: Optional[Article] = None


def dedupe_articles(articles: Iterable[Article]) -> List[Article]:
    """Keep the first article per normalized URL and per title+source pair."""
    seen_urls: set[str] = set()
    seen_titles: set[str] = set()
    unique: List[Article] = []
    for article in articles:
        url_key = normalize_url(article.url)
        title_key = title_source_key(article)
        if (url_key and url_key in seen_urls) or title_key in seen_titles:
            continue
        if url_key:
            seen_urls.add(url_key)
        seen_titles.add(title_key)
        unique.append(article)
    return unique


def merge_fresh(existing: List[Article], fresh: Iterable[Article]) -> List[Article]:
    """Prepend fresh articles that are not already present in `existing`."""
    known_urls = {normalize_url(a.url) for a in existing if a.url}
    known_titles = {title_source_key(a) for a in existing}
    added: List[Article] = []
    for article in fresh:
        url_key = normalize_url(article.url)
        title_key = title_source_key(article)
        if (url_key and url_key in known_urls) or title_key in known_titles:
            continue
        if url_key:
            known_urls.add(url_key)
        known_titles.add(title_key)
        added.append(article)
    return added + existing


class ArticleFeed:
    """Entry point used by the HTTP routes and the periodic jobs."""

    def __init__(
        self,
        storage: ArticleStorage,
        fetcher: SourceFetcher,
        orchestrator: EnrichmentOrchestrator,
        *,
        ttl_seconds: float = 3600.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.storage = storage
        self.fetcher = fetcher
        self.orchestrator = orchestrator
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def _is_fresh(self, article: Article, now: datetime) -> bool:
        if article.stored_at is None:
            return True
        return (now - article.stored_at).total_seconds() <= self.ttl_seconds

    async def _stored(self, include_unanalyzed: bool) -> List[Article]:
        now = self._clock()
        articles = [
            a for a in await self.storage.list()
            if self._is_fresh(a, now) and (include_unanalyzed or a.analyzed)
        ]
        articles.sort(key=lambda a: a.stored_at or _EPOCH, reverse=True)
        return articles

    async def _collect(self, request: FetchRequest, errors: List[str]) -> List[Article]:
        batch = await self.fetcher.fetch_batch(request)
        errors.extend(batch.errors)
        result = await self.orchestrator.process_batch(batch.candidates, errors)
        return result.articles

    async def list_articles(self, query: FeedQuery) -> FeedPage:
        """Stored articles, refreshed from the sources when asked or when empty.

        Freshly fetched articles are returned even while still pending so the
        caller can show them before enrichment finishes.
        """
        errors: List[str] = []
        articles = await self._stored(query.include_unanalyzed)
        if query.refresh or not articles:
            request = FetchRequest(
                mode="headlines",
                country=query.country,
                category=query.category,
                size=min(query.page_size, 50),
            )
            fresh = await self._collect(request, errors)
            articles = merge_fresh(articles, fresh)

        unique = dedupe_articles(articles)
        start = (query.page - 1) * query.page_size
        end = start + query.page_size
        logger.info(
            "feed.list",
            extra={"total": len(unique), "page": query.page, "refresh": query.refresh, "errors": len(errors)},
        )
        return FeedPage(
            articles=unique[start:end],
            # background enrichment may still append to this list
            errors=list(errors),
            total_articles=len(unique),
            has_more=end < len(unique),
        )

    async def search(self, query: SearchQuery) -> FeedPage:
        errors: List[str] = []
        request = FetchRequest(
            mode="search",
            query=query.q,
            from_date=query.from_date,
            to_date=query.to_date,
            sort_by=query.sort_by,
            size=query.page_size,
        )
        unique = dedupe_articles(await self._collect(request, errors))
        logger.info("feed.search", extra={"q": query.q, "total": len(unique), "errors": len(errors)})
        return FeedPage(
            articles=unique[: query.page_size],
            errors=list(errors),
            total_articles=len(unique),
            has_more=len(unique) > query.page_size,
        )

    async def get_article(self, article_id: str) -> ArticleLookup:
        article = await self.storage.get_by_id(article_id)
        if article is None:
            return ArticleLookup(LookupStatus.NOT_FOUND)
        if not article.analyzed:
            return ArticleLookup(LookupStatus.PENDING, article)
        return ArticleLookup(LookupStatus.FOUND, article)

    async def add_article(
        self,
        title: str,
        content: str,
        *,
        url: str = "",
        source: str = "",
        summary: str = "",
    ) -> Article:
        return await self.orchestrator.analyze_now(title, content, url=url, source=source, summary=summary)

    async def delete_all(self) -> int:
        return await self.storage.delete_all()

    async def cleanup(self) -> int:
        return await self.storage.cleanup(self.ttl_seconds)
