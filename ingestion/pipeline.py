"""Composition root: build the pipeline objects from settings."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

import redis

from ingestion.connectors.base import BaseConnector
from ingestion.connectors.news_api import NewsDataConnector
from ingestion.connectors.rss import RSSConnector
from ingestion.services.deduplicator import DedupTracker, InMemoryKeyStore, KeyStore, RedisKeyStore
from ingestion.services.feed import ArticleFeed
from ingestion.services.fetcher import SourceFetcher
from ingestion.services.orchestrator import Enricher, EnrichmentOrchestrator
from ingestion.settings import Settings, get_settings
from ingestion.storage.articles import ArticleStorage
from ingestion.storage.blob import BlobStore, HttpBlobStore, InMemoryBlobStore
from ingestion.utils.logging import get_logger
from llm.client.openai_client import OpenAIClient
from llm.settings import AnalysisSettings, get_analysis_settings

logger = get_logger(__name__)


@dataclass
class Pipeline:
    settings: Settings
    store: BlobStore
    storage: ArticleStorage
    tracker: DedupTracker
    fetcher: SourceFetcher
    orchestrator: EnrichmentOrchestrator
    feed: ArticleFeed

    async def aclose(self) -> None:
        """Finish background enrichment, then release HTTP resources."""
        await self.orchestrator.drain()
        if isinstance(self.store, HttpBlobStore):
            await self.store.aclose()


def build_blob_store(settings: Settings) -> BlobStore:
    if settings.blob_backend == "http":
        token = settings.blob_read_write_token.get_secret_value() if settings.blob_read_write_token else None
        return HttpBlobStore(settings.blob_api_url, token, timeout=float(settings.blob_request_timeout_seconds))
    return InMemoryBlobStore()


def _redis_keystore(settings: Settings, prefix: str) -> KeyStore:
    client = redis.Redis.from_url(settings.redis_url, socket_connect_timeout=0.5)
    return RedisKeyStore(client, prefix=prefix, default_ttl_seconds=int(settings.dedup_redis_ttl_seconds))


def build_tracker(settings: Settings) -> DedupTracker:
    if settings.dedup_backend == "redis":
        logger.info("dedup.keystore.redis", extra={"redis_url": settings.redis_url})
        return DedupTracker(
            in_flight=_redis_keystore(settings, "dedup:inflight"),
            seen_urls=_redis_keystore(settings, "dedup:seen"),
        )
    return DedupTracker(in_flight=InMemoryKeyStore(), seen_urls=InMemoryKeyStore())


def build_connectors(settings: Settings) -> List[BaseConnector]:
    connectors: List[BaseConnector] = [NewsDataConnector(settings=settings)]
    for feed_url in settings.rss_feeds:
        connectors.append(
            RSSConnector(
                feed_url,
                timeout=float(settings.newsdata_timeout_seconds),
                max_items=int(settings.rss_items_per_feed),
            )
        )
    return connectors


def build_pipeline(
    settings: Optional[Settings] = None,
    analysis_settings: Optional[AnalysisSettings] = None,
    *,
    store: Optional[BlobStore] = None,
    tracker: Optional[DedupTracker] = None,
    connectors: Optional[Sequence[BaseConnector]] = None,
    enricher: Optional[Enricher] = None,
) -> Pipeline:
    """Wire every component; any collaborator can be replaced (tests, local runs)."""
    cfg = settings or get_settings()
    store = store if store is not None else build_blob_store(cfg)
    tracker = tracker if tracker is not None else build_tracker(cfg)
    analysis_cfg = analysis_settings or get_analysis_settings()
    enricher = enricher if enricher is not None else OpenAIClient(analysis_cfg)

    storage = ArticleStorage(
        store,
        request_delay=float(cfg.blob_request_delay_seconds),
        request_timeout=float(cfg.blob_request_timeout_seconds),
        list_max_entries=int(cfg.blob_list_max_entries),
        scan_page_size=int(cfg.blob_scan_page_size),
        scan_max_pages=int(cfg.blob_scan_max_pages),
    )
    fetcher = SourceFetcher(
        connectors if connectors is not None else build_connectors(cfg),
        tracker,
        max_attempts=int(cfg.newsdata_max_retries),
    )
    orchestrator = EnrichmentOrchestrator(
        storage,
        tracker,
        enricher,
        enrichment_delay=float(cfg.enrichment_delay_seconds),
        max_chars=int(analysis_cfg.analysis_max_chars),
    )
    feed = ArticleFeed(storage, fetcher, orchestrator, ttl_seconds=cfg.article_ttl_seconds)
    logger.info(
        "pipeline.built",
        extra={
            "blob_store": type(store).__name__,
            "dedup_backend": cfg.dedup_backend,
            "sources": [c.name for c in fetcher.connectors],
        },
    )
    return Pipeline(
        settings=cfg,
        store=store,
        storage=storage,
        tracker=tracker,
        fetcher=fetcher,
        orchestrator=orchestrator,
        feed=feed,
    )
