"""Fan-out over source connectors producing one batch of candidates."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

from ingestion.connectors.base import BaseConnector, ConfigurationError, ConnectorError, FetchRequest
from ingestion.models.domain import Article
from ingestion.services.deduplicator import DedupTracker, normalize_url
from ingestion.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class FetchBatch:
    candidates: List[Article] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    skipped: int = 0


class SourceFetcher:
    """Pull a bounded batch from every connector that supports the request.

    A failing source is reported in ``errors`` and does not stop the others;
    missing credentials (ConfigurationError) propagate to the caller.
    """

    def __init__(self, connectors: Sequence[BaseConnector], tracker: DedupTracker, *, max_attempts: int = 2) -> None:
        self.connectors = list(connectors)
        self.tracker = tracker
        self.max_attempts = max_attempts

    def _select(self, request: FetchRequest, sources: Optional[Iterable[str]]) -> List[BaseConnector]:
        wanted = set(sources) if sources is not None else None
        return [
            c for c in self.connectors
            if c.supports(request) and (wanted is None or c.name in wanted)
        ]

    async def fetch_batch(self, request: FetchRequest, *, sources: Optional[Iterable[str]] = None) -> FetchBatch:
        batch = FetchBatch()
        seen: set[str] = set()
        for connector in self._select(request, sources):
            try:
                articles = await connector.fetch(request, max_attempts=self.max_attempts)
            except ConfigurationError:
                raise
            except ConnectorError as exc:
                logger.warning("fetch.source_failed", extra={"source": connector.name, "error": str(exc)})
                batch.errors.append(f"Failed to fetch articles from {connector.name}: {exc}")
                continue

            for article in articles:
                key = normalize_url(article.url) or article.id
                if key in seen or self.tracker.is_tracked(article):
                    batch.skipped += 1
                    continue
                seen.add(key)
                batch.candidates.append(article)
            logger.info(
                "fetch.source_done",
                extra={"source": connector.name, "mode": request.mode, "received": len(articles)},
            )
        logger.info(
            "fetch.batch_done",
            extra={"candidates": len(batch.candidates), "skipped": batch.skipped, "errors": len(batch.errors)},
        )
        return batch
