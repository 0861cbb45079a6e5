"""Drive a candidate article from pending to analyzed.

Placeholder writes happen on the caller's coroutine; enrichment runs as a
fire-and-forget ``asyncio`` task. The placeholder write always precedes the
enrichment call, which always precedes the final write.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Protocol, Sequence, Set

from analysis.models.domain import EnrichmentInput, EnrichmentResult
from analysis.validation import normalize_categories
from ingestion.models.domain import Article
from ingestion.services.deduplicator import DedupTracker
from ingestion.storage.articles import ArticleStorage, StorageWriteError
from ingestion.utils.logging import get_logger

logger = get_logger(__name__)


class Enricher(Protocol):
    async def enrich(self, inp: EnrichmentInput) -> EnrichmentResult: ...


class SubmitState(str, Enum):
    PENDING = "pending"
    SKIPPED = "skipped"
    IN_FLIGHT = "in_flight"


@dataclass(frozen=True)
class SubmitOutcome:
    article: Article
    state: SubmitState


@dataclass
class BatchResult:
    articles: List[Article] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


def apply_enrichment(article: Article, result: EnrichmentResult) -> Article:
    """Merge an enrichment result into `article` and mark it analyzed."""
    update = {
        "metrics": article.metrics.merged(result.metrics),
        "categories": normalize_categories(result.categories),
        "analyzed": True,
        "ai_summary": result.ai_summary or article.ai_summary,
    }
    if result.summary and not article.summary:
        update["summary"] = result.summary
    return article.model_copy(update=update)


class EnrichmentOrchestrator:
    """Exactly-once-per-process enrichment of new articles.

    The tracker's in-flight markers are claimed before the placeholder write
    and released on every exit path of the background task.
    """

    def __init__(
        self,
        storage: ArticleStorage,
        tracker: DedupTracker,
        client: Enricher,
        *,
        enrichment_delay: float = 1.0,
        max_chars: int = 6000,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.storage = storage
        self.tracker = tracker
        self.client = client
        self.enrichment_delay = enrichment_delay
        self.max_chars = max_chars
        self._sleep = sleep
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    def _input_for(self, article: Article) -> EnrichmentInput:
        return EnrichmentInput(
            title=article.title,
            content=article.content or article.summary,
            max_chars=self.max_chars,
        )

    async def submit(self, candidate: Article, errors: Optional[List[str]] = None) -> SubmitOutcome:
        """Persist a placeholder for `candidate` and schedule its enrichment.

        Raises StorageWriteError when the placeholder cannot be stored.
        Enrichment failures are appended to `errors` once the task finishes.
        """
        errors = errors if errors is not None else []
        if not self.tracker.claim(candidate):
            logger.info("orchestrator.submit.in_flight", extra={"article_id": candidate.id})
            return SubmitOutcome(candidate, SubmitState.IN_FLIGHT)

        pending = candidate.model_copy(update={"analyzed": False})
        try:
            result = await self.storage.write(pending)
        except Exception:
            self.tracker.release(candidate)
            raise

        if result.duplicate:
            self.tracker.release(candidate)
            existing = result.article
            if existing is None:
                return SubmitOutcome(candidate, SubmitState.SKIPPED)
            if not existing.analyzed and self.tracker.claim(existing):
                # earlier enrichment failed; retry it for the stored record
                logger.info("orchestrator.submit.retry_pending", extra={"article_id": existing.id})
                self._schedule(existing, errors)
            return SubmitOutcome(existing, SubmitState.SKIPPED)

        stored = result.article or pending
        self.tracker.mark_seen_url(stored.url)
        self._schedule(stored, errors)
        logger.info("orchestrator.submit.pending", extra={"article_id": stored.id})
        return SubmitOutcome(stored, SubmitState.PENDING)

    def _schedule(self, article: Article, errors: List[str]) -> None:
        task = asyncio.create_task(self._enrich_in_background(article, errors), name=f"enrich:{article.id}")
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("orchestrator.enrich.cancelled", extra={"task": task.get_name()})
            return
        exc = task.exception()
        if exc is not None:
            logger.error("orchestrator.enrich.crashed", extra={"task": task.get_name(), "error": str(exc)})
        else:
            logger.debug("orchestrator.enrich.finished", extra={"task": task.get_name(), "analyzed": task.result()})

    async def _enrich_in_background(self, article: Article, errors: List[str]) -> bool:
        try:
            if self.enrichment_delay > 0:
                await self._sleep(self.enrichment_delay)
            result = await self.client.enrich(self._input_for(article))
            analyzed = apply_enrichment(article, result)
            await self.storage.write(analyzed)
            logger.info(
                "orchestrator.enrich.ok",
                extra={"article_id": article.id, "categories": analyzed.categories, "llm_cost": result.llm_cost},
            )
            return True
        except Exception as exc:
            message = f"Failed to analyze article {article.id} ({article.title[:60]}): {exc}"
            errors.append(message)
            logger.warning("orchestrator.enrich.failed", extra={"article_id": article.id, "error": str(exc)})
            return False
        finally:
            self.tracker.release(article)

    async def process_batch(self, candidates: Sequence[Article], errors: Optional[List[str]] = None) -> BatchResult:
        """Submit every candidate; a failed placeholder write does not stop the batch."""
        batch = BatchResult(errors=errors if errors is not None else [])
        for candidate in candidates:
            try:
                outcome = await self.submit(candidate, batch.errors)
            except StorageWriteError as exc:
                batch.errors.append(str(exc))
                continue
            if outcome.state is not SubmitState.IN_FLIGHT:
                batch.articles.append(outcome.article)
        logger.info(
            "orchestrator.batch.submitted",
            extra={"submitted": len(candidates), "articles": len(batch.articles), "background": self.pending_tasks},
        )
        return batch

    async def analyze_now(
        self,
        title: str,
        content: str,
        *,
        url: str = "",
        source: str = "",
        summary: str = "",
    ) -> Article:
        """Enrich and store a single article synchronously; errors propagate."""
        article = Article(
            id=str(uuid.uuid4()),
            title=title,
            content=content,
            summary=summary or content[:300],
            url=url,
            source=source or "User submitted",
        )
        result = await self.client.enrich(self._input_for(article))
        analyzed = apply_enrichment(article, result)
        written = await self.storage.write(analyzed)
        if url:
            self.tracker.mark_seen_url(url)
        logger.info("orchestrator.analyze_now.ok", extra={"article_id": analyzed.id})
        return written.article or analyzed

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for outstanding background enrichment tasks."""
        while self._tasks:
            pending = list(self._tasks)
            done, not_done = await asyncio.wait(pending, timeout=timeout)
            if not_done:
                logger.warning("orchestrator.drain.timeout", extra={"outstanding": len(not_done)})
                return
