"""Celery tasks for the headline collection workflow."""

from __future__ import annotations

import asyncio
import uuid
from typing import Any, Callable, Dict, Optional

from celery import shared_task

from ingestion.connectors.base import FetchRequest
from ingestion.pipeline import Pipeline, build_pipeline
from ingestion.settings import get_settings
from ingestion.utils.logging import get_logger

# Pipeline factory is kept pluggable for tests; each job builds a fresh pipeline
# inside its own event loop.
PIPELINE_FACTORY: Callable[[], Pipeline] | None = None


def _get_pipeline() -> Pipeline:
    if PIPELINE_FACTORY is not None:
        return PIPELINE_FACTORY()
    return build_pipeline()


async def _collect(country: str, category: Optional[str], trace_id: str) -> Dict[str, Any]:
    logger = get_logger(__name__)
    pipeline = _get_pipeline()
    try:
        request = FetchRequest(
            mode="headlines",
            country=country,
            category=category,
            size=int(pipeline.settings.newsdata_page_size),
        )
        batch = await pipeline.fetcher.fetch_batch(request)
        result = await pipeline.orchestrator.process_batch(batch.candidates, batch.errors)
        # enrichment runs in background tasks; wait for them before the loop closes
        await pipeline.orchestrator.drain()
    finally:
        await pipeline.aclose()

    summary = {
        "country": country,
        "category": category,
        "fetched": len(batch.candidates),
        "skipped": batch.skipped,
        "submitted": len(result.articles),
        "errors": list(result.errors),
    }
    logger.info("collect.done", extra={"trace_id": trace_id, **summary, "errors": len(result.errors)})
    return summary


def collect_core(country: Optional[str] = None, category: Optional[str] = None) -> Dict[str, Any]:
    """Fetch one headline batch and drive it through enrichment; test-friendly."""
    country = (country or get_settings().default_country).lower()
    trace_id = str(uuid.uuid4())
    get_logger(__name__).info(
        "collect.start",
        extra={"trace_id": trace_id, "country": country, "category": category},
    )
    return asyncio.run(_collect(country, category, trace_id))


@shared_task(name="ingestion.tasks.collect.collect_headlines")
def collect_headlines(country: Optional[str] = None, category: Optional[str] = None) -> Dict[str, Any]:  # pragma: no cover - wrapper
    return collect_core(country, category)
