"""Celery task evicting articles older than the configured TTL."""

from __future__ import annotations

import asyncio

from celery import shared_task

from ingestion.tasks import collect
from ingestion.utils.logging import get_logger


async def _cleanup() -> int:
    pipeline = collect._get_pipeline()
    try:
        return await pipeline.feed.cleanup()
    finally:
        await pipeline.aclose()


def cleanup_core() -> int:
    deleted = asyncio.run(_cleanup())
    get_logger(__name__).info("cleanup.done", extra={"deleted": deleted})
    return deleted


@shared_task(name="ingestion.tasks.cleanup.cleanup_expired_articles")
def cleanup_expired_articles() -> int:  # pragma: no cover - wrapper
    return cleanup_core()
