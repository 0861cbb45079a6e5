from __future__ import annotations

from functools import lru_cache

from ingestion.pipeline import Pipeline, build_pipeline
from ingestion.services.feed import ArticleFeed
from llm.client.openai_client import OpenAIClient


@lru_cache()
def get_pipeline() -> Pipeline:
    """Process-wide pipeline shared by every request (one event loop under uvicorn)."""
    return build_pipeline()


def reset_pipeline_cache() -> None:
    get_pipeline.cache_clear()  # type: ignore[attr-defined]


async def feed_dependency() -> ArticleFeed:
    return get_pipeline().feed


async def client_dependency() -> OpenAIClient:
    return OpenAIClient.from_env()
