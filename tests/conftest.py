from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

ROOT = Path(__file__).resolve().parents[1]

if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from analysis.models.domain import EnrichmentInput, EnrichmentResult  # noqa: E402
from ingestion.services.deduplicator import DedupTracker  # noqa: E402
from ingestion.storage.articles import ArticleStorage  # noqa: E402
from ingestion.storage.blob import InMemoryBlobStore  # noqa: E402

DEFAULT_METRICS: Dict[str, Any] = {
    "clickbait_score": 20,
    "bias_score": 35,
    "sentiment_score": 60,
    "readability_score": 75,
    "engagement_score": 55,
    "target_generation": "Generation Z",
    "political_leaning": "Center-left",
    "sentiment_tone": "Hopeful",
    "reading_level": "College",
    "emotional_tone": "Analytical",
}


class FakeEnricher:
    """Stands in for the LLM client; records every call."""

    def __init__(
        self,
        metrics: Optional[Dict[str, Any]] = None,
        *,
        categories: Optional[List[str]] = None,
        ai_summary: str = "요약: 테스트 기사",
        error: Optional[Exception] = None,
    ) -> None:
        self.metrics = dict(DEFAULT_METRICS if metrics is None else metrics)
        self.categories = categories if categories is not None else ["technology", "science"]
        self.ai_summary = ai_summary
        self.error = error
        self.calls: List[EnrichmentInput] = []

    async def enrich(self, inp: EnrichmentInput) -> EnrichmentResult:
        self.calls.append(inp)
        if self.error is not None:
            raise self.error
        return EnrichmentResult(
            metrics=dict(self.metrics),
            ai_summary=self.ai_summary,
            categories=self.categories,
            llm_model="fake-model",
            llm_tokens_prompt=10,
            llm_tokens_completion=5,
            llm_cost=0.0,
        )


@pytest.fixture
def blob_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def tracker() -> DedupTracker:
    return DedupTracker()


@pytest.fixture
def storage(blob_store: InMemoryBlobStore) -> ArticleStorage:
    return ArticleStorage(blob_store, request_delay=0.0, request_timeout=1.0)


@pytest.fixture
def enricher() -> FakeEnricher:
    return FakeEnricher()


@pytest.fixture
def make_enricher():
    return FakeEnricher
