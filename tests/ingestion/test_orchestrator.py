from __future__ import annotations

import asyncio
from typing import List

import pytest

from ingestion.models.domain import Article
from ingestion.services.orchestrator import EnrichmentOrchestrator, SubmitState
from ingestion.storage.articles import path_for
from ingestion.storage.blob import TransientStorageError
from llm.client.openai_client import PermanentLLMError


def _orchestrator(storage, tracker, client) -> EnrichmentOrchestrator:
    return EnrichmentOrchestrator(storage, tracker, client, enrichment_delay=0.0)


def _candidate(article_id: str = "x1", url: str = "https://n.com/x", title: str = "X") -> Article:
    return Article(id=article_id, title=title, content="Y", url=url, source="News")


def test_end_to_end_pending_then_analyzed(storage, tracker, enricher):
    async def _run():
        gate = asyncio.Event()

        async def _held_delay(_seconds):
            await gate.wait()

        orchestrator = EnrichmentOrchestrator(storage, tracker, enricher, enrichment_delay=1.0, sleep=_held_delay)
        outcome = await orchestrator.submit(_candidate())
        pending = await storage.get_by_id("x1")
        assert orchestrator.pending_tasks == 1
        gate.set()
        await orchestrator.drain()
        final = await storage.get_by_id("x1")
        return outcome, pending, final

    outcome, pending, final = asyncio.run(_run())

    assert outcome.state is SubmitState.PENDING
    assert outcome.article.analyzed is False
    assert pending is not None and pending.analyzed is False
    assert final is not None and final.analyzed is True
    assert final.metrics.clickbait_score == 20
    assert final.metrics.target_generation == "Generation Z"
    assert final.categories == ["technology", "science"]
    assert final.ai_summary == "요약: 테스트 기사"
    assert enricher.calls[0].title == "X"
    assert tracker.has_seen_url("https://n.com/x")
    assert not tracker.is_in_flight("x1")


def test_duplicate_url_is_skipped_without_enrichment(storage, tracker, enricher):
    orchestrator = _orchestrator(storage, tracker, enricher)

    async def _run():
        await orchestrator.submit(_candidate("a", "https://ex.com/a?utm_source=x", "Alpha"))
        await orchestrator.drain()
        second = await orchestrator.submit(_candidate("b", "http://www.ex.com/a/", "Beta"))
        await orchestrator.drain()
        return second

    second = asyncio.run(_run())

    assert second.state is SubmitState.SKIPPED
    assert second.article.id == "a"
    assert len(enricher.calls) == 1
    assert len(storage.store) == 1


def test_in_flight_candidate_is_not_submitted_twice(storage, tracker, enricher):
    orchestrator = _orchestrator(storage, tracker, enricher)

    async def _run():
        first = await orchestrator.submit(_candidate())
        second = await orchestrator.submit(_candidate("x2"))
        await orchestrator.drain()
        return first, second

    first, second = asyncio.run(_run())

    assert first.state is SubmitState.PENDING
    assert second.state is SubmitState.IN_FLIGHT
    assert len(enricher.calls) == 1


def test_enrichment_failure_keeps_pending_record_and_reports_error(storage, tracker, make_enricher):
    failing = make_enricher(error=PermanentLLMError("LLM 응답에서 JSON 객체를 추출할 수 없습니다."))
    orchestrator = _orchestrator(storage, tracker, failing)
    errors: List[str] = []

    async def _run():
        await orchestrator.submit(_candidate(), errors)
        await orchestrator.drain()
        return await storage.get_by_id("x1")

    stored = asyncio.run(_run())

    assert stored is not None and stored.analyzed is False
    assert len(errors) == 1 and "x1" in errors[0]
    assert not tracker.is_in_flight("x1")


def test_failed_pending_record_is_retried_on_next_submit(storage, tracker, make_enricher):
    failing = make_enricher(error=PermanentLLMError("boom"))
    orchestrator = _orchestrator(storage, tracker, failing)

    async def _run():
        await orchestrator.submit(_candidate())
        await orchestrator.drain()
        failing.error = None
        again = await orchestrator.submit(_candidate("x1-dup"))
        await orchestrator.drain()
        return again, await storage.get_by_id("x1")

    again, stored = asyncio.run(_run())

    assert again.state is SubmitState.SKIPPED
    assert stored is not None and stored.analyzed is True
    assert len(failing.calls) == 2


def test_enrichment_output_is_clamped_and_defaulted(storage, tracker, make_enricher):
    from analysis.validation import normalize_metrics

    raw = {"clickbaitScore": 150, "biasScore": "abc", "targetGeneration": "gen z", "politicalLeaning": "???"}
    client = make_enricher(metrics=normalize_metrics(raw), categories=[])
    orchestrator = _orchestrator(storage, tracker, client)

    async def _run():
        await orchestrator.submit(_candidate())
        await orchestrator.drain()
        return await storage.get_by_id("x1")

    stored = asyncio.run(_run())

    assert stored.metrics.clickbait_score == 100
    assert stored.metrics.bias_score == 50
    assert stored.metrics.readability_score == 70
    assert stored.metrics.target_generation == "Generation Z"
    assert stored.metrics.political_leaning == "Neutral"
    assert stored.metrics.reading_level == "High School"
    assert stored.categories == ["other"]


def test_analyzed_flag_is_monotonic(storage, tracker, enricher):
    orchestrator = _orchestrator(storage, tracker, enricher)

    async def _run():
        await orchestrator.submit(_candidate())
        await orchestrator.drain()
        # a later fetch of the same story must not overwrite the analyzed record
        await orchestrator.submit(_candidate())
        await orchestrator.drain()
        return await storage.get_by_id("x1")

    stored = asyncio.run(_run())

    assert stored.analyzed is True
    assert len(enricher.calls) == 1


def test_process_batch_records_write_failures_and_continues(storage, tracker, enricher, blob_store):
    blob_store.put_failures[path_for("c3")] = TransientStorageError("store down")
    orchestrator = _orchestrator(storage, tracker, enricher)
    candidates = [_candidate(f"c{i}", f"https://ex.com/{i}", f"Story number {i}") for i in range(1, 6)]

    async def _run():
        result = await orchestrator.process_batch(candidates)
        await orchestrator.drain()
        return result

    result = asyncio.run(_run())

    assert [a.id for a in result.articles] == ["c1", "c2", "c4", "c5"]
    assert len(result.errors) == 1 and "c3" in result.errors[0]
    assert not tracker.is_in_flight("c3")


def test_analyze_now_stores_analyzed_article(storage, tracker, enricher):
    orchestrator = _orchestrator(storage, tracker, enricher)

    article = asyncio.run(orchestrator.analyze_now("Manual", "Body text", url="https://ex.com/manual"))

    assert article.analyzed is True
    assert article.source == "User submitted"
    assert article.stored_at is not None
    assert tracker.has_seen_url("https://ex.com/manual")


def test_analyze_now_propagates_enrichment_errors(storage, tracker, make_enricher):
    orchestrator = _orchestrator(storage, tracker, make_enricher(error=PermanentLLMError("nope")))

    with pytest.raises(PermanentLLMError):
        asyncio.run(orchestrator.analyze_now("Manual", "Body"))
    assert len(storage.store) == 0
