from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from analysis.models.domain import ArticleMetrics
from ingestion.models.domain import Article, utcnow
from ingestion.services.feed import ArticleFeed
from ingestion.services.fetcher import SourceFetcher
from ingestion.services.orchestrator import EnrichmentOrchestrator
from ingestion.settings import reset_settings_cache
from ingestion.storage.articles import path_for
from llm.client.openai_client import (
    InvalidCredentialsError,
    LLMRateLimitError,
    LLMTimeoutError,
    MissingCredentialsError,
    OpenAIClient,
    PermanentLLMError,
    TransientLLMError,
)
from llm.settings import AnalysisSettings, reset_analysis_settings_cache


@pytest.fixture
def api_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("NEWSDATA_API_KEY", "nd-test")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("BLOB_BACKEND", "memory")
    monkeypatch.setenv("DEDUP_BACKEND", "memory")
    reset_settings_cache()
    reset_analysis_settings_cache()
    yield monkeypatch
    reset_settings_cache()
    reset_analysis_settings_cache()


def _client(storage, tracker, enricher) -> TestClient:
    from api.dependencies import feed_dependency
    from api.main import app

    orchestrator = EnrichmentOrchestrator(storage, tracker, enricher, enrichment_delay=0.0)
    feed = ArticleFeed(storage, SourceFetcher([], tracker), orchestrator, ttl_seconds=3600)

    async def _override() -> ArticleFeed:
        return feed

    app.dependency_overrides[feed_dependency] = _override
    return TestClient(app)


@pytest.fixture(autouse=True)
def _clear_overrides():
    yield
    from api.main import app

    app.dependency_overrides.clear()


def _seed(blob_store, article: Article) -> None:
    record = article.model_copy(update={"stored_at": utcnow()})
    blob_store.seed(path_for(article.id), record.to_json())


def _analyzed(article_id: str, title: str) -> Article:
    return Article(
        id=article_id,
        title=title,
        url=f"https://ex.com/{article_id}",
        source="Wire",
        analyzed=True,
        metrics=ArticleMetrics.pending().merged({"clickbait_score": 25}),
        categories=["politics"],
        ai_summary="Summary",
    )


def test_healthz(api_env, storage, tracker, enricher):
    client = _client(storage, tracker, enricher)
    assert client.get("/healthz").json() == {"status": "ok"}


def test_list_articles_returns_camel_case_page(api_env, blob_store, storage, tracker, enricher):
    _seed(blob_store, _analyzed("a1", "First"))
    _seed(blob_store, _analyzed("a2", "Second"))
    _seed(blob_store, Article(id="p1", title="Pending", source="Wire"))
    client = _client(storage, tracker, enricher)

    resp = client.get("/api/articles", params={"pageSize": 1})

    assert resp.status_code == 200
    body = resp.json()
    assert body["totalArticles"] == 2
    assert body["hasMore"] is True
    assert len(body["articles"]) == 1
    article = body["articles"][0]
    assert article["metrics"]["clickbaitScore"] == 25
    assert article["aiSummary"] == "Summary"
    assert "storedAt" in article

    with_pending = client.get("/api/articles", params={"includeUnanalyzed": "true", "pageSize": 10}).json()
    assert with_pending["totalArticles"] == 3


def test_get_article_statuses(api_env, blob_store, storage, tracker, enricher):
    _seed(blob_store, _analyzed("done", "Done"))
    _seed(blob_store, Article(id="wait", title="Waiting", source="Wire"))
    client = _client(storage, tracker, enricher)

    assert client.get("/api/articles/done").json()["id"] == "done"

    pending = client.get("/api/articles/wait")
    assert pending.status_code == 409
    assert pending.json()["detail"] == "Article analysis not complete"

    missing = client.get("/api/articles/nope")
    assert missing.status_code == 404
    assert missing.json()["detail"] == "Article not found"


def test_search_requires_query(api_env, storage, tracker, enricher):
    client = _client(storage, tracker, enricher)

    resp = client.get("/api/articles/search")

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Query parameter 'q' is required"


def test_search_rejects_unknown_sort(api_env, storage, tracker, enricher):
    client = _client(storage, tracker, enricher)

    resp = client.get("/api/articles/search", params={"q": "climate", "sortBy": "random"})

    assert resp.status_code == 400


def test_post_article_analyzes_and_stores(api_env, storage, tracker, enricher):
    client = _client(storage, tracker, enricher)

    resp = client.post("/api/articles", json={"title": "Manual", "content": "Body text", "url": "https://ex.com/m"})

    assert resp.status_code == 201
    body = resp.json()
    assert body["analyzed"] is True
    assert body["source"] == "User submitted"
    assert body["metrics"]["targetGeneration"] == "Generation Z"
    assert client.get(f"/api/articles/{body['id']}").status_code == 200


def test_post_article_requires_title_and_content(api_env, storage, tracker, enricher):
    client = _client(storage, tracker, enricher)

    resp = client.post("/api/articles", json={"title": "  ", "content": "Body"})

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Missing required fields: title, content"
    assert enricher.calls == []


@pytest.mark.parametrize(
    "error,status",
    [
        (MissingCredentialsError("OpenAI API key is missing."), 500),
        (PermanentLLMError("bad json"), 502),
    ],
)
def test_post_article_maps_enrichment_errors(api_env, storage, tracker, make_enricher, error, status):
    client = _client(storage, tracker, make_enricher(error=error))

    resp = client.post("/api/articles", json={"title": "Manual", "content": "Body"})

    assert resp.status_code == status
    assert len(storage.store) == 0


def test_delete_all_and_cleanup(api_env, blob_store, storage, tracker, enricher):
    _seed(blob_store, _analyzed("a1", "First"))
    _seed(blob_store, _analyzed("a2", "Second"))
    client = _client(storage, tracker, enricher)

    assert client.post("/api/cleanup").json() == {"deletedCount": 0}
    assert client.get("/api/cleanup").json() == {"deletedCount": 0}
    assert client.delete("/api/articles").json() == {"deletedCount": 2}
    assert len(blob_store) == 0


def test_status_reports_key_availability(api_env, storage, tracker, enricher):
    api_env.setenv("OPENAI_API_KEY", "")
    reset_analysis_settings_cache()
    client = _client(storage, tracker, enricher)

    assert client.get("/api/status").json() == {"openAiKeyAvailable": False, "newsApiKeyAvailable": True}


def _client_with_llm(client_obj) -> TestClient:
    from api.dependencies import client_dependency
    from api.main import app

    app.dependency_overrides[client_dependency] = lambda: client_obj
    return TestClient(app)


def _openai_client(provider=None, key: str = "sk-test") -> OpenAIClient:
    return OpenAIClient(AnalysisSettings(_env_file=None, OPENAI_API_KEY=key), provider=provider)


def test_analyze_returns_metrics_without_storing(api_env, blob_store, make_enricher):
    enricher = make_enricher(metrics={"clickbait_score": 0, "bias_score": 15}, categories=["Tech", "unknown"])
    client = _client_with_llm(enricher)

    resp = client.post("/api/analyze", json={"title": "Chips rally", "content": "Stocks climbed.", "url": "https://ex.com/c"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["metrics"]["clickbaitScore"] == 0
    assert body["metrics"]["biasScore"] == 15
    assert body["metrics"]["readabilityScore"] == 70
    assert body["categories"] == ["technology"]
    assert body["aiSummary"] == "요약: 테스트 기사"
    assert enricher.calls[0].title == "Chips rally"
    assert len(blob_store) == 0


def test_analyze_requires_title_and_content(api_env, enricher):
    client = _client_with_llm(enricher)

    resp = client.post("/api/analyze", json={"title": "Only title"})

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Missing required fields: title, content"
    assert enricher.calls == []


@pytest.mark.parametrize(
    "error,status",
    [
        (MissingCredentialsError("OpenAI API key is missing."), 500),
        (TransientLLMError("retries exhausted"), 502),
        (PermanentLLMError("bad json"), 502),
    ],
)
def test_analyze_maps_enrichment_errors(api_env, make_enricher, error, status):
    client = _client_with_llm(make_enricher(error=error))

    resp = client.post("/api/analyze", json={"title": "Chips rally", "content": "Stocks climbed."})

    assert resp.status_code == status


def test_check_openai_reports_working_key(api_env):
    payloads = []

    async def _provider(payload):
        payloads.append(payload)
        return {"choices": [{"message": {"content": "Sensational but upbeat."}}], "model": "gpt-4o"}

    resp = _client_with_llm(_openai_client(_provider)).get("/api/check-openai")

    assert resp.status_code == 200
    assert resp.json() == {
        "success": True,
        "available": True,
        "message": "OpenAI API key is valid and working correctly.",
        "response": "Sensational but upbeat....",
    }
    assert len(payloads) == 1
    assert payloads[0]["max_tokens"] == 100


def test_check_openai_without_key(api_env):
    resp = _client_with_llm(_openai_client(key="")).get("/api/check-openai")

    body = resp.json()
    assert resp.status_code == 200
    assert body["success"] is False and body["available"] is False
    assert "OPENAI_API_KEY" in body["message"]


@pytest.mark.parametrize(
    "error,message",
    [
        (InvalidCredentialsError("401 invalid_api_key"), "Authentication error: Invalid API key or unauthorized access."),
        (LLMRateLimitError("429"), "Rate limit exceeded: Too many requests to the OpenAI API."),
        (TransientLLMError("500 upstream"), "OpenAI API server error. Please try again later."),
        (LLMTimeoutError("timed out"), "Request to OpenAI API timed out. Please try again."),
    ],
)
def test_check_openai_maps_failures_to_messages(api_env, error, message):
    calls = []

    async def _provider(payload):
        calls.append(payload)
        raise error

    body = _client_with_llm(_openai_client(_provider)).get("/api/check-openai").json()

    assert body["success"] is False
    assert body["message"] == message
    assert body["error"] == str(error)
    assert len(calls) == 1
