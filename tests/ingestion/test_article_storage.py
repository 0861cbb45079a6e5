from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest

from analysis.models.domain import ArticleMetrics
from ingestion.models.domain import Article
from ingestion.storage.articles import ArticleStorage, StorageWriteError, path_for
from ingestion.storage.blob import InMemoryBlobStore, RateLimitedError, TransientStorageError

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _article(article_id: str, *, url: str = "", title: str = "Some headline", analyzed: bool = False, **extra) -> Article:
    return Article(id=article_id, title=title, url=url, source="Wire", analyzed=analyzed, **extra)


def _seed(store: InMemoryBlobStore, article: Article) -> None:
    store.seed(path_for(article.id), article.to_json())


def _storage(store: InMemoryBlobStore, **kwargs) -> ArticleStorage:
    kwargs.setdefault("request_delay", 0.0)
    kwargs.setdefault("request_timeout", 1.0)
    return ArticleStorage(store, clock=lambda: NOW, **kwargs)


def test_write_same_id_twice_keeps_one_record_with_latest_data(blob_store):
    storage = _storage(blob_store)

    asyncio.run(storage.write(_article("a1", title="First", analyzed=True)))
    asyncio.run(storage.write(_article("a1", title="Second", analyzed=True)))

    assert len(blob_store) == 1
    stored = json.loads(blob_store.raw(path_for("a1")))
    assert stored["title"] == "Second"
    assert stored["storedAt"].startswith("2025-03-01T12:00:00")


def test_write_detects_url_duplicate_and_skips_write(blob_store):
    storage = _storage(blob_store)
    asyncio.run(storage.write(_article("first", url="https://ex.com/a?utm_source=x", title="Alpha")))

    result = asyncio.run(storage.write(_article("second", url="http://www.ex.com/a/", title="Beta")))

    assert result.duplicate is True
    assert result.article is not None and result.article.id == "first"
    assert len(blob_store) == 1


def test_write_detects_fuzzy_title_duplicate(blob_store):
    storage = _storage(blob_store)
    asyncio.run(storage.write(_article("one", url="https://ex.com/1", title="Scientists Discover Cure")))

    result = asyncio.run(
        storage.write(_article("two", url="https://other.com/2", title="Scientists Discover Cure For Disease"))
    )

    assert result.duplicate is True
    assert len(blob_store) == 1


def test_write_detects_same_id_before_scanning(blob_store):
    storage = _storage(blob_store)
    _seed(blob_store, _article("same", url="https://ex.com/x", title="Original"))

    result = asyncio.run(storage.write(_article("same", title="Re-fetched")))

    assert result.duplicate is True
    assert result.locator == "id:same"
    assert json.loads(blob_store.raw(path_for("same")))["title"] == "Original"


def test_pending_write_never_replaces_analyzed_record_when_listing_fails(blob_store):
    storage = _storage(blob_store)
    asyncio.run(storage.write(_article("nd-1", url="https://ex.com/nd-1", title="Analyzed", analyzed=True)))
    # id check times out, then the scan is rate limited: the search sees nothing
    blob_store.list_failures.extend([TransientStorageError("timeout"), RateLimitedError("429")])

    result = asyncio.run(storage.write(_article("nd-1", url="https://ex.com/nd-1", title="Re-fetched")))

    assert result.duplicate is True
    assert result.article is not None and result.article.analyzed is True
    stored = asyncio.run(storage.get_by_id("nd-1"))
    assert stored.analyzed is True
    assert stored.title == "Analyzed"


def test_duplicate_scan_skips_unreadable_entries(blob_store):
    storage = _storage(blob_store)
    _seed(blob_store, _article("aaa", url="https://ex.com/broken", title="Broken"))
    _seed(blob_store, _article("bbb", url="https://ex.com/target", title="Target"))
    blob_store.fetch_failures[path_for("aaa")] = TransientStorageError("timeout")

    match = asyncio.run(storage.find_duplicate(_article("new", url="https://ex.com/target/")))

    assert match is not None and match.article_id == "bbb"


def test_duplicate_scan_aborts_on_rate_limit(blob_store):
    storage = _storage(blob_store)
    _seed(blob_store, _article("aaa", url="https://ex.com/1", title="One"))
    _seed(blob_store, _article("bbb", url="https://ex.com/target", title="Target"))
    blob_store.fetch_failures[path_for("aaa")] = RateLimitedError("429")

    match = asyncio.run(storage.find_duplicate(_article("new", url="https://ex.com/target")))

    assert match is None
    assert f"fetch:{path_for('bbb')}" not in blob_store.calls


def test_duplicate_scan_without_url_only_checks_id(blob_store):
    storage = _storage(blob_store)
    _seed(blob_store, _article("aaa", url="https://ex.com/1", title="Same title"))

    match = asyncio.run(storage.find_duplicate(_article("new", url="", title="Same title")))

    assert match is None


def test_write_failure_raises_typed_error(blob_store):
    storage = _storage(blob_store)
    blob_store.put_failures[path_for("a1")] = TransientStorageError("boom")

    with pytest.raises(StorageWriteError):
        asyncio.run(storage.write(_article("a1", analyzed=True)))


def test_get_by_id_self_heals_and_never_raises(blob_store):
    storage = _storage(blob_store)
    metrics = ArticleMetrics(clickbait_score=40, target_generation="Millennials")
    _seed(blob_store, _article("healed", metrics=metrics, analyzed=False))
    blob_store.seed(path_for("broken"), "{not json")

    healed = asyncio.run(storage.get_by_id("healed"))
    assert healed is not None and healed.analyzed is True

    assert asyncio.run(storage.get_by_id("broken")) is None
    assert asyncio.run(storage.get_by_id("missing")) is None

    blob_store.list_failures.append(TransientStorageError("timeout"))
    assert asyncio.run(storage.get_by_id("healed")) is None


def test_pending_placeholder_is_not_self_healed(blob_store):
    storage = _storage(blob_store)
    _seed(blob_store, _article("pending"))

    article = asyncio.run(storage.get_by_id("pending"))

    assert article is not None and article.analyzed is False


def test_list_caps_entries_and_skips_failures(blob_store):
    storage = _storage(blob_store, list_max_entries=3)
    for i in range(5):
        _seed(blob_store, _article(f"id{i}", title=f"Title {i}"))
    blob_store.fetch_failures[path_for("id1")] = TransientStorageError("timeout")

    articles = asyncio.run(storage.list())

    assert [a.id for a in articles] == ["id0", "id2"]


def test_list_pauses_between_requests(blob_store):
    pauses = []

    async def _sleep(seconds):
        pauses.append(seconds)

    storage = ArticleStorage(blob_store, request_delay=0.5, sleep=_sleep)
    for i in range(3):
        _seed(blob_store, _article(f"id{i}", title=f"Title {i}"))

    asyncio.run(storage.list())

    assert pauses == [0.5, 0.5, 0.5]


def test_cleanup_deletes_only_expired_records(blob_store):
    storage = _storage(blob_store)
    blob_store.seed(
        path_for("old"),
        json.dumps({"id": "old", "title": "Old", "storedAt": (NOW - timedelta(hours=2)).isoformat()}),
    )
    blob_store.seed(
        path_for("recent"),
        json.dumps({"id": "recent", "title": "Recent", "storedAt": (NOW - timedelta(minutes=30)).isoformat()}),
    )
    blob_store.seed(path_for("undated"), json.dumps({"id": "undated", "title": "Undated"}))

    deleted = asyncio.run(storage.cleanup(max_age_seconds=3600))

    assert deleted == 1
    assert blob_store.raw(path_for("old")) is None
    assert blob_store.raw(path_for("recent")) is not None
    assert blob_store.raw(path_for("undated")) is not None


def test_delete_all_counts_successes_only(blob_store):
    storage = _storage(blob_store)
    for i in range(3):
        _seed(blob_store, _article(f"id{i}", title=f"Title {i}"))
    blob_store.delete_failures[path_for("id1")] = TransientStorageError("boom")

    deleted = asyncio.run(storage.delete_all())

    assert deleted == 2
    assert len(blob_store) == 1
