"""Deduplication helpers: URL/title normalization and the in-process tracker.

The tracker is a fast path only. It is process-local unless backed by
`RedisKeyStore`, and the durable-store scan in `ingestion.storage.articles`
remains the authority on whether an article already exists.
"""

from __future__ import annotations

import re
import threading
from typing import Iterable, List, Optional, Protocol
from urllib.parse import parse_qsl, urlencode, urlsplit

from ingestion.models.domain import Article

_TRACKING_PARAMS = frozenset({"ref", "source", "fbclid", "gclid", "mc_cid", "mc_eid"})
_TITLE_STRIP_RE = re.compile(r"[^\w\s]", re.UNICODE)
_WS_RE = re.compile(r"\s+")


def _is_tracking_param(name: str) -> bool:
    name = name.lower()
    return name.startswith("utm_") or name in _TRACKING_PARAMS


def normalize_url(url: Optional[str]) -> str:
    """Canonical form of `url` for equality checks.

    Drops the scheme, a leading ``www.``, the fragment, tracking query
    parameters and trailing slashes, then lower-cases the result.
    """
    raw = (url or "").strip()
    if not raw:
        return ""
    if "://" not in raw:
        raw = "http://" + raw.lstrip("/")
    try:
        parts = urlsplit(raw)
        host = (parts.hostname or "").lower()
        port = parts.port
    except ValueError:
        return raw.lower()
    if host.startswith("www."):
        host = host[4:]
    if port and port not in (80, 443):
        host = f"{host}:{port}"
    path = parts.path.rstrip("/")
    params = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if not _is_tracking_param(k)]
    result = host + path
    if params:
        result += "?" + urlencode(sorted(params))
    return result.lower()


def normalize_title(title: Optional[str]) -> str:
    stripped = _TITLE_STRIP_RE.sub("", (title or "").lower())
    return _WS_RE.sub(" ", stripped).strip()


def similar_titles(first: Optional[str], second: Optional[str]) -> bool:
    """Case/punctuation-insensitive equality or containment in either direction."""
    a = normalize_title(first)
    b = normalize_title(second)
    if not a or not b:
        return False
    return a == b or a in b or b in a


def title_source_key(article: Article) -> str:
    return f"{article.title.strip().lower()}-{article.source.strip().lower()}"


class KeyStore(Protocol):
    def has(self, key: str) -> bool: ...  # noqa: D401
    def add(self, key: str, ttl_seconds: int | None = None) -> bool: ...  # noqa: D401
    def remove(self, key: str) -> None: ...  # noqa: D401


class InMemoryKeyStore:
    """Lock-protected in-memory keystore for tests/local runs."""

    def __init__(self) -> None:
        self._set: set[str] = set()
        self._lock = threading.Lock()

    def has(self, key: str) -> bool:
        with self._lock:
            return key in self._set

    def add(self, key: str, ttl_seconds: int | None = None) -> bool:
        with self._lock:
            if key in self._set:
                return False
            self._set.add(key)
            return True

    def remove(self, key: str) -> None:
        with self._lock:
            self._set.discard(key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._set)


class _RedisLikeClient(Protocol):
    def exists(self, name: str) -> int: ...  # returns 1 if exists, else 0
    def set(self, name: str, value: str, *, ex: int | None = None, nx: bool | None = None) -> bool | None: ...
    def delete(self, name: str) -> int: ...


class RedisKeyStore:
    """Redis 기반 KeyStore 구현.

    - 존재 확인: `EXISTS key` → 정수(0/1)
    - 추가: `SET key value NX EX <ttl>` → 키가 없을 때만 설정, TTL 선택
    - 제거: `DEL key`

    인스턴스 간 공유가 가능하지만 여전히 best-effort 이다. 테스트에서는
    fake 클라이언트를 주입하여 외부 의존성 없이 검증한다.
    """

    def __init__(self, client: _RedisLikeClient, *, prefix: str = "dedup", default_ttl_seconds: int | None = None) -> None:
        self._client = client
        self._prefix = prefix
        self._default_ttl = default_ttl_seconds

    def _format(self, key: str) -> str:  # pragma: no cover - trivial
        return f"{self._prefix}:{key}"

    def has(self, key: str) -> bool:
        return bool(self._client.exists(self._format(key)))

    def add(self, key: str, ttl_seconds: int | None = None) -> bool:
        ttl = ttl_seconds if ttl_seconds is not None else self._default_ttl
        # redis-py: set(name, value, ex=seconds, nx=True) returns True if set, None if not set
        return bool(self._client.set(self._format(key), "1", ex=ttl, nx=True))

    def remove(self, key: str) -> None:
        self._client.delete(self._format(key))


class DedupTracker:
    """In-flight and seen-URL bookkeeping shared by fetchers and the orchestrator."""

    def __init__(self, in_flight: Optional[KeyStore] = None, seen_urls: Optional[KeyStore] = None) -> None:
        self._in_flight = in_flight if in_flight is not None else InMemoryKeyStore()
        self._seen_urls = seen_urls if seen_urls is not None else InMemoryKeyStore()
        self._lock = threading.Lock()

    @staticmethod
    def normalize(url: Optional[str]) -> str:
        return normalize_url(url)

    @staticmethod
    def keys_for(article: Article) -> List[str]:
        keys = [article.id]
        normalized = normalize_url(article.url)
        if normalized:
            keys.append(f"url:{normalized}")
        return keys

    def is_in_flight(self, key: str) -> bool:
        return self._in_flight.has(key)

    def mark_in_flight(self, key: str) -> bool:
        """Mark `key` in flight; False when it already was."""
        return self._in_flight.add(key)

    def mark_done(self, key: str) -> None:
        self._in_flight.remove(key)

    def has_seen_url(self, url: Optional[str]) -> bool:
        normalized = normalize_url(url)
        return bool(normalized) and self._seen_urls.has(normalized)

    def mark_seen_url(self, url: Optional[str]) -> None:
        normalized = normalize_url(url)
        if normalized:
            self._seen_urls.add(normalized)

    def is_tracked(self, article: Article) -> bool:
        """True when the article is in flight or its URL was already committed."""
        if self.has_seen_url(article.url):
            return True
        return any(self.is_in_flight(key) for key in self.keys_for(article))

    def claim(self, article: Article) -> bool:
        """Mark every key of `article` in flight, or none if any is taken."""
        keys = self.keys_for(article)
        with self._lock:
            if any(self._in_flight.has(key) for key in keys):
                return False
            for key in keys:
                self._in_flight.add(key)
            return True

    def release(self, article: Article) -> None:
        self.release_keys(self.keys_for(article))

    def release_keys(self, keys: Iterable[str]) -> None:
        with self._lock:
            for key in keys:
                self._in_flight.remove(key)
