"""Connector abstraction, errors, and helpers."""

from __future__ import annotations

import re
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterable, List, Literal, Optional

from pydantic import BaseModel, Field

from analysis.validation import normalize_categories
from ingestion.models.domain import Article
from ingestion.services.deduplicator import normalize_url


class ConnectorError(Exception):
    """Base connector error."""


class TransientError(ConnectorError):
    """Retryable error (e.g., rate limit, network hiccup)."""


class PermanentError(ConnectorError):
    """Non-retryable error (e.g., 4xx semantics)."""


class ConfigurationError(PermanentError):
    """Missing credentials or endpoint configuration."""


class FetchRequest(BaseModel):
    """What to pull from a source in one invocation."""

    mode: Literal["headlines", "search"] = "headlines"
    country: Optional[str] = None
    category: Optional[str] = None
    query: Optional[str] = None
    from_date: Optional[str] = None
    to_date: Optional[str] = None
    sort_by: str = "publishedAt"
    size: int = Field(5, ge=1, le=50)


_TRUNCATION_PATTERNS = [
    re.compile(r"\s*\[\+\d+ chars\]\s*$"),
    re.compile(r"ONLY AVAILABLE IN (PAID|PROFESSIONAL|CORPORATE) PLANS?", re.IGNORECASE),
    re.compile(r"\s*\[(…|\.\.\.)\]\s*$"),
    re.compile(r"\s*(Read|Continue reading) more\W*$", re.IGNORECASE),
]
_TAG_RE = re.compile(r"<[^>]+>")


def strip_truncation(text: Optional[str]) -> str:
    """Remove provider truncation markers and markup from a text field."""
    cleaned = _TAG_RE.sub(" ", str(text or ""))
    for pattern in _TRUNCATION_PATTERNS:
        cleaned = pattern.sub("", cleaned)
    return re.sub(r"\s+", " ", cleaned).strip()


def pick_content(item: Dict[str, Any]) -> str:
    """Richest available body text among content/description/summary."""
    candidates = [strip_truncation(item.get(key)) for key in ("content", "description", "summary")]
    return max(candidates, key=len) if any(candidates) else ""


def _as_text(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


class BaseConnector(ABC):
    """Abstract connector interface with retry and normalization hooks."""

    name: str
    modes: tuple[str, ...] = ("headlines",)

    def supports(self, request: FetchRequest) -> bool:
        return request.mode in self.modes

    async def fetch(self, request: FetchRequest, *, max_attempts: int = 3) -> List[Article]:
        attempts = 0
        last_error: Optional[Exception] = None
        while attempts < max_attempts:
            attempts += 1
            try:
                raw = await self._fetch_raw(request)
                return self._normalize_and_dedupe(raw)[: request.size]
            except TransientError as exc:  # retry
                last_error = exc
                if attempts >= max_attempts:
                    raise
            except PermanentError:
                raise
        assert last_error is not None
        raise last_error

    @abstractmethod
    async def _fetch_raw(self, request: FetchRequest) -> List[Dict[str, Any]]:
        """Return a list of raw item dicts from the upstream, in generic field names."""

    def _normalize_and_dedupe(self, items: Iterable[Dict[str, Any]]) -> List[Article]:
        seen: set[str] = set()
        normalized: List[Article] = []
        for item in items:
            article = self.normalize_item(item)
            if article is None:
                continue
            key = normalize_url(article.url) or article.id
            if key in seen:
                continue
            seen.add(key)
            normalized.append(article)
        return normalized

    def normalize_item(self, item: Dict[str, Any]) -> Optional[Article]:
        """Build a pending article; items without a title are dropped."""
        title = strip_truncation(item.get("title"))
        if not title:
            return None
        content = pick_content(item)
        summary = strip_truncation(item.get("description") or item.get("summary")) or content[:300]
        article_id = str(item.get("id") or "").strip() or str(uuid.uuid4())
        return Article(
            id=article_id,
            title=title,
            summary=summary,
            content=content,
            url=str(item.get("url") or item.get("link") or "").strip(),
            image_url=str(item.get("image_url") or "").strip(),
            source=str(item.get("source") or self.name).strip(),
            published_at=_as_text(item.get("published_at") or item.get("published") or item.get("publishedAt")),
            categories=normalize_categories(item.get("categories")),
            analyzed=False,
        )
