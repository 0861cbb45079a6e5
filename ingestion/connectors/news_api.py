"""NewsData.io connector (provider-injected for tests/offline)."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from ingestion.settings import Settings, get_settings

from .base import BaseConnector, ConfigurationError, FetchRequest, PermanentError, TransientError

# returns raw NewsData ``results`` items
ProviderFn = Callable[[FetchRequest], Awaitable[List[Dict[str, Any]]]]

_SORT_MAP = {
    "relevancy": "relevancy",
    "popularity": "popularity",
    "publishedAt": "published_desc",
}


class NewsDataConnector(BaseConnector):
    """Connector for the NewsData.io ``/news`` endpoint.

    - provider 주입 시: 오프라인 모드
    - provider 미주입 시: 실제 HTTP 호출 (headlines / search)
    """

    name = "newsdata"
    modes = ("headlines", "search")

    def __init__(
        self,
        provider: Optional[ProviderFn] = None,
        *,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._provider = provider
        self._settings = settings
        self._client = client

    def _build_params(self, request: FetchRequest, cfg: Settings, api_key: str) -> Dict[str, Any]:
        params: Dict[str, Any] = {"apikey": api_key}
        if request.mode == "search":
            params["q"] = request.query or ""
            if request.from_date:
                params["from_date"] = request.from_date
            if request.to_date:
                params["to_date"] = request.to_date
            params["sort"] = _SORT_MAP.get(request.sort_by, "published_desc")
        else:
            params["country"] = (request.country or cfg.default_country).lower()
            if request.category:
                params["category"] = request.category.lower()
        params["size"] = int(request.size)
        params["language"] = cfg.newsdata_language
        return params

    async def _fetch_raw(self, request: FetchRequest) -> List[Dict[str, Any]]:
        if self._provider is not None:
            return [_to_generic(item) for item in await self._provider(request)]

        cfg = self._settings or get_settings()
        if not cfg.newsdata_api_key:
            raise ConfigurationError(
                "NewsData.io API key is missing. Please add NEWSDATA_API_KEY to your environment variables."
            )
        params = self._build_params(request, cfg, cfg.newsdata_api_key.get_secret_value())

        client = self._client or httpx.AsyncClient()
        try:
            resp = await client.get(
                cfg.newsdata_endpoint,
                params=params,
                timeout=float(cfg.newsdata_timeout_seconds),
            )
        except httpx.TimeoutException as exc:
            raise TransientError("NewsData.io request timed out") from exc
        except httpx.HTTPError as exc:
            raise TransientError(f"NewsData.io request failed: {exc.__class__.__name__}") from exc
        finally:
            if self._client is None:
                await client.aclose()

        if resp.status_code == 429 or resp.status_code >= 500:
            raise TransientError(f"NewsData.io unavailable: HTTP {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise PermanentError(f"NewsData.io error: invalid JSON (HTTP {resp.status_code})") from exc
        if resp.status_code >= 400 or data.get("status") != "success":
            message = _error_message(data) or resp.reason_phrase or "Unknown error"
            raise PermanentError(f"NewsData.io error: {message}")

        return [_to_generic(item) for item in data.get("results") or [] if isinstance(item, dict)]


def _error_message(data: Any) -> Optional[str]:
    if not isinstance(data, dict):
        return None
    results = data.get("results")
    if isinstance(results, dict) and results.get("message"):
        return str(results["message"])
    return data.get("message")


def _to_generic(item: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": item.get("article_id"),
        "title": item.get("title"),
        "description": item.get("description"),
        "content": item.get("content"),
        "url": item.get("link"),
        "image_url": item.get("image_url"),
        "source": item.get("source_id"),
        "published_at": item.get("pubDate"),
        "categories": item.get("category") or [],
    }
