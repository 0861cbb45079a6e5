"""RSS connector: one instance per feed (fetcher-injected for tests/offline)."""

from __future__ import annotations

import calendar
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import urlsplit

import feedparser
import httpx

from .base import BaseConnector, FetchRequest, PermanentError, TransientError

# returns the raw feed document for a URL
FetcherFn = Callable[[str], Awaitable[str]]


def _entry_published(entry: Any) -> Optional[str]:
    parsed = entry.get("published_parsed") or entry.get("updated_parsed")
    if parsed:
        return datetime.fromtimestamp(calendar.timegm(parsed), tz=timezone.utc).isoformat()
    return entry.get("published") or entry.get("updated")


def _entry_image(entry: Any) -> Optional[str]:
    for key in ("media_content", "media_thumbnail"):
        media = entry.get(key) or []
        if media and media[0].get("url"):
            return media[0]["url"]
    for link in entry.get("links") or []:
        if link.get("rel") == "enclosure" and str(link.get("type", "")).startswith("image/"):
            return link.get("href")
    return None


class RSSConnector(BaseConnector):
    """Connector that turns a single RSS/Atom feed into pending articles."""

    modes = ("headlines",)

    def __init__(
        self,
        feed_url: str,
        *,
        name: Optional[str] = None,
        fetcher: Optional[FetcherFn] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
        max_items: int = 5,
    ) -> None:
        self.feed_url = feed_url
        self.name = name or f"rss:{urlsplit(feed_url).hostname or feed_url}"
        self._fetcher = fetcher
        self._client = client
        self._timeout = timeout
        self._max_items = max_items

    async def _download(self) -> str:
        if self._fetcher is not None:
            return await self._fetcher(self.feed_url)
        client = self._client or httpx.AsyncClient(follow_redirects=True)
        try:
            resp = await client.get(self.feed_url, timeout=self._timeout)
        except httpx.TimeoutException as exc:
            raise TransientError(f"RSS feed {self.feed_url} timed out") from exc
        except httpx.HTTPError as exc:
            raise TransientError(f"RSS feed {self.feed_url} request failed: {exc.__class__.__name__}") from exc
        finally:
            if self._client is None:
                await client.aclose()
        if resp.status_code == 429 or resp.status_code >= 500:
            raise TransientError(f"RSS feed {self.feed_url} unavailable: HTTP {resp.status_code}")
        if resp.status_code >= 400:
            raise PermanentError(f"RSS feed {self.feed_url} error: HTTP {resp.status_code}")
        return resp.text

    async def _fetch_raw(self, request: FetchRequest) -> List[Dict[str, Any]]:
        document = await self._download()
        feed = feedparser.parse(document)
        if feed.bozo and not feed.entries:
            raise PermanentError(f"Invalid RSS feed {self.feed_url}: {feed.get('bozo_exception')}")
        source = feed.feed.get("title") or self.name
        items: List[Dict[str, Any]] = []
        for entry in feed.entries[: self._max_items]:
            content_blocks = entry.get("content") or []
            items.append(
                {
                    "id": None,
                    "title": entry.get("title"),
                    "summary": entry.get("summary") or entry.get("description"),
                    "content": content_blocks[0].get("value") if content_blocks else None,
                    "url": entry.get("link"),
                    "image_url": _entry_image(entry),
                    "source": source,
                    "published_at": _entry_published(entry),
                    "categories": [tag.get("term") for tag in entry.get("tags") or [] if tag.get("term")],
                }
            )
        return items
