"""Blob store abstraction, errors, and scanning helpers.

The store is a flat key/value object service: ``put``/``list``/``delete``
plus content retrieval by fetching the URL returned from ``put``/``list``.
There are no secondary indices, so every query is a prefix scan.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Awaitable, Dict, List, Optional, Protocol, TypeVar

import httpx

T = TypeVar("T")

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


class StorageError(Exception):
    """Base blob store error."""


class TransientStorageError(StorageError):
    """Retryable error (timeout, 5xx, network hiccup)."""


class RateLimitedError(TransientStorageError):
    """The store answered 429."""


class PermanentStorageError(StorageError):
    """Non-retryable error (4xx semantics, malformed content)."""


class BlobNotFoundError(PermanentStorageError):
    """No object at the requested path/URL."""


class BlobExistsError(PermanentStorageError):
    """A non-overwriting put hit an existing object."""


@dataclass(frozen=True)
class BlobObject:
    pathname: str
    url: str
    size: int = 0
    uploaded_at: Optional[datetime] = None


@dataclass(frozen=True)
class ListResult:
    blobs: List[BlobObject]
    has_more: bool = False
    cursor: Optional[str] = None


class BlobStore(Protocol):
    async def put(
        self,
        pathname: str,
        body: str,
        *,
        content_type: str = "application/json",
        access: str = "public",
        overwrite: bool = True,
    ) -> BlobObject: ...

    async def list(self, *, prefix: str, limit: Optional[int] = None, cursor: Optional[str] = None) -> ListResult: ...

    async def delete(self, pathname: str) -> None: ...

    async def fetch(self, url: str, *, timeout: Optional[float] = None) -> str: ...


async def bounded(awaitable: Awaitable[T], timeout: float, what: str) -> T:
    """Await with a timeout; a timeout surfaces as TransientStorageError."""
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise TransientStorageError(f"{what}: timed out after {timeout:g}s") from exc


def _raise_for_status(resp: httpx.Response, what: str) -> None:
    status = resp.status_code
    if status < 400:
        return
    if status == 429:
        raise RateLimitedError(f"{what}: rate limited (429)")
    if status == 404:
        raise BlobNotFoundError(f"{what}: not found (404)")
    if status >= 500:
        raise TransientStorageError(f"{what}: upstream error ({status})")
    raise PermanentStorageError(f"{what}: request rejected ({status})")


def _parse_ts(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _is_exists_reply(resp: httpx.Response) -> bool:
    if resp.status_code == 409:
        return True
    return resp.status_code == 400 and "already exists" in resp.text.lower()


def _json_object(resp: httpx.Response, what: str) -> Dict[str, Any]:
    try:
        data = resp.json()
    except ValueError as exc:
        raise PermanentStorageError(f"{what}: invalid JSON reply") from exc
    if not isinstance(data, dict):
        raise PermanentStorageError(f"{what}: expected a JSON object, got {type(data).__name__}")
    return data


def _blob_from_listing(item: Any, what: str) -> BlobObject:
    if not isinstance(item, dict):
        raise PermanentStorageError(f"{what}: malformed listing entry")
    pathname, url = item.get("pathname"), item.get("url")
    if not isinstance(pathname, str) or not pathname or not isinstance(url, str) or not url:
        raise PermanentStorageError(f"{what}: listing entry without pathname/url")
    try:
        size = int(item.get("size") or 0)
    except (TypeError, ValueError):
        size = 0
    return BlobObject(pathname=pathname, url=url, size=size, uploaded_at=_parse_ts(item.get("uploadedAt")))


class HttpBlobStore:
    """httpx client for a Vercel-Blob-style REST endpoint.

    - ``PUT {base}/{pathname}`` with ``x-content-type``/``x-access``/``x-allow-overwrite`` headers
    - ``GET {base}?prefix=&limit=&cursor=`` → ``{"blobs": [...], "hasMore", "cursor"}``
    - ``POST {base}/delete`` with ``{"pathnames": [...]}``
    - content is read with a plain GET of the blob URL, bypassing caches
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str],
        *,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._token = token
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def _headers(self) -> Dict[str, str]:
        headers = {"x-api-version": "7"}
        if self._token:
            headers["authorization"] = f"Bearer {self._token}"
        return headers

    async def _request(self, method: str, url: str, what: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.request(method, url, timeout=kwargs.pop("timeout", self.timeout), **kwargs)
        except httpx.TimeoutException as exc:
            raise TransientStorageError(f"{what}: timed out") from exc
        except httpx.HTTPError as exc:
            raise TransientStorageError(f"{what}: {exc.__class__.__name__}") from exc

    async def put(
        self,
        pathname: str,
        body: str,
        *,
        content_type: str = "application/json",
        access: str = "public",
        overwrite: bool = True,
    ) -> BlobObject:
        headers = {
            **self._headers(),
            "x-content-type": content_type,
            "x-access": access,
            "x-add-random-suffix": "0",
            "x-allow-overwrite": "1" if overwrite else "0",
        }
        what = f"put {pathname}"
        resp = await self._request("PUT", f"{self.base_url}/{pathname}", what, content=body.encode("utf-8"), headers=headers)
        if not overwrite and _is_exists_reply(resp):
            raise BlobExistsError(f"{what}: blob already exists")
        _raise_for_status(resp, what)
        data = _json_object(resp, what)
        url = data.get("url")
        if not isinstance(url, str) or not url:
            raise PermanentStorageError(f"{what}: reply without url")
        return BlobObject(pathname=str(data.get("pathname") or pathname), url=url, size=len(body))

    async def list(self, *, prefix: str, limit: Optional[int] = None, cursor: Optional[str] = None) -> ListResult:
        params: Dict[str, Any] = {"prefix": prefix}
        if limit is not None:
            params["limit"] = int(limit)
        if cursor:
            params["cursor"] = cursor
        what = f"list {prefix}"
        resp = await self._request("GET", self.base_url, what, params=params, headers=self._headers())
        _raise_for_status(resp, what)
        data = _json_object(resp, what)
        items = data.get("blobs") or []
        if not isinstance(items, list):
            raise PermanentStorageError(f"{what}: malformed listing")
        blobs = [_blob_from_listing(item, what) for item in items]
        next_cursor = data.get("cursor")
        return ListResult(
            blobs=blobs,
            has_more=bool(data.get("hasMore")),
            cursor=next_cursor if isinstance(next_cursor, str) else None,
        )

    async def delete(self, pathname: str) -> None:
        what = f"delete {pathname}"
        resp = await self._request(
            "POST", f"{self.base_url}/delete", what, json={"pathnames": [pathname]}, headers=self._headers()
        )
        _raise_for_status(resp, what)

    async def fetch(self, url: str, *, timeout: Optional[float] = None) -> str:
        what = f"fetch {url}"
        resp = await self._request("GET", url, what, headers=NO_CACHE_HEADERS, timeout=timeout or self.timeout)
        _raise_for_status(resp, what)
        return resp.text

    async def aclose(self) -> None:
        await self._client.aclose()


@dataclass
class _StoredBlob:
    body: str
    content_type: str
    uploaded_at: datetime


@dataclass
class InMemoryBlobStore:
    """Dict-backed store for tests/local runs.

    Failures can be injected per path (``fetch_failures``, ``put_failures``,
    ``delete_failures``) or for upcoming list calls (``list_failures``).
    """

    base_url: str = "https://blob.local"
    fetch_failures: Dict[str, Exception] = field(default_factory=dict)
    put_failures: Dict[str, Exception] = field(default_factory=dict)
    delete_failures: Dict[str, Exception] = field(default_factory=dict)
    list_failures: List[Exception] = field(default_factory=list)
    _blobs: Dict[str, _StoredBlob] = field(default_factory=dict)
    calls: List[str] = field(default_factory=list)

    def url_for(self, pathname: str) -> str:
        return f"{self.base_url}/{pathname}"

    def _blob(self, pathname: str) -> BlobObject:
        stored = self._blobs[pathname]
        return BlobObject(
            pathname=pathname,
            url=self.url_for(pathname),
            size=len(stored.body),
            uploaded_at=stored.uploaded_at,
        )

    def raw(self, pathname: str) -> Optional[str]:
        stored = self._blobs.get(pathname)
        return stored.body if stored else None

    def seed(self, pathname: str, body: str) -> BlobObject:
        self._blobs[pathname] = _StoredBlob(body, "application/json", datetime.now(timezone.utc))
        return self._blob(pathname)

    def __len__(self) -> int:
        return len(self._blobs)

    async def put(
        self,
        pathname: str,
        body: str,
        *,
        content_type: str = "application/json",
        access: str = "public",
        overwrite: bool = True,
    ) -> BlobObject:
        self.calls.append(f"put:{pathname}")
        if pathname in self.put_failures:
            raise self.put_failures[pathname]
        if not overwrite and pathname in self._blobs:
            raise BlobExistsError(f"put {pathname}: blob already exists")
        self._blobs[pathname] = _StoredBlob(body, content_type, datetime.now(timezone.utc))
        return self._blob(pathname)

    async def list(self, *, prefix: str, limit: Optional[int] = None, cursor: Optional[str] = None) -> ListResult:
        self.calls.append(f"list:{prefix}")
        if self.list_failures:
            raise self.list_failures.pop(0)
        names = sorted(name for name in self._blobs if name.startswith(prefix))
        start = int(cursor) if cursor else 0
        end = len(names) if limit is None else start + int(limit)
        page = [self._blob(name) for name in names[start:end]]
        has_more = end < len(names)
        return ListResult(blobs=page, has_more=has_more, cursor=str(end) if has_more else None)

    async def delete(self, pathname: str) -> None:
        self.calls.append(f"delete:{pathname}")
        if pathname in self.delete_failures:
            raise self.delete_failures[pathname]
        self._blobs.pop(pathname, None)

    async def fetch(self, url: str, *, timeout: Optional[float] = None) -> str:
        pathname = url[len(self.base_url) + 1 :] if url.startswith(self.base_url + "/") else url
        self.calls.append(f"fetch:{pathname}")
        if pathname in self.fetch_failures:
            raise self.fetch_failures[pathname]
        stored = self._blobs.get(pathname)
        if stored is None:
            raise BlobNotFoundError(f"fetch {url}: not found (404)")
        return stored.body


async def iter_pages(
    store: BlobStore,
    *,
    prefix: str,
    page_size: int = 100,
    max_pages: Optional[int] = None,
    timeout: float = 5.0,
    delay: float = 0.0,
) -> AsyncIterator[List[BlobObject]]:
    """Yield listing pages under `prefix`, following cursors up to `max_pages`.

    List errors propagate to the caller, which decides whether a partial scan
    is acceptable.
    """
    cursor: Optional[str] = None
    pages = 0
    while True:
        if pages and delay:
            await asyncio.sleep(delay)
        result = await bounded(store.list(prefix=prefix, limit=page_size, cursor=cursor), timeout, f"list {prefix}")
        pages += 1
        if result.blobs:
            yield result.blobs
        if not result.has_more or not result.cursor:
            return
        if max_pages is not None and pages >= max_pages:
            return
        cursor = result.cursor


async def iter_blobs(
    store: BlobStore,
    *,
    prefix: str,
    page_size: int = 100,
    max_pages: Optional[int] = None,
    max_entries: Optional[int] = None,
    timeout: float = 5.0,
    delay: float = 0.0,
) -> AsyncIterator[BlobObject]:
    """Flattened `iter_pages`, stopping after `max_entries` objects."""
    yielded = 0
    async for page in iter_pages(
        store, prefix=prefix, page_size=page_size, max_pages=max_pages, timeout=timeout, delay=delay
    ):
        for blob in page:
            yield blob
            yielded += 1
            if max_entries is not None and yielded >= max_entries:
                return
