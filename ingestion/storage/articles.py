"""Article persistence on top of the blob store.

Records live at ``articles/<id>.json``. An analyzed write to an existing id
overwrites it; a pending write never does. Sequential multi-entry operations
(duplicate scan, list, cleanup, delete-all) pause ``request_delay`` seconds
between store requests to stay under the store's request-rate ceiling.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional
from urllib.parse import quote, unquote

from pydantic import ValidationError

from ingestion.models.domain import Article, utcnow
from ingestion.services.deduplicator import normalize_url, similar_titles
from ingestion.storage.blob import (
    BlobExistsError,
    BlobObject,
    BlobStore,
    PermanentStorageError,
    RateLimitedError,
    StorageError,
    bounded,
    iter_blobs,
    iter_pages,
)
from ingestion.utils.logging import get_logger

ARTICLES_PREFIX = "articles/"

logger = get_logger(__name__)


class StorageWriteError(StorageError):
    """An article could not be persisted."""


class MalformedArticleError(PermanentStorageError):
    """Stored content is not a valid article record."""


@dataclass(frozen=True)
class DuplicateMatch:
    locator: str
    article_id: str
    reason: str
    article: Optional[Article] = None


@dataclass(frozen=True)
class WriteResult:
    """Outcome of `ArticleStorage.write`.

    ``duplicate=True`` means nothing was written and ``locator``/``article``
    describe the record that already exists (``article`` may be None when the
    match was made from the listing alone).
    """

    locator: str
    article: Optional[Article]
    duplicate: bool = False


def path_for(article_id: str) -> str:
    return f"{ARTICLES_PREFIX}{quote(article_id, safe='')}.json"


def id_from_path(pathname: str) -> str:
    name = pathname.rsplit("/", 1)[-1]
    if name.endswith(".json"):
        name = name[: -len(".json")]
    return unquote(name)


def _parse_stored_at(value: object) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class ArticleStorage:
    """Dedup-aware article repository over a `BlobStore`."""

    def __init__(
        self,
        store: BlobStore,
        *,
        request_delay: float = 0.5,
        request_timeout: float = 5.0,
        list_max_entries: int = 50,
        scan_page_size: int = 100,
        scan_max_pages: int = 5,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.store = store
        self.request_delay = request_delay
        self.request_timeout = request_timeout
        self.list_max_entries = list_max_entries
        self.scan_page_size = scan_page_size
        self.scan_max_pages = scan_max_pages
        self._clock = clock
        self._sleep = sleep

    async def _pause(self) -> None:
        if self.request_delay > 0:
            await self._sleep(self.request_delay)

    async def _fetch_text(self, blob: BlobObject) -> str:
        return await bounded(
            self.store.fetch(blob.url, timeout=self.request_timeout),
            self.request_timeout,
            f"fetch {blob.pathname}",
        )

    async def _read(self, blob: BlobObject) -> Article:
        text = await self._fetch_text(blob)
        try:
            article = Article.model_validate_json(text)
        except ValidationError as exc:
            raise MalformedArticleError(f"{blob.pathname}: invalid article JSON ({text[:50]!r})") from exc
        return article.self_healed()

    async def _list_all(self) -> List[BlobObject]:
        blobs: List[BlobObject] = []
        async for blob in iter_blobs(
            self.store,
            prefix=ARTICLES_PREFIX,
            page_size=self.scan_page_size,
            timeout=self.request_timeout,
            delay=self.request_delay,
        ):
            blobs.append(blob)
        return blobs

    async def write(self, article: Article) -> WriteResult:
        """Persist `article` under its id.

        Unanalyzed candidates are checked for duplicates first and are not
        written when one exists. They are also put without overwrite, so a
        record the search could not see (flaky listing) is never replaced by a
        placeholder. Analyzed records are updates of a known id and skip the
        search. Store failures raise StorageWriteError.
        """
        if not article.analyzed:
            match = await self.find_duplicate(article)
            if match is not None:
                logger.info(
                    "storage.write.duplicate",
                    extra={"article_id": article.id, "existing_id": match.article_id, "reason": match.reason},
                )
                return WriteResult(locator=match.locator, article=match.article, duplicate=True)

        record = article.model_copy(update={"stored_at": self._clock()})
        pathname = path_for(article.id)
        await self._pause()
        try:
            blob = await bounded(
                self.store.put(
                    pathname,
                    record.to_json(),
                    content_type="application/json",
                    access="public",
                    overwrite=article.analyzed,
                ),
                self.request_timeout,
                f"put {pathname}",
            )
        except BlobExistsError:
            existing = await self.get_by_id(article.id)
            logger.info(
                "storage.write.exists",
                extra={"article_id": article.id, "existing_analyzed": existing.analyzed if existing else None},
            )
            return WriteResult(locator=f"id:{article.id}", article=existing, duplicate=True)
        except StorageError as exc:
            logger.error("storage.write.failed", extra={"article_id": article.id, "error": str(exc)})
            raise StorageWriteError(f"Failed to store article {article.id}: {exc}") from exc
        logger.info("storage.write.ok", extra={"article_id": article.id, "analyzed": record.analyzed})
        return WriteResult(locator=blob.url, article=record)

    async def find_duplicate(self, article: Article) -> Optional[DuplicateMatch]:
        """Look for an existing record representing the same article.

        Order: same id, then per listing page a cheap pass over paths followed
        by a content pass (normalized URL, then fuzzy title). Unreadable
        entries are skipped; a rate-limit answer ends the scan with no match.
        """
        existing = await self.get_by_id(article.id)
        if existing is not None:
            return DuplicateMatch(locator=f"id:{article.id}", article_id=article.id, reason="id", article=existing)

        target = normalize_url(article.url)
        if not target:
            logger.debug("storage.duplicate_scan.no_url", extra={"article_id": article.id})
            return None

        scanned = 0
        try:
            async for page in iter_pages(
                self.store,
                prefix=ARTICLES_PREFIX,
                page_size=self.scan_page_size,
                max_pages=self.scan_max_pages,
                timeout=self.request_timeout,
                delay=self.request_delay,
            ):
                for blob in page:
                    blob_id = id_from_path(blob.pathname)
                    if blob_id == article.id:
                        return DuplicateMatch(locator=blob.url, article_id=blob_id, reason="id")
                    # upstream ids are sometimes the article link itself
                    if normalize_url(blob_id) == target:
                        return DuplicateMatch(locator=blob.url, article_id=blob_id, reason="path")

                for blob in page:
                    scanned += 1
                    await self._pause()
                    try:
                        candidate = await self._read(blob)
                    except RateLimitedError:
                        raise
                    except StorageError as exc:
                        logger.warning(
                            "storage.duplicate_scan.entry_skipped",
                            extra={"pathname": blob.pathname, "error": str(exc)},
                        )
                        continue
                    if candidate.url and normalize_url(candidate.url) == target:
                        return DuplicateMatch(locator=blob.url, article_id=candidate.id, reason="url", article=candidate)
                    if similar_titles(candidate.title, article.title):
                        return DuplicateMatch(locator=blob.url, article_id=candidate.id, reason="title", article=candidate)
        except RateLimitedError as exc:
            logger.warning(
                "storage.duplicate_scan.rate_limited",
                extra={"article_id": article.id, "scanned": scanned, "error": str(exc)},
            )
            return None
        except StorageError as exc:
            logger.warning(
                "storage.duplicate_scan.aborted",
                extra={"article_id": article.id, "scanned": scanned, "error": str(exc)},
            )
            return None
        return None

    async def get_by_id(self, article_id: str) -> Optional[Article]:
        """Return the stored article or None; never raises."""
        pathname = path_for(article_id)
        try:
            result = await bounded(
                self.store.list(prefix=pathname, limit=1),
                self.request_timeout,
                f"list {pathname}",
            )
            blob = next((b for b in result.blobs if b.pathname == pathname), None)
            if blob is None:
                return None
            return await self._read(blob)
        except StorageError as exc:
            logger.warning("storage.get.failed", extra={"article_id": article_id, "error": str(exc)})
            return None

    async def list(self, limit: Optional[int] = None) -> List[Article]:
        """Read back at most `limit` (capped at `list_max_entries`) articles."""
        cap = self.list_max_entries if limit is None else max(0, min(limit, self.list_max_entries))
        articles: List[Article] = []
        if cap == 0:
            return articles
        try:
            async for blob in iter_blobs(
                self.store,
                prefix=ARTICLES_PREFIX,
                page_size=self.scan_page_size,
                max_entries=cap,
                timeout=self.request_timeout,
                delay=self.request_delay,
            ):
                await self._pause()
                try:
                    articles.append(await self._read(blob))
                except StorageError as exc:
                    logger.warning("storage.list.entry_skipped", extra={"pathname": blob.pathname, "error": str(exc)})
        except StorageError as exc:
            logger.error("storage.list.failed", extra={"error": str(exc), "read": len(articles)})
        return articles

    async def delete_by_id(self, article_id: str) -> bool:
        """Best-effort delete; failures are logged and reported as False."""
        pathname = path_for(article_id)
        try:
            await bounded(self.store.delete(pathname), self.request_timeout, f"delete {pathname}")
        except StorageError as exc:
            logger.error("storage.delete.failed", extra={"article_id": article_id, "error": str(exc)})
            return False
        return True

    async def delete_all(self) -> int:
        try:
            blobs = await self._list_all()
        except StorageError as exc:
            logger.error("storage.delete_all.list_failed", extra={"error": str(exc)})
            return 0
        deleted = 0
        for blob in blobs:
            await self._pause()
            if await self.delete_by_id(id_from_path(blob.pathname)):
                deleted += 1
        logger.info("storage.delete_all.done", extra={"deleted": deleted, "listed": len(blobs)})
        return deleted

    async def cleanup(self, max_age_seconds: float) -> int:
        """Delete records whose ``storedAt`` is older than `max_age_seconds`.

        Records without a parseable ``storedAt`` are kept.
        """
        try:
            blobs = await self._list_all()
        except StorageError as exc:
            logger.error("storage.cleanup.list_failed", extra={"error": str(exc)})
            return 0
        now = self._clock()
        deleted = 0
        for blob in blobs:
            await self._pause()
            try:
                data = json.loads(await self._fetch_text(blob))
            except StorageError as exc:
                logger.warning("storage.cleanup.entry_skipped", extra={"pathname": blob.pathname, "error": str(exc)})
                continue
            except ValueError:
                logger.warning("storage.cleanup.invalid_json", extra={"pathname": blob.pathname})
                continue
            stored_at = _parse_stored_at(data.get("storedAt")) if isinstance(data, dict) else None
            if stored_at is None:
                continue
            if (now - stored_at).total_seconds() <= max_age_seconds:
                continue
            await self._pause()
            if await self.delete_by_id(id_from_path(blob.pathname)):
                deleted += 1
        logger.info("storage.cleanup.done", extra={"deleted": deleted, "scanned": len(blobs)})
        return deleted
