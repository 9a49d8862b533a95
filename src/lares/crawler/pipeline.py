"""Per-feed crawl pipeline.

One crawl is strictly sequential:

1. fetch and parse ``feed.url`` (no database connection is held meanwhile),
2. store the entries not seen before for this feed,
3. update the feed's crawl bookkeeping.

Fetch and parse failures become a failed :class:`CrawlOutcome` after the
failure has been recorded on the feed; they never propagate.  Store
failures do propagate as :class:`~lares.core.exceptions.StoreError`; the
scheduler catches them at its per-feed boundary.

The scheduler, the ``lares feed crawl`` command and the API's crawl
endpoint all call :meth:`CrawlPipeline.crawl`; there is no separate code
path for manual crawls.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

import httpx

from lares.core.exceptions import FetchError, ParseError
from lares.core.models import Feed, utcnow
from lares.core.store import Store
from lares.crawler.fetcher import (
    DEFAULT_TIMEOUT_SECONDS,
    DEFAULT_USER_AGENT,
    fetch_and_parse,
)

logger = logging.getLogger(__name__)


class CrawlStatus(str, enum.Enum):
    """Result kind of a single crawl."""

    OK = "ok"
    FETCH_FAILED = "fetch_failed"
    PARSE_FAILED = "parse_failed"


@dataclass(frozen=True)
class CrawlOutcome:
    """What one crawl of one feed achieved.

    Attributes:
        feed_id: The crawled feed.
        status: ``OK``, ``FETCH_FAILED`` or ``PARSE_FAILED``.
        new_entries: Number of entries stored by this crawl.
        error: Failure description for failed crawls.
    """

    feed_id: int
    status: CrawlStatus
    new_entries: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is CrawlStatus.OK


class CrawlPipeline:
    """Runs the fetch-parse-dedupe-persist cycle for single feeds.

    Args:
        store: Shared store.
        http_client: Optional shared :class:`httpx.AsyncClient`.  The
            scheduler passes one client to reuse connections; when ``None``
            each crawl opens and closes its own.
        timeout: Fetch timeout used when no client is injected.
        user_agent: User-Agent used when no client is injected.
    """

    def __init__(
        self,
        store: Store,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self._store = store
        self._http_client = http_client
        self._timeout = timeout
        self._user_agent = user_agent

    async def crawl(self, feed: Feed) -> CrawlOutcome:
        """Crawl *feed* once.

        Returns:
            The outcome.  Fetch and parse failures are reported here rather
            than raised.

        Raises:
            StoreError: If persisting the result fails.
            NotFoundError: If the feed was deleted while being crawled.
        """
        attempted_at = utcnow()
        try:
            document = await fetch_and_parse(
                feed.url,
                client=self._http_client,
                timeout=self._timeout,
                user_agent=self._user_agent,
            )
        except FetchError as exc:
            return await self._record_failure(feed, attempted_at, CrawlStatus.FETCH_FAILED, exc)
        except ParseError as exc:
            return await self._record_failure(feed, attempted_at, CrawlStatus.PARSE_FAILED, exc)

        new_entries = await self._store.record_crawl_success(
            feed.id, document.entries, attempted_at
        )
        logger.info(
            "crawler: feed %d crawled, %d new of %d entries",
            feed.id,
            new_entries,
            len(document.entries),
        )
        return CrawlOutcome(feed_id=feed.id, status=CrawlStatus.OK, new_entries=new_entries)

    async def _record_failure(
        self,
        feed: Feed,
        attempted_at,
        status: CrawlStatus,
        exc: FetchError | ParseError,
    ) -> CrawlOutcome:
        kind = "fetch" if status is CrawlStatus.FETCH_FAILED else "parse"
        logger.warning("crawler: feed %d %s failed: %s", feed.id, kind, exc.reason)
        await self._store.record_crawl_failure(feed.id, attempted_at, kind, exc.reason)
        return CrawlOutcome(feed_id=feed.id, status=status, error=str(exc))
