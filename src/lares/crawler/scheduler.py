"""Background run-loop that keeps every feed crawled.

:class:`CrawlScheduler` replaces a beat-style periodic task with one
long-lived asyncio task:

- every ``tick_interval`` seconds it loads all feeds from the store and
  picks the *due* ones (never crawled, or last attempt at least
  ``poll_interval`` seconds ago),
- each due feed is crawled in its own task; an ``asyncio.Semaphore`` caps
  simultaneous crawls at ``max_concurrency``,
- a feed id stays in the in-flight set from dispatch until its crawl ends,
  and a pass skips feeds that are still in flight, so one feed is never
  crawled twice at the same time from this process,
- every error of a single crawl is caught at the per-feed boundary and
  logged; the loop itself only ends on :meth:`CrawlScheduler.stop`.

Shutdown is cooperative: after ``stop()`` nothing new is dispatched, queued
crawls that have not started yet are dropped, and ``run()`` returns once
the crawls already running have finished (their fetch timeout bounds the
wait).
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta

from lares.core.exceptions import CrawlInProgressError, LaresError, StoreError
from lares.core.models import Feed, utcnow
from lares.core.store import Store
from lares.crawler.pipeline import CrawlOutcome, CrawlPipeline

logger = logging.getLogger(__name__)


class CrawlScheduler:
    """Dispatches crawls of due feeds with bounded concurrency.

    Args:
        store: Shared store.
        pipeline: Crawl pipeline used for every crawl.
        poll_interval: Seconds between two crawl attempts of one feed.
        tick_interval: Seconds the loop idles between scheduling passes.
        max_concurrency: Maximum number of crawls running at once.
    """

    def __init__(
        self,
        store: Store,
        pipeline: CrawlPipeline,
        poll_interval: float = 1800,
        tick_interval: float = 60,
        max_concurrency: int = 10,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._store = store
        self._pipeline = pipeline
        self._poll_interval = timedelta(seconds=poll_interval)
        self._tick_interval = tick_interval
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._in_flight: set[int] = set()
        self._tasks: set[asyncio.Task[CrawlOutcome | None]] = set()
        self._stop_event = asyncio.Event()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def in_flight(self) -> frozenset[int]:
        """Ids of the feeds currently being crawled."""
        return frozenset(self._in_flight)

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    def is_due(self, feed: Feed, now: datetime | None = None) -> bool:
        """Return whether *feed* should be crawled at *now*."""
        if feed.last_crawled_at is None:
            return True
        now = now if now is not None else utcnow()
        return now - feed.last_crawled_at >= self._poll_interval

    # ------------------------------------------------------------------
    # Run-loop
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Schedule crawls until :meth:`stop` is called."""
        logger.info(
            "scheduler: started (poll=%ss, tick=%ss)",
            int(self._poll_interval.total_seconds()),
            self._tick_interval,
        )
        try:
            while not self._stop_event.is_set():
                await self._dispatch_due()
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self._tick_interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            await self._drain()
            logger.info("scheduler: stopped")

    def stop(self) -> None:
        """Request cooperative shutdown of :meth:`run`."""
        if not self._stop_event.is_set():
            logger.info("scheduler: shutdown requested, %d crawl(s) in flight", len(self._in_flight))
        self._stop_event.set()

    async def run_once(self) -> list[CrawlOutcome]:
        """Run a single scheduling pass and wait for the crawls it started.

        Returns:
            Outcomes of the crawls that completed.  Crawls that raised are
            logged and left out.
        """
        tasks = await self._dispatch_due()
        if not tasks:
            return []
        results = await asyncio.gather(*tasks)
        return [outcome for outcome in results if outcome is not None]

    async def crawl_now(self, feed_id: int) -> CrawlOutcome:
        """Crawl one feed immediately, sharing the in-flight tracking.

        Raises:
            NotFoundError: If the feed does not exist.
            CrawlInProgressError: If the feed is already being crawled.
            StoreError: If persisting the result fails.
        """
        feed = await self._store.get_feed(feed_id)
        if feed.id in self._in_flight:
            raise CrawlInProgressError(feed.id)
        self._in_flight.add(feed.id)
        try:
            async with self._semaphore:
                return await self._pipeline.crawl(feed)
        finally:
            self._in_flight.discard(feed.id)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _dispatch_due(self) -> list[asyncio.Task[CrawlOutcome | None]]:
        try:
            feeds = await self._store.list_feeds()
        except StoreError as exc:
            logger.error("scheduler: could not load feeds, skipping pass: %s", exc)
            return []

        now = utcnow()
        dispatched: list[asyncio.Task[CrawlOutcome | None]] = []
        for feed in feeds:
            if self._stop_event.is_set():
                break
            if feed.id in self._in_flight:
                logger.debug("scheduler: feed %d still in flight, skipped", feed.id)
                continue
            if not self.is_due(feed, now):
                continue
            dispatched.append(self._dispatch(feed))

        if dispatched:
            logger.info("scheduler: dispatched %d of %d feed(s)", len(dispatched), len(feeds))
        return dispatched

    def _dispatch(self, feed: Feed) -> asyncio.Task[CrawlOutcome | None]:
        self._in_flight.add(feed.id)
        task = asyncio.create_task(self._crawl_guarded(feed), name=f"crawl-feed-{feed.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _crawl_guarded(self, feed: Feed) -> CrawlOutcome | None:
        try:
            async with self._semaphore:
                if self._stop_event.is_set():
                    return None
                outcome = await self._pipeline.crawl(feed)
        except LaresError as exc:
            logger.error("scheduler: crawl of feed %d aborted: %s", feed.id, exc)
            return None
        except Exception:  # noqa: BLE001
            logger.exception("scheduler: unexpected error crawling feed %d", feed.id)
            return None
        finally:
            self._in_flight.discard(feed.id)

        logger.info(
            "scheduler: feed %d finished status=%s new_entries=%d",
            outcome.feed_id,
            outcome.status.value,
            outcome.new_entries,
        )
        return outcome

    async def _drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
