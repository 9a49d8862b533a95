"""Feed management routes.

Endpoints:

- ``GET    /feeds``                 — list feeds.
- ``POST   /feeds``                 — subscribe to a feed URL.
- ``GET    /feeds/{feed_id}``       — one feed with its crawl bookkeeping.
- ``DELETE /feeds/{feed_id}``       — delete a feed, its entries and group links.
- ``POST   /feeds/{feed_id}/crawl`` — crawl a feed now.
- ``GET    /feeds/{feed_id}/entries`` — stored entries, newest first.

Error responses are produced by the exception handlers registered in
:mod:`lares.api.main`.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Query, status

from lares.api.dependencies import ManagerDep, SchedulerDep
from lares.core.schemas.feeds import CrawlOutcomeRead, EntryRead, FeedCreate, FeedRead

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=list[FeedRead])
async def list_feeds(manager: ManagerDep) -> list[FeedRead]:
    feeds = await manager.list_feeds()
    return [FeedRead.model_validate(feed) for feed in feeds]


@router.post("", response_model=FeedRead, status_code=status.HTTP_201_CREATED)
async def add_feed(body: FeedCreate, manager: ManagerDep) -> FeedRead:
    """Fetch the URL once, derive title and link, and store the feed.

    Raises:
        HTTPException 409: The URL is already subscribed.
        HTTPException 404: The requested group does not exist.
        HTTPException 502: The URL could not be fetched or parsed.
    """
    feed, group = await manager.add_feed(body.url, group=body.group)
    logger.info(
        "feeds router: feed %d added%s",
        feed.id,
        f" to group {group.title!r}" if group is not None else "",
    )
    return FeedRead.model_validate(feed)


@router.get("/{feed_id}", response_model=FeedRead)
async def get_feed(feed_id: int, manager: ManagerDep) -> FeedRead:
    return FeedRead.model_validate(await manager.get_feed(feed_id))


@router.delete("/{feed_id}", response_model=FeedRead)
async def delete_feed(feed_id: int, manager: ManagerDep) -> FeedRead:
    return FeedRead.model_validate(await manager.delete_feed(feed_id))


@router.post("/{feed_id}/crawl", response_model=CrawlOutcomeRead)
async def crawl_feed(
    feed_id: int,
    manager: ManagerDep,
    scheduler: SchedulerDep,
) -> CrawlOutcomeRead:
    """Crawl one feed immediately.

    When the run-loop is active the crawl goes through its in-flight
    tracking, so a feed that is already being crawled yields 409 instead
    of a second overlapping crawl.
    """
    if scheduler is not None:
        outcome = await scheduler.crawl_now(feed_id)
    else:
        outcome = await manager.crawl_feed(feed_id)
    return CrawlOutcomeRead(
        feed_id=outcome.feed_id,
        status=outcome.status.value,
        new_entries=outcome.new_entries,
        error=outcome.error,
    )


@router.get("/{feed_id}/entries", response_model=list[EntryRead])
async def list_entries(
    feed_id: int,
    manager: ManagerDep,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
) -> list[EntryRead]:
    entries = await manager.list_entries(feed_id, limit=limit, offset=offset)
    return [EntryRead.model_validate(entry) for entry in entries]
