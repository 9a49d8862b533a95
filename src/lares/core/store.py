"""Relational store for feeds, groups, their association, and entries.

The :class:`Store` is the single source of truth shared by the scheduler's
crawl workers and the management surface (CLI and API).  It wraps an
``async_sessionmaker`` and follows one rule: every public method is one
logical unit of work that

1. checks a connection out of the pool,
2. runs inside ``session.begin()`` so multi-row changes commit atomically
   (or roll back entirely), and
3. returns the connection on every exit path, including errors.

No method holds a connection across network I/O; the crawl pipeline fetches
first and only then calls :meth:`Store.record_crawl_success`.

Error contract:

- ``get_feed_by_url`` / ``get_group_by_title`` return ``None`` when the key
  is absent.
- ``get_feed`` / ``get_group`` and the mutators raise
  :class:`~lares.core.exceptions.NotFoundError` for missing ids.
- ``create_*`` raise :class:`~lares.core.exceptions.AlreadyExistsError` on a
  duplicate unique key.
- Any SQLAlchemy or driver failure is wrapped in
  :class:`~lares.core.exceptions.StoreError`, so "absent" is never confused
  with "store unavailable".
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lares.core.exceptions import (
    AlreadyExistsError,
    LaresError,
    NotFoundError,
    StoreError,
)
from lares.core.models import Entry, Feed, FeedGroup, Group

if TYPE_CHECKING:
    from lares.crawler.fetcher import ParsedEntry

logger = logging.getLogger(__name__)


class _EntryInsertConflict(StoreError):
    """A concurrent crawl inserted one of our entries first."""


class _LinkExists(StoreError):
    """A concurrent caller created the same feed/group link first."""


class Store:
    """Transactional CRUD over the lares schema.

    Args:
        session_factory: Factory from
            :func:`lares.core.database.build_session_factory`.  The store
            never creates engines itself.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[AsyncSession]:
        """Yield a session inside a transaction; wrap driver failures."""
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except LaresError:
            raise
        except SQLAlchemyError as exc:
            raise StoreError(operation, str(exc)) from exc
        except OSError as exc:
            raise StoreError(operation, str(exc)) from exc

    # ------------------------------------------------------------------
    # Feeds
    # ------------------------------------------------------------------

    async def create_feed(self, title: str, url: str, link: str) -> Feed:
        """Insert a new feed.

        Raises:
            AlreadyExistsError: If a feed with *url* is already stored.
        """
        async with self._transaction("create_feed") as session:
            existing = await session.scalar(select(Feed.id).where(Feed.url == url))
            if existing is not None:
                raise AlreadyExistsError("feed", url)
            feed = Feed(title=title, url=url, link=link)
            session.add(feed)
            try:
                await session.flush()
            except IntegrityError as exc:
                raise AlreadyExistsError("feed", url) from exc
        logger.info("store: created feed %d (%s)", feed.id, url)
        return feed

    async def get_feed(self, feed_id: int) -> Feed:
        """Return the feed with *feed_id*.

        Raises:
            NotFoundError: If no such feed exists.
        """
        async with self._transaction("get_feed") as session:
            feed = await session.get(Feed, feed_id)
        if feed is None:
            raise NotFoundError("feed", feed_id)
        return feed

    async def get_feed_by_url(self, url: str) -> Feed | None:
        """Return the feed subscribed at *url*, or ``None``."""
        async with self._transaction("get_feed_by_url") as session:
            return await session.scalar(select(Feed).where(Feed.url == url))

    async def list_feeds(self) -> list[Feed]:
        async with self._transaction("list_feeds") as session:
            result = await session.scalars(select(Feed).order_by(Feed.id))
            return list(result.all())

    async def delete_feed(self, feed_id: int) -> Feed:
        """Delete a feed together with its entries and group links.

        All three deletes share one transaction.

        Returns:
            The deleted feed (detached).

        Raises:
            NotFoundError: If no such feed exists.
        """
        async with self._transaction("delete_feed") as session:
            feed = await session.get(Feed, feed_id)
            if feed is None:
                raise NotFoundError("feed", feed_id)
            entries = await session.execute(delete(Entry).where(Entry.feed_id == feed_id))
            await session.execute(delete(FeedGroup).where(FeedGroup.feed_id == feed_id))
            await session.delete(feed)
        logger.info(
            "store: deleted feed %d (%s) and %d entries",
            feed_id,
            feed.url,
            entries.rowcount,
        )
        return feed

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    async def create_group(self, title: str) -> Group:
        """Insert a new group.

        Raises:
            AlreadyExistsError: If the title is taken.
        """
        async with self._transaction("create_group") as session:
            existing = await session.scalar(select(Group.id).where(Group.title == title))
            if existing is not None:
                raise AlreadyExistsError("group", title)
            group = Group(title=title)
            session.add(group)
            try:
                await session.flush()
            except IntegrityError as exc:
                raise AlreadyExistsError("group", title) from exc
        return group

    async def get_group(self, group_id: int) -> Group:
        async with self._transaction("get_group") as session:
            group = await session.get(Group, group_id)
        if group is None:
            raise NotFoundError("group", group_id)
        return group

    async def get_group_by_title(self, title: str) -> Group | None:
        """Return the group named *title*, or ``None``."""
        async with self._transaction("get_group_by_title") as session:
            return await session.scalar(select(Group).where(Group.title == title))

    async def list_groups(self) -> list[Group]:
        async with self._transaction("list_groups") as session:
            result = await session.scalars(select(Group).order_by(Group.id))
            return list(result.all())

    async def delete_group(self, group_id: int) -> tuple[Group, int]:
        """Delete a group and its feed links atomically.

        Deleting a group that still has feeds is allowed; a warning is
        logged and the number of unlinked feeds is returned.  Feeds and
        their entries are left untouched.

        Returns:
            ``(group, unlinked_feed_count)``.

        Raises:
            NotFoundError: If no such group exists.
        """
        async with self._transaction("delete_group") as session:
            group = await session.get(Group, group_id)
            if group is None:
                raise NotFoundError("group", group_id)
            linked = await session.scalar(
                select(func.count()).select_from(FeedGroup).where(FeedGroup.group_id == group_id)
            )
            await session.execute(delete(FeedGroup).where(FeedGroup.group_id == group_id))
            await session.delete(group)
        if linked:
            logger.warning(
                "store: group %r deleted while %d feed(s) still belonged to it",
                group.title,
                linked,
            )
        return group, int(linked or 0)

    # ------------------------------------------------------------------
    # Feed <-> Group association
    # ------------------------------------------------------------------

    async def add_feed_to_group(self, feed_id: int, group_id: int) -> bool:
        """Link a feed to a group.

        Returns:
            ``True`` when a link was created, ``False`` when it already
            existed (nothing is written in that case).

        Raises:
            NotFoundError: If the feed or the group does not exist.
        """
        try:
            async with self._transaction("add_feed_to_group") as session:
                if await session.get(Feed, feed_id) is None:
                    raise NotFoundError("feed", feed_id)
                if await session.get(Group, group_id) is None:
                    raise NotFoundError("group", group_id)
                if await session.get(FeedGroup, (feed_id, group_id)) is not None:
                    return False
                session.add(FeedGroup(feed_id=feed_id, group_id=group_id))
                try:
                    await session.flush()
                except IntegrityError as exc:
                    raise _LinkExists("add_feed_to_group", str(exc)) from exc
        except _LinkExists:
            # Linked by a concurrent caller between the check and the insert.
            return False
        return True

    async def list_feed_ids_by_group(self, group_id: int) -> list[int]:
        async with self._transaction("list_feed_ids_by_group") as session:
            result = await session.scalars(
                select(FeedGroup.feed_id)
                .where(FeedGroup.group_id == group_id)
                .order_by(FeedGroup.feed_id)
            )
            return list(result.all())

    async def list_group_feeds(self, group_id: int) -> list[Feed]:
        """Return the feeds linked to *group_id*, ordered by feed id."""
        async with self._transaction("list_group_feeds") as session:
            result = await session.scalars(
                select(Feed)
                .join(FeedGroup, FeedGroup.feed_id == Feed.id)
                .where(FeedGroup.group_id == group_id)
                .order_by(Feed.id)
            )
            return list(result.all())

    async def list_feed_groups(self, feed_id: int) -> list[Group]:
        async with self._transaction("list_feed_groups") as session:
            result = await session.scalars(
                select(Group)
                .join(FeedGroup, FeedGroup.group_id == Group.id)
                .where(FeedGroup.feed_id == feed_id)
                .order_by(Group.id)
            )
            return list(result.all())

    async def delete_feed_groups_by_group(self, group_id: int) -> int:
        """Remove every link of *group_id*; returns the number removed."""
        async with self._transaction("delete_feed_groups_by_group") as session:
            result = await session.execute(
                delete(FeedGroup).where(FeedGroup.group_id == group_id)
            )
            return int(result.rowcount or 0)

    # ------------------------------------------------------------------
    # Entries and crawl bookkeeping
    # ------------------------------------------------------------------

    async def record_crawl_success(
        self,
        feed_id: int,
        entries: Sequence[ParsedEntry],
        attempted_at: datetime,
    ) -> int:
        """Store the unseen entries of a crawl and update the feed's bookkeeping.

        Entries whose ``external_id`` is already stored for the feed, or that
        repeat an earlier entry of the same batch, are skipped.  The inserts
        and the bookkeeping update commit together.  If another crawl of the
        same feed commits one of these entries first, the transaction is
        retried once against the refreshed set of stored ids.

        Returns:
            Number of new entries stored.

        Raises:
            NotFoundError: If the feed was deleted in the meantime.
            StoreError: On persistence failure.
        """
        try:
            return await self._insert_new_entries(feed_id, entries, attempted_at)
        except _EntryInsertConflict:
            logger.info("store: entry conflict on feed %d, retrying once", feed_id)
            return await self._insert_new_entries(feed_id, entries, attempted_at)

    async def _insert_new_entries(
        self,
        feed_id: int,
        entries: Sequence[ParsedEntry],
        attempted_at: datetime,
    ) -> int:
        async with self._transaction("record_crawl_success") as session:
            feed = await session.get(Feed, feed_id)
            if feed is None:
                raise NotFoundError("feed", feed_id)

            candidate_ids = {entry.external_id for entry in entries}
            seen: set[str] = set()
            if candidate_ids:
                stored = await session.scalars(
                    select(Entry.external_id).where(
                        Entry.feed_id == feed_id,
                        Entry.external_id.in_(candidate_ids),
                    )
                )
                seen.update(stored.all())

            new_count = 0
            for parsed in entries:
                if parsed.external_id in seen:
                    continue
                seen.add(parsed.external_id)
                session.add(
                    Entry(
                        feed_id=feed_id,
                        external_id=parsed.external_id,
                        title=parsed.title,
                        link=parsed.link,
                        content=parsed.content,
                        author=parsed.author,
                        published_at=parsed.published_at,
                    )
                )
                new_count += 1

            feed.last_crawled_at = attempted_at
            feed.last_success_at = attempted_at
            feed.last_error = None
            feed.last_error_kind = None

            try:
                await session.flush()
            except IntegrityError as exc:
                raise _EntryInsertConflict("record_crawl_success", str(exc)) from exc
        return new_count

    async def record_crawl_failure(
        self,
        feed_id: int,
        attempted_at: datetime,
        kind: str,
        message: str,
    ) -> None:
        """Record a failed crawl attempt on the feed.

        Advances ``last_crawled_at`` so the scheduler waits a full polling
        interval before the next attempt.  No entry rows are touched.

        Raises:
            NotFoundError: If the feed was deleted in the meantime.
        """
        async with self._transaction("record_crawl_failure") as session:
            feed = await session.get(Feed, feed_id)
            if feed is None:
                raise NotFoundError("feed", feed_id)
            feed.last_crawled_at = attempted_at
            feed.last_error = message
            feed.last_error_kind = kind

    async def list_entries(self, feed_id: int, limit: int = 50, offset: int = 0) -> list[Entry]:
        """Return a feed's entries, most recently stored first."""
        async with self._transaction("list_entries") as session:
            result = await session.scalars(
                select(Entry)
                .where(Entry.feed_id == feed_id)
                .order_by(Entry.id.desc())
                .limit(limit)
                .offset(offset)
            )
            return list(result.all())

    async def count_entries(self, feed_id: int) -> int:
        async with self._transaction("count_entries") as session:
            count = await session.scalar(
                select(func.count()).select_from(Entry).where(Entry.feed_id == feed_id)
            )
            return int(count or 0)

    async def ping(self) -> None:
        """Run ``SELECT 1``; raises :class:`StoreError` when unreachable."""
        async with self._transaction("ping") as session:
            await session.execute(select(1))
