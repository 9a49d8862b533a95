"""Feed and group management operations shared by the CLI and the API.

:class:`FeedManager` holds the logic behind every management command so the
two surfaces stay thin: they parse input, call one method, and render the
result or map the raised :mod:`lares.core.exceptions` error.
"""

from __future__ import annotations

import logging

import httpx

from lares.core.exceptions import AlreadyExistsError, NotFoundError, ParseError
from lares.core.models import Entry, Feed, Group
from lares.core.store import Store
from lares.crawler.fetcher import DEFAULT_TIMEOUT_SECONDS, DEFAULT_USER_AGENT, fetch_and_parse
from lares.crawler.pipeline import CrawlOutcome, CrawlPipeline

logger = logging.getLogger(__name__)


class FeedManager:
    """Management operations over a :class:`~lares.core.store.Store`.

    Args:
        store: Shared store.
        pipeline: Crawl pipeline used by :meth:`crawl_feed`.  Built from
            *store* when omitted.
        http_client: Optional client used when adding feeds.
        timeout: Fetch timeout used when no client is injected.
        user_agent: User-Agent used when no client is injected.
    """

    def __init__(
        self,
        store: Store,
        pipeline: CrawlPipeline | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self.store = store
        self._http_client = http_client
        self._timeout = timeout
        self._user_agent = user_agent
        self.pipeline = pipeline or CrawlPipeline(
            store, http_client=http_client, timeout=timeout, user_agent=user_agent
        )

    # ------------------------------------------------------------------
    # Feeds
    # ------------------------------------------------------------------

    async def list_feeds(self) -> list[Feed]:
        return await self.store.list_feeds()

    async def get_feed(self, feed_id: int) -> Feed:
        return await self.store.get_feed(feed_id)

    async def add_feed(self, url: str, group: str | None = None) -> tuple[Feed, Group | None]:
        """Subscribe to the feed at *url*.

        The URL is fetched once; the stored title and link always come from
        the parsed document, never from the caller.

        Args:
            url: Subscription URL.
            group: Optional title of an existing group to link the feed to.

        Returns:
            ``(feed, group)``; *group* is ``None`` when none was requested.

        Raises:
            AlreadyExistsError: A feed with this URL is already stored.
            NotFoundError: *group* does not exist (checked before fetching).
            FetchError: The URL could not be retrieved.
            ParseError: The document is not a feed or has no title.
        """
        if await self.store.get_feed_by_url(url) is not None:
            raise AlreadyExistsError("feed", url)

        target_group: Group | None = None
        if group is not None:
            target_group = await self._require_group(group)

        document = await fetch_and_parse(
            url,
            client=self._http_client,
            timeout=self._timeout,
            user_agent=self._user_agent,
        )
        if document.title is None:
            raise ParseError(url, "feed doesn't have a title")

        feed = await self.store.create_feed(
            title=document.title,
            url=url,
            link=document.canonical_link(url),
        )
        logger.info("management: feed %d added (%s)", feed.id, url)

        if target_group is not None:
            await self.store.add_feed_to_group(feed.id, target_group.id)
        return feed, target_group

    async def delete_feed(self, feed_id: int) -> Feed:
        """Delete a feed with its entries and group links."""
        return await self.store.delete_feed(feed_id)

    async def crawl_feed(self, feed_id: int) -> CrawlOutcome:
        """Crawl one feed now through the regular crawl pipeline."""
        feed = await self.store.get_feed(feed_id)
        return await self.pipeline.crawl(feed)

    async def list_entries(self, feed_id: int, limit: int = 50, offset: int = 0) -> list[Entry]:
        await self.store.get_feed(feed_id)
        return await self.store.list_entries(feed_id, limit=limit, offset=offset)

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    async def list_groups(self) -> list[Group]:
        return await self.store.list_groups()

    async def add_group(self, title: str) -> Group:
        return await self.store.create_group(title)

    async def add_feed_to_group(self, feed_id: int, group: str) -> tuple[Feed, Group, bool]:
        """Link feed *feed_id* to the group titled *group*.

        Returns:
            ``(feed, group, created)``; *created* is ``False`` when the link
            already existed.
        """
        target = await self._require_group(group)
        feed = await self.store.get_feed(feed_id)
        created = await self.store.add_feed_to_group(feed.id, target.id)
        return feed, target, created

    async def delete_group(self, title: str) -> tuple[Group, int]:
        """Delete a group; returns it with the number of feeds it still held."""
        group = await self._require_group(title)
        return await self.store.delete_group(group.id)

    async def show_group(self, title: str) -> tuple[Group, list[Feed]]:
        group = await self._require_group(title)
        return group, await self.store.list_group_feeds(group.id)

    async def _require_group(self, title: str) -> Group:
        group = await self.store.get_group_by_title(title)
        if group is None:
            raise NotFoundError("group", title)
        return group
