"""Tests for the fetch-parse-dedupe-persist crawl pipeline.

Covers:
- a first crawl stores every entry, an unchanged second crawl stores none
- a partially changed document stores only the unseen entries
- HTTP failure: FETCH_FAILED outcome, bookkeeping advanced, no entries
- a malformed stored URL: FETCH_FAILED outcome, bookkeeping advanced
- parse failure: PARSE_FAILED outcome
- a later success clears the recorded error
"""

from __future__ import annotations

import httpx
import pytest
import respx

from lares.core.store import Store
from lares.crawler.pipeline import CrawlPipeline, CrawlStatus
from tests.factories.feeds import FEED_URL, numbered_items, rss_document


async def _subscribed(store: Store):
    return await store.create_feed(title="Example Feed", url=FEED_URL, link="https://example.com/")


class TestCrawlPipeline:
    @pytest.mark.asyncio
    @respx.mock
    async def test_first_crawl_stores_all_then_none(self, store: Store) -> None:
        respx.get(FEED_URL).mock(
            return_value=httpx.Response(200, content=rss_document(numbered_items(5)))
        )
        feed = await _subscribed(store)
        pipeline = CrawlPipeline(store)

        first = await pipeline.crawl(feed)
        second = await pipeline.crawl(feed)

        assert first.status is CrawlStatus.OK
        assert first.ok
        assert first.new_entries == 5
        assert second.status is CrawlStatus.OK
        assert second.new_entries == 0
        assert await store.count_entries(feed.id) == 5

    @pytest.mark.asyncio
    @respx.mock
    async def test_only_unseen_entries_added(self, store: Store) -> None:
        route = respx.get(FEED_URL)
        route.side_effect = [
            httpx.Response(200, content=rss_document(numbered_items(3))),
            httpx.Response(200, content=rss_document(numbered_items(5))),
        ]
        feed = await _subscribed(store)
        pipeline = CrawlPipeline(store)

        await pipeline.crawl(feed)
        outcome = await pipeline.crawl(feed)

        assert outcome.new_entries == 2
        assert await store.count_entries(feed.id) == 5

    @pytest.mark.asyncio
    @respx.mock
    async def test_http_error_records_fetch_failure(self, store: Store) -> None:
        respx.get(FEED_URL).mock(return_value=httpx.Response(500))
        feed = await _subscribed(store)

        outcome = await CrawlPipeline(store).crawl(feed)

        assert outcome.status is CrawlStatus.FETCH_FAILED
        assert not outcome.ok
        assert outcome.new_entries == 0
        assert "HTTP 500" in outcome.error
        loaded = await store.get_feed(feed.id)
        assert loaded.last_crawled_at is not None
        assert loaded.last_success_at is None
        assert loaded.last_error_kind == "fetch"
        assert await store.count_entries(feed.id) == 0

    @pytest.mark.asyncio
    async def test_malformed_stored_url_records_fetch_failure(self, store: Store) -> None:
        feed = await store.create_feed(
            title="Broken", url="http://[::1/feed", link="https://example.com/"
        )

        outcome = await CrawlPipeline(store).crawl(feed)

        assert outcome.status is CrawlStatus.FETCH_FAILED
        loaded = await store.get_feed(feed.id)
        assert loaded.last_crawled_at is not None
        assert loaded.last_error_kind == "fetch"

    @pytest.mark.asyncio
    @respx.mock
    async def test_invalid_document_records_parse_failure(self, store: Store) -> None:
        respx.get(FEED_URL).mock(return_value=httpx.Response(200, content=b"definitely not xml"))
        feed = await _subscribed(store)

        outcome = await CrawlPipeline(store).crawl(feed)

        assert outcome.status is CrawlStatus.PARSE_FAILED
        loaded = await store.get_feed(feed.id)
        assert loaded.last_error_kind == "parse"
        assert loaded.last_crawled_at is not None

    @pytest.mark.asyncio
    @respx.mock
    async def test_success_after_failure_clears_error(self, store: Store) -> None:
        route = respx.get(FEED_URL)
        route.side_effect = [
            httpx.Response(503),
            httpx.Response(200, content=rss_document(numbered_items(2))),
        ]
        feed = await _subscribed(store)
        pipeline = CrawlPipeline(store)

        await pipeline.crawl(feed)
        outcome = await pipeline.crawl(feed)

        assert outcome.new_entries == 2
        loaded = await store.get_feed(feed.id)
        assert loaded.last_error is None
        assert loaded.last_success_at == loaded.last_crawled_at
