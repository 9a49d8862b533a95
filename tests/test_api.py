"""Tests for the management HTTP API.

Covers:
- feed and group routes end to end against a temporary SQLite store
- error mapping: 404 not found, 409 duplicate / crawl in progress,
  502 upstream fetch failure
- optional HTTP Basic authentication
- the request-id header added by the logging middleware

Requests go through httpx's ASGITransport; outbound feed fetches are
mocked with respx.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from typing import Optional

import httpx
import pytest
import pytest_asyncio
import respx
from httpx import ASGITransport, AsyncClient

from lares.api.main import create_app
from lares.config.settings import Settings
from lares.core.exceptions import AlreadyExistsError
from lares.core.management import FeedManager
from lares.core.store import Store
from lares.crawler.pipeline import CrawlOutcome, CrawlStatus
from lares.crawler.scheduler import CrawlScheduler
from tests.factories.feeds import FEED_URL, SITE_URL, numbered_items, rss_document


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest_asyncio.fixture
async def client(settings: Settings, store: Store) -> AsyncGenerator[AsyncClient, None]:
    app = create_app(settings, store=store)
    async with _client(app) as http:
        yield http


async def _add_feed(client: AsyncClient, group: Optional[str] = None) -> dict:
    payload = {"url": FEED_URL}
    if group is not None:
        payload["group"] = group
    response = await client.post("/feeds", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


class TestHealth:
    @pytest.mark.asyncio
    async def test_health_ok(self, client: AsyncClient) -> None:
        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["database"] == "ok"
        assert body["crawling"] is None

    @pytest.mark.asyncio
    async def test_response_carries_request_id(self, client: AsyncClient) -> None:
        response = await client.get("/health")

        assert response.headers.get("X-Request-ID")


class TestFeedRoutes:
    @pytest.mark.asyncio
    @respx.mock
    async def test_add_list_get_feed(self, client: AsyncClient) -> None:
        respx.get(FEED_URL).mock(
            return_value=httpx.Response(200, content=rss_document([], title="Daily News"))
        )

        created = await _add_feed(client)
        listed = (await client.get("/feeds")).json()
        fetched = (await client.get(f"/feeds/{created['id']}")).json()

        assert created["title"] == "Daily News"
        assert created["link"] == SITE_URL
        assert [f["id"] for f in listed] == [created["id"]]
        assert fetched["url"] == FEED_URL
        assert fetched["last_crawled_at"] is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_duplicate_feed_returns_409(self, client: AsyncClient) -> None:
        respx.get(FEED_URL).mock(return_value=httpx.Response(200, content=rss_document([])))
        await _add_feed(client)

        response = await client.post("/feeds", json={"url": FEED_URL})

        assert response.status_code == 409
        assert response.json()["error"] == "AlreadyExistsError"

    @pytest.mark.asyncio
    @respx.mock
    async def test_unreachable_feed_returns_502(self, client: AsyncClient) -> None:
        respx.get(FEED_URL).mock(return_value=httpx.Response(500))

        response = await client.post("/feeds", json={"url": FEED_URL})

        assert response.status_code == 502
        assert response.json()["error"] == "FetchError"

    @pytest.mark.asyncio
    async def test_add_to_missing_group_returns_404(self, client: AsyncClient) -> None:
        response = await client.post("/feeds", json={"url": FEED_URL, "group": "missing"})

        assert response.status_code == 404

    @pytest.mark.asyncio
    @respx.mock
    async def test_url_stored_as_given_and_shared_with_cli(
        self, client: AsyncClient, store: Store
    ) -> None:
        bare = "https://Example.com"
        respx.get(host="example.com").mock(
            return_value=httpx.Response(200, content=rss_document([]))
        )

        response = await client.post("/feeds", json={"url": bare})

        assert response.status_code == 201, response.text
        assert response.json()["url"] == bare
        with pytest.raises(AlreadyExistsError):
            await FeedManager(store).add_feed(bare)
        assert [feed.url for feed in await store.list_feeds()] == [bare]

    @pytest.mark.asyncio
    async def test_invalid_url_returns_422(self, client: AsyncClient) -> None:
        response = await client.post("/feeds", json={"url": "not a url"})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_missing_feed_returns_404(self, client: AsyncClient) -> None:
        response = await client.get("/feeds/999")

        assert response.status_code == 404
        assert "not found" in response.json()["detail"]

    @pytest.mark.asyncio
    @respx.mock
    async def test_crawl_and_list_entries(self, client: AsyncClient) -> None:
        respx.get(FEED_URL).mock(
            return_value=httpx.Response(200, content=rss_document(numbered_items(3)))
        )
        feed = await _add_feed(client)

        crawl = await client.post(f"/feeds/{feed['id']}/crawl")
        entries = await client.get(f"/feeds/{feed['id']}/entries", params={"limit": 2})

        assert crawl.status_code == 200
        assert crawl.json() == {
            "feed_id": feed["id"],
            "status": "ok",
            "new_entries": 3,
            "error": None,
        }
        assert entries.status_code == 200
        assert [e["external_id"] for e in entries.json()] == ["entry-3", "entry-2"]

    @pytest.mark.asyncio
    @respx.mock
    async def test_delete_feed(self, client: AsyncClient) -> None:
        respx.get(FEED_URL).mock(return_value=httpx.Response(200, content=rss_document([])))
        feed = await _add_feed(client)

        deleted = await client.delete(f"/feeds/{feed['id']}")
        missing = await client.get(f"/feeds/{feed['id']}")

        assert deleted.status_code == 200
        assert missing.status_code == 404


class TestGroupRoutes:
    @pytest.mark.asyncio
    @respx.mock
    async def test_group_lifecycle(self, client: AsyncClient) -> None:
        respx.get(FEED_URL).mock(return_value=httpx.Response(200, content=rss_document([])))
        feed = await _add_feed(client)

        created = await client.post("/groups", json={"title": "news"})
        duplicate = await client.post("/groups", json={"title": "news"})
        linked = await client.post("/groups/news/feeds", json={"feed_id": feed["id"]})
        relinked = await client.post("/groups/news/feeds", json={"feed_id": feed["id"]})
        shown = await client.get("/groups/news")
        deleted = await client.delete("/groups/news")
        feeds_after = await client.get("/feeds")

        assert created.status_code == 201
        assert duplicate.status_code == 409
        assert linked.json() == {"feed_id": feed["id"], "group": "news", "created": True}
        assert relinked.json()["created"] is False
        assert [f["id"] for f in shown.json()["feeds"]] == [feed["id"]]
        assert deleted.json()["unlinked_feeds"] == 1
        assert deleted.json()["warning"]
        assert len(feeds_after.json()) == 1

    @pytest.mark.asyncio
    async def test_list_groups(self, client: AsyncClient) -> None:
        await client.post("/groups", json={"title": "a"})
        await client.post("/groups", json={"title": "b"})

        response = await client.get("/groups")

        assert [g["title"] for g in response.json()] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_missing_group_returns_404(self, client: AsyncClient) -> None:
        assert (await client.get("/groups/missing")).status_code == 404
        assert (await client.delete("/groups/missing")).status_code == 404

    @pytest.mark.asyncio
    async def test_link_missing_feed_returns_404(self, client: AsyncClient) -> None:
        await client.post("/groups", json={"title": "news"})

        response = await client.post("/groups/news/feeds", json={"feed_id": 42})

        assert response.status_code == 404


class _BlockingPipeline:
    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def crawl(self, feed) -> CrawlOutcome:
        self.started.set()
        await self.release.wait()
        return CrawlOutcome(feed_id=feed.id, status=CrawlStatus.OK)


class TestCrawlInProgress:
    @pytest.mark.asyncio
    async def test_crawl_of_in_flight_feed_returns_409(self, settings: Settings, store: Store) -> None:
        feed = await store.create_feed(title="F", url=FEED_URL, link=SITE_URL)
        pipeline = _BlockingPipeline()
        scheduler = CrawlScheduler(store, pipeline)
        app = create_app(settings, store=store, scheduler=scheduler)

        running = asyncio.create_task(scheduler.crawl_now(feed.id))
        await asyncio.wait_for(pipeline.started.wait(), timeout=5)
        async with _client(app) as client:
            response = await client.post(f"/feeds/{feed.id}/crawl")
            health = await client.get("/health")

        pipeline.release.set()
        await asyncio.wait_for(running, timeout=5)

        assert response.status_code == 409
        assert response.json()["error"] == "CrawlInProgressError"
        assert health.json()["crawling"] == 1


class TestBasicAuth:
    @pytest_asyncio.fixture
    async def secured(self, database_path, store: Store) -> AsyncGenerator[AsyncClient, None]:
        settings = Settings(
            _env_file=None,
            database=str(database_path),
            username="admin",
            password="s3cret",
        )
        async with _client(create_app(settings, store=store)) as http:
            yield http

    @pytest.mark.asyncio
    async def test_missing_credentials_rejected(self, secured: AsyncClient) -> None:
        response = await secured.get("/feeds")

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Basic"

    @pytest.mark.asyncio
    async def test_wrong_password_rejected(self, secured: AsyncClient) -> None:
        response = await secured.get("/feeds", auth=("admin", "wrong"))

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_valid_credentials_accepted(self, secured: AsyncClient) -> None:
        response = await secured.get("/feeds", auth=("admin", "s3cret"))

        assert response.status_code == 200
        assert response.json() == []
