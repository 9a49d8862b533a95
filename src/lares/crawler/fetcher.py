"""Fetch-parse stage of the crawler.

Retrieves a feed over HTTP with ``httpx`` and parses the body with
``feedparser`` into a :class:`FeedDocument`.

Failure split:

- :class:`~lares.core.exceptions.FetchError` for transport errors,
  timeouts and non-2xx responses ("feed unreachable").
- :class:`~lares.core.exceptions.ParseError` when the body is not a
  recognisable RSS/Atom document ("feed content invalid").

There are no retries at this level.
"""

from __future__ import annotations

import calendar
import hashlib
import io
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import feedparser
import httpx

from lares.core.exceptions import FetchError, ParseError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS: float = 30.0
DEFAULT_USER_AGENT: str = "lares/0.3 (+https://github.com/fanzeyi/lares)"

_ACCEPT = "application/rss+xml, application/atom+xml, application/xml;q=0.9, text/xml;q=0.9, */*;q=0.8"


# ---------------------------------------------------------------------------
# Parsed document types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ParsedEntry:
    """One item of a parsed feed document.

    Attributes:
        external_id: Stable per-feed identity used for deduplication.
        title: Entry title, if any.
        link: Entry permalink, if any.
        content: Full content when present, else the summary.
        author: Author name, if any.
        published_at: Publication (or last update) time in UTC.
    """

    external_id: str
    title: str | None = None
    link: str | None = None
    content: str | None = None
    author: str | None = None
    published_at: datetime | None = None


@dataclass(frozen=True)
class FeedDocument:
    """A parsed RSS/Atom document.

    Attributes:
        title: Feed title, if the document declares one.
        links: Candidate links in document order.
        entries: Entries in document order.
    """

    title: str | None
    links: list[str] = field(default_factory=list)
    entries: list[ParsedEntry] = field(default_factory=list)

    def canonical_link(self, subscription_url: str) -> str:
        """Return the first link that differs from *subscription_url*.

        Falls back to *subscription_url* when every candidate equals it or
        the document has no links at all.
        """
        for link in self.links:
            if link and link != subscription_url:
                return link
        return subscription_url


# ---------------------------------------------------------------------------
# Fetch
# ---------------------------------------------------------------------------


def build_http_client(
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    user_agent: str = DEFAULT_USER_AGENT,
) -> httpx.AsyncClient:
    """Return an async HTTP client configured for feed requests."""
    return httpx.AsyncClient(
        timeout=timeout,
        follow_redirects=True,
        headers={"User-Agent": user_agent, "Accept": _ACCEPT},
    )


async def fetch_feed(url: str, client: httpx.AsyncClient) -> bytes:
    """GET *url* and return the raw body.

    Raises:
        FetchError: On timeout, transport error, a malformed URL or a non-2xx status.
    """
    try:
        response = await client.get(url)
    except httpx.TimeoutException as exc:
        raise FetchError(url, f"timed out: {exc}") from exc
    except httpx.RequestError as exc:
        raise FetchError(url, f"request error: {exc}") from exc
    except httpx.InvalidURL as exc:
        raise FetchError(url, f"invalid URL: {exc}") from exc

    if not response.is_success:
        raise FetchError(
            url,
            f"HTTP {response.status_code}",
            status_code=response.status_code,
        )
    return response.content


# ---------------------------------------------------------------------------
# Parse
# ---------------------------------------------------------------------------


def parse_feed(url: str, body: bytes) -> FeedDocument:
    """Parse a raw feed body into a :class:`FeedDocument`.

    feedparser is lenient and flags recoverable problems through ``bozo``;
    a document is rejected only when feedparser cannot identify any feed
    format in it.

    Raises:
        ParseError: If the body is not an RSS/Atom document.
    """
    try:
        parsed = feedparser.parse(io.BytesIO(body))
    except Exception as exc:  # noqa: BLE001
        raise ParseError(url, f"feedparser error: {exc}") from exc

    if not parsed.get("version"):
        detail = getattr(parsed, "bozo_exception", None) or "unrecognised feed format"
        raise ParseError(url, str(detail))

    if parsed.get("bozo"):
        logger.debug("fetcher: '%s' parsed with warnings: %s", url, parsed.get("bozo_exception"))

    meta = parsed.get("feed", {})
    title = (meta.get("title") or "").strip() or None

    return FeedDocument(
        title=title,
        links=_feed_links(meta),
        entries=[_parse_entry(entry) for entry in parsed.get("entries", [])],
    )


async def fetch_and_parse(
    url: str,
    client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    user_agent: str = DEFAULT_USER_AGENT,
) -> FeedDocument:
    """Fetch *url* and parse it.

    Args:
        url: Subscription URL of the feed.
        client: Shared HTTP client.  When ``None`` a client is created for
            this call and closed afterwards.
        timeout: Request timeout for a newly created client.
        user_agent: User-Agent for a newly created client.

    Raises:
        FetchError: The feed could not be retrieved.
        ParseError: The feed was retrieved but is not valid RSS/Atom.
    """
    if client is None:
        async with build_http_client(timeout=timeout, user_agent=user_agent) as own_client:
            body = await fetch_feed(url, own_client)
    else:
        body = await fetch_feed(url, client)
    return parse_feed(url, body)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _feed_links(meta: Any) -> list[str]:
    """Collect candidate links from the feed-level metadata, in document order."""
    links: list[str] = []
    for link in meta.get("links", []) or []:
        href = link.get("href")
        if href and href not in links:
            links.append(href)
    primary = meta.get("link")
    if primary and primary not in links:
        links.append(primary)
    return links


def entry_identity(entry: Any) -> str:
    """Return the deduplication key of a feedparser entry.

    Prefers the entry id/guid, then the entry link.  Entries with neither
    are keyed by a SHA-256 of their title and content so that re-crawling
    an unchanged document still finds them.
    """
    entry_id = (entry.get("id") or "").strip()
    if entry_id:
        return entry_id
    link = (entry.get("link") or "").strip()
    if link:
        return link
    digest = hashlib.sha256()
    digest.update((entry.get("title") or "").encode("utf-8"))
    digest.update(b"\x00")
    digest.update((_entry_content(entry) or "").encode("utf-8"))
    return f"sha256:{digest.hexdigest()}"


def _entry_content(entry: Any) -> str | None:
    for block in entry.get("content", []) or []:
        value = block.get("value")
        if value:
            return value
    return entry.get("summary") or entry.get("description") or None


def _entry_datetime(entry: Any) -> datetime | None:
    """Extract a timezone-aware publication datetime from a feedparser entry."""
    pub_struct = entry.get("published_parsed") or entry.get("updated_parsed")
    if pub_struct is None:
        return None
    try:
        return datetime.fromtimestamp(calendar.timegm(pub_struct), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def _parse_entry(entry: Any) -> ParsedEntry:
    return ParsedEntry(
        external_id=entry_identity(entry),
        title=entry.get("title") or None,
        link=entry.get("link") or None,
        content=_entry_content(entry),
        author=entry.get("author") or None,
        published_at=_entry_datetime(entry),
    )
