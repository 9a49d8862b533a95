"""Application-wide exception hierarchy for lares.

All custom exceptions subclass ``LaresError`` so callers can catch the whole
taxonomy with one ``except`` clause.  Every error carries structured fields
(feed id, URL, lookup key, underlying reason) rather than a pre-formatted
context string, so the CLI and the API can map them programmatically.

Hierarchy::

    LaresError
    ├── NotFoundError          (kind, key)
    ├── AlreadyExistsError     (kind, key)
    ├── CrawlInProgressError   (feed_id)
    ├── FeedError              (url, reason)
    │   ├── FetchError         (status_code)
    │   └── ParseError
    └── StoreError             (operation, reason)
"""

from __future__ import annotations


class LaresError(Exception):
    """Base class for all lares exceptions."""


# ---------------------------------------------------------------------------
# Lookup / uniqueness errors (surfaced to the management surface)
# ---------------------------------------------------------------------------


class NotFoundError(LaresError):
    """Raised when a feed or group lookup by id or unique key misses.

    Args:
        kind: Entity kind, ``"feed"`` or ``"group"``.
        key: The id or unique key that was looked up.
    """

    def __init__(self, kind: str, key: object) -> None:
        super().__init__(f"{kind} {key!r} not found")
        self.kind = kind
        self.key = key


class AlreadyExistsError(LaresError):
    """Raised when creating a feed whose URL, or a group whose title, is taken.

    Args:
        kind: Entity kind, ``"feed"`` or ``"group"``.
        key: The conflicting unique key (feed URL or group title).
    """

    def __init__(self, kind: str, key: object) -> None:
        super().__init__(f"{kind} {key!r} already exists")
        self.kind = kind
        self.key = key


class CrawlInProgressError(LaresError):
    """Raised when an on-demand crawl targets a feed the scheduler is crawling."""

    def __init__(self, feed_id: int) -> None:
        super().__init__(f"feed {feed_id} is already being crawled")
        self.feed_id = feed_id


# ---------------------------------------------------------------------------
# Fetch / parse errors
# ---------------------------------------------------------------------------


class FeedError(LaresError):
    """Base class for failures retrieving or interpreting a feed document.

    Args:
        url: The subscription URL that was requested.
        reason: Human-readable description of the failure.
    """

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason


class FetchError(FeedError):
    """Malformed URL, transport failure, timeout or non-2xx response while fetching a feed.

    Args:
        url: The subscription URL that was requested.
        reason: Human-readable description of the failure.
        status_code: HTTP status when the server answered, else ``None``.
    """

    def __init__(self, url: str, reason: str, status_code: int | None = None) -> None:
        super().__init__(url, reason)
        self.status_code = status_code


class ParseError(FeedError):
    """The response body is not a usable RSS/Atom document."""


# ---------------------------------------------------------------------------
# Persistence errors
# ---------------------------------------------------------------------------


class StoreError(LaresError):
    """Raised when the persistence layer fails (connection, constraint, I/O).

    Args:
        operation: Name of the store operation that failed
            (e.g. ``"create_feed"``).
        reason: Description of the underlying failure.
    """

    def __init__(self, operation: str, reason: str) -> None:
        super().__init__(f"store operation {operation!r} failed: {reason}")
        self.operation = operation
        self.reason = reason
