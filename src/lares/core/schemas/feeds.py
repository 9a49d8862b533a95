"""Pydantic request/response schemas for feeds, groups and entries.

Used by the route modules in :mod:`lares.api.routes` for validation,
serialization and OpenAPI documentation.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    HttpUrl,
    TypeAdapter,
    ValidationError,
    field_validator,
)


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

_HTTP_URL: TypeAdapter[HttpUrl] = TypeAdapter(HttpUrl)


class FeedCreate(BaseModel):
    """Payload for subscribing to a feed.

    Attributes:
        url: Subscription URL.  Title and link are derived from the fetched
            document, so they cannot be supplied here.
        group: Optional title of an existing group to link the new feed to.
    """

    url: str = Field(..., min_length=1, max_length=2000)
    group: Optional[str] = Field(default=None, min_length=1, max_length=255)

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        # Validated as an http(s) URL but stored exactly as given, so the API
        # and the CLI key a subscription by the same string.
        try:
            _HTTP_URL.validate_python(value)
        except ValidationError as exc:
            raise ValueError(f"not a valid http(s) URL: {value!r}") from exc
        return value


class GroupCreate(BaseModel):
    """Payload for creating a group."""

    title: str = Field(..., min_length=1, max_length=255)


class GroupFeedAdd(BaseModel):
    """Payload for linking an existing feed to a group."""

    feed_id: int = Field(..., ge=1)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class FeedRead(BaseModel):
    """A stored feed with its crawl bookkeeping."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    url: str
    link: str
    last_crawled_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None
    last_error: Optional[str] = None
    last_error_kind: Optional[str] = None
    created_at: datetime


class GroupRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    created_at: datetime


class GroupDetail(BaseModel):
    """A group together with the feeds linked to it."""

    group: GroupRead
    feeds: list[FeedRead]


class GroupDeleted(BaseModel):
    """Result of deleting a group.

    Attributes:
        group: The deleted group.
        unlinked_feeds: Number of feeds that still belonged to the group.
        warning: Set when ``unlinked_feeds`` is non-zero.
    """

    group: GroupRead
    unlinked_feeds: int
    warning: Optional[str] = None


class GroupFeedLinked(BaseModel):
    feed_id: int
    group: str
    created: bool


class EntryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    feed_id: int
    external_id: str
    title: Optional[str] = None
    link: Optional[str] = None
    content: Optional[str] = None
    author: Optional[str] = None
    published_at: Optional[datetime] = None
    created_at: datetime


class CrawlOutcomeRead(BaseModel):
    """Result of an on-demand crawl."""

    model_config = ConfigDict(from_attributes=True)

    feed_id: int
    status: str
    new_entries: int
    error: Optional[str] = None
