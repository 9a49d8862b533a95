"""Feed, Group and FeedGroup ORM models.

A ``Feed`` is a subscribed RSS/Atom source identified by its unique URL.
A ``Group`` is a named collection of feeds; the many-to-many association is
stored in ``feed_groups`` with a composite primary key, so one feed can be
linked to one group at most once.

No ORM relationships are declared: the store always works with explicit
queries and hands out detached instances, so lazy loading would fail outside
a session anyway.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from lares.core.models.base import Base, TimestampMixin, UTCDateTime


class Feed(TimestampMixin, Base):
    """A subscribed feed plus its crawl bookkeeping.

    Crawl bookkeeping columns:

    last_crawled_at
        Time of the most recent crawl attempt, successful or not.  The
        scheduler compares it with the polling interval to decide due-ness.
    last_success_at
        Time of the most recent crawl that fetched and parsed the document.
    last_error / last_error_kind
        Message and kind (``"fetch"`` or ``"parse"``) of the most recent
        failed attempt.  Cleared by the next successful crawl.
    """

    __tablename__ = "feeds"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(sa.String(500), nullable=False)
    url: Mapped[str] = mapped_column(sa.String(2000), nullable=False, unique=True)
    link: Mapped[str] = mapped_column(sa.String(2000), nullable=False)

    last_crawled_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    last_success_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    last_error: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    last_error_kind: Mapped[Optional[str]] = mapped_column(sa.String(50), nullable=True)

    def __str__(self) -> str:
        return f"[{self.id}] {self.title} ({self.url})"

    def __repr__(self) -> str:
        return f"<Feed id={self.id} url={self.url!r}>"


class Group(TimestampMixin, Base):
    """A named collection of feeds.  ``title`` is the human-facing key."""

    __tablename__ = "groups"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(sa.String(255), nullable=False, unique=True)

    def __str__(self) -> str:
        return f"[{self.id}] {self.title}"

    def __repr__(self) -> str:
        return f"<Group id={self.id} title={self.title!r}>"


class FeedGroup(Base):
    """Association row linking one feed to one group."""

    __tablename__ = "feed_groups"

    feed_id: Mapped[int] = mapped_column(
        sa.Integer,
        sa.ForeignKey("feeds.id", ondelete="CASCADE"),
        primary_key=True,
    )
    group_id: Mapped[int] = mapped_column(
        sa.Integer,
        sa.ForeignKey("groups.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    )
