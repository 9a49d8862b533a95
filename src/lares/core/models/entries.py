"""Entry ORM model: one article/item of a feed.

Entries are append-only.  The crawl pipeline inserts an entry the first
time its ``external_id`` is seen for a feed and never rewrites it; the
``(feed_id, external_id)`` unique constraint backs the deduplication check.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from lares.core.models.base import Base, UTCDateTime, utcnow


class Entry(Base):
    """A single feed item.

    ``external_id`` is the entry's guid/id when the document provides one,
    otherwise its link, otherwise a content hash (see
    :func:`lares.crawler.fetcher.entry_identity`).
    """

    __tablename__ = "entries"
    __table_args__ = (
        sa.UniqueConstraint("feed_id", "external_id", name="uq_entries_feed_external_id"),
    )

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    feed_id: Mapped[int] = mapped_column(
        sa.Integer,
        sa.ForeignKey("feeds.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    external_id: Mapped[str] = mapped_column(sa.String(2000), nullable=False)

    title: Mapped[Optional[str]] = mapped_column(sa.String(1000), nullable=True)
    link: Mapped[Optional[str]] = mapped_column(sa.String(2000), nullable=True)
    content: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    author: Mapped[Optional[str]] = mapped_column(sa.String(500), nullable=True)
    published_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=utcnow,
        server_default=sa.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Entry id={self.id} feed_id={self.feed_id} external_id={self.external_id!r}>"
