"""SQLAlchemy ORM models for lares.

All models are imported here so that:
1. Alembic autogenerate can discover them via Base.metadata.
2. Application code can do ``from lares.core.models import Feed`` without
   knowing which sub-module a model lives in.
"""

from __future__ import annotations

from lares.core.models.base import Base, TimestampMixin, UTCDateTime, utcnow
from lares.core.models.entries import Entry
from lares.core.models.feeds import Feed, FeedGroup, Group

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "UTCDateTime",
    "utcnow",
    # Feeds
    "Feed",
    "Group",
    "FeedGroup",
    # Entries
    "Entry",
]
