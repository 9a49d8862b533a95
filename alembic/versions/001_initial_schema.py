"""Initial schema: feeds, groups, their association, and entries.

Creates the lares schema in FK-dependency order:

1. feeds        — subscriptions with crawl bookkeeping
2. groups       — named feed collections
3. feed_groups  — association (FK → feeds, groups), cascades on delete
4. entries      — stored items (FK → feeds), unique per (feed_id, external_id)

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    """Create all lares tables."""
    op.create_table(
        "feeds",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("url", sa.String(2000), nullable=False),
        sa.Column("link", sa.String(2000), nullable=False),
        sa.Column("last_crawled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_success_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_error", sa.Text, nullable=True),
        sa.Column("last_error_kind", sa.String(50), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("url", name="uq_feeds_url"),
    )

    op.create_table(
        "groups",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(255), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("title", name="uq_groups_title"),
    )

    op.create_table(
        "feed_groups",
        sa.Column(
            "feed_id",
            sa.Integer,
            sa.ForeignKey("feeds.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "group_id",
            sa.Integer,
            sa.ForeignKey("groups.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )
    op.create_index("ix_feed_groups_group_id", "feed_groups", ["group_id"])

    op.create_table(
        "entries",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "feed_id",
            sa.Integer,
            sa.ForeignKey("feeds.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("external_id", sa.String(2000), nullable=False),
        sa.Column("title", sa.String(1000), nullable=True),
        sa.Column("link", sa.String(2000), nullable=True),
        sa.Column("content", sa.Text, nullable=True),
        sa.Column("author", sa.String(500), nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("feed_id", "external_id", name="uq_entries_feed_external_id"),
    )
    op.create_index("ix_entries_feed_id", "entries", ["feed_id"])


def downgrade() -> None:
    """Drop all lares tables."""
    op.drop_index("ix_entries_feed_id", table_name="entries")
    op.drop_table("entries")
    op.drop_index("ix_feed_groups_group_id", table_name="feed_groups")
    op.drop_table("feed_groups")
    op.drop_table("groups")
    op.drop_table("feeds")
