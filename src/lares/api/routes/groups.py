"""Group management routes.

Groups are addressed by title, the same human-facing key the CLI uses.

- ``GET    /groups``                 — list groups.
- ``POST   /groups``                 — create a group.
- ``GET    /groups/{title}``         — a group and its feeds.
- ``DELETE /groups/{title}``         — delete a group (its feeds are kept).
- ``POST   /groups/{title}/feeds``   — link a feed to the group.
"""

from __future__ import annotations

from fastapi import APIRouter, status

from lares.api.dependencies import ManagerDep
from lares.core.schemas.feeds import (
    FeedRead,
    GroupCreate,
    GroupDeleted,
    GroupDetail,
    GroupFeedAdd,
    GroupFeedLinked,
    GroupRead,
)

router = APIRouter()


@router.get("", response_model=list[GroupRead])
async def list_groups(manager: ManagerDep) -> list[GroupRead]:
    return [GroupRead.model_validate(group) for group in await manager.list_groups()]


@router.post("", response_model=GroupRead, status_code=status.HTTP_201_CREATED)
async def add_group(body: GroupCreate, manager: ManagerDep) -> GroupRead:
    return GroupRead.model_validate(await manager.add_group(body.title))


@router.get("/{title}", response_model=GroupDetail)
async def show_group(title: str, manager: ManagerDep) -> GroupDetail:
    group, feeds = await manager.show_group(title)
    return GroupDetail(
        group=GroupRead.model_validate(group),
        feeds=[FeedRead.model_validate(feed) for feed in feeds],
    )


@router.delete("/{title}", response_model=GroupDeleted)
async def delete_group(title: str, manager: ManagerDep) -> GroupDeleted:
    group, unlinked = await manager.delete_group(title)
    warning = None
    if unlinked:
        warning = f"there were still {unlinked} feed(s) in this group"
    return GroupDeleted(
        group=GroupRead.model_validate(group),
        unlinked_feeds=unlinked,
        warning=warning,
    )


@router.post("/{title}/feeds", response_model=GroupFeedLinked)
async def add_feed_to_group(title: str, body: GroupFeedAdd, manager: ManagerDep) -> GroupFeedLinked:
    feed, group, created = await manager.add_feed_to_group(body.feed_id, title)
    return GroupFeedLinked(feed_id=feed.id, group=group.title, created=created)
