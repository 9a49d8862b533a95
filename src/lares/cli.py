"""Command-line interface for lares.

Usage::

    lares feed list
    lares feed add https://example.com/feed.xml -g news
    lares feed delete 3
    lares feed crawl 3
    lares feed entries 3 -n 20
    lares group list|add NAME|add-feed FEED_ID GROUP|delete NAME|show NAME
    lares crawl-all
    lares server -H 0.0.0.0 -p 4000 -u admin -P secret

Every command opens the database given by ``-d/--database`` (default:
``LARES_DATABASE`` or ``lares.db``), creates missing tables, runs, and
disposes the engine again.

Exit codes:
    0 — Success.
    1 — The command failed (unknown feed or group, fetch error, ...).
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, Optional

from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from lares import __version__
from lares.config.settings import Settings, get_settings
from lares.core.database import build_engine, build_session_factory, create_schema
from lares.core.exceptions import LaresError
from lares.core.logging_config import configure_logging
from lares.core.management import FeedManager
from lares.core.models import Feed
from lares.core.store import Store
from lares.crawler.fetcher import build_http_client
from lares.crawler.pipeline import CrawlOutcome, CrawlPipeline
from lares.crawler.scheduler import CrawlScheduler

console = Console()
err_console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value!r}")
    return number


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lares",
        description="Minimal feed aggregator: subscriptions, groups and a crawl run-loop.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-d",
        "--database",
        default=None,
        help="SQLite file path or SQLAlchemy URL (env: LARES_DATABASE, default: lares.db).",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity (env: LARES_LOG_LEVEL).",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    # ---- feed ----------------------------------------------------------------
    feed = commands.add_parser("feed", help="Manage feeds.")
    feed_commands = feed.add_subparsers(dest="action", required=True)
    feed_commands.add_parser("list", help="List all feeds.")
    add = feed_commands.add_parser("add", help="Subscribe to a feed URL.")
    add.add_argument("url")
    add.add_argument("-g", "--group", default=None, help="Existing group to add the feed to.")
    delete = feed_commands.add_parser("delete", help="Delete a feed and its entries.")
    delete.add_argument("feed_id", type=_positive_int)
    crawl = feed_commands.add_parser("crawl", help="Crawl one feed now.")
    crawl.add_argument("feed_id", type=_positive_int)
    entries = feed_commands.add_parser("entries", help="Show stored entries of a feed.")
    entries.add_argument("feed_id", type=_positive_int)
    entries.add_argument("-n", "--limit", type=_positive_int, default=20)

    # ---- group ---------------------------------------------------------------
    group = commands.add_parser("group", help="Manage groups.")
    group_commands = group.add_subparsers(dest="action", required=True)
    group_commands.add_parser("list", help="List all groups.")
    group_add = group_commands.add_parser("add", help="Create a group.")
    group_add.add_argument("name")
    add_feed = group_commands.add_parser("add-feed", help="Add a feed to a group.")
    add_feed.add_argument("feed_id", type=_positive_int)
    add_feed.add_argument("group")
    group_delete = group_commands.add_parser("delete", help="Delete a group (feeds are kept).")
    group_delete.add_argument("name")
    show = group_commands.add_parser("show", help="List the feeds of a group.")
    show.add_argument("name")

    # ---- crawl-all / server --------------------------------------------------
    commands.add_parser("crawl-all", help="Crawl every due feed once and exit.")
    server = commands.add_parser("server", help="Run the management API and the crawler.")
    server.add_argument("-H", "--host", default=None, help="Bind address (default: 127.0.0.1).")
    server.add_argument("-p", "--port", type=int, default=None, help="Bind port (default: 4000).")
    server.add_argument("-u", "--username", default=None, help="HTTP Basic username.")
    server.add_argument("-P", "--password", default=None, help="HTTP Basic password.")
    return parser


def _load_settings(args: argparse.Namespace) -> Settings:
    overrides: dict[str, Any] = {}
    for field in ("database", "log_level", "host", "port", "username", "password"):
        value = getattr(args, field, None)
        if value is not None:
            overrides[field] = value
    settings = get_settings()
    if not overrides:
        return settings
    # Rebuilt rather than copied so command-line values are validated too.
    return Settings(**{**settings.model_dump(), **overrides})


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def _fmt_time(value: Any) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value is not None else "-"


def _feed_table(feeds: list[Feed], title: str = "Feeds") -> Table:
    table = Table(title=title)
    table.add_column("ID", justify="right")
    table.add_column("Title")
    table.add_column("URL", overflow="fold")
    table.add_column("Last crawled")
    table.add_column("Last error", overflow="fold")
    for feed in feeds:
        table.add_row(
            str(feed.id),
            feed.title,
            feed.url,
            _fmt_time(feed.last_crawled_at),
            feed.last_error or "",
        )
    return table


def _print_outcome(outcome: CrawlOutcome) -> None:
    if outcome.ok:
        console.print(f"feed {outcome.feed_id}: {outcome.new_entries} new entries")
    else:
        console.print(f"feed {outcome.feed_id}: {outcome.status.value} ({outcome.error})", markup=False)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def _feed_command(args: argparse.Namespace, manager: FeedManager) -> None:
    if args.action == "list":
        console.print(_feed_table(await manager.list_feeds()))
    elif args.action == "add":
        feed, group = await manager.add_feed(args.url, group=args.group)
        console.print("Feed added!")
        console.print(str(feed), markup=False)
        if group is not None:
            console.print(f"Added to group {group.title!r}.", markup=False)
    elif args.action == "delete":
        feed = await manager.delete_feed(args.feed_id)
        console.print(f"Feed deleted: {feed}", markup=False)
    elif args.action == "crawl":
        _print_outcome(await manager.crawl_feed(args.feed_id))
    elif args.action == "entries":
        rows = await manager.list_entries(args.feed_id, limit=args.limit)
        table = Table(title=f"Entries of feed {args.feed_id}")
        table.add_column("ID", justify="right")
        table.add_column("Published")
        table.add_column("Title")
        table.add_column("Link", overflow="fold")
        for entry in rows:
            table.add_row(str(entry.id), _fmt_time(entry.published_at), entry.title or "", entry.link or "")
        console.print(table)


async def _group_command(args: argparse.Namespace, manager: FeedManager) -> None:
    if args.action == "list":
        table = Table(title="Groups")
        table.add_column("ID", justify="right")
        table.add_column("Title")
        for group in await manager.list_groups():
            table.add_row(str(group.id), group.title)
        console.print(table)
    elif args.action == "add":
        group = await manager.add_group(args.name)
        console.print(f"Group added: [{group.id}] {group.title}", markup=False)
    elif args.action == "add-feed":
        feed, group, created = await manager.add_feed_to_group(args.feed_id, args.group)
        if created:
            console.print(f"Feed {feed.id} added to group {group.title!r}.", markup=False)
        else:
            console.print(f"Feed {feed.id} is already in group {group.title!r}.", markup=False)
    elif args.action == "delete":
        group, unlinked = await manager.delete_group(args.name)
        if unlinked:
            err_console.print(
                f"warning: there are still {unlinked} feed(s) belonging to this group",
                markup=False,
            )
        console.print(f"Group deleted: {group.title}", markup=False)
    elif args.action == "show":
        group, feeds = await manager.show_group(args.name)
        console.print(_feed_table(feeds, title=f"Group {group.title}"))


def _build_scheduler(settings: Settings, store: Store, pipeline: CrawlPipeline) -> CrawlScheduler:
    return CrawlScheduler(
        store,
        pipeline,
        poll_interval=settings.poll_interval_seconds,
        tick_interval=settings.tick_interval_seconds,
        max_concurrency=settings.max_concurrent_crawls,
    )


async def _crawl_all(settings: Settings, store: Store) -> None:
    async with build_http_client(settings.fetch_timeout_seconds, settings.user_agent) as client:
        scheduler = _build_scheduler(settings, store, CrawlPipeline(store, http_client=client))
        outcomes = await scheduler.run_once()
    if not outcomes:
        console.print("No feeds are due.")
    for outcome in outcomes:
        _print_outcome(outcome)


async def _serve(settings: Settings, store: Store) -> None:
    """Run the management API and the crawl run-loop until either stops.

    When one side finishes (or fails) the other is asked to stop; both are
    awaited before returning and the first exception is re-raised.
    """
    import uvicorn  # noqa: PLC0415

    from lares.api.main import create_app  # noqa: PLC0415

    async with build_http_client(settings.fetch_timeout_seconds, settings.user_agent) as client:
        pipeline = CrawlPipeline(store, http_client=client)
        scheduler = _build_scheduler(settings, store, pipeline)
        manager = FeedManager(store, pipeline=pipeline, http_client=client)
        app = create_app(settings, store=store, scheduler=scheduler, manager=manager)
        server = uvicorn.Server(
            uvicorn.Config(
                app,
                host=settings.host,
                port=settings.port,
                log_config=None,
                log_level=settings.log_level.lower(),
            )
        )

        web_task = asyncio.create_task(server.serve(), name="lares-web")
        crawl_task = asyncio.create_task(scheduler.run(), name="lares-crawler")
        await asyncio.wait({web_task, crawl_task}, return_when=asyncio.FIRST_COMPLETED)

        scheduler.stop()
        server.should_exit = True
        results = await asyncio.gather(web_task, crawl_task, return_exceptions=True)

    for result in results:
        if isinstance(result, BaseException):
            raise result


@asynccontextmanager
async def _open_store(settings: Settings) -> AsyncIterator[Store]:
    engine = build_engine(settings.database_url)
    try:
        await create_schema(engine)
        yield Store(build_session_factory(engine))
    finally:
        await engine.dispose()


async def _run(args: argparse.Namespace, settings: Settings) -> None:
    async with _open_store(settings) as store:
        if args.command == "server":
            await _serve(settings, store)
            return
        if args.command == "crawl-all":
            await _crawl_all(settings, store)
            return

        manager = FeedManager(
            store,
            timeout=settings.fetch_timeout_seconds,
            user_agent=settings.user_agent,
        )
        handlers: dict[str, Callable[[argparse.Namespace, FeedManager], Awaitable[None]]] = {
            "feed": _feed_command,
            "group": _group_command,
        }
        await handlers[args.command](args, manager)


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for the ``lares`` console script."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "server" and (args.username is None) != (args.password is None):
        parser.error("-u/--username and -P/--password must be given together")

    try:
        settings = _load_settings(args)
    except ValidationError as exc:
        err_console.print(f"error: invalid configuration: {exc}", markup=False)
        return 1

    configure_logging(settings.log_level)

    try:
        asyncio.run(_run(args, settings))
    except LaresError as exc:
        err_console.print(f"error: {exc}", markup=False)
        return 1
    except KeyboardInterrupt:
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
