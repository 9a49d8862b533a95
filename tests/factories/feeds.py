"""RSS document builders used as respx response bodies."""

from __future__ import annotations

from typing import Optional

FEED_URL = "https://example.com/feed.xml"
SITE_URL = "https://example.com/"


def rss_item(
    guid: Optional[str] = None,
    title: Optional[str] = "An entry",
    link: Optional[str] = None,
    description: Optional[str] = "Entry body.",
    pub_date: Optional[str] = "Sat, 15 Feb 2025 12:30:00 GMT",
) -> str:
    """Return one ``<item>`` element; fields passed as ``None`` are left out."""
    parts = ["<item>"]
    if guid is not None:
        parts.append(f'<guid isPermaLink="false">{guid}</guid>')
    if title is not None:
        parts.append(f"<title>{title}</title>")
    if link is not None:
        parts.append(f"<link>{link}</link>")
    if description is not None:
        parts.append(f"<description>{description}</description>")
    if pub_date is not None:
        parts.append(f"<pubDate>{pub_date}</pubDate>")
    parts.append("</item>")
    return "".join(parts)


def rss_document(
    items: list[str],
    title: Optional[str] = "Example Feed",
    link: Optional[str] = SITE_URL,
    self_link: Optional[str] = None,
) -> bytes:
    """Return an RSS 2.0 document containing *items*."""
    channel = []
    if title is not None:
        channel.append(f"<title>{title}</title>")
    if self_link is not None:
        channel.append(f'<atom:link href="{self_link}" rel="self" type="application/rss+xml"/>')
    if link is not None:
        channel.append(f"<link>{link}</link>")
    channel.append("<description>Test feed</description>")
    channel.extend(items)
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<rss version="2.0" xmlns:atom="http://www.w3.org/2005/Atom">'
        f"<channel>{''.join(channel)}</channel></rss>"
    ).encode("utf-8")


def numbered_items(count: int, prefix: str = "entry") -> list[str]:
    """Return *count* items with guids ``{prefix}-1`` ... ``{prefix}-N``."""
    return [
        rss_item(
            guid=f"{prefix}-{n}",
            title=f"Entry {n}",
            link=f"https://example.com/{prefix}/{n}",
        )
        for n in range(1, count + 1)
    ]
