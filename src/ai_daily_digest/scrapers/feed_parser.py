from __future__ import annotations

import calendar
import datetime
from typing import Any, TypedDict

import feedparser

from ai_daily_digest.core.config import FEED_DESCRIPTION_MAX_CHARS
from ai_daily_digest.utils import EPOCH, clean_text, parse_datetime_utc


class FeedItem(TypedDict):
    title: str
    link: str
    pubDate: datetime.datetime
    description: str


def _entry_link(entry: Any) -> str:
    link = (entry.get("link") or "").strip()
    if link:
        return link
    # RSS items without <link> usually carry the permalink in <guid>
    return (entry.get("id") or "").strip()


def _entry_date(entry: Any) -> datetime.datetime:
    for key in ("published_parsed", "updated_parsed", "created_parsed"):
        parsed = entry.get(key)
        if parsed:
            return datetime.datetime.fromtimestamp(calendar.timegm(parsed), tz=datetime.timezone.utc)
    for key in ("published", "updated", "created"):
        dt = parse_datetime_utc(entry.get(key) or "")
        if dt is not None:
            return dt
    return EPOCH


def _entry_description(entry: Any) -> str:
    raw = entry.get("summary") or ""
    if not raw:
        for content in entry.get("content") or []:
            raw = content.get("value") or ""
            if raw:
                break
    return clean_text(raw)[:FEED_DESCRIPTION_MAX_CHARS]


def parse_feed_items(xml: str | bytes) -> list[FeedItem]:
    """Parse an RSS or Atom document into plain feed items.

    Missing fields become empty strings; missing or unparseable dates become the
    epoch. Entries with neither a title nor a link are skipped. Malformed XML
    yields whatever feedparser could recover, possibly nothing.
    """
    if isinstance(xml, str):
        xml = xml.encode("utf-8")
    parsed = feedparser.parse(xml)
    items: list[FeedItem] = []
    for entry in parsed.entries:
        title = clean_text(entry.get("title") or "")
        link = _entry_link(entry)
        if not title and not link:
            continue
        items.append(
            {
                "title": title,
                "link": link,
                "pubDate": _entry_date(entry),
                "description": _entry_description(entry),
            }
        )
    return items
