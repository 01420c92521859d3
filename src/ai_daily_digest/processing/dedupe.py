from __future__ import annotations

import datetime

from ai_daily_digest.models import Article
from ai_daily_digest.processing.errors import EmptyWindowError
from ai_daily_digest.utils import normalize_link


def dedupe_articles(articles: list[Article]) -> list[Article]:
    """Drop repeated links, keeping the first occurrence in input order.

    Articles with an empty link have no identity and are dropped.
    """
    seen: set[str] = set()
    unique: list[Article] = []
    for article in articles:
        key = normalize_link(article.get("link", ""))
        if not key or key in seen:
            continue
        seen.add(key)
        unique.append(article)
    return unique


def filter_recent(articles: list[Article], hours: int, now: datetime.datetime) -> list[Article]:
    cutoff = now - datetime.timedelta(hours=hours)
    return [a for a in articles if a["pubDate"] > cutoff]


def apply_recency_window(articles: list[Article], hours: int, now: datetime.datetime) -> list[Article]:
    recent = filter_recent(articles, hours, now)
    if not recent:
        raise EmptyWindowError(hours)
    return recent
