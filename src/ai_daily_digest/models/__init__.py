"""Typed models for feeds, articles, digests and translations."""

from .digest import (
    Article,
    Digest,
    DigestArticle,
    FeedSource,
    Score,
    ScheduleEntry,
    StoredApiConfig,
    SummaryResult,
    TranslateResult,
    Translation,
)

__all__ = [
    "Article",
    "Digest",
    "DigestArticle",
    "FeedSource",
    "Score",
    "ScheduleEntry",
    "StoredApiConfig",
    "SummaryResult",
    "TranslateResult",
    "Translation",
]
