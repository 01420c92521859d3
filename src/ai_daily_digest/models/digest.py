from __future__ import annotations

import datetime
from typing import NotRequired, TypedDict


class FeedSource(TypedDict):
    name: str
    xmlUrl: str
    htmlUrl: str


class Score(TypedDict):
    relevance: int
    quality: int
    timeliness: int
    category: str
    keywords: list[str]


class SummaryResult(TypedDict):
    titleZh: str
    summary: str
    reason: str


class Article(TypedDict):
    title: str
    link: str
    pubDate: datetime.datetime
    description: str
    sourceName: str
    sourceUrl: str
    score: NotRequired[int]
    scoreRelevance: NotRequired[int]
    scoreQuality: NotRequired[int]
    scoreTimeliness: NotRequired[int]
    category: NotRequired[str]
    keywords: NotRequired[list[str]]
    titleZh: NotRequired[str]
    summary: NotRequired[str]
    reason: NotRequired[str]


class DigestArticle(TypedDict):
    title: str
    link: str
    pubDate: str
    description: str
    sourceName: str
    sourceUrl: str
    score: int
    scoreRelevance: int
    scoreQuality: int
    scoreTimeliness: int
    category: str
    keywords: list[str]
    titleZh: str
    summary: str
    reason: str


class Digest(TypedDict):
    date: str
    status: str
    hours: int
    totalFeeds: int
    successFeeds: int
    totalArticles: int
    filteredArticles: int
    highlights: str
    articles: list[DigestArticle]
    createdAt: str
    updatedAt: str
    shareToken: NotRequired[str]
    errorMessage: NotRequired[str]


class Translation(TypedDict):
    url: str
    titleZh: str
    summary: str
    content: str
    createdAt: str


class TranslateResult(TypedDict):
    ok: bool
    url: NotRequired[str]
    titleZh: NotRequired[str]
    summary: NotRequired[str]
    content: NotRequired[str]
    cached: NotRequired[bool]
    error: NotRequired[str]


class ScheduleEntry(TypedDict):
    hour: int
    minute: int
    hours: int
    topN: int
    enabled: NotRequired[bool]
    label: NotRequired[str]
    preset: NotRequired[str]
    baseURL: NotRequired[str]
    model: NotRequired[str]


class StoredApiConfig(TypedDict):
    preset: str
    apiKey: str
    baseURL: str
    model: str
    schedules: list[ScheduleEntry]
