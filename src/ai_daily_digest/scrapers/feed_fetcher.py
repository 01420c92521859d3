from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import httpx

from ai_daily_digest.core.config import (
    FEED_CONCURRENCY,
    FEED_MAX_RETRIES,
    FEED_PROBE_TIMEOUT_SEC,
    FEED_RETRY_BACKOFF_SEC,
    FEED_TIMEOUT_SEC,
    FEED_USER_AGENT,
)
from ai_daily_digest.models import Article, FeedSource
from ai_daily_digest.scrapers.feed_parser import parse_feed_items

logger = logging.getLogger(__name__)

FEED_ACCEPT = "application/rss+xml, application/atom+xml, application/xml, text/xml, */*"

ProgressFunc = Callable[[int, int, int, int], None]


class FeedFetchError(Exception):
    def __init__(self, feed_name: str, message: str) -> None:
        super().__init__(f"{feed_name}: {message}")
        self.feed_name = feed_name


@dataclass(frozen=True)
class FeedFetcherConfig:
    concurrency: int = FEED_CONCURRENCY
    timeout_sec: float = FEED_TIMEOUT_SEC
    max_retries: int = FEED_MAX_RETRIES
    retry_backoff_sec: float = FEED_RETRY_BACKOFF_SEC
    user_agent: str = FEED_USER_AGENT


@dataclass(frozen=True)
class FetchAllResult:
    articles: list[Article]
    success_count: int
    fail_count: int
    failed_feeds: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ProbeResult:
    ok: bool
    error: str = ""
    status: int = 0


class FeedFetcher:
    def __init__(
        self,
        config: FeedFetcherConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._config = config or FeedFetcherConfig()
        self._transport = transport
        self._sleep = sleep

    def _headers(self) -> dict[str, str]:
        return {"User-Agent": self._config.user_agent, "Accept": FEED_ACCEPT}

    async def _fetch_once(self, client: httpx.AsyncClient, feed: FeedSource) -> list[Article]:
        try:
            response = await asyncio.wait_for(
                client.get(feed["xmlUrl"], headers=self._headers()),
                timeout=self._config.timeout_sec,
            )
        except (TimeoutError, httpx.TimeoutException) as exc:
            raise FeedFetchError(feed["name"], "timeout") from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise FeedFetchError(feed["name"], str(exc) or type(exc).__name__) from exc
        if response.status_code >= 400:
            raise FeedFetchError(feed["name"], f"HTTP {response.status_code}")
        return [
            {
                "title": item["title"],
                "link": item["link"],
                "pubDate": item["pubDate"],
                "description": item["description"],
                "sourceName": feed["name"],
                "sourceUrl": feed.get("htmlUrl") or "",
            }
            for item in parse_feed_items(response.content)
        ]

    async def fetch_feed(self, client: httpx.AsyncClient, feed: FeedSource) -> list[Article] | None:
        """Fetch one feed with retries. `None` means the feed failed for good."""
        attempts = self._config.max_retries + 1
        for attempt in range(attempts):
            try:
                return await self._fetch_once(client, feed)
            except FeedFetchError as exc:
                if attempt < attempts - 1:
                    await self._sleep(self._config.retry_backoff_sec * (attempt + 1))
                    continue
                logger.warning("Feed %s failed after %d attempts: %s", feed["name"], attempt + 1, exc)
        return None

    async def fetch_all(self, feeds: list[FeedSource], on_progress: ProgressFunc | None = None) -> FetchAllResult:
        articles: list[Article] = []
        failed: list[str] = []
        ok = 0
        total = len(feeds)
        width = max(1, self._config.concurrency)
        async with httpx.AsyncClient(
            transport=self._transport,
            timeout=httpx.Timeout(self._config.timeout_sec),
            follow_redirects=True,
        ) as client:
            for start in range(0, total, width):
                window = feeds[start : start + width]
                results = await asyncio.gather(*(self.fetch_feed(client, feed) for feed in window))
                for feed, result in zip(window, results):
                    if result is None:
                        failed.append(feed["name"])
                    else:
                        ok += 1
                        articles.extend(result)
                if on_progress is not None:
                    on_progress(min(start + width, total), total, ok, len(failed))
        return FetchAllResult(articles=articles, success_count=ok, fail_count=len(failed), failed_feeds=failed)

    async def probe_feed(self, url: str, *, timeout_sec: float = FEED_PROBE_TIMEOUT_SEC) -> ProbeResult:
        """Reachability check used when a user adds a custom source."""
        try:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=httpx.Timeout(timeout_sec), follow_redirects=True
            ) as client:
                response = await asyncio.wait_for(client.get(url, headers=self._headers()), timeout=timeout_sec)
        except (TimeoutError, httpx.TimeoutException):
            return ProbeResult(ok=False, error="timeout")
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            return ProbeResult(ok=False, error=str(exc) or "Connection failed")
        if response.status_code >= 400:
            return ProbeResult(ok=False, error=f"HTTP {response.status_code}", status=response.status_code)
        if len(response.content) < 100:
            return ProbeResult(ok=False, error="Response too short", status=response.status_code)
        return ProbeResult(ok=True, status=response.status_code)
