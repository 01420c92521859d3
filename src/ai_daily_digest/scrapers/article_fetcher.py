from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

import httpx

from ai_daily_digest.core.config import (
    TRANSLATE_FETCH_TIMEOUT_SEC,
    TRANSLATE_SELECTOR_MIN_CHARS,
    TRANSLATE_USER_AGENT,
)
from ai_daily_digest.scrapers.article_fetcher_utils import extract_article_content

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ArticleFetcherConfig:
    timeout_sec: float = TRANSLATE_FETCH_TIMEOUT_SEC
    selector_min_chars: int = TRANSLATE_SELECTOR_MIN_CHARS
    user_agent: str = TRANSLATE_USER_AGENT


@dataclass(frozen=True)
class FetchMeta:
    requested_url: str
    final_url: str
    status: int
    html_len: int
    extractor: str
    notes: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class FetchResult:
    text: str
    meta: FetchMeta


class ArticleFetcher:
    """Fetch a web page and pull out the article body. Never raises for network errors."""

    def __init__(
        self,
        config: ArticleFetcherConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config or ArticleFetcherConfig()
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        return {
            "User-Agent": self._config.user_agent,
            "Accept": "text/html,application/xhtml+xml",
            "Accept-Language": "en-US,en;q=0.9",
        }

    async def fetch(self, url: str) -> FetchResult:
        try:
            async with httpx.AsyncClient(
                transport=self._transport,
                timeout=httpx.Timeout(self._config.timeout_sec),
                follow_redirects=True,
            ) as client:
                response = await asyncio.wait_for(
                    client.get(url, headers=self._headers()),
                    timeout=self._config.timeout_sec,
                )
        except (TimeoutError, httpx.TimeoutException):
            logger.warning("Page fetch timed out for %s", url)
            return self._error_result(url, "timeout")
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning("Page fetch failed for %s: %s", url, exc)
            return self._error_result(url, f"request_error:{type(exc).__name__}")

        if response.status_code >= 400:
            return FetchResult(
                text="",
                meta=FetchMeta(
                    requested_url=url,
                    final_url=str(response.url),
                    status=response.status_code,
                    html_len=len(response.content),
                    extractor="none",
                    notes=[f"http_status:{response.status_code}"],
                ),
            )

        html = response.text
        text, extractor = extract_article_content(html, url, min_chars=self._config.selector_min_chars)
        return FetchResult(
            text=text,
            meta=FetchMeta(
                requested_url=url,
                final_url=str(response.url),
                status=response.status_code,
                html_len=len(html),
                extractor=extractor,
            ),
        )

    @staticmethod
    def _error_result(url: str, note: str) -> FetchResult:
        return FetchResult(
            text="",
            meta=FetchMeta(requested_url=url, final_url=url, status=0, html_len=0, extractor="none", notes=[note]),
        )
