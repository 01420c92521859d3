from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable

from ai_daily_digest.core.config import (
    TARGET_LANGUAGE,
    TRANSLATE_BATCH_DELAY_SEC,
    TRANSLATE_BATCH_SIZE,
    TRANSLATE_HEAD_RATIO,
    TRANSLATE_MAX_CHARS,
    TRANSLATE_MIN_CONTENT_CHARS,
    TRANSLATE_REPLAY_CHUNK_CHARS,
    TRANSLATE_SINGLE_DELAY_SEC,
    TRANSLATE_STREAM_MIN_CHARS,
    TRANSLATE_TAIL_RATIO,
)
from ai_daily_digest.models import TranslateResult, Translation
from ai_daily_digest.processing.llm_client import AIError, AIGateway, ApiOptions, JSONExtractError, extract_json
from ai_daily_digest.processing.prompts.digest_prompt import build_batch_translate_prompt, build_translate_prompt
from ai_daily_digest.processing.scoring import coerce_index
from ai_daily_digest.processing.state import TranslateState, TranslateTracker
from ai_daily_digest.scrapers.article_fetcher import ArticleFetcher
from ai_daily_digest.storage import TranslationCache
from ai_daily_digest.translation.stream_parser import (
    StreamEvent,
    TranslationFormatError,
    TranslationStreamParser,
    parse_translation_text,
)
from ai_daily_digest.utils import smart_truncate

logger = logging.getLogger(__name__)

NO_CONTENT_ERROR = "Could not fetch the article content; the site may require login or block scraping"


@dataclass(frozen=True)
class TranslationConfig:
    max_chars: int = TRANSLATE_MAX_CHARS
    head_ratio: float = TRANSLATE_HEAD_RATIO
    tail_ratio: float = TRANSLATE_TAIL_RATIO
    min_content_chars: int = TRANSLATE_MIN_CONTENT_CHARS
    stream_min_chars: int = TRANSLATE_STREAM_MIN_CHARS
    replay_chunk_chars: int = TRANSLATE_REPLAY_CHUNK_CHARS
    batch_size: int = TRANSLATE_BATCH_SIZE
    batch_delay_sec: float = TRANSLATE_BATCH_DELAY_SEC
    single_delay_sec: float = TRANSLATE_SINGLE_DELAY_SEC
    language: str = TARGET_LANGUAGE


def _ok_result(entry: Translation, *, cached: bool) -> TranslateResult:
    return {
        "ok": True,
        "url": entry["url"],
        "titleZh": entry["titleZh"],
        "summary": entry["summary"],
        "content": entry["content"],
        "cached": cached,
    }


def _split(text: str, size: int) -> list[str]:
    size = max(1, size)
    return [text[i : i + size] for i in range(0, len(text), size)]


class TranslationService:
    def __init__(
        self,
        gateway: AIGateway,
        cache: TranslationCache,
        *,
        fetcher: ArticleFetcher | None = None,
        config: TranslationConfig | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._gateway = gateway
        self._cache = cache
        self._fetcher = fetcher or ArticleFetcher()
        self._config = config or TranslationConfig()
        self._sleep = sleep

    @property
    def cache(self) -> TranslationCache:
        return self._cache

    async def load_content(self, url: str, fallback_description: str = "") -> str:
        """Page text, or the feed description when the page gives too little."""
        fetched = await self._fetcher.fetch(url)
        text = fetched.text
        if len(text) < self._config.min_content_chars and fallback_description:
            text = fallback_description
        return smart_truncate(
            text,
            self._config.max_chars,
            head_ratio=self._config.head_ratio,
            tail_ratio=self._config.tail_ratio,
        )

    async def translate(
        self,
        url: str,
        title: str,
        fallback_description: str,
        api_key: str,
        options: ApiOptions,
    ) -> TranslateResult:
        cached = self._cache.get(url)
        if cached is not None:
            return _ok_result(cached, cached=True)
        content = await self.load_content(url, fallback_description)
        if not content:
            return {"ok": False, "error": NO_CONTENT_ERROR}
        return await self._translate_content(url, title, content, api_key, options)

    async def _translate_content(
        self,
        url: str,
        title: str,
        content: str,
        api_key: str,
        options: ApiOptions,
    ) -> TranslateResult:
        prompt = build_translate_prompt(title, content, url, language=self._config.language)
        try:
            reply = await self._gateway.complete(prompt, api_key, options)
            parsed = parse_translation_text(reply)
        except (AIError, TranslationFormatError) as exc:
            logger.error("Translation failed for %s: %s", url, exc)
            return {"ok": False, "error": f"Translation failed: {exc}"}
        entry = self._cache.save(
            url,
            title_zh=parsed.title_zh or title,
            summary=parsed.summary,
            content=parsed.content,
        )
        return _ok_result(entry, cached=False)

    async def retranslate(
        self,
        url: str,
        title: str,
        fallback_description: str,
        api_key: str,
        options: ApiOptions,
    ) -> TranslateResult:
        self._cache.delete(url)
        return await self.translate(url, title, fallback_description, api_key, options)

    def cached_status(self, urls: list[str]) -> dict[str, dict[str, Any]]:
        return {
            url: {
                "ok": True,
                "ready": True,
                "url": url,
                "titleZh": entry["titleZh"],
                "summary": entry["summary"],
                "content": entry.get("content") or "",
            }
            for url, entry in self._cache.get_many(urls).items()
        }

    async def translate_stream(
        self,
        url: str,
        title: str,
        fallback_description: str,
        api_key: str,
        options: ApiOptions,
    ) -> AsyncIterator[StreamEvent]:
        """Translation as status/meta/chunk/done/error events."""
        cached = self._cache.get(url)
        if cached is not None:
            yield StreamEvent("status", {"stage": "cached"})
            yield StreamEvent("meta", {"titleZh": cached["titleZh"], "summary": cached["summary"], "cached": True})
            for piece in _split(cached["content"], self._config.replay_chunk_chars):
                yield StreamEvent("chunk", {"text": piece})
            yield StreamEvent("done", {"url": url, "cached": True})
            return

        yield StreamEvent("status", {"stage": "fetching"})
        content = await self.load_content(url, fallback_description)
        if not content:
            yield StreamEvent("error", {"error": NO_CONTENT_ERROR})
            return

        if len(content) < self._config.stream_min_chars:
            yield StreamEvent("status", {"stage": "translating"})
            result = await self._translate_content(url, title, content, api_key, options)
            if not result["ok"]:
                yield StreamEvent("error", {"error": result.get("error", "")})
                return
            yield StreamEvent("meta", {"titleZh": result["titleZh"], "summary": result["summary"], "cached": False})
            yield StreamEvent("chunk", {"text": result["content"]})
            yield StreamEvent("done", {"url": url, "cached": False})
            return

        yield StreamEvent("status", {"stage": "streaming"})
        parser = TranslationStreamParser()
        prompt = build_translate_prompt(title, content, url, language=self._config.language)
        try:
            async for delta in self._gateway.stream(prompt, api_key, options):
                for event in parser.feed(delta):
                    yield event
        except AIError as exc:
            logger.error("Streaming translation failed for %s: %s", url, exc)
            yield StreamEvent("error", {"error": f"Translation failed: {exc}"})
            return

        events, parsed = parser.finish()
        for event in events:
            yield event
        if not parsed.content:
            yield StreamEvent("error", {"error": "Translation failed: empty reply"})
            return
        self._cache.save(url, title_zh=parsed.title_zh or title, summary=parsed.summary, content=parsed.content)
        yield StreamEvent("done", {"url": url, "cached": False})

    async def batch_translate(self, items: list[dict[str, str]], api_key: str, options: ApiOptions) -> int:
        """Translate several feed descriptions in one call; returns how many were cached.

        Raises when the call fails or nothing usable comes back, so callers can
        fall back to per-article translation.
        """
        pending = [item for item in items if item.get("url") and self._cache.get(item["url"]) is None]
        if not pending:
            return 0
        prompt = build_batch_translate_prompt(pending, language=self._config.language)
        reply = await self._gateway.complete(prompt, api_key, options)
        payload = extract_json(reply)
        if isinstance(payload, dict):
            payload = payload.get("results")
        if not isinstance(payload, list):
            raise JSONExtractError("batch translation reply is not an array")

        saved = 0
        for position, raw in enumerate(payload):
            if not isinstance(raw, dict):
                continue
            index = coerce_index(raw.get("index"))
            if index is None:
                index = position
            if not 0 <= index < len(pending):
                continue
            title_zh = str(raw.get("titleZh") or "").strip()
            body = str(raw.get("content") or "").strip()
            if not title_zh and not body:
                continue
            item = pending[index]
            self._cache.save(
                item["url"],
                title_zh=title_zh or item.get("title", ""),
                summary=str(raw.get("summary") or "").strip(),
                content=body,
            )
            saved += 1
        if saved == 0:
            raise TranslationFormatError("batch translation produced no usable entries")
        return saved

    async def prewarm(
        self,
        articles: list[dict[str, Any]],
        api_key: str,
        options: ApiOptions,
        tracker: TranslateTracker,
    ) -> None:
        """Background sweep filling the cache for a finished digest. Best effort."""
        items = [
            {
                "url": article.get("link") or "",
                "title": article.get("title") or "",
                "desc": article.get("description") or article.get("summary") or "",
            }
            for article in articles
            if article.get("link")
        ]
        total = len(items)
        size = max(1, self._config.batch_size)
        logger.info("Pre-translating %d articles in batches of %d", total, size)
        tracker.replace(TranslateState(running=True, total=total, done=0, current=""))
        try:
            for start in range(0, total, size):
                group = items[start : start + size]
                tracker.update(current=group[0]["title"])
                try:
                    await self.batch_translate(group, api_key, options)
                except Exception as exc:
                    logger.warning("Batch translation failed, retrying one by one: %s", exc)
                    await self._translate_individually(group, api_key, options, tracker)
                tracker.update(done=min(start + size, total))
                if start + size < total:
                    await self._sleep(self._config.batch_delay_sec)
        finally:
            tracker.update(running=False, current="")
        logger.info("Pre-translation complete")

    async def _translate_individually(
        self,
        group: list[dict[str, str]],
        api_key: str,
        options: ApiOptions,
        tracker: TranslateTracker,
    ) -> None:
        for item in group:
            if self._cache.get(item["url"]) is not None:
                continue
            tracker.update(current=item["title"])
            result = await self.translate(item["url"], item["title"], item["desc"], api_key, options)
            if not result["ok"]:
                logger.warning("Single translation failed (%.50s): %s", item["url"], result.get("error"))
            await self._sleep(self._config.single_delay_sec)
