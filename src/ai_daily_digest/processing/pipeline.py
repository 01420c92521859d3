from __future__ import annotations

import asyncio
import datetime
import logging
from typing import Any, Callable

from ai_daily_digest.core.config import (
    DEFAULT_HOURS,
    DEFAULT_RSS_FEEDS,
    DEFAULT_TOP_N,
    TRANSLATE_PREWARM_ENABLED,
)
from ai_daily_digest.core.constants import (
    STATUS_DONE,
    STATUS_ERROR,
    STATUS_GENERATING,
    STEP_DONE,
    STEP_ERROR,
    STEP_FETCHING,
    STEP_FILTERING,
    STEP_HIGHLIGHTS,
    STEP_SCORING,
    STEP_SUMMARIZING,
)
from ai_daily_digest.models import Article, Digest, DigestArticle, FeedSource, Score, SummaryResult
from ai_daily_digest.processing.dedupe import apply_recency_window, dedupe_articles
from ai_daily_digest.processing.errors import GenerationAlreadyRunning, MissingApiKeyError, NoArticlesError
from ai_daily_digest.processing.highlights import HighlightSynthesizer
from ai_daily_digest.processing.llm_client import ApiOptions
from ai_daily_digest.processing.scoring import ScoringEngine, fallback_score, total_score
from ai_daily_digest.processing.state import GenerationState, GenerationTracker, TranslateTracker
from ai_daily_digest.processing.summarize import SummarizationEngine, fallback_summary
from ai_daily_digest.scrapers.feed_fetcher import FeedFetcher
from ai_daily_digest.storage import DigestRepository, RssSourceRepository
from ai_daily_digest.translation.service import TranslationService
from ai_daily_digest.utils import isoformat_utc, now_utc

logger = logging.getLogger(__name__)


def rank_articles(articles: list[Article], scores: dict[int, Score]) -> list[Article]:
    """Attach scores and sort by total descending. Ties keep input order."""
    ranked: list[Article] = []
    for index, article in enumerate(articles):
        score = scores.get(index) or fallback_score()
        enriched: Article = {
            **article,
            "score": total_score(score),
            "scoreRelevance": score["relevance"],
            "scoreQuality": score["quality"],
            "scoreTimeliness": score["timeliness"],
            "category": score["category"],
            "keywords": list(score["keywords"]),
        }
        ranked.append(enriched)
    ranked.sort(key=lambda a: a.get("score", 0), reverse=True)
    return ranked


def to_digest_article(article: Article, summary: SummaryResult) -> DigestArticle:
    return {
        "title": article["title"],
        "link": article["link"],
        "pubDate": isoformat_utc(article["pubDate"]),
        "description": article.get("description", ""),
        "sourceName": article.get("sourceName", ""),
        "sourceUrl": article.get("sourceUrl", ""),
        "score": article.get("score", 0),
        "scoreRelevance": article.get("scoreRelevance", 0),
        "scoreQuality": article.get("scoreQuality", 0),
        "scoreTimeliness": article.get("scoreTimeliness", 0),
        "category": article.get("category", "other"),
        "keywords": article.get("keywords", []),
        "titleZh": summary["titleZh"],
        "summary": summary["summary"],
        "reason": summary["reason"],
    }


class DigestOrchestrator:
    """Runs one digest generation at a time and publishes its progress."""

    def __init__(
        self,
        *,
        fetcher: FeedFetcher,
        scorer: ScoringEngine,
        summarizer: SummarizationEngine,
        highlighter: HighlightSynthesizer,
        digests: DigestRepository,
        rss_sources: RssSourceRepository,
        generation: GenerationTracker,
        translator: TranslationService | None = None,
        translate_tracker: TranslateTracker | None = None,
        default_feeds: list[FeedSource] | None = None,
        prewarm_enabled: bool = TRANSLATE_PREWARM_ENABLED,
        now_provider: Callable[[], datetime.datetime] | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._scorer = scorer
        self._summarizer = summarizer
        self._highlighter = highlighter
        self._digests = digests
        self._rss_sources = rss_sources
        self._generation = generation
        self._translator = translator
        self._translate_tracker = translate_tracker or TranslateTracker()
        self._default_feeds = default_feeds if default_feeds is not None else DEFAULT_RSS_FEEDS
        self._prewarm_enabled = prewarm_enabled
        self._now_provider = now_provider or now_utc
        self._background: set[asyncio.Task[Any]] = set()

    @property
    def generation(self) -> GenerationTracker:
        return self._generation

    @property
    def translate_tracker(self) -> TranslateTracker:
        return self._translate_tracker

    @property
    def running(self) -> bool:
        return self._generation.running

    def sources(self) -> list[FeedSource]:
        custom = self._rss_sources.get()
        return custom if custom else list(self._default_feeds)

    def _progress(self, message: str) -> None:
        self._generation.update(progress=message)

    def begin(self) -> str:
        """Claim the single-flight slot without yielding to the loop. Returns the digest date."""
        if self._generation.running:
            raise GenerationAlreadyRunning()
        started = self._now_provider()
        self._generation.replace(
            GenerationState(running=True, step=STEP_FETCHING, progress="Fetching RSS feeds...", started_at=started)
        )
        return started.astimezone(datetime.timezone.utc).date().isoformat()

    async def run_digest_generation(
        self,
        api_key: str,
        options: ApiOptions,
        hours: int = DEFAULT_HOURS,
        top_n: int = DEFAULT_TOP_N,
    ) -> Digest:
        date = self.begin()
        return await self.run_claimed(date, api_key, options, hours, top_n)

    async def run_claimed(
        self,
        date: str,
        api_key: str,
        options: ApiOptions,
        hours: int = DEFAULT_HOURS,
        top_n: int = DEFAULT_TOP_N,
    ) -> Digest:
        """Run the stages for a slot taken with `begin()`."""
        try:
            return await self._run(date, api_key, options, hours, top_n)
        except asyncio.CancelledError:
            self._fail(date, "Generation cancelled")
            raise
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            logger.error("Digest generation for %s failed: %s", date, message)
            self._fail(date, message)
            raise

    def _fail(self, date: str, message: str) -> None:
        self._generation.replace(GenerationState(running=False, step=STEP_ERROR, progress=message))
        try:
            self._digests.set_status(date, STATUS_ERROR, message=message)
        except Exception:
            logger.exception("Could not mark digest %s as failed", date)

    async def _run(self, date: str, api_key: str, options: ApiOptions, hours: int, top_n: int) -> Digest:
        sources = self.sources()
        logger.info("Generating digest %s (%d sources, %dh, top %d)", date, len(sources), hours, top_n)
        self._digests.start(date, {"status": STATUS_GENERATING, "hours": hours, "totalFeeds": len(sources)})
        if not api_key:
            raise MissingApiKeyError()

        fetched = await self._fetcher.fetch_all(
            sources,
            on_progress=lambda done, total, ok, fail: self._progress(
                f"Fetching feeds: {done}/{total} sources ({ok} ok, {fail} failed)"
            ),
        )
        logger.info("Fetched %d articles (%d sources ok)", len(fetched.articles), fetched.success_count)
        if not fetched.articles:
            raise NoArticlesError()

        unique = dedupe_articles(fetched.articles)
        if len(unique) != len(fetched.articles):
            logger.info("Deduped %d -> %d articles", len(fetched.articles), len(unique))

        self._generation.update(step=STEP_FILTERING, progress="Filtering by time window...")
        recent = apply_recency_window(unique, hours, self._now_provider())

        self._generation.update(step=STEP_SCORING, progress=f"Scoring {len(recent)} articles...")
        scores = await self._scorer.score(
            recent,
            api_key,
            options,
            on_progress=lambda done, total: self._progress(f"Scoring: {done}/{total} batches"),
        )
        top = rank_articles(recent, scores)[: max(0, top_n)]

        self._generation.update(step=STEP_SUMMARIZING, progress=f"Summarizing {len(top)} articles...")
        summaries = await self._summarizer.summarize(
            top,
            api_key,
            options,
            on_progress=lambda done, total: self._progress(f"Summarizing: {done}/{total} batches"),
        )
        final = [to_digest_article(a, summaries.get(i) or fallback_summary(a)) for i, a in enumerate(top)]

        self._generation.update(step=STEP_HIGHLIGHTS, progress="Writing today's highlights...")
        highlights = await self._highlighter.synthesize(final, api_key, options)

        digest = self._digests.save(
            date,
            {
                "status": STATUS_DONE,
                "hours": hours,
                "totalFeeds": len(sources),
                "successFeeds": fetched.success_count,
                "totalArticles": len(fetched.articles),
                "filteredArticles": len(recent),
                "highlights": highlights,
                "articles": final,
            },
        )
        self._generation.replace(
            GenerationState(running=False, step=STEP_DONE, progress=f"Done! Selected {len(final)} articles")
        )
        logger.info(
            "Digest %s done: %d sources -> %d -> %d -> %d",
            date,
            fetched.success_count,
            len(fetched.articles),
            len(recent),
            len(final),
        )
        self._schedule_prewarm(final, api_key, options)
        return digest

    def _schedule_prewarm(self, articles: list[DigestArticle], api_key: str, options: ApiOptions) -> None:
        if not self._prewarm_enabled or self._translator is None:
            return
        if self._translate_tracker.state.running:
            logger.info("Pre-translation already running, skipping")
            return
        task = asyncio.create_task(
            self._translator.prewarm(list(articles), api_key, options, self._translate_tracker)
        )
        self._background.add(task)
        task.add_done_callback(self._on_background_done)

    def _on_background_done(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background pre-translation failed: %s", exc)

    async def drain_background(self) -> None:
        """Wait for pre-translation tasks started by earlier runs."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def cancel_background(self) -> None:
        for task in list(self._background):
            task.cancel()
        await self.drain_background()
