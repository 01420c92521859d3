from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from ai_daily_digest.core.api_config import ApiConfigStore
from ai_daily_digest.core.config import DB_PATH, TRANSLATE_PREWARM_ENABLED
from ai_daily_digest.processing.highlights import HighlightSynthesizer
from ai_daily_digest.processing.llm_client import AIGateway
from ai_daily_digest.processing.pipeline import DigestOrchestrator
from ai_daily_digest.processing.scoring import ScoringEngine
from ai_daily_digest.processing.state import GenerationTracker, TranslateTracker
from ai_daily_digest.processing.summarize import SummarizationEngine
from ai_daily_digest.scheduling import DigestScheduler
from ai_daily_digest.scrapers.article_fetcher import ArticleFetcher
from ai_daily_digest.scrapers.feed_fetcher import FeedFetcher
from ai_daily_digest.storage import DigestRepository, JsonFileStore, RssSourceRepository, TranslationCache
from ai_daily_digest.translation.service import TranslationService


@dataclass
class AppContext:
    """Everything a running process shares. Built once at startup."""

    store: JsonFileStore
    config_store: ApiConfigStore
    digests: DigestRepository
    translations: TranslationCache
    rss_sources: RssSourceRepository
    gateway: AIGateway
    feed_fetcher: FeedFetcher
    translator: TranslationService
    generation: GenerationTracker
    translate_tracker: TranslateTracker
    orchestrator: DigestOrchestrator
    scheduler: DigestScheduler

    @classmethod
    def build(
        cls,
        *,
        store: JsonFileStore | None = None,
        config_store: ApiConfigStore | None = None,
        gateway: AIGateway | None = None,
        feed_fetcher: FeedFetcher | None = None,
        article_fetcher: ArticleFetcher | None = None,
        prewarm_enabled: bool = TRANSLATE_PREWARM_ENABLED,
    ) -> "AppContext":
        store = store if store is not None else JsonFileStore(DB_PATH)
        config_store = config_store or ApiConfigStore()
        gateway = gateway or AIGateway()
        feed_fetcher = feed_fetcher or FeedFetcher()

        digests = DigestRepository(store)
        translations = TranslationCache(store)
        rss_sources = RssSourceRepository(store)
        generation = GenerationTracker()
        translate_tracker = TranslateTracker()
        translator = TranslationService(gateway, translations, fetcher=article_fetcher)
        orchestrator = DigestOrchestrator(
            fetcher=feed_fetcher,
            scorer=ScoringEngine(gateway),
            summarizer=SummarizationEngine(gateway),
            highlighter=HighlightSynthesizer(gateway),
            digests=digests,
            rss_sources=rss_sources,
            generation=generation,
            translator=translator,
            translate_tracker=translate_tracker,
            prewarm_enabled=prewarm_enabled,
        )
        return cls(
            store=store,
            config_store=config_store,
            digests=digests,
            translations=translations,
            rss_sources=rss_sources,
            gateway=gateway,
            feed_fetcher=feed_fetcher,
            translator=translator,
            generation=generation,
            translate_tracker=translate_tracker,
            orchestrator=orchestrator,
            scheduler=DigestScheduler(orchestrator, config_store),
        )

    @classmethod
    def in_memory(cls, data_dir: Path | str, **kwargs) -> "AppContext":
        """Memory-backed store with the API config kept under `data_dir`."""
        return cls.build(
            store=JsonFileStore(None),
            config_store=ApiConfigStore(Path(data_dir) / "api_config.json"),
            **kwargs,
        )
