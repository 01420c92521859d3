import asyncio
import datetime
import json
import re

import pytest

from ai_daily_digest.processing.errors import GenerationAlreadyRunning, MissingApiKeyError, NoArticlesError
from ai_daily_digest.processing.highlights import HighlightSynthesizer
from ai_daily_digest.processing.llm_client import ApiOptions
from ai_daily_digest.processing.pipeline import DigestOrchestrator, rank_articles
from ai_daily_digest.processing.scoring import ScoringEngine
from ai_daily_digest.processing.state import GenerationState, GenerationTracker, TranslateTracker
from ai_daily_digest.processing.summarize import SummarizationEngine
from ai_daily_digest.scrapers.feed_fetcher import FetchAllResult
from ai_daily_digest.storage import DigestRepository, JsonFileStore, RssSourceRepository

NOW = datetime.datetime(2024, 5, 3, 12, 0, tzinfo=datetime.timezone.utc)
DATE = "2024-05-03"
_INDEX_RE = re.compile(r"^Index (\d+): \[[^\]]*\] (.+)$", re.MULTILINE)
# relevance per title; quality and timeliness are fixed at 5
_RELEVANCE = {"Rust 2.0": 9, "Kernel notes": 3, "LLM evals": 7}


class _Gateway:
    def __init__(self) -> None:
        self.prompts: list[str] = []

    async def complete(self, prompt: str, api_key: str, options: ApiOptions | None = None) -> str:
        self.prompts.append(prompt)
        if prompt.startswith("You are a technical content curator"):
            results = [
                {"index": int(i), "relevance": _RELEVANCE.get(t, 5), "quality": 5, "timeliness": 5, "category": "tools"}
                for i, t in _INDEX_RE.findall(prompt)
            ]
            return json.dumps({"results": results})
        if prompt.startswith("You are an expert technical summarizer"):
            results = [
                {"index": int(i), "titleZh": f"中文 {t}", "summary": "摘要", "reason": "理由"}
                for i, t in _INDEX_RE.findall(prompt)
            ]
            return json.dumps({"results": results})
        return "今日重点。"


class _Fetcher:
    def __init__(self, articles: list[dict]) -> None:
        self.articles = articles
        self.sources: list = []

    async def fetch_all(self, feeds, on_progress=None) -> FetchAllResult:
        self.sources = list(feeds)
        if on_progress is not None:
            on_progress(len(feeds), len(feeds), len(feeds), 0)
        return FetchAllResult(articles=list(self.articles), success_count=len(feeds), fail_count=0)


class _Translator:
    def __init__(self) -> None:
        self.calls: list = []

    async def prewarm(self, articles, api_key, options, tracker) -> None:
        self.calls.append([a["link"] for a in articles])


def _article(title: str, link: str, hours_ago: float) -> dict:
    return {
        "title": title,
        "link": link,
        "pubDate": NOW - datetime.timedelta(hours=hours_ago),
        "description": f"{title} description",
        "sourceName": "blog",
        "sourceUrl": "https://blog.example.com",
    }


ARTICLES = [
    _article("Kernel notes", "https://x.com/kernel", 3),
    _article("Rust 2.0", "https://x.com/rust", 5),
    _article("Rust 2.0 (dup)", "https://x.com/rust/", 6),
    _article("LLM evals", "https://x.com/llm", 10),
    _article("Old news", "https://x.com/old", 100),
]
FEEDS = [{"name": "blog", "xmlUrl": "https://blog.example.com/rss", "htmlUrl": "https://blog.example.com"}]


def _build(articles=ARTICLES, translator=None, store=None):
    store = store or JsonFileStore(None)
    gateway = _Gateway()
    fetcher = _Fetcher(articles)
    orchestrator = DigestOrchestrator(
        fetcher=fetcher,
        scorer=ScoringEngine(gateway),
        summarizer=SummarizationEngine(gateway),
        highlighter=HighlightSynthesizer(gateway),
        digests=DigestRepository(store, now_provider=lambda: NOW),
        rss_sources=RssSourceRepository(store),
        generation=GenerationTracker(),
        translator=translator,
        translate_tracker=TranslateTracker(),
        default_feeds=FEEDS,
        prewarm_enabled=translator is not None,
        now_provider=lambda: NOW,
    )
    return orchestrator, fetcher, store


def _run(orchestrator: DigestOrchestrator, api_key: str = "sk-test", **kwargs):
    async def _go():
        try:
            return await orchestrator.run_digest_generation(api_key, ApiOptions(), **kwargs)
        finally:
            await orchestrator.drain_background()

    return asyncio.run(_go())


def test_end_to_end_digest() -> None:
    orchestrator, fetcher, store = _build()
    steps: list[str] = []
    orchestrator.generation.subscribe(lambda s: steps.append(s.step))

    digest = _run(orchestrator, hours=48, top_n=2)

    assert fetcher.sources == FEEDS
    assert digest["status"] == "done"
    assert [a["title"] for a in digest["articles"]] == ["Rust 2.0", "LLM evals"]
    first = digest["articles"][0]
    assert first["score"] == 19
    assert first["titleZh"] == "中文 Rust 2.0"
    assert first["pubDate"] == "2024-05-03T07:00:00Z"
    assert digest["highlights"] == "今日重点。"
    assert digest["totalArticles"] == 5
    assert digest["filteredArticles"] == 3
    assert digest["successFeeds"] == 1
    assert digest["hours"] == 48
    assert DigestRepository(store).get(DATE)["status"] == "done"

    state = orchestrator.generation.state
    assert state.running is False
    assert state.step == "done"
    assert state.progress == "Done! Selected 2 articles"
    for step in ("fetching", "filtering", "scoring", "summarizing", "highlights", "done"):
        assert step in steps


def test_rank_articles_is_stable_for_ties() -> None:
    articles = [_article(t, f"https://x.com/{t}", 1) for t in ("a", "b", "c")]
    scores = {0: {"relevance": 5, "quality": 5, "timeliness": 5, "category": "other", "keywords": []}}
    ranked = rank_articles(articles, scores)
    assert [a["title"] for a in ranked] == ["a", "b", "c"]
    assert all(a["score"] == 15 for a in ranked)


def test_second_run_is_rejected_without_side_effects() -> None:
    orchestrator, fetcher, store = _build()
    busy = GenerationState(running=True, step="scoring", progress="Scoring 3 articles...", started_at=NOW)
    orchestrator.generation.replace(busy)

    with pytest.raises(GenerationAlreadyRunning):
        _run(orchestrator)

    assert orchestrator.generation.state is busy
    assert fetcher.sources == []
    assert DigestRepository(store).get(DATE) is None


def test_no_articles_marks_digest_as_error() -> None:
    orchestrator, _, store = _build(articles=[])
    with pytest.raises(NoArticlesError):
        _run(orchestrator)
    digest = DigestRepository(store).get(DATE)
    assert digest["status"] == "error"
    assert digest["errorMessage"] == "No articles were fetched from any feed"
    state = orchestrator.generation.state
    assert state.running is False
    assert state.step == "error"
    assert state.progress == "No articles were fetched from any feed"


def test_empty_window_is_fatal() -> None:
    orchestrator, _, store = _build(articles=[_article("Old news", "https://x.com/old", 100)])
    with pytest.raises(Exception, match="No articles found in the last 48 hours"):
        _run(orchestrator, hours=48)
    assert DigestRepository(store).get(DATE)["status"] == "error"


def test_missing_api_key_is_fatal() -> None:
    orchestrator, fetcher, store = _build()
    with pytest.raises(MissingApiKeyError):
        _run(orchestrator, api_key="")
    assert fetcher.sources == []
    assert DigestRepository(store).get(DATE)["status"] == "error"
    assert orchestrator.running is False


def test_custom_sources_replace_defaults() -> None:
    orchestrator, fetcher, store = _build()
    custom = [{"name": "mine", "xmlUrl": "https://mine.example.com/rss", "htmlUrl": ""}]
    RssSourceRepository(store).save(custom)
    _run(orchestrator)
    assert fetcher.sources == custom


def test_prewarm_runs_after_success() -> None:
    translator = _Translator()
    orchestrator, _, _ = _build(translator=translator)
    _run(orchestrator, top_n=3)
    assert translator.calls == [["https://x.com/rust", "https://x.com/llm", "https://x.com/kernel"]]


def test_begin_claims_the_slot_synchronously() -> None:
    orchestrator, fetcher, _ = _build()
    date = orchestrator.begin()
    assert date == DATE
    assert orchestrator.running is True
    with pytest.raises(GenerationAlreadyRunning):
        orchestrator.begin()

    digest = asyncio.run(orchestrator.run_claimed(date, "sk-test", ApiOptions(), hours=48, top_n=1))
    assert digest["status"] == "done"
    assert orchestrator.running is False
    assert fetcher.sources == FEEDS


def test_rerun_on_same_date_starts_from_a_clean_record() -> None:
    store = JsonFileStore(None)
    failing, _, _ = _build(articles=[], store=store)
    with pytest.raises(NoArticlesError):
        _run(failing)
    repo = DigestRepository(store)
    token = repo.create_share_token(DATE)
    created = repo.get(DATE)["createdAt"]

    succeeding, _, _ = _build(store=store)
    _run(succeeding, top_n=2)
    digest = repo.get(DATE)
    assert digest["status"] == "done"
    assert "errorMessage" not in digest
    assert digest["shareToken"] == token
    assert digest["createdAt"] == created


def test_failed_rerun_drops_previous_articles() -> None:
    store = JsonFileStore(None)
    good, _, _ = _build(store=store)
    _run(good, top_n=2)
    bad, _, _ = _build(articles=[], store=store)
    with pytest.raises(NoArticlesError):
        _run(bad)
    digest = DigestRepository(store).get(DATE)
    assert digest["status"] == "error"
    assert "articles" not in digest
    assert "highlights" not in digest


def test_status_write_failure_keeps_the_run_error(monkeypatch) -> None:
    orchestrator, _, _ = _build(articles=[])

    def _broken(*args, **kwargs):
        raise TypeError("not serializable")

    monkeypatch.setattr(orchestrator._digests, "set_status", _broken)
    with pytest.raises(NoArticlesError):
        _run(orchestrator)
    assert orchestrator.generation.state.step == "error"
