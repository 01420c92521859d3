import asyncio
import json

from ai_daily_digest.processing.llm_client import AIHTTPError, ApiOptions
from ai_daily_digest.processing.state import TranslateTracker
from ai_daily_digest.scrapers.article_fetcher import FetchMeta, FetchResult
from ai_daily_digest.storage import JsonFileStore, TranslationCache
from ai_daily_digest.translation.service import NO_CONTENT_ERROR, TranslationConfig, TranslationService

URL = "https://example.com/post"
REPLY = "TITLE_ZH: 标题\nSUMMARY_ZH: 摘要\n---CONTENT---\n译文正文"
LONG_TEXT = "The quick brown fox jumps over the lazy dog. " * 40


class _Gateway:
    def __init__(self, reply: str = REPLY, deltas=(), error=None, stream_error=None, batch_reply=None) -> None:
        self.reply = reply
        self.deltas = list(deltas)
        self.error = error
        self.stream_error = stream_error
        self.batch_reply = batch_reply
        self.prompts: list[str] = []
        self.stream_prompts: list[str] = []

    async def complete(self, prompt: str, api_key: str, options: ApiOptions | None = None) -> str:
        self.prompts.append(prompt)
        if prompt.startswith("Translate the following article excerpts") and self.batch_reply is not None:
            if isinstance(self.batch_reply, Exception):
                raise self.batch_reply
            return self.batch_reply
        if self.error is not None:
            raise self.error
        return self.reply

    async def stream(self, prompt: str, api_key: str, options: ApiOptions | None = None):
        self.stream_prompts.append(prompt)
        for delta in self.deltas:
            yield delta
        if self.stream_error is not None:
            raise self.stream_error


class _Fetcher:
    def __init__(self, text: str = LONG_TEXT[:600]) -> None:
        self.text = text
        self.urls: list[str] = []

    async def fetch(self, url: str) -> FetchResult:
        self.urls.append(url)
        meta = FetchMeta(requested_url=url, final_url=url, status=200, html_len=len(self.text), extractor="body")
        return FetchResult(text=self.text, meta=meta)


async def _no_sleep(_: float) -> None:
    return None


def _build_service(gateway: _Gateway, fetcher: _Fetcher | None = None, **config) -> TranslationService:
    return TranslationService(
        gateway,
        TranslationCache(JsonFileStore(None)),
        fetcher=fetcher or _Fetcher(),
        config=TranslationConfig(**config),
        sleep=_no_sleep,
    )


def _collect(service: TranslationService, url: str = URL) -> list:
    async def _run() -> list:
        return [event async for event in service.translate_stream(url, "Title", "feed description", "k", ApiOptions())]

    return asyncio.run(_run())


def test_translate_caches_and_serves_from_cache() -> None:
    gateway = _Gateway()
    service = _build_service(gateway)
    first = asyncio.run(service.translate(URL, "Title", "", "k", ApiOptions()))
    second = asyncio.run(service.translate(URL, "Title", "", "k", ApiOptions()))
    assert first == {"ok": True, "url": URL, "titleZh": "标题", "summary": "摘要", "content": "译文正文", "cached": False}
    assert second["cached"] is True
    assert len(gateway.prompts) == 1
    assert service.cache.get(URL)["content"] == "译文正文"


def test_short_page_falls_back_to_feed_description() -> None:
    gateway = _Gateway()
    service = _build_service(gateway, _Fetcher(text="Subscribe to continue"))
    asyncio.run(service.translate(URL, "Title", "The RSS description of the post", "k", ApiOptions()))
    assert "The RSS description of the post" in gateway.prompts[0]
    assert "Subscribe to continue" not in gateway.prompts[0]


def test_long_content_is_truncated_before_the_call() -> None:
    gateway = _Gateway()
    service = _build_service(gateway, _Fetcher(text="x" * 5000), max_chars=1000)
    asyncio.run(service.translate(URL, "Title", "", "k", ApiOptions()))
    assert "[... middle section omitted ...]" in gateway.prompts[0]
    assert "x" * 1001 not in gateway.prompts[0]


def test_no_content_is_an_error_result() -> None:
    gateway = _Gateway()
    result = asyncio.run(_build_service(gateway, _Fetcher(text="")).translate(URL, "Title", "", "k", ApiOptions()))
    assert result == {"ok": False, "error": NO_CONTENT_ERROR}
    assert gateway.prompts == []


def test_ai_failure_is_not_cached() -> None:
    service = _build_service(_Gateway(error=AIHTTPError(401, "bad key")))
    result = asyncio.run(service.translate(URL, "Title", "", "k", ApiOptions()))
    assert result["ok"] is False
    assert "401" in result["error"]
    assert service.cache.get(URL) is None


def test_retranslate_replaces_cached_entry() -> None:
    gateway = _Gateway()
    service = _build_service(gateway)
    service.cache.save(URL, title_zh="旧标题", summary="旧", content="旧正文")
    result = asyncio.run(service.retranslate(URL, "Title", "", "k", ApiOptions()))
    assert result["titleZh"] == "标题"
    assert result["cached"] is False
    assert len(gateway.prompts) == 1


def test_cached_status_lists_ready_urls() -> None:
    service = _build_service(_Gateway())
    service.cache.save(URL, title_zh="标题", summary="摘要", content="正文")
    status = service.cached_status([URL, "https://example.com/other"])
    assert list(status) == [URL]
    assert status[URL]["ready"] is True


def test_stream_replays_cache_in_chunks() -> None:
    gateway = _Gateway()
    service = _build_service(gateway, replay_chunk_chars=4)
    service.cache.save(URL, title_zh="标题", summary="摘要", content="0123456789")
    events = _collect(service)
    assert [e.event for e in events] == ["status", "meta", "chunk", "chunk", "chunk", "done"]
    assert events[0].data == {"stage": "cached"}
    assert [e.data["text"] for e in events if e.event == "chunk"] == ["0123", "4567", "89"]
    assert gateway.prompts == [] and gateway.stream_prompts == []


def test_stream_short_content_uses_single_call() -> None:
    gateway = _Gateway()
    events = _collect(_build_service(gateway, _Fetcher(text=LONG_TEXT[:600])))
    assert [e.event for e in events] == ["status", "status", "meta", "chunk", "done"]
    assert events[1].data == {"stage": "translating"}
    assert len(gateway.prompts) == 1
    assert gateway.stream_prompts == []


def test_stream_long_content_streams_and_caches() -> None:
    deltas = ["TITLE_ZH: 狐", "狸\nSUMMARY_ZH: 一只狐狸\n---CON", "TENT---\n第一段", "，第二段"]
    gateway = _Gateway(deltas=deltas)
    service = _build_service(gateway, _Fetcher(text=LONG_TEXT))
    events = _collect(service)
    assert [e.event for e in events] == ["status", "status", "meta", "chunk", "chunk", "done"]
    assert events[2].data == {"titleZh": "狐狸", "summary": "一只狐狸"}
    assert service.cache.get(URL)["content"] == "第一段，第二段"


def test_stream_failure_emits_error_and_skips_cache() -> None:
    gateway = _Gateway(deltas=["TITLE_ZH: 狐狸\n"], stream_error=AIHTTPError(500, "boom"))
    service = _build_service(gateway, _Fetcher(text=LONG_TEXT))
    events = _collect(service)
    assert events[-1].event == "error"
    assert service.cache.get(URL) is None


def test_stream_no_content_emits_error() -> None:
    events = _collect(_build_service(_Gateway(), _Fetcher(text="")))
    assert [e.event for e in events] == ["status", "error"]
    assert events[-1].data == {"error": NO_CONTENT_ERROR}


def test_batch_translate_skips_cached_urls() -> None:
    reply = json.dumps([{"index": 0, "titleZh": "二", "summary": "摘要二", "content": "内容二"}])
    gateway = _Gateway(batch_reply=reply)
    service = _build_service(gateway)
    service.cache.save("https://example.com/1", title_zh="一", summary="", content="")
    items = [
        {"url": "https://example.com/1", "title": "One", "desc": "first"},
        {"url": "https://example.com/2", "title": "Two", "desc": "second"},
    ]
    assert asyncio.run(service.batch_translate(items, "k", ApiOptions())) == 1
    assert "Index 0: Two" in gateway.prompts[0]
    assert "One" not in gateway.prompts[0]
    assert service.cache.get("https://example.com/2")["titleZh"] == "二"


def test_prewarm_falls_back_to_single_translation() -> None:
    gateway = _Gateway(batch_reply=AIHTTPError(500, "overloaded"))
    service = _build_service(gateway, batch_size=2)
    tracker = TranslateTracker()
    seen: list = []
    tracker.subscribe(seen.append)
    articles = [{"link": f"https://example.com/{i}", "title": f"T{i}", "description": f"d{i}"} for i in range(3)]

    asyncio.run(service.prewarm(articles, "k", ApiOptions(), tracker))

    assert all(service.cache.get(a["link"]) is not None for a in articles)
    assert tracker.state.running is False
    assert tracker.state.done == 3
    assert seen[0].running is True and seen[0].total == 3
