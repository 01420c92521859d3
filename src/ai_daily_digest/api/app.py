"""
FastAPI application: digest reads, generation control, settings and translation.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from ai_daily_digest import __version__
from ai_daily_digest.api.schemas import (
    ConfigRequest,
    ConnectionTestRequest,
    GenerateRequest,
    RetranslateRequest,
    RssSourcesRequest,
    RssTestRequest,
    ShareRequest,
    TranslationStatusRequest,
)
from ai_daily_digest.context import AppContext
from ai_daily_digest.core.api_config import normalize_schedule, resolve_api_options
from ai_daily_digest.core.config import (
    DEFAULT_RSS_FEEDS,
    SSE_HEARTBEAT_SEC,
    SSE_QUEUE_SIZE,
    TRANSLATE_RETENTION_DAYS,
)
from ai_daily_digest.core.constants import API_PRESETS, AUTO_PRESET
from ai_daily_digest.models import StoredApiConfig
from ai_daily_digest.processing.errors import GenerationAlreadyRunning
from ai_daily_digest.processing.llm_client import AIError, ApiOptions
from ai_daily_digest.processing.prompts.digest_prompt import CONNECTION_TEST_PROMPT
from ai_daily_digest.processing.state import GenerationState
from ai_daily_digest.translation.stream_parser import StreamEvent
from ai_daily_digest.utils import now_utc

logger = logging.getLogger(__name__)

HEARTBEAT = ": heartbeat\n\n"
SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"}


def _ok(data: Any = None, message: str | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"ok": True}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    return body


def _fail(status_code: int, error: str, message: str = "") -> JSONResponse:
    body: dict[str, Any] = {"ok": False, "error": error}
    if message:
        body["message"] = message
    return JSONResponse(status_code=status_code, content=body)


async def _sse_events(
    queue: asyncio.Queue[str | None],
    request: Request,
    *,
    closed: asyncio.Event | None = None,
    heartbeat_sec: float = SSE_HEARTBEAT_SEC,
) -> AsyncIterator[str]:
    """Drain `queue` as SSE frames. `None` ends the stream; idle gaps get a heartbeat comment."""
    while True:
        if closed is not None and closed.is_set() and queue.empty():
            return
        try:
            async with asyncio.timeout(heartbeat_sec):
                item = await queue.get()
        except TimeoutError:
            if await request.is_disconnected():
                return
            yield HEARTBEAT
            continue
        if item is None:
            return
        yield item


async def _pump(source: AsyncIterator[StreamEvent], queue: asyncio.Queue[str | None]) -> None:
    try:
        async for event in source:
            await queue.put(event.encode())
    except Exception as exc:
        logger.exception("Translation stream crashed: %s", exc)
        await queue.put(StreamEvent("error", {"error": "internal_error"}).encode())
    finally:
        await queue.put(None)


def create_app(context: AppContext | None = None, *, start_scheduler: bool = True) -> FastAPI:
    ctx = context or AppContext.build()
    background: set[asyncio.Task[Any]] = set()

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        ctx.translations.prune(TRANSLATE_RETENTION_DAYS)
        if start_scheduler:
            ctx.scheduler.apply(ctx.config_store.load())
            ctx.scheduler.start()
        try:
            yield
        finally:
            ctx.scheduler.shutdown()
            for task in list(background):
                task.cancel()
            await ctx.orchestrator.cancel_background()

    app = FastAPI(
        title="AI Daily Digest API",
        version=__version__,
        description="Daily tech digest built from RSS feeds with LLM scoring, summaries and translation",
        lifespan=lifespan,
    )
    app.state.context = ctx

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def _validation_error(_: Request, exc: RequestValidationError) -> JSONResponse:
        return _fail(400, "invalid_request", str(exc.errors()[:3]))

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s: %s", request.method, request.url.path, exc)
        return _fail(500, "internal_error")

    def _track(task: asyncio.Task[Any]) -> None:
        background.add(task)
        task.add_done_callback(background.discard)

    # ------------------------------------------------------------------
    # Digests
    # ------------------------------------------------------------------

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {"status": "ok", "as_of": now_utc().isoformat(), "service": "ai-daily-digest"}

    @app.get("/api/digest/latest")
    async def latest_digest():
        digest = ctx.digests.latest_with_articles() or ctx.digests.get()
        if digest is None:
            return _fail(404, "not_found", "No digest yet")
        return _ok(digest)

    @app.get("/api/digest/{date}")
    async def digest_by_date(date: str):
        digest = ctx.digests.get(date)
        if digest is None:
            return _fail(404, "not_found", f"No digest for {date}")
        return _ok(digest)

    @app.get("/api/digests")
    async def list_digests(limit: int = Query(30, ge=1, le=365)):
        return _ok(ctx.digests.list_recent(limit))

    @app.get("/api/stats")
    async def stats():
        data = ctx.digests.stats()
        data["translations"] = ctx.translations.count()
        return _ok(data)

    @app.post("/api/digest/generate")
    async def generate(body: GenerateRequest | None = None):
        body = body or GenerateRequest()
        if ctx.orchestrator.running:
            return _fail(409, "already_running", "A digest is already being generated")
        api_key, options = ctx.config_store.api_options()
        if not api_key:
            return _fail(400, "no_api_key", "Configure an API key first")
        try:
            date = ctx.orchestrator.begin()
        except GenerationAlreadyRunning:
            return _fail(409, "already_running", "A digest is already being generated")

        async def _run() -> None:
            try:
                await ctx.orchestrator.run_claimed(date, api_key, options, hours=body.hours, top_n=body.topN)
            except Exception as exc:
                logger.warning("Digest generation ended with error: %s", exc)

        _track(asyncio.create_task(_run()))
        return _ok({"date": date, "hours": body.hours, "topN": body.topN}, message="Generation started")

    @app.post("/api/digest/share")
    async def share_digest(request: Request, body: ShareRequest | None = None):
        date = body.date if body and body.date else None
        if date is None:
            latest = ctx.digests.latest_with_articles()
            date = latest["date"] if latest else None
        token = ctx.digests.create_share_token(date) if date else None
        if token is None:
            return _fail(404, "not_found", "No digest to share")
        proto = request.headers.get("x-forwarded-proto", request.url.scheme)
        host = request.headers.get("x-forwarded-host") or request.headers.get("host") or request.url.netloc
        return _ok({"token": token, "date": date, "url": f"{proto}://{host}/share/{token}"})

    @app.get("/api/share/{token}")
    async def shared_digest(token: str):
        digest = ctx.digests.get_by_share_token(token)
        if digest is None:
            return _fail(404, "not_found", "Share link is invalid or expired")
        return _ok(digest)

    # ------------------------------------------------------------------
    # Generation status
    # ------------------------------------------------------------------

    @app.get("/api/status")
    async def status():
        return _ok(ctx.generation.state.to_dict())

    @app.get("/api/status/stream")
    async def status_stream(request: Request):
        queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=SSE_QUEUE_SIZE)
        closed = asyncio.Event()

        def _listener(state: GenerationState) -> None:
            try:
                queue.put_nowait(StreamEvent("status", state.to_dict()).encode())
            except asyncio.QueueFull:
                closed.set()
                raise

        queue.put_nowait(StreamEvent("status", ctx.generation.state.to_dict()).encode())
        unsubscribe = ctx.generation.subscribe(_listener)

        async def _events() -> AsyncIterator[str]:
            try:
                async for frame in _sse_events(queue, request, closed=closed):
                    yield frame
            finally:
                unsubscribe()

        return StreamingResponse(_events(), media_type="text/event-stream", headers=SSE_HEADERS)

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    @app.get("/api/config")
    async def get_config():
        return _ok(ctx.config_store.masked())

    @app.post("/api/config")
    async def save_config(body: ConfigRequest):
        preset = body.preset or AUTO_PRESET
        if preset != AUTO_PRESET and preset not in API_PRESETS:
            return _fail(400, "invalid_preset", f"Unknown preset: {preset}")
        existing = ctx.config_store.load()
        api_key = body.apiKey.strip() or (existing["apiKey"] if existing else "")
        if not api_key:
            return _fail(400, "no_api_key", "API key is required")
        config: StoredApiConfig = {
            "preset": preset,
            "apiKey": api_key,
            "baseURL": body.baseURL.strip(),
            "model": body.model.strip(),
            "schedules": [normalize_schedule(s) for s in body.schedules],
        }
        ctx.config_store.save(config)
        jobs = ctx.scheduler.apply(config)
        logger.info("API config saved (preset=%s, %d schedule(s) active)", preset, jobs)
        return _ok(ctx.config_store.masked(), message="Saved")

    @app.get("/api/presets")
    async def presets():
        return _ok(API_PRESETS)

    @app.post("/api/test-connection")
    async def test_connection(body: ConnectionTestRequest):
        stored_key, stored_options = ctx.config_store.api_options()
        api_key = body.apiKey.strip() or stored_key
        if not api_key:
            return _fail(400, "no_api_key", "API key is required")
        if body.apiKey.strip() or body.preset != AUTO_PRESET or body.baseURL or body.model:
            options = resolve_api_options(body.preset, body.baseURL.strip(), body.model.strip())
        else:
            options = stored_options
        try:
            reply = await ctx.gateway.complete(CONNECTION_TEST_PROMPT, api_key, options)
        except AIError as exc:
            return _fail(502, "connection_failed", str(exc))
        if not reply.strip():
            return _fail(502, "connection_failed", "Empty reply from the model")
        return _ok({"reply": reply.strip()[:200]}, message="Connection OK")

    @app.get("/api/rss-sources")
    async def get_rss_sources():
        return _ok({"default": DEFAULT_RSS_FEEDS, "custom": ctx.rss_sources.get()})

    @app.post("/api/rss-sources")
    async def save_rss_sources(body: RssSourcesRequest):
        sources = [
            {"name": s.name.strip(), "xmlUrl": s.xmlUrl.strip(), "htmlUrl": s.htmlUrl.strip()}
            for s in body.sources
        ]
        ctx.rss_sources.save(sources)  # type: ignore[arg-type]
        return _ok({"custom": sources}, message=f"Saved {len(sources)} sources")

    @app.post("/api/rss-sources/test")
    async def test_rss_source(body: RssTestRequest):
        result = await ctx.feed_fetcher.probe_feed(body.url.strip())
        if not result.ok:
            return _fail(502, "feed_unreachable", result.error)
        return _ok({"status": result.status})

    # ------------------------------------------------------------------
    # Translation
    # ------------------------------------------------------------------

    def _translation_key(url: str) -> tuple[str, ApiOptions] | None:
        api_key, options = ctx.config_store.api_options()
        if not api_key and ctx.translations.get(url) is None:
            return None
        return api_key, options

    @app.get("/api/article/translate")
    async def translate_article(
        url: str = Query(..., min_length=1),
        title: str = Query(""),
        desc: str = Query(""),
    ):
        creds = _translation_key(url)
        if creds is None:
            return _fail(400, "no_api_key", "Configure an API key first")
        result = await ctx.translator.translate(url, title, desc, *creds)
        if not result["ok"]:
            return _fail(502, "translation_failed", result.get("error", ""))
        return _ok(result)

    @app.post("/api/article/translations/status")
    async def translations_status(body: TranslationStatusRequest):
        return _ok(ctx.translator.cached_status(body.urls))

    @app.get("/api/translate/progress")
    async def translate_progress():
        return _ok(ctx.translate_tracker.state.to_dict())

    @app.post("/api/article/retranslate")
    async def retranslate_article(body: RetranslateRequest):
        api_key, options = ctx.config_store.api_options()
        if not api_key:
            return _fail(400, "no_api_key", "Configure an API key first")
        result = await ctx.translator.retranslate(body.url, body.title, body.desc, api_key, options)
        if not result["ok"]:
            return _fail(502, "translation_failed", result.get("error", ""))
        return _ok(result)

    @app.get("/api/article/translate/stream")
    async def translate_stream(
        request: Request,
        url: str = Query(..., min_length=1),
        title: str = Query(""),
        desc: str = Query(""),
    ):
        creds = _translation_key(url)
        if creds is None:
            return _fail(400, "no_api_key", "Configure an API key first")
        queue: asyncio.Queue[str | None] = asyncio.Queue()
        producer = asyncio.create_task(_pump(ctx.translator.translate_stream(url, title, desc, *creds), queue))

        async def _events() -> AsyncIterator[str]:
            try:
                async for frame in _sse_events(queue, request):
                    yield frame
            finally:
                if not producer.done():
                    producer.cancel()

        return StreamingResponse(_events(), media_type="text/event-stream", headers=SSE_HEADERS)

    return app
