from __future__ import annotations

import asyncio
import codecs
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Union

import httpx

from ai_daily_digest.core.config import (
    AI_MAX_TOKENS,
    AI_RETRY_DELAYS_SEC,
    AI_STREAM_MAX_TOKENS,
    AI_STREAM_TEMPERATURE,
    AI_TEMPERATURE,
    AI_TIMEOUT_SEC,
)
from ai_daily_digest.core.constants import API_PRESETS, GEMINI_KEY_PREFIX, RETRYABLE_STATUS_CODES

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*\n?|\n?\s*```$")
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")


class AIError(Exception):
    """Base class for AI gateway failures."""


class AITimeoutError(AIError):
    pass


class AIConnectionError(AIError):
    pass


class AIHTTPError(AIError):
    def __init__(self, status_code: int, body: str = "") -> None:
        super().__init__(f"API error ({status_code}): {body[:200]}")
        self.status_code = status_code
        self.body = body


class JSONExtractError(ValueError):
    """Model output did not contain parseable JSON."""


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, (AITimeoutError, AIConnectionError)):
        return True
    if isinstance(exc, AIHTTPError):
        return exc.status_code in RETRYABLE_STATUS_CODES
    return False


# ==========================================
# JSON helpers
# ==========================================


def parse_json(text: str) -> Any:
    """Parse model output that may be wrapped in a Markdown code fence."""
    raw = (text or "").strip()
    if raw.startswith("```"):
        raw = _FENCE_RE.sub("", raw).strip()
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise JSONExtractError(f"invalid JSON: {exc.msg}") from exc


def _extract_json_block(payload: str) -> str | None:
    starts = [i for i in (payload.find("{"), payload.find("[")) if i != -1]
    if not starts:
        return None
    start = min(starts)
    opener = payload[start]
    closer = "}" if opener == "{" else "]"
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(payload)):
        ch = payload[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth == 0:
                return payload[start : i + 1]
    return None


def extract_json(text: str) -> Any:
    """Best-effort JSON recovery from LLM text.

    Tries the whole text (fences stripped), then the first balanced object or
    array, then that block with trailing commas removed. Raises
    `JSONExtractError` when nothing parses.
    """
    try:
        return parse_json(text)
    except JSONExtractError:
        pass
    block = _extract_json_block(text or "")
    if block is None:
        raise JSONExtractError("no JSON object or array found")
    for candidate in (block, _TRAILING_COMMA_RE.sub(r"\1", block)):
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue
    raise JSONExtractError("JSON block could not be repaired")


# ==========================================
# Backends
# ==========================================


@dataclass(frozen=True)
class ApiOptions:
    preset: str | None = None
    base_url: str = ""
    model: str = ""


@dataclass(frozen=True)
class BackendRequest:
    url: str
    headers: dict[str, str]
    body: dict[str, Any]


@dataclass(frozen=True)
class GeminiBackend:
    api_key: str
    base_url: str
    model: str
    kind: str = field(default="gemini", init=False)

    def build_request(self, prompt: str, *, stream: bool = False) -> BackendRequest:
        base = self.base_url.rstrip("/")
        if stream:
            url = f"{base}/models/{self.model}:streamGenerateContent?alt=sse"
            generation = {"temperature": AI_STREAM_TEMPERATURE, "topP": 0.9, "maxOutputTokens": AI_STREAM_MAX_TOKENS}
        else:
            url = f"{base}/models/{self.model}:generateContent"
            generation = {"temperature": AI_TEMPERATURE, "topP": 0.8, "topK": 40}
        return BackendRequest(
            url=url,
            headers={"Content-Type": "application/json", "x-goog-api-key": self.api_key},
            body={"contents": [{"parts": [{"text": prompt}]}], "generationConfig": generation},
        )

    @staticmethod
    def extract_text(payload: dict[str, Any]) -> str:
        try:
            return payload["candidates"][0]["content"]["parts"][0]["text"] or ""
        except (KeyError, IndexError, TypeError):
            return ""

    def extract_delta(self, payload: dict[str, Any]) -> str:
        return self.extract_text(payload)


@dataclass(frozen=True)
class OpenAICompatibleBackend:
    api_key: str
    base_url: str
    model: str
    kind: str = field(default="openai", init=False)

    def build_request(self, prompt: str, *, stream: bool = False) -> BackendRequest:
        body: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": AI_STREAM_TEMPERATURE if stream else AI_TEMPERATURE,
            "max_tokens": AI_STREAM_MAX_TOKENS if stream else AI_MAX_TOKENS,
        }
        if stream:
            body["stream"] = True
        return BackendRequest(
            url=f"{self.base_url.rstrip('/')}/chat/completions",
            headers={"Content-Type": "application/json", "Authorization": f"Bearer {self.api_key}"},
            body=body,
        )

    @staticmethod
    def extract_text(payload: dict[str, Any]) -> str:
        try:
            return payload["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError):
            return ""

    @staticmethod
    def extract_delta(payload: dict[str, Any]) -> str:
        try:
            return payload["choices"][0]["delta"].get("content") or ""
        except (KeyError, IndexError, TypeError, AttributeError):
            return ""


Backend = Union[GeminiBackend, OpenAICompatibleBackend]


def normalize_preset(preset: str | None) -> str | None:
    value = (preset or "").strip().lower()
    if not value or value == "auto":
        return None
    return value


def select_backend(api_key: str, options: ApiOptions) -> Backend:
    """Pick the request shape from the preset, or from the key prefix when unset."""
    preset = normalize_preset(options.preset)
    key = api_key or ""
    if preset == "gemini" or (preset is None and key.startswith(GEMINI_KEY_PREFIX)):
        defaults = API_PRESETS["gemini"]
        return GeminiBackend(
            api_key=key,
            base_url=options.base_url or defaults["baseURL"],
            model=options.model or defaults["model"],
        )
    defaults = API_PRESETS.get(preset or "openai") or {}
    fallback = API_PRESETS["openai"]
    return OpenAICompatibleBackend(
        api_key=key,
        base_url=options.base_url or defaults.get("baseURL") or fallback["baseURL"],
        model=options.model or defaults.get("model") or fallback["model"],
    )


# ==========================================
# SSE framing
# ==========================================


class SSEDecoder:
    """Incremental server-sent-event decoder.

    Bytes go in as they arrive; complete `data:` payloads come out. A trailing
    partial line is held until the next read, and multi-byte characters split
    across reads are reassembled.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""

    def feed(self, chunk: bytes) -> list[str]:
        self._pending += self._decoder.decode(chunk)
        *lines, self._pending = self._pending.split("\n")
        return [payload for payload in map(self._data_payload, lines) if payload is not None]

    def flush(self) -> list[str]:
        tail = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        payload = self._data_payload(tail)
        return [payload] if payload is not None else []

    @staticmethod
    def _data_payload(line: str) -> str | None:
        line = line.strip()
        if not line.startswith("data:"):
            return None
        payload = line[5:].strip()
        if not payload or payload == "[DONE]":
            return None
        return payload


def _deltas(backend: Backend, payloads: list[str]) -> list[str]:
    out = []
    for payload in payloads:
        try:
            data = json.loads(payload)
        except json.JSONDecodeError:
            logger.debug("Skipping malformed stream fragment: %.80s", payload)
            continue
        if not isinstance(data, dict):
            continue
        delta = backend.extract_delta(data)
        if delta:
            out.append(delta)
    return out


# ==========================================
# Gateway
# ==========================================


class AIGateway:
    def __init__(
        self,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = AI_TIMEOUT_SEC,
        retry_delays: tuple[float, ...] = AI_RETRY_DELAYS_SEC,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._transport = transport
        self._timeout = timeout
        self._retry_delays = retry_delays
        self._sleep = sleep

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=httpx.Timeout(self._timeout))

    async def complete(self, prompt: str, api_key: str, options: ApiOptions | None = None) -> str:
        backend = select_backend(api_key, options or ApiOptions())
        attempts = max(1, len(self._retry_delays))
        for attempt in range(attempts):
            try:
                return await self._complete_once(backend, prompt)
            except AIError as exc:
                if not is_retryable(exc) or attempt == attempts - 1:
                    raise
                delay = self._retry_delays[attempt]
                logger.warning(
                    "%s call attempt %d failed: %s. Retrying in %.1fs", backend.kind, attempt + 1, exc, delay
                )
                await self._sleep(delay)
        raise AIError("unreachable")  # pragma: no cover

    async def _complete_once(self, backend: Backend, prompt: str) -> str:
        request = backend.build_request(prompt)
        try:
            async with asyncio.timeout(self._timeout):
                async with self._client() as client:
                    response = await client.post(request.url, headers=request.headers, json=request.body)
        except (TimeoutError, httpx.TimeoutException) as exc:
            raise AITimeoutError(f"{backend.kind} request timed out after {self._timeout:g}s") from exc
        except httpx.InvalidURL as exc:
            raise AIError(f"invalid {backend.kind} endpoint: {exc}") from exc
        except httpx.TransportError as exc:
            raise AIConnectionError(f"{backend.kind} connection failed: {exc}") from exc
        if response.status_code >= 400:
            raise AIHTTPError(response.status_code, response.text)
        try:
            payload = response.json()
        except ValueError as exc:
            raise AIError(f"{backend.kind} returned a non-JSON body") from exc
        return backend.extract_text(payload) if isinstance(payload, dict) else ""

    async def stream(self, prompt: str, api_key: str, options: ApiOptions | None = None) -> AsyncIterator[str]:
        """Yield text increments as they arrive. Not retried."""
        backend = select_backend(api_key, options or ApiOptions())
        request = backend.build_request(prompt, stream=True)
        decoder = SSEDecoder()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._timeout
        try:
            async with self._client() as client:
                async with client.stream("POST", request.url, headers=request.headers, json=request.body) as response:
                    if response.status_code >= 400:
                        body = await response.aread()
                        raise AIHTTPError(response.status_code, body.decode("utf-8", errors="replace"))
                    chunks = response.aiter_bytes()
                    while True:
                        remaining = deadline - loop.time()
                        if remaining <= 0:
                            raise AITimeoutError(f"{backend.kind} stream timed out after {self._timeout:g}s")
                        try:
                            async with asyncio.timeout(remaining):
                                chunk = await chunks.__anext__()
                        except StopAsyncIteration:
                            break
                        for delta in _deltas(backend, decoder.feed(chunk)):
                            yield delta
                    for delta in _deltas(backend, decoder.flush()):
                        yield delta
        except (TimeoutError, httpx.TimeoutException) as exc:
            raise AITimeoutError(f"{backend.kind} stream timed out after {self._timeout:g}s") from exc
        except httpx.InvalidURL as exc:
            raise AIError(f"invalid {backend.kind} endpoint: {exc}") from exc
        except httpx.TransportError as exc:
            raise AIConnectionError(f"{backend.kind} stream connection failed: {exc}") from exc
