from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from ai_daily_digest.processing.prompts.digest_prompt import CONTENT_MARKER, SUMMARY_MARKER, TITLE_MARKER

AWAITING_META = "awaiting-meta"
IN_CONTENT = "in-content"


@dataclass(frozen=True)
class StreamEvent:
    event: str
    data: dict[str, Any] = field(default_factory=dict)

    def encode(self) -> str:
        """SSE wire form."""
        return f"event: {self.event}\ndata: {json.dumps(self.data, ensure_ascii=False)}\n\n"


@dataclass(frozen=True)
class ParsedTranslation:
    title_zh: str
    summary: str
    content: str


class TranslationFormatError(ValueError):
    pass


def _meta_value(line: str, marker: str) -> str | None:
    stripped = line.strip().lstrip("*#> ").strip()
    if stripped.startswith(marker):
        return stripped[len(marker) :].strip().strip("*").strip()
    return None


class TranslationStreamParser:
    """Incremental parser for the TITLE_ZH / SUMMARY_ZH / ---CONTENT--- format.

    While awaiting meta, only the unconsumed tail of the buffer is kept and
    newline search resumes where the previous feed stopped. Once the content
    marker is seen every later fragment passes straight through as a chunk.
    """

    def __init__(self) -> None:
        self.state = AWAITING_META
        self._buffer = ""
        self._scan_from = 0
        self._title = ""
        self._summary = ""
        self._stray: list[str] = []
        self._content: list[str] = []
        self._meta_sent = False
        self._at_content_start = False

    @property
    def title_zh(self) -> str:
        return self._title

    @property
    def summary(self) -> str:
        return self._summary

    def feed(self, text: str) -> list[StreamEvent]:
        if not text:
            return []
        if self.state == IN_CONTENT:
            return self._emit_content(text)
        self._buffer += text
        return self._consume_meta()

    def _consume_meta(self) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        while self.state == AWAITING_META:
            newline = self._buffer.find("\n", self._scan_from)
            if newline == -1:
                # A marker can close the buffer without a trailing newline.
                marker_at = self._buffer.find(CONTENT_MARKER, max(0, self._scan_from - len(CONTENT_MARKER)))
                if marker_at != -1:
                    self._take_meta_line(self._buffer[:marker_at])
                    events.extend(self._enter_content(self._buffer[marker_at + len(CONTENT_MARKER) :]))
                else:
                    self._scan_from = len(self._buffer)
                break
            line = self._buffer[:newline]
            self._buffer = self._buffer[newline + 1 :]
            self._scan_from = 0
            marker_at = line.find(CONTENT_MARKER)
            if marker_at != -1:
                self._take_meta_line(line[:marker_at])
                rest = line[marker_at + len(CONTENT_MARKER) :].strip()
                tail = self._buffer
                self._buffer = ""
                events.extend(self._enter_content((rest + "\n" if rest else "") + tail))
                break
            self._take_meta_line(line)
        return events

    def _take_meta_line(self, line: str) -> None:
        title = _meta_value(line, TITLE_MARKER)
        if title is not None:
            self._title = title
            return
        summary = _meta_value(line, SUMMARY_MARKER)
        if summary is not None:
            self._summary = summary
            return
        if line.strip():
            self._stray.append(line)

    def _enter_content(self, remainder: str) -> list[StreamEvent]:
        self.state = IN_CONTENT
        self._buffer = ""
        self._scan_from = 0
        self._at_content_start = True
        events = [self._meta_event()]
        events.extend(self._emit_content(remainder))
        return events

    def _meta_event(self) -> StreamEvent:
        self._meta_sent = True
        return StreamEvent("meta", {"titleZh": self._title, "summary": self._summary})

    def _emit_content(self, text: str) -> list[StreamEvent]:
        if self._at_content_start:
            # Newlines right after the marker may arrive in a later fragment.
            text = text.lstrip("\n")
            if not text:
                return []
            self._at_content_start = False
        self._content.append(text)
        return [StreamEvent("chunk", {"text": text})]

    def finish(self) -> tuple[list[StreamEvent], ParsedTranslation]:
        """Flush what is left. Without a content marker, non-meta lines become the body."""
        events: list[StreamEvent] = []
        if self.state == AWAITING_META:
            if self._buffer:
                self._take_meta_line(self._buffer)
                self._buffer = ""
            if not self._meta_sent:
                events.append(self._meta_event())
            body = "\n".join(self._stray).strip()
            if body:
                events.extend(self._emit_content(body))
        result = ParsedTranslation(
            title_zh=self._title,
            summary=self._summary,
            content="".join(self._content).strip(),
        )
        return events, result


def parse_translation_text(text: str) -> ParsedTranslation:
    """Parse a complete (non-streamed) reply in the line-delimited format."""
    parser = TranslationStreamParser()
    parser.feed(text or "")
    _, result = parser.finish()
    if not result.title_zh and not result.summary and not result.content:
        raise TranslationFormatError("empty translation reply")
    return result
