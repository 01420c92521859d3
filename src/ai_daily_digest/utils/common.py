from __future__ import annotations

import datetime
import email.utils
import html
import re

from ai_daily_digest.core.constants import ELISION_MARKER

_WS_RE = re.compile(r"\s+")
_TAG_RE = re.compile(r"<[^>]+>")
_TRAILING_SLASH_RE = re.compile(r"/+$")
_SCRIPT_RE_CACHE: dict[str, re.Pattern[str]] = {}

EPOCH = datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc)


def clean_text(s: str) -> str:
    """Unescape HTML entities, drop tags and collapse whitespace."""
    if not s:
        return ""
    s = html.unescape(s)
    s = s.replace("\u00a0", " ")
    s = _TAG_RE.sub("", s)
    s = _WS_RE.sub(" ", s).strip()
    return s


def clean_text_ws(text: str) -> str:
    return _WS_RE.sub(" ", (text or "").strip())


def now_utc() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def isoformat_utc(dt: datetime.datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=datetime.timezone.utc)
    return dt.astimezone(datetime.timezone.utc).isoformat().replace("+00:00", "Z")


def parse_datetime_utc(value: str, *, default_tz: datetime.tzinfo | None = None) -> datetime.datetime | None:
    if not value:
        return None
    value = value.strip()
    try:
        dt = datetime.datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        try:
            dt = email.utils.parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=default_tz or datetime.timezone.utc)
    return dt.astimezone(datetime.timezone.utc)


def normalize_link(link: str) -> str:
    """Dedup identity of an article link: trailing slashes stripped, lower-cased."""
    return _TRAILING_SLASH_RE.sub("", (link or "").strip()).lower()


def contains_target_script(text: str, pattern: str) -> bool:
    if not text:
        return False
    compiled = _SCRIPT_RE_CACHE.get(pattern)
    if compiled is None:
        compiled = re.compile(pattern)
        _SCRIPT_RE_CACHE[pattern] = compiled
    return compiled.search(text) is not None


def smart_truncate(text: str, max_chars: int, *, head_ratio: float = 0.65, tail_ratio: float = 0.25) -> str:
    """Keep the opening and the closing of long text, eliding the middle."""
    if len(text) <= max_chars:
        return text
    head = int(max_chars * head_ratio)
    tail = int(max_chars * tail_ratio)
    return text[:head] + ELISION_MARKER + text[len(text) - tail :]


def mask_secret(value: str) -> str:
    if not value:
        return ""
    if len(value) <= 10:
        return "***"
    return f"{value[:6]}***{value[-4:]}"
