from __future__ import annotations

import datetime
import logging
import secrets
from typing import Any, Callable

from ai_daily_digest.models import Digest, FeedSource, Translation
from ai_daily_digest.storage.store import JsonFileStore
from ai_daily_digest.utils import isoformat_utc, now_utc, parse_datetime_utc

logger = logging.getLogger(__name__)

DIGESTS = "digests"
SHARE_INDEX = "shareIndex"
TRANSLATIONS = "translations"
SETTINGS = "settings"

RUN_PRESERVED_FIELDS = ("createdAt", "shareToken")


class DigestRepository:
    def __init__(
        self,
        store: JsonFileStore,
        *,
        now_provider: Callable[[], datetime.datetime] | None = None,
    ) -> None:
        self._store = store
        self._now_provider = now_provider or now_utc

    def _write(self, date: str, digest: dict[str, Any]) -> Digest:
        stamp = isoformat_utc(self._now_provider())
        digest["date"] = date
        digest["updatedAt"] = stamp
        digest.setdefault("createdAt", stamp)
        self._store.set(DIGESTS, date, digest)
        return digest  # type: ignore[return-value]

    def save(self, date: str, fields: dict[str, Any]) -> Digest:
        """Merge `fields` into the digest for `date`, stamping timestamps."""
        digest = self._store.get(DIGESTS, date) or {}
        digest.update(fields)
        return self._write(date, digest)

    def start(self, date: str, fields: dict[str, Any]) -> Digest:
        """Begin a fresh run for `date`. Only the share token and creation time survive."""
        previous = self._store.get(DIGESTS, date) or {}
        digest = {key: previous[key] for key in RUN_PRESERVED_FIELDS if key in previous}
        digest.update(fields)
        return self._write(date, digest)

    def get(self, date: str | None = None) -> Digest | None:
        if date:
            return self._store.get(DIGESTS, date)
        entries = self._store.items(DIGESTS)
        return entries[-1][1] if entries else None

    def latest_with_articles(self) -> Digest | None:
        for _, digest in reversed(self._store.items(DIGESTS)):
            if digest.get("articles"):
                return digest
        return None

    def set_status(self, date: str, status: str, *, message: str | None = None) -> None:
        digest = self._store.get(DIGESTS, date)
        if digest is None:
            return
        digest["status"] = status
        if message is not None:
            digest["errorMessage"] = message
        digest["updatedAt"] = isoformat_utc(self._now_provider())
        self._store.set(DIGESTS, date, digest)

    def list_recent(self, limit: int = 30) -> list[dict[str, Any]]:
        rows = [
            {
                "date": digest.get("date", date),
                "status": digest.get("status"),
                "totalArticles": digest.get("totalArticles"),
                "filteredArticles": digest.get("filteredArticles"),
                "articleCount": len(digest.get("articles") or []),
                "createdAt": digest.get("createdAt"),
            }
            for date, digest in self._store.items(DIGESTS)
        ]
        rows.reverse()
        return rows[:limit]

    def stats(self) -> dict[str, Any]:
        entries = self._store.items(DIGESTS)
        done = [d for _, d in entries if d.get("status") == "done"]
        latest = entries[-1][1] if entries else None
        return {
            "totalDigests": len(done),
            "totalArticles": sum(len(d.get("articles") or []) for d in done),
            "latestDate": latest.get("date") if latest else None,
            "latestStatus": latest.get("status") if latest else None,
        }

    def create_share_token(self, date: str) -> str | None:
        """Return the share token for `date`, creating it on first use."""
        digest = self._store.get(DIGESTS, date)
        if digest is None:
            return None
        token = digest.get("shareToken")
        if token:
            return token
        token = secrets.token_hex(16)
        digest["shareToken"] = token
        self._store.set(DIGESTS, date, digest)
        self._store.set(SHARE_INDEX, token, date)
        return token

    def get_by_share_token(self, token: str) -> Digest | None:
        date = self._store.get(SHARE_INDEX, token)
        if not date:
            return None
        return self._store.get(DIGESTS, date)


class TranslationCache:
    """Per-URL translation entries. Writes are last-write-wins."""

    def __init__(
        self,
        store: JsonFileStore,
        *,
        now_provider: Callable[[], datetime.datetime] | None = None,
    ) -> None:
        self._store = store
        self._now_provider = now_provider or now_utc

    def get(self, url: str) -> Translation | None:
        if not url:
            return None
        return self._store.get(TRANSLATIONS, url)

    def save(self, url: str, *, title_zh: str, summary: str, content: str) -> Translation:
        entry: Translation = {
            "url": url,
            "titleZh": title_zh,
            "summary": summary,
            "content": content,
            "createdAt": isoformat_utc(self._now_provider()),
        }
        self._store.set(TRANSLATIONS, url, entry)
        return entry

    def delete(self, url: str) -> bool:
        return self._store.delete(TRANSLATIONS, url)

    def get_many(self, urls: list[str]) -> dict[str, Translation]:
        found: dict[str, Translation] = {}
        for url in urls:
            entry = self.get(url)
            if entry is not None:
                found[url] = entry
        return found

    def prune(self, days: int) -> int:
        """Drop entries older than `days`. Entries without a readable timestamp go too."""
        cutoff = self._now_provider() - datetime.timedelta(days=days)
        expired = []
        for url, entry in self._store.items(TRANSLATIONS):
            created = parse_datetime_utc(str(entry.get("createdAt") or ""))
            if created is None or created < cutoff:
                expired.append(url)
        removed = self._store.delete_many(TRANSLATIONS, expired)
        if removed:
            logger.info("Pruned %d expired translations", removed)
        return removed

    def count(self) -> int:
        return self._store.count(TRANSLATIONS)


class RssSourceRepository:
    _KEY = "rssSources"

    def __init__(self, store: JsonFileStore) -> None:
        self._store = store

    def get(self) -> list[FeedSource]:
        return self._store.get(SETTINGS, self._KEY) or []

    def save(self, sources: list[FeedSource]) -> None:
        self._store.set(SETTINGS, self._KEY, sources)
