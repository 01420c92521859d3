"""JSON-file persistence for digests, share tokens, translations and feed lists."""

from .repository import DigestRepository, RssSourceRepository, TranslationCache
from .store import JsonFileStore

__all__ = ["DigestRepository", "JsonFileStore", "RssSourceRepository", "TranslationCache"]
