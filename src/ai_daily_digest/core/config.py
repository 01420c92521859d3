from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

_repo_root = Path(__file__).resolve().parents[3]
load_dotenv(dotenv_path=_repo_root / ".env")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


# ==========================================
# Paths
# ==========================================

REPO_ROOT = _repo_root
DATA_DIR = Path(os.getenv("DATA_DIR", str(_repo_root / "data")))
DB_PATH = Path(os.getenv("DB_PATH", str(DATA_DIR / "digest.db.json")))
API_CONFIG_PATH = Path(os.getenv("API_CONFIG_PATH", str(DATA_DIR / "api_config.json")))

# ==========================================
# Server
# ==========================================

HOST = os.getenv("HOST", "0.0.0.0")
PORT = _env_int("PORT", 3456)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv("LOG_FORMAT", "%(asctime)s %(levelname)s %(name)s: %(message)s")

# ==========================================
# Feed fetching
# ==========================================

FEED_CONCURRENCY = _env_int("FEED_CONCURRENCY", 10)
FEED_TIMEOUT_SEC = _env_float("FEED_TIMEOUT_SEC", 15.0)
FEED_MAX_RETRIES = _env_int("FEED_MAX_RETRIES", 1)
FEED_RETRY_BACKOFF_SEC = _env_float("FEED_RETRY_BACKOFF_SEC", 1.0)
FEED_DESCRIPTION_MAX_CHARS = _env_int("FEED_DESCRIPTION_MAX_CHARS", 500)
FEED_PROBE_TIMEOUT_SEC = _env_float("FEED_PROBE_TIMEOUT_SEC", 10.0)
FEED_USER_AGENT = os.getenv("FEED_USER_AGENT", "AI-Daily-Digest/1.0")

# ==========================================
# AI gateway
# ==========================================

AI_TIMEOUT_SEC = _env_float("AI_TIMEOUT_SEC", 600.0)
AI_RETRY_DELAYS_SEC: tuple[float, ...] = (1.0, 2.0, 4.0)
AI_TEMPERATURE = _env_float("AI_TEMPERATURE", 0.3)
AI_STREAM_TEMPERATURE = _env_float("AI_STREAM_TEMPERATURE", 0.4)
AI_MAX_TOKENS = _env_int("AI_MAX_TOKENS", 4096)
AI_STREAM_MAX_TOKENS = _env_int("AI_STREAM_MAX_TOKENS", 8192)

# ==========================================
# Scoring / summarization / highlights
# ==========================================

SCORING_BATCH_SIZE = _env_int("SCORING_BATCH_SIZE", 10)
SCORING_CONCURRENCY = _env_int("SCORING_CONCURRENCY", 2)
SUMMARY_BATCH_SIZE = _env_int("SUMMARY_BATCH_SIZE", 5)
SUMMARY_CONCURRENCY = _env_int("SUMMARY_CONCURRENCY", 2)
SUMMARY_FALLBACK_CHARS = _env_int("SUMMARY_FALLBACK_CHARS", 200)
HIGHLIGHTS_TOP_K = _env_int("HIGHLIGHTS_TOP_K", 10)

TARGET_LANGUAGE = os.getenv("TARGET_LANGUAGE", "Simplified Chinese")
# Coarse proxy for "the model answered in the target language".
TARGET_SCRIPT_PATTERN = os.getenv("TARGET_SCRIPT_PATTERN", "[\\u4e00-\\u9fff]")

DEFAULT_HOURS = _env_int("DEFAULT_HOURS", 48)
DEFAULT_TOP_N = _env_int("DEFAULT_TOP_N", 15)

# ==========================================
# Translation
# ==========================================

TRANSLATE_FETCH_TIMEOUT_SEC = _env_float("TRANSLATE_FETCH_TIMEOUT_SEC", 12.0)
TRANSLATE_MIN_CONTENT_CHARS = _env_int("TRANSLATE_MIN_CONTENT_CHARS", 200)
TRANSLATE_SELECTOR_MIN_CHARS = _env_int("TRANSLATE_SELECTOR_MIN_CHARS", 300)
TRANSLATE_MAX_CHARS = _env_int("TRANSLATE_MAX_CHARS", 12000)
TRANSLATE_HEAD_RATIO = _env_float("TRANSLATE_HEAD_RATIO", 0.65)
TRANSLATE_TAIL_RATIO = _env_float("TRANSLATE_TAIL_RATIO", 0.25)
TRANSLATE_STREAM_MIN_CHARS = _env_int("TRANSLATE_STREAM_MIN_CHARS", 1500)
TRANSLATE_REPLAY_CHUNK_CHARS = _env_int("TRANSLATE_REPLAY_CHUNK_CHARS", 200)
TRANSLATE_RETENTION_DAYS = _env_int("TRANSLATE_RETENTION_DAYS", 30)
TRANSLATE_BATCH_SIZE = _env_int("TRANSLATE_BATCH_SIZE", 5)
TRANSLATE_BATCH_DELAY_SEC = _env_float("TRANSLATE_BATCH_DELAY_SEC", 2.0)
TRANSLATE_SINGLE_DELAY_SEC = _env_float("TRANSLATE_SINGLE_DELAY_SEC", 1.0)
TRANSLATE_PREWARM_ENABLED = _env_bool("TRANSLATE_PREWARM_ENABLED", True)
TRANSLATE_USER_AGENT = os.getenv(
    "TRANSLATE_USER_AGENT",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
)

SSE_HEARTBEAT_SEC = _env_float("SSE_HEARTBEAT_SEC", 15.0)
SSE_QUEUE_SIZE = _env_int("SSE_QUEUE_SIZE", 64)

# ==========================================
# Default feed list (used when no custom sources are saved)
# ==========================================

DEFAULT_RSS_FEEDS = [
    {"name": "simonwillison.net", "xmlUrl": "https://simonwillison.net/atom/everything/", "htmlUrl": "https://simonwillison.net"},
    {"name": "jeffgeerling.com", "xmlUrl": "https://www.jeffgeerling.com/blog.xml", "htmlUrl": "https://jeffgeerling.com"},
    {"name": "krebsonsecurity.com", "xmlUrl": "https://krebsonsecurity.com/feed/", "htmlUrl": "https://krebsonsecurity.com"},
    {"name": "daringfireball.net", "xmlUrl": "https://daringfireball.net/feeds/main", "htmlUrl": "https://daringfireball.net"},
    {"name": "lucumr.pocoo.org", "xmlUrl": "https://lucumr.pocoo.org/feed.atom", "htmlUrl": "https://lucumr.pocoo.org"},
    {"name": "devblogs.microsoft.com/oldnewthing", "xmlUrl": "https://devblogs.microsoft.com/oldnewthing/feed", "htmlUrl": "https://devblogs.microsoft.com/oldnewthing"},
    {"name": "troyhunt.com", "xmlUrl": "https://www.troyhunt.com/rss/", "htmlUrl": "https://troyhunt.com"},
    {"name": "mitchellh.com", "xmlUrl": "https://mitchellh.com/feed.xml", "htmlUrl": "https://mitchellh.com"},
    {"name": "dynomight.net", "xmlUrl": "https://dynomight.net/feed.xml", "htmlUrl": "https://dynomight.net"},
    {"name": "xeiaso.net", "xmlUrl": "https://xeiaso.net/blog.rss", "htmlUrl": "https://xeiaso.net"},
    {"name": "pluralistic.net", "xmlUrl": "https://pluralistic.net/feed/", "htmlUrl": "https://pluralistic.net"},
    {"name": "rachelbythebay.com", "xmlUrl": "https://rachelbythebay.com/w/atom.xml", "htmlUrl": "https://rachelbythebay.com"},
    {"name": "antirez.com", "xmlUrl": "http://antirez.com/rss", "htmlUrl": "http://antirez.com"},
    {"name": "gwern.net", "xmlUrl": "https://gwern.substack.com/feed", "htmlUrl": "https://gwern.net"},
    {"name": "eli.thegreenplace.net", "xmlUrl": "https://eli.thegreenplace.net/feeds/all.atom.xml", "htmlUrl": "https://eli.thegreenplace.net"},
    {"name": "danluu.com", "xmlUrl": "https://danluu.com/atom.xml", "htmlUrl": "https://danluu.com"},
    {"name": "minimaxir.com", "xmlUrl": "https://minimaxir.com/index.xml", "htmlUrl": "https://minimaxir.com"},
    {"name": "righto.com", "xmlUrl": "https://www.righto.com/feeds/posts/default", "htmlUrl": "https://righto.com"},
    {"name": "blog.pragmaticengineer.com", "xmlUrl": "https://blog.pragmaticengineer.com/rss/", "htmlUrl": "https://blog.pragmaticengineer.com"},
    {"name": "paulgraham.com", "xmlUrl": "http://www.aaronsw.com/2002/feeds/pgessays.rss", "htmlUrl": "https://paulgraham.com"},
]


def setup_logging(level: str | None = None) -> None:
    logging.basicConfig(level=(level or LOG_LEVEL), format=LOG_FORMAT)
