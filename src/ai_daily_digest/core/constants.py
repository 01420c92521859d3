from __future__ import annotations

CATEGORIES = ("ai-ml", "security", "engineering", "tools", "opinion", "other")
DEFAULT_CATEGORY = "other"

CATEGORY_LABELS = {
    "ai-ml": "AI / ML",
    "security": "Security",
    "engineering": "Engineering",
    "tools": "Tools / Open Source",
    "opinion": "Opinion / Essays",
    "other": "Other",
}

# preset -> defaults filled in when the stored config leaves them blank
API_PRESETS: dict[str, dict[str, str]] = {
    "gemini": {
        "label": "Google Gemini",
        "baseURL": "https://generativelanguage.googleapis.com/v1beta",
        "model": "gemini-2.0-flash",
    },
    "doubao": {
        "label": "Doubao (Volcano Engine)",
        "baseURL": "https://ark.cn-beijing.volces.com/api/v3",
        "model": "doubao-seed-1-6-251015",
    },
    "openai": {
        "label": "OpenAI",
        "baseURL": "https://api.openai.com/v1",
        "model": "gpt-4o-mini",
    },
    "custom": {
        "label": "Custom OpenAI-compatible",
        "baseURL": "",
        "model": "",
    },
}

GEMINI_KEY_PREFIX = "AIza"
AUTO_PRESET = "auto"

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503})

STEP_IDLE = "idle"
STEP_FETCHING = "fetching"
STEP_FILTERING = "filtering"
STEP_SCORING = "scoring"
STEP_SUMMARIZING = "summarizing"
STEP_HIGHLIGHTS = "highlights"
STEP_DONE = "done"
STEP_ERROR = "error"

STATUS_GENERATING = "generating"
STATUS_DONE = "done"
STATUS_ERROR = "error"

# Page elements never part of the article body
NOISE_SELECTORS = (
    "script",
    "style",
    "nav",
    "header",
    "footer",
    ".nav",
    ".header",
    ".footer",
    ".sidebar",
    ".ad",
    ".advertisement",
    ".cookie",
    "#cookie",
    '[class*="banner"]',
    '[class*="popup"]',
    '[class*="subscribe"]',
    '[class*="newsletter"]',
    "noscript",
    "iframe",
)

# Article containers in priority order
CONTENT_SELECTORS = (
    "article",
    '[itemprop="articleBody"]',
    ".post-content",
    ".article-content",
    ".entry-content",
    ".content-body",
    ".post-body",
    ".article-body",
    "main",
    ".main-content",
    "#content",
    ".content",
)

ELISION_MARKER = "\n\n[... middle section omitted ...]\n\n"
