from __future__ import annotations

import logging
import math
from typing import Any

from ai_daily_digest.core.config import SCORING_BATCH_SIZE, SCORING_CONCURRENCY
from ai_daily_digest.core.constants import CATEGORIES, DEFAULT_CATEGORY
from ai_daily_digest.models import Article, Score
from ai_daily_digest.processing.batching import GroupProgressFunc, chunk_indexed, run_in_groups
from ai_daily_digest.processing.llm_client import AIGateway, ApiOptions, JSONExtractError, extract_json
from ai_daily_digest.processing.prompts.digest_prompt import build_scoring_prompt

logger = logging.getLogger(__name__)

MAX_KEYWORDS = 4
NEUTRAL_SCORE = 5


def fallback_score() -> Score:
    return {
        "relevance": NEUTRAL_SCORE,
        "quality": NEUTRAL_SCORE,
        "timeliness": NEUTRAL_SCORE,
        "category": DEFAULT_CATEGORY,
        "keywords": [],
    }


def clamp_score(value: Any) -> int:
    """Round half up and clamp into [1, 10]; non-numeric values become 5."""
    if isinstance(value, str):
        value = value.strip()
    try:
        number = float(value)
    except (TypeError, ValueError):
        return NEUTRAL_SCORE
    if math.isnan(number):
        return NEUTRAL_SCORE
    number = min(10.0, max(1.0, number))
    return int(math.floor(number + 0.5))


def coerce_category(value: Any) -> str:
    category = str(value or "").strip().lower()
    return category if category in CATEGORIES else DEFAULT_CATEGORY


def coerce_keywords(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    keywords = [str(k).strip() for k in value if isinstance(k, (str, int, float)) and str(k).strip()]
    return keywords[:MAX_KEYWORDS]


def normalize_score(raw: dict[str, Any]) -> Score:
    return {
        "relevance": clamp_score(raw.get("relevance")),
        "quality": clamp_score(raw.get("quality")),
        "timeliness": clamp_score(raw.get("timeliness")),
        "category": coerce_category(raw.get("category")),
        "keywords": coerce_keywords(raw.get("keywords")),
    }


def coerce_index(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


def results_list(payload: Any) -> list[dict[str, Any]]:
    """The `results` array of a batch reply. A bare array is accepted too."""
    if isinstance(payload, dict):
        payload = payload.get("results")
    if not isinstance(payload, list):
        raise JSONExtractError("reply has no results array")
    return [r for r in payload if isinstance(r, dict)]


def total_score(score: Score) -> int:
    return score["relevance"] + score["quality"] + score["timeliness"]


class ScoringEngine:
    def __init__(
        self,
        gateway: AIGateway,
        *,
        batch_size: int = SCORING_BATCH_SIZE,
        concurrency: int = SCORING_CONCURRENCY,
    ) -> None:
        self._gateway = gateway
        self._batch_size = batch_size
        self._concurrency = concurrency

    async def score(
        self,
        articles: list[Article],
        api_key: str,
        options: ApiOptions,
        on_progress: GroupProgressFunc | None = None,
    ) -> dict[int, Score]:
        """Score every article. The returned map always has one entry per index."""
        scores: dict[int, Score] = {}

        async def _score_batch(batch: list[tuple[int, Article]]) -> None:
            indices = [index for index, _ in batch]
            allowed = set(indices)
            try:
                text = await self._gateway.complete(build_scoring_prompt(batch), api_key, options)
                results = results_list(extract_json(text))
            except Exception as exc:
                logger.warning("Scoring batch %d-%d failed: %s", indices[0], indices[-1], exc)
                results = []
            for raw in results:
                index = coerce_index(raw.get("index"))
                if index in allowed and index not in scores:
                    scores[index] = normalize_score(raw)
            missing = [i for i in indices if i not in scores]
            if missing and results:
                logger.info("Scoring reply skipped %d article(s), using neutral scores", len(missing))
            for index in missing:
                scores[index] = fallback_score()

        await run_in_groups(
            chunk_indexed(articles, self._batch_size),
            _score_batch,
            concurrency=self._concurrency,
            on_progress=on_progress,
        )
        return scores
