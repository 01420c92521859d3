from __future__ import annotations

import asyncio
import logging
from typing import Any

from ai_daily_digest.core.config import (
    SUMMARY_BATCH_SIZE,
    SUMMARY_CONCURRENCY,
    SUMMARY_FALLBACK_CHARS,
    TARGET_LANGUAGE,
    TARGET_SCRIPT_PATTERN,
)
from ai_daily_digest.models import Article, SummaryResult
from ai_daily_digest.processing.batching import GroupProgressFunc, chunk_indexed, run_in_groups
from ai_daily_digest.processing.llm_client import AIGateway, ApiOptions, extract_json
from ai_daily_digest.processing.prompts.digest_prompt import build_single_summary_prompt, build_summary_prompt
from ai_daily_digest.processing.scoring import coerce_index, results_list
from ai_daily_digest.utils import contains_target_script

logger = logging.getLogger(__name__)


def coerce_summary(raw: dict[str, Any]) -> SummaryResult:
    return {
        "titleZh": str(raw.get("titleZh") or "").strip(),
        "summary": str(raw.get("summary") or "").strip(),
        "reason": str(raw.get("reason") or "").strip(),
    }


def fallback_summary(article: Article, *, max_chars: int = SUMMARY_FALLBACK_CHARS) -> SummaryResult:
    return {
        "titleZh": article.get("title", ""),
        "summary": (article.get("description") or "")[:max_chars],
        "reason": "",
    }


class SummarizationEngine:
    """Batch summaries, then single-article retries, then deterministic fallback.

    Phase 2 retries only the articles whose batch result is missing or whose
    title/summary has no character in the target script. That check is a
    heuristic and can misfire on names or code kept in the source language.
    """

    def __init__(
        self,
        gateway: AIGateway,
        *,
        batch_size: int = SUMMARY_BATCH_SIZE,
        concurrency: int = SUMMARY_CONCURRENCY,
        language: str = TARGET_LANGUAGE,
        script_pattern: str = TARGET_SCRIPT_PATTERN,
    ) -> None:
        self._gateway = gateway
        self._batch_size = batch_size
        self._concurrency = concurrency
        self._language = language
        self._script_pattern = script_pattern

    def is_translated(self, result: SummaryResult | None) -> bool:
        if not result:
            return False
        return contains_target_script(result["titleZh"], self._script_pattern) and contains_target_script(
            result["summary"], self._script_pattern
        )

    async def summarize(
        self,
        articles: list[Article],
        api_key: str,
        options: ApiOptions,
        on_progress: GroupProgressFunc | None = None,
    ) -> dict[int, SummaryResult]:
        summaries = await self._batch_phase(articles, api_key, options, on_progress)

        stragglers = [i for i in range(len(articles)) if not self.is_translated(summaries.get(i))]
        if stragglers:
            logger.info("Retrying %d summaries individually", len(stragglers))
            await self._retry_phase(articles, stragglers, summaries, api_key, options)

        for index, article in enumerate(articles):
            if index not in summaries:
                summaries[index] = fallback_summary(article)
        return summaries

    async def _batch_phase(
        self,
        articles: list[Article],
        api_key: str,
        options: ApiOptions,
        on_progress: GroupProgressFunc | None,
    ) -> dict[int, SummaryResult]:
        summaries: dict[int, SummaryResult] = {}

        async def _summarize_batch(batch: list[tuple[int, Article]]) -> None:
            allowed = {index for index, _ in batch}
            prompt = build_summary_prompt(batch, language=self._language)
            try:
                text = await self._gateway.complete(prompt, api_key, options)
                results = results_list(extract_json(text))
            except Exception as exc:
                logger.warning("Summary batch starting at %d failed: %s", batch[0][0], exc)
                return
            for raw in results:
                index = coerce_index(raw.get("index"))
                if index in allowed:
                    summaries[index] = coerce_summary(raw)

        await run_in_groups(
            chunk_indexed(articles, self._batch_size),
            _summarize_batch,
            concurrency=self._concurrency,
            on_progress=on_progress,
        )
        return summaries

    async def _retry_phase(
        self,
        articles: list[Article],
        indices: list[int],
        summaries: dict[int, SummaryResult],
        api_key: str,
        options: ApiOptions,
    ) -> None:
        width = max(1, self._concurrency)
        for start in range(0, len(indices), width):
            group = indices[start : start + width]
            results = await asyncio.gather(
                *(self.summarize_one(articles[i], api_key, options) for i in group)
            )
            for index, result in zip(group, results):
                if result is None:
                    continue
                # Keep a phase-1 answer over a retry that is no better.
                if self.is_translated(result) or index not in summaries:
                    summaries[index] = result

    async def summarize_one(self, article: Article, api_key: str, options: ApiOptions) -> SummaryResult | None:
        prompt = build_single_summary_prompt(article, language=self._language)
        try:
            text = await self._gateway.complete(prompt, api_key, options)
            payload = extract_json(text)
        except Exception as exc:
            logger.warning("Single summary failed for %s: %s", article.get("link", ""), exc)
            return None
        if isinstance(payload, dict) and isinstance(payload.get("results"), list):
            payload = next((r for r in payload["results"] if isinstance(r, dict)), None)
        if not isinstance(payload, dict):
            logger.warning("Single summary for %s was not an object", article.get("link", ""))
            return None
        result = coerce_summary(payload)
        if not result["titleZh"] and not result["summary"]:
            return None
        return result
