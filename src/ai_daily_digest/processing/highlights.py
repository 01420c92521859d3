from __future__ import annotations

import logging
from typing import Any

from ai_daily_digest.core.config import HIGHLIGHTS_TOP_K, TARGET_LANGUAGE
from ai_daily_digest.processing.llm_client import AIGateway, ApiOptions
from ai_daily_digest.processing.prompts.digest_prompt import build_highlights_prompt

logger = logging.getLogger(__name__)


class HighlightSynthesizer:
    def __init__(self, gateway: AIGateway, *, top_k: int = HIGHLIGHTS_TOP_K, language: str = TARGET_LANGUAGE) -> None:
        self._gateway = gateway
        self._top_k = top_k
        self._language = language

    async def synthesize(self, top_articles: list[Any], api_key: str, options: ApiOptions) -> str:
        """Short narrative over the top articles, or "" when anything goes wrong."""
        selected = top_articles[: self._top_k]
        if not selected:
            return ""
        prompt = build_highlights_prompt(selected, language=self._language)
        try:
            text = await self._gateway.complete(prompt, api_key, options)
        except Exception as exc:
            logger.warning("Highlights generation failed: %s", exc)
            return ""
        return (text or "").strip()
