import asyncio

from ai_daily_digest.processing.highlights import HighlightSynthesizer
from ai_daily_digest.processing.llm_client import AIConnectionError, ApiOptions


class _Gateway:
    def __init__(self, reply=None, error=None) -> None:
        self.reply = reply
        self.error = error
        self.prompts: list[str] = []

    async def complete(self, prompt: str, api_key: str, options: ApiOptions | None = None) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.reply


def _digest_articles(n: int) -> list[dict]:
    return [
        {"title": f"Title {i}", "titleZh": f"标题 {i}", "summary": f"摘要 {i}", "category": "tools"}
        for i in range(n)
    ]


def test_highlights_use_top_ten_only() -> None:
    gateway = _Gateway(reply="  今天的重点是编译器。\n")
    text = asyncio.run(HighlightSynthesizer(gateway).synthesize(_digest_articles(15), "k", ApiOptions()))
    assert text == "今天的重点是编译器。"
    assert "标题 9" in gateway.prompts[0]
    assert "标题 10" not in gateway.prompts[0]


def test_highlights_failure_is_empty() -> None:
    gateway = _Gateway(error=AIConnectionError("reset"))
    assert asyncio.run(HighlightSynthesizer(gateway).synthesize(_digest_articles(3), "k", ApiOptions())) == ""


def test_highlights_without_articles_skip_the_call() -> None:
    gateway = _Gateway(reply="unused")
    assert asyncio.run(HighlightSynthesizer(gateway).synthesize([], "k", ApiOptions())) == ""
    assert gateway.prompts == []
