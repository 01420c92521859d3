import asyncio
import datetime
import json
import re

from ai_daily_digest.processing.llm_client import AIHTTPError, ApiOptions
from ai_daily_digest.processing.scoring import (
    ScoringEngine,
    clamp_score,
    coerce_category,
    coerce_index,
    coerce_keywords,
    fallback_score,
    normalize_score,
    total_score,
)

_INDEX_RE = re.compile(r"^Index (\d+):", re.MULTILINE)


class _ScriptedGateway:
    def __init__(self, reply) -> None:
        self._reply = reply
        self.prompts: list[str] = []

    async def complete(self, prompt: str, api_key: str, options: ApiOptions | None = None) -> str:
        self.prompts.append(prompt)
        return self._reply(prompt)


def _articles(n: int) -> list[dict]:
    pub = datetime.datetime(2024, 5, 1, tzinfo=datetime.timezone.utc)
    return [
        {
            "title": f"Article {i}",
            "link": f"https://example.com/{i}",
            "pubDate": pub,
            "description": f"About topic {i}",
            "sourceName": "blog",
            "sourceUrl": "",
        }
        for i in range(n)
    ]


def _score(articles: list[dict], gateway, **kwargs) -> dict:
    engine = ScoringEngine(gateway, **kwargs)
    return asyncio.run(engine.score(articles, "sk-test", ApiOptions()))


def test_clamp_score_rounds_and_clamps() -> None:
    assert clamp_score(13.7) == 10
    assert clamp_score(-2) == 1
    assert clamp_score(6.5) == 7
    assert clamp_score("8") == 8
    assert clamp_score("high") == 5
    assert clamp_score(None) == 5
    assert clamp_score(float("nan")) == 5


def test_coerce_category_unknown_becomes_other() -> None:
    assert coerce_category("AI-ML") == "ai-ml"
    assert coerce_category("crypto") == "other"
    assert coerce_category(None) == "other"


def test_coerce_keywords_truncates() -> None:
    assert coerce_keywords(["a", "b", "", "c", "d", "e"]) == ["a", "b", "c", "d"]
    assert coerce_keywords("not a list") == []


def test_coerce_index() -> None:
    assert coerce_index(3) == 3
    assert coerce_index("4") == 4
    assert coerce_index(2.0) == 2
    assert coerce_index(True) is None
    assert coerce_index("x") is None


def test_normalize_score_and_total() -> None:
    score = normalize_score({"relevance": 13.7, "quality": -2, "timeliness": "7", "category": "Tools"})
    assert score == {"relevance": 10, "quality": 1, "timeliness": 7, "category": "tools", "keywords": []}
    assert total_score(score) == 18


def test_every_index_scored_when_batch_fails() -> None:
    def _fail(prompt: str) -> str:
        raise AIHTTPError(400, "bad request")

    scores = _score(_articles(23), _ScriptedGateway(_fail))
    assert sorted(scores) == list(range(23))
    assert all(s == fallback_score() for s in scores.values())


def test_missing_and_foreign_indices() -> None:
    def _reply(prompt: str) -> str:
        indices = [int(i) for i in _INDEX_RE.findall(prompt)]
        # Score only the first article of each batch and invent one outside the batch.
        results = [{"index": indices[0], "relevance": 9, "quality": 9, "timeliness": 9, "category": "security"}]
        results.append({"index": 999, "relevance": 1, "quality": 1, "timeliness": 1})
        return "```json\n" + json.dumps({"results": results}) + "\n```"

    gateway = _ScriptedGateway(_reply)
    scores = _score(_articles(12), gateway, batch_size=5)
    assert len(gateway.prompts) == 3
    assert sorted(scores) == list(range(12))
    assert 999 not in scores
    assert sorted(i for i, s in scores.items() if s["category"] == "security") == [0, 5, 10]
    assert scores[1] == fallback_score()


def test_unparseable_reply_falls_back() -> None:
    scores = _score(_articles(3), _ScriptedGateway(lambda prompt: "Sorry, I cannot help with that."))
    assert scores == {i: fallback_score() for i in range(3)}


def test_progress_after_each_group() -> None:
    progress: list[tuple[int, int]] = []
    gateway = _ScriptedGateway(lambda prompt: '{"results": []}')
    engine = ScoringEngine(gateway, batch_size=10, concurrency=2)
    asyncio.run(engine.score(_articles(45), "k", ApiOptions(), on_progress=lambda d, t: progress.append((d, t))))
    assert progress == [(2, 5), (4, 5), (5, 5)]
