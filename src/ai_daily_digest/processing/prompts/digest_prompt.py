"""Prompt templates for scoring, summarizing, highlights and translation."""

from __future__ import annotations

from typing import Any, Iterable

from ai_daily_digest.core.config import TARGET_LANGUAGE

ARTICLE_SEPARATOR = "\n\n---\n\n"

TITLE_MARKER = "TITLE_ZH:"
SUMMARY_MARKER = "SUMMARY_ZH:"
CONTENT_MARKER = "---CONTENT---"

CONNECTION_TEST_PROMPT = 'Hello, respond with "OK"'

SCORING_PROMPT = """You are a technical content curator selecting articles for a daily digest read by engineers and technology enthusiasts.

Score each article below on three dimensions (integers 1-10, 10 is best), assign one category, and extract 2-4 keywords.

## Dimensions
1. relevance - value to people working in software, AI or the internet industry
2. quality - depth and writing quality of the article itself
3. timeliness - whether it is worth reading right now

## Categories
ai-ml / security / engineering / tools / opinion / other

## Keywords
2-4 English keywords that best describe the topic.

## Articles
{articles}

Reply with strict JSON only, scoring every index listed above:
{{"results":[{{"index":0,"relevance":8,"quality":7,"timeliness":9,"category":"engineering","keywords":["Rust","compiler"]}}]}}"""

SUMMARY_PROMPT = """You are an expert technical summarizer. For every article below produce:
1. titleZh: a natural {language} translation of the title.
2. summary: a structured 4-6 sentence summary that goes straight to the point, naming concrete technologies, numbers and approaches.
3. reason: one sentence on why it is worth reading.

Write titleZh, summary and reason in {language}. Do not answer in the source language.

## Articles
{articles}

Reply with strict JSON only:
{{"results":[{{"index":0,"titleZh":"...","summary":"...","reason":"..."}}]}}"""

SINGLE_SUMMARY_PROMPT = """Translate and summarize this article. All three fields MUST be written in {language}.

Source: {source}
Title: {title}
URL: {link}
{description}

Reply with strict JSON only:
{{"titleZh":"...","summary":"4-6 sentence summary","reason":"one sentence on why it is worth reading"}}"""

HIGHLIGHTS_PROMPT = """Below is today's list of selected technical articles. Write a 3-5 sentence "today's highlights" overview in {language}.
Identify the 2-3 main trends or themes instead of listing articles one by one. Keep it concise and punchy, like a news lede.

Articles:
{articles}

Reply with plain text only. No JSON, no Markdown."""

TRANSLATE_PROMPT = """You are a professional technology editor translating English technical articles into high-quality {language}.

## Requirements
- Translate for meaning, not word by word, so native readers read it naturally.
- Keep technical terms (LLM, RAG, fine-tuning, ...) in English or add them in parentheses.
- Keep the paragraph structure of the original, with a blank line between paragraphs.
- Give the title an engaging {language} rendering.

## Source
Title: {title}
URL: {url}

## Content
{content}

## Output format (follow exactly, no JSON, no Markdown fences)
{title_marker} <translated title on one line>
{summary_marker} <2-3 sentence summary on one line>
{content_marker}
<full translated body>"""

BATCH_TRANSLATE_PROMPT = """Translate the following article excerpts into {language}. For each one return a translated title, a 2-3 sentence summary and a short expanded translation of the excerpt.

{articles}

Reply with a strict JSON array only, one object per article, in the same order:
[{{"index":0,"titleZh":"...","summary":"...","content":"..."}}]"""


def _article_blocks(entries: Iterable[tuple[int, Any]], *, desc_chars: int, with_link: bool = False) -> str:
    blocks = []
    for index, article in entries:
        head = f"Index {index}: [{article.get('sourceName', '')}] {article.get('title', '')}"
        lines = [head]
        if with_link:
            lines.append(f"URL: {article.get('link', '')}")
        lines.append((article.get("description") or "")[:desc_chars])
        blocks.append("\n".join(lines))
    return ARTICLE_SEPARATOR.join(blocks)


def build_scoring_prompt(entries: list[tuple[int, Any]]) -> str:
    return SCORING_PROMPT.format(articles=_article_blocks(entries, desc_chars=300))


def build_summary_prompt(entries: list[tuple[int, Any]], *, language: str = TARGET_LANGUAGE) -> str:
    return SUMMARY_PROMPT.format(
        language=language,
        articles=_article_blocks(entries, desc_chars=800, with_link=True),
    )


def build_single_summary_prompt(article: Any, *, language: str = TARGET_LANGUAGE) -> str:
    return SINGLE_SUMMARY_PROMPT.format(
        language=language,
        source=article.get("sourceName", ""),
        title=article.get("title", ""),
        link=article.get("link", ""),
        description=(article.get("description") or "")[:800],
    )


def build_highlights_prompt(articles: list[Any], *, language: str = TARGET_LANGUAGE) -> str:
    lines = []
    for i, article in enumerate(articles, start=1):
        title = article.get("titleZh") or article.get("title", "")
        summary = (article.get("summary") or "")[:100]
        lines.append(f"{i}. [{article.get('category', 'other')}] {title} - {summary}")
    return HIGHLIGHTS_PROMPT.format(language=language, articles="\n".join(lines))


def build_translate_prompt(title: str, content: str, url: str, *, language: str = TARGET_LANGUAGE) -> str:
    return TRANSLATE_PROMPT.format(
        language=language,
        title=title,
        url=url,
        content=content,
        title_marker=TITLE_MARKER,
        summary_marker=SUMMARY_MARKER,
        content_marker=CONTENT_MARKER,
    )


def build_batch_translate_prompt(items: list[dict[str, str]], *, language: str = TARGET_LANGUAGE) -> str:
    blocks = [
        f"Index {i}: {item.get('title', '')}\nURL: {item.get('url', '')}\n{(item.get('desc') or '')[:1000]}"
        for i, item in enumerate(items)
    ]
    return BATCH_TRANSLATE_PROMPT.format(language=language, articles=ARTICLE_SEPARATOR.join(blocks))
