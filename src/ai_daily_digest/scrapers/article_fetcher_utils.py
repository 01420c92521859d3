from __future__ import annotations

import trafilatura
from bs4 import BeautifulSoup

from ai_daily_digest.core.constants import CONTENT_SELECTORS, NOISE_SELECTORS
from ai_daily_digest.utils.common import clean_text, clean_text_ws


def strip_noise(soup: BeautifulSoup) -> None:
    for selector in NOISE_SELECTORS:
        for node in soup.select(selector):
            node.decompose()


def extract_by_selectors(soup: BeautifulSoup, min_chars: int) -> tuple[str, str]:
    """First container (in priority order) whose text is longer than `min_chars`."""
    for selector in CONTENT_SELECTORS:
        node = soup.select_one(selector)
        if node is None:
            continue
        text = clean_text_ws(node.get_text(" "))
        if len(text) > min_chars:
            return text, selector
    return "", ""


def extract_with_trafilatura(url: str, html: str) -> str:
    extracted = trafilatura.extract(html, url=url, include_comments=False, include_tables=False)
    return clean_text(extracted or "")


def extract_article_content(html: str, url: str = "", *, min_chars: int = 300) -> tuple[str, str]:
    """Return `(text, extractor)` for a fetched page.

    Order: noise-stripped content selectors, trafilatura, whole body text.
    `extractor` is one of "selector:<css>", "trafilatura", "body" or "none".
    """
    if not html:
        return "", "none"
    soup = BeautifulSoup(html, "html.parser")
    strip_noise(soup)

    text, selector = extract_by_selectors(soup, min_chars)
    if text:
        return text, f"selector:{selector}"

    text = extract_with_trafilatura(url, html)
    if len(text) > min_chars:
        return text, "trafilatura"

    body = soup.body or soup
    text = clean_text_ws(body.get_text(" "))
    return (text, "body") if text else ("", "none")
