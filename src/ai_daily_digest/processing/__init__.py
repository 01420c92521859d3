"""Digest generation: AI gateway, scoring, summaries, highlights and orchestration."""

__all__ = [
    "batching",
    "dedupe",
    "errors",
    "highlights",
    "llm_client",
    "pipeline",
    "scoring",
    "state",
    "summarize",
]
