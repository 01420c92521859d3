"""Full-article translation with caching and streaming."""

__all__ = ["service", "stream_parser"]
