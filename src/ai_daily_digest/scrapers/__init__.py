"""Feed and article page fetching."""

__all__ = ["article_fetcher", "article_fetcher_utils", "feed_fetcher", "feed_parser"]
