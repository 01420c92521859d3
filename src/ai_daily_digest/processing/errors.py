from __future__ import annotations


class DigestGenerationError(Exception):
    """A run-level failure: the digest for the date ends in `error` status."""


class NoArticlesError(DigestGenerationError):
    def __init__(self) -> None:
        super().__init__("No articles were fetched from any feed")


class EmptyWindowError(DigestGenerationError):
    def __init__(self, hours: int) -> None:
        super().__init__(f"No articles found in the last {hours} hours")
        self.hours = hours


class MissingApiKeyError(DigestGenerationError):
    def __init__(self) -> None:
        super().__init__("An API key is required; configure one in settings")


class GenerationAlreadyRunning(Exception):
    """Raised at the entry guard; nothing was changed."""

    def __init__(self) -> None:
        super().__init__("Digest generation is already running")
