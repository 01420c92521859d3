"""Daily AI-curated digest of technical blogs and news feeds."""

__version__ = "0.1.0"
