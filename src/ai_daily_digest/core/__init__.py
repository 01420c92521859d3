"""Core configuration and constants.

Import what you need from `ai_daily_digest.core.config` and
`ai_daily_digest.core.constants` to avoid heavy side effects at import time.
"""

__all__ = ["api_config", "config", "constants"]
