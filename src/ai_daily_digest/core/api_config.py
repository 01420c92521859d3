from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from ai_daily_digest.core.config import API_CONFIG_PATH
from ai_daily_digest.core.constants import API_PRESETS, AUTO_PRESET
from ai_daily_digest.models import ScheduleEntry, StoredApiConfig
from ai_daily_digest.processing.llm_client import ApiOptions, normalize_preset
from ai_daily_digest.utils import mask_secret

logger = logging.getLogger(__name__)


def resolve_api_options(preset: str | None, base_url: str = "", model: str = "") -> ApiOptions:
    """Fill blank base URL / model from the preset defaults; `auto` means no preset."""
    resolved = normalize_preset(preset)
    defaults = API_PRESETS.get(resolved or "", {})
    return ApiOptions(
        preset=resolved,
        base_url=base_url or defaults.get("baseURL", ""),
        model=model or defaults.get("model", ""),
    )


def normalize_schedule(raw: dict[str, Any]) -> ScheduleEntry:
    def _int(value: Any, default: int, low: int, high: int) -> int:
        try:
            n = int(value)
        except (TypeError, ValueError):
            return default
        return min(max(n, low), high)

    entry: ScheduleEntry = {
        "hour": _int(raw.get("hour"), 8, 0, 23),
        "minute": _int(raw.get("minute"), 0, 0, 59),
        "hours": _int(raw.get("hours"), 48, 1, 24 * 30),
        "topN": _int(raw.get("topN"), 15, 1, 100),
        "enabled": bool(raw.get("enabled", True)),
    }
    for key in ("label", "preset", "baseURL", "model"):
        if raw.get(key):
            entry[key] = str(raw[key])  # type: ignore[literal-required]
    return entry


class ApiConfigStore:
    """Plain JSON file holding the LLM credentials and digest schedules."""

    def __init__(self, path: Path | str | None = None) -> None:
        self._path = Path(path) if path is not None else API_CONFIG_PATH

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> StoredApiConfig | None:
        if not self._path.exists():
            return None
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable API config %s: %s", self._path, exc)
            return None
        if not isinstance(data, dict):
            return None
        return {
            "preset": str(data.get("preset") or AUTO_PRESET),
            "apiKey": str(data.get("apiKey") or ""),
            "baseURL": str(data.get("baseURL") or ""),
            "model": str(data.get("model") or ""),
            "schedules": [normalize_schedule(s) for s in data.get("schedules") or [] if isinstance(s, dict)],
        }

    def save(self, config: StoredApiConfig) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(config, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, self._path)

    def masked(self) -> dict[str, Any] | None:
        config = self.load()
        if config is None:
            return None
        out: dict[str, Any] = dict(config)
        key = out.pop("apiKey", "")
        out["apiKeyMasked"] = mask_secret(key)
        out["hasApiKey"] = bool(key)
        return out

    def api_options(self) -> tuple[str, ApiOptions]:
        """Stored key plus derived options. The key may be empty."""
        config = self.load()
        if config is None:
            return os.getenv("AI_API_KEY", ""), resolve_api_options(os.getenv("AI_PRESET"))
        return config["apiKey"], resolve_api_options(config["preset"], config["baseURL"], config["model"])
