from __future__ import annotations

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def _safe_read_json(path: Path, default: Any) -> Any:
    """Load a JSON file, returning `default` when missing or unreadable."""
    if not path.exists():
        return default
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Could not read %s (%s), starting empty", path, exc)
        return default


def _atomic_write_json(path: Path, payload: Any) -> None:
    """Write to a temp file, then swap it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)
    os.replace(tmp_path, path)


class JsonFileStore:
    """Namespaced key-value store, one JSON document per namespace.

    `path` names the base file: namespace `digests` of `data/digest.db.json`
    lives in `data/digest.db.digests.json`, so writing one namespace never
    rewrites another. Namespaces load on first use. `path=None` keeps
    everything in memory. Values are deep-copied on the way in and out so
    callers never alias stored state.
    """

    def __init__(self, path: Path | str | None = None) -> None:
        self._path = Path(path) if path is not None else None
        self._data: dict[str, dict[str, Any]] = {}

    @property
    def path(self) -> Path | None:
        return self._path

    def namespace_path(self, namespace: str) -> Path | None:
        if self._path is None:
            return None
        return self._path.with_name(f"{self._path.stem}.{namespace}{self._path.suffix}")

    def _namespace(self, namespace: str) -> dict[str, Any]:
        bucket = self._data.get(namespace)
        if bucket is None:
            path = self.namespace_path(namespace)
            loaded = _safe_read_json(path, {}) if path is not None else {}
            bucket = loaded if isinstance(loaded, dict) else {}
            self._data[namespace] = bucket
        return bucket

    def _flush(self, namespace: str) -> None:
        path = self.namespace_path(namespace)
        if path is not None:
            _atomic_write_json(path, self._data[namespace])

    def get(self, namespace: str, key: str, default: Any = None) -> Any:
        bucket = self._namespace(namespace)
        if key not in bucket:
            return default
        return copy.deepcopy(bucket[key])

    def set(self, namespace: str, key: str, value: Any) -> None:
        self._namespace(namespace)[key] = copy.deepcopy(value)
        self._flush(namespace)

    def delete(self, namespace: str, key: str) -> bool:
        bucket = self._namespace(namespace)
        if key not in bucket:
            return False
        del bucket[key]
        self._flush(namespace)
        return True

    def delete_many(self, namespace: str, keys: list[str]) -> int:
        bucket = self._namespace(namespace)
        removed = 0
        for key in keys:
            if key in bucket:
                del bucket[key]
                removed += 1
        if removed:
            self._flush(namespace)
        return removed

    def items(self, namespace: str) -> list[tuple[str, Any]]:
        bucket = self._namespace(namespace)
        return [(key, copy.deepcopy(bucket[key])) for key in sorted(bucket)]

    def count(self, namespace: str) -> int:
        return len(self._namespace(namespace))
