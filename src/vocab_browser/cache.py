"""
Caches for parsed vocabulary configuration.

Any object with ``get(key)`` and ``put(key, value)`` can be handed to the
registry loader. Keys are content fingerprints of the configuration file, so a
changed file never hits a stale entry. Values must be JSON serialisable.
"""
from __future__ import annotations

import hashlib
import json
import logging
import time
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = 60 * 60 * 24 * 30  # 30 days


def fingerprint(data: bytes) -> str:
    """Return a stable content key for raw configuration bytes."""
    return hashlib.sha256(data).hexdigest()


class ConfigCache(Protocol):
    def get(self, key: str) -> Any | None: ...

    def put(self, key: str, value: Any) -> None: ...


class NullCache:
    """Cache that never stores anything (caching disabled)."""

    def get(self, key: str) -> Any | None:
        return None

    def put(self, key: str, value: Any) -> None:
        pass


class MemoryCache:
    """Process-local dictionary cache."""

    def __init__(self):
        self._data: dict[str, Any] = {}

    def get(self, key: str) -> Any | None:
        return self._data.get(key)

    def put(self, key: str, value: Any) -> None:
        self._data[key] = value

    def __len__(self) -> int:
        return len(self._data)


class FileCache:
    """JSON files in a directory, one per key, expiring after a TTL."""

    def __init__(self, cache_dir: Path, ttl: int = CACHE_TTL_SECONDS):
        self.cache_dir = Path(cache_dir)
        self.ttl = ttl

    def _path(self, key: str) -> Path:
        # Use hash to avoid filesystem issues with special characters
        key_hash = hashlib.sha256(key.encode()).hexdigest()[:16]
        safe_key = "".join(c if c.isalnum() else "_" for c in key[:32])
        return self.cache_dir / f"{safe_key}_{key_hash}.json"

    def get(self, key: str) -> Any | None:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.debug("Cache read failed for %s: %s", path, e)
            return None
        if time.time() - data.get("_cached_at", 0) > self.ttl:
            return None
        return data.get("value")

    def put(self, key: str, value: Any) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(path, "w", encoding="utf-8") as f:
                json.dump({"_cached_at": time.time(), "value": value}, f, ensure_ascii=False, indent=2)
        except OSError as e:
            logger.warning("Cache write failed for %s: %s", path, e)

    def clear(self) -> int:
        """Delete all cache files. Returns the number of files deleted."""
        if not self.cache_dir.exists():
            return 0
        count = 0
        for cache_file in self.cache_dir.glob("*.json"):
            try:
                cache_file.unlink()
                count += 1
            except OSError:
                pass
        return count

    def stats(self) -> dict[str, Any]:
        """Return the number of entries and their total size in bytes."""
        if not self.cache_dir.exists():
            return {"entries": 0, "bytes": 0}
        files = list(self.cache_dir.glob("*.json"))
        return {"entries": len(files), "bytes": sum(f.stat().st_size for f in files)}
