from __future__ import annotations

import json
import time
from hashlib import sha256
from pathlib import Path
from typing import Any, Callable

"""
On-disk JSON cache for mapping-service responses.

Reverse-geocoding the same parking spot over and over costs API quota for an address
that practically never changes, so the maps client keeps results here:
- one JSON file per (namespace, key), file name = SHA-256 of the key,
- TTL enforced on read,
- writes via temporary file + atomic replace.
"""


class FileCache:
    """A filesystem-backed cache keyed by (namespace, key)."""

    def __init__(self, base_dir: Path, enabled: bool = True, default_ttl_seconds: int = 86400):
        self._base_dir = Path(base_dir)
        self._enabled = enabled
        self._default_ttl_seconds = default_ttl_seconds

    def _key_path(self, namespace: str, key: str) -> Path:
        digest = sha256(f"{namespace}:{key}".encode("utf-8")).hexdigest()
        return self._base_dir / namespace / f"{digest}.json"

    def get(self, namespace: str, key: str, ttl_seconds: int | None = None) -> Any | None:
        """Return a cached value if present and fresh, else None.

        Unreadable or corrupt entries count as misses.
        """
        if not self._enabled:
            return None
        path = self._key_path(namespace, key)
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            created_at = int(raw["created_at_unix"])
            ttl = ttl_seconds if ttl_seconds is not None else int(raw["ttl_seconds"])
        except (OSError, ValueError, KeyError, TypeError):
            return None
        if int(time.time()) - created_at > ttl:
            return None
        return raw.get("value")

    def set(self, namespace: str, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        if not self._enabled:
            return
        path = self._key_path(namespace, key)
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "created_at_unix": int(time.time()),
            "ttl_seconds": int(ttl_seconds if ttl_seconds is not None else self._default_ttl_seconds),
            "value": value,
        }
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
        tmp.replace(path)

    def get_or_set(
        self,
        namespace: str,
        key: str,
        builder: Callable[[], Any],
        ttl_seconds: int | None = None,
    ) -> Any:
        """Return the cached value, or compute it with `builder()` and store it.

        Exceptions from `builder` propagate and nothing is stored.
        """
        cached = self.get(namespace, key, ttl_seconds=ttl_seconds)
        if cached is not None:
            return cached
        value = builder()
        self.set(namespace, key, value, ttl_seconds=ttl_seconds)
        return value
