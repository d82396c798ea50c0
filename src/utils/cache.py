"""Small TTL cache for cache-aside lookups.

Entries are advisory copies of reference data; callers always fall back to
the repository on a miss.
"""

import time
from typing import Any, Optional


class TTLCache:
    """In-process key/value cache with per-entry expiry."""

    def __init__(self, ttl_seconds: float = 300):
        self.ttl_seconds = ttl_seconds
        self._entries: dict[str, tuple[float, Any]] = {}

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if time.monotonic() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = (time.monotonic() + self.ttl_seconds, value)

    def __len__(self) -> int:
        return len(self._entries)
