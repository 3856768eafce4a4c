"""In-process result cache keyed by a digest of the canonical request."""

from __future__ import annotations

import hashlib
import json
import logging
from typing import Any

logger = logging.getLogger("studyview.cache")


def cache_key(operation: str, payload: Any) -> str:
    """SHA-1 of the canonical JSON encoding of ``(operation, payload)``."""

    canonical = json.dumps([operation, payload], sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha1(canonical.encode("utf-8")).hexdigest()


class ResultCache:
    """Unlocked memo of immutable results.

    Concurrent identical requests may both compute and both store; the last
    write wins. Values must be tuples of frozen records.
    """

    def __init__(self, max_entries: int = 1024) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self._entries: dict[str, tuple[Any, ...]] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> tuple[Any, ...] | None:
        value = self._entries.get(key)
        if value is None:
            self.misses += 1
        else:
            self.hits += 1
        return value

    def put(self, key: str, value: tuple[Any, ...]) -> None:
        if not isinstance(value, tuple):
            raise TypeError("Cached values must be tuples")
        if key not in self._entries and len(self._entries) >= self.max_entries:
            oldest = next(iter(self._entries))
            self._entries.pop(oldest, None)
            logger.debug("Evicted cached result %s", oldest)
        self._entries[key] = value

    def clear(self) -> None:
        self._entries.clear()
