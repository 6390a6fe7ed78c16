"""
In-memory response cache for GET operations.

- LRU ordering: a hit moves the entry to the most-recently-used end
- one TTL for every entry, reset on write or revalidation
- entries carry the upstream ETag so stale ones can be revalidated

There is no lock. Two concurrent misses for the same key both fetch and the
last write wins.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Optional

from .models import CacheEntry, ContentKind


logger = logging.getLogger(__name__)


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    stale: int = 0
    revalidations: int = 0
    evictions: int = 0
    size: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ResponseCache:
    def __init__(
        self,
        max_entries: int = 500,
        ttl_seconds: float = 60.0,
        now_fn: Callable[[], float] = time.monotonic,
        debug: bool = False,
    ) -> None:
        self.max_entries = max(1, max_entries)
        self.ttl_seconds = max(0.0, ttl_seconds)
        self._now = now_fn
        self._debug = debug
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._stats = CacheStats()

    def get(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            self._stats.misses += 1
            self._log("miss %s", key)
            return None
        self._entries.move_to_end(key)
        if self.is_fresh(entry):
            self._stats.hits += 1
            self._log("hit %s", key)
        else:
            self._stats.stale += 1
            self._log("stale %s etag=%s", key, entry.etag or "-")
        return entry

    def put(self, key: str, entry: CacheEntry) -> None:
        self._entries.pop(key, None)
        self._entries[key] = entry
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            self._stats.evictions += 1
            self._log("evict %s", evicted)

    def store(
        self, key: str, text: str, kind: ContentKind, etag: Optional[str] = None
    ) -> CacheEntry:
        entry = CacheEntry(text=text, kind=kind, etag=etag, expires_at=self._expiry())
        self.put(key, entry)
        self._log("store %s etag=%s", key, etag or "-")
        return entry

    def refresh(self, key: str) -> Optional[CacheEntry]:
        """Mark an entry revalidated: new expiry, body untouched."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        entry.expires_at = self._expiry()
        self.put(key, entry)
        self._stats.revalidations += 1
        self._log("revalidated %s", key)
        return entry

    def is_fresh(self, entry: CacheEntry) -> bool:
        return self._now() < entry.expires_at

    def clear(self) -> None:
        self._entries.clear()

    @property
    def stats(self) -> CacheStats:
        self._stats.size = len(self._entries)
        return self._stats

    def keys(self):  # type: ignore[no-untyped-def]
        return list(self._entries.keys())

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def _expiry(self) -> float:
        return self._now() + self.ttl_seconds

    def _log(self, message: str, *args: Any) -> None:
        if self._debug:
            logger.debug("[cache] " + message, *args)
