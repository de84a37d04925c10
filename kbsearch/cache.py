"""
Query result cache.

Entries are keyed by the SHA-256 of the normalized QuerySpec and remember
the index generation they were computed against. An entry is served only
while:

    entry.generation_version == current version  AND  now < entry.expires_at

Publishing a generation therefore invalidates every entry at once without
touching the cache; stale entries are dropped when next looked up, by
purge_expired(), or by LRU eviction once capacity is reached.

Lookups read the OrderedDict without locking; recency updates, inserts and
evictions take a short lock.
"""

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from .clock import SystemClock
from .models import QuerySpec, SearchResults
from .query.filters import DIMENSION_ALIASES
from .utils import stable_hash

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    key: str
    result: SearchResults
    generation_version: int
    expires_at: datetime


def _normalize_filter_value(value: Any) -> Any:
    if isinstance(value, (list, tuple, set, frozenset)):
        return sorted({str(v) for v in value})
    return value


def cache_key(spec: QuerySpec) -> str:
    """
    Stable key for a query spec.

    Defaults are filled in by the model, filter aliases are resolved and
    filter value lists are order-independent, so equivalent specs share a key.
    """
    payload = spec.model_dump(mode="json")
    payload["filters"] = {
        DIMENSION_ALIASES.get(key, key): _normalize_filter_value(value)
        for key, value in sorted(spec.filters.items())
    }
    return stable_hash(payload)


class QueryCache:
    """
    Bounded LRU of materialized SearchResults.

    Args:
        capacity: Maximum number of entries
        ttl_seconds: Entry lifetime
        clock: Time source (ManualClock in tests)
    """

    def __init__(self, capacity: int = 512, ttl_seconds: float = 300.0, clock=None):
        self.capacity = capacity
        self.ttl = timedelta(seconds=ttl_seconds)
        self.clock = clock or SystemClock()
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str, version: int) -> Optional[SearchResults]:
        """Cached results if still valid for `version`, else None"""
        entry = self._entries.get(key)
        if entry is None:
            with self._lock:
                self.misses += 1
            return None

        if entry.generation_version != version or self.clock.now() >= entry.expires_at:
            with self._lock:
                self.misses += 1
                if self._entries.get(key) is entry:
                    del self._entries[key]
            logger.debug(f"Cache entry {key[:12]} stale (v{entry.generation_version}, current v{version})")
            return None

        with self._lock:
            self.hits += 1
            if key in self._entries:
                self._entries.move_to_end(key)
        logger.debug(f"Cache hit {key[:12]}")
        return entry.result

    def put(self, key: str, result: SearchResults, version: int) -> CacheEntry:
        entry = CacheEntry(
            key=key,
            result=result,
            generation_version=version,
            expires_at=self.clock.now() + self.ttl,
        )
        with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
            elif len(self._entries) >= self.capacity:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Cache evicted {evicted[:12]}")
            self._entries[key] = entry
        return entry

    def purge_expired(self, version: Optional[int] = None) -> int:
        """
        Drop expired entries (and, if `version` is given, entries of other
        generations). Returns the number dropped.
        """
        now = self.clock.now()
        with self._lock:
            stale = [
                key for key, entry in self._entries.items()
                if now >= entry.expires_at or (version is not None and entry.generation_version != version)
            ]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.info(f"Purged {len(stale)} stale cache entries")
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    @property
    def stats(self) -> Dict[str, Any]:
        lookups = self.hits + self.misses
        return {
            "size": len(self._entries),
            "capacity": self.capacity,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": round(self.hits / lookups, 3) if lookups else 0.0,
        }
