"""In-memory TTL cache for query results."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
import logging
import threading
import time

from ..sdp import Item, QueryError, QueryMethod

logger = logging.getLogger(__name__)

DEFAULT_CACHE_DURATION = 600.0  # seconds
PURGE_INTERVAL = 60.0  # seconds

CacheKey = Tuple[str, str, str, str, str]


def cache_key(source_name: str, method: QueryMethod, scope: str, item_type: str, query: str = "") -> CacheKey:
    # LIST results are independent of the query string
    if method == QueryMethod.LIST:
        query = ""
    return (source_name, method.value, scope, item_type, query)


@dataclass
class _Entry:
    expires: float
    items: List[Item] = field(default_factory=list)
    error: Optional[QueryError] = None


class Cache:
    """Stores items and non-transient errors keyed by query."""

    def __init__(self, clock=time.monotonic, purge_interval: float = PURGE_INTERVAL):
        self._entries: Dict[CacheKey, _Entry] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self._purge_interval = purge_interval
        self._next_purge = clock() + purge_interval

    def lookup(
        self,
        source_name: str,
        method: QueryMethod,
        scope: str,
        item_type: str,
        query: str = "",
        ignore_cache: bool = False,
    ) -> Tuple[bool, CacheKey, List[Item], Optional[QueryError]]:
        """
        Look up a cached result.

        Returns:
            Tuple of (hit, key, items, error). When an error is returned the
            caller should raise it.
        """
        key = cache_key(source_name, method, scope, item_type, query)
        if ignore_cache:
            return False, key, [], None

        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False, key, [], None
            if entry.expires <= self._clock():
                del self._entries[key]
                return False, key, [], None
            return True, key, list(entry.items), entry.error

    def store_items(self, items: List[Item], duration: float, key: CacheKey):
        """Replace the cached result for a key. An empty list caches "no results"."""
        with self._lock:
            now = self._clock()
            self._entries[key] = _Entry(expires=now + duration, items=list(items))
            self._purge_due(now)

    def store_error(self, err: QueryError, duration: float, key: CacheKey):
        with self._lock:
            now = self._clock()
            self._entries[key] = _Entry(expires=now + duration, error=err)
            self._purge_due(now)
        logger.debug(f"Cached {err.error_type.value} error for {key}")

    def purge(self) -> int:
        """Remove every expired entry and return how many were removed."""
        with self._lock:
            return self._purge(self._clock())

    def _purge_due(self, now: float):
        # Caller holds the lock
        if now >= self._next_purge:
            self._purge(now)

    def _purge(self, now: float) -> int:
        expired = [key for key, entry in self._entries.items() if entry.expires <= now]
        for key in expired:
            del self._entries[key]
        self._next_purge = now + self._purge_interval
        if expired:
            logger.debug(f"Purged {len(expired)} expired cache entries")
        return len(expired)

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
