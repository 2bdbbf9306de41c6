# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""In-process TTL cache for fetch results.

Thread-safe management of cached entries:
- Lazy expiry on read (an expired entry is a miss and is removed)
- Periodic sweep of expired entries from a background thread
- LRU eviction once max_entries is reached

The cache is an explicit object handed to the engine, not process-wide
state. Nothing is shared between processes.
"""

import hashlib
import json
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar

from quarry.core.config import CacheConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MISSING = object()


@dataclass
class CacheEntry:
    key: str
    data: Any
    expires_at: float  # time.monotonic() deadline

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


@dataclass
class CacheStats:
    keys: list[str]
    size: int
    hits: int
    misses: int
    evictions: int


def generate_key(prefix: str, params: Any) -> str:
    """Derive a cache key; mappings hash the same regardless of key order."""
    return f"{prefix}:{json.dumps(params, sort_keys=True, default=str, separators=(',', ':'))}"


def config_digest(value: Any) -> str:
    """SHA-256 of a value's canonical JSON form.

    Keys built from connection settings carry this digest instead of the
    settings, so credentials never show up in keys, stats or logs.
    """
    if hasattr(value, "model_dump"):
        value = value.model_dump()
    canonical = json.dumps(value, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class TTLCache:
    """Bounded TTL cache guarded by a re-entrant lock."""

    def __init__(
        self,
        default_ttl: float = 300.0,
        sweep_interval: float = 300.0,
        max_entries: int = 10000,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            default_ttl: Seconds an entry lives when set() gets no ttl
            sweep_interval: Seconds between background sweeps once started
            max_entries: Size bound; least recently used entries go first
            clock: Monotonic time source, replaceable in tests
        """
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.default_ttl = default_ttl
        self.sweep_interval = sweep_interval
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._stop = threading.Event()
        self._sweeper: Optional[threading.Thread] = None

    @classmethod
    def from_config(cls, config: CacheConfig) -> "TTLCache":
        return cls(
            default_ttl=config.default_ttl_seconds,
            sweep_interval=config.sweep_interval_seconds,
            max_entries=config.max_entries,
        )

    # ------------------------------------------------------------------
    # Basic operations
    # ------------------------------------------------------------------

    def _lookup(self, key: str) -> Any:
        # Caller holds the lock
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return _MISSING
        if entry.is_expired(self._clock()):
            del self._entries[key]
            self._evictions += 1
            self._misses += 1
            return _MISSING
        self._entries.move_to_end(key)
        self._hits += 1
        return entry.data

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value (shared, not copied), or None on a miss or expiry."""
        with self._lock:
            value = self._lookup(key)
        return None if value is _MISSING else value

    def set(self, key: str, data: Any, ttl: Optional[float] = None) -> None:
        """Store data under key for ttl seconds (default_ttl when None)."""
        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            self._entries[key] = CacheEntry(key=key, data=data, expires_at=self._clock() + ttl)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                self._evictions += 1
                logger.debug(f"Cache full, evicted {evicted}")

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not entry.is_expired(self._clock())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    generate_key = staticmethod(generate_key)

    def get_or_set(self, key: str, fetcher: Callable[[], T], ttl: Optional[float] = None) -> T:
        """
        Read-through helper: return the cached value or compute and store it.

        The fetcher runs outside the lock, so two callers missing at the same
        time may both fetch; the later set wins. A fetcher that raises leaves
        the cache unchanged.

        Values are stored by reference: every hit returns the same object,
        so callers that mutate a cached value must copy it first.
        """
        with self._lock:
            value = self._lookup(key)
        if value is not _MISSING:
            logger.debug(f"Cache hit: {key[:80]}")
            return value

        logger.debug(f"Cache miss: {key[:80]}")
        data = fetcher()
        self.set(key, data, ttl)
        return data

    def invalidate(self, prefix: str) -> int:
        """Delete every key starting with prefix. Returns how many went."""
        with self._lock:
            doomed = [k for k in self._entries if k.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
        if doomed:
            logger.debug(f"Invalidated {len(doomed)} cache entries with prefix '{prefix}'")
        return len(doomed)

    def sweep(self) -> int:
        """Remove every expired entry now. Returns how many went."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]
            self._evictions += len(expired)
        return len(expired)

    def get_stats(self) -> CacheStats:
        """Counters plus the keys of live entries."""
        self.sweep()
        with self._lock:
            return CacheStats(
                keys=list(self._entries),
                size=len(self._entries),
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
            )

    # ------------------------------------------------------------------
    # Background sweeper
    # ------------------------------------------------------------------

    def start(self) -> "TTLCache":
        """Start the periodic sweep thread. Safe to call twice."""
        with self._lock:
            if self._sweeper is not None and self._sweeper.is_alive():
                return self
            self._stop.clear()
            self._sweeper = threading.Thread(
                target=self._sweep_loop, name="quarry-cache-sweeper", daemon=True
            )
            self._sweeper.start()
        logger.info(f"Cache sweeper started (interval={self.sweep_interval}s)")
        return self

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Stop the sweep thread and wait for it to exit."""
        sweeper = self._sweeper
        if sweeper is None:
            return
        self._stop.set()
        sweeper.join(timeout)
        self._sweeper = None
        logger.info("Cache sweeper stopped")

    @property
    def running(self) -> bool:
        return self._sweeper is not None and self._sweeper.is_alive()

    def _sweep_loop(self) -> None:
        while not self._stop.wait(self.sweep_interval):
            removed = self.sweep()
            if removed:
                logger.debug(f"Cache sweep removed {removed} expired entries")

    def __enter__(self) -> "TTLCache":
        return self.start()

    def __exit__(self, *args) -> None:
        self.stop()


def get_or_set_cache(
    cache: TTLCache,
    key: str,
    fetcher: Callable[[], T],
    ttl: Optional[float] = None,
) -> T:
    """Read-through helper over an explicit cache instance."""
    return cache.get_or_set(key, fetcher, ttl)


def invalidate_cache(cache: TTLCache, prefix: str) -> int:
    """Delete every key in cache that starts with prefix."""
    return cache.invalidate(prefix)
