"""
In-process HTTP response cache with TTL expiry and prefix invalidation.
"""

import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional

from shared.errors import CacheConfigurationError
from shared.logging import get_logger


Clock = Callable[[], float]


def monotonic_ms() -> float:
    """Default clock: monotonic milliseconds."""
    return time.monotonic() * 1000.0


@dataclass(frozen=True)
class CacheEntry:
    """A cached response body plus the metadata needed to replay it."""

    key: str
    payload: bytes
    content_meta: Mapping[str, Any] = field(default_factory=dict)
    created_at: float = 0.0
    expires_at: float = 0.0

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    @property
    def size_bytes(self) -> int:
        return len(self.key) + len(self.payload)


@dataclass(frozen=True)
class CacheStats:
    """Point-in-time snapshot of cache state and counters."""

    entry_count: int
    hits: int
    misses: int
    approx_size_bytes: int
    evictions: int = 0


class ResponseCache:
    """Thread-safe in-memory response store.

    Entries are keyed by canonical request identity and expire lazily on
    lookup. A single lock guards the entry map and counters; every
    operation is a plain dict walk so the lock is never held across I/O.
    """

    def __init__(self, max_entries: Optional[int] = None, clock: Optional[Clock] = None):
        if max_entries is not None and max_entries < 0:
            raise CacheConfigurationError(
                "max_entries must be >= 0", {"max_entries": max_entries}
            )
        self.max_entries = max_entries or None
        self.logger = get_logger("storefront.response_cache")

        self._clock: Clock = clock or monotonic_ms
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        # Bumped on every invalidate/clear; only ever increase.
        self._generations: Dict[str, int] = {}
        self._epoch = 0

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return a fresh entry for ``key`` or ``None``, counting hit/miss."""
        self._require_key(key)
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.is_expired(now):
                del self._entries[key]
                entry = None
            if entry is None:
                self._misses += 1
                return None
            self._hits += 1
            return entry

    def set(
        self,
        key: str,
        payload: bytes,
        content_meta: Optional[Mapping[str, Any]],
        ttl_ms: float,
        generation: Optional[int] = None,
    ) -> Optional[CacheEntry]:
        """Insert or overwrite ``key``; the entry lives for ``ttl_ms``.

        When ``generation`` is given it must still equal
        ``generation(key)``; otherwise an invalidation covering ``key`` ran
        after the payload was computed and nothing is stored.
        """
        self._require_key(key)
        if isinstance(ttl_ms, bool) or not isinstance(ttl_ms, (int, float)) or ttl_ms <= 0:
            raise CacheConfigurationError("ttl_ms must be > 0", {"key": key, "ttl_ms": ttl_ms})

        now = self._clock()
        entry = CacheEntry(
            key=key,
            payload=bytes(payload),
            content_meta=dict(content_meta or {}),
            created_at=now,
            expires_at=now + ttl_ms,
        )
        with self._lock:
            if generation is not None and generation != self._generation_locked(key):
                self.logger.debug("Skipped stale cache write", key=key)
                return None
            if self.max_entries and key not in self._entries and len(self._entries) >= self.max_entries:
                self._make_room(now)
            self._entries[key] = entry
        return entry

    def invalidate(self, prefix: str) -> int:
        """Drop every entry whose key starts with ``prefix``; return the count."""
        if not isinstance(prefix, str) or not prefix:
            raise CacheConfigurationError("Invalidation prefix must be a non-empty string")

        with self._lock:
            doomed = [key for key in self._entries if key.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
            self._generations[prefix] = self._generations.get(prefix, 0) + 1

        if doomed:
            self.logger.info("Invalidated cache family", prefix=prefix, removed=len(doomed))
        return len(doomed)

    def clear(self) -> int:
        """Remove all entries unconditionally; counters are kept."""
        with self._lock:
            removed = len(self._entries)
            self._entries.clear()
            self._epoch += 1
        self.logger.info("Cleared response cache", removed=removed)
        return removed

    def generation(self, key: str) -> int:
        """Token that changes whenever an invalidation could cover ``key``."""
        self._require_key(key)
        with self._lock:
            return self._generation_locked(key)

    def sweep(self) -> int:
        """Remove all expired entries; return the count."""
        now = self._clock()
        with self._lock:
            removed = self._purge_expired(now)
        return removed

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                entry_count=len(self._entries),
                hits=self._hits,
                misses=self._misses,
                approx_size_bytes=sum(entry.size_bytes for entry in self._entries.values()),
                evictions=self._evictions,
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        """Presence check that ignores expiry and leaves counters alone."""
        with self._lock:
            return key in self._entries

    # Caller must hold self._lock.
    def _generation_locked(self, key: str) -> int:
        covering = sum(count for prefix, count in self._generations.items() if key.startswith(prefix))
        return self._epoch + covering

    # Caller must hold self._lock.
    def _purge_expired(self, now: float) -> int:
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    # Caller must hold self._lock.
    def _make_room(self, now: float) -> None:
        self._purge_expired(now)
        overflow = len(self._entries) - self.max_entries + 1
        if overflow <= 0:
            return

        oldest = sorted(self._entries.values(), key=lambda entry: entry.created_at)[:overflow]
        for entry in oldest:
            del self._entries[entry.key]
        self._evictions += len(oldest)
        self.logger.debug("Evicted oldest cache entries", evicted=len(oldest), max_entries=self.max_entries)

    @staticmethod
    def _require_key(key: str) -> None:
        if not isinstance(key, str) or not key:
            raise CacheConfigurationError("Cache key must be a non-empty string")
