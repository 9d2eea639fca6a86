"""Bounded TTL cache store.

This module wraps :class:`cachetools.LRUCache` with per-entry expiration. The
LRU cache owns size bounding and recency bookkeeping; this wrapper adds the
expiry check on read, pattern invalidation, and a diagnostics snapshot.

Expiry is lazy: an expired entry is only dropped when it is read, overwritten,
evicted, invalidated, or swept by :meth:`CacheStore.purge_expired`. There is
no background timer.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Iterable, List, Optional, Tuple

from cachetools import Cache, LRUCache  # type: ignore[import-untyped]

from ..config.models import CacheStoreConfig
from .keys import function_name_of
from .models import CacheEntry, CacheEntryStats, CacheStats

logger = logging.getLogger(__name__)

Timer = Callable[[], float]


class _EvictingLRUCache(LRUCache):
    """LRU cache that logs capacity evictions."""

    def __init__(self, maxsize: int, store_name: str) -> None:
        super().__init__(maxsize=maxsize)
        self._store_name = store_name

    def popitem(self) -> Tuple[str, CacheEntry]:
        key, entry = super().popitem()
        logger.debug(
            "cache.evicted",
            extra={"store": self._store_name, "key": key, "max_size": self.maxsize},
        )
        return key, entry


class CacheStore:
    """In-memory cache with a size bound and a default time-to-live.

    Parameters
    ----------
    name: str
        Label used in logs and stats (e.g. "static", "dynamic", "user").
    max_size: int
        Maximum number of entries. Inserting a new key into a full store
        evicts the least-recently-used entry first.
    default_ttl_ms: int
        TTL applied when :meth:`set` is called without one.
    timer: Callable[[], float]
        Clock returning seconds. Defaults to :func:`time.monotonic`; tests
        pass a manual clock.
    """

    def __init__(
        self,
        name: str = "default",
        max_size: int = 100,
        default_ttl_ms: int = 5 * 60 * 1000,
        *,
        timer: Timer = time.monotonic,
    ) -> None:
        if max_size < 1:
            raise ValueError(f"max_size must be at least 1, got {max_size}")
        if default_ttl_ms <= 0:
            raise ValueError(f"default_ttl_ms must be positive, got {default_ttl_ms}")
        self._name = name
        self._max_size = max_size
        self._default_ttl_ms = default_ttl_ms
        self._timer = timer
        self._entries = _EvictingLRUCache(max_size, name)

    @classmethod
    def from_config(
        cls, name: str, config: CacheStoreConfig, *, timer: Timer = time.monotonic
    ) -> "CacheStore":
        """Build a store from its validated configuration."""
        return cls(
            name,
            max_size=config.max_size,
            default_ttl_ms=config.default_ttl_ms,
            timer=timer,
        )

    @property
    def name(self) -> str:
        return self._name

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def default_ttl_ms(self) -> int:
        return self._default_ttl_ms

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        # Physical presence only; expired entries still count.
        return key in self._entries

    def _peek(self, key: str) -> CacheEntry:
        # Cache.__getitem__ skips LRUCache's recency update.
        return Cache.__getitem__(self._entries, key)

    def get(self, key: str, default: Any = None) -> Any:
        """Return the live value for ``key`` or ``default``.

        A hit marks the entry as most recently used. An expired entry is
        removed and reported as missing.
        """
        if key not in self._entries:
            return default
        entry: CacheEntry = self._entries[key]
        if entry.is_expired(self._timer()):
            del self._entries[key]
            logger.debug("cache.expired", extra={"store": self._name, "key": key})
            return default
        return entry.value

    def set(self, key: str, value: Any, ttl_ms: Optional[int] = None) -> None:
        """Insert or overwrite ``key``.

        ``ttl_ms`` falls back to the store default when omitted or not
        positive, so every entry expires strictly after it was created.
        """
        ttl = ttl_ms if ttl_ms is not None and ttl_ms > 0 else self._default_ttl_ms
        now = self._timer()
        self._entries[key] = CacheEntry(
            key=key, value=value, created_at=now, expires_at=now + ttl / 1000.0
        )

    def invalidate(self, patterns: Iterable[str]) -> int:
        """Remove entries whose function name starts with any pattern.

        Only the part of the key before the first ``:`` is compared, so one
        pattern purges every argument variant of a read function. Empty
        patterns are ignored.

        Returns
        -------
        int
            Number of entries removed.
        """
        prefixes = tuple(p for p in patterns if p)
        if not prefixes:
            return 0
        doomed = [
            key for key in self._entries if function_name_of(key).startswith(prefixes)
        ]
        for key in doomed:
            del self._entries[key]
        if doomed:
            logger.debug(
                "cache.invalidated",
                extra={
                    "store": self._name,
                    "patterns": list(prefixes),
                    "removed": len(doomed),
                },
            )
        return len(doomed)

    def clear(self) -> None:
        """Drop every entry."""
        # MutableMapping.clear() goes through popitem() and would log each
        # entry as an eviction.
        self._entries = _EvictingLRUCache(self._max_size, self._name)

    def purge_expired(self) -> int:
        """Remove all expired entries and return how many were dropped."""
        now = self._timer()
        expired = [key for key in self._entries if self._peek(key).is_expired(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def get_stats(self) -> CacheStats:
        """Return a diagnostics snapshot without touching recency or expiry."""
        now = self._timer()
        entries: List[CacheEntryStats] = []
        for key in list(self._entries):
            entry = self._peek(key)
            entries.append(
                CacheEntryStats(
                    key=key,
                    is_expired=entry.is_expired(now),
                    age_ms=max(0, int((now - entry.created_at) * 1000)),
                    ttl_ms=entry.ttl_ms,
                )
            )
        return CacheStats(
            name=self._name,
            size=len(self._entries),
            max_size=self._max_size,
            default_ttl_ms=self._default_ttl_ms,
            entries=entries,
        )
