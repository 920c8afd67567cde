"""Bounded, time-expiring memo of conversion results.

Entries expire lazily: an entry older than the TTL is dropped by the read that finds it.
When the cache is full, `put` evicts the entry with the oldest *creation* time, which is not
necessarily the least recently used one.

Each primitive step (lookup, eviction, insertion) holds the internal lock on its own; the
check-capacity/evict/insert sequence as a whole is not atomic, so under concurrent writers the
size may transiently dip below or exceed `max_size` by a few entries.

Examples:
    >>> cache = ConversionCache(max_size=2)
    >>> key = CacheKey(1.0, 'm', 'cm')
    >>> cache.get_or_compute(key, lambda: 100.0)
    100.0
    >>> cache.get(key)
    100.0
"""
from __future__ import annotations

import threading
import time
from typing import Callable, Dict, NamedTuple, Optional, Tuple

from py_ecu.definitions import Number
from py_ecu.exceptions import InvalidArgumentError
from py_ecu.logger import logger

__all__ = (
    'CacheKey',
    'CacheStats',
    'ConversionCache',
    'DEFAULT_MAX_SIZE',
    'DEFAULT_TTL',
    'default_cache',
    'configure_default_cache',
    'cached_convert',
)

DEFAULT_MAX_SIZE: int = 1000
DEFAULT_TTL: float = 60 * 60.0  # seconds

Clock = Callable[[], float]


class CacheKey(NamedTuple):
    """`generation` identifies the registry snapshot the result was computed against."""

    value: float
    from_unit: str
    to_unit: str
    precision: int = -1
    generation: int = 0


class CacheStats(NamedTuple):
    """Ages are in seconds; None while the cache is empty."""

    size: int
    oldest_entry_age: Optional[float]
    newest_entry_age: Optional[float]


class ConversionCache:
    """Memo of ``(value, from_unit, to_unit, precision) -> result``."""

    __slots__ = ('max_size', 'ttl', '_clock', '_entries', '_lock')

    def __init__(self, max_size: int = DEFAULT_MAX_SIZE, ttl: float = DEFAULT_TTL, clock: Clock = time.monotonic):
        if not isinstance(max_size, int) or max_size <= 0:
            raise InvalidArgumentError(f"Cache size must be a positive integer, got {max_size!r}")
        if not isinstance(ttl, (int, float)) or ttl <= 0:
            raise InvalidArgumentError(f"Cache TTL must be positive, got {ttl!r}")
        self.max_size = max_size
        self.ttl = float(ttl)
        self._clock = clock
        self._entries: Dict[CacheKey, Tuple[float, float]] = {}  # key -> (result, created)
        self._lock = threading.Lock()

    def get(self, key: CacheKey) -> Optional[float]:
        """Cached result, or None when absent or expired. Expired entries are removed."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            result, created = entry
            if now - created > self.ttl:
                del self._entries[key]
                logger.debug(f"Cache entry expired: {key}")
                return None
            return result

    def put(self, key: CacheKey, result: float) -> None:
        if self._is_full():
            self._evict_oldest()
        created = self._clock()
        with self._lock:
            self._entries[key] = (result, created)

    def get_or_compute(self, key: CacheKey, compute: Callable[[], float]) -> float:
        """Return the cached result, computing and storing it on a miss."""
        cached = self.get(key)
        if cached is not None:
            return cached
        result = compute()
        self.put(key, result)
        return result

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def get_stats(self) -> CacheStats:
        now = self._clock()
        with self._lock:
            created = [c for _, c in self._entries.values()]
        if not created:
            return CacheStats(0, None, None)
        return CacheStats(len(created), now - min(created), now - max(created))

    def _is_full(self) -> bool:
        with self._lock:
            return len(self._entries) >= self.max_size

    def _evict_oldest(self) -> None:
        with self._lock:
            if not self._entries:
                return
            oldest = min(self._entries, key=lambda k: self._entries[k][1])
            del self._entries[oldest]
        logger.debug(f"Cache full, evicted {oldest}")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, CacheKey) and self.get(key) is not None

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}: {len(self)}/{self.max_size}, ttl={self.ttl}s>"


_default_cache: Optional[ConversionCache] = None
_default_cache_lock = threading.Lock()


def default_cache() -> ConversionCache:
    """Process-wide cache, created on first use."""
    global _default_cache
    with _default_cache_lock:
        if _default_cache is None:
            _default_cache = ConversionCache()
        return _default_cache


def configure_default_cache(max_size: int = DEFAULT_MAX_SIZE, ttl: float = DEFAULT_TTL) -> ConversionCache:
    """Replace the process-wide cache with an empty one of the given size and TTL."""
    global _default_cache
    cache = ConversionCache(max_size, ttl)
    with _default_cache_lock:
        _default_cache = cache
    logger.debug(f"Default conversion cache configured: {cache!r}")
    return cache


def cached_convert(value: Number, from_unit: str, to_unit: str, compute: Callable[[], float],
                   precision: int = -1, generation: int = 0) -> float:
    """Read-through conversion against the process-wide cache."""
    key = CacheKey(float(value), from_unit, to_unit, precision, generation)
    return default_cache().get_or_compute(key, compute)
