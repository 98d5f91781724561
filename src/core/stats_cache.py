"""In-memory TTL cache for dashboard statistics.

Values are kept past their TTL so a stale copy can be served when the
database is unreachable. The cache is created once by the application and
injected into the services that use it.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from threading import Lock
from typing import Any

from src.api.middleware.error_handler import ServiceUnavailableError

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """A cached value with its expiration instant on the cache clock."""

    value: Any
    expires_at: float

    def is_expired(self, now: float) -> bool:
        """Check if this entry has expired."""
        return now >= self.expires_at


@dataclass
class StatsCacheConfig:
    """Configuration for statistics caching."""

    max_size: int = 1000
    default_ttl_seconds: float = 300
    cleanup_interval_seconds: int = 600
    # Expired entries older than this are dropped even though they could serve as stale
    stale_retention_seconds: float = 86400

    @classmethod
    def from_settings(cls) -> StatsCacheConfig:
        """Create config from application settings."""
        from src.core.config import get_settings

        settings = get_settings()
        return cls(
            max_size=settings.stats_cache_max_size,
            default_ttl_seconds=settings.dashboard_stats_ttl_seconds,
            stale_retention_seconds=settings.stats_stale_retention_seconds,
        )


class StatsCache:
    """Thread-safe TTL cache returning ``(value, is_stale)`` pairs."""

    def __init__(
        self,
        config: StatsCacheConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the stats cache.

        Args:
            config: Optional cache configuration.
            clock: Monotonic time source in seconds; tests pass a fake.
        """
        self.config = config or StatsCacheConfig()
        self._clock = clock
        self._cache: dict[str, CacheEntry] = {}
        self._lock = Lock()
        self._cleanup_task: asyncio.Task | None = None
        self._hits = 0
        self._misses = 0
        self._stale_served = 0

    async def get_or_load(
        self,
        key: str,
        loader: Callable[[], Awaitable[Any]],
        ttl: float | None = None,
        force: bool = False,
    ) -> tuple[Any, bool]:
        """Return the cached value for key, loading it when missing or expired.

        Args:
            key: Cache key.
            loader: Coroutine function producing a fresh value.
            ttl: Seconds the loaded value stays fresh.
            force: Reload even if the cached value is fresh.

        Returns:
            tuple: ``(value, is_stale)``. ``is_stale`` is True only when the
            loader failed with ServiceUnavailableError and an expired value
            was served instead.

        Raises:
            ServiceUnavailableError: If the loader is offline and nothing is cached.
        """
        ttl = self.config.default_ttl_seconds if ttl is None else ttl

        with self._lock:
            entry = self._cache.get(key)
            if entry is not None and not force and not entry.is_expired(self._clock()):
                self._hits += 1
                logger.debug("Cache hit for key %s", key)
                return entry.value, False
            self._misses += 1

        try:
            value = await loader()
        except ServiceUnavailableError:
            if entry is None:
                raise
            with self._lock:
                self._stale_served += 1
            logger.warning("Serving stale value for key %s: database unavailable", key)
            return entry.value, True

        self.set(key, value, ttl)
        return value, False

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Cache a value with TTL."""
        ttl = self.config.default_ttl_seconds if ttl is None else ttl
        expires_at = self._clock() + ttl

        with self._lock:
            if key not in self._cache and len(self._cache) >= self.config.max_size:
                self._evict_oldest()
            self._cache[key] = CacheEntry(value=value, expires_at=expires_at)
            logger.debug("Cached key %s (expires in %ss)", key, ttl)

    def invalidate(self, key: str) -> bool:
        """Drop a single key.

        Returns:
            True if the key was present.
        """
        with self._lock:
            return self._cache.pop(key, None) is not None

    def _evict_oldest(self) -> None:
        """Evict oldest entries to make room. Must be called with lock held."""
        to_remove = max(1, len(self._cache) // 10)
        sorted_entries = sorted(self._cache.items(), key=lambda x: x[1].expires_at)
        for key, _ in sorted_entries[:to_remove]:
            del self._cache[key]
        logger.debug("Evicted %d entries from stats cache", to_remove)

    def cleanup(self) -> int:
        """Remove entries expired for longer than the stale retention window.

        Returns:
            Number of entries removed.
        """
        cutoff = self._clock() - self.config.stale_retention_seconds
        with self._lock:
            old_keys = [k for k, v in self._cache.items() if v.expires_at < cutoff]
            for key in old_keys:
                del self._cache[key]
            return len(old_keys)

    def clear(self) -> int:
        """Clear all cached entries.

        Returns:
            Number of entries cleared.
        """
        with self._lock:
            count = len(self._cache)
            self._cache.clear()
            logger.info("Cleared %d entries from stats cache", count)
            return count

    def get_stats(self) -> dict:
        """Get cache statistics for monitoring."""
        now = self._clock()
        with self._lock:
            valid_count = sum(1 for v in self._cache.values() if not v.is_expired(now))
            return {
                "total_entries": len(self._cache),
                "valid_entries": valid_count,
                "expired_entries": len(self._cache) - valid_count,
                "hits": self._hits,
                "misses": self._misses,
                "stale_served": self._stale_served,
                "max_size": self.config.max_size,
            }

    async def start_cleanup_task(self) -> None:
        """Start background cleanup task."""
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())
            logger.info("Stats cache cleanup task started")

    async def stop_cleanup_task(self) -> None:
        """Stop background cleanup task."""
        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None
            logger.info("Stats cache cleanup task stopped")

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.cleanup_interval_seconds)
            count = self.cleanup()
            if count > 0:
                logger.debug("Stats cache cleaned up %d old entries", count)
