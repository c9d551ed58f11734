"""
Thread-safe TTL cache for transient pipeline state.

Holds reprocess bundles and per-job subtitle overrides. Each entry carries
its own expiry so that long-lived bundles and short-lived overrides can
share one store.
"""

import time
from threading import Lock
from typing import Any, Dict, Optional

from reelforge.config import (
    REPROCESS_TTL_SECONDS,
    SUBTITLE_OVERRIDE_TTL_SECONDS,
    logger,
)


class TTLCache:
    """Simple thread-safe TTL cache."""

    def __init__(self, default_ttl_seconds: int = 1800, clock=time.time):
        """
        Initialize cache.

        Args:
            default_ttl_seconds: TTL applied when set() is called without one.
            clock: Time source, injectable for tests.
        """
        self._cache: Dict[str, tuple[Any, float]] = {}
        self._lock = Lock()
        self._default_ttl = default_ttl_seconds
        self._clock = clock

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache if it exists and hasn't expired."""
        with self._lock:
            if key not in self._cache:
                return None

            value, expires_at = self._cache[key]
            if self._clock() >= expires_at:
                del self._cache[key]
                logger.debug(f"Cache expired for key: {key}")
                return None

            logger.debug(f"Cache hit for key: {key}")
            return value

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """
        Store value with an expiry of ttl seconds from now.

        Expired entries are dropped on every write, so keys that are never
        read again do not accumulate.
        """
        ttl_seconds = self._default_ttl if ttl is None else ttl
        with self._lock:
            now = self._clock()
            self._purge_locked(now)
            self._cache[key] = (value, now + ttl_seconds)
            logger.debug(f"Cache set for key: {key} (ttl: {ttl_seconds}s)")

    def delete(self, key: str) -> bool:
        """Remove a key. Returns True if it was present."""
        with self._lock:
            if key in self._cache:
                del self._cache[key]
                logger.debug(f"Cache invalidated for key: {key}")
                return True
            return False

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns how many were removed."""
        with self._lock:
            return self._purge_locked(self._clock())

    def _purge_locked(self, now: float) -> int:
        expired = [key for key, (_, expires_at) in self._cache.items() if now >= expires_at]
        for key in expired:
            del self._cache[key]
        if expired:
            logger.debug(f"Purged {len(expired)} expired cache entries")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def clear(self) -> None:
        """Clear all cache entries."""
        with self._lock:
            self._cache.clear()
            logger.debug("Cache cleared")


def reprocess_key(job_id: str, clip_id: Optional[str] = None) -> str:
    if clip_id is None:
        return f"reprocess:{job_id}"
    return f"reprocess:{job_id}:{clip_id}"


def subtitle_key(job_id: str, clip_id: Optional[str] = None) -> str:
    return f"subtitle:{job_id}:{clip_id or 'global'}"


# Global cache instance shared by the pipeline and the API routers
_pipeline_cache = TTLCache(default_ttl_seconds=REPROCESS_TTL_SECONDS)


def get_pipeline_cache() -> TTLCache:
    """Get the global pipeline cache instance."""
    return _pipeline_cache


def store_subtitle_override(
    cache: TTLCache,
    job_id: str,
    preferences: Dict[str, Any],
    clip_id: Optional[str] = None,
) -> None:
    cache.set(subtitle_key(job_id, clip_id), preferences, ttl=SUBTITLE_OVERRIDE_TTL_SECONDS)
