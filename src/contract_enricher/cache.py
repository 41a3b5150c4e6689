"""Disk caching utilities using diskcache."""

from typing import Any, Optional
import diskcache as dc
from .config import settings

# Global cache instance
_cache: Optional[dc.Cache] = None


def get_cache() -> dc.Cache:
    """Get or create the global cache instance."""
    global _cache
    if _cache is None:
        _cache = dc.Cache(
            directory=settings.cache_dir,
            size_limit=1024 * 1024 * 1024,  # 1GB
            eviction_policy="least-recently-used",
        )
    return _cache


def cache_key(prefix: str, *parts: str) -> str:
    """Build a namespaced cache key."""
    return ":".join((prefix, *parts))


def default_ttl() -> int:
    """Default entry lifetime in seconds."""
    return settings.cache_ttl_days * 24 * 60 * 60


def clear_cache() -> None:
    """Clear all cached data."""
    cache = get_cache()
    cache.clear()


def cache_stats() -> dict[str, Any]:
    """Get cache statistics."""
    cache = get_cache()
    return {
        "size": len(cache),
        "volume": cache.volume(),
        "statistics": cache.stats(enable=True),
    }
