"""
Cache service for high-level caching operations.
Provides convenient methods for common caching patterns.
"""

from typing import Any, Optional, Callable, Awaitable, Dict
import hashlib
import json

from app.infrastructure.cache.memory_cache import CacheKind, MemoryCache, get_memory_cache
from app.core.logging import get_logger

logger = get_logger(__name__)


class CacheService:
    """High-level cache service with common caching patterns."""

    def __init__(self, cache: Optional[MemoryCache] = None):
        """Initialize cache service."""
        self._cache = cache

    def _get_cache(self) -> MemoryCache:
        """Get memory cache instance."""
        if not self._cache:
            self._cache = get_memory_cache()
        return self._cache

    async def get(self, kind: CacheKind, key: str) -> Optional[Any]:
        """
        Get value from cache.

        Args:
            kind (CacheKind): Cache partition
            key (str): Cache key

        Returns:
            Optional[Any]: Cached value or None
        """
        try:
            return self._get_cache().get(kind, key)
        except Exception as e:
            logger.warning(f"Cache read failed for {kind}:{key}, treating as miss: {e}")
            return None

    async def set(
        self,
        kind: CacheKind,
        key: str,
        value: Any,
        ttl: Optional[float] = None
    ) -> bool:
        """
        Set value in cache.

        Args:
            kind (CacheKind): Cache partition
            key (str): Cache key
            value (Any): Value to cache
            ttl (Optional[float]): Seconds to live; the kind's default when omitted

        Returns:
            bool: True if successful
        """
        try:
            self._get_cache().set(kind, key, value, ttl)
            return True
        except Exception as e:
            logger.warning(f"Cache write failed for {kind}:{key}: {e}")
            return False

    async def delete(self, kind: CacheKind, key: str) -> bool:
        """
        Delete key from cache.

        Args:
            kind (CacheKind): Cache partition
            key (str): Cache key to delete

        Returns:
            bool: True if deleted
        """
        return self._get_cache().delete(kind, key)

    def generate_key(self, prefix: str, *args, **kwargs) -> str:
        """
        Generate a cache key from prefix and arguments.

        Args:
            prefix (str): Key prefix
            *args: Positional arguments to include in key
            **kwargs: Keyword arguments to include in key

        Returns:
            str: Generated cache key
        """
        key_parts = [prefix]

        for arg in args:
            if isinstance(arg, (dict, list)):
                key_parts.append(json.dumps(arg, sort_keys=True))
            else:
                key_parts.append(str(arg))

        for key, value in sorted(kwargs.items()):
            if isinstance(value, (dict, list)):
                key_parts.append(f"{key}:{json.dumps(value, sort_keys=True)}")
            else:
                key_parts.append(f"{key}:{value}")

        # Long keys (GraphQL bodies, address lists) are digested
        key_string = ":".join(key_parts)
        if len(key_string) > 250:
            key_hash = hashlib.sha256(key_string.encode()).hexdigest()
            return f"{prefix}:{key_hash}"

        return key_string

    async def get_or_set(
        self,
        kind: CacheKind,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        ttl: Optional[float] = None
    ) -> Any:
        """
        Get value from cache or set it using factory function.

        Args:
            kind (CacheKind): Cache partition
            key (str): Cache key
            factory (Callable): Async function to generate value if not cached
            ttl (Optional[float]): Seconds to live

        Returns:
            Any: Cached or generated value
        """
        cached_value = await self.get(kind, key)
        if cached_value is not None:
            return cached_value

        new_value = await factory()
        await self.set(kind, key, new_value, ttl)
        return new_value

    def clear(self, kind: CacheKind) -> None:
        """Drop every entry of one kind."""
        self._get_cache().clear(kind)

    def clear_all(self) -> None:
        """Drop every cached entry."""
        self._get_cache().clear_all()
        logger.info("Cleared all cache partitions")

    def sizes(self) -> Dict[str, int]:
        """Entry count per kind."""
        return self._get_cache().stats()


# Global cache service instance
cache_service = CacheService()


async def get_cache_service() -> CacheService:
    """
    Get cache service instance.

    Returns:
        CacheService: Cache service instance
    """
    return cache_service
