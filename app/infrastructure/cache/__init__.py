"""
Cache infrastructure module.
Provides an in-memory TTL cache partitioned by result kind.
"""

from .memory_cache import CacheKind, MemoryCache, memory_cache, get_memory_cache
from .cache_service import CacheService, cache_service, get_cache_service

__all__ = [
    "CacheKind",
    "MemoryCache",
    "memory_cache",
    "get_memory_cache",
    "CacheService",
    "cache_service",
    "get_cache_service"
]
