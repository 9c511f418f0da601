"""
Review Caching Package

Fingerprinted query cache with refresh-ahead and single-flight loading.
"""

from .backends import CacheBackend, CacheEntry, MemoryCacheBackend, RedisCacheBackend, create_backend
from .keys import build_cache_key, parse_cache_key, key_matches_listing
from .refresh_worker import RefreshJob, RefreshWorkerPool
from .review_cache import ReviewCache, CacheStatus

__all__ = [
    'CacheBackend',
    'CacheEntry',
    'MemoryCacheBackend',
    'RedisCacheBackend',
    'create_backend',
    'build_cache_key',
    'parse_cache_key',
    'key_matches_listing',
    'RefreshJob',
    'RefreshWorkerPool',
    'ReviewCache',
    'CacheStatus',
]
