"""
Review Cache

Fronts expensive review queries with a fingerprinted, TTL-bounded cache.

- MISS: the value is computed inline; concurrent callers for the same key
  share a single computation (single-flight).
- HIT: entries younger than ``ttl * refresh_threshold`` are served as-is.
- Stale HIT: older (but unexpired) entries are served immediately and a
  refresh is queued on the bounded worker pool.
- BYPASS: when the storage backend fails the value is computed and
  returned without caching.
"""

from enum import Enum
from fnmatch import fnmatchcase
from functools import partial
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Tuple
import asyncio
import json
import logging
import time

from core.config import Settings, clamp_ttl
from core.exceptions import CacheError
from core.metrics_registry import CacheStats, MetricsRegistry
from .backends import CacheBackend, CacheEntry, MemoryCacheBackend, create_backend
from .keys import build_cache_key, key_matches_listing
from .refresh_worker import RefreshJob, RefreshWorkerPool

logger = logging.getLogger(__name__)

FetchFunc = Callable[[], Awaitable[Any]]

HEALTH_CHECK_SUFFIX = "__health__"


class CacheStatus(str, Enum):
    HIT = "HIT"
    MISS = "MISS"
    BYPASS = "BYPASS"


class ReviewCache:
    """
    Cache for query results keyed by request fingerprint.

    Args:
        metrics: Shared metrics registry that receives all cache counters
        backend: Entry storage, in-memory by default
        prefix: Namespace for every key written by this cache
        ttl: Default TTL in seconds, clamped to [120, 300]
        refresh_threshold: Fraction of the TTL after which entries refresh
        clock: Time source in seconds; overridable for tests
    """

    def __init__(
        self,
        metrics: MetricsRegistry,
        backend: Optional[CacheBackend] = None,
        prefix: str = "reviews",
        ttl: int = 300,
        refresh_threshold: float = 0.8,
        clock: Callable[[], float] = time.time,
        refresh_queue_size: int = 100,
        refresh_workers: int = 2,
    ):
        self.metrics = metrics
        self.backend = backend or MemoryCacheBackend()
        self.prefix = prefix
        self.ttl = clamp_ttl(ttl)
        self.refresh_threshold = refresh_threshold
        self.refresh_workers = refresh_workers
        self._clock = clock
        self._inflight: Dict[str, asyncio.Future] = {}
        self.refresh_pool = RefreshWorkerPool(
            max_queue_size=refresh_queue_size,
            on_complete=lambda key: self.metrics.record_cache("refreshes_completed"),
            on_failure=lambda key, exc: self.metrics.record_cache("refreshes_failed"),
        )

    @classmethod
    def from_settings(cls, settings: Settings, metrics: MetricsRegistry) -> "ReviewCache":
        return cls(
            metrics=metrics,
            backend=create_backend(settings),
            prefix=settings.cache_prefix,
            ttl=settings.cache_default_ttl,
            refresh_threshold=settings.cache_refresh_threshold,
            refresh_queue_size=settings.cache_refresh_queue_size,
            refresh_workers=settings.cache_refresh_workers,
        )

    async def start(self):
        await self.refresh_pool.start_workers(self.refresh_workers)

    async def stop(self):
        await self.refresh_pool.stop_workers()
        self.backend.close()

    def make_key(self, params: Mapping[str, Any], namespace: Optional[str] = None) -> str:
        prefix = f"{self.prefix}:{namespace}" if namespace else self.prefix
        return build_cache_key(params, prefix)

    # Reads

    async def get_or_fetch(
        self, key: str, fetch_func: FetchFunc, ttl: Optional[int] = None
    ) -> Tuple[Any, CacheStatus]:
        """
        Return the cached value for ``key`` or compute it with ``fetch_func``.

        ``fetch_func`` must return JSON-serializable data. Errors raised by
        it propagate to every caller waiting on the same computation.
        """
        ttl = clamp_ttl(ttl) if ttl is not None else self.ttl

        try:
            entry = self.backend.get(key)
        except CacheError as e:
            logger.warning(f"Cache read failed for {key}, bypassing: {e.detail}")
            self.metrics.record_cache("errors")
            self.metrics.record_cache("misses")
            value = await self._single_flight(key, fetch_func, ttl, store=False)
            return value, CacheStatus.BYPASS

        now = self._clock()
        if entry is not None and not entry.is_expired(now):
            self.metrics.record_cache("hits")
            if entry.needs_refresh(now):
                self._schedule_refresh(key, fetch_func, ttl)
            return json.loads(entry.payload), CacheStatus.HIT

        self.metrics.record_cache("misses")
        value = await self._single_flight(key, fetch_func, ttl)
        return value, CacheStatus.MISS

    async def _single_flight(
        self, key: str, fetch_func: FetchFunc, ttl: int, store: bool = True
    ) -> Any:
        flight = self._inflight.get(key)
        if flight is None:
            flight = asyncio.ensure_future(self._compute(key, fetch_func, ttl, store))
            self._inflight[key] = flight
            flight.add_done_callback(partial(self._flight_done, key))
        # A cancelled waiter must not cancel the computation others share
        return await asyncio.shield(flight)

    def _flight_done(self, key: str, flight: asyncio.Future) -> None:
        if self._inflight.get(key) is flight:
            del self._inflight[key]
        if not flight.cancelled():
            # Mark the exception retrieved even if every waiter went away
            flight.exception()

    async def _compute(self, key: str, fetch_func: FetchFunc, ttl: int, store: bool) -> Any:
        value = await fetch_func()
        payload = json.dumps(value, default=str)
        if store:
            self._store(key, payload, ttl)
        return json.loads(payload)

    def _store(self, key: str, payload: str, ttl: int) -> None:
        entry = CacheEntry(
            key=key,
            payload=payload,
            created_at=self._clock(),
            ttl_seconds=ttl,
            refresh_threshold=self.refresh_threshold,
        )
        try:
            self.backend.set(entry)
        except CacheError as e:
            logger.warning(f"Cache write failed for {key}: {e.detail}")
            self.metrics.record_cache("errors")
            return
        self.metrics.record_cache("sets")

    def _schedule_refresh(self, key: str, fetch_func: FetchFunc, ttl: int) -> None:
        if key in self._inflight or self.refresh_pool.is_pending(key):
            return
        job = RefreshJob(key=key, run=partial(self._single_flight, key, fetch_func, ttl))
        if self.refresh_pool.submit(job):
            self.metrics.record_cache("refreshes_scheduled")
            logger.debug(f"Scheduled refresh for {key}")
        else:
            self.metrics.record_cache("refreshes_dropped")

    # Invalidation

    def invalidate(
        self,
        key: Optional[str] = None,
        listing_id: Optional[Any] = None,
        pattern: Optional[str] = None,
    ) -> int:
        """
        Remove entries by exact key, listing id or glob pattern.

        With no selector every entry under this cache's prefix is removed.
        Returns the number of entries removed.
        """
        if key is not None:
            return self.invalidate_key(key)
        if listing_id is not None:
            return self.invalidate_listing(listing_id)
        if pattern is not None:
            return self.invalidate_pattern(pattern)
        return self.clear()

    def invalidate_key(self, key: str) -> int:
        try:
            removed = 1 if self.backend.delete(key) else 0
        except CacheError:
            self.metrics.record_cache("errors")
            return 0
        self._record_deletes(removed)
        return removed

    def invalidate_listing(self, listing_id: Any) -> int:
        removed = self._delete_where(lambda k: key_matches_listing(k, listing_id))
        logger.info(f"Invalidated {removed} cache entries for listing {listing_id}")
        return removed

    def invalidate_pattern(self, pattern: str) -> int:
        removed = self._delete_where(lambda k: fnmatchcase(k, pattern))
        logger.info(f"Invalidated {removed} cache entries matching {pattern}")
        return removed

    def clear(self) -> int:
        removed = self._delete_where(lambda k: True)
        logger.info(f"Cleared {removed} cache entries under {self.prefix}")
        return removed

    def _delete_where(self, predicate: Callable[[str], bool]) -> int:
        try:
            keys = [k for k in self.backend.keys(f"{self.prefix}:") if predicate(k)]
            removed = self.backend.delete_many(keys)
        except CacheError:
            self.metrics.record_cache("errors")
            return 0
        self._record_deletes(removed)
        return removed

    def _record_deletes(self, count: int) -> None:
        if count:
            self.metrics.record_cache("deletes", count)

    # Introspection

    def stats(self) -> CacheStats:
        return self.metrics.cache_stats()

    def reset_stats(self) -> None:
        self.metrics.reset_cache_stats()

    def info(self) -> Dict[str, Any]:
        try:
            keys = self.backend.keys(f"{self.prefix}:")
        except CacheError:
            keys = []
        return {
            "backend": type(self.backend).__name__,
            "prefix": self.prefix,
            "ttl_seconds": self.ttl,
            "refresh_threshold": self.refresh_threshold,
            "entries": len(keys),
            "keys": sorted(keys)[:100],
            "refresh_workers_running": self.refresh_pool.is_running,
            "pending_refreshes": self.refresh_pool.pending_count,
            "stats": self.stats().to_dict(),
        }

    def health_check(self) -> Dict[str, Any]:
        """Round-trip a sentinel entry through the backend"""
        check_key = f"{self.prefix}:{HEALTH_CHECK_SUFFIX}"
        start = time.perf_counter()
        try:
            self.backend.set(
                CacheEntry(
                    key=check_key,
                    payload="true",
                    created_at=self._clock(),
                    ttl_seconds=self.ttl,
                    refresh_threshold=self.refresh_threshold,
                )
            )
            entry = self.backend.get(check_key)
            self.backend.delete(check_key)
        except CacheError as e:
            return {"healthy": False, "error": str(e.detail)}
        return {
            "healthy": entry is not None and entry.payload == "true",
            "backend": type(self.backend).__name__,
            "latency_ms": round((time.perf_counter() - start) * 1000, 2),
        }
