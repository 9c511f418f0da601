"""
Process-wide metrics registry.

A single ``MetricsRegistry`` owns the counters of the Hostaway channel client
and of the review cache. It is created once at application start and passed
as a handle to every component that records metrics; ``reset()`` is the only
way counters go backwards.
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional
import logging
import threading

from .mixins import utcnow

logger = logging.getLogger(__name__)

MAX_RECENT_ERRORS = 50


def _ratio(part: int, total: int) -> float:
    return round(part / total, 4) if total > 0 else 0.0


@dataclass
class CacheStats:
    """Cache statistics"""
    hits: int = 0
    misses: int = 0
    sets: int = 0
    deletes: int = 0
    errors: int = 0
    refreshes_scheduled: int = 0
    refreshes_completed: int = 0
    refreshes_failed: int = 0
    refreshes_dropped: int = 0

    @property
    def total_requests(self) -> int:
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        """Fraction of lookups served from cache"""
        return _ratio(self.hits, self.hits + self.misses)

    @property
    def error_rate(self) -> float:
        return _ratio(self.errors, self.total_requests)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "sets": self.sets,
            "deletes": self.deletes,
            "errors": self.errors,
            "total_requests": self.total_requests,
            "hit_rate": self.hit_rate,
            "error_rate": self.error_rate,
            "refreshes_scheduled": self.refreshes_scheduled,
            "refreshes_completed": self.refreshes_completed,
            "refreshes_failed": self.refreshes_failed,
            "refreshes_dropped": self.refreshes_dropped,
        }


@dataclass
class ChannelClientMetrics:
    """Counters for calls against the upstream review channel"""
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    mock_requests: int = 0
    average_response_time_ms: float = 0.0
    last_request_at: Optional[datetime] = None
    recent_errors: Deque[Dict[str, Any]] = field(
        default_factory=lambda: deque(maxlen=MAX_RECENT_ERRORS)
    )
    _latency_samples: int = 0

    @property
    def success_rate(self) -> float:
        return _ratio(self.successful_requests, self.total_requests)

    @property
    def error_rate(self) -> float:
        return _ratio(self.failed_requests, self.total_requests)

    @property
    def mock_usage_rate(self) -> float:
        return _ratio(self.mock_requests, self.total_requests)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_requests": self.total_requests,
            "successful_requests": self.successful_requests,
            "failed_requests": self.failed_requests,
            "mock_requests": self.mock_requests,
            "average_response_time_ms": round(self.average_response_time_ms, 2),
            "last_request_at": self.last_request_at,
            "success_rate": self.success_rate,
            "error_rate": self.error_rate,
            "mock_usage_rate": self.mock_usage_rate,
            "recent_errors": list(self.recent_errors),
        }


@dataclass(frozen=True)
class MetricsSnapshot:
    """Read-only copy of every counter at one instant"""
    client: Dict[str, Any]
    cache: Dict[str, Any]
    last_reset: datetime
    taken_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "client": self.client,
            "cache": self.cache,
            "last_reset": self.last_reset,
            "taken_at": self.taken_at,
        }


class MetricsRegistry:
    """
    Owner of all counters recorded by the review subsystem.

    Every mutation goes through a method holding ``_lock`` so increments
    from the event loop and from worker threads never interleave.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._cache = CacheStats()
        self._client = ChannelClientMetrics()
        self._last_reset = utcnow()

    # Cache counters

    def record_cache(self, counter: str, amount: int = 1) -> None:
        if not hasattr(self._cache, counter):
            raise ValueError(f"Unknown cache counter: {counter}")
        with self._lock:
            setattr(self._cache, counter, getattr(self._cache, counter) + amount)

    def cache_stats(self) -> CacheStats:
        """Copy of the cache counters"""
        with self._lock:
            return CacheStats(**self._cache.__dict__)

    def reset_cache_stats(self) -> None:
        with self._lock:
            self._cache = CacheStats()

    # Channel client counters

    def record_client_success(self, latency_ms: float) -> None:
        with self._lock:
            self._client.total_requests += 1
            self._client.successful_requests += 1
            self._record_latency(latency_ms)
            self._client.last_request_at = utcnow()

    def record_client_failure(self, error: str, latency_ms: Optional[float] = None) -> None:
        with self._lock:
            self._client.total_requests += 1
            self._client.failed_requests += 1
            if latency_ms is not None:
                self._record_latency(latency_ms)
            self._client.last_request_at = utcnow()
            self._client.recent_errors.append(
                {"error": error, "timestamp": self._client.last_request_at}
            )

    def record_client_mock(self) -> None:
        with self._lock:
            self._client.mock_requests += 1
            self._client.last_request_at = utcnow()

    def _record_latency(self, latency_ms: float) -> None:
        # Running mean; caller holds the lock
        n = self._client._latency_samples + 1
        avg = self._client.average_response_time_ms
        self._client.average_response_time_ms = avg + (latency_ms - avg) / n
        self._client._latency_samples = n

    def client_metrics(self) -> Dict[str, Any]:
        with self._lock:
            return self._client.to_dict()

    @property
    def last_client_request_at(self) -> Optional[datetime]:
        with self._lock:
            return self._client.last_request_at

    # Lifecycle

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            return MetricsSnapshot(
                client=self._client.to_dict(),
                cache=self._cache.to_dict(),
                last_reset=self._last_reset,
                taken_at=utcnow(),
            )

    def reset(self) -> None:
        """Zero every counter (operator action)"""
        with self._lock:
            self._cache = CacheStats()
            self._client = ChannelClientMetrics()
            self._last_reset = utcnow()
        logger.info("Metrics registry reset")
