"""
Cache storage backends.

Backends store serialized ``CacheEntry`` records and know nothing about
freshness; expiry decisions belong to ``ReviewCache``. Any storage failure
surfaces as ``CacheError`` so the cache layer can fall back to bypass.
"""

from dataclasses import dataclass, asdict
from typing import Dict, List, Optional
import json
import logging
import threading

import redis
from redis import ConnectionPool, Redis
from redis.exceptions import RedisError

from core.config import Settings
from core.exceptions import CacheError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """One cached query result. Entries are replaced, never modified."""
    key: str
    payload: str
    created_at: float
    ttl_seconds: int
    refresh_threshold: float

    def age(self, now: float) -> float:
        return now - self.created_at

    def is_expired(self, now: float) -> bool:
        return self.age(now) > self.ttl_seconds

    def needs_refresh(self, now: float) -> bool:
        return self.age(now) >= self.ttl_seconds * self.refresh_threshold

    def serialize(self) -> bytes:
        return json.dumps(asdict(self)).encode("utf-8")

    @classmethod
    def deserialize(cls, raw: bytes) -> "CacheEntry":
        try:
            return cls(**json.loads(raw.decode("utf-8")))
        except (ValueError, TypeError) as e:
            raise CacheError(f"Corrupt cache entry: {e}")


class CacheBackend:
    """Interface shared by the storage backends"""

    def get(self, key: str) -> Optional[CacheEntry]:
        raise NotImplementedError

    def set(self, entry: CacheEntry) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> bool:
        raise NotImplementedError

    def delete_many(self, keys: List[str]) -> int:
        return sum(1 for key in keys if self.delete(key))

    def keys(self, prefix: str) -> List[str]:
        raise NotImplementedError

    def close(self) -> None:
        pass


class MemoryCacheBackend(CacheBackend):
    """Process-local dictionary store guarded by a lock."""

    def __init__(self, max_entries: int = 1000):
        self.max_entries = max_entries
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get(key)

    def set(self, entry: CacheEntry) -> None:
        with self._lock:
            if entry.key not in self._entries and len(self._entries) >= self.max_entries:
                # Evict the oldest entry
                oldest = min(self._entries.values(), key=lambda e: e.created_at)
                del self._entries[oldest.key]
            self._entries[entry.key] = entry

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def delete_many(self, keys: List[str]) -> int:
        with self._lock:
            return sum(1 for key in keys if self._entries.pop(key, None) is not None)

    def keys(self, prefix: str) -> List[str]:
        with self._lock:
            return [k for k in self._entries if k.startswith(prefix)]

    def __len__(self) -> int:
        return len(self._entries)


class RedisCacheBackend(CacheBackend):
    """
    Redis-backed store.

    Entries are written with a Redis expiry equal to their TTL so abandoned
    keys never outlive the servable window.
    """

    def __init__(self, client: Redis):
        self.client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "RedisCacheBackend":
        pool_kwargs = {
            "decode_responses": False,
            "max_connections": 50,
            "socket_connect_timeout": 5,
            "socket_timeout": 5,
            "retry_on_timeout": True,
            "health_check_interval": 30,
        }
        if settings.redis_url:
            pool = redis.ConnectionPool.from_url(settings.redis_url, **pool_kwargs)
        else:
            pool = ConnectionPool(
                host=settings.redis_host,
                port=settings.redis_port,
                db=settings.redis_db,
                password=settings.redis_password,
                **pool_kwargs,
            )
        logger.info("Redis cache backend connection pool created")
        return cls(Redis(connection_pool=pool))

    def get(self, key: str) -> Optional[CacheEntry]:
        try:
            raw = self.client.get(key)
        except RedisError as e:
            logger.error(f"Redis GET error for key {key}: {e}")
            raise CacheError(f"Redis GET failed: {e}")
        return CacheEntry.deserialize(raw) if raw is not None else None

    def set(self, entry: CacheEntry) -> None:
        try:
            self.client.setex(entry.key, entry.ttl_seconds, entry.serialize())
        except RedisError as e:
            logger.error(f"Redis SET error for key {entry.key}: {e}")
            raise CacheError(f"Redis SET failed: {e}")

    def delete(self, key: str) -> bool:
        try:
            return bool(self.client.delete(key))
        except RedisError as e:
            logger.error(f"Redis DELETE error for key {key}: {e}")
            raise CacheError(f"Redis DELETE failed: {e}")

    def delete_many(self, keys: List[str]) -> int:
        if not keys:
            return 0
        try:
            return int(self.client.delete(*keys))
        except RedisError as e:
            logger.error(f"Redis DELETE error for {len(keys)} keys: {e}")
            raise CacheError(f"Redis DELETE failed: {e}")

    def keys(self, prefix: str) -> List[str]:
        try:
            found = self.client.scan_iter(match=f"{prefix}*", count=500)
            return [k.decode("utf-8") if isinstance(k, bytes) else k for k in found]
        except RedisError as e:
            logger.error(f"Redis SCAN error for prefix {prefix}: {e}")
            raise CacheError(f"Redis SCAN failed: {e}")

    def close(self) -> None:
        self.client.connection_pool.disconnect()
        logger.info("Redis cache backend connection pool closed")


def create_backend(settings: Settings) -> CacheBackend:
    if settings.cache_backend == "redis":
        return RedisCacheBackend.from_settings(settings)
    return MemoryCacheBackend()
