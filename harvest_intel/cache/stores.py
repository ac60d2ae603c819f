"""
Key/value stores behind the forecast cache

A store only moves bytes. Entry envelopes, tagging and hit/miss
accounting live in ForecastCache.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Tuple

import redis

from ..utils.logger import get_logger

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class StoreStats:
    """Raw counts reported by a store"""
    total_entries: int = 0
    expired_entries: int = 0
    total_size: int = 0


class CacheStore(ABC):
    """
    Scoped byte store with optional per-entry expiry
    """

    @abstractmethod
    def get(self, scope: str, key: str) -> Optional[bytes]:
        """Return the stored bytes, or None when absent"""

    @abstractmethod
    def set(self, scope: str, key: str, data: bytes, expires_at: Optional[datetime] = None) -> bool:
        """Store bytes, replacing any previous value"""

    @abstractmethod
    def delete(self, scope: str, key: str) -> bool:
        """Remove one entry"""

    @abstractmethod
    def delete_expired(self, scope: Optional[str] = None) -> int:
        """Remove entries whose expiry is at or before now"""

    @abstractmethod
    def stats(self, scope: Optional[str] = None) -> StoreStats:
        """Entry counts and sizes for one scope, or all scopes"""

    @abstractmethod
    def clear(self, scope: Optional[str] = None) -> int:
        """Remove every entry in a scope, or everything"""

    def close(self) -> None:
        pass


class InMemoryCacheStore(CacheStore):
    """
    Process-local store guarded by a lock
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self.clock = clock or _utcnow
        self._entries: Dict[Tuple[str, str], Tuple[bytes, Optional[datetime]]] = {}
        self._lock = threading.Lock()

    def _is_expired(self, expires_at: Optional[datetime], now: datetime) -> bool:
        return expires_at is not None and expires_at <= now

    def get(self, scope: str, key: str) -> Optional[bytes]:
        with self._lock:
            entry = self._entries.get((scope, key))
        return entry[0] if entry else None

    def set(self, scope: str, key: str, data: bytes, expires_at: Optional[datetime] = None) -> bool:
        with self._lock:
            self._entries[(scope, key)] = (data, expires_at)
        return True

    def delete(self, scope: str, key: str) -> bool:
        with self._lock:
            return self._entries.pop((scope, key), None) is not None

    def delete_expired(self, scope: Optional[str] = None) -> int:
        now = self.clock()
        with self._lock:
            expired = [
                k for k, (_, expires_at) in self._entries.items()
                if (scope is None or k[0] == scope) and self._is_expired(expires_at, now)
            ]
            for k in expired:
                del self._entries[k]
        return len(expired)

    def stats(self, scope: Optional[str] = None) -> StoreStats:
        now = self.clock()
        stats = StoreStats()
        with self._lock:
            for (entry_scope, _), (data, expires_at) in self._entries.items():
                if scope is not None and entry_scope != scope:
                    continue
                stats.total_entries += 1
                stats.total_size += len(data)
                if self._is_expired(expires_at, now):
                    stats.expired_entries += 1
        return stats

    def clear(self, scope: Optional[str] = None) -> int:
        with self._lock:
            if scope is None:
                removed = len(self._entries)
                self._entries.clear()
                return removed
            keys = [k for k in self._entries if k[0] == scope]
            for k in keys:
                del self._entries[k]
            return len(keys)


class RedisCacheStore(CacheStore):
    """
    Redis-backed store. Expiry is delegated to Redis, so expired entries
    never come back from ``get`` and ``delete_expired`` has nothing to do.
    """

    KEY_PREFIX = "harvest"

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        client: Optional[redis.Redis] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize Redis connection.

        Args:
            host: Redis host
            port: Redis port
            db: Redis database number
            password: Redis password (if required)
            client: Existing client to use instead of connecting
            clock: Returns the current UTC time
        """
        self.clock = clock or _utcnow

        if client is not None:
            self.client = client
            return

        try:
            self.client = redis.Redis(
                host=host,
                port=port,
                db=db,
                password=password,
                socket_connect_timeout=5,
                socket_timeout=5
            )
            self.client.ping()
            logger.info(f"Connected to Redis at {host}:{port}")
        except redis.ConnectionError as e:
            logger.error(f"Failed to connect to Redis: {e}")
            raise

    @classmethod
    def from_settings(cls, settings) -> "RedisCacheStore":
        return cls(
            host=settings.redis_host,
            port=settings.redis_port,
            db=settings.redis_db,
            password=settings.redis_password
        )

    def _make_key(self, scope: str, key: str) -> str:
        """
        Create a namespaced cache key.

        Args:
            scope: Owning user id or "system"
            key: Cache key within the scope

        Returns:
            str: Formatted Redis key
        """
        return f"{self.KEY_PREFIX}:{scope}:{key}"

    def _pattern(self, scope: Optional[str]) -> str:
        return f"{self.KEY_PREFIX}:{scope}:*" if scope is not None else f"{self.KEY_PREFIX}:*"

    def get(self, scope: str, key: str) -> Optional[bytes]:
        redis_key = self._make_key(scope, key)
        try:
            return self.client.get(redis_key)
        except redis.RedisError as e:
            logger.error(f"Cache get error for {redis_key}: {e}")
            return None

    def set(self, scope: str, key: str, data: bytes, expires_at: Optional[datetime] = None) -> bool:
        redis_key = self._make_key(scope, key)
        try:
            if expires_at is None:
                return bool(self.client.set(redis_key, data))

            ttl_ms = int((expires_at - self.clock()).total_seconds() * 1000)
            if ttl_ms <= 0:
                self.client.delete(redis_key)
                return False
            return bool(self.client.set(redis_key, data, px=ttl_ms))
        except redis.RedisError as e:
            logger.error(f"Cache set error for {redis_key}: {e}")
            return False

    def delete(self, scope: str, key: str) -> bool:
        redis_key = self._make_key(scope, key)
        try:
            return bool(self.client.delete(redis_key))
        except redis.RedisError as e:
            logger.error(f"Cache delete error for {redis_key}: {e}")
            return False

    def delete_expired(self, scope: Optional[str] = None) -> int:
        return 0

    def stats(self, scope: Optional[str] = None) -> StoreStats:
        stats = StoreStats()
        try:
            for redis_key in self.client.scan_iter(match=self._pattern(scope)):
                stats.total_entries += 1
                stats.total_size += self.client.strlen(redis_key)
        except redis.RedisError as e:
            logger.error(f"Cache stats error for {self._pattern(scope)}: {e}")
        return stats

    def clear(self, scope: Optional[str] = None) -> int:
        pattern = self._pattern(scope)
        try:
            keys = list(self.client.scan_iter(match=pattern))
            if not keys:
                return 0
            deleted = self.client.delete(*keys)
            logger.info(f"Deleted {deleted} keys matching: {pattern}")
            return deleted
        except redis.RedisError as e:
            logger.error(f"Cache clear error for {pattern}: {e}")
            return 0

    def close(self) -> None:
        self.client.close()
        logger.info("Redis connection closed")
