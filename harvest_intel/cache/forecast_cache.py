"""
TTL cache for forecasts, equipment capability scores and window sets

Entries are stored as JSON-serialised CacheEntry envelopes with a payload
tagged by kind. Anything that fails to validate on the way back is
treated as a miss and evicted.
"""

import threading
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Sequence

from pydantic import ValidationError

from ..errors import CacheCorrupted
from ..models.cache import (
    CacheEntry,
    CacheStatistics,
    CapabilityPayload,
    ForecastPayload,
    WindowSetPayload
)
from ..models.harvest import CapabilityScore, CropType, HarvestWindow
from ..models.weather import FieldLocation, WeatherForecast
from ..utils.logger import get_logger
from .stores import CacheStore, InMemoryCacheStore

logger = get_logger(__name__)

SYSTEM_SCOPE = "system"


def forecast_key(location_id: str, days: int) -> str:
    return f"weather_forecast:{location_id}:{days}d"


def capability_key(combine_spec_id: str) -> str:
    return f"combine_capability:{combine_spec_id}"


def window_set_key(user_id: str, crop: CropType, field_ids: Sequence[str]) -> str:
    return f"harvest_windows:{user_id}:{crop.value}:{'_'.join(field_ids)}"


class ForecastCache:
    """
    Scoped TTL cache with hit/miss accounting

    Expiry is checked lazily on every read as well as by ``sweep``.
    A read that hits bumps the entry's access count and last-accessed
    time and writes it back.
    """

    def __init__(
        self,
        store: Optional[CacheStore] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize the cache

        Args:
            store: Backing store, in-memory if omitted
            clock: Returns the current UTC time
        """
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.store = store or InMemoryCacheStore(clock=self.clock)
        self._lock = threading.RLock()
        self._hits: Dict[str, int] = defaultdict(int)
        self._misses: Dict[str, int] = defaultdict(int)
        self._corrupted: Dict[str, int] = defaultdict(int)

    def _decode(self, scope: str, key: str, raw: bytes, kind: Optional[str]) -> CacheEntry:
        try:
            entry = CacheEntry.model_validate_json(raw)
        except ValidationError as e:
            raise CacheCorrupted(scope, key, f"{e.error_count()} validation error(s)") from e
        if kind is not None and entry.payload.kind != kind:
            raise CacheCorrupted(scope, key, f"expected {kind}, found {entry.payload.kind}")
        return entry

    def get(self, scope: str, key: str, kind: Optional[str] = None):
        """
        Look up a payload

        Args:
            scope: Owning user id or "system"
            key: Cache key
            kind: Expected payload kind; a mismatch counts as corruption

        Returns:
            The payload, or None on a miss
        """
        with self._lock:
            raw = self.store.get(scope, key)
            if raw is None:
                self._misses[scope] += 1
                logger.debug(f"Cache miss: {scope}/{key}")
                return None

            try:
                entry = self._decode(scope, key, raw, kind)
            except CacheCorrupted as e:
                logger.warning(f"{e}; evicting")
                self.store.delete(scope, key)
                self._corrupted[scope] += 1
                self._misses[scope] += 1
                return None

            now = self.clock()
            if entry.is_expired(now):
                logger.debug(f"Cache entry expired: {scope}/{key}")
                self.store.delete(scope, key)
                self._misses[scope] += 1
                return None

            entry.access_count += 1
            entry.last_accessed = now
            self.store.set(scope, key, entry.model_dump_json().encode("utf-8"), entry.expires_at)
            self._hits[scope] += 1
            logger.debug(f"Cache hit: {scope}/{key} (accessed {entry.access_count}x)")
            return entry.payload

    def set(self, scope: str, key: str, payload, ttl: Optional[timedelta] = None) -> bool:
        """
        Store a payload

        Args:
            scope: Owning user id or "system"
            key: Cache key
            payload: ForecastPayload, CapabilityPayload or WindowSetPayload
            ttl: Lifetime, None for no expiry

        Returns:
            True if the store accepted the write
        """
        now = self.clock()
        expires_at = now + ttl if ttl is not None else None
        entry = CacheEntry(
            key=key,
            scope=scope,
            payload=payload,
            created_at=now,
            last_accessed=now,
            expires_at=expires_at,
            access_count=0,
            data_size=len(payload.model_dump_json())
        )
        with self._lock:
            stored = self.store.set(scope, key, entry.model_dump_json().encode("utf-8"), expires_at)
        logger.debug(f"Cached: {scope}/{key} (TTL: {ttl})")
        return stored

    def delete(self, scope: str, key: str) -> bool:
        with self._lock:
            return self.store.delete(scope, key)

    def sweep(self) -> int:
        """
        Remove every expired entry

        Returns:
            Number of entries removed
        """
        with self._lock:
            removed = self.store.delete_expired()
        if removed:
            logger.info(f"Cache sweep removed {removed} expired entries")
        return removed

    def stats(self, scope: Optional[str] = None) -> CacheStatistics:
        """
        Counters for one scope, or summed over all scopes
        """
        with self._lock:
            if scope is None:
                hits = sum(self._hits.values())
                misses = sum(self._misses.values())
                corrupted = sum(self._corrupted.values())
            else:
                hits = self._hits.get(scope, 0)
                misses = self._misses.get(scope, 0)
                corrupted = self._corrupted.get(scope, 0)
            store_stats = self.store.stats(scope)

        return CacheStatistics(
            scope=scope,
            hits=hits,
            misses=misses,
            total_entries=store_stats.total_entries,
            expired_entries=store_stats.expired_entries,
            corrupted_entries=corrupted,
            total_size=store_stats.total_size
        )

    def clear(self, scope: Optional[str] = None) -> int:
        """
        Drop entries and counters for a scope, or everything
        """
        with self._lock:
            removed = self.store.clear(scope)
            if scope is None:
                self._hits.clear()
                self._misses.clear()
                self._corrupted.clear()
            else:
                self._hits.pop(scope, None)
                self._misses.pop(scope, None)
                self._corrupted.pop(scope, None)
        logger.info(f"Cleared {removed} cache entries ({scope or 'all scopes'})")
        return removed

    # Typed helpers

    def get_forecast(self, location: FieldLocation, days: int) -> Optional[WeatherForecast]:
        payload = self.get(location.cache_scope, forecast_key(location.id, days), kind="forecast")
        return payload.forecast if payload else None

    def set_forecast(
        self,
        location: FieldLocation,
        days: int,
        forecast: WeatherForecast,
        ttl: Optional[timedelta] = None
    ) -> bool:
        return self.set(
            location.cache_scope,
            forecast_key(location.id, days),
            ForecastPayload(forecast=forecast),
            ttl if ttl is not None else forecast.cache_duration
        )

    def get_capability(self, combine_spec_id: str) -> Optional[CapabilityScore]:
        payload = self.get(SYSTEM_SCOPE, capability_key(combine_spec_id), kind="capability")
        return payload.capability if payload else None

    def set_capability(self, capability: CapabilityScore, ttl: Optional[timedelta] = None) -> bool:
        return self.set(
            SYSTEM_SCOPE,
            capability_key(capability.combine_spec_id),
            CapabilityPayload(capability=capability),
            ttl
        )

    def get_window_set(
        self,
        user_id: str,
        crop: CropType,
        field_ids: Sequence[str]
    ) -> Optional[List[HarvestWindow]]:
        payload = self.get(user_id, window_set_key(user_id, crop, field_ids), kind="window_set")
        return payload.windows if payload else None

    def set_window_set(
        self,
        user_id: str,
        crop: CropType,
        field_ids: Sequence[str],
        windows: List[HarvestWindow],
        ttl: Optional[timedelta] = None
    ) -> bool:
        return self.set(
            user_id,
            window_set_key(user_id, crop, field_ids),
            WindowSetPayload(windows=windows, field_ids=list(field_ids), crop=crop),
            ttl
        )
