"""
Caching layer: byte stores and the typed TTL forecast cache
"""

from .stores import CacheStore, InMemoryCacheStore, RedisCacheStore, StoreStats
from .forecast_cache import (
    ForecastCache,
    SYSTEM_SCOPE,
    forecast_key,
    capability_key,
    window_set_key
)

__all__ = [
    'CacheStore',
    'InMemoryCacheStore',
    'RedisCacheStore',
    'StoreStats',
    'ForecastCache',
    'SYSTEM_SCOPE',
    'forecast_key',
    'capability_key',
    'window_set_key'
]
