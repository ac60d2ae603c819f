"""
Weather data acquisition: provider connectors, circuit breaker and gateway
"""

from .provider_client import (
    SlidingWindowRateLimiter,
    ProviderRetry,
    WeatherProviderClient,
    TomorrowIoClient,
    MscClient
)
from .health import ProviderHealth, ProviderHealthTracker
from .gateway import WeatherGateway

__all__ = [
    'SlidingWindowRateLimiter',
    'ProviderRetry',
    'WeatherProviderClient',
    'TomorrowIoClient',
    'MscClient',
    'ProviderHealth',
    'ProviderHealthTracker',
    'WeatherGateway'
]
