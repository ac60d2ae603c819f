"""
Harvest Intelligence Engine

Advises equipment operators on when weather and crop conditions favour
harvesting, while keeping paid weather API calls to a minimum.
"""

from .config import HarvestIntelligenceSettings, get_settings
from .errors import (
    HarvestIntelligenceError,
    WeatherProviderError,
    ProviderRequestFailed,
    ProviderRateLimited,
    ProviderResponseInvalid,
    AllProvidersExhausted,
    NoThresholdsForCrop,
    CacheCorrupted,
    NoActiveEquipment,
    RecommendationFailed
)
from .intelligence.orchestrator import HarvestIntelligenceOrchestrator, HarvestIntelligenceResult

__version__ = "1.0.0"

__all__ = [
    'HarvestIntelligenceSettings',
    'get_settings',
    'HarvestIntelligenceError',
    'WeatherProviderError',
    'ProviderRequestFailed',
    'ProviderRateLimited',
    'ProviderResponseInvalid',
    'AllProvidersExhausted',
    'NoThresholdsForCrop',
    'CacheCorrupted',
    'NoActiveEquipment',
    'RecommendationFailed',
    'HarvestIntelligenceOrchestrator',
    'HarvestIntelligenceResult'
]
