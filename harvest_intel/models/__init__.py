"""
Data models for the Harvest Intelligence Engine

This module includes:
- Weather models (Pydantic)
- Harvest planning models: capability, clusters, windows, cost ledger
- Threshold analysis results (dataclasses)
- Cache entries and statistics
"""

from .weather import (
    WeatherProvider,
    WeatherCondition,
    FieldLocation,
    WeatherSample,
    WeatherForecast
)

from .harvest import (
    CropType,
    HarvestRecommendation,
    CapabilityScore,
    LocationCluster,
    HarvestWindow,
    ApiCallCost,
    CostSummary
)

from .analysis import (
    Severity,
    ThresholdViolation,
    ThresholdWarning,
    ThresholdOpportunity,
    RiskAnalysis
)

from .cache import (
    ForecastPayload,
    CapabilityPayload,
    WindowSetPayload,
    CacheEntry,
    CacheStatistics
)

__all__ = [
    # Weather models
    'WeatherProvider',
    'WeatherCondition',
    'FieldLocation',
    'WeatherSample',
    'WeatherForecast',

    # Harvest models
    'CropType',
    'HarvestRecommendation',
    'CapabilityScore',
    'LocationCluster',
    'HarvestWindow',
    'ApiCallCost',
    'CostSummary',

    # Analysis
    'Severity',
    'ThresholdViolation',
    'ThresholdWarning',
    'ThresholdOpportunity',
    'RiskAnalysis',

    # Cache
    'ForecastPayload',
    'CapabilityPayload',
    'WindowSetPayload',
    'CacheEntry',
    'CacheStatistics'
]
