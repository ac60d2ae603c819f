"""
Harvest intelligence: clustering, crop thresholds, window scheduling and orchestration
"""

from .clustering import LocationClusterer
from .threshold_tables import (
    CropThresholds,
    DEFAULT_THRESHOLD_TABLE,
    ThresholdTable,
    load_threshold_table
)
from .thresholds import CropThresholdEngine, risk_score, harvest_readiness
from .scheduler import (
    CapabilityMultiplier,
    ThresholdCapabilityMultiplier,
    HarvestWindowScheduler
)
from .orchestrator import (
    CapabilityProvider,
    CostLedger,
    HarvestIntelligenceResult,
    HarvestIntelligenceOrchestrator,
    overall_recommendation
)

__all__ = [
    'LocationClusterer',
    'CropThresholds',
    'DEFAULT_THRESHOLD_TABLE',
    'ThresholdTable',
    'load_threshold_table',
    'CropThresholdEngine',
    'risk_score',
    'harvest_readiness',
    'CapabilityMultiplier',
    'ThresholdCapabilityMultiplier',
    'HarvestWindowScheduler',
    'CapabilityProvider',
    'CostLedger',
    'HarvestIntelligenceResult',
    'HarvestIntelligenceOrchestrator',
    'overall_recommendation'
]
