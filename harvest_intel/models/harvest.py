"""
Harvest planning models: crops, equipment capability, clusters, windows and cost
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .weather import FieldLocation, WeatherSample


class CropType(str, Enum):
    """Crops the engine knows about"""
    CORN = "corn"
    SOYBEANS = "soybeans"
    WHEAT = "wheat"
    CANOLA = "canola"
    BARLEY = "barley"
    OATS = "oats"


class HarvestRecommendation(str, Enum):
    """Verdict for a harvest window"""
    OPTIMAL = "optimal"
    ACCEPTABLE = "acceptable"
    MARGINAL = "marginal"
    AVOID = "avoid"


class CapabilityScore(BaseModel):
    """
    Equipment capability assessment for one combine model

    Produced by an external capability provider; the engine only reads it.
    All scores are on a 1-10 scale.
    """
    combine_spec_id: str = Field(..., description="Combine specification id")
    moisture_tolerance_score: float = Field(5.0, description="Tough/wet crop moisture handling")
    tough_crop_score: float = Field(5.0, description="Tough crop handling")
    reliability_score: float = Field(5.0, description="Confidence in the underlying data")
    speed_score: float = Field(5.0, description="Throughput")
    overall_score: float = Field(5.0, description="Weighted overall score")
    crop_specific_scores: Dict[CropType, float] = Field(
        default_factory=dict,
        description="Per-crop capability score"
    )
    calculated_at: Optional[datetime] = Field(None, description="When the score was computed")

    def crop_score(self, crop: CropType) -> float:
        """Capability score for a crop, falling back to the overall score"""
        return self.crop_specific_scores.get(crop, self.overall_score)


class LocationCluster(BaseModel):
    """
    Fields sharing one representative weather fetch
    """
    id: str = Field(..., description="Cluster identifier")
    representative: FieldLocation = Field(..., description="Location used for the weather fetch")
    fields: List[FieldLocation] = Field(..., description="Member fields, representative first")

    @field_validator('fields')
    @classmethod
    def validate_fields(cls, v: List[FieldLocation]) -> List[FieldLocation]:
        """A cluster always has at least its representative"""
        if not v:
            raise ValueError("Cluster must contain at least one field")
        return v

    @property
    def field_ids(self) -> List[str]:
        return [f.id for f in self.fields]


class HarvestWindow(BaseModel):
    """
    A bounded time slot assessed for harvesting
    """
    start_time: datetime = Field(..., description="Window start")
    end_time: datetime = Field(..., description="Window end")
    weather: WeatherSample = Field(..., description="Forecast sample the window was scored on")
    recommendation: HarvestRecommendation = Field(..., description="Harvest verdict")
    confidence_score: float = Field(..., description="Confidence in the verdict (0-1)")
    priority: int = Field(..., description="Higher is a better window")
    combine_weather_multiplier: float = Field(..., description="Capability x weather multiplier")
    conditions: Dict[str, Any] = Field(default_factory=dict, description="Condition snapshot")
    reasons: List[str] = Field(default_factory=list, description="Why the window was rated this way")
    combine_spec_id: Optional[str] = Field(None, description="Combine the window was scored for")
    cluster_id: Optional[str] = Field(None, description="Location cluster the window belongs to")

    @field_validator('confidence_score')
    @classmethod
    def validate_confidence(cls, v: float) -> float:
        """Validate confidence is between 0 and 1"""
        if v < 0 or v > 1:
            raise ValueError(f"Confidence {v} must be between 0 and 1")
        return v

    @model_validator(mode='after')
    def validate_interval(self) -> 'HarvestWindow':
        """End must come after start"""
        if self.end_time <= self.start_time:
            raise ValueError(f"Window end {self.end_time} must be after start {self.start_time}")
        return self

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time

    def overlaps(self, other: 'HarvestWindow') -> bool:
        """Two windows overlap iff each starts before the other ends"""
        return self.start_time < other.end_time and other.start_time < self.end_time


class ApiCallCost(BaseModel):
    """
    One entry in the append-only API cost ledger
    """
    provider: str = Field(..., description="Provider id")
    endpoint: str = Field(..., description="Logical endpoint, e.g. 'forecast'")
    timestamp: datetime = Field(..., description="When the call was made")
    call_count: int = Field(1, description="Number of calls represented")
    estimated_cost: float = Field(0.0, description="Estimated cost in dollars")
    location_id: str = Field(..., description="Location the call was made for")
    from_cache: bool = Field(False, description="Served from cache instead of the provider")

    class Config:
        frozen = True


class CostSummary(BaseModel):
    """
    Aggregate view of the cost ledger
    """
    total_cost: float = 0.0
    costs_by_provider: Dict[str, float] = Field(default_factory=dict)
    total_calls: int = 0
    cached_calls: int = 0
    cache_hit_rate: float = 0.0
