"""
Cache entry and statistics models

Payloads are tagged by ``kind`` so a bad entry fails validation at the
cache boundary instead of somewhere downstream.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from .harvest import CapabilityScore, CropType, HarvestWindow
from .weather import WeatherForecast


class ForecastPayload(BaseModel):
    kind: Literal["forecast"] = "forecast"
    forecast: WeatherForecast


class CapabilityPayload(BaseModel):
    kind: Literal["capability"] = "capability"
    capability: CapabilityScore


class WindowSetPayload(BaseModel):
    kind: Literal["window_set"] = "window_set"
    windows: List[HarvestWindow]
    field_ids: List[str]
    crop: CropType


CachePayload = Annotated[
    Union[ForecastPayload, CapabilityPayload, WindowSetPayload],
    Field(discriminator="kind")
]


class CacheEntry(BaseModel):
    """
    A stored cache record with its access metadata
    """
    key: str = Field(..., description="Cache key")
    scope: str = Field(..., description="Owning user id or 'system'")
    payload: CachePayload = Field(..., description="Tagged payload")
    created_at: datetime = Field(..., description="When the entry was written")
    last_accessed: datetime = Field(..., description="Last successful read")
    expires_at: Optional[datetime] = Field(None, description="Expiry instant, None for no expiry")
    access_count: int = Field(0, description="Successful reads")
    data_size: int = Field(0, description="Approximate serialized payload size in bytes")

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now


@dataclass
class CacheStatistics:
    """
    Cache counters for one scope, or all scopes when scope is None
    """
    scope: Optional[str] = None
    hits: int = 0
    misses: int = 0
    total_entries: int = 0
    expired_entries: int = 0
    corrupted_entries: int = 0
    total_size: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    @property
    def memory_usage(self) -> int:
        return self.total_size

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scope": self.scope,
            "hits": self.hits,
            "misses": self.misses,
            "total_entries": self.total_entries,
            "expired_entries": self.expired_entries,
            "corrupted_entries": self.corrupted_entries,
            "total_size": self.total_size,
            "memory_usage": self.memory_usage,
            "hit_rate": self.hit_rate,
        }
