from datetime import timedelta, timezone, tzinfo
from functools import lru_cache
from typing import Dict, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class HarvestIntelligenceSettings(BaseSettings):
    """Engine options, loaded from HARVEST_* environment variables or passed directly"""

    # Cache lifetimes
    weather_cache_duration: timedelta = timedelta(minutes=15)
    capability_cache_duration: timedelta = timedelta(hours=24)
    window_cache_duration: timedelta = timedelta(hours=1)

    # Scheduling
    location_cluster_radius_km: float = 2.0
    max_forecast_days: int = 7
    max_harvest_windows: int = 10
    max_concurrent_fetches: int = 3
    # Fixed UTC offset of the fields' local time; the machine's zone when unset
    local_utc_offset_hours: Optional[float] = None

    # Cost per call, keyed by provider id
    api_cost_per_provider: Dict[str, float] = Field(
        default_factory=lambda: {"tomorrow_io": 0.05, "msc": 0.0}
    )

    # Circuit breaker
    max_consecutive_failures: int = 5
    circuit_breaker_timeout: timedelta = timedelta(minutes=15)

    # HTTP policy
    rate_limit_per_minute: int = 100
    max_retries: int = 3
    retry_base_delay: timedelta = timedelta(seconds=2)
    request_timeout: timedelta = timedelta(seconds=30)

    # Providers
    tomorrow_io_api_key: str = ""
    tomorrow_io_base_url: str = "https://api.tomorrow.io/v4"
    msc_base_url: str = "https://api.weather.gc.ca"

    # Redis (optional cache store)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: Optional[str] = None

    @field_validator('location_cluster_radius_km')
    @classmethod
    def validate_radius(cls, v: float) -> float:
        """Cluster radius must be positive"""
        if v <= 0:
            raise ValueError(f"Cluster radius {v} km must be positive")
        return v

    @field_validator('local_utc_offset_hours')
    @classmethod
    def validate_utc_offset(cls, v: Optional[float]) -> Optional[float]:
        """UTC offsets run from -12 to +14 hours"""
        if v is not None and not -12 <= v <= 14:
            raise ValueError(f"UTC offset {v} h is out of range")
        return v

    @field_validator(
        'max_forecast_days', 'max_harvest_windows', 'max_concurrent_fetches',
        'max_consecutive_failures', 'rate_limit_per_minute', 'max_retries'
    )
    @classmethod
    def validate_positive_count(cls, v: int) -> int:
        """Counts and limits must be at least 1"""
        if v < 1:
            raise ValueError(f"Value {v} must be at least 1")
        return v

    @property
    def local_timezone(self) -> Optional[tzinfo]:
        """Zone harvest windows are laid out in"""
        if self.local_utc_offset_hours is None:
            return None
        return timezone(timedelta(hours=self.local_utc_offset_hours))

    class Config:
        env_prefix = "HARVEST_"
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> HarvestIntelligenceSettings:
    """Cached settings instance"""
    return HarvestIntelligenceSettings()
