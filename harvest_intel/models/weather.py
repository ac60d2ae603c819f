"""
Weather data models for the Harvest Intelligence Engine
"""

from datetime import datetime, timedelta
from typing import Optional, List
from pydantic import BaseModel, Field, field_validator
from enum import Enum


class WeatherProvider(str, Enum):
    """Weather data sources"""
    TOMORROW_IO = "tomorrow_io"
    MSC = "msc"


class WeatherCondition(str, Enum):
    """Coded weather conditions"""
    CLEAR = "clear"
    CLOUDY = "cloudy"
    RAIN = "rain"
    SNOW = "snow"
    FOG = "fog"
    STORM = "storm"


class FieldLocation(BaseModel):
    """
    A field the operator wants to harvest
    """
    id: str = Field(..., description="Field identifier")
    name: str = Field(..., description="Display name")
    latitude: float = Field(..., description="Latitude in degrees")
    longitude: float = Field(..., description="Longitude in degrees")
    user_id: Optional[str] = Field(None, description="Owning user, if any")

    @field_validator('latitude')
    @classmethod
    def validate_latitude(cls, v: float) -> float:
        """Validate latitude is between -90 and 90"""
        if v < -90 or v > 90:
            raise ValueError(f"Latitude {v} must be between -90 and 90")
        return v

    @field_validator('longitude')
    @classmethod
    def validate_longitude(cls, v: float) -> float:
        """Validate longitude is between -180 and 180"""
        if v < -180 or v > 180:
            raise ValueError(f"Longitude {v} must be between -180 and 180")
        return v

    @property
    def cache_scope(self) -> str:
        """Cache owner scope for data fetched for this field"""
        return self.user_id or "system"

    class Config:
        frozen = True


class WeatherSample(BaseModel):
    """
    One weather observation or daily forecast value

    Every measurement is optional: a missing value is unknown, not zero.
    """
    location_id: str = Field(..., description="Field the sample belongs to")
    timestamp: datetime = Field(..., description="Observation or forecast time")
    provider: WeatherProvider = Field(..., description="Source of the data")
    temperature_min: Optional[float] = Field(None, description="Minimum temperature in Celsius")
    temperature_max: Optional[float] = Field(None, description="Maximum temperature in Celsius")
    temperature: Optional[float] = Field(None, description="Current temperature in Celsius")
    humidity: Optional[float] = Field(None, description="Relative humidity percentage")
    precipitation: Optional[float] = Field(None, description="Precipitation in millimeters")
    wind_speed: Optional[float] = Field(None, description="Wind speed in km/h")
    wind_direction: Optional[float] = Field(None, description="Wind direction in degrees")
    dew_point: Optional[float] = Field(None, description="Dew point in Celsius")
    leaf_wetness: Optional[float] = Field(None, description="Leaf wetness index")
    evapotranspiration: Optional[float] = Field(None, description="Evapotranspiration in millimeters")
    condition: WeatherCondition = Field(WeatherCondition.CLOUDY, description="Coded condition")
    description: Optional[str] = Field(None, description="Free-text description")
    sunrise: Optional[datetime] = Field(None, description="Sunrise time")
    sunset: Optional[datetime] = Field(None, description="Sunset time")

    @field_validator('humidity')
    @classmethod
    def validate_humidity(cls, v: Optional[float]) -> Optional[float]:
        """Validate humidity is between 0 and 100"""
        if v is not None and (v < 0 or v > 100):
            raise ValueError(f"Humidity {v}% must be between 0 and 100")
        return v

    @field_validator('precipitation')
    @classmethod
    def validate_precipitation(cls, v: Optional[float]) -> Optional[float]:
        """Validate precipitation is non-negative"""
        if v is not None and v < 0:
            raise ValueError(f"Precipitation {v}mm cannot be negative")
        return v


class WeatherForecast(BaseModel):
    """
    Daily forecast for one location, oldest day first
    """
    location_id: str = Field(..., description="Location the forecast was fetched for")
    generated_at: datetime = Field(..., description="When the forecast was produced")
    provider: WeatherProvider = Field(..., description="Provider that served the forecast")
    daily_forecasts: List[WeatherSample] = Field(..., description="One sample per day")
    cache_duration: timedelta = Field(
        default=timedelta(minutes=15),
        description="How long the forecast may be served from cache"
    )

    @field_validator('daily_forecasts')
    @classmethod
    def validate_daily_forecasts(cls, v: List[WeatherSample]) -> List[WeatherSample]:
        """Forecast must be non-empty and strictly chronological"""
        if not v:
            raise ValueError("Forecast must contain at least one day")
        for previous, current in zip(v, v[1:]):
            if current.timestamp <= previous.timestamp:
                raise ValueError(
                    f"Forecast samples out of order: {current.timestamp} after {previous.timestamp}"
                )
        return v

    def is_expired(self, now: datetime) -> bool:
        """Whether the forecast has outlived its cache duration"""
        return now - self.generated_at > self.cache_duration
