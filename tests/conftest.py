"""
Shared fixtures for the harvest intelligence test suite
"""

from datetime import datetime, timedelta, timezone

import pytest

from harvest_intel.models.harvest import CapabilityScore, CropType
from harvest_intel.models.weather import (
    FieldLocation,
    WeatherForecast,
    WeatherProvider,
    WeatherSample
)


class FakeClock:
    """Manually advanced UTC clock"""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def fixed_now():
    return datetime(2024, 9, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock(fixed_now):
    return FakeClock(fixed_now)


@pytest.fixture
def field_location():
    return FieldLocation(id="field-1", name="North Quarter", latitude=52.13, longitude=-106.67, user_id="user-1")


@pytest.fixture
def make_sample(fixed_now):
    """Build a weather sample; unspecified measurements stay unknown"""

    def _make(location_id="field-1", day=0, provider=WeatherProvider.TOMORROW_IO, **values):
        return WeatherSample(
            location_id=location_id,
            timestamp=fixed_now + timedelta(days=day),
            provider=provider,
            **values
        )

    return _make


@pytest.fixture
def make_forecast(fixed_now, make_sample):
    """Build a benign multi-day forecast for a location"""

    def _make(location_id="field-1", days=3, provider=WeatherProvider.TOMORROW_IO, **values):
        conditions = dict(temperature=22.0, humidity=55.0, precipitation=0.0, wind_speed=10.0)
        conditions.update(values)
        return WeatherForecast(
            location_id=location_id,
            generated_at=fixed_now,
            provider=provider,
            daily_forecasts=[
                make_sample(location_id=location_id, day=i, provider=provider, **conditions)
                for i in range(days)
            ]
        )

    return _make


@pytest.fixture
def capability():
    return CapabilityScore(
        combine_spec_id="combine-x9",
        reliability_score=7.0,
        overall_score=8.0,
        crop_specific_scores={CropType.WHEAT: 9.0, CropType.CANOLA: 8.0}
    )
