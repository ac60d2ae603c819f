"""
Tests for weather data models
"""

import pytest
from datetime import timedelta

from pydantic import ValidationError

from harvest_intel.models.weather import FieldLocation, WeatherForecast, WeatherProvider


class TestFieldLocation:
    """Test cases for FieldLocation"""

    @pytest.mark.parametrize("latitude,longitude", [(91.0, 0.0), (-90.5, 0.0), (0.0, 180.5), (0.0, -181.0)])
    def test_rejects_out_of_range_coordinates(self, latitude, longitude):
        with pytest.raises(ValidationError):
            FieldLocation(id="f", name="F", latitude=latitude, longitude=longitude)

    def test_cache_scope(self, field_location):
        assert field_location.cache_scope == "user-1"
        assert FieldLocation(id="f", name="F", latitude=0, longitude=0).cache_scope == "system"

    def test_is_frozen(self, field_location):
        with pytest.raises(ValidationError):
            field_location.latitude = 10.0


class TestWeatherSample:
    """Test cases for WeatherSample"""

    def test_measurements_default_to_unknown(self, make_sample):
        sample = make_sample()

        assert sample.temperature is None
        assert sample.precipitation is None
        assert sample.condition.value == "cloudy"

    def test_rejects_invalid_humidity(self, make_sample):
        with pytest.raises(ValidationError):
            make_sample(humidity=101.0)

    def test_rejects_negative_precipitation(self, make_sample):
        with pytest.raises(ValidationError):
            make_sample(precipitation=-0.1)


class TestWeatherForecast:
    """Test cases for WeatherForecast"""

    def test_requires_samples(self, fixed_now):
        with pytest.raises(ValidationError):
            WeatherForecast(
                location_id="field-1", generated_at=fixed_now,
                provider=WeatherProvider.MSC, daily_forecasts=[]
            )

    def test_requires_chronological_order(self, fixed_now, make_sample):
        with pytest.raises(ValidationError):
            WeatherForecast(
                location_id="field-1", generated_at=fixed_now, provider=WeatherProvider.MSC,
                daily_forecasts=[make_sample(day=1), make_sample(day=0)]
            )

    def test_rejects_duplicate_days(self, fixed_now, make_sample):
        with pytest.raises(ValidationError):
            WeatherForecast(
                location_id="field-1", generated_at=fixed_now, provider=WeatherProvider.MSC,
                daily_forecasts=[make_sample(day=0), make_sample(day=0)]
            )

    def test_expiry(self, make_forecast, fixed_now):
        forecast = make_forecast()

        assert forecast.cache_duration == timedelta(minutes=15)
        assert not forecast.is_expired(fixed_now + timedelta(minutes=15))
        assert forecast.is_expired(fixed_now + timedelta(minutes=16))
