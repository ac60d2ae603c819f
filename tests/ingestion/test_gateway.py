"""
Tests for provider failover in the weather gateway
"""

import pytest
from datetime import timedelta
from unittest.mock import Mock

from harvest_intel.config import HarvestIntelligenceSettings
from harvest_intel.errors import (
    AllProvidersExhausted,
    ProviderRateLimited,
    ProviderRequestFailed,
    ProviderResponseInvalid
)
from harvest_intel.ingestion.gateway import WeatherGateway
from harvest_intel.ingestion.health import ProviderHealthTracker
from harvest_intel.ingestion.provider_client import MscClient, SlidingWindowRateLimiter, TomorrowIoClient


def make_client(name):
    client = Mock()
    client.name = name
    client.rate_limiter = SlidingWindowRateLimiter(limit_per_minute=100)
    return client


@pytest.fixture
def health(clock):
    return ProviderHealthTracker(max_consecutive_failures=5, timeout=timedelta(minutes=15), clock=clock)


@pytest.fixture
def primary():
    return make_client("A")


@pytest.fixture
def fallback():
    return make_client("B")


@pytest.fixture
def gateway(primary, fallback, health):
    return WeatherGateway([primary, fallback], health=health)


class TestWeatherGateway:
    """Test cases for WeatherGateway"""

    def test_primary_serves_when_healthy(self, gateway, primary, fallback, field_location, make_forecast):
        forecast = make_forecast()
        primary.get_forecast.return_value = forecast

        result, provider = gateway.fetch_forecast(field_location, 3)

        assert result is forecast
        assert provider == "A"
        primary.get_forecast.assert_called_once_with(field_location, 3)
        fallback.get_forecast.assert_not_called()

    def test_falls_back_on_failure(self, gateway, primary, fallback, health, field_location, make_forecast):
        primary.get_forecast.side_effect = ProviderRequestFailed("down", provider="A")
        fallback.get_forecast.return_value = make_forecast(provider="msc")

        _, provider = gateway.fetch_forecast(field_location, 3)

        assert provider == "B"
        assert health.consecutive_failures("A") == 1
        assert health.consecutive_failures("B") == 0

    def test_invalid_response_also_fails_over(self, gateway, primary, fallback, field_location, make_forecast):
        primary.get_forecast.side_effect = ProviderResponseInvalid("garbage", provider="A")
        fallback.get_forecast.return_value = make_forecast()

        assert gateway.fetch_forecast(field_location, 3)[1] == "B"

    def test_open_breaker_skips_primary(self, gateway, primary, fallback, clock, field_location, make_forecast):
        primary.get_forecast.side_effect = ProviderRequestFailed("down", provider="A")
        fallback.get_forecast.return_value = make_forecast()

        for _ in range(5):
            gateway.fetch_forecast(field_location, 3)
        assert primary.get_forecast.call_count == 5

        clock.advance(seconds=1)
        _, provider = gateway.fetch_forecast(field_location, 3)

        assert provider == "B"
        assert primary.get_forecast.call_count == 5

    def test_half_open_probe_after_timeout(self, gateway, primary, fallback, clock, health,
                                           field_location, make_forecast):
        primary.get_forecast.side_effect = ProviderRequestFailed("down", provider="A")
        fallback.get_forecast.return_value = make_forecast()
        for _ in range(5):
            gateway.fetch_forecast(field_location, 3)

        clock.advance(minutes=16)
        primary.get_forecast.side_effect = None
        primary.get_forecast.return_value = make_forecast()

        _, provider = gateway.fetch_forecast(field_location, 3)

        assert provider == "A"
        assert primary.get_forecast.call_count == 6
        assert health.consecutive_failures("A") == 0

    def test_exhausted_attempts_primary_once(self, gateway, primary, fallback, field_location):
        primary.get_forecast.side_effect = ProviderRequestFailed("down", provider="A")
        fallback.get_forecast.side_effect = ProviderRateLimited("slow down", provider="B", status_code=429)

        with pytest.raises(AllProvidersExhausted) as exc_info:
            gateway.fetch_forecast(field_location, 3)

        error = exc_info.value
        assert error.providers == ["A", "B"]
        assert error.location_id == "field-1"
        assert isinstance(error.last_errors["B"], ProviderRateLimited)
        assert primary.get_forecast.call_count == 1
        assert "North Quarter" in str(error)

    def test_last_resort_bypasses_open_breaker(self, gateway, primary, fallback, health,
                                               field_location, make_forecast):
        for _ in range(5):
            health.record_failure("A")
        fallback.get_forecast.side_effect = ProviderRequestFailed("down", provider="B")
        primary.get_forecast.return_value = make_forecast()

        _, provider = gateway.fetch_forecast(field_location, 3)

        assert provider == "A"
        assert primary.get_forecast.call_count == 1

    def test_without_last_resort_open_primary_is_skipped(self, primary, fallback, health, field_location):
        gateway = WeatherGateway([primary, fallback], health=health, last_resort=False)
        for _ in range(5):
            health.record_failure("A")
        fallback.get_forecast.side_effect = ProviderRequestFailed("down", provider="B")

        with pytest.raises(AllProvidersExhausted) as exc_info:
            gateway.fetch_forecast(field_location, 3)

        assert exc_info.value.providers == ["B"]
        primary.get_forecast.assert_not_called()

    def test_unexpected_errors_propagate(self, gateway, primary, fallback, field_location):
        primary.get_forecast.side_effect = RuntimeError("bug")

        with pytest.raises(RuntimeError):
            gateway.fetch_forecast(field_location, 3)
        fallback.get_forecast.assert_not_called()

    def test_concurrent_half_open_probe_goes_to_one_caller(self, gateway, primary, fallback, clock, health,
                                                           field_location, make_forecast):
        for _ in range(5):
            health.record_failure("A")
        clock.advance(minutes=16)
        assert health.try_acquire("A")
        fallback.get_forecast.return_value = make_forecast()

        _, provider = gateway.fetch_forecast(field_location, 3)

        assert provider == "B"
        primary.get_forecast.assert_not_called()

    def test_unexpected_error_releases_probe(self, gateway, primary, fallback, clock, health,
                                             field_location, make_forecast):
        for _ in range(5):
            health.record_failure("A")
        clock.advance(minutes=16)
        primary.get_forecast.side_effect = RuntimeError("bug")

        with pytest.raises(RuntimeError):
            gateway.fetch_forecast(field_location, 3)

        assert health.try_acquire("A")

    def test_get_current_weather_fails_over(self, gateway, primary, fallback, field_location, make_sample):
        primary.get_current_weather.side_effect = ProviderRequestFailed("down", provider="A")
        sample = make_sample(temperature=12.0)
        fallback.get_current_weather.return_value = sample

        assert gateway.get_current_weather(field_location) is sample

    def test_get_forecast_returns_forecast_only(self, gateway, primary, field_location, make_forecast):
        forecast = make_forecast()
        primary.get_forecast.return_value = forecast

        assert gateway.get_forecast(field_location, 3) is forecast

    def test_health_report(self, gateway, primary, fallback, health, field_location, make_forecast):
        primary.rate_limiter.acquire()
        for _ in range(5):
            health.record_failure("A")

        report = gateway.health_report()

        assert report["A"]["state"] == "open"
        assert report["A"]["is_healthy"] is False
        assert report["A"]["requests_in_window"] == 1
        assert report["B"]["state"] == "closed"
        assert report["B"]["requests_in_window"] == 0
        assert report["B"]["rate_limit_per_minute"] == 100

    def test_requires_clients(self):
        with pytest.raises(ValueError):
            WeatherGateway([])

    def test_close_closes_clients(self, gateway, primary, fallback):
        gateway.close()

        primary.close.assert_called_once()
        fallback.close.assert_called_once()

    def test_from_settings(self):
        settings = HarvestIntelligenceSettings(
            tomorrow_io_api_key="secret",
            max_consecutive_failures=3,
            circuit_breaker_timeout=timedelta(minutes=5),
            rate_limit_per_minute=50
        )

        gateway = WeatherGateway.from_settings(settings)

        primary, fallback = gateway.clients
        assert isinstance(primary, TomorrowIoClient)
        assert isinstance(fallback, MscClient)
        assert primary.api_key == "secret"
        assert primary.rate_limiter is not fallback.rate_limiter
        assert primary.rate_limiter.limit_per_minute == 50
        assert gateway.health.max_consecutive_failures == 3
        assert gateway.health.timeout == timedelta(minutes=5)
        assert gateway.plan[-1] == (primary, True)
        gateway.close()
