"""
Weather gateway with ordered provider failover
"""

from typing import Callable, List, Optional, Tuple, TypeVar

from ..config import HarvestIntelligenceSettings, get_settings
from ..errors import AllProvidersExhausted, WeatherProviderError
from ..models.weather import FieldLocation, WeatherForecast, WeatherSample
from ..utils.logger import get_logger
from .health import ProviderHealthTracker
from .provider_client import (
    MscClient,
    SlidingWindowRateLimiter,
    TomorrowIoClient,
    WeatherProviderClient
)

logger = get_logger(__name__)

T = TypeVar("T")


class WeatherGateway:
    """
    Combines several provider connectors into one forecast source

    Providers are tried in preference order, skipping any whose circuit
    breaker is open. With ``last_resort`` enabled the first provider is
    appended once more and tried even with an open breaker, but only if
    it was not already attempted during the same call.
    """

    def __init__(
        self,
        clients: List[WeatherProviderClient],
        health: Optional[ProviderHealthTracker] = None,
        last_resort: bool = True
    ):
        """
        Initialize the gateway

        Args:
            clients: Connectors in preference order (primary first)
            health: Circuit breaker shared by all connectors
            last_resort: Retry the primary past its breaker when all else failed
        """
        if not clients:
            raise ValueError("WeatherGateway needs at least one provider client")

        self.clients = list(clients)
        self.health = health or ProviderHealthTracker()
        self.plan: List[Tuple[WeatherProviderClient, bool]] = [(c, False) for c in self.clients]
        if last_resort:
            self.plan.append((self.clients[0], True))

    @classmethod
    def from_settings(cls, settings: Optional[HarvestIntelligenceSettings] = None) -> "WeatherGateway":
        """
        Build the default Tomorrow.io + MSC gateway

        Args:
            settings: Engine settings, defaults to the cached environment settings

        Returns:
            Configured gateway
        """
        settings = settings or get_settings()
        common = dict(
            timeout=settings.request_timeout.total_seconds(),
            max_retries=settings.max_retries,
            retry_base_delay=settings.retry_base_delay.total_seconds(),
            cache_duration=settings.weather_cache_duration,
        )

        primary = TomorrowIoClient(
            api_key=settings.tomorrow_io_api_key,
            base_url=settings.tomorrow_io_base_url,
            rate_limiter=SlidingWindowRateLimiter(settings.rate_limit_per_minute),
            **common
        )
        fallback = MscClient(
            base_url=settings.msc_base_url,
            rate_limiter=SlidingWindowRateLimiter(settings.rate_limit_per_minute),
            **common
        )
        health = ProviderHealthTracker(
            max_consecutive_failures=settings.max_consecutive_failures,
            timeout=settings.circuit_breaker_timeout
        )
        return cls([primary, fallback], health=health)

    def _execute(
        self,
        operation: str,
        location: FieldLocation,
        call: Callable[[WeatherProviderClient], T]
    ) -> Tuple[T, str]:
        attempts: List[Tuple[str, Exception]] = []
        attempted = set()

        for client, bypass_breaker in self.plan:
            provider = client.name
            if bypass_breaker:
                if provider in attempted:
                    continue
                logger.warning(f"Trying {provider} as last resort for {location.id}")
            elif not self.health.try_acquire(provider):
                logger.debug(f"Skipping {provider}: circuit breaker open")
                continue

            attempted.add(provider)
            try:
                result = call(client)
            except WeatherProviderError as e:
                self.health.record_failure(provider)
                attempts.append((provider, e))
                logger.warning(f"{operation} failed on {provider} for {location.id}: {e}")
                continue
            except Exception:
                self.health.release(provider)
                raise

            self.health.record_success(provider)
            return result, provider

        logger.error(
            f"All weather providers failed for {location.id} "
            f"({', '.join(p for p, _ in attempts) or 'none attempted'})"
        )
        raise AllProvidersExhausted(location.id, attempts, location_name=location.name)

    def fetch_forecast(self, location: FieldLocation, days: int) -> Tuple[WeatherForecast, str]:
        """
        Fetch a forecast and report which provider served it

        Returns:
            (forecast, provider id)

        Raises:
            AllProvidersExhausted: Every provider attempt failed
        """
        return self._execute("Forecast", location, lambda c: c.get_forecast(location, days))

    def get_forecast(self, location: FieldLocation, days: int) -> WeatherForecast:
        return self.fetch_forecast(location, days)[0]

    def get_current_weather(self, location: FieldLocation) -> WeatherSample:
        return self._execute("Current weather", location, lambda c: c.get_current_weather(location))[0]

    def health_report(self) -> dict:
        """Breaker snapshot plus the current rate limiter load per provider"""
        report = self.health.snapshot()
        for client in self.clients:
            entry = report.setdefault(client.name, {
                "state": self.health.state(client.name),
                "is_healthy": self.health.is_available(client.name),
                "consecutive_failures": 0,
            })
            entry["requests_in_window"] = client.rate_limiter.current_load()
            entry["rate_limit_per_minute"] = client.rate_limiter.limit_per_minute
        return report

    def close(self) -> None:
        for client in self.clients:
            client.close()
