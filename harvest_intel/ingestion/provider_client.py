"""
Weather provider connectors

Each connector wraps one external weather API behind the same contract:
- get_forecast(location, days) -> WeatherForecast
- get_current_weather(location) -> WeatherSample

Every call goes through a sliding-window rate limiter, a retrying
requests session and a classification step that turns HTTP failures
into typed provider errors.
"""

import bisect
import random
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import requests
from pydantic import ValidationError
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..errors import ProviderRateLimited, ProviderRequestFailed, ProviderResponseInvalid
from ..models.weather import (
    FieldLocation,
    WeatherCondition,
    WeatherForecast,
    WeatherProvider,
    WeatherSample
)
from ..utils.logger import get_logger

logger = get_logger(__name__)

RETRY_STATUS_CODES = [429, 500, 502, 503, 504]
RATE_LIMIT_WINDOW_SECONDS = 60.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SlidingWindowRateLimiter:
    """
    Delays callers so that at most ``limit_per_minute`` calls start in any
    60 second window. Calls are never rejected.

    A slot is reserved under the lock and the wait happens outside it, so
    concurrent callers queue up behind each other instead of all waking
    at the same instant.
    """

    def __init__(
        self,
        limit_per_minute: int = 100,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], None]] = None
    ):
        if limit_per_minute < 1:
            raise ValueError(f"Rate limit {limit_per_minute} must be at least 1")
        self.limit_per_minute = limit_per_minute
        self._clock = clock or time.monotonic
        self._sleep = sleep or time.sleep
        self._timestamps: List[float] = []
        self._lock = threading.Lock()

    def _prune(self, now: float) -> None:
        cutoff = now - RATE_LIMIT_WINDOW_SECONDS
        drop = bisect.bisect_right(self._timestamps, cutoff)
        if drop:
            del self._timestamps[:drop]

    def acquire(self) -> float:
        """
        Wait for a free slot and record it

        Returns:
            Seconds spent waiting
        """
        with self._lock:
            now = self._clock()
            self._prune(now)
            slot = now
            if len(self._timestamps) >= self.limit_per_minute:
                oldest = self._timestamps[-self.limit_per_minute]
                slot = max(now, oldest + RATE_LIMIT_WINDOW_SECONDS)
            bisect.insort(self._timestamps, slot)

        delay = slot - now
        if delay > 0:
            logger.debug(f"Rate limit reached, waiting {delay:.2f}s for a slot")
            self._sleep(delay)
        return delay

    def current_load(self) -> int:
        """Number of calls recorded in the current window"""
        with self._lock:
            self._prune(self._clock())
            return len(self._timestamps)


class ProviderRetry(Retry):
    """
    urllib3 retry policy with exponential backoff plus up to 1s of jitter

    The n-th retry (0-based) waits ``backoff_factor * 2**n + uniform(0, 1)``
    seconds, capped at ``backoff_max``. A Retry-After header on 429/503
    still takes precedence.
    """

    def get_backoff_time(self) -> float:
        attempt = len(self.history) - 1
        if attempt < 0:
            return 0
        backoff = self.backoff_factor * (2 ** attempt) + random.uniform(0, 1)
        return float(max(0, min(self.backoff_max, backoff)))


def build_retry(max_retries: int, base_delay: float) -> ProviderRetry:
    """
    Build the retry policy for a provider session

    Args:
        max_retries: Total attempts per call, including the first one
        base_delay: Backoff base in seconds

    Returns:
        Configured retry policy
    """
    return ProviderRetry(
        total=max(0, max_retries - 1),
        backoff_factor=base_delay,
        status_forcelist=RETRY_STATUS_CODES,
        allowed_methods=["HEAD", "GET", "OPTIONS", "POST"],
        raise_on_status=False
    )


class WeatherProviderClient(ABC):
    """
    Base connector for a single weather provider
    """

    provider: WeatherProvider

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_base_delay: float = 2.0,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
        rate_limit_per_minute: int = 100,
        cache_duration: timedelta = timedelta(minutes=15),
        session: Optional[requests.Session] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize the connector

        Args:
            base_url: Provider API root
            timeout: Per-request timeout in seconds
            max_retries: Attempts per call, including the first one
            retry_base_delay: Exponential backoff base in seconds
            rate_limiter: Shared limiter; a private one is created if omitted
            rate_limit_per_minute: Limit for the private limiter
            cache_duration: Lifetime stamped on returned forecasts
            session: Pre-built requests session (mainly for tests)
            clock: Returns the current UTC time
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.rate_limiter = rate_limiter or SlidingWindowRateLimiter(rate_limit_per_minute)
        self.cache_duration = cache_duration
        self.clock = clock or _utcnow
        self.session = session or self._create_session()
        logger.info(f"{self.provider.value} connector initialized ({self.base_url})")

    @property
    def name(self) -> str:
        return self.provider.value

    def _create_session(self) -> requests.Session:
        """
        Create a requests session with retry logic

        Returns:
            Configured requests session
        """
        session = requests.Session()

        adapter = HTTPAdapter(max_retries=build_retry(self.max_retries, self.retry_base_delay))
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        return session

    def _request(self, method: str, url: str, **kwargs) -> Any:
        """
        Perform one rate-limited call and decode its JSON body

        Args:
            method: HTTP method
            url: Absolute URL
            **kwargs: Passed through to requests

        Returns:
            Decoded JSON body

        Raises:
            ProviderRequestFailed: Timeout, connection error or 5xx
            ProviderRateLimited: 429 after all retries
            ProviderResponseInvalid: Other 4xx or a non-JSON body
        """
        self.rate_limiter.acquire()

        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.Timeout as e:
            logger.warning(f"{self.name} request timed out: {url}")
            raise ProviderRequestFailed(f"Request timed out: {e}", provider=self.name) from e
        except requests.exceptions.RetryError as e:
            logger.warning(f"{self.name} retries exhausted: {url}")
            raise ProviderRequestFailed(f"Retries exhausted: {e}", provider=self.name) from e
        except requests.exceptions.RequestException as e:
            logger.warning(f"{self.name} request failed: {e}")
            raise ProviderRequestFailed(f"Request failed: {e}", provider=self.name) from e

        status = response.status_code
        if status == 429:
            logger.warning(f"{self.name} rate limited the request: {url}")
            raise ProviderRateLimited(
                "Rate limit exceeded", provider=self.name,
                status_code=status, response_body=response.text
            )
        if status >= 500:
            logger.warning(f"{self.name} server error {status}: {url}")
            raise ProviderRequestFailed(
                "Server error", provider=self.name,
                status_code=status, response_body=response.text
            )
        if status >= 400:
            logger.warning(f"{self.name} rejected the request with {status}: {url}")
            raise ProviderResponseInvalid(
                "Request rejected", provider=self.name,
                status_code=status, response_body=response.text
            )

        try:
            return response.json()
        except ValueError as e:
            raise ProviderResponseInvalid(
                f"Response is not valid JSON: {e}", provider=self.name,
                status_code=status, response_body=response.text
            ) from e

    def _build_forecast(self, location: FieldLocation, samples: List[WeatherSample]) -> WeatherForecast:
        """Sort samples and wrap them into a forecast"""
        if not samples:
            raise ProviderResponseInvalid("Provider returned no forecast days", provider=self.name)

        samples = sorted(samples, key=lambda s: s.timestamp)
        try:
            return WeatherForecast(
                location_id=location.id,
                generated_at=self.clock(),
                provider=self.provider,
                daily_forecasts=samples,
                cache_duration=self.cache_duration
            )
        except ValidationError as e:
            raise ProviderResponseInvalid(f"Invalid forecast: {e}", provider=self.name) from e

    def _invalid(self, message: str, cause: Optional[Exception] = None) -> ProviderResponseInvalid:
        return ProviderResponseInvalid(f"{message}: {cause}" if cause else message, provider=self.name)

    @abstractmethod
    def get_forecast(self, location: FieldLocation, days: int) -> WeatherForecast:
        """Fetch a daily forecast for ``days`` days"""

    @abstractmethod
    def get_current_weather(self, location: FieldLocation) -> WeatherSample:
        """Fetch the current conditions"""

    def close(self) -> None:
        self.session.close()


class TomorrowIoClient(WeatherProviderClient):
    """
    Primary provider: Tomorrow.io timelines API (paid)
    """

    provider = WeatherProvider.TOMORROW_IO

    FORECAST_FIELDS = [
        "temperatureMin",
        "temperatureMax",
        "temperature",
        "humidity",
        "precipitationIntensity",
        "windSpeed",
        "windDirection",
        "dewPoint",
        "leafWetness",
        "evapotranspiration",
        "weatherCode",
        "weatherCodeFullDay",
        "sunriseTime",
        "sunsetTime",
    ]

    REALTIME_FIELDS = [
        "temperature",
        "humidity",
        "precipitationIntensity",
        "windSpeed",
        "windDirection",
        "dewPoint",
        "leafWetness",
        "weatherCode",
    ]

    WEATHER_CODES = {
        1000: WeatherCondition.CLEAR,
        1100: WeatherCondition.CLOUDY,
        1101: WeatherCondition.CLOUDY,
        1102: WeatherCondition.CLOUDY,
        4000: WeatherCondition.RAIN,
        4001: WeatherCondition.RAIN,
        4200: WeatherCondition.RAIN,
        4201: WeatherCondition.RAIN,
        5000: WeatherCondition.SNOW,
        5001: WeatherCondition.SNOW,
        5100: WeatherCondition.SNOW,
        5101: WeatherCondition.SNOW,
        2000: WeatherCondition.FOG,
        2100: WeatherCondition.FOG,
        8000: WeatherCondition.STORM,
    }

    def __init__(self, api_key: str, base_url: str = "https://api.tomorrow.io/v4", **kwargs):
        self.api_key = api_key
        super().__init__(base_url, **kwargs)

    @classmethod
    def parse_condition(cls, code: Any) -> WeatherCondition:
        try:
            return cls.WEATHER_CODES.get(int(code), WeatherCondition.CLOUDY)
        except (TypeError, ValueError):
            return WeatherCondition.CLOUDY

    def parse_interval(self, interval: Dict[str, Any], location_id: str) -> WeatherSample:
        """
        Normalise one timeline interval into a sample

        Args:
            interval: {"startTime": ..., "values": {...}}
            location_id: Field the sample belongs to

        Returns:
            Parsed sample
        """
        values = interval.get("values") or {}
        return WeatherSample(
            location_id=location_id,
            timestamp=interval.get("startTime") or interval.get("time"),
            provider=self.provider,
            temperature_min=values.get("temperatureMin"),
            temperature_max=values.get("temperatureMax"),
            temperature=values.get("temperature"),
            humidity=values.get("humidity"),
            precipitation=values.get("precipitationIntensity"),
            wind_speed=values.get("windSpeed"),
            wind_direction=values.get("windDirection"),
            dew_point=values.get("dewPoint"),
            leaf_wetness=values.get("leafWetness"),
            evapotranspiration=values.get("evapotranspiration"),
            condition=self.parse_condition(values.get("weatherCode")),
            description=values.get("weatherCodeFullDay"),
            sunrise=values.get("sunriseTime"),
            sunset=values.get("sunsetTime")
        )

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def get_forecast(self, location: FieldLocation, days: int) -> WeatherForecast:
        now = self.clock()
        body = {
            "location": f"{location.latitude},{location.longitude}",
            "fields": self.FORECAST_FIELDS,
            "units": "metric",
            "timesteps": ["1d"],
            "startTime": now.isoformat(),
            "endTime": (now + timedelta(days=days)).isoformat(),
        }

        logger.debug(f"Fetching {days}-day Tomorrow.io forecast for {location.id}")
        data = self._request("POST", f"{self.base_url}/timelines", json=body, headers=self._headers())

        try:
            intervals = data["data"]["timelines"][0]["intervals"]
            samples = [self.parse_interval(interval, location.id) for interval in intervals]
        except (KeyError, IndexError, TypeError, ValidationError) as e:
            raise self._invalid("Invalid response format from Tomorrow.io", e) from e

        return self._build_forecast(location, samples)

    def get_current_weather(self, location: FieldLocation) -> WeatherSample:
        params = {
            "location": f"{location.latitude},{location.longitude}",
            "fields": ",".join(self.REALTIME_FIELDS),
            "units": "metric",
        }

        data = self._request(
            "GET", f"{self.base_url}/weather/realtime",
            params=params, headers={"Authorization": f"Bearer {self.api_key}"}
        )

        try:
            payload = data["data"]
            return self.parse_interval(
                {"time": payload.get("time") or self.clock(), "values": payload["values"]},
                location.id
            )
        except (KeyError, TypeError, AttributeError, ValidationError) as e:
            raise self._invalid("Invalid current weather response from Tomorrow.io", e) from e


class MscClient(WeatherProviderClient):
    """
    Fallback provider: Meteorological Service of Canada OGC API (free)
    """

    provider = WeatherProvider.MSC

    def __init__(self, base_url: str = "https://api.weather.gc.ca", **kwargs):
        super().__init__(base_url, **kwargs)

    @staticmethod
    def parse_condition(text: Optional[str]) -> WeatherCondition:
        """
        Determine a coded condition from MSC condition text

        Args:
            text: Condition text

        Returns:
            Matching condition, cloudy when nothing matches
        """
        if not isinstance(text, str):
            return WeatherCondition.CLOUDY

        lower = text.lower()
        if "clear" in lower or "sunny" in lower:
            return WeatherCondition.CLEAR
        if "rain" in lower or "shower" in lower:
            return WeatherCondition.RAIN
        if "snow" in lower:
            return WeatherCondition.SNOW
        if "fog" in lower:
            return WeatherCondition.FOG
        if "storm" in lower or "thunder" in lower:
            return WeatherCondition.STORM
        return WeatherCondition.CLOUDY

    def parse_properties(self, properties: Dict[str, Any], location_id: str) -> WeatherSample:
        return WeatherSample(
            location_id=location_id,
            timestamp=properties["datetime"],
            provider=self.provider,
            temperature_min=properties.get("temp_min"),
            temperature_max=properties.get("temp_max"),
            temperature=properties.get("temp"),
            humidity=properties.get("humidity"),
            precipitation=properties.get("precip"),
            wind_speed=properties.get("wind_speed"),
            wind_direction=properties.get("wind_dir"),
            dew_point=properties.get("dew_point"),
            condition=self.parse_condition(properties.get("condition")),
            description=properties.get("condition_text")
        )

    def _features(self, collection: str, location: FieldLocation, limit: int) -> List[Dict[str, Any]]:
        params = {
            "lat": str(location.latitude),
            "lon": str(location.longitude),
            "limit": str(limit),
            "f": "json",
        }
        data = self._request("GET", f"{self.base_url}/collections/{collection}/items", params=params)

        features = data.get("features") if isinstance(data, dict) else None
        if not isinstance(features, list):
            raise self._invalid("Invalid response format from MSC")
        return features

    def get_forecast(self, location: FieldLocation, days: int) -> WeatherForecast:
        logger.debug(f"Fetching {days}-day MSC forecast for {location.id}")
        features = self._features("climate-daily", location, days)

        try:
            samples = [self.parse_properties(f["properties"], location.id) for f in features]
        except (KeyError, TypeError, ValidationError) as e:
            raise self._invalid("Invalid forecast feature from MSC", e) from e

        return self._build_forecast(location, samples)

    def get_current_weather(self, location: FieldLocation) -> WeatherSample:
        features = self._features("observations", location, 1)
        if not features:
            raise self._invalid("No current weather data from MSC")

        try:
            return self.parse_properties(features[0]["properties"], location.id)
        except (KeyError, TypeError, ValidationError) as e:
            raise self._invalid("Invalid observation feature from MSC", e) from e
