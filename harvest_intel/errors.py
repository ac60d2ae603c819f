"""
Error types raised by the Harvest Intelligence Engine

Provider errors are split by whether a retry can help:
- ProviderRequestFailed: network error, timeout or 5xx (retryable)
- ProviderRateLimited: HTTP 429 (retryable with backoff)
- ProviderResponseInvalid: malformed payload or rejected request (not retryable)
"""

from typing import List, Optional, Tuple


class HarvestIntelligenceError(Exception):
    """Base class for all engine errors"""


class WeatherProviderError(HarvestIntelligenceError):
    """A single weather provider call failed"""

    retryable = False

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.status_code = status_code
        self.response_body = response_body

    def __str__(self) -> str:
        parts = [self.message]
        if self.provider:
            parts.append(f"(Provider: {self.provider})")
        if self.status_code is not None:
            parts.append(f"(Status: {self.status_code})")
        return " ".join(parts)


class ProviderRequestFailed(WeatherProviderError):
    """Network error, timeout or server-side failure"""

    retryable = True


class ProviderRateLimited(WeatherProviderError):
    """Provider answered HTTP 429 after all retries"""

    retryable = True


class ProviderResponseInvalid(WeatherProviderError):
    """Payload could not be normalised, or the request was rejected outright"""


class AllProvidersExhausted(HarvestIntelligenceError):
    """Every configured provider failed for a location"""

    def __init__(
        self,
        location_id: str,
        attempts: List[Tuple[str, Exception]],
        location_name: Optional[str] = None
    ):
        self.location_id = location_id
        self.location_name = location_name
        self.attempts = list(attempts)
        providers = ", ".join(self.providers) or "none"
        label = location_name or location_id
        super().__init__(
            f"All weather providers failed for location {label} (Providers: {providers})"
        )

    @property
    def providers(self) -> List[str]:
        """Providers attempted, in attempt order, without duplicates"""
        seen: List[str] = []
        for provider, _ in self.attempts:
            if provider not in seen:
                seen.append(provider)
        return seen

    @property
    def last_errors(self) -> dict:
        """Last error observed per provider"""
        return {provider: error for provider, error in self.attempts}


class NoThresholdsForCrop(HarvestIntelligenceError, ValueError):
    """No threshold table is configured for the requested crop"""

    def __init__(self, crop):
        self.crop = crop
        name = getattr(crop, "value", crop)
        super().__init__(f"No thresholds defined for crop: {name}")


class CacheCorrupted(HarvestIntelligenceError):
    """A stored cache entry could not be deserialised"""

    def __init__(self, scope: str, key: str, reason: str = ""):
        self.scope = scope
        self.key = key
        super().__init__(f"Corrupted cache entry {scope}/{key}: {reason}")


class NoActiveEquipment(HarvestIntelligenceError):
    """The user has no active combines to schedule"""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"No active combines found for user {user_id}")


class RecommendationFailed(HarvestIntelligenceError):
    """Harvest recommendations could not be produced for a request"""

    def __init__(
        self,
        message: str,
        user_id: str,
        crop=None,
        providers: Optional[List[str]] = None
    ):
        self.user_id = user_id
        self.crop = crop
        self.providers = list(providers or [])
        crop_name = getattr(crop, "value", crop)
        details = f"user={user_id}, crop={crop_name}"
        if self.providers:
            details += f", failed providers={', '.join(self.providers)}"
        super().__init__(f"{message} ({details})")
