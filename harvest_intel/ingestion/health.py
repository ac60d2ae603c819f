"""
Per-provider circuit breaker
"""

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from ..utils.logger import get_logger

logger = get_logger(__name__)

CLOSED = "closed"
OPEN = "open"
HALF_OPEN = "half_open"


@dataclass
class ProviderHealth:
    """Failure bookkeeping for one provider"""
    consecutive_failures: int = 0
    last_failure: Optional[datetime] = None
    last_success: Optional[datetime] = None
    total_failures: int = 0
    total_successes: int = 0
    probe_in_flight: bool = False


class ProviderHealthTracker:
    """
    Tracks consecutive failures per provider and decides whether a provider
    may be called.

    A provider is unhealthy once it has failed ``max_consecutive_failures``
    times in a row. It becomes callable again when more than ``timeout``
    has passed since its last failure; one caller at a time may claim that
    half-open probe through ``try_acquire``. A success resets the counter,
    a failure re-opens the breaker.
    """

    def __init__(
        self,
        max_consecutive_failures: int = 5,
        timeout: timedelta = timedelta(minutes=15),
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.max_consecutive_failures = max_consecutive_failures
        self.timeout = timeout
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._health: Dict[str, ProviderHealth] = {}
        self._lock = threading.Lock()

    def _get(self, provider: str) -> ProviderHealth:
        health = self._health.get(provider)
        if health is None:
            health = ProviderHealth()
            self._health[provider] = health
        return health

    def _state(self, health: ProviderHealth, now: datetime) -> str:
        if health.consecutive_failures < self.max_consecutive_failures:
            return CLOSED
        if health.last_failure is not None and now - health.last_failure > self.timeout:
            return HALF_OPEN
        return OPEN

    def state(self, provider: str) -> str:
        """Breaker state: closed, open or half_open"""
        with self._lock:
            return self._state(self._get(provider), self.clock())

    def is_available(self, provider: str) -> bool:
        """Whether the provider may be called now"""
        return self.state(provider) != OPEN

    def try_acquire(self, provider: str) -> bool:
        """
        Claim permission to call the provider

        Closed providers are always granted. A half-open provider is granted
        to a single caller until that call is recorded or released.
        """
        with self._lock:
            health = self._get(provider)
            state = self._state(health, self.clock())
            if state == CLOSED:
                return True
            if state == OPEN or health.probe_in_flight:
                return False
            health.probe_in_flight = True
            logger.info(f"Half-open probe claimed for {provider}")
            return True

    def release(self, provider: str) -> None:
        """Give up a claimed probe without recording an outcome"""
        with self._lock:
            self._get(provider).probe_in_flight = False

    def record_success(self, provider: str) -> None:
        with self._lock:
            health = self._get(provider)
            health.probe_in_flight = False
            if health.consecutive_failures >= self.max_consecutive_failures:
                logger.info(f"Circuit breaker closed for {provider}")
            health.consecutive_failures = 0
            health.last_success = self.clock()
            health.total_successes += 1

    def record_failure(self, provider: str) -> None:
        with self._lock:
            health = self._get(provider)
            health.probe_in_flight = False
            health.consecutive_failures += 1
            health.last_failure = self.clock()
            health.total_failures += 1
            if health.consecutive_failures == self.max_consecutive_failures:
                logger.warning(
                    f"Circuit breaker opened for {provider} after "
                    f"{health.consecutive_failures} consecutive failures"
                )
            elif health.consecutive_failures > self.max_consecutive_failures:
                logger.warning(f"Half-open probe failed for {provider}, circuit breaker re-opened")

    def consecutive_failures(self, provider: str) -> int:
        with self._lock:
            return self._get(provider).consecutive_failures

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        """
        Health report for every provider seen so far

        Returns:
            Mapping of provider id to its counters and breaker state
        """
        with self._lock:
            now = self.clock()
            return {
                provider: {
                    "state": self._state(health, now),
                    "is_healthy": self._state(health, now) == CLOSED,
                    "consecutive_failures": health.consecutive_failures,
                    "last_failure": health.last_failure.isoformat() if health.last_failure else None,
                    "last_success": health.last_success.isoformat() if health.last_success else None,
                    "total_failures": health.total_failures,
                    "total_successes": health.total_successes,
                }
                for provider, health in self._health.items()
            }
