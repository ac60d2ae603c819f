"""
Harvest Intelligence Orchestrator

Top-level entry point. For one user request it:
1. Resolves equipment capability scores (cache first)
2. Returns a cached window set when one is fresh
3. Clusters the fields so nearby fields share one forecast fetch
4. Fetches cluster forecasts in parallel through cache-then-gateway
5. Generates and selects harvest windows
6. Caches the result and reports API cost and cache efficiency
"""

import threading
import time
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from ..cache.forecast_cache import ForecastCache
from ..cache.stores import CacheStore
from ..config import HarvestIntelligenceSettings, get_settings
from ..errors import AllProvidersExhausted, NoActiveEquipment, RecommendationFailed
from ..ingestion.gateway import WeatherGateway
from ..models.cache import CacheStatistics
from ..models.harvest import (
    ApiCallCost,
    CapabilityScore,
    CostSummary,
    CropType,
    HarvestWindow,
    LocationCluster
)
from ..models.weather import FieldLocation, WeatherForecast
from ..utils.logger import get_logger
from .clustering import LocationClusterer
from .scheduler import HarvestWindowScheduler
from .thresholds import CropThresholdEngine

logger = get_logger(__name__)

# How often the fetch loop wakes up to check cancellation
POLL_INTERVAL_SECONDS = 0.05


class CapabilityProvider(Protocol):
    """Source of equipment capability scores"""

    def active_combines(self, user_id: str) -> List[str]:
        ...

    def score(self, combine_spec_id: str) -> CapabilityScore:
        ...


class CostLedger:
    """
    Append-only, thread-safe record of weather API usage
    """

    def __init__(self):
        self._entries: deque = deque()
        self._lock = threading.Lock()

    def record(self, entry: ApiCallCost) -> None:
        with self._lock:
            self._entries.append(entry)

    def entries(self) -> List[ApiCallCost]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @staticmethod
    def summarize(entries: Sequence[ApiCallCost]) -> CostSummary:
        """
        Aggregate ledger entries

        Args:
            entries: Entries to aggregate

        Returns:
            Totals, per-provider cost and cache hit rate
        """
        costs_by_provider: Dict[str, float] = {}
        total_cost = 0.0
        total_calls = 0
        cached_calls = 0

        for entry in entries:
            total_calls += entry.call_count
            if entry.from_cache:
                cached_calls += entry.call_count
            total_cost += entry.estimated_cost
            costs_by_provider[entry.provider] = (
                costs_by_provider.get(entry.provider, 0.0) + entry.estimated_cost
            )

        return CostSummary(
            total_cost=total_cost,
            costs_by_provider=costs_by_provider,
            total_calls=total_calls,
            cached_calls=cached_calls,
            cache_hit_rate=cached_calls / total_calls if total_calls else 0.0
        )

    def summary(self) -> CostSummary:
        return self.summarize(self.entries())


@dataclass
class HarvestIntelligenceResult:
    """
    Outcome of one recommendation request

    Attributes:
        user_id: Requesting user
        crop: Crop being harvested
        windows: Selected windows in rank order
        api_costs: Ledger entries produced by this request
        cost_summary: Aggregate of ``api_costs``
        cache_hit_rate: Share of this request's forecast lookups served from cache
        from_cache: Whole window set came from the cache
        incomplete: Request was cancelled or timed out before every cluster finished
        clusters: Location clusters used
        generated_at: When the result was produced
    """
    user_id: str
    crop: CropType
    windows: List[HarvestWindow]
    api_costs: List[ApiCallCost] = field(default_factory=list)
    cost_summary: CostSummary = field(default_factory=CostSummary)
    cache_hit_rate: float = 0.0
    from_cache: bool = False
    incomplete: bool = False
    clusters: List[LocationCluster] = field(default_factory=list)
    generated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "crop": self.crop.value,
            "windows": [w.model_dump(mode="json") for w in self.windows],
            "api_costs": [c.model_dump(mode="json") for c in self.api_costs],
            "cost_summary": self.cost_summary.model_dump(),
            "cache_hit_rate": self.cache_hit_rate,
            "from_cache": self.from_cache,
            "incomplete": self.incomplete,
            "clusters": [{"id": c.id, "field_ids": c.field_ids} for c in self.clusters],
            "generated_at": self.generated_at.isoformat() if self.generated_at else None,
        }


def overall_recommendation(avg_risk: float, optimal_windows: int, critical_risks: int) -> str:
    """Verdict across every analysed location and day"""
    if critical_risks > 0:
        return "AVOID: Critical weather conditions present"
    if avg_risk < 0.3 and optimal_windows > 2:
        return "OPTIMAL: Excellent harvest conditions forecast"
    if avg_risk < 0.5:
        return "ACCEPTABLE: Good conditions with minor considerations"
    if avg_risk < 0.7:
        return "MARGINAL: Monitor conditions closely"
    return "CAUTION: Poor conditions, consider delaying"


class HarvestIntelligenceOrchestrator:
    """
    Combines weather acquisition, caching, clustering, threshold analysis
    and window scheduling into harvest recommendations
    """

    def __init__(
        self,
        capability_provider: CapabilityProvider,
        gateway: WeatherGateway,
        cache: Optional[ForecastCache] = None,
        engine: Optional[CropThresholdEngine] = None,
        scheduler: Optional[HarvestWindowScheduler] = None,
        clusterer: Optional[LocationClusterer] = None,
        settings: Optional[HarvestIntelligenceSettings] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize the orchestrator

        Args:
            capability_provider: Scores combines and lists a user's active ones
            gateway: Weather source with provider failover
            cache: Forecast/capability/window cache, in-memory if omitted
            engine: Crop threshold engine
            scheduler: Window scheduler
            clusterer: Location clusterer
            settings: Engine settings, defaults to the environment settings
            clock: Returns the current UTC time
        """
        self.settings = settings or get_settings()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.capability_provider = capability_provider
        self.gateway = gateway
        self.cache = cache or ForecastCache(clock=self.clock)
        self.engine = engine or CropThresholdEngine(clock=self.clock)
        self.scheduler = scheduler or HarvestWindowScheduler(
            engine=self.engine,
            max_windows=self.settings.max_harvest_windows,
            tz=self.settings.local_timezone
        )
        self.clusterer = clusterer or LocationClusterer(self.settings.location_cluster_radius_km)
        self.ledger = CostLedger()

        logger.info("Harvest intelligence orchestrator initialized")

    @classmethod
    def from_settings(
        cls,
        capability_provider: CapabilityProvider,
        settings: Optional[HarvestIntelligenceSettings] = None,
        store: Optional[CacheStore] = None
    ) -> "HarvestIntelligenceOrchestrator":
        """
        Build an orchestrator with the default gateway

        Args:
            capability_provider: Capability source
            settings: Engine settings
            store: Cache store, in-memory if omitted

        Returns:
            Configured orchestrator
        """
        settings = settings or get_settings()
        return cls(
            capability_provider=capability_provider,
            gateway=WeatherGateway.from_settings(settings),
            cache=ForecastCache(store=store),
            settings=settings
        )

    def _resolve_days(self, forecast_days: Optional[int]) -> int:
        days = self.settings.max_forecast_days if forecast_days is None else forecast_days
        if days < 1:
            raise ValueError(f"forecast_days must be at least 1, got {days}")
        return min(days, self.settings.max_forecast_days)

    def _get_capabilities(self, user_id: str) -> List[CapabilityScore]:
        combine_ids = self.capability_provider.active_combines(user_id)
        if not combine_ids:
            raise NoActiveEquipment(user_id)

        capabilities = []
        for combine_id in combine_ids:
            capability = self.cache.get_capability(combine_id)
            if capability is None:
                capability = self.capability_provider.score(combine_id)
                self.cache.set_capability(capability, self.settings.capability_cache_duration)
            capabilities.append(capability)
        return capabilities

    def _fetch_forecast(self, location: FieldLocation, days: int) -> Tuple[WeatherForecast, ApiCallCost]:
        """
        Cache-then-gateway forecast lookup; every lookup is written to the ledger

        Raises:
            AllProvidersExhausted: Cache miss and every provider failed
        """
        forecast = self.cache.get_forecast(location, days)
        if forecast is not None:
            cost = ApiCallCost(
                provider=forecast.provider.value,
                endpoint="forecast",
                timestamp=self.clock(),
                estimated_cost=0.0,
                location_id=location.id,
                from_cache=True
            )
        else:
            forecast, provider = self.gateway.fetch_forecast(location, days)
            self.cache.set_forecast(location, days, forecast)
            cost = ApiCallCost(
                provider=provider,
                endpoint="forecast",
                timestamp=self.clock(),
                estimated_cost=self.settings.api_cost_per_provider.get(provider, 0.0),
                location_id=location.id,
                from_cache=False
            )

        self.ledger.record(cost)
        return forecast, cost

    def _fetch_cluster_forecasts(
        self,
        clusters: List[LocationCluster],
        days: int,
        timeout: Optional[float],
        cancel_event: Optional[threading.Event]
    ) -> Tuple[Dict[str, WeatherForecast], List[ApiCallCost], bool]:
        """
        Fetch every cluster's forecast on a bounded worker pool

        Returns:
            (forecasts by cluster id, this request's ledger entries, incomplete flag)
        """
        forecasts: Dict[str, WeatherForecast] = {}
        costs: List[ApiCallCost] = []
        incomplete = False
        deadline = time.monotonic() + timeout if timeout is not None else None

        executor = ThreadPoolExecutor(
            max_workers=self.settings.max_concurrent_fetches,
            thread_name_prefix="forecast-fetch"
        )
        futures: Dict[Future, LocationCluster] = {
            executor.submit(self._fetch_forecast, cluster.representative, days): cluster
            for cluster in clusters
        }
        pending = set(futures)

        try:
            while pending:
                if cancel_event is not None and cancel_event.is_set():
                    logger.warning(f"Forecast fetch cancelled with {len(pending)} clusters pending")
                    incomplete = True
                    break

                wait_for = POLL_INTERVAL_SECONDS
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        logger.warning(f"Forecast fetch timed out with {len(pending)} clusters pending")
                        incomplete = True
                        break
                    wait_for = min(wait_for, remaining)

                done, pending = wait(pending, timeout=wait_for, return_when=FIRST_COMPLETED)
                for future in done:
                    forecast, cost = future.result()
                    forecasts[futures[future].id] = forecast
                    costs.append(cost)
        except BaseException:
            executor.shutdown(wait=False, cancel_futures=True)
            raise

        # In-flight HTTP calls are left to finish on their own timeouts
        executor.shutdown(wait=not incomplete, cancel_futures=incomplete)
        return forecasts, costs, incomplete

    def get_recommendations(
        self,
        user_id: str,
        fields: Sequence[FieldLocation],
        crop: CropType,
        forecast_days: Optional[int] = None,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> HarvestIntelligenceResult:
        """
        Produce ranked, non-overlapping harvest windows for a user's fields

        Args:
            user_id: Requesting user
            fields: Fields to plan, in caller order
            crop: Crop being harvested
            forecast_days: Days to forecast, capped at the configured maximum
            timeout: Seconds allowed for forecast fetching
            cancel_event: Set to abandon outstanding fetches

        Returns:
            HarvestIntelligenceResult

        Raises:
            ValueError: No fields were given
            NoActiveEquipment: The user has no active combines
            NoThresholdsForCrop: The crop has no threshold table
            RecommendationFailed: A cluster forecast could not be fetched from any provider
        """
        if not fields:
            raise ValueError("At least one field location is required")
        days = self._resolve_days(forecast_days)
        self.engine.thresholds_for(crop)
        field_ids = [f.id for f in fields]

        capabilities = self._get_capabilities(user_id)

        cached_windows = self.cache.get_window_set(user_id, crop, field_ids)
        if cached_windows is not None:
            logger.info(f"Serving {len(cached_windows)} cached harvest windows for user {user_id}")
            return HarvestIntelligenceResult(
                user_id=user_id,
                crop=crop,
                windows=cached_windows,
                cache_hit_rate=1.0,
                from_cache=True,
                generated_at=self.clock()
            )

        clusters = self.clusterer.cluster(fields)

        try:
            forecasts, costs, incomplete = self._fetch_cluster_forecasts(
                clusters, days, timeout, cancel_event
            )
        except AllProvidersExhausted as e:
            logger.error(f"Harvest recommendations failed for user {user_id}: {e}")
            raise RecommendationFailed(
                f"Weather unavailable for location {e.location_name or e.location_id}",
                user_id=user_id,
                crop=crop,
                providers=e.providers
            ) from e

        # Capability-major order decides which of two tied windows wins selection
        all_windows: List[HarvestWindow] = []
        for capability in capabilities:
            for cluster in clusters:
                forecast = forecasts.get(cluster.id)
                if forecast is None:
                    continue
                all_windows.extend(
                    self.scheduler.generate_windows(capability, forecast, crop, cluster.id)
                )

        windows = self.scheduler.select_best(all_windows, self.settings.max_harvest_windows)

        if not incomplete:
            self.cache.set_window_set(
                user_id, crop, field_ids, windows, self.settings.window_cache_duration
            )

        summary = CostLedger.summarize(costs)
        logger.info(
            f"Generated {len(windows)} harvest windows for user {user_id} ({crop.value}): "
            f"{len(clusters)} clusters, {summary.total_calls} forecast lookups, "
            f"hit rate {summary.cache_hit_rate:.0%}, cost ${summary.total_cost:.2f}"
            + (" [incomplete]" if incomplete else "")
        )

        return HarvestIntelligenceResult(
            user_id=user_id,
            crop=crop,
            windows=windows,
            api_costs=costs,
            cost_summary=summary,
            cache_hit_rate=summary.cache_hit_rate,
            incomplete=incomplete,
            clusters=clusters,
            generated_at=self.clock()
        )

    def get_crop_recommendations(
        self,
        crop: CropType,
        locations: Sequence[FieldLocation],
        forecast_days: int = 7
    ) -> Dict[str, Any]:
        """
        Day-by-day threshold analysis for a crop across locations

        A location whose forecast cannot be fetched is reported with an
        error entry; the other locations are still analysed.

        Args:
            crop: Crop being harvested
            locations: Locations to analyse
            forecast_days: Days to forecast

        Returns:
            Per-location daily analyses, a summary with an overall verdict
            and crop guidance
        """
        self.engine.thresholds_for(crop)
        days = self._resolve_days(forecast_days)

        location_analyses = []
        total_risk = 0.0
        analysed_days = 0
        optimal_windows = 0
        critical_risks = 0

        for location in locations:
            try:
                forecast, _ = self._fetch_forecast(location, days)
            except AllProvidersExhausted as e:
                logger.error(f"Crop analysis skipped location {location.id}: {e}")
                location_analyses.append({
                    "location_id": location.id,
                    "location_name": location.name,
                    "error": f"Failed to analyze location: {e}",
                })
                continue

            daily = []
            location_risk = 0.0
            location_optimal = 0
            for weather in forecast.daily_forecasts:
                analysis = self.engine.analyze(crop, weather, forecast.daily_forecasts)
                location_risk += analysis.risk_score

                if not analysis.violations and len(analysis.opportunities) > 1:
                    location_optimal += 1
                if analysis.has_critical:
                    critical_risks += 1

                daily.append({
                    "date": weather.timestamp.isoformat(),
                    "risk_score": analysis.risk_score,
                    "violations": len(analysis.violations),
                    "opportunities": len(analysis.opportunities),
                    "harvest_readiness": self.engine.calculate_harvest_readiness(crop, weather),
                    "recommendations": self.engine.generate_crop_recommendations(crop, analysis),
                })

            day_count = len(forecast.daily_forecasts)
            total_risk += location_risk
            analysed_days += day_count
            optimal_windows += location_optimal
            location_analyses.append({
                "location_id": location.id,
                "location_name": location.name,
                "daily_analyses": daily,
                "average_risk_score": location_risk / day_count,
                "optimal_days": location_optimal,
            })

        average_risk = total_risk / analysed_days if analysed_days else 0.0
        return {
            "crop": crop.value,
            "analysis_date": self.clock().isoformat(),
            "locations": len(locations),
            "forecast_days": days,
            "location_analyses": location_analyses,
            "summary": {
                "average_risk_score": average_risk,
                "total_optimal_windows": optimal_windows,
                "total_critical_risks": critical_risks,
                "recommendation": overall_recommendation(average_risk, optimal_windows, critical_risks),
            },
            "crop_guidance": self.engine.crop_guidance(crop),
        }

    def get_cost_summary(self) -> CostSummary:
        """Cumulative cost summary over every request so far"""
        return self.ledger.summary()

    def get_cache_statistics(self, scope: Optional[str] = None) -> CacheStatistics:
        return self.cache.stats(scope)

    def get_provider_health(self) -> Dict[str, Any]:
        return self.gateway.health_report()

    def perform_cache_maintenance(self) -> Dict[str, Any]:
        """
        Sweep expired cache entries

        Returns:
            Number removed and the statistics after the sweep
        """
        removed = self.cache.sweep()
        stats = self.cache.stats()
        logger.info(f"Cache maintenance removed {removed} entries, {stats.total_entries} remain")
        return {"expired_removed": removed, "statistics": stats.to_dict()}

    def clear_caches(self, scope: Optional[str] = None) -> int:
        return self.cache.clear(scope)
