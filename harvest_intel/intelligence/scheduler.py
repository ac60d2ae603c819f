"""
Harvest window scheduling

Turns a daily forecast into fixed time-of-day windows, scores each one
with a capability x weather multiplier and selects a ranked,
non-overlapping subset.
"""

from datetime import datetime, time, tzinfo
from typing import Callable, List, Optional, Sequence, Tuple

from ..models.analysis import RiskAnalysis
from ..models.harvest import CapabilityScore, CropType, HarvestRecommendation, HarvestWindow
from ..models.weather import WeatherForecast, WeatherSample
from ..utils.logger import get_logger
from .thresholds import CropThresholdEngine

logger = get_logger(__name__)

# Local start/end hours of the windows generated for each forecast day
DAY_WINDOWS: List[Tuple[int, int]] = [(6, 10), (10, 14), (14, 18), (18, 20)]

# Callable (capability, weather, crop) -> multiplier in [0, 1]
CapabilityMultiplier = Callable[[CapabilityScore, WeatherSample, CropType], float]


class ThresholdCapabilityMultiplier:
    """
    Default multiplier: crop capability (score / 10) times the threshold
    engine's harvest readiness, damped by rain at 5% per mm
    """

    def __init__(self, engine: Optional[CropThresholdEngine] = None):
        self.engine = engine or CropThresholdEngine()

    def __call__(self, capability: CapabilityScore, weather: WeatherSample, crop: CropType) -> float:
        combine_readiness = capability.crop_score(crop) / 10.0
        weather_readiness = self.engine.calculate_harvest_readiness(crop, weather)
        if weather.precipitation:
            weather_readiness *= _clamp(1.0 - weather.precipitation / 20.0)
        return _clamp(combine_readiness * weather_readiness)


class HarvestWindowScheduler:
    """
    Generates and selects harvest windows
    """

    def __init__(
        self,
        engine: Optional[CropThresholdEngine] = None,
        multiplier: Optional[CapabilityMultiplier] = None,
        max_windows: int = 10,
        tz: Optional[tzinfo] = None
    ):
        """
        Initialize the scheduler

        Args:
            engine: Threshold engine used to find critical conditions
            multiplier: Capability x weather scoring function
            max_windows: Default cap for ``select_best``
            tz: Zone the day windows are laid out in, the machine's local zone if omitted
        """
        self.engine = engine or CropThresholdEngine()
        self.multiplier = multiplier or ThresholdCapabilityMultiplier(self.engine)
        self.max_windows = max_windows
        self.tz = tz

    def generate_windows(
        self,
        capability: CapabilityScore,
        forecast: WeatherForecast,
        crop: CropType,
        cluster_id: Optional[str] = None
    ) -> List[HarvestWindow]:
        """
        Score four windows per forecast day and drop the ones to avoid

        Args:
            capability: Combine the windows are scored for
            forecast: Daily forecast, oldest first
            crop: Crop being harvested
            cluster_id: Location cluster the forecast belongs to

        Returns:
            Non-avoid windows in chronological order
        """
        windows: List[HarvestWindow] = []

        for sample in forecast.daily_forecasts:
            analysis = self.engine.analyze(crop, sample)
            multiplier = _clamp(self.multiplier(capability, sample, crop))
            recommendation = self._recommend(multiplier, analysis)
            if recommendation == HarvestRecommendation.AVOID:
                continue

            confidence = self._confidence(multiplier, analysis, capability)
            reasons = [v.factor for v in analysis.violations]
            reasons += _recommendation_reasons(recommendation, capability)
            conditions = {
                "temperature": sample.temperature,
                "humidity": sample.humidity,
                "precipitation": sample.precipitation,
                "wind_speed": sample.wind_speed,
                "risk_score": analysis.risk_score,
                "combine_readiness": capability.crop_score(crop) / 10.0,
            }

            # Provider timestamps are UTC; windows are local clock hours
            local = sample.timestamp.astimezone(self.tz)
            day = local.date()
            tz = self.tz or local.tzinfo
            for start_hour, end_hour in DAY_WINDOWS:
                windows.append(HarvestWindow(
                    start_time=datetime.combine(day, time(start_hour), tzinfo=tz),
                    end_time=datetime.combine(day, time(end_hour), tzinfo=tz),
                    weather=sample,
                    recommendation=recommendation,
                    confidence_score=confidence,
                    priority=int(multiplier * 10 + 0.5),
                    combine_weather_multiplier=multiplier,
                    conditions=dict(conditions),
                    reasons=list(reasons),
                    combine_spec_id=capability.combine_spec_id,
                    cluster_id=cluster_id
                ))

        logger.debug(
            f"Generated {len(windows)} windows for {capability.combine_spec_id} "
            f"({crop.value}, cluster {cluster_id})"
        )
        return windows

    def select_best(
        self,
        windows: Sequence[HarvestWindow],
        max_count: Optional[int] = None
    ) -> List[HarvestWindow]:
        """
        Pick the highest-ranked windows that do not overlap each other

        Windows are ranked by priority, then confidence; ties keep their
        input order. A window is accepted only if it overlaps no window
        accepted before it.

        Args:
            windows: Candidates
            max_count: Maximum windows to return

        Returns:
            Selected windows in rank order
        """
        limit = self.max_windows if max_count is None else max_count
        ranked = sorted(windows, key=lambda w: (-w.priority, -w.confidence_score))

        selected: List[HarvestWindow] = []
        for window in ranked:
            if len(selected) >= limit:
                break
            if any(window.overlaps(accepted) for accepted in selected):
                continue
            selected.append(window)
        return selected

    @staticmethod
    def _recommend(multiplier: float, analysis: RiskAnalysis) -> HarvestRecommendation:
        if analysis.has_critical:
            return HarvestRecommendation.AVOID
        if multiplier >= 0.8:
            return HarvestRecommendation.OPTIMAL
        if multiplier >= 0.6:
            return HarvestRecommendation.ACCEPTABLE
        if multiplier >= 0.4:
            return HarvestRecommendation.MARGINAL
        return HarvestRecommendation.AVOID

    @staticmethod
    def _confidence(multiplier: float, analysis: RiskAnalysis, capability: CapabilityScore) -> float:
        confidence = multiplier
        if not analysis.has_findings:
            confidence *= 0.8
        if capability.reliability_score > 8:
            confidence *= 1.1
        elif capability.reliability_score < 5:
            confidence *= 0.9
        return _clamp(confidence)


def _recommendation_reasons(recommendation: HarvestRecommendation, capability: CapabilityScore) -> List[str]:
    if recommendation == HarvestRecommendation.OPTIMAL:
        reasons = ["Excellent conditions for harvest operations"]
        if capability.overall_score > 8:
            reasons.append("High-capability combine well-suited for conditions")
        return reasons
    if recommendation == HarvestRecommendation.ACCEPTABLE:
        return ["Good conditions for harvest with minor considerations"]
    return ["Marginal conditions - monitor closely"]


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))
