"""
Crop Threshold Engine

Judges a weather sample (plus an optional forecast) against a crop's
harvest thresholds and produces violations, warnings and opportunities:
- Temperature: frost and heat stress
- Precipitation: light, heavy and critical amounts
- Wind: shatter and operational limits
- Humidity: optimal and critical bands
- Crop-specific rules: canola shattering, wheat sprouting, barley pre-germination
- Grain moisture, when the field reports it
- Forecast scan for advance warnings and optimal days

Two scalar summaries come out of an analysis, with deliberately different
severity weights: a risk score and a harvest readiness score.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..errors import NoThresholdsForCrop
from ..models.analysis import (
    RiskAnalysis,
    Severity,
    ThresholdOpportunity,
    ThresholdViolation,
    ThresholdWarning
)
from ..models.harvest import CropType
from ..models.weather import WeatherSample
from ..utils.logger import get_logger
from .threshold_tables import DEFAULT_THRESHOLD_TABLE, CropThresholds, ThresholdTable

logger = get_logger(__name__)

# Planning defaults for missing measurements
DEFAULT_TEMPERATURE = 20.0
DEFAULT_HUMIDITY = 50.0

# Frost is critical once the minimum is this far below the threshold
FROST_CRITICAL_MARGIN = 1.0
FORECAST_FROST_MARGIN = 2.0
HEAT_STRESS_HIGH_MARGIN = 5.0
TEMPERATURE_WINDOW_MARGIN = 3.0
OPTIMAL_WINDOW_FROST_MARGIN = 3.0
MAX_FORECAST_SCAN_DAYS = 7

RISK_WEIGHTS = {Severity.CRITICAL: 0.4, Severity.HIGH: 0.25, Severity.MEDIUM: 0.1}
READINESS_PENALTIES = {Severity.CRITICAL: 0.5, Severity.HIGH: 0.3, Severity.MEDIUM: 0.15}
WARNING_WEIGHT = 0.05
OPPORTUNITY_BONUS = 0.1

CROP_TIPS = {
    CropType.CANOLA: "Monitor seed color change - optimal harvest window at 60-90% brown seeds",
    CropType.WHEAT: "Consider straight cutting at 16-20% moisture for optimal quality",
    CropType.BARLEY: "Preserve malting quality - harvest at 13.5-14.5% moisture",
}


def risk_score(violations: Sequence[ThresholdViolation], warnings: Sequence[ThresholdWarning]) -> float:
    """
    Risk in [0, 1]: 0.4 per critical, 0.25 per high, 0.1 per medium
    violation plus 0.05 per warning, capped at 1.0
    """
    score = sum(RISK_WEIGHTS[v.severity] for v in violations)
    score += len(warnings) * WARNING_WEIGHT
    return min(score, 1.0)


def harvest_readiness(analysis: RiskAnalysis) -> float:
    """
    Readiness in [0, 1]: starts at 1.0, loses 0.5/0.3/0.15 per
    critical/high/medium violation and 0.05 per warning, gains 0.1 per
    opportunity
    """
    readiness = 1.0
    readiness -= sum(READINESS_PENALTIES[v.severity] for v in analysis.violations)
    readiness -= len(analysis.warnings) * WARNING_WEIGHT
    readiness += len(analysis.opportunities) * OPPORTUNITY_BONUS
    return max(0.0, min(1.0, readiness))


class CropThresholdEngine:
    """
    Stateless evaluator over an injected threshold table
    """

    def __init__(
        self,
        table: Optional[ThresholdTable] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize the engine

        Args:
            table: Thresholds per crop, defaults to DEFAULT_THRESHOLD_TABLE
            clock: Returns the current UTC time, used to stamp analyses
        """
        self.table: ThresholdTable = dict(table if table is not None else DEFAULT_THRESHOLD_TABLE)
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def supported_crops(self) -> List[CropType]:
        return list(self.table)

    def thresholds_for(self, crop: CropType) -> CropThresholds:
        """
        Raises:
            NoThresholdsForCrop: The table has no entry for the crop
        """
        thresholds = self.table.get(crop)
        if thresholds is None:
            raise NoThresholdsForCrop(crop)
        return thresholds

    def analyze(
        self,
        crop: CropType,
        current_weather: WeatherSample,
        forecast_samples: Sequence[WeatherSample] = (),
        field_conditions: Optional[Dict[str, Any]] = None
    ) -> RiskAnalysis:
        """
        Analyze weather against a crop's thresholds

        Args:
            crop: Crop being harvested
            current_weather: Sample judged for violations
            forecast_samples: Upcoming days, scanned for advance warnings
            field_conditions: Optional field readings, e.g. {"grain_moisture": 16.5}

        Returns:
            RiskAnalysis with findings in rule order and its risk score
        """
        thresholds = self.thresholds_for(crop)

        violations: List[ThresholdViolation] = []
        warnings: List[ThresholdWarning] = []
        opportunities: List[ThresholdOpportunity] = []
        details: Dict[str, Any] = {}

        self._evaluate_temperature(current_weather, thresholds, violations, opportunities, details)
        self._evaluate_precipitation(current_weather, thresholds, violations, warnings, details)
        self._evaluate_wind(current_weather, thresholds, violations, warnings, details)
        self._evaluate_humidity(current_weather, thresholds, violations, opportunities, details)
        self._evaluate_crop_rules(current_weather, thresholds, violations, details)
        if field_conditions and field_conditions.get("grain_moisture") is not None:
            self._evaluate_grain_moisture(
                float(field_conditions["grain_moisture"]), thresholds,
                violations, warnings, opportunities, details
            )
        self._scan_forecast(forecast_samples, thresholds, warnings, opportunities)

        analysis = RiskAnalysis(
            crop=crop,
            violations=violations,
            warnings=warnings,
            opportunities=opportunities,
            risk_score=risk_score(violations, warnings),
            details=details,
            analyzed_at=self.clock()
        )

        logger.debug(
            f"{crop.value}: {len(violations)} violations, {len(warnings)} warnings, "
            f"{len(opportunities)} opportunities, risk {analysis.risk_score:.2f}"
        )
        return analysis

    def _evaluate_temperature(
        self,
        weather: WeatherSample,
        thresholds: CropThresholds,
        violations: List[ThresholdViolation],
        opportunities: List[ThresholdOpportunity],
        details: Dict[str, Any]
    ) -> None:
        temp = _first(weather.temperature, weather.temperature_max, DEFAULT_TEMPERATURE)
        temp_min = _first(weather.temperature_min, temp)

        frost = thresholds.frost
        if frost is not None and temp_min <= frost.threshold:
            violations.append(ThresholdViolation(
                factor="Frost Temperature",
                current_value=temp_min,
                threshold=frost.threshold,
                severity=(
                    Severity.CRITICAL if temp_min <= frost.threshold - FROST_CRITICAL_MARGIN
                    else Severity.HIGH
                ),
                impact=frost.impact,
                recommendation="Immediate harvest required if crop is mature"
            ))

        heat = thresholds.heat_stress
        if heat is not None:
            if temp >= heat.threshold:
                violations.append(ThresholdViolation(
                    factor="Heat Stress",
                    current_value=temp,
                    threshold=heat.threshold,
                    severity=(
                        Severity.HIGH if temp >= heat.threshold + HEAT_STRESS_HIGH_MARGIN
                        else Severity.MEDIUM
                    ),
                    impact=heat.impact,
                    recommendation="Consider early morning or evening harvest"
                ))
            elif temp >= heat.threshold - TEMPERATURE_WINDOW_MARGIN:
                opportunities.append(ThresholdOpportunity(
                    factor="Temperature Window",
                    current_value=temp,
                    advantage="Optimal temperature for harvest operations",
                    recommendation="Good conditions for extended harvest hours"
                ))

        details["temperature"] = {
            "current": temp,
            "minimum": temp_min,
            "frost_risk": frost is not None and temp_min <= frost.threshold,
            "heat_stress": heat is not None and temp >= heat.threshold,
        }

    def _evaluate_precipitation(
        self,
        weather: WeatherSample,
        thresholds: CropThresholds,
        violations: List[ThresholdViolation],
        warnings: List[ThresholdWarning],
        details: Dict[str, Any]
    ) -> None:
        precipitation = _first(weather.precipitation, 0.0)
        rain = thresholds.rain

        if rain is not None:
            if precipitation >= rain.critical_amount:
                violations.append(ThresholdViolation(
                    factor="Heavy Precipitation",
                    current_value=precipitation,
                    threshold=rain.critical_amount,
                    severity=Severity.CRITICAL,
                    impact="Harvest operations must cease",
                    recommendation="Wait for field conditions to improve"
                ))
            elif precipitation >= rain.heavy_rain:
                violations.append(ThresholdViolation(
                    factor="Moderate Precipitation",
                    current_value=precipitation,
                    threshold=rain.heavy_rain,
                    severity=Severity.HIGH,
                    impact="Harvest efficiency significantly reduced",
                    recommendation="Consider postponing harvest operations"
                ))
            elif precipitation >= rain.light_rain:
                warnings.append(ThresholdWarning(
                    factor="Light Precipitation",
                    current_value=precipitation,
                    threshold=rain.light_rain,
                    time_to_violation="Current",
                    recommendation="Monitor conditions closely, reduce harvest speed"
                ))

        details["precipitation"] = {
            "current": precipitation,
            "risk_level": "high" if rain is not None and precipitation >= rain.heavy_rain else "low",
        }

    def _evaluate_wind(
        self,
        weather: WeatherSample,
        thresholds: CropThresholds,
        violations: List[ThresholdViolation],
        warnings: List[ThresholdWarning],
        details: Dict[str, Any]
    ) -> None:
        wind_speed = _first(weather.wind_speed, 0.0)
        wind = thresholds.wind

        if wind is not None:
            if wind_speed >= wind.shatter_threshold:
                violations.append(ThresholdViolation(
                    factor="High Wind Speed",
                    current_value=wind_speed,
                    threshold=wind.shatter_threshold,
                    severity=Severity.HIGH,
                    impact="Significant crop shattering risk",
                    recommendation="Cease harvest operations until wind subsides"
                ))
            elif wind_speed >= wind.operational_limit:
                warnings.append(ThresholdWarning(
                    factor="Elevated Wind Speed",
                    current_value=wind_speed,
                    threshold=wind.operational_limit,
                    time_to_violation="Current",
                    recommendation="Reduce harvest speed, monitor crop losses"
                ))

        details["wind"] = {
            "speed": wind_speed,
            "direction": weather.wind_direction,
            "shatter_risk": wind is not None and wind_speed >= wind.operational_limit,
        }

    def _evaluate_humidity(
        self,
        weather: WeatherSample,
        thresholds: CropThresholds,
        violations: List[ThresholdViolation],
        opportunities: List[ThresholdOpportunity],
        details: Dict[str, Any]
    ) -> None:
        humidity = _first(weather.humidity, DEFAULT_HUMIDITY)
        bands = thresholds.humidity

        if bands is not None:
            if humidity >= bands.critical:
                violations.append(ThresholdViolation(
                    factor="Critical Humidity",
                    current_value=humidity,
                    threshold=bands.critical,
                    severity=Severity.HIGH,
                    impact="Crop moisture content too high for harvest",
                    recommendation="Wait for humidity to decrease"
                ))
            elif humidity <= bands.optimal:
                opportunities.append(ThresholdOpportunity(
                    factor="Optimal Humidity",
                    current_value=humidity,
                    advantage="Ideal conditions for crop drying",
                    recommendation="Excellent harvest window opportunity"
                ))

        details["humidity"] = {
            "relative": humidity,
            "dew_point": weather.dew_point,
            "leaf_wetness": weather.leaf_wetness,
        }

    def _evaluate_crop_rules(
        self,
        weather: WeatherSample,
        thresholds: CropThresholds,
        violations: List[ThresholdViolation],
        details: Dict[str, Any]
    ) -> None:
        precipitation = _first(weather.precipitation, 0.0)
        humidity = _first(weather.humidity, DEFAULT_HUMIDITY)
        wind_speed = _first(weather.wind_speed, 0.0)

        shatter = thresholds.shatter
        if shatter is not None:
            shatter_risk = shatter.base_rate
            if wind_speed > shatter.wind_floor:
                shatter_risk *= shatter.wind_multiplier
                # The wind rule already reports the same gusts
                if not any(v.factor == "High Wind Speed" for v in violations):
                    violations.append(ThresholdViolation(
                        factor="Canola Shattering",
                        current_value=shatter_risk,
                        threshold=shatter.base_rate,
                        severity=Severity.HIGH,
                        impact="Accelerated crop loss due to wind",
                        recommendation="Prioritize canola fields for immediate harvest"
                    ))
            details["canola_shatter_risk"] = shatter_risk

        sprouting = thresholds.sprouting
        if sprouting is not None:
            at_risk = (
                precipitation >= sprouting.rain_threshold
                and humidity >= sprouting.humidity_threshold
            )
            if at_risk:
                violations.append(ThresholdViolation(
                    factor="Pre-harvest Sprouting Risk",
                    current_value=precipitation,
                    threshold=sprouting.rain_threshold,
                    severity=Severity.CRITICAL,
                    impact="Falling number degradation, grade loss",
                    recommendation="Immediate harvest required if physiologically mature"
                ))
            details["sprouting_risk"] = {
                "precipitation": precipitation,
                "humidity": humidity,
                "risk_level": "high" if at_risk else "low",
            }

        pre_germination = thresholds.pre_germination
        if pre_germination is not None:
            at_risk = precipitation >= pre_germination.rain_threshold
            if at_risk:
                violations.append(ThresholdViolation(
                    factor="Pre-germination Risk",
                    current_value=precipitation,
                    threshold=pre_germination.rain_threshold,
                    severity=Severity.CRITICAL,
                    impact="Loss of malting premium",
                    recommendation="Immediate harvest if malting barley"
                ))
            details["pre_germination_risk"] = at_risk

    def _evaluate_grain_moisture(
        self,
        moisture: float,
        thresholds: CropThresholds,
        violations: List[ThresholdViolation],
        warnings: List[ThresholdWarning],
        opportunities: List[ThresholdOpportunity],
        details: Dict[str, Any]
    ) -> None:
        bands = thresholds.moisture

        if bands.critical_max is not None and moisture >= bands.critical_max:
            violations.append(ThresholdViolation(
                factor="Excess Grain Moisture",
                current_value=moisture,
                threshold=bands.critical_max,
                severity=Severity.HIGH,
                impact="Drying required before storage",
                recommendation="Delay harvest or budget for drying costs"
            ))
        elif bands.max_optimal is not None and moisture > bands.max_optimal:
            warnings.append(ThresholdWarning(
                factor="Grain Moisture Above Optimal",
                current_value=moisture,
                threshold=bands.max_optimal,
                time_to_violation="Current",
                recommendation="Expect drying costs, harvest driest fields first"
            ))
        elif (
            bands.min_optimal is not None and bands.max_optimal is not None
            and bands.min_optimal <= moisture <= bands.max_optimal
        ):
            opportunities.append(ThresholdOpportunity(
                factor="Optimal Grain Moisture",
                current_value=moisture,
                advantage="Grain within optimal harvest moisture",
                recommendation="Harvest now to minimize drying costs"
            ))

        details["grain_moisture"] = {
            "current": moisture,
            "storage_max": bands.storage_max,
            "needs_drying": bands.storage_max is not None and moisture > bands.storage_max,
        }

    def _scan_forecast(
        self,
        forecast: Sequence[WeatherSample],
        thresholds: CropThresholds,
        warnings: List[ThresholdWarning],
        opportunities: List[ThresholdOpportunity]
    ) -> None:
        for i, weather in enumerate(forecast[:MAX_FORECAST_SCAN_DAYS]):
            days_ahead = i + 1

            precipitation = _first(weather.precipitation, 0.0)
            if thresholds.rain is not None and precipitation >= thresholds.rain.heavy_rain:
                warnings.append(ThresholdWarning(
                    factor="Forecast Heavy Rain",
                    current_value=precipitation,
                    threshold=thresholds.rain.heavy_rain,
                    time_to_violation=f"{days_ahead} day(s)",
                    recommendation="Consider advancing harvest schedule"
                ))

            temp_min = _first(weather.temperature_min, weather.temperature, DEFAULT_TEMPERATURE)
            frost = thresholds.frost
            if frost is not None and temp_min <= frost.threshold + FORECAST_FROST_MARGIN:
                warnings.append(ThresholdWarning(
                    factor="Forecast Frost Risk",
                    current_value=temp_min,
                    threshold=frost.threshold,
                    time_to_violation=f"{days_ahead} day(s)",
                    recommendation="Complete harvest before frost if crop is mature"
                ))

            if self._is_optimal_day(weather, thresholds):
                opportunities.append(ThresholdOpportunity(
                    factor="Optimal Weather Window",
                    current_value=0.0,
                    advantage="Ideal conditions forecast",
                    recommendation="Plan harvest operations for this window",
                    window_start=weather.timestamp,
                    window_end=weather.timestamp + timedelta(hours=24)
                ))

    @staticmethod
    def _is_optimal_day(weather: WeatherSample, thresholds: CropThresholds) -> bool:
        temp = _first(weather.temperature, DEFAULT_TEMPERATURE)
        precipitation = _first(weather.precipitation, 0.0)
        humidity = _first(weather.humidity, DEFAULT_HUMIDITY)
        wind_speed = _first(weather.wind_speed, 0.0)

        temp_ok = True
        if thresholds.frost is not None:
            temp_ok = temp_ok and temp > thresholds.frost.threshold + OPTIMAL_WINDOW_FROST_MARGIN
        if thresholds.heat_stress is not None:
            temp_ok = temp_ok and temp < thresholds.heat_stress.threshold

        precip_ok = precipitation < (thresholds.rain.light_rain if thresholds.rain else 5.0)
        humidity_ok = humidity <= (thresholds.humidity.high if thresholds.humidity else 80.0)
        wind_ok = wind_speed < (thresholds.wind.operational_limit if thresholds.wind else 25.0)

        return temp_ok and precip_ok and humidity_ok and wind_ok

    def calculate_harvest_readiness(
        self,
        crop: CropType,
        weather: WeatherSample,
        field_conditions: Optional[Dict[str, Any]] = None
    ) -> float:
        """
        Readiness for a single sample, ignoring the forecast

        Returns:
            Score in [0, 1], higher is better
        """
        return harvest_readiness(self.analyze(crop, weather, (), field_conditions))

    def generate_crop_recommendations(self, crop: CropType, analysis: RiskAnalysis) -> List[str]:
        """
        Turn an analysis into operator-facing advice

        Args:
            crop: Crop analysed
            analysis: Result of ``analyze``

        Returns:
            Recommendations: violations, then warnings, then opportunities,
            then a crop tip for low-risk days and an economic note
        """
        thresholds = self.thresholds_for(crop)
        recommendations = [f"Violation: {v.recommendation}" for v in analysis.violations]
        recommendations += [f"Warning: {w.recommendation}" for w in analysis.warnings]
        recommendations += [f"Opportunity: {o.recommendation}" for o in analysis.opportunities]

        tip = CROP_TIPS.get(crop)
        if tip and analysis.risk_score < 0.3:
            if crop != CropType.BARLEY or thresholds.malting_premium:
                recommendations.append(f"Tip: {tip}")

        if analysis.violations:
            recommendations.append("Economics: Current conditions may result in grade penalties - weigh costs vs waiting")
        elif analysis.opportunities:
            recommendations.append("Economics: Excellent conditions for maintaining premium grade")

        return recommendations

    def describe_thresholds(self, crop: CropType) -> Dict[str, Any]:
        """Threshold table entry as a plain dict for display"""
        return self.thresholds_for(crop).model_dump(mode="json", exclude_none=True)

    def crop_guidance(self, crop: CropType) -> Dict[str, Any]:
        """
        Summary guidance for a crop: moisture targets, weather limits,
        quality impacts and economic considerations
        """
        t = self.thresholds_for(crop)
        return {
            "moisture_guidance": {
                "optimal": f"{t.moisture.min_optimal}-{t.moisture.max_optimal}%",
                "storage": f"Dry to {t.moisture.storage_max}% for safe storage",
            },
            "weather_considerations": {
                "frost": f"Avoid harvest below {t.frost.threshold}°C" if t.frost else None,
                "wind": f"Reduce speed above {t.wind.operational_limit} km/h" if t.wind else None,
                "rain": f"Cease operations above {t.rain.heavy_rain}mm" if t.rain else None,
            },
            "quality_factors": dict(t.quality.impacts),
            "economic_considerations": dict(t.economic_considerations),
        }


def _first(*values: Optional[float]) -> float:
    """First value that is not None"""
    for value in values:
        if value is not None:
            return value
    raise ValueError("No value available")
