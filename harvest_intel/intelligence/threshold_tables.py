"""
Per-crop harvest threshold tables

The default table covers wheat, canola, barley and oats. Regional tables
with the same shape can be loaded from JSON and passed to the engine in
place of the default.
"""

import json
from pathlib import Path
from typing import Dict, Optional, Union

from pydantic import BaseModel, Field, model_validator

from ..models.harvest import CropType


class _Frozen(BaseModel):
    class Config:
        frozen = True


class MoistureThresholds(_Frozen):
    """Grain moisture bands (%)"""
    min_optimal: Optional[float] = None
    max_optimal: Optional[float] = None
    storage_max: Optional[float] = None
    critical_max: Optional[float] = None
    unit: str = "%"


class TemperatureThreshold(_Frozen):
    threshold: float
    description: str
    impact: str
    unit: str = "°C"


class WindThreshold(_Frozen):
    shatter_threshold: float
    operational_limit: float
    moisture_dependent: bool = False
    unit: str = "km/h"


class PrecipitationThreshold(_Frozen):
    light_rain: float
    heavy_rain: float
    critical_amount: float
    duration_hours: int = 24
    unit: str = "mm"

    @model_validator(mode='after')
    def validate_order(self) -> 'PrecipitationThreshold':
        if not self.light_rain <= self.heavy_rain <= self.critical_amount:
            raise ValueError("Precipitation thresholds must satisfy light <= heavy <= critical")
        return self


class HumidityThreshold(_Frozen):
    optimal: float
    high: float
    critical: float
    unit: str = "%"


class ThresholdRange(_Frozen):
    min: Optional[float] = None
    max: Optional[float] = None
    optimal: Optional[float] = None
    unit: str


class QualityFactors(_Frozen):
    factors: Dict[str, ThresholdRange] = Field(default_factory=dict)
    impacts: Dict[str, str] = Field(default_factory=dict)


class SproutingRule(_Frozen):
    """Wheat: rain and humidity both at or above their limits"""
    rain_threshold: float
    humidity_threshold: float
    duration_hours: int = 48


class ShatterRule(_Frozen):
    """Canola: wind-driven shatter rate (% per day after optimal)"""
    base_rate: float
    wind_multiplier: float
    moisture_multiplier: float
    wind_floor: float = 20.0


class PreGerminationRule(_Frozen):
    """Barley: rain alone at or above the limit"""
    rain_threshold: float
    duration_hours: int = 24


class MillingPremium(_Frozen):
    test_weight_min: float
    groat_min: float


class CropThresholds(_Frozen):
    """
    Everything the engine needs to judge weather for one crop
    """
    crop: CropType
    moisture: MoistureThresholds
    frost: Optional[TemperatureThreshold] = None
    heat_stress: Optional[TemperatureThreshold] = None
    wind: Optional[WindThreshold] = None
    rain: Optional[PrecipitationThreshold] = None
    humidity: Optional[HumidityThreshold] = None
    dew_point_delta: Optional[float] = None
    sprouting: Optional[SproutingRule] = None
    shatter: Optional[ShatterRule] = None
    pre_germination: Optional[PreGerminationRule] = None
    malting_premium: bool = False
    milling_premium: Optional[MillingPremium] = None
    quality: QualityFactors = Field(default_factory=QualityFactors)
    economic_considerations: Dict[str, str] = Field(default_factory=dict)


ThresholdTable = Dict[CropType, CropThresholds]


DEFAULT_THRESHOLD_TABLE: ThresholdTable = {
    CropType.WHEAT: CropThresholds(
        crop=CropType.WHEAT,
        moisture=MoistureThresholds(min_optimal=14.0, max_optimal=20.0, storage_max=14.5, critical_max=25.0),
        frost=TemperatureThreshold(
            threshold=-2.0,
            description="Kernel damage risk",
            impact="Quality degradation"
        ),
        heat_stress=TemperatureThreshold(
            threshold=30.0,
            description="Protein degradation accelerates",
            impact="Quality loss"
        ),
        wind=WindThreshold(shatter_threshold=30.0, operational_limit=25.0, moisture_dependent=True),
        rain=PrecipitationThreshold(light_rain=5.0, heavy_rain=15.0, critical_amount=25.0, duration_hours=48),
        humidity=HumidityThreshold(optimal=60.0, high=80.0, critical=90.0),
        dew_point_delta=2.0,
        sprouting=SproutingRule(rain_threshold=15.0, humidity_threshold=80.0, duration_hours=48),
        quality=QualityFactors(
            factors={
                "protein": ThresholdRange(min=11.0, max=15.0, unit="%"),
                "falling_number": ThresholdRange(min=300.0, unit="seconds"),
            },
            impacts={
                "protein": "High protein premium vs drying costs",
                "falling_number": "Sprouting damage affects baking quality",
            }
        ),
        economic_considerations={
            "moisture_penalty": "Grade loss from excess moisture: -$15-30/tonne",
            "drying_costs": "Commercial drying: $2.50/tonne per percentage point",
            "quality_loss": "Sprouting damage: -$20-50/tonne for falling number issues",
        }
    ),

    CropType.CANOLA: CropThresholds(
        crop=CropType.CANOLA,
        moisture=MoistureThresholds(min_optimal=8.0, max_optimal=10.0, storage_max=8.0, critical_max=12.0),
        frost=TemperatureThreshold(
            threshold=-3.0,
            description="Locks in green seed",
            impact="Grade penalty"
        ),
        wind=WindThreshold(shatter_threshold=25.0, operational_limit=20.0, moisture_dependent=True),
        rain=PrecipitationThreshold(light_rain=2.0, heavy_rain=10.0, critical_amount=20.0),
        humidity=HumidityThreshold(optimal=50.0, high=70.0, critical=85.0),
        shatter=ShatterRule(base_rate=1.0, wind_multiplier=2.5, moisture_multiplier=1.5),
        quality=QualityFactors(
            factors={
                "seed_color_change": ThresholdRange(min=60.0, max=90.0, unit="%"),
                "green_seed": ThresholdRange(max=2.0, unit="%"),
                "oil_content": ThresholdRange(min=40.0, unit="%"),
            },
            impacts={
                "seed_color_change": "Optimal harvest timing window",
                "green_seed": "Grade penalty above 2%",
                "oil_content": "Oil quality and premium",
            }
        ),
        economic_considerations={
            "green_seed_penalty": "Grade penalty: -$50-100/tonne for >2% green seed",
            "shattering_loss": "Shattering losses: 100-150 kg/ha ($75-110/ha value)",
        }
    ),

    CropType.BARLEY: CropThresholds(
        crop=CropType.BARLEY,
        moisture=MoistureThresholds(min_optimal=13.5, max_optimal=18.0, storage_max=13.5, critical_max=20.0),
        heat_stress=TemperatureThreshold(
            threshold=25.0,
            description="Kernel staining risk",
            impact="Malting quality loss"
        ),
        rain=PrecipitationThreshold(light_rain=10.0, heavy_rain=20.0, critical_amount=30.0, duration_hours=24),
        humidity=HumidityThreshold(optimal=65.0, high=70.0, critical=80.0),
        pre_germination=PreGerminationRule(rain_threshold=20.0, duration_hours=24),
        malting_premium=True,
        quality=QualityFactors(
            factors={
                "protein": ThresholdRange(min=10.5, max=12.5, unit="%"),
                "germination": ThresholdRange(min=95.0, unit="%"),
            },
            impacts={
                "protein": "Critical for malting quality",
                "germination": "Malting premium depends on viability",
            }
        ),
        economic_considerations={
            "malting_premium": "Malting premium loss: -$40-60/tonne",
            "feed_downgrade": "Feed grade penalty: -$30-40/tonne",
        }
    ),

    CropType.OATS: CropThresholds(
        crop=CropType.OATS,
        moisture=MoistureThresholds(min_optimal=14.0, max_optimal=16.0, storage_max=14.0, critical_max=18.0),
        rain=PrecipitationThreshold(light_rain=15.0, heavy_rain=25.0, critical_amount=35.0, duration_hours=48),
        wind=WindThreshold(shatter_threshold=40.0, operational_limit=35.0),
        humidity=HumidityThreshold(optimal=65.0, high=75.0, critical=85.0),
        milling_premium=MillingPremium(test_weight_min=240.0, groat_min=75.0),
        quality=QualityFactors(
            factors={
                "test_weight": ThresholdRange(min=240.0, unit="g/0.5L"),
                "groat_percentage": ThresholdRange(min=75.0, unit="%"),
            },
            impacts={
                "test_weight": "Milling premium threshold",
                "groat_percentage": "Processing quality factor",
            }
        ),
        economic_considerations={
            "general": "Monitor grade standards to maximize revenue",
        }
    ),
}


def load_threshold_table(path: Union[str, Path]) -> ThresholdTable:
    """
    Load a threshold table from a JSON file

    The file maps crop names to objects shaped like CropThresholds, e.g.
    ``{"wheat": {"crop": "wheat", "moisture": {...}, "frost": {...}}}``.
    The ``crop`` field may be omitted; it defaults to the key.

    Args:
        path: JSON file location

    Returns:
        Table keyed by crop

    Raises:
        ValueError: A key is not a known crop or disagrees with its entry
    """
    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)

    table: ThresholdTable = {}
    for name, entry in raw.items():
        crop = CropType(name)
        thresholds = CropThresholds.model_validate({"crop": crop.value, **entry})
        if thresholds.crop != crop:
            raise ValueError(f"Threshold entry '{name}' is declared for {thresholds.crop.value}")
        table[crop] = thresholds
    return table
