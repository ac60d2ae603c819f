"""
Crop-threshold analysis results

These are derived per request and never persisted, so they are plain
dataclasses rather than pydantic models.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .harvest import CropType


class Severity(str, Enum):
    """Severity of a threshold violation"""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"


@dataclass
class ThresholdViolation:
    """
    A weather factor currently beyond a crop threshold

    Attributes:
        factor: Name of the factor, e.g. "Frost Temperature"
        current_value: Observed value
        threshold: Threshold that was crossed
        severity: How serious the violation is
        impact: Effect on the crop
        recommendation: What the operator should do
    """
    factor: str
    current_value: float
    threshold: float
    severity: Severity
    impact: str
    recommendation: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "factor": self.factor,
            "current_value": self.current_value,
            "threshold": self.threshold,
            "severity": self.severity.value,
            "impact": self.impact,
            "recommendation": self.recommendation,
        }


@dataclass
class ThresholdWarning:
    """
    A factor approaching a threshold, now or within the forecast horizon

    Attributes:
        factor: Name of the factor
        current_value: Observed or forecast value
        threshold: Threshold being approached
        time_to_violation: "Current" or "<n> day(s)"
        recommendation: What the operator should do
    """
    factor: str
    current_value: float
    threshold: float
    time_to_violation: str
    recommendation: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "factor": self.factor,
            "current_value": self.current_value,
            "threshold": self.threshold,
            "time_to_violation": self.time_to_violation,
            "recommendation": self.recommendation,
        }


@dataclass
class ThresholdOpportunity:
    """
    A factor safely inside its optimal range
    """
    factor: str
    current_value: float
    advantage: str
    recommendation: str
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "factor": self.factor,
            "current_value": self.current_value,
            "advantage": self.advantage,
            "recommendation": self.recommendation,
            "window_start": self.window_start.isoformat() if self.window_start else None,
            "window_end": self.window_end.isoformat() if self.window_end else None,
        }


@dataclass
class RiskAnalysis:
    """
    Result of analysing weather against a crop's thresholds

    Attributes:
        crop: Crop analysed
        violations: Thresholds currently crossed, in rule order
        warnings: Thresholds approaching, current first then forecast
        opportunities: Favourable conditions
        risk_score: Scalar risk in [0, 1]
        details: Per-dimension diagnostic values
        analyzed_at: When the analysis ran
    """
    crop: CropType
    violations: List[ThresholdViolation] = field(default_factory=list)
    warnings: List[ThresholdWarning] = field(default_factory=list)
    opportunities: List[ThresholdOpportunity] = field(default_factory=list)
    risk_score: float = 0.0
    details: Dict[str, Any] = field(default_factory=dict)
    analyzed_at: Optional[datetime] = None

    @property
    def has_critical(self) -> bool:
        return any(v.severity == Severity.CRITICAL for v in self.violations)

    @property
    def has_findings(self) -> bool:
        return bool(self.violations or self.warnings or self.opportunities)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "crop": self.crop.value,
            "violations": [v.to_dict() for v in self.violations],
            "warnings": [w.to_dict() for w in self.warnings],
            "opportunities": [o.to_dict() for o in self.opportunities],
            "risk_score": self.risk_score,
            "details": self.details,
            "analyzed_at": self.analyzed_at.isoformat() if self.analyzed_at else None,
        }
