"""Derived signal models produced by the signal interpreter and progress analyzer.

These are computed on every cycle rather than stored as primary truth, but a
copy is attached to each decision record so the decision can be audited.
"""

from dataclasses import dataclass
from enum import Enum


class TrendDirection(str, Enum):
    """Direction of a body metric across the trend window."""

    DECREASING = "decreasing"
    STABLE = "stable"
    INCREASING = "increasing"


class RiskLevel(str, Enum):
    """Recovery risk bucket, in ascending order of severity."""

    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    CRITICAL = "critical"


class ProgressPattern(str, Enum):
    """Classification of actual vs. expected weekly rate of change."""

    ON_TRACK = "on_track"
    TOO_FAST = "too_fast"
    TOO_SLOW = "too_slow"
    STALLED = "stalled"
    REVERSED = "reversed"


class TrainingIndicator(str, Enum):
    """How training is responding, used for volume steps."""

    PROGRESSING = "progressing"
    STALLING = "stalling"
    REGRESSING = "regressing"


@dataclass(frozen=True)
class TrendSignal:
    """Trend of a single metric (weight or waist)."""

    direction: TrendDirection
    total_change: float
    rate_per_week: float
    values: tuple[float, ...] = ()

    def to_dict(self) -> dict:
        return {
            "direction": self.direction.value,
            "total_change": self.total_change,
            "rate_per_week": self.rate_per_week,
            "values": list(self.values),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TrendSignal":
        return cls(
            direction=TrendDirection(data["direction"]),
            total_change=data["total_change"],
            rate_per_week=data["rate_per_week"],
            values=tuple(data.get("values", [])),
        )


@dataclass(frozen=True)
class ConfidenceBreakdown:
    """Confidence score and the three weighted sub-scores behind it."""

    score: float
    adherence_score: float
    data_quality_score: float
    event_impact_score: float

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "adherence_score": self.adherence_score,
            "data_quality_score": self.data_quality_score,
            "event_impact_score": self.event_impact_score,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ConfidenceBreakdown":
        return cls(
            score=data["score"],
            adherence_score=data["adherence_score"],
            data_quality_score=data["data_quality_score"],
            event_impact_score=data["event_impact_score"],
        )


@dataclass(frozen=True)
class RiskFactors:
    """Which subjective signals crossed their cut-offs."""

    low_energy: bool = False
    high_hunger: bool = False
    poor_sleep: bool = False
    high_stress: bool = False

    def to_dict(self) -> dict:
        return {
            "low_energy": self.low_energy,
            "high_hunger": self.high_hunger,
            "poor_sleep": self.poor_sleep,
            "high_stress": self.high_stress,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RiskFactors":
        return cls(**{k: bool(data.get(k, False)) for k in cls().to_dict()})


@dataclass(frozen=True)
class RecoveryRisk:
    """Recovery risk assessment from the latest subjective ratings."""

    level: RiskLevel
    score: float
    action: str
    factors: RiskFactors

    def to_dict(self) -> dict:
        return {
            "level": self.level.value,
            "score": self.score,
            "action": self.action,
            "factors": self.factors.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RecoveryRisk":
        return cls(
            level=RiskLevel(data["level"]),
            score=data["score"],
            action=data["action"],
            factors=RiskFactors.from_dict(data.get("factors", {})),
        )


@dataclass(frozen=True)
class DerivedSignals:
    """Everything the signal interpreter derives from a check-in window."""

    weight_trend: TrendSignal
    confidence: ConfidenceBreakdown
    recovery_risk: RecoveryRisk
    plateau: bool
    recomposition: bool
    waist_trend: TrendSignal | None = None
    window_size: int = 0

    def to_dict(self) -> dict:
        return {
            "weight_trend": self.weight_trend.to_dict(),
            "waist_trend": self.waist_trend.to_dict() if self.waist_trend else None,
            "confidence": self.confidence.to_dict(),
            "recovery_risk": self.recovery_risk.to_dict(),
            "plateau": self.plateau,
            "recomposition": self.recomposition,
            "window_size": self.window_size,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DerivedSignals":
        waist = data.get("waist_trend")
        return cls(
            weight_trend=TrendSignal.from_dict(data["weight_trend"]),
            waist_trend=TrendSignal.from_dict(waist) if waist else None,
            confidence=ConfidenceBreakdown.from_dict(data["confidence"]),
            recovery_risk=RecoveryRisk.from_dict(data["recovery_risk"]),
            plateau=data["plateau"],
            recomposition=data["recomposition"],
            window_size=data.get("window_size", 0),
        )


@dataclass(frozen=True)
class ProgressAnalysis:
    """Actual vs. expected rate of change and the resulting recommendation."""

    current_weight: float
    previous_weight: float
    weight_change: float
    weekly_change: float
    expected_weekly_change: float
    pattern: ProgressPattern
    should_adjust: bool
    recommended_change: int  # kcal/day
    is_stalled: bool
    reason: str
    training_indicator: TrainingIndicator = TrainingIndicator.PROGRESSING
    warnings: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "current_weight": self.current_weight,
            "previous_weight": self.previous_weight,
            "weight_change": self.weight_change,
            "weekly_change": self.weekly_change,
            "expected_weekly_change": self.expected_weekly_change,
            "pattern": self.pattern.value,
            "should_adjust": self.should_adjust,
            "recommended_change": self.recommended_change,
            "is_stalled": self.is_stalled,
            "reason": self.reason,
            "training_indicator": self.training_indicator.value,
            "warnings": list(self.warnings),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProgressAnalysis":
        return cls(
            current_weight=data["current_weight"],
            previous_weight=data["previous_weight"],
            weight_change=data["weight_change"],
            weekly_change=data["weekly_change"],
            expected_weekly_change=data["expected_weekly_change"],
            pattern=ProgressPattern(data["pattern"]),
            should_adjust=data["should_adjust"],
            recommended_change=data["recommended_change"],
            is_stalled=data["is_stalled"],
            reason=data["reason"],
            training_indicator=TrainingIndicator(data.get("training_indicator", "progressing")),
            warnings=tuple(data.get("warnings", [])),
        )
