"""Rule pack: the versioned, immutable configuration that drives the engine.

A rule pack is threaded explicitly through every engine call. Nothing in the
engine reads configuration from module state, so re-running a decision under
the rule pack version recorded on it reproduces the same result.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping

from ..errors import ConfigurationError
from .checkin import AdherenceLevel, ContextualEvent
from .profile import Goal, Sex
from .signals import RiskLevel

WEIGHT_SUM_TOLERANCE = 1e-6


def _require(data: Mapping, key: str, path: str) -> Any:
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"Rule pack section '{path}' must be an object")
    if key not in data:
        where = f"{path}.{key}" if path else key
        raise ConfigurationError(f"Rule pack is missing required key '{where}'")
    return data[key]


def _number(data: Mapping, key: str, path: str) -> float:
    value = _require(data, key, path)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"Rule pack key '{path}.{key}' must be a number, got {value!r}")
    return value


def _range(data: Mapping, key: str, path: str) -> tuple[float, float]:
    value = _require(data, key, path)
    if not isinstance(value, (list, tuple)) or len(value) != 2 or value[0] > value[1]:
        raise ConfigurationError(
            f"Rule pack key '{path}.{key}' must be an ascending [min, max] pair, got {value!r}"
        )
    return float(value[0]), float(value[1])


@dataclass(frozen=True)
class CalorieAdjustmentRules:
    """Allowed calorie deltas and the deadband below which changes are dropped."""

    candidate_deltas: tuple[int, ...]
    deadband: int

    @property
    def max_increase(self) -> int:
        return max(self.candidate_deltas)

    @classmethod
    def from_dict(cls, data: Mapping) -> "CalorieAdjustmentRules":
        path = "calorie_adjustments"
        deltas = _require(data, "candidate_deltas", path)
        if not deltas or 0 not in deltas:
            raise ConfigurationError(f"{path}.candidate_deltas must be non-empty and include 0")
        return cls(
            candidate_deltas=tuple(sorted(int(d) for d in deltas)),
            deadband=int(_number(data, "deadband", path)),
        )


@dataclass(frozen=True)
class SafetyRules:
    """Hard floors, ceilings, and step limits."""

    calorie_floor: Mapping[Sex, int]
    max_deficit_percent: float
    max_surplus_percent: float
    max_deficit_kcal: int
    max_surplus_kcal: int
    protein_floor_g_per_kg: float
    protein_warning_g_per_kg: float
    max_weekly_loss_fraction: float
    max_step_kcal: int
    step_warning_kcal: int
    unsafe_step_fallback_kcal: int

    def floor_for(self, sex: Sex) -> int:
        return self.calorie_floor[sex]

    @classmethod
    def from_dict(cls, data: Mapping) -> "SafetyRules":
        path = "safety"
        floors = _require(data, "calorie_floor", path)
        calorie_floor = {
            sex: int(_number(floors, sex.value, f"{path}.calorie_floor")) for sex in Sex
        }
        rules = cls(
            calorie_floor=MappingProxyType(calorie_floor),
            max_deficit_percent=_number(data, "max_deficit_percent", path),
            max_surplus_percent=_number(data, "max_surplus_percent", path),
            max_deficit_kcal=int(_number(data, "max_deficit_kcal", path)),
            max_surplus_kcal=int(_number(data, "max_surplus_kcal", path)),
            protein_floor_g_per_kg=_number(data, "protein_floor_g_per_kg", path),
            protein_warning_g_per_kg=_number(data, "protein_warning_g_per_kg", path),
            max_weekly_loss_fraction=_number(data, "max_weekly_loss_fraction", path),
            max_step_kcal=int(_number(data, "max_step_kcal", path)),
            step_warning_kcal=int(_number(data, "step_warning_kcal", path)),
            unsafe_step_fallback_kcal=int(_number(data, "unsafe_step_fallback_kcal", path)),
        )
        if rules.step_warning_kcal > rules.max_step_kcal:
            raise ConfigurationError(f"{path}.step_warning_kcal must not exceed max_step_kcal")
        if rules.unsafe_step_fallback_kcal > rules.max_step_kcal:
            raise ConfigurationError(
                f"{path}.unsafe_step_fallback_kcal must not exceed max_step_kcal"
            )
        return rules


@dataclass(frozen=True)
class TrendRules:
    """Trend window, confidence weighting, plateau and recomposition thresholds."""

    window: int
    adherence_weight: float
    data_quality_weight: float
    event_impact_weight: float
    min_confidence_for_action: float
    plateau_max_weight_change: float
    plateau_min_adherence: float
    recomp_min_waist_decrease: float
    waist_stable_change: float  # cm, stable band for the waist trend

    @classmethod
    def from_dict(cls, data: Mapping) -> "TrendRules":
        path = "trend"
        weights = _require(data, "confidence_weights", path)
        plateau = _require(data, "plateau", path)
        recomp = _require(data, "recomposition", path)
        rules = cls(
            window=int(_number(data, "window", path)),
            adherence_weight=_number(weights, "adherence", f"{path}.confidence_weights"),
            data_quality_weight=_number(weights, "data_quality", f"{path}.confidence_weights"),
            event_impact_weight=_number(weights, "event_impact", f"{path}.confidence_weights"),
            min_confidence_for_action=_number(data, "min_confidence_for_action", path),
            plateau_max_weight_change=_number(plateau, "max_weight_change", f"{path}.plateau"),
            plateau_min_adherence=_number(plateau, "min_adherence", f"{path}.plateau"),
            recomp_min_waist_decrease=_number(
                recomp, "min_waist_decrease", f"{path}.recomposition"
            ),
            waist_stable_change=_number(
                recomp, "waist_stable_change", f"{path}.recomposition"
            ),
        )
        if rules.window < 2:
            raise ConfigurationError(f"{path}.window must be at least 2")
        total = rules.adherence_weight + rules.data_quality_weight + rules.event_impact_weight
        if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
            raise ConfigurationError(
                f"{path}.confidence_weights must sum to 1.0, got {total:.4f}"
            )
        return rules


@dataclass(frozen=True)
class RecoveryRiskRules:
    """Weights, level thresholds, and factor cut-offs for recovery risk."""

    energy_weight: float
    hunger_weight: float
    sleep_weight: float
    stress_weight: float
    thresholds: Mapping[RiskLevel, float]  # Minimum score for each level above LOW
    actions: Mapping[RiskLevel, str]
    low_energy_max: int
    high_hunger_min: int
    poor_sleep_max: int
    high_stress_min: int

    @classmethod
    def from_dict(cls, data: Mapping) -> "RecoveryRiskRules":
        path = "recovery_risk"
        weights = _require(data, "weights", path)
        raw_thresholds = _require(data, "thresholds", path)
        raw_actions = _require(data, "actions", path)
        cutoffs = _require(data, "factor_cutoffs", path)

        levels = [RiskLevel.MODERATE, RiskLevel.HIGH, RiskLevel.CRITICAL]
        thresholds = {
            level: _number(raw_thresholds, level.value, f"{path}.thresholds") for level in levels
        }
        ordered = [thresholds[level] for level in levels]
        if ordered != sorted(ordered) or len(set(ordered)) != len(ordered):
            raise ConfigurationError(f"{path}.thresholds must be strictly ascending")
        actions = {
            level: str(_require(raw_actions, level.value, f"{path}.actions"))
            for level in RiskLevel
        }

        return cls(
            energy_weight=_number(weights, "energy", f"{path}.weights"),
            hunger_weight=_number(weights, "hunger", f"{path}.weights"),
            sleep_weight=_number(weights, "sleep", f"{path}.weights"),
            stress_weight=_number(weights, "stress", f"{path}.weights"),
            thresholds=MappingProxyType(thresholds),
            actions=MappingProxyType(actions),
            low_energy_max=int(_number(cutoffs, "low_energy", f"{path}.factor_cutoffs")),
            high_hunger_min=int(_number(cutoffs, "high_hunger", f"{path}.factor_cutoffs")),
            poor_sleep_max=int(_number(cutoffs, "poor_sleep", f"{path}.factor_cutoffs")),
            high_stress_min=int(_number(cutoffs, "high_stress", f"{path}.factor_cutoffs")),
        )


@dataclass(frozen=True)
class LockRules:
    """State machine lock durations, in weeks."""

    anti_reversal_weeks: int
    program_lock_weeks: int

    @classmethod
    def from_dict(cls, data: Mapping) -> "LockRules":
        return cls(
            anti_reversal_weeks=int(_number(data, "anti_reversal_weeks", "locks")),
            program_lock_weeks=int(_number(data, "program_lock_weeks", "locks")),
        )


@dataclass(frozen=True)
class TrainingRules:
    """Deload cadence bounds and volume step sizes."""

    deload_frequency_min: int
    deload_frequency_max: int
    regressing_volume_step: float
    stalling_volume_step: float
    deload_reduction: float
    min_volume_multiplier: float
    max_volume_multiplier: float

    def clamp_deload_frequency(self, weeks: int) -> int:
        return max(self.deload_frequency_min, min(self.deload_frequency_max, weeks))

    def clamp_volume(self, multiplier: float) -> float:
        return max(self.min_volume_multiplier, min(self.max_volume_multiplier, multiplier))

    @classmethod
    def from_dict(cls, data: Mapping) -> "TrainingRules":
        path = "training"
        low, high = _range(data, "deload_frequency", path)
        min_volume, max_volume = _range(data, "volume_multiplier_bounds", path)
        rules = cls(
            deload_frequency_min=int(low),
            deload_frequency_max=int(high),
            regressing_volume_step=_number(data, "regressing_volume_step", path),
            stalling_volume_step=_number(data, "stalling_volume_step", path),
            deload_reduction=_number(data, "deload_reduction", path),
            min_volume_multiplier=min_volume,
            max_volume_multiplier=max_volume,
        )
        if not 0 <= rules.deload_reduction < 1:
            raise ConfigurationError(f"{path}.deload_reduction must be in [0, 1)")
        return rules


@dataclass(frozen=True)
class GoalDefaults:
    """Per-goal energy balance and macro ratios."""

    energy_fraction: float  # Negative for deficit, positive for surplus
    protein_range: tuple[float, float]  # g/kg
    protein_selection: str  # "high" or "midpoint"
    fat_range: tuple[float, float]  # g/kg

    @property
    def protein_ratio(self) -> float:
        low, high = self.protein_range
        if self.protein_selection == "high":
            return high
        return (low + high) / 2

    @property
    def fat_ratio(self) -> float:
        low, high = self.fat_range
        return (low + high) / 2

    @classmethod
    def from_dict(cls, data: Mapping, path: str) -> "GoalDefaults":
        selection = _require(data, "protein_selection", path)
        if selection not in ("high", "midpoint"):
            raise ConfigurationError(
                f"{path}.protein_selection must be 'high' or 'midpoint', got {selection!r}"
            )
        return cls(
            energy_fraction=_number(data, "energy_fraction", path),
            protein_range=_range(data, "protein_range", path),
            protein_selection=selection,
            fat_range=_range(data, "fat_range", path),
        )


@dataclass(frozen=True)
class ProgressRules:
    """Thresholds and fixed deltas for the progress analyzer."""

    on_track_tolerance: float
    maintenance_tolerance: float
    loss_margin: float
    gain_fast_margin: float
    gain_slow_margin: float
    gain_reversal_threshold: float
    kcal_per_kg_deviation: float
    max_rate_adjustment: int
    cut_reversed_delta: int
    gain_too_fast_delta: int
    gain_too_slow_delta: int
    gain_reversed_delta: int
    maintenance_delta: int
    stall_window: int
    stall_min_readings: int
    stall_range: float

    @classmethod
    def from_dict(cls, data: Mapping) -> "ProgressRules":
        path = "progress_analysis"
        return cls(
            on_track_tolerance=_number(data, "on_track_tolerance", path),
            maintenance_tolerance=_number(data, "maintenance_tolerance", path),
            loss_margin=_number(data, "loss_margin", path),
            gain_fast_margin=_number(data, "gain_fast_margin", path),
            gain_slow_margin=_number(data, "gain_slow_margin", path),
            gain_reversal_threshold=_number(data, "gain_reversal_threshold", path),
            kcal_per_kg_deviation=_number(data, "kcal_per_kg_deviation", path),
            max_rate_adjustment=int(_number(data, "max_rate_adjustment", path)),
            cut_reversed_delta=int(_number(data, "cut_reversed_delta", path)),
            gain_too_fast_delta=int(_number(data, "gain_too_fast_delta", path)),
            gain_too_slow_delta=int(_number(data, "gain_too_slow_delta", path)),
            gain_reversed_delta=int(_number(data, "gain_reversed_delta", path)),
            maintenance_delta=int(_number(data, "maintenance_delta", path)),
            stall_window=int(_number(data, "stall_window", path)),
            stall_min_readings=int(_number(data, "stall_min_readings", path)),
            stall_range=_number(data, "stall_range", path),
        )


@dataclass(frozen=True)
class ActionRules:
    """Fixed deltas used by the action selector's mode rules."""

    high_risk_increase: int
    cut_plateau_delta: int
    cut_reversal_delta: int
    gain_stall_delta: int
    gain_reversal_delta: int

    @classmethod
    def from_dict(cls, data: Mapping) -> "ActionRules":
        path = "actions"
        return cls(
            high_risk_increase=int(_number(data, "high_risk_increase", path)),
            cut_plateau_delta=int(_number(data, "cut_plateau_delta", path)),
            cut_reversal_delta=int(_number(data, "cut_reversal_delta", path)),
            gain_stall_delta=int(_number(data, "gain_stall_delta", path)),
            gain_reversal_delta=int(_number(data, "gain_reversal_delta", path)),
        )


@dataclass(frozen=True)
class PlanRules:
    """How plan versions are laid out."""

    calorie_band_fraction: float
    validity_days: int

    @classmethod
    def from_dict(cls, data: Mapping) -> "PlanRules":
        return cls(
            calorie_band_fraction=_number(data, "calorie_band_fraction", "plan"),
            validity_days=int(_number(data, "validity_days", "plan")),
        )


@dataclass(frozen=True)
class RulePack:
    """A complete, validated rule pack version."""

    version: str
    description: str
    calorie_adjustments: CalorieAdjustmentRules
    safety: SafetyRules
    trend: TrendRules
    recovery_risk: RecoveryRiskRules
    locks: LockRules
    training: TrainingRules
    adherence_mapping: Mapping[AdherenceLevel, float]
    event_impact: Mapping[ContextualEvent, float]
    goal_defaults: Mapping[Goal, GoalDefaults]
    progress: ProgressRules
    actions: ActionRules
    plan: PlanRules
    source: Mapping[str, Any]

    def goal(self, goal: Goal) -> GoalDefaults:
        return self.goal_defaults[goal]

    def to_dict(self) -> dict:
        """Return the document this pack was loaded from."""
        return _thaw(self.source)

    @classmethod
    def from_dict(cls, data: Mapping) -> "RulePack":
        """Build and validate a rule pack.

        Raises:
            ConfigurationError: if any expected key is missing or a value is
                inconsistent. Errors surface here, at load time, never at
                decision time.
        """
        version = _require(data, "version", "")
        if not isinstance(version, str) or not version:
            raise ConfigurationError("Rule pack version must be a non-empty string")

        raw_adherence = _require(data, "adherence_mapping", "")
        adherence = {
            level: _number(raw_adherence, level.value, "adherence_mapping")
            for level in AdherenceLevel
        }
        raw_events = _require(data, "event_impact", "")
        events = {
            event: _number(raw_events, event.value, "event_impact") for event in ContextualEvent
        }
        raw_goals = _require(data, "goal_defaults", "")
        goals = {
            goal: GoalDefaults.from_dict(
                _require(raw_goals, goal.value, "goal_defaults"), f"goal_defaults.{goal.value}"
            )
            for goal in Goal
        }

        return cls(
            version=version,
            description=data.get("description", ""),
            calorie_adjustments=CalorieAdjustmentRules.from_dict(
                _require(data, "calorie_adjustments", "")
            ),
            safety=SafetyRules.from_dict(_require(data, "safety", "")),
            trend=TrendRules.from_dict(_require(data, "trend", "")),
            recovery_risk=RecoveryRiskRules.from_dict(_require(data, "recovery_risk", "")),
            locks=LockRules.from_dict(_require(data, "locks", "")),
            training=TrainingRules.from_dict(_require(data, "training", "")),
            adherence_mapping=MappingProxyType(adherence),
            event_impact=MappingProxyType(events),
            goal_defaults=MappingProxyType(goals),
            progress=ProgressRules.from_dict(_require(data, "progress_analysis", "")),
            actions=ActionRules.from_dict(_require(data, "actions", "")),
            plan=PlanRules.from_dict(_require(data, "plan", "")),
            source=_freeze(data),
        )


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [_thaw(v) for v in value]
    return value
