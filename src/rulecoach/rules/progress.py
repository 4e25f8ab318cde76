"""Progress analysis: actual vs. expected weekly rate of change."""

import logging
from dataclasses import dataclass, replace

from ..errors import ContractViolation
from ..models.checkin import CheckIn, sort_chronologically
from ..models.profile import Goal, Sex
from ..models.rule_pack import RulePack
from ..models.signals import (
    DerivedSignals,
    ProgressAnalysis,
    ProgressPattern,
    RiskLevel,
    TrainingIndicator,
)
from .safety import ValidationResult, validate_adjustment
from .signals import elapsed_weeks

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Recommendation:
    pattern: ProgressPattern
    should_adjust: bool
    calorie_change: int
    reason: str


def _on_track(reason: str) -> Recommendation:
    return Recommendation(ProgressPattern.ON_TRACK, False, 0, reason)


def _weight_loss(actual: float, difference: float, rule_pack: RulePack) -> Recommendation:
    rules = rule_pack.progress
    magnitude = min(
        rules.max_rate_adjustment, round(abs(difference) * rules.kcal_per_kg_deviation)
    )

    if difference < -rules.loss_margin:
        return Recommendation(
            ProgressPattern.TOO_FAST,
            True,
            magnitude,
            f"Weight loss is too rapid ({abs(actual):.1f}kg/week). "
            "Increasing calories to protect lean mass.",
        )
    if difference > rules.loss_margin:
        return Recommendation(
            ProgressPattern.TOO_SLOW,
            True,
            -magnitude,
            f"Weight loss is slower than expected ({abs(actual):.1f}kg/week). "
            "Decreasing calories slightly.",
        )
    if actual >= 0:
        return Recommendation(
            ProgressPattern.REVERSED,
            True,
            rules.cut_reversed_delta,
            "Weight increased during a weight loss phase. Reducing calories.",
        )
    return _on_track("Progress is acceptable.")


def _muscle_gain(actual: float, difference: float, rule_pack: RulePack) -> Recommendation:
    rules = rule_pack.progress

    if difference > rules.gain_fast_margin:
        return Recommendation(
            ProgressPattern.TOO_FAST,
            True,
            rules.gain_too_fast_delta,
            f"Weight gain is too rapid ({actual:.1f}kg/week). "
            "Reducing calories to limit fat gain.",
        )
    if difference < -rules.gain_slow_margin:
        return Recommendation(
            ProgressPattern.TOO_SLOW,
            True,
            rules.gain_too_slow_delta,
            f"Weight gain is slower than expected ({actual:.1f}kg/week). Increasing calories.",
        )
    if actual <= rules.gain_reversal_threshold:
        return Recommendation(
            ProgressPattern.REVERSED,
            True,
            rules.gain_reversed_delta,
            "Weight decreased during a muscle gain phase. Increasing calories.",
        )
    return _on_track("Progress is acceptable.")


def _maintenance(actual: float, rule_pack: RulePack) -> Recommendation:
    rules = rule_pack.progress
    tolerance = rules.maintenance_tolerance

    if abs(actual) <= tolerance:
        return _on_track("Weight is stable. Maintaining current calories.")
    if actual < -tolerance:
        return Recommendation(
            ProgressPattern.TOO_FAST,
            True,
            rules.maintenance_delta,
            f"Unintentional weight loss ({abs(actual):.1f}kg/week). Increasing calories.",
        )
    return Recommendation(
        ProgressPattern.TOO_SLOW,
        True,
        -rules.maintenance_delta,
        f"Unintentional weight gain ({actual:.1f}kg/week). Decreasing calories.",
    )


def classify_progress(
    weekly_change: float,
    expected_weekly_change: float,
    goal: Goal,
    rule_pack: RulePack,
) -> Recommendation:
    """Classify a weekly rate against the expected rate for a goal.

    Total over the five patterns: every branch returns a recommendation.
    """
    difference = round(weekly_change - expected_weekly_change, 3)
    if abs(difference) <= rule_pack.progress.on_track_tolerance:
        return _on_track("Progress is on track. No adjustment needed.")

    if goal == Goal.WEIGHT_LOSS:
        return _weight_loss(weekly_change, difference, rule_pack)
    if goal == Goal.MUSCLE_GAIN:
        return _muscle_gain(weekly_change, difference, rule_pack)
    if goal == Goal.MAINTENANCE:
        return _maintenance(weekly_change, rule_pack)
    return _on_track("Progress is acceptable.")


def detect_stall(weights: list[float], rule_pack: RulePack) -> bool:
    """True when the most recent weights span less than the stall range.

    Args:
        weights: Weights ordered most recent first
        rule_pack: Active rule pack
    """
    rules = rule_pack.progress
    recent = weights[: rules.stall_window]
    if len(recent) < rules.stall_min_readings:
        return False
    return round(max(recent) - min(recent), 3) < rules.stall_range


def classify_training_indicator(
    goal: Goal,
    pattern: ProgressPattern,
    is_stalled: bool,
    signals: DerivedSignals | None = None,
) -> TrainingIndicator:
    """How training is responding, for the volume step rule."""
    high_risk = signals is not None and signals.recovery_risk.level in (
        RiskLevel.HIGH,
        RiskLevel.CRITICAL,
    )
    if high_risk or (goal == Goal.WEIGHT_LOSS and pattern == ProgressPattern.TOO_FAST):
        return TrainingIndicator.REGRESSING
    if is_stalled or (signals is not None and signals.plateau):
        return TrainingIndicator.STALLING
    return TrainingIndicator.PROGRESSING


def _subjective_warnings(checkin: CheckIn, rule_pack: RulePack) -> list[str]:
    rules = rule_pack.recovery_risk
    warnings = []
    if checkin.energy <= rules.low_energy_max:
        warnings.append("Low energy levels reported. Consider increasing calories or carbs.")
    if checkin.hunger >= rules.high_hunger_min:
        warnings.append("High hunger levels reported. Consider increasing protein or fiber.")
    if checkin.stress >= rules.high_stress_min:
        warnings.append("High stress levels. Recovery may be compromised.")
    return warnings


def analyze_progress(
    checkins: list[CheckIn],
    expected_weekly_change: float,
    goal: Goal,
    rule_pack: RulePack,
    signals: DerivedSignals | None = None,
) -> ProgressAnalysis:
    """Compare the latest weekly rate with the expected rate.

    Args:
        checkins: Check-in history, any order. At least two are required.
        expected_weekly_change: Planned kg/week, negative for loss
        goal: Primary goal
        rule_pack: Active rule pack
        signals: Derived signals for the same window, used for the
            training indicator when given

    Returns:
        ProgressAnalysis with the pattern and an unvalidated recommendation

    Raises:
        ContractViolation: if fewer than two check-ins are supplied
    """
    if len(checkins) < 2:
        raise ContractViolation(
            f"analyze_progress needs at least 2 check-ins, got {len(checkins)}"
        )

    newest_first = list(reversed(sort_chronologically(checkins)))
    current, previous = newest_first[0], newest_first[1]

    weight_change = round(current.weight - previous.weight, 3)
    weekly_change = round(weight_change / elapsed_weeks(previous, current), 3)

    recommendation = classify_progress(weekly_change, expected_weekly_change, goal, rule_pack)
    is_stalled = detect_stall([c.weight for c in newest_first], rule_pack)

    warnings = []
    if is_stalled:
        warnings.append("Progress has stalled for 3+ weeks. Consider a diet break or refeed.")
    warnings.extend(_subjective_warnings(current, rule_pack))

    return ProgressAnalysis(
        current_weight=current.weight,
        previous_weight=previous.weight,
        weight_change=weight_change,
        weekly_change=weekly_change,
        expected_weekly_change=expected_weekly_change,
        pattern=recommendation.pattern,
        should_adjust=recommendation.should_adjust,
        recommended_change=recommendation.calorie_change,
        is_stalled=is_stalled,
        reason=recommendation.reason,
        training_indicator=classify_training_indicator(
            goal, recommendation.pattern, is_stalled, signals
        ),
        warnings=tuple(warnings),
    )


def finalize_adjustment(
    analysis: ProgressAnalysis,
    current_calories: int,
    sex: Sex,
    rule_pack: RulePack,
) -> tuple[ProgressAnalysis, ValidationResult]:
    """Pass the recommendation through the step-size guardrail.

    An unsafe recommendation is not discarded: it is clamped to the rule
    pack's fallback step in the same direction.
    """
    if not analysis.should_adjust or analysis.recommended_change == 0:
        return analysis, ValidationResult()

    proposed = current_calories + analysis.recommended_change
    validation = validate_adjustment(current_calories, proposed, sex, rule_pack)
    if validation.is_valid:
        return analysis, validation

    fallback = rule_pack.safety.unsafe_step_fallback_kcal
    clamped = fallback if analysis.recommended_change > 0 else -fallback
    logger.info(
        "Clamping unsafe adjustment %+d to %+d kcal",
        analysis.recommended_change,
        clamped,
    )
    return replace(analysis, recommended_change=clamped), validation


def summarize_analysis(analysis: ProgressAnalysis) -> str:
    """One-line audit summary of an analysis."""
    direction = "gained" if analysis.weight_change > 0 else "lost"
    parts = [
        f"Weight {direction} {abs(analysis.weight_change):.1f}kg "
        f"({abs(analysis.weekly_change):.2f}kg/week)",
        f"Pattern: {analysis.pattern.value.replace('_', ' ')}",
    ]
    if analysis.should_adjust and analysis.recommended_change:
        verb = "increased" if analysis.recommended_change > 0 else "decreased"
        parts.append(f"Calories {verb} by {abs(analysis.recommended_change)} kcal/day")
    else:
        parts.append("No calorie adjustment needed")
    if analysis.is_stalled:
        parts.append("Stall detected")
    return ". ".join(parts)
