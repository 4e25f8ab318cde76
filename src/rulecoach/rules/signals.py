"""Signal interpretation over a window of recent check-ins.

Turns raw check-ins into trend, confidence, recovery risk, plateau and
recomposition signals. Every threshold comes from the rule pack.
"""

import logging
from statistics import mean

from ..errors import ContractViolation
from ..models.checkin import CheckIn, sort_chronologically
from ..models.rule_pack import RulePack
from ..models.signals import (
    ConfidenceBreakdown,
    DerivedSignals,
    RecoveryRisk,
    RiskFactors,
    RiskLevel,
    TrendDirection,
    TrendSignal,
)

logger = logging.getLogger(__name__)

SECONDS_PER_WEEK = 7 * 24 * 60 * 60

# Score given to an adherence bucket missing from the mapping table
UNKNOWN_ADHERENCE_SCORE = 0.5


def elapsed_weeks(earlier: CheckIn, later: CheckIn) -> float:
    """Weeks between two check-ins.

    Falls back to the week-number difference (at least one week) when the
    timestamps coincide or run backwards.
    """
    seconds = (later.recorded_at - earlier.recorded_at).total_seconds()
    if seconds > 0:
        return seconds / SECONDS_PER_WEEK
    return float(max(1, later.week_number - earlier.week_number))


def recent_window(checkins: list[CheckIn], rule_pack: RulePack) -> list[CheckIn]:
    """The most recent `trend.window` check-ins, oldest first."""
    ordered = sort_chronologically(checkins)
    return ordered[-rule_pack.trend.window:]


def _direction(change: float, threshold: float) -> TrendDirection:
    if abs(change) <= threshold:
        return TrendDirection.STABLE
    if change < 0:
        return TrendDirection.DECREASING
    return TrendDirection.INCREASING


def analyze_trend(checkins: list[CheckIn], rule_pack: RulePack) -> TrendSignal:
    """Weight trend from first to last check-in in the window."""
    ordered = sort_chronologically(checkins)
    values = tuple(c.weight for c in ordered)
    if len(ordered) < 2:
        return TrendSignal(TrendDirection.STABLE, 0.0, 0.0, values)

    change = round(ordered[-1].weight - ordered[0].weight, 3)
    weeks = elapsed_weeks(ordered[0], ordered[-1])
    return TrendSignal(
        direction=_direction(change, rule_pack.trend.plateau_max_weight_change),
        total_change=change,
        rate_per_week=round(change / weeks, 3),
        values=values,
    )


def analyze_waist_trend(checkins: list[CheckIn], rule_pack: RulePack) -> TrendSignal | None:
    """Waist trend, or None unless every check-in in the window has a waist."""
    ordered = sort_chronologically(checkins)
    if len(ordered) < 2 or not all(c.has_waist for c in ordered):
        return None

    change = round(ordered[-1].waist - ordered[0].waist, 3)
    weeks = elapsed_weeks(ordered[0], ordered[-1])
    return TrendSignal(
        direction=_direction(change, rule_pack.trend.waist_stable_change),
        total_change=change,
        rate_per_week=round(change / weeks, 3),
        values=tuple(c.waist for c in ordered),
    )


def adherence_score(checkins: list[CheckIn], rule_pack: RulePack) -> float:
    """Mean mapped adherence score across the window."""
    if not checkins:
        return 0.0
    mapping = rule_pack.adherence_mapping
    return mean(mapping.get(c.adherence, UNKNOWN_ADHERENCE_SCORE) for c in checkins)


def calculate_confidence(checkins: list[CheckIn], rule_pack: RulePack) -> ConfidenceBreakdown:
    """Weighted confidence in the window's signal, clamped to [0, 1]."""
    if not checkins:
        return ConfidenceBreakdown(0.0, 0.0, 0.0, 0.0)

    trend = rule_pack.trend
    adherence = adherence_score(checkins, rule_pack)
    data_quality = min(1.0, len(checkins) / trend.window)

    impact = sum(rule_pack.event_impact.get(e, 0.0) for c in checkins for e in c.events)
    event_score = max(0.0, min(1.0, 1.0 - impact))

    score = (
        adherence * trend.adherence_weight
        + data_quality * trend.data_quality_weight
        + event_score * trend.event_impact_weight
    )
    return ConfidenceBreakdown(
        score=round(max(0.0, min(1.0, score)), 4),
        adherence_score=round(adherence, 4),
        data_quality_score=round(data_quality, 4),
        event_impact_score=round(event_score, 4),
    )


def assess_recovery_risk(checkin: CheckIn, rule_pack: RulePack) -> RecoveryRisk:
    """Bucket recovery risk from the check-in's subjective ratings."""
    rules = rule_pack.recovery_risk
    score = round(
        (10 - checkin.energy) * rules.energy_weight
        + checkin.hunger * rules.hunger_weight
        + (10 - checkin.sleep) * rules.sleep_weight
        + checkin.stress * rules.stress_weight,
        2,
    )

    level = RiskLevel.LOW
    for candidate in (RiskLevel.MODERATE, RiskLevel.HIGH, RiskLevel.CRITICAL):
        if score >= rules.thresholds[candidate]:
            level = candidate

    factors = RiskFactors(
        low_energy=checkin.energy <= rules.low_energy_max,
        high_hunger=checkin.hunger >= rules.high_hunger_min,
        poor_sleep=checkin.sleep <= rules.poor_sleep_max,
        high_stress=checkin.stress >= rules.high_stress_min,
    )
    return RecoveryRisk(level=level, score=score, action=rules.actions[level], factors=factors)


def detect_plateau(checkins: list[CheckIn], rule_pack: RulePack) -> bool:
    """Stable weight across a full window despite good adherence."""
    trend_rules = rule_pack.trend
    if len(checkins) < trend_rules.window:
        return False
    trend = analyze_trend(checkins, rule_pack)
    return (
        trend.direction == TrendDirection.STABLE
        and adherence_score(checkins, rule_pack) >= trend_rules.plateau_min_adherence
    )


def detect_recomposition(checkins: list[CheckIn], rule_pack: RulePack) -> bool:
    """Stable scale weight while the waist shrinks."""
    waist = analyze_waist_trend(checkins, rule_pack)
    if waist is None:
        return False
    trend = analyze_trend(checkins, rule_pack)
    return (
        trend.direction == TrendDirection.STABLE
        and -waist.total_change >= rule_pack.trend.recomp_min_waist_decrease
    )


def interpret_signals(checkins: list[CheckIn], rule_pack: RulePack) -> DerivedSignals:
    """Derive every signal from the most recent window of check-ins.

    Args:
        checkins: Check-in history, any order. At least one is required.
        rule_pack: Active rule pack

    Returns:
        DerivedSignals for the window
    """
    if not checkins:
        raise ContractViolation("interpret_signals needs at least one check-in")

    window = recent_window(checkins, rule_pack)
    signals = DerivedSignals(
        weight_trend=analyze_trend(window, rule_pack),
        waist_trend=analyze_waist_trend(window, rule_pack),
        confidence=calculate_confidence(window, rule_pack),
        recovery_risk=assess_recovery_risk(window[-1], rule_pack),
        plateau=detect_plateau(window, rule_pack),
        recomposition=detect_recomposition(window, rule_pack),
        window_size=len(window),
    )
    logger.debug(
        "Signals for %s: trend=%s confidence=%.2f risk=%s",
        window[-1].user_id,
        signals.weight_trend.direction.value,
        signals.confidence.score,
        signals.recovery_risk.level.value,
    )
    return signals
