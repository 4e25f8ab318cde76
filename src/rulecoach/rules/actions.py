"""Action selection: the nutrition-mode state machine.

Calorie decisions come from an ordered rule table evaluated top-down, first
match wins. The order is the override chain: the confidence gate, then
recovery risk, then the anti-reversal lock, then goal-driven rules.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from ..models.decision import GuardrailEvent, GuardrailSeverity
from ..models.engine_state import EngineState, NutritionMode
from ..models.profile import Goal, Sex
from ..models.rule_pack import RulePack
from ..models.signals import DerivedSignals, ProgressAnalysis, RiskLevel, TrendDirection

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActionContext:
    """Everything the rule table may look at."""

    state: EngineState
    signals: DerivedSignals
    current_calories: int
    tdee: int
    sex: Sex
    goal: Goal
    rule_pack: RulePack
    now: datetime
    analysis: ProgressAnalysis | None = None

    @property
    def mode(self) -> NutritionMode:
        return self.state.nutrition_mode

    @property
    def trend(self) -> TrendDirection:
        return self.signals.weight_trend.direction

    @property
    def risk(self) -> RiskLevel:
        return self.signals.recovery_risk.level

    @property
    def active_mode(self) -> NutritionMode:
        """The non-hold mode of the current mode family."""
        if self.mode.is_cut:
            return NutritionMode.CUT_ACTIVE
        if self.mode.is_gain:
            return NutritionMode.GAIN_ACTIVE
        return NutritionMode.MAINTAIN


@dataclass(frozen=True)
class RuleOutcome:
    delta: int
    next_mode: NutritionMode
    reason: str


@dataclass(frozen=True)
class ActionRule:
    priority: int
    name: str
    predicate: Callable[[ActionContext], bool]
    action: Callable[[ActionContext], RuleOutcome]


@dataclass(frozen=True)
class CalorieDecision:
    """Result of running the rule table and guardrails for one cycle."""

    rule: str
    reason: str
    delta: int  # After snapping and the guardrail clamp
    proposed_calories: int  # Before the guardrail clamp
    new_calories: int
    next_mode: NutritionMode
    guardrails: tuple[GuardrailEvent, ...] = field(default_factory=tuple)

    @property
    def changed(self) -> bool:
        return self.delta != 0


# Predicates


def _low_confidence(ctx: ActionContext) -> bool:
    return ctx.signals.confidence.score < ctx.rule_pack.trend.min_confidence_for_action


def _critical_risk(ctx: ActionContext) -> bool:
    return ctx.risk == RiskLevel.CRITICAL


def _high_risk(ctx: ActionContext) -> bool:
    return ctx.risk == RiskLevel.HIGH


def _locked(ctx: ActionContext) -> bool:
    return ctx.state.anti_reversal_locked(ctx.now)


def _rate_off_target(ctx: ActionContext) -> bool:
    return (
        ctx.analysis is not None
        and ctx.analysis.should_adjust
        and ctx.analysis.recommended_change != 0
    )


def _cutting(ctx: ActionContext) -> bool:
    return ctx.mode.is_cut


def _gaining(ctx: ActionContext) -> bool:
    return ctx.mode.is_gain


def _always(ctx: ActionContext) -> bool:
    return True


# Actions


def _hold_for_confidence(ctx: ActionContext) -> RuleOutcome:
    minimum = ctx.rule_pack.trend.min_confidence_for_action
    return RuleOutcome(
        0,
        ctx.mode,
        f"Confidence too low ({ctx.signals.confidence.score:.2f} < {minimum})",
    )


def _recover(ctx: ActionContext) -> RuleOutcome:
    if ctx.mode.is_cut:
        mode = NutritionMode.CUT_RECOVERY
    elif ctx.mode.is_gain:
        mode = NutritionMode.GAIN_HOLD
    else:
        mode = ctx.mode
    return RuleOutcome(
        ctx.rule_pack.calorie_adjustments.max_increase,
        mode,
        "Critical recovery risk detected",
    )


def _hold_for_risk(ctx: ActionContext) -> RuleOutcome:
    if ctx.mode.is_cut:
        mode = NutritionMode.CUT_HOLD
    elif ctx.mode.is_gain:
        mode = NutritionMode.GAIN_HOLD
    else:
        mode = ctx.mode

    if ctx.trend == TrendDirection.DECREASING:
        return RuleOutcome(
            ctx.rule_pack.actions.high_risk_increase,
            mode,
            "High recovery risk while weight is falling, increasing slightly",
        )
    # Increasing or stable trend under high risk is a deliberate no-op
    return RuleOutcome(0, mode, "High recovery risk, holding calories")


def _hold_for_lock(ctx: ActionContext) -> RuleOutcome:
    until = ctx.state.anti_reversal_lock_until
    return RuleOutcome(
        0,
        ctx.active_mode,
        f"Recent change is locked in until {until:%Y-%m-%d}",
    )


def _correct_rate(ctx: ActionContext) -> RuleOutcome:
    analysis = ctx.analysis
    return RuleOutcome(analysis.recommended_change, ctx.active_mode, analysis.reason)


def _cut_by_trend(ctx: ActionContext) -> RuleOutcome:
    actions = ctx.rule_pack.actions
    if ctx.trend == TrendDirection.DECREASING:
        return RuleOutcome(0, NutritionMode.CUT_ACTIVE, "Making progress in deficit")
    if ctx.trend == TrendDirection.STABLE:
        return RuleOutcome(
            actions.cut_plateau_delta,
            NutritionMode.CUT_ACTIVE,
            "Plateau detected, reducing calories",
        )
    return RuleOutcome(
        actions.cut_reversal_delta,
        NutritionMode.CUT_ACTIVE,
        "Weight increasing despite deficit",
    )


def _gain_by_trend(ctx: ActionContext) -> RuleOutcome:
    actions = ctx.rule_pack.actions
    if ctx.trend == TrendDirection.INCREASING:
        return RuleOutcome(0, NutritionMode.GAIN_ACTIVE, "Making progress in surplus")
    if ctx.trend == TrendDirection.STABLE:
        return RuleOutcome(
            actions.gain_stall_delta,
            NutritionMode.GAIN_ACTIVE,
            "Stable weight, increasing surplus",
        )
    return RuleOutcome(
        actions.gain_reversal_delta,
        NutritionMode.GAIN_ACTIVE,
        "Weight decreasing despite surplus",
    )


def _maintain(ctx: ActionContext) -> RuleOutcome:
    return RuleOutcome(0, NutritionMode.MAINTAIN, "Maintenance mode")


CALORIE_RULES: tuple[ActionRule, ...] = (
    ActionRule(10, "confidence_gate", _low_confidence, _hold_for_confidence),
    ActionRule(20, "critical_recovery_risk", _critical_risk, _recover),
    ActionRule(30, "high_recovery_risk", _high_risk, _hold_for_risk),
    ActionRule(40, "anti_reversal_lock", _locked, _hold_for_lock),
    ActionRule(50, "progress_rate_correction", _rate_off_target, _correct_rate),
    ActionRule(60, "cut_trend", _cutting, _cut_by_trend),
    ActionRule(70, "gain_trend", _gaining, _gain_by_trend),
    ActionRule(80, "maintain", _always, _maintain),
)


def match_rule(ctx: ActionContext, rules=CALORIE_RULES) -> tuple[ActionRule, RuleOutcome]:
    """Return the first rule, by priority, whose predicate holds."""
    for rule in sorted(rules, key=lambda r: r.priority):
        if rule.predicate(ctx):
            return rule, rule.action(ctx)
    raise LookupError("No calorie rule matched")


def snap_delta(delta: int, rule_pack: RulePack) -> int:
    """Snap a delta to the nearest allowed step and apply the deadband.

    Ties resolve toward zero.
    """
    adjustments = rule_pack.calorie_adjustments
    if abs(delta) < adjustments.deadband:
        return 0
    return min(adjustments.candidate_deltas, key=lambda c: (abs(c - delta), abs(c)))


def apply_guardrails(
    calories: int,
    tdee: int,
    sex: Sex,
    rule_pack: RulePack,
) -> tuple[int, list[GuardrailEvent]]:
    """Clamp a calorie value inside the ceilings and floors.

    Ceilings are applied first and the sex floor last, so the floor wins
    when the bounds conflict.

    Returns:
        The clamped calories and a guardrail event per bound enforced
    """
    safety = rule_pack.safety
    events = []
    result = calories

    ceilings = (
        ("max_surplus_percent", round(tdee * (1 + safety.max_surplus_percent))),
        ("max_surplus_kcal", tdee + safety.max_surplus_kcal),
    )
    for name, ceiling in ceilings:
        if result > ceiling:
            events.append(
                GuardrailEvent(name, GuardrailSeverity.CLAMP, f"Clamped {result} to {ceiling}")
            )
            result = ceiling

    floors = (
        ("max_deficit_percent", round(tdee * (1 - safety.max_deficit_percent))),
        ("max_deficit_kcal", tdee - safety.max_deficit_kcal),
        ("calorie_floor", safety.floor_for(sex)),
    )
    for name, floor in floors:
        if result < floor:
            events.append(
                GuardrailEvent(name, GuardrailSeverity.CLAMP, f"Raised {result} to {floor}")
            )
            result = floor

    return result, events


def select_calorie_action(ctx: ActionContext) -> CalorieDecision:
    """Run the rule table and guardrails for one cycle.

    Args:
        ctx: Current state, signals and plan context

    Returns:
        CalorieDecision naming the rule that fired and the clamped calories
    """
    rule, outcome = match_rule(ctx)
    delta = snap_delta(outcome.delta, ctx.rule_pack)
    proposed = ctx.current_calories + delta

    if delta == 0:
        new_calories, events = ctx.current_calories, []
    else:
        new_calories, events = apply_guardrails(proposed, ctx.tdee, ctx.sex, ctx.rule_pack)

    logger.debug(
        "Rule %s fired for %s: delta %+d -> %d kcal, mode %s",
        rule.name,
        ctx.state.user_id,
        delta,
        new_calories,
        outcome.next_mode.value,
    )
    return CalorieDecision(
        rule=rule.name,
        reason=outcome.reason,
        delta=new_calories - ctx.current_calories,
        proposed_calories=proposed,
        new_calories=new_calories,
        next_mode=outcome.next_mode,
        guardrails=tuple(events),
    )
