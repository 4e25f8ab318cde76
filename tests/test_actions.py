"""Tests for the calorie action selector."""

from datetime import datetime, timedelta

import pytest

from rulecoach.models.checkin import AdherenceLevel
from rulecoach.models.decision import GuardrailSeverity
from rulecoach.models.engine_state import EngineState, NutritionMode
from rulecoach.models.profile import Goal, Sex
from rulecoach.rules.actions import (
    CALORIE_RULES,
    ActionContext,
    apply_guardrails,
    select_calorie_action,
    snap_delta,
)
from rulecoach.rules.progress import analyze_progress
from rulecoach.rules.signals import interpret_signals

NOW = datetime(2026, 2, 2, 8, 0)

CRITICAL = dict(energy=2, hunger=8, sleep=3, stress=8)
HIGH = dict(energy=5, hunger=6, sleep=5, stress=6)


@pytest.fixture
def context(rule_pack, weekly):
    """Build an ActionContext for a cutting male at TDEE 2759."""

    def build(
        *weights,
        mode=NutritionMode.CUT_ACTIVE,
        calories=2259,
        goal=Goal.WEIGHT_LOSS,
        expected=None,
        lock_until=None,
        **ratings,
    ):
        checkins = weekly(*weights, **ratings)
        analysis = None
        if expected is not None:
            analysis = analyze_progress(checkins, expected, goal, rule_pack)
        state = EngineState(
            user_id="alice",
            nutrition_mode=mode,
            anti_reversal_lock_until=lock_until,
        )
        return ActionContext(
            state=state,
            signals=interpret_signals(checkins, rule_pack),
            current_calories=calories,
            tdee=2759,
            sex=Sex.MALE,
            goal=goal,
            rule_pack=rule_pack,
            now=NOW,
            analysis=analysis,
        )

    return build


class TestRuleTable:
    """Tests for the ordered rule table itself."""

    def test_priorities_unique_and_ordered(self):
        """Test rules are declared in strictly ascending priority."""
        priorities = [rule.priority for rule in CALORIE_RULES]

        assert priorities == sorted(priorities)
        assert len(set(priorities)) == len(priorities)

    def test_override_chain(self):
        """Test the gate, then risk, then lock, then goal rules."""
        names = [rule.name for rule in CALORIE_RULES]

        assert names == [
            "confidence_gate",
            "critical_recovery_risk",
            "high_recovery_risk",
            "anti_reversal_lock",
            "progress_rate_correction",
            "cut_trend",
            "gain_trend",
            "maintain",
        ]


class TestSnapDelta:
    """Tests for snapping to the allowed step set."""

    def test_deadband(self, rule_pack):
        """Test changes under 50 kcal are dropped."""
        assert snap_delta(30, rule_pack) == 0
        assert snap_delta(-49, rule_pack) == 0

    def test_nearest_candidate(self, rule_pack):
        """Test snapping to the closest allowed delta."""
        assert snap_delta(50, rule_pack) == 50
        assert snap_delta(120, rule_pack) == 100
        assert snap_delta(500, rule_pack) == 200

    def test_ties_toward_zero(self, rule_pack):
        """Test a delta halfway between steps takes the smaller one."""
        assert snap_delta(125, rule_pack) == 100
        assert snap_delta(-175, rule_pack) == -150


class TestApplyGuardrails:
    """Tests for ceiling and floor clamping."""

    def test_deficit_floors(self, rule_pack):
        """Test a deep cut is raised to the tighter deficit floor."""
        calories, events = apply_guardrails(2059, 2759, Sex.MALE, rule_pack)

        assert calories == 2259
        assert [e.name for e in events] == ["max_deficit_percent", "max_deficit_kcal"]
        assert all(e.severity == GuardrailSeverity.CLAMP for e in events)

    def test_surplus_ceilings(self, rule_pack):
        """Test a large surplus is pulled under both ceilings."""
        calories, events = apply_guardrails(3300, 2759, Sex.MALE, rule_pack)

        assert calories == 3059
        assert [e.name for e in events] == ["max_surplus_percent", "max_surplus_kcal"]

    def test_sex_floor_wins(self, rule_pack):
        """Test the calorie floor is applied last."""
        calories, events = apply_guardrails(1000, 1400, Sex.FEMALE, rule_pack)

        assert calories == 1200
        assert [e.name for e in events] == ["max_deficit_percent", "calorie_floor"]

    def test_inside_bounds(self, rule_pack):
        """Test in-range values pass untouched."""
        assert apply_guardrails(2500, 2759, Sex.MALE, rule_pack) == (2500, [])


class TestSelectCalorieAction:
    """Tests for rule selection end to end."""

    def test_confidence_gate_beats_critical_risk(self, context):
        """Test low confidence holds even when risk is critical."""
        decision = select_calorie_action(
            context(80.0, adherence=AdherenceLevel.LOW, **CRITICAL)
        )

        assert decision.rule == "confidence_gate"
        assert decision.delta == 0
        assert decision.next_mode == NutritionMode.CUT_ACTIVE

    def test_critical_risk_recovers(self, context):
        """Test critical risk raises calories by the largest step."""
        decision = select_calorie_action(context(80.0, 79.6, 79.2, **CRITICAL))

        assert decision.rule == "critical_recovery_risk"
        assert decision.delta == 200
        assert decision.new_calories == 2459
        assert decision.next_mode == NutritionMode.CUT_RECOVERY

    def test_high_risk_falling_weight(self, context):
        """Test high risk with falling weight adds a little."""
        decision = select_calorie_action(context(80.0, 79.6, 79.2, **HIGH))

        assert decision.rule == "high_recovery_risk"
        assert decision.delta == 100
        assert decision.next_mode == NutritionMode.CUT_HOLD

    def test_high_risk_stable_weight_holds(self, context):
        """Test high risk with stable weight changes nothing."""
        decision = select_calorie_action(context(80.0, 80.1, 80.0, **HIGH))

        assert decision.rule == "high_recovery_risk"
        assert not decision.changed
        assert decision.next_mode == NutritionMode.CUT_HOLD

    def test_high_risk_in_gain(self, context):
        """Test high risk moves a gain into its hold mode."""
        decision = select_calorie_action(
            context(80.0, 80.5, 81.0, mode=NutritionMode.GAIN_ACTIVE, **HIGH)
        )

        assert decision.next_mode == NutritionMode.GAIN_HOLD
        assert decision.delta == 0

    def test_anti_reversal_lock(self, context):
        """Test a recent change blocks goal-driven rules."""
        decision = select_calorie_action(
            context(
                80.0,
                80.5,
                81.0,
                mode=NutritionMode.CUT_HOLD,
                lock_until=NOW + timedelta(days=3),
            )
        )

        assert decision.rule == "anti_reversal_lock"
        assert decision.delta == 0
        assert decision.next_mode == NutritionMode.CUT_ACTIVE

    def test_expired_lock_ignored(self, context):
        """Test a lock that has run out no longer applies."""
        decision = select_calorie_action(
            context(80.0, 80.5, 81.0, calories=2400, lock_until=NOW)
        )

        assert decision.rule == "cut_trend"

    def test_rate_correction(self, context):
        """Test an off-target rate drives the change."""
        decision = select_calorie_action(context(80.0, 79.0, expected=-0.45))

        assert decision.rule == "progress_rate_correction"
        assert decision.delta == 200
        assert decision.next_mode == NutritionMode.CUT_ACTIVE

    def test_cut_progressing(self, context):
        """Test falling weight in a cut needs no change."""
        decision = select_calorie_action(context(80.0, 79.6, 79.2))

        assert decision.rule == "cut_trend"
        assert decision.delta == 0

    def test_cut_plateau(self, context):
        """Test a plateau in a cut trims calories."""
        decision = select_calorie_action(context(80.0, 80.1, 80.0, calories=2400))

        assert decision.rule == "cut_trend"
        assert decision.delta == -100
        assert decision.new_calories == 2300

    def test_cut_reversal(self, context):
        """Test rising weight in a cut trims harder."""
        decision = select_calorie_action(context(80.0, 80.5, 81.0, calories=2500))

        assert decision.delta == -150

    def test_cut_at_deficit_cap_is_clamped(self, context):
        """Test a cut already at the cap is clamped back with events."""
        decision = select_calorie_action(context(80.0, 80.1, 80.0))

        assert decision.proposed_calories == 2159
        assert decision.new_calories == 2259
        assert not decision.changed
        assert [e.name for e in decision.guardrails] == ["max_deficit_kcal"]

    @pytest.mark.parametrize(
        "weights,expected",
        [
            ((80.0, 80.5, 81.0), 0),
            ((80.0, 80.1, 80.0), 100),
            ((81.0, 80.5, 80.0), 150),
        ],
    )
    def test_gain_trend(self, context, weights, expected):
        """Test the gain rule by trend direction."""
        decision = select_calorie_action(
            context(*weights, mode=NutritionMode.GAIN_ACTIVE, goal=Goal.MUSCLE_GAIN)
        )

        assert decision.rule == "gain_trend"
        assert decision.delta == expected
        assert decision.next_mode == NutritionMode.GAIN_ACTIVE

    def test_maintain(self, context):
        """Test maintenance falls through to the default rule."""
        decision = select_calorie_action(
            context(80.0, 80.5, 81.0, mode=NutritionMode.MAINTAIN, goal=Goal.MAINTENANCE)
        )

        assert decision.rule == "maintain"
        assert decision.delta == 0
