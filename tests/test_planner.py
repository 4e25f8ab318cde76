"""Tests for the plan generator's onboarding and check-in cycles."""

import asyncio
from dataclasses import replace
from datetime import datetime, timedelta

import pytest

from rulecoach.db import (
    CheckInRepository,
    DecisionRecordRepository,
    EngineStateRepository,
    PlanRepository,
    ProfileRepository,
)
from rulecoach.errors import ContractViolation, SafetyViolationError
from rulecoach.models.decision import GuardrailSeverity, TriggerType
from rulecoach.models.engine_state import NutritionMode, TrainingMode
from rulecoach.models.profile import ActivityLevel, AnthropometricProfile, Goal, Sex
from rulecoach.models.signals import ProgressPattern, TrainingIndicator
from rulecoach.services.planner import PlanGenerator

START = datetime(2026, 1, 5, 8, 0)


@pytest.fixture
def planner(temp_db_path):
    return PlanGenerator(temp_db_path)


@pytest.fixture
def cycle(planner, cutting_profile, make_checkin):
    """Onboard bea at START, then submit weekly check-ins for her."""

    async def run(*weights):
        results = [await planner.onboard(cutting_profile, now=START)]
        for week, weight in enumerate(weights, start=1):
            results.append(
                await planner.submit_checkin(make_checkin(weight, week=week, user_id="bea"))
            )
        return results

    return lambda *weights: asyncio.run(run(*weights))


class TestOnboarding:
    """Tests for the onboarding cycle."""

    def test_initial_plans(self, cycle):
        """Test the first plans follow from the profile."""
        (result,) = cycle()
        nutrition = result.nutrition_plan

        assert nutrition.version == 1
        assert nutrition.calories_target == 1761
        assert (nutrition.calories_min, nutrition.calories_max) == (1584, 1938)
        assert nutrition.tdee == 2201
        assert nutrition.bmr == 1420
        assert nutrition.expected_weekly_change == -0.4
        assert nutrition.valid_until == START + timedelta(days=7)
        assert nutrition.rule_pack_version == "1.0.0"

        training = result.training_plan
        assert training.version == 1
        assert training.week == 1
        assert training.volume_multiplier == 1.0
        assert training.deload_frequency == 6

    def test_initial_state_and_record(self, cycle):
        """Test onboarding writes the starting state and a sealed record."""
        (result,) = cycle()

        assert result.state.nutrition_mode == NutritionMode.CUT_ACTIVE
        assert result.state.training_mode == TrainingMode.PROGRESS
        assert result.state.program_lock_until == START + timedelta(weeks=4)
        assert result.record.trigger_type == TriggerType.ONBOARDING
        assert result.record.rules_fired == ("energy_balance", "program:beginner_3day")
        assert result.record.calorie_action.delta == -440
        assert result.record.verify()
        assert result.plan_changed
        assert result.explanation.title == "Your starting plan is ready"

    def test_persisted(self, cycle, temp_db_path):
        """Test the pointer, state and record are all stored."""
        (result,) = cycle()

        pointer = asyncio.run(PlanRepository(temp_db_path).get_pointer("bea"))
        state = asyncio.run(EngineStateRepository(temp_db_path).get("bea"))
        record = asyncio.run(DecisionRecordRepository(temp_db_path).get(result.record.id))

        assert (pointer.nutrition_version, pointer.training_version) == (1, 1)
        assert pointer.current_week == 1
        assert state == result.state
        assert record.content_hash == result.record.content_hash

    def test_unsafe_profile_stores_nothing(self, planner, temp_db_path):
        """Test an initial plan under the calorie floor is rejected outright."""
        profile = AnthropometricProfile(
            user_id="dora",
            age=70,
            sex=Sex.FEMALE,
            height=150,
            weight=45,
            activity_level=ActivityLevel.SEDENTARY,
            goal=Goal.WEIGHT_LOSS,
        )

        with pytest.raises(SafetyViolationError) as excinfo:
            asyncio.run(planner.onboard(profile, now=START))

        assert "calorie_floor" in [v.code for v in excinfo.value.validation.violations]
        assert asyncio.run(ProfileRepository(temp_db_path).list_users()) == []
        assert asyncio.run(PlanRepository(temp_db_path).get_pointer("dora")) is None
        assert asyncio.run(DecisionRecordRepository(temp_db_path).list_for_user("dora")) == []

    def test_reonboarding_creates_next_versions(
        self, planner, cutting_profile, make_checkin, temp_db_path
    ):
        """Test onboarding again supersedes the profile and keeps the week."""

        async def run():
            await planner.onboard(cutting_profile, now=START)
            await planner.submit_checkin(make_checkin(70.0, user_id="bea"))
            return await planner.onboard(
                replace(cutting_profile, weight=68.0, goal=Goal.MAINTENANCE),
                now=START + timedelta(weeks=2),
            )

        result = asyncio.run(run())
        pointer = asyncio.run(PlanRepository(temp_db_path).get_pointer("bea"))
        profiles = asyncio.run(ProfileRepository(temp_db_path).list_for_user("bea"))

        assert result.nutrition_plan.version == 2
        assert result.training_plan.version == 2
        assert result.state.nutrition_mode == NutritionMode.MAINTAIN
        assert result.state.revision == 2
        assert result.record.state_before.revision == 1
        assert pointer.current_week == 2
        assert [p.weight for p in profiles] == [70, 68.0]


class TestCheckInCycle:
    """Tests for the weekly check-in cycle."""

    def test_requires_onboarding(self, planner, make_checkin):
        """Test a check-in for an unknown user is a contract violation."""
        with pytest.raises(ContractViolation):
            asyncio.run(planner.submit_checkin(make_checkin(80.0, user_id="nobody")))

    def test_first_checkin_is_baseline(self, cycle):
        """Test the first check-in changes nothing."""
        _, baseline = cycle(70.0)

        assert baseline.is_baseline
        assert not baseline.plan_changed
        assert baseline.record.rules_fired == ("baseline",)
        assert baseline.record.analysis is None
        assert baseline.nutrition_plan.version == 1
        assert baseline.checkin.week_number == 1
        assert baseline.state.revision == 1
        assert baseline.explanation.title == "Baseline recorded"

    def test_on_track_holds(self, cycle):
        """Test on-track progress keeps the plan, and the program lock holds training."""
        *_, result = cycle(70.0, 69.6)

        assert not result.is_baseline
        assert result.record.analysis.pattern == ProgressPattern.ON_TRACK
        assert result.record.rules_fired == ("cut_trend", "training:hold")
        assert not result.plan_changed
        assert result.nutrition_plan.version == 1
        assert result.training_plan.version == 1
        assert result.state.training_mode == TrainingMode.HOLD
        assert result.state.weeks_since_last_deload == 1
        assert result.explanation.title == "Right on track"

    def test_slow_loss_lowers_calories(self, cycle):
        """Test a slow cut gets a new nutrition version, clamped by the deficit cap."""
        *_, result = cycle(70.0, 69.6, 69.6)
        record = result.record

        assert record.analysis.pattern == ProgressPattern.TOO_SLOW
        assert record.analysis.recommended_change == -200
        assert record.rules_fired == ("progress_rate_correction", "training:hold")
        assert record.calorie_action.new_calories == 1701
        assert record.calorie_action.applied

        names = [g.name for g in record.guardrails]
        assert "large_step" in names
        assert "max_deficit_kcal" in names

        nutrition = result.nutrition_plan
        assert nutrition.version == 2
        assert nutrition.calories_target == 1701
        assert nutrition.tdee == 2201
        assert nutrition.expected_weekly_change == -0.45
        assert result.training_plan.version == 1
        assert result.plan_changed

        start_of_week_three = START + timedelta(weeks=3)
        assert result.state.anti_reversal_lock_until == start_of_week_three + timedelta(weeks=2)
        assert result.state.weeks_since_last_change == 0

    def test_lock_blocks_then_plateau_adds_volume(self, cycle):
        """Test the anti-reversal lock holds calories while a plateau adds volume."""
        *_, previous, result = cycle(70.0, 69.6, 69.6, 69.6)
        record = result.record

        assert record.rules_fired == ("anti_reversal_lock", "training:progress")
        assert record.derived_signals.plateau
        assert record.analysis.training_indicator == TrainingIndicator.STALLING
        assert record.calorie_action.delta == 0

        assert result.nutrition_plan == previous.nutrition_plan
        assert result.training_plan.version == 2
        assert result.training_plan.volume_multiplier == 1.05
        assert result.training_plan.week == 5
        assert result.state.training_mode == TrainingMode.PROGRESS
        assert result.state.nutrition_mode == NutritionMode.CUT_ACTIVE
        assert result.state.weeks_since_last_change == 1
        assert result.state.revision == 4

    def test_history_is_auditable(self, cycle, temp_db_path):
        """Test every cycle left exactly one verifiable record."""
        cycle(70.0, 69.6, 69.6, 69.6)

        records = asyncio.run(DecisionRecordRepository(temp_db_path).list_for_user("bea"))
        checkins = asyncio.run(CheckInRepository(temp_db_path).list_recent("bea"))
        pointer = asyncio.run(PlanRepository(temp_db_path).get_pointer("bea"))

        assert len(records) == 5
        assert all(r.verify() for r in records)
        assert records[-1].trigger_type == TriggerType.ONBOARDING
        assert [c.week_number for c in checkins] == [1, 2, 3, 4]
        assert [r.trigger_checkin_id for r in records[:-1]] == [c.id for c in reversed(checkins)]
        assert (pointer.nutrition_version, pointer.training_version) == (2, 2)
        assert pointer.current_week == 5
        assert pointer.last_checkin_at == START + timedelta(weeks=4)

    def test_unsafe_change_keeps_prior_plan(self, planner, make_checkin, temp_db_path):
        """Test a change that breaks the weekly loss cap is recorded but not applied."""
        profile = AnthropometricProfile(
            user_id="fay",
            age=20,
            sex=Sex.FEMALE,
            height=170,
            weight=44,
            activity_level=ActivityLevel.MODERATE,
            goal=Goal.WEIGHT_LOSS,
        )

        async def run():
            onboarded = await planner.onboard(profile, now=START)
            await planner.submit_checkin(make_checkin(43.0, week=1, user_id="fay"))
            result = await planner.submit_checkin(make_checkin(43.0, week=2, user_id="fay"))
            return onboarded, result

        onboarded, result = asyncio.run(run())
        record = result.record
        assert onboarded.nutrition_plan.calories_target == 1540
        assert onboarded.nutrition_plan.tdee == 1925

        assert record.analysis.pattern == ProgressPattern.TOO_SLOW
        assert record.rules_fired[:2] == ("progress_rate_correction", "safety_fallback")
        assert record.calorie_action.new_calories == 1444
        assert record.calorie_action.applied is False

        assert [g.name for g in record.violations] == ["weekly_loss_rate"]
        severities = {g.name: g.severity for g in record.guardrails}
        assert severities["max_deficit_percent"] == GuardrailSeverity.CLAMP

        assert result.nutrition_plan.version == 1
        assert result.nutrition_plan.calories_target == 1540
        nutrition = asyncio.run(PlanRepository(temp_db_path).list_nutrition("fay"))
        pointer = asyncio.run(PlanRepository(temp_db_path).get_pointer("fay"))
        assert [p.version for p in nutrition] == [1]
        assert pointer.nutrition_version == 1

        assert record.state_after.nutrition_mode == record.state_before.nutrition_mode
        assert result.state.anti_reversal_lock_until is None
        assert result.state.weeks_since_last_change == 1
        assert record.verify()

    def test_concurrent_checkins_serialized(self, planner, cutting_profile, make_checkin):
        """Test simultaneous check-ins for one user run one after the other."""

        async def run():
            await planner.onboard(cutting_profile, now=START)
            return await asyncio.gather(
                planner.submit_checkin(make_checkin(70.0, week=1, user_id="bea")),
                planner.submit_checkin(make_checkin(69.6, week=2, user_id="bea")),
            )

        first, second = asyncio.run(run())

        assert first.is_baseline
        assert not second.is_baseline
        assert second.state.revision == first.state.revision + 1
        assert [first.checkin.week_number, second.checkin.week_number] == [1, 2]

    def test_user_locks_released(self, planner, cycle):
        """Test a user's lock is dropped once no cycle holds or awaits it."""
        cycle(70.0, 69.6)

        assert "bea" not in planner._locks
