"""Plan generator: the orchestrator that turns engine decisions into stored plans.

Every rule it calls is pure. This module is the only place that reads and
writes user state, and it does so one cycle at a time: each onboarding or
check-in reads the current state, decides, and writes plan versions, the
active pointer, the engine state and exactly one decision record inside a
single write transaction.
"""

import asyncio
import logging
import math
import weakref
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from pathlib import Path
from typing import Awaitable, Callable

import aiosqlite

from .. import ENGINE_VERSION
from ..data.rule_pack_loader import RulePackRegistry
from ..db.engine import get_db_path, transaction
from ..db.repositories import (
    CheckInRepository,
    DecisionRecordRepository,
    EngineStateRepository,
    PlanRepository,
    ProfileRepository,
    RulePackRepository,
)
from ..errors import ConcurrentUpdateError, ContractViolation, SafetyViolationError
from ..models.checkin import CheckIn
from ..models.decision import (
    CalorieAction,
    DecisionRecord,
    GuardrailEvent,
    GuardrailSeverity,
    InputSnapshot,
    TriggerType,
)
from ..models.engine_state import EngineState
from ..models.plan import ActivePlanPointer, NutritionPlanVersion, TrainingPlanVersion
from ..models.profile import AnthropometricProfile
from ..models.rule_pack import RulePack
from ..rules.actions import ActionContext, select_calorie_action
from ..rules.energy import calculate_target_calories, calculate_tdee, weekly_change_for
from ..rules.macros import calculate_macros
from ..rules.progress import analyze_progress, finalize_adjustment
from ..rules.safety import ValidationResult, validate_adjustment, validate_nutrition_plan
from ..rules.signals import interpret_signals
from ..rules.training import generate_training_program, select_training_action
from .explainer import Explainer, Explanation, TemplateExplainer

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3


@dataclass(frozen=True)
class CycleResult:
    """What one onboarding or check-in cycle produced."""

    record: DecisionRecord
    nutrition_plan: NutritionPlanVersion
    training_plan: TrainingPlanVersion
    state: EngineState
    checkin: CheckIn | None = None
    explanation: Explanation | None = None

    @property
    def plan_changed(self) -> bool:
        return self.record.plan_changed

    @property
    def is_baseline(self) -> bool:
        return self.record.trigger_type == TriggerType.CHECKIN and self.record.analysis is None


def _calorie_band(target: int, rule_pack: RulePack) -> tuple[int, int]:
    band = rule_pack.plan.calorie_band_fraction
    return math.floor(target * (1 - band)), math.ceil(target * (1 + band))


def _advisories(messages, name: str) -> list[GuardrailEvent]:
    return [GuardrailEvent(name, GuardrailSeverity.WARNING, m) for m in messages]


def _clamped_step(validation: ValidationResult) -> list[GuardrailEvent]:
    """Events for a recommendation that was pulled back to the fallback step."""
    events = [
        GuardrailEvent(v.code, GuardrailSeverity.CLAMP, f"{v.message}; step clamped")
        for v in validation.violations
    ]
    events.extend(
        GuardrailEvent(w.code, GuardrailSeverity.WARNING, w.message) for w in validation.warnings
    )
    return events


class PlanGenerator:
    """Runs onboarding and check-in cycles against the database.

    Cycles for the same user are serialized in-process by an asyncio lock
    and across processes by SQLite's write lock. The engine state revision
    is compared-and-swapped on every write; a lost race retries the whole
    cycle up to `max_attempts` times.
    """

    def __init__(
        self,
        db_path: Path | None = None,
        rule_packs: RulePackRegistry | None = None,
        explainer: Explainer | None = None,
        max_attempts: int = MAX_ATTEMPTS,
    ):
        self.db_path = db_path or get_db_path()
        self.rule_packs = rule_packs if rule_packs is not None else RulePackRegistry()
        self.explainer = explainer if explainer is not None else TemplateExplainer()
        self.max_attempts = max_attempts

        self.rule_pack_store = RulePackRepository(self.db_path)
        self.profiles = ProfileRepository(self.db_path)
        self.checkins = CheckInRepository(self.db_path)
        self.plans = PlanRepository(self.db_path)
        self.states = EngineStateRepository(self.db_path)
        self.decisions = DecisionRecordRepository(self.db_path)

        # Entries vanish once no cycle holds or awaits the lock
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    async def onboard(
        self, profile: AnthropometricProfile, now: datetime | None = None
    ) -> CycleResult:
        """Create a user's first plans, or the next versions on re-onboarding.

        Args:
            profile: Onboarding submission
            now: Decision time, defaults to the current time

        Returns:
            CycleResult with the new plans and the onboarding record

        Raises:
            SafetyViolationError: if the initial nutrition plan is unsafe.
                Nothing is stored in that case.
        """
        now = now or datetime.now()
        result = await self._serialized(
            profile.user_id, lambda: self._onboarding_cycle(profile, now)
        )
        logger.info(
            "Onboarded %s at %d kcal (plan v%d)",
            profile.user_id,
            result.nutrition_plan.calories_target,
            result.nutrition_plan.version,
        )
        return self._explained(result)

    async def submit_checkin(self, checkin: CheckIn, now: datetime | None = None) -> CycleResult:
        """Record a weekly check-in and run the decision cycle on it.

        Args:
            checkin: The user's check-in. Its week number is assigned here.
            now: Decision time, defaults to the check-in's recorded time

        Returns:
            CycleResult with the plans active after the cycle

        Raises:
            ContractViolation: if the user has not onboarded
        """
        now = now or checkin.recorded_at
        result = await self._serialized(checkin.user_id, lambda: self._checkin_cycle(checkin, now))
        if result.plan_changed:
            logger.info(
                "Check-in for %s changed plans: nutrition v%d, training v%d",
                checkin.user_id,
                result.nutrition_plan.version,
                result.training_plan.version,
            )
        return self._explained(result)

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        return lock

    async def _serialized(
        self, user_id: str, cycle: Callable[[], Awaitable[CycleResult]]
    ) -> CycleResult:
        lock = self._lock_for(user_id)
        async with lock:
            for attempt in range(1, self.max_attempts + 1):
                try:
                    return await cycle()
                except ConcurrentUpdateError:
                    if attempt == self.max_attempts:
                        raise
                    logger.warning(
                        "Engine state for %s changed underneath us, retrying (%d/%d)",
                        user_id,
                        attempt,
                        self.max_attempts,
                    )
        raise ConcurrentUpdateError(f"No attempts made for {user_id}")

    def _explained(self, result: CycleResult) -> CycleResult:
        return replace(result, explanation=self.explainer.explain(result.record))

    async def _active_rule_pack(self, conn: aiosqlite.Connection) -> RulePack:
        stored = await self.rule_pack_store.get_active(conn)
        if stored is None:
            return self.rule_packs.default()
        return self.rule_packs.register(stored)

    async def _onboarding_cycle(
        self, profile: AnthropometricProfile, now: datetime
    ) -> CycleResult:
        async with transaction(self.db_path) as conn:
            rule_pack = await self._active_rule_pack(conn)

            energy = calculate_tdee(
                profile.weight, profile.height, profile.age, profile.sex, profile.activity_level
            )
            balance = calculate_target_calories(
                energy.tdee, profile.goal, profile.weight, rule_pack
            )
            macros = calculate_macros(
                profile.weight, balance.target_calories, profile.goal, rule_pack
            )
            validation = validate_nutrition_plan(
                balance.target_calories,
                macros.protein,
                profile.weight,
                profile.sex,
                energy.tdee,
                profile.goal,
                rule_pack,
            )
            if not validation.is_valid:
                raise SafetyViolationError(
                    "Initial nutrition plan failed safety validation: "
                    + "; ".join(str(v) for v in validation.violations),
                    validation,
                )

            program = generate_training_program(profile, rule_pack)

            stored_profile = replace(profile, created_at=profile.created_at or now)
            profile_id = await self.profiles.create(stored_profile, conn)
            stored_profile = replace(stored_profile, id=profile_id)

            prior_state = await self.states.get(profile.user_id, conn)
            prior_pointer = await self.plans.get_pointer(profile.user_id, conn)
            nutrition_version, training_version = await self.plans.latest_versions(
                profile.user_id, conn
            )

            valid_until = now + timedelta(days=rule_pack.plan.validity_days)
            calories_min, calories_max = _calorie_band(balance.target_calories, rule_pack)
            nutrition = NutritionPlanVersion(
                user_id=profile.user_id,
                version=nutrition_version + 1,
                calories_target=balance.target_calories,
                calories_min=calories_min,
                calories_max=calories_max,
                macros=macros,
                tdee=energy.tdee,
                bmr=energy.bmr,
                expected_weekly_change=balance.weekly_weight_change,
                valid_from=now,
                valid_until=valid_until,
                rule_pack_version=rule_pack.version,
            )
            training = TrainingPlanVersion(
                user_id=profile.user_id,
                version=training_version + 1,
                program_id=program.template.program_id,
                program_name=program.template.name,
                week=1,
                weekly_sets=program.template.weekly_sets,
                volume_multiplier=program.volume_multiplier,
                intensity_multiplier=program.intensity_multiplier,
                is_deload=False,
                deload_frequency=program.deload_frequency,
                progression_scheme=program.template.progression_scheme,
                valid_from=now,
                valid_until=valid_until,
            )
            await self.plans.create_nutrition(nutrition, conn)
            await self.plans.create_training(training, conn)
            await self.plans.set_pointer(
                ActivePlanPointer(
                    user_id=profile.user_id,
                    nutrition_version=nutrition.version,
                    training_version=training.version,
                    current_week=prior_pointer.current_week if prior_pointer else 1,
                    last_checkin_at=prior_pointer.last_checkin_at if prior_pointer else None,
                ),
                conn,
            )

            state = EngineState.initial(
                profile.user_id,
                profile.goal,
                program_lock_until=now + timedelta(weeks=rule_pack.locks.program_lock_weeks),
            )
            if prior_state is not None:
                state = replace(state, revision=prior_state.revision + 1)
            await self.states.save(
                state, prior_state.revision if prior_state else None, conn
            )

            guardrails = validation.to_guardrail_events()
            guardrails.extend(_advisories(program.warnings, "training_adjustment"))
            record = DecisionRecord(
                user_id=profile.user_id,
                trigger_type=TriggerType.ONBOARDING,
                input_snapshot=InputSnapshot(profile=stored_profile),
                state_before=prior_state,
                state_after=state,
                nutrition_version=nutrition.version,
                training_version=training.version,
                engine_version=ENGINE_VERSION,
                rule_pack_version=rule_pack.version,
                created_at=now,
                rules_fired=("energy_balance", f"program:{program.template_key}"),
                guardrails=tuple(guardrails),
                calorie_action=CalorieAction(
                    previous_calories=energy.tdee,
                    new_calories=balance.target_calories,
                    rule="energy_balance",
                    reason=(
                        f"Target set from TDEE {energy.tdee} kcal "
                        f"with a {balance.deficit:+d} kcal daily balance for {profile.goal.value}"
                    ),
                ),
                plan_changed=True,
            ).seal()
            record_id = await self.decisions.append(record, conn)

        return CycleResult(
            record=replace(record, id=record_id),
            nutrition_plan=nutrition,
            training_plan=training,
            state=state,
        )

    async def _checkin_cycle(self, checkin: CheckIn, now: datetime) -> CycleResult:
        user_id = checkin.user_id
        async with transaction(self.db_path) as conn:
            profile = await self.profiles.get_latest(user_id, conn)
            if profile is None:
                raise ContractViolation(f"User {user_id} has no onboarding profile")
            pointer = await self.plans.get_pointer(user_id, conn)
            state = await self.states.get(user_id, conn)
            if pointer is None or state is None:
                raise ContractViolation(f"User {user_id} has no active plan")
            nutrition = await self.plans.get_nutrition(user_id, pointer.nutrition_version, conn)
            training = await self.plans.get_training(user_id, pointer.training_version, conn)
            if nutrition is None or training is None:
                raise ContractViolation(
                    f"Active plan versions for {user_id} are missing "
                    f"(nutrition v{pointer.nutrition_version}, "
                    f"training v{pointer.training_version})"
                )
            rule_pack = await self._active_rule_pack(conn)

            stored = replace(checkin, week_number=pointer.current_week)
            checkin_id = await self.checkins.create(stored, conn)
            stored = replace(stored, id=checkin_id)

            window = max(rule_pack.trend.window, rule_pack.progress.stall_window)
            history = await self.checkins.list_recent(user_id, limit=window, conn=conn)
            total = await self.checkins.count_for_user(user_id, conn)
            snapshot = InputSnapshot(
                profile=profile,
                checkins=tuple(history),
                nutrition_plan=nutrition,
                training_plan=training,
            )
            next_pointer = replace(
                pointer, current_week=pointer.current_week + 1, last_checkin_at=stored.recorded_at
            )

            if total < 2:
                result = await self._record_baseline(
                    stored, snapshot, state, next_pointer, rule_pack, now, conn
                )
            else:
                result = await self._decide(
                    stored, snapshot, state, next_pointer, rule_pack, now, conn
                )

        return result

    async def _record_baseline(
        self,
        checkin: CheckIn,
        snapshot: InputSnapshot,
        state: EngineState,
        pointer: ActivePlanPointer,
        rule_pack: RulePack,
        now: datetime,
        conn: aiosqlite.Connection,
    ) -> CycleResult:
        """First check-in: store it as the reference point, change nothing."""
        signals = interpret_signals([checkin], rule_pack)
        nutrition = snapshot.nutrition_plan
        new_state = state.advance()

        await self.plans.set_pointer(pointer, conn)
        await self.states.save(new_state, state.revision, conn)

        record = DecisionRecord(
            user_id=checkin.user_id,
            trigger_type=TriggerType.CHECKIN,
            trigger_checkin_id=checkin.id,
            input_snapshot=snapshot,
            derived_signals=signals,
            state_before=state,
            state_after=new_state,
            nutrition_version=pointer.nutrition_version,
            training_version=pointer.training_version,
            engine_version=ENGINE_VERSION,
            rule_pack_version=rule_pack.version,
            created_at=now,
            rules_fired=("baseline",),
            calorie_action=CalorieAction(
                previous_calories=nutrition.calories_target,
                new_calories=nutrition.calories_target,
                rule="baseline",
                reason="First check-in baseline recorded",
            ),
        ).seal()
        record_id = await self.decisions.append(record, conn)

        return CycleResult(
            record=replace(record, id=record_id),
            nutrition_plan=nutrition,
            training_plan=snapshot.training_plan,
            state=new_state,
            checkin=checkin,
        )

    async def _decide(
        self,
        checkin: CheckIn,
        snapshot: InputSnapshot,
        state: EngineState,
        pointer: ActivePlanPointer,
        rule_pack: RulePack,
        now: datetime,
        conn: aiosqlite.Connection,
    ) -> CycleResult:
        profile = snapshot.profile
        nutrition = snapshot.nutrition_plan
        training = snapshot.training_plan
        history = list(snapshot.checkins)

        signals = interpret_signals(history, rule_pack)
        analysis = analyze_progress(
            history, nutrition.expected_weekly_change, profile.goal, rule_pack, signals
        )
        analysis, step_check = finalize_adjustment(
            analysis, nutrition.calories_target, profile.sex, rule_pack
        )
        guardrails = _clamped_step(step_check)
        guardrails.extend(_advisories(analysis.warnings, "progress_warning"))

        calorie = select_calorie_action(
            ActionContext(
                state=state,
                signals=signals,
                current_calories=nutrition.calories_target,
                tdee=nutrition.tdee,
                sex=profile.sex,
                goal=profile.goal,
                rule_pack=rule_pack,
                now=now,
                analysis=analysis,
            )
        )
        guardrails.extend(calorie.guardrails)
        rules_fired = [calorie.rule]

        nutrition_versions, training_versions = await self.plans.latest_versions(
            checkin.user_id, conn
        )
        valid_until = now + timedelta(days=rule_pack.plan.validity_days)

        new_nutrition = nutrition
        blocked = False
        if calorie.changed:
            macros = calculate_macros(checkin.weight, calorie.new_calories, profile.goal, rule_pack)
            validation = validate_nutrition_plan(
                calorie.new_calories,
                macros.protein,
                checkin.weight,
                profile.sex,
                nutrition.tdee,
                profile.goal,
                rule_pack,
            ).merge(
                validate_adjustment(
                    nutrition.calories_target, calorie.new_calories, profile.sex, rule_pack
                )
            )
            guardrails.extend(validation.to_guardrail_events())
            if validation.is_valid:
                calories_min, calories_max = _calorie_band(calorie.new_calories, rule_pack)
                new_nutrition = NutritionPlanVersion(
                    user_id=checkin.user_id,
                    version=nutrition_versions + 1,
                    calories_target=calorie.new_calories,
                    calories_min=calories_min,
                    calories_max=calories_max,
                    macros=macros,
                    tdee=nutrition.tdee,
                    bmr=nutrition.bmr,
                    expected_weekly_change=weekly_change_for(
                        calorie.new_calories - nutrition.tdee
                    ),
                    valid_from=now,
                    valid_until=valid_until,
                    rule_pack_version=rule_pack.version,
                )
                await self.plans.create_nutrition(new_nutrition, conn)
            else:
                blocked = True
                rules_fired.append("safety_fallback")
                logger.warning(
                    "Blocked calorie change for %s: %s",
                    checkin.user_id,
                    "; ".join(str(v) for v in validation.violations),
                )

        decision = select_training_action(
            training, state, analysis.training_indicator, now, rule_pack
        )
        rules_fired.append(f"training:{decision.mode.value.lower()}")
        new_training = training
        if decision.changes(training):
            new_training = replace(
                training,
                id=None,
                version=training_versions + 1,
                week=pointer.current_week,
                volume_multiplier=decision.volume_multiplier,
                is_deload=decision.is_deload,
                valid_from=now,
                valid_until=valid_until,
            )
            await self.plans.create_training(new_training, conn)

        nutrition_changed = new_nutrition is not nutrition
        changes = {
            "training_mode": decision.mode,
            "weeks_since_last_deload": (
                0 if decision.is_deload else state.weeks_since_last_deload + 1
            ),
            "weeks_since_last_change": (
                0 if nutrition_changed else state.weeks_since_last_change + 1
            ),
        }
        if not blocked:
            changes["nutrition_mode"] = calorie.next_mode
        if nutrition_changed:
            changes["anti_reversal_lock_until"] = now + timedelta(
                weeks=rule_pack.locks.anti_reversal_weeks
            )
        new_state = state.advance(**changes)

        pointer = replace(
            pointer,
            nutrition_version=new_nutrition.version,
            training_version=new_training.version,
        )
        await self.plans.set_pointer(pointer, conn)
        await self.states.save(new_state, state.revision, conn)

        record = DecisionRecord(
            user_id=checkin.user_id,
            trigger_type=TriggerType.CHECKIN,
            trigger_checkin_id=checkin.id,
            input_snapshot=snapshot,
            derived_signals=signals,
            analysis=analysis,
            state_before=state,
            state_after=new_state,
            rules_fired=tuple(rules_fired),
            guardrails=tuple(guardrails),
            calorie_action=CalorieAction(
                previous_calories=nutrition.calories_target,
                new_calories=calorie.new_calories,
                rule=calorie.rule,
                reason=calorie.reason,
                applied=not blocked,
            ),
            training_action=decision.action,
            nutrition_version=new_nutrition.version,
            training_version=new_training.version,
            plan_changed=nutrition_changed or new_training is not training,
            engine_version=ENGINE_VERSION,
            rule_pack_version=rule_pack.version,
            created_at=now,
        ).seal()
        record_id = await self.decisions.append(record, conn)

        return CycleResult(
            record=replace(record, id=record_id),
            nutrition_plan=new_nutrition,
            training_plan=new_training,
            state=new_state,
            checkin=checkin,
        )
