"""Training program selection, volume steps and deload cadence."""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from ..models.decision import TrainingAction
from ..models.engine_state import EngineState, TrainingMode
from ..models.plan import TrainingPlanVersion
from ..models.profile import (
    AnthropometricProfile,
    EquipmentAccess,
    ExperienceLevel,
    Goal,
)
from ..models.rule_pack import RulePack
from ..models.signals import TrainingIndicator

logger = logging.getLogger(__name__)

MINIMAL_EQUIPMENT_MAX_DAYS = 4


class Intensity(str, Enum):
    MODERATE = "moderate"
    HARD = "hard"


class TrainingFocus(str, Enum):
    """Training emphasis derived from the nutrition goal."""

    GENERAL_FITNESS = "general_fitness"
    HYPERTROPHY = "hypertrophy"


@dataclass(frozen=True)
class ProgramTemplate:
    program_id: str
    name: str
    description: str
    weekly_sets: int  # Per muscle group
    intensity: Intensity
    progression_scheme: str


PROGRAM_TEMPLATES = {
    "beginner_3day": ProgramTemplate(
        "full_body_beginner",
        "Beginner Full Body",
        "Full body workouts 3x per week for building foundation",
        12,
        Intensity.MODERATE,
        "linear",
    ),
    "beginner_4day": ProgramTemplate(
        "upper_lower_beginner",
        "Beginner Upper/Lower Split",
        "Upper/lower split for balanced development",
        14,
        Intensity.MODERATE,
        "linear",
    ),
    "intermediate_4day": ProgramTemplate(
        "upper_lower_intermediate",
        "Intermediate Upper/Lower",
        "Progressive upper/lower split with periodization",
        16,
        Intensity.HARD,
        "wave_loading",
    ),
    "intermediate_5day": ProgramTemplate(
        "ppl_intermediate",
        "Push/Pull/Legs",
        "Classic PPL split for muscle building",
        18,
        Intensity.HARD,
        "double_progression",
    ),
    "intermediate_6day": ProgramTemplate(
        "ppl_high_frequency",
        "High-Frequency PPL",
        "PPL twice per week",
        20,
        Intensity.HARD,
        "daily_undulation",
    ),
    "advanced_5day": ProgramTemplate(
        "powerbuilding_advanced",
        "Powerbuilding Program",
        "Strength and hypertrophy combined",
        20,
        Intensity.HARD,
        "block_periodization",
    ),
    "advanced_6day": ProgramTemplate(
        "arnold_split_advanced",
        "Arnold Split",
        "High-volume chest/back, shoulders/arms, legs split",
        22,
        Intensity.HARD,
        "daily_undulation",
    ),
}

GOAL_FOCUS = {
    Goal.WEIGHT_LOSS: TrainingFocus.GENERAL_FITNESS,
    Goal.MAINTENANCE: TrainingFocus.HYPERTROPHY,
    Goal.MUSCLE_GAIN: TrainingFocus.HYPERTROPHY,
}

FOCUS_VOLUME_MULTIPLIERS = {
    TrainingFocus.GENERAL_FITNESS: 1.0,
    TrainingFocus.HYPERTROPHY: 1.1,
}


@dataclass(frozen=True)
class TrainingProgram:
    """Initial program chosen at onboarding."""

    template_key: str
    template: ProgramTemplate
    volume_multiplier: float
    intensity_multiplier: float
    deload_frequency: int
    warnings: tuple[str, ...] = ()

    @property
    def initial_sets(self) -> int:
        return round(self.template.weekly_sets * self.volume_multiplier)


@dataclass(frozen=True)
class TrainingDecision:
    """Training mode and plan parameters for the coming week."""

    mode: TrainingMode
    volume_multiplier: float
    is_deload: bool
    action: TrainingAction

    def changes(self, plan: TrainingPlanVersion) -> bool:
        return self.volume_multiplier != plan.volume_multiplier or self.is_deload != plan.is_deload


def select_training_program(
    experience: ExperienceLevel,
    days_per_week: int,
    equipment: EquipmentAccess,
) -> str:
    """Pick a template key from the experience x frequency x equipment table."""
    days = days_per_week
    if equipment == EquipmentAccess.MINIMAL and days > MINIMAL_EQUIPMENT_MAX_DAYS:
        days = MINIMAL_EQUIPMENT_MAX_DAYS

    key = f"{experience.value}_{days}day"
    if key in PROGRAM_TEMPLATES:
        return key

    if experience == ExperienceLevel.BEGINNER:
        return "beginner_4day" if days >= 4 else "beginner_3day"
    if experience == ExperienceLevel.INTERMEDIATE:
        if days >= 6:
            return "intermediate_6day"
        if days >= 5:
            return "intermediate_5day"
        return "intermediate_4day"
    return "advanced_6day" if days >= 6 else "advanced_5day"


def generate_training_program(
    profile: AnthropometricProfile, rule_pack: RulePack
) -> TrainingProgram:
    """Choose the initial program and its age, injury and goal multipliers."""
    training = profile.training
    key = select_training_program(
        training.experience_level, training.days_per_week, training.equipment
    )
    template = PROGRAM_TEMPLATES[key]

    volume = 1.0
    if profile.age >= 50:
        volume = 0.85
    elif profile.age >= 40:
        volume = 0.9

    intensity = 0.9 if training.injuries else 1.0
    volume *= FOCUS_VOLUME_MULTIPLIERS[GOAL_FOCUS[profile.goal]]

    frequency = 4 if template.intensity == Intensity.HARD else 6
    frequency = rule_pack.training.clamp_deload_frequency(frequency)

    warnings = []
    days_capped = (
        training.equipment == EquipmentAccess.MINIMAL
        and training.days_per_week > MINIMAL_EQUIPMENT_MAX_DAYS
    )
    if days_capped:
        warnings.append("Days per week reduced to 4 due to minimal equipment")
    if profile.age >= 50 and template.weekly_sets > 18:
        warnings.append("Volume reduced by 15% to accommodate recovery needs")
    if training.injuries:
        warnings.append("Intensity reduced by 10% due to reported injuries")

    return TrainingProgram(
        template_key=key,
        template=template,
        volume_multiplier=round(rule_pack.training.clamp_volume(volume), 4),
        intensity_multiplier=intensity,
        deload_frequency=frequency,
        warnings=tuple(warnings),
    )


def adjust_training_volume(
    volume: float,
    indicator: TrainingIndicator,
    rule_pack: RulePack,
) -> float:
    """Step volume by the indicator: regressing down, stalling up."""
    rules = rule_pack.training
    if indicator == TrainingIndicator.REGRESSING:
        step = rules.regressing_volume_step
    elif indicator == TrainingIndicator.STALLING:
        step = rules.stalling_volume_step
    else:
        return volume
    return round(rules.clamp_volume(volume * (1 + step)), 4)


def should_deload(weeks_since_deload: int, deload_frequency: int) -> bool:
    return weeks_since_deload >= deload_frequency


def base_volume(plan: TrainingPlanVersion, rule_pack: RulePack) -> float:
    """Volume multiplier the plan would carry outside a deload week."""
    if not plan.is_deload:
        return plan.volume_multiplier
    return round(plan.volume_multiplier / (1 - rule_pack.training.deload_reduction), 4)


def select_training_action(
    plan: TrainingPlanVersion,
    state: EngineState,
    indicator: TrainingIndicator,
    now: datetime,
    rule_pack: RulePack,
) -> TrainingDecision:
    """Decide the training mode and volume for the coming week.

    A due deload takes precedence over everything else. Otherwise a
    regressing indicator steps volume down and holds, an active program
    lock holds volume where it is, and anything else progresses.

    Args:
        plan: Currently active training plan
        state: Engine state before this cycle
        indicator: Training indicator from the progress analysis
        now: Decision time
        rule_pack: Active rule pack

    Returns:
        TrainingDecision for the next plan version
    """
    rules = rule_pack.training
    current = base_volume(plan, rule_pack)
    weeks = state.weeks_since_last_deload + 1
    frequency = rules.clamp_deload_frequency(plan.deload_frequency)

    if not plan.is_deload and should_deload(weeks, frequency):
        mode = TrainingMode.DELOAD
        volume = round(current * (1 - rules.deload_reduction), 4)
        reason = f"Deload due after {weeks} weeks (every {frequency})"
    elif indicator == TrainingIndicator.REGRESSING:
        mode = TrainingMode.HOLD
        volume = adjust_training_volume(current, indicator, rule_pack)
        reason = "Performance regressing, reducing volume"
    elif state.program_locked(now):
        mode = TrainingMode.HOLD
        volume = current
        reason = f"Program locked until {state.program_lock_until:%Y-%m-%d}"
    else:
        mode = TrainingMode.PROGRESS
        volume = adjust_training_volume(current, indicator, rule_pack)
        if indicator == TrainingIndicator.STALLING:
            reason = "Progress stalling, adding volume"
        else:
            reason = "Progressing, volume unchanged"

    is_deload = mode == TrainingMode.DELOAD
    logger.debug("Training decision for %s: %s volume x%.3f", state.user_id, mode.value, volume)
    return TrainingDecision(
        mode=mode,
        volume_multiplier=volume,
        is_deload=is_deload,
        action=TrainingAction(
            previous_volume=plan.volume_multiplier,
            new_volume=volume,
            intensity_multiplier=plan.intensity_multiplier,
            deload=is_deload,
            indicator=indicator,
            reason=reason,
        ),
    )
