"""Energy expenditure estimation and energy balance selection.

BMR uses the Mifflin-St Jeor equation; TDEE scales it by a fixed activity
multiplier. The energy balance selector then applies the goal's deficit or
surplus fraction and clamps it to the rule pack's absolute caps.
"""

from dataclasses import dataclass

from ..models.profile import ActivityLevel, Goal, Sex
from ..models.rule_pack import RulePack

KCAL_PER_KG = 7700  # Energy content of one kg of body tissue

ACTIVITY_MULTIPLIERS = {
    ActivityLevel.SEDENTARY: 1.2,
    ActivityLevel.LIGHT: 1.375,
    ActivityLevel.MODERATE: 1.55,
    ActivityLevel.ACTIVE: 1.725,
    ActivityLevel.VERY_ACTIVE: 1.9,
}


@dataclass(frozen=True)
class EnergyEstimate:
    bmr: int
    tdee: int
    activity_multiplier: float


@dataclass(frozen=True)
class EnergyBalance:
    """Calorie target for a goal and the deficit or surplus behind it."""

    target_calories: int
    deficit: int  # Negative for a deficit, positive for a surplus
    deficit_fraction: float
    weekly_weight_change: float  # kg/week

    def to_dict(self) -> dict:
        return {
            "target_calories": self.target_calories,
            "deficit": self.deficit,
            "deficit_fraction": self.deficit_fraction,
            "weekly_weight_change": self.weekly_weight_change,
        }


def calculate_bmr(weight: float, height: float, age: int, sex: Sex) -> int:
    """Basal metabolic rate in kcal/day."""
    offset = 5 if sex == Sex.MALE else -161
    return round(10 * weight + 6.25 * height - 5 * age + offset)


def calculate_tdee(
    weight: float,
    height: float,
    age: int,
    sex: Sex,
    activity_level: ActivityLevel,
) -> EnergyEstimate:
    """Total daily energy expenditure for the given anthropometrics."""
    bmr = calculate_bmr(weight, height, age, sex)
    multiplier = ACTIVITY_MULTIPLIERS[activity_level]
    return EnergyEstimate(bmr=bmr, tdee=round(bmr * multiplier), activity_multiplier=multiplier)


def weekly_change_for(daily_delta: float) -> float:
    """Projected kg/week from a daily calorie delta."""
    return round(daily_delta * 7 / KCAL_PER_KG, 2)


def calculate_target_calories(
    tdee: int,
    goal: Goal,
    weight: float,
    rule_pack: RulePack,
) -> EnergyBalance:
    """Pick the initial calorie target for a goal.

    The goal's configured fraction of TDEE is applied first, then the
    magnitude is clamped to the absolute deficit or surplus cap, so the
    tighter of the two always wins.

    Args:
        tdee: Total daily energy expenditure
        goal: Primary goal
        weight: Body weight in kg (kept for parity with the macro allocator)
        rule_pack: Active rule pack

    Returns:
        EnergyBalance with the target, signed deficit and weekly projection
    """
    fraction = rule_pack.goal(goal).energy_fraction
    safety = rule_pack.safety

    if goal == Goal.MAINTENANCE:
        fraction = 0.0

    deficit = round(tdee * fraction)
    if goal == Goal.WEIGHT_LOSS:
        deficit = max(deficit, -safety.max_deficit_kcal)
    elif goal == Goal.MUSCLE_GAIN:
        deficit = min(deficit, safety.max_surplus_kcal)

    return EnergyBalance(
        target_calories=tdee + deficit,
        deficit=deficit,
        deficit_fraction=fraction,
        weekly_weight_change=weekly_change_for(deficit),
    )


def adjust_calories(
    current_calories: int,
    actual_weekly_change: float,
    expected_weekly_change: float,
    rule_pack: RulePack,
) -> int:
    """Correct calories against the deviation from the expected weekly rate.

    The correction is `-(actual - expected) * kcal_per_kg_deviation`, capped
    at `max_rate_adjustment` either way. A rate below expected (losing
    faster, or gaining slower, than planned) therefore raises calories and a
    rate above expected lowers them. Deviations under the on-track tolerance
    leave calories unchanged.
    """
    progress = rule_pack.progress
    difference = round(actual_weekly_change - expected_weekly_change, 3)
    if abs(difference) < progress.on_track_tolerance:
        return current_calories

    adjustment = round(-difference * progress.kcal_per_kg_deviation)
    limit = progress.max_rate_adjustment
    return current_calories + max(-limit, min(limit, adjustment))
