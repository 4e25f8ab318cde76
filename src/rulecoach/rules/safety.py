"""Safety validation for nutrition plans and calorie adjustments.

Every check is evaluated; nothing short-circuits. Violations block the plan
or adjustment, warnings are advisory and travel with the decision record.
"""

from dataclasses import dataclass

from ..models.decision import GuardrailEvent, GuardrailSeverity
from ..models.profile import Goal, Sex
from ..models.rule_pack import RulePack
from .energy import KCAL_PER_KG


@dataclass(frozen=True)
class SafetyIssue:
    """One failed or flagged safety check."""

    code: str
    message: str

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class ValidationResult:
    violations: tuple[SafetyIssue, ...] = ()
    warnings: tuple[SafetyIssue, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.violations

    def merge(self, other: "ValidationResult") -> "ValidationResult":
        return ValidationResult(
            violations=self.violations + other.violations,
            warnings=self.warnings + other.warnings,
        )

    def to_guardrail_events(self) -> list[GuardrailEvent]:
        events = [
            GuardrailEvent(v.code, GuardrailSeverity.VIOLATION, v.message) for v in self.violations
        ]
        events.extend(
            GuardrailEvent(w.code, GuardrailSeverity.WARNING, w.message) for w in self.warnings
        )
        return events


@dataclass(frozen=True)
class SafetyConstraints:
    """The limits that apply to one user, for display."""

    min_calories: int
    max_deficit: int
    max_surplus: int
    min_protein: float
    max_weekly_loss: float
    max_step: int


def validate_nutrition_plan(
    calories: int,
    protein: int,
    weight: float,
    sex: Sex,
    tdee: int,
    goal: Goal,
    rule_pack: RulePack,
) -> ValidationResult:
    """Validate a complete nutrition plan before it is persisted.

    Args:
        calories: Daily calorie target
        protein: Daily protein grams
        weight: Body weight in kg
        sex: Biological sex, for the calorie floor
        tdee: TDEE the plan was computed against
        goal: Primary goal
        rule_pack: Active rule pack

    Returns:
        ValidationResult listing every violation and warning found
    """
    safety = rule_pack.safety
    violations = []
    warnings = []

    floor = safety.floor_for(sex)
    if calories < floor:
        violations.append(
            SafetyIssue(
                "calorie_floor",
                f"Calories ({calories}) below minimum safe threshold ({floor})",
            )
        )

    if goal == Goal.WEIGHT_LOSS:
        deficit = tdee - calories
        if deficit > safety.max_deficit_kcal:
            violations.append(
                SafetyIssue(
                    "max_deficit",
                    f"Deficit ({deficit} kcal/day) exceeds maximum safe limit "
                    f"({safety.max_deficit_kcal})",
                )
            )

    if goal == Goal.MUSCLE_GAIN:
        surplus = calories - tdee
        if surplus > safety.max_surplus_kcal:
            violations.append(
                SafetyIssue(
                    "max_surplus",
                    f"Surplus ({surplus} kcal/day) exceeds maximum safe limit "
                    f"({safety.max_surplus_kcal})",
                )
            )

    min_protein = weight * safety.protein_floor_g_per_kg
    if protein < min_protein:
        violations.append(
            SafetyIssue(
                "protein_floor",
                f"Protein ({protein}g) below minimum threshold ({min_protein:.0f}g)",
            )
        )

    max_protein = weight * safety.protein_warning_g_per_kg
    if protein > max_protein:
        warnings.append(
            SafetyIssue(
                "protein_high",
                f"Protein ({protein}g) is unusually high. Consider reducing to {max_protein:.0f}g",
            )
        )

    if goal == Goal.WEIGHT_LOSS:
        weekly_loss = (tdee - calories) * 7 / KCAL_PER_KG
        max_weekly_loss = weight * safety.max_weekly_loss_fraction
        if weekly_loss > max_weekly_loss:
            violations.append(
                SafetyIssue(
                    "weekly_loss_rate",
                    f"Estimated weekly weight loss ({weekly_loss:.2f}kg) exceeds safe rate "
                    f"({max_weekly_loss:.2f}kg/week)",
                )
            )

    return ValidationResult(violations=tuple(violations), warnings=tuple(warnings))


def validate_adjustment(
    current_calories: int,
    new_calories: int,
    sex: Sex,
    rule_pack: RulePack,
) -> ValidationResult:
    """Bound a single step from one plan version to the next."""
    safety = rule_pack.safety
    violations = []
    warnings = []

    adjustment = new_calories - current_calories
    if abs(adjustment) > safety.max_step_kcal:
        violations.append(
            SafetyIssue(
                "max_step",
                f"Adjustment ({adjustment:+d} kcal) exceeds maximum safe change "
                f"(+/-{safety.max_step_kcal} kcal)",
            )
        )

    floor = safety.floor_for(sex)
    if new_calories < floor:
        violations.append(
            SafetyIssue(
                "calorie_floor",
                f"New calories ({new_calories}) below minimum safe threshold ({floor})",
            )
        )

    if safety.step_warning_kcal <= abs(adjustment) <= safety.max_step_kcal:
        warnings.append(
            SafetyIssue(
                "large_step",
                f"Large adjustment ({adjustment:+d} kcal). Monitor closely.",
            )
        )

    return ValidationResult(violations=tuple(violations), warnings=tuple(warnings))


def safety_constraints(weight: float, sex: Sex, rule_pack: RulePack) -> SafetyConstraints:
    safety = rule_pack.safety
    return SafetyConstraints(
        min_calories=safety.floor_for(sex),
        max_deficit=safety.max_deficit_kcal,
        max_surplus=safety.max_surplus_kcal,
        min_protein=round(weight * safety.protein_floor_g_per_kg, 1),
        max_weekly_loss=round(weight * safety.max_weekly_loss_fraction, 2),
        max_step=safety.max_step_kcal,
    )
