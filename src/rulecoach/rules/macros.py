"""Macro allocation: split a calorie target into protein, fat and carbohydrate grams."""

from ..models.plan import MacroBreakdown
from ..models.profile import Goal
from ..models.rule_pack import RulePack

PROTEIN_KCAL_PER_G = 4
FAT_KCAL_PER_G = 9
CARB_KCAL_PER_G = 4

MACRO_TOLERANCE = 0.05


def calculate_macros(
    weight: float,
    target_calories: int,
    goal: Goal,
    rule_pack: RulePack,
) -> MacroBreakdown:
    """Allocate macros for a calorie target.

    Protein and fat are set per kg of body weight from the goal's configured
    ratios. Carbohydrates absorb whatever energy is left and never go
    negative.
    """
    defaults = rule_pack.goal(goal)
    protein = round(weight * defaults.protein_ratio)
    fat = round(weight * defaults.fat_ratio)

    remaining = target_calories - protein * PROTEIN_KCAL_PER_G - fat * FAT_KCAL_PER_G
    carbs = max(0, round(remaining / CARB_KCAL_PER_G))

    return MacroBreakdown(protein=protein, fat=fat, carbs=carbs)


def macros_match_target(macros: MacroBreakdown, target_calories: int) -> bool:
    """Check the macro calories reconstruct to within 5% of the target."""
    difference = abs(macros.total_calories - target_calories)
    return difference <= target_calories * MACRO_TOLERANCE
