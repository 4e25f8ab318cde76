"""Pure decision rules: every function here is side-effect free.

Each rule takes the active rule pack as an explicit argument.
"""

from .actions import ActionContext, CalorieDecision, apply_guardrails, select_calorie_action
from .energy import (
    ACTIVITY_MULTIPLIERS,
    KCAL_PER_KG,
    adjust_calories,
    calculate_bmr,
    calculate_target_calories,
    calculate_tdee,
)
from .macros import calculate_macros, macros_match_target
from .progress import analyze_progress, detect_stall, finalize_adjustment, summarize_analysis
from .safety import (
    ValidationResult,
    safety_constraints,
    validate_adjustment,
    validate_nutrition_plan,
)
from .signals import interpret_signals
from .training import (
    adjust_training_volume,
    generate_training_program,
    select_training_action,
    should_deload,
)

__all__ = [
    "ACTIVITY_MULTIPLIERS",
    "ActionContext",
    "adjust_calories",
    "adjust_training_volume",
    "analyze_progress",
    "apply_guardrails",
    "calculate_bmr",
    "calculate_macros",
    "calculate_target_calories",
    "calculate_tdee",
    "CalorieDecision",
    "detect_stall",
    "finalize_adjustment",
    "generate_training_program",
    "interpret_signals",
    "KCAL_PER_KG",
    "macros_match_target",
    "safety_constraints",
    "select_calorie_action",
    "select_training_action",
    "should_deload",
    "summarize_analysis",
    "validate_adjustment",
    "validate_nutrition_plan",
    "ValidationResult",
]
