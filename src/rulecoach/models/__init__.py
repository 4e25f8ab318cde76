"""Data models for rulecoach."""

from .checkin import AdherenceLevel, CheckIn, ContextualEvent
from .decision import (
    CalorieAction,
    DecisionRecord,
    GuardrailEvent,
    GuardrailSeverity,
    InputSnapshot,
    TrainingAction,
    TriggerType,
)
from .engine_state import EngineState, NutritionMode, TrainingMode
from .plan import ActivePlanPointer, MacroBreakdown, NutritionPlanVersion, TrainingPlanVersion
from .profile import (
    ActivityLevel,
    AnthropometricProfile,
    EquipmentAccess,
    ExperienceLevel,
    Goal,
    Sex,
    TrainingBackground,
)
from .rule_pack import RulePack
from .signals import (
    ConfidenceBreakdown,
    DerivedSignals,
    ProgressAnalysis,
    ProgressPattern,
    RecoveryRisk,
    RiskFactors,
    RiskLevel,
    TrainingIndicator,
    TrendDirection,
    TrendSignal,
)

__all__ = [
    "ActivePlanPointer",
    "ActivityLevel",
    "AdherenceLevel",
    "AnthropometricProfile",
    "CalorieAction",
    "CheckIn",
    "ConfidenceBreakdown",
    "ContextualEvent",
    "DecisionRecord",
    "DerivedSignals",
    "EngineState",
    "EquipmentAccess",
    "ExperienceLevel",
    "Goal",
    "GuardrailEvent",
    "GuardrailSeverity",
    "InputSnapshot",
    "MacroBreakdown",
    "NutritionMode",
    "NutritionPlanVersion",
    "ProgressAnalysis",
    "ProgressPattern",
    "RecoveryRisk",
    "RiskFactors",
    "RiskLevel",
    "RulePack",
    "Sex",
    "TrainingAction",
    "TrainingBackground",
    "TrainingIndicator",
    "TrainingMode",
    "TrainingPlanVersion",
    "TrendDirection",
    "TrendSignal",
    "TriggerType",
]
