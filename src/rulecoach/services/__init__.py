"""Services that sit around the pure engine: orchestration and explanations."""

from .explainer import Explainer, Explanation, TemplateExplainer
from .planner import CycleResult, PlanGenerator

__all__ = [
    "CycleResult",
    "Explainer",
    "Explanation",
    "PlanGenerator",
    "TemplateExplainer",
]
