"""Explanation service: turns a finalized decision record into readable text.

Explainers only ever read a record the planner has already sealed and
stored. Nothing they return feeds back into the numbers.
"""

from dataclasses import dataclass, field
from typing import Protocol

from ..models.decision import DecisionRecord, GuardrailSeverity, TriggerType
from ..models.signals import ProgressPattern, RiskLevel
from ..rules.progress import summarize_analysis

PATTERN_TITLES = {
    ProgressPattern.ON_TRACK: "Right on track",
    ProgressPattern.TOO_FAST: "Moving faster than planned",
    ProgressPattern.TOO_SLOW: "Moving slower than planned",
    ProgressPattern.REVERSED: "Heading the wrong way",
    ProgressPattern.STALLED: "Progress has stalled",
}

RISK_NOTES = {
    RiskLevel.MODERATE: "Recovery markers are slipping. Keep an eye on sleep and stress.",
    RiskLevel.HIGH: "Recovery risk is high, so the plan is holding steady this week.",
    RiskLevel.CRITICAL: "Recovery risk is critical. Calories go up to help you recover.",
}


def _sentence(text: str) -> str:
    text = text.strip()
    return text if text.endswith(".") else text + "."


@dataclass(frozen=True)
class Explanation:
    title: str
    summary: str
    reasoning: str
    next_steps: tuple[str, ...] = ()
    warnings: tuple[str, ...] = field(default_factory=tuple)

    def render(self) -> str:
        """Plain-text rendering for the terminal."""
        lines = [self.title, "", self.summary, "", self.reasoning]
        if self.warnings:
            lines.append("")
            lines.append("Watch out:")
            lines.extend(f"  - {w}" for w in self.warnings)
        if self.next_steps:
            lines.append("")
            lines.append("Next steps:")
            lines.extend(f"  - {step}" for step in self.next_steps)
        return "\n".join(lines)


class Explainer(Protocol):
    """Anything that can describe a decision record."""

    def explain(self, record: DecisionRecord) -> Explanation: ...


class TemplateExplainer:
    """Explainer built from fixed text templates."""

    def explain(self, record: DecisionRecord) -> Explanation:
        if record.trigger_type == TriggerType.ONBOARDING:
            return self._explain_onboarding(record)
        if record.analysis is None:
            return self._explain_baseline(record)
        return self._explain_checkin(record)

    def _explain_onboarding(self, record: DecisionRecord) -> Explanation:
        action = record.calorie_action
        calories = action.new_calories if action else 0
        return Explanation(
            title="Your starting plan is ready",
            summary=f"Daily target: {calories} kcal (plan v{record.nutrition_version}).",
            reasoning=action.reason if action else "",
            next_steps=(
                "Follow the plan for a full week",
                "Weigh in under the same conditions each time",
                "Check in again in seven days",
            ),
            warnings=self._warnings(record),
        )

    def _explain_baseline(self, record: DecisionRecord) -> Explanation:
        return Explanation(
            title="Baseline recorded",
            summary="This first check-in is the reference point for every later one.",
            reasoning="No adjustment is made until there are two check-ins to compare.",
            next_steps=("Check in again next week",),
            warnings=self._warnings(record),
        )

    def _explain_checkin(self, record: DecisionRecord) -> Explanation:
        analysis = record.analysis
        action = record.calorie_action
        reasons = []
        if action is not None:
            if not action.applied:
                reasons.append(
                    f"A change to {action.new_calories} kcal was blocked by a safety check, "
                    f"so you stay at {action.previous_calories} kcal."
                )
            elif action.delta:
                reasons.append(
                    f"Calories move from {action.previous_calories} to {action.new_calories} "
                    f"({action.delta:+d} kcal): {_sentence(action.reason)}"
                )
            else:
                reasons.append(
                    f"Calories stay at {action.previous_calories} kcal: {_sentence(action.reason)}"
                )

        if record.training_action is not None:
            reasons.append(f"Training: {_sentence(record.training_action.reason)}")

        signals = record.derived_signals
        if signals is not None and signals.recovery_risk.level in RISK_NOTES:
            reasons.append(RISK_NOTES[signals.recovery_risk.level])
        if signals is not None and signals.recomposition:
            reasons.append("Your waist is shrinking while weight holds: that is recomposition.")

        next_steps = ["Check in again next week"]
        if record.plan_changed:
            next_steps.insert(0, "Switch to the updated plan from today")
        else:
            next_steps.insert(0, "Keep following your current plan")

        return Explanation(
            title=PATTERN_TITLES.get(analysis.pattern, "Check-in processed"),
            summary=summarize_analysis(analysis),
            reasoning=" ".join(reasons),
            next_steps=tuple(next_steps),
            warnings=self._warnings(record),
        )

    def _warnings(self, record: DecisionRecord) -> tuple[str, ...]:
        return tuple(
            g.message
            for g in record.guardrails
            if g.severity in (GuardrailSeverity.WARNING, GuardrailSeverity.VIOLATION)
        )
