"""Decision record: the append-only audit trail of engine decisions."""

import hashlib
import json
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum

from .checkin import CheckIn
from .engine_state import EngineState
from .plan import NutritionPlanVersion, TrainingPlanVersion
from .profile import AnthropometricProfile
from .signals import DerivedSignals, ProgressAnalysis, TrainingIndicator


class TriggerType(str, Enum):
    """What caused the engine to run."""

    ONBOARDING = "onboarding"
    CHECKIN = "checkin"


class GuardrailSeverity(str, Enum):
    """How a guardrail affected the outcome."""

    VIOLATION = "violation"  # Blocked the change
    WARNING = "warning"  # Advisory only
    CLAMP = "clamp"  # Value was pulled back inside a bound


@dataclass(frozen=True)
class GuardrailEvent:
    """A guardrail that fired during a decision."""

    name: str
    severity: GuardrailSeverity
    message: str = ""

    def to_dict(self) -> dict:
        return {"name": self.name, "severity": self.severity.value, "message": self.message}

    @classmethod
    def from_dict(cls, data: dict) -> "GuardrailEvent":
        return cls(
            name=data["name"],
            severity=GuardrailSeverity(data["severity"]),
            message=data.get("message", ""),
        )


@dataclass(frozen=True)
class CalorieAction:
    """Calorie change decided this cycle."""

    previous_calories: int
    new_calories: int
    rule: str
    reason: str
    applied: bool = True

    @property
    def delta(self) -> int:
        return self.new_calories - self.previous_calories

    def to_dict(self) -> dict:
        return {
            "previous_calories": self.previous_calories,
            "new_calories": self.new_calories,
            "delta": self.delta,
            "rule": self.rule,
            "reason": self.reason,
            "applied": self.applied,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CalorieAction":
        return cls(
            previous_calories=data["previous_calories"],
            new_calories=data["new_calories"],
            rule=data["rule"],
            reason=data["reason"],
            applied=data.get("applied", True),
        )


@dataclass(frozen=True)
class TrainingAction:
    """Training volume/deload change decided this cycle."""

    previous_volume: float
    new_volume: float
    intensity_multiplier: float
    deload: bool
    indicator: TrainingIndicator
    reason: str

    @property
    def volume_ratio(self) -> float:
        if not self.previous_volume:
            return 1.0
        return round(self.new_volume / self.previous_volume, 4)

    def to_dict(self) -> dict:
        return {
            "previous_volume": self.previous_volume,
            "new_volume": self.new_volume,
            "volume_ratio": self.volume_ratio,
            "intensity_multiplier": self.intensity_multiplier,
            "deload": self.deload,
            "indicator": self.indicator.value,
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TrainingAction":
        return cls(
            previous_volume=data["previous_volume"],
            new_volume=data["new_volume"],
            intensity_multiplier=data["intensity_multiplier"],
            deload=data["deload"],
            indicator=TrainingIndicator(data["indicator"]),
            reason=data["reason"],
        )


@dataclass(frozen=True)
class InputSnapshot:
    """Inputs the engine saw when making a decision."""

    profile: AnthropometricProfile
    checkins: tuple[CheckIn, ...] = ()
    nutrition_plan: NutritionPlanVersion | None = None
    training_plan: TrainingPlanVersion | None = None

    def to_dict(self) -> dict:
        return {
            "profile": self.profile.to_dict(),
            "checkins": [
                {**c.to_dict(), "id": c.id} for c in self.checkins
            ],
            "nutrition_plan": self.nutrition_plan.to_dict() if self.nutrition_plan else None,
            "training_plan": self.training_plan.to_dict() if self.training_plan else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "InputSnapshot":
        nutrition = data.get("nutrition_plan")
        training = data.get("training_plan")
        return cls(
            profile=AnthropometricProfile.from_dict(data["profile"]),
            checkins=tuple(CheckIn.from_dict(c, id=c.get("id")) for c in data.get("checkins", [])),
            nutrition_plan=NutritionPlanVersion.from_dict(nutrition) if nutrition else None,
            training_plan=TrainingPlanVersion.from_dict(training) if training else None,
        )


@dataclass(frozen=True)
class DecisionRecord:
    """Immutable record of one engine decision.

    Exactly one record is written per onboarding or check-in event. The
    content hash covers every field except the database id, so any later
    edit to the stored row is detectable with verify().
    """

    user_id: str
    trigger_type: TriggerType
    input_snapshot: InputSnapshot
    state_after: EngineState
    nutrition_version: int
    training_version: int
    engine_version: str
    rule_pack_version: str
    created_at: datetime
    trigger_checkin_id: int | None = None
    derived_signals: DerivedSignals | None = None
    analysis: ProgressAnalysis | None = None
    state_before: EngineState | None = None
    rules_fired: tuple[str, ...] = ()
    guardrails: tuple[GuardrailEvent, ...] = ()
    calorie_action: CalorieAction | None = None
    training_action: TrainingAction | None = None
    plan_changed: bool = False
    content_hash: str = ""
    id: int | None = None

    @property
    def violations(self) -> list[GuardrailEvent]:
        return [g for g in self.guardrails if g.severity == GuardrailSeverity.VIOLATION]

    @property
    def warnings(self) -> list[GuardrailEvent]:
        return [g for g in self.guardrails if g.severity == GuardrailSeverity.WARNING]

    def to_dict(self) -> dict:
        """Convert to dictionary (without id or hash)."""
        return {
            "user_id": self.user_id,
            "trigger_type": self.trigger_type.value,
            "trigger_checkin_id": self.trigger_checkin_id,
            "input_snapshot": self.input_snapshot.to_dict(),
            "derived_signals": self.derived_signals.to_dict() if self.derived_signals else None,
            "analysis": self.analysis.to_dict() if self.analysis else None,
            "state_before": self.state_before.to_dict() if self.state_before else None,
            "state_after": self.state_after.to_dict(),
            "rules_fired": list(self.rules_fired),
            "guardrails": [g.to_dict() for g in self.guardrails],
            "calorie_action": self.calorie_action.to_dict() if self.calorie_action else None,
            "training_action": self.training_action.to_dict() if self.training_action else None,
            "nutrition_version": self.nutrition_version,
            "training_version": self.training_version,
            "plan_changed": self.plan_changed,
            "engine_version": self.engine_version,
            "rule_pack_version": self.rule_pack_version,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(
        cls, data: dict, content_hash: str = "", id: int | None = None
    ) -> "DecisionRecord":
        """Create from dictionary."""
        signals = data.get("derived_signals")
        analysis = data.get("analysis")
        before = data.get("state_before")
        calorie = data.get("calorie_action")
        training = data.get("training_action")
        return cls(
            id=id,
            user_id=data["user_id"],
            trigger_type=TriggerType(data["trigger_type"]),
            trigger_checkin_id=data.get("trigger_checkin_id"),
            input_snapshot=InputSnapshot.from_dict(data["input_snapshot"]),
            derived_signals=DerivedSignals.from_dict(signals) if signals else None,
            analysis=ProgressAnalysis.from_dict(analysis) if analysis else None,
            state_before=EngineState.from_dict(before) if before else None,
            state_after=EngineState.from_dict(data["state_after"]),
            rules_fired=tuple(data.get("rules_fired", [])),
            guardrails=tuple(GuardrailEvent.from_dict(g) for g in data.get("guardrails", [])),
            calorie_action=CalorieAction.from_dict(calorie) if calorie else None,
            training_action=TrainingAction.from_dict(training) if training else None,
            nutrition_version=data["nutrition_version"],
            training_version=data["training_version"],
            plan_changed=data.get("plan_changed", False),
            engine_version=data["engine_version"],
            rule_pack_version=data["rule_pack_version"],
            created_at=datetime.fromisoformat(data["created_at"]),
            content_hash=content_hash,
        )

    def compute_hash(self) -> str:
        """SHA-256 over the canonical JSON of the record's content."""
        canonical = json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    def seal(self) -> "DecisionRecord":
        """Return a copy with the content hash filled in."""
        return replace(self, content_hash=self.compute_hash())

    def verify(self) -> bool:
        """Check the stored hash still matches the content."""
        return bool(self.content_hash) and self.content_hash == self.compute_hash()
