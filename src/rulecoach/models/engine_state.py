"""Engine state: the per-user program state advanced by the planner."""

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum

from .profile import Goal


class NutritionMode(str, Enum):
    """Nutrition program state."""

    CUT_ACTIVE = "CUT_ACTIVE"
    CUT_HOLD = "CUT_HOLD"
    CUT_RECOVERY = "CUT_RECOVERY"
    MAINTAIN = "MAINTAIN"
    GAIN_ACTIVE = "GAIN_ACTIVE"
    GAIN_HOLD = "GAIN_HOLD"

    @property
    def is_cut(self) -> bool:
        return self.value.startswith("CUT")

    @property
    def is_gain(self) -> bool:
        return self.value.startswith("GAIN")


class TrainingMode(str, Enum):
    """Training program state."""

    PROGRESS = "PROGRESS"
    HOLD = "HOLD"
    DELOAD = "DELOAD"


INITIAL_NUTRITION_MODES = {
    Goal.WEIGHT_LOSS: NutritionMode.CUT_ACTIVE,
    Goal.MAINTENANCE: NutritionMode.MAINTAIN,
    Goal.MUSCLE_GAIN: NutritionMode.GAIN_ACTIVE,
}


def _format_ts(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@dataclass(frozen=True)
class EngineState:
    """Live program state for one user.

    Only the planner advances it, once per onboarding or check-in. It is
    never rolled back; earlier states live on in decision records.
    """

    user_id: str
    nutrition_mode: NutritionMode
    training_mode: TrainingMode = TrainingMode.PROGRESS
    anti_reversal_lock_until: datetime | None = None
    program_lock_until: datetime | None = None
    weeks_since_last_deload: int = 0
    weeks_since_last_change: int = 0
    revision: int = 0

    @classmethod
    def initial(
        cls,
        user_id: str,
        goal: Goal,
        program_lock_until: datetime | None = None,
    ) -> "EngineState":
        """Create the state a freshly onboarded user starts in."""
        return cls(
            user_id=user_id,
            nutrition_mode=INITIAL_NUTRITION_MODES[goal],
            training_mode=TrainingMode.PROGRESS,
            program_lock_until=program_lock_until,
        )

    def anti_reversal_locked(self, now: datetime) -> bool:
        return self.anti_reversal_lock_until is not None and now < self.anti_reversal_lock_until

    def program_locked(self, now: datetime) -> bool:
        return self.program_lock_until is not None and now < self.program_lock_until

    def advance(self, **changes) -> "EngineState":
        """Return the successor state with the revision bumped."""
        return replace(self, revision=self.revision + 1, **changes)

    def to_dict(self) -> dict:
        """Convert to dictionary for storage."""
        return {
            "user_id": self.user_id,
            "nutrition_mode": self.nutrition_mode.value,
            "training_mode": self.training_mode.value,
            "anti_reversal_lock_until": _format_ts(self.anti_reversal_lock_until),
            "program_lock_until": _format_ts(self.program_lock_until),
            "weeks_since_last_deload": self.weeks_since_last_deload,
            "weeks_since_last_change": self.weeks_since_last_change,
            "revision": self.revision,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "EngineState":
        """Create from dictionary."""
        return cls(
            user_id=data["user_id"],
            nutrition_mode=NutritionMode(data["nutrition_mode"]),
            training_mode=TrainingMode(data.get("training_mode", "PROGRESS")),
            anti_reversal_lock_until=_parse_ts(data.get("anti_reversal_lock_until")),
            program_lock_until=_parse_ts(data.get("program_lock_until")),
            weeks_since_last_deload=data.get("weeks_since_last_deload", 0),
            weeks_since_last_change=data.get("weeks_since_last_change", 0),
            revision=data.get("revision", 0),
        )
