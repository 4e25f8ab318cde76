"""Weekly check-in data models."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from ..errors import ContractViolation


class AdherenceLevel(str, Enum):
    """Self-reported plan adherence for the week."""

    FULL = "100"  # Followed almost everything
    HIGH = "80-90"  # Small adaptations
    MEDIUM = "60-70"  # Several deviations
    LOW = "<60"  # Difficult week


class ContextualEvent(str, Enum):
    """Events that make the week's numbers less trustworthy."""

    MEALS_OUTSIDE = "meals_outside"
    TRAVEL = "travel"
    ILLNESS = "illness"
    HORMONAL_CHANGES = "hormonal_changes"
    EMOTIONAL_STRESS = "emotional_stress"
    POOR_SLEEP = "poor_sleep"
    NO_EVENTS = "no_events"


RATING_FIELDS = ("energy", "hunger", "sleep", "stress")


@dataclass(frozen=True)
class CheckIn:
    """A single weekly check-in.

    Check-ins are append-only: once stored they are never edited or
    deleted, and they are the engine's only source of raw signal.
    """

    user_id: str
    weight: float  # kg
    energy: int  # 0-10
    hunger: int  # 0-10
    sleep: int  # 0-10
    stress: int  # 0-10
    adherence: AdherenceLevel
    recorded_at: datetime
    waist: float | None = None  # cm
    events: tuple[ContextualEvent, ...] = ()
    notes: str = ""
    week_number: int = 0
    id: int | None = None

    def __post_init__(self):
        if self.weight <= 0:
            raise ContractViolation(f"weight must be positive, got {self.weight}")
        if self.waist is not None and self.waist <= 0:
            raise ContractViolation(f"waist must be positive, got {self.waist}")
        for name in RATING_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, int) or not 0 <= value <= 10:
                raise ContractViolation(f"{name} must be an integer 0-10, got {value!r}")

    @property
    def has_waist(self) -> bool:
        return self.waist is not None

    def to_dict(self) -> dict:
        """Convert to dictionary for storage."""
        return {
            "user_id": self.user_id,
            "weight": self.weight,
            "waist": self.waist,
            "energy": self.energy,
            "hunger": self.hunger,
            "sleep": self.sleep,
            "stress": self.stress,
            "adherence": self.adherence.value,
            "events": [e.value for e in self.events],
            "notes": self.notes,
            "recorded_at": self.recorded_at.isoformat(),
            "week_number": self.week_number,
        }

    @classmethod
    def from_dict(cls, data: dict, id: int | None = None) -> "CheckIn":
        """Create from dictionary."""
        return cls(
            id=id,
            user_id=data["user_id"],
            weight=data["weight"],
            waist=data.get("waist"),
            energy=data["energy"],
            hunger=data["hunger"],
            sleep=data["sleep"],
            stress=data["stress"],
            adherence=AdherenceLevel(data["adherence"]),
            events=tuple(ContextualEvent(e) for e in data.get("events", [])),
            notes=data.get("notes", ""),
            recorded_at=datetime.fromisoformat(data["recorded_at"]),
            week_number=data.get("week_number", 0),
        )


def sort_chronologically(checkins: list[CheckIn]) -> list[CheckIn]:
    """Return check-ins oldest first."""
    return sorted(checkins, key=lambda c: c.recorded_at)
