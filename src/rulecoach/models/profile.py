"""Anthropometric profile data models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from ..errors import ContractViolation

MIN_AGE = 18
MAX_AGE = 100


class Sex(str, Enum):
    """Biological sex used by the energy equations and calorie floors."""

    MALE = "male"
    FEMALE = "female"


class ActivityLevel(str, Enum):
    """Daily activity level, in increasing order of energy expenditure."""

    SEDENTARY = "sedentary"  # Little or no exercise
    LIGHT = "light"  # 1-3 days/week
    MODERATE = "moderate"  # 3-5 days/week
    ACTIVE = "active"  # 6-7 days/week
    VERY_ACTIVE = "very_active"  # Physical job or twice-daily training


class Goal(str, Enum):
    """Primary body-composition goal."""

    WEIGHT_LOSS = "weight_loss"
    MAINTENANCE = "maintenance"
    MUSCLE_GAIN = "muscle_gain"


class ExperienceLevel(str, Enum):
    """Training experience level."""

    BEGINNER = "beginner"  # < 1 year consistent training
    INTERMEDIATE = "intermediate"  # 1-3 years
    ADVANCED = "advanced"  # 3+ years


class EquipmentAccess(str, Enum):
    """Where the user trains."""

    GYM = "gym"
    HOME = "home"
    MINIMAL = "minimal"


@dataclass(frozen=True)
class TrainingBackground:
    """Training inputs used to pick the initial program."""

    experience_level: ExperienceLevel = ExperienceLevel.BEGINNER
    days_per_week: int = 3
    equipment: EquipmentAccess = EquipmentAccess.GYM
    injuries: tuple[str, ...] = ()

    def __post_init__(self):
        if not 1 <= self.days_per_week <= 7:
            raise ContractViolation(
                f"days_per_week must be between 1 and 7, got {self.days_per_week}"
            )

    def to_dict(self) -> dict:
        """Convert to dictionary for storage."""
        return {
            "experience_level": self.experience_level.value,
            "days_per_week": self.days_per_week,
            "equipment": self.equipment.value,
            "injuries": list(self.injuries),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TrainingBackground":
        """Create from dictionary."""
        return cls(
            experience_level=ExperienceLevel(data.get("experience_level", "beginner")),
            days_per_week=data.get("days_per_week", 3),
            equipment=EquipmentAccess(data.get("equipment", "gym")),
            injuries=tuple(data.get("injuries", [])),
        )


@dataclass(frozen=True)
class AnthropometricProfile:
    """Onboarding submission for a user.

    Profiles are never edited. A resubmission is stored as a new profile
    which supersedes the previous one.
    """

    user_id: str
    age: int
    sex: Sex
    height: float  # cm
    weight: float  # kg
    activity_level: ActivityLevel
    goal: Goal
    training: TrainingBackground = field(default_factory=TrainingBackground)
    id: int | None = None
    created_at: datetime | None = None

    def __post_init__(self):
        if not MIN_AGE <= self.age <= MAX_AGE:
            raise ContractViolation(
                f"age must be between {MIN_AGE} and {MAX_AGE}, got {self.age}"
            )
        if self.height <= 0:
            raise ContractViolation(f"height must be positive, got {self.height}")
        if self.weight <= 0:
            raise ContractViolation(f"weight must be positive, got {self.weight}")

    def to_dict(self) -> dict:
        """Convert to dictionary for storage."""
        return {
            "user_id": self.user_id,
            "age": self.age,
            "sex": self.sex.value,
            "height": self.height,
            "weight": self.weight,
            "activity_level": self.activity_level.value,
            "goal": self.goal.value,
            "training": self.training.to_dict(),
        }

    @classmethod
    def from_dict(
        cls,
        data: dict,
        id: int | None = None,
        created_at: datetime | None = None,
    ) -> "AnthropometricProfile":
        """Create from dictionary."""
        return cls(
            id=id,
            user_id=data["user_id"],
            age=data["age"],
            sex=Sex(data["sex"]),
            height=data["height"],
            weight=data["weight"],
            activity_level=ActivityLevel(data["activity_level"]),
            goal=Goal(data["goal"]),
            training=TrainingBackground.from_dict(data.get("training", {})),
            created_at=created_at,
        )

    def get_summary(self) -> str:
        """Generate a short human-readable summary."""
        summary = f"User: {self.user_id}\n"
        summary += f"Age: {self.age}, sex: {self.sex.value}\n"
        summary += f"Height: {self.height}cm, weight: {self.weight}kg\n"
        summary += f"Activity: {self.activity_level.value}\n"
        summary += f"Goal: {self.goal.value}\n"
        summary += (
            f"Training: {self.training.experience_level.value}, "
            f"{self.training.days_per_week}/week, {self.training.equipment.value}\n"
        )
        if self.training.injuries:
            summary += f"Injuries: {', '.join(self.training.injuries)}\n"
        return summary
