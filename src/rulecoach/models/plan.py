"""Nutrition and training plan version models."""

from dataclasses import dataclass
from datetime import datetime

from ..errors import ContractViolation


@dataclass(frozen=True)
class MacroBreakdown:
    """Daily macronutrient targets in grams, with the calories each supplies."""

    protein: int
    fat: int
    carbs: int

    @property
    def protein_calories(self) -> int:
        return self.protein * 4

    @property
    def fat_calories(self) -> int:
        return self.fat * 9

    @property
    def carbs_calories(self) -> int:
        return self.carbs * 4

    @property
    def total_calories(self) -> int:
        return self.protein_calories + self.fat_calories + self.carbs_calories

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "protein": self.protein,
            "fat": self.fat,
            "carbs": self.carbs,
            "protein_calories": self.protein_calories,
            "fat_calories": self.fat_calories,
            "carbs_calories": self.carbs_calories,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MacroBreakdown":
        """Create from dictionary."""
        return cls(protein=data["protein"], fat=data["fat"], carbs=data["carbs"])


@dataclass(frozen=True)
class NutritionPlanVersion:
    """One immutable version of a user's nutrition plan."""

    user_id: str
    version: int
    calories_target: int
    calories_min: int
    calories_max: int
    macros: MacroBreakdown
    tdee: int
    bmr: int
    expected_weekly_change: float  # kg/week, negative for loss
    valid_from: datetime
    valid_until: datetime | None = None
    rule_pack_version: str = ""
    id: int | None = None

    def __post_init__(self):
        if self.version < 1:
            raise ContractViolation(f"plan version must start at 1, got {self.version}")

    def to_dict(self) -> dict:
        """Convert to dictionary for storage."""
        return {
            "user_id": self.user_id,
            "version": self.version,
            "calories_target": self.calories_target,
            "calories_min": self.calories_min,
            "calories_max": self.calories_max,
            "macros": self.macros.to_dict(),
            "tdee": self.tdee,
            "bmr": self.bmr,
            "expected_weekly_change": self.expected_weekly_change,
            "valid_from": self.valid_from.isoformat(),
            "valid_until": self.valid_until.isoformat() if self.valid_until else None,
            "rule_pack_version": self.rule_pack_version,
        }

    @classmethod
    def from_dict(cls, data: dict, id: int | None = None) -> "NutritionPlanVersion":
        """Create from dictionary."""
        return cls(
            id=id,
            user_id=data["user_id"],
            version=data["version"],
            calories_target=data["calories_target"],
            calories_min=data["calories_min"],
            calories_max=data["calories_max"],
            macros=MacroBreakdown.from_dict(data["macros"]),
            tdee=data["tdee"],
            bmr=data["bmr"],
            expected_weekly_change=data["expected_weekly_change"],
            valid_from=datetime.fromisoformat(data["valid_from"]),
            valid_until=(
                datetime.fromisoformat(data["valid_until"]) if data.get("valid_until") else None
            ),
            rule_pack_version=data.get("rule_pack_version", ""),
        )

    def get_summary(self) -> str:
        """Generate a one-line summary for display."""
        return (
            f"v{self.version}: {self.calories_target} kcal "
            f"({self.calories_min}-{self.calories_max}), "
            f"P{self.macros.protein} F{self.macros.fat} C{self.macros.carbs}"
        )


@dataclass(frozen=True)
class TrainingPlanVersion:
    """One immutable version of a user's training plan."""

    user_id: str
    version: int
    program_id: str
    program_name: str
    week: int
    weekly_sets: int  # Sets per muscle group per week at multiplier 1.0
    volume_multiplier: float
    intensity_multiplier: float
    is_deload: bool
    deload_frequency: int  # Weeks between deloads
    progression_scheme: str
    valid_from: datetime
    valid_until: datetime | None = None
    id: int | None = None

    @property
    def effective_sets(self) -> int:
        """Weekly sets per muscle group after the volume multiplier."""
        return round(self.weekly_sets * self.volume_multiplier)

    def to_dict(self) -> dict:
        """Convert to dictionary for storage."""
        return {
            "user_id": self.user_id,
            "version": self.version,
            "program_id": self.program_id,
            "program_name": self.program_name,
            "week": self.week,
            "weekly_sets": self.weekly_sets,
            "volume_multiplier": self.volume_multiplier,
            "intensity_multiplier": self.intensity_multiplier,
            "is_deload": self.is_deload,
            "deload_frequency": self.deload_frequency,
            "progression_scheme": self.progression_scheme,
            "valid_from": self.valid_from.isoformat(),
            "valid_until": self.valid_until.isoformat() if self.valid_until else None,
        }

    @classmethod
    def from_dict(cls, data: dict, id: int | None = None) -> "TrainingPlanVersion":
        """Create from dictionary."""
        return cls(
            id=id,
            user_id=data["user_id"],
            version=data["version"],
            program_id=data["program_id"],
            program_name=data["program_name"],
            week=data["week"],
            weekly_sets=data["weekly_sets"],
            volume_multiplier=data["volume_multiplier"],
            intensity_multiplier=data["intensity_multiplier"],
            is_deload=bool(data["is_deload"]),
            deload_frequency=data["deload_frequency"],
            progression_scheme=data.get("progression_scheme", "linear"),
            valid_from=datetime.fromisoformat(data["valid_from"]),
            valid_until=(
                datetime.fromisoformat(data["valid_until"]) if data.get("valid_until") else None
            ),
        )

    def get_summary(self) -> str:
        """Generate a one-line summary for display."""
        deload = " (deload)" if self.is_deload else ""
        return (
            f"v{self.version}: {self.program_name}, week {self.week}{deload}, "
            f"{self.effective_sets} sets/muscle/week, "
            f"volume x{self.volume_multiplier:.2f}, intensity x{self.intensity_multiplier:.2f}"
        )


@dataclass(frozen=True)
class ActivePlanPointer:
    """Which plan versions are live for a user."""

    user_id: str
    nutrition_version: int
    training_version: int
    current_week: int = 1
    last_checkin_at: datetime | None = None
