"""Interactive questionnaires for onboarding and weekly check-ins."""

from datetime import datetime

import questionary
from questionary import Style

from .models.checkin import AdherenceLevel, CheckIn, ContextualEvent
from .models.profile import (
    MAX_AGE,
    MIN_AGE,
    ActivityLevel,
    AnthropometricProfile,
    EquipmentAccess,
    ExperienceLevel,
    Goal,
    Sex,
    TrainingBackground,
)

custom_style = Style(
    [
        ("qmark", "fg:#673ab7 bold"),
        ("question", "bold"),
        ("answer", "fg:#f44336 bold"),
        ("pointer", "fg:#673ab7 bold"),
        ("highlighted", "fg:#673ab7 bold"),
        ("selected", "fg:#cc5454"),
        ("separator", "fg:#cc5454"),
        ("instruction", ""),
        ("text", ""),
    ]
)


class QuestionnaireAborted(Exception):
    """The user cancelled a prompt (Ctrl-C or empty answer)."""


def _number_validator(minimum: float, maximum: float):
    def validate(text: str) -> bool | str:
        try:
            value = float(text)
        except ValueError:
            return "Please enter a number"
        if not minimum <= value <= maximum:
            return f"Please enter a value between {minimum:g} and {maximum:g}"
        return True

    return validate


async def _ask(question):
    answer = await question.ask_async()
    if answer is None:
        raise QuestionnaireAborted()
    return answer


async def _rating(prompt: str) -> int:
    answer = await _ask(
        questionary.select(
            prompt,
            choices=[str(i) for i in range(11)],
            default="5",
            style=custom_style,
        )
    )
    return int(answer)


class OnboardingQuestionnaire:
    """Collects an anthropometric profile and training background."""

    async def collect_profile(self, user_id: str) -> AnthropometricProfile:
        print("\n=== Onboarding ===\n")

        age = await _ask(
            questionary.text(
                "Age:", validate=_number_validator(MIN_AGE, MAX_AGE), style=custom_style
            )
        )
        sex = await _ask(
            questionary.select(
                "Sex:",
                choices=[
                    questionary.Choice("Male", Sex.MALE),
                    questionary.Choice("Female", Sex.FEMALE),
                ],
                style=custom_style,
            )
        )
        height = await _ask(
            questionary.text(
                "Height (cm):", validate=_number_validator(100, 250), style=custom_style
            )
        )
        weight = await _ask(
            questionary.text(
                "Weight (kg):", validate=_number_validator(30, 300), style=custom_style
            )
        )
        activity = await _ask(
            questionary.select(
                "How active are you outside training?",
                choices=[
                    questionary.Choice("Sedentary (desk job)", ActivityLevel.SEDENTARY),
                    questionary.Choice("Light (1-3 sessions/week)", ActivityLevel.LIGHT),
                    questionary.Choice("Moderate (3-5 sessions/week)", ActivityLevel.MODERATE),
                    questionary.Choice("Active (6-7 sessions/week)", ActivityLevel.ACTIVE),
                    questionary.Choice("Very active (physical job)", ActivityLevel.VERY_ACTIVE),
                ],
                default=ActivityLevel.MODERATE,
                style=custom_style,
            )
        )
        goal = await _ask(
            questionary.select(
                "What is your primary goal?",
                choices=[
                    questionary.Choice("Lose fat", Goal.WEIGHT_LOSS),
                    questionary.Choice("Maintain", Goal.MAINTENANCE),
                    questionary.Choice("Build muscle", Goal.MUSCLE_GAIN),
                ],
                style=custom_style,
            )
        )

        experience = await _ask(
            questionary.select(
                "What's your training experience level?",
                choices=[
                    questionary.Choice("Beginner (less than 1 year)", ExperienceLevel.BEGINNER),
                    questionary.Choice("Intermediate (1-3 years)", ExperienceLevel.INTERMEDIATE),
                    questionary.Choice("Advanced (3+ years)", ExperienceLevel.ADVANCED),
                ],
                style=custom_style,
            )
        )
        days = await _ask(
            questionary.select(
                "How many days per week can you train?",
                choices=["2", "3", "4", "5", "6"],
                default="3",
                style=custom_style,
            )
        )
        equipment = await _ask(
            questionary.select(
                "Where do you train?",
                choices=[
                    questionary.Choice("Full gym", EquipmentAccess.GYM),
                    questionary.Choice("Home gym", EquipmentAccess.HOME),
                    questionary.Choice("Minimal equipment", EquipmentAccess.MINIMAL),
                ],
                style=custom_style,
            )
        )
        injuries = await _ask(
            questionary.text(
                "Any injuries or limitations? (comma separated, blank for none)",
                style=custom_style,
            )
        )

        return AnthropometricProfile(
            user_id=user_id,
            age=int(float(age)),
            sex=sex,
            height=float(height),
            weight=float(weight),
            activity_level=activity,
            goal=goal,
            training=TrainingBackground(
                experience_level=experience,
                days_per_week=int(days),
                equipment=equipment,
                injuries=tuple(i.strip() for i in injuries.split(",") if i.strip()),
            ),
        )


class CheckInQuestionnaire:
    """Collects a weekly check-in."""

    async def collect_checkin(self, user_id: str) -> CheckIn:
        print("\n=== Weekly check-in ===\n")

        weight = await _ask(
            questionary.text(
                "Weight this morning (kg):",
                validate=_number_validator(30, 300),
                style=custom_style,
            )
        )
        waist = await _ask(
            questionary.text("Waist (cm, blank to skip):", style=custom_style)
        )
        energy = await _rating("Energy this week (0 = exhausted, 10 = great):")
        hunger = await _rating("Hunger this week (0 = none, 10 = constant):")
        sleep = await _rating("Sleep quality (0 = terrible, 10 = great):")
        stress = await _rating("Stress (0 = relaxed, 10 = overwhelmed):")
        adherence = await _ask(
            questionary.select(
                "How closely did you follow the plan?",
                choices=[
                    questionary.Choice("Almost everything (100%)", AdherenceLevel.FULL),
                    questionary.Choice("Small adaptations (80-90%)", AdherenceLevel.HIGH),
                    questionary.Choice("Several deviations (60-70%)", AdherenceLevel.MEDIUM),
                    questionary.Choice("Difficult week (<60%)", AdherenceLevel.LOW),
                ],
                style=custom_style,
            )
        )
        events = await _ask(
            questionary.checkbox(
                "Anything unusual this week?",
                choices=[
                    questionary.Choice("Meals outside", ContextualEvent.MEALS_OUTSIDE),
                    questionary.Choice("Travel", ContextualEvent.TRAVEL),
                    questionary.Choice("Illness", ContextualEvent.ILLNESS),
                    questionary.Choice("Hormonal changes", ContextualEvent.HORMONAL_CHANGES),
                    questionary.Choice("Emotional stress", ContextualEvent.EMOTIONAL_STRESS),
                    questionary.Choice("Poor sleep", ContextualEvent.POOR_SLEEP),
                ],
                style=custom_style,
            )
        )
        notes = await _ask(questionary.text("Notes (optional):", style=custom_style))

        return CheckIn(
            user_id=user_id,
            weight=float(weight),
            waist=float(waist) if waist.strip() else None,
            energy=energy,
            hunger=hunger,
            sleep=sleep,
            stress=stress,
            adherence=adherence,
            events=tuple(events) or (ContextualEvent.NO_EVENTS,),
            notes=notes,
            recorded_at=datetime.now(),
        )
