"""Onboarding command."""

import click

from ..errors import RuleCoachError, SafetyViolationError
from ..models.profile import (
    ActivityLevel,
    AnthropometricProfile,
    EquipmentAccess,
    ExperienceLevel,
    Goal,
    Sex,
    TrainingBackground,
)
from ..questionnaire import OnboardingQuestionnaire, QuestionnaireAborted
from ..services.planner import PlanGenerator
from .base import (
    async_command,
    echo_error,
    echo_info,
    echo_success,
    echo_warning,
    ensure_initialized,
    print_cycle,
)


def _choices(enum) -> click.Choice:
    return click.Choice([e.value for e in enum])


@click.command()
@click.argument("user_id")
@click.option("--age", type=int, help="Age in years")
@click.option("--sex", type=_choices(Sex))
@click.option("--height", type=float, help="Height in cm")
@click.option("--weight", type=float, help="Weight in kg")
@click.option("--activity", type=_choices(ActivityLevel), default=ActivityLevel.MODERATE.value)
@click.option("--goal", type=_choices(Goal))
@click.option(
    "--experience", type=_choices(ExperienceLevel), default=ExperienceLevel.BEGINNER.value
)
@click.option("--days", type=click.IntRange(1, 7), default=3, help="Training days per week")
@click.option("--equipment", type=_choices(EquipmentAccess), default=EquipmentAccess.GYM.value)
@click.option("--injury", "injuries", multiple=True, help="Injury or limitation (repeatable)")
@click.pass_context
@async_command
async def onboard(
    ctx,
    user_id: str,
    age: int | None,
    sex: str | None,
    height: float | None,
    weight: float | None,
    activity: str,
    goal: str | None,
    experience: str,
    days: int,
    equipment: str,
    injuries: tuple[str, ...],
):
    """Onboard USER_ID and create their first plans.

    Without --age, --sex, --height, --weight and --goal an interactive
    questionnaire collects the profile. Onboarding an existing user again
    supersedes their profile and creates the next plan versions.
    """
    db_path = ensure_initialized(ctx)

    required = {"--age": age, "--sex": sex, "--height": height, "--weight": weight, "--goal": goal}
    try:
        if all(v is None for v in required.values()):
            profile = await OnboardingQuestionnaire().collect_profile(user_id)
        else:
            missing = [name for name, value in required.items() if value is None]
            if missing:
                echo_error(f"Missing options: {', '.join(missing)}")
                ctx.exit(1)
            profile = AnthropometricProfile(
                user_id=user_id,
                age=age,
                sex=Sex(sex),
                height=height,
                weight=weight,
                activity_level=ActivityLevel(activity),
                goal=Goal(goal),
                training=TrainingBackground(
                    experience_level=ExperienceLevel(experience),
                    days_per_week=days,
                    equipment=EquipmentAccess(equipment),
                    injuries=injuries,
                ),
            )
    except QuestionnaireAborted:
        echo_info("Cancelled")
        return
    except RuleCoachError as e:
        echo_error(str(e))
        ctx.exit(1)

    planner = PlanGenerator(db_path)
    try:
        result = await planner.onboard(profile)
    except SafetyViolationError as e:
        echo_error(str(e))
        if e.validation is not None:
            for warning in e.validation.warnings:
                echo_warning(str(warning))
        ctx.exit(1)
    except RuleCoachError as e:
        echo_error(str(e))
        ctx.exit(1)

    echo_success(f"Onboarded {user_id}")
    print_cycle(result)
