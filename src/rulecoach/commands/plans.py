"""Plan inspection commands."""

import click

from ..db import PlanRepository, ProfileRepository, RulePackRepository
from ..rules.safety import safety_constraints
from .base import async_command, echo_error, echo_info, ensure_initialized, format_table


@click.group()
def plan():
    """Inspect a user's active plan and its version history."""
    pass


@plan.command()
@click.argument("user_id")
@click.pass_context
@async_command
async def show(ctx, user_id: str):
    """Show the plans currently active for USER_ID."""
    db_path = ensure_initialized(ctx)
    plans = PlanRepository(db_path)

    pointer = await plans.get_pointer(user_id)
    if pointer is None:
        echo_error(f"No active plan for {user_id}. Run 'rulecoach onboard {user_id}' first.")
        ctx.exit(1)

    nutrition = await plans.get_nutrition(user_id, pointer.nutrition_version)
    training = await plans.get_training(user_id, pointer.training_version)
    profile = await ProfileRepository(db_path).get_latest(user_id)

    click.echo()
    click.echo(click.style(f"Active plan for {user_id}", bold=True))
    click.echo("=" * 60)
    click.echo(f"Week: {pointer.current_week}")
    if pointer.last_checkin_at:
        click.echo(f"Last check-in: {pointer.last_checkin_at:%Y-%m-%d %H:%M}")

    click.echo()
    click.echo("Nutrition:")
    click.echo("-" * 40)
    click.echo(f"  Target: {nutrition.calories_target} kcal/day")
    click.echo(f"  Range: {nutrition.calories_min}-{nutrition.calories_max} kcal")
    macros = nutrition.macros
    click.echo(
        f"  Protein {macros.protein}g ({macros.protein_calories} kcal), "
        f"fat {macros.fat}g ({macros.fat_calories} kcal), "
        f"carbs {macros.carbs}g ({macros.carbs_calories} kcal)"
    )
    click.echo(f"  TDEE {nutrition.tdee} kcal, BMR {nutrition.bmr} kcal")
    click.echo(f"  Expected change: {nutrition.expected_weekly_change:+.2f} kg/week")
    click.echo(f"  Version {nutrition.version}, rule pack {nutrition.rule_pack_version}")

    click.echo()
    click.echo("Training:")
    click.echo("-" * 40)
    click.echo(f"  {training.get_summary()}")
    click.echo(f"  Deload every {training.deload_frequency} weeks")

    rule_pack = await RulePackRepository(db_path).get(nutrition.rule_pack_version)
    if profile is not None and rule_pack is not None:
        limits = safety_constraints(profile.weight, profile.sex, rule_pack)
        click.echo()
        click.echo("Safety limits:")
        click.echo("-" * 40)
        click.echo(f"  Minimum calories: {limits.min_calories} kcal")
        click.echo(f"  Maximum deficit: {limits.max_deficit} kcal")
        click.echo(f"  Maximum surplus: {limits.max_surplus} kcal")
        click.echo(f"  Minimum protein: {limits.min_protein} g")
        click.echo(f"  Maximum weekly loss: {limits.max_weekly_loss} kg")


@plan.command()
@click.argument("user_id")
@click.option("--training", "-t", is_flag=True, help="Show training versions instead")
@click.pass_context
@async_command
async def history(ctx, user_id: str, training: bool):
    """List every plan version created for USER_ID."""
    db_path = ensure_initialized(ctx)
    plans = PlanRepository(db_path)

    if training:
        versions = await plans.list_training(user_id)
        headers = ["Version", "Program", "Week", "Sets", "Volume", "Deload", "From"]
        rows = [
            [
                str(p.version),
                p.program_name,
                str(p.week),
                str(p.effective_sets),
                f"x{p.volume_multiplier:.2f}",
                "yes" if p.is_deload else "",
                p.valid_from.strftime("%Y-%m-%d"),
            ]
            for p in versions
        ]
    else:
        versions = await plans.list_nutrition(user_id)
        headers = ["Version", "Calories", "Range", "P/F/C (g)", "Weekly", "From"]
        rows = [
            [
                str(p.version),
                str(p.calories_target),
                f"{p.calories_min}-{p.calories_max}",
                f"{p.macros.protein}/{p.macros.fat}/{p.macros.carbs}",
                f"{p.expected_weekly_change:+.2f}",
                p.valid_from.strftime("%Y-%m-%d"),
            ]
            for p in versions
        ]

    if not rows:
        echo_info(f"No plans found for {user_id}")
        return

    click.echo()
    click.echo(format_table(headers, rows))
    click.echo()
    click.echo(f"Total: {len(rows)} version(s)")
