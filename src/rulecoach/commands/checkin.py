"""Weekly check-in command."""

from datetime import datetime

import click

from ..errors import RuleCoachError
from ..models.checkin import AdherenceLevel, CheckIn, ContextualEvent
from ..questionnaire import CheckInQuestionnaire, QuestionnaireAborted
from ..services.planner import PlanGenerator
from .base import (
    async_command,
    echo_error,
    echo_info,
    echo_success,
    ensure_initialized,
    print_cycle,
)

RATING = click.IntRange(0, 10)


@click.command()
@click.argument("user_id")
@click.option("--weight", type=float, help="Morning weight in kg")
@click.option("--waist", type=float, help="Waist in cm")
@click.option("--energy", type=RATING, default=5, show_default=True)
@click.option("--hunger", type=RATING, default=5, show_default=True)
@click.option("--sleep", type=RATING, default=5, show_default=True)
@click.option("--stress", type=RATING, default=5, show_default=True)
@click.option(
    "--adherence",
    type=click.Choice([a.value for a in AdherenceLevel]),
    default=AdherenceLevel.HIGH.value,
    show_default=True,
)
@click.option(
    "--event",
    "events",
    type=click.Choice([e.value for e in ContextualEvent]),
    multiple=True,
    help="Contextual event (repeatable)",
)
@click.option("--notes", default="")
@click.option(
    "--date",
    "recorded_at",
    type=click.DateTime(),
    help="When the check-in was taken (defaults to now)",
)
@click.pass_context
@async_command
async def checkin(
    ctx,
    user_id: str,
    weight: float | None,
    waist: float | None,
    energy: int,
    hunger: int,
    sleep: int,
    stress: int,
    adherence: str,
    events: tuple[str, ...],
    notes: str,
    recorded_at: datetime | None,
):
    """Submit a weekly check-in for USER_ID.

    Without --weight an interactive questionnaire collects the check-in.
    The first check-in is recorded as a baseline; every later one runs the
    full decision cycle.
    """
    db_path = ensure_initialized(ctx)

    try:
        if weight is None:
            entry = await CheckInQuestionnaire().collect_checkin(user_id)
        else:
            entry = CheckIn(
                user_id=user_id,
                weight=weight,
                waist=waist,
                energy=energy,
                hunger=hunger,
                sleep=sleep,
                stress=stress,
                adherence=AdherenceLevel(adherence),
                events=tuple(ContextualEvent(e) for e in events) or (ContextualEvent.NO_EVENTS,),
                notes=notes,
                recorded_at=recorded_at or datetime.now(),
            )
        result = await PlanGenerator(db_path).submit_checkin(entry)
    except QuestionnaireAborted:
        echo_info("Cancelled")
        return
    except RuleCoachError as e:
        echo_error(str(e))
        ctx.exit(1)

    if result.is_baseline:
        echo_success(f"Baseline check-in recorded for {user_id}")
    elif result.plan_changed:
        echo_success(f"Check-in processed for {user_id}: plan updated")
    else:
        echo_success(f"Check-in processed for {user_id}: no plan change")
    print_cycle(result)
