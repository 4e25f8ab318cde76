"""Decision record audit commands."""

import json

import click

from ..db import DecisionRecordRepository
from ..services.explainer import TemplateExplainer
from .base import (
    async_command,
    echo_error,
    echo_info,
    echo_success,
    echo_warning,
    ensure_initialized,
    format_table,
)


@click.group()
def decisions():
    """Audit the decision records behind every plan change."""
    pass


@decisions.command(name="list")
@click.argument("user_id")
@click.option("--limit", "-n", type=int, default=20, show_default=True)
@click.pass_context
@async_command
async def list_decisions(ctx, user_id: str, limit: int):
    """List recent decision records for USER_ID, newest first."""
    db_path = ensure_initialized(ctx)
    records = await DecisionRecordRepository(db_path).list_for_user(user_id, limit=limit)

    if not records:
        echo_info(f"No decisions recorded for {user_id}")
        return

    headers = ["ID", "When", "Trigger", "Rules", "Calories", "Plans", "Guardrails"]
    rows = []
    for record in records:
        action = record.calorie_action
        if action is None:
            calories = ""
        elif action.applied:
            calories = f"{action.new_calories} ({action.delta:+d})"
        else:
            calories = f"{action.previous_calories} (blocked)"
        rules = ", ".join(record.rules_fired)
        rows.append([
            str(record.id),
            record.created_at.strftime("%Y-%m-%d"),
            record.trigger_type.value,
            rules[:40] + "..." if len(rules) > 40 else rules,
            calories,
            f"n{record.nutrition_version}/t{record.training_version}",
            str(len(record.guardrails)),
        ])

    click.echo()
    click.echo(format_table(headers, rows))
    click.echo()
    click.echo(f"Total: {len(records)} record(s)")


@decisions.command()
@click.argument("record_id", type=int)
@click.option("--json", "as_json", is_flag=True, help="Print the full record as JSON")
@click.pass_context
@async_command
async def show(ctx, record_id: int, as_json: bool):
    """Show one decision record with its explanation."""
    db_path = ensure_initialized(ctx)
    record = await DecisionRecordRepository(db_path).get(record_id)
    if record is None:
        echo_error(f"Decision record {record_id} not found")
        ctx.exit(1)

    if as_json:
        click.echo(json.dumps(record.to_dict(), indent=2, sort_keys=True))
        return

    click.echo()
    click.echo("=" * 60)
    click.echo(f"Decision #{record.id} for {record.user_id} ({record.trigger_type.value})")
    click.echo("=" * 60)
    click.echo(f"Created: {record.created_at}")
    click.echo(f"Engine {record.engine_version}, rule pack {record.rule_pack_version}")
    click.echo(f"Rules fired: {', '.join(record.rules_fired)}")

    if record.state_before is not None:
        click.echo(
            f"Nutrition mode: {record.state_before.nutrition_mode.value} -> "
            f"{record.state_after.nutrition_mode.value}"
        )
        click.echo(
            f"Training mode: {record.state_before.training_mode.value} -> "
            f"{record.state_after.training_mode.value}"
        )

    signals = record.derived_signals
    if signals is not None:
        click.echo()
        click.echo("Signals:")
        click.echo("-" * 40)
        trend = signals.weight_trend
        click.echo(
            f"  Weight trend: {trend.direction.value} "
            f"({trend.total_change:+.2f} kg, {trend.rate_per_week:+.2f} kg/week)"
        )
        click.echo(f"  Confidence: {signals.confidence.score:.2f}")
        risk = signals.recovery_risk
        click.echo(f"  Recovery risk: {risk.level.value} ({risk.score:.1f}, {risk.action})")
        if signals.plateau:
            click.echo("  Plateau detected")
        if signals.recomposition:
            click.echo("  Recomposition detected")

    if record.guardrails:
        click.echo()
        click.echo("Guardrails:")
        click.echo("-" * 40)
        for event in record.guardrails:
            click.echo(f"  [{event.severity.value}] {event.name}: {event.message}")

    click.echo()
    click.echo(TemplateExplainer().explain(record).render())


@decisions.command()
@click.argument("user_id")
@click.pass_context
@async_command
async def verify(ctx, user_id: str):
    """Recompute the content hash of every record for USER_ID."""
    db_path = ensure_initialized(ctx)
    records = await DecisionRecordRepository(db_path).list_for_user(user_id)

    if not records:
        echo_info(f"No decisions recorded for {user_id}")
        return

    tampered = [r for r in records if not r.verify()]
    for record in tampered:
        echo_warning(f"Record {record.id} does not match its content hash")

    if tampered:
        echo_error(f"{len(tampered)} of {len(records)} record(s) failed verification")
        ctx.exit(1)
    echo_success(f"All {len(records)} record(s) verified")
