"""Rule pack management commands."""

import json
from pathlib import Path

import click

from ..data.rule_pack_loader import parse_rule_pack
from ..db import RulePackRepository
from ..errors import RuleCoachError
from .base import (
    async_command,
    echo_error,
    echo_info,
    echo_success,
    ensure_initialized,
    format_table,
)


@click.group()
def rulepack():
    """Manage versioned rule packs.

    Exactly one stored version is active. New decisions use the active
    version; existing decision records keep the version they were made
    under.
    """
    pass


@rulepack.command(name="list")
@click.pass_context
@async_command
async def list_packs(ctx):
    """List stored rule pack versions."""
    db_path = ensure_initialized(ctx)
    packs = await RulePackRepository(db_path).list_all()

    if not packs:
        echo_info("No rule packs stored. Run 'rulecoach init' first.")
        return

    headers = ["Version", "Active", "Loaded", "Description"]
    rows = [
        [
            p["version"],
            "*" if p["active"] else "",
            str(p["loaded_at"])[:10],
            p["description"][:50] + "..." if len(p["description"]) > 50 else p["description"],
        ]
        for p in packs
    ]

    click.echo()
    click.echo(format_table(headers, rows))


@rulepack.command()
@click.argument("version", required=False)
@click.pass_context
@async_command
async def show(ctx, version: str | None):
    """Print a rule pack as JSON (the active one by default)."""
    db_path = ensure_initialized(ctx)
    repo = RulePackRepository(db_path)

    pack = await repo.get(version) if version else await repo.get_active()
    if pack is None:
        echo_error(f"Rule pack {version or '(active)'} not found")
        ctx.exit(1)

    click.echo(json.dumps(pack.to_dict(), indent=2))


@rulepack.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--activate", "-a", is_flag=True, help="Make the loaded version active")
@click.pass_context
@async_command
async def load(ctx, path: Path, activate: bool):
    """Validate and store a rule pack JSON file."""
    db_path = ensure_initialized(ctx)
    repo = RulePackRepository(db_path)

    try:
        pack = parse_rule_pack(path.read_text())
        stored = await repo.save(pack)
        if activate:
            await repo.activate(pack.version)
    except RuleCoachError as e:
        echo_error(str(e))
        ctx.exit(1)

    if stored:
        echo_success(f"Stored rule pack {pack.version}")
    else:
        echo_info(f"Rule pack {pack.version} was already stored")
    if activate:
        echo_success(f"Rule pack {pack.version} is now active")


@rulepack.command()
@click.argument("version")
@click.pass_context
@async_command
async def activate(ctx, version: str):
    """Make VERSION the active rule pack."""
    db_path = ensure_initialized(ctx)

    try:
        await RulePackRepository(db_path).activate(version)
    except RuleCoachError as e:
        echo_error(str(e))
        ctx.exit(1)

    echo_success(f"Rule pack {version} is now active")
