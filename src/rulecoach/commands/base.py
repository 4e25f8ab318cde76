"""Shared CLI utilities."""

import asyncio
import os
from functools import wraps
from pathlib import Path

import click

from ..db import get_db_path
from ..db.engine import DATA_DIR
from ..services.planner import CycleResult

DATA_DIR_ENV = "RULECOACH_DATA_DIR"


def async_command(f):
    """Decorator to run async Click commands."""

    @wraps(f)
    def wrapper(*args, **kwargs):
        return asyncio.run(f(*args, **kwargs))

    return wrapper


def get_data_dir(ctx: click.Context) -> Path:
    """Get the data directory chosen on the command line or in the environment."""
    obj = ctx.find_root().obj or {}
    data_dir = obj.get("data_dir") or os.environ.get(DATA_DIR_ENV)
    return Path(data_dir) if data_dir else DATA_DIR


def db_path_for(ctx: click.Context) -> Path:
    return get_db_path(get_data_dir(ctx))


def ensure_initialized(ctx: click.Context) -> Path:
    """Ensure the database is initialized and return its path."""
    db_path = db_path_for(ctx)
    if not db_path.exists():
        click.echo(
            click.style("Error: ", fg="red")
            + "Database not initialized. Run 'rulecoach init' first."
        )
        ctx.exit(1)
    return db_path


def echo_success(message: str) -> None:
    """Print a success message."""
    click.echo(click.style("[OK] ", fg="green") + message)


def echo_error(message: str) -> None:
    """Print an error message."""
    click.echo(click.style("[ERROR] ", fg="red") + message)


def echo_info(message: str) -> None:
    """Print an info message."""
    click.echo(click.style("[INFO] ", fg="blue") + message)


def echo_warning(message: str) -> None:
    """Print a warning message."""
    click.echo(click.style("[WARN] ", fg="yellow") + message)


def format_table(headers: list[str], rows: list[list[str]], padding: int = 2) -> str:
    """Format data as a simple table."""
    if not rows:
        return ""

    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(str(cell)))

    lines = ["".join(h.ljust(widths[i] + padding) for i, h in enumerate(headers))]
    lines.append("".join("-" * w + " " * padding for w in widths))
    for row in rows:
        lines.append("".join(str(cell).ljust(widths[i] + padding) for i, cell in enumerate(row)))

    return "\n".join(line.rstrip() for line in lines)


def print_cycle(result: CycleResult) -> None:
    """Show the plans and explanation produced by a planner cycle."""
    click.echo()
    click.echo(click.style("Nutrition: ", bold=True) + result.nutrition_plan.get_summary())
    click.echo(click.style("Training:  ", bold=True) + result.training_plan.get_summary())
    click.echo(
        f"Modes: nutrition {result.state.nutrition_mode.value}, "
        f"training {result.state.training_mode.value}"
    )

    if result.explanation is not None:
        click.echo()
        click.echo("-" * 60)
        click.echo(result.explanation.render())
        click.echo("-" * 60)

    click.echo()
    click.echo(f"Decision record #{result.record.id} ({result.record.content_hash[:12]})")
