"""CLI entry point for rulecoach."""

import logging

import click

from . import __version__
from .commands import checkin, decisions, init, onboard, plan, rulepack
from .commands.base import DATA_DIR_ENV


@click.group()
@click.version_option(version=__version__, prog_name="rulecoach")
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False),
    envvar=DATA_DIR_ENV,
    help="Directory holding rulecoach.db (default: ./data)",
)
@click.option("--verbose", "-v", is_flag=True, help="Log engine decisions")
@click.pass_context
def main(ctx, data_dir: str | None, verbose: bool):
    """rulecoach: deterministic nutrition and training coaching.

    Adjusts calorie and training-volume targets week by week from a fixed,
    versioned rule pack. Every decision is stored as a hash-sealed record.

    Example usage:

        # Initialize the database
        rulecoach init

        # Onboard a user (interactive)
        rulecoach onboard alice

        # Weekly check-in
        rulecoach checkin alice --weight 81.4 --energy 7 --adherence 80-90

        # Review plans and decisions
        rulecoach plan show alice
        rulecoach decisions list alice
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["data_dir"] = data_dir


# Register commands
main.add_command(init)
main.add_command(onboard)
main.add_command(checkin)
main.add_command(plan)
main.add_command(decisions)
main.add_command(rulepack)


def run():
    """Run the CLI."""
    main()


if __name__ == "__main__":
    run()
