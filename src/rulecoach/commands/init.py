"""Initialize project command."""

import click

from ..db import get_db_path, init_db, seed_rule_pack
from .base import async_command, echo_info, echo_success, get_data_dir


@click.command()
@click.pass_context
@async_command
async def init(ctx):
    """Initialize the rulecoach database.

    This creates the data directory, the SQLite schema and stores the
    bundled rule pack as the active one.
    """
    data_dir = get_data_dir(ctx)
    db_path = get_db_path(data_dir)

    echo_info(f"Initializing rulecoach in {data_dir}")

    await init_db(db_path)
    echo_success("Database initialized")

    version = await seed_rule_pack(db_path)
    echo_success(f"Bundled rule pack {version} stored")

    click.echo()
    click.echo("rulecoach is ready to use!")
    click.echo()
    click.echo("Next steps:")
    click.echo("  1. Onboard a user:")
    click.echo("     rulecoach onboard alice")
    click.echo()
    click.echo("  2. Check in once a week:")
    click.echo("     rulecoach checkin alice")
    click.echo()
    click.echo("  3. Review the plan and the decisions behind it:")
    click.echo("     rulecoach plan show alice")
    click.echo("     rulecoach decisions list alice")
