"""Main CLI entry point."""

from dataclasses import replace

import click
from cambio.config import SettingsError, load_settings
from cambio.database.factories import create_sqlite_database
from cambio.logging_config import setup_logging

# Import and register all commands at module level
from cambio.cli.commands import (
    asset,
    client,
    init_house,
    passthrough,
    reconcile,
    transaction,
)

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


@click.group()
@click.option(
    "--db-path",
    type=click.Path(),
    help="Path to database file (overrides CAMBIO_DB_PATH environment variable)",
    envvar="CAMBIO_DB_PATH",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    help="Log level (overrides CAMBIO_LOG_LEVEL environment variable)",
)
@click.pass_context
def cli(ctx, db_path: str | None, log_level: str | None):
    """Cambio - Transaction and balance ledger for a currency-exchange house.

    Record client transactions across currencies and instruments, settle them
    in parts over time, and keep every client's balance with the house in step.
    """
    ctx.ensure_object(dict)

    # Initialize database connection only when actually running a command
    # (not when showing help)
    if ctx.invoked_subcommand is not None:
        try:
            settings = load_settings()
        except SettingsError as e:
            click.echo(f"Error: {e}", err=True)
            ctx.exit(1)
        settings = replace(
            settings,
            database_path=db_path or settings.database_path,
            log_level=(log_level or settings.log_level).upper(),
        )
        setup_logging(settings.log_level)

        db = create_sqlite_database(settings=settings)
        db.connect()
        db.initialize_schema()
        ctx.obj["db"] = db
        ctx.obj["settings"] = settings
        ctx.call_on_close(db.disconnect)


# Register all commands
client.register_commands(cli)
asset.register_commands(cli)
init_house.register_commands(cli)
transaction.register_commands(cli)
reconcile.register_commands(cli)
passthrough.register_commands(cli)


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
