"""Main CLI entry point."""

import logging

import click
from ledgerlink.database.factories import create_sqlite_database

# Import and register all commands at module level
from ledgerlink.cli.commands import (
    account,
    bank,
    import_cmd,
    reclassify,
    transaction,
)

_LOG_LEVELS = {0: logging.WARNING, 1: logging.INFO}


@click.group()
@click.option(
    "--db-path",
    type=click.Path(),
    help="Path to database file (overrides LEDGERLINK_DB_PATH environment variable)",
    envvar="LEDGERLINK_DB_PATH",
)
@click.option("--verbose", "-v", count=True, help="Log more (-v for INFO, -vv for DEBUG)")
@click.pass_context
def cli(ctx, db_path: str | None, verbose: int):
    """Ledgerlink - Bank statement import and reconciliation.

    Import OFX/QFX, CSV and XLSX statements into your banks and accounts,
    skip what is already recorded, and tell internal transfers from
    external payments.
    """
    ctx.ensure_object(dict)
    logging.basicConfig(
        level=_LOG_LEVELS.get(verbose, logging.DEBUG),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Initialize database connection only when actually running a command
    # (not when showing help)
    if ctx.invoked_subcommand is not None:
        db = create_sqlite_database(database_path=db_path)
        db.connect()
        db.initialize_schema()
        ctx.obj["db"] = db
        ctx.call_on_close(db.disconnect)


# Register all commands
bank.register_commands(cli)
account.register_commands(cli)
import_cmd.register_commands(cli)
transaction.register_commands(cli)
reclassify.register_commands(cli)


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
