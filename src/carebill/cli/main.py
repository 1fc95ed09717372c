"""Main CLI entry point."""

import logging

import click
from carebill.database.factories import create_sqlite_database

# Import and register all commands at module level
from carebill.cli.commands import (
    agency,
    clinician,
    patient,
    codes,
    period,
    timesheet,
    invoice,
    payroll,
    settings,
)


@click.group()
@click.option(
    "--db-path",
    type=click.Path(),
    help="Path to database file (overrides CAREBILL_DB_PATH environment variable)",
    envvar="CAREBILL_DB_PATH",
)
@click.option("-v", "--verbose", count=True, help="Log progress (-v) or debug detail (-vv)")
@click.pass_context
def cli(ctx, db_path: str | None, verbose: int):
    """Carebill - Home health billing and payroll.

    Match extracted timesheets to agencies, clinicians and patients, then
    generate invoices per agency and payroll per clinician for each
    billing period.
    """
    ctx.ensure_object(dict)

    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    # Initialize database connection only when actually running a command
    # (not when showing help)
    if ctx.invoked_subcommand is not None:
        db = create_sqlite_database(database_path=db_path)
        db.connect()
        db.initialize_schema()
        ctx.obj["db"] = db
        ctx.call_on_close(db.disconnect)


# Register all commands
agency.register_commands(cli)
clinician.register_commands(cli)
patient.register_commands(cli)
codes.register_commands(cli)
period.register_commands(cli)
timesheet.register_commands(cli)
invoice.register_commands(cli)
payroll.register_commands(cli)
settings.register_commands(cli)


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
