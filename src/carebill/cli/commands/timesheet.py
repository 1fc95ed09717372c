"""Timesheet import and review commands."""

import json
from pathlib import Path

import click
from carebill.cli.entity_resolution import (
    resolve_agency_or_exit,
    resolve_clinician_or_exit,
    resolve_patient_or_exit,
)
from carebill.cli.error_handling import handle_domain_error, parse_date_or_exit
from carebill.domain.entities import TIMESHEET_STATUSES
from carebill.domain.registry import RegistryService
from carebill.domain.timesheet import REVIEW_STATUSES, TimesheetService
from carebill.utils.cache import TTLCache


@click.group()
def timesheet_group():
    """Import and review extracted timesheets."""
    pass


@timesheet_group.command("import")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--period", "period_id", type=int, help="Open billing period ID (defaults to the current period)")
@click.pass_context
def import_timesheets(ctx, file: str, period_id: int | None):
    """Import extracted timesheets from a JSON file.

    FILE holds one extracted timesheet object or a list of them, with keys
    such as company, employee_name, patient_name and visits.

    Examples:
        carebill timesheet import extracted.json
        carebill timesheet import batch.json --period 3
    """
    db = ctx.obj["db"]
    service = TimesheetService(db)

    path = Path(file)
    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        click.echo(f"Error: {path.name} is not valid JSON: {e}", err=True)
        ctx.exit(1)
    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        click.echo("Error: Expected a timesheet object or a list of them", err=True)
        ctx.exit(1)

    try:
        result = service.import_batch(data, period_id=period_id, source_filename=path.name)
    except ValueError as e:
        handle_domain_error(ctx, e)
        return

    click.echo(f"Imported {result.imported} timesheet(s)")
    if result.failed:
        click.echo(f"Failed: {result.failed}")
        for error in result.errors:
            click.echo(f"  - {error}")

    flagged = [t for t in (service.get_timesheet(i) for i in result.timesheet_ids) if t and t.status == "flagged"]
    for timesheet in flagged:
        click.echo(f"Flagged timesheet {timesheet.id}: {timesheet.flag_reason}")


@timesheet_group.command("list")
@click.option("--status", type=click.Choice(TIMESHEET_STATUSES), help="Filter by status")
@click.option("--period", "period_id", type=int, help="Filter by billing period ID")
@click.option("--agency", help="Filter by agency name or ID")
@click.option("--start-date", help="Periods overlapping from this date")
@click.option("--end-date", help="Periods overlapping up to this date")
@click.pass_context
def list_timesheets(ctx, status, period_id, agency, start_date, end_date):
    """List timesheets."""
    db = ctx.obj["db"]
    service = TimesheetService(db)
    registry = RegistryService(db)

    agency_id = resolve_agency_or_exit(ctx, registry, agency).id if agency else None
    start = parse_date_or_exit(ctx, start_date, "start date")
    end = parse_date_or_exit(ctx, end_date, "end date")

    timesheets = service.list_timesheets(
        status=status, period_id=period_id, agency_id=agency_id, start_date=start, end_date=end
    )
    if not timesheets:
        click.echo("No timesheets found.")
        return

    click.echo("\nTimesheets:")
    click.echo("-" * 90)
    for timesheet in timesheets:
        minutes = sum(v.duration_minutes for v in timesheet.visits)
        click.echo(
            f"ID: {timesheet.id:4d} | {timesheet.status:9s} | {(timesheet.employee_name or '-'):20s} | "
            f"{(timesheet.patient_name or '-'):20s} | {len(timesheet.visits)} visit(s), {minutes} min"
        )
        if timesheet.flag_reason:
            click.echo(f"        {timesheet.flag_reason}")


@timesheet_group.command("review")
@click.argument("timesheet_id", type=int)
@click.option("--status", type=click.Choice(REVIEW_STATUSES), default="reviewed", show_default=True)
@click.option("--agency", help="Reassign to agency name or ID")
@click.option("--clinician", help="Reassign to clinician name or ID")
@click.option("--patient", help="Reassign to patient name or ID")
@click.option("--reason", help="Flag reason")
@click.pass_context
def review_timesheet(ctx, timesheet_id, status, agency, clinician, patient, reason):
    """Correct or approve a timesheet before invoicing.

    Examples:
        carebill timesheet review 12
        carebill timesheet review 12 --agency "Acme Home Health"
        carebill timesheet review 13 --status flagged --reason "Illegible signature"
    """
    db = ctx.obj["db"]
    service = TimesheetService(db)
    registry = service.registry

    agency_id = resolve_agency_or_exit(ctx, registry, agency).id if agency else None
    clinician_id = resolve_clinician_or_exit(ctx, registry, clinician).id if clinician else None
    patient_id = resolve_patient_or_exit(ctx, registry, patient).id if patient else None

    try:
        timesheet = service.review(
            timesheet_id,
            status=status,
            agency_id=agency_id,
            clinician_id=clinician_id,
            patient_id=patient_id,
            flag_reason=reason,
        )
        click.echo(f"Timesheet {timesheet.id} is now {timesheet.status}")
    except ValueError as e:
        handle_domain_error(ctx, e)


@timesheet_group.command("delete")
@click.argument("timesheet_id", type=int)
@click.pass_context
def delete_timesheet(ctx, timesheet_id: int):
    """Delete a timesheet that is not on an invoice."""
    db = ctx.obj["db"]
    service = TimesheetService(db)

    try:
        service.delete_timesheet(timesheet_id)
        click.echo(f"Deleted timesheet {timesheet_id}")
    except ValueError as e:
        handle_domain_error(ctx, e)


@timesheet_group.command("filters")
@click.pass_context
def filter_options(ctx):
    """Show the clinician names and visit codes seen on timesheets."""
    db = ctx.obj["db"]
    service = TimesheetService(db)

    options = service.filter_options(TTLCache())
    click.echo("Clinicians: " + (", ".join(options.clinicians) or "-"))
    click.echo("Visit codes: " + (", ".join(options.care_types) or "-"))


def register_commands(cli):
    """Register timesheet commands with main CLI."""
    cli.add_command(timesheet_group, name="timesheet")
