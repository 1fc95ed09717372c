"""Patient management commands."""

import click
from carebill.cli.entity_resolution import resolve_agency_or_exit, resolve_patient_or_exit
from carebill.cli.error_handling import handle_domain_error
from carebill.domain.registry import RegistryService


@click.group()
def patient_group():
    """Manage patients."""
    pass


@patient_group.command("create")
@click.argument("name", metavar="PATIENT_NAME")
@click.option("--agency", help="Associated agency name or ID")
@click.option("--record-number", help="Clinical record number (unique)")
@click.option("--address", help="Patient address")
@click.pass_context
def create_patient(ctx, name, agency, record_number, address):
    """Create a new patient.

    Examples:
        carebill patient create "Mary Major" --agency "Acme Home Health" --record-number CR-1001
    """
    db = ctx.obj["db"]
    service = RegistryService(db)

    agency_id = resolve_agency_or_exit(ctx, service, agency).id if agency else None
    try:
        patient_id = service.create_patient(
            name=name, agency_id=agency_id, clinical_record_number=record_number, address=address
        )
        click.echo(f"Created patient '{name}' (ID: {patient_id})")
    except ValueError as e:
        handle_domain_error(ctx, e)


@patient_group.command("list")
@click.option("--all", "include_inactive", is_flag=True, help="Include deactivated patients")
@click.pass_context
def list_patients(ctx, include_inactive: bool):
    """List patients."""
    db = ctx.obj["db"]
    service = RegistryService(db)

    patients = service.list_patients(include_inactive=include_inactive)
    if not patients:
        click.echo("No patients found.")
        return

    agency_names = {a.id: a.name for a in service.list_agencies(include_inactive=True)}
    click.echo("\nPatients:")
    click.echo("-" * 80)
    for patient in patients:
        status = "" if patient.active else " (inactive)"
        click.echo(
            f"ID: {patient.id:3d} | {patient.name:25s} | {agency_names.get(patient.agency_id, '-'):25s} | "
            f"Record #: {patient.clinical_record_number or '-'}{status}"
        )


@patient_group.command("deactivate")
@click.argument("patient", metavar="PATIENT")
@click.pass_context
def deactivate_patient(ctx, patient: str):
    """Deactivate a patient. The record number stays reserved."""
    db = ctx.obj["db"]
    service = RegistryService(db)
    patient_obj = resolve_patient_or_exit(ctx, service, patient)

    try:
        service.deactivate_patient(patient_obj.id)
        click.echo(f"Deactivated patient '{patient_obj.name}'")
    except ValueError as e:
        handle_domain_error(ctx, e)


def register_commands(cli):
    """Register patient commands with main CLI."""
    cli.add_command(patient_group, name="patient")
