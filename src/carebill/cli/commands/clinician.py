"""Clinician management commands."""

import click
from carebill.cli.entity_resolution import resolve_agency_or_exit, resolve_clinician_or_exit
from carebill.cli.error_handling import handle_domain_error, parse_amount_or_exit
from carebill.domain.registry import RegistryService


@click.group()
def clinician_group():
    """Manage clinicians."""
    pass


@clinician_group.command("create")
@click.argument("name", metavar="CLINICIAN_NAME")
@click.option("--title", help="Credential, e.g. PTA or OT")
@click.option("--pay-rate", default="0", help="Pay rate in dollars per hour")
@click.option("--agency", "agencies", multiple=True, help="Associated agency name or ID, repeatable")
@click.option("--email", help="Email address")
@click.pass_context
def create_clinician(ctx, name, title, pay_rate, agencies, email):
    """Create a new clinician.

    Examples:
        carebill clinician create "Jane Doe" --title PTA --pay-rate 40
        carebill clinician create "John Roe" --title OT --agency "Acme Home Health"
    """
    db = ctx.obj["db"]
    service = RegistryService(db)

    rate = parse_amount_or_exit(ctx, pay_rate, "pay rate")
    agency_ids = [resolve_agency_or_exit(ctx, service, a).id for a in agencies]
    try:
        clinician_id = service.create_clinician(
            name=name, title=title, pay_rate=rate, agency_ids=agency_ids, email=email
        )
        click.echo(f"Created clinician '{name}' (ID: {clinician_id})")
    except ValueError as e:
        handle_domain_error(ctx, e)


@clinician_group.command("list")
@click.option("--all", "include_inactive", is_flag=True, help="Include deactivated clinicians")
@click.pass_context
def list_clinicians(ctx, include_inactive: bool):
    """List clinicians."""
    db = ctx.obj["db"]
    service = RegistryService(db)

    clinicians = service.list_clinicians(include_inactive=include_inactive)
    if not clinicians:
        click.echo("No clinicians found.")
        return

    click.echo("\nClinicians:")
    click.echo("-" * 70)
    for clinician in clinicians:
        status = "" if clinician.active else " (inactive)"
        click.echo(
            f"ID: {clinician.id:3d} | {clinician.name:25s} | {clinician.title or '':6s} | "
            f"${clinician.pay_rate:,.2f}/hr{status}"
        )


@clinician_group.command("update")
@click.argument("clinician", metavar="CLINICIAN")
@click.option("--name", help="New name")
@click.option("--title", help="New title")
@click.option("--pay-rate", help="New pay rate in dollars per hour")
@click.option("--agency", "agencies", multiple=True, help="Replace associated agencies, repeatable")
@click.option("--email", help="Email address")
@click.option("--activate", is_flag=True, help="Reactivate a deactivated clinician")
@click.pass_context
def update_clinician(ctx, clinician, name, title, pay_rate, agencies, email, activate):
    """Update a clinician.

    CLINICIAN can be a clinician name or ID.
    """
    db = ctx.obj["db"]
    service = RegistryService(db)
    clinician_obj = resolve_clinician_or_exit(ctx, service, clinician)

    fields = {"name": name, "title": title, "email": email}
    if pay_rate is not None:
        fields["pay_rate"] = parse_amount_or_exit(ctx, pay_rate, "pay rate")
    if agencies:
        fields["agency_ids"] = [resolve_agency_or_exit(ctx, service, a).id for a in agencies]
    if activate:
        fields["active"] = True

    try:
        service.update_clinician(clinician_obj.id, **fields)
        click.echo(f"Updated clinician '{name or clinician_obj.name}'")
    except ValueError as e:
        handle_domain_error(ctx, e)


@clinician_group.command("deactivate")
@click.argument("clinician", metavar="CLINICIAN")
@click.pass_context
def deactivate_clinician(ctx, clinician: str):
    """Deactivate a clinician."""
    db = ctx.obj["db"]
    service = RegistryService(db)
    clinician_obj = resolve_clinician_or_exit(ctx, service, clinician)

    try:
        service.deactivate_clinician(clinician_obj.id)
        click.echo(f"Deactivated clinician '{clinician_obj.name}'")
    except ValueError as e:
        handle_domain_error(ctx, e)


def register_commands(cli):
    """Register clinician commands with main CLI."""
    cli.add_command(clinician_group, name="clinician")
