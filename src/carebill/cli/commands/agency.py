"""Agency management commands."""

import click
from carebill.cli.entity_resolution import resolve_agency_or_exit
from carebill.cli.error_handling import handle_domain_error, parse_amount_or_exit
from carebill.domain.registry import RegistryService


@click.group()
def agency_group():
    """Manage agencies and their rate cards."""
    pass


@agency_group.command("create")
@click.argument("name", metavar="AGENCY_NAME")
@click.option("--default-rate", help="Flat rate per visit when the rate card has no entry")
@click.option("--terms", type=int, default=30, show_default=True, help="Payment terms in days (0 = due on receipt)")
@click.option("--rate", "rates", multiple=True, metavar="CODE=AMOUNT", help="Rate card entry, repeatable")
@click.option("--contact-name", help="Billing contact name")
@click.option("--contact-email", help="Billing contact email")
@click.pass_context
def create_agency(ctx, name, default_rate, terms, rates, contact_name, contact_email):
    """Create a new agency.

    Examples:
        carebill agency create "Acme Home Health" --rate P=85 --rate WC=110
        carebill agency create "Sunshine Home Health" --default-rate 90 --terms 15
    """
    db = ctx.obj["db"]
    service = RegistryService(db)

    rate_card = {}
    for entry in rates:
        code, sep, amount = entry.partition("=")
        if not sep or not code.strip():
            click.echo(f"Error: Invalid rate '{entry}', expected CODE=AMOUNT", err=True)
            ctx.exit(1)
        rate_card[code.strip()] = parse_amount_or_exit(ctx, amount, f"rate for '{code.strip()}'")

    rate = parse_amount_or_exit(ctx, default_rate, "default rate") if default_rate is not None else None
    try:
        agency_id = service.create_agency(
            name=name,
            default_rate=rate,
            payment_terms_days=terms,
            rates=rate_card,
            contact_name=contact_name,
            contact_email=contact_email,
        )
        click.echo(f"Created agency '{name}' (ID: {agency_id})")
    except ValueError as e:
        handle_domain_error(ctx, e)


@agency_group.command("list")
@click.option("--all", "include_inactive", is_flag=True, help="Include deactivated agencies")
@click.pass_context
def list_agencies(ctx, include_inactive: bool):
    """List agencies with their rate cards."""
    db = ctx.obj["db"]
    service = RegistryService(db)

    agencies = service.list_agencies(include_inactive=include_inactive)
    if not agencies:
        click.echo("No agencies found.")
        return

    click.echo("\nAgencies:")
    click.echo("-" * 80)
    for agency in agencies:
        default = f"${agency.default_rate:,.2f}" if agency.default_rate else "system"
        status = "" if agency.active else " (inactive)"
        click.echo(f"ID: {agency.id:3d} | {agency.name:30s} | Default: {default:>9s} | Net {agency.payment_terms_days}{status}")
        if agency.rates:
            card = ", ".join(f"{code}=${rate:,.2f}" for code, rate in agency.rates.items())
            click.echo(f"       Rates: {card}")


@agency_group.command("rate")
@click.argument("agency", metavar="AGENCY")
@click.argument("code", metavar="CODE")
@click.argument("amount", metavar="AMOUNT", required=False)
@click.option("--remove", is_flag=True, help="Remove the rate card entry instead")
@click.pass_context
def set_rate(ctx, agency: str, code: str, amount: str | None, remove: bool):
    """Set or remove a rate card entry.

    AGENCY can be an agency name or ID.

    Examples:
        carebill agency rate "Acme Home Health" EVAL 150
        carebill agency rate 1 WC --remove
    """
    db = ctx.obj["db"]
    service = RegistryService(db)
    agency_obj = resolve_agency_or_exit(ctx, service, agency)

    try:
        if remove:
            service.remove_agency_rate(agency_obj.id, code)
            click.echo(f"Removed rate for '{code}' from '{agency_obj.name}'")
            return
        if amount is None:
            click.echo("Error: AMOUNT is required unless --remove is given", err=True)
            ctx.exit(1)
        rate = parse_amount_or_exit(ctx, amount, "rate")
        service.set_agency_rate(agency_obj.id, code, rate)
        click.echo(f"Set '{agency_obj.name}' rate for '{code}' to ${rate:,.2f}")
    except ValueError as e:
        handle_domain_error(ctx, e)


@agency_group.command("update")
@click.argument("agency", metavar="AGENCY")
@click.option("--name", help="New agency name")
@click.option("--default-rate", help="New default rate ('none' to clear)")
@click.option("--terms", type=int, help="Payment terms in days")
@click.option("--contact-name", help="Billing contact name")
@click.option("--contact-email", help="Billing contact email")
@click.option("--activate", is_flag=True, help="Reactivate a deactivated agency")
@click.pass_context
def update_agency(ctx, agency, name, default_rate, terms, contact_name, contact_email, activate):
    """Update an agency.

    AGENCY can be an agency name or ID.
    """
    db = ctx.obj["db"]
    service = RegistryService(db)
    agency_obj = resolve_agency_or_exit(ctx, service, agency)

    fields = {
        "name": name,
        "payment_terms_days": terms,
        "contact_name": contact_name,
        "contact_email": contact_email,
    }
    if default_rate is not None:
        fields["default_rate"] = (
            None if default_rate.strip().lower() == "none" else parse_amount_or_exit(ctx, default_rate, "default rate")
        )
    if activate:
        fields["active"] = True

    try:
        service.update_agency(agency_obj.id, **fields)
        click.echo(f"Updated agency '{name or agency_obj.name}'")
    except ValueError as e:
        handle_domain_error(ctx, e)


@agency_group.command("deactivate")
@click.argument("agency", metavar="AGENCY")
@click.pass_context
def deactivate_agency(ctx, agency: str):
    """Deactivate an agency. Agencies are never deleted.

    Deactivated agencies are skipped by fuzzy name matching.
    """
    db = ctx.obj["db"]
    service = RegistryService(db)
    agency_obj = resolve_agency_or_exit(ctx, service, agency)

    try:
        service.deactivate_agency(agency_obj.id)
        click.echo(f"Deactivated agency '{agency_obj.name}'")
    except ValueError as e:
        handle_domain_error(ctx, e)


def register_commands(cli):
    """Register agency commands with main CLI."""
    cli.add_command(agency_group, name="agency")
