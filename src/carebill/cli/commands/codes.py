"""Billing code catalogue commands."""

import click
from carebill.domain.registry import RegistryService


@click.command("init-codes")
@click.pass_context
def init_codes(ctx):
    """Initialize database with the default billing codes."""
    db = ctx.obj["db"]
    service = RegistryService(db)

    created = service.init_billing_codes()
    if created == 0:
        click.echo("Billing codes already exist.")
    else:
        click.echo(f"Successfully created {created} billing codes.")


@click.command("codes")
@click.pass_context
def list_codes(ctx):
    """List billing codes."""
    db = ctx.obj["db"]
    service = RegistryService(db)

    codes = service.list_billing_codes()
    if not codes:
        click.echo("No billing codes found. Run 'carebill init-codes' first.")
        return

    click.echo("\nBilling codes:")
    click.echo("-" * 60)
    for code in codes:
        click.echo(f"{code.code:8s} | {code.description:30s} | ${code.default_rate:,.2f}")


def register_commands(cli):
    """Register billing code commands with main CLI."""
    cli.add_command(init_codes)
    cli.add_command(list_codes)
