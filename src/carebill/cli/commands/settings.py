"""Settings and scheduled cycle check commands."""

import click
from carebill.cli.error_handling import handle_domain_error
from carebill.domain.billing import BillingService
from carebill.domain.settings import SettingsService, DEFAULTS


@click.group()
def settings_group():
    """View and change settings."""
    pass


@settings_group.command("show")
@click.pass_context
def show_settings(ctx):
    """Show all settings with their effective values."""
    db = ctx.obj["db"]
    service = SettingsService(db)

    for key, value in sorted(service.get_all().items()):
        click.echo(f"{key:38s} {value}")


@settings_group.command("set")
@click.argument("key", type=click.Choice(sorted(DEFAULTS)))
@click.argument("value")
@click.pass_context
def set_setting(ctx, key: str, value: str):
    """Change a setting.

    Examples:
        carebill settings set default_billing_rate 80
        carebill settings set billing_cycle_start 2024-12-22
        carebill settings set auto_generate_invoices true
    """
    db = ctx.obj["db"]
    service = SettingsService(db)

    try:
        service.set(key, value)
        click.echo(f"Set {key} = {service.get(key)}")
    except ValueError as e:
        handle_domain_error(ctx, e)


@click.command("cycle-check")
@click.pass_context
def cycle_check(ctx):
    """Run the daily billing cycle check.

    Invoices ended periods when auto generation is on, then marks overdue
    invoices. Meant to be run once a day from cron.
    """
    db = ctx.obj["db"]
    service = BillingService(db)

    result = service.run_cycle_check()
    for label, run in result.generated.items():
        if run.created:
            click.echo(f"{label}: created {run.created} invoice(s)")
        else:
            click.echo(f"{label}: {run.reason}")
    for label in result.closed_without_invoices:
        click.echo(f"{label}: closed without invoices")
    click.echo(f"Marked {result.overdue_marked} invoice(s) overdue")


def register_commands(cli):
    """Register settings commands with main CLI."""
    cli.add_command(settings_group, name="settings")
    cli.add_command(cycle_check)
