"""Billing period commands."""

import click
from carebill.cli.error_handling import handle_domain_error, parse_date_or_exit
from carebill.domain.periods import PeriodService
from carebill.domain.settings import SettingsService


def _print_period(period) -> None:
    click.echo(
        f"ID: {period.id:3d} | {period.label:28s} | {period.start_date} to {period.end_date} | {period.status}"
    )


@click.group()
def period_group():
    """Manage billing periods."""
    pass


@period_group.command("current")
@click.pass_context
def current_period(ctx):
    """Show the open billing period, opening one from the cycle settings if needed."""
    db = ctx.obj["db"]
    service = PeriodService(db, SettingsService(db))

    try:
        period = service.get_current_period()
    except ValueError as e:
        handle_domain_error(ctx, e)
        return
    _print_period(period)


@period_group.command("list")
@click.option("--limit", type=int, default=20, show_default=True, help="Number of periods to show")
@click.pass_context
def list_periods(ctx, limit: int):
    """List billing periods, most recent first."""
    db = ctx.obj["db"]
    service = PeriodService(db)

    periods = service.list_periods(limit=limit)
    if not periods:
        click.echo("No billing periods found.")
        return

    click.echo("\nBilling periods:")
    click.echo("-" * 80)
    for period in periods:
        _print_period(period)


@period_group.command("create")
@click.option("--start-date", required=True, help="First day of the period")
@click.option("--end-date", required=True, help="Last day of the period")
@click.option("--label", help="Display label (derived from the dates if omitted)")
@click.option("--status", type=click.Choice(["open", "closed"]), default="open", show_default=True)
@click.pass_context
def create_period(ctx, start_date, end_date, label, status):
    """Create a billing period by hand.

    Examples:
        carebill period create --start-date 2025-02-01 --end-date 2025-02-14
    """
    db = ctx.obj["db"]
    service = PeriodService(db)
    start = parse_date_or_exit(ctx, start_date, "start date")
    end = parse_date_or_exit(ctx, end_date, "end date")

    try:
        period_id = service.create_period(start, end, label=label, status=status)
        period = service.get_period(period_id)
        click.echo(f"Created billing period '{period.label}' (ID: {period_id})")
    except ValueError as e:
        handle_domain_error(ctx, e)


@period_group.command("close")
@click.argument("period_id", type=int)
@click.option("--status", type=click.Choice(["closed", "invoiced"]), default="closed", show_default=True)
@click.option(
    "--open-next/--no-open-next",
    default=None,
    help="Open the following period (defaults to the auto_generate_invoices setting)",
)
@click.pass_context
def close_period(ctx, period_id: int, status: str, open_next):
    """Close an open billing period."""
    db = ctx.obj["db"]
    service = PeriodService(db)

    try:
        next_period = service.close_period(period_id, status=status, open_next=open_next)
    except ValueError as e:
        handle_domain_error(ctx, e)
        return
    click.echo(f"Closed billing period {period_id} as {status}")
    if next_period is not None:
        click.echo(f"Opened billing period '{next_period.label}' (ID: {next_period.id})")


@period_group.command("delete")
@click.argument("period_id", type=int)
@click.pass_context
def delete_period(ctx, period_id: int):
    """Delete a billing period that has no invoices."""
    db = ctx.obj["db"]
    service = PeriodService(db)

    try:
        service.delete_period(period_id)
        click.echo(f"Deleted billing period {period_id}")
    except ValueError as e:
        handle_domain_error(ctx, e)


@period_group.command("resolve")
@click.argument("target_date", metavar="DATE")
@click.pass_context
def resolve_period(ctx, target_date: str):
    """Show the cycle window containing a date.

    DATE accepts relative forms such as 'today' or 'last month'.
    """
    db = ctx.obj["db"]
    service = PeriodService(db)
    target = parse_date_or_exit(ctx, target_date)

    window = service.resolve_window(target)
    click.echo(f"{window.label}: {window.start_date} to {window.end_date}")


def register_commands(cli):
    """Register period commands with main CLI."""
    cli.add_command(period_group, name="period")
