"""Payroll commands."""

import click
from carebill.cli.date_filters import resolve_cli_date_range
from carebill.cli.error_handling import handle_domain_error, parse_amount_or_exit, parse_date_or_exit
from carebill.domain.billing import BillingService
from carebill.domain.entities import ADJUSTMENT_TYPES, PAYMENT_METHODS, PAYMENT_STATUSES
from carebill.domain.payroll import PayrollService


@click.group()
def payroll_group():
    """Compute and pay clinician payroll."""
    pass


@payroll_group.command("summary")
@click.option("--period", "period_id", type=int, help="Billing period ID")
@click.option("--start-date", help="Periods overlapping from this date")
@click.option("--end-date", help="Periods overlapping up to this date")
@click.option("--this-month", is_flag=True, help="Periods overlapping the current month")
@click.option("--last-month", is_flag=True, help="Periods overlapping the previous month")
@click.pass_context
def payroll_summary(ctx, period_id, start_date, end_date, this_month, last_month):
    """Show hours and earnings per clinician.

    Examples:
        carebill payroll summary --period 3
        carebill payroll summary --last-month
    """
    db = ctx.obj["db"]
    service = BillingService(db)
    start, end = resolve_cli_date_range(
        ctx,
        start_date=start_date,
        end_date=end_date,
        period_flags={"this-month": this_month, "last-month": last_month},
    )

    report = service.compute_payroll(period_id=period_id, start_date=start, end_date=end)
    if not report.rows:
        click.echo("No billable timesheets found.")
        return

    click.echo("\nPayroll:")
    click.echo("-" * 90)
    for row in report.rows:
        status = f" [{row.payment_status}]" if row.payment_status else ""
        click.echo(
            f"{row.name:25s} | {row.title:6s} | {row.total_visits:3d} visit(s) | {row.total_hours:>6} h | "
            f"${row.pay_rate:,.2f}/hr | ${row.final_amount:>9,.2f}{status}"
        )
    click.echo("-" * 90)
    click.echo(f"{report.clinician_count} clinician(s), {report.total_hours} h, total ${report.total_payroll:,.2f}")


@payroll_group.command("generate")
@click.option("--period", "period_id", type=int, required=True, help="Billing period ID")
@click.pass_context
def generate_payments(ctx, period_id: int):
    """Create pending payments for clinicians who have none for the period."""
    db = ctx.obj["db"]
    service = BillingService(db)

    result = service.generate_payroll_payments(period_id=period_id)
    click.echo(f"Created {result.created} payment(s), skipped {result.skipped} existing")
    for name in sorted(result.failures):
        click.echo(f"Warning: payment for {name} not created", err=True)


@payroll_group.command("list")
@click.option("--status", type=click.Choice(PAYMENT_STATUSES), help="Filter by status")
@click.option("--period", "period_id", type=int, help="Filter by billing period ID")
@click.pass_context
def list_payments(ctx, status, period_id):
    """List payroll payments."""
    db = ctx.obj["db"]
    service = PayrollService(db)

    payments = service.list_payments(status=status, period_id=period_id)
    if not payments:
        click.echo("No payroll payments found.")
        return

    click.echo("\nPayroll payments:")
    click.echo("-" * 80)
    for payment in payments:
        click.echo(
            f"ID: {payment.id:3d} | {payment.clinician_name:25s} | {payment.period_label:26s} | "
            f"{payment.status:7s} | ${payment.total_amount:>9,.2f}"
        )
        for adj in payment.adjustments:
            click.echo(f"        {adj.type}: ${adj.amount:,.2f} {adj.reason}".rstrip())


@payroll_group.command("adjust")
@click.argument("payment_id", type=int)
@click.argument("amount")
@click.option("--type", "adjustment_type", type=click.Choice(ADJUSTMENT_TYPES), default="bonus", show_default=True)
@click.option("--reason", default="", help="Why the adjustment was made")
@click.pass_context
def adjust_payment(ctx, payment_id: int, amount: str, adjustment_type: str, reason: str):
    """Append a signed adjustment to a payment.

    Examples:
        carebill payroll adjust 4 50 --type bonus --reason "Holiday visit"
        carebill payroll adjust 4 "(20)" --type deduction
    """
    db = ctx.obj["db"]
    service = PayrollService(db)
    value = parse_amount_or_exit(ctx, amount)

    try:
        payment = service.add_adjustment(payment_id, adjustment_type, value, reason)
        click.echo(f"Payment {payment.id} total is now ${payment.total_amount:,.2f}")
    except ValueError as e:
        handle_domain_error(ctx, e)


@payroll_group.command("pay")
@click.argument("payment_id", type=int)
@click.option("--date", "paid_on", help="Payment date (defaults to today)")
@click.option("--method", type=click.Choice(PAYMENT_METHODS), help="Payment method")
@click.pass_context
def pay_payment(ctx, payment_id: int, paid_on, method):
    """Mark a pending payment as paid."""
    db = ctx.obj["db"]
    service = PayrollService(db)
    paid_date = parse_date_or_exit(ctx, paid_on, "payment date")

    try:
        payment = service.mark_paid(payment_id, paid_date=paid_date, payment_method=method)
        click.echo(f"Payment {payment.id} to {payment.clinician_name} marked paid on {payment.paid_date}")
    except ValueError as e:
        handle_domain_error(ctx, e)


@payroll_group.command("delete")
@click.argument("payment_id", type=int)
@click.pass_context
def delete_payment(ctx, payment_id: int):
    """Delete a pending payment."""
    db = ctx.obj["db"]
    service = PayrollService(db)

    try:
        service.delete_payment(payment_id)
        click.echo(f"Deleted payment {payment_id}")
    except ValueError as e:
        handle_domain_error(ctx, e)


def register_commands(cli):
    """Register payroll commands with main CLI."""
    cli.add_command(payroll_group, name="payroll")
