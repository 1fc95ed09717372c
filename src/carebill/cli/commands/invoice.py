"""Invoice commands."""

from datetime import datetime, time

import click
from carebill.cli.date_filters import resolve_cli_date_range
from carebill.cli.entity_resolution import resolve_agency_or_exit
from carebill.cli.error_handling import handle_domain_error, parse_amount_or_exit, parse_date_or_exit
from carebill.domain.billing import BillingService
from carebill.domain.entities import INVOICE_STATUSES
from carebill.domain.invoice import InvoiceService
from carebill.domain.registry import RegistryService


def _print_line_items(line_items) -> None:
    for item in line_items:
        click.echo(
            f"  {str(item.visit_date or '-'):10s} | {item.patient_name:20s} | {item.clinician_name:18s} | "
            f"{item.visit_code:6s} | {item.duration_minutes:4d} min | ${item.amount:>9,.2f}"
        )


@click.group()
def invoice_group():
    """Generate and track invoices."""
    pass


@invoice_group.command("generate")
@click.option("--period", "period_id", type=int, help="Billing period ID (defaults to the current period)")
@click.pass_context
def generate_invoices(ctx, period_id: int | None):
    """Generate one invoice per agency for a billing period.

    Re-running for an invoiced period creates nothing.

    Examples:
        carebill invoice generate --period 3
    """
    db = ctx.obj["db"]
    service = BillingService(db)

    try:
        if period_id is None:
            period_id = service.periods.get_current_period().id
        result = service.generate_invoices(period_id)
    except ValueError as e:
        handle_domain_error(ctx, e)
        return

    if result.created == 0:
        click.echo(f"No invoices created: {result.reason}")
    else:
        click.echo(f"Created {result.created} invoice(s):")
        for inv in result.invoices:
            click.echo(f"  {inv.invoice_number} | agency {inv.agency_id} | ${inv.total:,.2f} | due {inv.due_date}")
    for name, count in sorted(result.failures.items()):
        click.echo(f"Warning: {count} item(s) not invoiced for {name}", err=True)
    if result.next_period_id is not None:
        click.echo(f"Opened next billing period (ID: {result.next_period_id})")


@invoice_group.command("preview")
@click.option("--period", "period_id", type=int, required=True, help="Billing period ID")
@click.option("--agency", help="Only this agency (name or ID)")
@click.pass_context
def preview_invoices(ctx, period_id: int, agency: str | None):
    """Preview invoices for a period without saving anything."""
    db = ctx.obj["db"]
    service = BillingService(db)

    if agency:
        agency_obj = resolve_agency_or_exit(ctx, RegistryService(db), agency)
        draft = service.preview_invoice(agency_obj.id, period_id)
        drafts = [draft] if draft is not None and draft.line_items else []
    else:
        drafts = service.preview_invoices(period_id)

    if not drafts:
        click.echo("Nothing to invoice for this period.")
        return

    for draft in drafts:
        click.echo(f"\n{draft.agency_name}: {draft.visit_count} visit(s), ${draft.total:,.2f}, due {draft.due_date}")
        click.echo("-" * 90)
        _print_line_items(draft.line_items)


@invoice_group.command("list")
@click.option("--status", type=click.Choice(INVOICE_STATUSES), help="Filter by status")
@click.option("--period", "period_id", type=int, help="Filter by billing period ID")
@click.option("--agency", help="Filter by agency name or ID")
@click.option("--start-date", help="Periods overlapping from this date")
@click.option("--end-date", help="Periods overlapping up to this date")
@click.pass_context
def list_invoices(ctx, status, period_id, agency, start_date, end_date):
    """List invoices, newest first."""
    db = ctx.obj["db"]
    service = InvoiceService(db)
    registry = RegistryService(db)

    agency_id = resolve_agency_or_exit(ctx, registry, agency).id if agency else None
    start = parse_date_or_exit(ctx, start_date, "start date")
    end = parse_date_or_exit(ctx, end_date, "end date")

    invoices = service.list_invoices(
        status=status, period_id=period_id, agency_id=agency_id, start_date=start, end_date=end
    )
    if not invoices:
        click.echo("No invoices found.")
        return

    names = {a.id: a.name for a in registry.list_agencies(include_inactive=True)}
    click.echo("\nInvoices:")
    click.echo("-" * 90)
    for inv in invoices:
        click.echo(
            f"{inv.invoice_number} | {names.get(inv.agency_id, inv.agency_id)!s:25s} | {inv.status:8s} | "
            f"${inv.total:>10,.2f} | due {inv.due_date}"
        )


@invoice_group.command("show")
@click.argument("invoice_id", type=int)
@click.pass_context
def show_invoice(ctx, invoice_id: int):
    """Show an invoice with its line items."""
    db = ctx.obj["db"]
    service = InvoiceService(db)

    try:
        inv = service.require_invoice(invoice_id)
    except ValueError as e:
        handle_domain_error(ctx, e)
        return

    agency = db.get_agency(inv.agency_id)
    click.echo(f"\n{inv.invoice_number} ({inv.status})")
    click.echo(f"Agency:   {agency.name if agency else inv.agency_id}")
    click.echo(f"Due:      {inv.due_date}")
    click.echo("-" * 90)
    _print_line_items(inv.line_items)
    click.echo("-" * 90)
    click.echo(f"Subtotal:    ${inv.subtotal:>10,.2f}")
    click.echo(f"Adjustments: ${inv.adjustments:>10,.2f}")
    click.echo(f"Total:       ${inv.total:>10,.2f}")
    if inv.paid_amount is not None:
        click.echo(f"Paid:        ${inv.paid_amount:>10,.2f} on {inv.paid_at:%Y-%m-%d}")
    if inv.notes:
        click.echo(f"Notes: {inv.notes}")


@invoice_group.command("send")
@click.argument("invoice_id", type=int)
@click.pass_context
def send_invoice(ctx, invoice_id: int):
    """Mark a draft invoice as sent."""
    db = ctx.obj["db"]
    service = InvoiceService(db)

    try:
        inv = service.mark_sent(invoice_id)
        click.echo(f"Invoice {inv.invoice_number} marked sent")
    except ValueError as e:
        handle_domain_error(ctx, e)


@invoice_group.command("pay")
@click.argument("invoice_id", type=int)
@click.option("--amount", help="Amount received (defaults to the invoice total)")
@click.option("--date", "paid_on", help="Payment date (defaults to now)")
@click.option("--notes", help="Payment notes")
@click.pass_context
def pay_invoice(ctx, invoice_id: int, amount, paid_on, notes):
    """Record payment of a sent or overdue invoice."""
    db = ctx.obj["db"]
    service = InvoiceService(db)

    paid_amount = parse_amount_or_exit(ctx, amount, "amount") if amount is not None else None
    paid_date = parse_date_or_exit(ctx, paid_on, "payment date")
    paid_at = datetime.combine(paid_date, time()) if paid_date else None

    try:
        inv = service.mark_paid(invoice_id, paid_at=paid_at, paid_amount=paid_amount, notes=notes)
        click.echo(f"Invoice {inv.invoice_number} marked paid (${inv.paid_amount:,.2f})")
    except ValueError as e:
        handle_domain_error(ctx, e)


@invoice_group.command("void")
@click.argument("invoice_id", type=int)
@click.pass_context
def void_invoice(ctx, invoice_id: int):
    """Void a draft invoice."""
    db = ctx.obj["db"]
    service = InvoiceService(db)

    try:
        inv = service.void(invoice_id)
        click.echo(f"Invoice {inv.invoice_number} voided")
    except ValueError as e:
        handle_domain_error(ctx, e)


@invoice_group.command("adjust")
@click.argument("invoice_id", type=int)
@click.argument("amount")
@click.pass_context
def adjust_invoice(ctx, invoice_id: int, amount: str):
    """Add a signed adjustment to an invoice.

    Use parentheses or a leading minus for credits, e.g. "(25.00)" or -- -25.
    """
    db = ctx.obj["db"]
    service = InvoiceService(db)
    value = parse_amount_or_exit(ctx, amount)

    try:
        inv = service.apply_adjustment(invoice_id, value)
        click.echo(f"Invoice {inv.invoice_number} total is now ${inv.total:,.2f}")
    except ValueError as e:
        handle_domain_error(ctx, e)


@invoice_group.command("delete")
@click.argument("invoice_id", type=int)
@click.option("--force", is_flag=True, help="Allow deleting an invoice that is not a draft")
@click.pass_context
def delete_invoice(ctx, invoice_id: int, force: bool):
    """Delete an invoice and release its timesheets."""
    db = ctx.obj["db"]
    service = InvoiceService(db)

    try:
        inv = service.delete_invoice(invoice_id, force=force)
        click.echo(f"Deleted invoice {inv.invoice_number}; released {len(inv.timesheet_ids)} timesheet(s)")
    except ValueError as e:
        handle_domain_error(ctx, e)


@invoice_group.command("sweep")
@click.pass_context
def sweep_overdue(ctx):
    """Mark sent invoices past their due date as overdue."""
    db = ctx.obj["db"]
    service = InvoiceService(db)

    count = service.sweep_overdue()
    click.echo(f"Marked {count} invoice(s) overdue")


@invoice_group.command("summary")
@click.option("--start-date", help="Periods overlapping from this date")
@click.option("--end-date", help="Periods overlapping up to this date")
@click.option("--this-month", is_flag=True, help="Periods overlapping the current month")
@click.option("--last-month", is_flag=True, help="Periods overlapping the previous month")
@click.option("--this-year", is_flag=True, help="Periods overlapping the current year")
@click.option("--last-year", is_flag=True, help="Periods overlapping the previous year")
@click.pass_context
def invoice_summary(ctx, start_date, end_date, this_month, last_month, this_year, last_year):
    """Show revenue totals by invoice status.

    Examples:
        carebill invoice summary --this-year
        carebill invoice summary --start-date 2025-01-01 --end-date 2025-03-31
    """
    db = ctx.obj["db"]
    service = InvoiceService(db)
    start, end = resolve_cli_date_range(
        ctx,
        start_date=start_date,
        end_date=end_date,
        period_flags={
            "this-month": this_month,
            "last-month": last_month,
            "this-year": this_year,
            "last-year": last_year,
        },
    )

    summary = service.get_summary(start, end)
    click.echo("\nInvoice summary:")
    click.echo("-" * 40)
    click.echo(f"Total revenue: ${summary.total_revenue:>12,.2f}")
    click.echo(f"Paid:          ${summary.paid.amount:>12,.2f} ({summary.paid.count})")
    click.echo(f"Outstanding:   ${summary.outstanding.amount:>12,.2f} ({summary.outstanding.count})")
    click.echo(f"Overdue:       ${summary.overdue.amount:>12,.2f} ({summary.overdue.count})")
    click.echo(f"Drafts:        {summary.drafts}")


def register_commands(cli):
    """Register invoice commands with main CLI."""
    cli.add_command(invoice_group, name="invoice")
