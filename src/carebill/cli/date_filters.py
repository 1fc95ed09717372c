"""CLI helpers for date range resolution."""

from datetime import date

import click

from carebill.utils.date_parser import get_date_range, parse_date

PERIOD_FLAGS = ("this-month", "last-month", "this-year", "last-year")


def resolve_cli_date_range(
    ctx,
    *,
    start_date: str | None,
    end_date: str | None,
    period_flags: dict[str, bool],
) -> tuple[date | None, date | None]:
    """Resolve a date range from one named range flag or explicit dates."""
    chosen = [name for name, is_set in period_flags.items() if is_set]

    if len(chosen) > 1:
        click.echo(
            f"Error: Only one of {', '.join('--' + p for p in PERIOD_FLAGS)} can be given at a time.", err=True
        )
        ctx.exit(1)
    if chosen and (start_date or end_date):
        click.echo("Error: Range options cannot be combined with --start-date or --end-date.", err=True)
        ctx.exit(1)

    if chosen:
        return get_date_range(chosen[0])

    start = end = None
    if start_date:
        try:
            start = parse_date(start_date)
        except ValueError as e:
            click.echo(f"Error: Invalid start date: {e}", err=True)
            ctx.exit(1)
    if end_date:
        try:
            end = parse_date(end_date)
        except ValueError as e:
            click.echo(f"Error: Invalid end date: {e}", err=True)
            ctx.exit(1)
    if start and end and end < start:
        click.echo("Error: End date must not be before start date", err=True)
        ctx.exit(1)
    return start, end
