"""CLI error handling helpers."""

from datetime import date
from decimal import Decimal

import click

from carebill.domain.errors import DomainError
from carebill.utils.amount_parser import parse_amount
from carebill.utils.date_parser import parse_date


def handle_domain_error(ctx: click.Context, error: DomainError | ValueError) -> None:
    """Render a domain error and exit with failure."""
    click.echo(f"Error: {error}", err=True)
    ctx.exit(1)


def parse_amount_or_exit(ctx: click.Context, value: str, label: str = "amount") -> Decimal:
    """Parse a money amount, or exit with a CLI error."""
    try:
        return parse_amount(value)
    except ValueError as e:
        click.echo(f"Error: Invalid {label}: {e}", err=True)
        ctx.exit(1)


def parse_date_or_exit(ctx: click.Context, value: str | None, label: str = "date") -> date | None:
    """Parse an optional date option, or exit with a CLI error."""
    if value is None:
        return None
    try:
        return parse_date(value)
    except ValueError as e:
        click.echo(f"Error: Invalid {label}: {e}", err=True)
        ctx.exit(1)
