"""Tests for the CLI date range helper."""

from datetime import date

import click
import pytest

from carebill.cli.date_filters import resolve_cli_date_range
from carebill.cli.main import cli
from carebill.utils.date_parser import get_date_range


def _ctx() -> click.Context:
    return click.Context(click.Command("test"))


def test_rejects_two_range_flags(capsys):
    with pytest.raises(click.exceptions.Exit) as excinfo:
        resolve_cli_date_range(
            _ctx(),
            start_date=None,
            end_date=None,
            period_flags={"this-month": True, "last-year": True},
        )

    assert excinfo.value.exit_code == 1
    assert "Only one of" in capsys.readouterr().err


def test_rejects_range_flag_with_explicit_dates(capsys):
    with pytest.raises(click.exceptions.Exit) as excinfo:
        resolve_cli_date_range(
            _ctx(),
            start_date="2025-01-01",
            end_date=None,
            period_flags={"last-month": True},
        )

    assert excinfo.value.exit_code == 1
    assert "cannot be combined" in capsys.readouterr().err


def test_range_flag_resolves_named_range():
    start, end = resolve_cli_date_range(
        _ctx(), start_date=None, end_date=None, period_flags={"last-month": True, "this-month": False}
    )

    assert (start, end) == get_date_range("last-month")


def test_explicit_dates_are_parsed():
    start, end = resolve_cli_date_range(
        _ctx(), start_date="2025-02-01", end_date="02/14/2025", period_flags={}
    )

    assert start == date(2025, 2, 1)
    assert end == date(2025, 2, 14)


def test_no_options_is_unbounded():
    assert resolve_cli_date_range(_ctx(), start_date=None, end_date=None, period_flags={}) == (None, None)


def test_end_before_start_is_rejected(capsys):
    with pytest.raises(click.exceptions.Exit):
        resolve_cli_date_range(_ctx(), start_date="2025-03-01", end_date="2025-02-01", period_flags={})

    assert "End date must not be before start date" in capsys.readouterr().err


def test_invalid_start_date_is_reported(capsys):
    with pytest.raises(click.exceptions.Exit):
        resolve_cli_date_range(_ctx(), start_date="not a date", end_date=None, period_flags={})

    assert "Invalid start date" in capsys.readouterr().err


def test_invoice_summary_accepts_range_flag(cli_runner, temp_db, sample_invoice):
    result = cli_runner.invoke(cli, ["--db-path", temp_db.database_path, "invoice", "summary", "--this-year"])

    assert result.exit_code == 0
    assert "Invoice summary" in result.output


def test_payroll_summary_rejects_mixed_options(cli_runner, temp_db):
    result = cli_runner.invoke(
        cli,
        ["--db-path", temp_db.database_path, "payroll", "summary", "--last-month", "--start-date", "2025-01-01"],
    )

    assert result.exit_code == 1
    assert "cannot be combined" in result.output
