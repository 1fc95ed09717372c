"""Tests for rate resolution and money arithmetic."""

from datetime import datetime
from decimal import Decimal

import pytest
from carebill.domain.entities import Agency
from carebill.domain.rates import invoice_total, payment_total, rate_code_for, resolve_rate, round2


def make_agency(rates=None, default_rate=None):
    return Agency(
        id=1,
        name="Acme Home Health",
        default_rate=default_rate,
        payment_terms_days=30,
        rates=rates or {},
        contact_name=None,
        contact_email=None,
        notes=None,
        active=True,
        created_at=datetime(2025, 1, 1),
    )


def test_rate_card_entry_wins():
    agency = make_agency(rates={"WC": Decimal("110")}, default_rate=Decimal("90"))
    assert resolve_rate(agency, "WC", Decimal("75")) == Decimal("110.00")


def test_missing_code_uses_standard_visit_rate():
    agency = make_agency(rates={"P": Decimal("85")})
    assert resolve_rate(agency, None, Decimal("75")) == Decimal("85.00")
    assert resolve_rate(agency, "  ", Decimal("75")) == Decimal("85.00")


def test_agency_default_rate_when_code_not_on_card():
    agency = make_agency(rates={"P": Decimal("85")}, default_rate=Decimal("90"))
    assert resolve_rate(agency, "EVAL", Decimal("75")) == Decimal("90.00")


def test_zero_agency_default_falls_through_to_system_default():
    agency = make_agency(default_rate=Decimal("0"))
    assert resolve_rate(agency, "P", Decimal("75")) == Decimal("75.00")


def test_no_agency_uses_system_default():
    assert resolve_rate(None, "P", "75") == Decimal("75.00")


def test_rate_code_for_defaults_to_standard_visit():
    assert rate_code_for(None) == "P"
    assert rate_code_for(" WC ") == "WC"


@pytest.mark.parametrize(
    "value,expected",
    [
        ("1.005", Decimal("1.01")),
        ("2.675", Decimal("2.68")),
        (Decimal("-1.005"), Decimal("-1.01")),
        (0.1 + 0.2, Decimal("0.30")),
        (70, Decimal("70.00")),
    ],
)
def test_round2_half_up(value, expected):
    assert round2(value) == expected


def test_invoice_total_adds_adjustments():
    assert invoice_total(Decimal("195"), Decimal("-20.50")) == Decimal("174.50")
    assert invoice_total(Decimal("195"), None) == Decimal("195.00")


def test_payment_total_sums_adjustments_in_order():
    assert payment_total(Decimal("200"), [Decimal("50"), Decimal("-20")]) == Decimal("230.00")
    assert payment_total(None, []) == Decimal("0.00")
