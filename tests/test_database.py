"""Tests for the SQLAlchemy database implementation."""

from datetime import date, datetime, UTC
from decimal import Decimal

import pytest

from carebill.domain.entities import InvoiceLineItem, PeriodWindow
from carebill.domain.errors import ConflictError, DuplicateRecordNumberError, NotFoundError


def _line_item(timesheet_id, amount="85.00"):
    return InvoiceLineItem(
        timesheet_id=timesheet_id,
        patient_name="Mary Major",
        clinician_name="Jane Doe",
        clinician_title="PTA",
        visit_date=date(2025, 2, 3),
        time_in="9:00 AM",
        time_out="10:00 AM",
        duration_minutes=60,
        visit_code="P",
        care_type="P",
        rate=Decimal(amount),
        amount=Decimal(amount),
    )


def _create_invoice(temp_db, agency, period, timesheet_ids, year=2025):
    return temp_db.create_invoice(
        agency_id=agency.id,
        billing_period_id=period.id,
        timesheet_ids=timesheet_ids,
        line_items=[_line_item(t) for t in timesheet_ids],
        subtotal=Decimal("85.00") * len(timesheet_ids),
        due_date=date(2025, 3, 17),
        year=year,
    )


def test_get_or_create_agency_matches_normalized_name(temp_db):
    created, was_created = temp_db.get_or_create_agency("Acme  Home Health")
    again, was_created_again = temp_db.get_or_create_agency("  acme home HEALTH ")

    assert was_created is True
    assert was_created_again is False
    assert again.id == created.id
    assert len(temp_db.list_agencies()) == 1


def test_create_agency_rejects_duplicate_name(temp_db, sample_agency):
    with pytest.raises(ConflictError):
        temp_db.create_agency(name="ACME HOME HEALTH")


def test_agency_rates_keep_insertion_order(temp_db, sample_agency):
    temp_db.set_agency_rate(sample_agency.id, "EVAL", Decimal("150"))
    temp_db.set_agency_rate(sample_agency.id, "P", Decimal("90"))

    agency = temp_db.get_agency(sample_agency.id)
    assert list(agency.rates) == ["P", "WC", "EVAL"]
    assert agency.rates["P"] == Decimal("90.00")


def test_record_number_is_unique_across_patients(temp_db, sample_patient):
    with pytest.raises(DuplicateRecordNumberError):
        temp_db.create_patient(name="Other Person", clinical_record_number="CR-1001")


def test_record_number_update_to_taken_value_fails(temp_db, sample_patient):
    other_id = temp_db.create_patient(name="Other Person")

    with pytest.raises(DuplicateRecordNumberError):
        temp_db.update_patient(other_id, clinical_record_number="CR-1001")
    assert temp_db.get_patient(other_id).clinical_record_number is None


def test_patients_without_record_number_can_coexist(temp_db):
    first = temp_db.create_patient(name="First Patient")
    second = temp_db.create_patient(name="Second Patient")

    assert temp_db.get_patient(first).clinical_record_number is None
    assert temp_db.get_patient(second).clinical_record_number is None


def test_settings_round_trip_json_values(temp_db):
    temp_db.set_setting("billing_cycle_monthly", True)
    temp_db.set_setting("billing_cycle_length_days", 7)

    assert temp_db.get_setting("billing_cycle_monthly") is True
    assert temp_db.get_setting("billing_cycle_length_days") == 7
    assert temp_db.get_setting("missing") is None


def test_create_invoice_claims_timesheets(temp_db, sample_agency, sample_period, sample_timesheet):
    invoice = _create_invoice(temp_db, sample_agency, sample_period, [sample_timesheet.id])

    assert invoice.invoice_number == "INV-2025-0001"
    assert invoice.status == "draft"
    assert invoice.total == Decimal("85.00")
    assert invoice.timesheet_ids == (sample_timesheet.id,)

    timesheet = temp_db.get_timesheet(sample_timesheet.id)
    assert timesheet.invoice_id == invoice.id
    assert timesheet.status == "invoiced"


def test_claim_conflict_writes_nothing(temp_db, sample_agency, sample_period, sample_timesheet):
    first = _create_invoice(temp_db, sample_agency, sample_period, [sample_timesheet.id])

    with pytest.raises(ConflictError):
        _create_invoice(temp_db, sample_agency, sample_period, [sample_timesheet.id])

    assert [i.id for i in temp_db.list_invoices()] == [first.id]
    assert temp_db.get_timesheet(sample_timesheet.id).invoice_id == first.id


def test_invoice_number_is_not_reused_after_delete(temp_db, sample_agency, sample_period, sample_timesheet):
    first = _create_invoice(temp_db, sample_agency, sample_period, [sample_timesheet.id])
    temp_db.delete_invoice(first.id)

    # The released timesheet can be claimed again
    second = _create_invoice(temp_db, sample_agency, sample_period, [sample_timesheet.id], year=2026)

    assert second.invoice_number == "INV-2026-0002"


def test_delete_invoice_releases_timesheets(temp_db, sample_agency, sample_period, sample_timesheet):
    invoice = _create_invoice(temp_db, sample_agency, sample_period, [sample_timesheet.id])

    temp_db.delete_invoice(invoice.id)

    timesheet = temp_db.get_timesheet(sample_timesheet.id)
    assert timesheet.invoice_id is None
    assert timesheet.status == "processed"
    assert temp_db.get_invoice(invoice.id) is None


def test_update_invoice_with_stale_status_is_rejected(temp_db, sample_invoice):
    assert temp_db.update_invoice(sample_invoice.id, expected_status="draft", status="sent") is True
    assert temp_db.update_invoice(sample_invoice.id, expected_status="draft", status="void") is False
    assert temp_db.get_invoice(sample_invoice.id).status == "sent"


def test_invoice_adjustment_recomputes_total(temp_db, sample_invoice):
    temp_db.add_invoice_adjustment(sample_invoice.id, Decimal("-15.50"))
    temp_db.add_invoice_adjustment(sample_invoice.id, Decimal("5"))

    invoice = temp_db.get_invoice(sample_invoice.id)
    assert invoice.adjustments == Decimal("-10.50")
    assert invoice.total == invoice.subtotal + invoice.adjustments


def test_mark_overdue_only_touches_sent_past_due(temp_db, sample_invoice):
    assert temp_db.mark_overdue_invoices(date(2025, 4, 1)) == 0

    temp_db.update_invoice(sample_invoice.id, status="sent")
    assert temp_db.mark_overdue_invoices(date(2025, 3, 17)) == 0
    assert temp_db.mark_overdue_invoices(date(2025, 3, 18)) == 1
    assert temp_db.get_invoice(sample_invoice.id).status == "overdue"


def test_payroll_total_follows_adjustments(temp_db):
    payment_id = temp_db.create_payroll_payment(clinician_name="Jane Doe", base_amount=Decimal("200.00"))

    temp_db.add_payroll_adjustment(payment_id, type="bonus", amount=Decimal("50"))
    temp_db.add_payroll_adjustment(payment_id, type="deduction", amount=Decimal("-20"), reason="Advance")

    payment = temp_db.get_payroll_payment(payment_id)
    assert payment.total_amount == Decimal("230.00")
    assert [a.type for a in payment.adjustments] == ["bonus", "deduction"]
    assert payment.adjustments[1].reason == "Advance"


def test_missing_rows_raise_not_found(temp_db):
    with pytest.raises(NotFoundError):
        temp_db.update_invoice(999, status="sent")
    with pytest.raises(NotFoundError):
        temp_db.add_payroll_adjustment(999, type="bonus", amount=Decimal("1"))


def test_rejected_patient_update_leaves_row_unchanged(temp_db, second_db, sample_agency, sample_patient):
    second_agency = temp_db.create_agency(name="Sunshine Care")
    other_id = temp_db.create_patient(name="Other Person")

    with pytest.raises(DuplicateRecordNumberError):
        temp_db.update_patient(other_id, agency_id=second_agency, clinical_record_number="CR-1001")

    # A later unrelated commit must not carry the rejected change with it
    temp_db.create_agency(name="Third Agency")

    stored = second_db.get_patient(other_id)
    assert stored.agency_id is None
    assert stored.clinical_record_number is None


def test_rejected_clinician_update_leaves_row_unchanged(temp_db, second_db, sample_clinician):
    with pytest.raises(NotFoundError):
        temp_db.update_clinician(sample_clinician.id, name="Janet Doe", pay_rate=Decimal("55"), agency_ids=[999])

    temp_db.create_agency(name="Third Agency")

    stored = second_db.get_clinician(sample_clinician.id)
    assert stored.name == "Jane Doe"
    assert stored.pay_rate == Decimal("40.00")


def test_rename_to_taken_name_fails(temp_db, sample_patient):
    other_id = temp_db.create_patient(name="Other Person")

    with pytest.raises(ConflictError):
        temp_db.update_patient(other_id, name="mary  major", address="1 Main St")
    assert temp_db.get_patient(other_id).address is None


def test_second_open_period_is_rejected(temp_db, sample_period):
    with pytest.raises(ConflictError):
        temp_db.create_billing_period(
            start_date=date(2025, 2, 15), end_date=date(2025, 2, 28), label="02-15-2025 to 02-28-2025", status="open"
        )

    assert [p.id for p in temp_db.list_billing_periods(status="open")] == [sample_period.id]
    # Closed periods are not limited
    temp_db.create_billing_period(
        start_date=date(2025, 1, 1), end_date=date(2025, 1, 14), label="01-01-2025 to 01-14-2025", status="closed"
    )


def test_get_or_create_open_period_returns_existing(temp_db, sample_period):
    window = PeriodWindow(date(2025, 3, 1), date(2025, 3, 14), "03-01-2025 to 03-14-2025")

    period, created = temp_db.get_or_create_open_billing_period(window)

    assert created is False
    assert period.id == sample_period.id


def test_get_or_create_open_period_opens_one(temp_db):
    window = PeriodWindow(date(2025, 3, 1), date(2025, 3, 14), "03-01-2025 to 03-14-2025")

    period, created = temp_db.get_or_create_open_billing_period(window)

    assert created is True
    assert period.status == "open"
    assert period.label == "03-01-2025 to 03-14-2025"


def test_close_period_closed_elsewhere_is_rejected(temp_db, second_db, sample_period):
    second_db.close_billing_period(sample_period.id, status="closed", closed_at=datetime(2025, 2, 15, tzinfo=UTC))

    with pytest.raises(ConflictError):
        temp_db.close_billing_period(
            sample_period.id, status="invoiced", closed_at=datetime(2025, 2, 15, tzinfo=UTC), invoices_generated=True
        )
    period = temp_db.get_billing_period(sample_period.id)
    assert period.status == "closed"
    assert not period.invoices_generated


def test_close_period_with_expected_status(temp_db, sample_period):
    temp_db.close_billing_period(sample_period.id, status="closed", closed_at=datetime(2025, 2, 15, tzinfo=UTC))

    temp_db.close_billing_period(
        sample_period.id,
        status="invoiced",
        closed_at=datetime(2025, 2, 15, tzinfo=UTC),
        invoices_generated=True,
        expected_status="closed",
    )
    period = temp_db.get_billing_period(sample_period.id)
    assert period.status == "invoiced"
    assert period.invoices_generated
