"""Tests for invoice and payroll computation."""

from datetime import date
from decimal import Decimal

import pytest
from carebill.domain.billing import UNASSIGNED_AGENCY, build_line_items, _Lookup
from carebill.domain.collaborators import InvoiceRenderer
from carebill.domain.errors import ConflictError

TODAY = date(2025, 2, 15)


class RecordingRenderer(InvoiceRenderer):
    def __init__(self, fail=False):
        self.fail = fail
        self.rendered = []
        self.discarded = []

    def render(self, invoice, agency, period, biller_name):
        if self.fail:
            raise RuntimeError("renderer unavailable")
        self.rendered.append((invoice.invoice_number, agency.name, period.label, biller_name))
        return f"/tmp/{invoice.invoice_number}.pdf"

    def discard(self, artifact_ref):
        self.discarded.append(artifact_ref)


def add_timesheet(db, period, agency_id=None, clinician_id=None, visits=None, status="processed", **fields):
    visits = visits or [{"visit_date": date(2025, 2, 5), "duration_minutes": 30, "visit_code": "P"}]
    timesheet_id = db.create_timesheet(
        visits, status=status, billing_period_id=period.id, agency_id=agency_id, clinician_id=clinician_id, **fields
    )
    return db.get_timesheet(timesheet_id)


def test_compute_invoice_flat_rate_per_visit(billing_service, sample_timesheet, sample_period):
    drafts = billing_service.compute_invoices(sample_period.id, today=TODAY)
    assert len(drafts) == 1
    draft = drafts[0]
    assert draft.agency_name == "Acme Home Health"
    assert draft.subtotal == Decimal("195.00")
    assert draft.total == Decimal("195.00")
    assert draft.visit_count == 2
    assert draft.due_date == date(2025, 3, 17)
    assert [item.amount for item in draft.line_items] == [Decimal("85.00"), Decimal("110.00")]
    assert draft.line_items[0].clinician_title == "PTA"
    assert draft.line_items[0].care_type == "P"


def test_line_items_sorted_by_patient_then_date(billing_service, temp_db, sample_period, sample_agency):
    add_timesheet(
        temp_db,
        sample_period,
        agency_id=sample_agency.id,
        patient_name="zoe Zimmer",
        visits=[
            {"visit_date": date(2025, 2, 9), "duration_minutes": 30, "visit_code": "P"},
            {"visit_date": None, "duration_minutes": 30, "visit_code": "P"},
        ],
    )
    add_timesheet(
        temp_db,
        sample_period,
        agency_id=sample_agency.id,
        patient_name="Adam Able",
        visits=[{"visit_date": date(2025, 2, 12), "duration_minutes": 30, "visit_code": "P"}],
    )
    draft = billing_service.compute_invoices(sample_period.id, today=TODAY)[0]
    assert [(i.patient_name, i.visit_date) for i in draft.line_items] == [
        ("Adam Able", date(2025, 2, 12)),
        ("zoe Zimmer", None),
        ("zoe Zimmer", date(2025, 2, 9)),
    ]


def test_missing_names_fall_back(temp_db, sample_period, sample_agency):
    timesheet = add_timesheet(
        temp_db,
        sample_period,
        agency_id=sample_agency.id,
        employee_title="OT",
        visits=[{"visit_date": date(2025, 2, 4), "duration_minutes": 30, "visit_code": None}],
    )
    items, skipped = build_line_items([timesheet], sample_agency, Decimal("75"), _Lookup(temp_db))
    assert skipped == 0
    assert items[0].patient_name == "Unknown"
    assert items[0].care_type == "OT"
    # No visit code bills as a standard visit
    assert items[0].amount == Decimal("85.00")


def test_unassigned_timesheets_are_reported(billing_service, temp_db, sample_timesheet, sample_period):
    add_timesheet(temp_db, sample_period, agency_id=None)
    result = billing_service.generate_invoices(sample_period.id, today=TODAY)
    assert result.created == 1
    assert result.failures == {UNASSIGNED_AGENCY: 1}
    assert result.failed == 1


def test_generate_invoices_claims_timesheets(billing_service, temp_db, sample_timesheet, sample_period):
    result = billing_service.generate_invoices(sample_period.id, today=TODAY)
    assert result.created == 1
    invoice = result.invoices[0]
    assert invoice.invoice_number == "INV-2025-0001"
    assert invoice.status == "draft"
    assert invoice.total == Decimal("195.00")
    assert invoice.timesheet_ids == (sample_timesheet.id,)

    timesheet = temp_db.get_timesheet(sample_timesheet.id)
    assert timesheet.status == "invoiced"
    assert timesheet.invoice_id == invoice.id

    period = temp_db.get_billing_period(sample_period.id)
    assert period.status == "invoiced"
    assert period.invoices_generated


def test_generate_invoices_twice_creates_nothing(billing_service, sample_timesheet, sample_period):
    billing_service.generate_invoices(sample_period.id, today=TODAY)
    again = billing_service.generate_invoices(sample_period.id, today=TODAY)
    assert again.created == 0
    assert "already invoiced" in again.reason


def test_concurrent_generation_bills_once(billing_service, temp_db, second_db, sample_timesheet, sample_period, monkeypatch):
    from carebill.domain.billing import BillingService

    other_run = BillingService(second_db)
    collect = billing_service._collect_drafts
    other_results = []

    def collect_then_race(period, today):
        drafts = collect(period, today)
        # The other run finishes between our drafting and our claims
        other_results.append(other_run.generate_invoices(period.id, today=today))
        return drafts

    monkeypatch.setattr(billing_service, "_collect_drafts", collect_then_race)
    result = billing_service.generate_invoices(sample_period.id, today=TODAY)

    assert other_results[0].created == 1
    assert result.created == 0
    assert "already invoiced" in result.reason
    assert len(temp_db.list_invoices()) == 1
    assert temp_db.get_billing_period(sample_period.id).status == "invoiced"


def test_generation_reports_reason_when_every_claim_fails(
    billing_service, temp_db, second_db, sample_timesheet, sample_period, sample_agency, monkeypatch
):
    collect = billing_service._collect_drafts

    def collect_then_claim(period, today):
        drafts = collect(period, today)
        second_db.create_invoice(
            agency_id=sample_agency.id,
            billing_period_id=period.id,
            timesheet_ids=[sample_timesheet.id],
            line_items=[],
            subtotal=Decimal("195"),
            due_date=TODAY,
            year=2025,
        )
        return drafts

    monkeypatch.setattr(billing_service, "_collect_drafts", collect_then_claim)
    result = billing_service.generate_invoices(sample_period.id, today=TODAY)

    assert result.created == 0
    assert result.reason == "No invoices created; 1 failure(s)"
    assert result.failures == {"Acme Home Health": 1}
    assert temp_db.get_billing_period(sample_period.id).status == "open"


def test_generate_invoices_missing_period(billing_service):
    result = billing_service.generate_invoices(404, today=TODAY)
    assert result.created == 0
    assert "not found" in result.reason


def test_generate_invoices_without_timesheets_leaves_period_open(billing_service, temp_db, sample_period):
    result = billing_service.generate_invoices(sample_period.id, today=TODAY)
    assert result.created == 0
    assert result.reason == "No processed timesheets found for this period"
    assert temp_db.get_billing_period(sample_period.id).status == "open"


def test_flagged_timesheets_are_not_invoiced(billing_service, temp_db, sample_period, sample_agency):
    add_timesheet(temp_db, sample_period, agency_id=sample_agency.id, status="flagged")
    assert billing_service.compute_invoices(sample_period.id, today=TODAY) == []


def test_invoice_numbers_keep_increasing(billing_service, temp_db, registry_service, sample_timesheet, sample_period):
    other = registry_service.create_agency(name="Sunshine Care", default_rate=Decimal("90"))
    add_timesheet(temp_db, sample_period, agency_id=other)
    result = billing_service.generate_invoices(sample_period.id, today=TODAY)
    numbers = sorted(i.invoice_number for i in result.invoices)
    assert numbers == ["INV-2025-0001", "INV-2025-0002"]
    sunshine = next(i for i in result.invoices if i.agency_id == other)
    assert sunshine.total == Decimal("90.00")


def test_claimed_timesheets_cannot_be_invoiced_twice(temp_db, sample_timesheet, sample_period, sample_agency):
    temp_db.create_invoice(
        agency_id=sample_agency.id,
        billing_period_id=sample_period.id,
        timesheet_ids=[sample_timesheet.id],
        line_items=[],
        subtotal=Decimal("195"),
        due_date=TODAY,
        year=2025,
    )
    with pytest.raises(ConflictError):
        temp_db.create_invoice(
            agency_id=sample_agency.id,
            billing_period_id=sample_period.id,
            timesheet_ids=[sample_timesheet.id],
            line_items=[],
            subtotal=Decimal("195"),
            due_date=TODAY,
            year=2025,
        )
    assert len(temp_db.list_invoices()) == 1


def test_renderer_output_is_stored(temp_db, settings_service, sample_timesheet, sample_period):
    from carebill.domain.billing import BillingService

    renderer = RecordingRenderer()
    service = BillingService(temp_db, settings_service, renderer=renderer)
    result = service.generate_invoices(sample_period.id, today=TODAY)
    assert result.invoices[0].pdf_path == "/tmp/INV-2025-0001.pdf"
    assert renderer.rendered[0][1] == "Acme Home Health"


def test_renderer_failure_keeps_invoice(temp_db, settings_service, sample_timesheet, sample_period):
    from carebill.domain.billing import BillingService

    service = BillingService(temp_db, settings_service, renderer=RecordingRenderer(fail=True))
    result = service.generate_invoices(sample_period.id, today=TODAY)
    assert result.created == 1
    assert result.failures == {"Acme Home Health": 1}
    assert result.invoices[0].pdf_path is None


def test_generation_opens_next_period_when_auto_generate(billing_service, settings_service, sample_timesheet, sample_period):
    settings_service.set("auto_generate_invoices", True)
    result = billing_service.generate_invoices(sample_period.id, today=TODAY)
    next_period = billing_service.periods.get_period(result.next_period_id)
    assert next_period.start_date == date(2025, 2, 15)
    assert next_period.status == "open"


def test_preview_includes_invoiced_work(billing_service, sample_timesheet, sample_period, sample_agency):
    billing_service.generate_invoices(sample_period.id, today=TODAY)
    preview = billing_service.preview_invoice(sample_agency.id, sample_period.id, today=TODAY)
    assert preview.subtotal == Decimal("195.00")
    assert billing_service.compute_invoices(sample_period.id, today=TODAY) == []


def test_preview_missing_agency(billing_service, sample_period):
    assert billing_service.preview_invoice(999, sample_period.id) is None


def test_compute_payroll_pays_by_the_hour(billing_service, sample_timesheet, sample_period):
    report = billing_service.compute_payroll(period_id=sample_period.id)
    assert report.clinician_count == 1
    row = report.rows[0]
    assert row.name == "Jane Doe"
    assert row.total_minutes == 105
    assert row.total_hours == Decimal("1.75")
    assert row.total_visits == 2
    assert row.earnings == Decimal("70.00")
    assert row.final_amount == Decimal("70.00")
    assert row.agencies == ("Acme Home Health",)
    assert report.total_payroll == Decimal("70.00")


def test_payroll_includes_invoiced_timesheets(billing_service, sample_timesheet, sample_period):
    billing_service.generate_invoices(sample_period.id, today=TODAY)
    report = billing_service.compute_payroll(period_id=sample_period.id)
    assert report.rows[0].earnings == Decimal("70.00")


def test_payroll_groups_unresolved_clinicians_by_name(billing_service, temp_db, sample_period):
    add_timesheet(temp_db, sample_period, employee_name="Sam Smith")
    add_timesheet(temp_db, sample_period, employee_name="Sam Smith")
    report = billing_service.compute_payroll(period_id=sample_period.id)
    row = report.rows[0]
    assert row.name == "Sam Smith"
    assert row.clinician_id is None
    assert row.total_minutes == 60
    assert row.timesheet_count == 2
    # No pay rate on file
    assert row.earnings == Decimal("0.00")


def test_payroll_uses_existing_payment_total(billing_service, payroll_service, sample_timesheet, sample_period):
    result = billing_service.generate_payroll_payments(period_id=sample_period.id)
    assert result.created == 1
    payroll_service.add_adjustment(result.payment_ids[0], "bonus", Decimal("25"), "holiday")

    report = billing_service.compute_payroll(period_id=sample_period.id)
    row = report.rows[0]
    assert row.earnings == Decimal("70.00")
    assert row.final_amount == Decimal("95.00")
    assert row.payment_status == "pending"
    assert report.total_payroll == Decimal("95.00")


def test_generate_payroll_payments_skips_existing(billing_service, temp_db, sample_timesheet, sample_period):
    first = billing_service.generate_payroll_payments(period_id=sample_period.id)
    second = billing_service.generate_payroll_payments(period_id=sample_period.id)
    assert first.created == 1
    assert second.created == 0
    assert second.skipped == 1

    payment = temp_db.get_payroll_payment(first.payment_ids[0])
    assert payment.base_amount == Decimal("70.00")
    assert payment.base_hours == Decimal("1.75")
    assert payment.period_label == sample_period.label


def test_cycle_check_generates_for_ended_periods(billing_service, settings_service, temp_db, sample_timesheet, sample_period):
    settings_service.set("auto_generate_invoices", True)
    result = billing_service.run_cycle_check(today=TODAY)
    assert result.generated[sample_period.label].created == 1
    assert temp_db.get_billing_period(sample_period.id).status == "invoiced"


def test_cycle_check_closes_empty_ended_period(billing_service, settings_service, temp_db, sample_period):
    settings_service.set("auto_generate_invoices", True)
    result = billing_service.run_cycle_check(today=TODAY)
    assert result.closed_without_invoices == (sample_period.label,)
    assert temp_db.get_billing_period(sample_period.id).status == "closed"
    assert temp_db.get_open_billing_period().start_date == date(2025, 2, 15)


def test_cycle_check_leaves_running_period_alone(billing_service, settings_service, sample_timesheet, sample_period):
    settings_service.set("auto_generate_invoices", True)
    result = billing_service.run_cycle_check(today=date(2025, 2, 14))
    assert result.generated == {}


def test_cycle_check_without_auto_generate_only_sweeps(billing_service, invoice_service, sample_invoice):
    invoice_service.mark_sent(sample_invoice.id)
    result = billing_service.run_cycle_check(today=date(2025, 4, 1))
    assert result.generated == {}
    assert result.overdue_marked == 1
