"""Billing computation: invoice drafts per agency, payroll rows per clinician.

Invoices bill a flat rate per visit regardless of its duration, while payroll
pays clinicians by the hour. The asymmetry is a business rule.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, UTC
from decimal import Decimal
from typing import Optional

from carebill.database.base import Database
from carebill.domain.collaborators import InvoiceRenderer
from carebill.domain.entities import (
    Agency,
    BillingPeriod,
    Clinician,
    Invoice,
    InvoiceDraft,
    InvoiceLineItem,
    Patient,
    PayrollRow,
    Timesheet,
    BILLABLE_TIMESHEET_STATUSES,
    INVOICEABLE_TIMESHEET_STATUSES,
)
from carebill.domain.errors import ConflictError, DomainError, ValidationError
from carebill.domain.invoice import InvoiceService
from carebill.domain.periods import PeriodService
from carebill.domain.rates import resolve_rate, round2
from carebill.domain.settings import SettingsService

logger = logging.getLogger(__name__)

UNASSIGNED_AGENCY = "(unassigned)"
UNKNOWN_NAME = "Unknown"


def _is_invoiced(period: BillingPeriod) -> bool:
    return period.status == "invoiced" or period.invoices_generated


def _already_invoiced(period: BillingPeriod) -> str:
    return f"Billing period {period.label} is already invoiced"


@dataclass(frozen=True)
class InvoiceGenerationResult:
    """Outcome of one invoice generation run."""

    created: int
    reason: str = ""
    invoices: tuple[Invoice, ...] = ()
    # Agency name -> number of timesheets, visits or renders that failed
    failures: dict[str, int] = field(default_factory=dict)
    next_period_id: Optional[int] = None

    @property
    def failed(self) -> int:
        return sum(self.failures.values())


@dataclass(frozen=True)
class PayrollReport:
    rows: tuple[PayrollRow, ...]
    total_payroll: Decimal
    total_hours: Decimal
    clinician_count: int


@dataclass(frozen=True)
class PayrollGenerationResult:
    created: int
    skipped: int
    payment_ids: tuple[int, ...] = ()
    failures: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class CycleCheckResult:
    """What a cycle check did: invoice runs per period label, and the overdue sweep."""

    generated: dict[str, InvoiceGenerationResult]
    closed_without_invoices: tuple[str, ...]
    overdue_marked: int


@dataclass
class _PayrollBucket:
    clinician_id: Optional[int]
    name: str
    title: str
    pay_rate: Decimal
    total_minutes: int = 0
    total_visits: int = 0
    timesheet_ids: set = field(default_factory=set)
    agency_ids: set = field(default_factory=set)


class _Lookup:
    """Per-run memo of registry entities by id."""

    def __init__(self, db: Database):
        self.db = db
        self._agencies: dict[int, Optional[Agency]] = {}
        self._clinicians: dict[int, Optional[Clinician]] = {}
        self._patients: dict[int, Optional[Patient]] = {}

    def agency(self, agency_id: Optional[int]) -> Optional[Agency]:
        if agency_id is None:
            return None
        if agency_id not in self._agencies:
            self._agencies[agency_id] = self.db.get_agency(agency_id)
        return self._agencies[agency_id]

    def clinician(self, clinician_id: Optional[int]) -> Optional[Clinician]:
        if clinician_id is None:
            return None
        if clinician_id not in self._clinicians:
            self._clinicians[clinician_id] = self.db.get_clinician(clinician_id)
        return self._clinicians[clinician_id]

    def patient(self, patient_id: Optional[int]) -> Optional[Patient]:
        if patient_id is None:
            return None
        if patient_id not in self._patients:
            self._patients[patient_id] = self.db.get_patient(patient_id)
        return self._patients[patient_id]


def line_item_sort_key(item: InvoiceLineItem) -> tuple:
    """Patient name (case-insensitive), then visit date; undated visits first."""
    return (item.patient_name.lower(), item.visit_date or date.min)


def build_line_items(
    timesheets: list[Timesheet],
    agency: Agency,
    system_default_rate: Decimal,
    lookup: _Lookup,
) -> tuple[list[InvoiceLineItem], int]:
    """Price every visit of the timesheets for one agency.

    Returns:
        (line items sorted for presentation, number of visits skipped)
    """
    items = []
    skipped = 0
    for timesheet in timesheets:
        clinician = lookup.clinician(timesheet.clinician_id)
        patient = lookup.patient(timesheet.patient_id)
        patient_name = (patient.name if patient else None) or timesheet.patient_name or UNKNOWN_NAME
        clinician_name = (clinician.name if clinician else None) or timesheet.employee_name or ""
        clinician_title = timesheet.employee_title or (clinician.title if clinician else None) or ""

        for visit in timesheet.visits:
            try:
                rate = resolve_rate(agency, visit.visit_code, system_default_rate)
            except ArithmeticError as e:
                skipped += 1
                logger.warning("Skipped visit %s on timesheet %s: %s", visit.id, timesheet.id, e)
                continue
            visit_code = (visit.visit_code or "").strip()
            items.append(
                InvoiceLineItem(
                    timesheet_id=timesheet.id,
                    patient_name=patient_name,
                    clinician_name=clinician_name,
                    clinician_title=clinician_title,
                    visit_date=visit.visit_date,
                    time_in=visit.time_in or "",
                    time_out=visit.time_out or "",
                    duration_minutes=visit.duration_minutes or 0,
                    visit_code=visit_code,
                    care_type=visit_code or clinician_title or "Visit",
                    rate=rate,
                    # Flat per-visit billing
                    amount=rate,
                )
            )
    items.sort(key=line_item_sort_key)
    return items, skipped


class BillingService:
    """Turns billable visits into invoices and payroll."""

    def __init__(
        self,
        db: Database,
        settings: Optional[SettingsService] = None,
        renderer: Optional[InvoiceRenderer] = None,
    ):
        """Initialize billing service.

        Args:
            db: Database instance
            settings: Optional settings service (created from db if omitted)
            renderer: Optional document renderer run for each new invoice
        """
        self.db = db
        self.settings = settings or SettingsService(db)
        self.renderer = renderer
        self.periods = PeriodService(db, self.settings)
        self.invoices = InvoiceService(db, renderer)

    # Invoices
    def _draft(
        self,
        agency: Agency,
        period: BillingPeriod,
        timesheets: list[Timesheet],
        today: date,
        lookup: _Lookup,
    ) -> InvoiceDraft:
        items, skipped = build_line_items(timesheets, agency, self.settings.default_billing_rate, lookup)
        subtotal = round2(sum((item.amount for item in items), Decimal("0")))
        return InvoiceDraft(
            agency_id=agency.id,
            agency_name=agency.name,
            billing_period_id=period.id,
            timesheet_ids=tuple(t.id for t in timesheets),
            line_items=tuple(items),
            subtotal=subtotal,
            total=subtotal,
            # 0 days means due on receipt
            due_date=today + timedelta(days=agency.payment_terms_days or 0),
            skipped_visits=skipped,
        )

    def preview_invoice(self, agency_id: int, period_id: int, today: Optional[date] = None) -> Optional[InvoiceDraft]:
        """What the agency's invoice for a period looks like, including already-invoiced work.

        Returns:
            InvoiceDraft (possibly without line items), or None if the agency
            or period does not exist
        """
        period = self.db.get_billing_period(period_id)
        agency = self.db.get_agency(agency_id)
        if period is None or agency is None:
            return None
        timesheets = self.db.list_timesheets(
            billing_period_ids=[period_id], statuses=BILLABLE_TIMESHEET_STATUSES, agency_id=agency_id
        )
        return self._draft(agency, period, timesheets, today or date.today(), _Lookup(self.db))

    def preview_invoices(self, period_id: int, today: Optional[date] = None) -> list[InvoiceDraft]:
        """Previews for every agency with billable visits in the period."""
        timesheets = self.db.list_timesheets(billing_period_ids=[period_id], statuses=BILLABLE_TIMESHEET_STATUSES)
        agency_ids = sorted({t.agency_id for t in timesheets if t.agency_id is not None})
        previews = []
        for agency_id in agency_ids:
            preview = self.preview_invoice(agency_id, period_id, today=today)
            if preview is not None and preview.line_items:
                previews.append(preview)
        return previews

    def compute_invoices(self, period_id: int, today: Optional[date] = None) -> list[InvoiceDraft]:
        """Drafts over unclaimed processed/reviewed timesheets, one per agency with visits."""
        period = self.db.get_billing_period(period_id)
        if period is None:
            return []
        drafts, _ = self._collect_drafts(period, today or date.today())
        return drafts

    def _collect_drafts(self, period: BillingPeriod, today: date) -> tuple[list[InvoiceDraft], dict[str, int]]:
        timesheets = self.db.list_timesheets(
            billing_period_ids=[period.id], statuses=INVOICEABLE_TIMESHEET_STATUSES, unclaimed=True
        )
        failures: dict[str, int] = defaultdict(int)
        by_agency: dict[int, list[Timesheet]] = defaultdict(list)
        for timesheet in timesheets:
            if timesheet.agency_id is None:
                failures[UNASSIGNED_AGENCY] += 1
                logger.warning("Timesheet %s has no agency; not invoiced", timesheet.id)
                continue
            by_agency[timesheet.agency_id].append(timesheet)

        lookup = _Lookup(self.db)
        drafts = []
        for agency_id in sorted(by_agency):
            agency = lookup.agency(agency_id)
            if agency is None:
                failures[f"agency {agency_id}"] += len(by_agency[agency_id])
                logger.warning("Agency %s no longer exists; %d timesheet(s) not invoiced", agency_id, len(by_agency[agency_id]))
                continue
            draft = self._draft(agency, period, by_agency[agency_id], today, lookup)
            if draft.skipped_visits:
                failures[agency.name] += draft.skipped_visits
            if draft.line_items:
                drafts.append(draft)
        return drafts, dict(failures)

    def generate_invoices(self, period_id: int, today: Optional[date] = None) -> InvoiceGenerationResult:
        """Create and persist invoices for a billing period.

        Safe to re-run: a missing or already-invoiced period yields zero
        invoices with a reason, and timesheets are claimed atomically with
        each invoice so concurrent runs cannot bill a visit twice. One
        agency's failure never stops the others.
        """
        today = today or date.today()
        period = self.db.get_billing_period(period_id)
        if period is None:
            return InvoiceGenerationResult(created=0, reason=f"Billing period {period_id} not found")
        if _is_invoiced(period):
            return InvoiceGenerationResult(created=0, reason=_already_invoiced(period))

        drafts, failures = self._collect_drafts(period, today)
        if not drafts:
            return InvoiceGenerationResult(
                created=0, reason="No processed timesheets found for this period", failures=failures
            )

        biller_name = self.settings.biller_name
        created = []
        for draft in drafts:
            try:
                invoice = self.db.create_invoice(
                    agency_id=draft.agency_id,
                    billing_period_id=draft.billing_period_id,
                    timesheet_ids=list(draft.timesheet_ids),
                    line_items=list(draft.line_items),
                    subtotal=draft.subtotal,
                    due_date=draft.due_date,
                    year=today.year,
                )
            except ConflictError as e:
                failures[draft.agency_name] = failures.get(draft.agency_name, 0) + 1
                logger.warning("Invoice for %s not created: %s", draft.agency_name, e)
                continue

            if self.renderer is not None:
                invoice = self._render(invoice, draft, period, biller_name, failures)
            created.append(invoice)
            logger.info(
                "Created %s for %s: %d visit(s), %s", invoice.invoice_number, draft.agency_name, draft.visit_count, invoice.total
            )

        if not created:
            # Every claim failed; a concurrent run may have invoiced the period
            current = self.db.get_billing_period(period.id)
            if current is not None and _is_invoiced(current):
                reason = _already_invoiced(current)
            else:
                reason = f"No invoices created; {sum(failures.values())} failure(s)"
            logger.warning("Period %s: %s", period.label, reason)
            return InvoiceGenerationResult(created=0, reason=reason, failures=failures)

        next_period_id = self._mark_invoiced(period.id)
        logger.info("Generated %d invoice(s) for period %s", len(created), period.label)
        return InvoiceGenerationResult(
            created=len(created), invoices=tuple(created), failures=failures, next_period_id=next_period_id
        )

    def _render(
        self,
        invoice: Invoice,
        draft: InvoiceDraft,
        period: BillingPeriod,
        biller_name: str,
        failures: dict[str, int],
    ) -> Invoice:
        agency = self.db.get_agency(invoice.agency_id)
        try:
            artifact_ref = self.renderer.render(invoice, agency, period, biller_name)
        except Exception:
            # The invoice stands without its document; it can be rendered later
            failures[draft.agency_name] = failures.get(draft.agency_name, 0) + 1
            logger.exception("Rendering %s failed", invoice.invoice_number)
            return invoice
        self.db.update_invoice(invoice.id, pdf_path=artifact_ref)
        return self.db.get_invoice(invoice.id)

    def _mark_invoiced(self, period_id: int) -> Optional[int]:
        """Move the period to invoiced unless another run already has.

        Returns:
            ID of the period opened next, or None
        """
        period = self.db.get_billing_period(period_id)
        if period is None or _is_invoiced(period):
            return None
        try:
            if period.status == "open":
                next_period = self.periods.close_period(period.id, status="invoiced")
                return next_period.id if next_period else None
            self.db.close_billing_period(
                period.id,
                status="invoiced",
                closed_at=period.closed_at or datetime.now(UTC),
                invoices_generated=True,
                expected_status=period.status,
            )
        except (ConflictError, ValidationError) as e:
            logger.info("Period %s was closed by another run: %s", period.label, e)
        return None

    # Payroll
    def _period_ids(
        self, period_id: Optional[int], start_date: Optional[date], end_date: Optional[date]
    ) -> Optional[list[int]]:
        if period_id is not None:
            return [period_id]
        if start_date or end_date:
            return [p.id for p in self.periods.periods_in_range(start_date, end_date)]
        return None

    def compute_payroll(
        self,
        period_id: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> PayrollReport:
        """Hours and earnings per clinician over billable timesheets.

        Timesheets without a resolved clinician are grouped by the extracted
        employee name. A clinician without a pay rate still appears, with
        zero earnings. For a single period, an existing payment replaces the
        raw earnings with its total (base plus adjustments).
        """
        period_ids = self._period_ids(period_id, start_date, end_date)
        timesheets = self.db.list_timesheets(billing_period_ids=period_ids, statuses=BILLABLE_TIMESHEET_STATUSES)
        lookup = _Lookup(self.db)

        buckets: dict[tuple, _PayrollBucket] = {}
        for timesheet in timesheets:
            clinician = lookup.clinician(timesheet.clinician_id)
            if clinician is not None:
                key = ("id", clinician.id)
            else:
                key = ("name", timesheet.employee_name or UNKNOWN_NAME)
            bucket = buckets.get(key)
            if bucket is None:
                bucket = _PayrollBucket(
                    clinician_id=clinician.id if clinician else None,
                    name=(clinician.name if clinician else None) or timesheet.employee_name or UNKNOWN_NAME,
                    title=(clinician.title if clinician else None) or timesheet.employee_title or "",
                    pay_rate=clinician.pay_rate if clinician else Decimal("0"),
                )
                buckets[key] = bucket
            bucket.timesheet_ids.add(timesheet.id)
            if timesheet.agency_id is not None:
                bucket.agency_ids.add(timesheet.agency_id)
            for visit in timesheet.visits:
                bucket.total_minutes += visit.duration_minutes or 0
                bucket.total_visits += 1

        rows = [self._payroll_row(bucket, period_id, lookup) for bucket in buckets.values()]
        rows.sort(key=lambda r: (r.name.lower(), r.clinician_id or 0))
        return PayrollReport(
            rows=tuple(rows),
            total_payroll=round2(sum((r.final_amount for r in rows), Decimal("0"))),
            total_hours=round2(sum((r.total_hours for r in rows), Decimal("0"))),
            clinician_count=len(rows),
        )

    def _payroll_row(self, bucket: _PayrollBucket, period_id: Optional[int], lookup: _Lookup) -> PayrollRow:
        earnings = round2(Decimal(bucket.total_minutes) * bucket.pay_rate / 60)
        payment = None
        if period_id is not None:
            payment = self.db.find_payroll_payment(bucket.clinician_id, bucket.name, billing_period_id=period_id)
        agencies = sorted(
            agency.name for agency in (lookup.agency(aid) for aid in bucket.agency_ids) if agency is not None
        )
        return PayrollRow(
            clinician_id=bucket.clinician_id,
            name=bucket.name,
            title=bucket.title,
            pay_rate=round2(bucket.pay_rate),
            total_minutes=bucket.total_minutes,
            total_hours=round2(Decimal(bucket.total_minutes) / 60),
            total_visits=bucket.total_visits,
            earnings=earnings,
            final_amount=payment.total_amount if payment else earnings,
            timesheet_count=len(bucket.timesheet_ids),
            agencies=tuple(agencies),
            payment_id=payment.id if payment else None,
            payment_status=payment.status if payment else None,
        )

    def generate_payroll_payments(
        self,
        period_id: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        period_label: str = "",
    ) -> PayrollGenerationResult:
        """Create a pending payment for every clinician in the payroll without one."""
        if period_id is not None and not period_label:
            period = self.db.get_billing_period(period_id)
            period_label = period.label if period else ""

        report = self.compute_payroll(period_id=period_id, start_date=start_date, end_date=end_date)
        payment_ids = []
        skipped = 0
        failures: dict[str, int] = {}
        for row in report.rows:
            existing = self.db.find_payroll_payment(
                row.clinician_id, row.name, billing_period_id=period_id, period_label=period_label
            )
            if existing is not None:
                skipped += 1
                continue
            try:
                payment_ids.append(
                    self.db.create_payroll_payment(
                        clinician_id=row.clinician_id,
                        clinician_name=row.name,
                        clinician_title=row.title,
                        billing_period_id=period_id,
                        period_label=period_label,
                        base_amount=row.earnings,
                        base_hours=row.total_hours,
                        base_visits=row.total_visits,
                        pay_rate=row.pay_rate,
                    )
                )
            except DomainError as e:
                failures[row.name] = failures.get(row.name, 0) + 1
                logger.warning("Payroll payment for %s not created: %s", row.name, e)

        logger.info("Created %d payroll payment(s), skipped %d existing", len(payment_ids), skipped)
        return PayrollGenerationResult(
            created=len(payment_ids), skipped=skipped, payment_ids=tuple(payment_ids), failures=failures
        )

    # Scheduled work
    def run_cycle_check(self, today: Optional[date] = None) -> CycleCheckResult:
        """Daily billing cycle check.

        With auto generation enabled, every open period that has ended is
        invoiced (or, with nothing to invoice, closed so the next period
        opens). Sent invoices past their due date are marked overdue either way.
        """
        today = today or date.today()
        generated: dict[str, InvoiceGenerationResult] = {}
        closed_empty = []

        if self.settings.auto_generate_invoices:
            ended = [
                p
                for p in self.db.list_billing_periods(status="open")
                if p.end_date < today and not p.invoices_generated
            ]
            for period in sorted(ended, key=lambda p: p.start_date):
                logger.info("Period %s has ended; generating invoices", period.label)
                result = self.generate_invoices(period.id, today=today)
                generated[period.label] = result
                if result.created == 0:
                    refreshed = self.db.get_billing_period(period.id)
                    if refreshed is not None and refreshed.status == "open":
                        self.periods.close_period(period.id, status="closed")
                        closed_empty.append(period.label)

        overdue = self.invoices.sweep_overdue(today)
        return CycleCheckResult(
            generated=generated, closed_without_invoices=tuple(closed_empty), overdue_marked=overdue
        )
