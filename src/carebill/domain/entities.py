"""Domain model entities for carebill.

These are pure data classes representing business concepts, independent of
database schema. Services and the pure billing algorithms only ever see these
types; the database layer converts to and from its ORM models in mappers.
"""

from dataclasses import dataclass, field
from datetime import datetime, date
from decimal import Decimal
from typing import Optional


TIMESHEET_STATUSES = ("pending", "processing", "processed", "flagged", "reviewed", "invoiced", "error")
# Timesheets that may still be claimed by a new invoice
INVOICEABLE_TIMESHEET_STATUSES = ("processed", "reviewed")
# Timesheets whose visits count as billable work (previews, payroll)
BILLABLE_TIMESHEET_STATUSES = ("processed", "reviewed", "invoiced")

PERIOD_STATUSES = ("open", "closed", "invoiced")
INVOICE_STATUSES = ("draft", "sent", "paid", "overdue", "void")
PAYMENT_STATUSES = ("pending", "paid")
ADJUSTMENT_TYPES = ("bonus", "deduction", "rate-correction")
PAYMENT_METHODS = ("check", "direct-deposit", "cash", "zelle", "other")


@dataclass(frozen=True)
class Agency:
    """Billing counterparty with its per-visit rate card."""

    id: int
    name: str
    default_rate: Optional[Decimal]
    payment_terms_days: int
    active: bool
    created_at: datetime
    # Ordered mapping of billing code -> flat rate per visit
    rates: dict[str, Decimal] = field(default_factory=dict)
    contact_name: Optional[str] = None
    contact_email: Optional[str] = None
    notes: Optional[str] = None

    def rate_for(self, code: str) -> Optional[Decimal]:
        """Return the rate card entry for a billing code, if any."""
        if not code:
            return None
        return self.rates.get(code)


@dataclass(frozen=True)
class Clinician:
    """Care provider paid by the hour."""

    id: int
    name: str
    title: Optional[str]
    pay_rate: Decimal
    active: bool
    created_at: datetime
    agency_ids: tuple[int, ...] = ()
    email: Optional[str] = None


@dataclass(frozen=True)
class Patient:
    """Patient seen during visits."""

    id: int
    name: str
    agency_id: Optional[int]
    clinical_record_number: Optional[str]
    active: bool
    created_at: datetime
    address: Optional[str] = None


@dataclass(frozen=True)
class BillingCode:
    """Catalogue entry for a visit/billing code."""

    id: int
    code: str
    description: str
    default_rate: Decimal
    active: bool


@dataclass(frozen=True)
class BillingPeriod:
    """Date interval, inclusive on both ends, that scopes invoicing."""

    id: int
    start_date: date
    end_date: date
    label: str
    status: str
    invoices_generated: bool
    created_at: datetime
    closed_at: Optional[datetime] = None

    def contains(self, day: date) -> bool:
        """Return True if the day falls inside the period."""
        return self.start_date <= day <= self.end_date


@dataclass(frozen=True)
class VisitRecord:
    """One clinical visit extracted from a timesheet."""

    id: int
    timesheet_id: int
    visit_date: Optional[date]
    time_in: Optional[str]
    time_out: Optional[str]
    duration_minutes: int
    visit_code: Optional[str]


@dataclass(frozen=True)
class Timesheet:
    """Extracted timesheet with its resolved references and visits."""

    id: int
    status: str
    billing_period_id: Optional[int]
    agency_id: Optional[int]
    clinician_id: Optional[int]
    patient_id: Optional[int]
    invoice_id: Optional[int]
    company: Optional[str]
    employee_name: Optional[str]
    employee_title: Optional[str]
    patient_name: Optional[str]
    clinical_record_number: Optional[str]
    confidence: Optional[float]
    flag_reason: Optional[str]
    source_filename: Optional[str]
    created_at: datetime
    visits: tuple[VisitRecord, ...] = ()
    reviewed_at: Optional[datetime] = None


@dataclass(frozen=True)
class InvoiceLineItem:
    """One billed visit within an invoice."""

    timesheet_id: Optional[int]
    patient_name: str
    clinician_name: str
    clinician_title: str
    visit_date: Optional[date]
    time_in: str
    time_out: str
    duration_minutes: int
    visit_code: str
    care_type: str
    rate: Decimal
    amount: Decimal


@dataclass(frozen=True)
class Invoice:
    """Persisted invoice for one agency and one billing period."""

    id: int
    invoice_number: str
    agency_id: int
    billing_period_id: int
    status: str
    subtotal: Decimal
    adjustments: Decimal
    total: Decimal
    due_date: Optional[date]
    created_at: datetime
    timesheet_ids: tuple[int, ...] = ()
    line_items: tuple[InvoiceLineItem, ...] = ()
    sent_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    paid_amount: Optional[Decimal] = None
    payment_notes: Optional[str] = None
    notes: Optional[str] = None
    pdf_path: Optional[str] = None


@dataclass(frozen=True)
class InvoiceDraft:
    """Unsaved invoice computed from billable visits."""

    agency_id: int
    agency_name: str
    billing_period_id: int
    timesheet_ids: tuple[int, ...]
    line_items: tuple[InvoiceLineItem, ...]
    subtotal: Decimal
    total: Decimal
    due_date: date
    skipped_visits: int = 0

    @property
    def visit_count(self) -> int:
        return len(self.line_items)


@dataclass(frozen=True)
class PayrollAdjustment:
    """Signed correction appended to a payroll payment."""

    type: str
    amount: Decimal
    reason: str = ""


@dataclass(frozen=True)
class PayrollPayment:
    """Payroll record for one clinician, usually per billing period."""

    id: int
    clinician_id: Optional[int]
    clinician_name: str
    clinician_title: str
    billing_period_id: Optional[int]
    period_label: str
    base_amount: Decimal
    base_hours: Decimal
    base_visits: int
    pay_rate: Decimal
    total_amount: Decimal
    status: str
    payment_method: str
    created_at: datetime
    adjustments: tuple[PayrollAdjustment, ...] = ()
    paid_date: Optional[date] = None
    notes: str = ""


@dataclass(frozen=True)
class PayrollRow:
    """Computed payroll line for one clinician."""

    clinician_id: Optional[int]
    name: str
    title: str
    pay_rate: Decimal
    total_minutes: int
    total_hours: Decimal
    total_visits: int
    earnings: Decimal
    final_amount: Decimal
    timesheet_count: int
    agencies: tuple[str, ...] = ()
    payment_id: Optional[int] = None
    payment_status: Optional[str] = None


@dataclass(frozen=True)
class CycleConfig:
    """Billing cycle rules.

    Fixed-length cycles count ``length_days`` from ``anchor_date``; when no
    anchor is configured, cycles start on the most recent ``start_weekday``
    (0 = Monday). Monthly cycles follow calendar months and ignore the rest.
    """

    anchor_date: Optional[date] = None
    length_days: int = 14
    monthly: bool = False
    start_weekday: int = 0


@dataclass(frozen=True)
class PeriodWindow:
    """Computed period bounds, not yet persisted."""

    start_date: date
    end_date: date
    label: str
