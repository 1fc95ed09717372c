"""Mapper functions to convert between domain models and SQLAlchemy models.

This layer isolates the conversion logic, so services never see ORM objects
and schema changes stay inside the database package.
"""

import json
from decimal import Decimal
from typing import Any, Optional

from carebill.domain import entities as domain
from carebill.database.models import (
    Agency as ORMAgency,
    Clinician as ORMClinician,
    Patient as ORMPatient,
    BillingCode as ORMBillingCode,
    BillingPeriod as ORMBillingPeriod,
    Timesheet as ORMTimesheet,
    Visit as ORMVisit,
    Invoice as ORMInvoice,
    InvoiceLineItem as ORMInvoiceLineItem,
    PayrollPayment as ORMPayrollPayment,
    PayrollAdjustment as ORMPayrollAdjustment,
)


def _money(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(value).quantize(Decimal("0.01"))


def agency_to_domain(orm_agency: ORMAgency) -> domain.Agency:
    """Convert SQLAlchemy Agency model to domain Agency entity."""
    return domain.Agency(
        id=orm_agency.id,
        name=orm_agency.name,
        default_rate=_money(orm_agency.default_rate),
        payment_terms_days=orm_agency.payment_terms_days,
        active=orm_agency.active,
        created_at=orm_agency.created_at,
        rates={r.code: _money(r.rate) for r in orm_agency.rates},
        contact_name=orm_agency.contact_name,
        contact_email=orm_agency.contact_email,
        notes=orm_agency.notes,
    )


def clinician_to_domain(orm_clinician: ORMClinician) -> domain.Clinician:
    """Convert SQLAlchemy Clinician model to domain Clinician entity."""
    return domain.Clinician(
        id=orm_clinician.id,
        name=orm_clinician.name,
        title=orm_clinician.title,
        pay_rate=_money(orm_clinician.pay_rate) or Decimal("0.00"),
        active=orm_clinician.active,
        created_at=orm_clinician.created_at,
        agency_ids=tuple(a.id for a in orm_clinician.agencies),
        email=orm_clinician.email,
    )


def patient_to_domain(orm_patient: ORMPatient) -> domain.Patient:
    """Convert SQLAlchemy Patient model to domain Patient entity."""
    return domain.Patient(
        id=orm_patient.id,
        name=orm_patient.name,
        agency_id=orm_patient.agency_id,
        clinical_record_number=orm_patient.clinical_record_number,
        active=orm_patient.active,
        created_at=orm_patient.created_at,
        address=orm_patient.address,
    )


def billing_code_to_domain(orm_code: ORMBillingCode) -> domain.BillingCode:
    """Convert SQLAlchemy BillingCode model to domain BillingCode entity."""
    return domain.BillingCode(
        id=orm_code.id,
        code=orm_code.code,
        description=orm_code.description,
        default_rate=_money(orm_code.default_rate),
        active=orm_code.active,
    )


def billing_period_to_domain(orm_period: ORMBillingPeriod) -> domain.BillingPeriod:
    """Convert SQLAlchemy BillingPeriod model to domain BillingPeriod entity."""
    return domain.BillingPeriod(
        id=orm_period.id,
        start_date=orm_period.start_date,
        end_date=orm_period.end_date,
        label=orm_period.label,
        status=orm_period.status,
        invoices_generated=orm_period.invoices_generated,
        created_at=orm_period.created_at,
        closed_at=orm_period.closed_at,
    )


def visit_to_domain(orm_visit: ORMVisit) -> domain.VisitRecord:
    """Convert SQLAlchemy Visit model to domain VisitRecord entity."""
    return domain.VisitRecord(
        id=orm_visit.id,
        timesheet_id=orm_visit.timesheet_id,
        visit_date=orm_visit.visit_date,
        time_in=orm_visit.time_in,
        time_out=orm_visit.time_out,
        duration_minutes=orm_visit.duration_minutes or 0,
        visit_code=orm_visit.visit_code,
    )


def timesheet_to_domain(orm_timesheet: ORMTimesheet) -> domain.Timesheet:
    """Convert SQLAlchemy Timesheet model to domain Timesheet entity."""
    return domain.Timesheet(
        id=orm_timesheet.id,
        status=orm_timesheet.status,
        billing_period_id=orm_timesheet.billing_period_id,
        agency_id=orm_timesheet.agency_id,
        clinician_id=orm_timesheet.clinician_id,
        patient_id=orm_timesheet.patient_id,
        invoice_id=orm_timesheet.invoice_id,
        company=orm_timesheet.company,
        employee_name=orm_timesheet.employee_name,
        employee_title=orm_timesheet.employee_title,
        patient_name=orm_timesheet.patient_name,
        clinical_record_number=orm_timesheet.clinical_record_number,
        confidence=orm_timesheet.confidence,
        flag_reason=orm_timesheet.flag_reason,
        source_filename=orm_timesheet.source_filename,
        created_at=orm_timesheet.created_at,
        visits=tuple(visit_to_domain(v) for v in orm_timesheet.visits),
        reviewed_at=orm_timesheet.reviewed_at,
    )


def line_item_to_domain(orm_item: ORMInvoiceLineItem) -> domain.InvoiceLineItem:
    """Convert SQLAlchemy InvoiceLineItem model to domain InvoiceLineItem entity."""
    return domain.InvoiceLineItem(
        timesheet_id=orm_item.timesheet_id,
        patient_name=orm_item.patient_name,
        clinician_name=orm_item.clinician_name,
        clinician_title=orm_item.clinician_title,
        visit_date=orm_item.visit_date,
        time_in=orm_item.time_in,
        time_out=orm_item.time_out,
        duration_minutes=orm_item.duration_minutes,
        visit_code=orm_item.visit_code,
        care_type=orm_item.care_type,
        rate=_money(orm_item.rate),
        amount=_money(orm_item.amount),
    )


def line_item_to_orm(item: domain.InvoiceLineItem, position: int) -> ORMInvoiceLineItem:
    """Convert a domain InvoiceLineItem to a new SQLAlchemy row."""
    return ORMInvoiceLineItem(
        position=position,
        timesheet_id=item.timesheet_id,
        patient_name=item.patient_name,
        clinician_name=item.clinician_name,
        clinician_title=item.clinician_title,
        visit_date=item.visit_date,
        time_in=item.time_in,
        time_out=item.time_out,
        duration_minutes=item.duration_minutes,
        visit_code=item.visit_code,
        care_type=item.care_type,
        rate=item.rate,
        amount=item.amount,
    )


def invoice_to_domain(orm_invoice: ORMInvoice) -> domain.Invoice:
    """Convert SQLAlchemy Invoice model to domain Invoice entity."""
    return domain.Invoice(
        id=orm_invoice.id,
        invoice_number=orm_invoice.invoice_number,
        agency_id=orm_invoice.agency_id,
        billing_period_id=orm_invoice.billing_period_id,
        status=orm_invoice.status,
        subtotal=_money(orm_invoice.subtotal),
        adjustments=_money(orm_invoice.adjustments),
        total=_money(orm_invoice.total),
        due_date=orm_invoice.due_date,
        created_at=orm_invoice.created_at,
        timesheet_ids=tuple(t.id for t in orm_invoice.timesheets),
        line_items=tuple(line_item_to_domain(li) for li in orm_invoice.line_items),
        sent_at=orm_invoice.sent_at,
        paid_at=orm_invoice.paid_at,
        paid_amount=_money(orm_invoice.paid_amount),
        payment_notes=orm_invoice.payment_notes,
        notes=orm_invoice.notes,
        pdf_path=orm_invoice.pdf_path,
    )


def adjustment_to_domain(orm_adjustment: ORMPayrollAdjustment) -> domain.PayrollAdjustment:
    """Convert SQLAlchemy PayrollAdjustment model to domain PayrollAdjustment entity."""
    return domain.PayrollAdjustment(
        type=orm_adjustment.type,
        amount=_money(orm_adjustment.amount),
        reason=orm_adjustment.reason,
    )


def payroll_payment_to_domain(orm_payment: ORMPayrollPayment) -> domain.PayrollPayment:
    """Convert SQLAlchemy PayrollPayment model to domain PayrollPayment entity."""
    return domain.PayrollPayment(
        id=orm_payment.id,
        clinician_id=orm_payment.clinician_id,
        clinician_name=orm_payment.clinician_name,
        clinician_title=orm_payment.clinician_title,
        billing_period_id=orm_payment.billing_period_id,
        period_label=orm_payment.period_label,
        base_amount=_money(orm_payment.base_amount),
        base_hours=_money(orm_payment.base_hours),
        base_visits=orm_payment.base_visits,
        pay_rate=_money(orm_payment.pay_rate),
        total_amount=_money(orm_payment.total_amount),
        status=orm_payment.status,
        payment_method=orm_payment.payment_method,
        created_at=orm_payment.created_at,
        adjustments=tuple(adjustment_to_domain(a) for a in orm_payment.adjustments),
        paid_date=orm_payment.paid_date,
        notes=orm_payment.notes,
    )


def setting_value_to_domain(raw: Optional[str]) -> Any:
    """Decode a stored setting value."""
    if raw is None:
        return None
    return json.loads(raw)


def setting_value_to_orm(value: Any) -> str:
    """Encode a setting value for storage."""
    return json.dumps(value)
