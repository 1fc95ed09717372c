"""Abstract database interface."""

from abc import ABC, abstractmethod
from typing import Optional, Any
from datetime import date, datetime
from decimal import Decimal

# Import entities directly to avoid circular import through the domain services
from carebill.domain.entities import (
    Agency,
    Clinician,
    Patient,
    BillingCode,
    BillingPeriod,
    PeriodWindow,
    Timesheet,
    Invoice,
    InvoiceLineItem,
    PayrollPayment,
)


class Database(ABC):
    """Abstract database interface for carebill."""

    @abstractmethod
    def connect(self) -> None:
        """Connect to the database."""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Disconnect from the database."""
        pass

    @abstractmethod
    def initialize_schema(self) -> None:
        """Initialize database schema (create tables)."""
        pass

    # Agency operations
    @abstractmethod
    def create_agency(
        self,
        name: str,
        default_rate: Optional[Decimal] = None,
        payment_terms_days: int = 30,
        rates: Optional[dict[str, Decimal]] = None,
        contact_name: Optional[str] = None,
        contact_email: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> int:
        """Create an agency. Returns agency ID.

        Raises:
            ConflictError: If an agency with the same normalized name exists
        """
        pass

    @abstractmethod
    def get_or_create_agency(self, name: str) -> tuple[Agency, bool]:
        """Fetch the agency with this normalized name, creating it if absent.

        Returns:
            (agency, created)
        """
        pass

    @abstractmethod
    def get_agency(self, agency_id: int) -> Optional[Agency]:
        """Get agency by ID."""
        pass

    @abstractmethod
    def list_agencies(self, include_inactive: bool = False) -> list[Agency]:
        """List agencies ordered by name."""
        pass

    @abstractmethod
    def update_agency(self, agency_id: int, **fields: Any) -> None:
        """Update agency fields.

        Accepted fields: name, default_rate, payment_terms_days, contact_name,
        contact_email, notes, active. A field passed as None is cleared only
        for default_rate; other None values are ignored.
        """
        pass

    @abstractmethod
    def set_agency_rate(self, agency_id: int, code: str, rate: Decimal) -> None:
        """Set (insert or replace) a rate card entry."""
        pass

    @abstractmethod
    def remove_agency_rate(self, agency_id: int, code: str) -> None:
        """Remove a rate card entry."""
        pass

    # Clinician operations
    @abstractmethod
    def create_clinician(
        self,
        name: str,
        title: Optional[str] = None,
        pay_rate: Decimal = Decimal("0"),
        agency_ids: Optional[list[int]] = None,
        email: Optional[str] = None,
    ) -> int:
        """Create a clinician. Returns clinician ID."""
        pass

    @abstractmethod
    def get_or_create_clinician(self, name: str, title: Optional[str] = None) -> tuple[Clinician, bool]:
        """Fetch the clinician with this normalized name, creating it if absent."""
        pass

    @abstractmethod
    def get_clinician(self, clinician_id: int) -> Optional[Clinician]:
        """Get clinician by ID."""
        pass

    @abstractmethod
    def list_clinicians(self, include_inactive: bool = False) -> list[Clinician]:
        """List clinicians ordered by name."""
        pass

    @abstractmethod
    def update_clinician(self, clinician_id: int, **fields: Any) -> None:
        """Update clinician fields (name, title, pay_rate, email, active, agency_ids)."""
        pass

    # Patient operations
    @abstractmethod
    def create_patient(
        self,
        name: str,
        agency_id: Optional[int] = None,
        clinical_record_number: Optional[str] = None,
        address: Optional[str] = None,
    ) -> int:
        """Create a patient. Returns patient ID.

        Raises:
            ConflictError: If the normalized name is taken
            DuplicateRecordNumberError: If the record number is taken
        """
        pass

    @abstractmethod
    def get_or_create_patient(
        self,
        name: str,
        agency_id: Optional[int] = None,
        clinical_record_number: Optional[str] = None,
        address: Optional[str] = None,
    ) -> tuple[Patient, bool]:
        """Fetch the patient with this normalized name, creating it if absent."""
        pass

    @abstractmethod
    def get_patient(self, patient_id: int) -> Optional[Patient]:
        """Get patient by ID."""
        pass

    @abstractmethod
    def get_patient_by_record_number(self, clinical_record_number: str) -> Optional[Patient]:
        """Get patient (active or inactive) by clinical record number."""
        pass

    @abstractmethod
    def list_patients(self, include_inactive: bool = False) -> list[Patient]:
        """List patients ordered by name."""
        pass

    @abstractmethod
    def update_patient(self, patient_id: int, **fields: Any) -> None:
        """Update patient fields (name, agency_id, clinical_record_number, address, active)."""
        pass

    # Billing code operations
    @abstractmethod
    def create_billing_code(self, code: str, description: str = "", default_rate: Decimal = Decimal("0")) -> int:
        """Create a billing code. Returns billing code ID."""
        pass

    @abstractmethod
    def get_billing_code(self, code: str) -> Optional[BillingCode]:
        """Get billing code by its code string."""
        pass

    @abstractmethod
    def list_billing_codes(self, include_inactive: bool = False) -> list[BillingCode]:
        """List billing codes ordered by code."""
        pass

    # Settings operations
    @abstractmethod
    def get_setting(self, key: str) -> Any:
        """Get a setting value, or None if unset."""
        pass

    @abstractmethod
    def set_setting(self, key: str, value: Any) -> None:
        """Store a setting value."""
        pass

    @abstractmethod
    def list_settings(self) -> dict[str, Any]:
        """Return every stored setting."""
        pass

    # Billing period operations
    @abstractmethod
    def create_billing_period(self, start_date: date, end_date: date, label: str, status: str = "open") -> int:
        """Create a billing period. Returns period ID.

        Raises:
            ConflictError: If the period would be a second open period
        """
        pass

    @abstractmethod
    def get_or_create_open_billing_period(self, window: PeriodWindow) -> tuple[BillingPeriod, bool]:
        """Return the open period, opening one for the window if none exists.

        Returns:
            (period, created)
        """
        pass

    @abstractmethod
    def get_billing_period(self, period_id: int) -> Optional[BillingPeriod]:
        """Get billing period by ID."""
        pass

    @abstractmethod
    def get_open_billing_period(self) -> Optional[BillingPeriod]:
        """Get the most recent open billing period."""
        pass

    @abstractmethod
    def list_billing_periods(self, limit: int = 100, status: Optional[str] = None) -> list[BillingPeriod]:
        """List billing periods, most recent start date first."""
        pass

    @abstractmethod
    def list_billing_periods_overlapping(
        self, start_date: Optional[date] = None, end_date: Optional[date] = None
    ) -> list[BillingPeriod]:
        """List billing periods overlapping a date range."""
        pass

    @abstractmethod
    def update_billing_period(
        self,
        period_id: int,
        label: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> None:
        """Update billing period label or bounds."""
        pass

    @abstractmethod
    def close_billing_period(
        self,
        period_id: int,
        status: str,
        closed_at: datetime,
        invoices_generated: bool = False,
        next_window: Optional[PeriodWindow] = None,
        expected_status: str = "open",
    ) -> Optional[int]:
        """Close a period, optionally opening the next one in the same transaction.

        The period is only changed while its status is still ``expected_status``.

        Returns:
            ID of the newly opened period, or None

        Raises:
            ConflictError: If the period's status changed in the meantime, or
                another period was opened concurrently
        """
        pass

    @abstractmethod
    def delete_billing_period(self, period_id: int) -> None:
        """Delete a billing period, detaching its timesheets."""
        pass

    # Timesheet operations
    @abstractmethod
    def create_timesheet(self, visits: list[dict[str, Any]], **fields: Any) -> int:
        """Create a timesheet with its visits. Returns timesheet ID.

        Each visit dict has visit_date, time_in, time_out, duration_minutes
        and visit_code.
        """
        pass

    @abstractmethod
    def get_timesheet(self, timesheet_id: int) -> Optional[Timesheet]:
        """Get timesheet by ID."""
        pass

    @abstractmethod
    def list_timesheets(
        self,
        billing_period_ids: Optional[list[int]] = None,
        statuses: Optional[tuple[str, ...]] = None,
        agency_id: Optional[int] = None,
        clinician_id: Optional[int] = None,
        unclaimed: bool = False,
    ) -> list[Timesheet]:
        """List timesheets with optional filters, oldest first.

        Args:
            billing_period_ids: Only timesheets in these periods
            statuses: Only timesheets with these statuses
            agency_id: Only timesheets for this agency
            clinician_id: Only timesheets for this clinician
            unclaimed: If True, only timesheets not attached to an invoice
        """
        pass

    @abstractmethod
    def update_timesheet(self, timesheet_id: int, **fields: Any) -> None:
        """Update timesheet fields."""
        pass

    @abstractmethod
    def delete_timesheet(self, timesheet_id: int) -> None:
        """Delete a timesheet and its visits."""
        pass

    @abstractmethod
    def list_distinct_employee_names(self) -> list[str]:
        """Sorted distinct extracted employee names."""
        pass

    @abstractmethod
    def list_distinct_visit_codes(self) -> list[str]:
        """Sorted distinct visit codes."""
        pass

    # Invoice operations
    @abstractmethod
    def create_invoice(
        self,
        agency_id: int,
        billing_period_id: int,
        timesheet_ids: list[int],
        line_items: list[InvoiceLineItem],
        subtotal: Decimal,
        due_date: date,
        year: int,
    ) -> Invoice:
        """Create an invoice and claim its timesheets in one transaction.

        Timesheets are claimed only if still unattached to any invoice. If any
        of them was claimed in the meantime, nothing is written.

        Raises:
            ConflictError: If the timesheets could not all be claimed
        """
        pass

    @abstractmethod
    def get_invoice(self, invoice_id: int) -> Optional[Invoice]:
        """Get invoice by ID."""
        pass

    @abstractmethod
    def list_invoices(
        self,
        status: Optional[str] = None,
        billing_period_id: Optional[int] = None,
        agency_id: Optional[int] = None,
        billing_period_ids: Optional[list[int]] = None,
    ) -> list[Invoice]:
        """List invoices, newest first."""
        pass

    @abstractmethod
    def update_invoice(self, invoice_id: int, expected_status: Optional[str] = None, **fields: Any) -> bool:
        """Update invoice fields.

        Args:
            invoice_id: Invoice ID
            expected_status: If given, only update while the invoice still has
                this status

        Returns:
            True if the invoice was updated
        """
        pass

    @abstractmethod
    def add_invoice_adjustment(self, invoice_id: int, amount: Decimal) -> None:
        """Add to the invoice adjustments and recompute the total."""
        pass

    @abstractmethod
    def mark_overdue_invoices(self, today: date) -> int:
        """Move sent invoices past their due date to overdue. Returns count."""
        pass

    @abstractmethod
    def delete_invoice(self, invoice_id: int) -> None:
        """Delete an invoice, releasing its timesheets back to processed."""
        pass

    # Payroll operations
    @abstractmethod
    def create_payroll_payment(self, **fields: Any) -> int:
        """Create a payroll payment. Returns payment ID."""
        pass

    @abstractmethod
    def get_payroll_payment(self, payment_id: int) -> Optional[PayrollPayment]:
        """Get payroll payment by ID."""
        pass

    @abstractmethod
    def find_payroll_payment(
        self,
        clinician_id: Optional[int],
        clinician_name: str,
        billing_period_id: Optional[int] = None,
        period_label: Optional[str] = None,
    ) -> Optional[PayrollPayment]:
        """Find the payment for a clinician in a period (by ID, else by name)."""
        pass

    @abstractmethod
    def list_payroll_payments(
        self, status: Optional[str] = None, billing_period_id: Optional[int] = None
    ) -> list[PayrollPayment]:
        """List payroll payments, newest first."""
        pass

    @abstractmethod
    def add_payroll_adjustment(self, payment_id: int, type: str, amount: Decimal, reason: str = "") -> None:
        """Append an adjustment and recompute the payment total."""
        pass

    @abstractmethod
    def update_payroll_payment(self, payment_id: int, expected_status: Optional[str] = None, **fields: Any) -> bool:
        """Update payroll payment fields. Returns True if updated."""
        pass

    @abstractmethod
    def delete_payroll_payment(self, payment_id: int) -> None:
        """Delete a payroll payment."""
        pass
