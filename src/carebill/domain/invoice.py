"""Invoice lifecycle: status transitions, overdue sweep, adjustments, deletion."""

import logging
from dataclasses import dataclass
from datetime import date, datetime, UTC
from decimal import Decimal
from typing import Optional

from carebill.database.base import Database
from carebill.domain.collaborators import InvoiceMailer, InvoiceRenderer
from carebill.domain.entities import Invoice, INVOICE_STATUSES
from carebill.domain.errors import (
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
    not_found,
)
from carebill.domain.rates import round2

logger = logging.getLogger(__name__)

INVOICE_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "draft": ("sent", "void"),
    "sent": ("paid", "overdue"),
    "overdue": ("paid",),
    "paid": (),
    "void": (),
}

# Statuses whose line items and totals are final
LOCKED_STATUSES = ("paid", "void")


def can_transition(current: str, target: str) -> bool:
    """Return True if an invoice may move from current to target."""
    return target in INVOICE_TRANSITIONS.get(current, ())


def check_invoice_transition(current: str, target: str, invoice_id: Optional[int] = None) -> None:
    """Raise InvalidStateTransitionError unless current -> target is allowed."""
    if target not in INVOICE_STATUSES:
        raise ValidationError(f"Unknown invoice status '{target}'")
    if not can_transition(current, target):
        raise InvalidStateTransitionError("invoice", invoice_id, current, target)


def is_overdue(invoice: Invoice, today: date) -> bool:
    """A sent invoice is overdue once its due date has passed."""
    return invoice.status == "sent" and invoice.due_date is not None and invoice.due_date < today


@dataclass(frozen=True)
class StatusTotal:
    count: int
    amount: Decimal


@dataclass(frozen=True)
class InvoiceSummary:
    """Revenue totals across invoices."""

    total_revenue: Decimal
    paid: StatusTotal
    outstanding: StatusTotal
    overdue: StatusTotal
    drafts: int


class InvoiceService:
    """Service for persisted invoices."""

    def __init__(self, db: Database, renderer: Optional[InvoiceRenderer] = None):
        """Initialize invoice service.

        Args:
            db: Database instance
            renderer: Optional renderer, asked to discard documents of
                deleted invoices
        """
        self.db = db
        self.renderer = renderer

    def get_invoice(self, invoice_id: int) -> Optional[Invoice]:
        return self.db.get_invoice(invoice_id)

    def require_invoice(self, invoice_id: int) -> Invoice:
        invoice = self.db.get_invoice(invoice_id)
        if invoice is None:
            raise NotFoundError(not_found("Invoice", invoice_id))
        return invoice

    def list_invoices(
        self,
        status: Optional[str] = None,
        period_id: Optional[int] = None,
        agency_id: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[Invoice]:
        """List invoices, newest first.

        A date range selects invoices of every billing period overlapping it
        and is ignored when a period is given.
        """
        if status is not None and status not in INVOICE_STATUSES:
            raise ValidationError(f"Unknown invoice status '{status}'")
        period_ids = None
        if period_id is None and (start_date or end_date):
            period_ids = [p.id for p in self.db.list_billing_periods_overlapping(start_date, end_date)]
        return self.db.list_invoices(
            status=status, billing_period_id=period_id, agency_id=agency_id, billing_period_ids=period_ids
        )

    def _transition(self, invoice_id: int, target: str, **fields) -> Invoice:
        invoice = self.require_invoice(invoice_id)
        check_invoice_transition(invoice.status, target, invoice_id)
        updated = self.db.update_invoice(invoice_id, expected_status=invoice.status, status=target, **fields)
        if not updated:
            current = self.require_invoice(invoice_id).status
            raise InvalidStateTransitionError(
                "invoice", invoice_id, current, target, detail="status changed while updating"
            )
        logger.info("Invoice %s: %s -> %s", invoice.invoice_number, invoice.status, target)
        return self.require_invoice(invoice_id)

    def mark_sent(self, invoice_id: int, sent_at: Optional[datetime] = None) -> Invoice:
        """Record that a draft invoice went out by other means."""
        return self._transition(invoice_id, "sent", sent_at=sent_at or datetime.now(UTC))

    def send(self, invoice_id: int, mailer: Optional[InvoiceMailer] = None, sent_at: Optional[datetime] = None) -> Invoice:
        """Send a draft invoice and mark it sent.

        If a mailer is given, delivery happens first; a delivery failure
        propagates and the invoice stays a draft.
        """
        invoice = self.require_invoice(invoice_id)
        check_invoice_transition(invoice.status, "sent", invoice_id)
        if mailer is not None:
            agency = self.db.get_agency(invoice.agency_id)
            if agency is None or not agency.contact_email:
                raise ValidationError("Agency has no contact email configured")
            mailer.send(invoice, agency, invoice.pdf_path)
        return self._transition(invoice_id, "sent", sent_at=sent_at or datetime.now(UTC))

    def mark_paid(
        self,
        invoice_id: int,
        paid_at: Optional[datetime] = None,
        paid_amount: Optional[Decimal] = None,
        notes: Optional[str] = None,
    ) -> Invoice:
        """Mark a sent or overdue invoice paid. The paid amount defaults to the total."""
        invoice = self.require_invoice(invoice_id)
        amount = invoice.total if paid_amount is None else round2(paid_amount)
        if amount < 0:
            raise ValidationError("Paid amount must not be negative")
        fields = {"paid_at": paid_at or datetime.now(UTC), "paid_amount": amount}
        if notes:
            fields["payment_notes"] = notes
        return self._transition(invoice_id, "paid", **fields)

    def void(self, invoice_id: int) -> Invoice:
        """Cancel a draft invoice. Its timesheets stay claimed."""
        return self._transition(invoice_id, "void")

    def mark_overdue(self, invoice_id: int, today: Optional[date] = None) -> Invoice:
        """Move one sent invoice to overdue if its due date has passed."""
        today = today or date.today()
        invoice = self.require_invoice(invoice_id)
        check_invoice_transition(invoice.status, "overdue", invoice_id)
        if not is_overdue(invoice, today):
            raise ValidationError(f"Invoice {invoice.invoice_number} is not past its due date")
        return self._transition(invoice_id, "overdue")

    def sweep_overdue(self, today: Optional[date] = None) -> int:
        """Move every sent invoice past its due date to overdue.

        Returns:
            Number of invoices marked overdue
        """
        count = self.db.mark_overdue_invoices(today or date.today())
        if count:
            logger.info("Marked %d invoice(s) overdue", count)
        return count

    def apply_adjustment(self, invoice_id: int, amount: Decimal) -> Invoice:
        """Add a signed adjustment; the total is recomputed from subtotal + adjustments."""
        invoice = self.require_invoice(invoice_id)
        if invoice.status in LOCKED_STATUSES:
            raise ValidationError(f"Cannot adjust invoice {invoice.invoice_number}: it is {invoice.status}")
        self.db.add_invoice_adjustment(invoice_id, round2(amount))
        return self.require_invoice(invoice_id)

    def update_notes(self, invoice_id: int, notes: str) -> None:
        self.require_invoice(invoice_id)
        self.db.update_invoice(invoice_id, notes=notes)

    def delete_invoice(self, invoice_id: int, force: bool = False) -> Invoice:
        """Delete an invoice and release its timesheets.

        Args:
            invoice_id: Invoice to delete
            force: Required for anything but a draft

        Returns:
            The invoice as it was before deletion
        """
        invoice = self.require_invoice(invoice_id)
        if invoice.status != "draft" and not force:
            raise InvalidStateTransitionError(
                "invoice",
                invoice_id,
                invoice.status,
                "deleted",
                detail="deleting a non-draft invoice requires force",
            )

        self.db.delete_invoice(invoice_id)
        logger.info(
            "Deleted invoice %s (%s), released %d timesheet(s)",
            invoice.invoice_number,
            invoice.status,
            len(invoice.timesheet_ids),
        )
        if invoice.pdf_path and self.renderer is not None:
            try:
                self.renderer.discard(invoice.pdf_path)
            except OSError as e:
                logger.warning("Could not remove document %s: %s", invoice.pdf_path, e)
        return invoice

    def get_summary(self, start_date: Optional[date] = None, end_date: Optional[date] = None) -> InvoiceSummary:
        """Revenue totals by status, optionally limited to periods overlapping a range."""
        invoices = self.list_invoices(start_date=start_date, end_date=end_date)

        def _total(status: str) -> StatusTotal:
            matching = [i for i in invoices if i.status == status]
            return StatusTotal(count=len(matching), amount=round2(sum((i.total for i in matching), Decimal("0"))))

        return InvoiceSummary(
            total_revenue=round2(sum((i.total for i in invoices), Decimal("0"))),
            paid=_total("paid"),
            outstanding=_total("sent"),
            overdue=_total("overdue"),
            drafts=sum(1 for i in invoices if i.status == "draft"),
        )
