"""Interfaces for the document renderer and the mail dispatcher.

Neither is implemented here; callers pass in whatever renders PDFs or
delivers mail in their deployment.
"""

from abc import ABC, abstractmethod
from typing import Optional

from carebill.domain.entities import Agency, BillingPeriod, Invoice


class InvoiceRenderer(ABC):
    """Turns a finalized invoice into a stored document."""

    @abstractmethod
    def render(self, invoice: Invoice, agency: Agency, period: BillingPeriod, biller_name: str) -> str:
        """Render the invoice and return an opaque artifact reference (e.g. a file path)."""
        pass

    @abstractmethod
    def discard(self, artifact_ref: str) -> None:
        """Remove a previously rendered artifact."""
        pass


class InvoiceMailer(ABC):
    """Delivers an invoice to its agency."""

    @abstractmethod
    def send(self, invoice: Invoice, agency: Agency, artifact_ref: Optional[str]) -> None:
        """Send the invoice. Raises on delivery failure."""
        pass
