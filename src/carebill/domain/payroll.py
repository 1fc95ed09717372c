"""Payroll payment records and their pending -> paid lifecycle."""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from carebill.database.base import Database
from carebill.domain.entities import (
    PayrollPayment,
    ADJUSTMENT_TYPES,
    PAYMENT_METHODS,
    PAYMENT_STATUSES,
)
from carebill.domain.errors import (
    ConflictError,
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
    not_found,
)
from carebill.domain.rates import round2
from carebill.domain.settings import SettingsService

logger = logging.getLogger(__name__)

PAYMENT_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "pending": ("paid",),
    "paid": (),
}


def check_payment_transition(current: str, target: str, payment_id: Optional[int] = None) -> None:
    """Raise InvalidStateTransitionError unless current -> target is allowed."""
    if target not in PAYMENT_TRANSITIONS.get(current, ()):
        raise InvalidStateTransitionError("payroll payment", payment_id, current, target)


class PayrollService:
    """Service for payroll payments.

    The payment total is never set directly; the database recomputes it as
    base amount plus every adjustment whenever a payment is written.
    """

    def __init__(
        self,
        db: Database,
        settings: Optional[SettingsService] = None,
        allow_adjustment_after_paid: Optional[bool] = None,
    ):
        """Initialize payroll service.

        Args:
            db: Database instance
            settings: Optional settings service (created from db if omitted)
            allow_adjustment_after_paid: Whether adjustments may be appended to
                a paid payment. None reads the
                ``allow_payroll_adjustment_after_paid`` setting.
        """
        self.db = db
        self.settings = settings or SettingsService(db)
        self._allow_adjustment_after_paid = allow_adjustment_after_paid

    @property
    def allow_adjustment_after_paid(self) -> bool:
        if self._allow_adjustment_after_paid is not None:
            return self._allow_adjustment_after_paid
        return self.settings.allow_payroll_adjustment_after_paid

    def create_payment(
        self,
        clinician_name: str,
        clinician_id: Optional[int] = None,
        clinician_title: str = "",
        billing_period_id: Optional[int] = None,
        period_label: str = "",
        base_amount: Decimal = Decimal("0"),
        base_hours: Decimal = Decimal("0"),
        base_visits: int = 0,
        pay_rate: Decimal = Decimal("0"),
        payment_method: str = "check",
        notes: str = "",
    ) -> int:
        """Create a pending payment.

        Raises:
            ValidationError: If the name or payment method is invalid
            ConflictError: If the clinician already has a payment for the period
        """
        if not clinician_name or not clinician_name.strip():
            raise ValidationError("Clinician name must not be empty")
        if payment_method not in PAYMENT_METHODS:
            raise ValidationError(f"Unknown payment method '{payment_method}'")
        if billing_period_id is not None or period_label:
            existing = self.db.find_payroll_payment(
                clinician_id, clinician_name, billing_period_id=billing_period_id, period_label=period_label
            )
            if existing is not None:
                raise ConflictError(
                    f"Payment {existing.id} already exists for {clinician_name} in this period"
                )

        return self.db.create_payroll_payment(
            clinician_id=clinician_id,
            clinician_name=clinician_name.strip(),
            clinician_title=clinician_title or "",
            billing_period_id=billing_period_id,
            period_label=period_label or "",
            base_amount=round2(base_amount),
            base_hours=round2(base_hours),
            base_visits=base_visits,
            pay_rate=round2(pay_rate),
            payment_method=payment_method,
            notes=notes or "",
        )

    def get_payment(self, payment_id: int) -> Optional[PayrollPayment]:
        return self.db.get_payroll_payment(payment_id)

    def require_payment(self, payment_id: int) -> PayrollPayment:
        payment = self.db.get_payroll_payment(payment_id)
        if payment is None:
            raise NotFoundError(not_found("Payroll payment", payment_id))
        return payment

    def list_payments(self, status: Optional[str] = None, period_id: Optional[int] = None) -> list[PayrollPayment]:
        if status is not None and status not in PAYMENT_STATUSES:
            raise ValidationError(f"Unknown payment status '{status}'")
        return self.db.list_payroll_payments(status=status, billing_period_id=period_id)

    def add_adjustment(self, payment_id: int, type: str, amount: Decimal, reason: str = "") -> PayrollPayment:
        """Append a signed adjustment and return the recomputed payment.

        Raises:
            ValidationError: If the adjustment type is unknown
            InvalidStateTransitionError: If the payment is paid and adjustments
                after payment are not allowed
        """
        if type not in ADJUSTMENT_TYPES:
            raise ValidationError(f"Unknown adjustment type '{type}'. Use one of: {', '.join(ADJUSTMENT_TYPES)}")
        payment = self.require_payment(payment_id)
        if payment.status == "paid":
            if not self.allow_adjustment_after_paid:
                raise InvalidStateTransitionError(
                    "payroll payment",
                    payment_id,
                    payment.status,
                    "adjusted",
                    detail="adjustments after payment are disabled",
                )
            logger.warning(
                "Adjusting paid payment %s for %s; amount already disbursed was %s",
                payment_id,
                payment.clinician_name,
                payment.total_amount,
            )

        self.db.add_payroll_adjustment(payment_id, type=type, amount=round2(amount), reason=reason or "")
        return self.require_payment(payment_id)

    def mark_paid(
        self, payment_id: int, paid_date: Optional[date] = None, payment_method: Optional[str] = None
    ) -> PayrollPayment:
        """Move a pending payment to paid."""
        if payment_method is not None and payment_method not in PAYMENT_METHODS:
            raise ValidationError(f"Unknown payment method '{payment_method}'")
        payment = self.require_payment(payment_id)
        check_payment_transition(payment.status, "paid", payment_id)

        fields = {"status": "paid", "paid_date": paid_date or date.today()}
        if payment_method is not None:
            fields["payment_method"] = payment_method
        if not self.db.update_payroll_payment(payment_id, expected_status="pending", **fields):
            current = self.require_payment(payment_id).status
            raise InvalidStateTransitionError(
                "payroll payment", payment_id, current, "paid", detail="status changed while updating"
            )
        logger.info("Payroll payment %s for %s marked paid", payment_id, payment.clinician_name)
        return self.require_payment(payment_id)

    def update_notes(self, payment_id: int, notes: str) -> None:
        self.require_payment(payment_id)
        self.db.update_payroll_payment(payment_id, notes=notes)

    def delete_payment(self, payment_id: int) -> None:
        """Delete a payment. Only pending payments can be deleted."""
        payment = self.require_payment(payment_id)
        if payment.status != "pending":
            raise InvalidStateTransitionError(
                "payroll payment", payment_id, payment.status, "deleted", detail="cannot delete a paid record"
            )
        self.db.delete_payroll_payment(payment_id)
