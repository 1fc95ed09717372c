"""Settings domain service."""

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from carebill.database.base import Database
from carebill.domain.errors import ValidationError
from carebill.domain.entities import CycleConfig

DEFAULTS: dict[str, Any] = {
    "default_billing_rate": "75",
    "billing_cycle_start": None,
    "billing_cycle_length_days": 14,
    "billing_cycle_monthly": False,
    "billing_cycle_start_weekday": 0,
    "auto_generate_invoices": False,
    "allow_payroll_adjustment_after_paid": True,
    "biller_name": "Tampa Bay OT LLC",
    "ocr_confidence_threshold": 0.8,
}


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


class SettingsService:
    """Typed access to the key/value settings store."""

    def __init__(self, db: Database):
        """Initialize settings service.

        Args:
            db: Database instance
        """
        self.db = db

    def get(self, key: str, default: Any = None) -> Any:
        """Get a raw setting value, falling back to the built-in default."""
        value = self.db.get_setting(key)
        if value is None:
            return DEFAULTS.get(key, default) if default is None else default
        return value

    def set(self, key: str, value: Any) -> None:
        """Store a setting value.

        Known keys are validated by parsing them through their typed accessor
        before the value is written.

        Raises:
            ValidationError: If the value does not fit the key
        """
        if key == "default_billing_rate":
            try:
                value = str(Decimal(str(value)))
            except InvalidOperation:
                raise ValidationError(f"Invalid rate '{value}'")
        elif key == "billing_cycle_start" and value is not None:
            value = value.isoformat() if isinstance(value, date) else str(value)
            try:
                date.fromisoformat(value)
            except ValueError:
                raise ValidationError(f"Invalid date '{value}', expected YYYY-MM-DD")
        elif key in ("billing_cycle_length_days", "billing_cycle_start_weekday"):
            try:
                value = int(value)
            except (TypeError, ValueError):
                raise ValidationError(f"Setting '{key}' must be an integer")
            if key == "billing_cycle_length_days" and value < 1:
                raise ValidationError("Billing cycle length must be at least 1 day")
            if key == "billing_cycle_start_weekday" and not 0 <= value <= 6:
                raise ValidationError("Start weekday must be between 0 (Monday) and 6 (Sunday)")
        elif key in ("billing_cycle_monthly", "auto_generate_invoices", "allow_payroll_adjustment_after_paid"):
            value = _to_bool(value)
        elif key == "ocr_confidence_threshold":
            try:
                value = float(value)
            except (TypeError, ValueError):
                raise ValidationError("Confidence threshold must be a number")
        self.db.set_setting(key, value)

    def get_all(self) -> dict[str, Any]:
        """Return built-in defaults overlaid with stored settings."""
        merged = dict(DEFAULTS)
        merged.update(self.db.list_settings())
        return merged

    @property
    def default_billing_rate(self) -> Decimal:
        return Decimal(str(self.get("default_billing_rate")))

    @property
    def billing_cycle_start(self) -> Optional[date]:
        value = self.get("billing_cycle_start")
        if not value:
            return None
        return date.fromisoformat(str(value)[:10])

    @property
    def auto_generate_invoices(self) -> bool:
        return _to_bool(self.get("auto_generate_invoices"))

    @property
    def allow_payroll_adjustment_after_paid(self) -> bool:
        return _to_bool(self.get("allow_payroll_adjustment_after_paid"))

    @property
    def ocr_confidence_threshold(self) -> float:
        return float(self.get("ocr_confidence_threshold"))

    @property
    def biller_name(self) -> str:
        return str(self.get("biller_name"))

    def cycle_config(self) -> CycleConfig:
        """Build the billing cycle configuration from settings."""
        return CycleConfig(
            anchor_date=self.billing_cycle_start,
            length_days=int(self.get("billing_cycle_length_days")),
            monthly=_to_bool(self.get("billing_cycle_monthly")),
            start_weekday=int(self.get("billing_cycle_start_weekday")),
        )
