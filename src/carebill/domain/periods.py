"""Billing period resolution and the period lifecycle service.

A billing cycle is either a fixed number of days counted from an anchor date
(biweekly by default) or a calendar month. Period bounds are calendar dates and
both ends are inclusive.
"""

import logging
from datetime import date, datetime, timedelta, UTC
from typing import Optional

from dateutil.relativedelta import relativedelta

from carebill.database.base import Database
from carebill.domain.entities import BillingPeriod, CycleConfig, PeriodWindow, PERIOD_STATUSES
from carebill.domain.errors import (
    ConflictError,
    DependencyError,
    NotFoundError,
    ValidationError,
    invalid_transition,
    not_found,
    period_delete_blocked,
)
from carebill.domain.settings import SettingsService

logger = logging.getLogger(__name__)


def format_period_label(start_date: date, end_date: date) -> str:
    """Render a period label such as ``02-01-2025 to 02-14-2025``."""
    return f"{start_date:%m-%d-%Y} to {end_date:%m-%d-%Y}"


def default_anchor(config: CycleConfig, today: date) -> date:
    """Return the most recent cycle start weekday on or before today."""
    days_back = (today.weekday() - config.start_weekday) % 7
    return today - timedelta(days=days_back)


def resolve_period(config: CycleConfig, target: date, today: Optional[date] = None) -> PeriodWindow:
    """Return the period window containing a date.

    Args:
        config: Cycle rules
        target: Date to place in a period
        today: Used to derive an anchor when the config has none

    Returns:
        PeriodWindow with inclusive start and end dates
    """
    if config.monthly:
        start = target.replace(day=1)
        end = start + relativedelta(months=1) - timedelta(days=1)
        return PeriodWindow(start_date=start, end_date=end, label=format_period_label(start, end))

    if config.length_days < 1:
        raise ValidationError("Billing cycle length must be at least 1 day")

    anchor = config.anchor_date or default_anchor(config, today or target)
    elapsed_days = (target - anchor).days
    # Floor division keeps dates before the anchor in the right period
    period_index = elapsed_days // config.length_days
    start = anchor + timedelta(days=period_index * config.length_days)
    end = start + timedelta(days=config.length_days - 1)
    return PeriodWindow(start_date=start, end_date=end, label=format_period_label(start, end))


def next_window(config: CycleConfig, window: PeriodWindow) -> PeriodWindow:
    """Return the period that starts the day after the given one ends."""
    following = window.end_date + timedelta(days=1)
    if config.monthly:
        return resolve_period(config, following)
    end = following + timedelta(days=max(config.length_days, 1) - 1)
    return PeriodWindow(start_date=following, end_date=end, label=format_period_label(following, end))


def enumerate_periods(config: CycleConfig, start: date, end: date) -> list[PeriodWindow]:
    """List every period window touching the date range, in order."""
    if end < start:
        raise ValidationError("End date must not be before start date")

    windows = []
    window = resolve_period(config, start, today=start)
    if not config.monthly and config.anchor_date is None:
        # Without an anchor, keep the first window's start as the anchor so
        # that consecutive windows line up
        config = CycleConfig(
            anchor_date=window.start_date,
            length_days=config.length_days,
            monthly=False,
            start_weekday=config.start_weekday,
        )
    while window.start_date <= end:
        windows.append(window)
        window = next_window(config, window)
    return windows


class PeriodService:
    """Service for billing periods.

    Keeps at most one period open at a time. Closing an open period with
    auto generation enabled opens the following period in the same
    transaction, so there is never a gap or an overlap of open periods.
    """

    def __init__(self, db: Database, settings: Optional[SettingsService] = None):
        """Initialize period service.

        Args:
            db: Database instance
            settings: Optional settings service (created from db if omitted)
        """
        self.db = db
        self.settings = settings or SettingsService(db)

    def get_period(self, period_id: int) -> Optional[BillingPeriod]:
        return self.db.get_billing_period(period_id)

    def list_periods(self, limit: int = 100) -> list[BillingPeriod]:
        """List periods, most recent first."""
        return self.db.list_billing_periods(limit=limit)

    def periods_in_range(self, start_date: Optional[date], end_date: Optional[date]) -> list[BillingPeriod]:
        """List periods overlapping a date range (either end may be open)."""
        return self.db.list_billing_periods_overlapping(start_date=start_date, end_date=end_date)

    def resolve_window(self, target: date) -> PeriodWindow:
        """Return the configured cycle window containing a date."""
        return resolve_period(self.settings.cycle_config(), target)

    def get_current_period(self, today: Optional[date] = None) -> BillingPeriod:
        """Return the open period, creating it from the cycle settings if needed.

        This is the only path that creates a billing period automatically.
        """
        period = self.db.get_open_billing_period()
        if period is not None:
            return period

        today = today or date.today()
        window = resolve_period(self.settings.cycle_config(), today, today=today)
        period, created = self.db.get_or_create_open_billing_period(window)
        if created:
            logger.info("Opened billing period %s", window.label)
        return period

    def create_period(
        self,
        start_date: date,
        end_date: date,
        label: Optional[str] = None,
        status: str = "open",
    ) -> int:
        """Create a billing period.

        Raises:
            ValidationError: If the dates or status are invalid
            ConflictError: If an open period already exists
        """
        if end_date < start_date:
            raise ValidationError("Period end date must not be before its start date")
        if status not in PERIOD_STATUSES:
            raise ValidationError(f"Invalid period status '{status}'")
        if status == "open" and self.db.get_open_billing_period() is not None:
            raise ConflictError("Another billing period is already open; close it first")

        return self.db.create_billing_period(
            start_date=start_date,
            end_date=end_date,
            label=label or format_period_label(start_date, end_date),
            status=status,
        )

    def close_period(self, period_id: int, status: str = "closed", open_next: Optional[bool] = None) -> Optional[BillingPeriod]:
        """Close an open period.

        Args:
            period_id: Period to close
            status: ``closed`` or ``invoiced``
            open_next: Open the following period in the same transaction.
                Defaults to the ``auto_generate_invoices`` setting.

        Returns:
            The newly opened period, or None

        Raises:
            NotFoundError: If the period does not exist
            ValidationError: If the period is not open or status is invalid
            ConflictError: If another writer closed the period first
        """
        if status not in ("closed", "invoiced"):
            raise ValidationError(f"Cannot close a period as '{status}'")
        period = self.db.get_billing_period(period_id)
        if period is None:
            raise NotFoundError(not_found("Billing period", period_id))
        if period.status != "open":
            raise ValidationError(invalid_transition("billing period", period_id, period.status, status))

        if open_next is None:
            open_next = self.settings.auto_generate_invoices

        next_period = None
        config = self.settings.cycle_config()
        if open_next:
            current = PeriodWindow(period.start_date, period.end_date, period.label)
            upcoming = next_window(config, current)
            new_id = self.db.close_billing_period(
                period_id,
                status=status,
                closed_at=datetime.now(UTC),
                invoices_generated=status == "invoiced",
                next_window=upcoming,
            )
            next_period = self.db.get_billing_period(new_id)
            logger.info("Closed period %s and opened %s", period.label, upcoming.label)
        else:
            self.db.close_billing_period(
                period_id, status=status, closed_at=datetime.now(UTC), invoices_generated=status == "invoiced"
            )
            logger.info("Closed period %s as %s", period.label, status)
        return next_period

    def update_period(
        self,
        period_id: int,
        label: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> None:
        """Update a period's label or bounds."""
        period = self.db.get_billing_period(period_id)
        if period is None:
            raise NotFoundError(not_found("Billing period", period_id))
        new_start = start_date or period.start_date
        new_end = end_date or period.end_date
        if new_end < new_start:
            raise ValidationError("Period end date must not be before its start date")
        self.db.update_billing_period(period_id, label=label, start_date=start_date, end_date=end_date)

    def delete_period(self, period_id: int) -> None:
        """Delete a period that has no invoices."""
        period = self.db.get_billing_period(period_id)
        if period is None:
            raise NotFoundError(not_found("Billing period", period_id))
        invoice_count = len(self.db.list_invoices(billing_period_id=period_id))
        if invoice_count:
            raise DependencyError(period_delete_blocked(period_id, invoice_count))
        self.db.delete_billing_period(period_id)
