"""Timesheet intake: storing extracted timesheets against the registries."""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, UTC
from typing import Any, Callable, Iterable, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as SchemaValidationError

from carebill.database.base import Database
from carebill.domain.entities import BillingPeriod, Timesheet, TIMESHEET_STATUSES
from carebill.domain.errors import (
    DependencyError,
    DomainError,
    NotFoundError,
    ValidationError,
    not_found,
    period_not_open,
)
from carebill.domain.periods import PeriodService
from carebill.domain.registry import RegistryService
from carebill.domain.settings import SettingsService
from carebill.utils.cache import TTLCache
from carebill.utils.date_parser import minutes_between, parse_visit_date

logger = logging.getLogger(__name__)

FILTER_OPTIONS_KEY = "timesheet_filter_options"

# Statuses a reviewer may set by hand; invoiced is only set by invoice generation
REVIEW_STATUSES = ("processed", "reviewed", "flagged", "error")


def _blank_to_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _schema_message(error: SchemaValidationError) -> str:
    """Flatten pydantic errors into one line such as ``confidence: Input should be a valid number``."""
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"])
        parts.append(f"{location}: {item['msg']}" if location else item["msg"])
    return "; ".join(parts)


class ExtractedVisit(BaseModel):
    """One visit row as read off a timesheet."""

    model_config = ConfigDict(frozen=True)

    visit_date: Optional[date] = Field(None, validation_alias=AliasChoices("date", "visit_date"))
    time_in: Optional[str] = None
    time_out: Optional[str] = None
    duration_minutes: Optional[int] = None
    visit_code: Optional[str] = None

    @field_validator("visit_date", mode="before")
    @classmethod
    def read_visit_date(cls, value: Any) -> Optional[date]:
        # Unreadable dates are kept as missing rather than failing the record
        return parse_visit_date(value)

    @field_validator("time_in", "time_out", "visit_code", mode="before")
    @classmethod
    def strip_text(cls, value: Any) -> Optional[str]:
        return _blank_to_none(value)

    @field_validator("duration_minutes", mode="before")
    @classmethod
    def read_duration(cls, value: Any) -> Optional[int]:
        if value is None or value == "":
            return None
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return None


class ExtractedTimesheet(BaseModel):
    """Structured output of the extraction step for one timesheet."""

    model_config = ConfigDict(frozen=True)

    company: Optional[str] = None
    employee_name: Optional[str] = None
    employee_title: Optional[str] = None
    patient_name: Optional[str] = None
    clinical_record_number: Optional[str] = None
    patient_address: Optional[str] = None
    visits: tuple[ExtractedVisit, ...] = ()
    confidence: Optional[float] = Field(None, ge=0, le=1)
    source_filename: Optional[str] = None

    @field_validator(
        "company",
        "employee_name",
        "employee_title",
        "patient_name",
        "clinical_record_number",
        "patient_address",
        "source_filename",
        mode="before",
    )
    @classmethod
    def strip_text(cls, value: Any) -> Optional[str]:
        return _blank_to_none(value)

    @field_validator("visits", mode="before")
    @classmethod
    def missing_visits(cls, value: Any) -> Any:
        return () if value is None else value

    @classmethod
    def from_dict(cls, data: Any, source_filename: Optional[str] = None) -> "ExtractedTimesheet":
        """Build from the extractor's JSON (snake_case keys).

        Raises:
            ValidationError: If the record is not an object or a field has
                the wrong shape
        """
        if source_filename and isinstance(data, dict):
            data = {**data, "source_filename": source_filename}
        try:
            return cls.model_validate(data)
        except SchemaValidationError as e:
            raise ValidationError(f"Invalid timesheet record: {_schema_message(e)}") from e


@dataclass(frozen=True)
class ImportResult:
    imported: int
    failed: int
    timesheet_ids: tuple[int, ...] = ()
    errors: tuple[str, ...] = ()


@dataclass(frozen=True)
class FilterOptions:
    clinicians: tuple[str, ...] = field(default_factory=tuple)
    care_types: tuple[str, ...] = field(default_factory=tuple)


class TimesheetService:
    """Service for extracted timesheets."""

    def __init__(
        self,
        db: Database,
        settings: Optional[SettingsService] = None,
        registry: Optional[RegistryService] = None,
        periods: Optional[PeriodService] = None,
    ):
        """Initialize timesheet service.

        Args:
            db: Database instance
            settings: Optional settings service
            registry: Optional registry service used for name resolution
            periods: Optional period service used to find the open period
        """
        self.db = db
        self.settings = settings or SettingsService(db)
        self.registry = registry or RegistryService(db)
        self.periods = periods or PeriodService(db, self.settings)

    def _target_period(self, period_id: Optional[int], today: Optional[date]) -> BillingPeriod:
        if period_id is None:
            return self.periods.get_current_period(today)
        period = self.db.get_billing_period(period_id)
        if period is None:
            raise NotFoundError(not_found("Billing period", period_id))
        if period.status != "open":
            raise ValidationError(period_not_open(period.label, period.status))
        return period

    def _resolve(self, kind: str, resolver: Callable, *args, **kwargs):
        """Run a resolver; a failure is logged and leaves the reference empty."""
        try:
            return resolver(*args, **kwargs)
        except DomainError as e:
            logger.error("%s resolution failed for %r: %s", kind, args[0] if args else None, e)
            return None

    def ingest(
        self,
        extracted: ExtractedTimesheet,
        period_id: Optional[int] = None,
        today: Optional[date] = None,
    ) -> Timesheet:
        """Store an extracted timesheet.

        The agency, clinician and patient are resolved (or created) from the
        extracted names, the timesheet is attached to the open billing period
        and visit durations missing from the extraction are derived from the
        time in/out. Timesheets below the confidence threshold are stored as
        flagged rather than processed.
        """
        period = self._target_period(period_id, today)
        return self._store(extracted, period)

    def _store(self, extracted: ExtractedTimesheet, period: BillingPeriod) -> Timesheet:
        agency = self._resolve("Agency", self.registry.resolve_agency, extracted.company)
        agency_id = agency.entity.id if agency else None
        clinician = self._resolve(
            "Clinician", self.registry.resolve_clinician, extracted.employee_name, title=extracted.employee_title
        )
        patient = self._resolve(
            "Patient",
            self.registry.resolve_patient,
            extracted.patient_name,
            agency_id=agency_id,
            clinical_record_number=extracted.clinical_record_number,
            address=extracted.patient_address,
        )

        visits = []
        for visit in extracted.visits:
            duration = visit.duration_minutes
            if duration is None:
                duration = minutes_between(visit.time_in, visit.time_out)
            visits.append(
                {
                    "visit_date": visit.visit_date,
                    "time_in": visit.time_in,
                    "time_out": visit.time_out,
                    "duration_minutes": max(duration, 0),
                    "visit_code": visit.visit_code,
                }
            )

        threshold = self.settings.ocr_confidence_threshold
        status = "processed"
        flag_reason = None
        if extracted.confidence is not None and extracted.confidence < threshold:
            status = "flagged"
            flag_reason = f"Low OCR confidence: {extracted.confidence * 100:.0f}%"

        timesheet_id = self.db.create_timesheet(
            visits,
            status=status,
            billing_period_id=period.id,
            agency_id=agency_id,
            clinician_id=clinician.entity.id if clinician else None,
            patient_id=patient.entity.id if patient else None,
            company=extracted.company,
            employee_name=extracted.employee_name,
            employee_title=extracted.employee_title,
            patient_name=extracted.patient_name,
            clinical_record_number=extracted.clinical_record_number,
            confidence=extracted.confidence,
            flag_reason=flag_reason,
            source_filename=extracted.source_filename,
        )
        logger.info("Stored timesheet %s (%s, %d visit(s))", timesheet_id, status, len(visits))
        return self.db.get_timesheet(timesheet_id)

    def import_batch(
        self,
        records: Iterable[Union[ExtractedTimesheet, dict[str, Any]]],
        period_id: Optional[int] = None,
        today: Optional[date] = None,
        source_filename: Optional[str] = None,
    ) -> ImportResult:
        """Ingest many timesheets; one bad record does not stop the rest.

        Records may be extractor JSON objects, which are validated one at a
        time so a malformed record is reported alongside the others.
        """
        period = self._target_period(period_id, today)
        ids = []
        errors = []
        for index, record in enumerate(records, start=1):
            try:
                if not isinstance(record, ExtractedTimesheet):
                    record = ExtractedTimesheet.from_dict(record, source_filename=source_filename)
                ids.append(self._store(record, period).id)
            except DomainError as e:
                errors.append(f"Record {index}: {e}")
                logger.warning("Timesheet record %d not imported: %s", index, e)
        return ImportResult(imported=len(ids), failed=len(errors), timesheet_ids=tuple(ids), errors=tuple(errors))

    def get_timesheet(self, timesheet_id: int) -> Optional[Timesheet]:
        return self.db.get_timesheet(timesheet_id)

    def require_timesheet(self, timesheet_id: int) -> Timesheet:
        timesheet = self.db.get_timesheet(timesheet_id)
        if timesheet is None:
            raise NotFoundError(not_found("Timesheet", timesheet_id))
        return timesheet

    def list_timesheets(
        self,
        status: Optional[str] = None,
        period_id: Optional[int] = None,
        agency_id: Optional[int] = None,
        clinician_id: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[Timesheet]:
        """List timesheets, oldest first.

        A date range selects timesheets of every period overlapping it.
        """
        if status is not None and status not in TIMESHEET_STATUSES:
            raise ValidationError(f"Unknown timesheet status '{status}'")
        period_ids = [period_id] if period_id is not None else None
        if period_ids is None and (start_date or end_date):
            period_ids = [p.id for p in self.periods.periods_in_range(start_date, end_date)]
        return self.db.list_timesheets(
            billing_period_ids=period_ids,
            statuses=(status,) if status else None,
            agency_id=agency_id,
            clinician_id=clinician_id,
        )

    def review(
        self,
        timesheet_id: int,
        status: str = "reviewed",
        agency_id: Optional[int] = None,
        clinician_id: Optional[int] = None,
        patient_id: Optional[int] = None,
        flag_reason: Optional[str] = None,
    ) -> Timesheet:
        """Apply a manual correction to a timesheet.

        Raises:
            ValidationError: If the status is not settable by hand or the
                timesheet is already invoiced
        """
        if status not in REVIEW_STATUSES:
            raise ValidationError(f"Status must be one of: {', '.join(REVIEW_STATUSES)}")
        timesheet = self.require_timesheet(timesheet_id)
        if timesheet.status == "invoiced" or timesheet.invoice_id is not None:
            raise ValidationError(f"Timesheet {timesheet_id} is already invoiced")

        fields: dict[str, Any] = {"status": status}
        if agency_id is not None:
            self.registry.require_agency(agency_id)
            fields["agency_id"] = agency_id
        if clinician_id is not None:
            if self.db.get_clinician(clinician_id) is None:
                raise NotFoundError(not_found("Clinician", clinician_id))
            fields["clinician_id"] = clinician_id
        if patient_id is not None:
            if self.db.get_patient(patient_id) is None:
                raise NotFoundError(not_found("Patient", patient_id))
            fields["patient_id"] = patient_id
        if flag_reason is not None:
            fields["flag_reason"] = flag_reason
        elif status != "flagged":
            fields["flag_reason"] = None
        if status == "reviewed":
            fields["reviewed_at"] = datetime.now(UTC)

        self.db.update_timesheet(timesheet_id, **fields)
        return self.require_timesheet(timesheet_id)

    def delete_timesheet(self, timesheet_id: int) -> None:
        """Delete a timesheet that is not on an invoice."""
        timesheet = self.require_timesheet(timesheet_id)
        if timesheet.invoice_id is not None:
            raise DependencyError(
                f"Cannot delete timesheet {timesheet_id}: it is on invoice {timesheet.invoice_id}. "
                f"Delete the invoice first."
            )
        self.db.delete_timesheet(timesheet_id)

    def filter_options(self, cache: TTLCache) -> FilterOptions:
        """Distinct extracted clinician names and visit codes, memoized in the given cache."""
        return cache.get_or_load(
            FILTER_OPTIONS_KEY,
            lambda: FilterOptions(
                clinicians=tuple(self.db.list_distinct_employee_names()),
                care_types=tuple(self.db.list_distinct_visit_codes()),
            ),
        )
