"""Registry domain service: agencies, clinicians, patients and billing codes."""

import logging
from decimal import Decimal
from typing import Optional

from carebill.database.base import Database
from carebill.domain.entities import (
    Agency,
    Clinician,
    Patient,
    BillingCode,
)
from carebill.domain.errors import (
    ConflictError,
    DuplicateRecordNumberError,
    NotFoundError,
    ValidationError,
    not_found,
)
from carebill.domain.matching import Resolution, resolve_or_create

logger = logging.getLogger(__name__)

# (code, description, default rate)
DEFAULT_BILLING_CODES = [
    ("P", "Standard patient visit", Decimal("85")),
    ("X", "Extended visit", Decimal("95")),
    ("HT", "Home therapy", Decimal("120")),
    ("S/U", "Start of care / update", Decimal("75")),
    ("WC", "Wound care", Decimal("110")),
    ("SV", "Supervisory visit", Decimal("60")),
    ("Hmk", "Homemaker", Decimal("45")),
    ("EVAL", "Evaluation", Decimal("150")),
    ("RE-EVAL", "Re-evaluation", Decimal("120")),
]


def _check_rate(value: Optional[Decimal], label: str) -> None:
    if value is not None and Decimal(value) < 0:
        raise ValidationError(f"{label} must not be negative")


class RegistryService:
    """Service for the reference data that timesheets are matched against."""

    def __init__(self, db: Database):
        """Initialize registry service.

        Args:
            db: Database instance
        """
        self.db = db

    # Agencies
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
        """Create an agency.

        Raises:
            ValidationError: If the name is empty or a rate/term is negative
            ConflictError: If the name is already registered
        """
        if not name or not name.strip():
            raise ValidationError("Agency name must not be empty")
        _check_rate(default_rate, "Default rate")
        if payment_terms_days < 0:
            raise ValidationError("Payment terms must not be negative")
        for code, rate in (rates or {}).items():
            _check_rate(rate, f"Rate for '{code}'")
        return self.db.create_agency(
            name=name,
            default_rate=default_rate,
            payment_terms_days=payment_terms_days,
            rates=rates,
            contact_name=contact_name,
            contact_email=contact_email,
            notes=notes,
        )

    def get_agency(self, agency_id: int) -> Optional[Agency]:
        return self.db.get_agency(agency_id)

    def require_agency(self, agency_id: int) -> Agency:
        """Get an agency or raise NotFoundError."""
        agency = self.db.get_agency(agency_id)
        if agency is None:
            raise NotFoundError(not_found("Agency", agency_id))
        return agency

    def list_agencies(self, include_inactive: bool = False) -> list[Agency]:
        return self.db.list_agencies(include_inactive=include_inactive)

    def update_agency(self, agency_id: int, **fields) -> None:
        """Update agency fields (see Database.update_agency)."""
        self.require_agency(agency_id)
        if "default_rate" in fields:
            _check_rate(fields["default_rate"], "Default rate")
        if fields.get("payment_terms_days") is not None and fields["payment_terms_days"] < 0:
            raise ValidationError("Payment terms must not be negative")
        self.db.update_agency(agency_id, **fields)

    def deactivate_agency(self, agency_id: int) -> None:
        """Soft delete: agencies are never removed."""
        self.update_agency(agency_id, active=False)

    def set_agency_rate(self, agency_id: int, code: str, rate: Decimal) -> None:
        """Set the flat per-visit rate an agency pays for a billing code."""
        code = (code or "").strip()
        if not code:
            raise ValidationError("Billing code must not be empty")
        _check_rate(rate, "Rate")
        self.require_agency(agency_id)
        self.db.set_agency_rate(agency_id, code, rate)

    def remove_agency_rate(self, agency_id: int, code: str) -> None:
        self.require_agency(agency_id)
        self.db.remove_agency_rate(agency_id, code.strip())

    # Clinicians
    def create_clinician(
        self,
        name: str,
        title: Optional[str] = None,
        pay_rate: Decimal = Decimal("0"),
        agency_ids: Optional[list[int]] = None,
        email: Optional[str] = None,
    ) -> int:
        """Create a clinician.

        Raises:
            ValidationError: If the name is empty or the pay rate is negative
            NotFoundError: If a linked agency does not exist
            ConflictError: If the name is already registered
        """
        if not name or not name.strip():
            raise ValidationError("Clinician name must not be empty")
        _check_rate(pay_rate, "Pay rate")
        for agency_id in agency_ids or []:
            self.require_agency(agency_id)
        return self.db.create_clinician(name=name, title=title, pay_rate=pay_rate, agency_ids=agency_ids, email=email)

    def get_clinician(self, clinician_id: int) -> Optional[Clinician]:
        return self.db.get_clinician(clinician_id)

    def list_clinicians(self, include_inactive: bool = False) -> list[Clinician]:
        return self.db.list_clinicians(include_inactive=include_inactive)

    def update_clinician(self, clinician_id: int, **fields) -> None:
        if self.db.get_clinician(clinician_id) is None:
            raise NotFoundError(not_found("Clinician", clinician_id))
        _check_rate(fields.get("pay_rate"), "Pay rate")
        for agency_id in fields.get("agency_ids") or []:
            self.require_agency(agency_id)
        self.db.update_clinician(clinician_id, **fields)

    def deactivate_clinician(self, clinician_id: int) -> None:
        self.update_clinician(clinician_id, active=False)

    # Patients
    def create_patient(
        self,
        name: str,
        agency_id: Optional[int] = None,
        clinical_record_number: Optional[str] = None,
        address: Optional[str] = None,
    ) -> int:
        """Create a patient.

        Raises:
            ValidationError: If the name is empty
            DuplicateRecordNumberError: If the record number belongs to
                another patient, active or not
            ConflictError: If the name is already registered
        """
        if not name or not name.strip():
            raise ValidationError("Patient name must not be empty")
        if agency_id is not None:
            self.require_agency(agency_id)
        return self.db.create_patient(
            name=name,
            agency_id=agency_id,
            clinical_record_number=(clinical_record_number or "").strip() or None,
            address=address,
        )

    def get_patient(self, patient_id: int) -> Optional[Patient]:
        return self.db.get_patient(patient_id)

    def list_patients(self, include_inactive: bool = False) -> list[Patient]:
        return self.db.list_patients(include_inactive=include_inactive)

    def update_patient(self, patient_id: int, **fields) -> None:
        if self.db.get_patient(patient_id) is None:
            raise NotFoundError(not_found("Patient", patient_id))
        self.db.update_patient(patient_id, **fields)

    def deactivate_patient(self, patient_id: int) -> None:
        self.update_patient(patient_id, active=False)

    # Resolution of extracted names
    def resolve_agency(self, extracted_name: Optional[str]) -> Optional[Resolution[Agency]]:
        """Match an extracted company name to an agency, creating one if needed."""
        registry = self.db.list_agencies(include_inactive=True)
        return resolve_or_create(registry, extracted_name, lambda name: self.db.get_or_create_agency(name)[0])

    def resolve_clinician(
        self, extracted_name: Optional[str], title: Optional[str] = None
    ) -> Optional[Resolution[Clinician]]:
        """Match an extracted employee name to a clinician, creating one if needed."""
        registry = self.db.list_clinicians(include_inactive=True)
        return resolve_or_create(
            registry, extracted_name, lambda name: self.db.get_or_create_clinician(name, title=title)[0]
        )

    def resolve_patient(
        self,
        extracted_name: Optional[str],
        agency_id: Optional[int] = None,
        clinical_record_number: Optional[str] = None,
        address: Optional[str] = None,
    ) -> Optional[Resolution[Patient]]:
        """Match an extracted patient name, creating or backfilling the patient.

        A matched patient gains the agency link and record number only where
        those are still empty; populated fields are never overwritten.

        Raises:
            DuplicateRecordNumberError: If a new patient would reuse another
                patient's record number
        """
        clinical_record_number = (clinical_record_number or "").strip() or None
        registry = self.db.list_patients(include_inactive=True)
        resolution = resolve_or_create(
            registry,
            extracted_name,
            lambda name: self.db.get_or_create_patient(
                name,
                agency_id=agency_id,
                clinical_record_number=clinical_record_number,
                address=address,
            )[0],
        )
        if resolution is None or resolution.created:
            return resolution

        patient = resolution.entity
        if patient.agency_id is None and agency_id is not None:
            self.db.update_patient(patient.id, agency_id=agency_id)
        if not patient.clinical_record_number and clinical_record_number:
            try:
                self.db.update_patient(patient.id, clinical_record_number=clinical_record_number)
                logger.info("Updated patient %r record #: %s", patient.name, clinical_record_number)
            except DuplicateRecordNumberError as e:
                logger.warning("Skipped record number backfill for %r: %s", patient.name, e)

        refreshed = self.db.get_patient(patient.id)
        return Resolution(entity=refreshed, kind=resolution.kind, score=resolution.score)

    # Billing codes
    def list_billing_codes(self, include_inactive: bool = False) -> list[BillingCode]:
        return self.db.list_billing_codes(include_inactive=include_inactive)

    def create_billing_code(self, code: str, description: str = "", default_rate: Decimal = Decimal("0")) -> int:
        code = (code or "").strip()
        if not code:
            raise ValidationError("Billing code must not be empty")
        _check_rate(default_rate, "Default rate")
        return self.db.create_billing_code(code=code, description=description, default_rate=default_rate)

    def init_billing_codes(self) -> int:
        """Seed the default billing code catalogue.

        Returns:
            Number of codes created (existing codes are left alone)
        """
        created = 0
        for code, description, rate in DEFAULT_BILLING_CODES:
            if self.db.get_billing_code(code) is not None:
                continue
            try:
                self.db.create_billing_code(code=code, description=description, default_rate=rate)
                created += 1
            except ConflictError:
                continue
        return created
