"""Shared pytest fixtures for carebill tests."""

import tempfile
import os
from datetime import date
from decimal import Decimal
import pytest

from carebill.database.factories import create_sqlite_database
from carebill.domain.billing import BillingService
from carebill.domain.invoice import InvoiceService
from carebill.domain.payroll import PayrollService
from carebill.domain.periods import PeriodService
from carebill.domain.registry import RegistryService
from carebill.domain.settings import SettingsService
from carebill.domain.timesheet import TimesheetService


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    db = create_sqlite_database(database_path=db_path)
    # Store the path for tests that need it
    db.database_path = db_path
    db.connect()
    db.initialize_schema()

    yield db

    db.disconnect()
    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture
def second_db(temp_db):
    """Another connection to the same database file, like a second process."""
    db = create_sqlite_database(database_path=temp_db.database_path)
    db.connect()

    yield db

    db.disconnect()


@pytest.fixture
def settings_service(temp_db):
    return SettingsService(temp_db)


@pytest.fixture
def registry_service(temp_db):
    """Create a RegistryService with a temporary database."""
    return RegistryService(temp_db)


@pytest.fixture
def period_service(temp_db, settings_service):
    return PeriodService(temp_db, settings_service)


@pytest.fixture
def billing_service(temp_db, settings_service):
    """Create a BillingService with a temporary database."""
    return BillingService(temp_db, settings_service)


@pytest.fixture
def invoice_service(temp_db):
    return InvoiceService(temp_db)


@pytest.fixture
def payroll_service(temp_db, settings_service):
    return PayrollService(temp_db, settings_service)


@pytest.fixture
def timesheet_service(temp_db, settings_service, registry_service, period_service):
    return TimesheetService(temp_db, settings_service, registry_service, period_service)


@pytest.fixture
def sample_period(temp_db, period_service):
    """Open billing period 2025-02-01 to 2025-02-14."""
    period_id = period_service.create_period(date(2025, 2, 1), date(2025, 2, 14))
    return temp_db.get_billing_period(period_id)


@pytest.fixture
def sample_agency(registry_service):
    """Agency paying $85 for standard visits and $110 for wound care."""
    agency_id = registry_service.create_agency(
        name="Acme Home Health",
        rates={"P": Decimal("85"), "WC": Decimal("110")},
        payment_terms_days=30,
        contact_email="billing@acme.example",
    )
    return registry_service.get_agency(agency_id)


@pytest.fixture
def sample_clinician(registry_service, sample_agency):
    clinician_id = registry_service.create_clinician(
        name="Jane Doe", title="PTA", pay_rate=Decimal("40"), agency_ids=[sample_agency.id]
    )
    return registry_service.get_clinician(clinician_id)


@pytest.fixture
def sample_patient(registry_service, sample_agency):
    patient_id = registry_service.create_patient(
        name="Mary Major", agency_id=sample_agency.id, clinical_record_number="CR-1001"
    )
    return registry_service.get_patient(patient_id)


@pytest.fixture
def sample_timesheet(temp_db, sample_period, sample_agency, sample_clinician, sample_patient):
    """Processed timesheet with a 60 minute standard visit and a 45 minute wound care visit."""
    timesheet_id = temp_db.create_timesheet(
        [
            {
                "visit_date": date(2025, 2, 3),
                "time_in": "9:00 AM",
                "time_out": "10:00 AM",
                "duration_minutes": 60,
                "visit_code": "P",
            },
            {
                "visit_date": date(2025, 2, 10),
                "time_in": "1:00 PM",
                "time_out": "1:45 PM",
                "duration_minutes": 45,
                "visit_code": "WC",
            },
        ],
        status="processed",
        billing_period_id=sample_period.id,
        agency_id=sample_agency.id,
        clinician_id=sample_clinician.id,
        patient_id=sample_patient.id,
        company="Acme Home Health",
        employee_name="Jane Doe",
        employee_title="PTA",
        patient_name="Mary Major",
        confidence=0.95,
    )
    return temp_db.get_timesheet(timesheet_id)


@pytest.fixture
def sample_invoice(billing_service, sample_timesheet, sample_period):
    """Draft invoice generated for the sample period."""
    result = billing_service.generate_invoices(sample_period.id, today=date(2025, 2, 15))
    return result.invoices[0]


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    from click.testing import CliRunner

    return CliRunner()
