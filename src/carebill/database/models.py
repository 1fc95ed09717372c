"""SQLAlchemy models for carebill database."""

from datetime import datetime, UTC
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Float,
    ForeignKey,
    DateTime,
    Date,
    Numeric,
    Boolean,
    Index,
    Table,
    UniqueConstraint,
    create_engine,
    text,
)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker, Session

Base = declarative_base()


clinician_agencies = Table(
    "clinician_agencies",
    Base.metadata,
    Column("clinician_id", Integer, ForeignKey("clinicians.id"), primary_key=True),
    Column("agency_id", Integer, ForeignKey("agencies.id"), primary_key=True),
)


class Agency(Base):
    """Billing counterparty model."""

    __tablename__ = "agencies"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    # Normalized name; unique so concurrent auto-creation cannot duplicate
    name_key = Column(String, unique=True, nullable=False)
    default_rate = Column(Numeric(10, 2), nullable=True)
    payment_terms_days = Column(Integer, default=30, nullable=False)
    contact_name = Column(String, nullable=True)
    contact_email = Column(String, nullable=True)
    notes = Column(String, nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)

    # Relationships
    rates = relationship(
        "AgencyRate", back_populates="agency", cascade="all, delete-orphan", order_by="AgencyRate.id"
    )


class AgencyRate(Base):
    """Rate card entry: billing code -> flat rate per visit."""

    __tablename__ = "agency_rates"

    id = Column(Integer, primary_key=True)
    agency_id = Column(Integer, ForeignKey("agencies.id"), nullable=False)
    code = Column(String, nullable=False)
    rate = Column(Numeric(10, 2), nullable=False)

    __table_args__ = (UniqueConstraint("agency_id", "code", name="uq_agency_rate_code"),)

    # Relationships
    agency = relationship("Agency", back_populates="rates")


class Clinician(Base):
    """Care provider model."""

    __tablename__ = "clinicians"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    name_key = Column(String, unique=True, nullable=False)
    title = Column(String, nullable=True)
    pay_rate = Column(Numeric(10, 2), default=0, nullable=False)
    email = Column(String, nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)

    # Relationships
    agencies = relationship("Agency", secondary=clinician_agencies, order_by="Agency.id")


class Patient(Base):
    """Patient model."""

    __tablename__ = "patients"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    name_key = Column(String, unique=True, nullable=False)
    agency_id = Column(Integer, ForeignKey("agencies.id"), nullable=True)
    # NULLs do not collide, so the constraint only binds populated numbers
    clinical_record_number = Column(String, unique=True, nullable=True)
    address = Column(String, nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)


class BillingCode(Base):
    """Billing code catalogue model."""

    __tablename__ = "billing_codes"

    id = Column(Integer, primary_key=True)
    code = Column(String, unique=True, nullable=False)
    description = Column(String, default="", nullable=False)
    default_rate = Column(Numeric(10, 2), default=0, nullable=False)
    active = Column(Boolean, default=True, nullable=False)


class Setting(Base):
    """Key/value setting model. Values are stored as JSON text."""

    __tablename__ = "settings"

    id = Column(Integer, primary_key=True)
    key = Column(String, unique=True, nullable=False)
    value = Column(Text, nullable=True)


class Counter(Base):
    """Named monotonic counter (high-water mark that survives deletions)."""

    __tablename__ = "counters"

    name = Column(String, primary_key=True)
    value = Column(Integer, nullable=False, default=0)


class BillingPeriod(Base):
    """Billing period model."""

    __tablename__ = "billing_periods"

    id = Column(Integer, primary_key=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    label = Column(String, nullable=False)
    status = Column(String, default="open", nullable=False)
    invoices_generated = Column(Boolean, default=False, nullable=False)
    closed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)

    __table_args__ = (
        Index("ix_billing_period_range", "start_date", "end_date"),
        # At most one open period
        Index(
            "uq_one_open_period",
            "status",
            unique=True,
            sqlite_where=text("status = 'open'"),
            postgresql_where=text("status = 'open'"),
        ),
    )


class Timesheet(Base):
    """Extracted timesheet model."""

    __tablename__ = "timesheets"

    id = Column(Integer, primary_key=True)
    status = Column(String, default="pending", nullable=False)
    billing_period_id = Column(Integer, ForeignKey("billing_periods.id"), nullable=True)
    agency_id = Column(Integer, ForeignKey("agencies.id"), nullable=True)
    clinician_id = Column(Integer, ForeignKey("clinicians.id"), nullable=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=True)
    company = Column(String, nullable=True)
    employee_name = Column(String, nullable=True)
    employee_title = Column(String, nullable=True)
    patient_name = Column(String, nullable=True)
    clinical_record_number = Column(String, nullable=True)
    confidence = Column(Float, nullable=True)
    flag_reason = Column(String, nullable=True)
    source_filename = Column(String, nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)

    # Relationships
    visits = relationship(
        "Visit", back_populates="timesheet", cascade="all, delete-orphan", order_by="Visit.position"
    )


class Visit(Base):
    """Visit row extracted from a timesheet."""

    __tablename__ = "visits"

    id = Column(Integer, primary_key=True)
    timesheet_id = Column(Integer, ForeignKey("timesheets.id"), nullable=False)
    position = Column(Integer, default=0, nullable=False)
    visit_date = Column(Date, nullable=True)
    time_in = Column(String, nullable=True)
    time_out = Column(String, nullable=True)
    duration_minutes = Column(Integer, default=0, nullable=False)
    visit_code = Column(String, nullable=True)

    # Relationships
    timesheet = relationship("Timesheet", back_populates="visits")


class Invoice(Base):
    """Invoice model."""

    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True)
    invoice_number = Column(String, unique=True, nullable=False)
    sequence = Column(Integer, unique=True, nullable=False)
    agency_id = Column(Integer, ForeignKey("agencies.id"), nullable=False)
    billing_period_id = Column(Integer, ForeignKey("billing_periods.id"), nullable=False)
    status = Column(String, default="draft", nullable=False)
    subtotal = Column(Numeric(10, 2), default=0, nullable=False)
    adjustments = Column(Numeric(10, 2), default=0, nullable=False)
    total = Column(Numeric(10, 2), default=0, nullable=False)
    due_date = Column(Date, nullable=True)
    sent_at = Column(DateTime, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    paid_amount = Column(Numeric(10, 2), nullable=True)
    payment_notes = Column(String, nullable=True)
    notes = Column(String, nullable=True)
    pdf_path = Column(String, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)

    # Relationships
    line_items = relationship(
        "InvoiceLineItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceLineItem.position",
    )
    timesheets = relationship("Timesheet", foreign_keys=[Timesheet.invoice_id], order_by=Timesheet.id)


class InvoiceLineItem(Base):
    """Invoice line item model (one billed visit)."""

    __tablename__ = "invoice_line_items"

    id = Column(Integer, primary_key=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=False)
    position = Column(Integer, default=0, nullable=False)
    timesheet_id = Column(Integer, ForeignKey("timesheets.id"), nullable=True)
    patient_name = Column(String, nullable=False)
    clinician_name = Column(String, default="", nullable=False)
    clinician_title = Column(String, default="", nullable=False)
    visit_date = Column(Date, nullable=True)
    time_in = Column(String, default="", nullable=False)
    time_out = Column(String, default="", nullable=False)
    duration_minutes = Column(Integer, default=0, nullable=False)
    visit_code = Column(String, default="", nullable=False)
    care_type = Column(String, default="", nullable=False)
    rate = Column(Numeric(10, 2), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)

    # Relationships
    invoice = relationship("Invoice", back_populates="line_items")


class PayrollPayment(Base):
    """Payroll payment model."""

    __tablename__ = "payroll_payments"

    id = Column(Integer, primary_key=True)
    clinician_id = Column(Integer, ForeignKey("clinicians.id"), nullable=True)
    clinician_name = Column(String, nullable=False)
    clinician_title = Column(String, default="", nullable=False)
    billing_period_id = Column(Integer, ForeignKey("billing_periods.id"), nullable=True)
    period_label = Column(String, default="", nullable=False)
    base_amount = Column(Numeric(10, 2), default=0, nullable=False)
    base_hours = Column(Numeric(10, 2), default=0, nullable=False)
    base_visits = Column(Integer, default=0, nullable=False)
    pay_rate = Column(Numeric(10, 2), default=0, nullable=False)
    total_amount = Column(Numeric(10, 2), default=0, nullable=False)
    status = Column(String, default="pending", nullable=False)
    payment_method = Column(String, default="check", nullable=False)
    paid_date = Column(Date, nullable=True)
    notes = Column(String, default="", nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)

    # Relationships
    adjustments = relationship(
        "PayrollAdjustment",
        back_populates="payment",
        cascade="all, delete-orphan",
        order_by="PayrollAdjustment.position",
    )


class PayrollAdjustment(Base):
    """Payroll adjustment model."""

    __tablename__ = "payroll_adjustments"

    id = Column(Integer, primary_key=True)
    payment_id = Column(Integer, ForeignKey("payroll_payments.id"), nullable=False)
    position = Column(Integer, default=0, nullable=False)
    type = Column(String, nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    reason = Column(String, default="", nullable=False)

    # Relationships
    payment = relationship("PayrollPayment", back_populates="adjustments")


def create_session_factory(database_url: str) -> sessionmaker[Session]:
    """Create a SQLAlchemy session factory."""
    engine = create_engine(database_url, echo=False)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)
