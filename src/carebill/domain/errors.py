"""Shared domain error messages and error types."""


class DomainError(ValueError):
    """Base class for domain-level errors.

    Subclasses provide semantic categories while preserving ValueError
    compatibility for existing error handling.
    """


class ValidationError(DomainError):
    """Invalid input or failed validation in domain logic."""


class NotFoundError(DomainError):
    """Requested domain entity does not exist."""


class ConflictError(DomainError):
    """Domain conflict, such as uniqueness violations."""


class DependencyError(DomainError):
    """Operation blocked due to dependent domain data."""


class DuplicateRecordNumberError(ConflictError):
    """Clinical record number already belongs to another patient."""


class InvalidStateTransitionError(DomainError):
    """Disallowed status change on an invoice or payroll payment."""

    def __init__(self, kind: str, entity_id: int | None, current: str, attempted: str, detail: str = ""):
        self.kind = kind
        self.entity_id = entity_id
        self.current = current
        self.attempted = attempted
        message = invalid_transition(kind, entity_id, current, attempted)
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


def not_found(kind: str, entity_id: int) -> str:
    """Return message for a missing entity."""
    return f"{kind} {entity_id} not found"


def duplicate_name(kind: str, name: str) -> str:
    """Return message for a name that is already registered."""
    return f"{kind} with name '{name}' already exists"


def duplicate_record_number(record_number: str, patient_name: str) -> str:
    """Return message for a clinical record number collision."""
    return f"Clinical record number '{record_number}' is already assigned to patient '{patient_name}'"


def invalid_transition(kind: str, entity_id: int | None, current: str, attempted: str) -> str:
    """Return message for a rejected status change."""
    label = kind if entity_id is None else f"{kind} {entity_id}"
    return f"Cannot move {label} from '{current}' to '{attempted}'"


def period_not_open(period_label: str, status: str) -> str:
    """Return message when attaching work to a period that no longer accepts it."""
    return f"Billing period {period_label} is {status}; new timesheets can only be attached to an open period"


def period_delete_blocked(period_id: int, invoice_count: int) -> str:
    """Return message when a billing period still has invoices."""
    return (
        f"Cannot delete billing period {period_id}: it has {invoice_count} "
        f"invoice{'s' if invoice_count != 1 else ''}. Delete them first."
    )
