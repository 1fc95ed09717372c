"""CLI helpers for resolving agency, clinician and patient references."""

from __future__ import annotations

import click
from carebill.domain.entities import Agency, Clinician, Patient
from carebill.domain.registry import RegistryService
from carebill.utils.entity_resolver import resolve_entity_ref


def resolve_agency_or_exit(ctx: click.Context, registry: RegistryService, agency: str | int) -> Agency:
    """Resolve agency name or ID, or exit with a CLI error."""
    try:
        return resolve_entity_ref(
            "Agency", agency, registry.get_agency, lambda: registry.list_agencies(include_inactive=True)
        )
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        ctx.exit(1)


def resolve_clinician_or_exit(ctx: click.Context, registry: RegistryService, clinician: str | int) -> Clinician:
    """Resolve clinician name or ID, or exit with a CLI error."""
    try:
        return resolve_entity_ref(
            "Clinician", clinician, registry.get_clinician, lambda: registry.list_clinicians(include_inactive=True)
        )
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        ctx.exit(1)


def resolve_patient_or_exit(ctx: click.Context, registry: RegistryService, patient: str | int) -> Patient:
    """Resolve patient name or ID, or exit with a CLI error."""
    try:
        return resolve_entity_ref(
            "Patient", patient, registry.get_patient, lambda: registry.list_patients(include_inactive=True)
        )
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        ctx.exit(1)
