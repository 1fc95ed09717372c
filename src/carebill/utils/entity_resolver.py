"""Utility for resolving registry references (name or ID) typed on the command line."""

from typing import Callable, Iterable, Optional, TypeVar

from carebill.domain.errors import NotFoundError
from carebill.domain.matching import NamedEntity

T = TypeVar("T", bound=NamedEntity)


def resolve_entity_ref(
    kind: str,
    ref: str | int,
    get_by_id: Callable[[int], Optional[T]],
    list_all: Callable[[], Iterable[T]],
) -> T:
    """Resolve an entity name or ID to the entity.

    Args:
        kind: Entity kind for error messages (e.g. "Agency")
        ref: Entity name or ID (int or string representation of int)
        get_by_id: Lookup by ID
        list_all: Every entity of the kind, inactive included

    Returns:
        The entity

    Raises:
        NotFoundError: If no entity matches
    """
    if isinstance(ref, int):
        entity = get_by_id(ref)
        if entity is None:
            raise NotFoundError(f"{kind} ID {ref} not found")
        return entity

    # Try to parse as integer (handles string IDs like "1")
    try:
        entity_id = int(ref)
    except (ValueError, TypeError):
        entity_id = None
    if entity_id is not None:
        entity = get_by_id(entity_id)
        if entity is None:
            raise NotFoundError(f"{kind} ID {entity_id} not found")
        return entity

    wanted = ref.strip().lower()
    for entity in list_all():
        if entity.name.strip().lower() == wanted:
            return entity

    raise NotFoundError(f"{kind} '{ref}' not found")
