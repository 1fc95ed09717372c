"""Name matching for OCR-extracted agency, clinician and patient names.

Extracted names are noisy: handwriting and scan quality produce dropped or
swapped letters. A name is first looked up exactly (case-insensitive) and then
fuzzily by edit-distance similarity against the active registry entries.
Anything scoring below ``MATCH_THRESHOLD`` is treated as a new entity.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Generic, Iterable, Optional, Protocol, TypeVar

logger = logging.getLogger(__name__)

MATCH_THRESHOLD = 0.70

MATCH_EXACT = "exact"
MATCH_FUZZY = "fuzzy"
MATCH_CREATED = "created"


class NamedEntity(Protocol):
    """Anything the resolver can match: agencies, clinicians, patients."""

    id: int
    name: str
    active: bool


T = TypeVar("T", bound=NamedEntity)


@dataclass(frozen=True)
class Match(Generic[T]):
    """Registry entry matched to an extracted name."""

    entity: T
    kind: str
    score: float


@dataclass(frozen=True)
class Resolution(Generic[T]):
    """Outcome of resolve_or_create."""

    entity: T
    kind: str
    score: float = 1.0

    @property
    def created(self) -> bool:
        return self.kind == MATCH_CREATED


def normalize_name(name: str) -> str:
    """Lower-case, trim and collapse internal whitespace."""
    return re.sub(r"\s+", " ", name.strip().lower())


def levenshtein(a: str, b: str) -> int:
    """Edit distance with unit-cost insertions, deletions and substitutions."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            if char_a == char_b:
                current.append(previous[j - 1])
            else:
                current.append(1 + min(previous[j], current[j - 1], previous[j - 1]))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """Similarity in [0, 1] between two names.

    Both names are lower-cased and trimmed before comparison. Two empty
    strings have no meaningful similarity and score 0.0.
    """
    a = (a or "").strip().lower()
    b = (b or "").strip().lower()
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 0.0
    return 1 - levenshtein(a, b) / max_len


def resolve(registry: Iterable[T], extracted_name: Optional[str]) -> Optional[Match[T]]:
    """Find the registry entry an extracted name refers to.

    Exact (case-insensitive) matches win outright and are searched across
    active and inactive entries; the smallest id wins among several. Fuzzy
    matching only considers active entries. Equal fuzzy scores are broken by
    the lexicographically smallest normalized name, then the smallest id.

    Returns:
        Match, or None when nothing is close enough
    """
    if not extracted_name or not extracted_name.strip():
        return None

    entities = list(registry)
    wanted = extracted_name.strip().lower()

    exact = [e for e in entities if (e.name or "").strip().lower() == wanted]
    if exact:
        best = min(exact, key=lambda e: e.id)
        return Match(entity=best, kind=MATCH_EXACT, score=1.0)

    best_entity: Optional[T] = None
    best_key: Optional[tuple] = None
    best_score = 0.0
    for entity in entities:
        if not entity.active or not entity.name:
            continue
        score = similarity(extracted_name, entity.name)
        key = (-score, normalize_name(entity.name), entity.id)
        if best_key is None or key < best_key:
            best_key = key
            best_entity = entity
            best_score = score

    if best_entity is not None and best_score >= MATCH_THRESHOLD:
        return Match(entity=best_entity, kind=MATCH_FUZZY, score=best_score)
    return None


def resolve_or_create(
    registry: Iterable[T],
    extracted_name: Optional[str],
    factory: Callable[[str], T],
) -> Optional[Resolution[T]]:
    """Resolve an extracted name, creating a new entity when nothing matches.

    Args:
        registry: Candidate entities of one kind
        extracted_name: Name as extracted from the document
        factory: Called with the trimmed name to create (or fetch) the entity

    Returns:
        Resolution, or None if the extracted name is empty
    """
    if not extracted_name or not extracted_name.strip():
        return None

    match = resolve(registry, extracted_name)
    if match is not None:
        if match.kind == MATCH_FUZZY:
            logger.info("Fuzzy matched %r -> %r (%.2f)", extracted_name, match.entity.name, match.score)
        return Resolution(entity=match.entity, kind=match.kind, score=match.score)

    entity = factory(extracted_name.strip())
    logger.info("Created %s for unmatched name %r", type(entity).__name__, extracted_name)
    return Resolution(entity=entity, kind=MATCH_CREATED, score=0.0)
