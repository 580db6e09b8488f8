"""Composite identifiers for virtual occurrences.

A virtual occurrence has no row of its own, so it is named after its parent
and its date: ``<parent uuid>-<YYYY-MM-DD>``, for example
``0b6f4c1e-8a6d-4b47-9a53-2f0f2c1d9e10-2024-01-15``.

Inside the engine the pair is an OccurrenceKey; the string form only exists
at the API boundary.
"""
from datetime import date
from typing import NamedTuple
from uuid import UUID

DELIMITER = "-"
UUID_GROUPS = 5
UUID_GROUP_LENGTHS = [8, 4, 4, 4, 12]


class OccurrenceKey(NamedTuple):
    """A parent event id plus the date of one of its occurrences.

    ``instance_date`` is None when the identifier named the parent itself.
    """

    parent_id: UUID
    instance_date: date | None = None


def encode(parent_id: UUID, instance_date: date) -> str:
    """Build the composite identifier of one occurrence."""
    return f"{parent_id}{DELIMITER}{instance_date.isoformat()}"


def decode(identifier: str) -> OccurrenceKey | None:
    """Split a composite (or bare) identifier.

    Returns None for anything that is not a UUID optionally followed by an
    ISO date.
    """
    if not identifier:
        return None
    groups = identifier.strip().split(DELIMITER)
    if len(groups) < UUID_GROUPS:
        return None
    if [len(group) for group in groups[:UUID_GROUPS]] != UUID_GROUP_LENGTHS:
        return None

    try:
        parent_id = UUID(DELIMITER.join(groups[:UUID_GROUPS]))
    except ValueError:
        return None

    if len(groups) == UUID_GROUPS:
        return OccurrenceKey(parent_id)

    try:
        instance_date = date.fromisoformat(DELIMITER.join(groups[UUID_GROUPS:]))
    except ValueError:
        return None
    return OccurrenceKey(parent_id, instance_date)


def parent_id_of(identifier: str | UUID) -> UUID | None:
    """Return the parent id named by a bare or composite identifier."""
    if isinstance(identifier, UUID):
        return identifier
    key = decode(identifier)
    return key.parent_id if key else None
