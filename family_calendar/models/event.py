"""Event model for family calendar events.

This module defines the Event model. A single table holds every kind of
calendar row the recurrence engine deals with:

    - ordinary one-off events,
    - recurring parents, which own a serialized recurrence rule and are never
      shown themselves,
    - exceptions, which override (or suppress) one occurrence of a parent,
    - derived events (arrival and drive time) generated for an occurrence.

Exceptions and derived events point back to their parent through
``parent_event_id`` and name the occurrence they belong to through
``instance_date``. The ``kind`` column tells them apart and is part of the
uniqueness constraint that keeps one row per (parent, date, kind).
"""

from datetime import UTC, date, datetime
from enum import StrEnum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from family_calendar.models.assignment import Assignment


class EventKind(StrEnum):
    """Role of a row that hangs off a recurring parent."""

    EXCEPTION = "exception"
    ARRIVAL = "arrival"
    DRIVE = "drive"


class Event(SQLModel, table=True):
    """A calendar event owned by a family.

    Attributes:
        id: Unique identifier (UUID).
        family_id: Family that owns the event.
        created_by_user_id: User who created the event.
        title: Event title.
        description: Free-form description.
        location: Where the event takes place.
        start_time: When the event starts (wall-clock time of the family).
        end_time: When the event ends.
        all_day: Whether the event spans the whole day.
        is_recurring_parent: True for the row that owns a recurrence rule.
        recurrence_rule: Serialized rule document, parents only.
        additional_settings: Serialized arrival/drive settings an exception
            overrides for its own date, exceptions only.
        parent_event_id: For exceptions and derived events, the parent.
        instance_date: For exceptions and derived events, the occurrence
            date they belong to.
        kind: None for ordinary events and parents, otherwise an EventKind.
        is_exception: True for per-date overrides (including deletion markers).
        is_deleted: Soft-delete flag.
        assignments: Family members assigned to this event.
    """
    __table_args__ = (
        UniqueConstraint(
            "parent_event_id", "instance_date", "kind", name="uq_event_parent_date_kind"
        ),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    family_id: UUID = Field(index=True)
    created_by_user_id: UUID
    title: str
    description: str | None = None
    location: str | None = None
    start_time: datetime = Field(index=True)
    end_time: datetime
    all_day: bool = Field(default=False)

    # Recurrence
    is_recurring_parent: bool = Field(default=False, index=True)
    recurrence_rule: str | None = None  # JSON document, see recurrence.rules
    additional_settings: str | None = None  # Exceptions only, own arrival/drive settings
    parent_event_id: UUID | None = Field(default=None, foreign_key="event.id", index=True)
    instance_date: date | None = Field(default=None, index=True)
    kind: str | None = Field(default=None)
    is_exception: bool = Field(default=False)
    is_deleted: bool = Field(default=False)

    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    # Relationships
    assignments: list["Assignment"] = Relationship(back_populates="event")
