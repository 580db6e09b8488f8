"""Read model for resolved occurrences.

Everything a window query returns is an Occurrence, whatever it is backed
by. ``state`` says which one it is:

    - ``virtual``: computed from a recurring parent, no row of its own.
    - ``exception``: a persisted override of one occurrence.
    - ``single``: an ordinary one-off event.
    - ``derived``: an arrival or drive-time event.

Deletion markers are classified as ``deletion_marker`` but never returned.
"""
from datetime import date, datetime
from enum import StrEnum
from uuid import UUID

from sqlmodel import Field, SQLModel

from family_calendar.models import Assignment, Event
from family_calendar.recurrence.expander import VirtualInstance


class OccurrenceState(StrEnum):
    VIRTUAL = "virtual"
    EXCEPTION = "exception"
    DELETION_MARKER = "deletion_marker"
    SINGLE = "single"
    DERIVED = "derived"


class AssignmentRead(SQLModel):
    member_id: UUID
    is_driver_helper: bool = False

    @classmethod
    def from_assignment(cls, assignment: Assignment) -> "AssignmentRead":
        return cls(member_id=assignment.member_id, is_driver_helper=assignment.is_driver_helper)


class Occurrence(SQLModel):
    """One visible entry of a resolved window."""
    id: str
    state: OccurrenceState
    family_id: UUID
    created_by_user_id: UUID
    title: str
    description: str | None = None
    location: str | None = None
    start_time: datetime
    end_time: datetime
    all_day: bool = False
    parent_event_id: UUID | None = None
    instance_date: date | None = None
    kind: str | None = None
    assignments: list[AssignmentRead] = Field(default_factory=list)

    @property
    def driver_id(self) -> UUID | None:
        return next((a.member_id for a in self.assignments if a.is_driver_helper), None)

    @property
    def member_ids(self) -> list[UUID]:
        return [a.member_id for a in self.assignments if not a.is_driver_helper]

    @classmethod
    def from_event(cls, event: Event, state: OccurrenceState) -> "Occurrence":
        """Wrap a persisted row, with the assignments it owns."""
        return cls(
            id=str(event.id),
            state=state,
            family_id=event.family_id,
            created_by_user_id=event.created_by_user_id,
            title=event.title,
            description=event.description,
            location=event.location,
            start_time=event.start_time,
            end_time=event.end_time,
            all_day=event.all_day,
            parent_event_id=event.parent_event_id,
            instance_date=event.instance_date,
            kind=event.kind,
            assignments=[AssignmentRead.from_assignment(a) for a in event.assignments],
        )

    @classmethod
    def from_virtual(
        cls,
        instance: VirtualInstance,
        parent: Event,
        assignments: list[AssignmentRead],
    ) -> "Occurrence":
        """Build a virtual occurrence that shows the parent's fields and assignments."""
        return cls(
            id=instance.composite_id,
            state=OccurrenceState.VIRTUAL,
            family_id=parent.family_id,
            created_by_user_id=parent.created_by_user_id,
            title=parent.title,
            description=parent.description,
            location=parent.location,
            start_time=instance.start_time,
            end_time=instance.end_time,
            all_day=parent.all_day,
            parent_event_id=parent.id,
            instance_date=instance.instance_date,
            assignments=list(assignments),
        )
