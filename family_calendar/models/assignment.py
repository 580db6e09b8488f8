"""Assignment model linking family members to events.

An assignment says that a family member takes part in an event. One
assignment per event may be flagged as the driver/helper, who is the person
drive-time events are generated for.

Virtual occurrences of a recurring series own no assignment rows; they show
the parent's assignments. Once an occurrence is turned into an exception, the
exception owns its own rows.
"""

from typing import TYPE_CHECKING, Optional
from uuid import UUID, uuid4

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from family_calendar.models.event import Event


class Assignment(SQLModel, table=True):
    """A family member assigned to an event.

    Attributes:
        id: Unique identifier (UUID).
        event_id: Foreign key to the assigned Event.
        member_id: The assigned family member.
        is_driver_helper: True for the member who drives or helps.
        event: Reference to the parent Event object.
    """
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    event_id: UUID = Field(foreign_key="event.id", index=True)
    member_id: UUID
    is_driver_helper: bool = Field(default=False)

    # Relationship
    event: Optional["Event"] = Relationship(back_populates="assignments")
