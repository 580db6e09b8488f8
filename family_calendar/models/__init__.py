from family_calendar.models.assignment import Assignment
from family_calendar.models.event import Event, EventKind

__all__ = ["Event", "EventKind", "Assignment"]
