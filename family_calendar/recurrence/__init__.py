from family_calendar.recurrence.errors import (
    ConflictError,
    DeadlineExceededError,
    EngineError,
    NotFoundError,
    OperationResult,
    StoreError,
    ValidationError,
)
from family_calendar.recurrence.occurrence import Occurrence, OccurrenceState
from family_calendar.recurrence.series import SeriesManager
from family_calendar.recurrence.store import EventStore

__all__ = [
    "SeriesManager",
    "EventStore",
    "Occurrence",
    "OccurrenceState",
    "OperationResult",
    "EngineError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "StoreError",
    "DeadlineExceededError",
]
