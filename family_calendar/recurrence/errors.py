"""Error taxonomy and operation results for the recurrence engine.

Pure functions (expansion, identifier decoding) never raise for bad input;
they return an empty sequence or None. Store access raises the errors below.
Mutating series operations catch them and return an OperationResult instead
of raising, so callers always get a structured answer.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from family_calendar.models import Event


class EngineError(Exception):
    """Base class for recurrence engine errors."""

    error_type = "engine"


class ValidationError(EngineError):
    """Malformed identifier, non-positive interval or invalid rule shape."""

    error_type = "validation"


class NotFoundError(EngineError):
    """A referenced parent event does not exist."""

    error_type = "not_found"


class ConflictError(EngineError):
    """A duplicate exception or derived event was rejected by the store."""

    error_type = "conflict"


class StoreError(EngineError):
    """The persistence layer failed."""

    error_type = "store"


class DeadlineExceededError(EngineError):
    """The caller's deadline passed before the work finished."""

    error_type = "deadline"


@dataclass
class OperationResult:
    """Outcome of a mutating series operation."""

    success: bool
    error: str | None = None
    error_type: str | None = None
    parent_event: "Event | None" = None

    @classmethod
    def ok(cls, parent_event: "Event | None" = None) -> "OperationResult":
        return cls(success=True, parent_event=parent_event)

    @classmethod
    def fail(cls, exc: EngineError) -> "OperationResult":
        return cls(success=False, error=str(exc), error_type=exc.error_type)
