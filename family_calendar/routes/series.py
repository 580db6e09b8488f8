"""Series routes for creating, editing and deleting recurring events."""
from datetime import date
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlmodel import Session

from family_calendar.core.database import get_session
from family_calendar.recurrence import EventStore, OperationResult, SeriesManager
from family_calendar.recurrence.schemas import EventChanges, EventTemplate

router = APIRouter(prefix="/series", tags=["series"])

ERROR_STATUS = {
    "validation": 422,
    "not_found": 404,
    "conflict": 409,
    "store": 503,
    "deadline": 504,
}


class SeriesCreate(BaseModel):
    event: EventTemplate
    rule: dict[str, Any]
    assigned_members: list[UUID] = Field(default_factory=list)
    driver_id: UUID | None = None


class SeriesEdit(BaseModel):
    changes: EventChanges = Field(default_factory=EventChanges)
    assigned_members: list[UUID] | None = None
    driver_id: UUID | None = None


def get_series_manager(session: Session = Depends(get_session)) -> SeriesManager:
    """Dependency building the engine over the request's session."""
    return SeriesManager(EventStore(session))


def raise_for_result(result: OperationResult) -> None:
    """Turn a failed operation into an HTTP error."""
    if not result.success:
        raise HTTPException(
            status_code=ERROR_STATUS.get(result.error_type, 500),
            detail=result.error,
        )


@router.post("", status_code=201)
async def create_series(
    body: SeriesCreate, manager: SeriesManager = Depends(get_series_manager)
):
    """
    Create a recurring event.

    Stores the parent event with its rule and assignments. Arrival and drive
    settings of the event are kept on the rule and applied to every
    occurrence.
    """
    result = manager.create_series(body.event, body.rule, body.assigned_members, body.driver_id)
    raise_for_result(result)
    return {"success": True, "parent_event_id": str(result.parent_event.id)}


@router.patch("/{parent_id}")
async def edit_series(
    parent_id: str, body: SeriesEdit, manager: SeriesManager = Depends(get_series_manager)
):
    """
    Edit a whole series.

    Occurrences that were edited individually keep their own fields; those
    without assignments of their own pick up new assignments.
    """
    result = manager.edit_series(parent_id, body.changes, body.assigned_members, body.driver_id)
    raise_for_result(result)
    return {"success": True}


@router.delete("/{parent_id}")
async def delete_series(parent_id: str, manager: SeriesManager = Depends(get_series_manager)):
    """Delete a series with all of its exceptions and derived events."""
    result = manager.delete_series(parent_id)
    raise_for_result(result)
    return {"success": True}


@router.patch("/{parent_id}/instances/{instance_date}")
async def edit_instance(
    parent_id: str,
    instance_date: date,
    body: SeriesEdit,
    manager: SeriesManager = Depends(get_series_manager),
):
    """Edit one occurrence of a series."""
    result = manager.edit_instance(
        parent_id, instance_date, body.changes, body.assigned_members, body.driver_id
    )
    raise_for_result(result)
    return {"success": True}


@router.delete("/{parent_id}/instances/{instance_date}")
async def delete_instance(
    parent_id: str,
    instance_date: date,
    manager: SeriesManager = Depends(get_series_manager),
):
    """Delete one occurrence of a series."""
    result = manager.delete_instance(parent_id, instance_date)
    raise_for_result(result)
    return {"success": True}
