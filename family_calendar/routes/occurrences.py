"""Occurrence routes for reading a family's calendar."""
import logging
from datetime import UTC, date, datetime, timedelta
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query

from family_calendar.core.config import settings
from family_calendar.recurrence import (
    DeadlineExceededError,
    Occurrence,
    SeriesManager,
    StoreError,
)
from family_calendar.recurrence.identifiers import decode
from family_calendar.routes.series import SeriesEdit, get_series_manager, raise_for_result

logger = logging.getLogger(__name__)

router = APIRouter(tags=["occurrences"])


@router.get("/families/{family_id}/occurrences", response_model=list[Occurrence])
async def list_occurrences(
    family_id: UUID,
    start: date = Query(...),
    end: date = Query(...),
    manager: SeriesManager = Depends(get_series_manager),
):
    """
    List everything on a family's calendar between two dates (inclusive).

    Returns virtual occurrences of recurring events, edited occurrences,
    one-off events and arrival/drive events, ordered by start time.
    """
    if end < start:
        raise HTTPException(status_code=422, detail="end must not be before start")

    deadline = None
    if settings.resolve_timeout_seconds > 0:
        deadline = datetime.now(UTC) + timedelta(seconds=settings.resolve_timeout_seconds)

    try:
        return manager.resolve_occurrences(family_id, start, end, deadline=deadline)
    except DeadlineExceededError as e:
        logger.warning(f"Resolving occurrences for {family_id} timed out: {e}")
        raise HTTPException(status_code=504, detail=str(e))
    except StoreError as e:
        logger.error(f"Resolving occurrences for {family_id} failed: {e}")
        raise HTTPException(status_code=503, detail=str(e))


def _occurrence_key(occurrence_id: str):
    key = decode(occurrence_id)
    if key is None or key.instance_date is None:
        raise HTTPException(status_code=422, detail=f"Not an occurrence id: {occurrence_id}")
    return key


@router.patch("/occurrences/{occurrence_id}")
async def edit_occurrence(
    occurrence_id: str,
    body: SeriesEdit,
    manager: SeriesManager = Depends(get_series_manager),
):
    """Edit one occurrence addressed by its composite id."""
    key = _occurrence_key(occurrence_id)
    result = manager.edit_instance(
        key.parent_id, key.instance_date, body.changes, body.assigned_members, body.driver_id
    )
    raise_for_result(result)
    return {"success": True}


@router.delete("/occurrences/{occurrence_id}")
async def delete_occurrence(
    occurrence_id: str, manager: SeriesManager = Depends(get_series_manager)
):
    """Delete one occurrence addressed by its composite id."""
    key = _occurrence_key(occurrence_id)
    result = manager.delete_instance(key.parent_id, key.instance_date)
    raise_for_result(result)
    return {"success": True}
