"""Arrival and drive-time events generated alongside occurrences.

A series can ask for two kinds of secondary events per occurrence:

    - **arrival**: "be there by" time, spanning from the arrival time to
      the occurrence start.
    - **drive**: the driver's travel time, ending at the arrival time (or
      the occurrence start) and lasting ``drive_minutes``.

Derived rows are keyed by (parent id, instance date, kind). Creation checks
for an existing row first; the table's uniqueness constraint rejects a
second row that slips past the check, which surfaces as a ConflictError.
"""
import logging
from collections.abc import Collection
from datetime import date, datetime, time, timedelta
from uuid import UUID

from family_calendar.models import Event, EventKind
from family_calendar.recurrence.occurrence import Occurrence
from family_calendar.recurrence.store import EventStore

logger = logging.getLogger(__name__)


def arrival_datetime(occurrence: Occurrence, arrival_time: time) -> datetime:
    """The arrival time on the occurrence's day."""
    start = occurrence.start_time
    return datetime.combine(start.date(), arrival_time, tzinfo=start.tzinfo)


class DerivedEventManager:
    """Creates, refreshes and removes derived events."""

    def __init__(self, store: EventStore):
        self.store = store

    def ensure_derived_events(
        self,
        occurrence: Occurrence,
        arrival_time: time | None = None,
        drive_minutes: int | None = None,
        assignee_id: UUID | None = None,
    ) -> list[Event]:
        """Create the derived events ``occurrence`` is missing.

        Returns the rows created by this call.
        """
        if occurrence.parent_event_id is None or occurrence.instance_date is None:
            return []

        created = []
        arrival = None
        if arrival_time is not None:
            arrival = arrival_datetime(occurrence, arrival_time)
            if arrival > occurrence.start_time:
                logger.warning(
                    f"Arrival {arrival_time} is after the start of {occurrence.id}, skipping"
                )
                arrival = None
            elif arrival != occurrence.start_time:
                event = self._create_once(
                    occurrence,
                    EventKind.ARRIVAL,
                    title=f"{occurrence.title} - Arrival",
                    description=f"Arrival time for {occurrence.title}",
                    start_time=arrival,
                    end_time=occurrence.start_time,
                )
                if event is not None:
                    self.store.add_assignments(event.id, occurrence.member_ids, assignee_id)
                    created.append(event)

        if drive_minutes and drive_minutes > 0 and assignee_id:
            drive_end = arrival or occurrence.start_time
            event = self._create_once(
                occurrence,
                EventKind.DRIVE,
                title=f"🚗 {occurrence.title}",
                description=f"Drive time to {occurrence.title}",
                start_time=drive_end - timedelta(minutes=drive_minutes),
                end_time=drive_end,
            )
            if event is not None:
                self.store.add_assignments(event.id, [], assignee_id)
                created.append(event)

        return created

    def _create_once(self, occurrence: Occurrence, kind: EventKind, **fields) -> Event | None:
        existing = self.store.list_derived_events(
            occurrence.parent_event_id, occurrence.instance_date, kind
        )
        if existing:
            return None

        event = Event(
            family_id=occurrence.family_id,
            created_by_user_id=occurrence.created_by_user_id,
            location=occurrence.location,
            parent_event_id=occurrence.parent_event_id,
            instance_date=occurrence.instance_date,
            kind=kind,
            **fields,
        )
        logger.info(f"Creating {kind} event for {occurrence.id}")
        return self.store.add(event)

    def clear_derived_events(
        self,
        parent_id: UUID,
        instance_date: date | None = None,
        keep_dates: Collection[date] = (),
    ) -> int:
        """Hard-delete derived events of one date, or of every date not in ``keep_dates``.

        Returns the number of rows removed.
        """
        removed = 0
        for event in self.store.list_derived_events(parent_id, instance_date):
            if event.instance_date in keep_dates:
                continue
            self.store.delete(event)
            removed += 1
        if removed:
            logger.info(f"Removed {removed} derived events of {parent_id}")
        return removed

    def soft_delete_derived_events(self, parent_id: UUID, instance_date: date) -> int:
        """Flag the derived events of one occurrence as deleted."""
        events = self.store.list_derived_events(parent_id, instance_date)
        for event in events:
            self.store.update(event, is_deleted=True)
        return len(events)
