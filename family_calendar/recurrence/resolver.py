"""Overlay persisted exceptions on expanded occurrences.

For every date the expander produces, exactly one thing is shown:

    - nothing, if a deletion marker exists for the date,
    - the exception row, if the date was edited,
    - otherwise the virtual occurrence, showing the parent's current
      assignments.

A deletion marker is an exception row whose title is the configured
sentinel, or any exception row that has been soft-deleted.

The ExceptionResolver also owns the writes that create, revive and
soft-delete exception rows; SeriesManager decides when to call them.
"""
import logging
from collections.abc import Iterable
from datetime import date, datetime, time

from family_calendar.core.config import settings
from family_calendar.models import Event, EventKind
from family_calendar.recurrence.errors import ValidationError
from family_calendar.recurrence.expander import expand
from family_calendar.recurrence.occurrence import AssignmentRead, Occurrence, OccurrenceState
from family_calendar.recurrence.rules import RecurrenceRule
from family_calendar.recurrence.schemas import CLEARABLE_FIELDS
from family_calendar.recurrence.store import EventStore

logger = logging.getLogger(__name__)

# Fields an instance edit may change on an exception row
EDITABLE_FIELDS = ("title", "description", "location", "start_time", "end_time", "all_day")


def is_deletion_marker(exception: Event, sentinel: str | None = None) -> bool:
    """Return True if the exception suppresses its date."""
    sentinel = sentinel or settings.deletion_sentinel
    return exception.is_deleted or exception.title == sentinel


def classify_exception(exception: Event, sentinel: str | None = None) -> OccurrenceState:
    if is_deletion_marker(exception, sentinel):
        return OccurrenceState.DELETION_MARKER
    return OccurrenceState.EXCEPTION


def virtual_times(parent: Event, instance_date: date) -> tuple[datetime, datetime]:
    """Start and end of the parent's occurrence on ``instance_date``."""
    start = datetime.combine(instance_date, parent.start_time.timetz())
    return start, start + (parent.end_time - parent.start_time)


def merge(
    parent: Event,
    rule: RecurrenceRule,
    window_start: datetime,
    window_end: datetime,
    exceptions: Iterable[Event],
    parent_assignments: list[AssignmentRead],
    max_count: int | None = None,
    sentinel: str | None = None,
) -> list[Occurrence]:
    """Combine the expansion of ``parent`` with its exceptions.

    ``exceptions`` must hold every exception of the parent whose instance
    date falls inside the window. The result has one entry per date that
    is not suppressed, ordered by start time.
    """
    by_date: dict[date, Event] = {}
    for exception in exceptions:
        if exception.instance_date in by_date:
            logger.warning(
                f"Duplicate exceptions for {parent.id} on {exception.instance_date}, "
                f"keeping {by_date[exception.instance_date].id}"
            )
            continue
        by_date[exception.instance_date] = exception

    occurrences = []
    for instance in expand(parent, rule, window_start, window_end, max_count):
        exception = by_date.get(instance.instance_date)
        if exception is None:
            occurrences.append(Occurrence.from_virtual(instance, parent, parent_assignments))
        elif is_deletion_marker(exception, sentinel):
            logger.debug(f"Suppressed {instance.composite_id}")
        else:
            occurrences.append(Occurrence.from_event(exception, OccurrenceState.EXCEPTION))

    occurrences.sort(key=lambda occurrence: occurrence.start_time)
    return occurrences


class ExceptionResolver:
    """Reads and writes the per-date overrides of recurring parents."""

    def __init__(self, store: EventStore, max_count: int | None = None):
        self.store = store
        self.max_count = max_count
        self.sentinel = settings.deletion_sentinel

    def resolve(
        self,
        parent: Event,
        rule: RecurrenceRule,
        window_start: datetime,
        window_end: datetime,
    ) -> list[Occurrence]:
        """Fetch the parent's exceptions for the window and merge them."""
        exceptions = self.store.list_exceptions(
            parent.id, window_start.date(), window_end.date()
        )
        parent_assignments = [
            AssignmentRead.from_assignment(a) for a in self.store.list_assignments(parent.id)
        ]
        return merge(
            parent,
            rule,
            window_start,
            window_end,
            exceptions,
            parent_assignments,
            max_count=self.max_count,
            sentinel=self.sentinel,
        )

    def is_occurrence(self, parent: Event, rule: RecurrenceRule, instance_date: date) -> bool:
        """Return True if expanding the series over ``instance_date`` alone yields it.

        This is the date set any window can show, so every date that appears
        in a resolved window can be edited or deleted.
        """
        tz = parent.start_time.tzinfo
        day_start = datetime.combine(instance_date, time.min, tzinfo=tz)
        day_end = datetime.combine(instance_date, time.max, tzinfo=tz)
        return any(
            instance.instance_date == instance_date
            for instance in expand(parent, rule, day_start, day_end, max_count=1)
        )

    def materialize(
        self,
        parent: Event,
        rule: RecurrenceRule,
        instance_date: date,
        changes: dict,
    ) -> Event:
        """Create or update the exception for one occurrence.

        A new exception starts as a copy of the virtual occurrence, owned by
        the parent's family and creator, with ``changes`` applied on top.
        Editing a suppressed date brings the occurrence back.

        Raises:
            ValidationError: if the series has no occurrence on that date.
        """
        fields = {
            k: v
            for k, v in changes.items()
            if k in EDITABLE_FIELDS and (v is not None or k in CLEARABLE_FIELDS)
        }
        existing = self.store.get_exception(parent.id, instance_date)

        if existing is not None:
            if is_deletion_marker(existing, self.sentinel):
                logger.info(f"Restoring deleted occurrence of {parent.id} on {instance_date}")
                if existing.title == self.sentinel:
                    # A bare marker comes back as a fresh copy of the occurrence
                    for field, value in self._occurrence_fields(parent, instance_date).items():
                        fields.setdefault(field, value)
                fields["is_deleted"] = False
            return self.store.update(existing, **fields)

        if not self.is_occurrence(parent, rule, instance_date):
            raise ValidationError(f"{instance_date} is not an occurrence of event {parent.id}")

        exception = Event(
            family_id=parent.family_id,
            created_by_user_id=parent.created_by_user_id,
            **self._occurrence_fields(parent, instance_date),
            parent_event_id=parent.id,
            instance_date=instance_date,
            kind=EventKind.EXCEPTION,
            is_exception=True,
        )
        for field, value in fields.items():
            setattr(exception, field, value)
        logger.info(f"Creating exception for {parent.id} on {instance_date}")
        return self.store.add(exception)

    def mark_deleted(self, parent: Event, rule: RecurrenceRule, instance_date: date) -> Event:
        """Suppress one occurrence.

        An existing exception is soft-deleted; otherwise a deletion marker is
        created, deleted from the start.
        """
        existing = self.store.get_exception(parent.id, instance_date)
        if existing is not None:
            return self.store.update(existing, is_deleted=True)

        if not self.is_occurrence(parent, rule, instance_date):
            raise ValidationError(f"{instance_date} is not an occurrence of event {parent.id}")

        marker = Event(
            family_id=parent.family_id,
            created_by_user_id=parent.created_by_user_id,
            **{**self._occurrence_fields(parent, instance_date), "title": self.sentinel},
            parent_event_id=parent.id,
            instance_date=instance_date,
            kind=EventKind.EXCEPTION,
            is_exception=True,
            is_deleted=True,
        )
        logger.info(f"Creating deletion marker for {parent.id} on {instance_date}")
        return self.store.add(marker)

    @staticmethod
    def _occurrence_fields(parent: Event, instance_date: date) -> dict:
        """The editable fields of the parent's virtual occurrence on a date."""
        start_time, end_time = virtual_times(parent, instance_date)
        return {
            "title": parent.title,
            "description": parent.description,
            "location": parent.location,
            "start_time": start_time,
            "end_time": end_time,
            "all_day": parent.all_day,
        }

    def live_exceptions(self, parent: Event) -> list[Event]:
        """Every exception of the parent that is not a deletion marker."""
        return [
            exception
            for exception in self.store.list_exceptions(parent.id)
            if not is_deletion_marker(exception, self.sentinel)
        ]

    def inherit_assignments(self, parent: Event, member_ids: list, driver_id=None) -> int:
        """Give the parent's new assignments to exceptions that have none of their own.

        Returns the number of exceptions updated.
        """
        updated = 0
        for exception in self.live_exceptions(parent):
            if self.store.list_assignments(exception.id):
                continue
            self.store.add_assignments(exception.id, member_ids, driver_id)
            updated += 1
        return updated

    def delete_all(self, parent: Event) -> int:
        """Hard-delete every exception of the parent. Returns the count."""
        exceptions = self.store.list_exceptions(parent.id)
        for exception in exceptions:
            self.store.delete(exception)
        return len(exceptions)
