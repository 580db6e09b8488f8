"""Expand a recurring parent into virtual occurrences for a window.

Expansion is pure: the same parent, rule and window always produce the same
list, and nothing is read from or written to the database. Deleted and
edited occurrences are not handled here; see resolver.py.

The cursor starts at the later of the parent's start date and the window
start date, and ``endCount`` limits the occurrences emitted for the window.
"""
import logging
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from uuid import UUID

from dateutil.relativedelta import relativedelta

from family_calendar.core.config import settings
from family_calendar.models import Event
from family_calendar.recurrence.identifiers import OccurrenceKey, encode
from family_calendar.recurrence.rules import RecurrenceRule

logger = logging.getLogger(__name__)

SUNDAY = 6  # Weeks start on Sunday for the interval skip


@dataclass(frozen=True)
class VirtualInstance:
    """One computed occurrence of a recurring parent. Never persisted."""

    parent_id: UUID
    instance_date: date
    start_time: datetime
    end_time: datetime

    @property
    def key(self) -> OccurrenceKey:
        return OccurrenceKey(self.parent_id, self.instance_date)

    @property
    def composite_id(self) -> str:
        return encode(self.parent_id, self.instance_date)


def _step(rule: RecurrenceRule) -> relativedelta:
    match rule.type:
        case "daily":
            return relativedelta(days=rule.interval)
        case "weekly":
            return relativedelta(weeks=rule.interval)
        case "monthly":
            return relativedelta(months=rule.interval)
        case "yearly":
            return relativedelta(years=rule.interval)
    raise ValueError(f"Unknown recurrence type: {rule.type}")


def candidate_dates(first: date, rule: RecurrenceRule) -> Iterator[date]:
    """Yield the rule's dates with the cursor starting at ``first``, forever.

    With a weekday filter the cursor walks day by day and, each time it
    enters a new week, jumps ``interval - 1`` further weeks ahead. Without
    one, the n-th date is ``first + n * interval`` units, computed from
    ``first`` so that month-end dates clamp without drifting.
    """
    weekdays = rule.weekday_numbers
    if weekdays:
        cursor = first
        while True:
            if cursor.weekday() in weekdays:
                yield cursor
            cursor += timedelta(days=1)
            if cursor.weekday() == SUNDAY and rule.interval > 1:
                cursor += timedelta(weeks=rule.interval - 1)
    else:
        step = _step(rule)
        n = 0
        while True:
            yield first + step * n
            n += 1


def expand(
    anchor: Event,
    rule: RecurrenceRule,
    window_start: datetime,
    window_end: datetime,
    max_count: int | None = None,
) -> list[VirtualInstance]:
    """Return the virtual occurrences of ``anchor`` for the window.

    The cursor starts on the later of the anchor's date and the window
    start's date. Every occurrence keeps the anchor's time of day and
    duration. The list is ordered by start time and stops at the first of:
    the window end, the rule's end date, ``endCount`` emitted occurrences or
    ``max_count`` emitted occurrences.

    Invalid input (interval below 1, non-positive max_count) gives an
    empty list.
    """
    if max_count is None:
        max_count = settings.max_occurrences
    if rule.interval < 1:
        logger.warning(f"Refusing to expand {anchor.id}: interval {rule.interval} < 1")
        return []
    if max_count < 1 or anchor.start_time > window_end:
        return []

    duration = anchor.end_time - anchor.start_time
    clock = anchor.start_time.timetz()
    first = max(anchor.start_time.date(), window_start.date())
    limit = min(max_count, rule.end_count) if rule.end_count else max_count

    instances: list[VirtualInstance] = []
    for day in candidate_dates(first, rule):
        if rule.end_date and day > rule.end_date:
            break
        start = datetime.combine(day, clock)
        if start > window_end:
            break
        instances.append(VirtualInstance(anchor.id, day, start, start + duration))
        if len(instances) >= limit:
            if limit == max_count:
                logger.debug(f"Expansion of {anchor.id} hit the cap of {max_count}")
            break

    return instances
