"""Tests for arrival and drive-time events."""

from datetime import date, datetime, time

import pytest

from conftest import DRIVER, MEMBER_A
from family_calendar.models import Event, EventKind
from family_calendar.recurrence.derived import arrival_datetime
from family_calendar.recurrence.errors import ConflictError
from family_calendar.recurrence.rules import parse_rule


def occurrence_on(manager, parent, instance_date: date):
    """The resolved occurrence of ``parent`` on one day."""
    rule = parse_rule(parent.recurrence_rule)
    day = datetime.combine(instance_date, time.min), datetime.combine(instance_date, time.max)
    (occurrence,) = manager.resolver.resolve(parent, rule, *day)
    return occurrence


def by_kind(events: list[Event]) -> dict[str, Event]:
    return {event.kind: event for event in events}


class TestArrivalEvents:
    def test_arrival_spans_until_start(self, manager, weekly_series):
        occurrence = occurrence_on(manager, weekly_series, date(2024, 1, 8))

        created = manager.derived.ensure_derived_events(occurrence, arrival_time=time(8, 30))

        assert len(created) == 1
        arrival = created[0]
        assert arrival.kind == EventKind.ARRIVAL
        assert arrival.title == "Practice - Arrival"
        assert arrival.start_time == datetime(2024, 1, 8, 8, 30)
        assert arrival.end_time == datetime(2024, 1, 8, 9, 0)
        assert arrival.parent_event_id == weekly_series.id
        assert arrival.instance_date == date(2024, 1, 8)
        assert arrival.location == "Field 3"

    def test_arrival_assigned_to_members_and_driver(self, manager, store, weekly_series):
        occurrence = occurrence_on(manager, weekly_series, date(2024, 1, 8))

        (arrival,) = manager.derived.ensure_derived_events(
            occurrence, arrival_time=time(8, 30), assignee_id=None
        )

        assert [a.member_id for a in store.list_assignments(arrival.id)] == [MEMBER_A]

    def test_no_arrival_at_start_time(self, manager, weekly_series):
        occurrence = occurrence_on(manager, weekly_series, date(2024, 1, 8))

        created = manager.derived.ensure_derived_events(occurrence, arrival_time=time(9, 0))

        assert created == []

    def test_no_arrival_after_start_time(self, manager, weekly_series):
        occurrence = occurrence_on(manager, weekly_series, date(2024, 1, 8))

        created = manager.derived.ensure_derived_events(
            occurrence, arrival_time=time(9, 30), drive_minutes=15, assignee_id=DRIVER
        )

        assert [event.kind for event in created] == [EventKind.DRIVE]
        assert created[0].end_time == datetime(2024, 1, 8, 9, 0)

    def test_arrival_datetime_uses_occurrence_day(self, manager, weekly_series):
        occurrence = occurrence_on(manager, weekly_series, date(2024, 2, 5))

        assert arrival_datetime(occurrence, time(8, 45)) == datetime(2024, 2, 5, 8, 45)


class TestDriveEvents:
    def test_drive_ends_at_arrival(self, manager, store, weekly_series):
        occurrence = occurrence_on(manager, weekly_series, date(2024, 1, 8))

        created = by_kind(
            manager.derived.ensure_derived_events(
                occurrence, arrival_time=time(8, 30), drive_minutes=20, assignee_id=DRIVER
            )
        )

        drive = created[EventKind.DRIVE]
        assert drive.title == "🚗 Practice"
        assert drive.start_time == datetime(2024, 1, 8, 8, 10)
        assert drive.end_time == datetime(2024, 1, 8, 8, 30)
        assignments = store.list_assignments(drive.id)
        assert [(a.member_id, a.is_driver_helper) for a in assignments] == [(DRIVER, True)]

    def test_drive_ends_at_start_without_arrival(self, manager, weekly_series):
        occurrence = occurrence_on(manager, weekly_series, date(2024, 1, 8))

        (drive,) = manager.derived.ensure_derived_events(
            occurrence, drive_minutes=15, assignee_id=DRIVER
        )

        assert drive.start_time == datetime(2024, 1, 8, 8, 45)
        assert drive.end_time == datetime(2024, 1, 8, 9, 0)

    @pytest.mark.parametrize("drive_minutes", [0, None])
    def test_no_drive_without_minutes(self, manager, weekly_series, drive_minutes):
        occurrence = occurrence_on(manager, weekly_series, date(2024, 1, 8))

        created = manager.derived.ensure_derived_events(
            occurrence, drive_minutes=drive_minutes, assignee_id=DRIVER
        )

        assert created == []

    def test_no_drive_without_assignee(self, manager, weekly_series):
        occurrence = occurrence_on(manager, weekly_series, date(2024, 1, 8))

        created = manager.derived.ensure_derived_events(occurrence, drive_minutes=20)

        assert created == []


class TestIdempotence:
    def test_second_call_creates_nothing(self, manager, store, weekly_series):
        occurrence = occurrence_on(manager, weekly_series, date(2024, 1, 8))
        args = {"arrival_time": time(8, 30), "drive_minutes": 20, "assignee_id": DRIVER}

        first = manager.derived.ensure_derived_events(occurrence, **args)
        second = manager.derived.ensure_derived_events(occurrence, **args)

        assert len(first) == 2
        assert second == []
        assert len(store.list_derived_events(weekly_series.id, date(2024, 1, 8))) == 2

    def test_store_rejects_duplicate_rows(self, manager, store, weekly_series):
        occurrence = occurrence_on(manager, weekly_series, date(2024, 1, 8))
        manager.derived.ensure_derived_events(occurrence, arrival_time=time(8, 30))

        duplicate = Event(
            family_id=weekly_series.family_id,
            created_by_user_id=weekly_series.created_by_user_id,
            title="Practice - Arrival",
            start_time=datetime(2024, 1, 8, 8, 30),
            end_time=datetime(2024, 1, 8, 9, 0),
            parent_event_id=weekly_series.id,
            instance_date=date(2024, 1, 8),
            kind=EventKind.ARRIVAL,
        )
        with pytest.raises(ConflictError):
            store.add(duplicate)
        store.rollback()

    def test_skips_occurrence_without_parent(self, manager):
        from family_calendar.recurrence.occurrence import Occurrence, OccurrenceState

        occurrence = Occurrence(
            id="single",
            state=OccurrenceState.SINGLE,
            family_id=DRIVER,
            created_by_user_id=DRIVER,
            title="Dentist",
            start_time=datetime(2024, 1, 3, 15, 0),
            end_time=datetime(2024, 1, 3, 16, 0),
        )

        assert manager.derived.ensure_derived_events(occurrence, arrival_time=time(14, 45)) == []


class TestCleanup:
    @pytest.fixture
    def two_weeks(self, manager, weekly_series):
        for day in (date(2024, 1, 8), date(2024, 1, 15)):
            manager.derived.ensure_derived_events(
                occurrence_on(manager, weekly_series, day),
                arrival_time=time(8, 30),
                drive_minutes=20,
                assignee_id=DRIVER,
            )
        return weekly_series

    def test_clear_one_date(self, manager, store, two_weeks):
        removed = manager.derived.clear_derived_events(two_weeks.id, date(2024, 1, 8))

        assert removed == 2
        assert store.list_derived_events(two_weeks.id, date(2024, 1, 8)) == []
        assert len(store.list_derived_events(two_weeks.id, date(2024, 1, 15))) == 2

    def test_clear_keeps_listed_dates(self, manager, store, two_weeks):
        removed = manager.derived.clear_derived_events(
            two_weeks.id, keep_dates={date(2024, 1, 8)}
        )

        assert removed == 2
        remaining = store.list_derived_events(two_weeks.id)
        assert {event.instance_date for event in remaining} == {date(2024, 1, 8)}

    def test_clear_removes_assignments(self, manager, store, two_weeks):
        event_ids = [e.id for e in store.list_derived_events(two_weeks.id, date(2024, 1, 15))]

        manager.derived.clear_derived_events(two_weeks.id, date(2024, 1, 15))

        assert all(store.list_assignments(event_id) == [] for event_id in event_ids)

    def test_soft_delete(self, manager, store, two_weeks):
        count = manager.derived.soft_delete_derived_events(two_weeks.id, date(2024, 1, 15))

        assert count == 2
        events = store.list_derived_events(two_weeks.id, date(2024, 1, 15))
        assert all(event.is_deleted for event in events)
        assert not any(e.is_deleted for e in store.list_derived_events(two_weeks.id, date(2024, 1, 8)))
