"""Tests for database models."""

from datetime import date, datetime
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from conftest import DRIVER, MEMBER_A, make_event
from family_calendar.models import Assignment, Event, EventKind


class TestEventModel:
    """Tests for the Event model."""

    def test_create_event(self, session: Session):
        """Test creating a basic event."""
        event = make_event(title="Dentist", location="Main St")
        session.add(event)
        session.commit()

        retrieved = session.exec(select(Event).where(Event.title == "Dentist")).first()

        assert retrieved is not None
        assert retrieved.location == "Main St"
        assert retrieved.is_recurring_parent is False
        assert retrieved.is_exception is False
        assert retrieved.is_deleted is False
        assert retrieved.kind is None
        assert retrieved.parent_event_id is None

    def test_recurring_parent(self, session: Session):
        """Test a parent keeps its rule document."""
        parent = make_event(
            is_recurring_parent=True,
            recurrence_rule='{"type": "weekly", "interval": 1, "days": ["monday"]}',
        )
        session.add(parent)
        session.commit()
        session.refresh(parent)

        assert parent.is_recurring_parent is True
        assert '"weekly"' in parent.recurrence_rule

    def test_one_row_per_parent_date_and_kind(self, session: Session):
        """Test that a parent has one exception per date."""
        parent = make_event(is_recurring_parent=True)
        session.add(parent)
        session.commit()

        for title in ("First", "Second"):
            session.add(
                make_event(
                    title=title,
                    parent_event_id=parent.id,
                    instance_date=date(2024, 1, 8),
                    kind=EventKind.EXCEPTION,
                    is_exception=True,
                )
            )

        with pytest.raises(IntegrityError):
            session.commit()

    def test_kinds_share_a_date(self, session: Session):
        """Test an exception and its derived events can coexist."""
        parent = make_event(is_recurring_parent=True)
        session.add(parent)
        session.commit()

        for kind in EventKind:
            session.add(
                make_event(parent_event_id=parent.id, instance_date=date(2024, 1, 8), kind=kind)
            )
        session.commit()

        rows = session.exec(select(Event).where(Event.parent_event_id == parent.id)).all()
        assert {row.kind for row in rows} == {"exception", "arrival", "drive"}

    def test_ordinary_events_are_not_constrained(self, session: Session):
        """Test NULL parent ids never collide."""
        session.add(make_event(title="One"))
        session.add(make_event(title="Two"))
        session.commit()

        assert len(session.exec(select(Event)).all()) == 2


class TestAssignmentModel:
    """Tests for the Assignment model."""

    def test_create_assignment(self, session: Session):
        """Test assigning a member to an event."""
        event = make_event()
        session.add(event)
        session.commit()

        assignment = Assignment(event_id=event.id, member_id=MEMBER_A)
        session.add(assignment)
        session.commit()

        assert assignment.id is not None
        assert assignment.is_driver_helper is False

    def test_assignment_event_relationship(self, session: Session):
        """Test the event sees its assignments and vice versa."""
        event = make_event()
        session.add(event)
        session.commit()

        session.add(Assignment(event_id=event.id, member_id=MEMBER_A))
        session.add(Assignment(event_id=event.id, member_id=DRIVER, is_driver_helper=True))
        session.commit()
        session.refresh(event)

        assert len(event.assignments) == 2
        driver = next(a for a in event.assignments if a.is_driver_helper)
        assert driver.member_id == DRIVER
        assert driver.event.id == event.id

    def test_event_foreign_key(self):
        """Test assignments reference the event table."""
        column = Assignment.__table__.c.event_id
        assert {fk.column.table.name for fk in column.foreign_keys} == {"event"}

    def test_timestamps(self):
        """Test created_at and updated_at are filled in."""
        event = make_event(id=uuid4(), start_time=datetime(2024, 5, 1, 12, 0))
        assert event.created_at is not None
        assert event.updated_at is not None
