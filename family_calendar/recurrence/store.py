"""Persistence port of the recurrence engine.

EventStore is the only place that talks to the database. Every engine
component receives one explicitly; there is no module-level store. SQLAlchemy
failures leave this module as engine errors: a violated uniqueness
constraint becomes a ConflictError, anything else a StoreError.

Writes are flushed immediately so constraint violations surface at the call
that caused them. Committing is left to the caller, which owns the
transaction.
"""
import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import UTC, date, datetime
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, col, select

from family_calendar.models import Assignment, Event, EventKind
from family_calendar.recurrence.errors import ConflictError, NotFoundError, StoreError

logger = logging.getLogger(__name__)

DERIVED_KINDS = (EventKind.ARRIVAL, EventKind.DRIVE)


@contextmanager
def _translate_errors(action: str) -> Iterator[None]:
    try:
        yield
    except IntegrityError as e:
        raise ConflictError(f"Failed to {action}: {e.orig}") from e
    except SQLAlchemyError as e:
        raise StoreError(f"Failed to {action}: {e}") from e


class EventStore:
    """Record-level access to events and assignments."""

    def __init__(self, session: Session):
        self.session = session

    # Reads

    def get_event(self, event_id: UUID) -> Event | None:
        with _translate_errors("load event"):
            return self.session.get(Event, event_id)

    def get_parent(self, parent_id: UUID) -> Event:
        """Load a recurring parent, raising NotFoundError if there is none."""
        event = self.get_event(parent_id)
        if event is None or not event.is_recurring_parent:
            raise NotFoundError(f"Recurring event {parent_id} not found")
        return event

    def list_recurring_parents(self, family_id: UUID) -> list[Event]:
        statement = (
            select(Event)
            .where(Event.family_id == family_id)
            .where(Event.is_recurring_parent == True)  # noqa: E712
            .where(Event.is_deleted == False)  # noqa: E712
            .order_by(Event.start_time)
        )
        with _translate_errors("list recurring events"):
            return list(self.session.exec(statement).all())

    def list_families_with_series(self) -> list[UUID]:
        statement = (
            select(Event.family_id)
            .where(Event.is_recurring_parent == True)  # noqa: E712
            .where(Event.is_deleted == False)  # noqa: E712
            .distinct()
        )
        with _translate_errors("list families"):
            return list(self.session.exec(statement).all())

    def list_standalone_events(
        self, family_id: UUID, window_start: datetime, window_end: datetime
    ) -> list[Event]:
        """Ordinary and derived events of a family starting inside the window."""
        statement = (
            select(Event)
            .where(Event.family_id == family_id)
            .where(Event.is_recurring_parent == False)  # noqa: E712
            .where(Event.is_exception == False)  # noqa: E712
            .where(Event.is_deleted == False)  # noqa: E712
            .where(Event.start_time >= window_start)
            .where(Event.start_time <= window_end)
            .order_by(Event.start_time)
        )
        with _translate_errors("list events"):
            return list(self.session.exec(statement).all())

    def list_exceptions(
        self,
        parent_id: UUID,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[Event]:
        """Exceptions of a parent, deletion markers and soft-deleted ones included."""
        statement = (
            select(Event)
            .where(Event.parent_event_id == parent_id)
            .where(Event.kind == EventKind.EXCEPTION)
        )
        if start_date is not None:
            statement = statement.where(Event.instance_date >= start_date)
        if end_date is not None:
            statement = statement.where(Event.instance_date <= end_date)
        with _translate_errors("list exceptions"):
            return list(self.session.exec(statement.order_by(Event.instance_date)).all())

    def get_exception(self, parent_id: UUID, instance_date: date) -> Event | None:
        statement = (
            select(Event)
            .where(Event.parent_event_id == parent_id)
            .where(Event.instance_date == instance_date)
            .where(Event.kind == EventKind.EXCEPTION)
        )
        with _translate_errors("load exception"):
            return self.session.exec(statement).first()

    def list_derived_events(
        self,
        parent_id: UUID,
        instance_date: date | None = None,
        kind: EventKind | None = None,
    ) -> list[Event]:
        """Derived events of a parent, optionally narrowed to one date and kind."""
        statement = select(Event).where(Event.parent_event_id == parent_id)
        if kind is not None:
            statement = statement.where(Event.kind == kind)
        else:
            statement = statement.where(col(Event.kind).in_(DERIVED_KINDS))
        if instance_date is not None:
            statement = statement.where(Event.instance_date == instance_date)
        with _translate_errors("list derived events"):
            return list(self.session.exec(statement).all())

    def list_assignments(self, event_id: UUID) -> list[Assignment]:
        statement = select(Assignment).where(Assignment.event_id == event_id)
        with _translate_errors("list assignments"):
            return list(self.session.exec(statement).all())

    # Writes

    def add(self, event: Event) -> Event:
        with _translate_errors(f"save event '{event.title}'"):
            self.session.add(event)
            self.session.flush()
        return event

    def update(self, event: Event, **changes) -> Event:
        for field, value in changes.items():
            setattr(event, field, value)
        event.updated_at = datetime.now(UTC)
        return self.add(event)

    def delete(self, event: Event) -> None:
        """Hard-delete an event together with its assignments."""
        with _translate_errors(f"delete event '{event.title}'"):
            for assignment in self.list_assignments(event.id):
                self.session.delete(assignment)
            self.session.delete(event)
            self.session.flush()

    def add_assignments(
        self,
        event_id: UUID,
        member_ids: Iterable[UUID],
        driver_id: UUID | None = None,
    ) -> list[Assignment]:
        assignments = [Assignment(event_id=event_id, member_id=m) for m in member_ids]
        if driver_id:
            assignments.append(
                Assignment(event_id=event_id, member_id=driver_id, is_driver_helper=True)
            )
        with _translate_errors("save assignments"):
            self.session.add_all(assignments)
            self.session.flush()
        self._expire_assignments(event_id)
        return assignments

    def replace_assignments(
        self,
        event_id: UUID,
        member_ids: Iterable[UUID],
        driver_id: UUID | None = None,
    ) -> list[Assignment]:
        with _translate_errors("clear assignments"):
            for assignment in self.list_assignments(event_id):
                self.session.delete(assignment)
            self.session.flush()
        return self.add_assignments(event_id, member_ids, driver_id)

    def _expire_assignments(self, event_id: UUID) -> None:
        # Keep Event.assignments in step with rows written through this store
        event = self.session.get(Event, event_id)
        if event is not None:
            self.session.expire(event, ["assignments"])

    # Transactions

    def commit(self) -> None:
        with _translate_errors("commit"):
            self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()
