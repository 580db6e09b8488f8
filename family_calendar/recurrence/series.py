"""Series operations: the entry point of the recurrence engine.

SeriesManager composes the expander, the exception resolver and the derived
event manager over one EventStore. Each mutating operation runs in a single
transaction and reports its outcome as an OperationResult; a uniqueness
conflict (two requests materializing the same occurrence at once) rolls the
transaction back and retries the operation once, at which point the
competing row is visible and gets updated in place.
"""
import logging
from collections.abc import Callable
from datetime import UTC, date, datetime, time
from uuid import UUID

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from family_calendar.core.config import settings
from family_calendar.models import Event
from family_calendar.recurrence.derived import DerivedEventManager
from family_calendar.recurrence.errors import (
    ConflictError,
    DeadlineExceededError,
    EngineError,
    OperationResult,
    ValidationError,
)
from family_calendar.recurrence.identifiers import parent_id_of
from family_calendar.recurrence.occurrence import Occurrence, OccurrenceState
from family_calendar.recurrence.resolver import ExceptionResolver
from family_calendar.recurrence.rules import (
    AdditionalSettings,
    RecurrenceRule,
    dump_rule,
    dump_settings,
    load_rule,
    parse_rule,
    parse_settings,
    with_additional_settings,
)
from family_calendar.recurrence.schemas import EventChanges, EventTemplate
from family_calendar.recurrence.store import EventStore

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 2


def normalize_window(
    window_start: date | datetime, window_end: date | datetime
) -> tuple[datetime, datetime]:
    """Turn a pair of dates into a window covering both days entirely."""
    if not isinstance(window_start, datetime):
        window_start = datetime.combine(window_start, time.min)
    if not isinstance(window_end, datetime):
        window_end = datetime.combine(window_end, time.max)
    return window_start, window_end


def _coerce(model: type[BaseModel], data) -> BaseModel:
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid {model.__name__}: {e.errors(include_url=False)}") from e


def _as_date(value: date | str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid instance date: {value!r}") from e


def _parent_uuid(parent_id: str | UUID) -> UUID:
    parsed = parent_id_of(parent_id)
    if parsed is None:
        raise ValidationError(f"Invalid event id: {parent_id!r}")
    return parsed


class SeriesManager:
    """Resolve windows and apply edits to recurring series."""

    def __init__(self, store: EventStore, max_count: int | None = None):
        self.store = store
        self.resolver = ExceptionResolver(store, max_count)
        self.derived = DerivedEventManager(store)

    # Reads

    def resolve_occurrences(
        self,
        family_id: UUID,
        window_start: date | datetime,
        window_end: date | datetime,
        deadline: datetime | None = None,
    ) -> list[Occurrence]:
        """Everything the family has on its calendar inside the window.

        Recurring series are expanded and merged with their exceptions,
        missing arrival/drive events of virtual occurrences are created, and
        ordinary and derived events are added. The list is ordered by start
        time.

        A failure to create one occurrence's derived events is logged and
        does not affect the rest of the result.

        Raises:
            StoreError: if reading from the store fails.
            DeadlineExceededError: if ``deadline`` (timezone-aware) passes.
        """
        window_start, window_end = normalize_window(window_start, window_end)
        if window_end < window_start:
            return []

        occurrences: list[Occurrence] = []
        self._check_deadline(deadline)
        for parent in self.store.list_recurring_parents(family_id):
            self._check_deadline(deadline)
            rule = parse_rule(parent.recurrence_rule)
            if rule is None:
                logger.warning(f"Skipping series {parent.id} without a readable rule")
                continue

            resolved = self.resolver.resolve(parent, rule, window_start, window_end)
            occurrences.extend(resolved)

            additional = rule.additional_settings
            if additional.is_empty:
                continue
            for occurrence in resolved:
                # Exceptions get their derived events when they are edited
                if occurrence.state != OccurrenceState.VIRTUAL:
                    continue
                self._check_deadline(deadline)
                self._ensure_derived(occurrence, rule)

        self._check_deadline(deadline)
        for event in self.store.list_standalone_events(family_id, window_start, window_end):
            state = OccurrenceState.DERIVED if event.kind else OccurrenceState.SINGLE
            occurrences.append(Occurrence.from_event(event, state))

        occurrences.sort(key=lambda occurrence: occurrence.start_time)
        return occurrences

    def _ensure_derived(self, occurrence: Occurrence, rule: RecurrenceRule) -> None:
        additional = rule.additional_settings
        try:
            created = self.derived.ensure_derived_events(
                occurrence,
                arrival_time=additional.arrival_time,
                drive_minutes=additional.drive_minutes,
                assignee_id=occurrence.driver_id,
            )
            if created:
                self.store.commit()
        except EngineError as e:
            self.store.rollback()
            logger.error(f"Could not create derived events for {occurrence.id}: {e}")

    @staticmethod
    def _check_deadline(deadline: datetime | None) -> None:
        if deadline is not None and datetime.now(UTC) >= deadline:
            raise DeadlineExceededError("Deadline passed while resolving occurrences")

    # Writes

    def create_series(
        self,
        event_template: EventTemplate | dict,
        rule: RecurrenceRule | dict | str,
        assigned_members: list[UUID],
        driver_id: UUID | None = None,
    ) -> OperationResult:
        """Create a recurring parent, its assignments and its first derived events."""
        return self._run(
            "creating series",
            lambda: self._create_series(event_template, rule, assigned_members, driver_id),
        )

    def _create_series(self, event_template, rule, assigned_members, driver_id) -> Event:
        template = _coerce(EventTemplate, event_template)
        self._check_title(template.title)
        rule = load_rule(rule)
        rule = with_additional_settings(
            rule, template.additional_settings(rule.additional_settings)
        )

        parent = Event(
            **template.event_fields(),
            is_recurring_parent=True,
            recurrence_rule=dump_rule(rule),
        )
        self.store.add(parent)
        self.store.add_assignments(parent.id, assigned_members, driver_id)
        logger.info(f"Created series {parent.id} '{parent.title}' ({rule.type})")

        if not rule.additional_settings.is_empty:
            first = self.resolver.resolve(parent, rule, parent.start_time, parent.start_time)
            for occurrence in first:
                self.derived.ensure_derived_events(
                    occurrence,
                    arrival_time=rule.additional_settings.arrival_time,
                    drive_minutes=rule.additional_settings.drive_minutes,
                    assignee_id=driver_id,
                )
        return parent

    def edit_instance(
        self,
        parent_id: str | UUID,
        instance_date: date | str,
        changes: EventChanges | dict,
        assigned_members: list[UUID] | None = None,
        driver_id: UUID | None = None,
    ) -> OperationResult:
        """Change one occurrence, turning it into an exception if needed.

        ``assigned_members`` replaces the exception's own assignments when
        given. Arrival and drive settings in ``changes`` are stored on the
        exception and apply to this occurrence only. An exception without
        settings of its own follows the series settings.
        """
        return self._run(
            "editing occurrence",
            lambda: self._edit_instance(
                parent_id, instance_date, changes, assigned_members, driver_id
            ),
        )

    def _edit_instance(self, parent_id, instance_date, changes, assigned_members, driver_id):
        parent = self.store.get_parent(_parent_uuid(parent_id))
        instance_date = _as_date(instance_date)
        changes = _coerce(EventChanges, changes)
        fields = changes.event_fields()
        if "title" in fields:
            self._check_title(fields["title"])
        rule = self._rule_of(parent)

        exception = self.resolver.materialize(parent, rule, instance_date, fields)
        if assigned_members is not None:
            self.store.replace_assignments(exception.id, assigned_members, driver_id)

        if changes.touches_settings:
            own = parse_settings(exception.additional_settings) or rule.additional_settings
            self.store.update(
                exception, additional_settings=dump_settings(changes.additional_settings(own))
            )

        self.derived.clear_derived_events(parent.id, instance_date)
        self._ensure_exception_derived(parent, exception, rule, driver_id)
        return parent

    def edit_series(
        self,
        parent_id: str | UUID,
        changes: EventChanges | dict,
        assigned_members: list[UUID] | None = None,
        driver_id: UUID | None = None,
    ) -> OperationResult:
        """Change the parent and with it every occurrence that is not an exception.

        When ``assigned_members`` is given it replaces the parent's
        assignments, and exceptions without assignments of their own inherit
        the new set. Derived events of non-exception dates are removed so
        they are regenerated with the new timing on the next resolve. When
        the settings change, exceptions that follow the series get their
        derived events rebuilt right away.
        """
        return self._run(
            "editing series",
            lambda: self._edit_series(parent_id, changes, assigned_members, driver_id),
        )

    def _edit_series(self, parent_id, changes, assigned_members, driver_id):
        parent = self.store.get_parent(_parent_uuid(parent_id))
        changes = _coerce(EventChanges, changes)
        fields = changes.event_fields()
        if "title" in fields:
            self._check_title(fields["title"])
        rule = self._rule_of(parent)

        start_time = fields.get("start_time", parent.start_time)
        end_time = fields.get("end_time", parent.end_time)
        if end_time < start_time:
            raise ValidationError("end_time must not be before start_time")

        rule = with_additional_settings(
            rule, changes.additional_settings(rule.additional_settings)
        )
        self.store.update(parent, recurrence_rule=dump_rule(rule), **fields)

        if assigned_members is not None:
            self.store.replace_assignments(parent.id, assigned_members, driver_id)
            inherited = self.resolver.inherit_assignments(parent, assigned_members, driver_id)
            if inherited:
                logger.info(f"{inherited} exceptions of {parent.id} inherited new assignments")

        # Exceptions keep derived rows built from their own timing, unless the
        # series settings they follow have changed
        exceptions = self.resolver.live_exceptions(parent)
        following = [
            e for e in exceptions if changes.touches_settings and not e.additional_settings
        ]
        keep = {e.instance_date for e in exceptions} - {e.instance_date for e in following}
        self.derived.clear_derived_events(parent.id, keep_dates=keep)
        for exception in following:
            self._ensure_exception_derived(parent, exception, rule)
        logger.info(f"Updated series {parent.id}")
        return parent

    def delete_instance(self, parent_id: str | UUID, instance_date: date | str) -> OperationResult:
        """Hide one occurrence of a series."""
        return self._run(
            "deleting occurrence", lambda: self._delete_instance(parent_id, instance_date)
        )

    def _delete_instance(self, parent_id, instance_date):
        parent = self.store.get_parent(_parent_uuid(parent_id))
        instance_date = _as_date(instance_date)
        rule = self._rule_of(parent)

        self.resolver.mark_deleted(parent, rule, instance_date)
        self.derived.soft_delete_derived_events(parent.id, instance_date)
        logger.info(f"Deleted occurrence of {parent.id} on {instance_date}")
        return parent

    def delete_series(self, parent_id: str | UUID) -> OperationResult:
        """Permanently remove a series, its exceptions and derived events."""
        return self._run("deleting series", lambda: self._delete_series(parent_id))

    def _delete_series(self, parent_id):
        parent = self.store.get_parent(_parent_uuid(parent_id))
        derived = self.derived.clear_derived_events(parent.id)
        exceptions = self.resolver.delete_all(parent)
        self.store.delete(parent)
        logger.info(
            f"Deleted series {parent_id} with {exceptions} exceptions "
            f"and {derived} derived events"
        )
        return None

    # Helpers

    def _run(self, action: str, operation: Callable[[], Event | None]) -> OperationResult:
        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                parent = operation()
                self.store.commit()
                return OperationResult.ok(parent)
            except ConflictError as e:
                self.store.rollback()
                if attempt < MAX_ATTEMPTS:
                    logger.warning(f"Conflict while {action}, retrying: {e}")
                    continue
                logger.error(f"Error {action}: {e}")
                return OperationResult.fail(e)
            except EngineError as e:
                self.store.rollback()
                logger.error(f"Error {action}: {e}")
                return OperationResult.fail(e)

    def _ensure_exception_derived(
        self,
        parent: Event,
        exception: Event,
        rule: RecurrenceRule,
        driver_id: UUID | None = None,
    ) -> None:
        """Create the derived events of an exception.

        The exception's own settings win over the series settings. The
        driver is ``driver_id``, else the exception's driver, else the
        series driver.
        """
        occurrence = Occurrence.from_event(exception, OccurrenceState.EXCEPTION)
        additional: AdditionalSettings = (
            parse_settings(exception.additional_settings) or rule.additional_settings
        )
        driver = driver_id or occurrence.driver_id or self._driver_of(parent)
        self.derived.ensure_derived_events(
            occurrence,
            arrival_time=additional.arrival_time,
            drive_minutes=additional.drive_minutes,
            assignee_id=driver,
        )

    def _rule_of(self, parent: Event) -> RecurrenceRule:
        rule = parse_rule(parent.recurrence_rule)
        if rule is None:
            raise ValidationError(f"Event {parent.id} has no valid recurrence rule")
        return rule

    def _driver_of(self, event: Event) -> UUID | None:
        return next(
            (a.member_id for a in self.store.list_assignments(event.id) if a.is_driver_helper),
            None,
        )

    @staticmethod
    def _check_title(title: str) -> None:
        if title == settings.deletion_sentinel:
            raise ValidationError(f"'{title}' is a reserved title")
