"""Recurrence rules and their JSON wire format.

A rule is stored on its recurring parent as a JSON document::

    {
        "type": "weekly",
        "interval": 1,
        "days": ["monday", "wednesday"],
        "endDate": "2024-06-30",
        "endCount": 20,
        "additionalSettings": {"arrivalTime": "08:45", "driveMinutes": 20}
    }

Each ``type`` maps to its own model so a monthly rule can never carry a
weekday filter. Documents written by older clients used
``time_to_be_there`` and ``drive_time_minutes`` (minutes as a string) inside
``additionalSettings``; those keys are still read.
"""
import json
import logging
from datetime import date, time
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_serializer,
    model_validator,
)
from pydantic import ValidationError as PydanticValidationError

from family_calendar.recurrence.errors import ValidationError

logger = logging.getLogger(__name__)

Weekday = Literal[
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"
]

# Same numbering as date.weekday()
WEEKDAYS: dict[str, int] = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}


def _blank(value: Any) -> bool:
    return value is None or value == "" or value == 0


class AdditionalSettings(BaseModel):
    """Per-series settings that drive derived event generation."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    arrival_time: time | None = Field(default=None, alias="arrivalTime")
    drive_minutes: int | None = Field(default=None, alias="driveMinutes", ge=0)

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_keys(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        legacy_arrival = data.pop("time_to_be_there", None)
        legacy_drive = data.pop("drive_time_minutes", None)
        if "arrivalTime" not in data and "arrival_time" not in data:
            data["arrivalTime"] = legacy_arrival
        if "driveMinutes" not in data and "drive_minutes" not in data:
            data["driveMinutes"] = legacy_drive
        for key in ("arrivalTime", "arrival_time", "driveMinutes", "drive_minutes"):
            if key in data and data[key] == "":
                data[key] = None
        return data

    @field_serializer("arrival_time")
    def _dump_arrival_time(self, value: time | None) -> str | None:
        return value.strftime("%H:%M") if value else None

    @property
    def is_empty(self) -> bool:
        return self.arrival_time is None and not self.drive_minutes


class _Rule(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    interval: int = Field(default=1, ge=1)
    end_date: date | None = Field(default=None, alias="endDate")
    end_count: int | None = Field(default=None, alias="endCount", ge=1)
    additional_settings: AdditionalSettings = Field(
        default_factory=AdditionalSettings, alias="additionalSettings"
    )

    @model_validator(mode="before")
    @classmethod
    def _drop_blank_limits(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for key in ("endDate", "end_date", "endCount", "end_count", "additionalSettings"):
            if key in data and _blank(data[key]):
                del data[key]
        # Browsers send full ISO timestamps for date pickers
        for key in ("endDate", "end_date"):
            value = data.get(key)
            if isinstance(value, str) and len(value) > 10:
                data[key] = value[:10]
        return data

    @property
    def weekday_numbers(self) -> frozenset[int]:
        return frozenset()


class _DayFilteredRule(_Rule):
    days: frozenset[Weekday] = frozenset()

    @model_validator(mode="before")
    @classmethod
    def _normalize_days(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("days") is None:
            data = {k: v for k, v in data.items() if k != "days"}
        elif isinstance(data, dict) and isinstance(data.get("days"), (list, tuple, set, frozenset)):
            data = dict(data)
            data["days"] = [str(day).lower() for day in data["days"]]
        return data

    @field_serializer("days")
    def _dump_days(self, value: frozenset[str]) -> list[str]:
        return sorted(value, key=WEEKDAYS.__getitem__)

    @property
    def weekday_numbers(self) -> frozenset[int]:
        return frozenset(WEEKDAYS[day] for day in self.days)


class DailyRule(_DayFilteredRule):
    type: Literal["daily"] = "daily"


class WeeklyRule(_DayFilteredRule):
    type: Literal["weekly"] = "weekly"


class MonthlyRule(_Rule):
    type: Literal["monthly"] = "monthly"


class YearlyRule(_Rule):
    type: Literal["yearly"] = "yearly"


RecurrenceRule = Annotated[
    Union[DailyRule, WeeklyRule, MonthlyRule, YearlyRule],
    Field(discriminator="type"),
]

_rule_adapter: TypeAdapter[RecurrenceRule] = TypeAdapter(RecurrenceRule)


def load_rule(document: str | dict | BaseModel) -> RecurrenceRule:
    """Build a rule from its wire form.

    Raises:
        ValidationError: if the document is not valid JSON or not a valid rule.
    """
    if isinstance(document, (DailyRule, WeeklyRule, MonthlyRule, YearlyRule)):
        return document
    if isinstance(document, BaseModel):
        document = document.model_dump(by_alias=True, exclude_none=True)
    try:
        if isinstance(document, str):
            return _rule_adapter.validate_json(document)
        return _rule_adapter.validate_python(document)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid recurrence rule: {e.errors(include_url=False)}") from e


def parse_rule(document: str | dict | None) -> RecurrenceRule | None:
    """Like load_rule, but returns None instead of raising."""
    if not document:
        return None
    try:
        return load_rule(document)
    except ValidationError as e:
        logger.warning(f"Ignoring unreadable recurrence rule: {e}")
        return None


def dump_rule(rule: RecurrenceRule) -> str:
    """Serialize a rule to its stored JSON document."""
    data = rule.model_dump(by_alias=True, exclude_none=True)
    if not data.get("additionalSettings"):
        data.pop("additionalSettings", None)
    return json.dumps(data)


def with_additional_settings(
    rule: RecurrenceRule, additional_settings: AdditionalSettings
) -> RecurrenceRule:
    """Return a copy of ``rule`` carrying new additional settings."""
    return rule.model_copy(update={"additional_settings": additional_settings})


def dump_settings(additional_settings: AdditionalSettings) -> str:
    """Serialize settings stored on their own, "{}" meaning explicitly none."""
    return additional_settings.model_dump_json(by_alias=True, exclude_none=True)


def parse_settings(document: str | None) -> AdditionalSettings | None:
    """Read settings written by dump_settings, None if absent or unreadable."""
    if not document:
        return None
    try:
        return AdditionalSettings.model_validate_json(document)
    except PydanticValidationError as e:
        logger.warning(f"Ignoring unreadable additional settings: {e}")
        return None
