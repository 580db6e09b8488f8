"""Input models for series operations.

Times are wall-clock times of the family. A timezone sent by a client is
dropped without conversion, so "09:00+02:00" is stored as 09:00.
"""
from datetime import datetime, time
from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from family_calendar.recurrence.rules import AdditionalSettings

SERIES_FIELDS = ("title", "description", "location", "start_time", "end_time", "all_day")
# Nullable columns a request may clear by sending null
CLEARABLE_FIELDS = ("description", "location")


def _wall_clock(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is not None:
        return value.replace(tzinfo=None)
    return value


class _SettingsMixin(BaseModel):
    arrival_time: time | None = Field(
        default=None, validation_alias=AliasChoices("arrival_time", "time_to_be_there")
    )
    drive_minutes: int | None = Field(
        default=None, ge=0, validation_alias=AliasChoices("drive_minutes", "drive_time_minutes")
    )

    @field_validator("arrival_time", "drive_minutes", mode="before")
    @classmethod
    def _blank_is_none(cls, value):
        return None if value == "" else value

    def additional_settings(self, current: AdditionalSettings | None = None) -> AdditionalSettings:
        """Settings with the fields this request set replacing ``current``."""
        current = current or AdditionalSettings()
        return AdditionalSettings(
            arrival_time=(
                self.arrival_time if "arrival_time" in self.model_fields_set else current.arrival_time
            ),
            drive_minutes=(
                self.drive_minutes
                if "drive_minutes" in self.model_fields_set
                else current.drive_minutes
            ),
        )


class EventTemplate(_SettingsMixin):
    """The base event a series is created from."""
    family_id: UUID
    created_by_user_id: UUID
    title: str = Field(min_length=1)
    description: str | None = None
    location: str | None = None
    start_time: datetime
    end_time: datetime
    all_day: bool = False

    @field_validator("start_time", "end_time")
    @classmethod
    def _wall_clock_times(cls, value):
        return _wall_clock(value)

    @model_validator(mode="after")
    def _check_times(self):
        if self.end_time < self.start_time:
            raise ValueError("end_time must not be before start_time")
        return self

    def event_fields(self) -> dict:
        return {
            "family_id": self.family_id,
            "created_by_user_id": self.created_by_user_id,
            **{field: getattr(self, field) for field in SERIES_FIELDS},
        }


class EventChanges(_SettingsMixin):
    """Partial update of an occurrence or a whole series."""
    title: str | None = Field(default=None, min_length=1)
    description: str | None = None
    location: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    all_day: bool | None = None

    @field_validator("start_time", "end_time")
    @classmethod
    def _wall_clock_times(cls, value):
        return _wall_clock(value)

    @model_validator(mode="after")
    def _check_times(self):
        if self.start_time and self.end_time and self.end_time < self.start_time:
            raise ValueError("end_time must not be before start_time")
        return self

    @property
    def touches_settings(self) -> bool:
        return bool({"arrival_time", "drive_minutes"} & self.model_fields_set)

    def event_fields(self) -> dict:
        """The event columns this request sets, including cleared ones."""
        return {
            field: getattr(self, field)
            for field in SERIES_FIELDS
            if field in self.model_fields_set
            and (getattr(self, field) is not None or field in CLEARABLE_FIELDS)
        }
