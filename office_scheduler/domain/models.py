"""Domain models for the occurrence scheduling system."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from enum import IntEnum, StrEnum

from pydantic import BaseModel, Field, model_validator


class RecurrenceType(StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


class Weekday(IntEnum):
    """Day of week, numbered Sunday-first.

    Expansion walks configured weekdays in this order, so a week cycle runs
    Sunday through Saturday.
    """

    SUNDAY = 0
    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6

    @classmethod
    def of(cls, value: date) -> Weekday:
        # date.weekday() is Monday-first
        return cls((value.weekday() + 1) % 7)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Core domain models
# ---------------------------------------------------------------------------


class RecurrencePattern(BaseModel):
    """How an event repeats. Composed into Event, never stored on its own."""

    type: RecurrenceType
    days_of_week: list[Weekday] = Field(default_factory=list)
    interval: int = Field(default=1, ge=1)
    end_date: date | None = None
    max_occurrences: int | None = Field(default=None, ge=0)


class User(BaseModel):
    id: str = Field(default_factory=_new_id)
    username: str
    display_name: str
    email: str = ""
    created_at: datetime = Field(default_factory=_utcnow)


class Event(BaseModel):
    """A scheduled event. Start and end are wall-clock times in time_zone_id."""

    id: str = Field(default_factory=_new_id)
    title: str
    description: str | None = None
    owner_id: str
    start_time: datetime
    end_time: datetime
    duration_minutes: int = 0
    capacity: int = Field(default=1, ge=1)
    time_zone_id: str
    recurrence: RecurrencePattern | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def _end_after_start(self) -> Event:
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class Occurrence(BaseModel):
    id: str = Field(default_factory=_new_id)
    event_id: str
    start_time: datetime
    end_time: datetime
    is_cancelled: bool = False
    external_meeting_id: str | None = None


class Signup(BaseModel):
    id: str = Field(default_factory=_new_id)
    occurrence_id: str
    user_id: str
    signed_up_at: datetime = Field(default_factory=_utcnow)
    message: str | None = None


# ---------------------------------------------------------------------------
# Request / Response DTOs
# ---------------------------------------------------------------------------


class EventDraft(BaseModel):
    """Caller-supplied fields for creating or updating an event."""

    title: str
    description: str | None = None
    start_time: datetime
    end_time: datetime
    capacity: int = Field(default=1, ge=1)
    time_zone_id: str | None = None
    recurrence: RecurrencePattern | None = None


class CreateUserRequest(BaseModel):
    username: str = Field(min_length=1)
    display_name: str = Field(min_length=1)
    email: str = ""


class SignUpRequest(BaseModel):
    message: str | None = None


class SignupView(BaseModel):
    user_id: str
    display_name: str
    signed_up_at: datetime
    message: str | None = None


class OccurrenceView(BaseModel):
    id: str
    event_id: str
    start_time: datetime
    end_time: datetime
    start_time_utc: datetime
    end_time_utc: datetime
    time_zone_id: str
    is_cancelled: bool
    signup_count: int
    signups: list[SignupView] = Field(default_factory=list)


class EventView(BaseModel):
    id: str
    title: str
    description: str | None = None
    owner_id: str
    owner_display_name: str
    start_time: datetime
    end_time: datetime
    capacity: int
    time_zone_id: str
    recurrence: RecurrencePattern | None = None
    occurrences: list[OccurrenceView] = Field(default_factory=list)


class CalendarEntry(BaseModel):
    """One occurrence placed on the absolute timeline for calendar feeds."""

    occurrence_id: str
    event_id: str
    title: str
    start: datetime
    end: datetime
    is_cancelled: bool
    signup_count: int
    capacity: int
    owner_display_name: str
    time_zone_id: str


class TimeZoneOption(BaseModel):
    id: str
    display_name: str
