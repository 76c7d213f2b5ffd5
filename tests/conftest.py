"""Shared fixtures: fresh repositories, a controllable clock, calendar fakes."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from office_scheduler.config import get_settings
from office_scheduler.domain.models import (
    Event,
    EventDraft,
    Occurrence,
    RecurrencePattern,
    RecurrenceType,
    User,
    Weekday,
)
from office_scheduler.domain.notifier import ChangeNotifier
from office_scheduler.repos.memory import (
    EventRepository,
    OccurrenceRepository,
    SignupRepository,
    UserRepository,
)
from office_scheduler.services.events import EventService

# Sunday 1 March 2026, 07:00 in New York (still EST)
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
ZONE = "America/New_York"


class FakeClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class RecordingCalendar:
    """Calendar provider fake that remembers every call."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self._next = 0

    def create_meeting(self, occurrence: Occurrence, event: Event, owner: User, signee: User) -> str:
        self._next += 1
        meeting_id = f"meeting-{self._next}"
        self.calls.append(("create", occurrence.id, owner.id, signee.id, meeting_id))
        return meeting_id

    def add_attendee(self, external_id: str, owner: User, new_attendee: User) -> None:
        self.calls.append(("add", external_id, owner.id, new_attendee.id))

    def remove_attendee(self, external_id: str, attendee: User) -> None:
        self.calls.append(("remove", external_id, attendee.id))

    def cancel_meeting(self, external_id: str, owner: User) -> None:
        self.calls.append(("cancel", external_id, owner.id))

    def kinds(self) -> list[str]:
        return [c[0] for c in self.calls]


class FailingCalendar(RecordingCalendar):
    """Records the attempt, then raises like an unreachable provider would."""

    def create_meeting(self, *args) -> str:
        super().create_meeting(*args)
        raise ConnectionError("calendar provider unreachable")

    def add_attendee(self, *args) -> None:
        super().add_attendee(*args)
        raise ConnectionError("calendar provider unreachable")

    def remove_attendee(self, *args) -> None:
        super().remove_attendee(*args)
        raise ConnectionError("calendar provider unreachable")

    def cancel_meeting(self, *args) -> None:
        super().cancel_meeting(*args)
        raise ConnectionError("calendar provider unreachable")


class Env:
    pass


def build_env(calendar=None) -> Env:
    e = Env()
    e.clock = FakeClock()
    e.notifier = ChangeNotifier()
    e.user_repo = UserRepository()
    e.event_repo = EventRepository()
    e.occurrence_repo = OccurrenceRepository()
    e.signup_repo = SignupRepository()
    e.calendar = calendar or RecordingCalendar()
    e.service = EventService(
        user_repo=e.user_repo,
        event_repo=e.event_repo,
        occurrence_repo=e.occurrence_repo,
        signup_repo=e.signup_repo,
        notifier=e.notifier,
        calendar=e.calendar,
        horizon_months=6,
        clock=e.clock,
    )
    e.notifications = []
    e.notifier.subscribe(lambda: e.notifications.append(e.clock()))

    e.owner = add_user(e, "owner", "Olivia Owner")
    e.alice = add_user(e, "alice", "Alice")
    e.bob = add_user(e, "bob", "Bob")
    return e


@pytest.fixture()
def env() -> Env:
    """Fresh repos + service, three users and a clock fixed at NOW."""
    return build_env()


@pytest.fixture()
def failing_env() -> Env:
    """Like ``env`` but every calendar-provider call raises."""
    return build_env(FailingCalendar())


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def add_user(e: Env, username: str, display_name: str) -> User:
    user = User(username=username, display_name=display_name, email=f"{username}@example.com")
    e.user_repo.add(user)
    return user


def make_draft(**overrides) -> EventDraft:
    """Weekly Monday 09:00-10:00 New York event, starting Monday 2 March 2026."""
    defaults = dict(
        title="Yoga",
        description="Lunchtime stretch",
        start_time=datetime(2026, 3, 2, 9, 0),
        end_time=datetime(2026, 3, 2, 10, 0),
        capacity=2,
        time_zone_id=ZONE,
        recurrence=RecurrencePattern(
            type=RecurrenceType.WEEKLY, days_of_week=[Weekday.MONDAY]
        ),
    )
    defaults.update(overrides)
    return EventDraft(**defaults)


def occurrence_at(e: Env, event_id: str, start: datetime) -> Occurrence:
    for occ in e.occurrence_repo.list_for_event(event_id):
        if occ.start_time == start:
            return occ
    raise AssertionError(f"no occurrence at {start}")
