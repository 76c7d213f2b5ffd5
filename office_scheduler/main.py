"""FastAPI application: HTTP adapter for the occurrence scheduling service.

The acting user is taken from the ``X-User-Id`` header, which an upstream
authentication layer is expected to set.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Header, HTTPException, Query

from office_scheduler.config import configure_logging, get_settings
from office_scheduler.domain.errors import (
    ConflictError,
    NotFoundError,
    NotOwnerError,
    SchedulerError,
)
from office_scheduler.domain.models import (
    CalendarEntry,
    CreateUserRequest,
    EventDraft,
    EventView,
    OccurrenceView,
    Signup,
    SignUpRequest,
    TimeZoneOption,
    User,
)
from office_scheduler.domain.notifier import ChangeNotifier
from office_scheduler.repos.memory import (
    EventRepository,
    LockRegistry,
    OccurrenceRepository,
    SignupRepository,
    UserRepository,
)
from office_scheduler.services import timezones
from office_scheduler.services.calendar import NoOpCalendarService
from office_scheduler.services.events import EventService
from office_scheduler.services.expansion import HorizonMaintenanceLoop

settings = get_settings()

# ── Singletons (created at import time for simplicity) ────────────────
notifier = ChangeNotifier()
user_repo = UserRepository()
event_repo = EventRepository()
occurrence_repo = OccurrenceRepository()
signup_repo = SignupRepository()
calendar_service = NoOpCalendarService()

event_service = EventService(
    user_repo=user_repo,
    event_repo=event_repo,
    occurrence_repo=occurrence_repo,
    signup_repo=signup_repo,
    notifier=notifier,
    calendar=calendar_service,
    locks=LockRegistry(),
    horizon_months=settings.default_horizon_months,
)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    configure_logging(settings)
    stop = asyncio.Event()
    task = None
    if settings.expansion_enabled:
        maintenance = HorizonMaintenanceLoop(
            event_service=event_service,
            event_repo=event_repo,
            notifier=notifier,
            stop=stop,
            interval_seconds=settings.expansion_check_interval_hours * 3600,
        )
        task = asyncio.create_task(maintenance.run())
    yield
    stop.set()
    if task is not None:
        await task


app = FastAPI(title="Office Scheduler", lifespan=lifespan)


def _acting_user(x_user_id: str | None) -> str:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id


def _http_error(exc: SchedulerError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        status = 404
    elif isinstance(exc, NotOwnerError):
        status = 403
    elif isinstance(exc, ConflictError):
        status = 409
    else:
        status = 400
    return HTTPException(status_code=status, detail=exc.message)


def _event_view(event_id: str) -> EventView:
    view = event_service.get_event(event_id)
    if view is None:
        raise HTTPException(status_code=404, detail="Event not found")
    return view


# ── Routes ────────────────────────────────────────────────────────────


@app.post("/api/users", response_model=User, status_code=201)
def create_user(body: CreateUserRequest) -> User:
    user = User(username=body.username, display_name=body.display_name, email=body.email)
    user_repo.add(user)
    return user


@app.get("/api/users/search", response_model=list[User])
def search_users(q: str = "", exclude: str | None = None) -> list[User]:
    """Candidate users for ownership transfer; *exclude* is usually the current owner."""
    return user_repo.search(q, exclude_user_id=exclude)


@app.get("/api/users/{user_id}", response_model=User)
def get_user(user_id: str) -> User:
    user = user_repo.get(user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@app.get("/api/timezones", response_model=list[TimeZoneOption])
def list_time_zones(
    include_all: bool = Query(default=False, alias="all"),
) -> list[TimeZoneOption]:
    """Common zones by default; pass ``all=true`` for every IANA zone."""
    if include_all:
        return timezones.all_time_zones()
    return timezones.common_time_zones()


@app.get("/api/events/calendar", response_model=list[CalendarEntry])
def calendar_feed(start: datetime, end: datetime) -> list[CalendarEntry]:
    """Occurrences overlapping the absolute range ``[start, end)``."""
    return event_service.occurrences_in_range(start, end)


@app.get("/api/events/search", response_model=list[EventView])
def search_events(q: str | None = None) -> list[EventView]:
    return event_service.search_events(q)


@app.get("/api/events/occurrences/{occurrence_id}", response_model=OccurrenceView)
def get_occurrence(occurrence_id: str) -> OccurrenceView:
    view = event_service.get_occurrence(occurrence_id)
    if view is None:
        raise HTTPException(status_code=404, detail="Occurrence not found")
    return view


@app.get("/api/events/{event_id}", response_model=EventView)
def get_event(event_id: str) -> EventView:
    return _event_view(event_id)


@app.post("/api/events", response_model=EventView, status_code=201)
def create_event(body: EventDraft, x_user_id: str | None = Header(default=None)) -> EventView:
    user_id = _acting_user(x_user_id)
    try:
        event = event_service.create_event(body, user_id)
    except SchedulerError as exc:
        raise _http_error(exc) from exc
    return _event_view(event.id)


@app.put("/api/events/{event_id}", response_model=EventView)
def update_event(
    event_id: str, body: EventDraft, x_user_id: str | None = Header(default=None)
) -> EventView:
    user_id = _acting_user(x_user_id)
    try:
        event_service.update_event(event_id, body, user_id)
    except SchedulerError as exc:
        raise _http_error(exc) from exc
    return _event_view(event_id)


@app.delete("/api/events/{event_id}")
def delete_event(event_id: str, x_user_id: str | None = Header(default=None)) -> dict:
    user_id = _acting_user(x_user_id)
    try:
        event_service.delete_event(event_id, user_id)
    except SchedulerError as exc:
        raise _http_error(exc) from exc
    return {"status": "deleted"}


@app.post("/api/events/{event_id}/transfer", response_model=EventView)
def transfer_ownership(
    event_id: str, new_owner_id: str, x_user_id: str | None = Header(default=None)
) -> EventView:
    user_id = _acting_user(x_user_id)
    try:
        event_service.transfer_ownership(event_id, user_id, new_owner_id)
    except SchedulerError as exc:
        raise _http_error(exc) from exc
    return _event_view(event_id)


@app.post("/api/events/{event_id}/signup/{occurrence_id}", response_model=Signup)
def sign_up(
    event_id: str,
    occurrence_id: str,
    body: SignUpRequest | None = None,
    x_user_id: str | None = Header(default=None),
) -> Signup:
    user_id = _acting_user(x_user_id)
    occurrence = occurrence_repo.get(occurrence_id)
    if occurrence is None or occurrence.event_id != event_id:
        raise HTTPException(status_code=404, detail="Occurrence not found")
    try:
        return event_service.sign_up(occurrence_id, user_id, body.message if body else None)
    except SchedulerError as exc:
        raise _http_error(exc) from exc


@app.delete("/api/events/{event_id}/signup/{occurrence_id}")
def cancel_signup(
    event_id: str, occurrence_id: str, x_user_id: str | None = Header(default=None)
) -> dict:
    user_id = _acting_user(x_user_id)
    occurrence = occurrence_repo.get(occurrence_id)
    if occurrence is None or occurrence.event_id != event_id:
        raise HTTPException(status_code=404, detail="Occurrence not found")
    try:
        event_service.cancel_signup(occurrence_id, user_id)
    except SchedulerError as exc:
        raise _http_error(exc) from exc
    return {"status": "cancelled"}


@app.post("/api/events/occurrences/{occurrence_id}/cancel", response_model=OccurrenceView)
def cancel_occurrence(
    occurrence_id: str, x_user_id: str | None = Header(default=None)
) -> OccurrenceView:
    user_id = _acting_user(x_user_id)
    try:
        event_service.cancel_occurrence(occurrence_id, user_id)
    except SchedulerError as exc:
        raise _http_error(exc) from exc
    return get_occurrence(occurrence_id)


@app.post("/api/events/occurrences/{occurrence_id}/uncancel", response_model=OccurrenceView)
def uncancel_occurrence(
    occurrence_id: str, x_user_id: str | None = Header(default=None)
) -> OccurrenceView:
    user_id = _acting_user(x_user_id)
    try:
        event_service.uncancel_occurrence(occurrence_id, user_id)
    except SchedulerError as exc:
        raise _http_error(exc) from exc
    return get_occurrence(occurrence_id)
