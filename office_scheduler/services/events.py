"""Event service: creates events, keeps their occurrences materialized, and
manages signups and cancellations on individual occurrences."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Iterator

from dateutil.relativedelta import relativedelta

from office_scheduler.domain.errors import (
    AlreadySignedUpError,
    InvalidEventError,
    NotFoundError,
    NotOwnerError,
    NotSignedUpError,
    OccurrenceCancelledError,
    OccurrenceFullError,
    OccurrenceNotCancelledError,
)
from office_scheduler.domain.models import (
    CalendarEntry,
    Event,
    EventDraft,
    EventView,
    Occurrence,
    OccurrenceView,
    Signup,
    SignupView,
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
from office_scheduler.services.calendar import CalendarInviteService
from office_scheduler.services.recurrence import expand

logger = logging.getLogger(__name__)

DEFAULT_HORIZON_MONTHS = 6


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def compute_horizon(now_local: datetime, months: int) -> datetime:
    """Last wall-clock time that gets materialized when it is *now_local*."""
    return now_local + relativedelta(months=months)


class EventService:
    """Owns every state change to events, occurrences and signups.

    Changes to one event's occurrences, and to the signups on them, are
    serialized on that event's lock. Calendar-provider calls happen after the
    lock is released and never fail the operation that triggered them.
    """

    def __init__(
        self,
        user_repo: UserRepository,
        event_repo: EventRepository,
        occurrence_repo: OccurrenceRepository,
        signup_repo: SignupRepository,
        notifier: ChangeNotifier,
        calendar: CalendarInviteService,
        locks: LockRegistry | None = None,
        horizon_months: int = DEFAULT_HORIZON_MONTHS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.user_repo = user_repo
        self.event_repo = event_repo
        self.occurrence_repo = occurrence_repo
        self.signup_repo = signup_repo
        self.notifier = notifier
        self.calendar = calendar
        self.locks = locks or LockRegistry()
        self.horizon_months = horizon_months
        self.clock = clock

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def create_event(self, draft: EventDraft, owner_id: str) -> Event:
        _validate_draft(draft)
        self._require_user(owner_id, "Owner not found.")

        now = self.clock()
        event = Event(
            title=draft.title.strip(),
            description=draft.description,
            owner_id=owner_id,
            start_time=draft.start_time,
            end_time=draft.end_time,
            duration_minutes=_duration_minutes(draft),
            capacity=draft.capacity,
            time_zone_id=timezones.resolve(draft.time_zone_id),
            recurrence=draft.recurrence,
            created_at=now,
            updated_at=now,
        )

        with self._locked(event.id):
            self.event_repo.add(event)
            now_local = timezones.now_in_zone(event.time_zone_id, now)
            added = self.occurrence_repo.add_many(
                Occurrence(event_id=event.id, start_time=start, end_time=end)
                for start, end in self._expand(event, now_local)
            )

        logger.info("Created event %s (%r) with %d occurrences", event.id, event.title, added)
        self.notifier.notify()
        return event

    def update_event(self, event_id: str, draft: EventDraft, user_id: str) -> Event:
        """Apply *draft* to the event and regenerate its future occurrences.

        Past occurrences and occurrences with at least one signup are kept
        exactly as they are, even if the new pattern would not produce them.
        Future occurrences without signups are dropped and the new pattern
        fills in any strictly-future start that is not already kept.
        """
        with self._locked(event_id):
            event = self._require_event(event_id)
            if event.owner_id != user_id:
                raise NotOwnerError("Only the event owner can modify this event.")
            _validate_draft(draft)

            now = self.clock()
            event.title = draft.title.strip()
            event.description = draft.description
            event.start_time = draft.start_time
            event.end_time = draft.end_time
            event.duration_minutes = _duration_minutes(draft)
            event.capacity = draft.capacity
            event.time_zone_id = timezones.resolve(draft.time_zone_id)
            event.recurrence = draft.recurrence
            event.updated_at = now

            now_local = timezones.now_in_zone(event.time_zone_id, now)
            kept_starts: set[datetime] = set()
            removed = 0
            for occ in self.occurrence_repo.list_for_event(event.id):
                is_future = occ.start_time > now_local
                if is_future and self.signup_repo.count_for_occurrence(occ.id) == 0:
                    self.occurrence_repo.delete(occ.id)
                    removed += 1
                else:
                    kept_starts.add(occ.start_time)

            added = self.occurrence_repo.add_many(
                Occurrence(event_id=event.id, start_time=start, end_time=end)
                for start, end in self._expand(event, now_local)
                if start > now_local and start not in kept_starts
            )

        logger.info(
            "Updated event %s: kept %d, removed %d, added %d occurrences",
            event.id,
            len(kept_starts),
            removed,
            added,
        )
        self.notifier.notify()
        return event

    def delete_event(self, event_id: str, user_id: str) -> None:
        with self._locked(event_id):
            event = self._require_event(event_id)
            if event.owner_id != user_id:
                raise NotOwnerError("Only the event owner can delete this event.")

            meetings = [
                (occ.id, occ.external_meeting_id)
                for occ in self.occurrence_repo.list_for_event(event.id)
                if not occ.is_cancelled and occ.external_meeting_id
            ]
            occurrence_ids = self.occurrence_repo.delete_for_event(event.id)
            self.signup_repo.delete_for_occurrences(occurrence_ids)
            self.event_repo.delete(event.id)

        owner = self.user_repo.get(event.owner_id)
        for occurrence_id, external_id in meetings:
            self._cancel_meeting(external_id, owner, occurrence_id, event)

        logger.info("Deleted event %s with %d occurrences", event.id, len(occurrence_ids))
        self.notifier.notify()

    def transfer_ownership(
        self, event_id: str, current_owner_id: str, new_owner_id: str
    ) -> Event:
        with self._locked(event_id):
            event = self._require_event(event_id)
            if event.owner_id != current_owner_id:
                raise NotOwnerError("Only the current owner can transfer ownership.")
            self._require_user(new_owner_id, "New owner not found.")

            event.owner_id = new_owner_id
            event.updated_at = self.clock()

        logger.info(
            "Transferred event %s from %s to %s", event.id, current_owner_id, new_owner_id
        )
        self.notifier.notify()
        return event

    # ------------------------------------------------------------------
    # Signups
    # ------------------------------------------------------------------

    def sign_up(
        self, occurrence_id: str, user_id: str, message: str | None = None
    ) -> Signup:
        occurrence = self._require_occurrence(occurrence_id)
        with self._locked(occurrence.event_id):
            # The occurrence may have been regenerated while we waited
            occurrence = self._require_occurrence(occurrence_id)
            event = self._require_event(occurrence.event_id)

            if occurrence.is_cancelled:
                raise OccurrenceCancelledError()
            if self.signup_repo.find(occurrence_id, user_id) is not None:
                raise AlreadySignedUpError()
            if self.signup_repo.count_for_occurrence(occurrence_id) >= event.capacity:
                raise OccurrenceFullError()
            user = self._require_user(user_id, "User not found.")

            signup = Signup(
                occurrence_id=occurrence_id,
                user_id=user_id,
                signed_up_at=self.clock(),
                message=message,
            )
            self.signup_repo.add(signup)
            external_id = occurrence.external_meeting_id

        self._send_invite(occurrence, event, user, external_id)
        self.notifier.notify()
        return signup

    def cancel_signup(self, occurrence_id: str, user_id: str) -> None:
        occurrence = self.occurrence_repo.get(occurrence_id)
        if occurrence is None:
            raise NotSignedUpError()
        with self._locked(occurrence.event_id):
            signup = self.signup_repo.find(occurrence_id, user_id)
            if signup is None:
                raise NotSignedUpError()
            self.signup_repo.delete(signup)
            external_id = occurrence.external_meeting_id

        if external_id:
            user = self.user_repo.get(user_id)
            try:
                if user is not None:
                    self.calendar.remove_attendee(external_id, user)
            except Exception:
                logger.exception(
                    "Failed to remove attendee from calendar invite for occurrence %s "
                    "(user %s, meeting %s)",
                    occurrence_id,
                    user_id,
                    external_id,
                )

        self.notifier.notify()

    # ------------------------------------------------------------------
    # Occurrence cancellation
    # ------------------------------------------------------------------

    def cancel_occurrence(self, occurrence_id: str, user_id: str) -> Occurrence:
        """Mark an occurrence cancelled and drop its calendar meeting.

        The meeting reference is cleared even if the provider call fails, so
        un-cancelling later starts without a meeting.
        """
        occurrence = self._require_occurrence(occurrence_id)
        with self._locked(occurrence.event_id):
            event = self._require_event(occurrence.event_id)
            if event.owner_id != user_id:
                raise NotOwnerError("Only the event owner can cancel occurrences.")

            occurrence.is_cancelled = True
            external_id = occurrence.external_meeting_id
            occurrence.external_meeting_id = None

        if external_id:
            self._cancel_meeting(
                external_id, self.user_repo.get(event.owner_id), occurrence_id, event
            )

        self.notifier.notify()
        return occurrence

    def uncancel_occurrence(self, occurrence_id: str, user_id: str) -> Occurrence:
        occurrence = self._require_occurrence(occurrence_id)
        with self._locked(occurrence.event_id):
            event = self._require_event(occurrence.event_id)
            if event.owner_id != user_id:
                raise NotOwnerError("Only the event owner can uncancel occurrences.")
            if not occurrence.is_cancelled:
                raise OccurrenceNotCancelledError()
            occurrence.is_cancelled = False

        self.notifier.notify()
        return occurrence

    # ------------------------------------------------------------------
    # Horizon
    # ------------------------------------------------------------------

    def extend_horizon(self, event_id: str) -> int:
        """Materialize any missing occurrences up to the current horizon.

        Never deletes. Returns the number of occurrences added.
        """
        with self._locked(event_id):
            event = self.event_repo.get(event_id)
            if event is None or event.recurrence is None:
                return 0
            now_local = timezones.now_in_zone(event.time_zone_id, self.clock())
            existing = self.occurrence_repo.start_times_for_event(event.id)
            return self.occurrence_repo.add_many(
                Occurrence(event_id=event.id, start_time=start, end_time=end)
                for start, end in self._expand(event, now_local)
                if start not in existing
            )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_event(self, event_id: str) -> EventView | None:
        event = self.event_repo.get(event_id)
        if event is None:
            return None
        return self._event_view(event)

    def search_events(self, term: str | None = None) -> list[EventView]:
        """Events whose title, description or owner name contains *term*."""
        needle = (term or "").strip().lower()
        matches = []
        for event in self.event_repo.list_all():
            if needle:
                haystack = [event.title, event.description or "", self._owner_name(event)]
                if not any(needle in text.lower() for text in haystack):
                    continue
            matches.append(event)
        matches.sort(key=lambda e: e.start_time)
        return [self._event_view(e) for e in matches]

    def get_occurrence(self, occurrence_id: str) -> OccurrenceView | None:
        occurrence = self.occurrence_repo.get(occurrence_id)
        if occurrence is None:
            return None
        event = self.event_repo.get(occurrence.event_id)
        if event is None:
            return None
        return self._occurrence_view(occurrence, event)

    def occurrences_in_range(self, start: datetime, end: datetime) -> list[CalendarEntry]:
        """Occurrences whose absolute interval overlaps ``[start, end)``.

        Boundary touches (an occurrence ending exactly at *start*) are excluded.
        """
        start = _as_utc(start)
        end = _as_utc(end)
        events = {e.id: e for e in self.event_repo.list_all()}

        entries: list[CalendarEntry] = []
        for occ in self.occurrence_repo.list_all():
            event = events.get(occ.event_id)
            if event is None:
                continue
            occ_start = timezones.wall_clock_to_absolute(occ.start_time, event.time_zone_id)
            occ_end = timezones.wall_clock_to_absolute(occ.end_time, event.time_zone_id)
            if not (occ_start < end and start < occ_end):
                continue
            entries.append(
                CalendarEntry(
                    occurrence_id=occ.id,
                    event_id=event.id,
                    title=event.title,
                    start=occ_start,
                    end=occ_end,
                    is_cancelled=occ.is_cancelled,
                    signup_count=self.signup_repo.count_for_occurrence(occ.id),
                    capacity=event.capacity,
                    owner_display_name=self._owner_name(event),
                    time_zone_id=event.time_zone_id,
                )
            )
        entries.sort(key=lambda e: e.start)
        return entries

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _expand(self, event: Event, now_local: datetime) -> list[tuple[datetime, datetime]]:
        horizon = compute_horizon(now_local, self.horizon_months)
        return expand(event.start_time, event.end_time, event.recurrence, horizon)

    @contextmanager
    def _locked(self, event_id: str) -> Iterator[None]:
        """Hold *event_id*'s lock; drop the lock afterwards if the event is gone."""
        try:
            with self.locks.lock_for(event_id):
                yield
        finally:
            if self.event_repo.get(event_id) is None:
                self.locks.discard(event_id)

    def _send_invite(
        self,
        occurrence: Occurrence,
        event: Event,
        user: User,
        external_id: str | None,
    ) -> None:
        owner = self.user_repo.get(event.owner_id)
        if external_id is None:
            try:
                new_id = self.calendar.create_meeting(occurrence, event, owner, user)
            except Exception:
                logger.exception(
                    "Failed to send calendar invite for occurrence %s "
                    "(event %s %r, user %s)",
                    occurrence.id,
                    event.id,
                    event.title,
                    user.id,
                )
                return
            external_id = self._store_meeting(occurrence.id, event.id, new_id)
            if external_id == new_id:
                return
            self._cancel_meeting(new_id, owner, occurrence.id, event)
            if external_id is None:
                return

        try:
            self.calendar.add_attendee(external_id, owner, user)
        except Exception:
            logger.exception(
                "Failed to add attendee to calendar invite for occurrence %s "
                "(event %s %r, user %s, meeting %s)",
                occurrence.id,
                event.id,
                event.title,
                user.id,
                external_id,
            )

    def _store_meeting(self, occurrence_id: str, event_id: str, new_id: str) -> str | None:
        """Attach *new_id* to the occurrence unless it changed meanwhile.

        Returns the meeting the occurrence now uses: *new_id*, a meeting another
        signup stored first, or None if the occurrence was cancelled or deleted.
        """
        with self._locked(event_id):
            current = self.occurrence_repo.get(occurrence_id)
            if current is None or current.is_cancelled:
                logger.warning(
                    "Occurrence %s was cancelled or deleted while meeting %s was created",
                    occurrence_id,
                    new_id,
                )
                return None
            if current.external_meeting_id is not None:
                logger.warning(
                    "Occurrence %s already has meeting %s; dropping %s",
                    occurrence_id,
                    current.external_meeting_id,
                    new_id,
                )
                return current.external_meeting_id
            current.external_meeting_id = new_id
            return new_id

    def _cancel_meeting(
        self, external_id: str, owner: User | None, occurrence_id: str, event: Event
    ) -> None:
        try:
            self.calendar.cancel_meeting(external_id, owner)
        except Exception:
            logger.exception(
                "Failed to cancel calendar invite for occurrence %s "
                "(event %s %r, meeting %s)",
                occurrence_id,
                event.id,
                event.title,
                external_id,
            )

    def _require_event(self, event_id: str) -> Event:
        event = self.event_repo.get(event_id)
        if event is None:
            raise NotFoundError("Event not found.")
        return event

    def _require_occurrence(self, occurrence_id: str) -> Occurrence:
        occurrence = self.occurrence_repo.get(occurrence_id)
        if occurrence is None:
            raise NotFoundError("Occurrence not found.")
        return occurrence

    def _require_user(self, user_id: str, message: str) -> User:
        user = self.user_repo.get(user_id)
        if user is None:
            raise NotFoundError(message)
        return user

    def _owner_name(self, event: Event) -> str:
        owner = self.user_repo.get(event.owner_id)
        return owner.display_name if owner else ""

    def _occurrence_view(self, occ: Occurrence, event: Event) -> OccurrenceView:
        signups = []
        for s in self.signup_repo.list_for_occurrence(occ.id):
            user = self.user_repo.get(s.user_id)
            signups.append(
                SignupView(
                    user_id=s.user_id,
                    display_name=user.display_name if user else "",
                    signed_up_at=s.signed_up_at,
                    message=s.message,
                )
            )
        return OccurrenceView(
            id=occ.id,
            event_id=event.id,
            start_time=occ.start_time,
            end_time=occ.end_time,
            start_time_utc=timezones.wall_clock_to_absolute(occ.start_time, event.time_zone_id),
            end_time_utc=timezones.wall_clock_to_absolute(occ.end_time, event.time_zone_id),
            time_zone_id=event.time_zone_id,
            is_cancelled=occ.is_cancelled,
            signup_count=len(signups),
            signups=signups,
        )

    def _event_view(self, event: Event) -> EventView:
        return EventView(
            id=event.id,
            title=event.title,
            description=event.description,
            owner_id=event.owner_id,
            owner_display_name=self._owner_name(event),
            start_time=event.start_time,
            end_time=event.end_time,
            capacity=event.capacity,
            time_zone_id=event.time_zone_id,
            recurrence=event.recurrence,
            occurrences=[
                self._occurrence_view(occ, event)
                for occ in self.occurrence_repo.list_for_event(event.id)
            ],
        )


def _validate_draft(draft: EventDraft) -> None:
    if not draft.title or not draft.title.strip():
        raise InvalidEventError("Title is required.")
    if draft.start_time.tzinfo is not None or draft.end_time.tzinfo is not None:
        raise InvalidEventError("Start and end must be wall-clock times without an offset.")
    if draft.end_time <= draft.start_time:
        raise InvalidEventError("End time must be after start time.")


def _duration_minutes(draft: EventDraft) -> int:
    return int((draft.end_time - draft.start_time).total_seconds() // 60)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
