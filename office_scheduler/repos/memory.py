"""In-memory repositories for users, events, occurrences and signups."""

from __future__ import annotations

import threading
from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime

from office_scheduler.domain.models import Event, Occurrence, Signup, User


class _DictRepository:
    """Shared locking for the dict-backed stores below."""

    def __init__(self) -> None:
        self._lock = threading.RLock()


class UserRepository(_DictRepository):
    """Dict-backed store for User instances, keyed by id."""

    def __init__(self) -> None:
        super().__init__()
        self._store: dict[str, User] = {}

    def add(self, user: User) -> None:
        with self._lock:
            self._store[user.id] = user

    def get(self, user_id: str) -> User | None:
        with self._lock:
            return self._store.get(user_id)

    def list_all(self) -> list[User]:
        with self._lock:
            return list(self._store.values())

    def search(
        self, term: str, exclude_user_id: str | None = None, max_results: int = 10
    ) -> list[User]:
        """Users whose display name, username or email contains *term*.

        Terms shorter than two characters match nothing.
        """
        needle = (term or "").strip().lower()
        if len(needle) < 2:
            return []
        with self._lock:
            matches = [
                u
                for u in self._store.values()
                if u.id != exclude_user_id
                and any(needle in text.lower() for text in (u.display_name, u.username, u.email))
            ]
        matches.sort(key=lambda u: u.display_name.lower())
        return matches[:max_results]


class EventRepository(_DictRepository):
    """Dict-backed store for Event instances, keyed by id."""

    def __init__(self) -> None:
        super().__init__()
        self._store: dict[str, Event] = {}

    def add(self, event: Event) -> None:
        with self._lock:
            self._store[event.id] = event

    def get(self, event_id: str) -> Event | None:
        with self._lock:
            return self._store.get(event_id)

    def list_all(self) -> list[Event]:
        with self._lock:
            return list(self._store.values())

    def list_recurring(self) -> list[Event]:
        with self._lock:
            return [e for e in self._store.values() if e.recurrence is not None]

    def delete(self, event_id: str) -> None:
        with self._lock:
            self._store.pop(event_id, None)


class OccurrenceRepository(_DictRepository):
    """Dict-backed store for Occurrence instances.

    Enforces one occurrence per (event, start time).
    """

    def __init__(self) -> None:
        super().__init__()
        self._store: dict[str, Occurrence] = {}
        self._by_event: dict[str, dict[datetime, str]] = defaultdict(dict)

    def add(self, occurrence: Occurrence) -> bool:
        """Insert *occurrence*; return False if its start is already taken."""
        with self._lock:
            starts = self._by_event[occurrence.event_id]
            if occurrence.start_time in starts:
                return False
            starts[occurrence.start_time] = occurrence.id
            self._store[occurrence.id] = occurrence
            return True

    def add_many(self, occurrences: Iterable[Occurrence]) -> int:
        with self._lock:
            return sum(1 for occ in occurrences if self.add(occ))

    def get(self, occurrence_id: str) -> Occurrence | None:
        with self._lock:
            return self._store.get(occurrence_id)

    def list_for_event(self, event_id: str) -> list[Occurrence]:
        with self._lock:
            ids = self._by_event.get(event_id, {}).values()
            return sorted(
                (self._store[oid] for oid in ids), key=lambda o: o.start_time
            )

    def list_all(self) -> list[Occurrence]:
        with self._lock:
            return list(self._store.values())

    def start_times_for_event(self, event_id: str) -> set[datetime]:
        with self._lock:
            return set(self._by_event.get(event_id, {}))

    def delete(self, occurrence_id: str) -> None:
        with self._lock:
            occ = self._store.pop(occurrence_id, None)
            if occ is not None:
                self._by_event[occ.event_id].pop(occ.start_time, None)

    def delete_for_event(self, event_id: str) -> list[str]:
        """Delete every occurrence of *event_id* and return their ids."""
        with self._lock:
            ids = list(self._by_event.pop(event_id, {}).values())
            for oid in ids:
                self._store.pop(oid, None)
            return ids


class SignupRepository(_DictRepository):
    """Dict-backed store for Signup instances, indexed by occurrence."""

    def __init__(self) -> None:
        super().__init__()
        self._by_occurrence: dict[str, list[Signup]] = defaultdict(list)

    def add(self, signup: Signup) -> None:
        with self._lock:
            self._by_occurrence[signup.occurrence_id].append(signup)

    def list_for_occurrence(self, occurrence_id: str) -> list[Signup]:
        with self._lock:
            return list(self._by_occurrence.get(occurrence_id, []))

    def count_for_occurrence(self, occurrence_id: str) -> int:
        with self._lock:
            return len(self._by_occurrence.get(occurrence_id, []))

    def find(self, occurrence_id: str, user_id: str) -> Signup | None:
        with self._lock:
            for signup in self._by_occurrence.get(occurrence_id, []):
                if signup.user_id == user_id:
                    return signup
            return None

    def delete(self, signup: Signup) -> None:
        with self._lock:
            signups = self._by_occurrence.get(signup.occurrence_id, [])
            if signup in signups:
                signups.remove(signup)

    def delete_for_occurrences(self, occurrence_ids: Iterable[str]) -> None:
        with self._lock:
            for oid in occurrence_ids:
                self._by_occurrence.pop(oid, None)


class LockRegistry:
    """Hands out one lock per key, created on first use.

    The event service serializes all changes to an event's occurrences and
    their signups on the event's lock.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}

    def lock_for(self, key: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.RLock()
            return lock

    def discard(self, key: str) -> None:
        with self._guard:
            self._locks.pop(key, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
