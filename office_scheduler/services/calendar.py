"""Calendar-invite provider used for best-effort meeting invites.

The provider itself lives outside this service; only the protocol and a
logging no-op implementation are defined here.
"""

from __future__ import annotations

import logging
import uuid
from typing import Protocol

from office_scheduler.domain.models import Event, Occurrence, User

logger = logging.getLogger(__name__)


class CalendarInviteService(Protocol):
    def create_meeting(
        self, occurrence: Occurrence, event: Event, owner: User, signee: User
    ) -> str:
        """Create a meeting for *occurrence* and return its external id."""
        ...

    def add_attendee(self, external_id: str, owner: User, new_attendee: User) -> None:
        ...

    def remove_attendee(self, external_id: str, attendee: User) -> None:
        ...

    def cancel_meeting(self, external_id: str, owner: User) -> None:
        ...


class NoOpCalendarService:
    """Logs what would be sent to the calendar provider."""

    def create_meeting(
        self, occurrence: Occurrence, event: Event, owner: User, signee: User
    ) -> str:
        logger.info(
            "Would create meeting for %r at %s with %s and %s",
            event.title,
            occurrence.start_time.isoformat(),
            owner.email or owner.username,
            signee.email or signee.username,
        )
        return f"fake-meeting-{uuid.uuid4()}"

    def add_attendee(self, external_id: str, owner: User, new_attendee: User) -> None:
        logger.info(
            "Would add attendee %s to meeting %s",
            new_attendee.email or new_attendee.username,
            external_id,
        )

    def remove_attendee(self, external_id: str, attendee: User) -> None:
        logger.info(
            "Would remove attendee %s from meeting %s",
            attendee.email or attendee.username,
            external_id,
        )

    def cancel_meeting(self, external_id: str, owner: User) -> None:
        logger.info("Would cancel meeting %s", external_id)
